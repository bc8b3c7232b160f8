"""
Data model for Steward.

Tool results, bulk aggregates, declarative access/creation specs and the
per-tool Pydantic parameter models validated at the dispatcher boundary.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field


ChannelFilter = Literal["text", "voice", "category", "any"]


# ============================================================================
# Results
# ============================================================================


@dataclass
class ToolResult:
    """Uniform result of a single-item tool operation."""
    success: bool
    message: str = ""
    data: dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    @classmethod
    def ok(cls, message: str, **data: Any) -> ToolResult:
        return cls(True, message, data)

    @classmethod
    def fail(cls, error: str, **data: Any) -> ToolResult:
        return cls(False, error, data, error=error)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for SDK response."""
        result: dict[str, Any] = {
            "success": self.success,
            "message": self.message,
        }
        if self.error is not None:
            result["error"] = self.error
        result.update(self.data)
        return result


@dataclass
class BulkItem:
    """A successful item of a bulk operation."""
    index: int
    input: Any
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass
class BulkFailure:
    """A failed item of a bulk operation."""
    index: int
    input: Any
    error: str
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class BulkResult:
    """Aggregate of many single-item results. Partial successes are kept."""
    succeeded: list[BulkItem] = field(default_factory=list)
    failed: list[BulkFailure] = field(default_factory=list)
    summary: str = ""
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return len(self.succeeded) > 0

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failed)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for SDK response."""
        result: dict[str, Any] = {
            "success": self.success,
            "message": self.summary,
            "summary": self.summary,
            "succeeded": [
                {"index": item.index, "input": _describe_input(item.input), **item.payload}
                for item in self.succeeded
            ],
            "failed": [
                {"index": item.index, "input": _describe_input(item.input), "error": item.error, **item.details}
                for item in self.failed
            ],
        }
        result.update(self.data)
        return result


def _describe_input(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(exclude_none=True)
    return value


@dataclass
class CallContext:
    """
    Ambient information about the request that triggered a tool call.

    Used when arguments omit an explicit channel, member or message.
    """
    member: Any = None
    channel: Any = None
    message: Any = None

    @property
    def reference_message_id(self) -> Optional[int]:
        """ID of the message the caller replied to, if any."""
        if self.message is None or self.message.reference is None:
            return None
        return self.message.reference.message_id


# ============================================================================
# Declarative Specs
# ============================================================================


class AccessConfig(BaseModel):
    """Declarative access control for a channel or category."""
    private: Optional[bool] = Field(
        default=None,
        description="If true, hide from @everyone. If false, explicitly show to @everyone."
    )
    role_access: list[str] = Field(
        default_factory=list,
        description="Role names granted access (view plus send/connect depending on kind)"
    )
    role_deny: list[str] = Field(
        default_factory=list,
        description="Role names denied view access"
    )
    read_only: Optional[bool] = Field(
        default=None,
        description="Text channels only: deny @everyone from sending messages"
    )
    read_only_except: list[str] = Field(
        default_factory=list,
        description="Role names still allowed to send in a read-only channel"
    )

    def has_access_rules(self) -> bool:
        return bool(
            self.private is not None
            or self.role_access
            or self.role_deny
            or self.read_only is not None
        )


class RoleSpec(BaseModel):
    """A role to create."""
    name: str = Field(description="Name of the role to create")
    color: Optional[str] = Field(
        default=None,
        description="Color name (e.g. 'gold') or hex code (e.g. '#FF5733')"
    )
    hoist: bool = Field(
        default=False,
        description="Whether to display role members separately"
    )
    mentionable: bool = Field(
        default=False,
        description="Whether the role can be mentioned"
    )
    permissions: list[str] = Field(
        default_factory=list,
        description="Permission names to grant (e.g. ['send_messages', 'ManageMessages'])"
    )


class CategorySpec(AccessConfig):
    """A category to create."""
    name: str = Field(description="Name of the category")


class ChannelSpec(AccessConfig):
    """A text or voice channel to create inside a structure setup."""
    name: str = Field(description="Name of the channel")
    category: Optional[str] = Field(
        default=None,
        description="Name of the parent category"
    )
    topic: Optional[str] = Field(
        default=None,
        description="Channel topic (text channels only)"
    )


# ============================================================================
# Channel Tool Parameters
# ============================================================================


class CreateTextChannelParams(AccessConfig):
    """Parameters for creating a text channel."""
    name: str = Field(description="Name of the channel to create")
    category: Optional[str] = Field(
        default=None,
        description="Category to place the channel in; auto-selected when omitted or not found"
    )
    topic: Optional[str] = Field(default=None, description="Channel topic")


class CreateVoiceChannelParams(AccessConfig):
    """Parameters for creating a voice channel."""
    name: str = Field(description="Name of the voice channel to create")
    category: Optional[str] = Field(
        default=None,
        description="Category to place the channel in; auto-selected when omitted or not found"
    )
    user_limit: Optional[int] = Field(
        default=None,
        description="Maximum connected users (0 = unlimited)"
    )


class CreateCategoryParams(AccessConfig):
    """Parameters for creating a category."""
    name: str = Field(description="Name of the category to create")


class CreateStageChannelParams(AccessConfig):
    """Parameters for creating a stage channel."""
    name: str = Field(description="Name of the stage channel to create")
    category: Optional[str] = Field(
        default=None,
        description="Category to place the channel in; auto-selected when omitted or not found"
    )
    user_limit: Optional[int] = Field(
        default=None,
        description="Maximum connected users (0 = unlimited)"
    )


class CreateForumChannelParams(AccessConfig):
    """Parameters for creating a forum channel."""
    name: str = Field(description="Name of the forum channel to create")
    category: Optional[str] = Field(
        default=None,
        description="Category to place the channel in; auto-selected when omitted or not found"
    )
    topic: Optional[str] = Field(default=None, description="Posting guidelines shown in the forum")


class DeleteChannelParams(BaseModel):
    """Parameters for deleting a channel or category."""
    name: str = Field(description="Name of the channel or category to delete")
    type: ChannelFilter = Field(
        default="any",
        description="Type filter: 'text', 'voice', 'category' or 'any'"
    )


class EditChannelParams(BaseModel):
    """Parameters for editing a channel or category."""
    name: str = Field(description="Current name of the channel")
    type: ChannelFilter = Field(
        default="any",
        description="Type filter: 'text', 'voice', 'category' or 'any'"
    )
    new_name: Optional[str] = Field(default=None, description="New name")
    topic: Optional[str] = Field(default=None, description="New topic (text only)")
    category: Optional[str] = Field(
        default=None,
        description="Category to move into; empty string removes the channel from its category"
    )
    slowmode: Optional[int] = Field(
        default=None,
        description="Slowmode in seconds, 0-21600 (text only)"
    )
    nsfw: Optional[bool] = Field(default=None, description="NSFW flag (text only)")
    user_limit: Optional[int] = Field(
        default=None,
        description="User limit, 0-99 (voice only)"
    )
    bitrate: Optional[int] = Field(
        default=None,
        description="Bitrate in bps, 8000-384000 (voice only)"
    )


class MoveChannelParams(BaseModel):
    """Parameters for moving a channel to a different category."""
    name: str = Field(description="Name of the channel to move")
    category: str = Field(
        description="Target category name; empty string removes it from its category"
    )


class ListChannelsParams(BaseModel):
    """Parameters for listing channels."""
    type: Literal["all", "text", "voice", "category"] = Field(
        default="all",
        description="Which channels to list: 'all', 'text', 'voice' or 'category'"
    )


class DeleteChannelsBulkParams(BaseModel):
    """Parameters for deleting several channels at once."""
    channels: list[DeleteChannelParams] = Field(description="Channels to delete")


class EditChannelsBulkParams(BaseModel):
    """Parameters for editing several channels at once."""
    channels: list[EditChannelParams] = Field(description="Channel edits to apply")


# ============================================================================
# Role Tool Parameters
# ============================================================================


class CreateRoleParams(RoleSpec):
    """Parameters for creating a Discord role."""


class DeleteRoleParams(BaseModel):
    """Parameters for deleting a role."""
    name: str = Field(description="Name of the role to delete")


class EditRoleParams(BaseModel):
    """Parameters for editing a role."""
    name: str = Field(description="Current name of the role")
    new_name: Optional[str] = Field(default=None, description="New role name")
    color: Optional[str] = Field(default=None, description="New color (name or hex)")
    hoist: Optional[bool] = Field(default=None, description="Display separately")
    mentionable: Optional[bool] = Field(default=None, description="Allow mentions")
    add_permissions: list[str] = Field(
        default_factory=list,
        description="Permission names to add"
    )
    remove_permissions: list[str] = Field(
        default_factory=list,
        description="Permission names to remove"
    )


class AssignRoleParams(BaseModel):
    """Parameters for adding a role to or removing it from a member."""
    role_name: str = Field(description="Name of the role")
    member: str = Field(description="Member name, display name, mention or ID")
    action: Literal["add", "remove"] = Field(default="add", description="'add' or 'remove'")


class ListRolesParams(BaseModel):
    """Parameters for listing roles."""
    include_permissions: bool = Field(
        default=False,
        description="Include key permissions for each role"
    )


class DeleteRolesBulkParams(BaseModel):
    """Parameters for deleting several roles at once."""
    roles: list[str] = Field(description="Names of roles to delete")


class SetupRolesParams(BaseModel):
    """Parameters for creating several roles at once, highest first."""
    roles: list[RoleSpec] = Field(description="Roles to create, in hierarchy order")


class ListRolePermissionsParams(BaseModel):
    """Parameters for listing role permissions by group."""
    role: Optional[str] = Field(
        default=None,
        description="Role to inspect; all roles when omitted"
    )


# ============================================================================
# Permission & Server Tool Parameters
# ============================================================================


class ConfigureChannelPermissionsParams(AccessConfig):
    """Parameters for configuring access on an existing channel."""
    channel_name: str = Field(description="Name of the channel or category")
    channel_type: ChannelFilter = Field(
        default="any",
        description="Type filter: 'text', 'voice', 'category' or 'any'"
    )
    sync_with_category: bool = Field(
        default=False,
        description="Sync permissions with the parent category instead"
    )


class SetupServerStructureParams(BaseModel):
    """Parameters for creating a whole server structure."""
    roles: list[RoleSpec] = Field(default_factory=list, description="Roles to create first")
    categories: list[CategorySpec] = Field(default_factory=list, description="Categories")
    text_channels: list[ChannelSpec] = Field(default_factory=list, description="Text channels")
    voice_channels: list[ChannelSpec] = Field(default_factory=list, description="Voice channels")


class GetServerInfoParams(BaseModel):
    """Parameters for reading the server structure."""
    include_permissions: bool = Field(
        default=False,
        description="Include key permissions for each role"
    )


class EditServerParams(BaseModel):
    """Parameters for editing server settings."""
    name: Optional[str] = Field(default=None, description="New server name")
    description: Optional[str] = Field(default=None, description="Server description")
    icon_url: Optional[str] = Field(default=None, description="Image URL for the server icon")
    verification_level: Optional[Literal["none", "low", "medium", "high", "highest"]] = Field(
        default=None,
        description="'none', 'low', 'medium', 'high' or 'highest'"
    )


# ============================================================================
# Event Tool Parameters
# ============================================================================


class CreateEventParams(BaseModel):
    """Parameters for creating a scheduled event."""
    name: str = Field(description="Event name")
    start_time: str = Field(
        description="ISO 8601 time or natural language ('tomorrow at 3pm', 'next friday 8pm', 'in 2 hours')"
    )
    end_time: Optional[str] = Field(default=None, description="End time, same formats")
    description: Optional[str] = Field(default=None, description="Event description")
    location: Optional[str] = Field(
        default=None,
        description="Voice/stage channel name, or free-text location for external events"
    )
    location_type: Literal["voice", "stage", "external"] = Field(
        default="external",
        description="'voice', 'stage' or 'external'"
    )


class DeleteEventParams(BaseModel):
    """Parameters for deleting a scheduled event."""
    event_name: str = Field(description="Name of the event")


class CreateEventsBulkParams(BaseModel):
    events: list[CreateEventParams] = Field(description="Events to create")


class DeleteEventsBulkParams(BaseModel):
    event_names: list[str] = Field(description="Names of events to delete")


# ============================================================================
# Emoji, Sticker & Webhook Tool Parameters
# ============================================================================


class CreateEmojiParams(BaseModel):
    name: str = Field(description="Emoji name")
    image_url: str = Field(description="URL of the emoji image")


class DeleteEmojiParams(BaseModel):
    emoji_name: str = Field(description="Name of the emoji")


class CreateEmojisBulkParams(BaseModel):
    emojis: list[CreateEmojiParams] = Field(description="Emojis to create")


class DeleteEmojisBulkParams(BaseModel):
    emoji_names: list[str] = Field(description="Names of emojis to delete")


class CreateStickerParams(BaseModel):
    name: str = Field(description="Sticker name, 2-30 characters")
    tags: str = Field(description="Emoji name describing the sticker's expression")
    file_url: str = Field(description="URL of a PNG/APNG/Lottie file")
    description: Optional[str] = Field(default=None, description="Sticker description")


class DeleteStickerParams(BaseModel):
    sticker_name: str = Field(description="Name of the sticker")


class CreateStickersBulkParams(BaseModel):
    stickers: list[CreateStickerParams] = Field(description="Stickers to create")


class DeleteStickersBulkParams(BaseModel):
    sticker_names: list[str] = Field(description="Names of stickers to delete")


class CreateWebhookParams(BaseModel):
    channel: str = Field(description="Text channel for the webhook")
    name: str = Field(description="Webhook name")
    avatar_url: Optional[str] = Field(default=None, description="Avatar image URL")


class DeleteWebhookParams(BaseModel):
    webhook_name: str = Field(description="Name of the webhook")
    channel: Optional[str] = Field(default=None, description="Restrict search to this channel")


class ListWebhooksParams(BaseModel):
    channel: Optional[str] = Field(default=None, description="Restrict to this channel")


class CreateWebhooksBulkParams(BaseModel):
    webhooks: list[CreateWebhookParams] = Field(description="Webhooks to create")


class DeleteWebhooksBulkParams(BaseModel):
    webhook_names: list[str] = Field(description="Names of webhooks to delete")


# ============================================================================
# Thread & Message Tool Parameters
# ============================================================================


class CreateThreadParams(BaseModel):
    name: str = Field(description="Thread name")
    channel: Optional[str] = Field(
        default=None,
        description="Text channel; defaults to the channel the request came from"
    )
    message_id: Optional[int] = Field(default=None, description="Start the thread from this message")
    auto_archive: int = Field(
        default=1440,
        description="Minutes of inactivity before archiving (60, 1440, 4320, 10080)"
    )
    private: bool = Field(default=False, description="Create a private thread")


class ArchiveThreadParams(BaseModel):
    thread_name: str = Field(description="Name of the thread")


class CreateThreadsBulkParams(BaseModel):
    threads: list[CreateThreadParams] = Field(description="Threads to create")


class ArchiveThreadsBulkParams(BaseModel):
    thread_names: list[str] = Field(description="Names of threads to archive")


class MessageActionParams(BaseModel):
    """Parameters for pin/unpin/delete/publish of a single message."""
    message_id: Optional[int] = Field(
        default=None,
        description="Message ID; defaults to the message being replied to"
    )
    channel: Optional[str] = Field(
        default=None,
        description="Text channel; defaults to the channel the request came from"
    )


class MessagesBulkParams(BaseModel):
    message_ids: list[int] = Field(description="Message IDs")
    channel: Optional[str] = Field(
        default=None,
        description="Text channel; defaults to the channel the request came from"
    )


class ListMessagesParams(BaseModel):
    channel: Optional[str] = Field(default=None, description="Text channel")
    limit: int = Field(default=20, description="Number of recent messages, up to 50")


class ChannelRefParams(BaseModel):
    channel: Optional[str] = Field(default=None, description="Text channel")


# ============================================================================
# Member & Moderation Tool Parameters
# ============================================================================


class CheckPermsParams(BaseModel):
    member: Optional[str] = Field(
        default=None,
        description="Member to check; defaults to the requesting member"
    )


class SearchMembersParams(BaseModel):
    query: str = Field(description="Username or display-name prefix")
    limit: int = Field(default=10, description="Maximum results, 1-25")


class KickMemberParams(BaseModel):
    member: str = Field(description="Member name, mention or ID")
    reason: Optional[str] = Field(default=None, description="Audit log reason")


class BanMemberParams(BaseModel):
    member: str = Field(description="Member name, mention or ID")
    reason: Optional[str] = Field(default=None, description="Audit log reason")
    delete_message_days: int = Field(
        default=0,
        description="Days of messages to delete, 0-7"
    )


class TimeoutMemberParams(BaseModel):
    member: str = Field(description="Member name, mention or ID")
    duration: str = Field(description="Duration like '10m', '1h', '2 days'")
    reason: Optional[str] = Field(default=None, description="Audit log reason")


class MoveMemberParams(BaseModel):
    member: str = Field(description="Member name, mention or ID")
    target_channel: str = Field(description="Voice or stage channel to move the member into")


class MoveMembersBulkParams(BaseModel):
    members: list[str] = Field(description="Members to move (names, mentions or IDs)")
    target_channel: str = Field(description="Voice or stage channel to move them into")


# ============================================================================
# Invite Tool Parameters
# ============================================================================


class CreateInviteParams(BaseModel):
    channel: Optional[str] = Field(
        default=None,
        description="Channel the invite points to; defaults to the current channel"
    )
    max_age: int = Field(
        default=86400,
        description="Seconds until the invite expires, 0 = never, at most 604800 (7 days)"
    )
    max_uses: int = Field(default=0, description="Maximum uses, 0 = unlimited, at most 100")
    temporary: bool = Field(
        default=False,
        description="Grant temporary membership that ends when the member disconnects"
    )


class EmptyParams(BaseModel):
    """Tools that take no arguments."""
