"""
Tool-call dispatch.

Maps tool names to a Pydantic parameter model and a DiscordArchitect
handler. Arguments are validated at this boundary; callers get back the
uniform result dictionary and never see a raised exception.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

import discord
from pydantic import BaseModel, ValidationError

from architect import ArchitectSettings, DiscordArchitect
from models import (
    ArchiveThreadParams,
    ArchiveThreadsBulkParams,
    AssignRoleParams,
    BanMemberParams,
    CallContext,
    ChannelRefParams,
    CheckPermsParams,
    ConfigureChannelPermissionsParams,
    CreateCategoryParams,
    CreateEmojiParams,
    CreateEmojisBulkParams,
    CreateEventParams,
    CreateEventsBulkParams,
    CreateForumChannelParams,
    CreateInviteParams,
    CreateRoleParams,
    CreateStageChannelParams,
    CreateStickerParams,
    CreateStickersBulkParams,
    CreateTextChannelParams,
    CreateThreadParams,
    CreateThreadsBulkParams,
    CreateVoiceChannelParams,
    CreateWebhookParams,
    CreateWebhooksBulkParams,
    DeleteChannelParams,
    DeleteChannelsBulkParams,
    DeleteEmojiParams,
    DeleteEmojisBulkParams,
    DeleteEventParams,
    DeleteEventsBulkParams,
    DeleteRoleParams,
    DeleteRolesBulkParams,
    DeleteStickerParams,
    DeleteStickersBulkParams,
    DeleteWebhookParams,
    DeleteWebhooksBulkParams,
    EditChannelParams,
    EditChannelsBulkParams,
    EditRoleParams,
    EditServerParams,
    EmptyParams,
    GetServerInfoParams,
    KickMemberParams,
    ListChannelsParams,
    ListMessagesParams,
    ListRolePermissionsParams,
    ListRolesParams,
    ListWebhooksParams,
    MessageActionParams,
    MessagesBulkParams,
    MoveChannelParams,
    MoveMemberParams,
    MoveMembersBulkParams,
    SearchMembersParams,
    SetupRolesParams,
    SetupServerStructureParams,
    TimeoutMemberParams,
    ToolResult,
)

logger = logging.getLogger("steward.dispatcher")


@dataclass(frozen=True)
class ToolSpec:
    """A tool exposed to the AI: its arguments model and architect handler."""
    name: str
    params: type[BaseModel]
    description: str
    takes_context: bool = False


_TOOLS = [
    # Channels & categories
    ToolSpec("create_text_channel", CreateTextChannelParams,
             "Create a text channel. The category is auto-selected when omitted or not found. "
             "Supports private, role_access, role_deny, read_only and read_only_except."),
    ToolSpec("create_voice_channel", CreateVoiceChannelParams,
             "Create a voice channel. The category is auto-selected when omitted or not found."),
    ToolSpec("create_category", CreateCategoryParams,
             "Create a category with optional access rules"),
    ToolSpec("create_stage_channel", CreateStageChannelParams,
             "Create a stage channel. The category is auto-selected when omitted or not found."),
    ToolSpec("create_forum_channel", CreateForumChannelParams,
             "Create a forum channel. The category is auto-selected when omitted or not found."),
    ToolSpec("delete_channel", DeleteChannelParams,
             "Delete a channel or category by name (partial names work)"),
    ToolSpec("edit_channel", EditChannelParams,
             "Edit a channel's name, topic, category, slowmode, NSFW flag, user limit or bitrate"),
    ToolSpec("move_channel", MoveChannelParams,
             "Move a channel into a category, or to the top level with an empty category"),
    ToolSpec("list_channels", ListChannelsParams,
             "List channels grouped by category"),
    ToolSpec("delete_channels_bulk", DeleteChannelsBulkParams,
             "Delete several channels at once"),
    ToolSpec("edit_channels_bulk", EditChannelsBulkParams,
             "Edit several channels at once"),
    # Roles
    ToolSpec("create_role", CreateRoleParams,
             "Create a role with optional color, hoist, mentionable and permissions"),
    ToolSpec("delete_role", DeleteRoleParams,
             "Delete a role by name. On a miss, returns similar and available role names."),
    ToolSpec("edit_role", EditRoleParams,
             "Edit a role's name, color, display settings or permissions"),
    ToolSpec("assign_role", AssignRoleParams,
             "Give a role to a member or take it away"),
    ToolSpec("list_roles", ListRolesParams,
             "List roles from highest to lowest"),
    ToolSpec("list_role_permissions", ListRolePermissionsParams,
             "Show one role's or every role's notable permissions, grouped by area"),
    ToolSpec("delete_roles_bulk", DeleteRolesBulkParams,
             "Delete several roles at once. Always returns the roles that remain."),
    ToolSpec("setup_roles", SetupRolesParams,
             "Create several roles at once; the first role listed ends up highest"),
    # Permissions & server
    ToolSpec("configure_channel_permissions", ConfigureChannelPermissionsParams,
             "Change who can see or talk in an existing channel or category"),
    ToolSpec("setup_server_structure", SetupServerStructureParams,
             "Create roles, categories, text channels and voice channels in one go. "
             "Roles are created first so channels can reference them."),
    ToolSpec("get_server_info", GetServerInfoParams,
             "Get the server's channels, roles and settings"),
    ToolSpec("edit_server", EditServerParams,
             "Edit the server name, description, icon or verification level"),
    # Events
    ToolSpec("create_event", CreateEventParams,
             "Create a scheduled event. Times accept ISO 8601 or phrases like 'tomorrow at 3pm'."),
    ToolSpec("delete_event", DeleteEventParams, "Delete a scheduled event"),
    ToolSpec("list_events", EmptyParams, "List scheduled events"),
    ToolSpec("create_events_bulk", CreateEventsBulkParams, "Create several events at once"),
    ToolSpec("delete_events_bulk", DeleteEventsBulkParams, "Delete several events at once"),
    # Emojis, stickers, webhooks
    ToolSpec("create_emoji", CreateEmojiParams, "Create a custom emoji from an image URL"),
    ToolSpec("delete_emoji", DeleteEmojiParams, "Delete a custom emoji"),
    ToolSpec("list_emojis", EmptyParams, "List custom emojis"),
    ToolSpec("create_emojis_bulk", CreateEmojisBulkParams, "Create several emojis at once"),
    ToolSpec("delete_emojis_bulk", DeleteEmojisBulkParams, "Delete several emojis at once"),
    ToolSpec("create_sticker", CreateStickerParams, "Create a sticker from a file URL"),
    ToolSpec("delete_sticker", DeleteStickerParams, "Delete a sticker"),
    ToolSpec("list_stickers", EmptyParams, "List stickers"),
    ToolSpec("create_stickers_bulk", CreateStickersBulkParams, "Create several stickers at once"),
    ToolSpec("delete_stickers_bulk", DeleteStickersBulkParams, "Delete several stickers at once"),
    ToolSpec("create_webhook", CreateWebhookParams, "Create a webhook in a text channel"),
    ToolSpec("delete_webhook", DeleteWebhookParams, "Delete a webhook"),
    ToolSpec("list_webhooks", ListWebhooksParams, "List webhooks"),
    ToolSpec("create_webhooks_bulk", CreateWebhooksBulkParams, "Create several webhooks at once"),
    ToolSpec("delete_webhooks_bulk", DeleteWebhooksBulkParams, "Delete several webhooks at once"),
    # Threads & messages
    ToolSpec("create_thread", CreateThreadParams,
             "Create a thread, in the current channel unless another is named", takes_context=True),
    ToolSpec("archive_thread", ArchiveThreadParams, "Archive an active thread"),
    ToolSpec("create_threads_bulk", CreateThreadsBulkParams,
             "Create several threads at once", takes_context=True),
    ToolSpec("archive_threads_bulk", ArchiveThreadsBulkParams, "Archive several threads at once"),
    ToolSpec("pin_message", MessageActionParams,
             "Pin a message; defaults to the message being replied to", takes_context=True),
    ToolSpec("unpin_message", MessageActionParams,
             "Unpin a message; defaults to the message being replied to", takes_context=True),
    ToolSpec("delete_message", MessageActionParams,
             "Delete a message; defaults to the message being replied to", takes_context=True),
    ToolSpec("publish_message", MessageActionParams,
             "Publish a message in an announcement channel", takes_context=True),
    ToolSpec("list_pinned_messages", ChannelRefParams,
             "List pinned messages in a channel", takes_context=True),
    ToolSpec("list_messages", ListMessagesParams,
             "List recent messages in a channel (up to 50)", takes_context=True),
    ToolSpec("pin_messages_bulk", MessagesBulkParams, "Pin several messages", takes_context=True),
    ToolSpec("unpin_messages_bulk", MessagesBulkParams, "Unpin several messages", takes_context=True),
    ToolSpec("delete_messages_bulk", MessagesBulkParams, "Delete several messages", takes_context=True),
    ToolSpec("publish_messages_bulk", MessagesBulkParams, "Publish several messages", takes_context=True),
    # Members & moderation
    ToolSpec("check_perms", CheckPermsParams,
             "Show a member's permissions; defaults to whoever asked", takes_context=True),
    ToolSpec("search_members", SearchMembersParams, "Search members by name (1-25 results)"),
    ToolSpec("kick_member", KickMemberParams, "Kick a member"),
    ToolSpec("ban_member", BanMemberParams, "Ban a member, optionally deleting recent messages"),
    ToolSpec("timeout_member", TimeoutMemberParams, "Time out a member for up to 28 days"),
    # Voice
    ToolSpec("move_member", MoveMemberParams, "Move a connected member to another voice channel"),
    ToolSpec("move_members_bulk", MoveMembersBulkParams,
             "Move several connected members to one voice channel"),
    ToolSpec("list_voice_channels", EmptyParams, "List voice and stage channels with who is connected"),
    # Invites
    ToolSpec("create_invite", CreateInviteParams,
             "Create an invite link, to the current channel unless another is named",
             takes_context=True),
    ToolSpec("list_invites", EmptyParams, "List the server's active invites"),
]

TOOL_REGISTRY: dict[str, ToolSpec] = {spec.name: spec for spec in _TOOLS}


def _format_validation_error(error: ValidationError) -> str:
    problems = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "arguments"
        problems.append(f"{location}: {item['msg']}")
    return "; ".join(problems)


class ToolDispatcher:
    """
    Entry point for tool calls against one guild.

    Each dispatch gets a fresh DiscordArchitect, and with it a fresh
    snapshot. Actions are recorded in the execution log passed to
    dispatch(), or in the dispatcher's own log when none is given.
    """

    def __init__(
        self,
        guild: discord.Guild,
        settings: Optional[ArchitectSettings] = None,
        architect_factory: Optional[Callable[[list[tuple[str, bool]]], DiscordArchitect]] = None,
    ):
        self.guild = guild
        self.settings = settings or ArchitectSettings()
        self.execution_log: list[tuple[str, bool]] = []
        self._architect_factory = architect_factory or self._new_architect

    def _new_architect(self, execution_log: list[tuple[str, bool]]) -> DiscordArchitect:
        return DiscordArchitect(self.guild, self.settings, execution_log=execution_log)

    def get_execution_log(self) -> list[tuple[str, bool]]:
        """Get the execution log and clear it."""
        log = self.execution_log.copy()
        self.execution_log.clear()
        return log

    async def dispatch(
        self,
        tool_name: str,
        args: Optional[dict[str, Any]] = None,
        call_context: Optional[CallContext] = None,
        execution_log: Optional[list[tuple[str, bool]]] = None,
    ) -> dict[str, Any]:
        """
        Validate args and run a tool.

        Returns the result dictionary: always has `success` and `message`,
        plus `error` on failure and any tool-specific keys.
        """
        spec = TOOL_REGISTRY.get(tool_name)
        if spec is None:
            logger.warning(f"Unknown tool requested: {tool_name}")
            return ToolResult.fail(f"Unknown tool: {tool_name}").to_dict()

        try:
            params = spec.params.model_validate(args or {})
        except ValidationError as e:
            error = f"Invalid arguments for {tool_name}: {_format_validation_error(e)}"
            logger.info(error)
            return ToolResult.fail(error).to_dict()

        logger.info(f"Dispatching {tool_name}")
        log = execution_log if execution_log is not None else self.execution_log
        architect = self._architect_factory(log)
        handler = getattr(architect, spec.name)
        try:
            if spec.takes_context:
                result = await handler(params, call_context)
            else:
                result = await handler(params)
        except Exception as e:
            logger.exception(f"Tool {tool_name} raised")
            return ToolResult.fail(f"{tool_name} failed: {type(e).__name__}: {e}").to_dict()

        return result.to_dict()


def format_tool_response(result: dict[str, Any]) -> str:
    """Render a result dictionary as the text handed back to the model."""
    status = "✅" if result.get("success") else "❌"
    details = {k: v for k, v in result.items() if k not in ("success", "message")}
    response = f"{status} {result.get('message', '')}"
    if details:
        response += "\n" + json.dumps(details, default=str, ensure_ascii=False)
    return response


def create_architect_tools(
    dispatcher: ToolDispatcher,
    call_context_getter: Optional[Callable[[], Optional[CallContext]]] = None,
    execution_log: Optional[list[tuple[str, bool]]] = None,
) -> list:
    """
    Create Copilot SDK tool definitions for every registered tool.

    Args:
        dispatcher: The dispatcher for the guild the session runs in.
        call_context_getter: Returns the CallContext of the message being
            handled, if any.

    Returns:
        List of tool definitions for the Copilot SDK.
    """
    from copilot import define_tool

    def make_tool(spec: ToolSpec):
        async def tool(params: BaseModel) -> str:
            context = call_context_getter() if call_context_getter else None
            result = await dispatcher.dispatch(
                spec.name, params.model_dump(exclude_unset=True), context, execution_log
            )
            return format_tool_response(result)

        tool.__name__ = spec.name
        tool.__qualname__ = spec.name
        tool.__doc__ = spec.description
        tool.__annotations__ = {"params": spec.params, "return": str}
        return define_tool(description=spec.description)(tool)

    return [make_tool(spec) for spec in TOOL_REGISTRY.values()]
