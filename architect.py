"""
Discord Architect Module for Steward.

DiscordArchitect owns the single-object tool handlers. Names arriving from
tool calls go through the EntityResolver, access rules through the
PermissionOverwriteBuilder, and every mutation goes through the guild.
Handlers never raise for expected failures; they return a ToolResult.

Channel, role, permission and server handlers live here. Events, threads
and messages are in community.py, emojis/stickers/webhooks in assets.py
and member moderation in moderation.py.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, fields
from datetime import tzinfo
from typing import Any, Optional

import aiohttp
import discord
from discord import Forbidden, HTTPException, NotFound

from assets import AssetsMixin
from bulk import BulkOperationExecutor, pluralize
from community import CommunityMixin
from models import (
    AssignRoleParams,
    BulkResult,
    ConfigureChannelPermissionsParams,
    CreateCategoryParams,
    CreateForumChannelParams,
    CreateRoleParams,
    CreateStageChannelParams,
    CreateTextChannelParams,
    CreateVoiceChannelParams,
    DeleteChannelParams,
    DeleteChannelsBulkParams,
    DeleteRoleParams,
    DeleteRolesBulkParams,
    EditChannelParams,
    EditChannelsBulkParams,
    EditRoleParams,
    EditServerParams,
    GetServerInfoParams,
    ListChannelsParams,
    ListRolePermissionsParams,
    ListRolesParams,
    MoveChannelParams,
    SetupRolesParams,
    SetupServerStructureParams,
    ToolResult,
)
from moderation import ModerationMixin
from orchestrator import PhaseOrchestrator
from overwrites import OverwriteRecord, PermissionOverwriteBuilder, to_discord_overwrites
from parsers import parse_color, parse_permissions, resolve_timezone
from resolver import EntityResolver, similar_names
from snapshot import DiscordSnapshot, SnapshotProvider
from voice import VoiceMixin

logger = logging.getLogger("steward.architect")

# Permissions surfaced when listing roles or server info
KEY_PERMISSIONS = (
    "administrator",
    "manage_guild",
    "manage_roles",
    "manage_channels",
    "manage_messages",
    "kick_members",
    "ban_members",
    "moderate_members",
    "mention_everyone",
)

PERMISSION_GROUPS = {
    "general": (
        "administrator",
        "manage_guild",
        "manage_channels",
        "manage_roles",
        "view_audit_log",
        "manage_webhooks",
        "manage_expressions",
    ),
    "moderation": (
        "kick_members",
        "ban_members",
        "moderate_members",
        "manage_nicknames",
        "manage_messages",
    ),
    "voice": ("move_members", "mute_members", "deafen_members", "priority_speaker"),
    "text": ("mention_everyone", "manage_threads", "send_tts_messages"),
}

LIST_CHANNELS_PER_CATEGORY = 20

DOWNLOAD_TIMEOUT = 30
MAX_IMAGE_BYTES = 10 * 1024 * 1024

VERIFICATION_LEVELS = {
    "none": discord.VerificationLevel.none,
    "low": discord.VerificationLevel.low,
    "medium": discord.VerificationLevel.medium,
    "high": discord.VerificationLevel.high,
    "highest": discord.VerificationLevel.highest,
}

# Stage channels take voice access rules, forums take text ones
ACCESS_KINDS = {"stage": "voice", "forum": "text"}


def clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


@dataclass
class ArchitectSettings:
    """Tunables from the `architect` section of config.yml."""
    settle_delay: float = 0.5
    member_search_limit: int = 10
    allow_unsafe_role_ops: bool = False
    default_event_hours: float = 2.0
    timezone: str = "UTC"
    audit_reason: str = "Steward tool call"

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> ArchitectSettings:
        section = config.get("architect") or {}
        known = {f.name for f in fields(cls)}
        return cls(**{key: value for key, value in section.items() if key in known})


class DiscordArchitect(CommunityMixin, AssetsMixin, ModerationMixin, VoiceMixin):
    """
    Handles Discord server structure operations.

    The architect reads guild state through its own SnapshotProvider. Build
    one architect per tool call so a refresh made by one orchestration is
    never observed by, or swapped out from under, another.
    """

    def __init__(
        self,
        guild: discord.Guild,
        settings: Optional[ArchitectSettings] = None,
        snapshot: Optional[SnapshotProvider] = None,
        execution_log: Optional[list[tuple[str, bool]]] = None,
    ):
        self.guild = guild
        self.settings = settings or ArchitectSettings()
        self.snapshot = snapshot or DiscordSnapshot(guild)
        self._execution_log = execution_log if execution_log is not None else []
        self.resolver = EntityResolver(
            self.snapshot, member_search_limit=self.settings.member_search_limit
        )
        self.overwrites = PermissionOverwriteBuilder(self.resolver)
        self.executor = BulkOperationExecutor()
        self.orchestrator = PhaseOrchestrator(
            self, self.executor, settle_delay=self.settings.settle_delay
        )

    @property
    def bot_member(self) -> Optional[discord.Member]:
        """Get the bot's member object in this guild."""
        return self.snapshot.me

    @property
    def bot_top_role(self) -> Optional[discord.Role]:
        """Get the bot's highest role."""
        if self.bot_member:
            return self.bot_member.top_role
        return None

    @property
    def tz(self) -> tzinfo:
        return resolve_timezone(self.settings.timezone)

    @property
    def reason(self) -> str:
        return self.settings.audit_reason

    def _log_action(self, message: str, success: bool = True) -> None:
        """Log an action for tracking."""
        logger.info(f"[{'SUCCESS' if success else 'FAILED'}] {message}")
        self._execution_log.append((message, success))

    def get_execution_log(self) -> list[tuple[str, bool]]:
        """Get the execution log and clear it."""
        log = self._execution_log.copy()
        self._execution_log.clear()
        return log

    def _fail(self, action: str, error: str, **data: Any) -> ToolResult:
        self._log_action(f"{action}: {error}", False)
        return ToolResult.fail(error, **data)

    def _api_failure(self, action: str, e: HTTPException, what: str) -> ToolResult:
        """Map a discord.py HTTP error onto a failed ToolResult."""
        if isinstance(e, Forbidden):
            error = f"Bot lacks permission to {what}"
        elif isinstance(e, NotFound):
            error = f"Could not {what}: the target no longer exists"
        else:
            error = f"Discord API error: {e.text or e}"
        return self._fail(action, error)

    def _check_permissions(self, *required: str) -> tuple[bool, str]:
        """
        Check if the bot has the required permissions.

        Args:
            required: Permission names to check.

        Returns:
            Tuple of (has_permissions, error_message).
        """
        if not self.bot_member:
            return False, "Bot member not found in guild"

        permissions = self.bot_member.guild_permissions

        missing = [perm for perm in required if not getattr(permissions, perm, False)]
        if missing:
            return False, f"Missing permissions: {', '.join(missing)}"

        return True, ""

    def _can_manage_role(self, role: discord.Role) -> bool:
        """Check if the bot can manage a specific role."""
        if self.allow_unsafe_role_ops:
            return True

        if not self.bot_top_role:
            return False

        return self.bot_top_role.position > role.position

    @property
    def allow_unsafe_role_ops(self) -> bool:
        return self.settings.allow_unsafe_role_ops

    def _channel_not_found(self, action: str, name: str, type_filter: str = "any") -> ToolResult:
        candidates = [c.name for c in self.resolver.channels_of_kind(type_filter)]
        kind = "channel" if type_filter == "any" else f"{type_filter} channel"
        if type_filter == "category":
            kind = "category"
        return self._fail(
            action,
            f"No {kind} found matching '{name}'",
            similar_channels=similar_names(candidates, name),
        )

    async def _download_image(
        self, url: str, max_bytes: int = MAX_IMAGE_BYTES
    ) -> tuple[Optional[bytes], str]:
        """
        Download an image for an icon, emoji, sticker or avatar.

        Returns (bytes, "") on success, or (None, error) for non-200
        responses, images larger than max_bytes, timeouts and network errors.
        """
        too_large = f"Image is too large (limit {max_bytes // 1024} KB)"
        timeout = aiohttp.ClientTimeout(total=DOWNLOAD_TIMEOUT)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(url) as resp:
                    if resp.status != 200:
                        logger.warning(f"Failed to download {url}: HTTP {resp.status}")
                        return None, f"Failed to download image: HTTP {resp.status}"
                    if resp.content_length is not None and resp.content_length > max_bytes:
                        logger.warning(f"Refusing {url}: {resp.content_length} bytes")
                        return None, too_large
                    buffer = bytearray()
                    async for chunk in resp.content.iter_chunked(64 * 1024):
                        buffer.extend(chunk)
                        if len(buffer) > max_bytes:
                            logger.warning(f"Refusing {url}: more than {max_bytes} bytes")
                            return None, too_large
                    data = bytes(buffer)
        except asyncio.TimeoutError:
            logger.error(f"Timed out downloading {url}")
            return None, f"Timed out downloading image after {DOWNLOAD_TIMEOUT}s"
        except aiohttp.ClientError as e:
            logger.error(f"Error downloading {url}: {e}")
            return None, f"Error downloading image: {e}"

        logger.info(f"Downloaded {url} ({len(data)} bytes)")
        return data, ""

    # ========================================================================
    # Channels & Categories
    # ========================================================================

    async def _create_channel(
        self,
        kind: str,
        spec: Any,
        category: Optional[discord.CategoryChannel],
    ) -> ToolResult:
        """
        Create a text, voice, stage or forum channel, or a category, from a spec.

        The spec carries a name plus the AccessConfig fields, and optionally
        a topic (text, forum) or user limit (voice, stage). The parent
        category has already been chosen by the caller.
        """
        label = "category" if kind == "category" else f"{kind} channel"
        access_kind = ACCESS_KINDS.get(kind, kind)
        action = f"Creating {label}: {spec.name}"

        has_perms, error = self._check_permissions("manage_channels")
        if not has_perms:
            return self._fail(action, error)

        parent_id = category.id if category is not None else None
        for existing in self.resolver.channels_of_kind(kind):
            if (
                existing.name.lower() == spec.name.lower()
                and getattr(existing, "category_id", None) == parent_id
            ):
                msg = f"{label.capitalize()} '{existing.name}' already exists (ID: {existing.id})"
                self._log_action(msg, True)
                return ToolResult.ok(
                    msg,
                    channel_id=existing.id,
                    channel_name=existing.name,
                    already_existed=True,
                )

        records = self.overwrites.build(spec, access_kind)
        kwargs: dict[str, Any] = {"name": spec.name, "reason": self.reason}
        if records:
            kwargs["overwrites"] = to_discord_overwrites(records)

        try:
            if kind == "category":
                channel = await self.guild.create_category(**kwargs)
            elif access_kind == "voice":
                user_limit = getattr(spec, "user_limit", None)
                if user_limit is not None:
                    kwargs["user_limit"] = clamp(user_limit, 0, 10000 if kind == "stage" else 99)
                create = self.guild.create_stage_channel if kind == "stage" else self.guild.create_voice_channel
                channel = await create(category=category, **kwargs)
            else:
                topic = getattr(spec, "topic", None)
                if topic:
                    kwargs["topic"] = topic
                create = self.guild.create_forum if kind == "forum" else self.guild.create_text_channel
                channel = await create(category=category, **kwargs)
        except HTTPException as e:
            return self._api_failure(action, e, f"create {pluralize(label, 2)}")

        flags = []
        if spec.private:
            flags.append("private")
        if access_kind == "text" and spec.read_only:
            flags.append("read-only")
        where = f" in '{category.name}'" if category is not None else ""
        msg = f"Created {label} '{channel.name}'{where}"
        if flags:
            msg += f" [{', '.join(flags)}]"

        self._log_action(msg, True)
        return ToolResult.ok(
            msg,
            channel_id=channel.id,
            channel_name=channel.name,
            category=category.name if category is not None else None,
            overwrites=[record.describe() for record in records],
        )

    async def create_text_channel(self, params: CreateTextChannelParams) -> ToolResult:
        """Create a text channel; the parent category is auto-selected if needed."""
        category = self.resolver.find_best_category("text", params.category)
        return await self._create_channel("text", params, category)

    async def create_voice_channel(self, params: CreateVoiceChannelParams) -> ToolResult:
        """Create a voice channel; the parent category is auto-selected if needed."""
        category = self.resolver.find_best_category("voice", params.category)
        return await self._create_channel("voice", params, category)

    async def create_category(self, params: CreateCategoryParams) -> ToolResult:
        return await self._create_channel("category", params, None)

    async def create_stage_channel(self, params: CreateStageChannelParams) -> ToolResult:
        category = self.resolver.find_best_category("voice", params.category)
        return await self._create_channel("stage", params, category)

    async def create_forum_channel(self, params: CreateForumChannelParams) -> ToolResult:
        category = self.resolver.find_best_category("text", params.category)
        return await self._create_channel("forum", params, category)

    async def delete_channel(self, params: DeleteChannelParams) -> ToolResult:
        """
        Delete a channel or category by name.

        Args:
            params: Channel name and type filter.

        Returns:
            ToolResult with the deleted channel's name and ID, or a
            not-found error listing similar channel names.
        """
        action = f"Deleting channel: {params.name}"

        has_perms, error = self._check_permissions("manage_channels")
        if not has_perms:
            return self._fail(action, error)

        channel = self.resolver.resolve(params.name, params.type)
        if channel is None:
            return self._channel_not_found(action, params.name, params.type)

        try:
            await channel.delete(reason=self.reason)
        except HTTPException as e:
            return self._api_failure(action, e, "delete this channel")

        msg = f"Deleted {self.resolver.kind_of(channel)} channel '{channel.name}'"
        self._log_action(msg, True)
        return ToolResult.ok(msg, deleted={"id": channel.id, "name": channel.name})

    async def edit_channel(self, params: EditChannelParams) -> ToolResult:
        """
        Edit a channel's name, topic, category, slowmode, NSFW flag, user
        limit or bitrate. Settings that do not apply to the channel's kind
        are ignored with a warning.
        """
        action = f"Editing channel: {params.name}"

        has_perms, error = self._check_permissions("manage_channels")
        if not has_perms:
            return self._fail(action, error)

        channel = self.resolver.resolve(params.name, params.type)
        if channel is None:
            return self._channel_not_found(action, params.name, params.type)

        kind = self.resolver.kind_of(channel)
        kwargs: dict[str, Any] = {}
        ignored: list[str] = []

        if params.new_name:
            kwargs["name"] = params.new_name

        if params.category is not None:
            if kind == "category":
                ignored.append("category")
            elif params.category == "":
                kwargs["category"] = None
            else:
                target = self.resolver.find_category(params.category)
                if target is None:
                    return self._channel_not_found(action, params.category, "category")
                kwargs["category"] = target

        text_only = {"topic": params.topic, "nsfw": params.nsfw, "slowmode": params.slowmode}
        voice_only = {"user_limit": params.user_limit, "bitrate": params.bitrate}

        for key, value in text_only.items():
            if value is None:
                continue
            if ACCESS_KINDS.get(kind, kind) != "text":
                ignored.append(key)
            elif key == "slowmode":
                kwargs["slowmode_delay"] = clamp(value, 0, 21600)
            else:
                kwargs[key] = value

        for key, value in voice_only.items():
            if value is None:
                continue
            if kind != "voice":
                ignored.append(key)
            elif key == "user_limit":
                kwargs["user_limit"] = clamp(value, 0, 99)
            else:
                kwargs["bitrate"] = clamp(value, 8000, 384000)

        if not kwargs:
            return self._fail(action, "No changes specified", ignored=ignored)

        try:
            await channel.edit(reason=self.reason, **kwargs)
        except HTTPException as e:
            return self._api_failure(action, e, "edit this channel")

        changes = sorted(kwargs.keys())
        msg = f"Edited {kind} channel '{channel.name}': {', '.join(changes)}"
        if ignored:
            msg += f" (ignored for {kind}: {', '.join(ignored)})"
        self._log_action(msg, True)
        return ToolResult.ok(msg, channel_id=channel.id, changes=changes, ignored=ignored)

    async def move_channel(self, params: MoveChannelParams) -> ToolResult:
        """Move a channel into another category, or out of its category with ''."""
        action = f"Moving channel: {params.name}"

        has_perms, error = self._check_permissions("manage_channels")
        if not has_perms:
            return self._fail(action, error)

        channel = self.resolver.resolve(params.name, "any")
        if channel is None:
            return self._channel_not_found(action, params.name)
        if self.resolver.kind_of(channel) == "category":
            return self._fail(action, f"'{channel.name}' is a category; categories cannot be moved into categories")

        target = None
        if params.category:
            target = self.resolver.find_category(params.category)
            if target is None:
                return self._channel_not_found(action, params.category, "category")

        target_id = target.id if target is not None else None
        target_name = target.name if target is not None else "top level"
        if getattr(channel, "category_id", None) == target_id:
            msg = f"Channel '{channel.name}' is already in {target_name}"
            self._log_action(msg, True)
            return ToolResult.ok(msg, channel_id=channel.id, unchanged=True)

        try:
            await channel.edit(category=target, reason=self.reason)
        except HTTPException as e:
            return self._api_failure(action, e, "move this channel")

        msg = f"Moved '{channel.name}' to {target_name}"
        self._log_action(msg, True)
        return ToolResult.ok(msg, channel_id=channel.id, category=target.name if target else None)

    async def list_channels(self, params: ListChannelsParams) -> ToolResult:
        """
        List channels grouped by category.

        At most 20 channels are listed per category; the rest are counted.
        """
        type_filter = "any" if params.type == "all" else params.type
        channels = self.resolver.channels_of_kind(type_filter)
        categories = sorted(self.snapshot.categories, key=lambda c: c.position)

        groups: list[dict[str, Any]] = []
        lines: list[str] = []

        def add_group(title: str, members: list[Any]) -> None:
            shown = members[:LIST_CHANNELS_PER_CATEGORY]
            entry = {
                "category": title,
                "channels": [{"name": c.name, "type": self.resolver.kind_of(c)} for c in shown],
            }
            lines.append(f"{title}:")
            lines.extend(f"  #{c.name} ({self.resolver.kind_of(c)})" for c in shown)
            hidden = len(members) - len(shown)
            if hidden > 0:
                entry["truncated"] = hidden
                lines.append(f"  ... and {hidden} more")
            groups.append(entry)

        non_category = [c for c in channels if self.resolver.kind_of(c) != "category"]
        uncategorized = [c for c in non_category if getattr(c, "category_id", None) is None]
        if uncategorized:
            add_group("No category", sorted(uncategorized, key=lambda c: c.position))

        for category in categories:
            children = sorted(
                (c for c in non_category if getattr(c, "category_id", None) == category.id),
                key=lambda c: c.position,
            )
            if children or type_filter in ("any", "category"):
                add_group(category.name, children)

        msg = f"{len(channels)} channels" + ("\n" + "\n".join(lines) if lines else "")
        self._log_action(f"Listed {len(channels)} channels", True)
        return ToolResult.ok(msg, total=len(channels), groups=groups)

    async def delete_channels_bulk(self, params: DeleteChannelsBulkParams) -> BulkResult:
        return await self.executor.run(params.channels, self.delete_channel, "Deleted", "channel")

    async def edit_channels_bulk(self, params: EditChannelsBulkParams) -> BulkResult:
        return await self.executor.run(params.channels, self.edit_channel, "Edited", "channel")

    # ========================================================================
    # Roles
    # ========================================================================

    async def create_role(self, params: CreateRoleParams) -> ToolResult:
        """
        Create a new role in the guild.

        An unrecognized color falls back to the default color and unknown
        permission names are dropped; both are reported as warnings.
        """
        action = f"Creating role: {params.name}"

        has_perms, error = self._check_permissions("manage_roles")
        if not has_perms:
            return self._fail(action, error)

        for role in self.resolver.assignable_roles():
            if role.name.lower() == params.name.lower():
                msg = f"Role '{role.name}' already exists (ID: {role.id})"
                self._log_action(msg, True)
                return ToolResult.ok(msg, role_id=role.id, role_name=role.name, already_existed=True)

        warnings: list[str] = []
        color = parse_color(params.color)
        if params.color and color is None:
            warnings.append(f"Unrecognized color '{params.color}', using default")
        valid, invalid = parse_permissions(params.permissions)
        if invalid:
            warnings.append(f"Ignored unknown permissions: {', '.join(invalid)}")

        try:
            role = await self.guild.create_role(
                name=params.name,
                colour=discord.Colour(color) if color is not None else discord.Colour.default(),
                hoist=params.hoist,
                mentionable=params.mentionable,
                permissions=discord.Permissions(**{name: True for name in valid}),
                reason=self.reason,
            )
        except HTTPException as e:
            return self._api_failure(action, e, "create roles")

        for warning in warnings:
            logger.warning(f"{action}: {warning}")

        msg = f"Created role '{role.name}'"
        if warnings:
            msg += f" ({'; '.join(warnings)})"
        self._log_action(msg, True)
        return ToolResult.ok(
            msg, role_id=role.id, role_name=role.name, permissions=valid, warnings=warnings
        )

    def _role_not_found(self, action: str, name: str) -> ToolResult:
        ranked = self.resolver.role_names_by_rank()
        similar = similar_names(ranked, name, limit=5)
        available = ranked[:15]
        if similar:
            hint = f"Did you mean: {', '.join(repr(n) for n in similar)}?"
        else:
            hint = f"Available roles: {', '.join(repr(n) for n in available)}"

        data: dict[str, Any] = {"available_roles": available, "hint": hint}
        if similar:
            data["similar_roles"] = similar
        return self._fail(action, f"No role found matching '{name}'", **data)

    def _hierarchy_error(self, role: discord.Role, verb: str) -> Optional[str]:
        if role.managed:
            return f"Cannot {verb} role '{role.name}': it is managed by an integration"
        if not self._can_manage_role(role):
            return f"Cannot {verb} role '{role.name}': it is at or above my highest role"
        return None

    async def delete_role(self, params: DeleteRoleParams) -> ToolResult:
        """
        Delete a role by name.

        When no role matches, the failure carries similar_roles (up to 5),
        available_roles (up to 15, highest first) and a hint for retrying.
        """
        action = f"Deleting role: {params.name}"

        has_perms, error = self._check_permissions("manage_roles")
        if not has_perms:
            return self._fail(action, error)

        role = self.resolver.find_role(params.name)
        if role is None or role == self.snapshot.default_role:
            return self._role_not_found(action, params.name)

        problem = self._hierarchy_error(role, "delete")
        if problem:
            return self._fail(action, problem)

        try:
            await role.delete(reason=self.reason)
        except HTTPException as e:
            return self._api_failure(action, e, "delete this role")

        msg = f"Deleted role '{role.name}'"
        self._log_action(msg, True)
        return ToolResult.ok(msg, deleted={"id": role.id, "name": role.name})

    async def edit_role(self, params: EditRoleParams) -> ToolResult:
        action = f"Editing role: {params.name}"

        has_perms, error = self._check_permissions("manage_roles")
        if not has_perms:
            return self._fail(action, error)

        role = self.resolver.find_role(params.name)
        if role is None:
            return self._role_not_found(action, params.name)

        problem = self._hierarchy_error(role, "edit")
        if problem:
            return self._fail(action, problem)

        kwargs: dict[str, Any] = {}
        warnings: list[str] = []

        if params.new_name:
            kwargs["name"] = params.new_name
        if params.color:
            color = parse_color(params.color)
            if color is None:
                return self._fail(action, f"Unrecognized color '{params.color}'")
            kwargs["colour"] = discord.Colour(color)
        if params.hoist is not None:
            kwargs["hoist"] = params.hoist
        if params.mentionable is not None:
            kwargs["mentionable"] = params.mentionable

        if params.add_permissions or params.remove_permissions:
            added, bad_add = parse_permissions(params.add_permissions)
            removed, bad_remove = parse_permissions(params.remove_permissions)
            if bad_add or bad_remove:
                warnings.append(f"Ignored unknown permissions: {', '.join(bad_add + bad_remove)}")
            if added or removed:
                permissions = discord.Permissions(role.permissions.value)
                for name in added:
                    setattr(permissions, name, True)
                for name in removed:
                    setattr(permissions, name, False)
                kwargs["permissions"] = permissions

        if not kwargs:
            return self._fail(action, "No changes specified", warnings=warnings)

        try:
            await role.edit(reason=self.reason, **kwargs)
        except HTTPException as e:
            return self._api_failure(action, e, "edit this role")

        changes = sorted(kwargs.keys())
        msg = f"Edited role '{role.name}': {', '.join(changes)}"
        self._log_action(msg, True)
        return ToolResult.ok(msg, role_id=role.id, changes=changes, warnings=warnings)

    async def assign_role(self, params: AssignRoleParams) -> ToolResult:
        """Add a role to, or remove it from, a member."""
        action = f"{'Adding' if params.action == 'add' else 'Removing'} role {params.role_name} for {params.member}"

        has_perms, error = self._check_permissions("manage_roles")
        if not has_perms:
            return self._fail(action, error)

        role = self.resolver.find_role(params.role_name)
        if role is None or role == self.snapshot.default_role:
            return self._role_not_found(action, params.role_name)

        problem = self._hierarchy_error(role, "assign")
        if problem:
            return self._fail(action, problem)

        member = await self.resolver.find_member_smart(params.member)
        if member is None:
            return self._fail(action, f"No member found matching '{params.member}'")

        has_role = any(r.id == role.id for r in member.roles)
        try:
            if params.action == "add":
                if has_role:
                    msg = f"{member.display_name} already has '{role.name}'"
                    self._log_action(msg, True)
                    return ToolResult.ok(msg, unchanged=True)
                await member.add_roles(role, reason=self.reason)
                msg = f"Gave '{role.name}' to {member.display_name}"
            else:
                if not has_role:
                    msg = f"{member.display_name} does not have '{role.name}'"
                    self._log_action(msg, True)
                    return ToolResult.ok(msg, unchanged=True)
                await member.remove_roles(role, reason=self.reason)
                msg = f"Removed '{role.name}' from {member.display_name}"
        except HTTPException as e:
            return self._api_failure(action, e, "change this member's roles")

        self._log_action(msg, True)
        return ToolResult.ok(msg, role_id=role.id, member_id=member.id)

    def _describe_role(self, role: discord.Role, include_permissions: bool) -> dict[str, Any]:
        info: dict[str, Any] = {
            "name": role.name,
            "id": role.id,
            "color": str(role.colour),
            "position": role.position,
            "members": len(role.members),
            "hoist": role.hoist,
            "mentionable": role.mentionable,
            "managed": role.managed,
        }
        if include_permissions:
            info["permissions"] = [p for p in KEY_PERMISSIONS if getattr(role.permissions, p, False)]
        return info

    async def list_roles(self, params: ListRolesParams) -> ToolResult:
        roles = sorted(self.resolver.assignable_roles(), key=lambda r: r.position, reverse=True)
        described = [self._describe_role(r, params.include_permissions) for r in roles]
        msg = f"{len(roles)} roles: {', '.join(r.name for r in roles)}"
        self._log_action(f"Listed {len(roles)} roles", True)
        return ToolResult.ok(msg, roles=described)

    async def list_role_permissions(self, params: ListRolePermissionsParams) -> ToolResult:
        """
        Show roles with their notable permissions, grouped as general,
        moderation, voice and text. Administrator roles are flagged.
        """
        action = "Listing role permissions"
        if params.role:
            role = self.resolver.find_role(params.role)
            if role is None:
                return self._role_not_found(action, params.role)
            roles = [role]
        else:
            roles = sorted(self.resolver.assignable_roles(), key=lambda r: r.position, reverse=True)

        described = []
        lines = []
        for role in roles:
            groups = {}
            for group, names in PERMISSION_GROUPS.items():
                granted = [p for p in names if getattr(role.permissions, p, False)]
                if granted:
                    groups[group] = granted
            is_admin = role.permissions.administrator
            described.append({
                "name": role.name,
                "id": role.id,
                "position": role.position,
                "administrator": is_admin,
                "permissions": groups,
            })
            if is_admin:
                summary = "all permissions (administrator)"
            elif groups:
                summary = ", ".join(p for granted in groups.values() for p in granted)
            else:
                summary = "no notable permissions"
            lines.append(f"{role.name}: {summary}")

        msg = f"Permissions of {len(roles)} {pluralize('role', len(roles))}:\n" + "\n".join(lines)
        self._log_action(f"Listed permissions of {len(roles)} roles", True)
        return ToolResult.ok(msg, roles=described)

    async def delete_roles_bulk(self, params: DeleteRolesBulkParams) -> BulkResult:
        """
        Delete several roles in parallel.

        The result always lists the roles that remain, and explains when
        some of the requested names did not exist.
        """
        result = await self.executor.run(
            [DeleteRoleParams(name=name) for name in params.roles],
            self.delete_role,
            "Deleted",
            "role",
        )
        if result.succeeded:
            try:
                await self.snapshot.refresh()
            except HTTPException as e:
                logger.warning(f"Snapshot refresh failed after role deletes: {e}")
        deleted = {item.payload["deleted"]["id"] for item in result.succeeded}
        remaining = [
            r.name
            for r in sorted(self.resolver.assignable_roles(), key=lambda r: r.position, reverse=True)
            if r.id not in deleted
        ]
        result.data["remaining_roles"] = remaining

        missing = [f.input.name for f in result.failed if f.error.startswith("No role found")]
        if missing:
            result.data["hint"] = (
                f"Not found: {', '.join(missing)}. "
                f"Roles that exist: {', '.join(remaining)}"
            )
        return result

    async def setup_roles(self, params: SetupRolesParams) -> BulkResult:
        """Create several roles in parallel, then order them highest-first."""
        return await self.orchestrator.setup_roles(params.roles)

    # ========================================================================
    # Permissions & Server
    # ========================================================================

    async def _apply_overwrite(self, channel: Any, record: OverwriteRecord) -> ToolResult:
        overwrite = channel.overwrites_for(record.subject)
        overwrite.update(**record.as_values())
        try:
            await channel.set_permissions(record.subject, overwrite=overwrite, reason=self.reason)
        except HTTPException as e:
            return self._api_failure(
                f"Applying overwrite for {record.describe()['subject']} on {channel.name}",
                e,
                "edit channel permissions",
            )
        return ToolResult.ok(f"Updated permissions for {record.describe()['subject']}", **record.describe())

    async def configure_channel_permissions(
        self, params: ConfigureChannelPermissionsParams
    ) -> ToolResult:
        """
        Configure access on an existing channel or category.

        Explicit false values for private and read_only open the channel
        back up for @everyone. All overwrites are applied concurrently.
        """
        action = f"Configuring permissions: {params.channel_name}"

        has_perms, error = self._check_permissions("manage_channels", "manage_roles")
        if not has_perms:
            return self._fail(action, error)

        channel = self.resolver.resolve(params.channel_name, params.channel_type)
        if channel is None:
            return self._channel_not_found(action, params.channel_name, params.channel_type)

        if params.sync_with_category:
            parent_id = getattr(channel, "category_id", None)
            category = self.snapshot.get_channel(parent_id)
            if category is None:
                return self._fail(action, f"'{channel.name}' has no parent category to sync with")
            try:
                await channel.edit(sync_permissions=True, reason=self.reason)
            except HTTPException as e:
                return self._api_failure(action, e, "sync channel permissions")
            msg = f"Synced permissions of '{channel.name}' with category '{category.name}'"
            self._log_action(msg, True)
            return ToolResult.ok(msg, channel_id=channel.id, synced_with=category.name)

        kind = self.resolver.kind_of(channel)
        records = self.overwrites.build(params, ACCESS_KINDS.get(kind, kind), explicit_defaults=True)
        if not records:
            return self._fail(action, "No permission changes specified")

        applied = await self.executor.run(
            records,
            lambda record: self._apply_overwrite(channel, record),
            "Applied",
            "overwrite",
        )
        msg = f"Configured permissions on '{channel.name}': {applied.summary}"
        self._log_action(msg, applied.success)
        return ToolResult(
            applied.success,
            msg,
            {
                "channel_id": channel.id,
                "overwrites": [record.describe() for record in records],
                "failed": [f.error for f in applied.failed],
            },
            error=None if applied.success else msg,
        )

    async def setup_server_structure(self, params: SetupServerStructureParams) -> ToolResult:
        """Create roles, categories and channels in ordered phases."""
        return await self.orchestrator.setup_structure(params)

    async def get_server_info(self, params: GetServerInfoParams) -> ToolResult:
        """
        Get current server information including channels, roles, and settings.

        Returns:
            ToolResult with server information.
        """
        categories = []
        text_channels = []
        voice_channels = []

        for channel in self.snapshot.channels:
            kind = self.resolver.kind_of(channel)
            info: dict[str, Any] = {"name": channel.name, "id": channel.id}
            if kind == "category":
                info["children"] = [
                    c.name for c in self.snapshot.channels
                    if getattr(c, "category_id", None) == channel.id
                ]
                categories.append(info)
            elif ACCESS_KINDS.get(kind, kind) in ("text", "voice"):
                parent = self.snapshot.get_channel(getattr(channel, "category_id", None))
                info["category"] = parent.name if parent is not None else None
                if ACCESS_KINDS.get(kind, kind) == "text":
                    text_channels.append(info)
                else:
                    voice_channels.append(info)

        roles = sorted(self.resolver.assignable_roles(), key=lambda r: r.position, reverse=True)
        guild = self.guild

        msg = (
            f"{guild.name}: {guild.member_count} members, {len(roles)} roles, "
            f"{len(categories)} categories, {len(text_channels)} text and "
            f"{len(voice_channels)} voice channels"
        )
        self._log_action("Fetched server information", True)
        return ToolResult.ok(
            msg,
            name=guild.name,
            id=guild.id,
            description=guild.description or "",
            member_count=guild.member_count,
            owner_id=guild.owner_id,
            verification_level=str(guild.verification_level),
            boost_level=guild.premium_tier,
            features=list(guild.features),
            categories=categories,
            text_channels=text_channels,
            voice_channels=voice_channels,
            roles=[self._describe_role(r, params.include_permissions) for r in roles],
        )

    async def edit_server(self, params: EditServerParams) -> ToolResult:
        """Edit guild name, description, icon or verification level."""
        action = "Editing server settings"

        has_perms, error = self._check_permissions("manage_guild")
        if not has_perms:
            return self._fail(action, error)

        kwargs: dict[str, Any] = {}
        if params.name:
            kwargs["name"] = params.name
        if params.description is not None:
            kwargs["description"] = params.description
        if params.verification_level:
            kwargs["verification_level"] = VERIFICATION_LEVELS[params.verification_level]
        if params.icon_url:
            icon, download_error = await self._download_image(params.icon_url)
            if icon is None:
                return self._fail(action, download_error)
            kwargs["icon"] = icon

        if not kwargs:
            return self._fail(action, "No valid settings to modify")

        try:
            await self.guild.edit(reason=self.reason, **kwargs)
        except HTTPException as e:
            return self._api_failure(action, e, "modify server settings")

        msg = f"Modified server settings: {', '.join(sorted(kwargs.keys()))}"
        self._log_action(msg, True)
        return ToolResult.ok(msg, changes=sorted(kwargs.keys()))
