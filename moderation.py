"""
Member lookup and moderation.

Mixed into DiscordArchitect. Hierarchy problems (owner, self, a target at
or above the bot's top role) are reported before any call is attempted.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any, Optional

import discord
from discord import HTTPException

from models import (
    BanMemberParams,
    CallContext,
    CheckPermsParams,
    KickMemberParams,
    SearchMembersParams,
    TimeoutMemberParams,
    ToolResult,
)
from parsers import parse_duration

MAX_TIMEOUT = timedelta(days=28)
SEARCH_LIMIT_RANGE = (1, 25)


class ModerationMixin:
    """Member and moderation handlers for DiscordArchitect."""

    def _moderation_blocker(self, member: Any, verb: str, permission: str) -> Optional[str]:
        """Reason the bot cannot act on member, or None if it can."""
        has_perms, error = self._check_permissions(permission)
        if not has_perms:
            return error
        if member.id == self.guild.owner_id:
            return f"Cannot {verb} the server owner"
        me = self.bot_member
        if me is not None and member.id == me.id:
            return f"Cannot {verb} myself"
        top = self.bot_top_role
        if top is not None and member.top_role.position >= top.position:
            return (
                f"Cannot {verb} {member.display_name}: their highest role "
                f"'{member.top_role.name}' is at or above mine"
            )
        return None

    async def _find_target(self, action: str, identifier: str) -> tuple[Any, Optional[ToolResult]]:
        member = await self.resolver.find_member_smart(identifier)
        if member is None:
            return None, self._fail(action, f"No member found matching '{identifier}'")
        return member, None

    async def check_perms(
        self,
        params: CheckPermsParams,
        call_context: Optional[CallContext] = None,
    ) -> ToolResult:
        """Report a member's guild permissions, defaulting to the requester."""
        action = "Checking permissions"
        if params.member:
            member, failure = await self._find_target(action, params.member)
            if failure:
                return failure
        elif call_context is not None and call_context.member is not None:
            member = call_context.member
        else:
            return self._fail(action, "No member specified")

        permissions = member.guild_permissions
        granted = [name for name, value in permissions if value]
        is_owner = member.id == self.guild.owner_id

        msg = f"{member.display_name} has {len(granted)} permissions"
        if is_owner:
            msg += " (server owner)"
        elif permissions.administrator:
            msg += " (administrator)"
        self._log_action(f"Checked permissions of {member.display_name}", True)
        return ToolResult.ok(
            msg,
            member=member.display_name,
            member_id=member.id,
            is_owner=is_owner,
            is_admin=permissions.administrator,
            roles=[r.name for r in member.roles if r.id != self.snapshot.default_role.id],
            permissions=granted,
        )

    async def search_members(self, params: SearchMembersParams) -> ToolResult:
        action = f"Searching members: {params.query}"
        low, high = SEARCH_LIMIT_RANGE
        limit = max(low, min(high, params.limit))

        try:
            members = await self.snapshot.search_members(params.query, limit)
        except (HTTPException, discord.ClientException) as e:
            return self._fail(action, f"Member search failed: {e}")

        found = [
            {
                "id": m.id,
                "username": m.name,
                "display_name": m.display_name,
                "bot": m.bot,
            }
            for m in members[:limit]
        ]
        self._log_action(f"Found {len(found)} members matching '{params.query}'", True)
        return ToolResult.ok(f"{len(found)} members match '{params.query}'", members=found)

    async def kick_member(self, params: KickMemberParams) -> ToolResult:
        action = f"Kicking member: {params.member}"
        member, failure = await self._find_target(action, params.member)
        if failure:
            return failure

        blocker = self._moderation_blocker(member, "kick", "kick_members")
        if blocker:
            return self._fail(action, blocker)

        try:
            await member.kick(reason=params.reason or self.reason)
        except HTTPException as e:
            return self._api_failure(action, e, "kick this member")

        msg = f"Kicked {member.display_name}"
        self._log_action(msg, True)
        return ToolResult.ok(msg, member_id=member.id)

    async def ban_member(self, params: BanMemberParams) -> ToolResult:
        action = f"Banning member: {params.member}"
        member, failure = await self._find_target(action, params.member)
        if failure:
            return failure

        blocker = self._moderation_blocker(member, "ban", "ban_members")
        if blocker:
            return self._fail(action, blocker)

        days = max(0, min(7, params.delete_message_days))
        try:
            await self.guild.ban(
                member,
                reason=params.reason or self.reason,
                delete_message_seconds=days * 86400,
            )
        except HTTPException as e:
            return self._api_failure(action, e, "ban this member")

        msg = f"Banned {member.display_name}"
        if days:
            msg += f" and deleted {days} days of their messages"
        self._log_action(msg, True)
        return ToolResult.ok(msg, member_id=member.id)

    async def timeout_member(self, params: TimeoutMemberParams) -> ToolResult:
        action = f"Timing out member: {params.member}"

        duration = parse_duration(params.duration)
        if duration is None:
            return self._fail(action, f"Invalid duration '{params.duration}'. Use formats like '10m', '1h', '2d'")
        if duration > MAX_TIMEOUT:
            return self._fail(action, "Timeouts cannot be longer than 28 days")

        member, failure = await self._find_target(action, params.member)
        if failure:
            return failure

        blocker = self._moderation_blocker(member, "time out", "moderate_members")
        if blocker:
            return self._fail(action, blocker)

        try:
            await member.timeout(duration, reason=params.reason or self.reason)
        except HTTPException as e:
            return self._api_failure(action, e, "time out this member")

        msg = f"Timed out {member.display_name} for {params.duration}"
        self._log_action(msg, True)
        return ToolResult.ok(msg, member_id=member.id, seconds=int(duration.total_seconds()))
