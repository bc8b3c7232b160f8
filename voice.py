"""
Voice channel occupancy and member moves.

Mixed into DiscordArchitect. Targets resolve with the voice type filter, so
stage channels are valid destinations.
"""

from __future__ import annotations

from typing import Any

import discord
from discord import HTTPException

from models import BulkResult, EmptyParams, MoveMemberParams, MoveMembersBulkParams, ToolResult


class VoiceMixin:
    """Voice handlers for DiscordArchitect."""

    async def _move_to(self, identifier: str, target: Any) -> ToolResult:
        action = f"Moving member: {identifier}"
        member, failure = await self._find_target(action, identifier)
        if failure:
            return failure

        voice = getattr(member, "voice", None)
        current = voice.channel if voice is not None else None
        if current is None:
            return self._fail(action, f"{member.display_name} is not in a voice channel")
        if current.id == target.id:
            msg = f"{member.display_name} is already in '{target.name}'"
            self._log_action(msg, True)
            return ToolResult.ok(msg, member=member.display_name, to_channel=target.name, already_there=True)

        try:
            await member.move_to(target, reason=self.reason)
        except HTTPException as e:
            return self._api_failure(action, e, "move this member")

        msg = f"Moved {member.display_name} from '{current.name}' to '{target.name}'"
        self._log_action(msg, True)
        return ToolResult.ok(
            msg,
            member=member.display_name,
            member_id=member.id,
            from_channel=current.name,
            to_channel=target.name,
        )

    async def move_member(self, params: MoveMemberParams) -> ToolResult:
        action = f"Moving member: {params.member}"

        has_perms, error = self._check_permissions("move_members")
        if not has_perms:
            return self._fail(action, error)

        target = self.resolver.resolve(params.target_channel, "voice")
        if target is None:
            return self._channel_not_found(action, params.target_channel, "voice")
        return await self._move_to(params.member, target)

    async def move_members_bulk(self, params: MoveMembersBulkParams) -> BulkResult:
        """Move several members into one voice channel in parallel."""
        has_perms, error = self._check_permissions("move_members")
        if not has_perms:
            return BulkResult(summary=error)

        target = self.resolver.resolve(params.target_channel, "voice")
        if target is None:
            return BulkResult(summary=f"No voice channel found matching '{params.target_channel}'")

        result = await self.executor.run(
            params.members,
            lambda identifier: self._move_to(identifier, target),
            "Moved",
            "member",
        )
        result.data["target_channel"] = target.name
        return result

    async def list_voice_channels(self, params: EmptyParams) -> ToolResult:
        channels = sorted(self.resolver.channels_of_kind("voice"), key=lambda c: c.position)
        if not channels:
            self._log_action("Listed 0 voice channels", True)
            return ToolResult.ok("No voice channels found in this server", channels=[])

        described = []
        lines = []
        for channel in channels:
            parent = self.snapshot.get_channel(getattr(channel, "category_id", None))
            names = [m.display_name for m in channel.members]
            described.append({
                "id": channel.id,
                "name": channel.name,
                "type": "stage" if channel.type == discord.ChannelType.stage_voice else "voice",
                "category": parent.name if parent is not None else None,
                "member_count": len(names),
                "members": names,
            })
            lines.append(f"{channel.name}: {', '.join(names) if names else '(empty)'}")

        connected = sum(entry["member_count"] for entry in described)
        self._log_action(f"Listed {len(described)} voice channels", True)
        return ToolResult.ok(
            f"{len(described)} voice channels, {connected} members connected:\n" + "\n".join(lines),
            channels=described,
        )
