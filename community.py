"""
Scheduled events, threads, messages and invites.

Mixed into DiscordArchitect. Thread, message and invite tools fall back to the
CallContext (the channel the request came from, the message it replied
to) when arguments leave the channel or message out.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Optional

import discord
from discord import HTTPException, NotFound

from bulk import pluralize
from models import (
    ArchiveThreadParams,
    ArchiveThreadsBulkParams,
    BulkResult,
    CallContext,
    ChannelRefParams,
    CreateEventParams,
    CreateEventsBulkParams,
    CreateInviteParams,
    CreateThreadParams,
    CreateThreadsBulkParams,
    DeleteEventParams,
    DeleteEventsBulkParams,
    EmptyParams,
    ListMessagesParams,
    MessageActionParams,
    MessagesBulkParams,
    ToolResult,
)
from parsers import parse_event_time
from resolver import match_by_name

logger = logging.getLogger("steward.architect")

AUTO_ARCHIVE_MINUTES = (60, 1440, 4320, 10080)
MAX_LISTED_MESSAGES = 50
MAX_INVITE_AGE = 7 * 86400
MAX_INVITE_USES = 100

ENTITY_TYPES = {
    "voice": discord.EntityType.voice,
    "stage": discord.EntityType.stage_instance,
    "external": discord.EntityType.external,
}


def _preview(content: str, length: int = 100) -> str:
    if len(content) <= length:
        return content
    return content[: length - 3] + "..."


class CommunityMixin:
    """Event, thread and message handlers for DiscordArchitect."""

    # ========================================================================
    # Scheduled Events
    # ========================================================================

    async def create_event(self, params: CreateEventParams) -> ToolResult:
        """
        Create a scheduled event.

        Times accept ISO 8601 or natural language. Without an end time the
        event lasts default_event_hours.
        """
        action = f"Creating event: {params.name}"

        has_perms, error = self._check_permissions("manage_events")
        if not has_perms:
            return self._fail(action, error)

        now = datetime.now(self.tz)
        start = parse_event_time(params.start_time, now=now, tz=self.tz)
        if start is None:
            return self._fail(
                action,
                f"Could not understand start time '{params.start_time}'. "
                "Use ISO 8601 or phrases like 'tomorrow at 3pm' or 'next friday 8pm'",
            )
        if start <= now:
            return self._fail(action, f"Start time {start.isoformat()} is in the past")

        if params.end_time:
            end = parse_event_time(params.end_time, now=now, tz=self.tz)
            if end is None:
                return self._fail(action, f"Could not understand end time '{params.end_time}'")
        else:
            end = start + timedelta(hours=self.settings.default_event_hours)
        if end <= start:
            return self._fail(action, "End time must be after the start time")

        kwargs: dict[str, Any] = {
            "name": params.name,
            "start_time": start,
            "end_time": end,
            "entity_type": ENTITY_TYPES[params.location_type],
            "privacy_level": discord.PrivacyLevel.guild_only,
            "reason": self.reason,
        }
        if params.description:
            kwargs["description"] = params.description

        if params.location_type == "external":
            kwargs["location"] = params.location or "External"
        else:
            if not params.location:
                return self._fail(action, f"A {params.location_type} event needs a channel as its location")
            channel = self.resolver.resolve(params.location, "voice")
            wanted = (
                discord.ChannelType.stage_voice
                if params.location_type == "stage"
                else discord.ChannelType.voice
            )
            if channel is None or channel.type != wanted:
                return self._fail(
                    action, f"Could not find {params.location_type} channel '{params.location}'"
                )
            kwargs["channel"] = channel

        try:
            event = await self.guild.create_scheduled_event(**kwargs)
        except HTTPException as e:
            return self._api_failure(action, e, "create events")

        msg = f"Created event '{event.name}' starting {start.isoformat()}"
        self._log_action(msg, True)
        return ToolResult.ok(
            msg,
            event_id=event.id,
            event_name=event.name,
            start_time=start.isoformat(),
            end_time=end.isoformat(),
            location=params.location or "External",
        )

    async def delete_event(self, params: DeleteEventParams) -> ToolResult:
        action = f"Deleting event: {params.event_name}"

        has_perms, error = self._check_permissions("manage_events")
        if not has_perms:
            return self._fail(action, error)

        try:
            events = await self.guild.fetch_scheduled_events()
        except HTTPException as e:
            return self._api_failure(action, e, "read scheduled events")

        event = match_by_name(events, params.event_name)
        if event is None:
            return self._fail(
                action,
                f"Could not find event '{params.event_name}'",
                available_events=[e.name for e in events],
            )

        try:
            await event.delete()
        except HTTPException as e:
            return self._api_failure(action, e, "delete this event")

        msg = f"Deleted event '{event.name}'"
        self._log_action(msg, True)
        return ToolResult.ok(msg, deleted={"id": event.id, "name": event.name})

    async def list_events(self, params: EmptyParams) -> ToolResult:
        try:
            events = await self.guild.fetch_scheduled_events()
        except HTTPException as e:
            return self._api_failure("Listing events", e, "read scheduled events")

        listed = []
        for event in sorted(events, key=lambda e: e.start_time):
            location = event.channel.name if event.channel is not None else event.location
            listed.append({
                "name": event.name,
                "id": event.id,
                "start_time": event.start_time.isoformat(),
                "end_time": event.end_time.isoformat() if event.end_time else None,
                "location": location or "Unknown",
                "status": str(event.status),
                "interested": event.user_count,
            })

        self._log_action(f"Listed {len(listed)} events", True)
        return ToolResult.ok(f"{len(listed)} scheduled events", events=listed)

    async def create_events_bulk(self, params: CreateEventsBulkParams) -> BulkResult:
        return await self.executor.run(params.events, self.create_event, "Created", "event")

    async def delete_events_bulk(self, params: DeleteEventsBulkParams) -> BulkResult:
        return await self.executor.run(
            [DeleteEventParams(event_name=name) for name in params.event_names],
            self.delete_event,
            "Deleted",
            "event",
        )

    # ========================================================================
    # Threads
    # ========================================================================

    def _text_channel(self, name: Optional[str], call_context: Optional[CallContext]) -> Optional[Any]:
        """Resolve a text channel by name, or fall back to the requesting channel."""
        if name:
            return self.resolver.resolve(name, "text")
        if call_context is not None and call_context.channel is not None:
            return call_context.channel
        return None

    async def create_thread(
        self,
        params: CreateThreadParams,
        call_context: Optional[CallContext] = None,
    ) -> ToolResult:
        action = f"Creating thread: {params.name}"

        channel = self._text_channel(params.channel, call_context)
        if channel is None:
            return self._fail(action, "Could not find channel")

        needed = "create_private_threads" if params.private else "create_public_threads"
        has_perms, error = self._check_permissions(needed)
        if not has_perms:
            return self._fail(action, error)

        auto_archive = min(AUTO_ARCHIVE_MINUTES, key=lambda m: abs(m - params.auto_archive))

        try:
            if params.message_id:
                message = await channel.fetch_message(params.message_id)
                thread = await message.create_thread(
                    name=params.name,
                    auto_archive_duration=auto_archive,
                    reason=self.reason,
                )
            else:
                thread_type = (
                    discord.ChannelType.private_thread
                    if params.private
                    else discord.ChannelType.public_thread
                )
                thread = await channel.create_thread(
                    name=params.name,
                    auto_archive_duration=auto_archive,
                    type=thread_type,
                    reason=self.reason,
                )
        except HTTPException as e:
            if isinstance(e, NotFound) and params.message_id:
                return self._fail(action, f"Message {params.message_id} not found in #{channel.name}")
            return self._api_failure(action, e, "create threads")

        msg = f"Created thread '{thread.name}' in #{channel.name}"
        self._log_action(msg, True)
        return ToolResult.ok(msg, thread_id=thread.id, thread_name=thread.name, channel=channel.name)

    async def archive_thread(self, params: ArchiveThreadParams) -> ToolResult:
        action = f"Archiving thread: {params.thread_name}"

        try:
            threads = await self.guild.active_threads()
        except HTTPException as e:
            return self._api_failure(action, e, "read active threads")

        thread = match_by_name(threads, params.thread_name)
        if thread is None:
            return self._fail(action, f"Could not find thread '{params.thread_name}'")

        try:
            await thread.edit(archived=True, reason=self.reason)
        except HTTPException as e:
            return self._api_failure(action, e, "archive this thread")

        msg = f"Archived thread '{thread.name}'"
        self._log_action(msg, True)
        return ToolResult.ok(msg, thread_id=thread.id)

    async def create_threads_bulk(
        self,
        params: CreateThreadsBulkParams,
        call_context: Optional[CallContext] = None,
    ) -> BulkResult:
        return await self.executor.run(
            params.threads,
            lambda item: self.create_thread(item, call_context),
            "Created",
            "thread",
        )

    async def archive_threads_bulk(self, params: ArchiveThreadsBulkParams) -> BulkResult:
        return await self.executor.run(
            [ArchiveThreadParams(thread_name=name) for name in params.thread_names],
            self.archive_thread,
            "Archived",
            "thread",
        )

    # ========================================================================
    # Messages
    # ========================================================================

    async def _target_message(
        self,
        action: str,
        params: MessageActionParams,
        call_context: Optional[CallContext],
    ) -> tuple[Any, Optional[ToolResult]]:
        """Fetch the message an action applies to, or a failure."""
        message_id = params.message_id
        if message_id is None and call_context is not None:
            message_id = call_context.reference_message_id
        if message_id is None:
            return None, self._fail(action, "Must specify message_id or reply to a message")

        channel = self._text_channel(params.channel, call_context)
        if channel is None:
            return None, self._fail(action, "Could not find channel")

        try:
            message = await channel.fetch_message(message_id)
        except NotFound:
            return None, self._fail(action, f"Message {message_id} not found in #{channel.name}")
        except HTTPException as e:
            return None, self._api_failure(action, e, "read messages in this channel")
        return message, None

    async def pin_message(
        self,
        params: MessageActionParams,
        call_context: Optional[CallContext] = None,
    ) -> ToolResult:
        action = f"Pinning message {params.message_id or '(reply)'}"
        message, failure = await self._target_message(action, params, call_context)
        if failure:
            return failure

        if message.pinned:
            msg = f"Message {message.id} is already pinned"
            self._log_action(msg, True)
            return ToolResult.ok(msg, message_id=message.id, unchanged=True)

        try:
            await message.pin(reason=self.reason)
        except HTTPException as e:
            return self._api_failure(action, e, "pin messages")

        msg = f"Pinned message {message.id}"
        self._log_action(msg, True)
        return ToolResult.ok(msg, message_id=message.id)

    async def unpin_message(
        self,
        params: MessageActionParams,
        call_context: Optional[CallContext] = None,
    ) -> ToolResult:
        action = f"Unpinning message {params.message_id or '(reply)'}"
        message, failure = await self._target_message(action, params, call_context)
        if failure:
            return failure

        if not message.pinned:
            msg = f"Message {message.id} is not pinned"
            self._log_action(msg, True)
            return ToolResult.ok(msg, message_id=message.id, unchanged=True)

        try:
            await message.unpin(reason=self.reason)
        except HTTPException as e:
            return self._api_failure(action, e, "unpin messages")

        msg = f"Unpinned message {message.id}"
        self._log_action(msg, True)
        return ToolResult.ok(msg, message_id=message.id)

    async def delete_message(
        self,
        params: MessageActionParams,
        call_context: Optional[CallContext] = None,
    ) -> ToolResult:
        action = f"Deleting message {params.message_id or '(reply)'}"
        message, failure = await self._target_message(action, params, call_context)
        if failure:
            return failure

        try:
            await message.delete()
        except HTTPException as e:
            return self._api_failure(action, e, "delete messages")

        msg = f"Deleted message {message.id}"
        self._log_action(msg, True)
        return ToolResult.ok(msg, message_id=message.id)

    async def publish_message(
        self,
        params: MessageActionParams,
        call_context: Optional[CallContext] = None,
    ) -> ToolResult:
        """Crosspost a message from an announcement channel to its followers."""
        action = f"Publishing message {params.message_id or '(reply)'}"
        channel = self._text_channel(params.channel, call_context)
        if channel is not None and channel.type != discord.ChannelType.news:
            return self._fail(action, "Can only publish messages in announcement channels")

        message, failure = await self._target_message(action, params, call_context)
        if failure:
            return failure

        try:
            await message.publish()
        except HTTPException as e:
            return self._api_failure(action, e, "publish messages")

        msg = f"Published message {message.id}"
        self._log_action(msg, True)
        return ToolResult.ok(msg, message_id=message.id)

    def _describe_message(self, message: Any) -> dict[str, Any]:
        return {
            "id": message.id,
            "author": message.author.display_name,
            "content": _preview(message.content),
            "created_at": message.created_at.isoformat(),
            "pinned": message.pinned,
        }

    async def list_pinned_messages(
        self,
        params: ChannelRefParams,
        call_context: Optional[CallContext] = None,
    ) -> ToolResult:
        action = "Listing pinned messages"
        channel = self._text_channel(params.channel, call_context)
        if channel is None:
            return self._fail(action, "Could not find channel")

        try:
            pins = await channel.pins()
        except HTTPException as e:
            return self._api_failure(action, e, "read pinned messages")

        self._log_action(f"Listed {len(pins)} pinned messages in #{channel.name}", True)
        return ToolResult.ok(
            f"{len(pins)} pinned messages in #{channel.name}",
            messages=[self._describe_message(m) for m in pins],
        )

    async def list_messages(
        self,
        params: ListMessagesParams,
        call_context: Optional[CallContext] = None,
    ) -> ToolResult:
        action = "Listing messages"
        channel = self._text_channel(params.channel, call_context)
        if channel is None:
            return self._fail(action, "Could not find channel")

        limit = max(1, min(MAX_LISTED_MESSAGES, params.limit))
        try:
            messages = [m async for m in channel.history(limit=limit)]
        except HTTPException as e:
            return self._api_failure(action, e, "read message history")

        self._log_action(f"Listed {len(messages)} messages in #{channel.name}", True)
        return ToolResult.ok(
            f"{len(messages)} recent messages in #{channel.name}",
            messages=[self._describe_message(m) for m in messages],
        )

    async def _messages_bulk(
        self,
        params: MessagesBulkParams,
        call_context: Optional[CallContext],
        handler: Any,
        verb: str,
    ) -> BulkResult:
        if self._text_channel(params.channel, call_context) is None:
            return BulkResult(summary="Could not find channel")
        items = [
            MessageActionParams(message_id=message_id, channel=params.channel)
            for message_id in params.message_ids
        ]
        return await self.executor.run(
            items,
            lambda item: handler(item, call_context),
            verb,
            "message",
        )

    async def pin_messages_bulk(
        self, params: MessagesBulkParams, call_context: Optional[CallContext] = None
    ) -> BulkResult:
        return await self._messages_bulk(params, call_context, self.pin_message, "Pinned")

    async def unpin_messages_bulk(
        self, params: MessagesBulkParams, call_context: Optional[CallContext] = None
    ) -> BulkResult:
        return await self._messages_bulk(params, call_context, self.unpin_message, "Unpinned")

    async def delete_messages_bulk(
        self, params: MessagesBulkParams, call_context: Optional[CallContext] = None
    ) -> BulkResult:
        return await self._messages_bulk(params, call_context, self.delete_message, "Deleted")

    async def publish_messages_bulk(
        self, params: MessagesBulkParams, call_context: Optional[CallContext] = None
    ) -> BulkResult:
        return await self._messages_bulk(params, call_context, self.publish_message, "Published")

    # ========================================================================
    # Invites
    # ========================================================================

    async def create_invite(
        self,
        params: CreateInviteParams,
        call_context: Optional[CallContext] = None,
    ) -> ToolResult:
        """
        Create an invite to a channel.

        Without a channel name the invite points at the requesting channel,
        or at the first text channel when there is none. max_age is clamped
        to 0-7 days and max_uses to 0-100; zero means no limit.
        """
        action = "Creating invite"

        has_perms, error = self._check_permissions("create_instant_invite")
        if not has_perms:
            return self._fail(action, error)

        if params.channel:
            channel = self.resolver.resolve(params.channel, "text") or self.resolver.resolve(
                params.channel, "voice"
            )
            if channel is None:
                return self._channel_not_found(action, params.channel)
        elif call_context is not None and call_context.channel is not None:
            channel = call_context.channel
        else:
            text_channels = self.resolver.channels_of_kind("text")
            if not text_channels:
                return self._fail(action, "Could not find a channel to invite to")
            channel = text_channels[0]

        max_age = max(0, min(MAX_INVITE_AGE, params.max_age))
        max_uses = max(0, min(MAX_INVITE_USES, params.max_uses))
        try:
            invite = await channel.create_invite(
                max_age=max_age,
                max_uses=max_uses,
                temporary=params.temporary,
                unique=True,
                reason=self.reason,
            )
        except HTTPException as e:
            return self._api_failure(action, e, "create invites")

        expires = "never" if max_age == 0 else f"in {max_age / 3600:g} hours"
        msg = f"Created invite {invite.url} for #{channel.name}, expires {expires}"
        self._log_action(msg, True)
        return ToolResult.ok(
            msg,
            code=invite.code,
            url=invite.url,
            channel=channel.name,
            max_uses=max_uses or "unlimited",
            expires=expires,
        )

    async def list_invites(self, params: EmptyParams) -> ToolResult:
        action = "Listing invites"

        has_perms, error = self._check_permissions("manage_guild")
        if not has_perms:
            return self._fail(action, error)

        try:
            invites = await self.guild.invites()
        except HTTPException as e:
            return self._api_failure(action, e, "read invites")

        described = [
            {
                "code": invite.code,
                "url": invite.url,
                "channel": invite.channel.name if invite.channel is not None else None,
                "uses": invite.uses,
                "max_uses": invite.max_uses or "unlimited",
                "expires": invite.expires_at.isoformat() if invite.expires_at else "never",
                "creator": invite.inviter.name if invite.inviter is not None else "unknown",
            }
            for invite in invites
        ]
        self._log_action(f"Listed {len(described)} invites", True)
        count = len(described)
        return ToolResult.ok(f"{count} active {pluralize('invite', count)}", invites=described)
