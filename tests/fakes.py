from __future__ import annotations

import itertools
from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Any, Optional

import discord

OWNER_ID = 100000000000000001
BOT_ID = 100000000000000002

_ids = itertools.count(200000000000000000)


def next_id() -> int:
    return next(_ids)


def http_error(cls: type = discord.HTTPException, status: int = 400, text: str = "Bad Request"):
    """Build a discord.py HTTP exception without a real aiohttp response."""
    return cls(SimpleNamespace(status=status, reason=text), text)


_CHANNEL_TYPES = {
    "text": discord.ChannelType.text,
    "news": discord.ChannelType.news,
    "voice": discord.ChannelType.voice,
    "stage": discord.ChannelType.stage_voice,
    "category": discord.ChannelType.category,
    "forum": discord.ChannelType.forum,
}


class FakeRole:
    """Fake Discord Role for testing."""

    def __init__(
        self,
        id: int,
        name: str,
        position: int = 1,
        guild: Any = None,
        permissions: Optional[discord.Permissions] = None,
        managed: bool = False,
        colour: Optional[discord.Colour] = None,
        hoist: bool = False,
        mentionable: bool = False,
    ):
        self.id = id
        self.name = name
        self.position = position
        self.guild = guild
        self.permissions = permissions or discord.Permissions.none()
        self.managed = managed
        self.colour = colour or discord.Colour.default()
        self.hoist = hoist
        self.mentionable = mentionable
        self.members: list[FakeMember] = []
        self.deleted = False
        self.edits: list[dict[str, Any]] = []

    async def delete(self, reason=None):
        self.deleted = True
        self.guild._forget_role(self)

    async def edit(self, reason=None, **kwargs):
        self.edits.append(kwargs)
        for key, value in kwargs.items():
            setattr(self, key, value)

    def __repr__(self):
        return f"<FakeRole id={self.id} name={self.name} position={self.position}>"


class FakeMember:
    """Fake Discord Member for testing."""

    def __init__(
        self,
        id: int,
        name: str,
        guild: Any,
        roles: Optional[list[FakeRole]] = None,
        display_name: Optional[str] = None,
        bot: bool = False,
        permissions: Optional[discord.Permissions] = None,
    ):
        self.id = id
        self.name = name
        self.display_name = display_name or name
        self.guild = guild
        self.bot = bot
        self.roles = [guild.default_role] + list(roles or [])
        self.guild_permissions = permissions or discord.Permissions.none()
        self.kicked_with: Optional[str] = None
        self.timed_out_for = None
        self.voice: Optional[SimpleNamespace] = None

    def connect(self, channel: Any) -> None:
        self.voice = SimpleNamespace(channel=channel)

    async def move_to(self, channel, reason=None):
        self.voice.channel = channel

    @property
    def top_role(self) -> FakeRole:
        return max(self.roles, key=lambda r: r.position)

    async def add_roles(self, *roles, reason=None):
        self.roles.extend(roles)

    async def remove_roles(self, *roles, reason=None):
        for role in roles:
            self.roles.remove(role)

    async def kick(self, reason=None):
        self.kicked_with = reason

    async def timeout(self, until, reason=None):
        self.timed_out_for = until

    def __repr__(self):
        return f"<FakeMember id={self.id} name={self.name}>"


class FakeMessage:
    """Fake Discord Message for testing."""

    def __init__(
        self,
        id: int,
        channel: FakeChannel,
        content: str = "hello",
        author: Optional[FakeMember] = None,
        pinned: bool = False,
        reference_id: Optional[int] = None,
    ):
        self.id = id
        self.channel = channel
        self.content = content
        self.author = author or SimpleNamespace(display_name="someone")
        self.pinned = pinned
        self.published = False
        self.reference = SimpleNamespace(message_id=reference_id) if reference_id else None
        self.created_at = datetime(2024, 1, 1, tzinfo=timezone.utc)

    async def pin(self, reason=None):
        self.pinned = True

    async def unpin(self, reason=None):
        self.pinned = False

    async def delete(self):
        self.channel.messages.pop(self.id, None)

    async def publish(self):
        self.published = True

    async def create_thread(self, name, auto_archive_duration=1440, reason=None):
        thread = FakeThread(next_id(), name, self.channel, auto_archive_duration, starter=self)
        self.channel.guild.threads.append(thread)
        return thread


class FakeThread:
    """Fake Discord Thread for testing."""

    def __init__(self, id, name, parent, auto_archive_duration=1440, type=None, starter=None):
        self.id = id
        self.name = name
        self.parent = parent
        self.auto_archive_duration = auto_archive_duration
        self.type = type or discord.ChannelType.public_thread
        self.starter = starter
        self.archived = False

    async def edit(self, archived=None, reason=None):
        if archived is not None:
            self.archived = archived


class FakeInvite:
    def __init__(self, code, channel, max_uses=0, uses=0, expires_at=None, inviter=None):
        self.code = code
        self.url = f"https://discord.gg/{code}"
        self.channel = channel
        self.max_uses = max_uses
        self.uses = uses
        self.expires_at = expires_at
        self.inviter = inviter


class FakeWebhook:
    """Fake Discord Webhook for testing."""

    def __init__(self, id, name, channel, avatar=None):
        self.id = id
        self.name = name
        self.channel = channel
        self.avatar = avatar

    async def delete(self, reason=None):
        self.channel._webhooks.remove(self)


class FakeChannel:
    """Fake guild channel (text, news, voice, stage or category) for testing."""

    def __init__(
        self,
        id: int,
        name: str,
        kind: str = "text",
        guild: Any = None,
        category: Optional[FakeChannel] = None,
        position: int = 0,
        topic: Optional[str] = None,
        user_limit: Optional[int] = None,
    ):
        self.id = id
        self.name = name
        self.type = _CHANNEL_TYPES[kind]
        self.guild = guild
        self.category_id = category.id if category is not None else None
        self.position = position
        self.topic = topic
        self.user_limit = user_limit
        self.overwrites: dict[Any, discord.PermissionOverwrite] = {}
        self.messages: dict[int, FakeMessage] = {}
        self.edits: list[dict[str, Any]] = []
        self.history_limit: Optional[int] = None
        self._webhooks: list[FakeWebhook] = []
        self._invites: list[FakeInvite] = []

    @property
    def members(self) -> list[FakeMember]:
        return [m for m in self.guild.members if m.voice is not None and m.voice.channel is self]

    async def create_invite(self, **kwargs) -> FakeInvite:
        self.guild.calls.append(("create_invite", kwargs))
        invite = FakeInvite(f"inv{next_id() % 100000}", self, max_uses=kwargs.get("max_uses", 0))
        self._invites.append(invite)
        return invite

    def add_message(self, content: str = "hello", **kwargs) -> FakeMessage:
        message = FakeMessage(next_id(), self, content, **kwargs)
        self.messages[message.id] = message
        return message

    def overwrites_for(self, subject) -> discord.PermissionOverwrite:
        current = self.overwrites.get(subject)
        if current is None:
            return discord.PermissionOverwrite()
        return discord.PermissionOverwrite.from_pair(*current.pair())

    async def set_permissions(self, subject, *, overwrite=None, reason=None):
        self.overwrites[subject] = overwrite

    async def edit(self, *, reason=None, **kwargs):
        self.edits.append(kwargs)
        for key, value in kwargs.items():
            if key == "category":
                self.category_id = value.id if value is not None else None
            elif key != "sync_permissions":
                setattr(self, key, value)

    async def delete(self, reason=None):
        self.guild._forget_channel(self)

    async def fetch_message(self, message_id: int) -> FakeMessage:
        if message_id not in self.messages:
            raise http_error(discord.NotFound, 404, "Unknown Message")
        return self.messages[message_id]

    async def history(self, limit=100):
        self.history_limit = limit
        for message in list(reversed(list(self.messages.values())))[:limit]:
            yield message

    async def pins(self) -> list[FakeMessage]:
        return [m for m in self.messages.values() if m.pinned]

    async def create_thread(self, name, auto_archive_duration=1440, type=None, reason=None):
        thread = FakeThread(next_id(), name, self, auto_archive_duration, type=type)
        self.guild.threads.append(thread)
        return thread

    async def webhooks(self) -> list[FakeWebhook]:
        return list(self._webhooks)

    async def create_webhook(self, name, avatar=None, reason=None) -> FakeWebhook:
        webhook = FakeWebhook(next_id(), name, self, avatar)
        self._webhooks.append(webhook)
        return webhook

    def __repr__(self):
        return f"<FakeChannel id={self.id} name={self.name} type={self.type}>"


class FakeEvent:
    """Fake scheduled event for testing."""

    def __init__(self, guild, id, name, start_time, end_time=None, channel=None, location=None, **extra):
        self.guild = guild
        self.id = id
        self.name = name
        self.start_time = start_time
        self.end_time = end_time
        self.channel = channel
        self.location = location
        self.status = discord.EventStatus.scheduled
        self.user_count = 0
        self.extra = extra

    async def delete(self):
        self.guild.scheduled_events.remove(self)


class FakeEmoji:
    def __init__(self, guild, id, name, animated=False):
        self.guild = guild
        self.id = id
        self.name = name
        self.animated = animated

    async def delete(self, reason=None):
        self.guild.emojis.remove(self)

    def __str__(self):
        return f"<:{self.name}:{self.id}>"


class FakeSticker:
    def __init__(self, guild, id, name, description="", emoji=""):
        self.guild = guild
        self.id = id
        self.name = name
        self.description = description
        self.emoji = emoji

    async def delete(self, reason=None):
        self.guild.stickers.remove(self)


class FakeGuild:
    """
    Fake Discord Guild for testing.

    Keeps the gateway cache (roles, channels) apart from the REST state.
    Objects created through the API only appear in the REST state until
    sync_cache() runs, the way gateway events lag behind REST responses.
    """

    def __init__(self, id: int = 100000000000000000, name: str = "Test Guild"):
        self.id = id
        self.name = name
        self.owner_id = OWNER_ID
        self.description = ""
        self.verification_level = discord.VerificationLevel.low
        self.premium_tier = 0
        self.features: list[str] = []
        self.emoji_limit = 50
        self.sticker_limit = 5

        self.default_role = FakeRole(id, "@everyone", position=0, guild=self)
        self.roles: list[FakeRole] = [self.default_role]
        self.channels: list[FakeChannel] = []
        self._remote_roles: list[FakeRole] = [self.default_role]
        self._remote_channels: list[FakeChannel] = []

        self.members: list[FakeMember] = []
        self.offline_members: list[FakeMember] = []
        self.me: Optional[FakeMember] = None

        self.emojis: list[FakeEmoji] = []
        self.stickers: list[FakeSticker] = []
        self.scheduled_events: list[FakeEvent] = []
        self.threads: list[FakeThread] = []

        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.bans: list[tuple[Any, dict[str, Any]]] = []
        self.edits: list[dict[str, Any]] = []

    @property
    def member_count(self) -> int:
        return len(self.members) + len(self.offline_members)

    # -- setup helpers -------------------------------------------------------

    def add_role(self, name: str, position: int, **kwargs) -> FakeRole:
        role = FakeRole(next_id(), name, position=position, guild=self, **kwargs)
        self.roles.append(role)
        self._remote_roles.append(role)
        return role

    def add_channel(self, name: str, kind: str = "text", category: Optional[FakeChannel] = None, **kwargs) -> FakeChannel:
        channel = FakeChannel(next_id(), name, kind, guild=self, category=category, **kwargs)
        self.channels.append(channel)
        self._remote_channels.append(channel)
        return channel

    def add_member(self, name: str, roles: Optional[list[FakeRole]] = None, id: Optional[int] = None, **kwargs) -> FakeMember:
        member = FakeMember(id or next_id(), name, self, roles=roles, **kwargs)
        self.members.append(member)
        for role in member.roles[1:]:
            role.members.append(member)
        return member

    def role(self, name: str) -> FakeRole:
        return next(r for r in self._remote_roles if r.name == name)

    def channel(self, name: str) -> FakeChannel:
        return next(c for c in self._remote_channels if c.name == name)

    def member(self, name: str) -> FakeMember:
        return next(m for m in self.members if m.name == name)

    def sync_cache(self) -> None:
        self.roles = list(self._remote_roles)
        self.channels = list(self._remote_channels)

    def calls_to(self, method: str) -> list[dict[str, Any]]:
        return [kwargs for name, kwargs in self.calls if name == method]

    def _forget_role(self, role: FakeRole) -> None:
        # The cache keeps the role until the gateway event; see sync_cache.
        if role in self._remote_roles:
            self._remote_roles.remove(role)

    def _forget_channel(self, channel: FakeChannel) -> None:
        for store in (self.channels, self._remote_channels):
            if channel in store:
                store.remove(channel)

    # -- REST ----------------------------------------------------------------

    async def fetch_roles(self) -> list[FakeRole]:
        return list(self._remote_roles)

    async def fetch_channels(self) -> list[FakeChannel]:
        return list(self._remote_channels)

    def get_member(self, member_id: int) -> Optional[FakeMember]:
        for member in self.members:
            if member.id == member_id:
                return member
        return None

    async def fetch_member(self, member_id: int) -> FakeMember:
        for member in self.members + self.offline_members:
            if member.id == member_id:
                return member
        raise http_error(discord.NotFound, 404, "Unknown Member")

    async def query_members(self, query: str, limit: int = 5) -> list[FakeMember]:
        self.calls.append(("query_members", {"query": query, "limit": limit}))
        needle = query.lower()
        found = [
            m for m in self.members + self.offline_members
            if m.name.lower().startswith(needle) or m.display_name.lower().startswith(needle)
        ]
        return found[:limit]

    async def create_role(self, **kwargs) -> FakeRole:
        self.calls.append(("create_role", kwargs))
        for role in self._remote_roles:
            if role.position >= 1:
                role.position += 1
        role = FakeRole(
            next_id(),
            kwargs["name"],
            position=1,
            guild=self,
            permissions=kwargs.get("permissions"),
            colour=kwargs.get("colour"),
            hoist=kwargs.get("hoist", False),
            mentionable=kwargs.get("mentionable", False),
        )
        self._remote_roles.append(role)
        return role

    async def edit_role_positions(self, positions, reason=None):
        self.calls.append(("edit_role_positions", {"positions": dict(positions)}))
        for role, position in positions.items():
            role.position = position

    async def _create(self, method: str, kind: str, kwargs: dict[str, Any]) -> FakeChannel:
        self.calls.append((method, kwargs))
        channel = FakeChannel(
            next_id(),
            kwargs["name"],
            kind,
            guild=self,
            category=kwargs.get("category"),
            topic=kwargs.get("topic"),
            user_limit=kwargs.get("user_limit"),
        )
        channel.overwrites = dict(kwargs.get("overwrites") or {})
        self._remote_channels.append(channel)
        return channel

    async def create_category(self, **kwargs) -> FakeChannel:
        return await self._create("create_category", "category", kwargs)

    async def create_text_channel(self, **kwargs) -> FakeChannel:
        return await self._create("create_text_channel", "text", kwargs)

    async def create_voice_channel(self, **kwargs) -> FakeChannel:
        return await self._create("create_voice_channel", "voice", kwargs)

    async def create_stage_channel(self, **kwargs) -> FakeChannel:
        return await self._create("create_stage_channel", "stage", kwargs)

    async def create_forum(self, **kwargs) -> FakeChannel:
        return await self._create("create_forum", "forum", kwargs)

    async def create_scheduled_event(self, **kwargs) -> FakeEvent:
        self.calls.append(("create_scheduled_event", kwargs))
        event = FakeEvent(
            self,
            next_id(),
            kwargs["name"],
            kwargs["start_time"],
            kwargs.get("end_time"),
            channel=kwargs.get("channel"),
            location=kwargs.get("location"),
        )
        self.scheduled_events.append(event)
        return event

    async def fetch_scheduled_events(self) -> list[FakeEvent]:
        return list(self.scheduled_events)

    async def active_threads(self) -> list[FakeThread]:
        return [t for t in self.threads if not t.archived]

    async def webhooks(self) -> list[FakeWebhook]:
        return [w for c in self._remote_channels for w in c._webhooks]

    async def invites(self) -> list[FakeInvite]:
        return [i for c in self._remote_channels for i in c._invites]

    async def create_custom_emoji(self, name, image, reason=None) -> FakeEmoji:
        emoji = FakeEmoji(self, next_id(), name)
        self.emojis.append(emoji)
        return emoji

    async def create_sticker(self, name, description, emoji, file, reason=None) -> FakeSticker:
        self.calls.append(("create_sticker", {"name": name, "emoji": emoji, "filename": file.filename}))
        sticker = FakeSticker(self, next_id(), name, description, emoji)
        self.stickers.append(sticker)
        return sticker

    async def ban(self, member, reason=None, delete_message_seconds=0):
        self.bans.append((member, {"reason": reason, "delete_message_seconds": delete_message_seconds}))

    async def edit(self, reason=None, **kwargs):
        self.edits.append(kwargs)
        for key, value in kwargs.items():
            setattr(self, key, value)

    def __repr__(self):
        return f"<FakeGuild id={self.id} name={self.name}>"


def build_guild() -> FakeGuild:
    """
    A small community guild.

    Roles, lowest first: @everyone, Member, Helper, Officer, Moderator,
    Steward (the bot's managed role), Admin. The bot sits below Admin.
    """
    guild = FakeGuild()

    member = guild.add_role("Member", 1)
    helper = guild.add_role("Helper", 2)
    guild.add_role("Officer", 3)
    moderator = guild.add_role("Moderator", 4)
    steward = guild.add_role("Steward", 5, managed=True)
    admin = guild.add_role("Admin", 6, permissions=discord.Permissions(administrator=True))

    info = guild.add_channel("Information", "category", position=0)
    general = guild.add_channel("General", "category", position=1)
    voice = guild.add_channel("Voice Channels", "category", position=2)

    guild.add_channel("welcome", "text", position=0)
    guild.add_channel("rules", "text", category=info, position=0)
    guild.add_channel("📢-news", "news", category=info, position=1)
    guild.add_channel("general-chat", "text", category=general, position=0)
    guild.add_channel("memes", "text", category=general, position=1)
    guild.add_channel("off-topic", "text", category=general, position=2)
    guild.add_channel("Lounge", "voice", category=voice, position=0)
    guild.add_channel("Gaming", "voice", category=voice, position=1)
    guild.add_channel("Town Hall", "stage", category=voice, position=2)

    guild.add_member("owner", id=OWNER_ID, display_name="Owner", permissions=discord.Permissions.all())
    guild.me = guild.add_member(
        "steward", roles=[steward], id=BOT_ID, display_name="Steward",
        bot=True, permissions=discord.Permissions.all(),
    )
    guild.add_member("alice", roles=[member, helper], display_name="Alice")
    guild.add_member("bob", roles=[member, moderator], display_name="Bobby")
    guild.add_member("carol", roles=[admin], display_name="Carol", permissions=discord.Permissions(administrator=True))
    guild.offline_members.append(FakeMember(next_id(), "zed", guild, roles=[member], display_name="Zed"))

    return guild
