"""
Guild snapshot access.

Resolution reads guild objects through a SnapshotProvider instead of the
client's cache directly. The provider starts out reading the live gateway
cache; refresh() re-reads roles and channels over REST so objects created
moments ago are visible even before their gateway events arrive.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional, Sequence

import discord

logger = logging.getLogger("steward.snapshot")


class SnapshotProvider(ABC):
    """Read-only view of a guild's child objects with an explicit refresh barrier."""

    guild: Any

    @property
    @abstractmethod
    def roles(self) -> Sequence[Any]:
        """Roles in ascending position order, @everyone included."""

    @property
    @abstractmethod
    def channels(self) -> Sequence[Any]:
        """Every guild channel, categories included."""

    @property
    @abstractmethod
    def members(self) -> Sequence[Any]:
        """Locally cached members."""

    @abstractmethod
    async def refresh(self) -> None:
        """Resynchronize roles and channels with the remote state."""

    @abstractmethod
    async def fetch_member(self, member_id: int) -> Optional[Any]:
        ...

    @abstractmethod
    async def search_members(self, query: str, limit: int) -> list[Any]:
        ...

    @property
    def default_role(self) -> Any:
        return self.guild.default_role

    @property
    def me(self) -> Any:
        return self.guild.me

    def get_channel(self, channel_id: Optional[int]) -> Optional[Any]:
        if channel_id is None:
            return None
        for channel in self.channels:
            if channel.id == channel_id:
                return channel
        return None

    def get_role(self, role_id: int) -> Optional[Any]:
        for role in self.roles:
            if role.id == role_id:
                return role
        return None

    @property
    def categories(self) -> list[Any]:
        return [c for c in self.channels if c.type == discord.ChannelType.category]


class DiscordSnapshot(SnapshotProvider):
    """SnapshotProvider backed by a discord.py Guild."""

    def __init__(self, guild: discord.Guild):
        self.guild = guild
        self._roles: Optional[list[discord.Role]] = None
        self._channels: Optional[list[discord.abc.GuildChannel]] = None

    @property
    def roles(self) -> Sequence[discord.Role]:
        if self._roles is not None:
            return self._roles
        return self.guild.roles

    @property
    def channels(self) -> Sequence[discord.abc.GuildChannel]:
        if self._channels is not None:
            return self._channels
        return self.guild.channels

    @property
    def members(self) -> Sequence[discord.Member]:
        return self.guild.members

    @property
    def refreshed(self) -> bool:
        return self._roles is not None

    async def refresh(self) -> None:
        roles = await self.guild.fetch_roles()
        channels = await self.guild.fetch_channels()
        self._roles = sorted(roles, key=lambda r: (r.position, r.id))
        self._channels = list(channels)
        logger.debug(
            f"Refreshed snapshot of {self.guild.name}: "
            f"{len(self._roles)} roles, {len(self._channels)} channels"
        )

    async def fetch_member(self, member_id: int) -> Optional[discord.Member]:
        member = self.guild.get_member(member_id)
        if member is not None:
            return member
        try:
            return await self.guild.fetch_member(member_id)
        except discord.NotFound:
            return None

    async def search_members(self, query: str, limit: int) -> list[discord.Member]:
        return await self.guild.query_members(query=query, limit=limit)
