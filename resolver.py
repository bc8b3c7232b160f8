"""
Name resolution for guild objects.

Names supplied by users and the AI are loose: wrong case, partial, missing
the emoji prefix a channel carries. Resolution is a two-tier match, a
case-insensitive exact name first and then a case-insensitive substring,
with ties going to whichever object the guild yields first. There is no
similarity ranking; the order is deterministic for a fixed snapshot.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Callable, Iterable, Optional, TypeVar

import discord

from snapshot import SnapshotProvider

logger = logging.getLogger("steward.resolver")

T = TypeVar("T")

CHANNEL_KINDS: dict[str, tuple[discord.ChannelType, ...]] = {
    "text": (discord.ChannelType.text, discord.ChannelType.news),
    "voice": (discord.ChannelType.voice, discord.ChannelType.stage_voice),
    "category": (discord.ChannelType.category,),
    "stage": (discord.ChannelType.stage_voice,),
    "forum": (discord.ChannelType.forum,),
}
CHANNEL_KINDS["any"] = (
    CHANNEL_KINDS["text"]
    + CHANNEL_KINDS["voice"]
    + CHANNEL_KINDS["category"]
    + CHANNEL_KINDS["forum"]
)

# Category names that conventionally hold each kind of channel, in preference order
CONVENTIONAL_CATEGORY_NAMES: dict[str, list[str]] = {
    "text": ["text channels", "text", "chat", "general", "community"],
    "voice": ["voice channels", "voice", "vc", "voice chats", "calls", "talk"],
}
GENERIC_CATEGORY_NAMES = ["general", "community", "main", "public"]

_MENTION_CHARS = re.compile(r"[<@!>]")
_SNOWFLAKE = re.compile(r"^\d{17,19}$")
_SYMBOLS = re.compile(r"[^\w\s]")


def match_by_name(
    items: Iterable[T],
    name: str,
    key: Callable[[T], str] = lambda item: item.name,
) -> Optional[T]:
    """
    Two-tier name match over items.

    Returns the first item whose name equals name ignoring case, else the
    first item whose name contains it, else None.
    """
    needle = name.strip().lower()
    if not needle:
        return None

    candidates = list(items)
    for item in candidates:
        if key(item).lower() == needle:
            return item
    for item in candidates:
        if needle in key(item).lower():
            return item
    return None


def strip_symbols(text: str) -> str:
    return _SYMBOLS.sub("", text.lower()).strip()


def similar_names(names: Iterable[str], query: str, limit: int = 5) -> list[str]:
    """
    Names loosely related to query, ignoring emoji and punctuation.

    A name is similar when it contains the query, or its symbol-free form
    contains the symbol-free query or is contained by it.
    """
    needle = strip_symbols(query)
    raw = query.strip().lower()
    results = []
    for name in names:
        lowered = name.lower()
        clean = strip_symbols(name)
        if (
            raw in lowered
            or (needle and needle in clean)
            or (clean and clean in needle)
        ):
            results.append(name)
            if len(results) >= limit:
                break
    return results


class EntityResolver:
    """Resolves channels, categories, roles and members by name against a snapshot."""

    def __init__(self, snapshot: SnapshotProvider, member_search_limit: int = 10):
        self.snapshot = snapshot
        self.member_search_limit = member_search_limit

    # ========================================================================
    # Channels & Categories
    # ========================================================================

    def channels_of_kind(self, kind: str = "any") -> list[Any]:
        if kind not in CHANNEL_KINDS:
            raise ValueError(f"Unknown channel type filter: {kind}")
        allowed = CHANNEL_KINDS[kind]
        return [c for c in self.snapshot.channels if c.type in allowed]

    def resolve(self, name: str, type_filter: str = "any") -> Optional[Any]:
        """Find a channel or category by name within a type filter."""
        result = match_by_name(self.channels_of_kind(type_filter), name)
        if result is None:
            logger.debug(f"resolve: no {type_filter} channel matches '{name}'")
        elif result.name.lower() != name.strip().lower():
            logger.debug(f"resolve: '{name}' matched '{result.name}' by substring")
        return result

    def find_category(self, name: str) -> Optional[Any]:
        return self.resolve(name, "category")

    def kind_of(self, channel: Any) -> str:
        """Type filter name ('text', 'voice', 'category' or 'forum') of a channel."""
        for kind in ("text", "voice", "category", "forum"):
            if channel.type in CHANNEL_KINDS[kind]:
                return kind
        return "other"

    def find_best_category(self, kind: str, requested: Optional[str] = None) -> Optional[Any]:
        """
        Pick a parent category for a new channel of the given kind.

        Tries, in order: the requested category by name; the category that
        already holds the most channels of this kind; a conventionally
        named category for the kind; a generic community category; the
        first category. Returns None when the guild has no categories,
        meaning the channel goes to the top level. Never raises.
        """
        categories = self.snapshot.categories

        if requested:
            match = match_by_name(categories, requested)
            if match is not None:
                logger.debug(f"find_best_category: found requested category '{match.name}'")
                return match
            logger.debug(f"find_best_category: requested category '{requested}' not found")

        if not categories:
            logger.debug("find_best_category: no categories, using top level")
            return None

        by_id = {c.id: c for c in categories}
        counts: dict[int, int] = {}
        for channel in self.channels_of_kind(kind):
            parent_id = getattr(channel, "category_id", None)
            if parent_id in by_id:
                counts[parent_id] = counts.get(parent_id, 0) + 1

        best_id, best_count = None, 0
        for category_id, count in counts.items():
            if count > best_count:
                best_id, best_count = category_id, count
        if best_id is not None:
            best = by_id[best_id]
            logger.debug(
                f"find_best_category: '{best.name}' holds the most {kind} channels ({best_count})"
            )
            return best

        for conventional in CONVENTIONAL_CATEGORY_NAMES.get(kind, []) + GENERIC_CATEGORY_NAMES:
            for category in categories:
                if conventional in category.name.lower():
                    logger.debug(f"find_best_category: '{category.name}' matches '{conventional}'")
                    return category

        logger.debug(f"find_best_category: using first category '{categories[0].name}'")
        return categories[0]

    # ========================================================================
    # Roles
    # ========================================================================

    def assignable_roles(self) -> list[Any]:
        """All roles except @everyone, in guild order."""
        default = self.snapshot.default_role
        return [r for r in self.snapshot.roles if r.id != default.id]

    def find_role(self, name: str) -> Optional[Any]:
        if name.strip().lower() in ("@everyone", "everyone"):
            return self.snapshot.default_role
        result = match_by_name(self.assignable_roles(), name)
        if result is None:
            logger.debug(f"find_role: no role matches '{name}'")
        return result

    def role_names_by_rank(self) -> list[str]:
        """Role names, highest position first."""
        ranked = sorted(self.assignable_roles(), key=lambda r: r.position, reverse=True)
        return [r.name for r in ranked]

    # ========================================================================
    # Members
    # ========================================================================

    async def find_member_smart(self, identifier: Optional[str]) -> Optional[Any]:
        """
        Find a member by mention, ID, username or display name.

        A bare snowflake is fetched directly. Otherwise the local member
        cache is searched (exact, then substring), and only then a remote
        member search with a bounded limit, whose first hit wins.
        """
        if not identifier:
            return None

        clean = _MENTION_CHARS.sub("", identifier).strip()
        if not clean:
            return None

        if _SNOWFLAKE.match(clean):
            try:
                member = await self.snapshot.fetch_member(int(clean))
            except discord.HTTPException as e:
                logger.debug(f"find_member_smart: fetch of {clean} failed: {e}")
                member = None
            if member is not None:
                return member

        needle = clean.lower()
        cached = list(self.snapshot.members)
        for member in cached:
            if needle in (member.display_name.lower(), member.name.lower()):
                return member
        for member in cached:
            if needle in member.display_name.lower() or needle in member.name.lower():
                return member

        try:
            results = await self.snapshot.search_members(clean, self.member_search_limit)
        except (discord.HTTPException, discord.ClientException, asyncio.TimeoutError) as e:
            logger.warning(f"Member search failed: {e}")
            return None
        if results:
            return results[0]
        return None
