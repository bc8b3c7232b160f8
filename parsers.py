"""
Scalar argument parsers.

Colors, permission names, durations and event times arrive from tool calls
as loose strings; these helpers normalize them before any remote call.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Iterable, Optional
from zoneinfo import ZoneInfo

import discord


# ============================================================================
# Colors
# ============================================================================


COLOR_MAP: dict[str, int] = {
    "red": 0xE74C3C,
    "blue": 0x3498DB,
    "green": 0x2ECC71,
    "purple": 0x9B59B6,
    "orange": 0xE67E22,
    "yellow": 0xF1C40F,
    "pink": 0xE91E63,
    "cyan": 0x00BCD4,
    "gold": 0xFFD700,
    "navy": 0x001F3F,
    "teal": 0x008080,
    "lime": 0x00FF00,
    "coral": 0xFF7F50,
    "crimson": 0xDC143C,
    "indigo": 0x4B0082,
    "violet": 0xEE82EE,
    "salmon": 0xFA8072,
    "magenta": 0xFF00FF,
    "aqua": 0x00FFFF,
    "maroon": 0x800000,
    "white": 0xFFFFFF,
    "black": 0x000000,
    "gray": 0x808080,
    "grey": 0x808080,
    "silver": 0xC0C0C0,
    "bronze": 0xCD7F32,
    "default": 0x000000,
}

_HEX6 = re.compile(r"^[0-9a-f]{6}$")
_HEX3 = re.compile(r"^[0-9a-f]{3}$")


def parse_color(value: Optional[str]) -> Optional[int]:
    """
    Parse a color name or hex code into an integer.

    Accepts names from COLOR_MAP and 3 or 6 digit hex with an optional
    '#' or '0x' prefix. Returns None for anything else.
    """
    if not value:
        return None

    token = value.strip().lower()
    if token in COLOR_MAP:
        return COLOR_MAP[token]

    if token.startswith("#"):
        token = token[1:]
    elif token.startswith("0x"):
        token = token[2:]

    if _HEX6.match(token):
        return int(token, 16)
    if _HEX3.match(token):
        return int("".join(c * 2 for c in token), 16)
    return None


# ============================================================================
# Permissions
# ============================================================================


VALID_PERMISSIONS: frozenset[str] = frozenset(name for name, _ in discord.Permissions())

# Lookup table tolerant of 'ManageMessages', 'manage messages' and 'MANAGE_MESSAGES'
_PERMISSION_LOOKUP: dict[str, str] = {
    name.replace("_", ""): name for name in VALID_PERMISSIONS
}


def normalize_permission(name: str) -> Optional[str]:
    """Map a loosely written permission name to its discord.py attribute name."""
    key = re.sub(r"[\s_\-]", "", name).lower()
    return _PERMISSION_LOOKUP.get(key)


def parse_permissions(names: Iterable[str]) -> tuple[list[str], list[str]]:
    """
    Split permission names into (valid, invalid).

    Valid names are returned in discord.py attribute form, deduplicated
    in input order.
    """
    valid: list[str] = []
    invalid: list[str] = []
    for name in names:
        normalized = normalize_permission(name)
        if normalized is None:
            invalid.append(name)
        elif normalized not in valid:
            valid.append(normalized)
    return valid, invalid


# ============================================================================
# Durations
# ============================================================================


_DURATION_RE = re.compile(
    r"^(\d+)\s*(s|sec|secs|second|seconds|m|min|mins|minute|minutes|"
    r"h|hr|hrs|hour|hours|d|day|days|w|week|weeks)$",
    re.IGNORECASE,
)

_UNIT_SECONDS = {
    "s": 1, "sec": 1, "secs": 1, "second": 1, "seconds": 1,
    "m": 60, "min": 60, "mins": 60, "minute": 60, "minutes": 60,
    "h": 3600, "hr": 3600, "hrs": 3600, "hour": 3600, "hours": 3600,
    "d": 86400, "day": 86400, "days": 86400,
    "w": 604800, "week": 604800, "weeks": 604800,
}


def parse_duration(value: str) -> Optional[timedelta]:
    """Parse '10m', '2 hours', '1w' and similar. Returns None if unparseable."""
    match = _DURATION_RE.match(value.strip())
    if not match:
        return None
    amount = int(match.group(1))
    return timedelta(seconds=amount * _UNIT_SECONDS[match.group(2).lower()])


# ============================================================================
# Event Times
# ============================================================================


WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]

_TIME_OF_DAY_RE = re.compile(r"\b(\d{1,2})(?::(\d{2}))?\s*(am|pm)?\b")
_RELATIVE_RE = re.compile(
    r"^in\s+(\d+)\s*(minutes?|mins?|m|hours?|hrs?|h|days?|d|weeks?|w)$"
)
_WEEKDAY_RE = re.compile(r"\b(next\s+)?(" + "|".join(WEEKDAYS) + r")\b")


def resolve_timezone(name: Optional[str]) -> tzinfo:
    if not name or name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)


def _parse_iso(value: str, tz: tzinfo) -> Optional[datetime]:
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=tz)
    return parsed


def _apply_time_of_day(
    base: datetime,
    text: str,
    default_hour: Optional[int] = None,
    evening: bool = False,
) -> Optional[datetime]:
    """
    Set the hour/minute found in text on base. Returns None for an invalid clock time.

    With evening set, a bare hour from 1 to 11 is read as pm.
    """
    match = _TIME_OF_DAY_RE.search(text)
    if not match:
        if default_hour is None:
            return base
        return base.replace(hour=default_hour, minute=0, second=0, microsecond=0)

    hour = int(match.group(1))
    minute = int(match.group(2) or 0)
    meridiem = match.group(3)
    if meridiem == "pm" and hour != 12:
        hour += 12
    elif meridiem == "am" and hour == 12:
        hour = 0
    elif meridiem is None and evening and 1 <= hour <= 11:
        hour += 12
    if hour > 23 or minute > 59:
        return None
    return base.replace(hour=hour, minute=minute, second=0, microsecond=0)


def parse_event_time(
    value: str,
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> Optional[datetime]:
    """
    Parse an event time into a timezone-aware datetime.

    Understands ISO 8601, 'now', 'in N minutes/hours/days/weeks',
    'today/tonight/tomorrow [at] 3pm' and weekday names optionally
    prefixed with 'next' ('friday 8pm', 'next monday at 10:30').

    A weekday rolls over by a week when it is today or already passed
    this week, or when prefixed with "next". "next friday" said on a
    Wednesday is therefore nine days out.

    Returns None when the text is not understood.
    """
    if not value or not value.strip():
        return None

    tz = tz or timezone.utc
    now = now or datetime.now(tz)
    if now.tzinfo is None:
        now = now.replace(tzinfo=tz)

    iso = _parse_iso(value, tz)
    if iso is not None:
        return iso

    text = value.strip().lower()
    if text == "now":
        return now

    relative = _RELATIVE_RE.match(text)
    if relative:
        amount = int(relative.group(1))
        unit = relative.group(2)[0]
        seconds = {"m": 60, "h": 3600, "d": 86400, "w": 604800}[unit]
        return now + timedelta(seconds=amount * seconds)

    if "tomorrow" in text:
        return _apply_time_of_day(now + timedelta(days=1), text)
    if "tonight" in text:
        return _apply_time_of_day(now, text, default_hour=20, evening=True)
    if "today" in text:
        return _apply_time_of_day(now, text)

    weekday = _WEEKDAY_RE.search(text)
    if weekday:
        target = WEEKDAYS.index(weekday.group(2))
        days_ahead = target - now.weekday()
        if days_ahead <= 0 or weekday.group(1):
            days_ahead += 7
        remainder = text[weekday.end():]
        return _apply_time_of_day(now + timedelta(days=days_ahead), remainder)

    return None
