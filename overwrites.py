"""
Permission overwrite building.

Turns a declarative AccessConfig into one OverwriteRecord per subject.
Steps run in a fixed order (private, role access, role deny, read-only)
and later steps amend the record an earlier step created for the same
subject. Within a record a permission is never both allowed and denied;
a deny removes an earlier allow and an allow never overrides a deny.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

import discord

from models import AccessConfig
from resolver import EntityResolver

logger = logging.getLogger("steward.overwrites")

# Interaction permissions granted alongside view access, per channel kind
KIND_PERMISSIONS: dict[str, tuple[str, ...]] = {
    "text": ("send_messages", "read_message_history"),
    "voice": ("connect", "speak"),
    "category": (),
}


@dataclass
class OverwriteRecord:
    """Allow/deny permission sets for a single role or member."""
    subject: Any
    allow: set[str] = field(default_factory=set)
    deny: set[str] = field(default_factory=set)

    @property
    def subject_id(self) -> int:
        return self.subject.id

    def grant(self, *permissions: str) -> None:
        for permission in permissions:
            if permission not in self.deny:
                self.allow.add(permission)

    def revoke(self, *permissions: str) -> None:
        for permission in permissions:
            self.allow.discard(permission)
            self.deny.add(permission)

    def as_values(self) -> dict[str, bool]:
        values = {name: True for name in self.allow}
        values.update({name: False for name in self.deny})
        return values

    def to_permission_overwrite(self) -> discord.PermissionOverwrite:
        return discord.PermissionOverwrite(**self.as_values())

    def describe(self) -> dict[str, Any]:
        return {
            "subject": getattr(self.subject, "name", str(self.subject_id)),
            "allow": sorted(self.allow),
            "deny": sorted(self.deny),
        }


def to_discord_overwrites(records: Iterable[OverwriteRecord]) -> dict[Any, discord.PermissionOverwrite]:
    """Convert records to the mapping accepted by discord.py create/edit calls."""
    return {record.subject: record.to_permission_overwrite() for record in records}


class PermissionOverwriteBuilder:
    """Builds overwrite records from an AccessConfig for a channel kind."""

    def __init__(self, resolver: EntityResolver):
        self.resolver = resolver

    def build(
        self,
        access: AccessConfig,
        kind: str,
        explicit_defaults: bool = False,
    ) -> list[OverwriteRecord]:
        """
        Build overwrite records.

        Roles that cannot be resolved are skipped with a warning. With
        explicit_defaults, private=False and read_only=False produce explicit
        allows for @everyone instead of leaving it untouched.
        """
        snapshot = self.resolver.snapshot
        everyone = snapshot.default_role
        records: dict[int, OverwriteRecord] = {}

        def record_for(subject: Any) -> OverwriteRecord:
            record = records.get(subject.id)
            if record is None:
                record = records[subject.id] = OverwriteRecord(subject)
            return record

        if access.private:
            record_for(everyone).revoke("view_channel")
            if snapshot.me is not None:
                record_for(snapshot.me).grant("view_channel")
        elif access.private is False and explicit_defaults:
            record_for(everyone).grant("view_channel")

        for name in access.role_access:
            role = self._find_role(name, "role_access")
            if role is not None:
                record_for(role).grant("view_channel", *KIND_PERMISSIONS.get(kind, ()))

        for name in access.role_deny:
            role = self._find_role(name, "role_deny")
            if role is not None:
                record_for(role).revoke("view_channel")

        if kind == "text":
            if access.read_only:
                record_for(everyone).revoke("send_messages")
                for name in access.read_only_except:
                    role = self._find_role(name, "read_only_except")
                    if role is not None:
                        record_for(role).grant("send_messages")
            elif access.read_only is False and explicit_defaults:
                record_for(everyone).grant("send_messages")

        return list(records.values())

    def _find_role(self, name: str, source: str) -> Any:
        role = self.resolver.find_role(name)
        if role is None:
            logger.warning(f"Role not found for {source}, skipping: {name}")
        return role
