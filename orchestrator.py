"""
Phased structure setup.

Roles, then categories, then channels. Each phase fans out through the
BulkOperationExecutor and fully settles before the next begins; between
phases the orchestrator waits a short settle delay and refreshes the
snapshot, so access rules in later phases can name roles and categories
created moments earlier.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Optional, Sequence

import discord

from bulk import BulkOperationExecutor
from models import (
    BulkResult,
    CategorySpec,
    ChannelSpec,
    RoleSpec,
    SetupServerStructureParams,
    ToolResult,
)

if TYPE_CHECKING:
    from architect import DiscordArchitect

logger = logging.getLogger("steward.orchestrator")

PHASE_KINDS = ("roles", "categories", "text_channels", "voice_channels")


class PhaseOrchestrator:
    """Sequences multi-object creation with a hard barrier between phases."""

    def __init__(
        self,
        architect: DiscordArchitect,
        executor: Optional[BulkOperationExecutor] = None,
        settle_delay: float = 0.5,
    ):
        self.architect = architect
        self.executor = executor or BulkOperationExecutor()
        self.settle_delay = settle_delay

    async def barrier(self) -> None:
        """Wait for the settle delay, then refresh the snapshot."""
        if self.settle_delay > 0:
            await asyncio.sleep(self.settle_delay)
        try:
            await self.architect.snapshot.refresh()
        except discord.HTTPException as e:
            logger.warning(f"Snapshot refresh failed, continuing with cached state: {e}")

    # ========================================================================
    # Roles
    # ========================================================================

    async def setup_roles(self, specs: Sequence[RoleSpec]) -> BulkResult:
        """Phase 0: create roles in parallel, settle, refresh, then reposition."""
        logger.info(f"Phase 0: creating {len(specs)} roles")
        result = await self.executor.run(specs, self.architect.create_role, "Created", "role")
        await self.barrier()

        created = []
        for item in sorted(result.succeeded, key=lambda i: i.index):
            role = self.architect.snapshot.get_role(item.payload.get("role_id"))
            if role is not None and not item.payload.get("already_existed"):
                created.append(role)
        result.data["repositioned"] = await self.reposition_roles(created)
        logger.info(f"Phase 0 complete: {result.summary}")
        return result

    async def reposition_roles(self, roles: Sequence[Any]) -> bool:
        """
        Place roles directly below the bot's top role, first role highest.

        Roles beyond the positions available under the bot are left where
        they are. Failure is logged and reported as False, never raised.
        """
        if not roles:
            return False

        top = self.architect.bot_top_role
        if top is None:
            logger.warning("Cannot reposition roles: bot top role unknown")
            return False

        max_position = top.position - 1
        positions = {
            role: max_position - index
            for index, role in enumerate(roles)
            if max_position - index >= 1
        }
        if not positions:
            logger.warning(f"No room below '{top.name}' to reposition roles")
            return False
        if len(positions) < len(roles):
            logger.warning(f"Only {len(positions)} of {len(roles)} roles fit below '{top.name}'")
        try:
            await self.architect.guild.edit_role_positions(
                positions=positions,
                reason=self.architect.settings.audit_reason,
            )
        except discord.HTTPException as e:
            logger.warning(f"Could not reposition roles: {e}")
            return False

        logger.info(f"Repositioned {len(positions)} roles below '{top.name}'")
        return True

    # ========================================================================
    # Whole Structure
    # ========================================================================

    async def _create_category(self, spec: CategorySpec) -> ToolResult:
        return await self.architect._create_channel("category", spec, None)

    def _channel_handler(self, kind: str):
        async def handler(spec: ChannelSpec) -> ToolResult:
            category = None
            if spec.category:
                category = self.architect.resolver.find_category(spec.category)
                if category is None:
                    logger.warning(
                        f"Category '{spec.category}' not found for {kind} channel "
                        f"'{spec.name}', creating at top level"
                    )
            return await self.architect._create_channel(kind, spec, category)
        return handler

    async def setup_structure(self, params: SetupServerStructureParams) -> ToolResult:
        """
        Create roles, categories and channels in three ordered phases.

        The result is successful when at least one object was created and
        reports created/failed counts per kind plus per-item details.
        """
        total = (
            len(params.roles) + len(params.categories)
            + len(params.text_channels) + len(params.voice_channels)
        )
        if total == 0:
            return ToolResult.fail("No items specified")

        logger.info(
            f"Setting up server structure: {len(params.roles)} roles, "
            f"{len(params.categories)} categories, {len(params.text_channels)} text, "
            f"{len(params.voice_channels)} voice"
        )

        phases: dict[str, BulkResult] = {}
        if params.roles:
            phases["roles"] = await self.setup_roles(params.roles)

        if params.categories:
            logger.info(f"Phase 1: creating {len(params.categories)} categories")
            phases["categories"] = await self.executor.run(
                params.categories, self._create_category, "Created", "category"
            )
            await self.barrier()
            logger.info(f"Phase 1 complete: {phases['categories'].summary}")

        channel_count = len(params.text_channels) + len(params.voice_channels)
        if channel_count:
            logger.info(f"Phase 2: creating {channel_count} channels")
            text, voice = await asyncio.gather(
                self.executor.run(
                    params.text_channels, self._channel_handler("text"),
                    "Created", "text channel",
                ),
                self.executor.run(
                    params.voice_channels, self._channel_handler("voice"),
                    "Created", "voice channel",
                ),
            )
            if params.text_channels:
                phases["text_channels"] = text
            if params.voice_channels:
                phases["voice_channels"] = voice
            logger.info("Phase 2 complete")

        created = {kind: len(phases[kind].succeeded) if kind in phases else 0 for kind in PHASE_KINDS}
        failed = {kind: len(phases[kind].failed) if kind in phases else 0 for kind in PHASE_KINDS}
        total_success = sum(created.values())
        total_failed = sum(failed.values())

        parts = [
            f"{count} {kind.replace('_', ' ')}" for kind, count in created.items() if count
        ]
        summary = f"Created {', '.join(parts) or 'nothing'}"
        if total_failed:
            summary += f" ({total_failed} failed)"

        self.architect._log_action(f"Server structure setup: {summary}", total_success > 0)
        return ToolResult(
            total_success > 0,
            summary,
            {
                "summary": summary,
                "created": created,
                "failed": failed,
                "details": {kind: result.to_dict() for kind, result in phases.items()},
                "roles_repositioned": phases["roles"].data.get("repositioned", False)
                if "roles" in phases else False,
            },
            error=None if total_success > 0 else summary,
        )
