"""
Bulk fan-out/fan-in.

Runs one single-item handler per input concurrently, waits for every item
to settle and partitions the outcomes. A failing or raising item never
cancels or blocks its siblings, and nothing already applied is rolled back.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Sequence

from models import BulkFailure, BulkItem, BulkResult, ToolResult

logger = logging.getLogger("steward.bulk")

ItemHandler = Callable[[Any], Awaitable[ToolResult]]


def pluralize(noun: str, count: int) -> str:
    if count == 1:
        return noun
    if noun.endswith(("s", "x", "ch", "sh")):
        return noun + "es"
    if noun.endswith("y") and noun[-2:-1] not in "aeiou":
        return noun[:-1] + "ies"
    return noun + "s"


class BulkOperationExecutor:
    """Settle-all executor shared by every bulk tool."""

    async def _settle(self, index: int, item: Any, handler: ItemHandler) -> ToolResult:
        try:
            return await handler(item)
        except Exception as e:
            logger.exception(f"Bulk item {index} raised")
            return ToolResult.fail(f"{type(e).__name__}: {e}")

    async def run(
        self,
        items: Sequence[Any],
        handler: ItemHandler,
        verb: str = "Processed",
        noun: str = "item",
    ) -> BulkResult:
        """
        Run handler over items concurrently.

        Returns a BulkResult whose succeeded/failed entries keep each item's
        index and input. The summary reads like "Created 4 roles, 1 failed".
        """
        if not items:
            return BulkResult(summary=f"No {pluralize(noun, 0)} specified")

        logger.info(f"{verb} {len(items)} {pluralize(noun, len(items))} in parallel")
        results = await asyncio.gather(
            *(self._settle(index, item, handler) for index, item in enumerate(items))
        )

        bulk = BulkResult()
        for index, (item, result) in enumerate(zip(items, results)):
            if result.success:
                bulk.succeeded.append(
                    BulkItem(index, item, {"message": result.message, **result.data})
                )
            else:
                bulk.failed.append(
                    BulkFailure(index, item, result.error or result.message, dict(result.data))
                )

        count = len(bulk.succeeded)
        bulk.summary = f"{verb} {count} {pluralize(noun, count)}, {len(bulk.failed)} failed"
        logger.info(bulk.summary)
        return bulk
