"""Serial, paced execution of mirror mutations.

Mutations are issued one at a time: a short pause after each item, a longer
one after a failure, and a long pause between batches. A failing item is
counted and reported, never propagated.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

    from dropsync.config import SyncConfig
    from dropsync.sync.events import ItemOutcome, Phase
    from dropsync.sync.models import OperationResult
    from dropsync.sync.reporter import RunReporter

logger = logging.getLogger(__name__)

T = TypeVar("T")


def chunked(items: Sequence[T], size: int) -> list[list[T]]:
    if size <= 0:
        msg = "chunk size must be positive"
        raise ValueError(msg)
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


class PacedExecutor:
    def __init__(
        self,
        config: SyncConfig,
        reporter: RunReporter,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.config = config
        self.reporter = reporter
        self._sleep = sleep

    async def _pause(self, seconds: float) -> None:
        if seconds > 0:
            await self._sleep(seconds)

    async def run(
        self,
        items: Sequence[T],
        operation: Callable[[T], Awaitable[OperationResult]],
        *,
        phase: Phase,
        outcome: ItemOutcome,
        title_of: Callable[[T], str],
        batched: bool = True,
    ) -> tuple[int, int]:
        """Apply ``operation`` to every item in order. Returns ``(succeeded, failed)``."""
        total = len(items)
        if not total:
            return 0, 0

        batch_size = self.config.batch_size if batched else total
        batches = chunked(items, batch_size)
        succeeded = failed = done = 0

        for batch_number, batch in enumerate(batches, start=1):
            if batched and len(batches) > 1:
                self.reporter.info(
                    f"Processing {phase} batch {batch_number}/{len(batches)} ({len(batch)} items)",
                    level="processing",
                )

            for item in batch:
                title = title_of(item)
                try:
                    result = await operation(item)
                except Exception as exc:
                    # Adapters return results; an exception here is still confined to this item
                    logger.exception(
                        "sync_item_unexpected_error",
                        extra={"run_id": self.reporter.run.run_id, "phase": phase},
                    )
                    ok, error = False, str(exc)
                else:
                    ok, error = result.ok, result.error

                done += 1
                if ok:
                    succeeded += 1
                    self.reporter.item_succeeded(outcome, title)
                    await self._pause(self.config.item_delay_seconds)
                else:
                    failed += 1
                    self.reporter.item_failed(phase, title, error)
                    await self._pause(self.config.error_delay_seconds)

                if done % self.config.progress_every == 0 and done < total:
                    self.reporter.progress(phase, done, total)

            if batch_number < len(batches):
                await self._pause(self.config.batch_delay_seconds)

        self.reporter.progress(phase, done, total)
        return succeeded, failed
