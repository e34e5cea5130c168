"""Per-run event emitter: stamps events with run context, publishes and logs them."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from dropsync.sync.events import (
    CompleteEvent,
    EfficiencyEvent,
    FailedEvent,
    InfoEvent,
    ItemResultEvent,
    ProgressEvent,
)
from dropsync.sync.models import RunStatus

if TYPE_CHECKING:
    from collections.abc import Callable

    from dropsync.sync.events import InfoLevel, ItemOutcome, Phase, SyncEvent
    from dropsync.sync.models import SyncRun
    from dropsync.sync.protocols import EventSink

logger = logging.getLogger(__name__)

_COUNTER_FOR_OUTCOME = {"added": "created", "updated": "updated", "archived": "archived"}


class RunReporter:
    def __init__(
        self,
        run: SyncRun,
        sink: EventSink,
        *,
        lock_info: Callable[[], dict[str, Any]] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.run = run
        self._sink = sink
        self._lock_info = lock_info
        self._clock = clock or (lambda: datetime.now(UTC))

    def _context(self) -> dict[str, Any]:
        return {
            "run_id": self.run.run_id,
            "elapsed_seconds": round(self.run.elapsed_seconds(self._clock()), 3),
            "counts": self.run.counts.model_dump(),
            "lock_info": self._lock_info() if self._lock_info else None,
        }

    def _emit(self, event: SyncEvent) -> SyncEvent:
        self._sink.publish(event)
        return event

    def info(self, message: str, level: InfoLevel = "info") -> None:
        logger.info(
            "sync_run_info",
            extra={"run_id": self.run.run_id, "strategy": self.run.strategy.value, "info": message},
        )
        self._emit(InfoEvent(message=message, level=level, **self._context()))

    def progress(self, phase: Phase, done: int, total: int) -> None:
        logger.debug(
            "sync_run_progress",
            extra={"run_id": self.run.run_id, "phase": phase, "done": done, "total": total},
        )
        self._emit(
            ProgressEvent(
                message=f"{phase.capitalize()} progress: {done}/{total}",
                phase=phase,
                done=done,
                total=total,
                **self._context(),
            )
        )

    def item_succeeded(self, outcome: ItemOutcome, title: str) -> None:
        counter = _COUNTER_FOR_OUTCOME[outcome]
        setattr(self.run.counts, counter, getattr(self.run.counts, counter) + 1)
        self._emit(
            ItemResultEvent(
                message=f"{outcome.capitalize()}: \"{title}\"",
                outcome=outcome,
                title=title,
                **self._context(),
            )
        )

    def item_failed(self, action: str, title: str, error: str | None) -> None:
        self.run.counts.failed += 1
        logger.warning(
            "sync_item_failed",
            extra={"run_id": self.run.run_id, "action": action, "title": title, "error": error},
        )
        self._emit(
            ItemResultEvent(
                message=f"Failed to {action}: \"{title}\"" + (f" ({error})" if error else ""),
                outcome="failed",
                title=title,
                error=error,
                **self._context(),
            )
        )

    def skipped(self, count: int) -> None:
        self.run.counts.skipped += count

    def efficiency(self, percentage: int, items_processed: int, total_items: int) -> None:
        self.run.efficiency = percentage
        self._emit(
            EfficiencyEvent(
                message=f"Processing {items_processed} operations ({percentage}% efficiency)",
                percentage=percentage,
                items_processed=items_processed,
                total_items=total_items,
                **self._context(),
            )
        )

    def failed(self, error: str) -> None:
        self._emit(FailedEvent(message=f"Sync failed: {error}", error=error, **self._context()))

    def complete(self) -> None:
        status = "failed" if self.run.status is RunStatus.FAILED else "completed"
        counts = self.run.counts
        if status == "completed":
            message = (
                f"Sync completed in {round(self.run.elapsed_seconds(self._clock()))}s: "
                f"{counts.created} created, {counts.updated} updated, "
                f"{counts.archived} archived, {counts.skipped} skipped, {counts.failed} failed"
            )
        else:
            message = f"Sync failed: {self.run.error}"
        self._emit(
            CompleteEvent(
                message=message,
                status=status,
                strategy=self.run.strategy.value,
                final_counts=counts.model_dump(),
                **self._context(),
            )
        )
