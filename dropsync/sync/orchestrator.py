"""Sync orchestrator: single-flight runs over the two sync strategies.

A run moves LOCKED -> RUNNING -> COMPLETED | FAILED. Whatever the outcome it
always publishes a final ``CompleteEvent`` and releases the lock it holds.
Runs started through ``start_sync`` are owned by the orchestrator, so a
viewer disconnecting never cancels them.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from dropsync.core.logging_utils import generate_correlation_id
from dropsync.sync.errors import SyncFetchError
from dropsync.sync.full_reset import FullResetSyncer
from dropsync.sync.lock import LockContentionError, SyncLock
from dropsync.sync.models import RunStatus, SyncOptions, SyncRun, SyncStrategy
from dropsync.sync.reporter import RunReporter
from dropsync.sync.smart_incremental import SmartIncrementalSyncer

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from dropsync.config import SyncConfig
    from dropsync.sync.protocols import (
        EventSink,
        MirrorClientProtocol,
        SnapshotStoreProtocol,
        SourceClientProtocol,
    )
    from dropsync.sync.snapshot_cache import CacheStats

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class StartResult:
    accepted: bool
    run_id: str | None = None
    reason: str | None = None
    elapsed_seconds: float = 0.0

    def as_dict(self) -> dict[str, Any]:
        return {
            "accepted": self.accepted,
            "run_id": self.run_id,
            "reason": self.reason,
            "elapsed_seconds": round(self.elapsed_seconds),
        }


class SyncOrchestrator:
    def __init__(
        self,
        *,
        source: SourceClientProtocol,
        mirror: MirrorClientProtocol,
        cache: SnapshotStoreProtocol | None,
        events: EventSink,
        config: SyncConfig,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._source = source
        self._cache = cache
        self._events = events
        self._config = config
        self._clock = clock or (lambda: datetime.now(UTC))
        self.lock = SyncLock(config.stale_lock_after, clock=self._clock)

        self._syncers = {
            SyncStrategy.FULL_RESET: FullResetSyncer(
                source=source, mirror=mirror, cache=cache, config=config, sleep=sleep
            ),
            SyncStrategy.SMART_INCREMENTAL: SmartIncrementalSyncer(
                source=source,
                mirror=mirror,
                cache=cache,
                config=config,
                sleep=sleep,
                clock=self._clock,
            ),
        }
        self._current: SyncRun | None = None
        self._last_run: SyncRun | None = None
        self._tasks: set[asyncio.Task[SyncRun]] = set()

    @property
    def current_run(self) -> SyncRun | None:
        return self._current

    @property
    def last_run(self) -> SyncRun | None:
        return self._last_run

    def lock_info(self) -> dict[str, Any]:
        return self.lock.info()

    def status(self) -> dict[str, Any]:
        return {
            "running": self._current is not None,
            "current": self._current.as_dict() if self._current else None,
            "last": self._last_run.as_dict() if self._last_run else None,
            "lock": self.lock_info(),
        }

    # -- run lifecycle -------------------------------------------------------

    def _begin(self, strategy: SyncStrategy) -> SyncRun:
        run_id = generate_correlation_id()
        holder = self.lock.acquire(run_id, strategy)
        run = SyncRun(run_id=run_id, strategy=strategy, started_at=holder.acquired_at)
        self._current = run
        return run

    def start_sync(
        self, strategy: SyncStrategy, options: SyncOptions | None = None
    ) -> StartResult:
        """Start a run in the background, or report why it was rejected."""
        try:
            run = self._begin(strategy)
        except LockContentionError as exc:
            logger.info(
                "sync_start_rejected",
                extra={
                    "strategy": strategy.value,
                    "holder_run_id": exc.holder_run_id,
                    "elapsed_seconds": round(exc.elapsed_seconds),
                },
            )
            return StartResult(
                accepted=False,
                run_id=exc.holder_run_id,
                reason=str(exc),
                elapsed_seconds=exc.elapsed_seconds,
            )

        task = asyncio.create_task(
            self._execute(run, options or SyncOptions()), name=f"sync-{run.run_id}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return StartResult(accepted=True, run_id=run.run_id)

    async def run(self, strategy: SyncStrategy, options: SyncOptions | None = None) -> SyncRun:
        """Run to completion in the caller's task. Raises ``LockContentionError`` when busy."""
        run = self._begin(strategy)
        return await self._execute(run, options or SyncOptions())

    async def _execute(self, run: SyncRun, options: SyncOptions) -> SyncRun:
        reporter = RunReporter(run, self._events, lock_info=self.lock_info, clock=self._clock)
        syncer = self._syncers[run.strategy]
        started = time.perf_counter()
        run.status = RunStatus.RUNNING
        logger.info(
            "sync_run_started",
            extra={
                "run_id": run.run_id,
                "strategy": run.strategy.value,
                "limit": options.limit,
                "days_back": options.days_back,
                "use_cache": options.use_cache,
            },
        )

        try:
            await syncer.sync(reporter, options)
        except SyncFetchError as exc:
            run.status = RunStatus.FAILED
            run.error = str(exc)
            logger.error(
                "sync_run_failed",
                extra={"run_id": run.run_id, "side": exc.side, "error": str(exc.cause)},
            )
        except asyncio.CancelledError:
            run.status = RunStatus.FAILED
            run.error = "Sync run was cancelled"
            raise
        except Exception as exc:
            run.status = RunStatus.FAILED
            run.error = str(exc) or type(exc).__name__
            logger.exception("sync_run_crashed", extra={"run_id": run.run_id})
        else:
            run.status = RunStatus.COMPLETED
        finally:
            run.finished_at = self._clock()
            if run.status is RunStatus.FAILED:
                reporter.failed(run.error or "unknown error")
            reporter.complete()
            self.lock.release(run.run_id)
            if self._current is run:
                self._current = None
            self._last_run = run
            logger.info(
                "sync_run_finished",
                extra={
                    "run_id": run.run_id,
                    "strategy": run.strategy.value,
                    "status": run.status.value,
                    "duration_ms": int((time.perf_counter() - started) * 1000),
                    "counts": run.counts.model_dump(),
                },
            )
        return run

    async def wait_idle(self) -> None:
        """Wait for background runs started by ``start_sync``."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # -- snapshot ------------------------------------------------------------

    async def refresh_snapshot(self, limit: int | None = None) -> CacheStats:
        """Fetch the whole source collection and store it as the snapshot.

        Does not take the sync lock: it never touches the mirror.
        """
        if self._cache is None:
            msg = "No snapshot cache configured"
            raise RuntimeError(msg)
        items = await self._source.fetch_all(limit)
        stats = await self._cache.write(items)
        logger.info(
            "snapshot_refreshed",
            extra={"item_count": stats.item_count, "size_bytes": stats.size_bytes},
        )
        return stats
