"""Process-wide single-flight lock for sync runs."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable

    from dropsync.sync.models import SyncStrategy

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class LockHolder:
    run_id: str
    strategy: SyncStrategy
    acquired_at: datetime

    def elapsed_seconds(self, now: datetime) -> float:
        return max(0.0, (now - self.acquired_at).total_seconds())


class LockContentionError(Exception):
    """Another run holds the lock. Carries how long it has been running."""

    def __init__(self, holder_run_id: str, elapsed_seconds: float) -> None:
        self.holder_run_id = holder_run_id
        self.elapsed_seconds = elapsed_seconds
        super().__init__(
            f"Sync already running ({holder_run_id}, {int(elapsed_seconds)}s elapsed)"
        )


class SyncLock:
    """Mutex with an owner token.

    Acquire and release are plain synchronous calls: on a single event loop
    there is no suspension point between the idle check and taking ownership,
    so no ``asyncio.Lock`` is needed.
    """

    def __init__(
        self,
        stale_after: timedelta = timedelta(minutes=15),
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.stale_after = stale_after
        self._clock = clock or (lambda: datetime.now(UTC))
        self._holder: LockHolder | None = None

    @property
    def holder(self) -> LockHolder | None:
        return self._holder

    @property
    def locked(self) -> bool:
        return self._holder is not None

    def is_stale(self) -> bool:
        if self._holder is None:
            return False
        return self._clock() - self._holder.acquired_at > self.stale_after

    def acquire(self, run_id: str, strategy: SyncStrategy) -> LockHolder:
        now = self._clock()
        current = self._holder
        if current is not None:
            if now - current.acquired_at <= self.stale_after:
                raise LockContentionError(current.run_id, current.elapsed_seconds(now))
            logger.warning(
                "sync_lock_stale_override",
                extra={
                    "run_id": run_id,
                    "stale_run_id": current.run_id,
                    "held_seconds": round(current.elapsed_seconds(now)),
                },
            )

        self._holder = LockHolder(run_id=run_id, strategy=strategy, acquired_at=now)
        logger.info("sync_lock_acquired", extra={"run_id": run_id, "strategy": strategy.value})
        return self._holder

    def release(self, run_id: str) -> bool:
        """Release the lock if ``run_id`` still owns it."""
        if self._holder is None or self._holder.run_id != run_id:
            logger.info(
                "sync_lock_release_ignored",
                extra={
                    "run_id": run_id,
                    "holder_run_id": self._holder.run_id if self._holder else None,
                },
            )
            return False
        self._holder = None
        logger.info("sync_lock_released", extra={"run_id": run_id})
        return True

    def info(self) -> dict[str, Any]:
        holder = self._holder
        if holder is None:
            return {"isLocked": False, "runId": None, "strategy": None, "elapsedSeconds": 0}
        return {
            "isLocked": True,
            "runId": holder.run_id,
            "strategy": holder.strategy.value,
            "elapsedSeconds": round(holder.elapsed_seconds(self._clock())),
        }
