"""On-disk snapshot of the source collection with a freshness TTL.

A snapshot is two co-located files: the bulk item data and a small metadata
record. Both are written via temp-file-then-rename, data first and metadata
last, so a reader that finds fresh metadata always finds complete data.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
import time
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import TypeAdapter, ValidationError

from dropsync.sync.models import BookmarkItem, Snapshot

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

logger = logging.getLogger(__name__)

DATA_FILENAME = "bookmarks.json"
METADATA_FILENAME = "metadata.json"

_ITEMS_ADAPTER = TypeAdapter(list[BookmarkItem])


class CacheErrorReason(str, Enum):
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    WRITE_FAILURE = "write_failure"
    CORRUPT = "corrupt"


class CacheError(Exception):
    def __init__(self, reason: CacheErrorReason, message: str) -> None:
        super().__init__(message)
        self.reason = reason
        self.message = message


@dataclass(frozen=True, slots=True)
class CacheStats:
    item_count: int
    size_bytes: int
    duration_ms: int


@dataclass(frozen=True, slots=True)
class CacheStatus:
    exists: bool
    valid: bool
    age_minutes: float | None = None
    item_count: int | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "exists": self.exists,
            "valid": self.valid,
            "age_minutes": self.age_minutes,
            "item_count": self.item_count,
        }


def _atomic_write(path: Path, payload: bytes) -> None:
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(payload)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


class SnapshotCache:
    """File-backed cache of the full Raindrop collection."""

    def __init__(
        self,
        directory: str | Path,
        *,
        ttl: timedelta = timedelta(hours=6),
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.directory = Path(directory)
        self.ttl = ttl
        self._clock = clock or (lambda: datetime.now(UTC))

    @property
    def data_path(self) -> Path:
        return self.directory / DATA_FILENAME

    @property
    def metadata_path(self) -> Path:
        return self.directory / METADATA_FILENAME

    # -- write ---------------------------------------------------------------

    async def write(self, items: Sequence[BookmarkItem]) -> CacheStats:
        return await asyncio.to_thread(self._write_sync, list(items))

    def _write_sync(self, items: list[BookmarkItem]) -> CacheStats:
        started = time.perf_counter()
        captured_at = self._clock()
        data = _ITEMS_ADAPTER.dump_json(items)
        metadata = json.dumps(
            {"captured_at": captured_at.isoformat(), "item_count": len(items)}
        ).encode("utf-8")

        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            _atomic_write(self.data_path, data)
            _atomic_write(self.metadata_path, metadata)
        except OSError as exc:
            logger.error(
                "snapshot_write_failed",
                extra={"directory": str(self.directory), "error": str(exc)},
            )
            raise CacheError(
                CacheErrorReason.WRITE_FAILURE, f"Could not write snapshot: {exc}"
            ) from exc

        stats = CacheStats(
            item_count=len(items),
            size_bytes=len(data) + len(metadata),
            duration_ms=int((time.perf_counter() - started) * 1000),
        )
        logger.info(
            "snapshot_written",
            extra={
                "item_count": stats.item_count,
                "size_bytes": stats.size_bytes,
                "duration_ms": stats.duration_ms,
            },
        )
        return stats

    # -- read ----------------------------------------------------------------

    async def read(self) -> Snapshot:
        """Return the snapshot, or raise ``CacheError`` (NOT_FOUND, EXPIRED, CORRUPT)."""
        return await asyncio.to_thread(self._read_sync)

    def _read_metadata(self) -> tuple[datetime, int]:
        if not self.metadata_path.exists() or not self.data_path.exists():
            raise CacheError(CacheErrorReason.NOT_FOUND, "No snapshot has been captured")
        try:
            raw = json.loads(self.metadata_path.read_text(encoding="utf-8"))
            captured_at = datetime.fromisoformat(raw["captured_at"])
            item_count = int(raw["item_count"])
        except FileNotFoundError as exc:
            raise CacheError(CacheErrorReason.NOT_FOUND, "Snapshot disappeared") from exc
        except (OSError, ValueError, KeyError, TypeError) as exc:
            msg = f"Unreadable snapshot metadata: {exc}"
            raise CacheError(CacheErrorReason.CORRUPT, msg) from exc
        if captured_at.tzinfo is None:
            captured_at = captured_at.replace(tzinfo=UTC)
        return captured_at, item_count

    def _read_sync(self) -> Snapshot:
        captured_at, item_count = self._read_metadata()
        age = self._clock() - captured_at
        if age > self.ttl:
            raise CacheError(
                CacheErrorReason.EXPIRED,
                f"Snapshot is {int(age.total_seconds() // 60)} minutes old "
                f"(ttl {int(self.ttl.total_seconds() // 60)} minutes)",
            )

        try:
            items = _ITEMS_ADAPTER.validate_json(self.data_path.read_bytes())
        except FileNotFoundError as exc:
            raise CacheError(CacheErrorReason.NOT_FOUND, "Snapshot data disappeared") from exc
        except (OSError, ValidationError) as exc:
            raise CacheError(CacheErrorReason.CORRUPT, f"Unreadable snapshot data: {exc}") from exc

        if len(items) != item_count:
            raise CacheError(
                CacheErrorReason.CORRUPT,
                f"Snapshot holds {len(items)} items but metadata says {item_count}",
            )

        return Snapshot(
            items=items,
            captured_at=captured_at,
            ttl_seconds=self.ttl.total_seconds(),
        )

    # -- introspection / maintenance -----------------------------------------

    async def status(self) -> CacheStatus:
        return await asyncio.to_thread(self._status_sync)

    def _status_sync(self) -> CacheStatus:
        try:
            captured_at, item_count = self._read_metadata()
        except CacheError as exc:
            if exc.reason is CacheErrorReason.NOT_FOUND:
                return CacheStatus(exists=False, valid=False)
            return CacheStatus(exists=True, valid=False)
        age = self._clock() - captured_at
        return CacheStatus(
            exists=True,
            valid=age <= self.ttl,
            age_minutes=round(max(age.total_seconds(), 0.0) / 60, 1),
            item_count=item_count,
        )

    async def clear(self) -> None:
        await asyncio.to_thread(self._clear_sync)

    def _clear_sync(self) -> None:
        # Metadata first so a concurrent reader never sees metadata without data
        self.metadata_path.unlink(missing_ok=True)
        self.data_path.unlink(missing_ok=True)
        logger.info("snapshot_cleared", extra={"directory": str(self.directory)})

    async def sweep(self) -> bool:
        """Delete the snapshot if it has expired. Returns True when something was removed."""
        status = await self.status()
        if status.exists and not status.valid:
            logger.info(
                "snapshot_expired_swept",
                extra={"age_minutes": status.age_minutes, "item_count": status.item_count},
            )
            await self.clear()
            return True
        return False

    async def run_sweeper(self, interval_seconds: float) -> None:
        """Sweep expired snapshots forever; meant to run as a background task."""
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                await self.sweep()
            except OSError as exc:
                logger.warning("snapshot_sweep_failed", extra={"error": str(exc)})
