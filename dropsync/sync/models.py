"""Domain models shared by the adapters, the diff engine and the orchestrator."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime  # noqa: TC003 - Pydantic needs datetime at runtime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class BookmarkItem(BaseModel):
    """A single bookmark from the source collection. Never mutated by the engine."""

    model_config = ConfigDict(frozen=True)

    id: str
    url: str = ""
    title: str = ""
    tags: tuple[str, ...] = ()
    created_at: datetime | None = None
    image_url: str | None = None

    @field_validator("tags", mode="before")
    @classmethod
    def _coerce_tags(cls, value: Any) -> tuple[str, ...]:
        if not value:
            return ()
        return tuple(str(tag) for tag in value if str(tag).strip())

    @field_validator("created_at", mode="after")
    @classmethod
    def _ensure_aware(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value


# Notion rejects rich text content longer than this
MAX_TEXT_LENGTH = 2000
UNTITLED = "Untitled"


def mirror_title(item: BookmarkItem) -> str:
    """The title as it is written to the mirror."""
    return (item.title or UNTITLED)[:MAX_TEXT_LENGTH]


class MirrorPage(BaseModel):
    """A page in the mirror database."""

    model_config = ConfigDict(frozen=True)

    id: str
    url: str = ""
    title: str = ""
    tags: tuple[str, ...] = ()
    archived: bool = False

    @field_validator("tags", mode="before")
    @classmethod
    def _coerce_tags(cls, value: Any) -> tuple[str, ...]:
        if not value:
            return ()
        return tuple(str(tag) for tag in value)


class SyncStrategy(str, Enum):
    FULL_RESET = "full-reset"
    SMART_INCREMENTAL = "smart-incremental"

    @classmethod
    def parse(cls, mode: str | None) -> SyncStrategy:
        """Map the user-facing mode names ("reset", "full", "smart") onto a strategy."""
        normalized = (mode or "smart").strip().lower()
        if normalized in {"reset", "full", "full-reset", "full_reset"}:
            return cls.FULL_RESET
        if normalized in {"smart", "incremental", "smart-incremental", "smart_incremental"}:
            return cls.SMART_INCREMENTAL
        msg = f"Unknown sync mode: {mode!r}"
        raise ValueError(msg)


class RunStatus(str, Enum):
    LOCKED = "locked"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def finished(self) -> bool:
        return self in {RunStatus.COMPLETED, RunStatus.FAILED}


class SyncCounts(BaseModel):
    """Mutable outcome tally for one run."""

    created: int = 0
    updated: int = 0
    archived: int = 0
    skipped: int = 0
    failed: int = 0

    @property
    def total_operations(self) -> int:
        return self.created + self.updated + self.archived


@dataclass(frozen=True, slots=True)
class SyncOptions:
    limit: int | None = None
    days_back: int | None = None
    use_cache: bool = False


@dataclass(slots=True)
class SyncRun:
    run_id: str
    strategy: SyncStrategy
    started_at: datetime
    counts: SyncCounts = field(default_factory=SyncCounts)
    status: RunStatus = RunStatus.LOCKED
    error: str | None = None
    efficiency: int | None = None
    finished_at: datetime | None = None

    def elapsed_seconds(self, now: datetime | None = None) -> float:
        end = self.finished_at or now or datetime.now(UTC)
        return max(0.0, (end - self.started_at).total_seconds())

    def as_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "strategy": self.strategy.value,
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "elapsed_seconds": round(self.elapsed_seconds()),
            "counts": self.counts.model_dump(),
            "efficiency": self.efficiency,
            "error": self.error,
        }


@dataclass(frozen=True, slots=True)
class OperationResult:
    """Outcome of one mirror mutation. Adapters return this instead of raising."""

    ok: bool
    page: MirrorPage | None = None
    error: str | None = None
    status_code: int | None = None

    @classmethod
    def success(cls, page: MirrorPage | None = None) -> OperationResult:
        return cls(ok=True, page=page)

    @classmethod
    def failure(cls, error: str, status_code: int | None = None) -> OperationResult:
        return cls(ok=False, error=error, status_code=status_code)


class Snapshot(BaseModel):
    """A cached copy of the source collection, valid only while younger than its TTL."""

    items: list[BookmarkItem] = Field(default_factory=list)
    captured_at: datetime
    ttl_seconds: float

    def age_seconds(self, now: datetime) -> float:
        return max(0.0, (now - self.captured_at).total_seconds())

    def is_valid(self, now: datetime) -> bool:
        return self.age_seconds(now) <= self.ttl_seconds
