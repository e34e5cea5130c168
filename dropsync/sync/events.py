"""Typed progress events published during a sync run.

Each variant carries only its own fields; ``to_wire()`` renders the JSON
object viewers receive over the event stream.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field

InfoLevel = Literal["info", "fetching", "processing", "success", "analysis", "summary", "waiting"]
ItemOutcome = Literal["added", "updated", "archived", "failed"]
Phase = Literal["archive", "create", "update"]


class _EventBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    run_id: str | None = None
    elapsed_seconds: float = 0.0
    message: str = ""
    counts: dict[str, int] | None = None
    lock_info: dict[str, Any] | None = None

    @property
    def wire_type(self) -> str:
        raise NotImplementedError

    def _extra_wire(self) -> dict[str, Any]:
        return {}

    def to_wire(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"message": self.message, "type": self.wire_type}
        if self.counts is not None:
            payload["counts"] = dict(self.counts)
        if self.lock_info is not None:
            payload["lockInfo"] = dict(self.lock_info)
        payload.update(self._extra_wire())
        return payload


class InfoEvent(_EventBase):
    kind: Literal["info"] = "info"
    level: InfoLevel = "info"

    @property
    def wire_type(self) -> str:
        return self.level


class ProgressEvent(_EventBase):
    kind: Literal["progress"] = "progress"
    phase: Phase
    done: int
    total: int

    @property
    def wire_type(self) -> str:
        return "processing"

    def _extra_wire(self) -> dict[str, Any]:
        return {"progress": {"phase": self.phase, "current": self.done, "total": self.total}}


class ItemResultEvent(_EventBase):
    kind: Literal["item"] = "item"
    outcome: ItemOutcome
    title: str = ""
    error: str | None = None

    @property
    def wire_type(self) -> str:
        return self.outcome


class EfficiencyEvent(_EventBase):
    kind: Literal["efficiency"] = "efficiency"
    percentage: int
    items_processed: int
    total_items: int

    @property
    def wire_type(self) -> str:
        return "efficiency"

    def _extra_wire(self) -> dict[str, Any]:
        return {
            "efficiency": {
                "percentage": self.percentage,
                "itemsProcessed": self.items_processed,
                "totalItems": self.total_items,
            }
        }


class FailedEvent(_EventBase):
    kind: Literal["failed"] = "failed"
    error: str

    @property
    def wire_type(self) -> str:
        return "failed"


class CompleteEvent(_EventBase):
    """Always the last event of a run, whether it completed or failed."""

    kind: Literal["complete"] = "complete"
    status: Literal["completed", "failed"] = "completed"
    strategy: str | None = None
    final_counts: dict[str, int] = Field(default_factory=dict)

    @property
    def wire_type(self) -> str:
        return "complete"

    def _extra_wire(self) -> dict[str, Any]:
        return {
            "complete": True,
            "status": self.status,
            "mode": self.strategy,
            "finalCounts": dict(self.final_counts),
            "duration": round(self.elapsed_seconds),
        }


SyncEvent = Annotated[
    InfoEvent | ProgressEvent | ItemResultEvent | EfficiencyEvent | FailedEvent | CompleteEvent,
    Field(discriminator="kind"),
]
