"""Protocol definitions (ports) for the sync engine.

The orchestrator and strategies only depend on these, which keeps them
independent of the concrete Raindrop and Notion HTTP clients.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from dropsync.sync.events import SyncEvent
    from dropsync.sync.models import BookmarkItem, MirrorPage, OperationResult, Snapshot
    from dropsync.sync.snapshot_cache import CacheStats


class SourceClientProtocol(Protocol):
    async def fetch_all(self, limit: int | None = None) -> list[BookmarkItem]: ...

    async def fetch_recent(self, hours_back: float) -> list[BookmarkItem]: ...

    async def count(self) -> int: ...


class MirrorClientProtocol(Protocol):
    async def fetch_all(self) -> list[MirrorPage]: ...

    async def count(self) -> int: ...

    async def create(self, item: BookmarkItem) -> OperationResult: ...

    async def update(self, page_id: str, item: BookmarkItem) -> OperationResult: ...

    async def archive(self, page_id: str) -> OperationResult: ...


class SnapshotStoreProtocol(Protocol):
    async def write(self, items: list[BookmarkItem]) -> CacheStats: ...

    async def read(self) -> Snapshot: ...


class EventSink(Protocol):
    def publish(self, event: SyncEvent) -> None: ...
