"""Loading source items for a run, from the snapshot cache or live."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from dropsync.adapters.http_client import ApiError
from dropsync.adapters.raindrop import filter_created_since
from dropsync.sync.errors import SyncFetchError
from dropsync.sync.snapshot_cache import CacheError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from datetime import datetime

    from dropsync.sync.models import BookmarkItem, MirrorPage
    from dropsync.sync.protocols import MirrorClientProtocol, SnapshotStoreProtocol
    from dropsync.sync.reporter import RunReporter

logger = logging.getLogger(__name__)


async def load_source_items(
    reporter: RunReporter,
    *,
    live: Callable[[], Awaitable[list[BookmarkItem]]],
    cache: SnapshotStoreProtocol | None,
    use_cache: bool,
    cutoff: datetime | None = None,
) -> list[BookmarkItem]:
    """Return source items, preferring a valid snapshot when ``use_cache`` is set.

    An unusable snapshot falls back to ``live``. A live failure raises
    ``SyncFetchError``.
    """
    if use_cache and cache is not None:
        try:
            snapshot = await cache.read()
        except CacheError as exc:
            logger.info(
                "sync_cache_unusable",
                extra={"run_id": reporter.run.run_id, "reason": exc.reason.value},
            )
            reporter.info(f"Cache unusable ({exc.message}), fetching live instead")
        else:
            items = snapshot.items
            if cutoff is not None:
                items = filter_created_since(items, cutoff)
            reporter.info(f"Loaded {len(items)} bookmarks from cache", level="success")
            return items

    try:
        return await live()
    except ApiError as exc:
        raise SyncFetchError("source", exc) from exc


async def load_mirror_pages(mirror: MirrorClientProtocol) -> list[MirrorPage]:
    try:
        return await mirror.fetch_all()
    except ApiError as exc:
        raise SyncFetchError("mirror", exc) from exc
