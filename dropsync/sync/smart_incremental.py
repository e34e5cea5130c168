"""Smart incremental sync: reconcile only recently created bookmarks."""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from dropsync.sync.diff import reconcile
from dropsync.sync.pacing import PacedExecutor
from dropsync.sync.sources import load_mirror_pages, load_source_items

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from dropsync.config import SyncConfig
    from dropsync.sync.models import BookmarkItem, MirrorPage, OperationResult, SyncOptions
    from dropsync.sync.protocols import (
        MirrorClientProtocol,
        SnapshotStoreProtocol,
        SourceClientProtocol,
    )
    from dropsync.sync.reporter import RunReporter

logger = logging.getLogger(__name__)


class SmartIncrementalSyncer:
    def __init__(
        self,
        *,
        source: SourceClientProtocol,
        mirror: MirrorClientProtocol,
        cache: SnapshotStoreProtocol | None,
        config: SyncConfig,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._source = source
        self._mirror = mirror
        self._cache = cache
        self._config = config
        self._sleep = sleep
        self._clock = clock or (lambda: datetime.now(UTC))

    async def sync(self, reporter: RunReporter, options: SyncOptions) -> None:
        days_back = options.days_back or self._config.days_back
        cutoff = self._clock() - timedelta(days=days_back)
        run_id = reporter.run.run_id

        reporter.info(f"Starting Smart Incremental Sync (last {days_back} days)")
        reporter.info(
            f"Fetching recent Raindrop bookmarks (last {days_back} days)...", level="fetching"
        )
        items = await load_source_items(
            reporter,
            live=lambda: self._source.fetch_recent(days_back * 24),
            cache=self._cache,
            use_cache=options.use_cache,
            cutoff=cutoff,
        )
        if options.limit is not None:
            items = items[: options.limit]

        reporter.info(f"Found {len(items)} recent Raindrop bookmarks", level="success")
        if not items:
            reporter.info("No recent bookmarks found. Everything is up to date!")
            return

        reporter.info("Building Notion lookup...", level="processing")
        pages = await load_mirror_pages(self._mirror)
        reporter.info(f"Built lookup maps from {len(pages)} Notion pages", level="success")

        plan = reconcile(items, pages)
        reporter.skipped(len(plan.to_skip))
        logger.info(
            "smart_sync_plan",
            extra={
                "run_id": run_id,
                "to_create": len(plan.to_create),
                "to_update": len(plan.to_update),
                "to_skip": len(plan.to_skip),
                "efficiency": plan.efficiency,
            },
        )
        reporter.info(
            f"Smart Diff complete: {len(plan.to_create)} to add, "
            f"{len(plan.to_update)} to update, {len(plan.to_skip)} already synced",
            level="analysis",
        )
        reporter.efficiency(plan.efficiency, plan.operations, plan.total)

        if not plan.operations:
            reporter.info("All recent items already synced! No changes needed.")
            return

        executor = PacedExecutor(self._config, reporter, sleep=self._sleep)
        if plan.to_create:
            reporter.info(f"Creating {len(plan.to_create)} new pages...", level="processing")
            await executor.run(
                plan.to_create,
                self._mirror.create,
                phase="create",
                outcome="added",
                title_of=_item_title,
                batched=False,
            )

        if plan.to_update:
            reporter.info(f"Updating {len(plan.to_update)} existing pages...", level="processing")
            await executor.run(
                plan.to_update,
                self._apply_update,
                phase="update",
                outcome="updated",
                title_of=lambda pair: _item_title(pair[0]),
                batched=False,
            )

    async def _apply_update(self, pair: tuple[BookmarkItem, MirrorPage]) -> OperationResult:
        item, page = pair
        return await self._mirror.update(page.id, item)


def _item_title(item: BookmarkItem) -> str:
    return item.title or item.url
