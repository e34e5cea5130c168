"""Full reset: archive every mirror page, then recreate one per source bookmark."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from dropsync.sync.pacing import PacedExecutor
from dropsync.sync.sources import load_mirror_pages, load_source_items

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from dropsync.config import SyncConfig
    from dropsync.sync.models import SyncOptions
    from dropsync.sync.protocols import (
        MirrorClientProtocol,
        SnapshotStoreProtocol,
        SourceClientProtocol,
    )
    from dropsync.sync.reporter import RunReporter

logger = logging.getLogger(__name__)


class FullResetSyncer:
    def __init__(
        self,
        *,
        source: SourceClientProtocol,
        mirror: MirrorClientProtocol,
        cache: SnapshotStoreProtocol | None,
        config: SyncConfig,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._source = source
        self._mirror = mirror
        self._cache = cache
        self._config = config
        self._sleep = sleep

    async def sync(self, reporter: RunReporter, options: SyncOptions) -> None:
        executor = PacedExecutor(self._config, reporter, sleep=self._sleep)
        run_id = reporter.run.run_id
        reporter.info("Starting Reset & Full Sync")

        reporter.info("Fetching existing Notion pages for archiving...", level="fetching")
        pages = await load_mirror_pages(self._mirror)
        if pages:
            reporter.info(f"Archiving {len(pages)} existing Notion pages...", level="processing")
            archived, failed = await executor.run(
                pages,
                lambda page: self._mirror.archive(page.id),
                phase="archive",
                outcome="archived",
                title_of=lambda page: page.title or page.id,
            )
            reporter.info(
                f"Database reset complete: {archived} pages archived, {failed} failed",
                level="success",
            )
        else:
            reporter.info("Notion database is already empty")

        reporter.info("Fetching all Raindrop bookmarks...", level="fetching")
        items = await load_source_items(
            reporter,
            live=lambda: self._source.fetch_all(options.limit),
            cache=self._cache,
            use_cache=options.use_cache,
        )
        if options.limit is not None:
            items = items[: options.limit]

        logger.info(
            "full_reset_source_loaded",
            extra={"run_id": run_id, "count": len(items), "limit": options.limit},
        )
        if not items:
            reporter.info("No bookmarks to sync")
            return

        reporter.info(f"Found {len(items)} Raindrop bookmarks to sync", level="success")
        reporter.info(f"Creating {len(items)} new Notion pages...", level="processing")
        await executor.run(
            items,
            self._mirror.create,
            phase="create",
            outcome="added",
            title_of=lambda item: item.title or item.url,
        )
