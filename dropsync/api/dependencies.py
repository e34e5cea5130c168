"""Service wiring for the dashboard API."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from fastapi import Request

from dropsync.adapters.http_client import RetryPolicy
from dropsync.adapters.notion import NotionClient
from dropsync.adapters.raindrop import RaindropClient
from dropsync.sync.broadcaster import ProgressBroadcaster
from dropsync.sync.orchestrator import SyncOrchestrator
from dropsync.sync.snapshot_cache import SnapshotCache

if TYPE_CHECKING:
    from dropsync.config import AppConfig

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    config: AppConfig
    raindrop: RaindropClient
    notion: NotionClient
    cache: SnapshotCache
    broadcaster: ProgressBroadcaster
    orchestrator: SyncOrchestrator
    background: set[asyncio.Task[None]] = field(default_factory=set)

    def start_background(self) -> None:
        sweeper = asyncio.create_task(
            self.cache.run_sweeper(self.config.cache.sweep_interval_minutes * 60),
            name="snapshot-sweeper",
        )
        self.background.add(sweeper)

    async def aclose(self) -> None:
        for task in self.background:
            task.cancel()
        for task in self.background:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self.background.clear()

        # Runs are never cancelled; shutdown waits for them to finish
        await self.orchestrator.wait_idle()
        self.broadcaster.close_all()
        await self.notion.aclose()
        await self.raindrop.aclose()
        logger.info("service_container_closed")


async def build_container(config: AppConfig) -> ServiceContainer:
    retry = RetryPolicy.from_config(config.retry)
    raindrop = RaindropClient(
        config.raindrop,
        retry=retry,
        max_pages=config.sync.max_pages,
        recent_fallback_limit=config.sync.recent_fallback_limit,
    )
    notion = NotionClient(config.notion, retry=retry, max_pages=config.sync.max_pages)
    await raindrop.open()
    await notion.open()

    cache = SnapshotCache(config.cache.directory, ttl=config.cache.ttl)
    broadcaster = ProgressBroadcaster(config.sync.viewer_queue_size)
    orchestrator = SyncOrchestrator(
        source=raindrop,
        mirror=notion,
        cache=cache,
        events=broadcaster,
        config=config.sync,
    )
    logger.info(
        "service_container_built",
        extra={"cache_dir": config.cache.directory, "cache_ttl_hours": config.cache.ttl_hours},
    )
    return ServiceContainer(
        config=config,
        raindrop=raindrop,
        notion=notion,
        cache=cache,
        broadcaster=broadcaster,
        orchestrator=orchestrator,
    )


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container
