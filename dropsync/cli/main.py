"""Command-line entry point, suitable for cron.

Example crontab entry (smart sync every hour):
    0 * * * * cd /srv/dropsync && .venv/bin/dropsync sync --mode smart >> /var/log/dropsync.log 2>&1

Usage:
    dropsync sync [--mode smart|reset] [--days-back N] [--limit N] [--use-cache] [--dry-run]
    dropsync counts
    dropsync cache {refresh,status,clear} [--limit N]
    dropsync serve [--host HOST] [--port PORT]
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from contextlib import AsyncExitStack
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from dropsync.adapters.http_client import ApiError, RetryPolicy
from dropsync.adapters.notion import NotionClient
from dropsync.adapters.raindrop import RaindropClient
from dropsync.config import load_config
from dropsync.core.logging_utils import generate_correlation_id, setup_json_logging
from dropsync.sync.diff import reconcile
from dropsync.sync.errors import SyncFetchError
from dropsync.sync.lock import LockContentionError
from dropsync.sync.models import RunStatus, SyncOptions, SyncRun, SyncStrategy
from dropsync.sync.orchestrator import SyncOrchestrator
from dropsync.sync.reporter import RunReporter
from dropsync.sync.snapshot_cache import CacheError, SnapshotCache
from dropsync.sync.sources import load_mirror_pages, load_source_items

if TYPE_CHECKING:
    from dropsync.config import AppConfig
    from dropsync.sync.events import SyncEvent

logger = logging.getLogger("dropsync.cli")


class ConsoleProgress:
    """Event sink that prints each event's message."""

    def __init__(self, stream=None) -> None:
        self._stream = stream or sys.stdout

    def publish(self, event: SyncEvent) -> None:
        message = event.to_wire().get("message")
        if message:
            print(message, file=self._stream, flush=True)


def _clients(config: AppConfig) -> tuple[RaindropClient, NotionClient]:
    retry = RetryPolicy.from_config(config.retry)
    raindrop = RaindropClient(
        config.raindrop,
        retry=retry,
        max_pages=config.sync.max_pages,
        recent_fallback_limit=config.sync.recent_fallback_limit,
    )
    notion = NotionClient(config.notion, retry=retry, max_pages=config.sync.max_pages)
    return raindrop, notion


async def run_sync(config: AppConfig, args: argparse.Namespace) -> int:
    """Run one sync to completion.

    Returns:
        Exit code (0 when the run completed, 1 when it failed, 2 when busy)
    """
    strategy = SyncStrategy.parse(args.mode)
    options = SyncOptions(limit=args.limit, days_back=args.days_back, use_cache=args.use_cache)
    cache = SnapshotCache(config.cache.directory, ttl=config.cache.ttl)
    raindrop, notion = _clients(config)

    async with AsyncExitStack() as stack:
        await stack.enter_async_context(raindrop)
        await stack.enter_async_context(notion)

        if args.dry_run:
            return await _preview(config, raindrop, notion, cache, options)

        orchestrator = SyncOrchestrator(
            source=raindrop,
            mirror=notion,
            cache=cache,
            events=ConsoleProgress(),
            config=config.sync,
        )
        try:
            run = await orchestrator.run(strategy, options)
        except LockContentionError as exc:
            logger.warning("sync_already_running", extra={"holder_run_id": exc.holder_run_id})
            return 2

    counts = run.counts
    print(
        f"\n{run.strategy.value}: {run.status.value} in {round(run.elapsed_seconds())}s "
        f"(created {counts.created}, updated {counts.updated}, archived {counts.archived}, "
        f"skipped {counts.skipped}, failed {counts.failed})"
    )
    return 0 if run.status is RunStatus.COMPLETED else 1


async def _preview(
    config: AppConfig,
    raindrop: RaindropClient,
    notion: NotionClient,
    cache: SnapshotCache,
    options: SyncOptions,
) -> int:
    days_back = options.days_back or config.sync.days_back
    run = SyncRun(
        run_id=f"dry-run-{generate_correlation_id()}",
        strategy=SyncStrategy.SMART_INCREMENTAL,
        started_at=datetime.now(UTC),
    )
    reporter = RunReporter(run, ConsoleProgress())
    try:
        items = await load_source_items(
            reporter,
            live=lambda: raindrop.fetch_recent(days_back * 24),
            cache=cache,
            use_cache=options.use_cache,
            cutoff=run.started_at - timedelta(days=days_back),
        )
        pages = await load_mirror_pages(notion)
    except SyncFetchError as exc:
        logger.error("preview_fetch_failed", extra={"side": exc.side, "error": str(exc.cause)})
        return 1
    if options.limit is not None:
        items = items[: options.limit]

    plan = reconcile(items, pages)
    print(f"\n=== Smart Sync Preview (DRY RUN, last {days_back} days) ===\n")
    print(f"Recent bookmarks: {plan.total}")
    print(f"Would create: {len(plan.to_create)}")
    for item in plan.to_create[:10]:
        print(f"  + {(item.title or '(no title)')[:60]}  {item.url[:60]}")
    print(f"Would update: {len(plan.to_update)}")
    for item, page in plan.to_update[:10]:
        print(f"  ~ {(item.title or '(no title)')[:60]}  (page {page.id})")
    print(f"Already synced: {len(plan.to_skip)}")
    print(f"Efficiency: {plan.efficiency}%")
    print("\nRun without --dry-run to execute the sync.")
    return 0


async def show_counts(config: AppConfig) -> int:
    raindrop, notion = _clients(config)
    async with raindrop, notion:
        try:
            raindrop_total, notion_total = await asyncio.gather(raindrop.count(), notion.count())
        except ApiError as exc:
            logger.error("count_failed", extra={"error": str(exc)})
            return 1
    diff = abs(raindrop_total - notion_total)
    in_sync = diff <= config.sync.tolerance
    print(f"Raindrop: {raindrop_total}")
    print(f"Notion:   {notion_total}")
    print(f"Diff:     {diff} ({'in sync' if in_sync else 'out of sync'})")
    return 0


async def manage_cache(config: AppConfig, args: argparse.Namespace) -> int:
    cache = SnapshotCache(config.cache.directory, ttl=config.cache.ttl)

    if args.cache_command == "status":
        status = await cache.status()
        if not status.exists:
            print("No snapshot")
        else:
            state = "valid" if status.valid else "expired"
            print(
                f"Snapshot: {status.item_count} items, "
                f"{status.age_minutes} minutes old ({state})"
            )
        return 0

    if args.cache_command == "clear":
        await cache.clear()
        print("Snapshot cleared")
        return 0

    raindrop, _ = _clients(config)
    async with raindrop:
        try:
            items = await raindrop.fetch_all(args.limit)
            stats = await cache.write(items)
        except (ApiError, CacheError) as exc:
            logger.error("cache_refresh_failed", extra={"error": str(exc)})
            return 1
    print(f"Snapshot written: {stats.item_count} items, {stats.size_bytes} bytes")
    return 0


def serve(config: AppConfig, args: argparse.Namespace) -> int:
    import uvicorn

    from dropsync.api.main import create_app

    uvicorn.run(create_app(config), host=args.host, port=args.port, log_config=None)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="dropsync", description="Raindrop.io to Notion sync")
    subparsers = parser.add_subparsers(dest="command", required=True)

    sync_parser = subparsers.add_parser("sync", help="Run one sync")
    sync_parser.add_argument("--mode", default="smart", help="smart (default), reset or full")
    sync_parser.add_argument("--days-back", type=int, default=None, help="Recent window in days")
    sync_parser.add_argument("--limit", type=int, default=None, help="Maximum items to process")
    sync_parser.add_argument(
        "--use-cache", action="store_true", help="Read bookmarks from the snapshot cache"
    )
    sync_parser.add_argument(
        "--dry-run", action="store_true", help="Show what a smart sync would change"
    )

    subparsers.add_parser("counts", help="Compare Raindrop and Notion totals")

    cache_parser = subparsers.add_parser("cache", help="Manage the snapshot cache")
    cache_parser.add_argument("cache_command", choices=["refresh", "status", "clear"])
    cache_parser.add_argument("--limit", type=int, default=None)

    serve_parser = subparsers.add_parser("serve", help="Run the dashboard API")
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=3000)
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config()
    except RuntimeError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 1
    setup_json_logging(config.runtime.log_level, log_file=config.runtime.log_file)

    if args.command == "sync":
        try:
            SyncStrategy.parse(args.mode)
        except ValueError as exc:
            parser.error(str(exc))
        return asyncio.run(run_sync(config, args))
    if args.command == "counts":
        return asyncio.run(show_counts(config))
    if args.command == "cache":
        return asyncio.run(manage_cache(config, args))
    return serve(config, args)


if __name__ == "__main__":
    sys.exit(main())
