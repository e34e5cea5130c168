"""Tests for sync runs: strategies, pacing, reporting and the single-flight lock."""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from dropsync.sync.events import CompleteEvent, FailedEvent, ItemResultEvent, ProgressEvent
from dropsync.sync.lock import LockContentionError
from dropsync.sync.models import RunStatus, SyncOptions, SyncRun, SyncStrategy
from dropsync.sync.orchestrator import SyncOrchestrator
from dropsync.sync.pacing import PacedExecutor, chunked
from dropsync.sync.reporter import RunReporter
from dropsync.sync.snapshot_cache import CacheStats, SnapshotCache
from tests.conftest import (
    NOW,
    FakeMirror,
    FakeSource,
    RecordingSink,
    make_item,
    make_page,
)

RESET = SyncStrategy.FULL_RESET
SMART = SyncStrategy.SMART_INCREMENTAL


def _items(n: int) -> list:
    return [make_item(str(i), f"https://{i}.example.com", f"Item {i}") for i in range(1, n + 1)]


def _orchestrator(source, mirror, sync_config, clock, *, cache=None, sink=None):
    return SyncOrchestrator(
        source=source,
        mirror=mirror,
        cache=cache,
        events=sink or RecordingSink(),
        config=sync_config,
        clock=clock,
    )


class _Sleeps:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def test_chunked():
    assert chunked([1, 2, 3, 4, 5], 2) == [[1, 2], [3, 4], [5]]
    assert chunked([], 3) == []
    with pytest.raises(ValueError):
        chunked([1], 0)


@pytest.mark.asyncio
async def test_paced_executor_pauses_and_batches(sync_config):
    config = sync_config.model_copy(
        update={
            "batch_size": 2,
            "item_delay_seconds": 0.1,
            "error_delay_seconds": 0.5,
            "batch_delay_seconds": 2.0,
        }
    )
    sink = RecordingSink()
    reporter = RunReporter(SyncRun(run_id="r1", strategy=RESET, started_at=NOW), sink)
    sleeps = _Sleeps()
    mirror = FakeMirror(fail_titles={"Item 2"})

    succeeded, failed = await PacedExecutor(config, reporter, sleep=sleeps).run(
        _items(3), mirror.create, phase="create", outcome="added", title_of=lambda i: i.title
    )

    assert (succeeded, failed) == (2, 1)
    assert sleeps.delays == [0.1, 0.5, 2.0, 0.1]
    assert reporter.run.counts.created == 2
    assert reporter.run.counts.failed == 1
    batch_messages = [e.message for e in sink.events if e.kind == "info"]
    assert batch_messages == [
        "Processing create batch 1/2 (2 items)",
        "Processing create batch 2/2 (1 items)",
    ]
    final = sink.events[-1]
    assert isinstance(final, ProgressEvent)
    assert (final.done, final.total) == (3, 3)


@pytest.mark.asyncio
async def test_full_reset_archives_then_recreates(sync_config, clock):
    pages = [make_page(f"p{i}", f"https://old{i}.example.com", f"Old {i}") for i in range(12)]
    source = FakeSource(_items(7))
    mirror = FakeMirror(pages)
    sink = RecordingSink()

    run = await _orchestrator(source, mirror, sync_config, clock, sink=sink).run(RESET)

    assert run.status is RunStatus.COMPLETED
    assert run.counts.archived == 12
    assert run.counts.created == 7
    assert run.counts.failed == 0
    assert sorted(mirror.archived) == sorted(p.id for p in pages)
    assert len(await mirror.fetch_all()) == 7
    complete = sink.events[-1]
    assert isinstance(complete, CompleteEvent)
    assert complete.final_counts["archived"] == 12
    assert complete.to_wire()["mode"] == "full-reset"


@pytest.mark.asyncio
async def test_full_reset_respects_limit(sync_config, clock):
    source = FakeSource(_items(10))
    mirror = FakeMirror()

    run = await _orchestrator(source, mirror, sync_config, clock).run(
        RESET, SyncOptions(limit=4)
    )

    assert run.counts.created == 4
    assert source.calls == [("fetch_all", 4)]


@pytest.mark.asyncio
async def test_failed_item_does_not_stop_the_run(sync_config, clock):
    mirror = FakeMirror(fail_titles={"Item 3"})
    sink = RecordingSink()

    run = await _orchestrator(FakeSource(_items(5)), mirror, sync_config, clock, sink=sink).run(
        RESET
    )

    assert run.status is RunStatus.COMPLETED
    assert run.counts.created == 4
    assert run.counts.failed == 1
    assert mirror.attempted == [f"Item {i}" for i in range(1, 6)]
    failures = [e for e in sink.events if isinstance(e, ItemResultEvent) and e.outcome == "failed"]
    assert [e.title for e in failures] == ["Item 3"]


@pytest.mark.asyncio
async def test_raising_operation_is_confined_to_its_item(sync_config, clock):
    mirror = FakeMirror(raise_titles={"Item 2"})

    run = await _orchestrator(FakeSource(_items(3)), mirror, sync_config, clock).run(RESET)

    assert run.status is RunStatus.COMPLETED
    assert run.counts.created == 2
    assert run.counts.failed == 1


@pytest.mark.asyncio
async def test_smart_sync_creates_updates_and_skips(sync_config, clock):
    items = [
        make_item("1", "https://a.com", "A", ["x"]),
        make_item("2", "https://b.com", "B-new", ["y"]),
        make_item("3", "https://c.com", "C"),
        make_item("4", "https://old.com", "Old", created_at=NOW - timedelta(days=90)),
    ]
    pages = [
        make_page("p1", "https://a.com", "A", ["x"]),
        make_page("p2", "https://b.com", "B-old", ["y"]),
    ]
    mirror = FakeMirror(pages)
    sink = RecordingSink()

    run = await _orchestrator(FakeSource(items), mirror, sync_config, clock, sink=sink).run(SMART)

    assert run.status is RunStatus.COMPLETED
    assert (run.counts.created, run.counts.updated, run.counts.skipped) == (1, 1, 1)
    assert run.efficiency == 33
    assert [item.id for item in mirror.created] == ["3"]
    assert [(page_id, item.id) for page_id, item in mirror.updated] == [("p2", "2")]
    assert mirror.archived == []
    efficiency = next(e for e in sink.events if e.kind == "efficiency")
    assert efficiency.to_wire()["efficiency"] == {
        "percentage": 33,
        "itemsProcessed": 2,
        "totalItems": 3,
    }


@pytest.mark.asyncio
async def test_smart_sync_is_idempotent(sync_config, clock):
    items = [
        make_item("1", "https://a.com", "A", ["x"]),
        make_item("2", "https://b.com", "B"),
        make_item("3", "https://c.com", ""),
    ]
    source = FakeSource(items)
    mirror = FakeMirror()
    orchestrator = _orchestrator(source, mirror, sync_config, clock)

    first = await orchestrator.run(SMART)
    second = await orchestrator.run(SMART)

    assert first.counts.created == 3
    assert second.counts.total_operations == 0
    assert second.counts.skipped == 3
    assert second.efficiency == 100


@pytest.mark.asyncio
async def test_smart_sync_with_nothing_recent(sync_config, clock):
    old = make_item("1", "https://a.com", "A", created_at=NOW - timedelta(days=365))
    mirror = FakeMirror(fail_fetch=True)

    run = await _orchestrator(FakeSource([old]), mirror, sync_config, clock).run(
        SMART, SyncOptions(days_back=7)
    )

    # The mirror is never queried when there is nothing to reconcile
    assert run.status is RunStatus.COMPLETED
    assert run.counts.total_operations == 0


@pytest.mark.asyncio
async def test_source_fetch_failure_fails_the_run(sync_config, clock):
    sink = RecordingSink()
    orchestrator = _orchestrator(FakeSource(fail=True), FakeMirror(), sync_config, clock, sink=sink)

    run = await orchestrator.run(SMART)

    assert run.status is RunStatus.FAILED
    assert "source" in run.error
    assert sink.kinds()[-2:] == ["failed", "complete"]
    assert isinstance(sink.events[-2], FailedEvent)
    assert sink.events[-1].status == "failed"
    assert not orchestrator.lock.locked


@pytest.mark.asyncio
async def test_mirror_fetch_failure_fails_the_run(sync_config, clock):
    orchestrator = _orchestrator(
        FakeSource(_items(2)), FakeMirror(fail_fetch=True), sync_config, clock
    )

    run = await orchestrator.run(RESET)

    assert run.status is RunStatus.FAILED
    assert "mirror" in run.error


@pytest.mark.asyncio
async def test_unexpected_crash_still_completes_and_releases(sync_config, clock):
    class BrokenMirror(FakeMirror):
        async def fetch_all(self):
            raise KeyError("properties")

    sink = RecordingSink()
    orchestrator = _orchestrator(
        FakeSource(_items(1)), BrokenMirror(), sync_config, clock, sink=sink
    )

    run = await orchestrator.run(RESET)

    assert run.status is RunStatus.FAILED
    assert isinstance(sink.events[-1], CompleteEvent)
    assert not orchestrator.lock.locked
    assert orchestrator.last_run is run


@pytest.mark.asyncio
async def test_start_sync_is_single_flight(sync_config, clock):
    orchestrator = _orchestrator(FakeSource(_items(2)), FakeMirror(), sync_config, clock)

    first = orchestrator.start_sync(SMART)
    second = orchestrator.start_sync(RESET)

    assert first.accepted
    assert not second.accepted
    assert second.run_id == first.run_id
    assert orchestrator.status()["running"] is True

    with pytest.raises(LockContentionError):
        await orchestrator.run(SMART)

    await orchestrator.wait_idle()
    assert orchestrator.last_run.run_id == first.run_id
    assert orchestrator.status()["running"] is False

    third = orchestrator.start_sync(RESET)
    assert third.accepted
    await orchestrator.wait_idle()


@pytest.mark.asyncio
async def test_stale_lock_is_overridden(sync_config, clock):
    orchestrator = _orchestrator(FakeSource(_items(1)), FakeMirror(), sync_config, clock)
    orchestrator.lock.acquire("stuck-run", RESET)

    assert not orchestrator.start_sync(SMART).accepted

    clock.advance(minutes=16)
    run = await orchestrator.run(SMART)

    assert run.status is RunStatus.COMPLETED
    assert not orchestrator.lock.locked


@pytest.mark.asyncio
async def test_cache_miss_falls_back_to_live(sync_config, clock, tmp_path):
    cache = SnapshotCache(tmp_path, clock=clock)
    source = FakeSource(_items(2))
    sink = RecordingSink()

    run = await _orchestrator(source, FakeMirror(), sync_config, clock, cache=cache, sink=sink).run(
        SMART, SyncOptions(use_cache=True)
    )

    assert run.counts.created == 2
    assert source.calls[0][0] == "fetch_recent"
    assert any("Cache unusable" in e.message for e in sink.events)


@pytest.mark.asyncio
async def test_valid_cache_is_used_instead_of_live(sync_config, clock, tmp_path):
    cache = SnapshotCache(tmp_path, clock=clock)
    await cache.write(
        [
            make_item("c1", "https://cached.com/1", "Cached 1"),
            make_item(
                "c2", "https://cached.com/2", "Cached 2", created_at=NOW - timedelta(days=60)
            ),
        ]
    )
    source = FakeSource(_items(5))
    mirror = FakeMirror()

    run = await _orchestrator(source, mirror, sync_config, clock, cache=cache).run(
        SMART, SyncOptions(use_cache=True)
    )

    # The cached snapshot is filtered to the recent window
    assert [item.id for item in mirror.created] == ["c1"]
    assert run.counts.created == 1
    assert source.calls == []


@pytest.mark.asyncio
async def test_refresh_snapshot(sync_config, clock, tmp_path):
    cache = SnapshotCache(tmp_path, clock=clock)
    orchestrator = _orchestrator(
        FakeSource(_items(5)), FakeMirror(), sync_config, clock, cache=cache
    )

    stats = await orchestrator.refresh_snapshot(limit=3)

    assert stats.item_count == 3
    assert (await cache.status()).item_count == 3
    assert not orchestrator.lock.locked


@pytest.mark.asyncio
async def test_refresh_snapshot_without_cache(sync_config, clock):
    orchestrator = _orchestrator(FakeSource(_items(1)), FakeMirror(), sync_config, clock)

    with pytest.raises(RuntimeError):
        await orchestrator.refresh_snapshot()


@pytest.mark.asyncio
async def test_events_carry_run_context(sync_config, clock):
    sink = RecordingSink()
    orchestrator = _orchestrator(FakeSource(_items(1)), FakeMirror(), sync_config, clock, sink=sink)

    run = await orchestrator.run(RESET)

    assert {e.run_id for e in sink.events} == {run.run_id}
    added = next(e for e in sink.events if isinstance(e, ItemResultEvent))
    assert added.counts["created"] == 1
    assert added.lock_info["isLocked"] is True
    assert added.to_wire()["type"] == "added"


@pytest.mark.asyncio
async def test_refresh_snapshot_writes_what_the_source_returns(sync_config, clock):
    items = _items(2)
    source = AsyncMock()
    source.fetch_all.return_value = items
    cache = AsyncMock()
    cache.write.return_value = CacheStats(item_count=2, size_bytes=512, duration_ms=3)
    orchestrator = _orchestrator(source, FakeMirror(), sync_config, clock, cache=cache)

    stats = await orchestrator.refresh_snapshot()

    source.fetch_all.assert_awaited_once_with(None)
    cache.write.assert_awaited_once_with(items)
    assert stats.size_bytes == 512
