"""Tests for event fan-out to stream viewers."""

from __future__ import annotations

import asyncio

import pytest

from dropsync.sync.broadcaster import ProgressBroadcaster, ViewerHandle
from dropsync.sync.events import CompleteEvent, InfoEvent


def _info(message: str) -> InfoEvent:
    return InfoEvent(run_id="r1", message=message)


@pytest.mark.asyncio
async def test_every_viewer_receives_every_event():
    broadcaster = ProgressBroadcaster(queue_size=10)
    first = broadcaster.subscribe("a")
    second = broadcaster.subscribe("b")

    broadcaster.publish(_info("one"))
    broadcaster.publish(CompleteEvent(run_id="r1", message="done"))

    for handle in (first, second):
        received = [event.message async for event in handle.stream()]
        assert received == ["one", "done"]


@pytest.mark.asyncio
async def test_late_joiner_gets_no_replay():
    broadcaster = ProgressBroadcaster()
    broadcaster.publish(_info("before"))
    handle = broadcaster.subscribe("late")
    broadcaster.publish(_info("after"))

    event = await handle.next_event()
    assert event.message == "after"


@pytest.mark.asyncio
async def test_full_queue_drops_only_that_viewer():
    broadcaster = ProgressBroadcaster(queue_size=2)
    slow = broadcaster.subscribe("slow")
    fast = broadcaster.subscribe("fast")

    broadcaster.publish(_info("1"))
    assert (await fast.next_event()).message == "1"
    broadcaster.publish(_info("2"))
    assert (await fast.next_event()).message == "2"
    broadcaster.publish(_info("3"))

    assert broadcaster.viewer_count == 1
    assert slow.closed
    assert (await fast.next_event()).message == "3"


@pytest.mark.asyncio
async def test_unsubscribe_wakes_pending_reader():
    broadcaster = ProgressBroadcaster()
    handle = broadcaster.subscribe("a")
    reader = asyncio.create_task(handle.next_event())
    await asyncio.sleep(0)

    broadcaster.unsubscribe("a")

    assert await asyncio.wait_for(reader, timeout=1) is None
    assert broadcaster.viewer_count == 0


@pytest.mark.asyncio
async def test_resubscribe_replaces_previous_handle():
    broadcaster = ProgressBroadcaster()
    old = broadcaster.subscribe("a")
    new = broadcaster.subscribe("a")

    broadcaster.publish(_info("x"))

    assert old.closed
    assert await old.next_event() is None
    assert (await new.next_event()).message == "x"
    assert broadcaster.viewer_count == 1


def test_publish_without_viewers_is_a_noop():
    ProgressBroadcaster().publish(_info("nobody listening"))


@pytest.mark.asyncio
async def test_close_all():
    broadcaster = ProgressBroadcaster()
    handles = [broadcaster.subscribe(str(n)) for n in range(3)]

    broadcaster.close_all()

    assert broadcaster.viewer_count == 0
    assert all(handle.closed for handle in handles)


@pytest.mark.asyncio
async def test_closed_handle_rejects_offers():
    handle = ViewerHandle("a", queue_size=5)
    handle.close()
    assert handle.offer(_info("late")) is False
