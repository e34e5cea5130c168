"""In-memory fan-out of sync events to connected viewers.

Every viewer owns a bounded queue. Publishing never blocks and never raises:
a viewer whose queue is full or that has gone away is dropped without
affecting delivery to the others or the run producing the events.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from dropsync.sync.events import CompleteEvent

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from dropsync.sync.events import SyncEvent

logger = logging.getLogger(__name__)


class ViewerHandle:
    """Subscription handle returned by ``ProgressBroadcaster.subscribe``."""

    def __init__(self, viewer_id: str, queue_size: int) -> None:
        self.viewer_id = viewer_id
        self._queue: asyncio.Queue[SyncEvent | None] = asyncio.Queue(maxsize=queue_size)
        self.closed = False

    def offer(self, event: SyncEvent) -> bool:
        if self.closed:
            return False
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            return False
        return True

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        # Wake a pending reader; if the queue is full it will drain to the end anyway
        try:
            self._queue.put_nowait(None)
        except asyncio.QueueFull:
            pass

    async def next_event(self) -> SyncEvent | None:
        """Return the next event, or None once the handle has been closed and drained."""
        if self.closed and self._queue.empty():
            return None
        return await self._queue.get()

    async def stream(self) -> AsyncIterator[SyncEvent]:
        """Yield events until a ``CompleteEvent`` arrives or the handle is closed."""
        while True:
            event = await self.next_event()
            if event is None:
                return
            yield event
            if isinstance(event, CompleteEvent):
                return


class ProgressBroadcaster:
    """Fan out events to subscribed viewers; no replay for late joiners."""

    def __init__(self, queue_size: int = 1000) -> None:
        self.queue_size = queue_size
        self._viewers: dict[str, ViewerHandle] = {}

    @property
    def viewer_count(self) -> int:
        return len(self._viewers)

    def subscribe(self, viewer_id: str) -> ViewerHandle:
        """Register a viewer.

        Args:
            viewer_id: Identifier of the viewer; re-subscribing an existing id
                closes the previous handle.

        Returns:
            A fresh handle that receives events published from now on.

        """
        previous = self._viewers.pop(viewer_id, None)
        if previous is not None:
            previous.close()
        handle = ViewerHandle(viewer_id, self.queue_size)
        self._viewers[viewer_id] = handle
        logger.debug(
            "viewer_subscribed",
            extra={"viewer_id": viewer_id, "viewer_count": len(self._viewers)},
        )
        return handle

    def unsubscribe(self, viewer_id: str) -> None:
        handle = self._viewers.pop(viewer_id, None)
        if handle is None:
            return
        handle.close()
        logger.debug(
            "viewer_unsubscribed",
            extra={"viewer_id": viewer_id, "viewer_count": len(self._viewers)},
        )

    def publish(self, event: SyncEvent) -> None:
        """Deliver ``event`` to every current viewer.

        Args:
            event: The event to fan out. Viewers that cannot accept it are
                unsubscribed.

        """
        dropped: list[str] = []
        for viewer_id, handle in list(self._viewers.items()):
            if not handle.offer(event):
                dropped.append(viewer_id)

        for viewer_id in dropped:
            logger.warning(
                "viewer_dropped",
                extra={"viewer_id": viewer_id, "run_id": event.run_id, "event_kind": event.kind},
            )
            self.unsubscribe(viewer_id)

    def close_all(self) -> None:
        for viewer_id in list(self._viewers):
            self.unsubscribe(viewer_id)
