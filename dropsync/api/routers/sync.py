"""Sync trigger endpoints, including the live progress stream."""

from __future__ import annotations

import asyncio
import json
from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse, StreamingResponse

from dropsync.api.auth import require_password
from dropsync.api.dependencies import ServiceContainer, get_container
from dropsync.api.exceptions import SyncAlreadyRunningError, ValidationError
from dropsync.api.models import success_response
from dropsync.core.logging_utils import generate_correlation_id, get_logger
from dropsync.sync.events import CompleteEvent
from dropsync.sync.models import SyncOptions, SyncStrategy

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = get_logger(__name__)

router = APIRouter(dependencies=[Depends(require_password)])

HEARTBEAT_SECONDS = 15.0

_SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def _sse(payload: dict[str, Any]) -> str:
    return f"data: {json.dumps(payload)}\n\n"


def _parse_strategy(mode: str) -> SyncStrategy:
    try:
        return SyncStrategy.parse(mode)
    except ValueError as exc:
        raise ValidationError(str(exc), details={"mode": mode}) from exc


@router.get("/sync-stream")
async def sync_stream(
    mode: str = Query(default="smart", description="smart, reset or full"),
    limit: int | None = Query(default=None, ge=1),
    days_back: int | None = Query(default=None, ge=1, le=3650),
    use_cache: bool = Query(default=False),
    container: ServiceContainer = Depends(get_container),
):
    """Start a sync and stream its progress as server-sent events.

    If a run is already active the viewer is told to wait and follows that
    run instead. Closing the stream only detaches the viewer.
    """
    strategy = _parse_strategy(mode)
    broadcaster = container.broadcaster
    orchestrator = container.orchestrator

    viewer_id = generate_correlation_id()
    handle = broadcaster.subscribe(viewer_id)
    result = orchestrator.start_sync(
        strategy, SyncOptions(limit=limit, days_back=days_back, use_cache=use_cache)
    )
    logger.info(
        "sync_stream_opened",
        extra={
            "viewer_id": viewer_id,
            "strategy": strategy.value,
            "accepted": result.accepted,
            "run_id": result.run_id,
        },
    )

    async def event_stream() -> AsyncIterator[str]:
        try:
            yield _sse({"message": "Connected", "type": "info"})
            if not result.accepted:
                yield _sse(
                    {
                        "message": "Sync already running, please wait...",
                        "type": "waiting",
                        "lockInfo": orchestrator.lock_info(),
                    }
                )
            while True:
                try:
                    event = await asyncio.wait_for(handle.next_event(), timeout=HEARTBEAT_SECONDS)
                except TimeoutError:
                    yield _sse({"type": "heartbeat", "lockInfo": orchestrator.lock_info()})
                    continue
                if event is None:
                    break
                yield _sse(event.to_wire())
                if isinstance(event, CompleteEvent):
                    break
        finally:
            broadcaster.unsubscribe(viewer_id)
            logger.info("sync_stream_closed", extra={"viewer_id": viewer_id})

    return StreamingResponse(event_stream(), media_type="text/event-stream", headers=_SSE_HEADERS)


@router.post("/sync")
async def trigger_sync(
    request: Request,
    mode: str = Query(default="smart"),
    limit: int | None = Query(default=None, ge=1),
    days_back: int | None = Query(default=None, ge=1, le=3650),
    use_cache: bool = Query(default=False),
    container: ServiceContainer = Depends(get_container),
):
    """Start a sync without streaming; 409 while another run is active."""
    strategy = _parse_strategy(mode)
    result = container.orchestrator.start_sync(
        strategy, SyncOptions(limit=limit, days_back=days_back, use_cache=use_cache)
    )
    if not result.accepted:
        raise SyncAlreadyRunningError(result.run_id, result.elapsed_seconds)
    return JSONResponse(
        status_code=status.HTTP_202_ACCEPTED,
        content=success_response(
            result.as_dict(), correlation_id=getattr(request.state, "correlation_id", None)
        ),
    )


@router.get("/sync/status")
async def sync_status(request: Request, container: ServiceContainer = Depends(get_container)):
    return success_response(
        container.orchestrator.status(),
        correlation_id=getattr(request.state, "correlation_id", None),
    )
