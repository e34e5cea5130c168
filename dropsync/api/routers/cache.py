"""Snapshot cache management endpoints."""

from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends, Query, Request

from dropsync.api.auth import require_password
from dropsync.api.dependencies import ServiceContainer, get_container
from dropsync.api.models import success_response

router = APIRouter(dependencies=[Depends(require_password)])


@router.get("/status")
async def cache_status(request: Request, container: ServiceContainer = Depends(get_container)):
    status = await container.cache.status()
    return success_response(
        status.as_dict(),
        correlation_id=getattr(request.state, "correlation_id", None),
    )


@router.post("/refresh")
async def refresh_cache(
    request: Request,
    limit: int | None = Query(default=None, ge=1),
    container: ServiceContainer = Depends(get_container),
):
    """Fetch the full Raindrop collection and store it as the snapshot."""
    stats = await container.orchestrator.refresh_snapshot(limit)
    status = await container.cache.status()
    return success_response(
        {"stats": asdict(stats), "status": status.as_dict()},
        correlation_id=getattr(request.state, "correlation_id", None),
    )


@router.delete("")
async def clear_cache(request: Request, container: ServiceContainer = Depends(get_container)):
    await container.cache.clear()
    return success_response(
        {"cleared": True}, correlation_id=getattr(request.state, "correlation_id", None)
    )
