"""Liveness endpoint; no password required."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from dropsync import __version__
from dropsync.api.dependencies import ServiceContainer, get_container
from dropsync.api.models import success_response

router = APIRouter()


@router.get("/health")
async def health_check(request: Request, container: ServiceContainer = Depends(get_container)):
    cache_status = await container.cache.status()
    return success_response(
        {
            "status": "healthy",
            "version": __version__,
            "sync": container.orchestrator.lock_info(),
            "cache": cache_status.as_dict(),
            "viewers": container.broadcaster.viewer_count,
        },
        correlation_id=getattr(request.state, "correlation_id", None),
    )
