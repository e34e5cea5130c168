"""Dashboard counts: how far the mirror is from the source."""

from __future__ import annotations

import asyncio

from fastapi import APIRouter, Depends, Request

from dropsync.api.auth import require_password
from dropsync.api.dependencies import ServiceContainer, get_container
from dropsync.api.models import success_response
from dropsync.core.logging_utils import get_logger

logger = get_logger(__name__)

router = APIRouter()


@router.get("/", dependencies=[Depends(require_password)])
async def dashboard(request: Request, container: ServiceContainer = Depends(get_container)):
    """Raindrop and Notion totals, fetched concurrently."""
    raindrop_total, notion_total = await asyncio.gather(
        container.raindrop.count(), container.notion.count()
    )
    diff = abs(raindrop_total - notion_total)
    tolerance = container.config.sync.tolerance
    current = container.orchestrator.current_run

    logger.info(
        "dashboard_counts",
        extra={"raindrop_total": raindrop_total, "notion_total": notion_total, "diff": diff},
    )
    return success_response(
        {
            "raindrop_total": raindrop_total,
            "notion_total": notion_total,
            "diff": diff,
            "is_synced": diff <= tolerance,
            "sync_status": "running" if current else "idle",
            "current_run": current.as_dict() if current else None,
        },
        correlation_id=getattr(request.state, "correlation_id", None),
    )
