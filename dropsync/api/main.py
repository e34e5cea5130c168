"""
FastAPI application for the dropsync dashboard.

Usage:
    uvicorn dropsync.api.main:app --host 0.0.0.0 --port 3000
"""

from __future__ import annotations

import uuid
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError

from dropsync import __version__
from dropsync.adapters.http_client import ApiError
from dropsync.api.dependencies import ServiceContainer, build_container
from dropsync.api.error_handlers import (
    api_exception_handler,
    cache_error_handler,
    global_exception_handler,
    lock_contention_handler,
    upstream_error_handler,
    validation_exception_handler,
)
from dropsync.api.exceptions import APIException
from dropsync.api.routers import cache, dashboard, health, sync
from dropsync.config import AppConfig, load_config
from dropsync.core.logging_utils import get_logger, setup_json_logging
from dropsync.sync.lock import LockContentionError
from dropsync.sync.snapshot_cache import CacheError

logger = get_logger(__name__)


async def correlation_id_middleware(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """Attach an X-Correlation-ID to every request, reusing the caller's if given."""
    correlation_id = request.headers.get("X-Correlation-ID") or f"api-{uuid.uuid4().hex[:16]}"
    request.state.correlation_id = correlation_id
    response = await call_next(request)
    response.headers["X-Correlation-ID"] = correlation_id
    return response


def create_app(
    config: AppConfig | None = None,
    *,
    container: ServiceContainer | None = None,
) -> FastAPI:
    """Build the application.

    ``container`` lets callers supply pre-built services; otherwise they are
    built from ``config`` (or the environment) when the app starts.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        services = container
        if services is None:
            app_config = config or load_config()
            setup_json_logging(app_config.runtime.log_level, log_file=app_config.runtime.log_file)
            services = await build_container(app_config)
        app.state.container = services
        services.start_background()
        logger.info("dashboard_started", extra={"version": __version__})
        try:
            yield
        finally:
            await services.aclose()
            logger.info("dashboard_stopped")

    app = FastAPI(
        title="dropsync",
        description="Raindrop.io to Notion bookmark sync",
        version=__version__,
        lifespan=lifespan,
    )

    app.middleware("http")(correlation_id_middleware)

    app.add_exception_handler(APIException, api_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(LockContentionError, lock_contention_handler)
    app.add_exception_handler(CacheError, cache_error_handler)
    app.add_exception_handler(ApiError, upstream_error_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    app.include_router(health.router, tags=["Health"])
    app.include_router(dashboard.router, tags=["Dashboard"])
    app.include_router(sync.router, tags=["Sync"])
    app.include_router(cache.router, prefix="/cache", tags=["Cache"])
    return app


app = create_app()
