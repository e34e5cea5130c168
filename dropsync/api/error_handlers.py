"""Global exception handlers for the dashboard API.

Provides consistent error responses across all endpoints with correlation ID tracking.
"""

import logging

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response

from dropsync.adapters.http_client import ApiError
from dropsync.api.exceptions import APIException, ErrorCode, ErrorType
from dropsync.api.models import ErrorDetail, error_response
from dropsync.sync.lock import LockContentionError
from dropsync.sync.snapshot_cache import CacheError, CacheErrorReason

logger = logging.getLogger(__name__)


def _correlation_id(request: Request) -> str | None:
    return getattr(request.state, "correlation_id", None)


def _respond(request: Request, status_code: int, detail: ErrorDetail) -> JSONResponse:
    correlation_id = _correlation_id(request)
    return JSONResponse(
        status_code=status_code, content=error_response(detail, correlation_id=correlation_id)
    )


async def api_exception_handler(request: Request, exc: Exception) -> Response:
    """Handle custom API exceptions."""
    # Type narrowing for FastAPI compatibility
    if not isinstance(exc, APIException):
        raise exc

    logger.error(
        f"API error: {exc.error_code.value} - {exc.message}",
        exc_info=False,
        extra={
            "correlation_id": _correlation_id(request),
            "error_code": exc.error_code.value,
            "status_code": exc.status_code,
            "path": request.url.path,
        },
    )
    detail = ErrorDetail(
        code=exc.error_code.value,
        message=exc.message,
        error_type=exc.error_type.value,
        retryable=exc.retryable,
        details=exc.details or None,
    )
    return _respond(request, exc.status_code, detail)


async def validation_exception_handler(request: Request, exc: Exception) -> Response:
    """Handle malformed query parameters."""
    if not isinstance(exc, RequestValidationError):
        raise exc

    formatted_errors = [
        {
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    logger.warning(
        "Request validation failed",
        extra={
            "correlation_id": _correlation_id(request),
            "errors": formatted_errors,
            "path": request.url.path,
        },
    )
    detail = ErrorDetail(
        code=ErrorCode.VALIDATION_ERROR.value,
        message="Request validation failed",
        error_type=ErrorType.VALIDATION.value,
        details={"fields": formatted_errors},
    )
    return _respond(request, status.HTTP_422_UNPROCESSABLE_ENTITY, detail)


async def lock_contention_handler(request: Request, exc: Exception) -> Response:
    if not isinstance(exc, LockContentionError):
        raise exc
    detail = ErrorDetail(
        code=ErrorCode.SYNC_ALREADY_RUNNING.value,
        message=str(exc),
        error_type=ErrorType.SYNC.value,
        retryable=True,
        details={
            "run_id": exc.holder_run_id,
            "elapsed_seconds": round(exc.elapsed_seconds),
        },
    )
    return _respond(request, status.HTTP_409_CONFLICT, detail)


async def cache_error_handler(request: Request, exc: Exception) -> Response:
    if not isinstance(exc, CacheError):
        raise exc
    status_code = {
        CacheErrorReason.NOT_FOUND: status.HTTP_404_NOT_FOUND,
        CacheErrorReason.WRITE_FAILURE: status.HTTP_500_INTERNAL_SERVER_ERROR,
    }.get(exc.reason, status.HTTP_409_CONFLICT)
    logger.warning(
        "cache_error",
        extra={"reason": exc.reason.value, "path": request.url.path, "error": exc.message},
    )
    detail = ErrorDetail(
        code=ErrorCode.CACHE_UNAVAILABLE.value,
        message=exc.message,
        error_type=ErrorType.CACHE.value,
        details={"reason": exc.reason.value},
    )
    return _respond(request, status_code, detail)


async def upstream_error_handler(request: Request, exc: Exception) -> Response:
    if not isinstance(exc, ApiError):
        raise exc
    logger.error(
        "upstream_api_error",
        extra={"status": exc.status, "path": request.url.path, "error": exc.message},
    )
    detail = ErrorDetail(
        code=ErrorCode.EXTERNAL_API_ERROR.value,
        message=exc.message,
        error_type=ErrorType.EXTERNAL_SERVICE.value,
        retryable=True,
        details={"upstream_status": exc.status},
    )
    return _respond(request, status.HTTP_502_BAD_GATEWAY, detail)


async def global_exception_handler(request: Request, exc: Exception) -> Response:
    """Catch-all handler for unexpected exceptions."""
    logger.error(
        f"Unhandled exception: {exc}",
        exc_info=True,
        extra={"correlation_id": _correlation_id(request), "path": request.url.path},
    )

    # Don't leak error details unless debugging
    debug_mode = False
    container = getattr(request.app.state, "container", None)
    if container is not None:
        debug_mode = container.config.runtime.log_level == "DEBUG"

    detail = ErrorDetail(
        code=ErrorCode.INTERNAL_ERROR.value,
        message=str(exc) if debug_mode else "An internal server error occurred",
        error_type=ErrorType.INTERNAL.value,
    )
    return _respond(request, status.HTTP_500_INTERNAL_SERVER_ERROR, detail)
