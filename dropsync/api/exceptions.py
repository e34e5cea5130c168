"""Custom exceptions and error codes for the dashboard API."""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Machine-readable codes carried in the error envelope."""

    # Client errors (4xx)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    UNAUTHORIZED = "UNAUTHORIZED"

    # Sync-specific errors
    SYNC_ALREADY_RUNNING = "SYNC_ALREADY_RUNNING"
    CACHE_UNAVAILABLE = "CACHE_UNAVAILABLE"

    # Server errors (5xx)
    INTERNAL_ERROR = "INTERNAL_ERROR"
    EXTERNAL_API_ERROR = "EXTERNAL_API_ERROR"


class ErrorType(str, Enum):
    """Coarse grouping a dashboard client can switch on."""

    AUTHENTICATION = "authentication"
    VALIDATION = "validation"
    SYNC = "sync"
    CACHE = "cache"
    EXTERNAL_SERVICE = "external_service"
    INTERNAL = "internal"


_ERROR_TYPE_MAP: dict[ErrorCode, ErrorType] = {
    ErrorCode.VALIDATION_ERROR: ErrorType.VALIDATION,
    ErrorCode.UNAUTHORIZED: ErrorType.AUTHENTICATION,
    ErrorCode.SYNC_ALREADY_RUNNING: ErrorType.SYNC,
    ErrorCode.CACHE_UNAVAILABLE: ErrorType.CACHE,
    ErrorCode.INTERNAL_ERROR: ErrorType.INTERNAL,
    ErrorCode.EXTERNAL_API_ERROR: ErrorType.EXTERNAL_SERVICE,
}

# Retryable error codes
_RETRYABLE_CODES: set[ErrorCode] = {
    ErrorCode.SYNC_ALREADY_RUNNING,  # Once the active run finishes
    ErrorCode.EXTERNAL_API_ERROR,
}


class APIException(Exception):
    """Error raised by a route and rendered by ``api_exception_handler``."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        status_code: int = 500,
        details: dict[str, Any] | None = None,
        error_type: ErrorType | None = None,
        retryable: bool | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        self.error_type = error_type or _ERROR_TYPE_MAP.get(error_code, ErrorType.INTERNAL)
        self.retryable = retryable if retryable is not None else (error_code in _RETRYABLE_CODES)


class ValidationError(APIException):
    """Raised when request parameters are invalid."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            message=message,
            error_code=ErrorCode.VALIDATION_ERROR,
            status_code=422,
            details=details,
        )


class AuthenticationError(APIException):
    """Raised when the shared dashboard password is missing or wrong."""

    def __init__(self, message: str = "Invalid password"):
        super().__init__(
            message=message,
            error_code=ErrorCode.UNAUTHORIZED,
            status_code=401,
        )


class SyncAlreadyRunningError(APIException):
    """Raised when a sync is requested while another run holds the lock."""

    def __init__(self, run_id: str | None, elapsed_seconds: float):
        super().__init__(
            message=f"Sync already running for {int(elapsed_seconds)}s, please wait",
            error_code=ErrorCode.SYNC_ALREADY_RUNNING,
            status_code=409,
            details={"run_id": run_id, "elapsed_seconds": round(elapsed_seconds)},
        )

