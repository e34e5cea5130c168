"""Response envelopes for the dashboard API."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field

from dropsync import __version__


class MetaInfo(BaseModel):
    """Metadata for all API responses."""

    correlation_id: str = ""
    timestamp: str = Field(
        default_factory=lambda: datetime.now(UTC).isoformat().replace("+00:00", "Z")
    )
    version: str = __version__


class ErrorDetail(BaseModel):
    code: str
    error_type: str = Field(default="internal", serialization_alias="errorType")
    message: str
    retryable: bool = False
    details: dict[str, Any] | None = None
    correlation_id: str = ""


class SuccessResponse(BaseModel):
    success: bool = True
    data: dict[str, Any]
    meta: MetaInfo = Field(default_factory=MetaInfo)


class ErrorResponse(BaseModel):
    success: bool = False
    error: ErrorDetail
    meta: MetaInfo = Field(default_factory=MetaInfo)


def success_response(
    data: BaseModel | dict[str, Any], *, correlation_id: str | None = None
) -> dict[str, Any]:
    """Helper to build a standardized success response."""
    payload = data.model_dump() if isinstance(data, BaseModel) else data
    return SuccessResponse(
        data=payload, meta=MetaInfo(correlation_id=correlation_id or "")
    ).model_dump()


def error_response(detail: ErrorDetail, *, correlation_id: str | None = None) -> dict[str, Any]:
    """Helper to build a standardized error response."""
    corr = correlation_id or detail.correlation_id
    detail = detail.model_copy(update={"correlation_id": corr})
    return ErrorResponse(error=detail, meta=MetaInfo(correlation_id=corr)).model_dump(
        by_alias=True
    )
