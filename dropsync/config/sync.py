from __future__ import annotations

from datetime import timedelta
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from .integrations import _parse_positive_float


def _parse_int(value: Any, *, default: int, name: str, minimum: int, maximum: int) -> int:
    try:
        parsed = int(str(value if value not in (None, "") else default))
    except ValueError as exc:
        msg = f"{name} must be a valid integer"
        raise ValueError(msg) from exc
    if parsed < minimum or parsed > maximum:
        msg = f"{name} must be between {minimum} and {maximum}"
        raise ValueError(msg)
    return parsed


class RetryConfig(BaseModel):
    """Retry budget and backoff shared by both vendor clients."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    max_retries: int = Field(default=5, validation_alias="API_MAX_RETRIES")
    backoff_base_seconds: float = Field(default=1.0, validation_alias="API_BACKOFF_BASE_SECONDS")
    backoff_multiplier: float = Field(default=2.0, validation_alias="API_BACKOFF_MULTIPLIER")
    backoff_max_seconds: float = Field(default=30.0, validation_alias="API_BACKOFF_MAX_SECONDS")

    @field_validator("max_retries", mode="before")
    @classmethod
    def _validate_max_retries(cls, value: Any) -> int:
        return _parse_int(value, default=5, name="API max retries", minimum=0, maximum=20)

    @field_validator(
        "backoff_base_seconds", "backoff_multiplier", "backoff_max_seconds", mode="before"
    )
    @classmethod
    def _validate_backoff(cls, value: Any, info: ValidationInfo) -> float:
        default = cls.model_fields[info.field_name].default
        return _parse_positive_float(
            value, default=default, name=info.field_name.replace("_", " "), maximum=600.0
        )


class SyncConfig(BaseModel):
    """Pacing, batching and lock policy for sync runs."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    batch_size: int = Field(default=10, validation_alias="SYNC_BATCH_SIZE")
    item_delay_seconds: float = Field(default=0.2, validation_alias="SYNC_ITEM_DELAY_SECONDS")
    error_delay_seconds: float = Field(default=0.4, validation_alias="SYNC_ERROR_DELAY_SECONDS")
    batch_delay_seconds: float = Field(default=2.0, validation_alias="SYNC_BATCH_DELAY_SECONDS")
    days_back: int = Field(default=30, validation_alias="SYNC_DAYS_BACK")
    max_pages: int = Field(default=50, validation_alias="SYNC_MAX_PAGES")
    stale_lock_minutes: int = Field(default=15, validation_alias="SYNC_STALE_LOCK_MINUTES")
    recent_fallback_limit: int = Field(default=500, validation_alias="SYNC_RECENT_FALLBACK_LIMIT")
    progress_every: int = Field(default=20, validation_alias="SYNC_PROGRESS_EVERY")
    tolerance: int = Field(default=5, validation_alias="SYNC_TOLERANCE")
    viewer_queue_size: int = Field(default=1000, validation_alias="SYNC_VIEWER_QUEUE_SIZE")

    @field_validator(
        "item_delay_seconds", "error_delay_seconds", "batch_delay_seconds", mode="before"
    )
    @classmethod
    def _validate_delays(cls, value: Any, info: ValidationInfo) -> float:
        default = cls.model_fields[info.field_name].default
        return _parse_positive_float(
            value, default=default, name=info.field_name.replace("_", " "), maximum=60.0
        )

    @field_validator("batch_size", mode="before")
    @classmethod
    def _validate_batch_size(cls, value: Any) -> int:
        return _parse_int(value, default=10, name="Sync batch size", minimum=1, maximum=100)

    @field_validator("days_back", mode="before")
    @classmethod
    def _validate_days_back(cls, value: Any) -> int:
        return _parse_int(value, default=30, name="Sync days back", minimum=1, maximum=3650)

    @field_validator("max_pages", mode="before")
    @classmethod
    def _validate_max_pages(cls, value: Any) -> int:
        return _parse_int(value, default=50, name="Sync max pages", minimum=1, maximum=1000)

    @field_validator("stale_lock_minutes", mode="before")
    @classmethod
    def _validate_stale_lock(cls, value: Any) -> int:
        return _parse_int(value, default=15, name="Stale lock minutes", minimum=1, maximum=1440)

    @field_validator(
        "recent_fallback_limit", "progress_every", "viewer_queue_size", mode="before"
    )
    @classmethod
    def _validate_counts(cls, value: Any, info: ValidationInfo) -> int:
        default = cls.model_fields[info.field_name].default
        return _parse_int(
            value,
            default=default,
            name=info.field_name.replace("_", " "),
            minimum=1,
            maximum=100_000,
        )

    @field_validator("tolerance", mode="before")
    @classmethod
    def _validate_tolerance(cls, value: Any) -> int:
        return _parse_int(value, default=5, name="Sync tolerance", minimum=0, maximum=100_000)

    @property
    def stale_lock_after(self) -> timedelta:
        return timedelta(minutes=self.stale_lock_minutes)


class CacheConfig(BaseModel):
    """On-disk snapshot of the Raindrop collection."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    directory: str = Field(default=".cache/dropsync", validation_alias="CACHE_DIR")
    ttl_hours: float = Field(default=6.0, validation_alias="CACHE_TTL_HOURS")
    sweep_interval_minutes: float = Field(
        default=10.0, validation_alias="CACHE_SWEEP_INTERVAL_MINUTES"
    )

    @field_validator("directory", mode="before")
    @classmethod
    def _validate_directory(cls, value: Any) -> str:
        directory = str(value or ".cache/dropsync").strip()
        if "\x00" in directory:
            msg = "Cache directory contains invalid characters"
            raise ValueError(msg)
        return directory

    @field_validator("ttl_hours", "sweep_interval_minutes", mode="before")
    @classmethod
    def _validate_positive(cls, value: Any, info: ValidationInfo) -> float:
        default = cls.model_fields[info.field_name].default
        parsed = _parse_positive_float(
            value, default=default, name=info.field_name.replace("_", " "), maximum=24 * 365.0
        )
        if parsed == 0:
            msg = f"{info.field_name.replace('_', ' ')} must be positive"
            raise ValueError(msg)
        return parsed

    @property
    def ttl(self) -> timedelta:
        return timedelta(hours=self.ttl_hours)
