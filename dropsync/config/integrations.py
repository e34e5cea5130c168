from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

logger = logging.getLogger(__name__)


def _parse_positive_float(value: Any, *, default: float, name: str, maximum: float) -> float:
    try:
        parsed = float(str(value if value not in (None, "") else default))
    except ValueError as exc:
        msg = f"{name} must be a valid number"
        raise ValueError(msg) from exc
    if parsed < 0 or parsed > maximum:
        msg = f"{name} must be between 0 and {maximum}"
        raise ValueError(msg)
    return parsed


class RaindropConfig(BaseModel):
    """Raindrop.io API access (the bookmark source)."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    token: str = Field(default="", validation_alias="RAINDROP_TOKEN")
    api_url: str = Field(
        default="https://api.raindrop.io/rest/v1",
        validation_alias="RAINDROP_API_URL",
    )
    page_size: int = Field(default=50, validation_alias="RAINDROP_PAGE_SIZE")
    pacing_seconds: float = Field(default=0.5, validation_alias="RAINDROP_PACING_SECONDS")
    timeout_seconds: float = Field(default=30.0, validation_alias="RAINDROP_TIMEOUT_SECONDS")

    @field_validator("api_url", mode="before")
    @classmethod
    def _validate_api_url(cls, value: Any) -> str:
        url = str(value or "https://api.raindrop.io/rest/v1").strip()
        return url.rstrip("/")

    @field_validator("token", mode="before")
    @classmethod
    def _strip_token(cls, value: Any) -> str:
        return str(value or "").strip()

    @field_validator("page_size", mode="before")
    @classmethod
    def _validate_page_size(cls, value: Any) -> int:
        try:
            parsed = int(str(value if value not in (None, "") else 50))
        except ValueError as exc:
            msg = "Raindrop page size must be a valid integer"
            raise ValueError(msg) from exc
        # Raindrop rejects perpage above 50
        if parsed < 1 or parsed > 50:
            msg = "Raindrop page size must be between 1 and 50"
            raise ValueError(msg)
        return parsed

    @field_validator("pacing_seconds", "timeout_seconds", mode="before")
    @classmethod
    def _validate_seconds(cls, value: Any, info: ValidationInfo) -> float:
        default = cls.model_fields[info.field_name].default
        return _parse_positive_float(
            value, default=default, name=info.field_name.replace("_", " "), maximum=300.0
        )


class NotionConfig(BaseModel):
    """Notion database access (the mirror store)."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    token: str = Field(default="", validation_alias="NOTION_TOKEN")
    database_id: str = Field(default="", validation_alias="NOTION_DB_ID")
    api_url: str = Field(default="https://api.notion.com/v1", validation_alias="NOTION_API_URL")
    api_version: str = Field(default="2022-06-28", validation_alias="NOTION_VERSION")
    page_size: int = Field(default=100, validation_alias="NOTION_PAGE_SIZE")
    pacing_seconds: float = Field(default=0.35, validation_alias="NOTION_PACING_SECONDS")
    timeout_seconds: float = Field(default=30.0, validation_alias="NOTION_TIMEOUT_SECONDS")
    image_delay_seconds: float = Field(default=0.5, validation_alias="NOTION_IMAGE_DELAY_SECONDS")
    title_property: str = Field(default="Name", validation_alias="NOTION_TITLE_PROPERTY")
    url_property: str = Field(default="URL", validation_alias="NOTION_URL_PROPERTY")
    tags_property: str = Field(default="Tags", validation_alias="NOTION_TAGS_PROPERTY")

    @field_validator("api_url", mode="before")
    @classmethod
    def _validate_api_url(cls, value: Any) -> str:
        url = str(value or "https://api.notion.com/v1").strip()
        return url.rstrip("/")

    @field_validator("token", "database_id", mode="before")
    @classmethod
    def _strip(cls, value: Any) -> str:
        return str(value or "").strip()

    @field_validator("page_size", mode="before")
    @classmethod
    def _validate_page_size(cls, value: Any) -> int:
        try:
            parsed = int(str(value if value not in (None, "") else 100))
        except ValueError as exc:
            msg = "Notion page size must be a valid integer"
            raise ValueError(msg) from exc
        if parsed < 1 or parsed > 100:
            msg = "Notion page size must be between 1 and 100"
            raise ValueError(msg)
        return parsed

    @field_validator("pacing_seconds", "timeout_seconds", "image_delay_seconds", mode="before")
    @classmethod
    def _validate_seconds(cls, value: Any, info: ValidationInfo) -> float:
        default = cls.model_fields[info.field_name].default
        return _parse_positive_float(
            value, default=default, name=info.field_name.replace("_", " "), maximum=300.0
        )

    @field_validator("title_property", "url_property", "tags_property", mode="before")
    @classmethod
    def _validate_property_name(cls, value: Any, info: ValidationInfo) -> str:
        name = str(value or cls.model_fields[info.field_name].default).strip()
        if not name:
            msg = f"{info.field_name.replace('_', ' ')} cannot be empty"
            raise ValueError(msg)
        return name
