from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from .integrations import NotionConfig, RaindropConfig
from .sync import CacheConfig, RetryConfig, SyncConfig

logger = logging.getLogger(__name__)


class RuntimeConfig(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_file: str | None = Field(default=None, validation_alias="LOG_FILE")
    admin_password: str = Field(
        default="", validation_alias=AliasChoices("ADMIN_PASSWORD", "DASHBOARD_PASSWORD")
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def _validate_log_level(cls, value: Any) -> str:
        log_level = str(value or "INFO").upper()
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if log_level not in valid_levels:
            msg = f"Invalid log level: {value}. Must be one of {valid_levels}"
            raise ValueError(msg)
        return log_level

    @field_validator("log_file", mode="before")
    @classmethod
    def _validate_log_file(cls, value: Any) -> str | None:
        if value is None:
            return None
        trimmed = str(value).strip()
        return trimmed or None

    @field_validator("admin_password", mode="before")
    @classmethod
    def _validate_admin_password(cls, value: Any) -> str:
        if value in (None, ""):
            return ""
        password = str(value)
        if len(password) < 8:
            logger.warning("ADMIN_PASSWORD is shorter than 8 characters")
        return password


@dataclass(frozen=True)
class AppConfig:
    raindrop: RaindropConfig
    notion: NotionConfig
    retry: RetryConfig
    sync: SyncConfig
    cache: CacheConfig
    runtime: RuntimeConfig


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Nested models are populated by matching the ``validation_alias`` of each
    nested field against the flat environment.
    """

    model_config = SettingsConfigDict(
        extra="ignore",
        populate_by_name=True,
        case_sensitive=True,
    )

    raindrop: RaindropConfig = Field(default_factory=RaindropConfig)
    notion: NotionConfig = Field(default_factory=NotionConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    runtime: RuntimeConfig = Field(default_factory=RuntimeConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: Any,
        env_settings: Any,
        dotenv_settings: Any,
        file_secret_settings: Any,
    ) -> tuple[Any, ...]:
        # Nested sections are assembled from the flat environment in _nest_env;
        # load_config merges .env into that environment via _read_dotenv
        return (init_settings,)

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None, **overrides: Any) -> Settings:
        source = dict(os.environ if environ is None else environ)
        data = cls._nest_env(source)
        for section, values in overrides.items():
            data[section] = {**data.get(section, {}), **values}
        return cls(**data)

    @classmethod
    def _nest_env(cls, source: dict[str, Any]) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for field_name, field_info in cls.model_fields.items():
            annotation = field_info.annotation
            if not isinstance(annotation, type) or not issubclass(annotation, BaseModel):
                continue

            nested: dict[str, Any] = {}
            for nested_field_name, nested_field in annotation.model_fields.items():
                env_value = cls._resolve_env_value(source, nested_field)
                if env_value is not None:
                    nested[nested_field_name] = env_value
            if nested:
                result[field_name] = nested
        return result

    @staticmethod
    def _resolve_env_value(data: dict[str, Any], field: Any) -> Any | None:
        """Resolve the environment value for a field using its aliases."""
        aliases: list[str] = []
        alias = field.validation_alias
        if isinstance(alias, AliasChoices):
            aliases.extend(choice for choice in alias.choices if isinstance(choice, str))
        elif isinstance(alias, str):
            aliases.append(alias)

        for name in aliases:
            if name in data:
                return data[name]
        return None

    def as_app_config(self) -> AppConfig:
        return AppConfig(
            raindrop=self.raindrop,
            notion=self.notion,
            retry=self.retry,
            sync=self.sync,
            cache=self.cache,
            runtime=self.runtime,
        )


def _read_dotenv(path: str = ".env") -> dict[str, str]:
    from dotenv import dotenv_values

    if not os.path.exists(path):
        return {}
    return {key: value for key, value in dotenv_values(path).items() if value is not None}


def load_config(environ: dict[str, str] | None = None) -> AppConfig:
    """Load application configuration.

    Values come from ``.env`` (if present) overlaid with the process
    environment; pass ``environ`` to bypass both.

    Raises:
        RuntimeError: If configuration validation fails.
    """
    if environ is None:
        environ = {**_read_dotenv(), **os.environ}

    try:
        settings = Settings.from_env(environ)
    except ValidationError as exc:
        msg = f"Configuration validation failed: {exc}"
        raise RuntimeError(msg) from exc

    if not settings.raindrop.token:
        logger.warning("RAINDROP_TOKEN is not set; Raindrop requests will be rejected")
    if not settings.notion.token or not settings.notion.database_id:
        logger.warning("NOTION_TOKEN or NOTION_DB_ID is not set; Notion requests will fail")

    return settings.as_app_config()
