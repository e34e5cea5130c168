from __future__ import annotations

from .integrations import NotionConfig, RaindropConfig
from .settings import AppConfig, RuntimeConfig, Settings, load_config
from .sync import CacheConfig, RetryConfig, SyncConfig

__all__ = [
    "AppConfig",
    "CacheConfig",
    "NotionConfig",
    "RaindropConfig",
    "RetryConfig",
    "RuntimeConfig",
    "Settings",
    "SyncConfig",
    "load_config",
]
