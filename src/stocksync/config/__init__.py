"""Application configuration helpers."""

from __future__ import annotations

from .authority import AUTHORITY_FILE_ENV, load_authority_overrides
from .env import env_float, env_int, optional_env, require_env_vars
from .errors import ConfigurationError, MissingConfigurationError
from .http_resilience import RateLimit, ResilienceConfig, RetryPolicy
from .logging import configure_logging
from .platforms import (
    CloverConfig,
    PlatformsConfig,
    ShopifyConfig,
    SquareConfig,
    get_platforms_config,
)
from .storage import DatabaseConfig, StorageConfig, get_database_config, get_storage_config
from .sync import SyncConfig, get_sync_config

__all__ = [
    "AUTHORITY_FILE_ENV",
    "CloverConfig",
    "ConfigurationError",
    "DatabaseConfig",
    "MissingConfigurationError",
    "PlatformsConfig",
    "RateLimit",
    "ResilienceConfig",
    "RetryPolicy",
    "ShopifyConfig",
    "SquareConfig",
    "StorageConfig",
    "SyncConfig",
    "configure_logging",
    "env_float",
    "env_int",
    "get_database_config",
    "get_platforms_config",
    "get_storage_config",
    "get_sync_config",
    "load_authority_overrides",
    "optional_env",
    "require_env_vars",
]
