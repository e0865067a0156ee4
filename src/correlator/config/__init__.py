"""Application configuration helpers."""

from __future__ import annotations

from .engine import (
    MAX_BATCH_SIZE,
    MAX_EXPRESSION_LENGTH,
    EngineConfig,
    get_engine_config,
)
from .env import env_bool, env_float, env_int
from .errors import ConfigurationError
from .logging import configure_logging
from .storage import DatabaseConfig, StorageConfig, get_database_config, get_storage_config

__all__ = [
    "MAX_BATCH_SIZE",
    "MAX_EXPRESSION_LENGTH",
    "ConfigurationError",
    "DatabaseConfig",
    "EngineConfig",
    "StorageConfig",
    "configure_logging",
    "env_bool",
    "env_float",
    "env_int",
    "get_database_config",
    "get_engine_config",
    "get_storage_config",
]
