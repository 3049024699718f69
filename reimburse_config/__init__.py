"""
reimburse_config -- Runtime configuration for the worker and services.

``load_config()`` is the single entry point: it reads the YAML file, applies
``REIMBURSE_*`` environment overrides and returns a frozen ``AppConfig``.
The kernel never imports from this package.
"""

from reimburse_config.loader import (
    ENV_DATABASE_URL,
    ENV_LOG_LEVEL,
    apply_env_overrides,
    load_config,
    parse_config,
)
from reimburse_config.schema import (
    AppConfig,
    DatabaseConfig,
    ExportConfig,
    LoggingConfig,
    QueueConfig,
    StorageConfig,
)

__all__ = [
    "ENV_DATABASE_URL",
    "ENV_LOG_LEVEL",
    "AppConfig",
    "DatabaseConfig",
    "ExportConfig",
    "LoggingConfig",
    "QueueConfig",
    "StorageConfig",
    "apply_env_overrides",
    "load_config",
    "parse_config",
]
