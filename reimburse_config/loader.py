"""
Configuration Loader (``reimburse_config.loader``).

Responsibility
--------------
Loads the YAML configuration file and parses it into the frozen
``reimburse_config.schema`` dataclasses, applying environment overrides.

Invariants enforced
-------------------
* Unknown sections and unknown keys are rejected.
* Every parsed object is a frozen dataclass from ``schema.py``.
* Values are range-checked: poll interval and backoff must be positive,
  ``max_attempts`` at least 1, ``ttl_days`` at least 1.

Failure modes
-------------
* Missing YAML file  -> ``ConfigurationError``.
* Malformed YAML  -> ``ConfigurationError`` chained from ``yaml.YAMLError``.
* Invalid section or value  -> ``ConfigurationError``.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import fields
from pathlib import Path
from typing import Any

import yaml

from reimburse_kernel.exceptions import ConfigurationError
from reimburse_kernel.logging_config import get_logger, parse_level

from reimburse_config.schema import (
    AppConfig,
    DatabaseConfig,
    ExportConfig,
    LoggingConfig,
    QueueConfig,
    StorageConfig,
)

logger = get_logger("config")

ENV_DATABASE_URL = "REIMBURSE_DATABASE_URL"
ENV_LOG_LEVEL = "REIMBURSE_LOG_LEVEL"

STORAGE_BACKENDS = ("memory", "local")

_SECTIONS: dict[str, type] = {
    "database": DatabaseConfig,
    "queue": QueueConfig,
    "storage": StorageConfig,
    "export": ExportConfig,
    "logging": LoggingConfig,
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _parse_section(name: str, data: Any, source: str | None) -> Any:
    cls = _SECTIONS[name]
    if data is None:
        return cls()
    if not isinstance(data, Mapping):
        raise ConfigurationError(f"Section '{name}' must be a mapping", path=source)

    known = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigurationError(
            f"Unknown keys in section '{name}': {', '.join(unknown)}", path=source,
        )
    try:
        return cls(**dict(data))
    except TypeError as exc:
        raise ConfigurationError(f"Invalid section '{name}': {exc}", path=source) from exc


def _validate(config: AppConfig, source: str | None) -> None:
    queue = config.queue
    if queue.poll_interval_seconds <= 0:
        raise ConfigurationError("queue.poll_interval_seconds must be positive", path=source)
    if queue.max_attempts < 1:
        raise ConfigurationError("queue.max_attempts must be at least 1", path=source)
    if queue.retry_backoff_seconds <= 0:
        raise ConfigurationError("queue.retry_backoff_seconds must be positive", path=source)
    if config.storage.backend not in STORAGE_BACKENDS:
        raise ConfigurationError(
            f"storage.backend must be one of {STORAGE_BACKENDS}, "
            f"got {config.storage.backend!r}",
            path=source,
        )
    if config.storage.backend == "local" and not config.storage.root:
        raise ConfigurationError("storage.root is required for the local backend", path=source)
    if config.export.ttl_days < 1:
        raise ConfigurationError("export.ttl_days must be at least 1", path=source)
    try:
        parse_level(config.logging.level)
    except ValueError:
        raise ConfigurationError(
            f"logging.level {config.logging.level!r} is not a logging level", path=source,
        ) from None


def parse_config(data: Mapping[str, Any] | None, source: str | None = None) -> AppConfig:
    """Parse a configuration mapping into an ``AppConfig``.

    Missing sections take their defaults.

    Raises:
        ConfigurationError: On unknown sections or keys, or invalid values.
    """
    data = data or {}
    if not isinstance(data, Mapping):
        raise ConfigurationError("Configuration root must be a mapping", path=source)

    unknown = sorted(set(data) - set(_SECTIONS))
    if unknown:
        raise ConfigurationError(
            f"Unknown configuration sections: {', '.join(unknown)}", path=source,
        )

    config = AppConfig(**{
        name: _parse_section(name, data.get(name), source) for name in _SECTIONS
    })
    _validate(config, source)
    return config


def apply_env_overrides(
    config: AppConfig, environ: Mapping[str, str] | None = None,
) -> AppConfig:
    """Return ``config`` with ``REIMBURSE_*`` environment overrides applied."""
    environ = os.environ if environ is None else environ
    database = config.database
    logging_section = config.logging

    url = environ.get(ENV_DATABASE_URL)
    if url:
        database = DatabaseConfig(
            url=url,
            echo=database.echo,
            pool_size=database.pool_size,
            max_overflow=database.max_overflow,
        )
    level = environ.get(ENV_LOG_LEVEL)
    if level:
        logging_section = LoggingConfig(level=level)

    return AppConfig(
        database=database,
        queue=config.queue,
        storage=config.storage,
        export=config.export,
        logging=logging_section,
    )


def load_config(
    path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> AppConfig:
    """Load configuration from ``path`` (defaults only when None).

    Raises:
        ConfigurationError: If the file is missing, malformed or invalid.
    """
    source = str(path) if path is not None else None
    data: dict[str, Any] = {}
    if path is not None:
        try:
            data = load_yaml_file(Path(path))
        except FileNotFoundError:
            raise ConfigurationError("Configuration file not found", path=source) from None
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Malformed YAML: {exc}", path=source) from exc

    config = apply_env_overrides(parse_config(data, source), environ)
    _validate(config, source)

    logger.info(
        "REIMBURSE_CONFIG_TRACE",
        extra={
            "config_path": source,
            "storage_backend": config.storage.backend,
            "max_attempts": config.queue.max_attempts,
            "poll_interval": config.queue.poll_interval_seconds,
        },
    )
    return config
