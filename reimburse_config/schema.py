"""
AppConfig schema.

Frozen dataclasses for the runtime configuration.  YAML is parsed into
these types by ``reimburse_config.loader``; nothing else reads the file.
"""

from __future__ import annotations

from dataclasses import dataclass, field

# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DatabaseConfig:
    url: str = "sqlite:///reimburse.db"
    echo: bool = False
    pool_size: int = 10
    max_overflow: int = 5


@dataclass(frozen=True)
class QueueConfig:
    """Job queue timing.  Backoff is flat, not exponential."""

    poll_interval_seconds: float = 5
    max_attempts: int = 3
    retry_backoff_seconds: int = 60


@dataclass(frozen=True)
class StorageConfig:
    backend: str = "memory"  # memory | local
    root: str | None = None  # Required for local


@dataclass(frozen=True)
class ExportConfig:
    ttl_days: int = 3


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AppConfig:
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    queue: QueueConfig = field(default_factory=QueueConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    export: ExportConfig = field(default_factory=ExportConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
