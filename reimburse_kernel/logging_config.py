"""
Structured JSON logging for the reimbursement core.

Every record is one JSON object per line:

    {"ts": ..., "level": "INFO", "logger": "reimburse.batch.queue",
     "message": "job_claimed", "job_id": "...", "attempt": 1}

Job-scoped identifiers (job, batch, export, user) live in ``LogContext``
and are merged into every record emitted while they are bound, so a handler
deep inside an export does not need to thread ids through its calls.
"""

__all__ = [
    "CONTEXT_FIELDS",
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "parse_level",
    "reset_logging",
]

import json
import logging
import sys
import threading
from contextvars import ContextVar, Token
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

CONTEXT_FIELDS: tuple[str, ...] = (
    "correlation_id",
    "job_id",
    "batch_id",
    "export_id",
    "user_id",
)

_CONTEXT_VARS: dict[str, ContextVar[str | None]] = {
    name: ContextVar(f"reimburse_log_{name}", default=None) for name in CONTEXT_FIELDS
}


# ---------------------------------------------------------------------------
# Context propagation
# ---------------------------------------------------------------------------


class LogContext:
    """Context-local ids merged into every log record.

    Backed by ``contextvars``, so values are per thread and per asyncio
    task.  Only the names in ``CONTEXT_FIELDS`` are carried.
    """

    @classmethod
    def set(cls, **fields: str | None) -> None:
        """Set context fields.  None values are left unchanged.

        Raises:
            TypeError: For a name outside ``CONTEXT_FIELDS``.
        """
        unknown = sorted(set(fields) - set(_CONTEXT_VARS))
        if unknown:
            raise TypeError(f"Unknown log context fields: {', '.join(unknown)}")
        for name, value in fields.items():
            if value is not None:
                _CONTEXT_VARS[name].set(str(value))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        """Non-None context fields, in ``CONTEXT_FIELDS`` order."""
        return {
            name: value
            for name, var in _CONTEXT_VARS.items()
            if (value := var.get()) is not None
        }

    @classmethod
    def clear(cls) -> None:
        for var in _CONTEXT_VARS.values():
            var.set(None)

    @classmethod
    def bind(cls, **fields: Any) -> "_BoundContext":
        """Bind fields for the duration of a ``with`` block.

        None values and unknown names are skipped; previous values are
        restored on exit.
        """
        return _BoundContext(fields)


class _BoundContext:
    def __init__(self, fields: dict[str, Any]):
        self._fields = fields
        self._tokens: list[tuple[ContextVar[str | None], Token]] = []

    def __enter__(self) -> type[LogContext]:
        for name, value in self._fields.items():
            var = _CONTEXT_VARS.get(name)
            if var is not None and value is not None:
                self._tokens.append((var, var.set(str(value))))
        return LogContext

    def __exit__(self, *exc: Any) -> None:
        while self._tokens:
            var, token = self._tokens.pop()
            var.reset(token)


# ---------------------------------------------------------------------------
# JSON Formatter
# ---------------------------------------------------------------------------

_STDLIB_KEYS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "taskName"}


def _json_default(obj: Any) -> Any:
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, (UUID, Decimal)):
        return str(obj)
    return repr(obj)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    # ReimburseError subclasses keep their context as public attributes
    for key, value in vars(exc).items():
        if not key.startswith("_") and key not in ("args", "code"):
            fields[f"exc_{key}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """Formats each log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }

        for key, value in vars(record).items():
            if key not in _STDLIB_KEYS and key not in payload:
                payload[key] = value

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)


# ---------------------------------------------------------------------------
# Logger factory
# ---------------------------------------------------------------------------

_LOGGER_PREFIX = "reimburse"


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the reimburse namespace."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


def parse_level(level: int | str) -> int:
    """Numeric level for ``level``, accepting names in any case.

    Raises:
        ValueError: If ``level`` is not a known level name.
    """
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).strip().upper())
    if not isinstance(value, int):
        raise ValueError(f"Unknown log level: {level!r}")
    return value


# ---------------------------------------------------------------------------
# Initialization
# ---------------------------------------------------------------------------

_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach one JSON handler to the ``reimburse`` logger.

    Idempotent: later calls are ignored until ``reset_logging()``.  Records
    do not propagate to the root logger, so an application's own logging
    setup is left alone.
    """
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    root_logger = logging.getLogger(_LOGGER_PREFIX)
    root_logger.setLevel(parse_level(level))
    root_logger.propagate = False

    h = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
    h.setFormatter(StructuredFormatter())
    root_logger.addHandler(h)


def reset_logging() -> None:
    """Reset logging configuration. FOR TESTING ONLY."""
    global _configured
    with _lock:
        _configured = False
    logger = logging.getLogger(_LOGGER_PREFIX)
    logger.handlers.clear()
    logger.setLevel(logging.WARNING)
