"""
reimburse_engines.tracer -- Engine invocation tracer.

Responsibility:
    ``@traced_engine`` wraps a pure engine call and emits one
    REIMBURSE_ENGINE_TRACE record with the engine name, version, a
    deterministic fingerprint of selected keyword inputs and the duration.

Invariants enforced:
    - The fingerprint is deterministic: dict keys are sorted, sequences keep
      their order, and the digest is a 16-char SHA-256 prefix.
    - The decorator never mutates inputs or results.

Usage:
    @traced_engine("matching", "1.0", fingerprint_fields=("receipt", "rules"))
    def find_candidates(*, receipt, expenses, rules, today): ...
"""

from __future__ import annotations

import functools
import hashlib
import time
from collections.abc import Callable
from typing import Any

from reimburse_kernel.logging_config import get_logger

_logger = get_logger("engines.tracer")


def _canonicalize(value: Any) -> str:
    """Stable string form of a value for fingerprinting."""
    if value is None:
        return "null"
    if isinstance(value, (bool, int, float, str)):
        return str(value)
    if isinstance(value, dict):
        items = sorted(value.items(), key=lambda kv: str(kv[0]))
        return "{" + ",".join(f"{k}:{_canonicalize(v)}" for k, v in items) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_canonicalize(v) for v in value) + "]"
    return str(value)


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    kwargs: dict[str, Any],
) -> str:
    """Deterministic SHA-256 prefix of the named keyword arguments.

    Missing fields are recorded as "null".
    """
    parts = [f"{name}={_canonicalize(kwargs.get(name))}" for name in fingerprint_fields]
    canonical = "|".join(parts)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    """Decorator that emits REIMBURSE_ENGINE_TRACE for engine invocations."""

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            fp = ""
            if fingerprint_fields:
                fp = compute_input_fingerprint(fingerprint_fields, kwargs)

            t0 = time.monotonic()
            result = func(*args, **kwargs)
            duration_ms = round((time.monotonic() - t0) * 1000, 2)

            _logger.info(
                "REIMBURSE_ENGINE_TRACE",
                extra={
                    "trace_type": "REIMBURSE_ENGINE_TRACE",
                    "engine_name": engine_name,
                    "engine_version": engine_version,
                    "input_fingerprint": fp,
                    "duration_ms": duration_ms,
                    "function": func.__qualname__,
                },
            )
            return result

        return wrapper

    return decorator
