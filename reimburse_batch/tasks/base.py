"""
JobHandler protocol and HandlerRegistry.

Contract:
    ``JobHandler`` defines the interface every job handler implements.
    ``HandlerRegistry`` stores handlers keyed by ``job_type``.

Architecture:
    reimburse_batch/tasks.  Handlers receive a session factory rather than a
    session: each handler decides its own transaction boundaries.  The
    queue only owns the job row.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Callable, Protocol, runtime_checkable

from sqlalchemy.orm import Session

from reimburse_kernel.domain.clock import Clock
from reimburse_kernel.exceptions import UnknownJobTypeError


@runtime_checkable
class JobHandler(Protocol):
    """Protocol for job handler implementations.

    Contract:
        - ``job_type``: unique string key registered in HandlerRegistry.
        - ``description``: human-readable label for logs.
        - ``execute()``: does the work; raising marks the job failed.

    Non-goals:
        - Does NOT touch the job row.  The queue records the outcome.
        - Does NOT retry.  Retries are scheduled by the queue.
    """

    @property
    def job_type(self) -> str: ...

    @property
    def description(self) -> str: ...

    def execute(
        self,
        payload: Mapping[str, Any],
        session_factory: Callable[[], Session],
        clock: Clock,
    ) -> None:
        """Run the job.

        Args:
            payload: The job row's JSON payload (camelCase keys).
            session_factory: Factory for sessions the handler commits itself.
            clock: Injected clock shared with the queue.

        Raises:
            InvalidJobPayloadError: If required payload keys are missing.
        """
        ...


class HandlerRegistry:
    """Registry mapping job_type strings to JobHandler implementations.

    Contract:
        - ``register()`` raises ValueError on a duplicate job_type.
        - ``get()`` raises UnknownJobTypeError for an unregistered type.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, JobHandler] = {}

    def register(self, handler: JobHandler) -> None:
        if handler.job_type in self._handlers:
            raise ValueError(
                f"Job type '{handler.job_type}' is already registered"
            )
        self._handlers[handler.job_type] = handler

    def get(self, job_type: str) -> JobHandler:
        try:
            return self._handlers[job_type]
        except KeyError:
            raise UnknownJobTypeError(job_type, self.list_types()) from None

    def list_types(self) -> tuple[str, ...]:
        """Return all registered job_type strings, sorted."""
        return tuple(sorted(self._handlers))

    def __len__(self) -> int:
        return len(self._handlers)

    def __contains__(self, job_type: str) -> bool:
        return job_type in self._handlers
