"""
JobOrchestrator -- DI container for the job processing system.

Contract:
    Wires the HandlerRegistry with the batch check and export handlers,
    creates the JobQueue and optionally a JobPoller.  Single place where
    all job-processing dependencies are composed, for both the queued and
    the synchronous export path.

Architecture: reimburse_batch (top-level).  This is the canonical entry
    point for running the worker.

Invariants enforced:
    - Clock injection: the queue, the handlers and the synchronous export
      path share one Clock.
    - Nothing in the kernel, engines or services imports reimburse_batch.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable
from uuid import UUID

from sqlalchemy.orm import Session

from reimburse_kernel.domain.clock import Clock, SystemClock
from reimburse_kernel.logging_config import get_logger
from reimburse_kernel.storage import ObjectStore, build_object_store
from reimburse_services.export_service import (
    DEFAULT_EXPORT_TTL_DAYS,
    ExportOutcome,
    ExportPipeline,
)

from reimburse_batch.domain.types import (
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_POLL_INTERVAL_SECONDS,
    DEFAULT_RETRY_BACKOFF_SECONDS,
)
from reimburse_batch.services.poller import JobPoller
from reimburse_batch.services.queue import JobQueue
from reimburse_batch.tasks.base import HandlerRegistry
from reimburse_batch.tasks.batch_check import BatchCheckTask
from reimburse_batch.tasks.export import ExportTask

if TYPE_CHECKING:
    from reimburse_config.schema import AppConfig

logger = get_logger("batch.orchestrator")


def default_handler_registry(
    object_store: ObjectStore,
    ttl_days: int = DEFAULT_EXPORT_TTL_DAYS,
) -> HandlerRegistry:
    """Create a HandlerRegistry with the batch check and export handlers."""
    registry = HandlerRegistry()
    registry.register(BatchCheckTask())
    registry.register(ExportTask(object_store, ttl_days=ttl_days))
    return registry


class JobOrchestrator:
    """DI container for the job processing system.

    Contract:
        - ``from_config()`` builds a fully wired orchestrator.
        - ``queue`` is the JobQueue used for enqueueing and run_once.
        - ``create_poller()`` returns a JobPoller for background use.
        - ``run_export_sync()`` runs the same export pipeline the queued
          handler uses.

    Non-goals:
        - Does NOT start the poller automatically; caller decides.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        object_store: ObjectStore,
        clock: Clock | None = None,
        handlers: HandlerRegistry | None = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        retry_backoff_seconds: int = DEFAULT_RETRY_BACKOFF_SECONDS,
        poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
        export_ttl_days: int = DEFAULT_EXPORT_TTL_DAYS,
    ) -> None:
        self._session_factory = session_factory
        self._object_store = object_store
        self._clock = clock or SystemClock()
        self._export_ttl_days = export_ttl_days
        self._poll_interval = poll_interval_seconds
        self._handlers = (
            handlers
            if handlers is not None
            else default_handler_registry(object_store, ttl_days=export_ttl_days)
        )
        self._queue = JobQueue(
            session_factory=session_factory,
            handlers=self._handlers,
            clock=self._clock,
            max_attempts=max_attempts,
            retry_backoff_seconds=retry_backoff_seconds,
        )

    # -------------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------------

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        session_factory: Callable[[], Session],
        clock: Clock | None = None,
        object_store: ObjectStore | None = None,
    ) -> JobOrchestrator:
        """Create a JobOrchestrator from loaded configuration.

        Args:
            config: Loaded AppConfig.
            session_factory: Callable returning new sessions.
            clock: Optional clock for deterministic testing.
            object_store: Optional store override.  If None, built from
                ``config.storage``.
        """
        store = object_store
        if store is None:
            store = build_object_store(config.storage.backend, config.storage.root)
        orchestrator = cls(
            session_factory=session_factory,
            object_store=store,
            clock=clock,
            max_attempts=config.queue.max_attempts,
            retry_backoff_seconds=config.queue.retry_backoff_seconds,
            poll_interval_seconds=config.queue.poll_interval_seconds,
            export_ttl_days=config.export.ttl_days,
        )
        logger.info(
            "orchestrator_configured",
            extra={
                "job_types": list(orchestrator.handlers.list_types()),
                "storage_backend": config.storage.backend,
            },
        )
        return orchestrator

    # -------------------------------------------------------------------------
    # Components
    # -------------------------------------------------------------------------

    def create_poller(self, poll_interval_seconds: float | None = None) -> JobPoller:
        interval = (
            poll_interval_seconds
            if poll_interval_seconds is not None
            else self._poll_interval
        )
        return JobPoller(self._queue, poll_interval_seconds=interval)

    def export_pipeline(self) -> ExportPipeline:
        return ExportPipeline(
            self._session_factory,
            self._object_store,
            clock=self._clock,
            ttl_days=self._export_ttl_days,
        )

    def run_export_sync(self, export_id: UUID, user_id: UUID) -> ExportOutcome | None:
        """Synchronous export; behaves exactly like the queued ``export`` job."""
        return self.export_pipeline().run(export_id, user_id)

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def queue(self) -> JobQueue:
        return self._queue

    @property
    def handlers(self) -> HandlerRegistry:
        return self._handlers

    @property
    def object_store(self) -> ObjectStore:
        return self._object_store

    @property
    def clock(self) -> Clock:
        return self._clock
