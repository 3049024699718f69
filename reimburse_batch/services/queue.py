"""
JobQueue -- Durable, row-claimed job queue.

Contract:
    ``submit()`` / ``enqueue()`` write a PENDING job row.
    ``claim_next()`` claims at most one eligible row.
    ``run_once()`` claims, dispatches to the registered handler and records
    the outcome.

Architecture: reimburse_batch/services.  Imports from reimburse_batch.domain,
    reimburse_batch.models, reimburse_batch.tasks and kernel utilities.

Invariants enforced:
    - A job is eligible when status is pending or failed, attempts is below
      max_attempts and scheduled_at is not in the future.
    - Claiming is a skip-locked select followed by a conditional UPDATE that
      re-checks eligibility and the attempts value read.  Only a claimant
      whose UPDATE matched one row dispatches the job.
    - Failures are retried after a flat backoff.  A job that reached
      max_attempts stays failed and is never selected again.
    - No exception raised by a handler escapes ``run_once()``.
    - All timestamps come from the injected Clock.
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from datetime import datetime, timedelta
from typing import Any, Callable
from uuid import UUID

from sqlalchemy import and_, select, update
from sqlalchemy.orm import Session

from reimburse_kernel.domain.clock import Clock, SystemClock
from reimburse_kernel.exceptions import JobNotFoundError
from reimburse_kernel.logging_config import LogContext, get_logger

from reimburse_batch.domain.types import (
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_RETRY_BACKOFF_SECONDS,
    ELIGIBLE_STATUSES,
    Job,
    JobRunResult,
    JobStatus,
)
from reimburse_batch.models.job import JobModel
from reimburse_batch.tasks.base import HandlerRegistry

logger = get_logger("batch.queue")

# Stored error messages are truncated to keep job rows small
_MAX_ERROR_LENGTH = 2000


def _format_error(exc: BaseException) -> str:
    message = f"{type(exc).__name__}: {exc}"
    return message[:_MAX_ERROR_LENGTH]


class JobQueue:
    """Job queue backed by the ``jobs`` table.

    Contract:
        - ``submit()`` flushes a new job into the caller's session.
        - ``enqueue()`` writes and commits a new job in its own session.
        - ``claim_next()`` marks one eligible job PROCESSING and commits.
        - ``run_once()`` executes at most one job; returns None when idle.

    Non-goals:
        - No priorities, no cancellation, no leader election.
        - Does NOT loop.  ``JobPoller`` calls ``run_once()`` on an interval.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        handlers: HandlerRegistry,
        clock: Clock | None = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        retry_backoff_seconds: int = DEFAULT_RETRY_BACKOFF_SECONDS,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._session_factory = session_factory
        self._handlers = handlers
        self._clock = clock or SystemClock()
        self._max_attempts = max_attempts
        self._retry_backoff = timedelta(seconds=retry_backoff_seconds)

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    @property
    def handlers(self) -> HandlerRegistry:
        return self._handlers

    # -------------------------------------------------------------------------
    # Submission
    # -------------------------------------------------------------------------

    def submit(
        self,
        session: Session,
        job_type: str,
        payload: Mapping[str, Any],
    ) -> Job:
        """Add a PENDING job to the caller's session and flush.

        The caller commits, so a job can be written atomically with the
        record it refers to.

        Raises:
            UnknownJobTypeError: If no handler is registered for job_type.
        """
        self._handlers.get(job_type)
        now = self._clock.now()
        model = JobModel(
            type=job_type,
            payload=dict(payload),
            status=JobStatus.PENDING.value,
            attempts=0,
            scheduled_at=now,
            created_at=now,
            updated_at=now,
        )
        session.add(model)
        session.flush()

        logger.info(
            "job_enqueued",
            extra={"job_id": str(model.id), "job_type": job_type},
        )
        return model.to_dto()

    def enqueue(self, job_type: str, payload: Mapping[str, Any]) -> UUID:
        """Write a PENDING job in its own transaction and return its id."""
        session = self._session_factory()
        try:
            job = self.submit(session, job_type, payload)
            session.commit()
            return job.job_id
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_job(self, job_id: UUID) -> Job:
        """Return the current state of a job.

        Raises:
            JobNotFoundError: If no job exists with the given id.
        """
        session = self._session_factory()
        try:
            model = session.get(JobModel, job_id)
            if model is None:
                raise JobNotFoundError(str(job_id))
            return model.to_dto()
        finally:
            session.close()

    # -------------------------------------------------------------------------
    # Claiming
    # -------------------------------------------------------------------------

    def _eligible(self, now: datetime):
        return and_(
            JobModel.status.in_(ELIGIBLE_STATUSES),
            JobModel.attempts < self._max_attempts,
            JobModel.scheduled_at <= now,
        )

    def _try_claim(
        self,
        session: Session,
        job_id: UUID,
        expected_attempts: int,
        now: datetime,
    ) -> bool:
        """Compare-and-set the job row to PROCESSING.

        Matches only if the row is still eligible and nobody incremented
        ``attempts`` since it was read.
        """
        result = session.execute(
            update(JobModel)
            .where(
                JobModel.id == job_id,
                JobModel.attempts == expected_attempts,
                self._eligible(now),
            )
            .values(
                status=JobStatus.PROCESSING.value,
                attempts=JobModel.attempts + 1,
                started_at=now,
                completed_at=None,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def claim_next(self) -> Job | None:
        """Claim the oldest eligible job, or return None if there is none.

        The claim is committed before the job is returned, so the
        PROCESSING state is visible to other pollers while it runs.
        """
        now = self._clock.now()
        session = self._session_factory()
        try:
            row = session.execute(
                select(JobModel.id, JobModel.attempts)
                .where(self._eligible(now))
                .order_by(JobModel.created_at, JobModel.id)
                .limit(1)
                .with_for_update(skip_locked=True)
            ).first()

            if row is None:
                session.rollback()
                return None

            if not self._try_claim(session, row.id, row.attempts, now):
                session.rollback()
                logger.debug("job_claim_lost", extra={"job_id": str(row.id)})
                return None

            session.commit()
            model = session.get(JobModel, row.id, populate_existing=True)
            job = model.to_dto()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

        logger.info(
            "job_claimed",
            extra={
                "job_id": str(job.job_id),
                "job_type": job.job_type,
                "attempt": job.attempts,
            },
        )
        return job

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    def run_once(self) -> JobRunResult | None:
        """Claim and execute at most one job.

        Returns:
            JobRunResult for the executed job, or None when no job was
            eligible (or the claim itself failed).
        """
        try:
            job = self.claim_next()
        except Exception:
            logger.exception("job_poll_failed")
            return None

        if job is None:
            return None

        with LogContext.bind(job_id=str(job.job_id)):
            return self._execute(job)

    def _execute(self, job: Job) -> JobRunResult:
        start = time.monotonic()
        error: str | None = None
        try:
            handler = self._handlers.get(job.job_type)
            handler.execute(job.payload, self._session_factory, self._clock)
        except Exception as exc:
            error = _format_error(exc)
            logger.exception(
                "job_failed",
                extra={
                    "job_type": job.job_type,
                    "attempt": job.attempts,
                    "max_attempts": self._max_attempts,
                },
            )

        duration_ms = round((time.monotonic() - start) * 1000, 3)

        try:
            status = self._finalize(job, error)
        except Exception:
            # The row stays PROCESSING; it is not eligible for pickup again.
            logger.exception("job_finalize_failed")
            return JobRunResult(
                job_id=job.job_id,
                job_type=job.job_type,
                status=JobStatus.PROCESSING,
                attempts=job.attempts,
                error=error,
                duration_ms=duration_ms,
            )

        if status is JobStatus.COMPLETED:
            logger.info(
                "job_completed",
                extra={"job_type": job.job_type, "duration_ms": duration_ms},
            )
        elif job.attempts >= self._max_attempts:
            logger.error(
                "job_exhausted",
                extra={"job_type": job.job_type, "attempts": job.attempts},
            )

        return JobRunResult(
            job_id=job.job_id,
            job_type=job.job_type,
            status=status,
            attempts=job.attempts,
            error=error,
            duration_ms=duration_ms,
        )

    def _finalize(self, job: Job, error: str | None) -> JobStatus:
        """Record the outcome of a claimed job and commit."""
        now = self._clock.now()
        if error is None:
            status = JobStatus.COMPLETED
            values: dict[str, Any] = {
                "status": status.value,
                "completed_at": now,
                "error": None,
                "updated_at": now,
            }
        else:
            status = JobStatus.FAILED
            values = {
                "status": status.value,
                "error": error,
                "scheduled_at": now + self._retry_backoff,
                "updated_at": now,
            }

        session = self._session_factory()
        try:
            session.execute(
                update(JobModel)
                .where(JobModel.id == job.job_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
        return status
