"""
reimburse_batch.domain.types -- Frozen dataclasses and constants for the job
queue.  ZERO I/O.

The job row is the only state a poller needs: any process can pick up where
another stopped, so everything here mirrors persisted columns.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from reimburse_kernel.exceptions import InvalidJobPayloadError


# =============================================================================
# Constants
# =============================================================================

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_RETRY_BACKOFF_SECONDS = 60  # Flat delay, not exponential
DEFAULT_POLL_INTERVAL_SECONDS = 5


# =============================================================================
# Status enums
# =============================================================================


class JobStatus(str, Enum):
    PENDING = "pending"  # Waiting for first pickup
    PROCESSING = "processing"  # Claimed by a poller
    COMPLETED = "completed"
    FAILED = "failed"  # Retried while attempts < max_attempts


ELIGIBLE_STATUSES = (JobStatus.PENDING.value, JobStatus.FAILED.value)


class JobType(str, Enum):
    BATCH_CHECK = "batch_check"
    EXPORT = "export"


# =============================================================================
# Job DTOs
# =============================================================================


@dataclass(frozen=True)
class Job:
    """Immutable snapshot of a job row."""

    job_id: UUID
    job_type: str
    status: JobStatus
    payload: dict[str, Any] = field(default_factory=dict)
    attempts: int = 0
    scheduled_at: datetime | None = None
    created_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    updated_at: datetime | None = None
    error: str | None = None

    def is_exhausted(self, max_attempts: int = DEFAULT_MAX_ATTEMPTS) -> bool:
        """A failed job that will never be picked up again."""
        return self.status is JobStatus.FAILED and self.attempts >= max_attempts


@dataclass(frozen=True)
class JobRunResult:
    """Outcome of one ``JobQueue.run_once`` execution."""

    job_id: UUID
    job_type: str
    status: JobStatus
    attempts: int
    error: str | None = None
    duration_ms: float = 0.0


# =============================================================================
# Payloads
# =============================================================================


def _require_uuid(payload: Mapping[str, Any], key: str, job_type: str) -> UUID:
    value = payload.get(key)
    if value in (None, ""):
        raise InvalidJobPayloadError(job_type, key)
    try:
        return UUID(str(value))
    except ValueError:
        raise InvalidJobPayloadError(job_type, key, reason="not a UUID") from None


@dataclass(frozen=True)
class BatchCheckPayload:
    batch_id: UUID
    user_id: UUID

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> BatchCheckPayload:
        job_type = JobType.BATCH_CHECK.value
        return cls(
            batch_id=_require_uuid(payload, "batchId", job_type),
            user_id=_require_uuid(payload, "userId", job_type),
        )

    def to_payload(self) -> dict[str, str]:
        return {"batchId": str(self.batch_id), "userId": str(self.user_id)}


@dataclass(frozen=True)
class ExportPayload:
    export_id: UUID
    user_id: UUID

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> ExportPayload:
        job_type = JobType.EXPORT.value
        return cls(
            export_id=_require_uuid(payload, "exportId", job_type),
            user_id=_require_uuid(payload, "userId", job_type),
        )

    def to_payload(self) -> dict[str, str]:
        return {"exportId": str(self.export_id), "userId": str(self.user_id)}
