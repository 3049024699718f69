"""
Job ORM model.

Contract:
    One row per deferred work item.  Rows are never deleted; they are the
    audit trail of background work and the only state a restarted poller
    needs.  ``attempts`` is incremented when a poller claims the row.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from reimburse_kernel.db.base import TimestampedBase

from reimburse_batch.domain.types import Job, JobStatus


class JobModel(TimestampedBase):
    __tablename__ = "jobs"

    __table_args__ = (
        Index("ix_jobs_status_scheduled", "status", "scheduled_at"),
        Index("ix_jobs_created_at", "created_at"),
    )

    type: Mapped[str] = mapped_column(String(50), nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=JobStatus.PENDING.value,
    )
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    scheduled_at: Mapped[datetime] = mapped_column(nullable=False)
    started_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)

    def to_dto(self) -> Job:
        return Job(
            job_id=self.id,
            job_type=self.type,
            status=JobStatus(self.status),
            payload=dict(self.payload or {}),
            attempts=self.attempts,
            scheduled_at=self.scheduled_at,
            created_at=self.created_at,
            started_at=self.started_at,
            completed_at=self.completed_at,
            updated_at=self.updated_at,
            error=self.error,
        )

    def __repr__(self) -> str:
        return f"<Job {self.id} {self.type} {self.status} attempts={self.attempts}>"
