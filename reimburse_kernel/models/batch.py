"""
Batch and BatchIssue models.

Contract:
    BatchModel stores a user's selection criteria (``filter_json``) and the
    denormalized issue counts written by the last consistency check
    (``issue_summary_json``).  BatchIssueModel rows are a derived cache owned
    by the checker: every run deletes and re-inserts the full set.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy import JSON, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from reimburse_kernel.db.base import Base, TimestampedBase, UUIDString
from reimburse_kernel.domain.types import BatchFilter


class BatchModel(TimestampedBase):
    __tablename__ = "batches"

    __table_args__ = (
        Index("ix_batches_user_project", "user_id", "project_id"),
    )

    user_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    project_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    filter_json: Mapped[dict[str, Any]] = mapped_column(
        JSON, nullable=False, default=dict,
    )
    issue_summary_json: Mapped[dict[str, Any] | None] = mapped_column(
        JSON, nullable=True,
    )

    @property
    def batch_filter(self) -> BatchFilter:
        return BatchFilter.from_json(self.filter_json)

    def __repr__(self) -> str:
        return f"<Batch {self.id} {self.name!r}>"


class BatchIssueModel(Base):
    __tablename__ = "batch_issues"

    __table_args__ = (
        Index("ix_batch_issues_batch_position", "batch_id", "position"),
    )

    batch_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("batches.id", ondelete="CASCADE"),
        nullable=False,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    severity: Mapped[str] = mapped_column(String(16), nullable=False)
    expense_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    receipt_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    message: Mapped[str] = mapped_column(Text, nullable=False)

    def __repr__(self) -> str:
        return f"<BatchIssue {self.batch_id}#{self.position} {self.type}>"
