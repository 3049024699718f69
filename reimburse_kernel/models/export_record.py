"""
ExportRecord model.

Lifecycle: ``pending`` (created by the requester) -> ``running`` ->
``completed`` | ``failed``.  After creation only the export pipeline writes
to a record.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import JSON, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from reimburse_kernel.db.base import TimestampedBase, UUIDString
from reimburse_kernel.domain.types import ExportStatus, ExportType


class ExportRecordModel(TimestampedBase):
    __tablename__ = "export_records"

    __table_args__ = (
        Index("ix_export_records_user", "user_id"),
        Index("ix_export_records_batch_type_status", "batch_id", "type", "status"),
    )

    batch_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    user_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    # Stored as strings; use ``project_uuids`` for typed access.
    project_ids: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    type: Mapped[str] = mapped_column(String(16), nullable=False)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=ExportStatus.PENDING.value,
    )
    storage_key: Mapped[str | None] = mapped_column(String(512), nullable=True)
    file_size: Mapped[int | None] = mapped_column(Integer, nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(nullable=True)

    @property
    def project_uuids(self) -> list[UUID]:
        return [UUID(str(pid)) for pid in (self.project_ids or [])]

    @property
    def export_type(self) -> ExportType:
        return ExportType(self.type)

    def __repr__(self) -> str:
        return f"<ExportRecord {self.id} {self.type} {self.status}>"
