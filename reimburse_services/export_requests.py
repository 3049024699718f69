"""
Export and check request helpers for the API layer.

Each helper writes its record and the job that processes it into the
caller's session, so both commit together or not at all.

Invariants enforced:
    - A batch export request reuses an existing ``pending`` or ``running``
      record for the same batch and type instead of creating a second one.
    - A project-set export needs at least one project.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from reimburse_kernel.domain.types import ExportStatus, ExportType
from reimburse_kernel.exceptions import (
    BatchNotFoundError,
    ProjectSelectionError,
    UnsupportedExportTypeError,
)
from reimburse_kernel.logging_config import get_logger
from reimburse_kernel.models import BatchModel, ExportRecordModel

if TYPE_CHECKING:
    from reimburse_batch.services.queue import JobQueue

logger = get_logger("services.export_requests")

# Job type names; kept as literals so this layer does not import reimburse_batch.
_EXPORT_JOB = "export"
_BATCH_CHECK_JOB = "batch_check"

_IN_FLIGHT = (ExportStatus.PENDING.value, ExportStatus.RUNNING.value)


def _export_type(value: ExportType | str) -> ExportType:
    try:
        return ExportType(value)
    except ValueError:
        raise UnsupportedExportTypeError(str(value)) from None


def _dedupe_ids(ids: Sequence[UUID]) -> list[UUID]:
    seen: set[UUID] = set()
    ordered = []
    for value in ids:
        if value not in seen:
            seen.add(value)
            ordered.append(value)
    return ordered


def request_batch_export(
    session: Session,
    queue: JobQueue,
    user_id: UUID,
    batch_id: UUID,
    export_type: ExportType | str,
) -> ExportRecordModel:
    """Create (or reuse) a pending export of a batch and enqueue its job.

    Raises:
        BatchNotFoundError: If the batch does not exist for this user.
        UnsupportedExportTypeError: If ``export_type`` is not known.
    """
    kind = _export_type(export_type)
    batch = session.execute(
        select(BatchModel).where(BatchModel.id == batch_id, BatchModel.user_id == user_id)
    ).scalar_one_or_none()
    if batch is None:
        raise BatchNotFoundError(str(batch_id))

    existing = session.execute(
        select(ExportRecordModel)
        .where(
            ExportRecordModel.batch_id == batch_id,
            ExportRecordModel.user_id == user_id,
            ExportRecordModel.type == kind.value,
            ExportRecordModel.status.in_(_IN_FLIGHT),
        )
        .order_by(ExportRecordModel.created_at)
        .limit(1)
    ).scalar_one_or_none()
    if existing is not None:
        logger.info(
            "export_request_reused",
            extra={"export_id": str(existing.id), "batch_id": str(batch_id)},
        )
        return existing

    record = ExportRecordModel(
        batch_id=batch_id,
        user_id=user_id,
        project_ids=[str(batch.project_id)],
        type=kind.value,
        status=ExportStatus.PENDING.value,
    )
    session.add(record)
    session.flush()
    queue.submit(
        session, _EXPORT_JOB, {"exportId": str(record.id), "userId": str(user_id)},
    )
    logger.info(
        "export_requested",
        extra={"export_id": str(record.id), "batch_id": str(batch_id), "export_type": kind.value},
    )
    return record


def request_project_export(
    session: Session,
    queue: JobQueue,
    user_id: UUID,
    project_ids: Sequence[UUID],
    export_type: ExportType | str,
) -> ExportRecordModel:
    """Create a pending export of an explicit project set and enqueue its job.

    Raises:
        ProjectSelectionError: If ``project_ids`` is empty.
        UnsupportedExportTypeError: If ``export_type`` is not known.
    """
    kind = _export_type(export_type)
    ids = _dedupe_ids(project_ids)
    if not ids:
        raise ProjectSelectionError()

    record = ExportRecordModel(
        batch_id=None,
        user_id=user_id,
        project_ids=[str(pid) for pid in ids],
        type=kind.value,
        status=ExportStatus.PENDING.value,
    )
    session.add(record)
    session.flush()
    queue.submit(
        session, _EXPORT_JOB, {"exportId": str(record.id), "userId": str(user_id)},
    )
    logger.info(
        "export_requested",
        extra={"export_id": str(record.id), "project_count": len(ids), "export_type": kind.value},
    )
    return record


def request_batch_check(
    session: Session,
    queue: JobQueue,
    user_id: UUID,
    batch_id: UUID,
) -> UUID:
    """Enqueue a consistency check for a batch and return the job id."""
    job = queue.submit(
        session, _BATCH_CHECK_JOB, {"batchId": str(batch_id), "userId": str(user_id)},
    )
    return job.job_id
