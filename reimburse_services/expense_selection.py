"""
Expense and receipt selection shared by the batch checker and the export
pipeline.

Both components must select the same rows for the same batch; they go
through these two functions and nothing else.
"""

from __future__ import annotations

from collections.abc import Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from reimburse_kernel.domain.types import BatchFilter, ExpenseSnapshot, ReceiptSnapshot
from reimburse_kernel.models import ExpenseModel, ReceiptModel


def select_batch_expenses(
    session: Session,
    user_id: UUID,
    project_ids: Sequence[UUID],
    batch_filter: BatchFilter | None = None,
) -> tuple[ExpenseSnapshot, ...]:
    """Expenses of ``user_id`` in ``project_ids`` that pass ``batch_filter``.

    Date bounds are inclusive.  Empty status / category lists do not
    restrict.  Rows come back ordered by date then id.
    """
    if not project_ids:
        return ()

    stmt = select(ExpenseModel).where(
        ExpenseModel.user_id == user_id,
        ExpenseModel.project_id.in_(list(project_ids)),
    )
    if batch_filter is not None:
        if batch_filter.date_from is not None:
            stmt = stmt.where(ExpenseModel.date >= batch_filter.date_from)
        if batch_filter.date_to is not None:
            stmt = stmt.where(ExpenseModel.date <= batch_filter.date_to)
        if batch_filter.statuses:
            stmt = stmt.where(ExpenseModel.status.in_(batch_filter.statuses))
        if batch_filter.categories:
            stmt = stmt.where(ExpenseModel.category.in_(batch_filter.categories))

    stmt = stmt.order_by(ExpenseModel.date, ExpenseModel.id)
    return tuple(m.to_snapshot() for m in session.execute(stmt).scalars())


def load_active_receipts(
    session: Session,
    user_id: UUID,
    project_ids: Sequence[UUID],
) -> tuple[ReceiptSnapshot, ...]:
    """Non-deleted receipts of ``user_id`` in ``project_ids``, oldest first."""
    if not project_ids:
        return ()

    stmt = (
        select(ReceiptModel)
        .where(
            ReceiptModel.user_id == user_id,
            ReceiptModel.project_id.in_(list(project_ids)),
            ReceiptModel.deleted_at.is_(None),
        )
        .order_by(ReceiptModel.created_at, ReceiptModel.id)
    )
    return tuple(m.to_snapshot() for m in session.execute(stmt).scalars())
