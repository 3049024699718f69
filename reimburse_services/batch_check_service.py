"""
BatchCheckService -- Persists the batch consistency check.

Composes the pure ``detect_batch_issues`` engine with the store: loads the
batch's expenses and receipts, replaces the batch's issue rows and writes
the issue summary.

Architecture: reimburse_services -- imperative shell.

Invariants enforced:
    - The delete of prior issues, the insert of new ones and the summary
      write happen in the caller's single transaction.
    - Issues are written with a ``position`` ordinal, so an unchanged data
      set re-checks to an identical ordered list.
    - A missing batch (or one owned by another user) is a no-op.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from reimburse_kernel.domain.clock import Clock, SystemClock
from reimburse_kernel.logging_config import LogContext, get_logger
from reimburse_kernel.models import BatchIssueModel, BatchModel

from reimburse_engines.checker import BatchCheckResult, detect_batch_issues

from reimburse_services.expense_selection import (
    load_active_receipts,
    select_batch_expenses,
)

logger = get_logger("services.batch_check")


class BatchCheckService:
    """Recompute and store a batch's issue set.

    Contract:
        - ``check()`` replaces the batch's issues and summary; flushes only.
        - ``list_issues()`` returns the stored issues in position order.

    Non-goals:
        - Does NOT commit.  The caller (job handler or API) owns the
          transaction.
        - Does NOT change expense or receipt rows.
    """

    def __init__(self, session: Session, clock: Clock | None = None) -> None:
        self._session = session
        self._clock = clock or SystemClock()

    def check(self, batch_id: UUID, user_id: UUID) -> BatchCheckResult | None:
        """Run the consistency check for one batch.

        Returns:
            The detected issues, or None if the batch does not exist for
            this user.
        """
        with LogContext.bind(batch_id=str(batch_id), user_id=str(user_id)):
            batch = self._session.execute(
                select(BatchModel).where(
                    BatchModel.id == batch_id,
                    BatchModel.user_id == user_id,
                )
            ).scalar_one_or_none()

            if batch is None:
                logger.info("batch_check_skipped_missing_batch")
                return None

            project_ids = [batch.project_id]
            expenses = select_batch_expenses(
                self._session, user_id, project_ids, batch.batch_filter,
            )
            receipts = load_active_receipts(self._session, user_id, project_ids)

            result = detect_batch_issues(expenses=expenses, receipts=receipts)

            self._session.execute(
                delete(BatchIssueModel).where(BatchIssueModel.batch_id == batch_id)
            )
            self._session.add_all([
                BatchIssueModel(
                    batch_id=batch_id,
                    position=position,
                    type=issue.type.value,
                    severity=issue.severity.value,
                    expense_id=issue.expense_id,
                    receipt_id=issue.receipt_id,
                    message=issue.message,
                )
                for position, issue in enumerate(result.issues)
            ])
            batch.issue_summary_json = result.summary.to_json()
            batch.updated_at = self._clock.now()
            self._session.flush()

            logger.info(
                "batch_check_completed",
                extra={
                    "expense_count": len(expenses),
                    "receipt_count": len(receipts),
                    "issue_count": len(result.issues),
                },
            )
            return result

    def list_issues(self, batch_id: UUID) -> list[BatchIssueModel]:
        return list(
            self._session.execute(
                select(BatchIssueModel)
                .where(BatchIssueModel.batch_id == batch_id)
                .order_by(BatchIssueModel.position)
            ).scalars()
        )
