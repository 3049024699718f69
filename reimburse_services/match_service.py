"""
MatchService -- Links and unlinks receipts and expenses.

Contract:
    ``match()`` links a receipt to an expense of the same user and marks the
    expense ``matched``.  ``unmatch()`` clears the link and marks the former
    expense ``missing_receipt`` once no live receipt points at it.

Invariants enforced:
    - A receipt's ``matched_expense_id`` always references an expense owned
      by the same user.
    - An expense with ``manual_status`` is never flipped.
    - The receipt row is locked for the duration of the caller's
      transaction.

Non-goals:
    - Does NOT commit.  The caller owns the transaction.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from reimburse_kernel.domain.clock import Clock, SystemClock
from reimburse_kernel.domain.types import ExpenseStatus
from reimburse_kernel.exceptions import (
    ExpenseNotFoundError,
    OwnershipMismatchError,
    ReceiptAlreadyMatchedError,
    ReceiptNotFoundError,
)
from reimburse_kernel.logging_config import get_logger
from reimburse_kernel.models import ExpenseModel, ReceiptModel

logger = get_logger("services.match")


class MatchService:
    def __init__(self, session: Session, clock: Clock | None = None) -> None:
        self._session = session
        self._clock = clock or SystemClock()

    def _lock_receipt(self, receipt_id: UUID, user_id: UUID) -> ReceiptModel:
        receipt = self._session.execute(
            select(ReceiptModel)
            .where(
                ReceiptModel.id == receipt_id,
                ReceiptModel.user_id == user_id,
                ReceiptModel.deleted_at.is_(None),
            )
            .with_for_update()
        ).scalar_one_or_none()
        if receipt is None:
            raise ReceiptNotFoundError(str(receipt_id))
        return receipt

    def _set_status(self, expense: ExpenseModel, status: ExpenseStatus) -> bool:
        if expense.manual_status or expense.status == status.value:
            return False
        expense.status = status.value
        expense.updated_at = self._clock.now()
        return True

    def match(self, receipt_id: UUID, expense_id: UUID, user_id: UUID) -> ReceiptModel:
        """Link ``receipt_id`` to ``expense_id``.

        Matching a receipt to the expense it is already linked to is a
        no-op apart from the status refresh.

        Raises:
            ReceiptNotFoundError: Receipt missing, deleted or not the user's.
            ExpenseNotFoundError: Expense does not exist.
            OwnershipMismatchError: Expense belongs to another user.
            ReceiptAlreadyMatchedError: Receipt is linked to another expense.
        """
        receipt = self._lock_receipt(receipt_id, user_id)

        expense = self._session.get(ExpenseModel, expense_id)
        if expense is None:
            raise ExpenseNotFoundError(str(expense_id))
        if expense.user_id != user_id:
            raise OwnershipMismatchError(str(receipt_id), str(expense_id))

        current = receipt.matched_expense_id
        if current is not None and current != expense_id:
            raise ReceiptAlreadyMatchedError(str(receipt_id), str(current))

        receipt.matched_expense_id = expense_id
        receipt.updated_at = self._clock.now()
        flipped = self._set_status(expense, ExpenseStatus.MATCHED)
        self._session.flush()

        logger.info(
            "receipt_matched",
            extra={
                "receipt_id": str(receipt_id),
                "expense_id": str(expense_id),
                "status_changed": flipped,
            },
        )
        return receipt

    def unmatch(self, receipt_id: UUID, user_id: UUID) -> ReceiptModel:
        """Clear the receipt's link.  Unlinked receipts are left as they are.

        Raises:
            ReceiptNotFoundError: Receipt missing, deleted or not the user's.
        """
        receipt = self._lock_receipt(receipt_id, user_id)
        expense_id = receipt.matched_expense_id
        if expense_id is None:
            return receipt

        receipt.matched_expense_id = None
        receipt.updated_at = self._clock.now()
        self._session.flush()

        flipped = False
        expense = self._session.get(ExpenseModel, expense_id)
        if expense is not None and expense.user_id == user_id:
            remaining = self._session.execute(
                select(func.count())
                .select_from(ReceiptModel)
                .where(
                    ReceiptModel.matched_expense_id == expense_id,
                    ReceiptModel.deleted_at.is_(None),
                )
            ).scalar_one()
            if remaining == 0:
                flipped = self._set_status(expense, ExpenseStatus.MISSING_RECEIPT)
                self._session.flush()

        logger.info(
            "receipt_unmatched",
            extra={
                "receipt_id": str(receipt_id),
                "expense_id": str(expense_id),
                "status_changed": flipped,
            },
        )
        return receipt
