"""
CandidateService -- "Suggest a match" for one receipt.

Loads the receipt, the user's match rules and the candidate expenses of the
receipt's project, runs the matching engine, then applies the two caller
rules: the currently linked expense is always offered, and an empty
ranking falls back to offering every project expense.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from reimburse_kernel.domain.clock import Clock, SystemClock
from reimburse_kernel.domain.types import Confidence, MatchRules
from reimburse_kernel.exceptions import ReceiptNotFoundError
from reimburse_kernel.logging_config import get_logger
from reimburse_kernel.models import ExpenseModel, ReceiptModel, UserSettingsModel

from reimburse_engines.matching import (
    MANUAL_SELECTION_REASON,
    ExpenseCandidate,
    MatchSuggestion,
    ReceiptSignal,
    find_candidates,
    pin_matched_candidate,
)

logger = get_logger("services.candidates")


@dataclass(frozen=True)
class CandidateView:
    """A suggestion joined with the expense fields a picker displays."""

    expense_id: UUID
    confidence: Confidence
    reason: str
    amount: Decimal
    date: date
    category: str | None
    note: str | None


class CandidateService:
    """Ranked expense suggestions for a receipt.  Read-only."""

    def __init__(self, session: Session, clock: Clock | None = None) -> None:
        self._session = session
        self._clock = clock or SystemClock()

    def _rules_for(self, user_id: UUID) -> MatchRules:
        settings = self._session.execute(
            select(UserSettingsModel).where(UserSettingsModel.user_id == user_id)
        ).scalar_one_or_none()
        return settings.match_rules if settings is not None else MatchRules()

    def suggest(self, receipt_id: UUID, user_id: UUID) -> tuple[CandidateView, ...]:
        """
        Raises:
            ReceiptNotFoundError: If the receipt does not exist for this
                user or has been deleted.
        """
        receipt = self._session.execute(
            select(ReceiptModel).where(
                ReceiptModel.id == receipt_id,
                ReceiptModel.user_id == user_id,
                ReceiptModel.deleted_at.is_(None),
            )
        ).scalar_one_or_none()
        if receipt is None:
            raise ReceiptNotFoundError(str(receipt_id))

        expenses = list(
            self._session.execute(
                select(ExpenseModel)
                .where(
                    ExpenseModel.user_id == user_id,
                    ExpenseModel.project_id == receipt.project_id,
                )
                .order_by(ExpenseModel.date, ExpenseModel.id)
            ).scalars()
        )
        by_id = {e.id: e for e in expenses}

        signal = ReceiptSignal(
            amount=receipt.receipt_amount,
            date=receipt.receipt_date,
            category=receipt.receipt_type,
            note=receipt.merchant_keyword,
        )
        suggestions = find_candidates(
            receipt=signal,
            expenses=[
                ExpenseCandidate(
                    expense_id=e.id,
                    amount=e.amount,
                    date=e.date,
                    category=e.category,
                    note=e.note,
                )
                for e in expenses
            ],
            rules=self._rules_for(user_id),
            today=self._clock.today(),
        )

        if not suggestions:
            suggestions = tuple(
                MatchSuggestion(
                    expense_id=e.id,
                    confidence=Confidence.HIGH,
                    reason=MANUAL_SELECTION_REASON,
                )
                for e in expenses
            )

        linked_id = receipt.matched_expense_id
        if linked_id is not None and linked_id not in by_id:
            linked = self._session.execute(
                select(ExpenseModel).where(
                    ExpenseModel.id == linked_id,
                    ExpenseModel.user_id == user_id,
                )
            ).scalar_one_or_none()
            if linked is not None:
                by_id[linked.id] = linked

        # A dangling link (expense deleted or foreign) is not offered.
        if linked_id in by_id:
            suggestions = pin_matched_candidate(suggestions, receipt.matched_expense_id)

        logger.debug(
            "match_candidates_suggested",
            extra={"receipt_id": str(receipt_id), "candidate_count": len(suggestions)},
        )
        return tuple(
            CandidateView(
                expense_id=s.expense_id,
                confidence=s.confidence,
                reason=s.reason,
                amount=by_id[s.expense_id].amount,
                date=by_id[s.expense_id].date,
                category=by_id[s.expense_id].category,
                note=by_id[s.expense_id].note,
            )
            for s in suggestions
        )
