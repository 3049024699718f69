"""
reimburse_engines.matching -- Receipt-to-expense candidate ranking.

Responsibility:
    Given what is known about a receipt (amount, date, category) and the
    expenses of its project, return at most three expenses the receipt most
    plausibly belongs to, each labelled with a coarse confidence tier.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  "Today" is passed in by the
    caller from its Clock; the engine never reads the system time.

Algorithm:
    1. Drop expenses whose amount differs from the receipt amount by more
       than ``amount_tolerance`` (inclusive boundary).  A receipt without an
       amount never excludes anything.
    2. Day difference between receipt date and expense date; a missing date
       on either side counts as ``today``.
    3. category_match = not required, or either side empty, or equal.
    4. Tier: high (<= 1 day and category_match), medium (<= 3 days), else low.
    5. Score = 10 - min(days, 10) + (2 if category_match).  Stable sort by
       score descending, keep the top three.

Invariants enforced:
    - Determinism: identical inputs give identical order and tiers; ties keep
      the caller's expense order.
    - Decimal arithmetic only for amounts.
"""

from __future__ import annotations

from collections.abc import Hashable, Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from reimburse_kernel.domain.types import Confidence, MatchRules
from reimburse_kernel.logging_config import get_logger
from reimburse_engines.tracer import traced_engine

logger = get_logger("engines.matching")

MAX_CANDIDATES = 3
ALREADY_MATCHED_REASON = "already matched"
MANUAL_SELECTION_REASON = "manual selection"

_MAX_DATE_WEIGHT = 10
_CATEGORY_WEIGHT = 2
_HIGH_MAX_DAYS = 1
_MEDIUM_MAX_DAYS = 3


@dataclass(frozen=True)
class ReceiptSignal:
    """What is known about the receipt being matched."""

    amount: Decimal | None = None
    date: date | None = None
    category: str | None = None
    note: str | None = None


@dataclass(frozen=True)
class ExpenseCandidate:
    expense_id: Hashable
    amount: Decimal
    date: date | None = None
    category: str | None = None
    note: str | None = None


@dataclass(frozen=True)
class MatchSuggestion:
    expense_id: Hashable
    confidence: Confidence
    reason: str


@dataclass(frozen=True)
class _Scored:
    suggestion: MatchSuggestion
    score: int


def day_difference(a: date | None, b: date | None, today: date) -> int:
    """Absolute whole-day distance, treating a missing date as ``today``."""
    return abs(((a or today) - (b or today)).days)


def within_tolerance(
    receipt_amount: Decimal | None, expense_amount: Decimal, tolerance: Decimal,
) -> bool:
    if receipt_amount is None:
        return True
    return abs(Decimal(expense_amount) - Decimal(receipt_amount)) <= tolerance


def categories_match(
    receipt_category: str | None, expense_category: str | None, required: bool,
) -> bool:
    if not required or not receipt_category or not expense_category:
        return True
    return receipt_category == expense_category


def confidence_for(days: int, category_match: bool) -> Confidence:
    if days <= _HIGH_MAX_DAYS and category_match:
        return Confidence.HIGH
    if days <= _MEDIUM_MAX_DAYS:
        return Confidence.MEDIUM
    return Confidence.LOW


def score_for(days: int, category_match: bool) -> int:
    return _MAX_DATE_WEIGHT - min(days, _MAX_DATE_WEIGHT) + (
        _CATEGORY_WEIGHT if category_match else 0
    )


def reason_for(days: int, category_match: bool) -> str:
    reason = f"date+/-{days}d"
    if category_match:
        reason += " + category"
    return reason


def _score_candidate(
    receipt: ReceiptSignal,
    expense: ExpenseCandidate,
    rules: MatchRules,
    today: date,
) -> _Scored | None:
    if not within_tolerance(receipt.amount, expense.amount, rules.amount_tolerance):
        return None

    days = day_difference(receipt.date, expense.date, today)
    category_match = categories_match(
        receipt.category, expense.category, rules.require_category_match,
    )
    confidence = confidence_for(days, category_match)

    if (
        rules.exclude_outside_window
        and confidence is Confidence.LOW
        and days > rules.date_window_days
    ):
        return None

    return _Scored(
        suggestion=MatchSuggestion(
            expense_id=expense.expense_id,
            confidence=confidence,
            reason=reason_for(days, category_match),
        ),
        score=score_for(days, category_match),
    )


@traced_engine("matching", "1.0", fingerprint_fields=("receipt", "expenses", "rules", "today"))
def find_candidates(
    *,
    receipt: ReceiptSignal,
    expenses: Sequence[ExpenseCandidate],
    rules: MatchRules,
    today: date,
) -> tuple[MatchSuggestion, ...]:
    """Rank ``expenses`` for ``receipt`` and return the best three."""
    scored = [
        s
        for s in (_score_candidate(receipt, e, rules, today) for e in expenses)
        if s is not None
    ]
    ranked = sorted(scored, key=lambda s: s.score, reverse=True)
    result = tuple(s.suggestion for s in ranked[:MAX_CANDIDATES])

    logger.debug(
        "match_candidates_ranked",
        extra={
            "expense_count": len(expenses),
            "eligible_count": len(scored),
            "returned_count": len(result),
        },
    )
    return result


def pin_matched_candidate(
    candidates: Sequence[MatchSuggestion],
    matched_expense_id: Hashable | None,
) -> tuple[MatchSuggestion, ...]:
    """Make sure the receipt's current expense is offered.

    When the receipt is already linked and its expense is missing from the
    ranked list, it is inserted at position 0 with reason "already matched".
    """
    if matched_expense_id is None or any(
        c.expense_id == matched_expense_id for c in candidates
    ):
        return tuple(candidates)
    pinned = MatchSuggestion(
        expense_id=matched_expense_id,
        confidence=Confidence.HIGH,
        reason=ALREADY_MATCHED_REASON,
    )
    return (pinned, *candidates)
