"""
BatchIssueDetector -- Pure engine for batch data-quality checks.

Detects, for the expenses selected by a batch and the receipts of the same
project/user:
    - missing_receipt    an expense with no linked receipt, or whose status
                         is still the unmatched sentinel
    - amount_mismatch    a linked receipt whose recorded amount differs
                         numerically from the expense amount
    - duplicate_receipt  receipts sharing a content hash, all linked to
                         expenses of this batch (every member is flagged)

Architecture: reimburse_engines -- pure calculation, zero I/O.  The service
layer loads snapshots, calls ``detect_batch_issues`` and persists the result.

Ordering is deterministic (expense order, then linked receipt order, then
duplicate groups in first-seen order) so that re-running a check over
unchanged data yields the same ordered issue list.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from reimburse_kernel.domain.types import (
    ExpenseSnapshot,
    ExpenseStatus,
    IssueSeverity,
    IssueType,
    ReceiptSnapshot,
)
from reimburse_kernel.logging_config import get_logger
from reimburse_engines.grouping import group_receipts_by_expense
from reimburse_engines.tracer import traced_engine

logger = get_logger("engines.checker")

MISSING_RECEIPT_MESSAGE = "Missing receipt"
AMOUNT_MISMATCH_MESSAGE = "Receipt amount mismatch"


@dataclass(frozen=True)
class DetectedIssue:
    type: IssueType
    severity: IssueSeverity
    message: str
    expense_id: UUID | None = None
    receipt_id: UUID | None = None


@dataclass(frozen=True)
class IssueSummary:
    """Denormalized issue counts stored on the batch."""

    missing_receipt: int = 0
    duplicate_receipt: int = 0
    amount_mismatch: int = 0

    @classmethod
    def from_issues(cls, issues: Sequence[DetectedIssue]) -> IssueSummary:
        return cls(
            missing_receipt=sum(1 for i in issues if i.type is IssueType.MISSING_RECEIPT),
            duplicate_receipt=sum(1 for i in issues if i.type is IssueType.DUPLICATE_RECEIPT),
            amount_mismatch=sum(1 for i in issues if i.type is IssueType.AMOUNT_MISMATCH),
        )

    def to_json(self) -> dict[str, int]:
        return {
            IssueType.MISSING_RECEIPT.value: self.missing_receipt,
            IssueType.DUPLICATE_RECEIPT.value: self.duplicate_receipt,
            IssueType.AMOUNT_MISMATCH.value: self.amount_mismatch,
        }

    @property
    def total(self) -> int:
        return self.missing_receipt + self.duplicate_receipt + self.amount_mismatch


@dataclass(frozen=True)
class BatchCheckResult:
    issues: tuple[DetectedIssue, ...]
    summary: IssueSummary


def _expense_issues(
    expense: ExpenseSnapshot, linked: Sequence[ReceiptSnapshot],
) -> list[DetectedIssue]:
    issues: list[DetectedIssue] = []
    # manual_status does not exempt an expense from detection.
    if not linked or expense.status is ExpenseStatus.MISSING_RECEIPT:
        issues.append(DetectedIssue(
            type=IssueType.MISSING_RECEIPT,
            severity=IssueSeverity.WARNING,
            message=MISSING_RECEIPT_MESSAGE,
            expense_id=expense.expense_id,
        ))
    for receipt in linked:
        if receipt.receipt_amount is None:
            continue
        if receipt.receipt_amount != expense.amount:
            issues.append(DetectedIssue(
                type=IssueType.AMOUNT_MISMATCH,
                severity=IssueSeverity.WARNING,
                message=AMOUNT_MISMATCH_MESSAGE,
                expense_id=expense.expense_id,
                receipt_id=receipt.receipt_id,
            ))
    return issues


def _duplicate_issues(
    eligible_ids: set[UUID], receipts: Sequence[ReceiptSnapshot],
) -> list[DetectedIssue]:
    by_hash: dict[str, list[ReceiptSnapshot]] = {}
    for receipt in receipts:
        if not receipt.hash or receipt.matched_expense_id not in eligible_ids:
            continue
        by_hash.setdefault(receipt.hash, []).append(receipt)

    issues: list[DetectedIssue] = []
    for content_hash, group in by_hash.items():
        if len(group) < 2:
            continue
        for receipt in group:
            issues.append(DetectedIssue(
                type=IssueType.DUPLICATE_RECEIPT,
                severity=IssueSeverity.WARNING,
                message=f"Duplicate receipt hash {content_hash}",
                expense_id=receipt.matched_expense_id,
                receipt_id=receipt.receipt_id,
            ))
    return issues


@traced_engine("batch_check", "1.0", fingerprint_fields=("expenses", "receipts"))
def detect_batch_issues(
    *,
    expenses: Sequence[ExpenseSnapshot],
    receipts: Sequence[ReceiptSnapshot],
) -> BatchCheckResult:
    """Compute the complete issue set for one batch.

    Args:
        expenses: Expenses selected by the batch filter.
        receipts: All non-deleted receipts of the batch's project and user.
    """
    receipts_by_expense = group_receipts_by_expense(receipts)

    issues: list[DetectedIssue] = []
    for expense in expenses:
        issues.extend(
            _expense_issues(expense, receipts_by_expense.get(expense.expense_id, []))
        )
    issues.extend(_duplicate_issues({e.expense_id for e in expenses}, receipts))

    result = BatchCheckResult(
        issues=tuple(issues), summary=IssueSummary.from_issues(issues),
    )
    logger.debug(
        "batch_issues_detected",
        extra={
            "expense_count": len(expenses),
            "receipt_count": len(receipts),
            **result.summary.to_json(),
        },
    )
    return result


def summary_from_json(data: dict[str, Any] | None) -> IssueSummary:
    data = data or {}
    return IssueSummary(
        missing_receipt=int(data.get(IssueType.MISSING_RECEIPT.value, 0)),
        duplicate_receipt=int(data.get(IssueType.DUPLICATE_RECEIPT.value, 0)),
        amount_mismatch=int(data.get(IssueType.AMOUNT_MISMATCH.value, 0)),
    )
