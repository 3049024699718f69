"""
Receipts-by-expense grouping.

The batch checker and the export pipeline both describe the same
receipt -> expense relationship, so both call this one function.
"""

from __future__ import annotations

from collections.abc import Hashable, Iterable
from typing import Protocol, TypeVar


class _Linked(Protocol):
    @property
    def matched_expense_id(self) -> Hashable | None: ...


R = TypeVar("R", bound=_Linked)


def group_receipts_by_expense(receipts: Iterable[R]) -> dict[Hashable, list[R]]:
    """Group receipts by ``matched_expense_id``, keeping input order.

    Unlinked receipts are left out.  Callers are expected to pass only
    non-deleted receipts.
    """
    grouped: dict[Hashable, list[R]] = {}
    for receipt in receipts:
        expense_id = receipt.matched_expense_id
        if expense_id is None:
            continue
        grouped.setdefault(expense_id, []).append(receipt)
    return grouped
