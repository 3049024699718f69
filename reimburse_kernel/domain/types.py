"""
reimburse_kernel.domain.types -- Enums and frozen snapshots shared by engines
and services.  ZERO I/O.

Snapshots decouple the pure engines from the ORM: services load rows, convert
them with ``to_snapshot()`` and hand immutable values to the engines.  The
``from_json`` constructors accept the camelCase documents stored in
``filter_json`` / ``match_rules_json`` / ``export_template_json``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


# =============================================================================
# Enums
# =============================================================================


class ExpenseStatus(str, Enum):
    """Receipt linkage state of an expense."""

    MISSING_RECEIPT = "missing_receipt"  # Unmatched sentinel
    MATCHED = "matched"
    NO_RECEIPT_REQUIRED = "no_receipt_required"


class IssueType(str, Enum):
    MISSING_RECEIPT = "missing_receipt"
    DUPLICATE_RECEIPT = "duplicate_receipt"
    AMOUNT_MISMATCH = "amount_mismatch"


class IssueSeverity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class ExportType(str, Enum):
    """Artifact kind produced by the export pipeline."""

    CSV = "csv"
    ZIP = "zip"
    YAML = "yaml"
    HTML = "html"


class ExportStatus(str, Enum):
    """ExportRecord lifecycle: pending -> running -> completed | failed."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class Confidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


# =============================================================================
# Parsing helpers
# =============================================================================


def parse_iso_date(value: Any) -> date | None:
    """Parse ``YYYY-MM-DD`` (optionally followed by a time part) into a date.

    Returns None for empty values.

    Raises:
        ValueError: If the value is not an ISO date string.
    """
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _str_tuple(value: Any) -> tuple[str, ...]:
    if not value:
        return ()
    return tuple(str(v) for v in value)


# =============================================================================
# Snapshots
# =============================================================================


@dataclass(frozen=True)
class ExpenseSnapshot:
    """Immutable view of an expense row."""

    expense_id: UUID
    user_id: UUID
    project_id: UUID
    amount: Decimal
    date: date | None
    category: str | None = None
    note: str | None = None
    status: ExpenseStatus = ExpenseStatus.MISSING_RECEIPT
    manual_status: bool = False


@dataclass(frozen=True)
class ReceiptSnapshot:
    """Immutable view of a non-deleted receipt row."""

    receipt_id: UUID
    user_id: UUID
    project_id: UUID
    hash: str | None = None
    storage_key: str | None = None
    matched_expense_id: UUID | None = None
    receipt_amount: Decimal | None = None
    receipt_date: date | None = None
    receipt_type: str | None = None
    file_ext: str | None = None
    merchant_keyword: str | None = None


# =============================================================================
# User-configurable documents
# =============================================================================


@dataclass(frozen=True)
class BatchFilter:
    """Expense selection criteria stored on a batch.

    Empty ``statuses`` / ``categories`` mean "no restriction".  Date bounds
    are inclusive.
    """

    date_from: date | None = None
    date_to: date | None = None
    statuses: tuple[str, ...] = ()
    categories: tuple[str, ...] = ()

    @classmethod
    def from_json(cls, data: dict[str, Any] | None) -> BatchFilter:
        data = data or {}
        return cls(
            date_from=parse_iso_date(data.get("dateFrom")),
            date_to=parse_iso_date(data.get("dateTo")),
            statuses=_str_tuple(data.get("statuses")),
            categories=_str_tuple(data.get("categories")),
        )

    def to_json(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.date_from is not None:
            data["dateFrom"] = self.date_from.isoformat()
        if self.date_to is not None:
            data["dateTo"] = self.date_to.isoformat()
        if self.statuses:
            data["statuses"] = list(self.statuses)
        if self.categories:
            data["categories"] = list(self.categories)
        return data


@dataclass(frozen=True)
class MatchRules:
    """Per-user matching tolerances.

    ``exclude_outside_window`` drops ``low`` candidates whose day difference
    exceeds ``date_window_days``; it is off unless a user opts in.
    """

    date_window_days: int = 3
    amount_tolerance: Decimal = Decimal("0")
    require_category_match: bool = False
    exclude_outside_window: bool = False

    @classmethod
    def from_json(cls, data: dict[str, Any] | None) -> MatchRules:
        data = data or {}
        return cls(
            date_window_days=int(data.get("dateWindowDays", 3)),
            amount_tolerance=Decimal(str(data.get("amountTolerance", 0))),
            require_category_match=bool(data.get("requireCategoryMatch", False)),
            exclude_outside_window=bool(data.get("excludeOutsideWindow", False)),
        )


@dataclass(frozen=True)
class ExportTemplate:
    """Per-user export layout preferences."""

    include_merchant_keyword: bool = False
    include_expense_id: bool = False
    include_receipt_ids: bool = False
    sort_direction: SortDirection = SortDirection.ASC
    include_yaml: bool = True

    @classmethod
    def from_json(cls, data: dict[str, Any] | None) -> ExportTemplate:
        data = data or {}
        direction = str(data.get("sortDirection", "asc")).lower()
        return cls(
            include_merchant_keyword=bool(data.get("includeMerchantKeyword", False)),
            include_expense_id=bool(data.get("includeExpenseId", False)),
            include_receipt_ids=bool(data.get("includeReceiptIds", False)),
            sort_direction=(
                SortDirection.DESC if direction == "desc" else SortDirection.ASC
            ),
            include_yaml=bool(data.get("includeYaml", True)),
        )
