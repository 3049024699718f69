"""
Export report construction -- tabular rows, CSV bytes and the YAML index.

Architecture: reimburse_engines -- pure.  ``build_export_entries`` fixes the
sequence numbers and receipt file names once; the CSV, the YAML index, the
ZIP archive and the HTML report all render from the same entries, so a file
name in the table always matches the archive member name.
"""

from __future__ import annotations

import csv
import io
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import date
from typing import Any
from uuid import UUID

import yaml

from reimburse_kernel.domain.types import (
    ExpenseSnapshot,
    ExpenseStatus,
    ExportTemplate,
    ReceiptSnapshot,
    SortDirection,
)
from reimburse_engines.grouping import group_receipts_by_expense
from reimburse_engines.naming import (
    DEFAULT_CATEGORY,
    EMPTY_SEGMENT,
    build_receipt_filename,
    format_amount,
    format_sequence,
)

UTF8_BOM = "\ufeff"
CSV_LINE_TERMINATOR = "\r\n"
MULTIPLE_PROJECTS_LABEL = "Multiple Projects"
DEFAULT_BATCH_NAME = "Items Export"

CSV_HEADER = (
    "Seq",
    "Project",
    "Date",
    "Amount",
    "Category",
    "Note",
    "Status",
    "Receipt Count",
    "Receipt Files",
)

STATUS_LABELS = {
    ExpenseStatus.MISSING_RECEIPT: "Missing receipt",
    ExpenseStatus.MATCHED: "Matched",
    ExpenseStatus.NO_RECEIPT_REQUIRED: "No receipt required",
}


@dataclass(frozen=True)
class ExportReceipt:
    receipt_id: UUID
    filename: str
    storage_key: str | None = None
    file_ext: str | None = None
    merchant_keyword: str | None = None


@dataclass(frozen=True)
class ExportEntry:
    """One expense row of an export, with its named receipts."""

    sequence: int
    project_label: str
    expense: ExpenseSnapshot
    receipts: tuple[ExportReceipt, ...] = ()

    @property
    def stored_receipts(self) -> tuple[ExportReceipt, ...]:
        """Receipts that have an original file to place in an archive."""
        return tuple(r for r in self.receipts if r.storage_key)


def status_label(status: ExpenseStatus) -> str:
    return STATUS_LABELS.get(status, status.value)


def project_label_for(names: Sequence[str]) -> str:
    """Label used in document headers for an export's project set."""
    if len(names) == 1:
        return names[0] or EMPTY_SEGMENT
    if not names:
        return EMPTY_SEGMENT
    return MULTIPLE_PROJECTS_LABEL


def _sort_key(expense: ExpenseSnapshot) -> date:
    return expense.date or date.min


def build_export_entries(
    *,
    expenses: Sequence[ExpenseSnapshot],
    receipts: Sequence[ReceiptSnapshot],
    project_labels: Mapping[UUID, str],
    sort_direction: SortDirection = SortDirection.ASC,
) -> tuple[ExportEntry, ...]:
    """Sort expenses by date and derive every receipt file name."""
    receipts_by_expense = group_receipts_by_expense(receipts)
    ordered = sorted(
        expenses, key=_sort_key, reverse=sort_direction is SortDirection.DESC,
    )

    entries: list[ExportEntry] = []
    for index, expense in enumerate(ordered):
        sequence = index + 1
        linked = receipts_by_expense.get(expense.expense_id, [])
        named = tuple(
            ExportReceipt(
                receipt_id=receipt.receipt_id,
                filename=build_receipt_filename(
                    sequence=sequence,
                    expense_date=_sort_key(expense),
                    amount=expense.amount,
                    category=expense.category or DEFAULT_CATEGORY,
                    note=expense.note,
                    receipt_id=receipt.receipt_id,
                    extension=receipt.file_ext,
                    sub_index=position if len(linked) > 1 else None,
                ),
                storage_key=receipt.storage_key,
                file_ext=receipt.file_ext,
                merchant_keyword=receipt.merchant_keyword,
            )
            for position, receipt in enumerate(linked)
        )
        entries.append(ExportEntry(
            sequence=sequence,
            project_label=project_labels.get(expense.project_id, EMPTY_SEGMENT),
            expense=expense,
            receipts=named,
        ))
    return tuple(entries)


# =============================================================================
# CSV
# =============================================================================


def build_csv_header(template: ExportTemplate) -> list[str]:
    header = list(CSV_HEADER)
    if template.include_merchant_keyword:
        header.append("Merchant Keywords")
    if template.include_expense_id:
        header.append("Expense ID")
    if template.include_receipt_ids:
        header.append("Receipt IDs")
    return header


def build_csv_row(entry: ExportEntry, template: ExportTemplate) -> list[str]:
    expense = entry.expense
    row = [
        format_sequence(entry.sequence),
        entry.project_label,
        expense.date.isoformat() if expense.date else EMPTY_SEGMENT,
        format_amount(expense.amount),
        expense.category or EMPTY_SEGMENT,
        expense.note or "",
        status_label(expense.status),
        str(len(entry.receipts)),
        "; ".join(r.filename for r in entry.receipts),
    ]
    if template.include_merchant_keyword:
        row.append(";".join(r.merchant_keyword for r in entry.receipts if r.merchant_keyword))
    if template.include_expense_id:
        row.append(str(expense.expense_id))
    if template.include_receipt_ids:
        row.append(";".join(str(r.receipt_id) for r in entry.receipts))
    return row


def build_csv_rows(
    entries: Sequence[ExportEntry], template: ExportTemplate,
) -> list[list[str]]:
    """Header plus one row per entry."""
    return [build_csv_header(template)] + [build_csv_row(e, template) for e in entries]


def render_csv(rows: Sequence[Sequence[str]]) -> bytes:
    """Serialize rows as CRLF-separated, minimally quoted UTF-8 with a BOM."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator=CSV_LINE_TERMINATOR)
    writer.writerows(rows)
    text = buffer.getvalue()
    if text.endswith(CSV_LINE_TERMINATOR):
        text = text[: -len(CSV_LINE_TERMINATOR)]
    return (UTF8_BOM + text).encode("utf-8")


# =============================================================================
# YAML index
# =============================================================================


def build_index_document(
    *,
    batch_name: str | None,
    project_label: str,
    entries: Sequence[ExportEntry],
) -> dict[str, Any]:
    return {
        "batch": batch_name or DEFAULT_BATCH_NAME,
        "project": project_label,
        "items": [
            {
                "sequence": entry.sequence,
                "date": entry.expense.date.isoformat() if entry.expense.date else None,
                "amount": format_amount(entry.expense.amount),
                "category": entry.expense.category,
                "note": entry.expense.note,
                "receipts": [
                    {"receiptId": str(r.receipt_id), "filename": r.filename}
                    for r in entry.stored_receipts
                ],
            }
            for entry in entries
        ],
    }


def render_yaml_index(
    *,
    batch_name: str | None,
    project_label: str,
    entries: Sequence[ExportEntry],
) -> bytes:
    document = build_index_document(
        batch_name=batch_name, project_label=project_label, entries=entries,
    )
    return yaml.safe_dump(
        document, allow_unicode=True, sort_keys=False, default_flow_style=False,
    ).encode("utf-8")
