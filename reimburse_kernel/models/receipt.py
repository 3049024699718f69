"""
Receipt model -- an uploaded proof of payment.

``matched_expense_id`` is the only link between a receipt and an expense.
Receipts are soft-deleted via ``deleted_at``; the core never reads deleted
rows.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from reimburse_kernel.db.base import TimestampedBase, UUIDString
from reimburse_kernel.db.types import MONEY
from reimburse_kernel.domain.types import ReceiptSnapshot


class ReceiptModel(TimestampedBase):
    __tablename__ = "receipts"

    __table_args__ = (
        Index("ix_receipts_user_project", "user_id", "project_id"),
        Index("ix_receipts_matched_expense", "matched_expense_id"),
        Index("ix_receipts_hash", "hash"),
    )

    user_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    project_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    hash: Mapped[str | None] = mapped_column(String(128), nullable=True)
    storage_key: Mapped[str | None] = mapped_column(String(512), nullable=True)
    file_ext: Mapped[str | None] = mapped_column(String(16), nullable=True)
    matched_expense_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("expenses.id", ondelete="SET NULL"),
        nullable=True,
    )
    receipt_amount: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)
    receipt_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    receipt_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    merchant_keyword: Mapped[str | None] = mapped_column(String(200), nullable=True)
    deleted_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def to_snapshot(self) -> ReceiptSnapshot:
        return ReceiptSnapshot(
            receipt_id=self.id,
            user_id=self.user_id,
            project_id=self.project_id,
            hash=self.hash,
            storage_key=self.storage_key,
            matched_expense_id=self.matched_expense_id,
            receipt_amount=(
                Decimal(self.receipt_amount)
                if self.receipt_amount is not None
                else None
            ),
            receipt_date=self.receipt_date,
            receipt_type=self.receipt_type,
            file_ext=self.file_ext,
            merchant_keyword=self.merchant_keyword,
        )

    def __repr__(self) -> str:
        return f"<Receipt {self.id} -> {self.matched_expense_id}>"
