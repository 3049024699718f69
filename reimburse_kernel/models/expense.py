"""
Expense model -- a reimbursable spend line owned by one user.

The CRUD layer creates and edits expenses; the core only reads them, except
for the status flip that follows a match or unmatch.  ``manual_status`` opts
an expense out of those automatic flips.
"""

from __future__ import annotations

import datetime as dt
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, Date, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from reimburse_kernel.db.base import TimestampedBase, UUIDString
from reimburse_kernel.db.types import MONEY
from reimburse_kernel.domain.types import ExpenseSnapshot, ExpenseStatus


class ExpenseModel(TimestampedBase):
    __tablename__ = "expenses"

    __table_args__ = (
        Index("ix_expenses_user_project", "user_id", "project_id"),
        Index("ix_expenses_date", "date"),
    )

    user_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    project_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=ExpenseStatus.MISSING_RECEIPT.value,
    )
    manual_status: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
    )

    def to_snapshot(self) -> ExpenseSnapshot:
        return ExpenseSnapshot(
            expense_id=self.id,
            user_id=self.user_id,
            project_id=self.project_id,
            amount=Decimal(self.amount),
            date=self.date,
            category=self.category,
            note=self.note,
            status=ExpenseStatus(self.status),
            manual_status=self.manual_status,
        )

    def __repr__(self) -> str:
        return f"<Expense {self.id} {self.date} {self.amount} {self.status}>"
