"""
Module: reimburse_kernel.db.types
Responsibility: Column types shared by every model.
Architecture position: Kernel > DB.  Imports nothing from the rest of the
    package.

Money is Numeric(12, 2) mapped to Decimal; floats are never used for amounts.
UTCDateTime keeps every timestamp timezone-aware in Python even on backends
(SQLite) that store datetimes without an offset.
"""

from datetime import timezone
from uuid import UUID

from sqlalchemy import DateTime, Numeric, String
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """UUID stored as String(36) so PostgreSQL and SQLite share one schema."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else UUID(value)


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetime normalised to UTC on the way in and out."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


# Reimbursable amount, two decimal places
MONEY = Numeric(12, 2)
