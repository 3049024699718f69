"""
Module: reimburse_kernel.db.base
Responsibility: declarative base shared by every ORM model.
Architecture position: Kernel > DB.  Must not import from models/ or outer
    layers.

Every row has a uuid4 ``id``; Python ``Decimal`` annotations map to MONEY
and ``datetime`` annotations to UTCDateTime.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from reimburse_kernel.db.types import MONEY, UTCDateTime, UUIDString

__all__ = ["Base", "TimestampedBase", "UUIDString"]


class Base(DeclarativeBase):
    """Snapshots expose ``id`` under its domain name (``expense_id``, ...)."""

    type_annotation_map: ClassVar[dict] = {
        Decimal: MONEY,
        datetime: UTCDateTime(),
        UUID: UUIDString(),
    }

    id: Mapped[UUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TimestampedBase(Base):
    """
    Adds ``created_at`` / ``updated_at``.

    The job queue writes both from its injected Clock so ordering is
    deterministic under test; other rows take the server default.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), server_default=func.now(), onupdate=func.now(), nullable=False
    )
