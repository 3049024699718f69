"""Project model -- supplies the project label shown in exports."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from reimburse_kernel.db.base import TimestampedBase, UUIDString


class ProjectModel(TimestampedBase):
    __tablename__ = "projects"

    __table_args__ = (
        Index("ix_projects_user", "user_id"),
    )

    user_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)

    def __repr__(self) -> str:
        return f"<Project {self.id} {self.name!r}>"
