"""UserSettings model -- per-user match rules and export template."""

from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy import JSON
from sqlalchemy.orm import Mapped, mapped_column

from reimburse_kernel.db.base import TimestampedBase, UUIDString
from reimburse_kernel.domain.types import ExportTemplate, MatchRules


class UserSettingsModel(TimestampedBase):
    __tablename__ = "settings"

    user_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False, unique=True)
    match_rules_json: Mapped[dict[str, Any]] = mapped_column(
        JSON, nullable=False, default=dict,
    )
    export_template_json: Mapped[dict[str, Any]] = mapped_column(
        JSON, nullable=False, default=dict,
    )

    @property
    def match_rules(self) -> MatchRules:
        return MatchRules.from_json(self.match_rules_json)

    @property
    def export_template(self) -> ExportTemplate:
        return ExportTemplate.from_json(self.export_template_json)
