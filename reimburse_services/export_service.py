"""
ExportPipeline -- Materializes an ExportRecord into a stored artifact.

Contract:
    ``run(export_id, user_id)`` loads the record, moves it to ``running``,
    builds the artifact for its type, uploads it under
    ``exports/{export_id}.{ext}`` and moves the record to ``completed``.
    The same method serves the synchronous path (``run_export_sync``) and
    the queued path (``ExportTask``), so both produce identical bytes.

Architecture: reimburse_services -- imperative shell around the pure
    report / archive / html engines.

Invariants enforced:
    - ``running`` is committed before any work starts; ``completed`` or
      ``failed`` is committed after.  A polling reader never sees
      ``pending`` while work is underway.
    - Any error while building or uploading marks the record ``failed``
      and is logged, not raised.
    - A missing record is a no-op.
    - Receipt originals are fetched one at a time.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Callable
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from reimburse_kernel.domain.clock import Clock, SystemClock
from reimburse_kernel.domain.types import (
    BatchFilter,
    ExportStatus,
    ExportTemplate,
    ExportType,
)
from reimburse_kernel.exceptions import (
    BatchNotFoundError,
    ProjectSelectionError,
    UnsupportedExportTypeError,
)
from reimburse_kernel.logging_config import LogContext, get_logger
from reimburse_kernel.models import (
    BatchModel,
    ExportRecordModel,
    ProjectModel,
    UserSettingsModel,
)
from reimburse_kernel.storage import ObjectStore, export_storage_key

from reimburse_engines.archive import build_zip_archive
from reimburse_engines.html_report import render_html_report
from reimburse_engines.naming import EMPTY_SEGMENT
from reimburse_engines.report import (
    ExportEntry,
    build_csv_rows,
    build_export_entries,
    project_label_for,
    render_csv,
    render_yaml_index,
)

from reimburse_services.expense_selection import (
    load_active_receipts,
    select_batch_expenses,
)

logger = get_logger("services.export")

DEFAULT_EXPORT_TTL_DAYS = 3

CONTENT_TYPES: dict[ExportType, str] = {
    ExportType.CSV: "text/csv; charset=utf-8",
    ExportType.YAML: "application/yaml; charset=utf-8",
    ExportType.ZIP: "application/zip",
    ExportType.HTML: "text/html; charset=utf-8",
}


@dataclass(frozen=True)
class ExportOutcome:
    """Terminal state of one pipeline run."""

    export_id: UUID
    status: ExportStatus
    storage_key: str | None = None
    file_size: int | None = None


@dataclass(frozen=True)
class _Artifact:
    data: bytes
    extension: str
    content_type: str


@dataclass(frozen=True)
class _ExportScope:
    project_ids: tuple[UUID, ...]
    batch_name: str | None
    batch_filter: BatchFilter | None


class ExportPipeline:
    """Builds, uploads and records export artifacts.

    Contract:
        - ``run()`` drives one ExportRecord to a terminal status and
          returns the outcome, or None if the record does not exist.

    Non-goals:
        - Does NOT create ExportRecords (see export_requests).
        - Does NOT retry.  A failed record stays failed; retrying means a
          new export request.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        object_store: ObjectStore,
        clock: Clock | None = None,
        ttl_days: int = DEFAULT_EXPORT_TTL_DAYS,
    ) -> None:
        self._session_factory = session_factory
        self._object_store = object_store
        self._clock = clock or SystemClock()
        self._ttl = timedelta(days=ttl_days)

    def run(self, export_id: UUID, user_id: UUID) -> ExportOutcome | None:
        with LogContext.bind(export_id=str(export_id), user_id=str(user_id)):
            session = self._session_factory()
            try:
                return self._run(session, export_id, user_id)
            finally:
                session.close()

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _run(
        self, session: Session, export_id: UUID, user_id: UUID,
    ) -> ExportOutcome | None:
        record = session.execute(
            select(ExportRecordModel).where(
                ExportRecordModel.id == export_id,
                ExportRecordModel.user_id == user_id,
            )
        ).scalar_one_or_none()

        if record is None:
            logger.info("export_skipped_missing_record")
            return None

        record.status = ExportStatus.RUNNING.value
        record.updated_at = self._clock.now()
        session.commit()
        logger.info("export_started", extra={"export_type": record.type})

        try:
            artifact = self._build(session, record)
            key = export_storage_key(export_id, artifact.extension)
            uploaded = self._object_store.upload(key, artifact.data, artifact.content_type)

            now = self._clock.now()
            record.status = ExportStatus.COMPLETED.value
            record.storage_key = uploaded.key
            record.file_size = uploaded.size
            record.expires_at = now + self._ttl
            record.updated_at = now
            session.commit()
        except Exception:
            session.rollback()
            logger.exception("export_failed")
            self._mark_failed(session, export_id)
            return ExportOutcome(export_id=export_id, status=ExportStatus.FAILED)

        logger.info(
            "export_completed",
            extra={"storage_key": uploaded.key, "file_size": uploaded.size},
        )
        return ExportOutcome(
            export_id=export_id,
            status=ExportStatus.COMPLETED,
            storage_key=uploaded.key,
            file_size=uploaded.size,
        )

    def _mark_failed(self, session: Session, export_id: UUID) -> None:
        session.execute(
            update(ExportRecordModel)
            .where(ExportRecordModel.id == export_id)
            .values(status=ExportStatus.FAILED.value, updated_at=self._clock.now())
            .execution_options(synchronize_session=False)
        )
        session.commit()

    def _resolve_scope(
        self, session: Session, record: ExportRecordModel,
    ) -> _ExportScope:
        if record.batch_id is not None:
            batch = session.execute(
                select(BatchModel).where(
                    BatchModel.id == record.batch_id,
                    BatchModel.user_id == record.user_id,
                )
            ).scalar_one_or_none()
            if batch is None:
                raise BatchNotFoundError(str(record.batch_id))
            return _ExportScope(
                project_ids=(batch.project_id,),
                batch_name=batch.name,
                batch_filter=batch.batch_filter,
            )

        project_ids = tuple(record.project_uuids)
        if not project_ids:
            raise ProjectSelectionError()
        return _ExportScope(project_ids=project_ids, batch_name=None, batch_filter=None)

    def _load_template(self, session: Session, user_id: UUID) -> ExportTemplate:
        settings = session.execute(
            select(UserSettingsModel).where(UserSettingsModel.user_id == user_id)
        ).scalar_one_or_none()
        return settings.export_template if settings is not None else ExportTemplate()

    def _project_labels(
        self, session: Session, user_id: UUID, project_ids: tuple[UUID, ...],
    ) -> dict[UUID, str]:
        rows = session.execute(
            select(ProjectModel.id, ProjectModel.name).where(
                ProjectModel.id.in_(list(project_ids)),
                ProjectModel.user_id == user_id,
            )
        ).all()
        return {row.id: row.name for row in rows}

    def _build(self, session: Session, record: ExportRecordModel) -> _Artifact:
        try:
            export_type = record.export_type
        except ValueError:
            raise UnsupportedExportTypeError(record.type) from None

        user_id = record.user_id
        scope = self._resolve_scope(session, record)
        template = self._load_template(session, user_id)
        labels = self._project_labels(session, user_id, scope.project_ids)

        expenses = select_batch_expenses(
            session, user_id, scope.project_ids, scope.batch_filter,
        )
        receipts = load_active_receipts(session, user_id, scope.project_ids)
        entries = build_export_entries(
            expenses=expenses,
            receipts=receipts,
            project_labels=labels,
            sort_direction=template.sort_direction,
        )
        project_label = project_label_for(
            [labels.get(pid, EMPTY_SEGMENT) for pid in scope.project_ids]
        )

        logger.debug(
            "export_entries_built",
            extra={"entry_count": len(entries), "receipt_count": len(receipts)},
        )
        data = self._render(export_type, template, scope, project_label, entries)
        return _Artifact(
            data=data,
            extension=export_type.value,
            content_type=CONTENT_TYPES[export_type],
        )

    def _render(
        self,
        export_type: ExportType,
        template: ExportTemplate,
        scope: _ExportScope,
        project_label: str,
        entries: tuple[ExportEntry, ...],
    ) -> bytes:
        if export_type is ExportType.CSV:
            return render_csv(build_csv_rows(entries, template))

        if export_type is ExportType.YAML:
            return render_yaml_index(
                batch_name=scope.batch_name,
                project_label=project_label,
                entries=entries,
            )

        if export_type is ExportType.ZIP:
            yaml_bytes = None
            if template.include_yaml:
                yaml_bytes = render_yaml_index(
                    batch_name=scope.batch_name,
                    project_label=project_label,
                    entries=entries,
                )
            return build_zip_archive(
                csv_bytes=render_csv(build_csv_rows(entries, template)),
                yaml_bytes=yaml_bytes,
                entries=entries,
                fetch=self._object_store.download,
            )

        if export_type is ExportType.HTML:
            return render_html_report(
                batch_name=scope.batch_name,
                project_label=project_label,
                entries=entries,
                fetch=self._object_store.download,
            )

        raise UnsupportedExportTypeError(export_type.value)


def run_export_sync(
    session_factory: Callable[[], Session],
    object_store: ObjectStore,
    export_id: UUID,
    user_id: UUID,
    clock: Clock | None = None,
    ttl_days: int = DEFAULT_EXPORT_TTL_DAYS,
) -> ExportOutcome | None:
    """Run the export pipeline in the calling thread.

    Behaves exactly like the queued ``export`` job for the same record.
    """
    pipeline = ExportPipeline(session_factory, object_store, clock=clock, ttl_days=ttl_days)
    return pipeline.run(export_id, user_id)
