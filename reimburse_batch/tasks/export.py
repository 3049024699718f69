"""ExportTask -- builds and uploads the artifact for one ExportRecord."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Callable

from sqlalchemy.orm import Session

from reimburse_kernel.domain.clock import Clock
from reimburse_kernel.storage import ObjectStore
from reimburse_services.export_service import DEFAULT_EXPORT_TTL_DAYS, ExportPipeline

from reimburse_batch.domain.types import ExportPayload, JobType


class ExportTask:
    """Run the export pipeline for the record named in the payload.

    Export failures are recorded on the ExportRecord by the pipeline and do
    not fail the job; only an invalid payload or an infrastructure error
    outside the pipeline does.
    """

    def __init__(
        self,
        object_store: ObjectStore,
        ttl_days: int = DEFAULT_EXPORT_TTL_DAYS,
    ) -> None:
        self._object_store = object_store
        self._ttl_days = ttl_days

    @property
    def job_type(self) -> str:
        return JobType.EXPORT.value

    @property
    def description(self) -> str:
        return "Export artifact build"

    def execute(
        self,
        payload: Mapping[str, Any],
        session_factory: Callable[[], Session],
        clock: Clock,
    ) -> None:
        params = ExportPayload.from_payload(payload)
        pipeline = ExportPipeline(
            session_factory,
            self._object_store,
            clock=clock,
            ttl_days=self._ttl_days,
        )
        pipeline.run(params.export_id, params.user_id)
