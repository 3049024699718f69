"""BatchCheckTask -- runs the batch consistency check for one batch."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Callable

from sqlalchemy.orm import Session

from reimburse_kernel.domain.clock import Clock
from reimburse_kernel.logging_config import get_logger
from reimburse_services.batch_check_service import BatchCheckService

from reimburse_batch.domain.types import BatchCheckPayload, JobType

logger = get_logger("batch.tasks.batch_check")


class BatchCheckTask:
    """Recompute and persist a batch's issues and issue summary.

    The delete-then-insert of issues and the summary write share one
    transaction, so readers never see a half-written issue list.
    """

    @property
    def job_type(self) -> str:
        return JobType.BATCH_CHECK.value

    @property
    def description(self) -> str:
        return "Batch consistency check"

    def execute(
        self,
        payload: Mapping[str, Any],
        session_factory: Callable[[], Session],
        clock: Clock,
    ) -> None:
        params = BatchCheckPayload.from_payload(payload)
        session = session_factory()
        try:
            BatchCheckService(session, clock=clock).check(
                params.batch_id, params.user_id,
            )
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
