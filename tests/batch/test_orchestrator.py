"""
Tests for JobOrchestrator wiring and the worker entry point.

End-to-end: requests written in a caller transaction are picked up by the
orchestrator's queue and processed by the real handlers.
"""

from datetime import date

import pytest
from sqlalchemy import select

from reimburse_kernel.db.engine import reset_engine
from reimburse_kernel.domain.types import ExpenseStatus, ExportStatus
from reimburse_kernel.models import BatchIssueModel, BatchModel, ExportRecordModel
from reimburse_kernel.storage import InMemoryObjectStore, LocalObjectStore
from reimburse_config.schema import AppConfig, ExportConfig, QueueConfig, StorageConfig
from reimburse_services.export_requests import request_batch_check, request_batch_export

from reimburse_batch.domain.types import JobStatus
from reimburse_batch.orchestrator import JobOrchestrator, default_handler_registry
from reimburse_batch.worker import main


@pytest.fixture
def orchestrator(session_factory, object_store, clock):
    return JobOrchestrator(session_factory, object_store, clock=clock)


class TestWiring:
    def test_default_registry(self, object_store):
        registry = default_handler_registry(object_store)
        assert registry.list_types() == ("batch_check", "export")

    def test_from_config(self, session_factory, clock, tmp_path):
        config = AppConfig(
            queue=QueueConfig(poll_interval_seconds=0.5, max_attempts=5, retry_backoff_seconds=10),
            storage=StorageConfig(backend="local", root=str(tmp_path / "objects")),
            export=ExportConfig(ttl_days=7),
        )

        orchestrator = JobOrchestrator.from_config(config, session_factory, clock=clock)

        assert isinstance(orchestrator.object_store, LocalObjectStore)
        assert orchestrator.queue.max_attempts == 5
        assert orchestrator.queue.clock is clock
        assert orchestrator.create_poller().poll_interval == 0.5
        assert orchestrator.create_poller(2).poll_interval == 2

    def test_from_config_keeps_empty_store_override(self, session_factory):
        store = InMemoryObjectStore()

        orchestrator = JobOrchestrator.from_config(AppConfig(), session_factory, object_store=store)

        assert orchestrator.object_store is store


class TestEndToEnd:
    def test_queued_batch_check(self, orchestrator, session, make_expense, make_batch, user_id):
        make_expense("10.00", on=date(2024, 3, 1), status=ExpenseStatus.MISSING_RECEIPT)
        batch = make_batch()
        job_id = request_batch_check(session, orchestrator.queue, user_id, batch.id)
        session.commit()

        result = orchestrator.queue.run_once()

        assert result.job_id == job_id
        assert result.status is JobStatus.COMPLETED
        session.expire_all()
        issues = session.execute(
            select(BatchIssueModel).where(BatchIssueModel.batch_id == batch.id)
        ).scalars().all()
        assert [i.type for i in issues] == ["missing_receipt"]
        assert session.get(BatchModel, batch.id).issue_summary_json["missing_receipt"] == 1

    def test_queued_export_matches_sync_export(
        self, orchestrator, session, session_factory, make_expense, make_receipt, make_batch,
        object_store, user_id, clock,
    ):
        expense = make_expense("42.00", status=ExpenseStatus.MATCHED)
        object_store.upload("receipts/r.png", b"\x89PNG-bytes", "image/png")
        make_receipt(expense, storage_key="receipts/r.png", file_ext="png")
        batch = make_batch()
        queued = request_batch_export(session, orchestrator.queue, user_id, batch.id, "zip")
        sync_record = ExportRecordModel(
            batch_id=batch.id, user_id=user_id, project_ids=[str(batch.project_id)],
            type="zip", status=ExportStatus.PENDING.value,
        )
        session.add(sync_record)
        session.commit()

        job = orchestrator.queue.run_once()
        outcome = orchestrator.run_export_sync(sync_record.id, user_id)

        assert job.status is JobStatus.COMPLETED
        session.expire_all()
        queued_row = session.get(ExportRecordModel, queued.id)
        assert queued_row.status == "completed"
        assert object_store.download(queued_row.storage_key) == object_store.download(
            outcome.storage_key
        )

    def test_failed_export_completes_job(self, orchestrator, session, make_expense, make_receipt,
                                         make_batch, user_id):
        expense = make_expense(status=ExpenseStatus.MATCHED)
        make_receipt(expense, storage_key="receipts/gone.jpg")
        batch = make_batch()
        record = request_batch_export(session, orchestrator.queue, user_id, batch.id, "zip")
        session.commit()

        result = orchestrator.queue.run_once()

        assert result.status is JobStatus.COMPLETED
        session.expire_all()
        assert session.get(ExportRecordModel, record.id).status == "failed"


class TestWorkerMain:
    @pytest.fixture(autouse=True)
    def _reset_engine(self):
        yield
        reset_engine()

    def test_once_with_empty_queue(self, tmp_path, capsys):
        config_path = tmp_path / "config.yaml"
        config_path.write_text(
            f"database:\n  url: sqlite:///{tmp_path / 'worker.db'}\n", encoding="utf-8",
        )

        code = main(["--config", str(config_path), "--create-tables", "--once"])

        assert code == 0
        assert "No eligible job" in capsys.readouterr().out

    def test_missing_config_file(self, tmp_path, capsys):
        code = main(["--config", str(tmp_path / "absent.yaml"), "--once"])

        assert code == 2
        assert "ERROR" in capsys.readouterr().err
