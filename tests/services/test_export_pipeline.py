"""
Tests for ExportPipeline -- status lifecycle, artifacts and failure handling.

The pipeline opens its own sessions, so every test commits its fixture rows
before running it.
"""

import io
import zipfile
from datetime import date, timedelta
from uuid import uuid4

import pytest
import yaml

from reimburse_kernel.domain.types import ExportStatus, ExpenseStatus
from reimburse_kernel.models import ExportRecordModel, ProjectModel
from reimburse_kernel.storage import InMemoryObjectStore
from reimburse_services.export_service import (
    CONTENT_TYPES,
    ExportPipeline,
    run_export_sync,
)


@pytest.fixture
def pipeline(session_factory, object_store, clock):
    return ExportPipeline(session_factory, object_store, clock=clock)


@pytest.fixture
def batch_data(make_expense, make_receipt, make_batch, object_store, user_id):
    """A batch with one matched expense (one stored receipt) and one open expense."""
    matched = make_expense("42.00", on=date(2024, 3, 4), category="meals",
                           note="Team dinner", status=ExpenseStatus.MATCHED)
    make_expense("8.00", on=date(2024, 3, 2), category="transport")
    key = f"receipts/{user_id}/dinner.jpg"
    object_store.upload(key, b"\xff\xd8dinner", "image/jpeg")
    receipt = make_receipt(matched, amount="42.00", storage_key=key)
    batch = make_batch()
    return batch, matched, receipt


def _record(session, user_id, export_type, batch=None, project_ids=()):
    record = ExportRecordModel(
        batch_id=batch.id if batch is not None else None,
        user_id=user_id,
        project_ids=[str(p) for p in project_ids] or ([str(batch.project_id)] if batch else []),
        type=export_type,
        status=ExportStatus.PENDING.value,
    )
    session.add(record)
    session.commit()
    return record


def _reload(session_factory, export_id):
    s = session_factory()
    try:
        return s.get(ExportRecordModel, export_id)
    finally:
        s.close()


class TestCompletedExports:
    def test_csv_export(self, pipeline, session, session_factory, batch_data, object_store, user_id, clock):
        batch, _, _ = batch_data
        record = _record(session, user_id, "csv", batch)

        outcome = pipeline.run(record.id, user_id)

        assert outcome.status is ExportStatus.COMPLETED
        assert outcome.storage_key == f"exports/{record.id}.csv"
        data = object_store.download(outcome.storage_key)
        assert outcome.file_size == len(data)
        assert object_store.content_type(outcome.storage_key) == CONTENT_TYPES[record.export_type]

        lines = data.decode("utf-8-sig").split("\r\n")
        assert len(lines) == 3
        assert lines[1].startswith("001,Berlin Offsite,2024-03-02,8.00,transport,")
        assert lines[2].startswith("002,Berlin Offsite,2024-03-04,42.00,meals,Team dinner,Matched,1,002_")

        stored = _reload(session_factory, record.id)
        assert stored.status == "completed"
        assert stored.storage_key == outcome.storage_key
        assert stored.file_size == len(data)
        assert stored.expires_at == clock.now() + timedelta(days=3)

    def test_zip_export(self, pipeline, session, batch_data, object_store, user_id):
        batch, _, receipt = batch_data
        record = _record(session, user_id, "zip", batch)

        outcome = pipeline.run(record.id, user_id)

        with zipfile.ZipFile(io.BytesIO(object_store.download(outcome.storage_key))) as archive:
            names = archive.namelist()
            assert names[:2] == ["expenses.csv", "index.yaml"]
            receipt_member = names[2]
            assert receipt_member.startswith("002_2024-03-04_42.00_meals_Team dinner_")
            assert receipt_member.endswith(f"{str(receipt.id)[-6:]}.jpg")
            assert archive.read(receipt_member) == b"\xff\xd8dinner"

    def test_zip_without_index(self, pipeline, session, batch_data, make_settings, object_store, user_id):
        batch, _, _ = batch_data
        make_settings(export_template={"includeYaml": False})
        record = _record(session, user_id, "zip", batch)

        outcome = pipeline.run(record.id, user_id)

        with zipfile.ZipFile(io.BytesIO(object_store.download(outcome.storage_key))) as archive:
            assert "index.yaml" not in archive.namelist()

    def test_yaml_export(self, pipeline, session, batch_data, object_store, user_id):
        batch, _, receipt = batch_data
        record = _record(session, user_id, "yaml", batch)

        outcome = pipeline.run(record.id, user_id)

        doc = yaml.safe_load(object_store.download(outcome.storage_key))
        assert doc["batch"] == "March claims"
        assert doc["project"] == "Berlin Offsite"
        assert doc["items"][1]["receipts"][0]["receiptId"] == str(receipt.id)

    def test_html_export(self, pipeline, session, batch_data, object_store, user_id):
        batch, _, _ = batch_data
        record = _record(session, user_id, "html", batch)

        outcome = pipeline.run(record.id, user_id)

        page = object_store.download(outcome.storage_key).decode("utf-8")
        assert "<title>March claims</title>" in page
        assert "data:image/jpeg;base64," in page

    def test_descending_template(self, pipeline, session, batch_data, make_settings, object_store, user_id):
        batch, _, _ = batch_data
        make_settings(export_template={"sortDirection": "desc"})
        record = _record(session, user_id, "csv", batch)

        outcome = pipeline.run(record.id, user_id)

        lines = object_store.download(outcome.storage_key).decode("utf-8-sig").split("\r\n")
        assert lines[1].startswith("001,Berlin Offsite,2024-03-04,42.00")

    def test_project_set_export(self, pipeline, session, batch_data, make_expense, user_id, object_store):
        _, _, _ = batch_data
        other = ProjectModel(user_id=user_id, name="Lisbon Summit")
        session.add(other)
        session.flush()
        make_expense("15.00", on=date(2024, 3, 6), project_id=other.id)
        first_project = batch_data[0].project_id
        record = _record(session, user_id, "yaml", project_ids=[first_project, other.id])

        outcome = pipeline.run(record.id, user_id)

        doc = yaml.safe_load(object_store.download(outcome.storage_key))
        assert doc["batch"] == "Items Export"
        assert doc["project"] == "Multiple Projects"
        assert len(doc["items"]) == 3

    def test_running_committed_before_upload(self, session_factory, session, batch_data, clock, user_id):
        seen = []

        class RecordingStore(InMemoryObjectStore):
            def upload(self, key, data, content_type):
                seen.append(_reload(session_factory, record.id).status)
                return super().upload(key, data, content_type)

        batch, _, _ = batch_data
        record = _record(session, user_id, "csv", batch)

        ExportPipeline(session_factory, RecordingStore(), clock=clock).run(record.id, user_id)

        assert seen == ["running"]

    def test_lifecycle_logged(self, pipeline, session, batch_data, user_id, captured_logs):
        batch, _, _ = batch_data
        record = _record(session, user_id, "csv", batch)

        pipeline.run(record.id, user_id)

        messages = [r["message"] for r in captured_logs()]
        assert messages.index("export_started") < messages.index("export_completed")


class TestFailedExports:
    def test_missing_original_marks_failed(self, session, session_factory, batch_data, clock, user_id, captured_logs):
        batch, _, _ = batch_data
        record = _record(session, user_id, "zip", batch)
        pipeline = ExportPipeline(session_factory, InMemoryObjectStore(), clock=clock)

        outcome = pipeline.run(record.id, user_id)

        assert outcome.status is ExportStatus.FAILED
        assert outcome.storage_key is None
        stored = _reload(session_factory, record.id)
        assert stored.status == "failed"
        assert stored.storage_key is None
        failed = [r for r in captured_logs() if r["message"] == "export_failed"]
        assert failed and failed[0]["export_id"] == str(record.id)

    def test_html_tolerates_missing_original(self, session, session_factory, batch_data, clock, user_id):
        batch, _, _ = batch_data
        record = _record(session, user_id, "html", batch)
        store = InMemoryObjectStore()

        outcome = ExportPipeline(session_factory, store, clock=clock).run(record.id, user_id)

        assert outcome.status is ExportStatus.COMPLETED
        assert "(unavailable)" in store.download(outcome.storage_key).decode("utf-8")

    def test_unsupported_type_marks_failed(self, pipeline, session, session_factory, batch_data, user_id):
        batch, _, _ = batch_data
        record = _record(session, user_id, "pdf", batch)

        assert pipeline.run(record.id, user_id).status is ExportStatus.FAILED
        assert _reload(session_factory, record.id).status == "failed"

    def test_empty_project_set_marks_failed(self, pipeline, session, session_factory, user_id):
        record = _record(session, user_id, "csv")

        assert pipeline.run(record.id, user_id).status is ExportStatus.FAILED
        assert _reload(session_factory, record.id).status == "failed"

    def test_deleted_batch_marks_failed(self, pipeline, session, session_factory, batch_data, user_id):
        batch, _, _ = batch_data
        record = _record(session, user_id, "csv", batch)
        session.delete(batch)
        session.commit()

        assert pipeline.run(record.id, user_id).status is ExportStatus.FAILED
        assert _reload(session_factory, record.id).status == "failed"


class TestMissingRecord:
    def test_unknown_record_is_noop(self, pipeline, user_id, object_store):
        before = len(object_store)
        assert pipeline.run(uuid4(), user_id) is None
        assert len(object_store) == before

    def test_other_users_record_is_noop(self, pipeline, session, session_factory, batch_data, user_id):
        batch, _, _ = batch_data
        record = _record(session, user_id, "csv", batch)

        assert pipeline.run(record.id, uuid4()) is None
        assert _reload(session_factory, record.id).status == "pending"


class TestSyncPath:
    def test_sync_helper_matches_pipeline(self, session, session_factory, batch_data, object_store, clock, user_id):
        batch, _, _ = batch_data
        first = _record(session, user_id, "zip", batch)
        second = _record(session, user_id, "zip", batch)

        a = ExportPipeline(session_factory, object_store, clock=clock).run(first.id, user_id)
        b = run_export_sync(session_factory, object_store, second.id, user_id, clock=clock)

        assert object_store.download(a.storage_key) == object_store.download(b.storage_key)
        assert a.file_size == b.file_size
