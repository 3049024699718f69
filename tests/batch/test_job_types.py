"""
Tests for reimburse_batch.domain.types and the HandlerRegistry.

Validates payload parsing (camelCase keys, UUID validation), Job DTO
helpers and registry semantics.
"""

from uuid import uuid4

import pytest

from reimburse_kernel.exceptions import InvalidJobPayloadError, UnknownJobTypeError

from reimburse_batch.domain.types import (
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_POLL_INTERVAL_SECONDS,
    DEFAULT_RETRY_BACKOFF_SECONDS,
    BatchCheckPayload,
    ExportPayload,
    Job,
    JobStatus,
    JobType,
)
from reimburse_batch.tasks import BatchCheckTask, ExportTask, HandlerRegistry, JobHandler
from reimburse_kernel.storage import InMemoryObjectStore


class TestConstants:
    def test_queue_defaults(self):
        assert DEFAULT_MAX_ATTEMPTS == 3
        assert DEFAULT_RETRY_BACKOFF_SECONDS == 60
        assert DEFAULT_POLL_INTERVAL_SECONDS == 5

    def test_job_type_values(self):
        assert {t.value for t in JobType} == {"batch_check", "export"}


class TestPayloads:
    def test_batch_check_payload_round_trip(self):
        batch_id, user_id = uuid4(), uuid4()
        raw = {"batchId": str(batch_id), "userId": str(user_id)}

        parsed = BatchCheckPayload.from_payload(raw)

        assert parsed.batch_id == batch_id
        assert parsed.user_id == user_id
        assert parsed.to_payload() == raw

    def test_export_payload(self):
        export_id, user_id = uuid4(), uuid4()
        parsed = ExportPayload.from_payload(
            {"exportId": str(export_id), "userId": str(user_id)}
        )
        assert parsed.export_id == export_id

    @pytest.mark.parametrize("missing", ["batchId", "userId"])
    def test_batch_check_requires_keys(self, missing):
        raw = {"batchId": str(uuid4()), "userId": str(uuid4())}
        del raw[missing]

        with pytest.raises(InvalidJobPayloadError) as exc_info:
            BatchCheckPayload.from_payload(raw)
        assert exc_info.value.field == missing
        assert exc_info.value.reason == "missing"

    def test_export_requires_export_id(self):
        with pytest.raises(InvalidJobPayloadError) as exc_info:
            ExportPayload.from_payload({"userId": str(uuid4()), "batchId": str(uuid4())})
        assert exc_info.value.field == "exportId"

    def test_malformed_uuid(self):
        with pytest.raises(InvalidJobPayloadError) as exc_info:
            ExportPayload.from_payload({"exportId": "not-a-uuid", "userId": str(uuid4())})
        assert exc_info.value.reason == "not a UUID"


class TestJobDTO:
    def test_exhausted_only_when_failed_at_ceiling(self):
        job = Job(job_id=uuid4(), job_type="export", status=JobStatus.FAILED, attempts=3)
        assert job.is_exhausted()
        assert not job.is_exhausted(max_attempts=4)

        retrying = Job(job_id=uuid4(), job_type="export", status=JobStatus.FAILED, attempts=2)
        assert not retrying.is_exhausted()

        done = Job(job_id=uuid4(), job_type="export", status=JobStatus.COMPLETED, attempts=3)
        assert not done.is_exhausted()


class TestHandlerRegistry:
    def test_register_and_get(self):
        registry = HandlerRegistry()
        task = BatchCheckTask()
        registry.register(task)

        assert registry.get("batch_check") is task
        assert "batch_check" in registry
        assert len(registry) == 1

    def test_duplicate_registration_rejected(self):
        registry = HandlerRegistry()
        registry.register(BatchCheckTask())
        with pytest.raises(ValueError, match="already registered"):
            registry.register(BatchCheckTask())

    def test_unknown_type(self):
        registry = HandlerRegistry()
        registry.register(ExportTask(InMemoryObjectStore()))

        with pytest.raises(UnknownJobTypeError) as exc_info:
            registry.get("batch_check")
        assert exc_info.value.available == ("export",)

    def test_list_types_sorted(self):
        registry = HandlerRegistry()
        registry.register(ExportTask(InMemoryObjectStore()))
        registry.register(BatchCheckTask())
        assert registry.list_types() == ("batch_check", "export")

    def test_handlers_satisfy_protocol(self):
        assert isinstance(BatchCheckTask(), JobHandler)
        assert isinstance(ExportTask(InMemoryObjectStore()), JobHandler)
