"""
Pytest fixtures for the reimbursement core test suite.

Provides:
- Structured logging configuration and a ``captured_logs`` fixture
- SQLite-backed engine / session factory (a file under tmp_path, so that
  several sessions and threads see each other's commits)
- Deterministic clock, in-memory object store
- Row builders for projects, expenses, receipts, batches and settings

Environment Variables:
- DATABASE_URL: PostgreSQL connection URL.  Only tests marked ``postgres``
  use it; they are skipped when it is unset or not PostgreSQL.
"""

import json
import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from io import StringIO
from typing import Any, Generator
from uuid import UUID, uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

import reimburse_batch.models  # noqa: F401
import reimburse_kernel.models  # noqa: F401
from reimburse_kernel.db.base import Base
from reimburse_kernel.domain.clock import DeterministicClock
from reimburse_kernel.domain.types import ExpenseStatus
from reimburse_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from reimburse_kernel.models import (
    BatchModel,
    ExpenseModel,
    ProjectModel,
    ReceiptModel,
    UserSettingsModel,
)
from reimburse_kernel.storage import InMemoryObjectStore

FIXED_NOW = datetime(2024, 3, 15, 9, 0, 0, tzinfo=timezone.utc)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture reimburse logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, queue):
            queue.run_once()
            logs = captured_logs()
            assert any(r["message"] == "job_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("reimburse")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL"
    )


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def engine(tmp_path):
    eng = create_engine(
        f"sqlite:///{tmp_path / 'reimburse.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def session(session_factory) -> Generator[Session, None, None]:
    sess = session_factory()
    yield sess
    sess.rollback()
    sess.close()


# =============================================================================
# Clock / storage fixtures
# =============================================================================


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock(FIXED_NOW)


@pytest.fixture
def object_store() -> InMemoryObjectStore:
    return InMemoryObjectStore()


# =============================================================================
# Row builders
# =============================================================================


@pytest.fixture
def user_id() -> UUID:
    return uuid4()


@pytest.fixture
def project(session, user_id) -> ProjectModel:
    model = ProjectModel(user_id=user_id, name="Berlin Offsite")
    session.add(model)
    session.flush()
    return model


@pytest.fixture
def make_expense(session, user_id, project):
    def _make(
        amount: str | Decimal = "100.00",
        on: date = date(2024, 3, 10),
        category: str | None = "travel",
        note: str | None = None,
        status: ExpenseStatus = ExpenseStatus.MISSING_RECEIPT,
        manual_status: bool = False,
        **overrides: Any,
    ) -> ExpenseModel:
        fields = dict(
            user_id=user_id,
            project_id=project.id,
            amount=Decimal(str(amount)),
            date=on,
            category=category,
            note=note,
            status=status.value,
            manual_status=manual_status,
        )
        fields.update(overrides)
        model = ExpenseModel(**fields)
        session.add(model)
        session.flush()
        return model

    return _make


@pytest.fixture
def make_receipt(session, user_id, project):
    def _make(
        expense: ExpenseModel | None = None,
        amount: str | Decimal | None = None,
        content_hash: str | None = None,
        storage_key: str | None = None,
        file_ext: str | None = "jpg",
        **overrides: Any,
    ) -> ReceiptModel:
        fields = dict(
            user_id=user_id,
            project_id=project.id,
            matched_expense_id=expense.id if expense is not None else None,
            receipt_amount=Decimal(str(amount)) if amount is not None else None,
            hash=content_hash,
            storage_key=storage_key,
            file_ext=file_ext,
        )
        fields.update(overrides)
        model = ReceiptModel(**fields)
        session.add(model)
        session.flush()
        return model

    return _make


@pytest.fixture
def make_batch(session, user_id, project):
    def _make(name: str = "March claims", filter_json: dict | None = None) -> BatchModel:
        model = BatchModel(
            user_id=user_id,
            project_id=project.id,
            name=name,
            filter_json=filter_json or {},
        )
        session.add(model)
        session.flush()
        return model

    return _make


@pytest.fixture
def make_settings(session, user_id):
    def _make(
        match_rules: dict | None = None, export_template: dict | None = None,
    ) -> UserSettingsModel:
        model = UserSettingsModel(
            user_id=user_id,
            match_rules_json=match_rules or {},
            export_template_json=export_template or {},
        )
        session.add(model)
        session.flush()
        return model

    return _make
