"""
Skip-locked claim test against PostgreSQL.

A transaction that holds the oldest job row locked makes a concurrent
``claim_next()`` skip that row and claim the next one instead of blocking.

Requires DATABASE_URL pointing at a PostgreSQL database; skipped otherwise.
"""

import os

import pytest
from sqlalchemy import create_engine, delete, select
from sqlalchemy.orm import sessionmaker

from reimburse_kernel.db.base import Base

from reimburse_batch.models.job import JobModel
from reimburse_batch.services.queue import JobQueue
from reimburse_batch.tasks.base import HandlerRegistry

pytestmark = pytest.mark.postgres


class NoopHandler:
    @property
    def job_type(self) -> str:
        return "test.noop"

    @property
    def description(self) -> str:
        return "Does nothing"

    def execute(self, payload, session_factory, clock) -> None:
        return None


@pytest.fixture
def pg_session_factory():
    url = os.environ.get("DATABASE_URL", "")
    if not url.startswith("postgresql"):
        pytest.skip("DATABASE_URL does not point at PostgreSQL")
    engine = create_engine(url)
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, expire_on_commit=False)
    yield factory
    with factory() as session:
        session.execute(delete(JobModel).where(JobModel.type == "test.noop"))
        session.commit()
    engine.dispose()


def test_locked_row_is_skipped(pg_session_factory, clock):
    registry = HandlerRegistry()
    registry.register(NoopHandler())
    queue = JobQueue(pg_session_factory, registry, clock=clock)

    first_id = queue.enqueue("test.noop", {"n": 1})
    clock.advance(1)
    second_id = queue.enqueue("test.noop", {"n": 2})

    holder = pg_session_factory()
    try:
        locked = holder.execute(
            select(JobModel).where(JobModel.id == first_id).with_for_update()
        ).scalar_one()
        assert locked.id == first_id

        claimed = queue.claim_next()
        assert claimed is not None
        assert claimed.job_id == second_id
    finally:
        holder.rollback()
        holder.close()

    claimed = queue.claim_next()
    assert claimed.job_id == first_id
