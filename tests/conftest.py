"""Shared test fixtures for Voice Note Orchestrator."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from vno.config.models import QueueConfig, VNOConfig
from vno.db.connection import ConnectionPool
from vno.db.schema import initialize_database
from vno.db.types import QueueName
from vno.jobs.queue import JobQueue
from vno.jobs.retry import RetryPolicy
from vno.jobs.sqlite_store import SQLiteJobStore
from vno.jobs.store import InMemoryJobStore
from vno.notes.repository import InMemoryNoteRepository, SQLiteNoteRepository

# Retries become claimable immediately, so scenarios don't need to sleep
NO_BACKOFF = RetryPolicy(max_attempts=3, base_delay=0.0, jitter=0.0)


class FakeClock:
    """Manually advanced clock for queue timing tests."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    """A clock frozen at 2024-01-15 12:00 UTC until advanced."""
    return FakeClock()


@pytest.fixture
def db_pool(tmp_path: Path):
    """Connection pool over a fresh database file."""
    pool = ConnectionPool(tmp_path / "vno.db")
    with pool.write_connection() as conn:
        initialize_database(conn)
    yield pool
    pool.close()


@pytest.fixture(params=["memory", "sqlite"])
def job_store(request, tmp_path: Path):
    """Each job store implementation in turn."""
    if request.param == "memory":
        yield InMemoryJobStore()
        return
    pool = ConnectionPool(tmp_path / "jobs.db")
    store = SQLiteJobStore(pool)
    yield store
    store.close()
    pool.close()


@pytest.fixture(params=["memory", "sqlite"])
def note_repo(request, tmp_path: Path):
    """Each note repository implementation in turn."""
    if request.param == "memory":
        yield InMemoryNoteRepository()
        return
    pool = ConnectionPool(tmp_path / "notes.db")
    with pool.write_connection() as conn:
        initialize_database(conn)
    yield SQLiteNoteRepository(pool)
    pool.close()


@pytest.fixture
def notes() -> InMemoryNoteRepository:
    """In-memory note repository."""
    return InMemoryNoteRepository()


@pytest.fixture
def make_queue(clock: FakeClock):
    """Factory for queues sharing one store and the fake clock."""

    def _make(
        name: QueueName = QueueName.TRANSCRIBE,
        store=None,
        *,
        retry_policy: RetryPolicy | None = None,
        use_clock: bool = True,
    ) -> JobQueue:
        kwargs = {"clock": clock} if use_clock else {}
        return JobQueue(
            name,
            store if store is not None else InMemoryJobStore(),
            retry_policy=retry_policy or NO_BACKOFF,
            **kwargs,
        )

    return _make


@pytest.fixture
def media_file(tmp_path: Path) -> Path:
    """A small fake recording."""
    path = tmp_path / "memo.m4a"
    path.write_bytes(b"\x00" * 128)
    return path


@pytest.fixture
def test_config(tmp_path: Path) -> VNOConfig:
    """Configuration with fast, deterministic retries and mock providers."""
    fast = {
        "max_attempts": 3,
        "backoff_base": 0.0,
        "backoff_jitter": 0.0,
        "provider_timeout": 5.0,
        "concurrency": 1,
    }
    config = VNOConfig(
        queues={
            QueueName.TRANSCRIBE: QueueConfig(priority=10, **fast),
            QueueName.SUMMARIZE: QueueConfig(priority=5, **fast),
        },
        data_dir=tmp_path,
        database_path=tmp_path / "vno.db",
    )
    config.worker.poll_interval = 0.05
    return config
