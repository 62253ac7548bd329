"""Shared fixtures: in-memory store, fixed clocks, a fresh job registry."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from shopspine.core.connection import SqliteConnection
from shopspine.core.schema import create_schema
from shopspine.core.settings import reset_settings
from shopspine.retry.sweep import reset_retry_handler
from shopspine.scheduling.guard import OverlapGuard
from shopspine.scheduling.locks import LockManager
from shopspine.scheduling.models import ScheduleCreate
from shopspine.scheduling.repository import ScheduleRepository
from shopspine.scheduling.router import JobRegistry, reset_default_registry
from shopspine.scheduling.tracker import RunStateTracker

NOW = datetime(2025, 1, 9, 12, 0, tzinfo=UTC)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class RecordingQueue:
    """Work queue that only remembers what it was given."""

    def __init__(self):
        self.enqueued: list[tuple[str, str]] = []

    def enqueue(self, job_type: str, schedule_id: str) -> None:
        self.enqueued.append((job_type, schedule_id))


@pytest.fixture(autouse=True)
def _reset_globals():
    reset_default_registry()
    reset_retry_handler()
    reset_settings()
    yield
    reset_default_registry()
    reset_retry_handler()
    reset_settings()


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def db_conn():
    """In-memory SQLite store with every table created."""
    conn = SqliteConnection(":memory:")
    create_schema(conn)
    yield conn
    conn.close()


@pytest.fixture
def repository(db_conn) -> ScheduleRepository:
    return ScheduleRepository(db_conn)


@pytest.fixture
def lock_manager(db_conn) -> LockManager:
    return LockManager(db_conn, instance_id="test-instance")


@pytest.fixture
def guard(lock_manager) -> OverlapGuard:
    return OverlapGuard(lock_manager, default_ttl_seconds=60)


@pytest.fixture
def tracker(repository) -> RunStateTracker:
    return RunStateTracker(repository, timedelta(seconds=60))


@pytest.fixture
def registry() -> JobRegistry:
    """Registry with one handler for ``orders.fetch_new``; calls land in ``registry.calls``."""
    reg = JobRegistry()
    reg.calls = []

    def fetch_new(ctx):
        reg.calls.append(ctx)
        return "Fetched 3 orders"

    reg.register("orders.fetch_new", fetch_new)
    return reg


@pytest.fixture
def recording_queue() -> RecordingQueue:
    return RecordingQueue()


@pytest.fixture
def make_schedule(repository):
    """Factory creating schedules with sensible defaults."""

    def _make(
        job_type: str = "orders.fetch_new",
        cron_expression: str | None = "*/5 * * * *",
        **kwargs,
    ):
        kwargs.setdefault("name", job_type)
        kwargs.setdefault("timezone", "UTC")
        return repository.create(
            ScheduleCreate(job_type=job_type, cron_expression=cron_expression, **kwargs)
        )

    return _make
