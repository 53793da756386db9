"""Pytest fixtures and configuration for dailytasks tests."""

import pytest
from datetime import datetime, timedelta, timezone
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

from dailytasks.database.database import Base
from dailytasks.database.file_store import FileTaskStore
from dailytasks.database.repository import FileTaskRepository
from dailytasks.database.sql_repository import SQLTaskRepository
from dailytasks.models.task import Task
from dailytasks.services.task_service import TaskService


# Use in-memory SQLite database for tests
TEST_DATABASE_URL = "sqlite:///:memory:"

# Noon UTC keeps "today" on the same calendar day in any local timezone within +/-11h.
DEFAULT_NOW = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Controllable clock; every call advances by `step` (zero by default)."""

    def __init__(self, now: datetime = DEFAULT_NOW, step: timedelta = timedelta(0)):
        self.now = now
        self.step = step

    def __call__(self) -> datetime:
        current = self.now
        self.now = self.now + self.step
        return current

    def set(self, now: datetime) -> None:
        self.now = now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock():
    """Clock pinned to 2024-01-01 12:00 UTC that ticks one second per call."""
    return FakeClock(step=timedelta(seconds=1))


@pytest.fixture
def file_store(tmp_path, clock):
    """FileTaskStore backed by a temporary directory."""
    return FileTaskStore(
        tmp_path / "tasks.json",
        backup_dir=tmp_path / "backups",
        max_backups=3,
        lock_retries=3,
        lock_retry_delay_sec=0.05,
        clock=clock,
    )


@pytest.fixture
def file_repository(file_store, clock):
    return FileTaskRepository(file_store, clock=clock)


@pytest.fixture(scope="function")
def db_session():
    """Create a database session for testing.

    Uses an in-memory SQLite database that is created fresh for each test.
    """
    from dailytasks.database import models  # noqa: F401  (register tables)

    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )
    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def sql_repository(db_session: Session, clock):
    return SQLTaskRepository(db_session, clock=clock)


@pytest.fixture(params=["file", "sql"])
def repository(request):
    """Run a test against both storage backends."""
    return request.getfixturevalue(f"{request.param}_repository")


@pytest.fixture
def task_service(repository, clock):
    """TaskService with the legacy migration disabled (the default)."""
    return TaskService(repository, clock=clock)


@pytest.fixture
def migrating_service(repository, clock):
    """TaskService with the legacy migration enabled."""
    return TaskService(repository, clock=clock, migration_enabled=True, retention_days=30)


@pytest.fixture
def sample_task_base(clock):
    """Base task data for creating test tasks.

    Returns a dict with default task attributes that can be overridden.
    """
    now = clock.now
    return {
        "id": "LQZ3K1A0F00DBABE12345678",
        "text": "Test Task",
        "completed": False,
        "created_at": now,
        "updated_at": now,
    }


@pytest.fixture
def sample_task(sample_task_base):
    """Create a sample Task object for testing."""
    return Task(**sample_task_base)


@pytest.fixture
def test_client(task_service):
    """Create a FastAPI test client with the task service dependency overridden."""
    from dailytasks.api.app import app
    from dailytasks.api.dependencies import get_task_service

    app.dependency_overrides[get_task_service] = lambda: task_service

    client = TestClient(app)
    yield client

    # Clean up dependency overrides
    app.dependency_overrides.clear()
