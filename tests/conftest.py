import os
from collections.abc import AsyncGenerator, Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient

from auditlog.config.settings import Settings, get_settings
from auditlog.infra.database import Base, Database, get_session
from auditlog.main import create_app

# Import models to ensure they're registered
from auditlog.v1.audits.models import Audit, AuditAction
from auditlog.v1.core.context import WorkerContext
from auditlog.v1.core.registries import JobRegistry
from auditlog.v1.worker import models as worker_models  # noqa: F401


class RecordingReporter:
    """Exception reporter that remembers what it was given."""

    def __init__(self):
        self.reported: list[BaseException] = []

    def report(self, error: BaseException) -> None:
        self.reported.append(error)


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Settings pointing at the CI Postgres database, or a throwaway SQLite file."""
    database_url = os.getenv("DATABASE_URL")
    if not (database_url and "postgresql" in database_url):
        database_url = f"sqlite+aiosqlite:///{tmp_path / 'auditlog.db'}"
    return Settings(database_url=database_url, debug=False)


@pytest.fixture
def is_postgres(test_settings) -> bool:
    return test_settings.database_url.startswith("postgresql")


@pytest.fixture
async def database(test_settings) -> AsyncGenerator[Database, None]:
    """A database with a fresh schema for each test."""
    db = Database(test_settings)
    async with db.engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield db

    async with db.engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await db.close()


@pytest.fixture
def registry() -> JobRegistry:
    """An empty job registry; tests register the jobs they need."""
    return JobRegistry()


@pytest.fixture
def reporter() -> RecordingReporter:
    return RecordingReporter()


@pytest.fixture
def ctx(test_settings, database, registry, reporter) -> WorkerContext:
    return WorkerContext(
        settings=test_settings,
        database=database,
        registry=registry,
        reporter=reporter,
    )


@pytest.fixture
def make_audit(database) -> Callable[..., Any]:
    """
    Insert an audit row with explicit worker state, bypassing AuditService.log
    so tests control claimed/processed/failures directly.
    """

    async def _make_audit(
        action: str = AuditAction.SUBMISSION_ATTACHMENT_UPDATE.value, **fields: Any
    ) -> Audit:
        fields.setdefault("logged_at", datetime.now(UTC))
        fields.setdefault("failures", 0)
        audit = Audit(action=action, **fields)
        async with database.SessionLocal() as session:
            session.add(audit)
            await session.commit()
        return audit

    return _make_audit


@pytest.fixture
def fetch_audit(database) -> Callable[[int], Any]:
    """Reload an audit row in a new session."""

    async def _fetch_audit(audit_id: int) -> Audit | None:
        async with database.SessionLocal() as session:
            return await session.get(Audit, audit_id)

    return _fetch_audit


@pytest.fixture
def assert_recent() -> Callable[[datetime | None], None]:
    def _assert_recent(value: datetime | None, within: timedelta = timedelta(seconds=30)):
        assert value is not None
        assert value.tzinfo is not None
        assert abs(datetime.now(UTC) - value) < within

    return _assert_recent


@pytest.fixture
def app(test_settings, database):
    """Create a test FastAPI application with the test database."""
    app = create_app()

    async def get_test_session():
        async with database.SessionLocal() as session:
            yield session

    app.dependency_overrides[get_session] = get_test_session
    app.dependency_overrides[get_settings] = lambda: test_settings

    yield app

    app.dependency_overrides.clear()


@pytest.fixture
async def async_client(app) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
