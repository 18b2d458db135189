"""Global test configuration: in-memory store, in-memory queue, API client."""

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from xray.api.app import create_app
from xray.services.queue import JobQueue
from xray.services.trace_writer import TraceWriter
from xray.settings import Settings
from xray.utils.db_manager import DatabaseManager
from xray.utils.logger import configure_logging

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Test settings; nothing in the test suite talks to RabbitMQ."""
    config = Settings(debug=False, worker_rate_limit=0, log_level="WARNING")
    configure_logging(config, component="test")
    return config


@pytest_asyncio.fixture
async def db_manager(test_settings) -> AsyncGenerator[DatabaseManager, None]:
    """Fresh in-memory database per test."""
    manager = DatabaseManager(test_settings, database_url=TEST_DATABASE_URL)
    await manager.create_db_and_tables_async()
    yield manager
    await manager.close()


@pytest_asyncio.fixture
async def test_session(db_manager) -> AsyncGenerator[AsyncSession, None]:
    """Session on the test database, used to inspect stored rows."""
    async with db_manager.async_session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def writer(db_manager) -> AsyncGenerator[TraceWriter, None]:
    """Trace writer with its own session, like a worker job."""
    async with db_manager.async_session_factory() as session:
        yield TraceWriter(session)


@pytest_asyncio.fixture
async def job_queue(db_manager) -> AsyncGenerator[JobQueue, None]:
    """Job queue executing jobs in-place against the test database."""
    queue = JobQueue.in_memory(db_manager)
    await queue.startup()
    yield queue
    await queue.shutdown()


@pytest_asyncio.fixture
async def client(test_settings, db_manager, job_queue) -> AsyncGenerator[AsyncClient, None]:
    """API client; jobs enqueued by a request are applied before it returns."""
    app = create_app(config=test_settings, db_manager=db_manager, job_queue=job_queue)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

