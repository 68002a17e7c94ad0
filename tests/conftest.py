"""Root-level pytest fixtures for all tests.

Provides shared fixtures including:
- Settings pointing at a file-based SQLite database per test
- An async engine over that database, with tables and sample data
- A scripted assistant backend
- TestClients for the app in polling and streaming mode
"""

import asyncio
from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncEngine

from deliverychat.api.main import create_app
from deliverychat.config import Settings
from deliverychat.db.connection import create_engine, init_db
from deliverychat.db.seed import seed_sample_data
from tests.helpers import FakeAssistantBackend

PENDING_DELIVERIES = 2


async def prepare_database(settings: Settings) -> None:
    """Create tables and insert sample data with a short-lived engine."""
    engine = create_engine(settings)
    try:
        await init_db(engine)
        await seed_sample_data(engine)
    finally:
        await engine.dispose()


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings for a throwaway SQLite database; polling without delays."""
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'deliveries.db'}",
        poll_interval=0,
        max_poll_attempts=10,
    )


@pytest_asyncio.fixture
async def engine(settings: Settings) -> AsyncGenerator[AsyncEngine, None]:
    """Async engine over a seeded database."""
    engine = create_engine(settings)
    await init_db(engine)
    await seed_sample_data(engine)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def seeded_settings(settings: Settings) -> Settings:
    """Settings whose database is already seeded (for sync tests)."""
    asyncio.run(prepare_database(settings))
    return settings


@pytest.fixture
def backend() -> FakeAssistantBackend:
    return FakeAssistantBackend()


@pytest.fixture
def app(seeded_settings: Settings, backend: FakeAssistantBackend):
    return create_app(seeded_settings, backend)


@pytest.fixture
def client(app):
    with TestClient(app) as client:
        yield client


@pytest.fixture
def streaming_client(seeded_settings: Settings, backend: FakeAssistantBackend):
    settings = seeded_settings.model_copy(update={"chat_mode": "streaming"})
    with TestClient(create_app(settings, backend)) as client:
        yield client
