"""Shared pytest fixtures for async database testing.

This module provides reusable fixtures for testing SQLAlchemy models,
the job repository and the pipeline services using a throwaway SQLite
database.
"""

from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from promo_pipeline.config import get_database_url, get_runware_api_key
from promo_pipeline.models import Base
from promo_pipeline.services.job_repository import JobRepository
from tests.factories import make_job_payload


@pytest.fixture(autouse=True)
def clear_config_cache():
    """Reset cached secrets so monkeypatched env vars take effect."""
    get_database_url.cache_clear()
    get_runware_api_key.cache_clear()
    yield
    get_database_url.cache_clear()
    get_runware_api_key.cache_clear()


@pytest_asyncio.fixture
async def async_engine(tmp_path):
    """Create an async SQLite engine for testing.

    Uses a per-test SQLite file with aiosqlite. A file (rather than
    :memory:) gives every session its own connection, which the services
    rely on when they write from concurrent tasks.
    Creates all tables before yielding, disposes after.

    Yields:
        AsyncEngine: Configured test database engine.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(async_engine):
    """Session factory bound to the test engine (expire_on_commit=False like production)."""
    return async_sessionmaker(
        bind=async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest_asyncio.fixture
async def async_session(session_factory):
    """Create an async session for testing.

    Yields:
        AsyncSession: Database session for test operations.
    """
    async with session_factory() as session:
        yield session


@pytest.fixture
def repository(session_factory):
    return JobRepository(session_factory)


@pytest_asyncio.fixture
async def draft_job(repository):
    """A persisted two-scene draft job."""
    return await repository.create_job(make_job_payload())


@pytest.fixture
def mock_runware_client():
    """Provider client double with task ids task-0, task-1, ... per submission."""
    client = AsyncMock()
    counter = {"n": 0}

    async def submit_video_task(*args, **kwargs):
        task_id = f"task-{counter['n']}"
        counter["n"] += 1
        return task_id

    client.submit_video_task = AsyncMock(side_effect=submit_video_task)
    client.submit_music_task = AsyncMock(return_value="music-task")
    client.get_task_status = AsyncMock()
    return client
