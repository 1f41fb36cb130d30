"""Async database engine and session management.

This module provides the async SQLAlchemy 2.0 engine configuration and
session factories. Engines are created explicitly by the application
bootstrap (see promo_pipeline.bootstrap) instead of at import time, so tests
and background loops receive their session factory by injection.

Usage:
    from promo_pipeline.database import create_session_factory, session_scope

    engine, factory = create_session_factory(get_database_url())
    async with session_scope(factory) as db:
        db.add(job)
"""

import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)


def create_session_factory(
    database_url: str,
) -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """Create the production engine and its session factory.

    Args:
        database_url: SQLAlchemy async URL (postgresql+asyncpg://...).

    Returns:
        Tuple of (engine, session_factory).
    """
    engine = create_async_engine(
        database_url,
        pool_size=10,
        max_overflow=5,
        pool_pre_ping=True,
        echo=os.getenv("DATABASE_ECHO", "").lower() == "true",
    )
    factory = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,  # CRITICAL: prevents attribute expiration after commit
    )
    return engine, factory


@asynccontextmanager
async def session_scope(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    """Open a session with a single short transaction.

    Commits when the block exits normally and rolls back on exception.
    Never hold a scope open across provider calls or ffmpeg runs.
    """
    async with session_factory() as session, session.begin():
        yield session


def create_test_engine(
    database_url: str = "sqlite+aiosqlite:///:memory:",
) -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """Create an async engine for testing.

    Args:
        database_url: Test database URL (defaults to in-memory SQLite).

    Returns:
        Tuple of (engine, async_session_factory) for testing.
    """
    test_engine = create_async_engine(
        database_url,
        echo=False,
    )
    test_session_factory = async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    return test_engine, test_session_factory
