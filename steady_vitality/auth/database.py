"""
Steady Vitality - Database Configuration

Async SQLModel setup with connection pooling.
Supports PostgreSQL via asyncpg (production) and SQLite via aiosqlite
(development and tests).

Usage:
    from steady_vitality.auth.database import get_engine, init_db

    engine = get_engine()
    await init_db(engine)  # Creates tables
"""

from typing import AsyncIterator, Optional

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from steady_vitality.config import settings
from steady_vitality.log import logger


def get_database_url() -> str:
    """Database URL from settings, SQLite file by default."""
    return settings.DATABASE_URL or "sqlite+aiosqlite:///./steady_vitality.db"


def get_engine(database_url: Optional[str] = None, echo: bool = False) -> AsyncEngine:
    """
    Create an async SQLAlchemy engine with appropriate configuration.

    Args:
        database_url: Override database URL
        echo: Log SQL statements
    """
    url = database_url or get_database_url()

    if url.startswith("sqlite"):
        options = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url:
            # In-memory databases live on a single connection
            options["poolclass"] = StaticPool
        return create_async_engine(url, echo=echo, **options)

    return create_async_engine(
        url,
        echo=echo,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
    )


async def init_db(engine: AsyncEngine) -> None:
    """
    Initialize database tables.

    Creates all tables defined in SQLModel models.
    Safe to call multiple times (uses CREATE IF NOT EXISTS).
    """
    # Import models to register them with SQLModel
    from steady_vitality.auth.models import User, Session  # noqa: F401
    from steady_vitality.assignments.models import CoachTraineeAssignment  # noqa: F401

    logger.info("Initializing database tables")
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


def get_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    """
    Create a session factory bound to engine.

    Objects stay usable after commit so handlers can serialise them
    without another round trip.
    """
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    """
    Dependency yielding one storage session per request.

    Yields:
        AsyncSession from ``app.state.db_session_factory`` (closed after use)
    """
    async with request.app.state.db_session_factory() as session:
        yield session
