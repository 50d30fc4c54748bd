"""Database engine and session management.

Async SQLAlchemy 2.0 over aiosqlite (development, tests) or PostgreSQL
(production). The engine and session factory are created lazily and shared
for the lifetime of the process.

Examples:
    >>> from app.database import init_db, session_scope
    >>> await init_db()
    >>> async with session_scope() as session:
    ...     result = await session.execute(select(Conversation))

Tests:
    - tests/unit/test_conversation_store.py
    - tests/unit/test_cli.py::TestResetDb
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import event, func, select, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.config import get_settings

logger = logging.getLogger(__name__)

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def _enable_sqlite_pragmas(engine: AsyncEngine) -> None:
    """Turn on WAL and foreign keys for every new SQLite connection.

    Foreign keys must be on for artifact rows to cascade with their
    conversation.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA busy_timeout=5000")
        cursor.close()


def get_engine() -> AsyncEngine:
    """Get or create the async database engine.

    Returns:
        AsyncEngine: SQLAlchemy async engine.
    """
    global _engine

    if _engine is None:
        settings = get_settings()

        if settings.is_sqlite:
            _engine = create_async_engine(
                settings.DATABASE_URL,
                echo=False,
                connect_args={"check_same_thread": False},
            )
            _enable_sqlite_pragmas(_engine)
        else:
            _engine = create_async_engine(
                settings.DATABASE_URL,
                echo=False,
                pool_size=5,
                max_overflow=10,
                pool_pre_ping=True,
            )

        logger.info(f"Database engine created: {settings.DATABASE_URL.split('@')[-1]}")

    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get or create the async session factory.

    Returns:
        async_sessionmaker: Session factory shared by request handlers and
        the conversation store.
    """
    global _session_factory

    if _session_factory is None:
        _session_factory = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    return _session_factory


@asynccontextmanager
async def session_scope(
    factory: async_sessionmaker[AsyncSession] | None = None,
) -> AsyncGenerator[AsyncSession, None]:
    """Open one unit of work.

    Commits on success, rolls back on error.

    Args:
        factory: Session factory to use (defaults to the process-wide one).

    Yields:
        AsyncSession: Database session.
    """
    session = (factory or get_session_factory())()

    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


async def init_db(engine: AsyncEngine | None = None) -> None:
    """Create all tables. Called once at application startup."""
    from app.models import Base
    import app.models_auth  # noqa: F401  registers the users table

    async with (engine or get_engine()).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info("Database tables created")


async def drop_db(engine: AsyncEngine | None = None) -> None:
    """Drop all tables.

    Warning:
        Destructive. Used by the ``reset-db`` CLI command and tests only.
    """
    from app.models import Base
    import app.models_auth  # noqa: F401

    async with (engine or get_engine()).begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    logger.warning("Database tables dropped")


async def count_rows(engine: AsyncEngine | None = None) -> dict[str, int]:
    """Count rows per table, keyed by table name."""
    from app.models import Base
    import app.models_auth  # noqa: F401

    counts: dict[str, int] = {}
    async with (engine or get_engine()).connect() as conn:
        for table in Base.metadata.sorted_tables:
            result = await conn.execute(select(func.count()).select_from(table))
            counts[table.name] = result.scalar_one()
    return counts


async def check_db_connection() -> bool:
    """Check if the database is reachable."""
    try:
        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False


async def close_db() -> None:
    """Dispose of the engine. Called at application shutdown."""
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None
        logger.info("Database connections closed")


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency for a request-scoped database session."""
    async with session_scope() as session:
        yield session
