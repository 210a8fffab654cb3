"""
Database connection and session management for the Flight Training Tracker.

Uses SQLAlchemy 2.0 async engine. SQLite (aiosqlite) is the default for a
single device; PostgreSQL (asyncpg) works unchanged.
"""

import logging

from sqlalchemy import event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ftt.errors import PersistenceError
from ftt.models import Base
from ftt.settings import get_settings

logger = logging.getLogger(__name__)

# Global engine and session factory
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_engine_for(url: str, echo: bool = False) -> AsyncEngine:
    """
    Create an async engine for a database URL.

    SQLite connections get foreign key enforcement switched on so that
    ON DELETE CASCADE behaves the same as on PostgreSQL.

    Args:
        url: SQLAlchemy database URL
        echo: Log every SQL statement

    Returns:
        AsyncEngine instance
    """
    if url.startswith("sqlite"):
        engine = create_async_engine(url, echo=echo)
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
        return engine

    return create_async_engine(
        url,
        echo=echo,
        pool_pre_ping=True,  # Verify connections before using
        pool_size=5,
        max_overflow=10,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Build a session factory bound to an engine."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,  # Allow accessing attributes after commit
    )


def get_engine() -> AsyncEngine:
    """
    Get or create the global async database engine.

    Returns:
        AsyncEngine instance configured from FTT_DATABASE_URL
    """
    global _engine

    if _engine is None:
        settings = get_settings()
        _engine = create_engine_for(settings.database_url, echo=settings.sql_echo)

    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """
    Get or create the global async session factory.

    Returns:
        Async session factory for creating database sessions
    """
    global _session_factory

    if _session_factory is None:
        _session_factory = create_session_factory(get_engine())

    return _session_factory


async def init_models(engine: AsyncEngine | None = None) -> None:
    """
    Create all tables that do not exist yet.

    Args:
        engine: Engine to use (defaults to the global engine)
    """
    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_engine() -> None:
    """
    Close the database engine and release all connections.

    Call this during application shutdown.
    """
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None


async def commit_or_rollback(session: AsyncSession, operation: str) -> None:
    """
    Commit the session, rolling back on failure.

    Args:
        session: Database session
        operation: Name of the operation, for the log and error message

    Raises:
        PersistenceError: If the commit fails (the session is rolled back)
    """
    try:
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error("db.commit_failed operation=%s error=%s", operation, e)
        raise PersistenceError(f"{operation} failed: {e}") from e
