"""
Database connection and session management.
Uses SQLAlchemy async with aiosqlite.
"""

from fastapi.requests import HTTPConnection
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool
from typing import AsyncGenerator

from .config import settings


def _set_sqlite_pragma(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    # WAL mode for better concurrency
    cursor.execute("PRAGMA journal_mode=WAL")
    # NORMAL synchronous is safe with WAL and faster than FULL
    cursor.execute("PRAGMA synchronous=NORMAL")
    # Busy timeout - wait up to 5 seconds
    cursor.execute("PRAGMA busy_timeout=5000")
    cursor.close()


def make_engine(url: str) -> AsyncEngine:
    """Create an async engine; in-memory SQLite shares one connection."""
    if ":memory:" in url:
        return create_async_engine(
            url,
            echo=False,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

    new_engine = create_async_engine(url, echo=False)
    if url.startswith("sqlite"):
        event.listen(new_engine.sync_engine, "connect", _set_sqlite_pragma)
    return new_engine


def make_session_factory(bind: AsyncEngine) -> async_sessionmaker:
    """Create an async session factory bound to an engine."""
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False
    )


# Create async engine
engine = make_engine(settings.DATABASE_URL)

# Create async session factory
AsyncSessionLocal = make_session_factory(engine)


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


async def get_db(connection: HTTPConnection) -> AsyncGenerator[AsyncSession, None]:
    """Dependency to get database session from the application's factory."""
    session_factory = getattr(connection.app.state, "session_factory", AsyncSessionLocal)
    async with session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db(bind: AsyncEngine = None):
    """Initialize database tables."""
    # Register all tables on Base.metadata
    from . import models  # noqa: F401

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db(bind: AsyncEngine = None):
    """Close database connections."""
    await (bind or engine).dispose()
