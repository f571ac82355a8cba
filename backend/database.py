"""Database setup and async session management."""

import logging
from functools import lru_cache
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from config import settings

logger = logging.getLogger(__name__)

# Placeholder ceilings per backend. SQLite has allowed 32766 host parameters
# since 3.32; PostgreSQL's wire protocol caps a statement at 65535.
MAX_BIND_PARAMETERS = {
    "sqlite": 32766,
    "postgresql": 65535,
}


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


def build_engine(database_url: str, **kwargs) -> AsyncEngine:
    """Create an async engine for ``database_url``.

    SQLite URLs without an explicit async driver are upgraded to
    ``sqlite+aiosqlite`` so a plain ``sqlite:///`` value in ``.env`` works.
    """
    if database_url.startswith("sqlite://"):
        database_url = database_url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    engine = create_async_engine(database_url, echo=False, **kwargs)
    logger.debug("Database engine created for %s", engine.url.render_as_string(hide_password=True))
    return engine


@lru_cache
def get_engine() -> AsyncEngine:
    """Get or create the process-wide database engine (cached)."""
    return build_engine(settings.DATABASE_URL)


def get_session_local(engine: AsyncEngine | None = None) -> async_sessionmaker[AsyncSession]:
    """Get an async sessionmaker bound to the engine."""
    return async_sessionmaker(
        bind=engine or get_engine(),
        autoflush=False,
        expire_on_commit=False,
    )


def max_bind_parameters(engine: AsyncEngine) -> int:
    """Return the placeholder ceiling for the engine's backend."""
    return MAX_BIND_PARAMETERS.get(engine.dialect.name, 32766)


async def create_tables(engine: AsyncEngine | None = None) -> None:
    """Create any missing tables (local development and tests)."""
    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_db() -> AsyncIterator[AsyncSession]:
    """Dependency that provides a database session.

    Transaction conventions:
    - Read endpoints use this session directly.
    - ``TimeEntryStore`` owns its own connection and transaction, so sync
      writes never share a session with request handlers.
    """
    SessionLocal = get_session_local()
    async with SessionLocal() as db:
        try:
            yield db
        except Exception:
            await db.rollback()
            raise
