"""Async SQLAlchemy engine and session factory.

PostgreSQL (asyncpg) in production; a local SQLite file (aiosqlite) is
the default for dev and tests.  SQLite connections are not pooled: the
test client and the tests themselves drive the engine from different
event loops, and an aiosqlite connection is bound to the loop that
opened it.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool

from lms.core.config import SETTINGS

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all table models."""


if SETTINGS.is_sqlite:
    engine = create_async_engine(SETTINGS.database_url, poolclass=NullPool)
else:
    engine = create_async_engine(
        SETTINGS.database_url,
        echo=SETTINGS.is_dev,
        pool_size=5,
        max_overflow=10,
    )

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that yields a request-scoped async session.

    Commits on success, rolls back on exception.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def atomic(session: AsyncSession) -> AsyncIterator[AsyncSession]:
    """Run a multi-statement mutation as one unit of work.

    Everything flushed inside the block is committed together, or rolled
    back together if the block raises.
    """
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise


async def create_schema() -> None:
    """Create all tables (SQLite dev/test databases; Postgres uses alembic)."""
    import lms.db.tables  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_schema() -> None:
    import lms.db.tables  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@asynccontextmanager
async def lifespan_db():
    """Startup/shutdown hook for the database engine."""
    if SETTINGS.is_sqlite:
        await create_schema()
        logger.info("SQLite database ready: %s", engine.url)
    else:
        logger.info("Database engine created: %s", engine.url.render_as_string())
    yield
    await engine.dispose()
    logger.info("Database engine disposed")
