"""
Database Connection Management

One async SQLAlchemy 2.0 engine per process. PostgreSQL through asyncpg in
production; SQLite through aiosqlite for local runs and tests.

Sessions never expire attributes on commit: the webhook processors keep using
a Store row after committing the product write that belongs to it.
"""

import time
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

import structlog
from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from ecotrack.config import get_settings
from ecotrack.database.models import Base

logger = structlog.get_logger(__name__)
settings = get_settings()

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


def _engine_options(url: str) -> Dict[str, Any]:
    if make_url(url).get_backend_name() == "sqlite":
        # a file database shared with the Prefect worker; no pooled handles
        return {"poolclass": NullPool}
    return {
        "pool_size": settings.database.pool_size,
        "max_overflow": settings.database.max_overflow,
        "pool_pre_ping": True,
    }


async def init_database(url: Optional[str] = None, create_tables: bool = False) -> AsyncEngine:
    """
    Create the process-wide engine and check that the database answers.

    Args:
        url: Override of settings.database.async_url
        create_tables: Run metadata.create_all; used in development and
            testing, production schemas are managed outside the app

    Returns:
        AsyncEngine: The initialized database engine
    """
    global _engine, _session_factory

    if _engine is not None:
        logger.warning("Database already initialized")
        return _engine

    url = url or settings.database.async_url
    _engine = create_async_engine(url, echo=settings.database.echo, **_engine_options(url))
    _session_factory = create_session_factory(_engine)

    try:
        async with _engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
            if create_tables:
                await conn.run_sync(Base.metadata.create_all)
    except SQLAlchemyError as e:
        logger.error("Failed to connect to database", error=str(e), dialect=_engine.dialect.name)
        raise

    logger.info("Database connection established", dialect=_engine.dialect.name, tables_created=create_tables)
    return _engine


async def close_database() -> None:
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None
        logger.info("Database connection pool closed")


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """
    Raises:
        RuntimeError: If init_database has not run in this process
    """
    if _session_factory is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")
    return _session_factory


@asynccontextmanager
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Session scope: commits on clean exit, rolls back and re-raises on error.

    Example:
        async with get_db() as db:
            store = await require_store(db, shop)
    """
    async with get_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception as e:
            logger.error("Database session error, rolling back", error=str(e), error_type=type(e).__name__)
            await session.rollback()
            raise


async def get_db_dependency() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency; one session per request, shared by its sub-dependencies."""
    async with get_db() as session:
        yield session


async def check_database_health() -> Dict[str, Any]:
    """Run SELECT 1 and report latency."""
    started = time.perf_counter()
    try:
        async with get_db() as db:
            await db.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError, RuntimeError) as e:
        return {"status": "unhealthy", "error": str(e)}

    return {"status": "healthy", "latency_ms": round((time.perf_counter() - started) * 1000, 2)}
