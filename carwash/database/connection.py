"""
Database Engine and Sessions

One async engine per process, created by the application lifespan.
Repositories and the visit aggregator take a session factory, so tests can
hand them one bound to a throwaway database.
"""

import time
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

import structlog
from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from carwash.config import get_settings
from carwash.database.models import Base

logger = structlog.get_logger(__name__)
settings = get_settings()

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Sessions keep loaded rows usable after commit and flush only on demand."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


def _engine_options(url: str) -> Dict[str, Any]:
    options: Dict[str, Any] = {
        "echo": settings.database.echo,
        "pool_pre_ping": True,
        # asyncpg keeps its own connections; no SQLAlchemy pool on top
        "poolclass": NullPool,
    }
    if make_url(url).get_backend_name() == "sqlite":
        # concurrent writers wait on the file lock instead of failing at once
        options["connect_args"] = {"timeout": 30}
    return options


async def init_database(url: Optional[str] = None, create_tables: bool = True) -> AsyncEngine:
    """
    Create the process-wide engine and verify it can connect.

    Args:
        url: Async database URL, defaults to DATABASE_URL / POSTGRES_*
        create_tables: Create the visit and member tables if missing

    Raises:
        Whatever the driver raises when the database is unreachable; the
        engine is disposed first.
    """
    global _engine, _session_factory

    if _engine is not None:
        logger.warning("Database already initialized")
        return _engine

    target = url or settings.database.async_url
    engine = create_async_engine(target, **_engine_options(target))
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
            if create_tables:
                await conn.run_sync(Base.metadata.create_all)
    except Exception as e:
        logger.error("Database unreachable", error=str(e), backend=make_url(target).get_backend_name())
        await engine.dispose()
        raise

    _engine = engine
    _session_factory = create_session_factory(engine)
    logger.info(
        "Database ready",
        backend=make_url(target).get_backend_name(),
        database=make_url(target).database,
        tables_created=create_tables,
    )
    return engine


async def close_database() -> None:
    global _engine, _session_factory

    if _engine is None:
        return
    engine, _engine, _session_factory = _engine, None, None
    await engine.dispose()
    logger.info("Database engine disposed")


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    if _session_factory is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")
    return _session_factory


@asynccontextmanager
async def get_db(
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
) -> AsyncGenerator[AsyncSession, None]:
    """
    Unit of work: commit when the block exits cleanly, roll back otherwise.

    The commit runs on exit, so version conflicts and duplicate keys raised
    at flush time propagate out of the ``async with`` statement.

    Example:
        async with get_db(factory) as db:
            row = await db.get(DailyVisit, "2026-10-19")
    """
    factory = session_factory or get_session_factory()

    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception as e:
            logger.debug("Transaction rolled back", error_type=type(e).__name__, error=str(e))
            await session.rollback()
            raise


async def check_database_health(
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
) -> Dict[str, Any]:
    """Run a trivial query and report latency, or the error it failed with."""
    started = time.perf_counter()
    try:
        async with get_db(session_factory) as db:
            await db.execute(text("SELECT 1"))
    except Exception as e:
        return {"status": "unhealthy", "error": str(e)}

    return {
        "status": "healthy",
        "latency_ms": round((time.perf_counter() - started) * 1000, 2),
    }
