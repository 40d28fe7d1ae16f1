"""
Database Connection Management

One process-wide async engine over the warehouse, created by
init_database() and torn down by close_database(). PostgreSQL through
asyncpg is the deployed target; SQLite through aiosqlite serves local runs
and the test suite.

Schema creation goes through Base.metadata, which also carries the
CREATE VIEW / DROP VIEW hooks registered by the views module.
"""

import time
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

import structlog
from sqlalchemy import event, text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from src.config import get_settings
from .models import Base
from . import views  # noqa: F401  registers the view DDL on Base.metadata

logger = structlog.get_logger(__name__)
settings = get_settings()

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    # Off by default in SQLite, per connection
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """
    Create an async engine for the given URL.

    SQLite keeps the dialect's default pool, since an in-memory database
    lives only as long as its single connection, and gets foreign key
    enforcement. Other backends use NullPool.
    """
    is_sqlite = make_url(url).get_backend_name() == "sqlite"
    options: Dict[str, Any] = {"echo": echo, "pool_pre_ping": True}
    if not is_sqlite:
        options["poolclass"] = NullPool

    engine = create_async_engine(url, **options)
    if is_sqlite:
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def _session_factory_for(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


async def create_schema(engine: AsyncEngine) -> None:
    """Create the warehouse tables, their indexes, then the views"""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Warehouse schema created", tables=sorted(Base.metadata.tables))


async def drop_schema(engine: AsyncEngine) -> None:
    """Drop the views, then the tables in reverse dependency order"""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    logger.info("Warehouse schema dropped")


async def init_database(url: Optional[str] = None, create_tables: bool = False) -> AsyncEngine:
    """
    Open the process-wide warehouse engine.

    Calling it again while an engine is open returns the open engine.

    Args:
        url: Async database URL; defaults to settings.database.async_url
        create_tables: Create tables and views once connected

    Returns:
        The engine

    Raises:
        Whatever the driver raises when the first round trip fails; the
        engine is disposed before re-raising.
    """
    global _engine, _session_factory

    if _engine is not None:
        logger.warning("Database already initialized", backend=_engine.dialect.name)
        return _engine

    engine = build_engine(url or settings.database.async_url, echo=settings.database.echo)
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.error("Warehouse database unreachable", error=str(e), error_type=type(e).__name__)
        await engine.dispose()
        raise

    _engine = engine
    _session_factory = _session_factory_for(engine)
    logger.info("Database connection established", backend=engine.dialect.name, database=engine.url.database)

    if create_tables:
        await create_schema(engine)
    return engine


async def close_database() -> None:
    """Dispose the process-wide engine, if one is open"""
    global _engine, _session_factory

    if _engine is None:
        return
    await _engine.dispose()
    _engine = None
    _session_factory = None
    logger.info("Database connection closed")


def get_engine() -> AsyncEngine:
    """
    Return the open engine.

    Raises:
        RuntimeError: If init_database() has not been called
    """
    if _engine is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")
    return _engine


@asynccontextmanager
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    One unit of work against the warehouse.

    Commits when the block exits normally. Any exception, constraint
    violations included, rolls the whole unit back and propagates.

    Example:
        async with get_db() as db:
            await upsert_customer(db, "C000042", {"customer_tier": "Gold"}, date.today())
    """
    if _session_factory is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")

    async with _session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception as e:
            logger.error("Unit of work rolled back", error=str(e), error_type=type(e).__name__)
            await session.rollback()
            raise


async def get_db_dependency() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency wrapping get_db()"""
    async with get_db() as session:
        yield session


async def check_database_health() -> Dict[str, Any]:
    """Round-trip the warehouse database and report latency or the error"""
    started = time.perf_counter()
    try:
        async with get_db() as db:
            await db.execute(text("SELECT 1"))
    except Exception as e:
        return {"status": "unhealthy", "error": str(e)}

    return {
        "status": "healthy",
        "latency_ms": round((time.perf_counter() - started) * 1000, 2),
        "backend": get_engine().dialect.name,
    }
