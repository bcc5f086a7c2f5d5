"""
Database Connection Management

Async engine lifecycle for the event store with SQLAlchemy 2.0. The engine
is created once at startup and disposed at shutdown; report computations
open one short-lived connection per page or ledger batch.
"""

import time
from typing import Optional

import structlog
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool

from src.config.settings import DatabaseSettings

logger = structlog.get_logger(__name__)

# Global engine
_engine: Optional[AsyncEngine] = None


async def init_database(
    database: Optional[DatabaseSettings] = None,
    engine: Optional[AsyncEngine] = None,
) -> AsyncEngine:
    """
    Initialize the database engine.

    Args:
        database: Connection settings (ignored when an engine is given)
        engine: Pre-built engine, used by tests

    Returns:
        AsyncEngine: The initialized database engine
    """
    global _engine

    if _engine is not None:
        logger.warning("Database already initialized")
        return _engine

    if engine is None:
        database = database or DatabaseSettings()
        # asyncpg pools its own connections
        engine = create_async_engine(
            database.async_url,
            echo=database.echo,
            pool_pre_ping=True,
            poolclass=NullPool,
        )

    # Verify connection
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("Database connection established", dialect=engine.dialect.name)
    except Exception as e:
        logger.error("Failed to connect to database", error=str(e))
        await engine.dispose()
        raise

    _engine = engine
    return _engine


async def close_database() -> None:
    """Dispose the engine and its connections"""
    global _engine

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        logger.info("Database connection pool closed")


def get_engine() -> AsyncEngine:
    """
    Get the database engine.

    Returns:
        AsyncEngine: The active database engine

    Raises:
        RuntimeError: If database is not initialized
    """
    if _engine is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")
    return _engine


async def check_database_health() -> dict:
    """
    Check database health status.

    Returns:
        dict: Health status with latency information
    """
    try:
        start = time.perf_counter()
        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
        latency_ms = (time.perf_counter() - start) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(latency_ms, 2),
        }
    except Exception as e:
        return {
            "status": "unhealthy",
            "error": str(e),
        }
