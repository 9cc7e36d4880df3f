"""
Async database connection using asyncpg (NO ORM).

The engine only reads grouped counts, so a small pool is enough:
- connections are acquired per fetch, never held across a request
- rows come back as asyncpg.Record and are converted by the row sources
"""

from contextlib import asynccontextmanager

import asyncpg

from georollup.core.config import Settings
from georollup.core.logging_config import get_logger

logger = get_logger(__name__)

# Global connection pool
_pool: asyncpg.Pool | None = None


async def init_db_pool(settings: Settings):
    """
    Initialize database connection pool on startup.

    Call this in the FastAPI lifespan event.
    """
    global _pool
    _pool = await asyncpg.create_pool(
        dsn=settings.DATABASE_URL,
        min_size=settings.DB_POOL_MIN_SIZE,
        max_size=settings.DB_POOL_MAX_SIZE,
        max_inactive_connection_lifetime=300,  # Close idle connections after 5 minutes
        timeout=30,  # Connection timeout in seconds
        command_timeout=settings.DB_COMMAND_TIMEOUT,
    )
    logger.info(f"Database pool initialized: {_pool.get_size()} / {_pool.get_max_size()} connections")


async def close_db_pool():
    """
    Close database connection pool on shutdown.

    Call this in the FastAPI lifespan event.
    """
    global _pool
    if _pool:
        await _pool.close()
        _pool = None
        logger.info("Database pool closed")


def get_pool() -> asyncpg.Pool | None:
    """Return the process-wide pool, or None before startup."""
    return _pool


@asynccontextmanager
async def get_db_connection():
    """
    Get a database connection from the pool.

    Usage:
        async with get_db_connection() as conn:
            rows = await conn.fetch("SELECT ...")
    """
    if not _pool:
        raise RuntimeError("Database pool not initialized. Call init_db_pool() first.")

    async with _pool.acquire() as connection:
        yield connection
