"""Core database connection pool management."""

import logging
from contextlib import asynccontextmanager

from psycopg_pool import AsyncConnectionPool

from meetgrid.config import get_settings

_logger = logging.getLogger(__name__)

# Global connection pool
_pool: AsyncConnectionPool | None = None


async def init_pool() -> None:
    global _pool
    if _pool is not None:
        return
    settings = get_settings().postgres
    _pool = AsyncConnectionPool(
        settings.get_dsn(),
        min_size=settings.pool_min_size,
        max_size=settings.pool_max_size,
        timeout=settings.pool_timeout,
        check=AsyncConnectionPool.check_connection,
        open=False,
    )
    await _pool.open()
    _logger.info(
        "Database connection pool initialized (min=%d, max=%d, timeout=%ds)",
        settings.pool_min_size,
        settings.pool_max_size,
        settings.pool_timeout,
    )
    # Import here to avoid circular imports
    from meetgrid.db.schema import ensure_schema

    await ensure_schema()


async def close_pool() -> None:
    global _pool
    if _pool is not None:
        await _pool.close()
        _pool = None
        _logger.info("Database connection pool closed")


@asynccontextmanager
async def _get_connection(autocommit: bool = True):
    if _pool is None:
        raise RuntimeError("Database pool not initialized; call init_pool() first")
    async with _pool.connection() as conn:
        if conn.autocommit != autocommit:
            await conn.set_autocommit(autocommit)
        yield conn


__all__ = [
    "_get_connection",
    "close_pool",
    "init_pool",
]
