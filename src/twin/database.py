"""PostgreSQL pool for the memory and conversation stores.

The stores need the pgvector extension. It is created by the schema
bootstrap, but the server must ship it, so ``open_pool`` checks for it up
front and fails with a ConfigurationError instead of an obscure SQL error
on the first ``CREATE EXTENSION``.
"""
import asyncio
import logging

import asyncpg

from .exceptions import ConfigurationError, StoreError

logger = logging.getLogger(__name__)

PGVECTOR_AVAILABLE_SQL = """
SELECT default_version, installed_version
FROM pg_available_extensions
WHERE name = 'vector'
"""


async def check_pgvector(pool) -> str:
    """Return the pgvector version the server offers.

    Raises:
        ConfigurationError: The server has no pgvector extension
    """
    async with pool.acquire() as conn:
        row = await conn.fetchrow(PGVECTOR_AVAILABLE_SQL)
    if row is None:
        raise ConfigurationError(
            "The PostgreSQL server does not provide the pgvector extension "
            "('vector'); install it before starting the memory core"
        )
    version = row["installed_version"] or row["default_version"]
    logger.info(
        f"pgvector {version} "
        f"{'installed' if row['installed_version'] else 'available'}"
    )
    return version


async def open_pool(
    database_url: str,
    min_size: int = 2,
    max_size: int = 10,
    command_timeout: float = 60.0,
    **kwargs,
):
    """Create an asyncpg pool and verify pgvector is available.

    Raises:
        StoreError: The pool could not be created
        ConfigurationError: pgvector is missing (the pool is closed again)
    """
    try:
        pool = await asyncpg.create_pool(
            database_url,
            min_size=min_size,
            max_size=max_size,
            command_timeout=command_timeout,
            **kwargs,
        )
    except Exception as e:
        raise StoreError(
            f"Could not connect to PostgreSQL: {e}", operation="open_pool", cause=e
        )

    try:
        await check_pgvector(pool)
    except Exception:
        await close_pool(pool)
        raise

    logger.info(f"Database pool ready ({min_size}..{max_size} connections)")
    return pool


async def close_pool(pool, timeout: float = 10.0) -> None:
    """Close the pool, terminating it if connections do not release in time."""
    if pool is None:
        return
    try:
        await asyncio.wait_for(pool.close(), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(f"Pool close exceeded {timeout}s, terminating connections")
        pool.terminate()
        return
    logger.info("Database pool closed")
