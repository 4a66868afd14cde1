"""
Database connection pool and connection manager.

All database access goes through system_conn().
Never use pool.acquire() directly outside this module.
"""

from __future__ import annotations

from contextlib import asynccontextmanager

import asyncpg

from backend.config import settings

pool: asyncpg.Pool | None = None


async def init_pool(dsn: str | None = None) -> None:
    """
    Initialize the connection pool.
    Called once at application startup when DATABASE_URL is set.
    """
    global pool
    pool = await asyncpg.create_pool(
        dsn=dsn or settings.DATABASE_URL,
        min_size=2,
        max_size=20,
        command_timeout=60,
    )


async def close_pool() -> None:
    """
    Close the connection pool.
    Called at application shutdown.
    """
    global pool
    if pool is not None:
        await pool.close()
        pool = None


@asynccontextmanager
async def system_conn():
    """
    Acquire a database connection inside a transaction.

    The transaction commits when the block exits without an exception.
    Callers that signal a change must do so after the block has exited,
    never inside it.

    Usage:
        async with system_conn() as conn:
            total = await conn.fetchval("SELECT count(*) FROM orders")

    Yields:
        asyncpg.Connection with an open transaction
    """
    if pool is None:
        raise RuntimeError("Database pool not initialized. Call init_pool() first.")

    async with pool.acquire() as conn:
        async with conn.transaction():
            yield conn
