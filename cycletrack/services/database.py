"""Supabase Postgres access with RLS context.

Every request gets a connection where ``app.current_user_id`` is set via
``SET LOCAL``, so Postgres Row-Level Security policies only expose the
caller's own settings, period records and profile.

Uses ``asyncpg`` directly: the Supabase Python client has no way to set
session variables per transaction.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import asyncpg

from cycletrack.config import Settings, get_settings

logger = logging.getLogger("cycletrack.db")

# Module-level connection pool, initialized once at app startup
_pool: asyncpg.Pool | None = None


async def init_pool(settings: Settings | None = None) -> asyncpg.Pool:
    """Create the asyncpg connection pool. Call once at app startup."""
    global _pool
    s = settings or get_settings()
    _pool = await asyncpg.create_pool(
        s.database_url,
        min_size=s.db_pool_min_size,
        max_size=s.db_pool_max_size,
        command_timeout=s.db_command_timeout,
    )
    logger.info(
        "Database pool initialized (min=%d, max=%d)",
        s.db_pool_min_size,
        s.db_pool_max_size,
    )
    return _pool


async def close_pool() -> None:
    """Drain the pool. Call at app shutdown."""
    global _pool
    if _pool:
        await _pool.close()
        _pool = None
        logger.info("Database pool closed")


def get_pool() -> asyncpg.Pool:
    if _pool is None:
        raise RuntimeError("Database pool not initialized; call init_pool() first")
    return _pool


@asynccontextmanager
async def get_connection(
    user_id: str | None = None,
) -> AsyncGenerator[asyncpg.Connection, None]:
    """Acquire a connection with the RLS user set for one transaction.

    Usage::

        async with get_connection(user_id=ctx.user_id) as conn:
            rows = await conn.fetch("SELECT * FROM period_records WHERE user_id = $1", ctx.user_id)

    ``SET LOCAL`` is scoped to the transaction, so the setting disappears
    when the connection goes back to the pool.
    """
    pool = get_pool()
    async with pool.acquire() as conn:
        async with conn.transaction():
            if user_id:
                await conn.execute(
                    "SELECT set_config('app.current_user_id', $1, true)", user_id
                )
            yield conn

