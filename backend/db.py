"""
Database connection pool and connection managers.

All database access goes through system_conn() or listen_conn().
Never use pool.acquire() directly outside this module.
"""

from __future__ import annotations

import json
from contextlib import asynccontextmanager

import asyncpg

from backend.config import settings

pool: asyncpg.Pool | None = None


async def init_pool(dsn: str | None = None) -> asyncpg.Pool:
    """
    Initialize the connection pool.
    Called once at application startup.
    """
    global pool
    pool = await asyncpg.create_pool(
        dsn=dsn or settings.DATABASE_URL,
        min_size=2,
        max_size=20,
        command_timeout=60,
        init=_init_connection,
    )
    return pool


async def close_pool() -> None:
    """
    Close the connection pool.
    Called at application shutdown.
    """
    global pool
    if pool is not None:
        await pool.close()
        pool = None


async def _init_connection(conn: asyncpg.Connection) -> None:
    """
    Initialize each new connection.
    Documents are JSONB; decode to Python dict/list.
    """
    await conn.set_type_codec(
        "jsonb",
        encoder=json.dumps,
        decoder=json.loads,
        schema="pg_catalog",
    )
    await conn.set_type_codec(
        "json",
        encoder=json.dumps,
        decoder=json.loads,
        schema="pg_catalog",
    )


def _require_pool() -> asyncpg.Pool:
    if pool is None:
        raise RuntimeError("Database pool not initialized. Call init_pool() first.")
    return pool


@asynccontextmanager
async def system_conn():
    """
    Acquire a pooled connection inside a transaction.

    Usage:
        async with system_conn() as conn:
            row = await conn.fetchrow("SELECT data FROM documents WHERE collection = $1 AND id = $2", c, i)

    Yields:
        asyncpg.Connection
    """
    async with _require_pool().acquire() as conn:
        async with conn.transaction():
            yield conn


@asynccontextmanager
async def listen_conn():
    """
    Acquire a pooled connection without a transaction, for LISTEN.

    LISTEN only delivers while the connection stays checked out, so the
    caller holds it for the lifetime of its listener.
    """
    async with _require_pool().acquire() as conn:
        yield conn
