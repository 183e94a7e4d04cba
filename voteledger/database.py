"""
Async PostgreSQL access for the snapshot backend.
Uses asyncpg for non-blocking access with connection pooling.
"""
from contextlib import asynccontextmanager

import asyncpg

from . import config

SNAPSHOT_DDL = """
CREATE TABLE IF NOT EXISTS ledger_snapshot (
    id        INTEGER PRIMARY KEY,
    payload   JSONB NOT NULL,
    saved_at  TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP
)
"""


class Database:
    """Async database connection pool manager."""

    _pool: asyncpg.Pool | None = None

    @classmethod
    async def get_pool(cls) -> asyncpg.Pool:
        """Return the existing pool or create one lazily."""
        if cls._pool is None:
            cls._pool = await asyncpg.create_pool(
                host=config.DB_HOST,
                port=config.DB_PORT,
                database=config.DB_NAME,
                user=config.DB_USER,
                password=config.DB_PASSWORD,
                min_size=1,
                max_size=5,
            )
        return cls._pool

    @classmethod
    async def close(cls) -> None:
        """Gracefully close the pool (called on app shutdown)."""
        if cls._pool is not None:
            await cls._pool.close()
            cls._pool = None

    @classmethod
    @asynccontextmanager
    async def connection(cls):
        """Acquire a connection from the pool (auto-released on exit)."""
        pool = await cls.get_pool()
        async with pool.acquire() as conn:
            yield conn

    @classmethod
    @asynccontextmanager
    async def transaction(cls):
        """Acquire a connection and open a transaction (auto-committed/rolled-back)."""
        pool = await cls.get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                yield conn

    # ── Snapshot row ─────────────────────────────────────────────────────────
    # The whole ledger is one JSONB document in row id = 1.

    @classmethod
    async def ensure_schema(cls) -> None:
        async with cls.connection() as conn:
            await conn.execute(SNAPSHOT_DDL)

    @classmethod
    async def load_snapshot(cls) -> str | None:
        """Return the stored snapshot as JSON text, or None when absent."""
        async with cls.connection() as conn:
            return await conn.fetchval(
                "SELECT payload::text FROM ledger_snapshot WHERE id = 1"
            )

    @classmethod
    async def save_snapshot(cls, payload: str) -> None:
        async with cls.transaction() as conn:
            await conn.execute(
                """
                INSERT INTO ledger_snapshot (id, payload, saved_at)
                VALUES (1, $1::jsonb, CURRENT_TIMESTAMP)
                ON CONFLICT (id) DO UPDATE
                    SET payload = EXCLUDED.payload, saved_at = EXCLUDED.saved_at
                """,
                payload,
            )
