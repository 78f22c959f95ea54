"""
MODULE OVERVIEW:
The process-wide asyncpg connection pool.

WHAT IS HAPPENING HERE:
Ordinary queries follow the usual checkout-query-return pattern through `fetch()`.
Streaming sessions are different: a session checks a connection out with
`acquire_stream_connection()` and keeps it until the client goes away, because that
connection has to sit idle receiving NOTIFY frames. The pool's max size is therefore
the ceiling on concurrent streaming clients, and acquisition is bounded by a timeout
so a new stream fails fast instead of queueing forever.
"""
from typing import Any

import asyncpg
from loguru import logger

from energyrite_live.shared.config import Settings


class DatabaseNotConfigured(RuntimeError):
    pass


class Database:
    def __init__(self, dsn: str | None, *, min_size: int = 0, max_size: int = 10,
                 acquire_timeout_s: float = 5.0, ssl: bool = False):
        self.dsn = dsn
        self.min_size = min_size
        self.max_size = max_size
        self.acquire_timeout_s = acquire_timeout_s
        self.ssl = ssl
        self.pool: asyncpg.Pool | None = None
        self.held_connections = 0

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        return cls(
            settings.resolve_dsn(),
            min_size=settings.DB_POOL_MIN_SIZE,
            max_size=settings.DB_POOL_MAX_SIZE,
            acquire_timeout_s=settings.DB_POOL_ACQUIRE_TIMEOUT_S,
            ssl=settings.DB_SSL,
        )

    @property
    def configured(self) -> bool:
        return self.dsn is not None

    async def connect(self) -> None:
        if not self.configured:
            logger.warning("event=db_pool reason=not_configured")
            return
        self.pool = await asyncpg.create_pool(
            dsn=self.dsn,
            min_size=self.min_size,
            max_size=self.max_size,
            ssl="require" if self.ssl else None,
        )
        logger.info(f"event=db_pool reason=created min_size={self.min_size} max_size={self.max_size} ssl={self.ssl}")

    async def close(self) -> None:
        if self.pool is not None:
            await self.pool.close()
            self.pool = None
            logger.info("event=db_pool reason=closed")

    def _require_pool(self) -> asyncpg.Pool:
        if self.pool is None:
            raise DatabaseNotConfigured("Database is not configured")
        return self.pool

    async def acquire_stream_connection(self) -> asyncpg.Connection:
        """Check out a connection that stays reserved until `release()`."""
        pool = self._require_pool()
        conn = await pool.acquire(timeout=self.acquire_timeout_s)
        self.held_connections += 1
        return conn

    async def release(self, conn: asyncpg.Connection) -> None:
        self.held_connections -= 1
        await self._require_pool().release(conn)

    async def fetch(self, query: str, *args: Any) -> list[dict[str, Any]]:
        pool = self._require_pool()
        async with pool.acquire(timeout=self.acquire_timeout_s) as conn:
            rows = await conn.fetch(query, *args)
        return [dict(row) for row in rows]

    async def fetchval(self, query: str, *args: Any) -> Any:
        pool = self._require_pool()
        async with pool.acquire(timeout=self.acquire_timeout_s) as conn:
            return await conn.fetchval(query, *args)

    def pool_size(self) -> int:
        return self.pool.get_size() if self.pool is not None else 0

    def pool_idle(self) -> int:
        return self.pool.get_idle_size() if self.pool is not None else 0
