"""
PostgreSQL connection pool shared by the API process and the sync worker.
"""

import asyncio
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import psycopg
from psycopg import sql
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from webinarwise.config import settings
from webinarwise.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

# Sync writes are small upserts; anything slower is stuck.
STATEMENT_TIMEOUT = "60s"


class DatabasePoolManager:
    """
    Owns the process-wide async connection pool.

    Opened by the API lifespan and by the background worker; every
    repository borrows connections through `connection()`.
    """

    def __init__(self):
        self.pool: AsyncConnectionPool | None = None
        self._closed = False

    @property
    def is_open(self) -> bool:
        return self.pool is not None and not self._closed

    async def initialize(self) -> None:
        if self.pool is not None:
            logger.warning("Database pool already initialized")
            return
        if self._closed:
            raise RuntimeError("Cannot reinitialize closed pool")

        pool_config = settings.get_db_pool_config()
        logger.info("Opening database pool", host=settings.database_host(), **pool_config)

        pool = AsyncConnectionPool(
            conninfo=settings.DATABASE_URL,
            open=False,
            check=AsyncConnectionPool.check_connection,
            configure=self._configure_connection,
            **pool_config,
        )
        try:
            await pool.open(wait=True)
        except Exception as e:
            await pool.close()
            raise RuntimeError(f"Database pool initialization failed: {e}") from e

        self.pool = pool
        logger.info("Database pool ready")

    @staticmethod
    async def _configure_connection(conn: psycopg.AsyncConnection) -> None:
        conn.row_factory = dict_row
        await conn.set_autocommit(True)
        app_name = f"webinarwise-sync-{settings.environment}"
        await conn.execute(sql.SQL("SET application_name = {}").format(sql.Literal(app_name)))
        await conn.execute("SET timezone = 'UTC'")
        await conn.execute(
            sql.SQL("SET statement_timeout = {}").format(sql.Literal(STATEMENT_TIMEOUT))
        )

    async def close(self) -> None:
        """Close the pool; in-flight sync writes get 30 seconds to finish."""
        if not self.is_open:
            return

        self._closed = True
        try:
            await asyncio.wait_for(self.pool.close(), timeout=30.0)
            logger.info("Database pool closed")
        except TimeoutError:
            logger.warning("Database pool close timed out, forcing shutdown")

    @asynccontextmanager
    async def connection(self) -> AsyncGenerator[psycopg.AsyncConnection, None]:
        if not self.is_open:
            raise RuntimeError("Database pool is not open")

        async with self.pool.connection() as conn:
            yield conn

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[psycopg.AsyncConnection, None]:
        """Connection inside a transaction; commits on success, rolls back on exception."""
        async with self.connection() as conn:
            async with conn.transaction():
                yield conn

    async def health_check(self) -> dict[str, Any]:
        """Round trip to the store plus pool usage and the number of running sync jobs."""
        if not self.is_open:
            return {"healthy": False, "service": "database_pool", "error": "Pool is not open"}

        try:
            start_time = time.time()
            async with self.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        "SELECT count(*) AS running FROM sync_jobs WHERE status = 'running'"
                    )
                    row = await cur.fetchone()
            round_trip_ms = (time.time() - start_time) * 1000
        except psycopg.Error as e:
            logger.error("Database health check failed", error=str(e))
            return {
                "healthy": False,
                "service": "database_pool",
                "error": str(e),
                "error_type": type(e).__name__,
            }

        stats = self.pool.get_stats()
        pool_size = stats.get("pool_size", 0)
        in_use = pool_size - stats.get("pool_available", 0)
        utilization = in_use / pool_size * 100 if pool_size else 0

        return {
            "healthy": utilization < 90,
            "service": "database_pool",
            "connection_time_ms": round(round_trip_ms, 2),
            "running_sync_jobs": row["running"],
            "pool_stats": {
                "pool_size": pool_size,
                "pool_in_use": in_use,
                "pool_utilization_percent": round(utilization, 2),
                "requests_waiting": stats.get("requests_waiting", 0),
            },
        }


db_pool = DatabasePoolManager()


async def get_db_connection():
    return db_pool.connection()


async def get_db_transaction():
    return db_pool.transaction()


async def db_health_check() -> dict[str, Any]:
    return await db_pool.health_check()
