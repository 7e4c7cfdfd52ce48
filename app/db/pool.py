# app/db/pool.py
"""
Postgres connection pool for the Supabase database holding sites and
up-votes.

One AsyncConnectionPool per process, opened in the FastAPI lifespan (or by a
worker job) and closed on shutdown. Connections hand out dict rows and run in
autocommit: every statement issued here is a single read or an idempotent
insert.
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

from app.config import settings
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

CLOSE_TIMEOUT_SECONDS = 30.0
STATEMENT_TIMEOUT = "30s"


class DatabasePoolManager:
    """Owns the process-wide pool and its open/closed lifecycle."""

    def __init__(self):
        self.pool: AsyncConnectionPool | None = None
        self._initialized = False
        self._closed = False

    @property
    def ready(self) -> bool:
        return self._initialized and not self._closed and self.pool is not None

    async def initialize(self) -> None:
        if self._initialized:
            logger.warning("Database pool already initialized")
            return
        if self._closed:
            raise RuntimeError("Cannot reinitialize closed pool")

        sizing = settings.get_db_pool_config()
        logger.info("Opening database pool", **sizing)

        pool = AsyncConnectionPool(
            conninfo=settings.SUPABASE_DB_URL,
            open=False,
            check=AsyncConnectionPool.check_connection,
            configure=self._configure_connection,
            **sizing,
        )
        try:
            await pool.open(wait=True)
            await self._measure_latency(pool)
        except Exception as e:
            logger.error("Failed to open database pool", error=str(e), error_type=type(e).__name__)
            await pool.close()
            raise RuntimeError(f"Database pool initialization failed: {e}") from e

        self.pool = pool
        self._initialized = True
        logger.info("Database pool ready", min_size=sizing["min_size"], max_size=sizing["max_size"])

    @staticmethod
    async def _configure_connection(conn: psycopg.AsyncConnection) -> None:
        conn.row_factory = dict_row
        await conn.set_autocommit(True)
        await conn.execute(
            sql.SQL("SET application_name = {}").format(
                sql.Literal(f"ubghub-{settings.environment}")
            )
        )
        await conn.execute("SET timezone = 'UTC'")
        await conn.execute(
            sql.SQL("SET statement_timeout = {}").format(sql.Literal(STATEMENT_TIMEOUT))
        )

    @staticmethod
    async def _measure_latency(pool: AsyncConnectionPool) -> float:
        """Run SELECT 1 through the pool; returns the round trip in ms."""
        started = time.perf_counter()
        async with pool.connection() as conn:
            cursor = await conn.execute("SELECT 1 AS ok")
            row = await cursor.fetchone()
        if not row or row["ok"] != 1:
            raise RuntimeError("Latency check returned an unexpected result")
        return (time.perf_counter() - started) * 1000

    async def close(self) -> None:
        if not self._initialized or self._closed:
            return

        logger.info("Closing database pool")
        try:
            await asyncio.wait_for(self.pool.close(), timeout=CLOSE_TIMEOUT_SECONDS)
        except TimeoutError:
            logger.warning("Database pool close timed out", timeout_s=CLOSE_TIMEOUT_SECONDS)
        finally:
            self._initialized = False
            self._closed = True

    @asynccontextmanager
    async def connection(self) -> AsyncGenerator[psycopg.AsyncConnection, None]:
        """
        Borrow a connection.

        Usage:
            async with db_pool.connection() as conn:
                await conn.execute("SELECT 1")
        """
        if not self.ready:
            raise RuntimeError("Database pool not initialized. Call initialize() first.")

        async with self.pool.connection() as conn:
            yield conn

    async def health_check(self) -> dict[str, Any]:
        if not self.ready:
            state = "closed" if self._closed else "not initialized"
            return {"healthy": False, "error": f"Pool {state}", "service": "database_pool"}

        try:
            latency_ms = await self._measure_latency(self.pool)
        except (psycopg.Error, RuntimeError) as e:
            logger.error("Database pool health check failed", error=str(e))
            return {
                "healthy": False,
                "service": "database_pool",
                "error": str(e),
                "error_type": type(e).__name__,
            }

        stats = self.pool.get_stats()
        return {
            "healthy": True,
            "service": "database_pool",
            "connection_time_ms": round(latency_ms, 2),
            "pool_stats": {
                "pool_size": stats.get("pool_size", 0),
                "pool_available": stats.get("pool_available", 0),
                "requests_waiting": stats.get("requests_waiting", 0),
            },
        }


# Global pool instance
db_pool = DatabasePoolManager()


async def get_db_connection():
    """Connection context manager from the global pool."""
    return db_pool.connection()


async def db_health_check() -> dict[str, Any]:
    return await db_pool.health_check()
