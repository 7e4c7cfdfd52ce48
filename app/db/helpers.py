# app/db/helpers.py
"""
Thin query helpers over the pool. Repositories call these instead of
handling connections and cursors themselves.

Driver errors surface as DatabaseError; the directory services turn those
into FetchError.
"""

from typing import Any

import psycopg
from psycopg import sql

from app.db.pool import get_db_connection
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

Query = str | sql.Composable


class DatabaseError(Exception):
    """A query could not be executed."""

    def __init__(self, message: str, operation: str = "unknown", recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


def _preview(query: Query) -> str:
    text = query if isinstance(query, str) else repr(query)
    return " ".join(text.split())[:100]


def _wrap(error: psycopg.Error, query: Query, operation: str) -> DatabaseError:
    logger.error(
        "Database query failed",
        operation=operation,
        query=_preview(query),
        error=str(error),
        sqlstate=error.sqlstate,
    )
    # Connection-level failures are worth a retry; constraint or syntax errors are not
    recoverable = isinstance(error, psycopg.OperationalError)
    return DatabaseError(f"Query failed: {error}", operation=operation, recoverable=recoverable)


async def fetch_all(query: Query, params: tuple = ()) -> list[dict[str, Any]]:
    """Run a SELECT and return every row as a dict."""
    try:
        async with await get_db_connection() as conn:
            cursor = await conn.execute(query, params)
            return await cursor.fetchall()
    except psycopg.Error as e:
        raise _wrap(e, query, "fetch_all") from e


async def execute_query(query: Query, params: tuple = ()) -> int:
    """Run a write and return the number of affected rows."""
    try:
        async with await get_db_connection() as conn:
            cursor = await conn.execute(query, params)
            return cursor.rowcount
    except psycopg.Error as e:
        raise _wrap(e, query, "execute") from e
