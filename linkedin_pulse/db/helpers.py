# linkedin_pulse/db/helpers.py
"""
Query helpers used by the repositories.

Each helper runs one statement on a pooled connection and turns driver
errors into ``DatabaseError``.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import psycopg

from linkedin_pulse.db.pool import db_pool
from linkedin_pulse.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class DatabaseError(Exception):
    """A statement failed in the driver or the server."""

    def __init__(self, message: str, operation: str = "unknown", recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


@asynccontextmanager
async def _statement(
    operation: str, query: str
) -> AsyncGenerator[psycopg.AsyncConnection, None]:
    try:
        async with db_pool.connection() as conn:
            yield conn
    except psycopg.Error as e:
        logger.error(
            "Database statement failed",
            operation=operation,
            query=" ".join(query.split())[:120],
            error=str(e),
        )
        raise DatabaseError(f"Query failed: {e}", operation=operation) from e


async def fetch_one(query: str, params: tuple = ()) -> dict[str, Any] | None:
    """First row of the result as a dict, or None."""
    async with _statement("fetch_one", query) as conn:
        cursor = await conn.execute(query, params)
        return await cursor.fetchone()


async def fetch_all(query: str, params: tuple = ()) -> list[dict[str, Any]]:
    async with _statement("fetch_all", query) as conn:
        cursor = await conn.execute(query, params)
        return await cursor.fetchall()


async def execute_query(query: str, params: tuple = ()) -> int:
    """
    Run a write statement.

    Returns:
        Number of affected rows
    """
    async with _statement("execute", query) as conn:
        cursor = await conn.execute(query, params)
        return cursor.rowcount
