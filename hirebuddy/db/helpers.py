"""
Query helpers for the repository layer.

Every helper borrows a pooled connection for one statement and turns driver
and pool failures into DatabaseError, so callers handle a single exception
type. Rows come back as dicts (the pool configures `dict_row`).
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import psycopg
from psycopg_pool import PoolTimeout

from hirebuddy.db.pool import get_db_connection
from hirebuddy.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

# Constraint and data errors fail the same way on every attempt.
_PERMANENT_ERRORS = (psycopg.IntegrityError, psycopg.DataError, psycopg.ProgrammingError)


class DatabaseError(Exception):
    """Custom exception for database operations."""

    def __init__(self, message: str, operation: str = "unknown", recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


@asynccontextmanager
async def _cursor(operation: str, query: str) -> AsyncGenerator[psycopg.AsyncCursor, None]:
    try:
        async with await get_db_connection() as conn:
            async with conn.cursor() as cur:
                yield cur
    except _PERMANENT_ERRORS as e:
        logger.error("Database query rejected", operation=operation, query=query[:100], error=str(e))
        raise DatabaseError(f"Query failed: {e}", operation=operation, recoverable=False) from e
    except psycopg.Error as e:
        logger.error("Database query failed", operation=operation, query=query[:100], error=str(e))
        raise DatabaseError(f"Query failed: {e}", operation=operation) from e
    except (PoolTimeout, RuntimeError) as e:
        # RuntimeError: pool not initialized or already closed
        logger.error("Database connection unavailable", operation=operation, error=str(e))
        raise DatabaseError(f"Database unavailable: {e}", operation=operation) from e


async def fetch_one(query: str, params: tuple = ()) -> dict[str, Any] | None:
    """
    Execute a query and return its first row.

    Args:
        query: SQL query with %s placeholders
        params: Query parameters

    Returns:
        Row dict, or None when the query returned nothing
    """
    async with _cursor("fetch_one", query) as cur:
        await cur.execute(query, params)
        return await cur.fetchone()


async def fetch_all(query: str, params: tuple = ()) -> list[dict[str, Any]]:
    """Execute a query and return every row."""
    async with _cursor("fetch_all", query) as cur:
        await cur.execute(query, params)
        return await cur.fetchall()


async def fetch_val(query: str, params: tuple = ()) -> Any:
    """First column of the first row, or None."""
    async with _cursor("fetch_val", query) as cur:
        await cur.execute(query, params)
        row = await cur.fetchone()
        return next(iter(row.values())) if row else None


async def execute_query(query: str, params: tuple = ()) -> int:
    """
    Execute a write statement.

    Returns:
        Number of affected rows
    """
    async with _cursor("execute", query) as cur:
        await cur.execute(query, params)
        return cur.rowcount
