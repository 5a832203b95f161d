"""
Database helper functions for common patterns.
Reduces boilerplate in the repository layer.
"""

from collections.abc import Mapping, Sequence
from typing import Any

import psycopg

from whatsup.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

QueryParams = Sequence[Any] | Mapping[str, Any]


class DatabaseError(Exception):
    """Custom exception for database operations."""

    def __init__(self, message: str, operation: str = "unknown", recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


async def fetch_all(
    query: str, params: QueryParams = (), *, connection: psycopg.AsyncConnection
) -> list[dict[str, Any]]:
    """
    Execute query and return all rows as list of dicts.

    Args:
        query: SQL query with %s placeholders
        params: Query parameters
        connection: Pooled connection

    Returns:
        List of dicts with row data
    """
    try:
        async with connection.cursor() as cur:
            await cur.execute(query, params)
            return await cur.fetchall()

    except psycopg.Error as e:
        logger.error("Database fetch_all error", query=query[:100], error=str(e))
        raise DatabaseError(f"Query failed: {e}", operation="fetch_all") from e


async def execute_query(
    query: str, params: QueryParams = (), *, connection: psycopg.AsyncConnection
) -> int:
    """
    Execute query and return number of affected rows.
    """
    try:
        cursor = await connection.execute(query, params)
        return cursor.rowcount

    except psycopg.Error as e:
        logger.error("Database execute error", query=query[:100], error=str(e))
        raise DatabaseError(f"Query failed: {e}", operation="execute") from e


async def execute_transaction(
    queries_and_params: list[tuple[str, QueryParams]], *, connection: psycopg.AsyncConnection
) -> None:
    """
    Execute multiple queries in a single transaction.

    Example:
        await execute_transaction([
            ("INSERT INTO contacts ... ON CONFLICT DO NOTHING", (jid,)),
            ("INSERT INTO messages ...", (jid, received_at, body)),
        ], connection=conn)
    """
    try:
        async with connection.transaction():
            for query, params in queries_and_params:
                await connection.execute(query, params)

        logger.debug("Transaction completed successfully", query_count=len(queries_and_params))

    except psycopg.Error as e:
        logger.error("Transaction failed", query_count=len(queries_and_params), error=str(e))
        raise DatabaseError(f"Transaction failed: {e}", operation="transaction") from e
