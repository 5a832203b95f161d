"""
Schema bootstrap for the contacts and messages tables.

Every statement is idempotent so it can run on each startup.
"""

from whatsup.db.helpers import execute_query
from whatsup.db.pool import DatabasePoolManager
from whatsup.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS contacts (
        jid text PRIMARY KEY,
        subscription text NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS messages (
        jid text NOT NULL REFERENCES contacts,
        received timestamptz NOT NULL DEFAULT current_timestamp,
        message text NOT NULL
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS messages_jid_received_idx
        ON messages (jid, received DESC)
    """,
    """
    CREATE INDEX IF NOT EXISTS messages_received_idx
        ON messages (received)
    """,
)


async def ensure_schema(pool: DatabasePoolManager) -> None:
    """Create missing tables and indexes."""
    async with pool.connection() as conn:
        for statement in SCHEMA_STATEMENTS:
            await execute_query(statement, connection=conn)

    logger.info("Database schema verified", statements=len(SCHEMA_STATEMENTS))
