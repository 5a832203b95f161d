"""
Durable store for contacts and status messages.

`StatusStore` is the contract the services depend on; `PostgresStatusStore`
implements it with raw SQL over the psycopg pool. The reminder heuristic is
expressed as two parameterised queries so it can be replaced by a fake in
tests.
"""

from datetime import datetime, timedelta
from typing import Protocol

from whatsup.db.helpers import execute_query, execute_transaction, fetch_all
from whatsup.db.pool import DatabasePoolManager
from whatsup.infrastructure.observability.logging import get_logger
from whatsup.models.domain.contact_domain import (
    ContactRow,
    DayType,
    StatusMessage,
    SubscriptionState,
)

logger = get_logger(__name__)

WORKING_SET_TRAILING_DAYS = 9
WORKING_SET_TOLERANCE_SECONDS = 90 * 60
STALE_DAYS = 7
OVERVIEW_TRAILING_DAYS = 3
OVERVIEW_PER_CONTACT = 5

SECONDS_PER_DAY = 24 * 60 * 60


class StatusStore(Protocol):
    async def load_contacts(self) -> list[ContactRow]: ...

    async def upsert_contact(self, jid: str, subscription: SubscriptionState) -> None: ...

    async def insert_message(self, jid: str, body: str, received_at: datetime) -> None: ...

    async def query_working_set(
        self,
        now: datetime,
        day_type: DayType,
        trailing_days: int = WORKING_SET_TRAILING_DAYS,
        tolerance_seconds: int = WORKING_SET_TOLERANCE_SECONDS,
        timezone: str = "UTC",
    ) -> set[str]: ...

    async def query_stale_set(self, now: datetime, stale_days: int = STALE_DAYS) -> set[str]: ...

    async def query_overview(
        self,
        now: datetime,
        trailing_days: int = OVERVIEW_TRAILING_DAYS,
        per_contact: int = OVERVIEW_PER_CONTACT,
    ) -> list[StatusMessage]: ...

    async def query_history(self, jid: str) -> list[StatusMessage]: ...


def seconds_into_day(moment: datetime) -> float:
    return moment.hour * 3600 + moment.minute * 60 + moment.second + moment.microsecond / 1e6


class PostgresStatusStore:
    """Raw SQL implementation of StatusStore."""

    def __init__(self, pool: DatabasePoolManager):
        self.pool = pool

    async def load_contacts(self) -> list[ContactRow]:
        query = """
            SELECT c.jid, c.subscription, MAX(m.received) AS last_message_at
            FROM contacts c
            LEFT JOIN messages m ON m.jid = c.jid
            GROUP BY c.jid, c.subscription
        """

        async with self.pool.connection() as conn:
            rows = await fetch_all(query, connection=conn)

        return [
            ContactRow(
                jid=row["jid"],
                subscription=SubscriptionState.parse(row["subscription"]),
                last_message_at=row["last_message_at"],
            )
            for row in rows
        ]

    async def upsert_contact(self, jid: str, subscription: SubscriptionState) -> None:
        query = """
            INSERT INTO contacts (jid, subscription)
            VALUES (%s, %s)
            ON CONFLICT (jid) DO UPDATE SET subscription = EXCLUDED.subscription
        """

        async with self.pool.connection() as conn:
            await execute_query(query, (jid, subscription.value), connection=conn)

        logger.debug("Contact upserted", jid=jid, subscription=subscription.value)

    async def insert_message(self, jid: str, body: str, received_at: datetime) -> None:
        # History rows reference contacts, so senders admitted without a
        # subscription get a placeholder row first
        async with self.pool.connection() as conn:
            await execute_transaction(
                [
                    (
                        """
                        INSERT INTO contacts (jid, subscription) VALUES (%s, %s)
                        ON CONFLICT (jid) DO NOTHING
                        """,
                        (jid, SubscriptionState.NONE.value),
                    ),
                    (
                        "INSERT INTO messages (jid, received, message) VALUES (%s, %s, %s)",
                        (jid, received_at, body),
                    ),
                ],
                connection=conn,
            )

    async def query_working_set(
        self,
        now: datetime,
        day_type: DayType,
        trailing_days: int = WORKING_SET_TRAILING_DAYS,
        tolerance_seconds: int = WORKING_SET_TOLERANCE_SECONDS,
        timezone: str = "UTC",
    ) -> set[str]:
        """
        Contacts who posted, on a day of the same type within the trailing
        window, at a time of day close to ``now``'s. The time-of-day distance
        wraps around midnight.
        """
        query = """
            WITH recent AS (
                SELECT jid, (received AT TIME ZONE %(tz)s) AS local_received
                FROM messages
                WHERE received >= %(since)s
            ), scored AS (
                SELECT jid,
                       local_received,
                       ABS(EXTRACT(EPOCH FROM local_received::time) - %(tod)s) AS distance
                FROM recent
            )
            SELECT DISTINCT jid
            FROM scored
            WHERE (EXTRACT(ISODOW FROM local_received) >= 6) = %(weekend)s
              AND LEAST(distance, %(day)s - distance) <= %(tolerance)s
        """
        params = {
            "tz": timezone,
            "since": now - timedelta(days=trailing_days),
            "tod": seconds_into_day(now),
            "weekend": day_type is DayType.WEEKEND,
            "day": SECONDS_PER_DAY,
            "tolerance": tolerance_seconds,
        }

        async with self.pool.connection() as conn:
            rows = await fetch_all(query, params, connection=conn)

        return {row["jid"] for row in rows}

    async def query_stale_set(self, now: datetime, stale_days: int = STALE_DAYS) -> set[str]:
        query = """
            SELECT jid
            FROM messages
            GROUP BY jid
            HAVING MAX(received) < %s
        """

        async with self.pool.connection() as conn:
            rows = await fetch_all(query, (now - timedelta(days=stale_days),), connection=conn)

        return {row["jid"] for row in rows}

    async def query_overview(
        self,
        now: datetime,
        trailing_days: int = OVERVIEW_TRAILING_DAYS,
        per_contact: int = OVERVIEW_PER_CONTACT,
    ) -> list[StatusMessage]:
        query = """
            SELECT received, jid, message
            FROM (
                SELECT m.received, m.jid, m.message,
                       ROW_NUMBER() OVER (PARTITION BY m.jid ORDER BY m.received DESC) AS rn
                FROM messages m
                JOIN contacts c ON c.jid = m.jid
                WHERE m.received >= %s
                  AND c.subscription = %s
            ) ranked
            WHERE rn <= %s
            ORDER BY jid ASC, received DESC
        """
        params = (now - timedelta(days=trailing_days), SubscriptionState.BOTH.value, per_contact)

        async with self.pool.connection() as conn:
            rows = await fetch_all(query, params, connection=conn)

        return [
            StatusMessage(jid=row["jid"], received_at=row["received"], body=row["message"])
            for row in rows
        ]

    async def query_history(self, jid: str) -> list[StatusMessage]:
        query = """
            SELECT received, message
            FROM messages
            WHERE jid = %s
            ORDER BY received DESC
        """

        async with self.pool.connection() as conn:
            rows = await fetch_all(query, (jid,), connection=conn)

        return [StatusMessage(jid=jid, received_at=row["received"], body=row["message"]) for row in rows]
