"""
Runs the store queries against a real Postgres.

Set WHATSUP_TEST_DATABASE_URL to a disposable database to enable; the tables
are dropped and recreated.
"""

import os
from datetime import UTC, datetime, timedelta

import pytest
import pytest_asyncio

from whatsup.config import Settings
from whatsup.db.helpers import execute_query
from whatsup.db.pool import DatabasePoolManager
from whatsup.db.schema import ensure_schema
from whatsup.models.domain.contact_domain import DayType, SubscriptionState
from whatsup.repositories.status_repository import PostgresStatusStore

DATABASE_URL = os.getenv("WHATSUP_TEST_DATABASE_URL")

pytestmark = pytest.mark.skipif(not DATABASE_URL, reason="WHATSUP_TEST_DATABASE_URL not set")

TUESDAY_0910 = datetime(2026, 10, 20, 9, 10, tzinfo=UTC)


@pytest_asyncio.fixture
async def store():
    settings = Settings(
        XMPP_JID="bot@example.com",
        XMPP_PASSWORD="secret",
        PUBLIC_BASE_URL="https://status.example.com",
        DATABASE_URL=DATABASE_URL,
        environment="test",
        _env_file=None,
    )
    pool = DatabasePoolManager(settings)
    await pool.initialize()
    async with pool.connection() as conn:
        await execute_query("DROP TABLE IF EXISTS messages, contacts", connection=conn)
    await ensure_schema(pool)
    yield PostgresStatusStore(pool)
    await pool.close()


@pytest.mark.asyncio
async def test_contacts_round_trip(store):
    await store.upsert_contact("alice@example.com", SubscriptionState.PENDING_OUT)
    await store.upsert_contact("alice@example.com", SubscriptionState.BOTH)
    await store.insert_message("alice@example.com", "standup", TUESDAY_0910)

    [row] = await store.load_contacts()

    assert row.subscription is SubscriptionState.BOTH
    assert row.last_message_at == TUESDAY_0910


@pytest.mark.asyncio
async def test_working_set_matches_same_hour_same_day_type(store):
    await store.insert_message("c1@example.com", "standup", TUESDAY_0910 - timedelta(days=7, minutes=10))
    await store.insert_message("c2@example.com", "brunch", datetime(2026, 10, 18, 9, 0, tzinfo=UTC))
    await store.insert_message("c3@example.com", "late", TUESDAY_0910 - timedelta(days=1, hours=3))
    await store.insert_message("c4@example.com", "old", TUESDAY_0910 - timedelta(days=14))

    working = await store.query_working_set(TUESDAY_0910, DayType.WEEKDAY)

    assert working == {"c1@example.com"}


@pytest.mark.asyncio
async def test_working_set_wraps_around_midnight(store):
    await store.insert_message("owl@example.com", "still up", datetime(2026, 10, 19, 23, 30, tzinfo=UTC))

    now = datetime(2026, 10, 20, 0, 15, tzinfo=UTC)

    assert await store.query_working_set(now, DayType.WEEKDAY) == {"owl@example.com"}


@pytest.mark.asyncio
async def test_stale_set(store):
    await store.insert_message("quiet@example.com", "bye", TUESDAY_0910 - timedelta(days=8))
    await store.insert_message("busy@example.com", "hi", TUESDAY_0910 - timedelta(days=8))
    await store.insert_message("busy@example.com", "again", TUESDAY_0910 - timedelta(days=1))

    assert await store.query_stale_set(TUESDAY_0910) == {"quiet@example.com"}


@pytest.mark.asyncio
async def test_overview_and_history_ordering(store):
    for jid in ("alice@example.com", "bob@example.com"):
        await store.upsert_contact(jid, SubscriptionState.BOTH)
    day = TUESDAY_0910 - timedelta(days=1)
    await store.insert_message("alice@example.com", "09:00", day.replace(hour=9, minute=0))
    await store.insert_message("bob@example.com", "09:30", day.replace(hour=9, minute=30))
    await store.insert_message("alice@example.com", "10:00", day.replace(hour=10, minute=0))
    await store.insert_message("stranger@example.com", "hello", day)

    overview = await store.query_overview(TUESDAY_0910)
    history = await store.query_history("alice@example.com")

    assert [(m.jid, m.body) for m in overview] == [
        ("alice@example.com", "10:00"),
        ("alice@example.com", "09:00"),
        ("bob@example.com", "09:30"),
    ]
    assert [m.body for m in history] == ["10:00", "09:00"]
