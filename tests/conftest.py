import os
from datetime import UTC, datetime, timedelta

import pytest

os.environ.setdefault("XMPP_JID", "bot@example.com")
os.environ.setdefault("XMPP_PASSWORD", "secret")
os.environ.setdefault("DATABASE_URL", "postgresql://localhost/whatsup_test")
os.environ.setdefault("PUBLIC_BASE_URL", "https://status.example.com/")

from whatsup.config import Settings  # noqa: E402
from whatsup.db.helpers import DatabaseError  # noqa: E402
from whatsup.models.domain.contact_domain import (  # noqa: E402
    ContactRow,
    DayType,
    StatusMessage,
    SubscriptionState,
)
from whatsup.services.context import ServiceContext  # noqa: E402

# Tuesday
TUESDAY_0910 = datetime(2026, 10, 20, 9, 10, tzinfo=UTC)


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class FakeStore:
    """In-memory StatusStore with canned reminder sets and injectable failures."""

    def __init__(self):
        self.contacts: dict[str, SubscriptionState] = {}
        self.messages: list[StatusMessage] = []
        self.upserts: list[tuple[str, SubscriptionState]] = []
        self.working_set: set[str] = set()
        self.stale_set: set[str] = set()
        self.working_set_calls: list[dict] = []
        self.fail_on: set[str] = set()

    def _maybe_fail(self, operation: str) -> None:
        if operation in self.fail_on:
            raise DatabaseError(f"{operation} failed: connection refused", operation=operation)

    async def load_contacts(self) -> list[ContactRow]:
        self._maybe_fail("load_contacts")
        rows = []
        for jid, subscription in self.contacts.items():
            times = [m.received_at for m in self.messages if m.jid == jid]
            rows.append(ContactRow(jid, subscription, max(times) if times else None))
        return rows

    async def upsert_contact(self, jid: str, subscription: SubscriptionState) -> None:
        self._maybe_fail("upsert_contact")
        self.contacts[jid] = subscription
        self.upserts.append((jid, subscription))

    async def insert_message(self, jid: str, body: str, received_at: datetime) -> None:
        self._maybe_fail("insert_message")
        self.contacts.setdefault(jid, SubscriptionState.NONE)
        self.messages.append(StatusMessage(jid, received_at, body))

    async def query_working_set(
        self,
        now: datetime,
        day_type: DayType,
        trailing_days: int = 9,
        tolerance_seconds: int = 5400,
        timezone: str = "UTC",
    ) -> set[str]:
        self._maybe_fail("query_working_set")
        self.working_set_calls.append(
            {
                "now": now,
                "day_type": day_type,
                "trailing_days": trailing_days,
                "tolerance_seconds": tolerance_seconds,
                "timezone": timezone,
            }
        )
        return set(self.working_set)

    async def query_stale_set(self, now: datetime, stale_days: int = 7) -> set[str]:
        self._maybe_fail("query_stale_set")
        return set(self.stale_set)

    async def query_overview(
        self, now: datetime, trailing_days: int = 3, per_contact: int = 5
    ) -> list[StatusMessage]:
        self._maybe_fail("query_overview")
        since = now - timedelta(days=trailing_days)
        rows = [
            m
            for m in self.messages
            if m.received_at >= since and self.contacts.get(m.jid) is SubscriptionState.BOTH
        ]
        return sorted(rows, key=lambda m: (m.jid, -m.received_at.timestamp()))

    async def query_history(self, jid: str) -> list[StatusMessage]:
        self._maybe_fail("query_history")
        rows = [m for m in self.messages if m.jid == jid]
        return sorted(rows, key=lambda m: m.received_at, reverse=True)


class FakeChannel:
    def __init__(self):
        self.messages: list[tuple[str, str]] = []
        self.presences: list[tuple[str, str]] = []
        self.removed: list[str] = []

    def send_message(self, jid: str, body: str) -> None:
        self.messages.append((jid, body))

    def send_presence(self, jid: str, presence_type: str) -> None:
        self.presences.append((jid, presence_type))

    async def remove_contact(self, jid: str) -> None:
        self.removed.append(jid)

    def messages_to(self, jid: str) -> list[str]:
        return [body for to, body in self.messages if to == jid]


def make_settings(**overrides) -> Settings:
    values = {
        "XMPP_JID": "bot@example.com/status",
        "XMPP_PASSWORD": "secret",
        "DATABASE_URL": "postgresql://localhost/whatsup_test",
        "PUBLIC_BASE_URL": "https://status.example.com/",
        "_env_file": None,
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def fake_store():
    return FakeStore()


@pytest.fixture
def fake_channel():
    return FakeChannel()


@pytest.fixture
def clock():
    return FakeClock(TUESDAY_0910)


@pytest.fixture
def make_context(fake_store, fake_channel, clock):
    def _make(**setting_overrides) -> ServiceContext:
        return ServiceContext(
            settings=make_settings(**setting_overrides),
            store=fake_store,
            channel=fake_channel,
            clock=clock,
            session_ready=True,
        )

    return _make


@pytest.fixture
def context(make_context):
    return make_context()
