"""
Domain models for contacts and their status messages.

Plain dataclasses shared by the repository, the services and the routes.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


class SubscriptionState(str, Enum):
    """Presence subscription between the service and a contact."""

    NONE = "none"
    PENDING_OUT = "pending_out"  # we asked, they have not approved yet
    PENDING_IN = "pending_in"  # they asked, we have not approved yet
    BOTH = "both"

    @classmethod
    def parse(cls, value: str | None) -> "SubscriptionState":
        """Unknown or empty values fall back to NONE."""
        try:
            return cls(value)
        except ValueError:
            return cls.NONE


class DayType(str, Enum):
    WEEKDAY = "weekday"
    WEEKEND = "weekend"

    @classmethod
    def of(cls, moment: datetime) -> "DayType":
        return cls.WEEKEND if moment.isoweekday() >= 6 else cls.WEEKDAY


@dataclass(slots=True)
class Contact:
    """In-memory view of a contacts row plus process-lifetime bookkeeping."""

    jid: str
    subscription: SubscriptionState = SubscriptionState.NONE
    last_activity_at: datetime | None = None
    last_reminder_at: datetime | None = None

    @property
    def is_subscribed(self) -> bool:
        return self.subscription is SubscriptionState.BOTH

    @property
    def quiet_since(self) -> datetime:
        """Later of last activity and last reminder."""
        return max(self.last_activity_at or EPOCH, self.last_reminder_at or EPOCH)


@dataclass(slots=True, frozen=True)
class ContactRow:
    """Row produced by the startup summary query."""

    jid: str
    subscription: SubscriptionState
    last_message_at: datetime | None


@dataclass(slots=True, frozen=True)
class StatusMessage:
    jid: str
    received_at: datetime
    body: str


@dataclass(slots=True)
class ContactOverview:
    """One group of the overview page."""

    jid: str
    messages: list[StatusMessage] = field(default_factory=list)


@dataclass(slots=True, frozen=True)
class RosterEntry:
    """One identity reported by a roster snapshot."""

    jid: str
    subscription: SubscriptionState
