"""
In-memory projection of the contacts table.

The directory is the single source of truth for subscription state and
activity bookkeeping while the process runs. It is rebuilt from the store's
summary query at startup; a failure there is fatal.
"""

from collections.abc import Iterator
from datetime import datetime

from whatsup.infrastructure.observability.logging import get_logger
from whatsup.models.domain.contact_domain import Contact, SubscriptionState
from whatsup.repositories.status_repository import StatusStore

logger = get_logger(__name__)


class DirectoryLoadError(RuntimeError):
    """Raised when the directory cannot be rebuilt from the store."""


class ContactDirectory:
    def __init__(self):
        self._contacts: dict[str, Contact] = {}

    def __len__(self) -> int:
        return len(self._contacts)

    def __contains__(self, jid: str) -> bool:
        return jid in self._contacts

    def __iter__(self) -> Iterator[Contact]:
        return iter(list(self._contacts.values()))

    async def load(self, store: StatusStore) -> None:
        """
        Replace the directory contents with the store's contact rows.

        Raises:
            DirectoryLoadError: If the summary query fails
        """
        try:
            rows = await store.load_contacts()
        except Exception as e:
            logger.error("Failed to load contact directory", error=str(e))
            raise DirectoryLoadError(f"Failed to load contacts: {e}") from e

        self._contacts = {
            row.jid: Contact(
                jid=row.jid,
                subscription=row.subscription,
                last_activity_at=row.last_message_at,
            )
            for row in rows
        }

        logger.info(
            "Contact directory loaded",
            contacts=len(self._contacts),
            subscribed=sum(1 for c in self._contacts.values() if c.is_subscribed),
        )

    def get(self, jid: str) -> Contact | None:
        return self._contacts.get(jid)

    def state_of(self, jid: str) -> SubscriptionState:
        contact = self._contacts.get(jid)
        return contact.subscription if contact else SubscriptionState.NONE

    def is_subscribed(self, jid: str) -> bool:
        return self.state_of(jid) is SubscriptionState.BOTH

    def ensure(self, jid: str, subscription: SubscriptionState = SubscriptionState.NONE) -> Contact:
        """Return the contact, creating it with the given state if unknown."""
        contact = self._contacts.get(jid)
        if contact is None:
            contact = Contact(jid=jid, subscription=subscription)
            self._contacts[jid] = contact
        return contact

    def set_state(self, jid: str, subscription: SubscriptionState) -> Contact:
        contact = self.ensure(jid, subscription)
        contact.subscription = subscription
        return contact

    def remove(self, jid: str) -> Contact | None:
        return self._contacts.pop(jid, None)

    def record_activity(self, jid: str, at: datetime) -> None:
        contact = self.ensure(jid)
        # Last-write-wins but never moves backwards
        if contact.last_activity_at is None or at > contact.last_activity_at:
            contact.last_activity_at = at

    def record_reminder(self, jid: str, at: datetime) -> None:
        contact = self._contacts.get(jid)
        if contact is None:
            return
        if contact.last_reminder_at is None or at > contact.last_reminder_at:
            contact.last_reminder_at = at

    def subscribed(self) -> list[Contact]:
        """Contacts eligible for reminders and the overview."""
        return [c for c in self._contacts.values() if c.is_subscribed]
