"""
Read-side queries behind the HTTP pages.

Pure reads: nothing here mutates the directory or the store.
"""

from itertools import groupby

from whatsup.infrastructure.observability.logging import get_logger
from whatsup.models.domain.contact_domain import ContactOverview, StatusMessage
from whatsup.repositories.status_repository import OVERVIEW_PER_CONTACT, OVERVIEW_TRAILING_DAYS
from whatsup.services.context import ServiceContext

logger = get_logger(__name__)


class ContactNotFoundError(LookupError):
    """Raised when a jid has neither a directory entry nor any history."""

    def __init__(self, jid: str):
        super().__init__(f"Unknown contact: {jid}")
        self.jid = jid


class ReadModelService:
    def __init__(self, context: ServiceContext):
        self.context = context

    async def overview(self) -> list[ContactOverview]:
        """Recent messages of subscribed contacts, grouped by jid."""
        rows = await self.context.store.query_overview(
            self.context.now(),
            trailing_days=OVERVIEW_TRAILING_DAYS,
            per_contact=OVERVIEW_PER_CONTACT,
        )

        directory = self.context.directory
        ordered = sorted(rows, key=lambda m: (m.jid, -m.received_at.timestamp()))

        groups = []
        for jid, messages in groupby(ordered, key=lambda m: m.jid):
            if not directory.is_subscribed(jid):
                continue
            groups.append(ContactOverview(jid=jid, messages=list(messages)[:OVERVIEW_PER_CONTACT]))
        return groups

    async def history(self, jid: str) -> list[StatusMessage]:
        """
        Every message of one contact, newest first.

        Raises:
            ContactNotFoundError: If the contact is unknown and has no history
        """
        messages = await self.context.store.query_history(jid)
        if not messages and jid not in self.context.directory:
            raise ContactNotFoundError(jid)
        return sorted(messages, key=lambda m: m.received_at, reverse=True)
