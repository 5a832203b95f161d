"""
Subscription lifecycle: reacts to presence subscription events and roster
snapshots, keeping the contact directory and the contacts table in step.

Roster reconciliation only applies the net state reported by the server.
Individual subscription events missed while the process was offline are not
replayed.
"""

from collections.abc import Iterable

from whatsup.infrastructure.observability.logging import get_logger
from whatsup.models.domain.contact_domain import RosterEntry, SubscriptionState
from whatsup.services import replies
from whatsup.services.context import ServiceContext

logger = get_logger(__name__)


class SubscriptionService:
    def __init__(self, context: ServiceContext):
        self.context = context

    async def handle_subscribe_request(self, jid: str) -> None:
        """Approve the request, ask back if needed, greet and announce."""
        channel = self.context.require_channel()
        directory = self.context.directory
        settings = self.context.settings

        channel.send_presence(jid, "subscribed")
        if not directory.is_subscribed(jid):
            channel.send_presence(jid, "subscribe")

        channel.send_message(jid, replies.help_text(settings.contact_url(jid), settings.base_url()))

        announced = 0
        for member in directory.subscribed():
            if member.jid == jid:
                continue
            channel.send_message(member.jid, replies.new_member_text(jid))
            announced += 1

        logger.info("Subscription request approved", jid=jid, announced_to=announced)

    async def handle_unsubscribe(self, jid: str) -> None:
        """
        Drop the contact from the store, directory and roster; history stays.

        The store is written first; a store failure leaves the directory and
        the roster untouched.
        """
        contact = self.context.directory.get(jid)
        if contact is not None and contact.subscription is not SubscriptionState.NONE:
            await self.context.store.upsert_contact(jid, SubscriptionState.NONE)

        self.context.directory.remove(jid)
        await self.context.require_channel().remove_contact(jid)

        logger.info("Contact unsubscribed", jid=jid, was_known=contact is not None)

    async def reconcile_roster(self, entries: Iterable[RosterEntry]) -> int:
        """
        Apply a roster snapshot to the directory and the store.

        Returns:
            Number of store writes performed
        """
        if not self.context.session_ready:
            logger.debug("Ignoring roster snapshot before session is ready")
            return 0

        directory = self.context.directory
        own_jid = self.context.own_jid
        writes = 0

        for entry in entries:
            if entry.jid == own_jid:
                continue

            contact = directory.get(entry.jid)
            if contact is None:
                if entry.subscription is not SubscriptionState.BOTH:
                    continue
                await self.context.store.upsert_contact(entry.jid, SubscriptionState.BOTH)
                directory.set_state(entry.jid, SubscriptionState.BOTH)
                writes += 1
                logger.info("Contact added from roster", jid=entry.jid)
            elif contact.subscription is not entry.subscription:
                await self.context.store.upsert_contact(entry.jid, entry.subscription)
                previous = contact.subscription
                contact.subscription = entry.subscription
                writes += 1
                logger.info(
                    "Contact subscription changed",
                    jid=entry.jid,
                    previous=previous.value,
                    current=entry.subscription.value,
                )

        if writes:
            logger.info("Roster reconciled", writes=writes, contacts=len(directory))
        return writes
