"""
slixmpp client that carries the presence channel.

`XmppClient` translates stanzas into calls on the subscription and ingestion
services; `XmppPresenceChannel` is the outbound PresenceChannel the services
talk to. Subscription handling is manual (auto-authorize and auto-subscribe
are off) so every request goes through SubscriptionService.
"""

import slixmpp

from whatsup.infrastructure.observability.logging import get_logger
from whatsup.models.domain.contact_domain import RosterEntry, SubscriptionState
from whatsup.services.context import ServiceContext
from whatsup.services.ingestion_service import FatalStoreError, IngestionService
from whatsup.services.subscription_service import SubscriptionService
from whatsup.utils.jid import normalize_jid

logger = get_logger(__name__)


def roster_state(subscription: str, pending_out: bool = False) -> SubscriptionState:
    """Map an RFC 6121 roster item onto a SubscriptionState."""
    if subscription == "both":
        return SubscriptionState.BOTH
    if subscription == "from":
        # They see us; our own request is still outstanding
        return SubscriptionState.PENDING_OUT
    if subscription == "to":
        return SubscriptionState.PENDING_IN
    if pending_out:
        return SubscriptionState.PENDING_OUT
    return SubscriptionState.NONE


class XmppPresenceChannel:
    """Outbound messages and subscription responses."""

    def __init__(self, client: slixmpp.ClientXMPP):
        self.client = client

    def send_message(self, jid: str, body: str) -> None:
        self.client.send_message(mto=jid, mbody=body, mtype="chat")

    def send_presence(self, jid: str, presence_type: str) -> None:
        self.client.send_presence(pto=jid, ptype=presence_type)

    async def remove_contact(self, jid: str) -> None:
        await self.client.del_roster_item(jid)


class XmppClient(slixmpp.ClientXMPP):
    def __init__(
        self,
        context: ServiceContext,
        subscriptions: SubscriptionService,
        ingestion: IngestionService,
    ):
        settings = context.settings
        super().__init__(settings.XMPP_JID, settings.XMPP_PASSWORD)

        self.context = context
        self.subscriptions = subscriptions
        self.ingestion = ingestion

        self.auto_authorize = None
        self.auto_subscribe = False

        self.add_event_handler("session_start", self.on_session_start)
        self.add_event_handler("roster_update", self.on_roster_update)
        self.add_event_handler("presence_subscribe", self.on_presence_subscribe)
        self.add_event_handler("presence_unsubscribe", self.on_presence_unsubscribe)
        self.add_event_handler("message", self.on_message)
        self.add_event_handler("failed_auth", self.on_failed_auth)
        self.add_event_handler("connection_failed", self.on_connection_failed)
        self.add_event_handler("disconnected", self.on_disconnected)

    def start(self) -> None:
        settings = self.context.settings
        logger.info("Connecting to XMPP server", jid=settings.XMPP_JID, host=settings.XMPP_HOST)
        if settings.XMPP_HOST:
            self.connect(host=settings.XMPP_HOST, port=settings.XMPP_PORT)
        else:
            self.connect()

    def roster_snapshot(self) -> list[RosterEntry]:
        roster = self.client_roster
        entries = []
        for raw_jid in roster:
            item = roster[raw_jid]
            entries.append(
                RosterEntry(
                    jid=normalize_jid(raw_jid),
                    subscription=roster_state(item["subscription"], bool(item["pending_out"])),
                )
            )
        return entries

    async def on_session_start(self, event) -> None:
        await self.get_roster()
        self.send_presence()

        self.context.session_ready = True
        logger.info("XMPP session started", jid=self.boundjid.bare)

        await self._reconcile()

    async def on_roster_update(self, iq) -> None:
        if self.context.session_ready:
            await self._reconcile()

    async def _reconcile(self) -> None:
        try:
            await self.subscriptions.reconcile_roster(self.roster_snapshot())
        except Exception as e:
            logger.error("Roster reconciliation failed", error=str(e))

    async def on_presence_subscribe(self, presence) -> None:
        jid = normalize_jid(presence["from"])
        try:
            await self.subscriptions.handle_subscribe_request(jid)
        except Exception as e:
            logger.error("Failed to handle subscription request", jid=jid, error=str(e))

    async def on_presence_unsubscribe(self, presence) -> None:
        jid = normalize_jid(presence["from"])
        try:
            await self.subscriptions.handle_unsubscribe(jid)
        except Exception as e:
            logger.error("Failed to handle unsubscribe", jid=jid, error=str(e))

    async def on_message(self, msg) -> None:
        jid = normalize_jid(msg["from"])
        try:
            await self.ingestion.handle_message(jid, msg["body"], msg["type"])
        except FatalStoreError:
            self.disconnect()

    def on_failed_auth(self, event) -> None:
        self.context.request_shutdown("XMPP authentication failed")

    def on_connection_failed(self, event) -> None:
        self.context.request_shutdown("XMPP connection failed")

    def on_disconnected(self, event) -> None:
        self.context.session_ready = False
        self.context.request_shutdown("XMPP connection lost")
