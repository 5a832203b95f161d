"""
Service context shared by every component.

Built once in the application lifespan, in this order: database pool,
contact directory, presence channel, reminder scheduler. Nothing in the
services reads module-level state; everything comes through this object.
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Protocol

from whatsup.config import Settings
from whatsup.infrastructure.observability.logging import get_logger
from whatsup.repositories.status_repository import StatusStore
from whatsup.services.contact_directory import ContactDirectory
from whatsup.utils.jid import normalize_jid

logger = get_logger(__name__)


class PresenceChannel(Protocol):
    """Outbound side of the messaging channel, addressed by bare JID."""

    def send_message(self, jid: str, body: str) -> None: ...

    def send_presence(self, jid: str, presence_type: str) -> None: ...

    async def remove_contact(self, jid: str) -> None: ...


def utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass
class ServiceContext:
    settings: Settings
    store: StatusStore
    directory: ContactDirectory = field(default_factory=ContactDirectory)
    channel: PresenceChannel | None = None
    clock: Callable[[], datetime] = utc_now
    session_ready: bool = False
    shutdown_reason: str | None = None
    shutdown_event: asyncio.Event = field(default_factory=asyncio.Event)

    @property
    def own_jid(self) -> str:
        return normalize_jid(self.settings.XMPP_JID)

    def now(self) -> datetime:
        return self.clock()

    def require_channel(self) -> PresenceChannel:
        if self.channel is None:
            raise RuntimeError("Presence channel not attached to service context")
        return self.channel

    def request_shutdown(self, reason: str) -> None:
        """Ask the process to stop; the first reason wins."""
        if self.shutdown_event.is_set():
            return
        logger.error("Shutdown requested", reason=reason)
        self.shutdown_reason = reason
        self.shutdown_event.set()
