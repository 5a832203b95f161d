"""
Inbound chat handling.

Each message is classified, in order, as a ``help`` command, an
``invite <jid>`` command, or a status update. Only status updates are
persisted, and only they can fail on I/O.
"""

import re
from enum import Enum

from whatsup.db.helpers import DatabaseError
from whatsup.infrastructure.observability.logging import get_logger
from whatsup.models.domain.contact_domain import SubscriptionState
from whatsup.services import replies
from whatsup.services.context import ServiceContext
from whatsup.utils.jid import InvalidJID, is_user_jid, normalize_jid

logger = get_logger(__name__)

HELP_PATTERN = re.compile(r"^\s*[/!]?help[\W\d_]*$", re.IGNORECASE)
INVITE_PATTERN = re.compile(r"^\s*[/!]?invite\s+(\S+)\s*$", re.IGNORECASE)


class IngestionOutcome(str, Enum):
    DISCARDED = "discarded"
    HELP = "help"
    INVITED = "invited"
    INVITE_REJECTED = "invite_rejected"
    STORED = "stored"
    STORE_FAILED = "store_failed"


class InviteValidationError(ValueError):
    """Raised for invite targets that cannot be invited."""


class FatalStoreError(RuntimeError):
    """Raised when a store failure must stop the process."""


class IngestionService:
    def __init__(self, context: ServiceContext):
        self.context = context

    def _admitted(self, jid: str) -> bool:
        if self.context.settings.ADMISSION_POLICY == "strict":
            return self.context.directory.is_subscribed(jid)
        return True

    async def handle_message(self, jid: str, body: str | None, message_type: str = "chat") -> IngestionOutcome:
        """
        Process one inbound message from ``jid``.

        Raises:
            FatalStoreError: If the store fails and STORE_ERROR_POLICY is "fatal"
        """
        if message_type != "chat" or not body or not body.strip():
            return IngestionOutcome.DISCARDED

        if not self._admitted(jid):
            logger.debug("Message from unsubscribed sender discarded", jid=jid)
            return IngestionOutcome.DISCARDED

        if HELP_PATTERN.match(body):
            settings = self.context.settings
            self._reply(jid, replies.help_text(settings.contact_url(jid), settings.base_url()))
            return IngestionOutcome.HELP

        invite = INVITE_PATTERN.match(body)
        if invite:
            return self._handle_invite(jid, invite.group(1))

        return await self._record_status(jid, body)

    def _reply(self, jid: str, text: str) -> None:
        self.context.require_channel().send_message(jid, text)

    def validate_invite_target(self, raw_target: str) -> str:
        """
        Normalize an invite target.

        Raises:
            InviteValidationError: If the target is malformed or is the bot itself
        """
        if "@" not in raw_target:
            raise InviteValidationError(f"{raw_target} is not an address like user@example.com")
        try:
            target = normalize_jid(raw_target)
        except InvalidJID as e:
            raise InviteValidationError(f"{raw_target} is not a valid address") from e
        if not is_user_jid(target):
            raise InviteValidationError(f"{raw_target} is not an address like user@example.com")
        if target == self.context.own_jid:
            raise InviteValidationError("that is my own address")
        return target

    def _handle_invite(self, jid: str, raw_target: str) -> IngestionOutcome:
        try:
            target = self.validate_invite_target(raw_target)
        except InviteValidationError as e:
            logger.info("Invite rejected", jid=jid, target=raw_target, reason=str(e))
            self._reply(jid, replies.invalid_invite_text(str(e)))
            return IngestionOutcome.INVITE_REJECTED

        self._reply(jid, replies.INVITATION_SENT_TEXT)

        directory = self.context.directory
        if directory.state_of(target) is SubscriptionState.NONE:
            self.context.require_channel().send_presence(target, "subscribe")
            directory.set_state(target, SubscriptionState.PENDING_OUT)
            logger.info("Invitation sent", jid=jid, target=target)
        else:
            logger.info(
                "Invite target already on roster",
                jid=jid,
                target=target,
                subscription=directory.state_of(target).value,
            )
        return IngestionOutcome.INVITED

    async def _record_status(self, jid: str, body: str) -> IngestionOutcome:
        now = self.context.now()
        self.context.directory.record_activity(jid, now)

        try:
            await self.context.store.insert_message(jid, body, now)
        except DatabaseError as e:
            logger.error("Failed to store status message", jid=jid, error=str(e))
            if self.context.settings.STORE_ERROR_POLICY == "fatal":
                self.context.request_shutdown(f"store error: {e}")
                raise FatalStoreError(str(e)) from e
            self._reply(jid, replies.store_error_text(e))
            return IngestionOutcome.STORE_FAILED

        self._reply(jid, replies.ACK_TEXT)
        logger.info("Status recorded", jid=jid, length=len(body))
        return IngestionOutcome.STORED
