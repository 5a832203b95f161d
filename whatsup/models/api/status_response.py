"""
Status API response models.
Used by the JSON variants of the overview and detail pages.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from whatsup.models.domain.contact_domain import ContactOverview, StatusMessage


class StatusMessageResponse(BaseModel):
    """A single recorded status update."""

    received_at: datetime = Field(..., description="Time the service received the message")
    body: str = Field(..., description="Free-text status")

    @classmethod
    def from_domain(cls, message: StatusMessage) -> "StatusMessageResponse":
        return cls(received_at=message.received_at, body=message.body)


class ContactStatusResponse(BaseModel):
    """Messages of one contact, newest first."""

    jid: str = Field(..., description="Bare XMPP address of the contact")
    messages: list[StatusMessageResponse] = Field(default_factory=list)


class OverviewResponse(BaseModel):
    """Recent updates of every subscribed contact."""

    contacts: list[ContactStatusResponse] = Field(default_factory=list)

    @classmethod
    def from_domain(cls, groups: list[ContactOverview]) -> "OverviewResponse":
        return cls(
            contacts=[
                ContactStatusResponse(
                    jid=group.jid,
                    messages=[StatusMessageResponse.from_domain(m) for m in group.messages],
                )
                for group in groups
            ]
        )
