"""
Domain subpackage: contacts, subscription states and status messages.
"""

from .contact_domain import (
    EPOCH,
    Contact,
    ContactOverview,
    ContactRow,
    DayType,
    RosterEntry,
    StatusMessage,
    SubscriptionState,
)

__all__ = [
    "EPOCH",
    "Contact",
    "ContactOverview",
    "ContactRow",
    "DayType",
    "RosterEntry",
    "StatusMessage",
    "SubscriptionState",
]
