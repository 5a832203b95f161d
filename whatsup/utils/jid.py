"""
Helpers for turning XMPP addresses into directory keys.

Contacts are keyed by their bare JID, lower-cased, so that
``Alice@Example.com/phone`` and ``alice@example.com`` are the same contact.
"""

from slixmpp.jid import JID, InvalidJID

__all__ = ["InvalidJID", "normalize_jid", "is_user_jid"]


def normalize_jid(value: str | JID) -> str:
    """
    Return the lower-cased bare form of an address.

    Raises:
        InvalidJID: If the value is not a syntactically valid JID
    """
    if isinstance(value, JID):
        return value.bare.lower()
    return JID(value.strip()).bare.lower()


def is_user_jid(value: str) -> bool:
    """True for ``local@domain`` addresses; bare domains are not contacts."""
    local, sep, domain = value.partition("@")
    return bool(sep and local and domain)
