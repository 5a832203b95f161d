"""Outbound chat texts."""

REMINDER_TEXT = "What are you doing?"
ACK_TEXT = "OK"
INVITATION_SENT_TEXT = "Invitation sent"

HELP_TEMPLATE = (
    "Hi! Just tell me what you are working on whenever you start something new "
    "and I'll record it for the team.\n"
    "Commands:\n"
    "  help - show this message\n"
    "  invite user@example.com - invite a teammate\n"
    "Your updates: {url}\n"
    "Everyone's updates: {base_url}/"
)


def help_text(contact_url: str, base_url: str) -> str:
    return HELP_TEMPLATE.format(url=contact_url, base_url=base_url)


def new_member_text(jid: str) -> str:
    return f"{jid} joined the team."


def invalid_invite_text(reason: str) -> str:
    return f"Cannot invite: {reason}"


def store_error_text(error: Exception) -> str:
    return f"Error: {error}"
