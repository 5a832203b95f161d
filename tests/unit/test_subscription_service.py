from unittest.mock import AsyncMock

import pytest

from whatsup.db.helpers import DatabaseError
from whatsup.models.domain.contact_domain import RosterEntry, SubscriptionState
from whatsup.services.contact_directory import ContactDirectory
from whatsup.services.subscription_service import SubscriptionService


@pytest.mark.asyncio
async def test_subscribe_request_is_approved_and_reciprocated(context, fake_channel):
    context.directory.set_state("alice@example.com", SubscriptionState.BOTH)
    context.directory.set_state("bob@example.com", SubscriptionState.BOTH)

    await SubscriptionService(context).handle_subscribe_request("carol@example.com")

    assert ("carol@example.com", "subscribed") in fake_channel.presences
    assert ("carol@example.com", "subscribe") in fake_channel.presences

    help_messages = fake_channel.messages_to("carol@example.com")
    assert len(help_messages) == 1
    assert "https://status.example.com/carol@example.com" in help_messages[0]

    assert fake_channel.messages_to("alice@example.com") == ["carol@example.com joined the team."]
    assert fake_channel.messages_to("bob@example.com") == ["carol@example.com joined the team."]


@pytest.mark.asyncio
async def test_subscribe_request_from_mutual_contact_does_not_ask_back(context, fake_channel):
    context.directory.set_state("alice@example.com", SubscriptionState.BOTH)

    await SubscriptionService(context).handle_subscribe_request("alice@example.com")

    assert fake_channel.presences == [("alice@example.com", "subscribed")]
    # No announcement to the requester about itself
    assert len(fake_channel.messages_to("alice@example.com")) == 1


@pytest.mark.asyncio
async def test_unsubscribe_removes_contact_but_keeps_history(context, fake_channel, fake_store, clock):
    context.directory.set_state("alice@example.com", SubscriptionState.BOTH)
    await fake_store.insert_message("alice@example.com", "writing docs", clock())

    await SubscriptionService(context).handle_unsubscribe("alice@example.com")

    assert "alice@example.com" not in context.directory
    assert fake_channel.removed == ["alice@example.com"]
    assert fake_store.contacts["alice@example.com"] is SubscriptionState.NONE
    assert len(await fake_store.query_history("alice@example.com")) == 1


@pytest.mark.asyncio
async def test_failed_roster_removal_still_marks_contact_unsubscribed(context, fake_channel, fake_store, monkeypatch):
    fake_store.contacts["alice@example.com"] = SubscriptionState.BOTH
    context.directory.set_state("alice@example.com", SubscriptionState.BOTH)
    monkeypatch.setattr(fake_channel, "remove_contact", AsyncMock(side_effect=TimeoutError()))

    with pytest.raises(TimeoutError):
        await SubscriptionService(context).handle_unsubscribe("alice@example.com")

    assert fake_store.contacts["alice@example.com"] is SubscriptionState.NONE
    assert "alice@example.com" not in context.directory

    # A restart must not bring the contact back as a team member
    reloaded = ContactDirectory()
    await reloaded.load(fake_store)
    assert not reloaded.is_subscribed("alice@example.com")


@pytest.mark.asyncio
async def test_store_failure_on_unsubscribe_leaves_roster_and_directory(context, fake_channel, fake_store):
    context.directory.set_state("alice@example.com", SubscriptionState.BOTH)
    fake_store.fail_on.add("upsert_contact")

    with pytest.raises(DatabaseError):
        await SubscriptionService(context).handle_unsubscribe("alice@example.com")

    assert context.directory.is_subscribed("alice@example.com")
    assert fake_channel.removed == []


@pytest.mark.asyncio
async def test_new_member_is_announced_to_mutual_contacts_only(context, fake_channel):
    context.directory.set_state("alice@example.com", SubscriptionState.BOTH)
    context.directory.set_state("dave@example.com", SubscriptionState.NONE)
    context.directory.set_state("erin@example.com", SubscriptionState.PENDING_OUT)
    context.directory.set_state("frank@example.com", SubscriptionState.PENDING_IN)

    await SubscriptionService(context).handle_subscribe_request("carol@example.com")

    assert fake_channel.messages_to("alice@example.com") == ["carol@example.com joined the team."]
    for outsider in ("dave@example.com", "erin@example.com", "frank@example.com"):
        assert fake_channel.messages_to(outsider) == []

@pytest.mark.asyncio
async def test_roster_snapshot_inserts_new_mutual_contacts_only(context, fake_store):
    writes = await SubscriptionService(context).reconcile_roster(
        [
            RosterEntry("alice@example.com", SubscriptionState.BOTH),
            RosterEntry("bob@example.com", SubscriptionState.PENDING_OUT),
        ]
    )

    assert writes == 1
    assert fake_store.upserts == [("alice@example.com", SubscriptionState.BOTH)]
    assert context.directory.is_subscribed("alice@example.com")
    assert context.directory.get("alice@example.com").last_activity_at is None
    assert "bob@example.com" not in context.directory


@pytest.mark.asyncio
async def test_roster_snapshot_updates_changed_state(context, fake_store):
    context.directory.set_state("alice@example.com", SubscriptionState.PENDING_OUT)

    await SubscriptionService(context).reconcile_roster(
        [RosterEntry("alice@example.com", SubscriptionState.BOTH)]
    )

    assert context.directory.state_of("alice@example.com") is SubscriptionState.BOTH
    assert fake_store.contacts["alice@example.com"] is SubscriptionState.BOTH


@pytest.mark.asyncio
async def test_replaying_roster_snapshot_writes_nothing(context, fake_store):
    service = SubscriptionService(context)
    snapshot = [
        RosterEntry("alice@example.com", SubscriptionState.BOTH),
        RosterEntry("bob@example.com", SubscriptionState.BOTH),
    ]

    assert await service.reconcile_roster(snapshot) == 2
    upserts_after_first = list(fake_store.upserts)

    assert await service.reconcile_roster(snapshot) == 0
    assert fake_store.upserts == upserts_after_first


@pytest.mark.asyncio
async def test_roster_snapshot_before_session_ready_is_ignored(context, fake_store):
    context.session_ready = False

    writes = await SubscriptionService(context).reconcile_roster(
        [RosterEntry("alice@example.com", SubscriptionState.BOTH)]
    )

    assert writes == 0
    assert fake_store.upserts == []


@pytest.mark.asyncio
async def test_roster_snapshot_skips_own_identity(context, fake_store):
    await SubscriptionService(context).reconcile_roster(
        [RosterEntry("bot@example.com", SubscriptionState.BOTH)]
    )

    assert fake_store.upserts == []


@pytest.mark.asyncio
async def test_store_failure_leaves_directory_unchanged(context, fake_store):
    fake_store.fail_on.add("upsert_contact")

    with pytest.raises(DatabaseError):
        await SubscriptionService(context).reconcile_roster(
            [RosterEntry("alice@example.com", SubscriptionState.BOTH)]
        )

    assert "alice@example.com" not in context.directory
