"""Tests for the idle/closing lifecycle sweep."""

import datetime
import json
import time

import pytest

from relay import ConversationStore, LifecycleManager
from relay.lifecycle import CLOSING_NOTICE, IDLE_NOTICE
from relay.models import ConversationState


@pytest.fixture
def manager(conversation_store, fake_transport, clock, constants):
    return LifecycleManager(
        conversation_store,
        fake_transport,
        inactivity_limit=constants.INACTIVITY_LIMIT,
        sweep_interval=60,
        clock=clock,
        sender_number=constants.PROVIDER_NUMBER,
    )


def test_idle_conversation_is_warned_once(
    manager, conversation_store, fake_transport, clock, constants
):
    conversation_store.append_inbound(constants.OWNER, "Hello")
    clock.advance(minutes=16)

    first = manager.sweep()
    second = manager.sweep()

    assert first.warned == [constants.OWNER]
    assert second.warned == []
    assert second.closed == []
    assert fake_transport.sent == [
        (constants.OWNER, IDLE_NOTICE, constants.PROVIDER_NUMBER)
    ]
    conversation = conversation_store.get(constants.OWNER)
    assert conversation.inactivity_warning_sent is True
    assert conversation.last_message.automatic is True
    assert conversation.last_message.content == IDLE_NOTICE


def test_recent_conversation_is_left_alone(manager, conversation_store, clock, constants):
    conversation_store.append_inbound(constants.OWNER, "Hello")
    clock.advance(minutes=14)

    report = manager.sweep()

    assert report.warned == []
    assert manager.state_of(constants.OWNER) is ConversationState.ACTIVE


def test_inbound_after_warning_reactivates(
    manager, conversation_store, fake_transport, clock, constants
):
    conversation_store.append_inbound(constants.OWNER, "Hello")
    clock.advance(minutes=16)
    manager.sweep()

    conversation_store.append_inbound(constants.OWNER, "Still here")
    clock.advance(minutes=20)
    report = manager.sweep()

    assert report.closed == []
    assert report.warned == [constants.OWNER]
    conversation = conversation_store.get(constants.OWNER)
    assert conversation.closed is False
    assert [body for _, body, _ in fake_transport.sent] == [IDLE_NOTICE, IDLE_NOTICE]


def test_warned_conversation_closes_after_limit(
    manager, conversation_store, fake_transport, clock, constants
):
    conversation_store.append_inbound(constants.OWNER, "Hello")
    clock.advance(minutes=16)
    manager.sweep()
    warned_at = clock.now

    clock.advance(minutes=14)
    assert manager.sweep().closed == []

    clock.advance(minutes=1)
    report = manager.sweep()

    assert report.closed == [constants.OWNER]
    conversation = conversation_store.get(constants.OWNER)
    assert conversation.closed is True
    assert conversation.closed_at == warned_at + datetime.timedelta(minutes=15)
    assert conversation.state is ConversationState.CLOSED
    assert fake_transport.sent[-1][1] == CLOSING_NOTICE
    assert conversation.last_message.automatic is True


def test_closed_conversation_is_not_notified_again(
    manager, conversation_store, fake_transport, clock, constants
):
    conversation_store.append_inbound(constants.OWNER, "Hello")
    clock.advance(minutes=16)
    manager.sweep()
    clock.advance(minutes=15)
    manager.sweep()
    sent = len(fake_transport.sent)

    clock.advance(hours=3)
    report = manager.sweep()

    assert report.warned == report.closed == []
    assert len(fake_transport.sent) == sent


def test_pending_close_survives_restart(
    tmp_path, fake_transport, clock, constants
):
    path = tmp_path / "conversations.json"
    store = ConversationStore(path, clock=clock)
    store.append_inbound(constants.OWNER, "Hello")
    clock.advance(minutes=16)
    LifecycleManager(
        store, fake_transport, inactivity_limit=constants.INACTIVITY_LIMIT, clock=clock
    ).sweep()

    clock.advance(minutes=15)
    restarted_store = ConversationStore(path, clock=clock)
    restarted = LifecycleManager(
        restarted_store,
        fake_transport,
        inactivity_limit=constants.INACTIVITY_LIMIT,
        clock=clock,
    )

    assert restarted.sweep().closed == [constants.OWNER]


def test_close_deadline_without_warning_timestamp(tmp_path, fake_transport, clock, constants):
    path = tmp_path / "conversations.json"
    last_activity = clock.now - datetime.timedelta(minutes=29)
    path.write_text(
        json.dumps(
            {
                constants.OWNER: {
                    "phone": constants.OWNER,
                    "messages": [],
                    "lastActivity": last_activity.isoformat(),
                    "inactivityMessageSent": True,
                    "closed": False,
                }
            }
        ),
        encoding="utf-8",
    )
    store = ConversationStore(path, clock=clock)
    manager = LifecycleManager(
        store, fake_transport, inactivity_limit=constants.INACTIVITY_LIMIT, clock=clock
    )

    assert manager.sweep().closed == []
    clock.advance(minutes=1)
    assert manager.sweep().closed == [constants.OWNER]


def test_failed_notice_is_recorded_as_failed(
    conversation_store, transport_factory, clock, constants
):
    manager = LifecycleManager(
        conversation_store,
        transport_factory(result=False),
        inactivity_limit=constants.INACTIVITY_LIMIT,
        clock=clock,
    )
    conversation_store.append_inbound(constants.OWNER, "Hello")
    clock.advance(minutes=16)

    manager.sweep()

    conversation = conversation_store.get(constants.OWNER)
    assert conversation.inactivity_warning_sent is True
    assert conversation.last_message.status == "failed"


def test_notice_uses_conversation_provider_number(
    manager, conversation_store, fake_transport, clock, constants
):
    conversation_store.append_inbound(
        constants.OWNER, "Hello", provider_number="whatsapp:+15550001111"
    )
    clock.advance(minutes=16)

    manager.sweep()

    assert fake_transport.sent[0][2] == "whatsapp:+15550001111"


def test_state_of_unknown_conversation(manager):
    assert manager.state_of("nobody") is None


def test_background_sweep_start_stop(conversation_store, fake_transport, clock, constants):
    manager = LifecycleManager(
        conversation_store,
        fake_transport,
        inactivity_limit=constants.INACTIVITY_LIMIT,
        sweep_interval=0.01,
        clock=clock,
    )
    conversation_store.append_inbound(constants.OWNER, "Hello")
    clock.advance(minutes=16)

    manager.start()
    try:
        for _ in range(200):
            if fake_transport.sent:
                break
            time.sleep(0.01)
    finally:
        manager.stop()

    assert fake_transport.sent[0][1] == IDLE_NOTICE


def test_operator_only_conversation_is_never_warned(
    manager, conversation_store, fake_transport, clock, constants
):
    conversation_store.append_outbound(constants.OTHER_OWNER, "Hello from the shop")
    clock.advance(minutes=16)

    report = manager.sweep()
    clock.advance(hours=1)
    later = manager.sweep()

    assert report.warned == later.warned == []
    assert later.closed == []
    assert fake_transport.sent == []
    assert manager.state_of(constants.OTHER_OWNER) is ConversationState.ACTIVE


def test_inbound_between_claim_and_notice_drops_notice(
    manager, conversation_store, fake_transport, clock, constants, monkeypatch
):
    conversation_store.append_inbound(constants.OWNER, "Hello")
    clock.advance(minutes=16)
    claim = conversation_store.mutate

    def claim_then_reply(remote_id, change):
        result = claim(remote_id, change)
        if result:
            conversation_store.append_inbound(remote_id, "Sorry, I'm back")
        return result

    monkeypatch.setattr(conversation_store, "mutate", claim_then_reply)

    report = manager.sweep()

    assert report.warned == []
    assert fake_transport.sent == []
    conversation = conversation_store.get(constants.OWNER)
    assert conversation.state is ConversationState.ACTIVE
    assert conversation.last_message.content == "Sorry, I'm back"
