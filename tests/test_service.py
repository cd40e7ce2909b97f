"""Tests for inbound handling and operator sends."""

import time
from unittest.mock import Mock, create_autospec

import pytest

from relay import ReplyComposer
from relay.models import RESPONSE_MODE_MANUAL, InboundMessage
from relay.service import POST_NOTICE_PAUSE, THINKING_NOTICE, RelayService


@pytest.fixture
def composer():
    composer = create_autospec(ReplyComposer, instance=True)
    composer.compose_reply.return_value = "Here is your answer"
    return composer


@pytest.fixture
def pause():
    return Mock()


@pytest.fixture
def service(conversation_store, settings_store, composer, fake_transport, pause):
    return RelayService(
        conversation_store,
        settings_store,
        composer,
        fake_transport,
        thinking_delay=5,
        sleep=pause,
    )


@pytest.fixture
def inbound(constants):
    return InboundMessage(
        from_=constants.OWNER,
        body="When do you open?",
        provider_number=constants.PROVIDER_NUMBER,
        profile_name="Mario",
    )


def test_auto_reply_is_grounded_on_sender(service, composer, inbound, constants):
    reply = service.handle_inbound(inbound)

    assert reply == "Here is your answer"
    composer.compose_reply.assert_called_once_with(
        "When do you open?", owner_id=constants.OWNER
    )


def test_reply_sent_from_provider_number_and_recorded(
    service, inbound, fake_transport, conversation_store, constants
):
    service.handle_inbound(inbound)

    assert fake_transport.sent == [
        (constants.OWNER, "Here is your answer", constants.PROVIDER_NUMBER)
    ]
    conversation = conversation_store.get(constants.OWNER)
    assert [m.content for m in conversation.messages] == [
        "When do you open?",
        "Here is your answer",
    ]
    assert conversation.last_message.status == "sent"
    assert conversation.last_message.automatic is False
    assert conversation.name == "Mario"


def test_manual_mode_uses_default_response(
    service, settings_store, composer, inbound, fake_transport
):
    settings_store.update(response_mode=RESPONSE_MODE_MANUAL, default_response="Soon!")

    reply = service.handle_inbound(inbound)

    assert reply == "Soon!"
    composer.compose_reply.assert_not_called()
    assert fake_transport.sent[0][1] == "Soon!"


def test_undelivered_reply_is_recorded_as_failed(
    conversation_store, settings_store, composer, transport_factory, inbound, constants
):
    service = RelayService(
        conversation_store, settings_store, composer, transport_factory(result=False)
    )

    service.handle_inbound(inbound)

    assert conversation_store.get(constants.OWNER).last_message.status == "failed"


def test_empty_message_is_ignored(service, fake_transport, conversation_store, constants):
    inbound = InboundMessage(from_=constants.OWNER, body="  ")

    assert service.handle_inbound(inbound) is None
    assert fake_transport.sent == []
    assert conversation_store.get(constants.OWNER) is None


def test_fast_reply_sends_no_thinking_notice(service, inbound, fake_transport, pause):
    service.handle_inbound(inbound)

    assert THINKING_NOTICE not in [body for _, body, _ in fake_transport.sent]
    pause.assert_not_called()


def test_slow_reply_sends_thinking_notice_first(
    service, composer, inbound, fake_transport, pause, constants
):
    def slow_reply(*args, **kwargs):
        time.sleep(0.3)
        return "Slow answer"

    composer.compose_reply.side_effect = slow_reply
    service.thinking_delay = 0.05

    service.handle_inbound(inbound)

    assert fake_transport.sent == [
        (constants.OWNER, THINKING_NOTICE, constants.PROVIDER_NUMBER),
        (constants.OWNER, "Slow answer", constants.PROVIDER_NUMBER),
    ]
    pause.assert_called_once_with(POST_NOTICE_PAUSE)


def test_operator_message_is_sent_and_recorded(
    service, fake_transport, conversation_store, constants
):
    conversation_store.append_inbound(
        constants.OWNER, "Hi", provider_number=constants.PROVIDER_NUMBER
    )
    before = conversation_store.get(constants.OWNER).last_activity

    assert service.send_operator_message(constants.OWNER, "An operator here") is True

    assert fake_transport.sent == [
        (constants.OWNER, "An operator here", constants.PROVIDER_NUMBER)
    ]
    conversation = conversation_store.get(constants.OWNER)
    assert conversation.last_message.content == "An operator here"
    assert conversation.last_message.automatic is False
    assert conversation.last_activity == before


def test_operator_message_creates_missing_conversation(
    service, conversation_store, fake_transport, constants
):
    service.send_operator_message(constants.OTHER_OWNER, "Hello from the shop")

    assert conversation_store.get(constants.OTHER_OWNER) is not None
    assert fake_transport.sent[0][2] is None


@pytest.mark.parametrize(("phone", "message"), [("", "Hi"), ("+39", "  ")])
def test_operator_message_requires_phone_and_text(service, phone, message):
    with pytest.raises(ValueError, match="required"):
        service.send_operator_message(phone, message)
