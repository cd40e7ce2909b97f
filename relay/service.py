"""Inbound message handling and operator sends."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from typing import TYPE_CHECKING

from .config import config
from .models import RESPONSE_MODE_MANUAL, InboundMessage

if TYPE_CHECKING:
    from .composer import ReplyComposer
    from .conversation import ConversationStore
    from .settings import SettingsStore
    from .transport import MessagingTransport

logger = config.get_logger(__name__)

THINKING_NOTICE = "I'm thinking about your answer, give me a few seconds..."
POST_NOTICE_PAUSE = 1.5

STATUS_SENT = "sent"
STATUS_FAILED = "failed"


class RelayService:
    """Ties the conversation store, composer and transport together."""

    def __init__(
        self,
        store: ConversationStore,
        settings: SettingsStore,
        composer: ReplyComposer,
        transport: MessagingTransport,
        thinking_delay: float | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.store = store
        self.settings = settings
        self.composer = composer
        self.transport = transport
        self.thinking_delay = (
            thinking_delay if thinking_delay is not None else config.THINKING_NOTICE_DELAY
        )
        self.sleep = sleep

    def _compose_with_notice(self, inbound: InboundMessage) -> str:
        notice_sent = threading.Event()

        def send_notice() -> None:
            logger.info("Reply for %s is slow, sending interim notice", inbound.from_)
            if self.transport.send(
                inbound.from_, THINKING_NOTICE, from_=inbound.provider_number
            ):
                notice_sent.set()

        timer = threading.Timer(self.thinking_delay, send_notice)
        timer.daemon = True
        timer.start()
        try:
            reply = self.composer.compose_reply(inbound.body, owner_id=inbound.from_)
        finally:
            timer.cancel()

        if timer.is_alive():
            # The notice is being sent right now; let it finish first.
            timer.join()
        if notice_sent.is_set():
            self.sleep(POST_NOTICE_PAUSE)
        return reply

    def handle_inbound(self, inbound: InboundMessage) -> str | None:
        """Record an inbound message, produce a reply and send it.

        Returns:
            The reply text, or None when the message was empty.
        """
        if not inbound.body.strip():
            logger.info("Ignoring empty message from %s", inbound.from_)
            return None

        logger.info("Message received from %s", inbound.from_)
        self.store.append_inbound(
            inbound.from_,
            inbound.body,
            name=inbound.profile_name,
            provider_number=inbound.provider_number,
        )

        app_settings = self.settings.get()
        if app_settings.response_mode == RESPONSE_MODE_MANUAL:
            logger.info("Manual mode, sending default response to %s", inbound.from_)
            reply = app_settings.default_response
        else:
            reply = self._compose_with_notice(inbound)

        delivered = self.transport.send(
            inbound.from_, reply, from_=inbound.provider_number
        )
        if delivered:
            logger.info("Reply sent to %s", inbound.from_)
        else:
            logger.error("Reply to %s was not delivered", inbound.from_)

        self.store.append_outbound(
            inbound.from_,
            reply,
            status=STATUS_SENT if delivered else STATUS_FAILED,
        )
        return reply

    def send_operator_message(self, phone: str, message: str) -> bool:
        """Send a free-form operator message and record it.

        Returns:
            True if the transport accepted the message.

        Raises:
            ValueError: If phone or message is empty.
        """
        if not phone or not phone.strip():
            msg = "Phone number is required"
            raise ValueError(msg)
        if not message or not message.strip():
            msg = "Message is required"
            raise ValueError(msg)

        conversation = self.store.get(phone)
        sender = conversation.provider_number if conversation is not None else None
        delivered = self.transport.send(phone, message, from_=sender)
        self.store.append_outbound(
            phone,
            message,
            automatic=False,
            status=STATUS_SENT if delivered else STATUS_FAILED,
        )
        logger.info("Operator message to %s delivered=%s", phone, delivered)
        return delivered
