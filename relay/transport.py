"""Messaging transport: outbound sends and inbound webhook parsing."""

from __future__ import annotations

from collections.abc import Mapping

import requests

from .config import config
from .models import InboundMessage

logger = config.get_logger(__name__)

CHANNEL_PREFIX = "whatsapp:"
ELLIPSIS = "..."

PROVIDER_ERRORS = {
    63007: "No channel found for the From address; check the WhatsApp sender setup",
    21617: "Message body exceeds the provider's length limit",
    21211: "Invalid destination phone number",
    20003: "Authentication failed; check TWILIO_ACCOUNT_SID and TWILIO_AUTH_TOKEN",
    21608: "Destination number is not registered in the WhatsApp sandbox",
}


def with_channel_prefix(address: str) -> str:
    """Return the address with the ``whatsapp:`` channel prefix."""
    return address if address.startswith(CHANNEL_PREFIX) else CHANNEL_PREFIX + address


def strip_channel_prefix(address: str) -> str:
    return address.removeprefix(CHANNEL_PREFIX)


class MessagingTransport:
    """Base class for outbound messaging providers."""

    def send(self, to: str, body: str, from_: str | None = None) -> bool:
        """Send a text message.

        Returns:
            True if the provider accepted the message. Never raises.
        """
        raise NotImplementedError

    @staticmethod
    def parse_inbound(form: Mapping[str, str]) -> InboundMessage | None:
        """Parse a provider webhook form into an inbound message.

        Returns:
            The parsed message, or None when sender or body is missing.
        """
        sender = (form.get("From") or "").strip()
        body = (form.get("Body") or "").strip()
        if not sender or not body:
            return None
        return InboundMessage(
            from_=sender,
            body=body,
            provider_number=form.get("To") or None,
            profile_name=form.get("ProfileName") or None,
        )


class TwilioTransport(MessagingTransport):
    """Sends WhatsApp messages through the Twilio REST API."""

    def __init__(
        self,
        account_sid: str | None = None,
        auth_token: str | None = None,
        default_from: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        max_chars: int | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.account_sid = account_sid or config.get_twilio_account_sid()
        self.auth_token = auth_token or config.get_twilio_auth_token()
        self.default_from = default_from or config.TWILIO_PHONE_NUMBER
        self.base_url = (base_url or config.TWILIO_API_BASE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else config.SEND_TIMEOUT
        self.max_chars = max_chars or config.OUTBOUND_MAX_CHARS
        self.session = session or requests.Session()

    @property
    def configured(self) -> bool:
        return bool(self.account_sid and self.auth_token)

    @property
    def messages_url(self) -> str:
        return f"{self.base_url}/Accounts/{self.account_sid}/Messages.json"

    def prepare_body(self, body: str) -> str:
        if len(body) > self.max_chars:
            logger.warning(
                "Outbound message too long (%d chars), truncating", len(body)
            )
            return body[: self.max_chars] + ELLIPSIS
        return body

    def _log_provider_error(self, status_code: int, payload: dict) -> None:
        code = payload.get("code")
        hint = PROVIDER_ERRORS.get(code)
        logger.error(
            "Twilio rejected message (HTTP %s, code %s): %s",
            status_code,
            code,
            payload.get("message", ""),
        )
        if hint:
            logger.error(hint)

    def send(self, to: str, body: str, from_: str | None = None) -> bool:
        if not self.configured:
            logger.error("Twilio credentials missing, message to %s not sent", to)
            return False

        sender = from_ or self.default_from
        if not sender:
            logger.error("No sender number configured, message to %s not sent", to)
            return False

        data = {
            "To": with_channel_prefix(to),
            "From": with_channel_prefix(sender),
            "Body": self.prepare_body(body),
        }
        logger.info("Sending message from %s to %s", data["From"], data["To"])

        try:
            resp = self.session.post(
                self.messages_url,
                data=data,
                auth=(self.account_sid, self.auth_token),
                timeout=self.timeout,
            )
        except requests.RequestException:
            logger.exception("Error sending message to %s", to)
            return False

        if resp.status_code >= 400:
            try:
                payload = resp.json()
            except ValueError:
                payload = None
            if not isinstance(payload, dict):
                payload = {"message": resp.text[:500] if resp.text else "no body"}
            self._log_provider_error(resp.status_code, payload)
            return False

        logger.info("Message sent to %s", data["To"])
        return True
