"""Data models for the relay application."""

from __future__ import annotations

import datetime
import re
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any

import numpy as np

OWNER_ID_PATTERN = re.compile(r"[^a-zA-Z0-9+:\-]")

DIRECTION_RECEIVED = "received"
DIRECTION_SENT = "sent"

RESPONSE_MODE_AUTO = "auto"
RESPONSE_MODE_MANUAL = "manual"
RESPONSE_MODES = frozenset({RESPONSE_MODE_AUTO, RESPONSE_MODE_MANUAL})

DEFAULT_RESPONSE = "Thanks for your message! An operator will reply shortly."


def normalize_owner_id(owner_id: str) -> str:
    """Map a raw owner identifier onto the restricted index character set.

    Returns:
        The identifier with every character outside ``[a-zA-Z0-9+:-]``
        replaced by an underscore.
    """
    return OWNER_ID_PATTERN.sub("_", owner_id)


def utc_now() -> datetime.datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.datetime.now(tz=datetime.UTC)


def to_timestamp(value: datetime.datetime | None) -> str | None:
    """Serialize a datetime to ISO-8601, passing None through."""
    return value.isoformat() if value is not None else None


def from_timestamp(value: str | None) -> datetime.datetime | None:
    """Parse an ISO-8601 timestamp; naive values are treated as UTC."""
    if not value:
        return None
    parsed = datetime.datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=datetime.UTC)
    return parsed


@dataclass
class DocumentChunk:
    """A chunk of one document page, scoped to a single owner."""

    owner_id: str
    source: str
    page: int
    chunk_index: int
    content: str
    embedding: np.ndarray | None = None
    created_at: str = field(default_factory=lambda: utc_now().isoformat())
    vector_id: int | None = None

    def metadata(self) -> dict[str, Any]:
        """Return the chunk's payload without its vector."""
        return {
            "owner_id": self.owner_id,
            "source": self.source,
            "page": self.page,
            "chunk_index": self.chunk_index,
            "created_at": self.created_at,
            "vector_id": self.vector_id,
        }


@dataclass
class PageText:
    """Text extracted from a single document page (1-based page number)."""

    page_number: int
    text: str


@dataclass
class IngestionResult:
    """Outcome of ingesting one uploaded document."""

    success: bool
    message: str
    chunk_count: int = 0
    file_name: str | None = None
    failed_count: int = 0
    total_count: int = 0


@dataclass(frozen=True)
class Message:
    """A single received or sent message; immutable once created."""

    direction: str
    content: str
    timestamp: str
    status: str | None = None
    automatic: bool = False

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        if self.status is None:
            data.pop("status")
        if not self.automatic:
            data.pop("automatic")
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Message:
        return cls(
            direction=data["direction"],
            content=data.get("content", ""),
            timestamp=data["timestamp"],
            status=data.get("status"),
            automatic=bool(data.get("automatic", False)),
        )


class ConversationState(Enum):
    """Lifecycle states of a conversation."""

    ACTIVE = "active"
    IDLE_WARNED = "idle_warned"
    CLOSED = "closed"


@dataclass
class Conversation:
    """All messages exchanged with one remote party."""

    remote_id: str
    created_at: datetime.datetime
    last_activity: datetime.datetime
    name: str | None = None
    provider_number: str | None = None
    messages: list[Message] = field(default_factory=list)
    inactivity_warning_sent: bool = False
    inactivity_warning_sent_at: datetime.datetime | None = None
    closed: bool = False
    closed_at: datetime.datetime | None = None

    @property
    def state(self) -> ConversationState:
        if self.closed:
            return ConversationState.CLOSED
        if self.inactivity_warning_sent:
            return ConversationState.IDLE_WARNED
        return ConversationState.ACTIVE

    @property
    def last_message(self) -> Message | None:
        return self.messages[-1] if self.messages else None

    @property
    def has_inbound(self) -> bool:
        """Whether the remote party has ever written to us."""
        return any(m.direction == DIRECTION_RECEIVED for m in self.messages)

    def touch(self, now: datetime.datetime) -> None:
        """Advance last activity without ever moving it backwards."""
        self.last_activity = max(self.last_activity, now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "phone": self.remote_id,
            "name": self.name,
            "providerNumber": self.provider_number,
            "messages": [message.to_dict() for message in self.messages],
            "createdAt": to_timestamp(self.created_at),
            "lastActivity": to_timestamp(self.last_activity),
            "inactivityMessageSent": self.inactivity_warning_sent,
            "inactivityMessageSentAt": to_timestamp(self.inactivity_warning_sent_at),
            "closed": self.closed,
            "closedAt": to_timestamp(self.closed_at),
        }

    @classmethod
    def from_dict(cls, remote_id: str, data: dict[str, Any]) -> Conversation:
        messages = [Message.from_dict(item) for item in data.get("messages", [])]
        last_activity = from_timestamp(data.get("lastActivity"))
        if last_activity is None:
            # Records created by an operator send may lack activity timestamps.
            last_activity = (
                from_timestamp(messages[-1].timestamp) if messages else utc_now()
            )
        created_at = from_timestamp(data.get("createdAt")) or last_activity
        return cls(
            remote_id=data.get("phone") or remote_id,
            name=data.get("name"),
            provider_number=data.get("providerNumber"),
            messages=messages,
            created_at=created_at,
            last_activity=last_activity,
            inactivity_warning_sent=bool(data.get("inactivityMessageSent", False)),
            inactivity_warning_sent_at=from_timestamp(
                data.get("inactivityMessageSentAt")
            ),
            closed=bool(data.get("closed", False)),
            closed_at=from_timestamp(data.get("closedAt")),
        )


@dataclass
class AppSettings:
    """Process-wide reply settings edited by operators."""

    response_mode: str = RESPONSE_MODE_AUTO
    default_response: str = DEFAULT_RESPONSE

    def to_dict(self) -> dict[str, str]:
        return {
            "responseMode": self.response_mode,
            "defaultResponse": self.default_response,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AppSettings:
        defaults = cls()
        mode = data.get("responseMode", defaults.response_mode)
        if mode not in RESPONSE_MODES:
            mode = defaults.response_mode
        return cls(
            response_mode=mode,
            default_response=data.get("defaultResponse", defaults.default_response),
        )


@dataclass
class InboundMessage:
    """A parsed inbound provider event."""

    from_: str
    body: str
    provider_number: str | None = None
    profile_name: str | None = None
