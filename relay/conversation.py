"""Conversation store: durable, append-only message history per remote party."""

from __future__ import annotations

import datetime
import json
import os
import threading
from collections.abc import Callable
from pathlib import Path
from typing import TypeVar

from .config import config
from .models import (
    DIRECTION_RECEIVED,
    DIRECTION_SENT,
    Conversation,
    Message,
    utc_now,
)

logger = config.get_logger(__name__)

T = TypeVar("T")

Clock = Callable[[], datetime.datetime]


class ConversationStore:
    """Owns every conversation and persists the whole table after each change.

    All access goes through one re-entrant lock; each mutation is an atomic
    read-modify-write-persist step. A failed write is logged and the
    in-memory change is kept.
    """

    def __init__(self, path: Path | None = None, clock: Clock = utc_now) -> None:
        """Initialize the store and load existing conversations.

        Args:
            path: JSON file holding the table. If None, uses
                config.CONVERSATIONS_PATH.
            clock: Source of the current time.
        """
        self.path = Path(path) if path is not None else config.CONVERSATIONS_PATH
        self.clock = clock
        self._conversations: dict[str, Conversation] = {}
        self._lock = threading.RLock()
        self.load()

    def load(self) -> None:
        """Load conversations from disk; a missing or broken file means empty."""
        with self._lock:
            self._conversations = {}
            if not self.path.exists():
                logger.info("No conversation file at %s, starting empty", self.path)
                return
            try:
                with self.path.open(encoding="utf-8") as file:
                    raw = json.load(file)
                self._conversations = {
                    remote_id: Conversation.from_dict(remote_id, data)
                    for remote_id, data in raw.items()
                }
            except (OSError, ValueError, KeyError, TypeError):
                logger.exception("Error loading conversations from %s", self.path)
                self._conversations = {}
            else:
                logger.info("Loaded %d conversations", len(self._conversations))

    def _persist(self) -> bool:
        """Write the whole table atomically.

        Returns:
            True when the file was written.
        """
        payload = {
            remote_id: conversation.to_dict()
            for remote_id, conversation in self._conversations.items()
        }
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(exist_ok=True, parents=True)
            with tmp_path.open("w", encoding="utf-8") as file:
                json.dump(payload, file, indent=2, ensure_ascii=False)
            os.replace(tmp_path, self.path)
        except (OSError, TypeError, ValueError):
            logger.exception("Error saving conversations to %s", self.path)
            return False
        logger.debug("Saved %d conversations", len(payload))
        return True

    def get(self, remote_id: str) -> Conversation | None:
        with self._lock:
            return self._conversations.get(remote_id)

    def ids(self) -> list[str]:
        with self._lock:
            return list(self._conversations)

    def list_conversations(self) -> list[Conversation]:
        """Return conversations, most recently active first."""
        with self._lock:
            return sorted(
                self._conversations.values(),
                key=lambda conversation: conversation.last_activity,
                reverse=True,
            )

    def _create(
        self,
        remote_id: str,
        now: datetime.datetime,
        name: str | None = None,
        provider_number: str | None = None,
    ) -> Conversation:
        conversation = Conversation(
            remote_id=remote_id,
            created_at=now,
            last_activity=now,
            name=name,
            provider_number=provider_number,
        )
        self._conversations[remote_id] = conversation
        logger.info("Created conversation for %s", remote_id)
        return conversation

    def append_inbound(
        self,
        remote_id: str,
        text: str,
        *,
        name: str | None = None,
        provider_number: str | None = None,
    ) -> Conversation:
        """Record a received message and reactivate the conversation.

        Returns:
            The updated conversation.
        """
        with self._lock:
            now = self.clock()
            conversation = self._conversations.get(remote_id) or self._create(
                remote_id, now, name, provider_number
            )
            conversation.messages.append(
                Message(
                    direction=DIRECTION_RECEIVED,
                    content=text,
                    timestamp=now.isoformat(),
                )
            )
            conversation.touch(now)
            if name:
                conversation.name = name
            if provider_number:
                conversation.provider_number = provider_number
            conversation.inactivity_warning_sent = False
            conversation.inactivity_warning_sent_at = None
            conversation.closed = False
            conversation.closed_at = None
            self._persist()
            return conversation

    def append_outbound(
        self,
        remote_id: str,
        text: str,
        *,
        automatic: bool = False,
        status: str | None = None,
    ) -> Conversation:
        """Record a sent message; idle tracking is left untouched.

        Returns:
            The updated conversation, created if it did not exist yet.
        """
        with self._lock:
            now = self.clock()
            conversation = self._conversations.get(remote_id) or self._create(
                remote_id, now
            )
            conversation.messages.append(
                Message(
                    direction=DIRECTION_SENT,
                    content=text,
                    timestamp=now.isoformat(),
                    status=status,
                    automatic=automatic,
                )
            )
            self._persist()
            return conversation

    def mutate(
        self,
        remote_id: str,
        change: Callable[[Conversation], T],
    ) -> T | None:
        """Apply ``change`` to a conversation atomically and persist if truthy.

        Returns:
            The value returned by ``change``, or None for an unknown id.
        """
        with self._lock:
            conversation = self._conversations.get(remote_id)
            if conversation is None:
                return None
            result = change(conversation)
            if result:
                self._persist()
            return result
