"""Idle/closing state machine driven by a recurring sweep."""

from __future__ import annotations

import datetime
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .config import config
from .models import Conversation, ConversationState, utc_now

if TYPE_CHECKING:
    from .conversation import ConversationStore
    from .transport import MessagingTransport

logger = config.get_logger(__name__)

IDLE_NOTICE = (
    "Are you still there? This conversation will be closed soon if there is "
    "no further activity."
)
CLOSING_NOTICE = (
    "This conversation has been closed due to inactivity. "
    "Send a new message any time to start again."
)

STATUS_SENT = "sent"
STATUS_FAILED = "failed"


@dataclass
class SweepReport:
    """Remote ids that changed state during one sweep."""

    warned: list[str] = field(default_factory=list)
    closed: list[str] = field(default_factory=list)


class LifecycleManager:
    """Moves conversations Active -> IdleWarned -> Closed.

    Every transition is computed from persisted timestamps, so pending
    deadlines survive a restart. A transition is claimed in the store
    (state re-validated and persisted) before its notice goes out.
    """

    def __init__(
        self,
        store: ConversationStore,
        transport: MessagingTransport | None,
        inactivity_limit: float | None = None,
        sweep_interval: float | None = None,
        clock: Callable[[], datetime.datetime] = utc_now,
        sender_number: str | None = None,
    ) -> None:
        """Initialize the manager.

        Args:
            store: Conversation store owning all conversation state.
            transport: Messaging transport; None records notices without sending.
            inactivity_limit: Seconds of silence before the idle notice, and
                again before closing. If None, uses config.INACTIVITY_LIMIT_SECONDS.
            sweep_interval: Seconds between sweeps. If None, uses
                config.SWEEP_INTERVAL_SECONDS.
            clock: Source of the current time.
            sender_number: Fallback "from" number for notices.
        """
        self.store = store
        self.transport = transport
        self.inactivity_limit = datetime.timedelta(
            seconds=inactivity_limit
            if inactivity_limit is not None
            else config.INACTIVITY_LIMIT_SECONDS
        )
        self.sweep_interval = (
            sweep_interval if sweep_interval is not None else config.SWEEP_INTERVAL_SECONDS
        )
        self.clock = clock
        self.sender_number = sender_number or config.TWILIO_PHONE_NUMBER
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    def close_deadline(self, conversation: Conversation) -> datetime.datetime:
        """Return when a warned conversation should be closed."""
        if conversation.inactivity_warning_sent_at is not None:
            return conversation.inactivity_warning_sent_at + self.inactivity_limit
        return conversation.last_activity + 2 * self.inactivity_limit

    def state_of(self, remote_id: str) -> ConversationState | None:
        conversation = self.store.get(remote_id)
        return conversation.state if conversation is not None else None

    def _claim_warning(self, now: datetime.datetime) -> Callable[[Conversation], bool]:
        def claim(conversation: Conversation) -> bool:
            if conversation.closed or conversation.inactivity_warning_sent:
                return False
            # Idle tracking starts with the first inbound message.
            if not conversation.has_inbound:
                return False
            if now - conversation.last_activity < self.inactivity_limit:
                return False
            conversation.inactivity_warning_sent = True
            conversation.inactivity_warning_sent_at = now
            return True

        return claim

    def _claim_close(self, now: datetime.datetime) -> Callable[[Conversation], bool]:
        def claim(conversation: Conversation) -> bool:
            if conversation.closed or not conversation.inactivity_warning_sent:
                return False
            if now < self.close_deadline(conversation):
                return False
            conversation.closed = True
            conversation.closed_at = now
            return True

        return claim

    def _notify(
        self, remote_id: str, text: str, expected: ConversationState
    ) -> bool:
        """Send a lifecycle notice unless the conversation moved on meanwhile.

        Returns:
            True if the notice was sent or recorded, False if it was dropped
            because the conversation is no longer in ``expected``.
        """
        conversation = self.store.get(remote_id)
        if conversation is None or conversation.state is not expected:
            logger.info("Dropping stale notice for %s", remote_id)
            return False
        sender = conversation.provider_number or self.sender_number
        delivered = False
        if self.transport is not None:
            delivered = self.transport.send(remote_id, text, from_=sender)
        self.store.append_outbound(
            remote_id,
            text,
            automatic=True,
            status=STATUS_SENT if delivered else STATUS_FAILED,
        )
        return True

    def sweep(self, now: datetime.datetime | None = None) -> SweepReport:
        """Run one pass over every conversation.

        Returns:
            The ids warned and closed in this pass.
        """
        now = now or self.clock()
        report = SweepReport()

        for remote_id in self.store.ids():
            if self.store.mutate(remote_id, self._claim_close(now)):
                logger.info("Closing inactive conversation %s", remote_id)
                if self._notify(remote_id, CLOSING_NOTICE, ConversationState.CLOSED):
                    report.closed.append(remote_id)
            elif self.store.mutate(remote_id, self._claim_warning(now)):
                logger.info("Sending inactivity notice to %s", remote_id)
                if self._notify(
                    remote_id, IDLE_NOTICE, ConversationState.IDLE_WARNED
                ):
                    report.warned.append(remote_id)

        if report.warned or report.closed:
            logger.info(
                "Sweep finished: %d warned, %d closed",
                len(report.warned),
                len(report.closed),
            )
        return report

    def _run(self) -> None:
        while not self._stop_event.wait(self.sweep_interval):
            try:
                self.sweep()
            except Exception:
                logger.exception("Inactivity sweep failed")

    def start(self) -> None:
        """Start sweeping on a background thread."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run, name="lifecycle-sweep", daemon=True
        )
        self._thread.start()
        logger.info("Lifecycle sweep started (every %ss)", self.sweep_interval)

    def stop(self, timeout: float | None = 5.0) -> None:
        """Stop the background sweep and wait for it to exit."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Lifecycle sweep stopped")
