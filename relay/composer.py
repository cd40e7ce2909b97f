"""Reply composition: grounding, prompting and length enforcement."""

from __future__ import annotations

from typing import TYPE_CHECKING

from .completion import CompletionService, CompletionTimeout
from .config import config

if TYPE_CHECKING:
    from .retrieval import ContextRetriever

logger = config.get_logger(__name__)

ELLIPSIS = "..."
EMPTY_REPLY = (
    "I'm sorry, I couldn't come up with an answer. Can I help you with anything else?"
)
TIMEOUT_REPLY = (
    "I'm sorry, generating the answer took too long. Please try again in a moment."
)
ERROR_REPLY = (
    "I'm sorry, something went wrong while generating the answer. "
    "Can I help you with anything else?"
)


class ReplyComposer:
    """Builds a bounded prompt, asks the model and returns a displayable reply.

    ``compose_reply`` never raises: every failure resolves to a fixed string.
    """

    def __init__(
        self,
        completion_service: CompletionService | None,
        retriever: ContextRetriever | None = None,
        max_reply_chars: int | None = None,
        top_k: int | None = None,
    ) -> None:
        """Initialize the composer.

        Args:
            completion_service: Language-model collaborator; None means the
                model is not configured and every reply is an apology.
            retriever: Context retriever; None disables grounding.
            max_reply_chars: Reply cap. If None, uses config.REPLY_MAX_CHARS.
            top_k: Passages to retrieve. If None, uses config.RETRIEVAL_TOP_K.
        """
        self.completion_service = completion_service
        self.retriever = retriever
        self.max_reply_chars = max_reply_chars or config.REPLY_MAX_CHARS
        self.top_k = top_k or config.RETRIEVAL_TOP_K

    def build_prompt(self, user_message: str, context: str = "") -> str:
        """Assemble the final prompt: context block, message, length rule.

        Returns:
            The prompt sent to the language model.
        """
        parts: list[str] = []
        if context:
            parts.append(
                "Answer the message below using the document sections when they "
                "are relevant. If the answer is not in the documents, say so "
                "briefly and answer from general knowledge.\n\n" + context
            )
        parts.append(f"Message: {user_message}")
        parts.append(
            f"Limit your reply to a maximum of {self.max_reply_chars} characters."
        )
        return "\n\n".join(parts)

    def _context_for(self, user_message: str, owner_id: str | None) -> str:
        if not owner_id or self.retriever is None:
            return ""
        try:
            return self.retriever.retrieve_context(user_message, owner_id, self.top_k)
        except Exception:
            logger.exception("Context retrieval failed; replying without context")
            return ""

    def finalize(self, text: str | None) -> str:
        """Apply the empty-reply fallback and the length cap.

        Returns:
            A non-empty reply of at most ``max_reply_chars`` characters plus
            the ellipsis marker.
        """
        if not text or not text.strip():
            logger.warning("Empty completion, using fallback reply")
            return EMPTY_REPLY
        text = text.strip()
        if len(text) > self.max_reply_chars:
            logger.info("Reply truncated to %d characters", self.max_reply_chars)
            return text[: self.max_reply_chars] + ELLIPSIS
        return text

    def compose_reply(self, user_message: str, owner_id: str | None = None) -> str:
        """Generate the reply to an inbound message.

        Returns:
            The reply text, an apology, or a fallback; never raises.
        """
        if self.completion_service is None:
            logger.warning("Language model not configured, sending apology")
            return ERROR_REPLY

        context = self._context_for(user_message, owner_id)
        prompt = self.build_prompt(user_message, context)
        logger.info(
            "Composing reply (%d chars, context=%s)", len(user_message), bool(context)
        )

        try:
            text = self.completion_service.complete(
                prompt, max_output_chars=self.max_reply_chars
            )
        except CompletionTimeout:
            logger.exception("Completion timed out")
            return TIMEOUT_REPLY
        except Exception:
            logger.exception("Completion failed")
            return ERROR_REPLY

        return self.finalize(text)
