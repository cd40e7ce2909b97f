"""Language-model completion through the OpenAI chat API."""

from openai import APITimeoutError, OpenAI, OpenAIError

from .config import config

logger = config.get_logger(__name__)


class CompletionError(RuntimeError):
    """Raised when the language model does not produce a completion."""


class CompletionTimeout(CompletionError):
    """Raised when the language model does not answer in time."""


class CompletionService:
    """Thin wrapper over chat completions with a bounded wait."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        timeout: float | None = None,
        client: OpenAI | None = None,
    ) -> None:
        """Initialize the completion client.

        Args:
            api_key: OpenAI API key. If None, reads OPENAI_API_KEY.
            model: Chat model name. If None, uses config.CHAT_MODEL.
            timeout: Seconds to wait for an answer. If None, uses
                config.COMPLETION_TIMEOUT.
            client: Preconfigured OpenAI client, mainly for tests.
        """
        self.model = model or config.CHAT_MODEL
        self.timeout = timeout if timeout is not None else config.COMPLETION_TIMEOUT
        if client is None:
            default_headers = config.get_api_headers()
            client = OpenAI(
                api_key=api_key or config.get_openai_api_key(),
                base_url=config.OPENAI_BASE_URL,
                default_headers=default_headers or None,
                timeout=self.timeout,
                max_retries=0,
            )
        self.client = client

    def complete(self, prompt: str, max_output_chars: int | None = None) -> str:
        """Generate a completion for a prompt.

        ``max_output_chars`` is advisory; the caller enforces the final cap.

        Returns:
            The completion text, possibly empty.

        Raises:
            CompletionTimeout: If the provider does not answer in time.
            CompletionError: On any other provider failure.
        """
        max_tokens = config.CHAT_MAX_TOKENS
        if max_output_chars is not None:
            # Roughly four characters per token, with headroom.
            max_tokens = max(max_tokens, max_output_chars // 3)

        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                max_tokens=max_tokens,
                temperature=config.CHAT_TEMPERATURE,
            )
        except APITimeoutError as e:
            msg = f"Completion timed out after {self.timeout}s"
            raise CompletionTimeout(msg) from e
        except OpenAIError as e:
            msg = f"Completion failed: {e}"
            raise CompletionError(msg) from e

        try:
            content = response.choices[0].message.content
        except (AttributeError, IndexError) as e:
            msg = "Malformed completion payload"
            raise CompletionError(msg) from e
        return content or ""
