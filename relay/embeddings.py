"""OpenAI embeddings service."""

import numpy as np
from openai import OpenAI, OpenAIError

from .config import config

logger = config.get_logger(__name__)


class EmbeddingUnavailable(RuntimeError):
    """Raised when a text segment cannot be embedded."""


class EmbeddingService:
    """Turns text into fixed-length vectors through the OpenAI embeddings API."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        dimension: int | None = None,
        timeout: float | None = None,
        client: OpenAI | None = None,
    ) -> None:
        """Initialize the EmbeddingService with OpenAI API key and model.

        Args:
            api_key: OpenAI API key. If None,
                reads from OPENAI_API_KEY environment variable.
            model: Embedding model name. If None, uses config.EMBEDDING_MODEL.
            dimension: Expected vector length. If None, uses
                config.EMBEDDING_DIMENSION.
            timeout: Seconds to wait for the provider. If None, uses
                config.EMBEDDING_TIMEOUT.
            client: Preconfigured OpenAI client, mainly for tests.
        """
        self.model = model or config.EMBEDDING_MODEL
        self.dimension = dimension or config.EMBEDDING_DIMENSION
        self.timeout = timeout if timeout is not None else config.EMBEDDING_TIMEOUT
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

    def embed(self, text: str) -> np.ndarray:
        """Get the embedding for a single text.

        Args:
            text: The input text to generate an embedding for.

        Returns:
            np.ndarray: A float32 vector of length ``self.dimension``.

        Raises:
            EmbeddingUnavailable: If the text is blank, the provider fails or
                times out, or the payload is not a vector of the right size.
        """
        if not text or not text.strip():
            msg = "Cannot embed empty text"
            raise EmbeddingUnavailable(msg)

        try:
            response = self.client.embeddings.create(
                model=self.model,
                input=text,
                dimensions=self.dimension,
            )
            values = response.data[0].embedding
        except OpenAIError as e:
            logger.warning("Embedding provider error: %s", e)
            msg = f"Embedding provider error: {e}"
            raise EmbeddingUnavailable(msg) from e
        except (AttributeError, IndexError, TypeError) as e:
            logger.warning("Malformed embedding payload: %s", e)
            msg = "Malformed embedding payload"
            raise EmbeddingUnavailable(msg) from e

        try:
            embedding = np.asarray(values, dtype="float32")
        except (TypeError, ValueError) as e:
            msg = "Malformed embedding payload"
            raise EmbeddingUnavailable(msg) from e

        if embedding.ndim != 1 or embedding.shape[0] != self.dimension:
            msg = (
                f"Embedding has shape {embedding.shape}, "
                f"expected ({self.dimension},)"
            )
            logger.warning(msg)
            raise EmbeddingUnavailable(msg)

        logger.debug("Generated embedding for %d characters", len(text))
        return embedding
