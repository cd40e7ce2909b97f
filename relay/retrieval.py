"""Per-owner context retrieval for grounding replies."""

from __future__ import annotations

import sqlite3
from typing import TYPE_CHECKING

from .config import config
from .embeddings import EmbeddingService, EmbeddingUnavailable
from .models import DocumentChunk, normalize_owner_id

if TYPE_CHECKING:
    from .vector_store import BaseSQLiteStore

logger = config.get_logger(__name__)

CONTEXT_HEADER = "=== Relevant Document Sections ==="


class ContextRetriever:
    """Finds an owner's most relevant passages and formats them as context."""

    def __init__(
        self,
        embedding_service: EmbeddingService,
        vector_store: BaseSQLiteStore,
    ) -> None:
        self.embedding_service = embedding_service
        self.vector_store = vector_store

    @staticmethod
    def format_context(results: list[tuple[DocumentChunk, float]]) -> str:
        """Render retrieved chunks as one labeled context block.

        Returns:
            The blocks in descending-score order, or an empty string.
        """
        if not results:
            return ""

        ordered = sorted(results, key=lambda item: item[1], reverse=True)
        blocks = [
            (
                f"[Context {i + 1}] (Similarity: {score:.4f})\n"
                f"Source: {chunk.source} (page {chunk.page})\n"
                f"Content: {chunk.content}"
            )
            for i, (chunk, score) in enumerate(ordered)
        ]
        return CONTEXT_HEADER + "\n\n" + "\n\n".join(blocks)

    def retrieve(
        self,
        query: str,
        owner_id: str,
        k: int = 3,
    ) -> list[tuple[DocumentChunk, float]]:
        """Return the owner's top-k passages for a query.

        Embedding or index failures degrade to an empty result.
        """
        owner = normalize_owner_id(owner_id)
        try:
            query_vector = self.embedding_service.embed(query)
        except EmbeddingUnavailable as e:
            logger.warning("Query embedding failed, continuing without context: %s", e)
            return []

        try:
            results = self.vector_store.search(query_vector, owner, k)
        except (sqlite3.Error, OSError, ValueError, RuntimeError):
            logger.exception("Vector search failed for %s", owner)
            return []

        if results:
            logger.info(
                "Retrieved %d passages for %s (best score %.4f)",
                len(results),
                owner,
                results[0][1],
            )
        else:
            logger.info("No passages found for %s", owner)
        return results

    def retrieve_context(self, query: str, owner_id: str, k: int = 3) -> str:
        """Return formatted grounding context, possibly empty."""
        return self.format_context(self.retrieve(query, owner_id, k))
