"""FAISS-backed vector storage with SQLite metadata, one index per owner."""

from __future__ import annotations

import hashlib
import threading
from pathlib import Path
from typing import TYPE_CHECKING

import faiss
import numpy as np

from relay.config import config
from relay.models import normalize_owner_id
from relay.vector_store.base import BaseSQLiteStore

if TYPE_CHECKING:
    from relay.models import DocumentChunk

logger = config.get_logger(__name__)


class FaissVectorStore(BaseSQLiteStore):
    """Vector storage using FAISS for embeddings and SQLite for metadata.

    Each owner gets its own ``IndexIDMap`` over an inner-product index of
    L2-normalized vectors (cosine similarity), persisted as its own file, so
    a search can only ever touch the requesting owner's vectors.
    """

    backend = "faiss"

    def __init__(
        self,
        db_path: Path = Path("data/vector_store.db"),
        index_dir: Path = Path("data/faiss"),
        **kwargs,
    ) -> None:
        """Configure FAISS-backed vector store."""
        self.index_dir = Path(index_dir)
        self.index_dir.mkdir(exist_ok=True, parents=True)
        self.indexes: dict[str, faiss.IndexIDMap] = {}
        self._lock = threading.RLock()

        super().__init__(db_path, **kwargs)

    @staticmethod
    def _normalize_embedding(embedding: np.ndarray) -> np.ndarray:
        """Normalize embedding for cosine similarity using inner product search.

        Returns:
            Normalized embedding vector.
        """
        vector = np.array(embedding, dtype="float32").reshape(1, -1)
        norm = np.linalg.norm(vector)
        if norm == 0:
            return vector
        faiss.normalize_L2(vector)
        return vector

    def index_path(self, owner_id: str) -> Path:
        """Return the index file for an owner."""
        digest = hashlib.sha256(owner_id.encode("utf-8")).hexdigest()[:24]
        return self.index_dir / f"{self.collection}-{digest}.faiss"

    def _init_index(self) -> faiss.IndexIDMap:
        """Create an empty ID-mapped inner-product index."""
        return faiss.IndexIDMap(faiss.IndexFlatIP(self.dimension))

    def _get_index(self, owner_id: str, *, create: bool = False) -> faiss.IndexIDMap | None:
        """Return the owner's index, loading it from disk on first use."""
        with self._lock:
            index = self.indexes.get(owner_id)
            if index is not None:
                return index

            path = self.index_path(owner_id)
            if path.exists():
                index = faiss.read_index(str(path))
                if not isinstance(index, (faiss.IndexIDMap, faiss.IndexIDMap2)):
                    logger.warning(
                        "Loaded FAISS index is %s; wrapping with IndexIDMap",
                        type(index).__name__,
                    )
                    index = faiss.IndexIDMap(index)
                logger.info(
                    "Loaded FAISS index for %s with %d vectors", owner_id, index.ntotal
                )
            elif create:
                index = self._init_index()
                logger.info(
                    "Initialized FAISS index for %s with dimension %d",
                    owner_id,
                    self.dimension,
                )
            else:
                return None

            if index.d != self.dimension:
                msg = (
                    f"FAISS index dimension {index.d} does not match "
                    f"collection dimension {self.dimension}"
                )
                raise ValueError(msg)
            self.indexes[owner_id] = index
            return index

    def _write_batch(self, batch: list[DocumentChunk]) -> None:
        """Insert one batch of chunks into metadata and the owners' indexes.

        Raises:
            ValueError: If an embedding is missing or has the wrong size.
        """
        vectors = [self._normalize_embedding(self._validated_embedding(c)) for c in batch]

        with self._lock, self._connect() as conn:
            cursor = conn.cursor()
            by_owner: dict[str, tuple[list[np.ndarray], list[int]]] = {}
            for chunk, vector in zip(batch, vectors, strict=True):
                vector_id = self._insert_chunk_row(cursor, chunk)
                owner_vectors, owner_ids = by_owner.setdefault(chunk.owner_id, ([], []))
                owner_vectors.append(vector)
                owner_ids.append(vector_id)

            added: list[tuple[faiss.IndexIDMap, np.ndarray]] = []
            try:
                for owner_id, (owner_vectors, owner_ids) in by_owner.items():
                    index = self._get_index(owner_id, create=True)
                    ids_array = np.asarray(owner_ids, dtype="int64")
                    index.add_with_ids(np.vstack(owner_vectors), ids_array)  # pyright: ignore[reportCallIssue]
                    added.append((index, ids_array))
                    faiss.write_index(index, str(self.index_path(owner_id)))
            except (RuntimeError, OSError):
                for index, ids_array in added:
                    index.remove_ids(ids_array)
                raise

            conn.commit()

    def search(
        self,
        query_vector: np.ndarray,
        owner_id: str,
        limit: int = 5,
    ) -> list[tuple[DocumentChunk, float]]:
        """Search the owner's chunks by cosine similarity.

        Returns:
            Ranked list of (DocumentChunk, score) tuples, best first.
        """
        owner = normalize_owner_id(owner_id)
        if limit <= 0:
            return []

        index = self._get_index(owner)
        if index is None or index.ntotal == 0:
            logger.info("No FAISS index for %s; returning no results", owner)
            return []

        query = self._normalize_embedding(query_vector)
        if query.shape[1] != self.dimension:
            msg = (
                f"Query dimension {query.shape[1]} does not match "
                f"collection dimension {self.dimension}"
            )
            raise ValueError(msg)

        top_k = min(limit, index.ntotal)
        with self._lock:
            scores, vector_ids = index.search(query, top_k)  # pyright: ignore[reportCallIssue]

        scored = [
            (int(vector_id), float(score))
            for score, vector_id in zip(scores[0], vector_ids[0], strict=True)
            if int(vector_id) != -1  # faiss returns -1 for empty slots
        ]
        return self._rank(owner, scored, limit)

    def _drop_owner_vectors(self, owner_id: str, chunks: list[DocumentChunk]) -> None:
        with self._lock:
            self.indexes.pop(owner_id, None)
            path = self.index_path(owner_id)
            if path.exists():
                path.unlink()
                logger.info("Removed FAISS index %s", path)
