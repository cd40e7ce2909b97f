"""SQLite-based vector storage with numpy file backend."""

from __future__ import annotations

import threading
from pathlib import Path

import numpy as np

from relay.config import config
from relay.models import DocumentChunk, normalize_owner_id
from relay.vector_store.base import BaseSQLiteStore

logger = config.get_logger(__name__)


class SQLiteVectorStore(BaseSQLiteStore):
    """Vector storage using SQLite for metadata and numpy files for embeddings."""

    backend = "sqlite"

    def __init__(
        self,
        db_path: Path = Path("data/vector_store.db"),
        vectors_dir: Path = Path("data/vectors"),
        **kwargs,
    ) -> None:
        """Initialize the SQLiteVectorStore with database and vector directory paths.

        Args:
            db_path: Path to the SQLite database file.
            vectors_dir: Directory to store numpy vector files.
            **kwargs: Collection options forwarded to BaseSQLiteStore.
        """
        self.vectors_dir = Path(vectors_dir)
        self.vectors_dir.mkdir(exist_ok=True, parents=True)
        self._matrices: dict[str, tuple[list[int], np.ndarray]] = {}
        self._lock = threading.RLock()

        super().__init__(db_path, **kwargs)

    def _write_batch(self, batch: list[DocumentChunk]) -> None:
        """Insert one batch; vector files are removed again if the batch fails."""
        vectors = [self._validated_embedding(chunk) for chunk in batch]
        written: list[Path] = []

        with self._lock:
            try:
                with self._connect() as conn:
                    cursor = conn.cursor()
                    for chunk, vector in zip(batch, vectors, strict=True):
                        vector_id = self._insert_chunk_row(cursor, chunk)
                        vector_filename = f"{self.collection}_{vector_id:08d}.npy"
                        vector_path = self.vectors_dir / vector_filename
                        np.save(vector_path, vector)
                        written.append(vector_path)
                        cursor.execute(
                            "UPDATE chunks SET vector_file = ? WHERE id = ?",
                            (vector_filename, vector_id),
                        )
                    conn.commit()
            except Exception:
                for path in written:
                    path.unlink(missing_ok=True)
                raise

            for owner_id in {chunk.owner_id for chunk in batch}:
                self._matrices.pop(owner_id, None)

    def _owner_matrix(self, owner_id: str) -> tuple[list[int], np.ndarray] | None:
        """Load (and cache) the owner's embeddings matrix from vector files."""
        with self._lock:
            cached = self._matrices.get(owner_id)
            if cached is not None:
                return cached

            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute(
                    """
                    SELECT id, vector_file FROM chunks
                    WHERE owner_id = ? AND vector_file IS NOT NULL
                    ORDER BY id
                    """,
                    (owner_id,),
                )
                rows = cursor.fetchall()

            vector_ids: list[int] = []
            embeddings_list: list[np.ndarray] = []
            for vector_id, vector_file in rows:
                vector_path = self.vectors_dir / vector_file
                if not vector_path.exists():
                    logger.warning("Vector file not found: %s", vector_path)
                    continue
                vector_ids.append(int(vector_id))
                embeddings_list.append(np.load(vector_path))

            if not embeddings_list:
                return None

            matrix = (vector_ids, np.vstack(embeddings_list))
            self._matrices[owner_id] = matrix
            logger.info(
                "Rebuilt embeddings matrix for %s with %d vectors",
                owner_id,
                len(vector_ids),
            )
            return matrix

    @staticmethod
    def cosine_similarity(
        query_embedding: np.ndarray,
        embeddings: np.ndarray,
    ) -> np.ndarray:
        """Calculate cosine similarity between query and document embeddings.

        Returns:
            np.ndarray: Array of cosine similarity scores
                    between the query and each document embedding.
        """
        query_norm = np.linalg.norm(query_embedding)
        if query_norm == 0:
            return np.zeros(embeddings.shape[0], dtype="float32")
        doc_norms = np.linalg.norm(embeddings, axis=1, keepdims=True)
        doc_norms[doc_norms == 0] = 1.0
        return np.dot(embeddings / doc_norms, query_embedding / query_norm)

    def search(
        self,
        query_vector: np.ndarray,
        owner_id: str,
        limit: int = 5,
    ) -> list[tuple[DocumentChunk, float]]:
        """Search for the owner's chunks most similar to a query embedding.

        Returns:
            A list of (DocumentChunk, similarity score) tuples, best first.
        """
        owner = normalize_owner_id(owner_id)
        if limit <= 0:
            return []

        query = np.asarray(query_vector, dtype="float32").reshape(-1)
        if query.shape[0] != self.dimension:
            msg = (
                f"Query dimension {query.shape[0]} does not match "
                f"collection dimension {self.dimension}"
            )
            raise ValueError(msg)

        matrix = self._owner_matrix(owner)
        if matrix is None:
            return []
        vector_ids, embeddings = matrix

        similarities = self.cosine_similarity(query, embeddings)
        top_indices = np.argsort(similarities, kind="stable")[::-1][:limit]
        return self._rank(
            owner,
            ((vector_ids[idx], float(similarities[idx])) for idx in top_indices),
            limit,
        )

    def _drop_owner_vectors(self, owner_id: str, chunks: list[DocumentChunk]) -> None:
        with self._lock:
            self._matrices.pop(owner_id, None)
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute(
                    "SELECT vector_file FROM chunks "
                    "WHERE owner_id = ? AND vector_file IS NOT NULL",
                    (owner_id,),
                )
                for (vector_file,) in cursor.fetchall():
                    (self.vectors_dir / vector_file).unlink(missing_ok=True)
