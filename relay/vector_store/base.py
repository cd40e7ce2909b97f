"""Shared helpers for vector stores that keep chunk metadata in SQLite."""

from __future__ import annotations

import sqlite3
import time
from collections.abc import Callable, Iterable
from pathlib import Path

import numpy as np

from relay.config import config
from relay.models import DocumentChunk, normalize_owner_id

DISTANCE_COSINE = "cosine"

logger = config.get_logger(__name__)

ListStrategy = Callable[[str], list[DocumentChunk]]

CHUNK_COLUMNS = """
    c.id,
    c.owner_id,
    d.source,
    c.page,
    c.chunk_index,
    c.content,
    c.vector_file,
    c.created_at
"""


class BaseSQLiteStore:
    """Per-owner chunk metadata, batching and listing shared by all backends.

    Subclasses own the vectors: they implement ``_write_batch``, ``search``
    and ``_drop_owner_vectors``. Every read and write is filtered by the
    normalized owner identifier, so one owner never sees another's chunks.
    """

    backend = "base"

    def __init__(  # noqa: PLR0913
        self,
        db_path: Path,
        *,
        collection: str | None = None,
        dimension: int | None = None,
        batch_size: int | None = None,
        batch_delay: float | None = None,
        timeout: float | None = None,
        list_limit: int | None = None,
    ) -> None:
        """Initialize metadata store and bootstrap the collection."""
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(exist_ok=True, parents=True)
        self.collection = collection or config.VECTOR_COLLECTION
        self.dimension = dimension or config.EMBEDDING_DIMENSION
        self.batch_size = max(1, batch_size or config.UPSERT_BATCH_SIZE)
        self.batch_delay = (
            batch_delay if batch_delay is not None else config.UPSERT_BATCH_DELAY
        )
        self.timeout = timeout if timeout is not None else config.VECTOR_STORE_TIMEOUT
        self.list_limit = list_limit or config.LIST_ALL_LIMIT
        self.bootstrap()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(str(self.db_path), timeout=self.timeout)

    def bootstrap(self) -> bool:
        """Create the collection and its tables if they don't exist.

        Safe to call on every startup.

        Returns:
            True when the collection was created by this call.

        Raises:
            ValueError: If the collection exists with another dimensionality.
        """
        with self._connect() as conn:
            cursor = conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS collections (
                    name TEXT PRIMARY KEY,
                    dimension INTEGER NOT NULL,
                    distance TEXT NOT NULL,
                    created_at DATETIME DEFAULT CURRENT_TIMESTAMP
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS documents (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    owner_id TEXT NOT NULL,
                    source TEXT NOT NULL,
                    processed_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    UNIQUE (owner_id, source)
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS chunks (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    document_id INTEGER NOT NULL,
                    owner_id TEXT NOT NULL,
                    page INTEGER NOT NULL,
                    chunk_index INTEGER NOT NULL,
                    content TEXT NOT NULL,
                    vector_file TEXT,
                    created_at TEXT NOT NULL,
                    FOREIGN KEY (document_id) REFERENCES documents (id)
                )
            """)

            cursor.execute(
                "CREATE INDEX IF NOT EXISTS idx_chunks_owner ON chunks(owner_id)"
            )
            cursor.execute(
                "CREATE INDEX IF NOT EXISTS idx_chunks_document ON chunks(document_id)"
            )

            cursor.execute(
                "SELECT dimension, distance FROM collections WHERE name = ?",
                (self.collection,),
            )
            row = cursor.fetchone()
            if row is None:
                cursor.execute(
                    "INSERT INTO collections (name, dimension, distance) "
                    "VALUES (?, ?, ?)",
                    (self.collection, self.dimension, DISTANCE_COSINE),
                )
                conn.commit()
                logger.info(
                    "Created collection '%s' (dimension=%d, distance=%s)",
                    self.collection,
                    self.dimension,
                    DISTANCE_COSINE,
                )
                return True

            conn.commit()

        existing_dimension = int(row[0])
        if existing_dimension != self.dimension:
            msg = (
                f"Collection '{self.collection}' has dimension {existing_dimension}, "
                f"configured dimension is {self.dimension}"
            )
            raise ValueError(msg)
        logger.debug("Collection '%s' already exists", self.collection)
        return False

    def _validated_embedding(self, chunk: DocumentChunk) -> np.ndarray:
        """Return the chunk's vector as float32, checking its length.

        Raises:
            ValueError: If the chunk has no embedding or the wrong size.
        """
        if chunk.embedding is None:
            msg = f"Chunk {chunk.source}#{chunk.page}.{chunk.chunk_index} has no embedding"
            raise ValueError(msg)
        vector = np.asarray(chunk.embedding, dtype="float32").reshape(-1)
        if vector.shape[0] != self.dimension:
            msg = (
                f"Embedding dimension {vector.shape[0]} does not match "
                f"collection dimension {self.dimension}"
            )
            raise ValueError(msg)
        return vector

    def upsert(self, chunks: Iterable[DocumentChunk]) -> int:
        """Store chunks in bounded batches, tolerating failed batches.

        Batches are written sequentially with ``batch_delay`` seconds between
        them. A failing batch is logged and skipped.

        Returns:
            Number of chunks that were stored.
        """
        points = list(chunks)
        if not points:
            return 0

        for chunk in points:
            chunk.owner_id = normalize_owner_id(chunk.owner_id)

        total_batches = (len(points) + self.batch_size - 1) // self.batch_size
        inserted = 0
        failed = 0

        for batch_number, offset in enumerate(
            range(0, len(points), self.batch_size), start=1
        ):
            batch = points[offset : offset + self.batch_size]
            try:
                self._write_batch(batch)
            except (sqlite3.Error, OSError, ValueError, RuntimeError):
                failed += len(batch)
                logger.exception(
                    "Failed to upsert batch %d/%d", batch_number, total_batches
                )
            else:
                inserted += len(batch)
                logger.debug(
                    "Upserted batch %d/%d (%d chunks)",
                    batch_number,
                    total_batches,
                    len(batch),
                )

            if offset + self.batch_size < len(points) and self.batch_delay > 0:
                time.sleep(self.batch_delay)

        logger.info(
            "Upserted %d/%d chunks into '%s' (%d failed)",
            inserted,
            len(points),
            self.collection,
            failed,
        )
        return inserted

    def _write_batch(self, batch: list[DocumentChunk]) -> None:
        """Persist one batch atomically; implemented by subclasses."""
        raise NotImplementedError

    def search(
        self,
        query_vector: np.ndarray,
        owner_id: str,
        limit: int = 5,
    ) -> list[tuple[DocumentChunk, float]]:
        """Return the owner's most similar chunks, best first."""
        raise NotImplementedError

    def _drop_owner_vectors(self, owner_id: str, chunks: list[DocumentChunk]) -> None:
        """Remove vector data for an owner; implemented by subclasses."""
        raise NotImplementedError

    @staticmethod
    def _upsert_document(cursor: sqlite3.Cursor, owner_id: str, source: str) -> int:
        """Insert document metadata if missing and return its id.

        Raises:
            RuntimeError: If the document id cannot be retrieved.

        Returns:
            Document id from the metadata store.
        """
        cursor.execute(
            "INSERT OR IGNORE INTO documents (owner_id, source) VALUES (?, ?)",
            (owner_id, source),
        )
        cursor.execute(
            "SELECT id FROM documents WHERE owner_id = ? AND source = ?",
            (owner_id, source),
        )
        row = cursor.fetchone()
        if row is None:
            msg = f"Failed to upsert document for source '{source}'"
            raise RuntimeError(msg)
        return int(row[0])

    def _insert_chunk_row(
        self,
        cursor: sqlite3.Cursor,
        chunk: DocumentChunk,
        *,
        vector_file: str | None = None,
    ) -> int:
        """Persist a chunk row and return its id, which doubles as vector id.

        Raises:
            RuntimeError: If the chunk row cannot be inserted.
        """
        document_id = self._upsert_document(cursor, chunk.owner_id, chunk.source)
        cursor.execute(
            """
            INSERT INTO chunks (
                document_id,
                owner_id,
                page,
                chunk_index,
                content,
                vector_file,
                created_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                document_id,
                chunk.owner_id,
                chunk.page,
                chunk.chunk_index,
                chunk.content,
                vector_file,
                chunk.created_at,
            ),
        )
        row_id = cursor.lastrowid
        if row_id is None:
            msg = "Failed to insert chunk row"
            raise RuntimeError(msg)
        chunk.vector_id = int(row_id)
        return chunk.vector_id

    @staticmethod
    def _build_chunk_from_row(
        row: tuple,
        *,
        embedding: np.ndarray | None = None,
    ) -> DocumentChunk:
        """Create a DocumentChunk from a metadata row.

        Returns:
            DocumentChunk hydrated with metadata and optional embedding.
        """
        (
            chunk_db_id,
            owner_id,
            source,
            page,
            chunk_index,
            content,
            _vector_file,
            created_at,
        ) = row
        return DocumentChunk(
            owner_id=owner_id,
            source=source,
            page=int(page),
            chunk_index=int(chunk_index),
            content=content,
            embedding=embedding,
            created_at=created_at,
            vector_id=int(chunk_db_id),
        )

    def _fetch_rows(
        self,
        owner_id: str,
        vector_ids: Iterable[int] | None = None,
    ) -> list[tuple]:
        """Fetch metadata rows for an owner, optionally restricted to ids.

        Returns:
            Rows in insertion order.
        """
        query = f"""
            SELECT {CHUNK_COLUMNS}
            FROM chunks c
            JOIN documents d ON c.document_id = d.id
            WHERE c.owner_id = ?
        """
        params: list = [owner_id]
        if vector_ids is not None:
            ids = [int(vector_id) for vector_id in vector_ids]
            if not ids:
                return []
            query += f" AND c.id IN ({', '.join('?' for _ in ids)})"
            params.extend(ids)
        query += " ORDER BY c.id"

        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.fetchall()

    def _rank(
        self,
        owner_id: str,
        scored_ids: Iterable[tuple[int, float]],
        limit: int,
    ) -> list[tuple[DocumentChunk, float]]:
        """Hydrate scored vector ids into chunks, highest score first."""
        scored = list(scored_ids)
        rows = {
            int(row[0]): row
            for row in self._fetch_rows(owner_id, (vector_id for vector_id, _ in scored))
        }
        results: list[tuple[DocumentChunk, float]] = []
        for vector_id, score in sorted(scored, key=lambda item: item[1], reverse=True):
            row = rows.get(int(vector_id))
            if row is None:
                continue
            results.append((self._build_chunk_from_row(row), float(score)))
        return results[:limit]

    def _list_from_metadata(self, owner_id: str) -> list[DocumentChunk]:
        return [
            self._build_chunk_from_row(row)
            for row in self._fetch_rows(owner_id)[: self.list_limit]
        ]

    def _list_by_neutral_search(self, owner_id: str) -> list[DocumentChunk]:
        neutral = np.zeros(self.dimension, dtype="float32")
        return [chunk for chunk, _ in self.search(neutral, owner_id, self.list_limit)]

    def list_strategies(self) -> list[tuple[str, ListStrategy]]:
        """Ordered ways of enumerating an owner's chunks, preferred first."""
        return [
            ("metadata", self._list_from_metadata),
            ("neutral-search", self._list_by_neutral_search),
        ]

    def list_all(self, owner_id: str) -> list[DocumentChunk]:
        """Enumerate an owner's chunk metadata (without vectors).

        Strategies are tried in order; the first non-empty result wins.

        Returns:
            Chunks owned by ``owner_id``, possibly empty.
        """
        owner = normalize_owner_id(owner_id)
        for name, strategy in self.list_strategies():
            try:
                chunks = strategy(owner)
            except (sqlite3.Error, OSError, ValueError, RuntimeError) as e:
                logger.info("Listing strategy '%s' failed for %s: %s", name, owner, e)
                continue
            if chunks:
                logger.info(
                    "Listed %d chunks for %s via '%s'", len(chunks), owner, name
                )
                return chunks
        logger.info("No chunks found for %s", owner)
        return []

    def summarize_documents(self, owner_id: str) -> list[dict[str, object]]:
        """Group an owner's chunks by source document.

        Returns:
            One ``{"source", "chunks", "lastUpdated"}`` entry per document.
        """
        documents: dict[str, dict[str, object]] = {}
        for chunk in self.list_all(owner_id):
            entry = documents.setdefault(
                chunk.source,
                {"source": chunk.source, "chunks": 0, "lastUpdated": chunk.created_at},
            )
            entry["chunks"] = int(entry["chunks"]) + 1
            entry["lastUpdated"] = max(str(entry["lastUpdated"]), chunk.created_at)
        return list(documents.values())

    def delete_owner(self, owner_id: str) -> int:
        """Remove every chunk owned by ``owner_id``.

        Returns:
            Number of chunks removed.
        """
        owner = normalize_owner_id(owner_id)
        chunks = [self._build_chunk_from_row(row) for row in self._fetch_rows(owner)]
        self._drop_owner_vectors(owner, chunks)
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("DELETE FROM chunks WHERE owner_id = ?", (owner,))
            cursor.execute("DELETE FROM documents WHERE owner_id = ?", (owner,))
            conn.commit()
        logger.info("Deleted %d chunks for %s", len(chunks), owner)
        return len(chunks)
