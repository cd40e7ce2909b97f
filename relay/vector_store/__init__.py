"""Vector store adapters and factory."""

from __future__ import annotations

from typing import TYPE_CHECKING, Literal

from relay.config import config

from .base import BaseSQLiteStore
from .faiss_store import FaissVectorStore
from .sqlite_store import SQLiteVectorStore

if TYPE_CHECKING:
    from pathlib import Path

VectorBackend = Literal["faiss", "sqlite"]


def get_vector_store(  # noqa: PLR0913
    store: VectorBackend = "faiss",
    *,
    db_path: Path | None = None,
    vectors_dir: Path | None = None,
    index_dir: Path | None = None,
    dimension: int | None = None,
    batch_delay: float | None = None,
) -> FaissVectorStore | SQLiteVectorStore:
    """Return a configured, bootstrapped vector store instance.

    Raises:
        ValueError: If an unsupported backend is requested.
    """
    if db_path is None:
        db_path = config.VECTOR_STORE_DB_PATH
    backend = store.lower()
    options = {"dimension": dimension, "batch_delay": batch_delay}

    if backend == "faiss":
        return FaissVectorStore(
            db_path=db_path,
            index_dir=index_dir if index_dir is not None else config.FAISS_INDEX_DIR,
            **options,
        )

    if backend == "sqlite":
        return SQLiteVectorStore(
            db_path=db_path,
            vectors_dir=(
                vectors_dir if vectors_dir is not None else config.VECTOR_STORE_DIR
            ),
            **options,
        )

    msg = f"Unsupported vector store backend: {store}"
    raise ValueError(msg)


__all__ = [
    "BaseSQLiteStore",
    "FaissVectorStore",
    "SQLiteVectorStore",
    "VectorBackend",
    "get_vector_store",
]
