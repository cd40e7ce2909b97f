"""Builds the relay's collaborators once and wires them together."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from pathlib import Path

from openai import OpenAIError

from .completion import CompletionService
from .composer import ReplyComposer
from .config import config
from .conversation import ConversationStore
from .embeddings import EmbeddingService
from .lifecycle import LifecycleManager
from .pipeline import IngestionPipeline
from .retrieval import ContextRetriever
from .service import RelayService
from .settings import SettingsStore
from .transport import MessagingTransport, TwilioTransport
from .vector_store import BaseSQLiteStore, VectorBackend, get_vector_store

logger = config.get_logger(__name__)


@dataclass
class Runtime:
    """Every long-lived collaborator of a running relay.

    Optional members are None when their configuration is missing; the
    features depending on them degrade instead of failing startup.
    """

    conversations: ConversationStore
    settings: SettingsStore
    transport: MessagingTransport
    composer: ReplyComposer
    lifecycle: LifecycleManager
    service: RelayService
    embedding_service: EmbeddingService | None = None
    vector_store: BaseSQLiteStore | None = None
    pipeline: IngestionPipeline | None = None
    retriever: ContextRetriever | None = None
    upload_dir: Path = config.UPLOAD_DIR


def check_dependencies() -> list[str]:
    """Log which credentials are configured.

    Returns:
        Names of the missing settings.
    """
    missing = config.missing_settings()
    for name in (
        "OPENAI_API_KEY",
        "TWILIO_ACCOUNT_SID",
        "TWILIO_AUTH_TOKEN",
        "TWILIO_PHONE_NUMBER",
    ):
        if name in missing:
            logger.error("Missing %s; dependent features are disabled", name)
        else:
            logger.info("%s configured", name)
    return missing


def _build_vector_store(
    backend: str, data_dir: Path | None, dimension: int | None
) -> BaseSQLiteStore | None:
    options: dict = {"dimension": dimension}
    if data_dir is not None:
        options.update(
            db_path=data_dir / "vector_store.db",
            vectors_dir=data_dir / "vectors",
            index_dir=data_dir / "faiss",
        )
    try:
        store = get_vector_store(backend, **options)
    except (sqlite3.Error, OSError, ValueError, RuntimeError):
        logger.exception("Vector index unavailable; documents cannot be used")
        return None
    logger.info("Vector index ready (%s backend)", store.backend)
    return store


def build_runtime(  # noqa: PLR0913
    *,
    data_dir: Path | None = None,
    backend: VectorBackend | None = None,
    embedding_service: EmbeddingService | None = None,
    completion_service: CompletionService | None = None,
    transport: MessagingTransport | None = None,
    vector_store: BaseSQLiteStore | None = None,
) -> Runtime:
    """Construct all collaborators.

    Args:
        data_dir: Root for conversations, settings, uploads and the index.
            If None, each path comes from config.
        backend: Vector index backend. If None, uses config.VECTOR_BACKEND.
        embedding_service: Prebuilt embedder, mainly for tests.
        completion_service: Prebuilt language-model client, mainly for tests.
        transport: Prebuilt messaging transport, mainly for tests.
        vector_store: Prebuilt vector index, mainly for tests.

    Returns:
        A wired Runtime; the lifecycle sweep is not started yet.
    """
    missing = check_dependencies()
    has_openai_key = "OPENAI_API_KEY" not in missing

    if embedding_service is None and has_openai_key:
        try:
            embedding_service = EmbeddingService()
        except OpenAIError:
            logger.exception("Embedding service unavailable")
    if completion_service is None and has_openai_key:
        try:
            completion_service = CompletionService()
        except OpenAIError:
            logger.exception("Language model unavailable")

    if vector_store is None:
        vector_store = _build_vector_store(
            backend or config.VECTOR_BACKEND,
            data_dir,
            embedding_service.dimension if embedding_service is not None else None,
        )

    pipeline = retriever = None
    if embedding_service is not None and vector_store is not None:
        pipeline = IngestionPipeline(embedding_service, vector_store)
        retriever = ContextRetriever(embedding_service, vector_store)
    else:
        logger.warning("Document grounding disabled")

    if data_dir is not None:
        conversations = ConversationStore(data_dir / "conversations.json")
        settings = SettingsStore(data_dir / "settings.json")
        upload_dir = data_dir / "uploads"
    else:
        conversations = ConversationStore()
        settings = SettingsStore()
        upload_dir = config.UPLOAD_DIR

    transport = transport or TwilioTransport()
    composer = ReplyComposer(completion_service, retriever)
    lifecycle = LifecycleManager(conversations, transport)
    service = RelayService(conversations, settings, composer, transport)

    return Runtime(
        conversations=conversations,
        settings=settings,
        transport=transport,
        composer=composer,
        lifecycle=lifecycle,
        service=service,
        embedding_service=embedding_service,
        vector_store=vector_store,
        pipeline=pipeline,
        retriever=retriever,
        upload_dir=upload_dir,
    )
