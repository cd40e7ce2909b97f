"""Test configuration and fixtures for relay tests.

This module provides reusable test fixtures organized by functionality:
- Constants and test data
- Mock services and API responses
- Text processing fixtures
- Vector store fixtures
- Conversation, settings and transport fakes
"""

import datetime
import hashlib
from unittest.mock import Mock, patch

import numpy as np
import pytest

from relay import (
    ConversationStore,
    DocumentChunk,
    EmbeddingService,
    EmbeddingUnavailable,
    SettingsStore,
    TextChunker,
)
from relay.transport import MessagingTransport
from relay.vector_store import FaissVectorStore, SQLiteVectorStore


class TestConstants:
    """Centralized test constants to avoid repetition across test files."""

    # API Configuration
    TEST_API_KEY = "test-key"
    TEST_OPENAI_MODEL = "text-embedding-3-small"
    EMBEDDING_DIMENSION = 32

    # Owners / remote parties
    OWNER = "whatsapp:+391234567890"
    OTHER_OWNER = "whatsapp:+441111111111"
    PROVIDER_NUMBER = "whatsapp:+14155238886"

    # Text Chunking Configuration
    SMALL_CHUNK_SIZE = 100
    SMALL_CHUNK_OVERLAP = 20
    DEFAULT_CHUNK_SIZE = 500
    DEFAULT_CHUNK_OVERLAP = 100

    # Lifecycle
    INACTIVITY_LIMIT = 15 * 60
    START_TIME = datetime.datetime(2024, 5, 1, 12, 0, tzinfo=datetime.UTC)


class MockEmbeddingService:
    """Mock embedding service for testing without API calls.

    Generates deterministic embeddings based on text content hash. Texts
    listed in ``failing_texts`` raise EmbeddingUnavailable.
    """

    def __init__(
        self,
        dimension: int = TestConstants.EMBEDDING_DIMENSION,
        failing_texts: set[str] | None = None,
    ) -> None:
        self.dimension = dimension
        self.failing_texts = failing_texts or set()
        self.calls: list[str] = []

    def embed(self, text: str) -> np.ndarray:
        """Generate deterministic mock embedding based on text hash."""
        self.calls.append(text)
        if text in self.failing_texts:
            msg = "Embedding provider error: mocked failure"
            raise EmbeddingUnavailable(msg)
        seed = int.from_bytes(
            hashlib.sha256(text.lower().encode("utf-8")).digest()[:8],
            byteorder="big",
            signed=False,
        )
        rng = np.random.default_rng(seed)
        embedding = rng.normal(0, 1, self.dimension)
        return (embedding / np.linalg.norm(embedding)).astype(np.float32)


class FakeClock:
    """Manually advanced clock for time-dependent tests."""

    def __init__(self, start: datetime.datetime = TestConstants.START_TIME) -> None:
        self.now = start

    def __call__(self) -> datetime.datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime.datetime:
        self.now += datetime.timedelta(**kwargs)
        return self.now


class FakeTransport(MessagingTransport):
    """Records outbound messages instead of sending them."""

    def __init__(self, result: bool = True) -> None:
        self.result = result
        self.sent: list[tuple[str, str, str | None]] = []

    def send(self, to: str, body: str, from_: str | None = None) -> bool:
        self.sent.append((to, body, from_))
        return self.result


def create_mock_openai_response(embeddings: list[list[float]]) -> Mock:
    """Create a mock OpenAI embeddings API response."""
    mock_response = Mock()
    mock_response.data = [Mock(embedding=emb) for emb in embeddings]
    return mock_response


def create_mock_chat_response(content: str | None) -> Mock:
    """Create a mock OpenAI chat completion response."""
    mock_response = Mock()
    mock_response.choices = [Mock(message=Mock(content=content))]
    return mock_response


@pytest.fixture
def openai_embeddings_api_mock():
    """Patch the OpenAI embeddings.create method."""
    with patch("openai.resources.embeddings.Embeddings.create") as mock_create:
        yield mock_create


@pytest.fixture
def openai_chat_api_mock():
    """Patch the OpenAI chat.completions.create method."""
    with patch("openai.resources.chat.completions.Completions.create") as mock_create:
        yield mock_create


@pytest.fixture
def embedding_service_factory():
    """Factory for EmbeddingService instances with a test key."""

    def _create_service(api_key=None, model=None, dimension=None):  # noqa: ANN202
        return EmbeddingService(
            api_key=api_key or TestConstants.TEST_API_KEY,
            model=model,
            dimension=dimension or TestConstants.EMBEDDING_DIMENSION,
        )

    return _create_service


@pytest.fixture
def embedding_service(embedding_service_factory):
    return embedding_service_factory()


@pytest.fixture
def text_chunker_factory():
    """Factory fixture that creates ``TextChunker`` instances on demand."""
    presets: dict[str, tuple[int, int]] = {
        "small": (
            TestConstants.SMALL_CHUNK_SIZE,
            TestConstants.SMALL_CHUNK_OVERLAP,
        ),
        "default": (
            TestConstants.DEFAULT_CHUNK_SIZE,
            TestConstants.DEFAULT_CHUNK_OVERLAP,
        ),
    }

    def _create_chunker(name: str = "default") -> TextChunker:
        chunk_size, overlap = presets[name]
        return TextChunker(chunk_size=chunk_size, overlap=overlap)

    return _create_chunker


@pytest.fixture
def mock_embedding_service():
    return MockEmbeddingService()


@pytest.fixture
def sqlite_store(tmp_path) -> SQLiteVectorStore:
    return SQLiteVectorStore(
        tmp_path / "store.db",
        tmp_path / "vectors",
        dimension=TestConstants.EMBEDDING_DIMENSION,
        batch_delay=0,
    )


@pytest.fixture
def faiss_store(tmp_path) -> FaissVectorStore:
    return FaissVectorStore(
        tmp_path / "store.db",
        tmp_path / "faiss",
        dimension=TestConstants.EMBEDDING_DIMENSION,
        batch_delay=0,
    )


@pytest.fixture(params=["sqlite", "faiss"])
def vector_store(request, tmp_path):
    """Each vector store backend, freshly bootstrapped."""
    if request.param == "sqlite":
        return request.getfixturevalue("sqlite_store")
    return request.getfixturevalue("faiss_store")


@pytest.fixture
def chunk_factory(mock_embedding_service):
    """Factory for embedded DocumentChunks."""

    def _create_chunk(
        content: str,
        owner_id: str = TestConstants.OWNER,
        source: str = "guide.pdf",
        page: int = 1,
        chunk_index: int = 1,
    ) -> DocumentChunk:
        return DocumentChunk(
            owner_id=owner_id,
            source=source,
            page=page,
            chunk_index=chunk_index,
            content=content,
            embedding=mock_embedding_service.embed(content),
        )

    return _create_chunk


@pytest.fixture
def sample_chunks(chunk_factory):
    """Five embedded chunks across two documents of one owner."""
    texts = [
        "Opening hours are Monday to Friday from 9 to 18.",
        "Deliveries are shipped within two business days.",
        "Returns are accepted within thirty days of purchase.",
        "Support can be reached by phone or by email.",
        "Gift cards never expire and can be used online.",
    ]
    return [
        chunk_factory(
            text,
            source=f"doc_{i // 3}.pdf",
            page=i // 3 + 1,
            chunk_index=i % 3 + 1,
        )
        for i, text in enumerate(texts)
    ]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def conversation_store(tmp_path, clock) -> ConversationStore:
    return ConversationStore(tmp_path / "conversations.json", clock=clock)


@pytest.fixture
def settings_store(tmp_path) -> SettingsStore:
    return SettingsStore(tmp_path / "settings.json")


@pytest.fixture
def fake_transport():
    return FakeTransport()


@pytest.fixture
def constants():
    return TestConstants


@pytest.fixture
def mock_embedding_factory():
    """Factory for MockEmbeddingService with optional failing texts."""

    def _create(failing_texts=None, dimension=TestConstants.EMBEDDING_DIMENSION):  # noqa: ANN202
        return MockEmbeddingService(dimension=dimension, failing_texts=failing_texts)

    return _create


@pytest.fixture
def transport_factory():
    """Factory for FakeTransport with a fixed send result."""

    def _create(result: bool = True) -> FakeTransport:
        return FakeTransport(result=result)

    return _create


@pytest.fixture
def chat_response_factory():
    return create_mock_chat_response


@pytest.fixture
def embeddings_response_factory():
    return create_mock_openai_response
