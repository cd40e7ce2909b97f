"""RAG Relay - document-grounded auto-replies for messaging conversations."""

from .composer import ReplyComposer
from .conversation import ConversationStore
from .document_processing import DocumentLoader, TextChunker
from .embeddings import EmbeddingService, EmbeddingUnavailable
from .lifecycle import LifecycleManager
from .models import Conversation, DocumentChunk, Message
from .pipeline import IngestionPipeline
from .retrieval import ContextRetriever
from .settings import SettingsStore
from .vector_store import FaissVectorStore, SQLiteVectorStore, get_vector_store

__all__ = [
    "ContextRetriever",
    "Conversation",
    "ConversationStore",
    "DocumentChunk",
    "DocumentLoader",
    "EmbeddingService",
    "EmbeddingUnavailable",
    "IngestionPipeline",
    "LifecycleManager",
    "Message",
    "ReplyComposer",
    "SQLiteVectorStore",
    "SettingsStore",
    "FaissVectorStore",
    "TextChunker",
    "get_vector_store",
]
