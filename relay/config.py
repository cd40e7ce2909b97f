"""Configuration management for the relay application."""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

env_path = Path(__file__).parent.parent / ".env"

if env_path.exists():
    load_dotenv(env_path)


class Config:
    """Application configuration loaded from environment variables."""

    # OpenAI Configuration
    @classmethod
    def get_openai_api_key(cls) -> str:
        """Get OpenAI API key from environment variables.

        Returns:
            OpenAI API key from environment or empty string if not set.
        """
        return os.getenv("OPENAI_API_KEY", "")

    OPENAI_BASE_URL: str | None = os.getenv("OPENAI_BASE_URL")

    # Logging Configuration
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    OPENAI_LOG_LEVEL: str = os.getenv("OPENAI_LOG_LEVEL", "WARNING").upper()

    # Chunking Configuration
    CHUNK_SIZE: int = int(os.getenv("CHUNK_SIZE", "500"))
    CHUNK_OVERLAP: int = int(os.getenv("CHUNK_OVERLAP", "100"))

    # Embedding Configuration
    EMBEDDING_MODEL: str = os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")
    EMBEDDING_DIMENSION: int = int(os.getenv("EMBEDDING_DIMENSION", "768"))
    EMBEDDING_TIMEOUT: float = float(os.getenv("EMBEDDING_TIMEOUT", "15"))

    # Chat Model Configuration
    CHAT_MODEL: str = os.getenv("CHAT_MODEL", "gpt-4.1-nano-2025-04-14")
    CHAT_MAX_TOKENS: int = int(os.getenv("CHAT_MAX_TOKENS", "700"))
    CHAT_TEMPERATURE: float = float(os.getenv("CHAT_TEMPERATURE", "0.7"))
    COMPLETION_TIMEOUT: float = float(os.getenv("COMPLETION_TIMEOUT", "30"))
    REPLY_MAX_CHARS: int = int(os.getenv("REPLY_MAX_CHARS", "1500"))
    RETRIEVAL_TOP_K: int = int(os.getenv("RETRIEVAL_TOP_K", "3"))

    # Storage Root
    DATA_DIR: Path = Path(os.getenv("DATA_DIR", "data"))

    # Vector Store Configuration
    VECTOR_BACKEND: str = os.getenv("VECTOR_BACKEND", "faiss").lower()
    VECTOR_COLLECTION: str = os.getenv("VECTOR_COLLECTION", "documents")
    VECTOR_STORE_DB_PATH: Path = Path(
        os.getenv("VECTOR_STORE_DB_PATH", DATA_DIR / "vector_store.db")
    )
    VECTOR_STORE_DIR: Path = Path(os.getenv("VECTOR_STORE_DIR", DATA_DIR / "vectors"))
    FAISS_INDEX_DIR: Path = Path(os.getenv("FAISS_INDEX_DIR", DATA_DIR / "faiss"))
    VECTOR_STORE_TIMEOUT: float = float(os.getenv("VECTOR_STORE_TIMEOUT", "60"))
    UPSERT_BATCH_SIZE: int = int(os.getenv("UPSERT_BATCH_SIZE", "5"))
    UPSERT_BATCH_DELAY: float = float(os.getenv("UPSERT_BATCH_DELAY", "0.2"))
    LIST_ALL_LIMIT: int = int(os.getenv("LIST_ALL_LIMIT", "100"))

    # Persistence Configuration
    CONVERSATIONS_PATH: Path = Path(
        os.getenv("CONVERSATIONS_PATH", DATA_DIR / "conversations.json")
    )
    SETTINGS_PATH: Path = Path(
        os.getenv("SETTINGS_PATH", DATA_DIR / "settings.json")
    )
    UPLOAD_DIR: Path = Path(os.getenv("UPLOAD_DIR", DATA_DIR / "uploads"))
    MAX_UPLOAD_BYTES: int = int(os.getenv("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))

    # Conversation Lifecycle Configuration
    INACTIVITY_LIMIT_SECONDS: int = int(os.getenv("INACTIVITY_LIMIT_SECONDS", "900"))
    SWEEP_INTERVAL_SECONDS: float = float(os.getenv("SWEEP_INTERVAL_SECONDS", "60"))
    THINKING_NOTICE_DELAY: float = float(os.getenv("THINKING_NOTICE_DELAY", "7"))

    # Messaging Transport Configuration
    @classmethod
    def get_twilio_account_sid(cls) -> str:
        """Return the Twilio account SID, or empty string if not set."""
        return os.getenv("TWILIO_ACCOUNT_SID", "")

    @classmethod
    def get_twilio_auth_token(cls) -> str:
        """Return the Twilio auth token, or empty string if not set."""
        return os.getenv("TWILIO_AUTH_TOKEN", "")

    TWILIO_PHONE_NUMBER: str = os.getenv("TWILIO_PHONE_NUMBER", "")
    TWILIO_API_BASE_URL: str = os.getenv(
        "TWILIO_API_BASE_URL", "https://api.twilio.com/2010-04-01"
    )
    SEND_TIMEOUT: float = float(os.getenv("SEND_TIMEOUT", "15"))
    OUTBOUND_MAX_CHARS: int = int(os.getenv("OUTBOUND_MAX_CHARS", "1500"))

    # Operator Surface Configuration
    @classmethod
    def get_operator_token(cls) -> str:
        """Return the shared operator credential, or empty string if not set."""
        return os.getenv("OPERATOR_TOKEN", "")

    RELAY_API_URL: str = os.getenv("RELAY_API_URL", "http://localhost:3000")

    # API Header Configuration
    API_USER_AGENT: str = os.getenv("API_USER_AGENT", "RagRelay/1.0")

    @classmethod
    def missing_settings(cls) -> list[str]:
        """List required credentials that are not configured.

        Returns:
            Names of the missing environment variables, in a stable order.
        """
        required = {
            "OPENAI_API_KEY": cls.get_openai_api_key(),
            "TWILIO_ACCOUNT_SID": cls.get_twilio_account_sid(),
            "TWILIO_AUTH_TOKEN": cls.get_twilio_auth_token(),
            "TWILIO_PHONE_NUMBER": cls.TWILIO_PHONE_NUMBER,
        }
        return [name for name, value in required.items() if not value]

    @classmethod
    def setup_logging(cls) -> None:
        """Setup basic logging configuration.

        Configure logging once at application startup with:
        - Console output for all levels
        - Simple, readable format
        - Configurable level via environment variable
        """
        logging.basicConfig(
            level=getattr(logging, cls.LOG_LEVEL, logging.INFO),
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )

        logging.getLogger("openai").setLevel(
            getattr(logging, cls.OPENAI_LOG_LEVEL, logging.WARNING)
        )

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        """Get a logger with the specified name.

        Args:
            name: Logger name (typically __name__)

        Returns:
            Logger instance
        """
        return logging.getLogger(name)

    @classmethod
    def get_api_headers(cls) -> dict[str, str]:
        """Build default headers for outbound API calls.

        Returns:
            Mapping of header names to values used on outbound HTTP requests.
        """
        headers: dict[str, str] = {}

        if cls.API_USER_AGENT:
            headers["User-Agent"] = cls.API_USER_AGENT

        return headers


config = Config()
