"""Tests for the Config class."""

import logging
import os
from importlib import reload
from pathlib import Path
from unittest.mock import patch

import pytest

from relay import config as config_module
from relay.config import Config


@pytest.fixture(autouse=True)
def restore_config():
    """Reload the config module after each test so overrides don't leak."""
    yield
    reload(config_module)


def test_get_openai_api_key_from_env():
    with patch.dict(os.environ, {"OPENAI_API_KEY": "test-api-key"}):
        assert Config.get_openai_api_key() == "test-api-key"


def test_get_openai_api_key_empty_when_not_set():
    with patch.dict(os.environ, {}, clear=True):
        assert not Config.get_openai_api_key()


def test_missing_settings_lists_every_absent_credential():
    with (
        patch.dict(os.environ, {}, clear=True),
        patch.object(Config, "TWILIO_PHONE_NUMBER", ""),
    ):
        assert Config.missing_settings() == [
            "OPENAI_API_KEY",
            "TWILIO_ACCOUNT_SID",
            "TWILIO_AUTH_TOKEN",
            "TWILIO_PHONE_NUMBER",
        ]


def test_missing_settings_empty_when_configured():
    env = {
        "OPENAI_API_KEY": "key",
        "TWILIO_ACCOUNT_SID": "AC123",
        "TWILIO_AUTH_TOKEN": "secret",
    }
    with (
        patch.dict(os.environ, env, clear=True),
        patch.object(Config, "TWILIO_PHONE_NUMBER", "+14155238886"),
    ):
        assert Config.missing_settings() == []


def test_operator_token_from_env():
    with patch.dict(os.environ, {"OPERATOR_TOKEN": "s3cret"}):
        assert Config.get_operator_token() == "s3cret"


@pytest.mark.parametrize(
    ("env_var", "config_attr", "default_value", "test_value", "expected_type"),
    [
        ("LOG_LEVEL", "LOG_LEVEL", "INFO", "debug", str),
        ("CHUNK_SIZE", "CHUNK_SIZE", 500, "800", int),
        ("CHUNK_OVERLAP", "CHUNK_OVERLAP", 100, "50", int),
        ("EMBEDDING_DIMENSION", "EMBEDDING_DIMENSION", 768, "1536", int),
        ("REPLY_MAX_CHARS", "REPLY_MAX_CHARS", 1500, "1000", int),
        ("UPSERT_BATCH_SIZE", "UPSERT_BATCH_SIZE", 5, "10", int),
        ("INACTIVITY_LIMIT_SECONDS", "INACTIVITY_LIMIT_SECONDS", 900, "60", int),
        ("COMPLETION_TIMEOUT", "COMPLETION_TIMEOUT", 30.0, "10", float),
        ("EMBEDDING_TIMEOUT", "EMBEDDING_TIMEOUT", 15.0, "5", float),
        ("UPSERT_BATCH_DELAY", "UPSERT_BATCH_DELAY", 0.2, "0", float),
    ],
)
def test_config_loading_from_env(
    env_var, config_attr, default_value, test_value, expected_type
):
    with patch.dict(os.environ, {}, clear=True):
        reload(config_module)
        assert getattr(config_module.Config, config_attr) == default_value

    with patch.dict(os.environ, {env_var: test_value}):
        reload(config_module)
        actual_value = getattr(config_module.Config, config_attr)
        if expected_type is int:
            expected = int(test_value)
        elif expected_type is float:
            expected = float(test_value)
        elif config_attr == "LOG_LEVEL":
            expected = test_value.upper()
        else:
            expected = test_value
        assert actual_value == expected


@pytest.mark.parametrize(
    ("env_var", "config_attr", "test_path"),
    [
        ("VECTOR_STORE_DB_PATH", "VECTOR_STORE_DB_PATH", "/custom/path/store.db"),
        ("FAISS_INDEX_DIR", "FAISS_INDEX_DIR", "/custom/faiss"),
        ("CONVERSATIONS_PATH", "CONVERSATIONS_PATH", "/custom/conversations.json"),
    ],
)
def test_path_config_loading(env_var, config_attr, test_path):
    with patch.dict(os.environ, {}, clear=True):
        reload(config_module)
        assert isinstance(getattr(config_module.Config, config_attr), Path)

    with patch.dict(os.environ, {env_var: test_path}):
        reload(config_module)
        assert getattr(config_module.Config, config_attr) == Path(test_path)


@pytest.mark.parametrize(
    "config_attr",
    [
        "VECTOR_STORE_DB_PATH",
        "VECTOR_STORE_DIR",
        "FAISS_INDEX_DIR",
        "CONVERSATIONS_PATH",
        "SETTINGS_PATH",
        "UPLOAD_DIR",
    ],
)
def test_storage_paths_follow_data_dir(config_attr):
    with patch.dict(os.environ, {"DATA_DIR": "/srv/relay"}, clear=True):
        reload(config_module)
        path = getattr(config_module.Config, config_attr)

    assert path.parent == Path("/srv/relay")


@pytest.mark.parametrize(
    ("log_level", "openai_level", "expected_level", "expected_openai_level"),
    [
        ("INFO", "WARNING", logging.INFO, logging.WARNING),
        ("DEBUG", "ERROR", logging.DEBUG, logging.ERROR),
        ("INVALID", "INVALID", logging.INFO, logging.WARNING),
    ],
)
def test_setup_logging_levels(
    log_level, openai_level, expected_level, expected_openai_level
):
    """Logging setup respects overrides and falls back on invalid values."""
    with (
        patch.object(Config, "LOG_LEVEL", log_level),
        patch.object(Config, "OPENAI_LOG_LEVEL", openai_level),
        patch("relay.config.logging.basicConfig") as mock_basic,
        patch("relay.config.logging.getLogger") as mock_get_logger,
    ):
        mock_logger = mock_get_logger.return_value

        Config.setup_logging()

        mock_basic.assert_called_once_with(
            level=expected_level,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
        mock_get_logger.assert_called_once_with("openai")
        mock_logger.setLevel.assert_called_once_with(expected_openai_level)


def test_api_headers_include_user_agent():
    with patch.object(Config, "API_USER_AGENT", "RagRelay/test"):
        assert Config.get_api_headers() == {"User-Agent": "RagRelay/test"}


def test_type_conversion_errors():
    with (
        patch.dict(os.environ, {"CHUNK_SIZE": "not_a_number"}),
        pytest.raises(ValueError, match="invalid literal for int"),
    ):
        reload(config_module)


def test_no_dotenv_loading_when_missing():
    with (
        patch.object(Path, "exists", return_value=False),
        patch("relay.config.load_dotenv") as mock_load,
    ):
        reload(config_module)

        mock_load.assert_not_called()
