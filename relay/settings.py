"""Durable, process-wide reply settings."""

from __future__ import annotations

import json
import threading
from pathlib import Path

from .config import config
from .models import RESPONSE_MODES, AppSettings

logger = config.get_logger(__name__)


class SettingsStore:
    """Loads AppSettings with defaults and persists every change."""

    def __init__(self, path: Path | None = None) -> None:
        self.path = Path(path) if path is not None else config.SETTINGS_PATH
        self._lock = threading.RLock()
        self._settings = self._load()

    def _load(self) -> AppSettings:
        if not self.path.exists():
            return AppSettings()
        try:
            with self.path.open(encoding="utf-8") as file:
                return AppSettings.from_dict(json.load(file))
        except (OSError, ValueError, AttributeError):
            logger.exception("Error loading settings from %s, using defaults", self.path)
            return AppSettings()

    def _persist(self) -> None:
        try:
            self.path.parent.mkdir(exist_ok=True, parents=True)
            with self.path.open("w", encoding="utf-8") as file:
                json.dump(self._settings.to_dict(), file, indent=2, ensure_ascii=False)
        except OSError:
            logger.exception("Error saving settings to %s", self.path)

    def get(self) -> AppSettings:
        """Return a copy of the current settings."""
        with self._lock:
            return AppSettings(**vars(self._settings))

    def update(
        self,
        response_mode: str | None = None,
        default_response: str | None = None,
    ) -> AppSettings:
        """Change settings and persist them.

        Returns:
            The settings after the change.

        Raises:
            ValueError: If ``response_mode`` is not a known mode.
        """
        if response_mode is not None and response_mode not in RESPONSE_MODES:
            msg = f"Unknown response mode: {response_mode}"
            raise ValueError(msg)

        with self._lock:
            if response_mode is not None:
                self._settings.response_mode = response_mode
            if default_response is not None:
                self._settings.default_response = default_response
            self._persist()
            logger.info("Settings updated: mode=%s", self._settings.response_mode)
            return self.get()
