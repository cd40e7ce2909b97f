"""HTTP client for the dashboard API."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import requests

from .config import config

logger = config.get_logger(__name__)

TOKEN_HEADER = "X-Operator-Token"


class RelayAPIError(RuntimeError):
    """Raised when the relay API cannot be reached or rejects a call."""


class RelayClient:
    """Thin wrapper over the relay's ``/api`` endpoints."""

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        timeout: float = 30.0,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = (base_url or config.RELAY_API_URL).rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update(config.get_api_headers())
        token = token if token is not None else config.get_operator_token()
        if token:
            self.session.headers[TOKEN_HEADER] = token

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        url = f"{self.base_url}/api{path}"
        try:
            resp = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            msg = f"Relay API unreachable: {e}"
            raise RelayAPIError(msg) from e

        if resp.status_code >= 400:
            try:
                detail = resp.json().get("detail", resp.text)
            except ValueError:
                detail = resp.text
            msg = f"HTTP {resp.status_code}: {detail}"
            raise RelayAPIError(msg)
        return resp.json()

    def conversations(self) -> list[dict[str, Any]]:
        return self._request("GET", "/conversations")

    def conversation(self, phone: str) -> dict[str, Any]:
        return self._request("GET", f"/conversations/{phone}")

    def send(self, phone: str, message: str) -> bool:
        payload = self._request("POST", "/send", json={"phone": phone, "message": message})
        return bool(payload.get("success"))

    def settings(self) -> dict[str, str]:
        return self._request("GET", "/settings")

    def update_settings(
        self,
        response_mode: str | None = None,
        default_response: str | None = None,
    ) -> dict[str, str]:
        payload = {
            key: value
            for key, value in (
                ("responseMode", response_mode),
                ("defaultResponse", default_response),
            )
            if value is not None
        }
        return self._request("POST", "/settings", json=payload)

    def upload(self, file_name: str, content: bytes, organization_id: str) -> dict:
        """Upload a document for indexing under ``organization_id``.

        Returns:
            The ingestion summary returned by the relay.
        """
        suffix = Path(file_name).suffix.lower()
        content_type = "application/pdf" if suffix == ".pdf" else "text/plain"
        return self._request(
            "POST",
            "/upload-pdf",
            files={"pdfFile": (file_name, content, content_type)},
            data={"organizationId": organization_id},
        )

    def documents(self, phone: str) -> list[dict[str, Any]]:
        return self._request("GET", f"/documents/{phone}")
