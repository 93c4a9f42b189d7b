"""
Async HTTP client for the Doomsday API.

Used by the chat connection manager, the CLI, and client-side content
generation (which goes through ``/lab-generate`` so the API key stays on the
server).
"""

from __future__ import annotations

import os
from typing import Any

import httpx

from doomsday.config import DEFAULT_MAX_TOKENS, DEFAULT_MODEL, DEFAULT_TEMPERATURE
from doomsday.observability.logging import get_logger
from doomsday.storage.models import MessageRecord

logger = get_logger(__name__)

DEFAULT_API_URL = os.getenv("DOOMSDAY_API_URL", "http://localhost:8000")


class ApiError(RuntimeError):
    def __init__(
        self, message: str, status_code: int | None = None, category: str | None = None
    ):
        super().__init__(message)
        self.status_code = status_code
        self.category = category


class ConfigUnavailableError(ApiError):
    """The config endpoint is missing or the server cannot be reached."""


class DoomsdayAPI:
    def __init__(
        self,
        base_url: str = DEFAULT_API_URL,
        *,
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = http_client or httpx.AsyncClient(timeout=timeout)

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        response = await self._client.request(method, f"{self.base_url}{path}", **kwargs)
        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}

        if response.status_code >= 400 or data.get("success") is False:
            message = data.get("error") or data.get("detail") or f"HTTP {response.status_code}"
            raise ApiError(str(message), response.status_code, data.get("errorCategory"))
        return data

    async def get_config(self) -> dict[str, Any]:
        """
        Realtime connection settings.

        Raises:
            ConfigUnavailableError: endpoint missing (404), server unreachable, or
                the server reports its realtime configuration as incomplete
            ApiError: the endpoint exists but failed for another reason
        """
        try:
            return await self._request("GET", "/get-config")
        except httpx.TransportError as e:
            raise ConfigUnavailableError(f"Config endpoint unreachable: {e}") from e
        except ApiError as e:
            if e.status_code == 404:
                raise ConfigUnavailableError("Config endpoint not found", 404) from e
            if e.category == "configuration":
                raise ConfigUnavailableError(str(e), e.status_code, e.category) from e
            raise

    async def get_messages(self) -> list[MessageRecord]:
        data = await self._request("GET", "/get-messages")
        return [MessageRecord.model_validate(row) for row in data.get("messages", [])]

    async def send_message(self, nickname: str, text: str, color: str) -> MessageRecord:
        data = await self._request(
            "POST", "/send-message", json={"nickname": nickname, "text": text, "color": color}
        )
        return MessageRecord.model_validate(data["message"])

    async def clear_messages(self) -> int:
        data = await self._request("DELETE", "/clear-messages")
        return int(data.get("deletedCount", 0))

    async def get_theme(self) -> dict[str, Any]:
        return await self._request("GET", "/get-theme")

    async def generate_theme(self, content_type: str = "theme") -> dict[str, Any]:
        return await self._request("POST", "/generate-theme", json={"type": content_type})

    async def lab_generate(
        self,
        prompt: str,
        model: str = DEFAULT_MODEL,
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: int = DEFAULT_MAX_TOKENS,
    ) -> dict[str, Any]:
        return await self._request(
            "POST",
            "/lab-generate",
            json={
                "prompt": prompt,
                "model": model,
                "temperature": temperature,
                "maxTokens": max_tokens,
            },
        )

    async def generate(self, prompt: str) -> str:
        """Text for ``prompt`` with default settings; lets the API act as a text generator."""
        data = await self.lab_generate(prompt)
        text = data.get("text")
        if not text:
            raise ApiError("No content generated from AI")
        return str(text)

    async def aclose(self) -> None:
        await self._client.aclose()
