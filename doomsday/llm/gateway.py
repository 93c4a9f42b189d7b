"""
HTTP client for the Gemini generateContent API.

Two modes share one implementation:
  * interactive (``retry_on_rate_limit=False``): HTTP 429 surfaces at once as
    RateLimitedError, so the lab page can tell the user to wait.
  * batch (``retry_on_rate_limit=True``): HTTP 429 is retried up to
    LLM_RATE_LIMIT_RETRIES attempts with linear backoff (5s, 10s, ...).

Arguments are validated before any network call.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from doomsday.config import (
    ALLOWED_MODELS,
    DEFAULT_MAX_TOKENS,
    DEFAULT_MODEL,
    DEFAULT_TEMPERATURE,
    GEMINI_API_BASE,
    LLM_RATE_LIMIT_BACKOFF_SECONDS,
    LLM_RATE_LIMIT_RETRIES,
    LLM_TIMEOUT_SECONDS,
    MAX_TOKENS_MAX,
    MAX_TOKENS_MIN,
    TEMPERATURE_MAX,
    TEMPERATURE_MIN,
)
from doomsday.llm.errors import (
    AIGatewayError,
    GatewayTimeoutError,
    InvalidArgumentError,
    NoContentError,
    RateLimitedError,
    UnknownGatewayError,
    error_for_status,
)
from doomsday.observability.logging import get_logger
from doomsday.observability.telemetry import counter, log_event, time_block

logger = get_logger(__name__)


def validate_generation_args(
    prompt: Any, model: Any, temperature: Any, max_tokens: Any
) -> tuple[str, str, float, int]:
    """Check and coerce generation arguments. Raises InvalidArgumentError."""
    if not isinstance(prompt, str) or not prompt.strip():
        raise InvalidArgumentError("Prompt is required")

    if model not in ALLOWED_MODELS:
        raise InvalidArgumentError(f"Invalid model. Allowed models: {', '.join(ALLOWED_MODELS)}")

    try:
        temperature_value = float(temperature)
    except (TypeError, ValueError):
        raise InvalidArgumentError("Temperature must be between 0.1 and 1.0") from None
    if not TEMPERATURE_MIN <= temperature_value <= TEMPERATURE_MAX:
        raise InvalidArgumentError("Temperature must be between 0.1 and 1.0")

    try:
        tokens_value = int(max_tokens)
    except (TypeError, ValueError):
        raise InvalidArgumentError("Max tokens must be between 10 and 1000") from None
    if not MAX_TOKENS_MIN <= tokens_value <= MAX_TOKENS_MAX:
        raise InvalidArgumentError("Max tokens must be between 10 and 1000")

    return prompt, model, temperature_value, tokens_value


def extract_text(data: Any) -> str | None:
    """Pull ``candidates[0].content.parts[0].text`` out of a response body."""
    try:
        text = data["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        return None
    return text if isinstance(text, str) and text.strip() else None


def _error_details(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if body.get("message"):
            return str(body["message"])
    return response.text


class AIGatewayClient:
    """Validated, timed calls to the generative-text API."""

    def __init__(
        self,
        api_key: str,
        *,
        retry_on_rate_limit: bool = False,
        base_url: str = GEMINI_API_BASE,
        timeout: float = LLM_TIMEOUT_SECONDS,
        max_attempts: int = LLM_RATE_LIMIT_RETRIES,
        backoff_seconds: float = LLM_RATE_LIMIT_BACKOFF_SECONDS,
        http_client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.api_key = api_key
        self.retry_on_rate_limit = retry_on_rate_limit
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._sleep = sleep

    async def generate(
        self,
        prompt: str,
        model: str = DEFAULT_MODEL,
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: int = DEFAULT_MAX_TOKENS,
    ) -> str:
        """
        Generate text for ``prompt``.

        Raises:
            InvalidArgumentError: bad prompt/model/temperature/max_tokens (no network call)
            AIGatewayError: any other failure, classified by cause
        """
        prompt, model, temperature, max_tokens = validate_generation_args(
            prompt, model, temperature, max_tokens
        )

        with time_block("llm.generate"):
            if not self.retry_on_rate_limit:
                text = await self._generate_once(prompt, model, temperature, max_tokens)
            else:
                text = ""
                retrying = AsyncRetrying(
                    stop=stop_after_attempt(self.max_attempts),
                    wait=wait_incrementing(start=self.backoff_seconds, increment=self.backoff_seconds),
                    retry=retry_if_exception_type(RateLimitedError),
                    before_sleep=self._log_rate_limit,
                    sleep=self._sleep,
                    reraise=True,
                )
                async for attempt in retrying:
                    with attempt:
                        text = await self._generate_once(prompt, model, temperature, max_tokens)

        log_event(
            "llm.generated",
            model=model,
            prompt_length=len(prompt),
            response_length=len(text),
        )
        return text

    def _log_rate_limit(self, retry_state: RetryCallState) -> None:
        delay = retry_state.next_action.sleep if retry_state.next_action else 0
        counter("llm.rate_limit_retry")
        logger.warning(
            "Rate limited, waiting %.0fs before retry %d/%d",
            delay,
            retry_state.attempt_number,
            self.max_attempts,
        )

    async def _generate_once(
        self, prompt: str, model: str, temperature: float, max_tokens: int
    ) -> str:
        try:
            return await asyncio.wait_for(
                self._post(prompt, model, temperature, max_tokens), timeout=self.timeout
            )
        except (TimeoutError, httpx.TimeoutException):
            counter("llm.timeout")
            logger.error("Gemini request timed out after %.0fs", self.timeout)
            raise GatewayTimeoutError(
                f"Request timeout: {model} took too long to respond (>{self.timeout:.0f}s). "
                "Try using Gemini Flash for faster responses."
            ) from None

    async def _post(self, prompt: str, model: str, temperature: float, max_tokens: int) -> str:
        url = f"{self.base_url}/models/{model}:generateContent"
        payload = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {"temperature": temperature, "maxOutputTokens": max_tokens},
        }

        try:
            response = await self._client.post(url, params={"key": self.api_key}, json=payload)
        except httpx.TimeoutException:
            raise
        except httpx.HTTPError as e:
            counter("llm.network_error")
            raise UnknownGatewayError(f"Gemini API request failed: {e}") from e

        if response.status_code != 200:
            details = _error_details(response)
            counter(f"llm.status.{response.status_code}")
            logger.error(
                "Gemini API error: status=%d model=%s prompt_length=%d details=%s",
                response.status_code,
                model,
                len(prompt),
                details,
            )
            raise error_for_status(response.status_code, model, details)

        try:
            data = response.json()
        except ValueError as e:
            raise UnknownGatewayError("Gemini API returned a non-JSON body") from e

        text = extract_text(data)
        if text is None:
            counter("llm.no_content")
            logger.error("No content in Gemini response for model %s", model)
            raise NoContentError("No content generated from AI")

        return text.strip()

    async def aclose(self) -> None:
        await self._client.aclose()


__all__ = ["AIGatewayClient", "AIGatewayError", "validate_generation_args", "extract_text"]
