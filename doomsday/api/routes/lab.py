"""Prompt lab: one-off generations with caller-chosen model settings."""

from __future__ import annotations

import time
from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from doomsday.api.dependencies import get_lab_gateway
from doomsday.config import DEFAULT_MAX_TOKENS, DEFAULT_MODEL, DEFAULT_TEMPERATURE
from doomsday.llm.errors import AIGatewayError, InvalidArgumentError
from doomsday.llm.gateway import AIGatewayClient, validate_generation_args
from doomsday.observability.logging import get_logger
from doomsday.observability.telemetry import counter

logger = get_logger(__name__)

router = APIRouter(tags=["lab"])


class LabRequest(BaseModel):
    """Loosely typed so range and type errors come back as gateway errors, not 422s."""

    model_config = ConfigDict(populate_by_name=True)

    prompt: Any = None
    model: Any = DEFAULT_MODEL
    temperature: Any = DEFAULT_TEMPERATURE
    max_tokens: Any = Field(default=DEFAULT_MAX_TOKENS, alias="maxTokens")


def _error_response(request: LabRequest, error: AIGatewayError) -> JSONResponse:
    status_code = 400 if isinstance(error, InvalidArgumentError) else 500
    prompt = request.prompt if isinstance(request.prompt, str) else ""
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": str(error),
            "errorType": type(error).__name__,
            "errorCategory": error.category,
            "details": {
                "prompt": prompt[:100] + "...",
                "model": str(request.model),
                "temperature": request.temperature,
                "maxTokens": request.max_tokens,
                "suggestion": error.suggestion,
            },
        },
    )


@router.post("/lab-generate")
async def lab_generate(
    request: LabRequest,
    gateway: AIGatewayClient = Depends(get_lab_gateway),
) -> Any:
    """
    Run a single generation.

    Rate limits are not retried here; the caller sees ``rate_limit`` at once.
    """
    try:
        prompt, model, temperature, max_tokens = validate_generation_args(
            request.prompt, request.model, request.temperature, request.max_tokens
        )
    except InvalidArgumentError as e:
        counter("api.lab.invalid")
        return _error_response(request, e)

    started = time.perf_counter()
    try:
        text = await gateway.generate(prompt, model, temperature, max_tokens)
    except AIGatewayError as e:
        logger.error("Lab generation failed (%s): %s", e.category, e)
        return _error_response(request, e)
    duration_ms = int((time.perf_counter() - started) * 1000)

    return {
        "success": True,
        "text": text,
        "metadata": {
            "model": model,
            "temperature": temperature,
            "maxTokens": max_tokens,
            "promptLength": len(prompt),
            "responseLength": len(text),
            "durationMs": duration_ms,
        },
    }
