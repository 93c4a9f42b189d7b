"""
Failure taxonomy for the generative-text gateway.

Every error carries a machine-readable ``category`` and a user-facing
``suggestion`` which the lab endpoint passes through to the browser.
"""

from __future__ import annotations


class AIGatewayError(RuntimeError):
    category = "unknown"
    suggestion = "Try again or contact support"

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class InvalidArgumentError(AIGatewayError):
    category = "invalid_argument"
    suggestion = "Check the prompt, model, temperature and token settings"


class UnauthorizedError(AIGatewayError):
    category = "authentication"
    suggestion = "Check API key configuration in environment variables"


class ForbiddenError(AIGatewayError):
    category = "model_unavailable"
    suggestion = "This model may not be available for your account. Try Gemini 2.0 Flash instead"


class ModelNotFoundError(AIGatewayError):
    category = "model_not_found"
    suggestion = "Pick one of the supported models"


class RateLimitedError(AIGatewayError):
    category = "rate_limit"
    suggestion = "Wait a few minutes before trying again, or use a different model"


class ServiceUnavailableError(AIGatewayError):
    category = "service_unavailable"
    suggestion = "Gemini service is temporarily unavailable. Try again in a few minutes"


class GatewayTimeoutError(AIGatewayError):
    category = "timeout"
    suggestion = "Try using a faster model like Gemini 2.0 Flash"


class NoContentError(AIGatewayError):
    category = "no_content"
    suggestion = "Rephrase the prompt or raise the token limit"


class UnknownGatewayError(AIGatewayError):
    pass


def error_for_status(status_code: int, model: str, details: str) -> AIGatewayError:
    """Map a non-2xx response from the API to the taxonomy."""
    if status_code == 400:
        return InvalidArgumentError(f"Invalid request for model {model}: {details}", status_code)
    if status_code == 401:
        return UnauthorizedError("Authentication failed: Check API key configuration", status_code)
    if status_code == 403:
        return ForbiddenError(
            f"Access denied: Model {model} may not be available for your account", status_code
        )
    if status_code == 404:
        return ModelNotFoundError(f"Model not found: {model} is not available", status_code)
    if status_code == 429:
        return RateLimitedError(
            f"Rate limit exceeded for model {model}: Try again later", status_code
        )
    if status_code in (502, 503, 504):
        return ServiceUnavailableError(
            f"Gemini service unavailable for model {model}: Try a different model", status_code
        )
    return UnknownGatewayError(f"Gemini API error {status_code}: {details}", status_code)
