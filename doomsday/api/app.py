"""FastAPI server for the Doomsday Countdown"""

from __future__ import annotations

from typing import Any

from dotenv import load_dotenv
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from doomsday.api.dependencies import close_resources
from doomsday.api.middleware.rate_limit import RateLimitMiddleware
from doomsday.api.routes.config import router as config_router
from doomsday.api.routes.content import router as content_router
from doomsday.api.routes.health import router as health_router
from doomsday.api.routes.lab import router as lab_router
from doomsday.api.routes.messages import router as messages_router
from doomsday.api.routes.realtime import router as realtime_router
from doomsday.config import (
    ALLOWED_ORIGINS,
    API_HOST,
    API_PORT,
    APP_VERSION,
    LOG_LEVEL,
    MissingEnvironmentError,
)
from doomsday.llm.errors import AIGatewayError, InvalidArgumentError
from doomsday.observability.logging import get_logger
from doomsday.observability.telemetry import counter, log_event
from doomsday.storage.facade import StorageError

# Load environment variables from .env file
load_dotenv()

logger = get_logger(__name__)

app = FastAPI(title="Doomsday Countdown API", version=APP_VERSION)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """
    Reject malformed bodies with 400 and the names of the offending fields.

    Side Effects:
        - Logs the validation errors
        - Increments api.validation_errors
    """
    logger.warning("Validation error on %s: %s", request.url.path, exc.errors())
    counter("api.validation_errors")

    invalid_fields = [str(err["loc"][-1]) for err in exc.errors() if err.get("loc")]
    first = exc.errors()[0] if exc.errors() else {}
    message = first.get("msg", "Invalid request")
    if invalid_fields:
        message = f"Invalid {invalid_fields[0]}: {message}"

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"success": False, "error": message, "invalid_fields": invalid_fields},
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    error = "Method not allowed" if exc.status_code == 405 else str(exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": error},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(StorageError)
async def storage_exception_handler(request: Request, exc: StorageError) -> JSONResponse:
    logger.error("Storage failure on %s: %s", request.url.path, exc)
    counter("api.storage_errors")
    return JSONResponse(status_code=500, content={"success": False, "error": str(exc)})


@app.exception_handler(AIGatewayError)
async def gateway_exception_handler(request: Request, exc: AIGatewayError) -> JSONResponse:
    logger.error("AI gateway failure on %s (%s): %s", request.url.path, exc.category, exc)
    status_code = 400 if isinstance(exc, InvalidArgumentError) else 500
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": str(exc), "errorCategory": exc.category},
    )


@app.exception_handler(MissingEnvironmentError)
async def missing_env_exception_handler(
    request: Request, exc: MissingEnvironmentError
) -> JSONResponse:
    logger.error("Configuration error on %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": str(exc), "errorCategory": "configuration"},
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials="*" not in ALLOWED_ORIGINS,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "apikey"],
)

# Request limits: 60/minute, 1000/hour per IP
app.add_middleware(RateLimitMiddleware)

app.include_router(health_router)
app.include_router(config_router)
app.include_router(messages_router)
app.include_router(content_router)
app.include_router(lab_router)
app.include_router(realtime_router)

log_event("api.startup", service="doomsday", version=APP_VERSION)


@app.on_event("shutdown")
async def shutdown() -> None:
    await close_resources()
    logger.info("Doomsday API shut down")


@app.get("/")
def root() -> dict[str, Any]:
    return {
        "service": "Doomsday Countdown API",
        "version": APP_VERSION,
        "status": "running",
        "endpoints": {
            "health": "/health",
            "config": "/get-config",
            "send_message": "/send-message",
            "get_messages": "/get-messages",
            "clear_messages": "/clear-messages",
            "theme": "/get-theme",
            "generate_theme": "/generate-theme",
            "generate_daily_content": "/generate-daily-content",
            "verify_daily_content": "/verify-daily-content",
            "lab": "/lab-generate",
            "realtime": "/realtime/{channel}",
        },
    }


def main() -> None:
    """Run the API with uvicorn."""
    import uvicorn

    uvicorn.run("doomsday.api.app:app", host=API_HOST, port=API_PORT, log_level=LOG_LEVEL.lower())


if __name__ == "__main__":
    main()
