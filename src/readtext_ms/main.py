"""
FastAPI Application Entry Point.

Creates the FastAPI application for readtext-ms: routes, logging,
metrics toggle and the exception handlers that keep every error a JSON
object with an `error` message.

Usage:
    uvicorn readtext_ms.main:app --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from readtext_ms import __version__
from readtext_ms.api.dependencies import get_settings
from readtext_ms.api.routes import error_response, router
from readtext_ms.core.errors import (
    INTERNAL_ERROR_MESSAGE,
    INVALID_TEXT_MESSAGE,
    METHOD_NOT_ALLOWED_MESSAGE,
    ErrorCode,
    ReadTextError,
)
from readtext_ms.core.logging import configure_logging, fail, get_logger, get_request_id, info
from readtext_ms.core.metrics import metrics
from readtext_ms.services.speech_service import reset_coordinator

_LOG = get_logger("readtext-ms.main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    info(_LOG, "startup", version=__version__, strategy=settings.strategy, metrics=metrics.enabled)
    yield
    reset_coordinator()
    info(_LOG, "shutdown")


async def _readtext_error_handler(request: Request, exc: ReadTextError) -> JSONResponse:
    # Raised outside the route body, e.g. while building the coordinator
    return error_response(exc, get_request_id(), include_details=get_settings().debug)


async def _http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == 405:
        return JSONResponse(status_code=405, content={"error": METHOD_NOT_ALLOWED_MESSAGE}, headers=exc.headers)
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)}, headers=exc.headers)


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"error": INVALID_TEXT_MESSAGE, "code": ErrorCode.INVALID_INPUT},
    )


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    fail(_LOG, "unhandled_error", path=request.url.path, error=str(exc), error_type=type(exc).__name__)
    content = {"error": INTERNAL_ERROR_MESSAGE, "code": ErrorCode.INTERNAL_ERROR}
    if get_settings().debug:
        content["details"] = {"error_type": type(exc).__name__, "error": str(exc)}
    return JSONResponse(status_code=500, content=content)


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    This factory function:
        1. Configures structured logging (READTEXT_MS_LOG_LEVEL etc.)
        2. Applies the `metrics.enabled` setting
        3. Registers the API router and the JSON exception handlers

    Returns:
        FastAPI: Configured application instance ready to serve requests.
    """
    configure_logging()

    settings = get_settings()
    metrics.set_enabled(settings.get_config().metrics_enabled)

    app = FastAPI(title="readtext-ms", version=__version__, lifespan=lifespan)
    app.include_router(router)

    app.add_exception_handler(ReadTextError, _readtext_error_handler)
    app.add_exception_handler(StarletteHTTPException, _http_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)

    return app


# Global application instance for ASGI servers (uvicorn, gunicorn, etc.)
app = create_app()
