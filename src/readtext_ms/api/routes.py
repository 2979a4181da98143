"""
Speech Proxy API Routes.

Endpoints:
    POST /api/readText  - Synthesize text, returns base64 audio and usage
    GET  /api/usage     - Current character counters for the active strategy
    GET  /health        - Store reachability and provider configuration
    GET  /metrics       - Prometheus metrics

Request Flow (POST /api/readText):
    1. Generate a request ID for tracing (echoed as X-Request-Id)
    2. Resolve the client identifier (X-Real-IP, X-Forwarded-For, peer)
    3. Hand the request to SpeechRequestCoordinator.synthesize()
    4. Return {audioContent, charsUsed, totalUsed, service}

Error Handling:
    Errors are JSON objects with an `error` message:
        400 {"error": "Texto inválido ou não fornecido", "code": "INVALID_INPUT"}
        429 {"error": "Limite global excedido", "code": "QUOTA_EXCEEDED", "remaining": 200}
        429 {"error": "Too Many Requests", "code": "RATE_LIMITED"}   + Retry-After
        500 {"error": "<provider message>", "code": "UPSTREAM_FAILED"}
        503 {"error": "...", "code": "STORE_UNAVAILABLE"}
    `details` is added only when `app.debug` is on.

Example Usage:
    curl -X POST http://localhost:8000/api/readText \\
        -H "Content-Type: application/json" \\
        -d '{"text": "Olá, tudo bem?"}'
"""
from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse

from readtext_ms.api.dependencies import get_speech_coordinator
from readtext_ms.api.schemas import ErrorResponse, ReadTextRequest, ReadTextResponse, UsageResponse
from readtext_ms.core.errors import RateLimitExceededError, ReadTextError
from readtext_ms.core.logging import get_logger, set_request_id, warn
from readtext_ms.core.metrics import metrics
from readtext_ms.services.speech_service import SpeechRequestCoordinator, SynthesisRequest

router = APIRouter()

_LOG = get_logger("readtext-ms.api")

_ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    429: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


def new_request_id() -> str:
    return str(uuid.uuid4())[:12]


def client_identifier(request: Request) -> str:
    """
    Identify the caller for rate limiting.

    Order: X-Real-IP, first X-Forwarded-For entry, socket peer. Returns
    "" when none is known; the limiter maps that to a shared bucket.
    """
    real_ip = request.headers.get("x-real-ip")
    if real_ip and real_ip.strip():
        return real_ip.strip()

    forwarded: Optional[str] = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    if request.client is not None and request.client.host:
        return request.client.host
    return ""


def error_response(error: ReadTextError, request_id: str, include_details: bool = False) -> JSONResponse:
    """Render a ReadTextError as its HTTP status and JSON body."""
    headers = {"X-Request-Id": request_id}
    if isinstance(error, RateLimitExceededError):
        headers["Retry-After"] = str(error.retry_after)
    return JSONResponse(
        status_code=error.status_code,
        content=error.to_dict(include_details=include_details),
        headers=headers,
    )


@router.post("/api/readText", response_model=ReadTextResponse, responses=_ERROR_RESPONSES)
def read_text(
    req: ReadTextRequest,
    request: Request,
    response: Response,
    coordinator: SpeechRequestCoordinator = Depends(get_speech_coordinator),
):
    """
    Convert text to speech.

    Applies the caller's rate-limit windows, charges len(text) to the
    active character quota and returns base64 audio from Google or, in
    per-provider mode, from Polly when Google is exhausted or failing.
    """
    rid = new_request_id()
    set_request_id(rid)

    synth_request = SynthesisRequest(
        text=req.text,
        language=req.language,
        voice=req.voice,
        client_identifier=client_identifier(request),
    )

    try:
        result = coordinator.synthesize(synth_request, rid)
    except ReadTextError as e:
        if e.status_code >= 500:
            warn(_LOG, "request_error", code=e.code, error=e.message)
        return error_response(e, rid, include_details=coordinator.config.app.debug)

    response.headers["X-Request-Id"] = rid
    return result.to_response()


@router.get("/api/usage", response_model=UsageResponse, responses={503: {"model": ErrorResponse}})
def usage(coordinator: SpeechRequestCoordinator = Depends(get_speech_coordinator)):
    """
    Character usage per counter of the active strategy.

    Read-only; not rate limited.
    """
    return {
        "strategy": coordinator.strategy,
        "counters": [c.to_dict() for c in coordinator.usage()],
    }


@router.get("/health")
def health(coordinator: SpeechRequestCoordinator = Depends(get_speech_coordinator)):
    """
    Health check for load balancers and orchestrators.

    Answers 503 when the counter store is unreachable, since no request
    can be served without it.
    """
    info = coordinator.health()
    return JSONResponse(status_code=200 if info["ok"] else 503, content=info)


@router.get("/metrics")
def prometheus_metrics():
    """Prometheus metrics endpoint."""
    content, content_type = metrics.get_metrics_response()
    return Response(content=content, media_type=content_type)
