"""
Error Codes and Exceptions.

Every failure the proxy can report to a caller is a ReadTextError carrying
one of the ErrorCode values below. The API layer maps codes to HTTP
statuses and renders `to_dict()` as the JSON body:

    INVALID_INPUT      -> 400  text missing, not a string, empty, too long
    RATE_LIMITED       -> 429  a per-identifier window is exhausted
    QUOTA_EXCEEDED     -> 429  character budget exhausted, carries `remaining`
    UPSTREAM_FAILED    -> 500  the speech provider failed
    STORE_UNAVAILABLE  -> 503  the counter store could not be reached
    INTERNAL_ERROR     -> 500  anything else

`details` are diagnostic (upstream status, raw response, exception type)
and are only rendered when the development flag (`app.debug`) is on.
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class ErrorCode:
    """Standardized error codes for API responses."""
    INVALID_INPUT = "INVALID_INPUT"
    RATE_LIMITED = "RATE_LIMITED"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    UPSTREAM_FAILED = "UPSTREAM_FAILED"
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"
    INTERNAL_ERROR = "INTERNAL_ERROR"


STATUS_MAP = {
    ErrorCode.INVALID_INPUT: 400,
    ErrorCode.RATE_LIMITED: 429,
    ErrorCode.QUOTA_EXCEEDED: 429,
    ErrorCode.UPSTREAM_FAILED: 500,
    ErrorCode.STORE_UNAVAILABLE: 503,
    ErrorCode.INTERNAL_ERROR: 500,
}

INVALID_TEXT_MESSAGE = "Texto inválido ou não fornecido"
METHOD_NOT_ALLOWED_MESSAGE = "Método não permitido"
RATE_LIMITED_MESSAGE = "Too Many Requests"
INTERNAL_ERROR_MESSAGE = "Erro interno no servidor"


class ReadTextError(Exception):
    """
    Base exception for proxy errors.

    Attributes:
        message: Human-readable error message, shown to the caller.
        code: Error code from ErrorCode class.
        details: Diagnostic context, only exposed in development mode.
        payload: Extra public fields merged into the response body.
    """
    def __init__(
        self,
        message: str,
        code: str = ErrorCode.INTERNAL_ERROR,
        details: Optional[Dict[str, Any]] = None,
        payload: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        self.payload = payload or {}
        super().__init__(message)

    @property
    def status_code(self) -> int:
        return STATUS_MAP.get(self.code, 500)

    def to_dict(self, include_details: bool = False) -> Dict[str, Any]:
        """Convert to the JSON error body returned by the API."""
        result: Dict[str, Any] = {"error": self.message, "code": self.code}
        result.update(self.payload)
        if include_details and self.details:
            result["details"] = self.details
        return result


class InvalidInputError(ReadTextError):
    """Raised when the request text is absent, not a string, or unusable."""
    def __init__(self, message: str = INVALID_TEXT_MESSAGE, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.INVALID_INPUT, details)


class RateLimitExceededError(ReadTextError):
    """
    Raised when a caller exhausts one of its rate-limit windows.

    Attributes:
        window: Name of the window that rejected the request.
        retry_after: Seconds until that window resets.
    """
    def __init__(self, window: str, retry_after: int, details: Optional[Dict] = None):
        self.window = window
        self.retry_after = max(0, int(retry_after))
        merged = {"window": window, "retry_after": self.retry_after}
        merged.update(details or {})
        super().__init__(RATE_LIMITED_MESSAGE, ErrorCode.RATE_LIMITED, merged)


class QuotaExceededError(ReadTextError):
    """
    Raised when a character budget cannot absorb the request.

    `remaining` is the limit minus the usage observed at rejection time,
    never adjusted for the size of the rejected text.
    """
    def __init__(self, message: str, counter: str, limit: int, used: int):
        self.counter = counter
        self.limit = limit
        self.used = used
        self.remaining = max(0, limit - used)
        super().__init__(
            message,
            ErrorCode.QUOTA_EXCEEDED,
            details={"counter": counter, "limit": limit, "used": used},
            payload={"remaining": self.remaining},
        )


class UpstreamSynthesisError(ReadTextError):
    """
    Raised when a speech provider fails (network, auth, bad voice/language).

    Attributes:
        provider: Name of the provider that failed.
        upstream_status: HTTP status reported by the provider, if any.
    """
    def __init__(
        self,
        message: str,
        provider: str,
        upstream_status: Optional[int] = None,
        details: Optional[Dict] = None,
    ):
        self.provider = provider
        self.upstream_status = upstream_status
        merged: Dict[str, Any] = {"provider": provider}
        if upstream_status is not None:
            merged["upstream_status"] = upstream_status
        merged.update(details or {})
        super().__init__(message, ErrorCode.UPSTREAM_FAILED, merged)


class StoreUnavailableError(ReadTextError):
    """Raised when the counter store cannot be reached; fatal for the request."""
    def __init__(self, message: str = "Armazenamento de cotas indisponível", details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.STORE_UNAVAILABLE, details)
