"""
Input Validation for Speech Requests.

Validation happens before rate limiting and quota work, so malformed
requests never consume a rate-limit point or touch the counter store.

Validation Rules:
    - Text: Required, must be a non-empty string, at most
      `app.max_text_chars` characters. Passed on unmodified, so the
      characters charged equal len(text).
    - Language: Optional, max 16 characters
    - Voice: Optional, max 64 characters

All failures raise InvalidInputError (HTTP 400). The public message is
always "Texto inválido ou não fornecido" for text problems; the reason
goes into `details`, which is only shown in development mode.

Usage:
    from readtext_ms.services.validators import validate_text

    text = validate_text(body.get("text"), max_length=config.app.max_text_chars)
"""
from __future__ import annotations

from typing import Any, Optional

from readtext_ms.core.errors import InvalidInputError
from readtext_ms.core.logging import get_logger, verbose

_LOG = get_logger("readtext-ms.validators")

MAX_LANGUAGE_LENGTH = 16
MAX_VOICE_LENGTH = 64


def validate_text(text: Any, max_length: int = 5000) -> str:
    """
    Validate request text.

    Args:
        text: Raw `text` value from the request body (any JSON type)
        max_length: Maximum allowed length

    Returns:
        The text, unchanged

    Raises:
        InvalidInputError: If validation fails
    """
    if not isinstance(text, str):
        verbose(_LOG, "text_rejected", reason="not_a_string", type=type(text).__name__)
        raise InvalidInputError(details={"reason": "TEXT_REQUIRED"})

    if not text:
        verbose(_LOG, "text_rejected", reason="empty")
        raise InvalidInputError(details={"reason": "TEXT_EMPTY"})

    if len(text) > max_length:
        verbose(_LOG, "text_rejected", reason="too_long", chars=len(text))
        raise InvalidInputError(
            details={"reason": "TEXT_TOO_LONG", "chars": len(text), "max_chars": max_length},
        )

    return text


def validate_language(language: Any, default: str, max_length: int = MAX_LANGUAGE_LENGTH) -> str:
    """
    Validate a language code, applying the default when absent.

    Raises:
        InvalidInputError: If the value is not a string or is too long
    """
    if language is None or language == "":
        return default
    if not isinstance(language, str) or len(language) > max_length:
        raise InvalidInputError("Idioma inválido", details={"reason": "LANGUAGE_INVALID"})
    return language


def validate_voice(voice: Any, max_length: int = MAX_VOICE_LENGTH) -> Optional[str]:
    """
    Validate a logical voice name. None means "provider default".

    Raises:
        InvalidInputError: If the value is not a string or is too long
    """
    if voice is None or voice == "":
        return None
    if not isinstance(voice, str) or len(voice) > max_length:
        raise InvalidInputError("Voz inválida", details={"reason": "VOICE_INVALID"})
    return voice


def text_preview(text: str, max_chars: int) -> str:
    """Shorten text for log lines."""
    if max_chars <= 0:
        return ""
    flat = " ".join(text.split())
    if len(flat) <= max_chars:
        return flat
    return flat[: max_chars - 3] + "..."
