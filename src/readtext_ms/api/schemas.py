"""
API Request/Response Schemas.

Pydantic models for the HTTP endpoints. The request model is
loose: `text` is accepted as any JSON value so that a
missing or non-string text reaches the validators and is answered with
the same 400 body as every other invalid text.

Example Request:
    {
        "text": "Qual é a principal causa de insuficiência cardíaca?",
        "language": "pt-BR",
        "voice": "female"
    }

Example Response:
    {
        "audioContent": "SUQzBAAAAAAA...",
        "charsUsed": 52,
        "totalUsed": 418230,
        "service": "Google"
    }
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ReadTextRequest(BaseModel):
    """
    Speech request body for POST /api/readText.

    Attributes:
        text: Text to speak. Required; validated by the service layer.
        language: Language code, defaults to `app.default_language` (pt-BR).
        voice: Logical or native voice name; provider default when omitted.
    """
    model_config = ConfigDict(extra="ignore")

    text: Any = Field(default=None, description="Text to synthesize")
    language: Optional[Any] = Field(default=None, description="Language code (e.g. 'pt-BR')")
    voice: Optional[Any] = Field(default=None, description="Voice name ('female', 'Camila', 'pt-BR-Neural2-A', ...)")


class ReadTextResponse(BaseModel):
    audioContent: str = Field(description="Base64-encoded MP3 (or LINEAR16) audio")
    charsUsed: int = Field(description="Characters charged for this request")
    totalUsed: int = Field(description="Counter value after this request")
    service: str = Field(description="Provider that served the request: Google or Polly")


class ErrorResponse(BaseModel):
    """
    Error body. `remaining` is present on quota errors, `details` only in
    development mode.
    """
    model_config = ConfigDict(extra="allow")

    error: str
    code: Optional[str] = None
    remaining: Optional[int] = None
    details: Optional[Dict[str, Any]] = None


class CounterUsageModel(BaseModel):
    name: str
    counter: str
    used: int
    limit: int
    remaining: int


class UsageResponse(BaseModel):
    strategy: str
    counters: List[CounterUsageModel]
