"""
readtext-ms Services Layer.

Business logic between the API layer and the quota/provider layers.

Components:
    - speech_service.py: SpeechRequestCoordinator (rate limit, quota,
      provider fallback, rollback)
    - validators.py: Input validation functions
"""
from .speech_service import (
    CounterUsage,
    SpeechRequestCoordinator,
    SynthesisRequest,
    SynthesisResult,
    build_coordinator,
    get_coordinator,
    reset_coordinator,
)

__all__ = [
    "SpeechRequestCoordinator",
    "SynthesisRequest",
    "SynthesisResult",
    "CounterUsage",
    "build_coordinator",
    "get_coordinator",
    "reset_coordinator",
]
