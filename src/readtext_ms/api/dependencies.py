"""
FastAPI Dependency Injection Providers.

    1. get_settings() - Loads and caches application configuration
    2. get_speech_coordinator() - Returns the process-wide coordinator

The coordinator (and with it the Redis connection pool and provider HTTP
clients) is created once per process and shared by all requests.

Usage in Route Handlers:
    from fastapi import Depends
    from readtext_ms.api.dependencies import get_speech_coordinator

    @router.post("/api/readText")
    def read_text(
        req: ReadTextRequest,
        coordinator: SpeechRequestCoordinator = Depends(get_speech_coordinator),
    ):
        ...

Tests replace `get_speech_coordinator` through `app.dependency_overrides`.
"""
from __future__ import annotations

import os
from functools import lru_cache

from readtext_ms.core.config import Settings, load_settings
from readtext_ms.services.speech_service import SpeechRequestCoordinator, get_coordinator


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Load and cache application settings.

    The path comes from READTEXT_MS_SETTINGS (default
    `config/settings.yaml`). A missing file means all defaults.
    """
    return load_settings(os.getenv("READTEXT_MS_SETTINGS", "config/settings.yaml"))


def get_speech_coordinator() -> SpeechRequestCoordinator:
    """
    Get the singleton SpeechRequestCoordinator.

    Created lazily on the first request and reused thereafter.

    Raises:
        ConfigValidationError: If the settings are invalid.
        StoreUnavailableError: If the Redis backend is selected but
            REDIS_URL is not set.
    """
    return get_coordinator(get_settings())
