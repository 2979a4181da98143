"""Shared fixtures: in-memory collaborators and scripted providers."""
from __future__ import annotations

import os
from typing import Any, Dict, List, Optional

import pytest

# Keep test runs quiet and independent of a local settings file
os.environ.setdefault("READTEXT_MS_NO_COLOR", "1")
os.environ.setdefault("READTEXT_MS_SETTINGS", "tests/_no_settings.yaml")

from readtext_ms.core.config import Settings
from readtext_ms.quota.rate_limiter import MemoryRateLimiter
from readtext_ms.quota.store import MemoryQuotaStore
from readtext_ms.services.speech_service import build_coordinator, reset_coordinator
from readtext_ms.tts.provider import SynthesisProvider


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedProvider(SynthesisProvider):
    """
    Provider whose outcome is set by the test.

    `failures` is a list of exceptions raised by successive calls; once
    empty, calls succeed with `audio`.
    """

    VOICES = {"female": "F1", "male": "M1"}

    def __init__(self, name: str, display_name: str, audio: bytes = b"ID3fake-mp3",
                 failures: Optional[List[Exception]] = None, configured: bool = True):
        super().__init__(default_voice="D1")
        self.name = name
        self.display_name = display_name
        self.audio = audio
        self.failures = list(failures or [])
        self.configured = configured
        self.calls: List[Dict[str, Any]] = []

    def synthesize(self, text: str, language_code: str, voice_id: Optional[str] = None) -> bytes:
        self.calls.append({"text": text, "language": language_code, "voice": voice_id})
        if self.failures:
            raise self.failures.pop(0)
        return self.audio

    def is_configured(self) -> bool:
        return self.configured


def make_config(raw: Optional[Dict[str, Any]] = None):
    """Validated config with the memory store unless the test says otherwise."""
    raw = dict(raw or {})
    raw.setdefault("store", {"backend": "memory"})
    return Settings(raw=raw).get_config()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return MemoryQuotaStore()


@pytest.fixture
def limiter(clock):
    return MemoryRateLimiter(clock=clock)


@pytest.fixture
def google():
    return ScriptedProvider("google", "Google", audio=b"google-audio")


@pytest.fixture
def polly():
    return ScriptedProvider("polly", "Polly", audio=b"polly-audio")


@pytest.fixture
def make_coordinator(store, limiter, google, polly):
    """Factory building a coordinator over the shared fakes."""
    def _make(raw: Optional[Dict[str, Any]] = None):
        return build_coordinator(
            make_config(raw),
            store=store,
            limiter=limiter,
            providers={"google": google, "polly": polly},
        )
    return _make


@pytest.fixture(autouse=True)
def _reset_singletons():
    yield
    reset_coordinator()
