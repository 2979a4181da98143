"""
Speech Synthesis Provider Base Class and Factory.

This module provides:
    - SynthesisProvider: Base class for paid speech synthesis vendors
    - create_provider(): Factory building a provider from configuration

Providers:
    - google: Google Cloud Text-to-Speech (REST, API key or OAuth2 bearer)
    - polly: AWS Polly SynthesizeSpeech (boto3, standard credential chain)

Voices:
    Callers pass a logical voice name ("female", "male", a native voice
    of either vendor, ...). Each provider maps it through its built-in
    table, merged with `providers.<name>.voice_mapping` from settings.
    Unknown names fall back to the provider's default voice, so a
    request aimed at Google can still be served by Polly.

Implementing a New Provider:
    1. Create providers/<name>.py
    2. Inherit from SynthesisProvider
    3. Implement synthesize() and is_configured()
    4. Register in create_provider()
"""
from __future__ import annotations

from typing import Dict, Optional

from readtext_ms.core.config import ReadTextConfig
from readtext_ms.core.logging import get_logger, verbose

_LOG = get_logger("readtext-ms.provider")


class SynthesisProvider:
    """
    Base class for speech synthesis providers.

    Subclasses must set `name`, `display_name` and `VOICES`, and
    implement synthesize() and is_configured().

    Failures are raised as UpstreamSynthesisError; quota decisions are
    never made here.
    """

    name: str = "base"
    display_name: str = "Base"
    VOICES: Dict[str, str] = {}

    def __init__(self, default_voice: str, voice_mapping: Optional[Dict[str, str]] = None):
        self.default_voice = default_voice
        self.voices: Dict[str, str] = dict(self.VOICES)
        self.voices.update(voice_mapping or {})
        self._voices_folded = {k.lower(): v for k, v in self.voices.items()}

    def resolve_voice(self, voice: Optional[str]) -> str:
        """Map a logical voice name to this provider's voice id."""
        if not voice:
            return self.default_voice
        resolved = self.voices.get(voice) or self._voices_folded.get(voice.lower())
        if resolved is None:
            verbose(_LOG, "voice_unmapped", provider=self.name, voice=voice, fallback=self.default_voice)
            return self.default_voice
        return resolved

    def synthesize(self, text: str, language_code: str, voice_id: Optional[str] = None) -> bytes:
        """
        Synthesize `text` and return the encoded audio bytes.

        Args:
            text: Text to speak, passed through unmodified.
            language_code: BCP-47 language code, e.g. "pt-BR".
            voice_id: Logical voice name; resolved via resolve_voice().

        Raises:
            UpstreamSynthesisError: On network, auth or request failures.
        """
        raise NotImplementedError

    def is_configured(self) -> bool:
        """True when credentials for this provider are available."""
        raise NotImplementedError

    def close(self) -> None:
        """Release network resources held by the provider."""


def create_provider(name: str, config: ReadTextConfig) -> SynthesisProvider:
    """
    Create a provider by name.

    Uses lazy imports so that a Google-only deployment never imports boto3.

    Raises:
        ValueError: If `name` is unknown.
    """
    if name == "google":
        from readtext_ms.tts.providers.google import GoogleProvider
        return GoogleProvider(config.google)

    if name == "polly":
        from readtext_ms.tts.providers.polly import PollyProvider
        return PollyProvider(config.polly)

    raise ValueError(f"Unknown provider: {name}")
