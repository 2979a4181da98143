"""
Speech Provider Implementations.

    - GoogleProvider: Google Cloud Text-to-Speech over REST (httpx)
    - PollyProvider: AWS Polly through boto3

Classes are imported lazily so that importing this package does not
pull in boto3 or google-auth until a provider is actually used.
"""
from __future__ import annotations

__all__ = ["GoogleProvider", "PollyProvider"]


def __getattr__(name: str):
    if name == "GoogleProvider":
        from readtext_ms.tts.providers.google import GoogleProvider
        return GoogleProvider
    if name == "PollyProvider":
        from readtext_ms.tts.providers.polly import PollyProvider
        return PollyProvider
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
