"""
readtext-ms: Rate-limited, quota-governed text-to-speech proxy.

Turns question and explanation text into speech audio for the exam
practice app, while keeping paid provider usage under hard character
budgets.

Key Features:
    - Per-client request throttling over two windows (minute, day)
    - Character quotas held in a shared counter store (Redis)
    - Global or per-provider budget strategies
    - Google Cloud TTS with AWS Polly fallback
    - Compensating rollback of reserved characters on provider failure
    - Prometheus metrics and structured logging

Example Usage:
    >>> from readtext_ms.core.config import load_settings
    >>> from readtext_ms.services import SynthesisRequest, get_coordinator
    >>>
    >>> coordinator = get_coordinator(load_settings())
    >>> result = coordinator.synthesize(SynthesisRequest(text="Olá, mundo"))
    >>> print(result.service, result.total_used)
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
