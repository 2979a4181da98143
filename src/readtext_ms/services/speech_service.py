"""
SpeechRequestCoordinator - Rate-limited, quota-governed synthesis.

The coordinator owns no persistent state. It composes a RateLimiter, a
QuotaStore and one or two SynthesisProviders, and runs every request
through the same sequence:

    Validate -> Rate limit -> Reserve quota -> Synthesize -> Respond
                                   |               |
                                   |               +-- failure: roll back the
                                   |                   reservation, then (per
                                   |                   provider mode) fall back once
                                   +-- exhausted: reject, or (per provider mode)
                                       move on to the next provider

Quota Strategies:
    global:        one counter (`totalCharsUsed`, 1,000,000 chars) for all
                   traffic, served by `quota.global_provider`. A provider
                   failure is terminal after rollback.
    per_provider:  one counter per provider (`googleCharsUsed`,
                   `pollyCharsUsed`). The first provider in
                   `quota.provider_order` is tried first; the second is used
                   when the first is out of budget or fails. Never more
                   than two attempts.

Reservation:
    The counter is read first so obviously hopeless requests cause no
    write (`quota.precheck`), then atomically incremented by len(text).
    The value returned by the increment is authoritative: if it is past
    the limit, a concurrent request won the race, the increment is rolled
    back and the request is rejected. Counters therefore never stay
    above their limit because of this service.

Rollback:
    Best-effort. A failed decrement is logged and counted in metrics but
    never replaces the error the caller receives.

Example:
    >>> coordinator = build_coordinator(config, store=MemoryQuotaStore())
    >>> result = coordinator.synthesize(SynthesisRequest(text="Olá"))
    >>> result.to_response()
    {'audioContent': '...', 'charsUsed': 3, 'totalUsed': 3, 'service': 'Google'}
"""
from __future__ import annotations

import base64
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from readtext_ms.core.config import CounterConfig, ReadTextConfig, Settings
from readtext_ms.core.errors import (
    INTERNAL_ERROR_MESSAGE,
    ErrorCode,
    QuotaExceededError,
    RateLimitExceededError,
    ReadTextError,
    UpstreamSynthesisError,
)
from readtext_ms.core.logging import debug, error, fail, get_logger, info, success, verbose, warn
from readtext_ms.core.metrics import metrics
from readtext_ms.quota.rate_limiter import RateLimiter, create_rate_limiter
from readtext_ms.quota.store import QuotaStore, create_store
from readtext_ms.services.validators import (
    text_preview,
    validate_language,
    validate_text,
    validate_voice,
)
from readtext_ms.tts.provider import SynthesisProvider, create_provider
from readtext_ms.utils.timeit import timeit

_LOG = get_logger("readtext-ms.coordinator")

GLOBAL_LIMIT_MESSAGE = "Limite global excedido"


def provider_limit_message(display_name: str) -> str:
    return f"Limite do {display_name} excedido"


# =============================================================================
# Request/Response Dataclasses
# =============================================================================

@dataclass
class SynthesisRequest:
    """
    A speech request as received from a caller.

    Attributes:
        text: Text to speak. Typed Any because it arrives straight from
            JSON and is validated by the coordinator.
        language: Language code; `app.default_language` when omitted.
        voice: Logical voice name; the provider default when omitted.
        client_identifier: Rate-limit bucket, usually the client IP.
        profile: Rate-limit profile name.
    """
    text: Any
    language: Optional[str] = None
    voice: Optional[str] = None
    client_identifier: Optional[str] = None
    profile: str = "tts"


@dataclass
class SynthesisResult:
    """
    Result of a served request.

    Attributes:
        audio_content: Base64-encoded audio.
        chars_used: Characters charged, len(text).
        total_used: Counter value right after this request's increment.
        service: Display name of the provider that served it.
        provider: Provider key ("google" / "polly").
        counter: Counter that was charged.
        request_id: Request ID for tracing.
        seconds: Total processing time.
    """
    audio_content: str
    chars_used: int
    total_used: int
    service: str
    provider: str
    counter: str
    request_id: str = "-"
    seconds: float = 0.0

    def to_response(self) -> Dict[str, Any]:
        return {
            "audioContent": self.audio_content,
            "charsUsed": self.chars_used,
            "totalUsed": self.total_used,
            "service": self.service,
        }


@dataclass
class CounterUsage:
    """Snapshot of one usage counter."""
    name: str
    counter: str
    used: int
    limit: int

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.used)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "counter": self.counter,
            "used": self.used,
            "limit": self.limit,
            "remaining": self.remaining,
        }


@dataclass
class PlanStep:
    """One provider attempt the coordinator would make, in order."""
    provider: str
    service: str
    counter: str
    limit: int
    voice: str
    configured: bool


# =============================================================================
# Coordinator
# =============================================================================

class SpeechRequestCoordinator:
    """
    Orchestrates validation, rate limiting, quota and provider fallback.

    Collaborators are injected; see build_coordinator() for the wiring
    used by the API and CLI.

    Args:
        config: Validated configuration.
        store: Counter store holding the character quotas.
        limiter: Per-client request limiter.
        providers: Providers keyed by name ("google", "polly").
    """

    def __init__(
        self,
        config: ReadTextConfig,
        store: QuotaStore,
        limiter: RateLimiter,
        providers: Dict[str, SynthesisProvider],
    ):
        self._config = config
        self._store = store
        self._limiter = limiter
        self._providers = providers
        self._preview_chars = config.logging.text_preview_chars

        for name in self._chain_names():
            if name not in providers:
                raise ValueError(f"provider {name!r} is required by quota.{self.strategy} but not supplied")

    @property
    def config(self) -> ReadTextConfig:
        return self._config

    @property
    def strategy(self) -> str:
        return self._config.quota.strategy

    @property
    def store(self) -> QuotaStore:
        return self._store

    @property
    def providers(self) -> Dict[str, SynthesisProvider]:
        return self._providers

    # =========================================================================
    # Public API: synthesize()
    # =========================================================================

    def synthesize(self, request: SynthesisRequest, request_id: str = "-") -> SynthesisResult:
        """
        Run one speech request end to end.

        Args:
            request: The caller's request.
            request_id: Request ID for tracing.

        Returns:
            SynthesisResult with base64 audio and usage figures.

        Raises:
            InvalidInputError: Text absent, not a string, empty or too long.
            RateLimitExceededError: A rate-limit window is exhausted.
            QuotaExceededError: No counter can absorb the text.
            UpstreamSynthesisError: The (last) provider failed.
            StoreUnavailableError: The counter store is unreachable.
            ReadTextError: Unexpected failure (INTERNAL_ERROR).
        """
        with timeit("request") as total_t:
            try:
                text = validate_text(request.text, max_length=self._config.app.max_text_chars)
                language = validate_language(request.language, self._config.app.default_language)
                voice = validate_voice(request.voice)

                info(_LOG, "request", chars=len(text), client=request.client_identifier or "-",
                     text_preview=text_preview(text, self._preview_chars))
                debug(_LOG, "request_resolved", language=language, voice=voice or "-",
                      strategy=self.strategy, profile=request.profile)

                self._rate_limit(request)

                if self.strategy == "global":
                    result = self._synthesize_global(text, language, voice)
                else:
                    result = self._synthesize_per_provider(text, language, voice)

            except ReadTextError as e:
                metrics.record_request(status=e.code.lower(), duration=total_t.seconds)
                raise
            except Exception as e:
                fail(_LOG, "request_failed", error=str(e), error_type=type(e).__name__)
                metrics.record_request(status=ErrorCode.INTERNAL_ERROR.lower(), duration=total_t.seconds)
                raise ReadTextError(
                    INTERNAL_ERROR_MESSAGE,
                    ErrorCode.INTERNAL_ERROR,
                    details={"error_type": type(e).__name__, "error": str(e)},
                ) from e

        result.request_id = request_id
        result.seconds = total_t.seconds
        metrics.record_request(status="success", duration=result.seconds, service=result.provider)
        success(_LOG, "done", service=result.service, chars=result.chars_used,
                total_used=result.total_used, seconds=round(result.seconds, 3))
        return result

    # =========================================================================
    # Strategies
    # =========================================================================

    def _synthesize_global(self, text: str, language: str, voice: Optional[str]) -> SynthesisResult:
        quota = self._config.quota
        counter = CounterConfig(quota.global_counter, quota.global_limit)
        return self._attempt(quota.global_provider, counter, GLOBAL_LIMIT_MESSAGE, text, language, voice)

    def _synthesize_per_provider(self, text: str, language: str, voice: Optional[str]) -> SynthesisResult:
        chain = self._chain_names()
        last_error: Optional[ReadTextError] = None

        for index, name in enumerate(chain):
            provider = self._providers[name]
            counter = self._config.quota.providers[name]
            try:
                return self._attempt(
                    name, counter, provider_limit_message(provider.display_name), text, language, voice
                )
            except (QuotaExceededError, UpstreamSynthesisError) as e:
                last_error = e
                if index + 1 < len(chain):
                    next_name = chain[index + 1]
                    reason = "quota" if isinstance(e, QuotaExceededError) else "upstream"
                    warn(_LOG, "fallback", from_provider=name, to_provider=next_name, reason=reason)
                    metrics.record_fallback(name, next_name)

        if last_error is None:
            raise ReadTextError(
                INTERNAL_ERROR_MESSAGE,
                ErrorCode.INTERNAL_ERROR,
                details={"reason": "EMPTY_PROVIDER_CHAIN"},
            )
        raise last_error

    def _chain_names(self) -> List[str]:
        quota = self._config.quota
        if quota.strategy == "global":
            return [quota.global_provider]
        # At most one fallback
        return list(quota.provider_order[:2])

    # =========================================================================
    # Reserve -> synthesize -> (roll back)
    # =========================================================================

    def _attempt(
        self,
        name: str,
        counter: CounterConfig,
        limit_message: str,
        text: str,
        language: str,
        voice: Optional[str],
    ) -> SynthesisResult:
        provider = self._providers[name]
        chars = len(text)

        total_used = self._reserve(counter, chars, limit_message)

        try:
            with timeit(name) as synth_t:
                audio = provider.synthesize(text, language, voice)
                audio_content = base64.b64encode(audio).decode("ascii")
        except Exception as e:
            self._rollback(counter.counter, chars)
            metrics.record_provider_failure(name)
            fail(_LOG, "provider_failed", provider=name, error=str(e), error_type=type(e).__name__)
            if isinstance(e, UpstreamSynthesisError):
                raise
            raise UpstreamSynthesisError(
                str(e) or f"{provider.display_name} falhou",
                provider=name,
                details={"error_type": type(e).__name__},
            ) from e

        metrics.record_chars(name, chars)
        verbose(_LOG, "provider_ok", provider=name, bytes=len(audio), seconds=round(synth_t.seconds, 3))
        return SynthesisResult(
            audio_content=audio_content,
            chars_used=chars,
            total_used=total_used,
            service=provider.display_name,
            provider=name,
            counter=counter.counter,
        )

    def _reserve(self, counter: CounterConfig, chars: int, limit_message: str) -> int:
        """
        Charge `chars` to `counter`, or reject without leaving a charge behind.

        Returns:
            The counter value after the increment.

        Raises:
            QuotaExceededError: The counter cannot absorb `chars`.
            StoreUnavailableError: The store failed; nothing was charged.
        """
        if self._config.quota.precheck:
            current = self._store.get(counter.counter)
            if current + chars > counter.limit:
                self._reject(counter, current, chars, limit_message)

        new_value = self._store.increment_by(counter.counter, chars)
        if new_value > counter.limit:
            self._rollback(counter.counter, chars)
            self._reject(counter, new_value - chars, chars, limit_message)

        verbose(_LOG, "reserved", counter=counter.counter, chars=chars, used=new_value,
                usage_ratio=round(new_value / counter.limit, 4))
        return new_value

    def _reject(self, counter: CounterConfig, used: int, chars: int, limit_message: str) -> None:
        metrics.record_quota_rejection(counter.counter)
        warn(_LOG, "quota_exceeded", counter=counter.counter, chars=chars,
             used=used, remaining=max(0, counter.limit - used))
        raise QuotaExceededError(limit_message, counter=counter.counter, limit=counter.limit, used=used)

    def _rollback(self, counter: str, chars: int) -> None:
        """Undo a reservation. Never raises."""
        try:
            value = self._store.decrement_by(counter, chars)
        except Exception as e:
            metrics.record_rollback(counter, ok=False)
            error(_LOG, "rollback_failed", counter=counter, chars=chars,
                  error=str(e), error_type=type(e).__name__)
            return
        metrics.record_rollback(counter)
        info(_LOG, "rollback", counter=counter, chars=chars, used=value)

    def _rate_limit(self, request: SynthesisRequest) -> None:
        windows = self._config.rate_limit.windows_for(request.profile)
        try:
            self._limiter.consume_all(request.client_identifier, windows, request.profile)
        except RateLimitExceededError as e:
            metrics.record_rate_limited(e.window)
            raise

    # =========================================================================
    # Read-only views
    # =========================================================================

    def usage(self) -> List[CounterUsage]:
        """
        Current value of every counter the active strategy charges.

        Raises:
            StoreUnavailableError: If the store is unreachable.
        """
        quota = self._config.quota
        if quota.strategy == "global":
            return [CounterUsage("global", quota.global_counter,
                                 self._store.get(quota.global_counter), quota.global_limit)]
        return [
            CounterUsage(name, quota.providers[name].counter,
                         self._store.get(quota.providers[name].counter), quota.providers[name].limit)
            for name in self._chain_names()
        ]

    def plan(self, voice: Optional[str] = None) -> List[PlanStep]:
        """Providers that would be tried, in order, without touching anything."""
        quota = self._config.quota
        steps = []
        for name in self._chain_names():
            provider = self._providers[name]
            if quota.strategy == "global":
                counter = CounterConfig(quota.global_counter, quota.global_limit)
            else:
                counter = quota.providers[name]
            steps.append(PlanStep(
                provider=name,
                service=provider.display_name,
                counter=counter.counter,
                limit=counter.limit,
                voice=provider.resolve_voice(voice),
                configured=provider.is_configured(),
            ))
        return steps

    def health(self) -> Dict[str, Any]:
        reachable = self._store.ping()
        return {
            "ok": reachable,
            "strategy": self.strategy,
            "store": {"backend": self._store.backend, "reachable": reachable},
            "rate_limit": {"backend": self._limiter.backend},
            "providers": {name: p.is_configured() for name, p in self._providers.items()},
        }

    def reset_counter(self, counter: str) -> None:
        """Manual reset of a counter to 0."""
        known = {c.counter for c in self._known_counters()}
        if counter not in known:
            raise ValueError(f"unknown counter {counter!r}; expected one of {', '.join(sorted(known))}")
        self._store.reset(counter)
        warn(_LOG, "counter_reset", counter=counter)

    def _known_counters(self) -> List[CounterConfig]:
        quota = self._config.quota
        return [CounterConfig(quota.global_counter, quota.global_limit), *quota.providers.values()]

    def close(self) -> None:
        for provider in self._providers.values():
            provider.close()


# =============================================================================
# Wiring and singleton
# =============================================================================

def build_coordinator(
    config: ReadTextConfig,
    store: Optional[QuotaStore] = None,
    limiter: Optional[RateLimiter] = None,
    providers: Optional[Dict[str, SynthesisProvider]] = None,
) -> SpeechRequestCoordinator:
    """
    Wire a coordinator from configuration.

    Any collaborator passed in is used as-is; the rest are created from
    `config` (store and limiter share one Redis client).
    """
    if store is None:
        store = create_store(config.store)
    if limiter is None:
        limiter = create_rate_limiter(config.rate_limit, config.store)
    if providers is None:
        quota = config.quota
        names = [quota.global_provider] if quota.strategy == "global" else quota.provider_order[:2]
        providers = {name: create_provider(name, config) for name in names}

    info(_LOG, "coordinator_init", strategy=config.quota.strategy, store=store.backend,
         rate_limit=limiter.backend, providers=",".join(providers))
    return SpeechRequestCoordinator(config, store, limiter, providers)


_coordinator: Optional[SpeechRequestCoordinator] = None
_coordinator_lock = threading.Lock()


def get_coordinator(settings: Settings) -> SpeechRequestCoordinator:
    """
    Get or create the process-wide coordinator.

    Thread-safe lazy singleton. Created on first call and reused, so the
    Redis connection pool and HTTP clients live as long as the process.

    Raises:
        ConfigValidationError: If the settings are invalid.
    """
    global _coordinator
    if _coordinator is None:
        with _coordinator_lock:
            if _coordinator is None:
                _coordinator = build_coordinator(settings.get_config())
    return _coordinator


def reset_coordinator() -> None:
    """
    Reset the global coordinator instance.

    Used primarily for testing to ensure clean state between tests.
    """
    global _coordinator
    with _coordinator_lock:
        if _coordinator is not None:
            _coordinator.close()
        _coordinator = None
