"""
Per-Client Request Rate Limiting.

Each caller (usually a client IP) gets fixed windows such as
30 requests / 60 s and 1500 requests / 86400 s. Every window of a profile
is applied in order and all of them must admit the request; the first
exhausted window rejects it with RateLimitExceededError before any quota
or provider work happens.

Policies:
    - Fixed windows: a window opens on the first request and resets
      `duration_seconds` later.
    - No refunds: a point taken by an earlier window stays taken when a
      later window rejects.
    - Each profile has its own buckets.
    - Empty or missing identifiers share the single bucket "-".

Backends:
    - MemoryRateLimiter: per process. Rejected requests do not consume
      points.
    - RedisRateLimiter: shared through the counter store, so all
      instances see the same windows. Counting happens first (INCR), so
      rejected requests also consume a point.

Usage:
    limiter = create_rate_limiter(config.rate_limit, config.store)
    limiter.consume_all("203.0.113.7", config.rate_limit.windows_for("tts"), "tts")
"""
from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import redis

from readtext_ms.core.config import RateLimitConfig, StoreConfig, WindowConfig
from readtext_ms.core.errors import RateLimitExceededError, StoreUnavailableError
from readtext_ms.core.logging import debug, get_logger, info, warn

_LOG = get_logger("readtext-ms.ratelimit")

SHARED_BUCKET = "-"
DEFAULT_PROFILE = "default"


@dataclass
class WindowState:
    """Usage of one window for one identifier after a consume."""
    window: str
    consumed: int
    max_points: int
    reset_in: int

    @property
    def remaining(self) -> int:
        return max(0, self.max_points - self.consumed)


def normalize_identifier(identifier: Optional[str]) -> str:
    identifier = (identifier or "").strip()
    return identifier or SHARED_BUCKET


class RateLimiter:
    """
    Base class for rate limiters.

    Subclasses implement `consume` for a single window.
    """

    backend = "base"

    def consume(self, identifier: Optional[str], window: WindowConfig, profile: str = DEFAULT_PROFILE) -> WindowState:
        """
        Take one point from `window` for `identifier` within `profile`.

        Windows of different profiles never share a bucket.

        Raises:
            RateLimitExceededError: If the window is exhausted.
        """
        raise NotImplementedError

    def consume_all(
        self,
        identifier: Optional[str],
        windows: Sequence[WindowConfig],
        profile: str = DEFAULT_PROFILE,
    ) -> List[WindowState]:
        """Apply every window of `profile` in order; the first rejection propagates."""
        return [self.consume(identifier, window, profile) for window in windows]


class MemoryRateLimiter(RateLimiter):
    """
    In-process fixed-window limiter.

    Args:
        clock: Monotonic time source, injectable for tests.
        prune_every: Drop expired windows after this many consumes.
    """

    backend = "memory"

    def __init__(self, clock: Callable[[], float] = time.monotonic, prune_every: int = 1000):
        self._clock = clock
        self._prune_every = prune_every
        self._lock = threading.Lock()
        # (profile, window name, duration, identifier) -> [count, reset_at]
        self._windows: Dict[Tuple[str, str, int, str], List[float]] = {}
        self._ops = 0

    def consume(self, identifier: Optional[str], window: WindowConfig, profile: str = DEFAULT_PROFILE) -> WindowState:
        ident = normalize_identifier(identifier)
        key = (profile, window.name, window.duration_seconds, ident)
        now = self._clock()

        with self._lock:
            self._ops += 1
            if self._ops % self._prune_every == 0:
                self._prune(now)

            entry = self._windows.get(key)
            if entry is None or now >= entry[1]:
                entry = [0, now + window.duration_seconds]
                self._windows[key] = entry

            reset_in = max(0, math.ceil(entry[1] - now))
            if entry[0] >= window.max_points:
                warn(_LOG, "rate_limited", identifier=ident, profile=profile, window=window.name, retry_after=reset_in)
                raise RateLimitExceededError(window.name, reset_in)

            entry[0] += 1
            state = WindowState(window.name, int(entry[0]), window.max_points, reset_in)

        debug(_LOG, "rate_consumed", identifier=ident, window=window.name, remaining=state.remaining)
        return state

    def _prune(self, now: float) -> None:
        expired = [k for k, (_, reset_at) in self._windows.items() if now >= reset_at]
        for k in expired:
            del self._windows[k]

    def clear(self) -> None:
        with self._lock:
            self._windows.clear()


class RedisRateLimiter(RateLimiter):
    """
    Fixed-window limiter shared through Redis.

    One key per (profile, window, identifier), created with its expiry in the same
    MULTI block that increments it, so a window can never outlive its
    duration.
    """

    backend = "store"

    def __init__(self, client: redis.Redis, key_prefix: str = ""):
        self._client = client
        self._prefix = key_prefix

    def _key(self, ident: str, window: WindowConfig, profile: str) -> str:
        return f"{self._prefix}ratelimit:{profile}:{window.name}:{window.duration_seconds}:{ident}"

    def consume(self, identifier: Optional[str], window: WindowConfig, profile: str = DEFAULT_PROFILE) -> WindowState:
        ident = normalize_identifier(identifier)
        key = self._key(ident, window, profile)
        try:
            pipe = self._client.pipeline(transaction=True)
            pipe.set(key, 0, ex=window.duration_seconds, nx=True)
            pipe.incr(key)
            pipe.ttl(key)
            _, count, ttl = pipe.execute()
        except redis.RedisError as e:
            warn(_LOG, "ratelimit_store_unavailable", window=window.name, error=type(e).__name__)
            raise StoreUnavailableError(details={"op": "ratelimit", "window": window.name, "error": str(e)}) from e

        count = int(count)
        reset_in = int(ttl) if ttl is not None and int(ttl) >= 0 else window.duration_seconds
        if count > window.max_points:
            warn(_LOG, "rate_limited", identifier=ident, profile=profile, window=window.name, retry_after=reset_in)
            raise RateLimitExceededError(window.name, reset_in)

        state = WindowState(window.name, count, window.max_points, reset_in)
        debug(_LOG, "rate_consumed", identifier=ident, window=window.name, remaining=state.remaining)
        return state


class NoopRateLimiter(RateLimiter):
    """Admits everything; used when `rate_limit.enabled` is false."""

    backend = "disabled"

    def consume(self, identifier: Optional[str], window: WindowConfig, profile: str = DEFAULT_PROFILE) -> WindowState:
        return WindowState(window.name, 0, window.max_points, window.duration_seconds)


def create_rate_limiter(
    config: RateLimitConfig,
    store_config: StoreConfig,
    client: Optional[redis.Redis] = None,
) -> RateLimiter:
    """
    Create the limiter selected by `rate_limit.enabled` and `rate_limit.backend`.

    The `store` backend shares the counter store's Redis client.
    """
    if not config.enabled:
        info(_LOG, "ratelimit_init", backend="disabled")
        return NoopRateLimiter()

    if config.backend == "store":
        if client is None:
            from readtext_ms.quota.redis_client import get_redis_client
            client = get_redis_client(store_config)
        info(_LOG, "ratelimit_init", backend="store")
        return RedisRateLimiter(client, key_prefix=store_config.key_prefix)

    info(_LOG, "ratelimit_init", backend="memory", profiles=",".join(sorted(config.profiles)))
    return MemoryRateLimiter()
