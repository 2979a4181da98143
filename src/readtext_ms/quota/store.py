"""
Character Quota Store.

A QuotaStore holds named, non-negative integer counters such as
`totalCharsUsed`, `googleCharsUsed` and `pollyCharsUsed`. Absent
counters read as 0 and are created by their first increment.

Backends:
    - RedisQuotaStore: GET / INCRBY / DECRBY against a shared Redis, safe
      across any number of processes. The production backend.
    - MemoryQuotaStore: a lock-protected dict. Per process, lost on
      restart; for tests and local development.

Failure Mode:
    Any backend error is raised as StoreUnavailableError. Callers treat
    this as fatal for the request; quota is never bypassed.

Usage:
    store = create_store(config.store)
    used = store.increment_by("totalCharsUsed", 120)
    store.decrement_by("totalCharsUsed", 120)  # compensating rollback
"""
from __future__ import annotations

import threading
from typing import Dict, Optional

import redis

from readtext_ms.core.config import StoreConfig
from readtext_ms.core.errors import StoreUnavailableError
from readtext_ms.core.logging import debug, get_logger, info, warn

_LOG = get_logger("readtext-ms.store")


class QuotaStore:
    """
    Base class for counter stores.

    Subclasses implement get, increment_by, decrement_by, reset and ping.
    `increment_by` and `decrement_by` must be atomic and return the new
    value.
    """

    backend = "base"

    def get(self, counter: str) -> int:
        raise NotImplementedError

    def increment_by(self, counter: str, delta: int) -> int:
        raise NotImplementedError

    def decrement_by(self, counter: str, delta: int) -> int:
        raise NotImplementedError

    def reset(self, counter: str) -> None:
        """Set a counter back to 0 (manual operator intervention)."""
        raise NotImplementedError

    def ping(self) -> bool:
        """True when the backing store is reachable."""
        raise NotImplementedError


class MemoryQuotaStore(QuotaStore):
    """In-process counters behind a lock."""

    backend = "memory"

    def __init__(self, initial: Optional[Dict[str, int]] = None):
        self._lock = threading.Lock()
        self._values: Dict[str, int] = dict(initial or {})

    def get(self, counter: str) -> int:
        with self._lock:
            return self._values.get(counter, 0)

    def increment_by(self, counter: str, delta: int) -> int:
        with self._lock:
            value = self._values.get(counter, 0) + delta
            self._values[counter] = value
            return value

    def decrement_by(self, counter: str, delta: int) -> int:
        with self._lock:
            value = self._values.get(counter, 0) - delta
            self._values[counter] = value
            return value

    def reset(self, counter: str) -> None:
        with self._lock:
            self._values.pop(counter, None)

    def ping(self) -> bool:
        return True

    def snapshot(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._values)


class RedisQuotaStore(QuotaStore):
    """
    Counters kept as plain integer strings in Redis.

    Keys are the counter names, optionally behind `key_prefix`, so an
    existing deployment's `totalCharsUsed` key is picked up unchanged.
    """

    backend = "redis"

    def __init__(self, client: redis.Redis, key_prefix: str = ""):
        self._client = client
        self._prefix = key_prefix

    def _key(self, counter: str) -> str:
        return f"{self._prefix}{counter}"

    def get(self, counter: str) -> int:
        try:
            raw = self._client.get(self._key(counter))
        except redis.RedisError as e:
            raise self._unavailable("get", counter, e) from e
        return int(raw) if raw is not None else 0

    def increment_by(self, counter: str, delta: int) -> int:
        try:
            value = int(self._client.incrby(self._key(counter), delta))
        except redis.RedisError as e:
            raise self._unavailable("incrby", counter, e) from e
        debug(_LOG, "store_incrby", counter=counter, delta=delta, value=value)
        return value

    def decrement_by(self, counter: str, delta: int) -> int:
        try:
            value = int(self._client.decrby(self._key(counter), delta))
        except redis.RedisError as e:
            raise self._unavailable("decrby", counter, e) from e
        debug(_LOG, "store_decrby", counter=counter, delta=delta, value=value)
        return value

    def reset(self, counter: str) -> None:
        try:
            self._client.set(self._key(counter), 0)
        except redis.RedisError as e:
            raise self._unavailable("reset", counter, e) from e
        info(_LOG, "store_reset", counter=counter)

    def ping(self) -> bool:
        try:
            return bool(self._client.ping())
        except redis.RedisError as e:
            warn(_LOG, "store_ping_failed", error=str(e))
            return False

    def _unavailable(self, op: str, counter: str, exc: Exception) -> StoreUnavailableError:
        warn(_LOG, "store_unavailable", op=op, counter=counter, error=type(exc).__name__)
        return StoreUnavailableError(details={"op": op, "counter": counter, "error": str(exc)})


def create_store(config: StoreConfig, client: Optional[redis.Redis] = None) -> QuotaStore:
    """
    Create the quota store selected by `store.backend`.

    Args:
        config: Store configuration.
        client: Redis client to use instead of the process-wide one.
    """
    if config.backend == "memory":
        info(_LOG, "store_init", backend="memory")
        return MemoryQuotaStore()

    if client is None:
        from readtext_ms.quota.redis_client import get_redis_client
        client = get_redis_client(config)
    info(_LOG, "store_init", backend="redis", key_prefix=config.key_prefix or "-")
    return RedisQuotaStore(client, key_prefix=config.key_prefix)
