"""
Quota and Rate-Limit State.

    - store.py: Character counters (Redis or in-memory)
    - rate_limiter.py: Per-client fixed-window request limits
    - redis_client.py: The process-wide Redis client both share
"""
from readtext_ms.quota.rate_limiter import (
    MemoryRateLimiter,
    RateLimiter,
    RedisRateLimiter,
    create_rate_limiter,
)
from readtext_ms.quota.store import (
    MemoryQuotaStore,
    QuotaStore,
    RedisQuotaStore,
    create_store,
)

__all__ = [
    "QuotaStore",
    "MemoryQuotaStore",
    "RedisQuotaStore",
    "create_store",
    "RateLimiter",
    "MemoryRateLimiter",
    "RedisRateLimiter",
    "create_rate_limiter",
]
