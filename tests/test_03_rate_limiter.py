"""Tests for per-client rate limiting."""
from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import redis

from readtext_ms.core.config import RateLimitConfig, StoreConfig, WindowConfig
from readtext_ms.core.errors import RateLimitExceededError, StoreUnavailableError
from readtext_ms.quota.rate_limiter import (
    MemoryRateLimiter,
    NoopRateLimiter,
    RedisRateLimiter,
    create_rate_limiter,
    normalize_identifier,
)

MINUTE = WindowConfig("minute", 3, 60)
DAY = WindowConfig("day", 5, 86400)


class TestMemoryRateLimiter:

    def test_admits_up_to_max_points(self, limiter):
        for i in range(3):
            state = limiter.consume("203.0.113.7", MINUTE)
            assert state.consumed == i + 1
        with pytest.raises(RateLimitExceededError) as exc_info:
            limiter.consume("203.0.113.7", MINUTE)
        assert exc_info.value.window == "minute"
        assert exc_info.value.status_code == 429
        assert exc_info.value.message == "Too Many Requests"

    def test_window_resets_after_duration(self, limiter, clock):
        for _ in range(3):
            limiter.consume("a", MINUTE)
        clock.advance(60)
        assert limiter.consume("a", MINUTE).consumed == 1

    def test_retry_after_counts_down(self, limiter, clock):
        for _ in range(3):
            limiter.consume("a", MINUTE)
        clock.advance(45)
        with pytest.raises(RateLimitExceededError) as exc_info:
            limiter.consume("a", MINUTE)
        assert exc_info.value.retry_after == 15

    def test_identifiers_are_isolated(self, limiter):
        for _ in range(3):
            limiter.consume("a", MINUTE)
        assert limiter.consume("b", MINUTE).consumed == 1

    def test_empty_identifier_shares_bucket(self, limiter):
        limiter.consume("", MINUTE)
        limiter.consume(None, MINUTE)
        state = limiter.consume("   ", MINUTE)
        assert state.consumed == 3
        assert normalize_identifier(None) == "-"

    def test_rejected_requests_do_not_consume(self, limiter, clock):
        for _ in range(3):
            limiter.consume("a", MINUTE)
        for _ in range(5):
            with pytest.raises(RateLimitExceededError):
                limiter.consume("a", MINUTE)
        clock.advance(60)
        assert limiter.consume("a", MINUTE).remaining == 2

    def test_consume_all_first_exhausted_window_rejects(self, limiter, clock):
        windows = [MINUTE, DAY]
        for _ in range(3):
            limiter.consume_all("a", windows)
        with pytest.raises(RateLimitExceededError) as exc_info:
            limiter.consume_all("a", windows)
        assert exc_info.value.window == "minute"

        clock.advance(60)
        limiter.consume_all("a", windows)
        limiter.consume_all("a", windows)
        clock.advance(60)
        with pytest.raises(RateLimitExceededError) as exc_info:
            limiter.consume_all("a", windows)
        assert exc_info.value.window == "day"

    def test_profiles_have_separate_buckets(self, limiter):
        for _ in range(3):
            limiter.consume("a", MINUTE, "tts")
        with pytest.raises(RateLimitExceededError):
            limiter.consume("a", MINUTE, "tts")
        assert limiter.consume("a", MINUTE, "commentary").consumed == 1
        assert limiter.consume_all("a", [MINUTE, DAY], "completion")[0].consumed == 1

    def test_no_refund_across_windows(self, limiter, clock):
        tight_day = WindowConfig("day", 1, 86400)
        limiter.consume_all("a", [MINUTE, tight_day])
        with pytest.raises(RateLimitExceededError):
            limiter.consume_all("a", [MINUTE, tight_day])
        # The minute window kept the point taken before the day window rejected
        assert limiter.consume("a", MINUTE).consumed == 3

    def test_prune_drops_expired_windows(self, clock):
        limiter = MemoryRateLimiter(clock=clock, prune_every=2)
        limiter.consume("a", MINUTE)
        clock.advance(61)
        limiter.consume("b", MINUTE)
        assert ("default", "minute", 60, "a") not in limiter._windows


class TestRedisRateLimiter:

    def _client(self, count, ttl=42):
        client = MagicMock()
        pipe = client.pipeline.return_value
        pipe.execute.return_value = [True, count, ttl]
        return client, pipe

    def test_key_and_pipeline(self):
        client, pipe = self._client(1)
        state = RedisRateLimiter(client, key_prefix="rt:").consume("203.0.113.7", MINUTE)

        key = "rt:ratelimit:default:minute:60:203.0.113.7"
        client.pipeline.assert_called_once_with(transaction=True)
        pipe.set.assert_called_once_with(key, 0, ex=60, nx=True)
        pipe.incr.assert_called_once_with(key)
        pipe.ttl.assert_called_once_with(key)
        assert state.consumed == 1
        assert state.reset_in == 42

    def test_profile_is_part_of_key(self):
        client, pipe = self._client(1)
        limiter = RedisRateLimiter(client, key_prefix="rt:")
        limiter.consume_all("203.0.113.7", [MINUTE], "tts")
        limiter.consume_all("203.0.113.7", [MINUTE], "commentary")

        keys = [c.args[0] for c in pipe.incr.call_args_list]
        assert keys == [
            "rt:ratelimit:tts:minute:60:203.0.113.7",
            "rt:ratelimit:commentary:minute:60:203.0.113.7",
        ]

    def test_over_limit_rejects_with_ttl(self):
        client, _ = self._client(4, ttl=17)
        with pytest.raises(RateLimitExceededError) as exc_info:
            RedisRateLimiter(client).consume("a", MINUTE)
        assert exc_info.value.retry_after == 17

    def test_missing_ttl_uses_duration(self):
        client, _ = self._client(1, ttl=-1)
        assert RedisRateLimiter(client).consume("a", MINUTE).reset_in == 60

    def test_redis_error_is_store_unavailable(self):
        client = MagicMock()
        client.pipeline.return_value.execute.side_effect = redis.ConnectionError("down")
        with pytest.raises(StoreUnavailableError):
            RedisRateLimiter(client).consume("a", MINUTE)


class TestCreateRateLimiter:

    def test_disabled(self):
        limiter = create_rate_limiter(RateLimitConfig(enabled=False), StoreConfig(backend="memory"))
        assert isinstance(limiter, NoopRateLimiter)
        for _ in range(100):
            limiter.consume("a", MINUTE)

    def test_memory(self):
        limiter = create_rate_limiter(RateLimitConfig(backend="memory"), StoreConfig(backend="memory"))
        assert isinstance(limiter, MemoryRateLimiter)

    def test_store_backend_shares_client(self):
        client = MagicMock()
        limiter = create_rate_limiter(RateLimitConfig(backend="store"), StoreConfig(), client=client)
        assert isinstance(limiter, RedisRateLimiter)
        assert limiter.backend == "store"
