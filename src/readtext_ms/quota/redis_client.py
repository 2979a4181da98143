"""
Shared Redis Client.

One client (and its connection pool) is created per process and handed
to both the quota store and the store-backed rate limiter. The URL and
password come from REDIS_URL / REDIS_PASSWORD via StoreConfig.

TLS:
    `rediss://` URLs connect over TLS. Certificate verification is on by
    default; `store.tls_verify: false` disables it for managed Redis
    offerings that present self-signed certificates.
"""
from __future__ import annotations

import threading
from typing import Any, Dict, Optional

import redis

from readtext_ms.core.config import StoreConfig
from readtext_ms.core.errors import StoreUnavailableError
from readtext_ms.core.logging import get_logger, info

_LOG = get_logger("readtext-ms.redis")


def _redact(url: str) -> str:
    """Drop credentials from a connection URL before logging it."""
    if "@" not in url:
        return url
    scheme, _, rest = url.partition("://")
    return f"{scheme}://***@{rest.rsplit('@', 1)[1]}"


def create_redis_client(config: StoreConfig) -> redis.Redis:
    """
    Build a Redis client from store configuration.

    Raises:
        StoreUnavailableError: If no connection URL is configured.
    """
    if not config.url:
        raise StoreUnavailableError(
            details={"reason": "REDIS_URL is not set and store.backend is redis"}
        )

    kwargs: Dict[str, Any] = {
        "socket_timeout": config.socket_timeout_s,
        "socket_connect_timeout": config.socket_timeout_s,
        "decode_responses": True,
    }
    if config.password:
        kwargs["password"] = config.password
    if config.url.startswith("rediss://") and not config.tls_verify:
        kwargs["ssl_cert_reqs"] = "none"

    client = redis.Redis.from_url(config.url, **kwargs)
    info(_LOG, "redis_client_init", url=_redact(config.url), tls=config.url.startswith("rediss://"))
    return client


_client: Optional[redis.Redis] = None
_client_lock = threading.Lock()


def get_redis_client(config: StoreConfig) -> redis.Redis:
    """
    Get or create the process-wide Redis client.

    Thread-safe singleton pattern.
    """
    global _client
    if _client is None:
        with _client_lock:
            if _client is None:
                _client = create_redis_client(config)
    return _client


def reset_redis_client() -> None:
    """Close and forget the process-wide client (for testing)."""
    global _client
    with _client_lock:
        if _client is not None:
            _client.close()
        _client = None
