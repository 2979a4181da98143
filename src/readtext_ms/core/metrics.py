"""
Prometheus Metrics for the speech proxy.

Metrics Exposed:
    readtext_requests_total                 - Requests by outcome status
    readtext_request_duration_seconds       - Histogram of request latency
    readtext_chars_synthesized_total        - Characters served per provider
    readtext_provider_failures_total        - Upstream failures per provider
    readtext_fallbacks_total                - Fallbacks from one provider to the next
    readtext_quota_rejections_total         - Quota rejections per counter
    readtext_rate_limit_rejections_total    - Rate-limit rejections per window
    readtext_rollbacks_total                - Compensating decrements per counter
    readtext_rollback_failures_total        - Decrements that could not be applied

Usage:
    from readtext_ms.core.metrics import metrics

    metrics.record_request(status="success", duration=0.42)
    metrics.record_chars("google", 120)
    metrics.record_fallback("google", "polly")

    content, content_type = metrics.get_metrics_response()

Setting `metrics.enabled: false` in settings.yaml turns every recording
call into a no-op; /metrics then answers with a short plain-text note.
"""
from __future__ import annotations

from typing import Optional

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)


class ReadTextMetrics:
    """
    Metrics collection using the Prometheus client.

    Uses its own CollectorRegistry so that several instances (one per
    test, for example) never collide on metric names.

    Thread Safety:
        Prometheus metric operations are thread-safe.

    Example:
        >>> from readtext_ms.core.metrics import metrics
        >>> metrics.record_request("success", 0.5)
        >>> content, _ = metrics.get_metrics_response()
    """

    def __init__(self, enabled: bool = True):
        self._enabled = enabled
        self._registry: Optional[CollectorRegistry] = None
        self._setup_metrics()

    def _setup_metrics(self) -> None:
        self._registry = CollectorRegistry()

        self._requests_total = Counter(
            "readtext_requests_total",
            "Total speech requests",
            ["status"],
            registry=self._registry,
        )

        self._request_duration = Histogram(
            "readtext_request_duration_seconds",
            "Speech request duration in seconds",
            ["service"],
            buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 20.0),
            registry=self._registry,
        )

        self._chars_total = Counter(
            "readtext_chars_synthesized_total",
            "Characters synthesized",
            ["provider"],
            registry=self._registry,
        )

        self._provider_failures = Counter(
            "readtext_provider_failures_total",
            "Upstream synthesis failures",
            ["provider"],
            registry=self._registry,
        )

        self._fallbacks = Counter(
            "readtext_fallbacks_total",
            "Fallbacks from one provider to another",
            ["from_provider", "to_provider"],
            registry=self._registry,
        )

        self._quota_rejections = Counter(
            "readtext_quota_rejections_total",
            "Requests rejected for lack of character budget",
            ["counter"],
            registry=self._registry,
        )

        self._rate_limit_rejections = Counter(
            "readtext_rate_limit_rejections_total",
            "Requests rejected by the rate limiter",
            ["window"],
            registry=self._registry,
        )

        self._rollbacks = Counter(
            "readtext_rollbacks_total",
            "Compensating counter decrements",
            ["counter"],
            registry=self._registry,
        )

        self._rollback_failures = Counter(
            "readtext_rollback_failures_total",
            "Compensating decrements that failed",
            ["counter"],
            registry=self._registry,
        )

    @property
    def enabled(self) -> bool:
        """Whether metrics collection is enabled."""
        return self._enabled

    def set_enabled(self, enabled: bool) -> None:
        self._enabled = enabled

    def record_request(self, status: str, duration: float, service: str = "none") -> None:
        """
        Record a completed request.

        Args:
            status: "success" or the error code of the failure (lowercased)
            duration: Request duration in seconds
            service: Provider that served it, "none" when nothing did
        """
        if not self._enabled:
            return
        self._requests_total.labels(status=status).inc()
        self._request_duration.labels(service=service).observe(duration)

    def record_chars(self, provider: str, chars: int) -> None:
        if not self._enabled or chars <= 0:
            return
        self._chars_total.labels(provider=provider).inc(chars)

    def record_provider_failure(self, provider: str) -> None:
        if not self._enabled:
            return
        self._provider_failures.labels(provider=provider).inc()

    def record_fallback(self, from_provider: str, to_provider: str) -> None:
        if not self._enabled:
            return
        self._fallbacks.labels(from_provider=from_provider, to_provider=to_provider).inc()

    def record_quota_rejection(self, counter: str) -> None:
        if not self._enabled:
            return
        self._quota_rejections.labels(counter=counter).inc()

    def record_rate_limited(self, window: str) -> None:
        if not self._enabled:
            return
        self._rate_limit_rejections.labels(window=window).inc()

    def record_rollback(self, counter: str, ok: bool = True) -> None:
        """Record a compensating decrement, or its failure when ok is False."""
        if not self._enabled:
            return
        if ok:
            self._rollbacks.labels(counter=counter).inc()
        else:
            self._rollback_failures.labels(counter=counter).inc()

    def get_metrics_response(self) -> tuple[bytes, str]:
        """
        Get metrics in Prometheus format.

        Returns:
            Tuple of (content_bytes, content_type)
        """
        if not self._enabled:
            return (
                b"# Metrics disabled\n",
                "text/plain; charset=utf-8",
            )

        content = generate_latest(self._registry)
        return (content, CONTENT_TYPE_LATEST)


# Global singleton metrics instance
# Import this to record metrics: from readtext_ms.core.metrics import metrics
metrics = ReadTextMetrics()
