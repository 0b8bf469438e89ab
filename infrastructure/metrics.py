"""Prometheus metrics for the operation pipeline.

Every metric carries the wrapped operation's identity so dashboards show
which operation is being retried, throttled or served from cache.

Metrics:
    opstack_operation_calls_total          Counter by operation and outcome (success/error)
    opstack_operation_latency_seconds      Histogram of execute() latency per operation
    opstack_cache_hits_total               Counter of cache hits
    opstack_cache_misses_total             Counter of cache misses
    opstack_cache_evictions_total          Counter of evictions by policy
    opstack_rate_limited_total             Calls rejected by a rate limiter
    opstack_retry_attempts_total           Failed attempts that were retried
    opstack_retry_exhausted_total          Calls that used up their retry budget

Usage::

    from infrastructure.metrics import record_cache_hit, record_rate_limited

    record_cache_hit("send_email")
"""

from __future__ import annotations

import time

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

REGISTRY = CollectorRegistry()

operation_calls_total = Counter(
    "opstack_operation_calls_total",
    "Operation calls by outcome",
    ["operation", "outcome"],
    registry=REGISTRY,
)

operation_latency_seconds = Histogram(
    "opstack_operation_latency_seconds",
    "execute() latency in seconds",
    ["operation"],
    buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 30.0],
    registry=REGISTRY,
)

cache_hits_total = Counter(
    "opstack_cache_hits_total",
    "Result cache hits",
    ["operation"],
    registry=REGISTRY,
)

cache_misses_total = Counter(
    "opstack_cache_misses_total",
    "Result cache misses (including expired entries)",
    ["operation"],
    registry=REGISTRY,
)

cache_evictions_total = Counter(
    "opstack_cache_evictions_total",
    "Entries evicted because the cache was over capacity",
    ["operation", "policy"],
    registry=REGISTRY,
)

rate_limited_total = Counter(
    "opstack_rate_limited_total",
    "Calls rejected by a rate limiter",
    ["operation"],
    registry=REGISTRY,
)

retry_attempts_total = Counter(
    "opstack_retry_attempts_total",
    "Failed attempts followed by a backoff and another attempt",
    ["operation"],
    registry=REGISTRY,
)

retry_exhausted_total = Counter(
    "opstack_retry_exhausted_total",
    "Calls that failed on every attempt",
    ["operation"],
    registry=REGISTRY,
)


# ---------------------------------------------------------------------------
# Public helpers
# ---------------------------------------------------------------------------


def record_operation(*, operation: str, outcome: str, latency_seconds: float) -> None:
    """Record a completed execute() call.

    Args:
        operation: Operation identity.
        outcome: One of "success", "error".
        latency_seconds: Wall-clock time in seconds.
    """
    operation_calls_total.labels(operation=operation, outcome=outcome).inc()
    operation_latency_seconds.labels(operation=operation).observe(latency_seconds)


def record_cache_hit(operation: str) -> None:
    """Increment cache hit counter."""
    cache_hits_total.labels(operation=operation).inc()


def record_cache_miss(operation: str) -> None:
    """Increment cache miss counter."""
    cache_misses_total.labels(operation=operation).inc()


def record_cache_eviction(operation: str, policy: str) -> None:
    """Increment cache eviction counter.

    Args:
        operation: Operation identity.
        policy: Eviction policy name (LRU/LFU/FIFO).
    """
    cache_evictions_total.labels(operation=operation, policy=policy).inc()


def record_rate_limited(operation: str) -> None:
    """Increment rate-limited calls counter."""
    rate_limited_total.labels(operation=operation).inc()


def record_retry_attempt(operation: str) -> None:
    """Increment retried-attempt counter."""
    retry_attempts_total.labels(operation=operation).inc()


def record_retry_exhausted(operation: str) -> None:
    """Increment exhausted-retry counter."""
    retry_exhausted_total.labels(operation=operation).inc()


def get_metrics_response() -> tuple[bytes, str]:
    """Generate Prometheus text exposition format.

    Returns:
        Tuple of (body_bytes, content_type_string).
    """
    return generate_latest(REGISTRY), CONTENT_TYPE_LATEST


class LatencyTimer:
    """Context manager for measuring latency.

    Usage::

        with LatencyTimer() as t:
            result = operation.execute(payload)
        record_operation(operation="send_email", outcome="success", latency_seconds=t.elapsed)
    """

    def __init__(self) -> None:
        """Initialize timer."""
        self._start: float = 0.0
        self.elapsed: float = 0.0

    def __enter__(self) -> LatencyTimer:
        """Start timing."""
        self._start = time.perf_counter()
        return self

    def __exit__(self, *_: object) -> None:
        """Stop timing and record elapsed."""
        self.elapsed = time.perf_counter() - self._start
