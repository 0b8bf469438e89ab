"""Assemble decorator stacks around an operation.

Layers are applied in the order they are declared: the first ``with_*``
call produces the innermost layer, the last one the outermost. Order changes
behavior and is never corrected automatically:

    Retry(Cache(op))        cache hits skip retries; only the final success is stored
    Cache(Retry(op))        a result obtained after N retries is cached as one unit
    RateLimiter(Cache(op))  cache hits still consume quota
    Cache(RateLimiter(op))  cache hits bypass the limiter

Failures are never cached in any order.

Usage::

    from infrastructure.pipeline import PipelineBuilder

    op = (
        PipelineBuilder(send_email)
        .with_cache(max_entries=200, ttl_seconds=60)
        .with_retry(max_attempts=3, base_delay=0.5)
        .with_rate_limit(max_requests=10, window_seconds=60, key_func=lambda m: m.to)
        .with_logging()
        .build()
    )
"""

from __future__ import annotations

import logging
from typing import Any

from core.config import DEFAULT_CONFIG, EvictionPolicy, PipelineConfig
from core.operations.base import Operation
from infrastructure.cache import CacheDecorator
from infrastructure.logging_decorator import LoggingDecorator
from infrastructure.rate_limiter import RateLimiterDecorator
from infrastructure.retry import RetryDecorator

logger = logging.getLogger(__name__)


class PipelineBuilder:
    """Fluent builder wrapping one layer per ``with_*`` call.

    Args:
        operation: The base operation.
    """

    def __init__(self, operation: Operation) -> None:
        self._current: Operation = operation
        self._layers: list[str] = []

    @property
    def layers(self) -> list[str]:
        """Layer names applied so far, innermost first."""
        return list(self._layers)

    def _wrap(self, layer: Operation, name: str) -> PipelineBuilder:
        self._current = layer
        self._layers.append(name)
        return self

    def with_cache(
        self,
        max_entries: int = 100,
        ttl_seconds: float = 300.0,
        policy: EvictionPolicy = EvictionPolicy.LRU,
        **kwargs: Any,
    ) -> PipelineBuilder:
        """Wrap the current stack in a ``CacheDecorator``."""
        return self._wrap(
            CacheDecorator(self._current, max_entries, ttl_seconds, policy, **kwargs), "cache"
        )

    def with_retry(
        self, max_attempts: int = 3, base_delay: float = 1.0, **kwargs: Any
    ) -> PipelineBuilder:
        """Wrap the current stack in a ``RetryDecorator``."""
        return self._wrap(
            RetryDecorator(self._current, max_attempts, base_delay, **kwargs), "retry"
        )

    def with_rate_limit(
        self, max_requests: int = 10, window_seconds: float = 60.0, **kwargs: Any
    ) -> PipelineBuilder:
        """Wrap the current stack in a ``RateLimiterDecorator``."""
        return self._wrap(
            RateLimiterDecorator(self._current, max_requests, window_seconds, **kwargs),
            "rate_limit",
        )

    def with_logging(self, **kwargs: Any) -> PipelineBuilder:
        """Wrap the current stack in a ``LoggingDecorator``."""
        return self._wrap(LoggingDecorator(self._current, **kwargs), "logging")

    def build(self) -> Operation:
        """Return the outermost layer."""
        logger.debug(
            "Pipeline built for %s: %s", self._current.identity, self._current.describe()
        )
        return self._current


def build_pipeline(
    operation: Operation,
    config: PipelineConfig = DEFAULT_CONFIG,
    **layer_kwargs: dict[str, Any],
) -> Operation:
    """Build the standard stack ``Logging(RateLimiter(Retry(Cache(op))))``.

    Layers whose config is ``None`` (or ``logging=False``) are skipped.

    Args:
        operation: The base operation.
        config: Which layers to apply and their parameters.
        **layer_kwargs: Extra constructor kwargs per layer, keyed by
            ``cache``, ``retry``, ``rate_limit`` or ``logging``
            (e.g. ``rate_limit={"key_func": ...}``).

    Returns:
        The outermost layer.
    """
    unknown = set(layer_kwargs) - {"cache", "retry", "rate_limit", "logging"}
    if unknown:
        raise ValueError(f"Unknown layer(s) in layer_kwargs: {sorted(unknown)}")

    op = operation
    if config.cache is not None:
        op = CacheDecorator.from_config(op, config.cache, **layer_kwargs.get("cache", {}))
    if config.retry is not None:
        op = RetryDecorator.from_config(op, config.retry, **layer_kwargs.get("retry", {}))
    if config.rate_limit is not None:
        op = RateLimiterDecorator.from_config(
            op, config.rate_limit, **layer_kwargs.get("rate_limit", {})
        )
    if config.logging:
        op = LoggingDecorator(op, **layer_kwargs.get("logging", {}))

    logger.debug("Pipeline built for %s: %s", op.identity, op.describe())
    return op
