"""Per-key sliding-window rate limiter layer.

Designed to stop runaway callers (e.g. a loop notifying the same recipient)
without punishing short bursts that stay inside the quota.

Sliding-window log algorithm:
- Each admitted call appends its timestamp to the key's log.
- Timestamps older than the window are purged on every check.
- If the log already holds ``max_requests`` entries the call is rejected
  with ``RateLimited`` and the inner operation is never invoked.

Purge, check and record happen under one lock so concurrent callers cannot
over-admit. The inner operation runs outside the lock.

The log for a key is created on its first call and never dropped, so memory
grows with the number of distinct keys seen.

Usage::

    from infrastructure.rate_limiter import RateLimiterDecorator

    op = RateLimiterDecorator(
        send_sms, max_requests=10, window_seconds=60, key_func=lambda msg: msg.recipient
    )
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from collections.abc import Callable
from typing import Any

from core.config import RateLimitConfig
from core.errors import RateLimited
from core.operations.base import Operation, OperationDecorator
from infrastructure import metrics

logger = logging.getLogger(__name__)

# Small fixed overhead per call for bookkeeping
_RATE_LIMIT_COST = 0.002


class RateLimiterState:
    """Thread-safe ``key -> timestamp log`` store.

    Owned by the decorator that created it. Two decorators share quota only
    when the same state object is passed to both explicitly.

    Args:
        clock: Monotonic time source, injectable for tests
            (default: ``time.monotonic``).
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        """Initialize an empty store."""
        self._clock = clock
        self._logs: dict[str, deque[float]] = {}
        self._lock = threading.Lock()

    def _purge(self, log: deque[float], now: float, window_seconds: float) -> None:
        """Drop timestamps older than the window. Must be called with lock held."""
        cutoff = now - window_seconds
        while log and log[0] < cutoff:
            log.popleft()

    def try_acquire(self, key: str, max_requests: int, window_seconds: float) -> float | None:
        """Atomically purge, check and record one request for ``key``.

        Args:
            key: Rate-limit key (e.g. recipient address).
            max_requests: Quota per window.
            window_seconds: Window length in seconds.

        Returns:
            ``None`` if the request was admitted and recorded, otherwise the
            number of seconds until the oldest request leaves the window.
        """
        with self._lock:
            now = self._clock()
            log = self._logs.setdefault(key, deque())
            self._purge(log, now, window_seconds)
            if len(log) >= max_requests:
                return max(0.0, log[0] + window_seconds - now)
            log.append(now)
            return None

    def count(self, key: str, window_seconds: float) -> int:
        """Requests recorded for ``key`` inside the current window."""
        with self._lock:
            log = self._logs.get(key)
            if log is None:
                return 0
            self._purge(log, self._clock(), window_seconds)
            return len(log)

    def keys(self) -> list[str]:
        """Keys seen so far (snapshot)."""
        with self._lock:
            return list(self._logs)

    def reset(self, key: str | None = None) -> None:
        """Forget the history of one key, or of every key when ``key`` is None."""
        with self._lock:
            if key is None:
                self._logs.clear()
            else:
                self._logs.pop(key, None)
        logger.info("RateLimiterState: history cleared (%s)", key or "all keys")


class RateLimiterDecorator(OperationDecorator):
    """Reject calls once a key's sliding-window quota is used up.

    Args:
        inner: Operation to protect.
        max_requests: Calls admitted per key within any window (default: 10).
        window_seconds: Sliding window size in seconds (default: 60).
        key_func: Maps the call input to its rate-limit key. Defaults to the
            inner operation's identity (one quota for all inputs).
        state: Timestamp store. A fresh private one is created when omitted.
        clock: Time source for a freshly created state (ignored when
            ``state`` is given).
    """

    def __init__(
        self,
        inner: Operation,
        max_requests: int = 10,
        window_seconds: float = 60.0,
        *,
        key_func: Callable[[Any], str] | None = None,
        state: RateLimiterState | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(inner)
        self._config = RateLimitConfig(max_requests=max_requests, window_seconds=window_seconds)
        self._key_func = key_func
        self._state = state if state is not None else RateLimiterState(clock=clock)

    @classmethod
    def from_config(
        cls, inner: Operation, config: RateLimitConfig, **kwargs: Any
    ) -> RateLimiterDecorator:
        """Build from a ``RateLimitConfig``; extra kwargs go to the constructor."""
        return cls(inner, config.max_requests, config.window_seconds, **kwargs)

    @property
    def state(self) -> RateLimiterState:
        return self._state

    def _key_for(self, input: Any) -> str:
        if self._key_func is None:
            return self.identity
        return self._key_func(input)

    def execute(self, input: Any) -> Any:
        """Admit the call if the key has quota left, then run the inner operation.

        Raises:
            RateLimited: The key's quota is exhausted. The inner operation
                was not invoked.
        """
        cfg = self._config
        key = self._key_for(input)
        retry_after = self._state.try_acquire(key, cfg.max_requests, cfg.window_seconds)
        if retry_after is not None:
            logger.warning(
                "RateLimiter: '%s' exceeded %d req/%gs on %s",
                key,
                cfg.max_requests,
                cfg.window_seconds,
                self.identity,
            )
            metrics.record_rate_limited(self.identity)
            raise RateLimited(key, cfg.max_requests, cfg.window_seconds, retry_after)

        logger.debug("RateLimiter: '%s' admitted on %s", key, self.identity)
        return self._inner.execute(input)

    def current_count(self, key: str) -> int:
        """Requests recorded for ``key`` in the current window."""
        return self._state.count(key, self._config.window_seconds)

    def remaining(self, key: str) -> int:
        """Requests ``key`` may still make in the current window."""
        return max(0, self._config.max_requests - self.current_count(key))

    def describe(self) -> str:
        cfg = self._config
        return f"{self._inner.describe()} + RateLimit({cfg.max_requests}/{cfg.window_seconds:g}s)"

    def estimated_cost(self) -> float:
        return self._inner.estimated_cost() + _RATE_LIMIT_COST
