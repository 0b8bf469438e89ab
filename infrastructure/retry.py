"""Exponential backoff retry layer for operations.

Wraps an operation and re-invokes it when an attempt fails with a retryable
error. Per call the layer walks a small state machine::

    ATTEMPTING ──(success)──→ SUCCESS
        │
        └──(failure, attempts left)──→ RETRYING ──(sleep)──→ ATTEMPTING
        └──(failure, budget used)────→ EXHAUSTED → RetryExhausted

The wait before attempt ``n + 1`` is ``base_delay * 2 ** (n - 1)``. At most
``max_attempts`` invocations of the inner operation happen per call; the
backoff sleep is the only place the calling thread is suspended.

Usage::

    from infrastructure.retry import RetryDecorator

    op = RetryDecorator(send_email, max_attempts=3, base_delay=0.5)
    op.execute(message)
"""

from __future__ import annotations

import logging
import random
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, NoReturn

from core.config import RetryConfig
from core.errors import OperationFailed, RetryExhausted
from core.operations.base import Operation, OperationDecorator
from infrastructure import metrics

logger = logging.getLogger(__name__)

# Default exceptions that trigger a retry (failures of the operation itself)
_DEFAULT_RETRYABLE: tuple[type[Exception], ...] = (OperationFailed,)


@dataclass
class RetryState:
    """Transient per-call bookkeeping. Discarded when the call returns."""

    attempt: int = 0
    last_error: Exception | None = None


def backoff_delay(
    attempt: int,
    base_delay: float,
    max_delay: float | None = None,
    jitter: bool = False,
) -> float:
    """Wait time after failed attempt number ``attempt`` (1-based).

    Args:
        attempt: The attempt that just failed.
        base_delay: Wait after the first failure, in seconds.
        max_delay: Optional cap on the wait.
        jitter: Randomize the wait by ±25% to avoid thundering herd.

    Returns:
        Seconds to sleep before the next attempt.
    """
    wait = base_delay * (2 ** (attempt - 1))
    if max_delay is not None:
        wait = min(wait, max_delay)
    if jitter:
        wait *= 1 + random.uniform(-0.25, 0.25)  # noqa: S311
    return wait


class RetryDecorator(OperationDecorator):
    """Retry the inner operation with exponential backoff.

    Args:
        inner: Operation to protect.
        max_attempts: Total attempts including the first try (default: 3).
        base_delay: Wait after the first failure, in seconds (default: 1.0).
        max_delay: Optional cap on a single wait, in seconds.
        retry_cost_factor: Surcharge per extra attempt for ``estimated_cost``
            (default: 0.1).
        jitter: Add ±25% random jitter to each wait (default: False).
        retry_on: Exception types that trigger a retry. Anything else
            propagates immediately (default: ``OperationFailed``).
        sleep: Sleep function, injectable for tests (default: ``time.sleep``).

    Example::

        op = RetryDecorator(FunctionOperation(fetch), max_attempts=4, base_delay=2.0)
    """

    def __init__(
        self,
        inner: Operation,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        *,
        max_delay: float | None = None,
        retry_cost_factor: float = 0.1,
        jitter: bool = False,
        retry_on: tuple[type[Exception], ...] = _DEFAULT_RETRYABLE,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        super().__init__(inner)
        self._config = RetryConfig(
            max_attempts=max_attempts,
            base_delay=base_delay,
            max_delay=max_delay,
            retry_cost_factor=retry_cost_factor,
            jitter=jitter,
        )
        self._retry_on = retry_on
        self._sleep = sleep
        self._last_attempt_count = 0
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, inner: Operation, config: RetryConfig, **kwargs: Any) -> RetryDecorator:
        """Build from a ``RetryConfig``; extra kwargs go to the constructor."""
        return cls(
            inner,
            config.max_attempts,
            config.base_delay,
            max_delay=config.max_delay,
            retry_cost_factor=config.retry_cost_factor,
            jitter=config.jitter,
            **kwargs,
        )

    @property
    def max_attempts(self) -> int:
        return self._config.max_attempts

    def execute(self, input: Any) -> Any:
        """Run the inner operation, retrying retryable failures.

        Raises:
            RetryExhausted: Every attempt failed with a retryable error.
            Exception: Non-retryable errors from the inner operation, unchanged.
        """
        cfg = self._config
        state = RetryState()

        while state.attempt < cfg.max_attempts:
            state.attempt += 1
            try:
                result = self._inner.execute(input)
            except self._retry_on as exc:
                state.last_error = exc
                if state.attempt == cfg.max_attempts:
                    self._give_up(state.attempt, exc)
                wait = backoff_delay(state.attempt, cfg.base_delay, cfg.max_delay, cfg.jitter)
                logger.warning(
                    "retry: %s attempt %d/%d failed (%s) — retrying in %.2fs",
                    self.identity,
                    state.attempt,
                    cfg.max_attempts,
                    exc,
                    wait,
                )
                metrics.record_retry_attempt(self.identity)
                self._sleep(wait)
            except Exception:
                self._set_last_attempt_count(state.attempt)
                raise
            else:
                self._set_last_attempt_count(state.attempt)
                if state.attempt > 1:
                    logger.info(
                        "retry: %s succeeded after %d attempts", self.identity, state.attempt
                    )
                return result

        # unreachable: the final attempt either returns or raises
        raise RuntimeError("retry loop exited without a result")

    def _give_up(self, attempts: int, last_error: Exception) -> NoReturn:
        self._set_last_attempt_count(attempts)
        logger.error(
            "retry: %s gave up after %d attempts. Last: %s",
            self.identity,
            attempts,
            last_error,
        )
        metrics.record_retry_exhausted(self.identity)
        raise RetryExhausted(self.identity, attempts, last_error) from last_error

    def _set_last_attempt_count(self, attempts: int) -> None:
        with self._lock:
            self._last_attempt_count = attempts

    def last_attempt_count(self) -> int:
        """Number of attempts used by the most recent call (0 before any call)."""
        with self._lock:
            return self._last_attempt_count

    def describe(self) -> str:
        return f"{self._inner.describe()} + Retry(max={self._config.max_attempts})"

    def estimated_cost(self) -> float:
        """Worst-case cost: every extra attempt adds ``retry_cost_factor``."""
        cfg = self._config
        return self._inner.estimated_cost() * (
            1 + (cfg.max_attempts - 1) * cfg.retry_cost_factor
        )
