"""Logging layer: records every call, its latency and its outcome.

Logs the call at DEBUG before delegating, the result at the configured level
with elapsed time, and failures at ERROR before re-raising them unchanged.
Latency and outcome are also recorded in the Prometheus registry.

Usage::

    from infrastructure.logging_decorator import LoggingDecorator

    op = LoggingDecorator(RetryDecorator(send_email), logger_name="notifications")
"""

from __future__ import annotations

import logging
from typing import Any

from core.operations.base import Operation, OperationDecorator
from infrastructure import metrics
from infrastructure.metrics import LatencyTimer

_DEFAULT_LOGGER = "opstack.operations"

# Small fixed overhead per call for log I/O
_LOGGING_COST = 0.001


class LoggingDecorator(OperationDecorator):
    """Log calls through the wrapped operation.

    Args:
        inner: Operation to observe.
        logger_name: Name of the ``logging`` logger to write to
            (default: ``"opstack.operations"``).
        level: Level for success records (default: ``logging.INFO``).
    """

    def __init__(
        self,
        inner: Operation,
        logger_name: str = _DEFAULT_LOGGER,
        level: int = logging.INFO,
    ) -> None:
        super().__init__(inner)
        self._logger = logging.getLogger(logger_name)
        self._level = level

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    def execute(self, input: Any) -> Any:
        # describe() may take inner locks; only build it when DEBUG is on
        if self._logger.isEnabledFor(logging.DEBUG):
            self._logger.debug(
                "%s: executing (stack: %s, estimated cost %.4f)",
                self.identity,
                self._inner.describe(),
                self._inner.estimated_cost(),
            )
        timer = LatencyTimer()
        try:
            with timer:
                result = self._inner.execute(input)
        except Exception as exc:
            self._logger.error(
                "%s: failed after %.1fms — %s: %s",
                self.identity,
                timer.elapsed * 1000,
                type(exc).__name__,
                exc,
            )
            metrics.record_operation(
                operation=self.identity, outcome="error", latency_seconds=timer.elapsed
            )
            raise

        self._logger.log(
            self._level, "%s: succeeded in %.1fms", self.identity, timer.elapsed * 1000
        )
        metrics.record_operation(
            operation=self.identity, outcome="success", latency_seconds=timer.elapsed
        )
        return result

    def describe(self) -> str:
        return f"{self._inner.describe()} + Logging"

    def estimated_cost(self) -> float:
        return self._inner.estimated_cost() + _LOGGING_COST
