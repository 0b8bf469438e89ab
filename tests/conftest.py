"""
Shared fixtures for the test suite.

Centralizes reusable test doubles so individual test files don't need to
repeat stub-operation and fake-clock boilerplate.
"""

from collections.abc import Callable
from typing import Any

import pytest

from core.errors import OperationFailed

# ---------------------------------------------------------------------------
# Fake clock
# ---------------------------------------------------------------------------


class FakeClock:
    """Manually advanced time source — no real sleeping in tests."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ---------------------------------------------------------------------------
# Stub operation
# ---------------------------------------------------------------------------


class StubOperation:
    """Operation double that records every invocation.

    The first ``failures`` calls raise ``OperationFailed``; later calls
    return ``func(input)``.
    """

    def __init__(
        self,
        func: Callable[[Any], Any] = lambda x: x * 2,
        *,
        identity: str = "stub",
        failures: int = 0,
        cost: float = 1.0,
    ) -> None:
        self._func = func
        self._identity = identity
        self._failures_left = failures
        self._cost = cost
        self.calls: list[Any] = []

    @property
    def identity(self) -> str:
        return self._identity

    @property
    def call_count(self) -> int:
        return len(self.calls)

    def fail_next(self, n: int) -> None:
        self._failures_left = n

    def execute(self, input: Any) -> Any:
        self.calls.append(input)
        if self._failures_left > 0:
            self._failures_left -= 1
            error = RuntimeError(f"simulated failure #{len(self.calls)}")
            raise OperationFailed(self._identity, error)
        return self._func(input)

    def describe(self) -> str:
        return f"Stub[{self._identity}]"

    def estimated_cost(self) -> float:
        return self._cost


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def clock() -> FakeClock:
    """Fake monotonic clock starting at t=1000s."""
    return FakeClock()


@pytest.fixture()
def make_stub() -> Callable[..., StubOperation]:
    """Factory for ``StubOperation`` instances (default: returns ``input * 2``)."""
    return StubOperation


@pytest.fixture()
def doubler() -> StubOperation:
    """Stub operation returning ``input * 2``."""
    return StubOperation()


@pytest.fixture()
def sleeps() -> list[float]:
    """Records requested sleep durations; pass ``sleeps.append`` as ``sleep``."""
    return []
