"""
Operation protocol for the decoration pipeline.

Defines the contract that every decoratable unit of work must satisfy.
This module is pure — no I/O, no network calls, no side effects.
Concrete operations (sending a message, transforming text, ...) live with
their callers; cross-cutting layers live in infrastructure/.

Follows the structural-typing pattern: any class with the right methods
satisfies ``Operation`` without inheriting from it.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable

from core.errors import OperationFailed, PipelineError


@runtime_checkable
class Operation(Protocol):
    """
    Protocol for decoratable operations.

    Implementations must be deterministic with respect to ``input`` and
    report every failure by raising (never by truncating output).
    """

    @property
    def identity(self) -> str:
        """Stable identifier, used to namespace cache keys."""
        ...

    def execute(self, input: Any) -> Any:
        """
        Run the operation.

        Args:
            input: Operation-specific input value.

        Returns:
            Operation-specific output value.

        Raises:
            PipelineError: ``OperationFailed`` for failures of the operation
                itself; decorators add ``RetryExhausted`` and ``RateLimited``.
        """
        ...

    def describe(self) -> str:
        """Human-readable description. Decorators append their own suffix."""
        ...

    def estimated_cost(self) -> float:
        """Static cost estimate for monitoring. Not used by the pipeline."""
        ...


class FunctionOperation:
    """Adapt a plain callable into an ``Operation``.

    Exceptions raised by ``func`` that are not already ``PipelineError``
    are wrapped in ``OperationFailed`` with the original chained.

    Args:
        func: Callable taking the input and returning the output.
        identity: Stable identity. Defaults to the callable's qualified name.
        description: Description text. Defaults to ``identity``.
        cost: Static cost estimate (default: 0.0).
    """

    def __init__(
        self,
        func: Callable[[Any], Any],
        *,
        identity: str | None = None,
        description: str | None = None,
        cost: float = 0.0,
    ) -> None:
        self._func = func
        self._identity = identity or getattr(func, "__qualname__", type(func).__name__)
        self._description = description or self._identity
        self._cost = cost

    @property
    def identity(self) -> str:
        return self._identity

    def execute(self, input: Any) -> Any:
        try:
            return self._func(input)
        except PipelineError:
            raise
        except Exception as exc:
            raise OperationFailed(self._identity, exc) from exc

    def describe(self) -> str:
        return self._description

    def estimated_cost(self) -> float:
        return self._cost

    def __repr__(self) -> str:
        return f"FunctionOperation({self._identity!r})"


class OperationDecorator:
    """
    Base for layers that wrap exactly one inner ``Operation``.

    Holds only the reference to the inner layer and forwards every contract
    method to it. Subclasses override just the facet they change.

    Args:
        inner: The operation (or decorator) being wrapped.
    """

    def __init__(self, inner: Operation) -> None:
        if not isinstance(inner, Operation):
            raise TypeError(
                f"inner must satisfy the Operation protocol, got {type(inner).__name__}"
            )
        self._inner = inner

    @property
    def inner(self) -> Operation:
        """The next layer inward."""
        return self._inner

    @property
    def identity(self) -> str:
        return self._inner.identity

    def execute(self, input: Any) -> Any:
        return self._inner.execute(input)

    def describe(self) -> str:
        return self._inner.describe()

    def estimated_cost(self) -> float:
        return self._inner.estimated_cost()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._inner!r})"
