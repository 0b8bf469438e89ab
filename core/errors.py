"""
Typed failures surfaced by the decoration pipeline.

Callers distinguish three situations:

    OperationFailed  — the wrapped operation itself failed.
    RetryExhausted   — the retry budget was consumed without a success.
    RateLimited      — the quota for the call's key is used up; the wrapped
                       operation was never invoked.

A cache miss is not an error and never leaves the cache layer.
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for every error raised by an operation pipeline."""


class OperationFailed(PipelineError):
    """Raised when the underlying operation fails.

    Args:
        operation: Identity of the operation that failed.
        cause: The original exception, if any.
        message: Optional override for the error message.
    """

    def __init__(
        self,
        operation: str,
        cause: BaseException | None = None,
        message: str | None = None,
    ) -> None:
        """Initialize with operation identity and the original error."""
        self.operation = operation
        self.cause = cause
        if message is None:
            message = f"Operation '{operation}' failed"
            if cause is not None:
                message += f": {cause}"
        super().__init__(message)


class RetryExhausted(PipelineError):
    """Raised when every retry attempt failed.

    Args:
        operation: Identity of the retried operation.
        attempts: Number of invocations made (equals ``max_attempts``).
        last_error: The error raised by the final attempt.
    """

    def __init__(self, operation: str, attempts: int, last_error: BaseException) -> None:
        """Initialize with attempt count and last underlying error."""
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"Operation '{operation}' failed after {attempts} attempts: {last_error}"
        )


class RateLimited(PipelineError):
    """Raised when a call is rejected by a sliding-window rate limiter.

    This is a "try again later" signal, not a failure of the operation.

    Args:
        key: The rate-limit key that exceeded its quota.
        max_requests: Quota per window.
        window_seconds: Window length in seconds.
        retry_after: Approximate seconds until one slot frees up.
    """

    def __init__(
        self,
        key: str,
        max_requests: int,
        window_seconds: float,
        retry_after: float,
    ) -> None:
        """Initialize with key, quota and time until the next free slot."""
        self.key = key
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.retry_after = retry_after
        super().__init__(
            f"Rate limit exceeded for '{key}': max {max_requests} per "
            f"{window_seconds:g}s. Retry in ~{retry_after:.1f}s."
        )
