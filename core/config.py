"""
Configuration dataclasses for the operation pipeline.

These immutable config objects decouple decorator parameters from call sites,
making it easy to define standard stacks and reuse them across operations.
``PipelineConfig.from_env`` reads ``OPSTACK_*`` variables (after loading a
``.env`` file) so deployments can tune the stack without code changes.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum

from dotenv import load_dotenv

_ENV_PREFIX = "OPSTACK_"


class EvictionPolicy(Enum):
    """Rule for choosing which cache entry to drop when capacity is exceeded."""

    LRU = "Least Recently Used"
    LFU = "Least Frequently Used"
    FIFO = "First In, First Out"

    @classmethod
    def parse(cls, value: str) -> EvictionPolicy:
        """Resolve a policy from its short name (case-insensitive)."""
        try:
            return cls[value.strip().upper()]
        except KeyError:
            raise ValueError(
                f"Unknown eviction policy {value!r}, valid options: {[p.name for p in cls]}"
            ) from None


@dataclass(frozen=True)
class RetryConfig:
    """
    Retry-with-backoff parameters.

    Attributes:
        max_attempts: Total invocations including the first try. Must be >= 1.
        base_delay: Wait before the second attempt, in seconds. Doubles on
            every further attempt. Must be > 0.
        max_delay: Optional cap on a single wait, in seconds.
        retry_cost_factor: Per-extra-attempt surcharge used by
            ``estimated_cost``. Defaults to 0.1.
        jitter: Randomize each wait by ±25%. Off by default so backoff stays
            deterministic.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float | None = None
    retry_cost_factor: float = 0.1
    jitter: bool = False

    def __post_init__(self) -> None:
        """Validate retry parameters."""
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.base_delay <= 0:
            raise ValueError(f"base_delay must be positive, got {self.base_delay}")
        if self.max_delay is not None and self.max_delay < self.base_delay:
            raise ValueError(
                f"max_delay ({self.max_delay}) must be >= base_delay ({self.base_delay})"
            )
        if self.retry_cost_factor < 0:
            raise ValueError(
                f"retry_cost_factor must be non-negative, got {self.retry_cost_factor}"
            )


@dataclass(frozen=True)
class RateLimitConfig:
    """
    Sliding-window quota.

    Attributes:
        max_requests: Calls admitted per key within any window. Must be >= 1.
        window_seconds: Window length in seconds. Must be > 0.
    """

    max_requests: int = 10
    window_seconds: float = 60.0

    def __post_init__(self) -> None:
        """Validate quota parameters."""
        if self.max_requests < 1:
            raise ValueError(f"max_requests must be >= 1, got {self.max_requests}")
        if self.window_seconds <= 0:
            raise ValueError(f"window_seconds must be positive, got {self.window_seconds}")


@dataclass(frozen=True)
class CacheConfig:
    """
    Result cache parameters.

    Attributes:
        max_entries: Capacity of the store. Must be >= 1.
        ttl_seconds: Entry lifetime measured from insertion. Must be > 0.
        policy: Eviction rule applied when capacity is exceeded.
    """

    max_entries: int = 100
    ttl_seconds: float = 300.0
    policy: EvictionPolicy = EvictionPolicy.LRU

    def __post_init__(self) -> None:
        """Validate cache parameters."""
        if self.max_entries < 1:
            raise ValueError(f"max_entries must be >= 1, got {self.max_entries}")
        if self.ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive, got {self.ttl_seconds}")


@dataclass(frozen=True)
class PipelineConfig:
    """
    Which layers to apply and how. ``None`` disables a layer.

    Attributes:
        cache: Cache layer settings (innermost).
        retry: Retry layer settings.
        rate_limit: Rate limiter settings.
        logging: Wrap the whole stack in a logging layer (outermost).
    """

    cache: CacheConfig | None = None
    retry: RetryConfig | None = None
    rate_limit: RateLimitConfig | None = None
    logging: bool = True

    @classmethod
    def from_env(cls) -> PipelineConfig:
        """Build a config from ``OPSTACK_*`` environment variables.

        A layer is enabled when ``OPSTACK_<LAYER>_ENABLED`` is truthy; its
        parameters fall back to the dataclass defaults when unset.

        Raises:
            ValueError: If a variable holds an invalid value.
        """
        load_dotenv()

        cache: CacheConfig | None = None
        if _env_bool("CACHE_ENABLED", default=False):
            cache = CacheConfig(
                max_entries=_env_int("CACHE_MAX_ENTRIES", CacheConfig.max_entries),
                ttl_seconds=_env_float("CACHE_TTL_SECONDS", CacheConfig.ttl_seconds),
                policy=EvictionPolicy.parse(os.environ.get(f"{_ENV_PREFIX}CACHE_POLICY", "LRU")),
            )

        retry: RetryConfig | None = None
        if _env_bool("RETRY_ENABLED", default=False):
            max_delay_raw = os.environ.get(f"{_ENV_PREFIX}RETRY_MAX_DELAY")
            retry = RetryConfig(
                max_attempts=_env_int("RETRY_MAX_ATTEMPTS", RetryConfig.max_attempts),
                base_delay=_env_float("RETRY_BASE_DELAY", RetryConfig.base_delay),
                max_delay=float(max_delay_raw) if max_delay_raw else None,
                jitter=_env_bool("RETRY_JITTER", default=False),
            )

        rate_limit: RateLimitConfig | None = None
        if _env_bool("RATE_LIMIT_ENABLED", default=False):
            rate_limit = RateLimitConfig(
                max_requests=_env_int("RATE_LIMIT_MAX_REQUESTS", RateLimitConfig.max_requests),
                window_seconds=_env_float(
                    "RATE_LIMIT_WINDOW_SECONDS", RateLimitConfig.window_seconds
                ),
            )

        return cls(
            cache=cache,
            retry=retry,
            rate_limit=rate_limit,
            logging=_env_bool("LOGGING_ENABLED", default=True),
        )


def _env_bool(name: str, *, default: bool) -> bool:
    raw = os.environ.get(f"{_ENV_PREFIX}{name}")
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(f"{_ENV_PREFIX}{name}")
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{_ENV_PREFIX}{name} must be an integer, got {raw!r}") from None


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(f"{_ENV_PREFIX}{name}")
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{_ENV_PREFIX}{name} must be a number, got {raw!r}") from None


DEFAULT_CONFIG = PipelineConfig(
    cache=CacheConfig(),
    retry=RetryConfig(),
    rate_limit=RateLimitConfig(),
)
"""Full stack: cache (100 entries, 5 min, LRU), retry x3, 10 calls/min, logging."""
