"""In-memory result cache layer with TTL and pluggable eviction.

Memoizes successful ``execute`` results so repeated inputs skip the inner
operation entirely.

Cache key = SHA-256(operation identity + normalized input), see
``core.fingerprint``. An entry is served while ``now - created_at < ttl``;
an expired entry is removed on lookup and the call is treated as a miss.
Failures are never stored: if the inner operation raises, the error
propagates and the next call with the same input runs it again.

When an insert pushes the store over ``max_entries`` exactly one entry is
evicted, never the one just inserted:

    LRU   — least recently read or written
    LFU   — lowest access count, ties broken by oldest creation time
    FIFO  — oldest creation time, regardless of reads

Concurrent calls with the same fingerprint are serialized, so the second
caller is served the first caller's result instead of running the inner
operation again. Calls with different fingerprints only share the short
store lock, never the inner operation's runtime.

Usage::

    from core.config import EvictionPolicy
    from infrastructure.cache import CacheDecorator

    op = CacheDecorator(render_markdown, max_entries=500, ttl_seconds=600,
                        policy=EvictionPolicy.LFU)
    html = op.execute(text)
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

from core.config import CacheConfig, EvictionPolicy
from core.fingerprint import fingerprint
from core.operations.base import Operation, OperationDecorator
from infrastructure import metrics

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    """Cached result with access bookkeeping."""

    key: str
    value: Any
    created_at: float
    last_accessed_at: float
    access_count: int = 1


@dataclass(frozen=True)
class CacheStats:
    """Point-in-time snapshot of a cache's counters.

    Attributes:
        hits: Calls served from the store.
        misses: Calls that ran the inner operation (expired entries included).
        evictions: Entries dropped for capacity.
        expirations: Entries dropped because their TTL elapsed.
        size: Entries currently stored.
        max_entries: Configured capacity.
        policy: Configured eviction policy.
    """

    hits: int
    misses: int
    evictions: int
    expirations: int
    size: int
    max_entries: int
    policy: EvictionPolicy

    @property
    def hit_ratio(self) -> float:
        """``hits / (hits + misses)``, 0.0 before the first call."""
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


@dataclass
class _KeyLock:
    lock: threading.Lock
    holders: int = 0


class CacheDecorator(OperationDecorator):
    """Memoize the inner operation's results.

    Args:
        inner: Operation whose results are cached.
        max_entries: Maximum number of entries (default: 100).
        ttl_seconds: Time-to-live in seconds, measured from insertion
            (default: 300 = 5 minutes).
        policy: Eviction policy when over capacity (default: LRU).
        clock: Monotonic time source, injectable for tests
            (default: ``time.monotonic``).
    """

    def __init__(
        self,
        inner: Operation,
        max_entries: int = 100,
        ttl_seconds: float = 300.0,
        policy: EvictionPolicy = EvictionPolicy.LRU,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(inner)
        self._config = CacheConfig(max_entries=max_entries, ttl_seconds=ttl_seconds, policy=policy)
        self._clock = clock
        self._store: OrderedDict[str, CacheEntry] = OrderedDict()
        self._key_locks: dict[str, _KeyLock] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0

    @classmethod
    def from_config(cls, inner: Operation, config: CacheConfig, **kwargs: Any) -> CacheDecorator:
        """Build from a ``CacheConfig``; extra kwargs go to the constructor."""
        return cls(inner, config.max_entries, config.ttl_seconds, config.policy, **kwargs)

    @property
    def policy(self) -> EvictionPolicy:
        return self._config.policy

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def execute(self, input: Any) -> Any:
        """Return the cached result for ``input`` or compute and store it."""
        key = fingerprint(self.identity, input)

        with self._key_lock(key):
            hit, value = self._lookup(key)
            if hit:
                return value

            value = self._inner.execute(input)
            self._insert(key, value)
            return value

    @contextmanager
    def _key_lock(self, key: str) -> Iterator[None]:
        """Serialize lookup-or-insert for one fingerprint."""
        with self._lock:
            slot = self._key_locks.get(key)
            if slot is None:
                slot = self._key_locks[key] = _KeyLock(threading.Lock())
            slot.holders += 1
        try:
            with slot.lock:
                yield
        finally:
            with self._lock:
                slot.holders -= 1
                if slot.holders == 0:
                    del self._key_locks[key]

    def _lookup(self, key: str) -> tuple[bool, Any]:
        """Find a live entry, updating access bookkeeping on a hit."""
        with self._lock:
            now = self._clock()
            entry = self._store.get(key)

            if entry is not None and now - entry.created_at >= self._config.ttl_seconds:
                del self._store[key]
                self._expirations += 1
                logger.debug("Cache EXPIRED: %s %s", self.identity, key[:12])
                entry = None

            if entry is None:
                self._misses += 1
                metrics.record_cache_miss(self.identity)
                logger.debug("Cache MISS: %s %s", self.identity, key[:12])
                return False, None

            self._hits += 1
            entry.last_accessed_at = now
            entry.access_count += 1
            if self._config.policy is EvictionPolicy.LRU:
                self._store.move_to_end(key)
            metrics.record_cache_hit(self.identity)
            logger.debug(
                "Cache HIT: %s %s (hits=%d, misses=%d)",
                self.identity,
                key[:12],
                self._hits,
                self._misses,
            )
            return True, entry.value

    def _insert(self, key: str, value: Any) -> None:
        """Store a fresh entry and evict one other entry if over capacity."""
        with self._lock:
            now = self._clock()
            # Re-insert so insertion order reflects this write
            self._store.pop(key, None)
            self._store[key] = CacheEntry(
                key=key,
                value=value,
                created_at=now,
                last_accessed_at=now,
            )

            if len(self._store) > self._config.max_entries:
                victim = self._select_victim(exclude=key)
                del self._store[victim]
                self._evictions += 1
                metrics.record_cache_eviction(self.identity, self._config.policy.name)
                logger.debug(
                    "Cache EVICT (%s): %s %s", self._config.policy.name, self.identity, victim[:12]
                )

    def _select_victim(self, exclude: str) -> str:
        """Pick the entry to evict. Must be called with lock held."""
        candidates = (entry for key, entry in self._store.items() if key != exclude)
        if self._config.policy is EvictionPolicy.LFU:
            # min() keeps the first of equal items, i.e. the oldest insertion
            victim = min(candidates, key=lambda e: (e.access_count, e.created_at))
        else:
            # LRU order is maintained by move_to_end; FIFO order is insertion order
            victim = next(candidates)
        return victim.key

    # ------------------------------------------------------------------
    # Introspection and maintenance
    # ------------------------------------------------------------------

    def hit_ratio(self) -> float:
        """``hits / (hits + misses)``, 0.0 before the first call."""
        with self._lock:
            total = self._hits + self._misses
            return self._hits / total if total else 0.0

    def size(self) -> int:
        """Return current number of cached entries."""
        with self._lock:
            return len(self._store)

    def clear(self) -> None:
        """Drop every entry. Hit/miss counters are lifetime totals and are kept."""
        with self._lock:
            cleared = len(self._store)
            self._store.clear()
        logger.info("Cache: cleared %d entries for %s", cleared, self.identity)

    def evict_expired(self) -> int:
        """
        Remove all expired entries based on TTL.

        Returns:
            Number of entries evicted
        """
        with self._lock:
            now = self._clock()
            expired_keys = [
                key
                for key, entry in self._store.items()
                if now - entry.created_at >= self._config.ttl_seconds
            ]
            for key in expired_keys:
                del self._store[key]
            self._expirations += len(expired_keys)
        return len(expired_keys)

    def stats(self) -> CacheStats:
        """Return a snapshot of the cache counters."""
        with self._lock:
            return CacheStats(
                hits=self._hits,
                misses=self._misses,
                evictions=self._evictions,
                expirations=self._expirations,
                size=len(self._store),
                max_entries=self._config.max_entries,
                policy=self._config.policy,
            )

    def entries(self) -> list[CacheEntry]:
        """Copies of the stored entries, in eviction order for LRU/FIFO."""
        with self._lock:
            return [
                CacheEntry(e.key, e.value, e.created_at, e.last_accessed_at, e.access_count)
                for e in self._store.values()
            ]

    def describe(self) -> str:
        stats = self.stats()
        return (
            f"{self._inner.describe()} + Cache({stats.size}/{stats.max_entries}, "
            f"{stats.policy.name}, hit ratio: {stats.hit_ratio * 100:.1f}%)"
        )
