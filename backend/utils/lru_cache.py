"""Bounded LRU cache with optional TTL expiry and hit/miss metrics.

Used to hold Harvest-id -> local-id mappings between syncs without letting
memory grow with the size of the reference tables. ``None`` is a valid
cached value (a confirmed-missing entity) and is distinct from a miss,
so lookups take an explicit ``default`` sentinel.
"""

import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Generic, Hashable, Iterator, Optional, TypeVar

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

_MISSING = object()


@dataclass(frozen=True)
class CacheMetrics:
    """Point-in-time view of a cache's occupancy and effectiveness."""

    size: int
    max_size: int
    hits: int
    misses: int
    hit_rate: float
    ttl_ms: Optional[int]


class BoundedLRUCache(Generic[K, V]):
    """Key/value cache bounded by ``max_size`` with lazy TTL expiry.

    Every successful ``get`` moves the key to the most-recently-used end
    and renews its TTL. Inserting past ``max_size`` evicts from the
    least-recently-used end. Expired entries are dropped when touched,
    or in bulk by :meth:`purge_expired`.

    Args:
        max_size: Maximum number of entries (must be >= 1).
        ttl_ms: Time-to-live in milliseconds. ``None`` or <= 0 disables expiry.
        clock: Monotonic time source in seconds, injectable for tests.
    """

    def __init__(
        self,
        max_size: int,
        ttl_ms: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_size < 1:
            raise ValueError(f"max_size must be >= 1, got {max_size}")
        self._max_size = max_size
        self._ttl_ms = ttl_ms if ttl_ms and ttl_ms > 0 else None
        self._clock = clock
        # key -> (value, expires_at); order is recency, oldest first
        self._entries: OrderedDict[K, tuple[V, Optional[float]]] = OrderedDict()
        self._hits = 0
        self._misses = 0

    def _expires_at(self) -> Optional[float]:
        if self._ttl_ms is None:
            return None
        return self._clock() + self._ttl_ms / 1000.0

    def _is_expired(self, expires_at: Optional[float]) -> bool:
        return expires_at is not None and expires_at <= self._clock()

    def get(self, key: K, default=None):
        """Return the cached value for ``key`` or ``default`` if absent/expired.

        A cached ``None`` is returned as ``None``; pass a sentinel as
        ``default`` to tell the two apart.
        """
        item = self._entries.get(key, _MISSING)
        if item is _MISSING:
            self._misses += 1
            return default

        value, expires_at = item
        if self._is_expired(expires_at):
            del self._entries[key]
            self._misses += 1
            return default

        self._entries[key] = (value, self._expires_at())
        self._entries.move_to_end(key)
        self._hits += 1
        return value

    def has(self, key: K) -> bool:
        """True if ``key`` is present and unexpired (counts as an access)."""
        return self.get(key, _MISSING) is not _MISSING

    __contains__ = has

    def set(self, key: K, value: V) -> None:
        """Insert or update ``key``, marking it most recently used."""
        if key in self._entries:
            del self._entries[key]
        self._entries[key] = (value, self._expires_at())
        while len(self._entries) > self._max_size:
            self._entries.popitem(last=False)

    def delete(self, key: K) -> bool:
        return self._entries.pop(key, _MISSING) is not _MISSING

    def purge_expired(self) -> int:
        """Drop every expired entry; returns how many were removed."""
        if self._ttl_ms is None:
            return 0
        now = self._clock()
        expired = [k for k, (_, exp) in self._entries.items() if exp is not None and exp <= now]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        """Empty the cache and reset hit/miss counters."""
        self._entries.clear()
        self._hits = 0
        self._misses = 0

    def items(self) -> Iterator[tuple[K, V]]:
        """Iterate unexpired entries, oldest first, without touching recency."""
        now = self._clock()
        for key, (value, expires_at) in list(self._entries.items()):
            if expires_at is None or expires_at > now:
                yield key, value

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def size(self) -> int:
        return len(self._entries)

    @property
    def max_size(self) -> int:
        return self._max_size

    @property
    def ttl_ms(self) -> Optional[int]:
        return self._ttl_ms

    @property
    def hits(self) -> int:
        return self._hits

    @property
    def misses(self) -> int:
        return self._misses

    @property
    def hit_rate(self) -> float:
        total = self._hits + self._misses
        return 0.0 if total == 0 else self._hits / total

    def metrics(self) -> CacheMetrics:
        return CacheMetrics(
            size=self.size,
            max_size=self._max_size,
            hits=self._hits,
            misses=self._misses,
            hit_rate=self.hit_rate,
            ttl_ms=self._ttl_ms,
        )
