"""Tests for the bounded LRU cache."""

import pytest

from utils.lru_cache import BoundedLRUCache, CacheMetrics


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestEviction:
    def test_oldest_key_evicted_past_max_size(self):
        cache = BoundedLRUCache(max_size=2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("c", 3)

        assert "a" not in cache
        assert cache.get("b") == 2
        assert cache.get("c") == 3
        assert len(cache) == 2

    def test_single_slot_cache_replaces_its_entry(self):
        cache = BoundedLRUCache(max_size=1)
        cache.set("a", 1)
        cache.set("b", 2)

        assert not cache.has("a")
        assert cache.has("b")
        assert cache.size == 1

    def test_get_refreshes_recency(self):
        cache = BoundedLRUCache(max_size=2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.get("a")
        cache.set("c", 3)

        assert cache.has("a")
        assert cache.has("c")
        assert not cache.has("b")

    def test_set_existing_key_updates_without_growing(self):
        cache = BoundedLRUCache(max_size=2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("a", 10)
        cache.set("c", 3)

        assert cache.get("a") == 10
        assert "b" not in cache

    def test_invalid_max_size_rejected(self):
        with pytest.raises(ValueError, match="max_size"):
            BoundedLRUCache(max_size=0)


class TestTTL:
    def test_entry_present_before_and_absent_after_ttl(self):
        clock = FakeClock()
        cache = BoundedLRUCache(max_size=10, ttl_ms=1000, clock=clock)
        cache.set("a", 1)

        clock.now = 0.5
        assert cache.has("a")

        # The read at 0.5s renewed the TTL to 1.5s
        clock.now = 1.499
        assert cache.has("a")
        clock.now = 2.6
        assert not cache.has("a")

    def test_untouched_entry_expires(self):
        clock = FakeClock()
        cache = BoundedLRUCache(max_size=10, ttl_ms=1000, clock=clock)
        cache.set("a", 1)

        clock.now = 1.002
        assert cache.get("a") is None
        assert len(cache) == 0

    def test_non_positive_ttl_disables_expiry(self):
        clock = FakeClock()
        cache = BoundedLRUCache(max_size=10, ttl_ms=0, clock=clock)
        cache.set("a", 1)

        clock.now = 10_000
        assert cache.get("a") == 1
        assert cache.ttl_ms is None

    def test_purge_expired_removes_only_expired(self):
        clock = FakeClock()
        cache = BoundedLRUCache(max_size=10, ttl_ms=1000, clock=clock)
        cache.set("old", 1)
        clock.now = 0.8
        cache.set("new", 2)

        clock.now = 1.2
        assert cache.purge_expired() == 1
        assert list(cache.items()) == [("new", 2)]


class TestNoneValues:
    def test_cached_none_distinct_from_miss(self):
        sentinel = object()
        cache = BoundedLRUCache(max_size=10)
        cache.set("missing-entity", None)

        assert cache.get("missing-entity", sentinel) is None
        assert cache.get("never-set", sentinel) is sentinel
        assert cache.has("missing-entity")


class TestMetrics:
    def test_hits_and_misses_counted(self):
        cache = BoundedLRUCache(max_size=10)
        cache.set("a", 1)
        cache.get("a")
        cache.get("a")
        cache.get("a")
        cache.get("b")

        assert cache.metrics() == CacheMetrics(
            size=1, max_size=10, hits=3, misses=1, hit_rate=0.75, ttl_ms=None
        )

    def test_hit_rate_zero_without_lookups(self):
        assert BoundedLRUCache(max_size=1).hit_rate == 0.0

    def test_clear_resets_entries_and_counters(self):
        cache = BoundedLRUCache(max_size=10)
        cache.set("a", 1)
        cache.get("a")
        cache.clear()

        assert len(cache) == 0
        assert cache.hits == 0
        assert cache.misses == 0

    def test_delete(self):
        cache = BoundedLRUCache(max_size=10)
        cache.set("a", 1)
        assert cache.delete("a") is True
        assert cache.delete("a") is False
