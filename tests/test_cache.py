"""
Tests for TTLCache and ThreadSafeTTLCache.
"""

import threading

import pytest

from marketdash.core.cache import ThreadSafeTTLCache, TTLCache


@pytest.fixture
def cache(clock):
    return TTLCache(ttl_seconds=60, clock=clock, name="test")


class TestFreshReads:
    def test_get_returns_value_within_ttl(self, cache, clock):
        """A value is served until its TTL has elapsed."""
        cache.set("a", 1)
        clock.advance(60)
        assert cache.get("a") == 1

    def test_get_misses_after_ttl(self, cache, clock):
        """Expiry is strict: age greater than the TTL is a miss."""
        cache.set("a", 1)
        clock.advance(60.001)
        assert cache.get("a") is None
        assert cache.has("a")

    def test_missing_key_is_miss(self, cache):
        """Unknown keys count as misses."""
        assert cache.get("nope") is None
        stats = cache.get_stats()
        assert stats.misses == 1
        assert stats.hits == 0

    def test_hits_and_misses_counted(self, cache, clock):
        """Hits and misses are tracked independently."""
        cache.set("a", 1)
        cache.get("a")
        cache.get("a")
        cache.get("b")
        clock.advance(61)
        cache.get("a")

        stats = cache.get_stats()
        assert stats.hits == 2
        assert stats.misses == 2
        assert stats.hit_rate == pytest.approx(0.5)

    def test_set_overwrites_and_resets_expiry(self, cache, clock):
        """Setting an existing key replaces the value and restarts the clock."""
        cache.set("a", 1)
        clock.advance(50)
        cache.set("a", 2)
        clock.advance(50)
        assert cache.get("a") == 2
        assert cache.get_stats().size == 1

    def test_access_metadata_updated_only_on_hit(self, cache, clock):
        """A miss on an expired entry leaves its access count untouched."""
        cache.set("a", 1)
        assert cache.get_entry("a").access_count == 0

        clock.advance(10)
        cache.get("a")
        entry = cache.get_entry("a")
        assert entry.access_count == 1
        assert entry.last_accessed == 10

        clock.advance(100)
        cache.get("a")
        assert cache.get_entry("a").access_count == 1


class TestStaleReads:
    def test_get_stale_ignores_expiry(self, cache, clock):
        """Expired entries remain readable through get_stale."""
        cache.set("a", {"v": 1})
        clock.advance(3600)
        assert cache.get("a") is None
        assert cache.get_stale("a") == {"v": 1}

    def test_stale_hit_counted_only_when_expired(self, cache, clock):
        """Reading a fresh entry through get_stale is not a stale hit."""
        cache.set("a", 1)
        cache.get_stale("a")
        assert cache.get_stats().stale_hits == 0

        clock.advance(61)
        cache.get_stale("a")
        assert cache.get_stats().stale_hits == 1

    def test_get_stale_missing_key(self, cache):
        """get_stale on an unknown key returns None without touching counters."""
        assert cache.get_stale("nope") is None
        stats = cache.get_stats()
        assert stats.misses == 0
        assert stats.stale_hits == 0


class TestRemoval:
    def test_force_refresh_removes_entry(self, cache):
        """After force_refresh neither get nor get_stale finds the key."""
        cache.set("a", 1)
        cache.force_refresh("a")
        assert cache.get("a") is None
        assert cache.get_stale("a") is None
        assert cache.get_stats().size == 0

    def test_force_refresh_unknown_key_is_noop(self, cache):
        """Refreshing a key that was never set does not change the size."""
        cache.force_refresh("nope")
        assert cache.get_stats().size == 0

    def test_clear_keeps_counters(self, cache):
        """clear empties the cache but cumulative counters survive."""
        cache.set("a", 1)
        cache.get("a")
        cache.get("b")
        cache.clear()

        stats = cache.get_stats()
        assert len(cache) == 0
        assert stats.size == 0
        assert stats.hits == 1
        assert stats.misses == 1
        assert stats.oldest_entry is None
        assert stats.newest_entry is None

    def test_cleanup_removes_only_expired(self, cache, clock):
        """cleanup drops expired entries and reports how many."""
        cache.set("old", 1)
        clock.advance(45)
        cache.set("new", 2)
        clock.advance(30)

        assert cache.cleanup() == 1
        assert cache.keys() == ["new"]
        assert cache.get_stats().size == 1


class TestIntrospection:
    def test_time_to_expiration(self, cache, clock):
        """Remaining lifetime counts down and goes negative once expired."""
        assert cache.get_time_to_expiration("a") is None
        cache.set("a", 1)
        clock.advance(20)
        assert cache.get_time_to_expiration("a") == pytest.approx(40)
        clock.advance(50)
        assert cache.get_time_to_expiration("a") == pytest.approx(-10)

    def test_is_expired(self, cache, clock):
        """Missing keys and old entries are both reported as expired."""
        assert cache.is_expired("a")
        cache.set("a", 1)
        assert not cache.is_expired("a")
        clock.advance(61)
        assert cache.is_expired("a")

    def test_stats_are_a_snapshot(self, cache):
        """Mutating returned stats does not affect the cache."""
        stats = cache.get_stats()
        stats.hits = 100
        assert cache.get_stats().hits == 0

    def test_entry_is_a_copy(self, cache):
        """get_entry returns a copy that can't alter cache metadata."""
        cache.set("a", 1)
        entry = cache.get_entry("a")
        entry.access_count = 42
        assert cache.get_entry("a").access_count == 0

    def test_oldest_and_newest_timestamps(self, cache, clock):
        """oldest_entry and newest_entry track store times."""
        cache.set("a", 1)
        clock.advance(5)
        cache.set("b", 2)
        stats = cache.get_stats()
        assert stats.oldest_entry == 0
        assert stats.newest_entry == 5

    def test_contains_and_len(self, cache):
        cache.set("a", 1)
        assert "a" in cache
        assert "b" not in cache
        assert len(cache) == 1


class TestCapacity:
    def test_unbounded_by_default(self, clock):
        """Without max_entries nothing is evicted."""
        cache = TTLCache(60, clock=clock)
        for i in range(100):
            cache.set(str(i), i)
        assert len(cache) == 100
        assert cache.get_stats().evictions == 0

    def test_evicts_oldest_stored_entry(self, clock):
        """At capacity, a new key pushes out the entry stored first."""
        cache = TTLCache(60, max_entries=2, clock=clock)
        cache.set("a", 1)
        clock.advance(1)
        cache.set("b", 2)
        clock.advance(1)
        cache.set("c", 3)

        assert cache.keys() == ["b", "c"]
        stats = cache.get_stats()
        assert stats.evictions == 1
        assert stats.size == 2

    def test_overwrite_at_capacity_does_not_evict(self, clock):
        """Updating an existing key never triggers eviction."""
        cache = TTLCache(60, max_entries=2, clock=clock)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("a", 3)
        assert sorted(cache.keys()) == ["a", "b"]
        assert cache.get_stats().evictions == 0

    @pytest.mark.parametrize("kwargs", [{"ttl_seconds": -1}, {"ttl_seconds": 1, "max_entries": 0}])
    def test_invalid_arguments(self, kwargs):
        with pytest.raises(ValueError):
            TTLCache(**kwargs)


class TestThreadSafeCache:
    def test_concurrent_writers(self):
        """Concurrent sets from several threads keep size consistent."""
        cache = ThreadSafeTTLCache(60)

        def writer(prefix):
            for i in range(200):
                cache.set(f"{prefix}-{i}", i)
                cache.get(f"{prefix}-{i}")

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        stats = cache.get_stats()
        assert len(cache) == 800
        assert stats.size == 800
        assert stats.hits == 800

    def test_behaves_like_ttl_cache(self, clock):
        """The locked variant keeps the same read semantics."""
        cache = ThreadSafeTTLCache(10, clock=clock)
        cache.set("a", 1)
        clock.advance(11)
        assert cache.get("a") is None
        assert cache.get_stale("a") == 1
