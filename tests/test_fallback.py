"""
Tests for cache-first fetching with stale fallback.
"""

import asyncio

import pytest

from marketdash.core.cache import TTLCache
from marketdash.core.errors import DataUnavailableError
from marketdash.core.fallback import SOURCE_API, SOURCE_CACHE, SOURCE_STALE, fetch_with_fallback


@pytest.fixture
def cache(clock):
    return TTLCache(ttl_seconds=900, clock=clock)


def fetcher(value=None, error=None):
    calls = []

    async def fetch():
        calls.append(1)
        if error is not None:
            raise error
        return value

    fetch.calls = calls
    return fetch


class TestFetchWithFallback:
    def test_fetches_and_caches_on_miss(self, cache):
        fetch = fetcher(value={"spread": 0.5})
        result = asyncio.run(fetch_with_fallback(cache, "k", fetch))

        assert result.value == {"spread": 0.5}
        assert result.source == SOURCE_API
        assert not result.is_stale
        assert cache.get("k") == {"spread": 0.5}

    def test_serves_fresh_cache_without_fetching(self, cache):
        cache.set("k", "cached")
        fetch = fetcher(value="fresh")
        result = asyncio.run(fetch_with_fallback(cache, "k", fetch))

        assert result.value == "cached"
        assert result.source == SOURCE_CACHE
        assert fetch.calls == []

    def test_refetches_after_expiry(self, cache, clock):
        cache.set("k", "old")
        clock.advance(901)
        result = asyncio.run(fetch_with_fallback(cache, "k", fetcher(value="new")))
        assert result.value == "new"
        assert result.source == SOURCE_API

    def test_stale_fallback_when_fetch_fails(self, cache, clock):
        """An expired entry is served, flagged stale, when the upstream fails."""
        cache.set("k", "old")
        clock.advance(901)
        error = ConnectionError("down")
        result = asyncio.run(fetch_with_fallback(cache, "k", fetcher(error=error)))

        assert result.value == "old"
        assert result.source == SOURCE_STALE
        assert result.is_stale
        assert result.error is error
        assert cache.get_stats().stale_hits == 1

    def test_mark_stale_transforms_fallback(self, cache, clock):
        cache.set("k", {"status": "normal"})
        clock.advance(901)
        result = asyncio.run(
            fetch_with_fallback(
                cache,
                "k",
                fetcher(error=RuntimeError("boom")),
                mark_stale=lambda data: {**data, "status": "error"},
            )
        )
        assert result.value == {"status": "error"}
        assert cache.get_stale("k") == {"status": "normal"}

    def test_no_data_at_all_raises(self, cache):
        error = RuntimeError("boom")
        with pytest.raises(DataUnavailableError) as excinfo:
            asyncio.run(fetch_with_fallback(cache, "k", fetcher(error=error)))
        assert excinfo.value.key == "k"
        assert excinfo.value.__cause__ is error

    def test_force_refresh_skips_cache(self, cache):
        cache.set("k", "cached")
        result = asyncio.run(
            fetch_with_fallback(cache, "k", fetcher(value="fresh"), force_refresh=True)
        )
        assert result.value == "fresh"
        assert result.source == SOURCE_API

    def test_force_refresh_leaves_nothing_to_fall_back_on(self, cache):
        """A forced refresh discards the entry, so a failure can't serve it."""
        cache.set("k", "cached")
        with pytest.raises(DataUnavailableError):
            asyncio.run(
                fetch_with_fallback(cache, "k", fetcher(error=RuntimeError()), force_refresh=True)
            )

    def test_invalid_cached_data_is_refetched(self, cache):
        cache.set("k", -1)
        result = asyncio.run(
            fetch_with_fallback(cache, "k", fetcher(value=5), validate=lambda v: v > 0)
        )
        assert result.value == 5
        assert result.source == SOURCE_API

    def test_invalid_fresh_data_counts_as_failure(self, cache, clock):
        """Fresh data failing validation is not cached; stale data is served."""
        cache.set("k", 3)
        clock.advance(901)
        result = asyncio.run(
            fetch_with_fallback(cache, "k", fetcher(value=-5), validate=lambda v: v > 0)
        )
        assert result.value == 3
        assert result.is_stale
        assert cache.get_stale("k") == 3
