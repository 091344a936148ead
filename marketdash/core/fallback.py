"""
Cache-first fetching with stale fallback.

The flow every indicator follows: fresh cache hit -> upstream fetch (which
populates the cache) -> stale cache entry -> DataUnavailableError.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Optional, TypeVar

from marketdash.core.cache import TTLCache
from marketdash.core.errors import DataUnavailableError, ValidationError
from marketdash.logging_config import get_logger

logger = get_logger(__name__)

V = TypeVar("V")

SOURCE_CACHE = "cache"
SOURCE_API = "api"
SOURCE_STALE = "stale_cache"


@dataclass
class FetchResult(Generic[V]):
    """A value plus where it came from."""

    value: V
    source: str = SOURCE_API
    is_stale: bool = False
    error: Optional[BaseException] = None  # Why stale data was served


async def fetch_with_fallback(
    cache: TTLCache,
    key: str,
    fetch: Callable[[], Awaitable[V]],
    *,
    force_refresh: bool = False,
    validate: Optional[Callable[[V], bool]] = None,
    mark_stale: Optional[Callable[[V], V]] = None,
) -> FetchResult[V]:
    """
    Return cached data when fresh, otherwise fetch it, falling back to stale data.

    Args:
        cache: Cache holding previous results
        key: Cache key
        fetch: Coroutine function producing fresh data (usually routed
            through a ThrottledRequestQueue)
        force_refresh: Drop the cached entry first
        validate: Optional check applied to cached and fresh data; cached
            data failing it is discarded, fresh data failing it counts as a
            failed fetch
        mark_stale: Optional transform applied to stale data before it is
            returned (e.g. flagging it for display)

    Returns:
        FetchResult; ``is_stale`` is True when the fetch failed and an
        expired entry was served instead

    Raises:
        DataUnavailableError: The fetch failed and nothing was cached
    """
    if force_refresh:
        cache.force_refresh(key)

    cached = cache.get(key)
    if cached is not None:
        if validate is None or validate(cached):
            logger.debug("Using cached %s", key)
            return FetchResult(cached, source=SOURCE_CACHE)
        logger.warning("Cached %s failed validation, fetching fresh data", key)
        cache.force_refresh(key)

    try:
        value = await fetch()
        if validate is not None and not validate(value):
            raise ValidationError(f"Fresh data for {key} failed validation")
    except Exception as error:
        logger.error("Fetching %s failed: %s", key, error)
        stale = cache.get_stale(key)
        if stale is None:
            raise DataUnavailableError(key, error) from error

        logger.warning("Serving stale %s", key)
        if mark_stale is not None:
            stale = mark_stale(stale)
        return FetchResult(stale, source=SOURCE_STALE, is_stale=True, error=error)

    cache.set(key, value)
    return FetchResult(value, source=SOURCE_API)
