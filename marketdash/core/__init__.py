"""
Core utilities for marketdash.

- Caching (TTLCache, ThreadSafeTTLCache)
- Request throttling (ThrottledRequestQueue)
- Retry logic (RetryState, compute_backoff)
- Cache-first fetching (fetch_with_fallback)
"""

from marketdash.core.cache import CacheEntry, CacheStats, ThreadSafeTTLCache, TTLCache
from marketdash.core.errors import (
    DataUnavailableError,
    MarketDashError,
    QueueError,
    RateLimitError,
    RateLimitExceededError,
    RequestFailedError,
    RequestTimeoutError,
    ValidationError,
)
from marketdash.core.fallback import FetchResult, fetch_with_fallback
from marketdash.core.retry import RetryOutcome, RetryState, compute_backoff, is_rate_limit_error
from marketdash.core.throttle import QueuedRequest, QueueStats, RequestState, ThrottledRequestQueue

__all__ = [
    # Cache
    "TTLCache",
    "ThreadSafeTTLCache",
    "CacheEntry",
    "CacheStats",
    # Queue
    "ThrottledRequestQueue",
    "QueuedRequest",
    "QueueStats",
    "RequestState",
    # Retry
    "RetryState",
    "RetryOutcome",
    "compute_backoff",
    "is_rate_limit_error",
    # Fallback
    "FetchResult",
    "fetch_with_fallback",
    # Errors
    "MarketDashError",
    "QueueError",
    "RateLimitError",
    "RateLimitExceededError",
    "RequestFailedError",
    "RequestTimeoutError",
    "DataUnavailableError",
    "ValidationError",
]
