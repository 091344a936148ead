"""
marketdash - market indicator backend.

Caching with stale fallback, a throttled retrying request queue, and the
FRED / Yahoo Finance indicators built on top of them.
"""

__version__ = "1.0.0"

from marketdash.core import (
    DataUnavailableError,
    FetchResult,
    RateLimitExceededError,
    RequestFailedError,
    ThreadSafeTTLCache,
    ThrottledRequestQueue,
    TTLCache,
    fetch_with_fallback,
)

__all__ = [
    "__version__",
    "TTLCache",
    "ThreadSafeTTLCache",
    "ThrottledRequestQueue",
    "FetchResult",
    "fetch_with_fallback",
    "DataUnavailableError",
    "RateLimitExceededError",
    "RequestFailedError",
]
