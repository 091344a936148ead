"""
Error taxonomy for marketdash.

"Not found" from the cache is never an error (it is ``None``). Everything
below is raised to callers so they can pick their own fallback.
"""

from __future__ import annotations

from typing import Optional


class MarketDashError(Exception):
    """Base class for all marketdash errors."""


class QueueError(MarketDashError):
    """Raised by the throttled request queue."""


class RateLimitError(QueueError):
    """
    Upstream signalled that the caller exceeded its rate limit (HTTP 429).

    Actions raise this so the queue can tell rate limits apart from
    generic failures.

    Attributes:
        retry_after: Seconds the upstream asked us to wait, if it said so
        status_code: HTTP status that triggered the error
    """

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        *,
        retry_after: Optional[float] = None,
        status_code: Optional[int] = 429,
    ):
        super().__init__(message)
        self.retry_after = retry_after
        self.status_code = status_code


class RateLimitExceededError(RateLimitError):
    """A request ran out of attempts while being rate limited."""

    def __init__(self, message: str, *, attempts: int, retry_after: Optional[float] = None):
        super().__init__(message, retry_after=retry_after)
        self.attempts = attempts


class RequestFailedError(QueueError):
    """A request ran out of attempts on non rate-limit failures."""

    def __init__(self, message: str, *, attempts: int):
        super().__init__(message)
        self.attempts = attempts


class RequestTimeoutError(RequestFailedError):
    """The final attempt of a request timed out."""


class DataUnavailableError(MarketDashError):
    """Fetching failed and no cached data (fresh or stale) was available."""

    def __init__(self, key: str, cause: Optional[BaseException] = None):
        message = f"No data available for {key}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)
        self.key = key


class ValidationError(MarketDashError):
    """A payload failed range or shape validation."""
