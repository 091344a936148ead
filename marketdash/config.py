"""
Application configuration for marketdash.

Frozen dataclasses built from constants.py defaults. Configuration is
construction-time only: components receive a config object and never
expose a runtime reconfiguration API.

Usage:
    from marketdash.config import config, QueueConfig

    queue_config = QueueConfig(min_interval_seconds=1.0)
    ttl = config.indicator_cache_ttl
"""

from dataclasses import dataclass, field
from typing import Optional

from marketdash.constants import (
    # Cache
    INDICATOR_CACHE_TTL_SECONDS,
    DEFAULT_CACHE_MAX_ENTRIES,
    # Queue
    MIN_REQUEST_INTERVAL_SECONDS,
    MAX_PARALLEL_REQUESTS,
    RETRY_BASE_DELAY_SECONDS,
    MAX_RETRY_DELAY_SECONDS,
    MAX_RETRY_ATTEMPTS,
    RATE_LIMIT_INTERVAL_SECONDS,
    RATE_LIMIT_COOLDOWN_SECONDS,
    API_TIMEOUT_SECONDS,
    # FRED
    FRED_BASE_URL,
)


@dataclass(frozen=True)
class QueueConfig:
    """
    Settings for a ThrottledRequestQueue.

    Attributes:
        min_interval_seconds: Minimum spacing between two dispatches
        max_parallel_requests: Maximum number of actions running at once
        retry_base_delay_seconds: Backoff unit; attempt n waits base * 2**(n-1)
        max_retry_delay_seconds: Upper bound for a single backoff sleep
        max_retries: Attempt budget per request (total attempts)
        rate_limit_interval_seconds: Spacing enforced after a request exhausts
            its budget on rate limits
        rate_limit_cooldown_seconds: How long the escalated spacing lasts
        request_timeout_seconds: Default per-attempt timeout (None = no timeout)
    """

    min_interval_seconds: float = MIN_REQUEST_INTERVAL_SECONDS
    max_parallel_requests: int = MAX_PARALLEL_REQUESTS
    retry_base_delay_seconds: float = RETRY_BASE_DELAY_SECONDS
    max_retry_delay_seconds: float = MAX_RETRY_DELAY_SECONDS
    max_retries: int = MAX_RETRY_ATTEMPTS
    rate_limit_interval_seconds: float = RATE_LIMIT_INTERVAL_SECONDS
    rate_limit_cooldown_seconds: float = RATE_LIMIT_COOLDOWN_SECONDS
    request_timeout_seconds: Optional[float] = None

    def __post_init__(self) -> None:
        if self.min_interval_seconds < 0:
            raise ValueError("min_interval_seconds must be >= 0")
        if self.max_parallel_requests < 1:
            raise ValueError("max_parallel_requests must be >= 1")
        if self.max_retries < 1:
            raise ValueError("max_retries must be >= 1")
        if self.retry_base_delay_seconds < 0 or self.max_retry_delay_seconds < 0:
            raise ValueError("retry delays must be >= 0")
        if self.rate_limit_interval_seconds < self.min_interval_seconds:
            raise ValueError(
                "rate_limit_interval_seconds must not be shorter than min_interval_seconds"
            )
        if self.rate_limit_cooldown_seconds < 0:
            raise ValueError("rate_limit_cooldown_seconds must be >= 0")
        if self.request_timeout_seconds is not None and self.request_timeout_seconds <= 0:
            raise ValueError("request_timeout_seconds must be positive")


@dataclass(frozen=True)
class Config:
    """
    Immutable application configuration.

    The frozen=True ensures configuration cannot be modified at runtime.
    """

    # =========================================================================
    # Cache Configuration
    # =========================================================================
    indicator_cache_ttl: float = INDICATOR_CACHE_TTL_SECONDS
    cache_max_entries: Optional[int] = DEFAULT_CACHE_MAX_ENTRIES

    # =========================================================================
    # Request Queues
    # =========================================================================
    fred_queue: QueueConfig = field(default_factory=QueueConfig)
    # yfinance has no documented limit; spacing is kept short
    yahoo_queue: QueueConfig = field(
        default_factory=lambda: QueueConfig(min_interval_seconds=0.5, max_parallel_requests=2)
    )

    # =========================================================================
    # API Configuration
    # =========================================================================
    fred_base_url: str = FRED_BASE_URL
    http_timeout: float = API_TIMEOUT_SECONDS


# Global configuration instance
config = Config()
