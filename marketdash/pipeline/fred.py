"""
FRED API client.

Fetches series observations from the Federal Reserve Economic Data (FRED)
REST API. Every request goes through a ThrottledRequestQueue so that the
whole process respects FRED's rate limit; HTTP 429 responses surface as
RateLimitError and are retried with backoff by the queue.

API Key: Get free key at https://fred.stlouisfed.org/docs/api/api_key.html
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

import pandas as pd
import requests

from marketdash.config import config
from marketdash.constants import DEFAULT_RETRY_AFTER_SECONDS, FRED_DEFAULT_LIMIT, FRED_MISSING_VALUES
from marketdash.core.errors import MarketDashError, RateLimitError
from marketdash.core.throttle import ThrottledRequestQueue
from marketdash.env_loader import get_api_key
from marketdash.logging_config import get_logger

logger = get_logger(__name__)


class FredApiError(MarketDashError):
    """FRED answered with a non-success status other than 429."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class FredObservation:
    """A single observation as published (percent units for rates)."""

    date: str  # ISO date
    value: Optional[float]  # None when FRED reports a missing value

    @classmethod
    def from_api(cls, row: Dict[str, Any]) -> "FredObservation":
        raw = str(row.get("value", "")).strip()
        if raw in FRED_MISSING_VALUES:
            return cls(date=row["date"], value=None)
        try:
            return cls(date=row["date"], value=float(raw))
        except ValueError:
            return cls(date=row["date"], value=None)


def parse_retry_after(header: Optional[str]) -> float:
    """Seconds to wait from a Retry-After header (HTTP-date form not supported)."""
    if header:
        try:
            return max(float(header), 0.0)
        except ValueError:
            pass
    return DEFAULT_RETRY_AFTER_SECONDS


def observations_to_series(observations: List[FredObservation]) -> pd.Series:
    """
    Convert observations to a date-indexed Series of decimals (4.25% -> 0.0425).

    Missing values are dropped and the index is sorted oldest first.
    """
    valid = [obs for obs in observations if obs.value is not None]
    series = pd.Series(
        [obs.value / 100.0 for obs in valid],
        index=pd.DatetimeIndex([obs.date for obs in valid]),
        dtype="float64",
    )
    return series.sort_index()


class FredClient:
    """
    Async FRED observations client.

    Usage:
        client = FredClient(api_key="your_fred_api_key")
        observations = await client.fetch_series("T10Y2Y", limit=30)
    """

    SERIES_SPREAD = "T10Y2Y"  # 10-Year minus 2-Year Treasury Constant Maturity
    SERIES_10Y = "DGS10"  # 10-Year Treasury Constant Maturity Rate
    SERIES_2Y = "DGS2"  # 2-Year Treasury Constant Maturity Rate

    def __init__(
        self,
        api_key: Optional[str] = None,
        *,
        queue: Optional[ThrottledRequestQueue] = None,
        session: Optional[requests.Session] = None,
        base_url: str = config.fred_base_url,
        timeout: float = config.http_timeout,
    ):
        """
        Initialize FRED client.

        Args:
            api_key: FRED API key. If None, read from FRED_API_KEY.
            queue: Queue shared by all requests of this client
            session: requests session (created if omitted)
            base_url: Observations endpoint
            timeout: HTTP timeout per request in seconds

        Raises:
            ValueError: If no API key is provided or found in environment.
        """
        api_key = api_key or get_api_key("FRED_API_KEY")
        if not api_key:
            raise ValueError(
                "FRED API key required. Set FRED_API_KEY environment variable "
                "or pass api_key parameter. Get key at: "
                "https://fred.stlouisfed.org/docs/api/api_key.html"
            )

        self.api_key = api_key
        self.queue = queue or ThrottledRequestQueue(config.fred_queue, name="fred")
        self.session = session or requests.Session()
        self.base_url = base_url
        self.timeout = timeout

    def _build_params(self, series_id: str, limit: int) -> Dict[str, Any]:
        # Tomorrow as end date so late-published observations are included
        observation_end = (date.today() + timedelta(days=1)).isoformat()
        return {
            "series_id": series_id,
            "api_key": self.api_key,
            "file_type": "json",
            "sort_order": "desc",
            "limit": limit,
            "observation_end": observation_end,
        }

    def _get_observations(self, series_id: str, limit: int) -> Dict[str, Any]:
        """Blocking HTTP call; run in a worker thread."""
        response = self.session.get(
            self.base_url,
            params=self._build_params(series_id, limit),
            headers={"Accept": "application/json", "Cache-Control": "no-cache"},
            timeout=self.timeout,
        )

        if response.status_code == 429:
            retry_after = parse_retry_after(response.headers.get("Retry-After"))
            logger.warning("FRED rate limited %s (retry after %.0fs)", series_id, retry_after)
            raise RateLimitError(f"FRED rate limited {series_id}", retry_after=retry_after)

        if not response.ok:
            logger.error(
                "FRED API error for %s: %s %s", series_id, response.status_code, response.text[:200]
            )
            raise FredApiError(
                f"FRED API error for {series_id}: {response.status_code} {response.reason}",
                status_code=response.status_code,
            )

        return response.json()

    async def fetch_series(self, series_id: str, limit: int = FRED_DEFAULT_LIMIT) -> List[FredObservation]:
        """
        Fetch the most recent observations of a series, newest first.

        Raises:
            RateLimitExceededError: FRED kept answering 429
            RequestFailedError: Any other failure after retries
        """
        logger.debug("Fetching FRED %s (limit %d)", series_id, limit)
        payload = await self.queue.run(
            lambda: asyncio.to_thread(self._get_observations, series_id, limit),
            label=f"FRED {series_id}",
        )

        observations = [FredObservation.from_api(row) for row in payload.get("observations", [])]
        if observations:
            logger.info(
                "FRED %s: %d observations, latest %s", series_id, len(observations), observations[0].date
            )
        else:
            logger.warning("FRED %s: no observations returned", series_id)
        return observations


# Singleton instance
_global_client: Optional[FredClient] = None


def get_fred_client(api_key: Optional[str] = None) -> FredClient:
    """
    Get or create the process-wide FRED client.

    Args:
        api_key: FRED API key (only needed on first call)
    """
    global _global_client

    if _global_client is None:
        _global_client = FredClient(api_key=api_key)

    return _global_client
