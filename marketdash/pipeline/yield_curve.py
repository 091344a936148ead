"""
Yield curve (10Y-2Y) indicator.

Combines three FRED series into the dashboard's yield curve indicator:
current spread and yields, a sparkline, historical inversion periods and
the recessions that followed them.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import List, Optional

import pandas as pd

from marketdash.config import config
from marketdash.constants import (
    MIN_INVERSION_DAYS,
    RECESSION_PREDICTION_WINDOW_DAYS,
    SPARKLINE_MAX_POINTS,
    TIMEFRAME_LIMITS,
    YIELD_CURVE_WARNING_SPREAD,
)
from marketdash.core.cache import TTLCache
from marketdash.core.fallback import FetchResult, fetch_with_fallback
from marketdash.logging_config import get_logger
from marketdash.pipeline.fred import FredClient, FredObservation, get_fred_client, observations_to_series
from marketdash.pipeline.types import (
    STATUS_DANGER,
    STATUS_ERROR,
    STATUS_NORMAL,
    STATUS_WARNING,
    SparklinePoint,
    sparkline_label,
)
from marketdash.pipeline.validation import validate_yield_curve_data

logger = get_logger(__name__)

TITLE = "Yield Curve (10Y-2Y)"
HISTORY_TIMEFRAME = "10y"


@dataclass(frozen=True)
class Recession:
    start: pd.Timestamp
    end: pd.Timestamp
    name: str


US_RECESSIONS: List[Recession] = [
    Recession(pd.Timestamp("2001-03-01"), pd.Timestamp("2001-11-01"), "Dot-com bubble recession"),
    Recession(pd.Timestamp("2007-12-01"), pd.Timestamp("2009-06-01"), "Great Recession"),
    Recession(pd.Timestamp("2020-02-01"), pd.Timestamp("2020-04-30"), "COVID-19 recession"),
    Recession(pd.Timestamp("2022-01-01"), pd.Timestamp("2022-06-30"), "Technical recession (2022)"),
]


@dataclass
class InversionPeriod:
    """A run of negative spread. ``end`` is None while the curve is still inverted."""

    start: pd.Timestamp
    end: Optional[pd.Timestamp]
    recession: Optional[Recession] = None

    def to_dict(self) -> dict:
        return {
            "start": self.start.date().isoformat(),
            "end": self.end.date().isoformat() if self.end is not None else None,
            "recession": (
                {
                    "start": self.recession.start.date().isoformat(),
                    "end": self.recession.end.date().isoformat(),
                    "name": self.recession.name,
                }
                if self.recession
                else None
            ),
        }


@dataclass
class LastInversion:
    date: str
    duration: str
    followed_by_recession: bool
    recession_start: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "date": self.date,
            "duration": self.duration,
            "followedByRecession": self.followed_by_recession,
            "recessionStart": self.recession_start,
        }


@dataclass
class YieldCurveData:
    """Yield curve indicator. Rates are decimals (0.0425 = 4.25%)."""

    value: str
    change: float
    sparkline: List[SparklinePoint]
    status: str
    spread: float
    ten_year_yield: float
    two_year_yield: float
    title: str = TITLE
    historical_inversions: List[InversionPeriod] = field(default_factory=list)
    last_inversion: Optional[LastInversion] = None
    last_updated: Optional[str] = None
    latest_data_date: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "value": self.value,
            "change": self.change,
            "sparklineData": [point.to_dict() for point in self.sparkline],
            "status": self.status,
            "spread": self.spread,
            "tenYearYield": self.ten_year_yield,
            "twoYearYield": self.two_year_yield,
            "historicalInversions": [period.to_dict() for period in self.historical_inversions],
            "lastInversion": self.last_inversion.to_dict() if self.last_inversion else None,
            "lastUpdated": self.last_updated,
            "latestDataDate": self.latest_data_date,
        }


def limit_from_timeframe(timeframe: str) -> int:
    """Number of daily observations covering a timeframe such as '3m' or '1y'."""
    return TIMEFRAME_LIMITS.get(timeframe, TIMEFRAME_LIMITS["1m"])


def determine_yield_curve_status(spread: float) -> str:
    """
    Normal when spread >= 0.2%, warning between 0 and 0.2%, danger when inverted.
    """
    if spread >= YIELD_CURVE_WARNING_SPREAD:
        return STATUS_NORMAL
    if spread >= 0:
        return STATUS_WARNING
    return STATUS_DANGER


def find_following_recession(inversion_end: Optional[pd.Timestamp]) -> Optional[Recession]:
    """First recession starting within 24 months after an inversion ended."""
    if inversion_end is None:
        return None

    window_end = inversion_end + pd.Timedelta(days=RECESSION_PREDICTION_WINDOW_DAYS)
    for recession in US_RECESSIONS:
        if inversion_end < recession.start <= window_end:
            return recession
    return None


def _days_between(start: pd.Timestamp, end: pd.Timestamp) -> int:
    return round((end - start) / pd.Timedelta(days=1))


def detect_inversion_periods(
    spreads: pd.Series, now: Optional[pd.Timestamp] = None
) -> List[InversionPeriod]:
    """
    Find periods where the spread crossed below zero and stayed there.

    Periods shorter than MIN_INVERSION_DAYS are ignored. A period still
    open at the end of the data is kept (with end=None) once it has lasted
    long enough as of ``now``.

    Args:
        spreads: Spread values indexed by date
        now: Reference time for open periods (defaults to the current time)
    """
    series = spreads.dropna().sort_index()
    inversions: List[InversionPeriod] = []
    inversion_start: Optional[pd.Timestamp] = None
    previous: Optional[float] = None

    for when, spread in series.items():
        if previous is None:
            previous = spread
            continue

        if previous >= 0 and spread < 0:
            inversion_start = when

        if previous < 0 and spread >= 0 and inversion_start is not None:
            if _days_between(inversion_start, when) >= MIN_INVERSION_DAYS:
                inversions.append(
                    InversionPeriod(inversion_start, when, find_following_recession(when))
                )
            inversion_start = None

        previous = spread

    if inversion_start is not None and previous is not None and previous < 0:
        now = now if now is not None else pd.Timestamp.now()
        if _days_between(inversion_start, now) >= MIN_INVERSION_DAYS:
            inversions.append(InversionPeriod(inversion_start, None, None))

    return inversions


def summarize_last_inversion(
    inversions: List[InversionPeriod], now: Optional[pd.Timestamp] = None
) -> Optional[LastInversion]:
    if not inversions:
        return None

    latest = inversions[-1]
    end = latest.end if latest.end is not None else (now if now is not None else pd.Timestamp.now())
    months = round(_days_between(latest.start, end) / 30)
    return LastInversion(
        date=latest.start.date().isoformat(),
        duration="1 month" if months == 1 else f"{months} months",
        followed_by_recession=latest.recession is not None,
        recession_start=latest.recession.start.date().isoformat() if latest.recession else None,
    )


def format_sparkline(observations: List[FredObservation]) -> List[SparklinePoint]:
    """Most recent observations (oldest first) as decimal sparkline points."""
    series = observations_to_series(observations).iloc[-SPARKLINE_MAX_POINTS:]
    return [
        SparklinePoint(
            date=sparkline_label(when),
            value=round(float(value), 4),
            iso_date=when.date().isoformat(),
        )
        for when, value in series.items()
    ]


def _latest_value(observations: List[FredObservation], series_id: str) -> float:
    if not observations:
        raise ValueError(f"No observations returned from FRED for {series_id}")
    latest = observations[0].value
    if latest is None:
        raise ValueError(f"Invalid {series_id} value returned from FRED")
    return latest / 100.0


def build_yield_curve(
    spread_obs: List[FredObservation],
    ten_year_obs: List[FredObservation],
    two_year_obs: List[FredObservation],
    history_obs: List[FredObservation],
    now: Optional[pd.Timestamp] = None,
) -> YieldCurveData:
    """
    Assemble the indicator from raw observations (each list newest first).

    Raises:
        ValueError: A required series is empty or its latest value is missing
    """
    spread = _latest_value(spread_obs, FredClient.SERIES_SPREAD)
    ten_year = _latest_value(ten_year_obs, FredClient.SERIES_10Y)
    two_year = _latest_value(two_year_obs, FredClient.SERIES_2Y)

    previous = spread_obs[1].value / 100.0 if len(spread_obs) > 1 and spread_obs[1].value is not None else spread

    sparkline = format_sparkline(spread_obs)
    if not sparkline:
        raise ValueError("Failed to format sparkline data")

    inversions = detect_inversion_periods(observations_to_series(history_obs), now=now)

    return YieldCurveData(
        value=f"{spread * 100:.2f}%",
        change=spread - previous,
        sparkline=sparkline,
        status=determine_yield_curve_status(spread),
        spread=spread,
        ten_year_yield=ten_year,
        two_year_yield=two_year,
        historical_inversions=inversions,
        last_inversion=summarize_last_inversion(inversions, now=now),
        last_updated=datetime.now(timezone.utc).isoformat(),
        latest_data_date=spread_obs[0].date,
    )


def _mark_error(data: YieldCurveData) -> YieldCurveData:
    return replace(data, status=STATUS_ERROR)


yield_curve_cache: TTLCache[YieldCurveData] = TTLCache(
    config.indicator_cache_ttl, max_entries=config.cache_max_entries, name="yield_curve"
)


async def _gather_or_cancel(*aws):
    """
    Await all of ``aws``. When one fails, the others are cancelled (which
    withdraws their queued requests) and settled before the error is raised.
    """
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    try:
        return await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


async def fetch_yield_curve(
    timeframe: str = "1m",
    force_refresh: bool = False,
    *,
    client: Optional[FredClient] = None,
    cache: Optional[TTLCache] = None,
) -> FetchResult[YieldCurveData]:
    """
    Yield curve indicator for a timeframe ('1m', '3m', '6m', '1y', ...).

    Served from cache when fresh. When FRED fails, the last known data is
    returned with status 'error' and ``is_stale`` set.

    Raises:
        DataUnavailableError: FRED failed and nothing was cached
    """
    cache = cache if cache is not None else yield_curve_cache
    key = f"yield_curve_{timeframe}"

    async def fetch() -> YieldCurveData:
        fred = client or get_fred_client()
        logger.info("Fetching yield curve data for timeframe %s", timeframe)
        spread_obs, ten_year_obs, two_year_obs, history_obs = await _gather_or_cancel(
            fred.fetch_series(FredClient.SERIES_SPREAD, limit_from_timeframe(timeframe)),
            fred.fetch_series(FredClient.SERIES_10Y, 1),
            fred.fetch_series(FredClient.SERIES_2Y, 1),
            fred.fetch_series(FredClient.SERIES_SPREAD, limit_from_timeframe(HISTORY_TIMEFRAME)),
        )
        return build_yield_curve(spread_obs, ten_year_obs, two_year_obs, history_obs)

    return await fetch_with_fallback(
        cache,
        key,
        fetch,
        force_refresh=force_refresh,
        validate=validate_yield_curve_data,
        mark_stale=_mark_error,
    )
