"""
Range and shape checks for market data.

Each validator returns a bool and logs the first check that failed, so
callers can treat invalid payloads like failed fetches.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any, Optional, Sequence

import pandas as pd

from marketdash.constants import (
    MAX_CHANGE_PERCENT,
    MAX_DATA_AGE_HOURS,
    MAX_DATA_AGE_HOURS_WEEKEND,
    MAX_TREASURY_YIELD,
    MAX_YIELD_CURVE_SPREAD,
    SPARKLINE_VALUE_RANGES,
    SYMBOL_VALUE_RANGES,
)
from marketdash.logging_config import get_logger
from marketdash.pipeline.types import VALID_STATUSES

logger = get_logger(__name__)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and not math.isnan(value)


def _in_range(symbol: str, value: float, ranges: dict) -> bool:
    bounds = ranges.get(symbol)
    if bounds is None:
        return True
    low, high = bounds
    return low <= value <= high


def _as_utc(when: datetime) -> datetime:
    if when.tzinfo is None:
        return when.replace(tzinfo=timezone.utc)
    return when.astimezone(timezone.utc)


def validate_market_data(quote: Any, now: Optional[datetime] = None) -> bool:
    """
    Validate a MarketQuote-like object.

    Checks numeric value/change, per-symbol value ranges, the size of the
    change and the age of the quote (24h on weekdays, 72h on weekends).
    """
    if not _is_number(quote.value):
        logger.error("Invalid value for %s: %r", quote.symbol, quote.value)
        return False

    if not _is_number(quote.change):
        logger.error("Invalid change for %s: %r", quote.symbol, quote.change)
        return False

    if not _in_range(quote.symbol, quote.value, SYMBOL_VALUE_RANGES):
        logger.error("%s value out of reasonable range: %s", quote.symbol, quote.value)
        return False

    if abs(quote.change) > MAX_CHANGE_PERCENT:
        logger.error("%s change too extreme: %s%%", quote.symbol, quote.change)
        return False

    now = _as_utc(now or datetime.now(timezone.utc))
    age_hours = (now - _as_utc(quote.timestamp)).total_seconds() / 3600
    # Markets are closed on weekends, so older data is acceptable
    max_hours = MAX_DATA_AGE_HOURS_WEEKEND if now.weekday() >= 5 else MAX_DATA_AGE_HOURS
    if age_hours > max_hours:
        logger.error("%s data too old: %s (%.1f hours)", quote.symbol, quote.timestamp, age_hours)
        return False

    return True


def validate_sparkline_data(symbol: str, points: Sequence[Any]) -> bool:
    """
    Validate sparkline points (objects with ``date``, ``value`` and an
    optional ``iso_date``).

    Requires at least two points, numeric in-range values and strictly
    increasing dates.
    """
    if len(points) < 2:
        logger.error("Insufficient sparkline data points for %s", symbol)
        return False

    for point in points:
        if not isinstance(point.date, str) or not point.date.strip():
            logger.error("Invalid date in sparkline data for %s", symbol)
            return False
        if not _is_number(point.value):
            logger.error("Invalid value in sparkline data for %s", symbol)
            return False
        if not _in_range(symbol, point.value, SPARKLINE_VALUE_RANGES):
            logger.error("%s sparkline value out of range: %s", symbol, point.value)
            return False

    try:
        dates = [pd.Timestamp(getattr(point, "iso_date", None) or point.date) for point in points]
    except ValueError:
        logger.error("Unparseable sparkline dates for %s", symbol)
        return False

    if any(later <= earlier for earlier, later in zip(dates, dates[1:])):
        logger.error("Sparkline dates not in sequence for %s", symbol)
        return False

    return True


def validate_yield_curve_data(data: Any) -> bool:
    """Validate a YieldCurveData-like object."""
    if data is None:
        logger.error("Yield curve data is missing")
        return False

    if not isinstance(data.title, str) or not data.title.strip():
        logger.error("Invalid or missing yield curve title")
        return False

    if not isinstance(data.value, str) or not data.value.strip():
        logger.error("Invalid or missing yield curve value string")
        return False

    if not _is_number(data.change):
        logger.error("Invalid yield curve change: %r", data.change)
        return False

    if data.status not in VALID_STATUSES:
        logger.error("Invalid yield curve status: %r", data.status)
        return False

    if not _is_number(data.spread):
        logger.error("Invalid yield curve spread: %r", data.spread)
        return False

    if not -MAX_YIELD_CURVE_SPREAD <= data.spread <= MAX_YIELD_CURVE_SPREAD:
        logger.error("Yield curve spread out of reasonable range: %s", data.spread)
        return False

    for label, value in (("10-year", data.ten_year_yield), ("2-year", data.two_year_yield)):
        if not _is_number(value):
            logger.error("Invalid %s yield: %r", label, value)
            return False
        if not 0 <= value <= MAX_TREASURY_YIELD:
            logger.error("%s yield out of reasonable range: %s", label, value)
            return False

    if not data.sparkline:
        logger.error("Yield curve sparkline is empty")
        return False

    return True
