"""
Market data pipeline: FRED yield curve, Yahoo quotes and VIX, validation.
"""

from marketdash.pipeline.fred import FredApiError, FredClient, FredObservation, get_fred_client
from marketdash.pipeline.market import (
    VixData,
    calculate_historical_percentile,
    determine_vix_status,
    fetch_market_data,
    fetch_sparkline_data,
    fetch_vix,
)
from marketdash.pipeline.types import MarketQuote, SparklinePoint
from marketdash.pipeline.validation import (
    validate_market_data,
    validate_sparkline_data,
    validate_yield_curve_data,
)
from marketdash.pipeline.yield_curve import (
    YieldCurveData,
    detect_inversion_periods,
    determine_yield_curve_status,
    fetch_yield_curve,
    limit_from_timeframe,
)

__all__ = [
    "FredClient",
    "FredObservation",
    "FredApiError",
    "get_fred_client",
    "MarketQuote",
    "SparklinePoint",
    "VixData",
    "YieldCurveData",
    "fetch_market_data",
    "fetch_sparkline_data",
    "fetch_vix",
    "fetch_yield_curve",
    "determine_vix_status",
    "calculate_historical_percentile",
    "determine_yield_curve_status",
    "detect_inversion_periods",
    "limit_from_timeframe",
    "validate_market_data",
    "validate_sparkline_data",
    "validate_yield_curve_data",
]
