"""
Centralized constants for marketdash.

All magic numbers and hardcoded values should be defined here.
Durations are expressed in seconds.
"""

from typing import Final, Optional

# =============================================================================
# CACHE CONFIGURATION
# =============================================================================
INDICATOR_CACHE_TTL_SECONDS: Final[float] = 15 * 60  # 15 minutes
DEFAULT_CACHE_MAX_ENTRIES: Final[Optional[int]] = None  # Unbounded

# =============================================================================
# REQUEST QUEUE
# =============================================================================
MIN_REQUEST_INTERVAL_SECONDS: Final[float] = 2.0
MAX_PARALLEL_REQUESTS: Final[int] = 1
RETRY_BASE_DELAY_SECONDS: Final[float] = 1.0
MAX_RETRY_DELAY_SECONDS: Final[float] = 30.0
MAX_RETRY_ATTEMPTS: Final[int] = 3
RATE_LIMIT_INTERVAL_SECONDS: Final[float] = 120.0  # 2 minutes between calls once throttled
RATE_LIMIT_COOLDOWN_SECONDS: Final[float] = 300.0  # 5 minutes of escalated spacing
DEFAULT_RETRY_AFTER_SECONDS: Final[float] = 5.0
API_TIMEOUT_SECONDS: Final[float] = 30.0

# =============================================================================
# FRED
# =============================================================================
FRED_BASE_URL: Final[str] = "https://api.stlouisfed.org/fred/series/observations"
FRED_DEFAULT_LIMIT: Final[int] = 30
FRED_MISSING_VALUES: Final[frozenset] = frozenset({"", "."})

TIMEFRAME_LIMITS: Final[dict] = {
    "1m": 30,
    "3m": 90,
    "6m": 180,
    "1y": 250,
    "2y": 500,
    "5y": 1250,
    "10y": 2500,
}

# =============================================================================
# YIELD CURVE
# =============================================================================
YIELD_CURVE_WARNING_SPREAD: Final[float] = 0.002  # 0.2%
MIN_INVERSION_DAYS: Final[int] = 5
RECESSION_PREDICTION_WINDOW_DAYS: Final[int] = 24 * 30  # 24 months
SPARKLINE_MAX_POINTS: Final[int] = 30

# =============================================================================
# VIX
# =============================================================================
VIX_SYMBOL: Final[str] = "^VIX"
VIX_WARNING_LEVEL: Final[float] = 20.0
VIX_DANGER_LEVEL: Final[float] = 30.0
VIX_HISTORICAL_MIN: Final[float] = 9.0
VIX_HISTORICAL_MAX: Final[float] = 80.0

# =============================================================================
# VALIDATION
# =============================================================================
MAX_CHANGE_PERCENT: Final[float] = 20.0
MAX_DATA_AGE_HOURS: Final[int] = 24
MAX_DATA_AGE_HOURS_WEEKEND: Final[int] = 72

# Reasonable value ranges per symbol (inclusive)
SYMBOL_VALUE_RANGES: Final[dict] = {
    "^GSPC": (0.0, 10000.0),  # S&P 500
    "^TNX": (0.0, 25.0),  # 10Y Treasury
    "GC=F": (500.0, 5000.0),  # Gold
    "^VIX": (5.0, 100.0),
}

# Sparklines also carry the yield curve spread in percent
SPARKLINE_VALUE_RANGES: Final[dict] = {
    **SYMBOL_VALUE_RANGES,
    "T10Y2Y": (-5.0, 5.0),
}

MAX_YIELD_CURVE_SPREAD: Final[float] = 0.05
MAX_TREASURY_YIELD: Final[float] = 0.25

DISPLAY_NAMES: Final[dict] = {
    "^GSPC": "S&P 500",
    "^TNX": "10Y Treasury",
    "GC=F": "Gold",
    "BTC-USD": "Bitcoin",
    "^VIX": "VIX",
}
