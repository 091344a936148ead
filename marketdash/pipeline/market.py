"""
Market quotes and the VIX indicator from Yahoo Finance (yfinance).

yfinance calls are blocking, so each one runs in a worker thread and is
routed through a shared ThrottledRequestQueue. Results are cached for the
indicator TTL and fall back to the last known value when Yahoo fails.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import List, Optional

import pandas as pd
import yfinance as yf

from marketdash.config import config
from marketdash.constants import (
    SPARKLINE_MAX_POINTS,
    VIX_DANGER_LEVEL,
    VIX_HISTORICAL_MAX,
    VIX_HISTORICAL_MIN,
    VIX_SYMBOL,
    VIX_WARNING_LEVEL,
)
from marketdash.core.cache import TTLCache
from marketdash.core.errors import ValidationError
from marketdash.core.fallback import FetchResult, fetch_with_fallback
from marketdash.core.throttle import ThrottledRequestQueue
from marketdash.logging_config import get_logger
from marketdash.pipeline.types import (
    STATUS_DANGER,
    STATUS_ERROR,
    STATUS_NORMAL,
    STATUS_WARNING,
    MarketQuote,
    SparklinePoint,
    sparkline_label,
)
from marketdash.pipeline.validation import validate_market_data, validate_sparkline_data

logger = get_logger(__name__)


@dataclass
class VixData:
    value: Optional[float]
    previous_close: Optional[float]
    change: Optional[float]  # percent
    status: str
    percentile: Optional[int]
    timestamp: Optional[datetime] = None
    is_stale: bool = False

    def to_dict(self) -> dict:
        return {
            "value": self.value,
            "previousClose": self.previous_close,
            "change": self.change,
            "status": self.status,
            "percentile": self.percentile,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "isStale": self.is_stale,
        }


def determine_vix_status(value: Optional[float]) -> str:
    """Danger above 30, warning above 20, error when there is no value."""
    if value is None:
        return STATUS_ERROR
    if value > VIX_DANGER_LEVEL:
        return STATUS_DANGER
    if value > VIX_WARNING_LEVEL:
        return STATUS_WARNING
    return STATUS_NORMAL


def calculate_historical_percentile(value: Optional[float]) -> Optional[int]:
    """Rough percentile of a VIX level within its historical 9-80 range."""
    if value is None:
        return None
    span = VIX_HISTORICAL_MAX - VIX_HISTORICAL_MIN
    percentile = round((value - VIX_HISTORICAL_MIN) / span * 100)
    return max(0, min(100, percentile))


def percent_change(current: float, previous: Optional[float]) -> float:
    if not previous:
        return 0.0
    return (current - previous) / previous * 100


# Queue shared by every Yahoo request in the process
_yahoo_queue: Optional[ThrottledRequestQueue] = None


def get_yahoo_queue() -> ThrottledRequestQueue:
    global _yahoo_queue

    if _yahoo_queue is None:
        _yahoo_queue = ThrottledRequestQueue(config.yahoo_queue, name="yahoo")

    return _yahoo_queue


market_cache: TTLCache = TTLCache(
    config.indicator_cache_ttl, max_entries=config.cache_max_entries, name="market"
)


def _download_history(symbol: str, period: str = "5d") -> pd.DataFrame:
    """Blocking daily history download; run in a worker thread."""
    ticker = yf.Ticker(symbol)
    history = ticker.history(period=period, interval="1d")
    if history is None or history.empty:
        raise ValueError(f"No data returned from Yahoo Finance for {symbol}")
    return history


def _download_quote(symbol: str) -> MarketQuote:
    """Latest close, previous close and change for a symbol (blocking)."""
    ticker = yf.Ticker(symbol)
    history = ticker.history(period="5d", interval="1d")
    if history is None or history.empty:
        raise ValueError(f"No data returned from Yahoo Finance for {symbol}")

    closes = history["Close"].dropna()
    if closes.empty:
        raise ValueError(f"No closing prices for {symbol}")

    value = float(closes.iloc[-1])
    previous = float(closes.iloc[-2]) if len(closes) > 1 else None

    market_time = (getattr(ticker, "history_metadata", None) or {}).get("regularMarketTime")
    if market_time:
        timestamp = datetime.fromtimestamp(market_time, tz=timezone.utc)
    else:
        timestamp = pd.Timestamp(closes.index[-1]).to_pydatetime()

    return MarketQuote(
        symbol=symbol,
        value=value,
        change=percent_change(value, previous),
        timestamp=timestamp,
        previous_close=previous,
    )


def _mark_quote_stale(quote: MarketQuote) -> MarketQuote:
    return replace(quote, is_stale=True)


async def fetch_market_data(
    symbol: str,
    *,
    force_refresh: bool = False,
    queue: Optional[ThrottledRequestQueue] = None,
    cache: Optional[TTLCache] = None,
) -> FetchResult[MarketQuote]:
    """
    Latest quote for a symbol, e.g. '^GSPC' or 'GC=F'.

    Raises:
        DataUnavailableError: Yahoo failed and nothing was cached
    """
    queue = queue or get_yahoo_queue()
    cache = cache if cache is not None else market_cache

    async def fetch() -> MarketQuote:
        logger.info("Fetching market data for %s", symbol)
        return await queue.run(
            lambda: asyncio.to_thread(_download_quote, symbol), label=f"Yahoo {symbol}"
        )

    return await fetch_with_fallback(
        cache,
        f"market_data_{symbol}",
        fetch,
        force_refresh=force_refresh,
        validate=validate_market_data,
        mark_stale=_mark_quote_stale,
    )


def history_to_sparkline(history: pd.DataFrame) -> List[SparklinePoint]:
    closes = history["Close"].dropna().iloc[-SPARKLINE_MAX_POINTS:]
    return [
        SparklinePoint(
            date=sparkline_label(when),
            value=round(float(value), 4),
            iso_date=pd.Timestamp(when).date().isoformat(),
        )
        for when, value in closes.items()
    ]


async def fetch_sparkline_data(
    symbol: str,
    period: str = "1mo",
    *,
    force_refresh: bool = False,
    queue: Optional[ThrottledRequestQueue] = None,
    cache: Optional[TTLCache] = None,
) -> FetchResult[List[SparklinePoint]]:
    """Daily closes for a symbol as sparkline points (oldest first)."""
    queue = queue or get_yahoo_queue()
    cache = cache if cache is not None else market_cache

    async def fetch() -> List[SparklinePoint]:
        history = await queue.run(
            lambda: asyncio.to_thread(_download_history, symbol, period),
            label=f"Yahoo {symbol} history",
        )
        return history_to_sparkline(history)

    return await fetch_with_fallback(
        cache,
        f"sparkline_{symbol}_{period}",
        fetch,
        force_refresh=force_refresh,
        validate=lambda points: validate_sparkline_data(symbol, points),
    )


def _mark_vix_error(data: VixData) -> VixData:
    return replace(data, status=STATUS_ERROR, is_stale=True)


async def fetch_vix(
    *,
    force_refresh: bool = False,
    queue: Optional[ThrottledRequestQueue] = None,
    cache: Optional[TTLCache] = None,
) -> FetchResult[VixData]:
    """
    VIX level with status and historical percentile.

    A stale fallback keeps the last values but reports status 'error'.
    """
    queue = queue or get_yahoo_queue()
    cache = cache if cache is not None else market_cache

    async def fetch() -> VixData:
        quote = await queue.run(
            lambda: asyncio.to_thread(_download_quote, VIX_SYMBOL), label="Yahoo VIX"
        )
        if not validate_market_data(quote):
            raise ValidationError("Fetched VIX data failed validation")
        return VixData(
            value=quote.value,
            previous_close=quote.previous_close,
            change=quote.change,
            status=determine_vix_status(quote.value),
            percentile=calculate_historical_percentile(quote.value),
            timestamp=quote.timestamp,
        )

    return await fetch_with_fallback(
        cache,
        "vix_data",
        fetch,
        force_refresh=force_refresh,
        mark_stale=_mark_vix_error,
    )
