"""Data containers shared by the market data pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

STATUS_NORMAL = "normal"
STATUS_WARNING = "warning"
STATUS_DANGER = "danger"
STATUS_ERROR = "error"

VALID_STATUSES = (STATUS_NORMAL, STATUS_WARNING, STATUS_DANGER, STATUS_ERROR)


@dataclass
class SparklinePoint:
    """One point of an indicator sparkline."""

    date: str  # Display label, e.g. "Mar 15"
    value: float
    iso_date: Optional[str] = None

    def to_dict(self) -> dict:
        return {"date": self.date, "value": self.value, "isoDate": self.iso_date}


@dataclass
class MarketQuote:
    """Latest quote for a symbol. ``change`` is a percentage."""

    symbol: str
    value: float
    change: float
    timestamp: datetime
    previous_close: Optional[float] = None
    is_stale: bool = False

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "value": self.value,
            "change": self.change,
            "timestamp": self.timestamp.isoformat(),
            "previousClose": self.previous_close,
            "isStale": self.is_stale,
        }


def sparkline_label(when: datetime) -> str:
    """Format a date as "Mar 15"."""
    return f"{when:%b} {when.day}"
