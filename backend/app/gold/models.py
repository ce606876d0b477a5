"""Data models for gold quotes."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum

# Allowed drift between the reported changePercent and change / previousClose
CHANGE_PERCENT_TOLERANCE = 0.01


class Source(str, Enum):
    """Provider that produced a record."""

    ALPHA_VANTAGE = "Alpha Vantage"
    FINNHUB = "Finnhub"
    MASSIVE = "Massive"
    MOCK = "Mock Data"


def _iso(ts: datetime) -> str:
    return ts.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True, slots=True)
class PriceRecord:
    """Immutable snapshot of one symbol's quote at a point in time."""

    symbol: str
    price: float
    change: float
    change_percent: float
    source: Source
    last_update: datetime
    open: float | None = None
    high: float | None = None
    low: float | None = None
    previous_close: float | None = None
    volume: float | None = None

    def __post_init__(self) -> None:
        if self.last_update.tzinfo is None:
            raise ValueError("last_update must be timezone-aware (UTC)")
        if self.high is not None and self.low is not None and self.high < self.low:
            raise ValueError(f"high {self.high} < low {self.low} for {self.symbol}")
        if self.previous_close:
            expected = self.change / self.previous_close * 100
            if abs(expected - self.change_percent) > CHANGE_PERCENT_TOLERANCE:
                raise ValueError(
                    f"change_percent {self.change_percent} inconsistent with "
                    f"change {self.change} / previous_close {self.previous_close}"
                )

    @classmethod
    def from_previous_close(
        cls,
        symbol: str,
        price: float,
        previous_close: float | None,
        source: Source,
        last_update: datetime | None = None,
        **extra: float | None,
    ) -> PriceRecord:
        """Build a record, deriving change and change_percent from previous_close.

        Without a previous close the change is reported as flat.
        """
        price = round(price, 4)
        if previous_close:
            change = round(price - previous_close, 4)
            change_percent = round(change / previous_close * 100, 4)
        else:
            change = 0.0
            change_percent = 0.0
        return cls(
            symbol=symbol,
            price=price,
            change=change,
            change_percent=change_percent,
            source=source,
            last_update=last_update or datetime.now(timezone.utc),
            previous_close=previous_close,
            **extra,
        )

    def to_dict(self) -> dict:
        """Serialize for JSON / WebSocket transmission. Absent optionals are omitted."""
        data: dict = {
            "symbol": self.symbol,
            "price": self.price,
            "change": self.change,
            "changePercent": self.change_percent,
        }
        optional = {
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "previousClose": self.previous_close,
            "volume": self.volume,
        }
        data.update({k: v for k, v in optional.items() if v is not None})
        data["source"] = self.source.value
        data["lastUpdate"] = _iso(self.last_update)
        return data


@dataclass(frozen=True, slots=True)
class CacheEntry:
    """A cached record and when it was fetched. Replaced whole, never mutated."""

    record: PriceRecord
    fetched_at: float = field(default_factory=time.time)  # Unix seconds

    def age(self, now: float | None = None) -> float:
        """Seconds since the record was fetched."""
        return (now if now is not None else time.time()) - self.fetched_at


@dataclass(frozen=True, slots=True)
class HistoricalBar:
    """One daily OHLC bar."""

    date: date
    open: float
    high: float
    low: float
    close: float
    volume: float | None = None

    def __post_init__(self) -> None:
        if not (self.low <= min(self.open, self.close) and max(self.open, self.close) <= self.high):
            raise ValueError(
                f"inconsistent bar {self.date}: o={self.open} h={self.high} "
                f"l={self.low} c={self.close}"
            )

    def to_dict(self) -> dict:
        data: dict = {
            "date": self.date.isoformat(),
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
        }
        if self.volume is not None:
            data["volume"] = self.volume
        return data
