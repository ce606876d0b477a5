"""GBM-based synthetic gold feed, the fallback provider of last resort."""

from __future__ import annotations

import logging
import math
import zlib
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone

import numpy as np

from .interface import ProviderClient
from .models import HistoricalBar, PriceRecord, Source
from .symbols import SEED_PRICES, SYMBOL_PARAMS, SYMBOLS, TYPICAL_VOLUME

logger = logging.getLogger(__name__)

DEFAULT_SEED = 42


@dataclass(slots=True)
class _Session:
    """Running intraday state for one symbol."""

    previous_close: float
    open: float
    high: float
    low: float
    volume: float


class GBMSimulator:
    """Geometric Brownian Motion walk for gold instruments.

    Math:
        S(t+dt) = S(t) * exp((mu - sigma^2/2) * dt + sigma * sqrt(dt) * Z)

    Where:
        S(t)   = current price
        mu     = annualized drift (expected return)
        sigma  = annualized volatility
        dt     = time step as fraction of a trading year
        Z      = standard normal draw

    Each symbol owns an independent generator derived from the seed, so the
    sequence for one symbol does not depend on how often others are stepped.
    """

    # 23 trading hours a day for bullion, 252 days a year
    TRADING_SECONDS_PER_YEAR = 252 * 23 * 3600
    DEFAULT_DT = 30.0 / TRADING_SECONDS_PER_YEAR  # one refresh interval
    DAILY_DT = 1.0 / 252

    def __init__(
        self,
        seed: int = DEFAULT_SEED,
        dt: float = DEFAULT_DT,
        event_probability: float = 0.001,
    ) -> None:
        self._seed = seed
        self._dt = dt
        self._event_prob = event_probability
        self._rngs: dict[str, np.random.Generator] = {}
        self._prices: dict[str, float] = {}
        self._sessions: dict[str, _Session] = {}

    # --- Public API ---

    def step(self, symbol: str) -> float:
        """Advance one symbol by one time step and return its new price."""
        rng = self._rng(symbol)
        params = SYMBOL_PARAMS[symbol]
        mu, sigma = params["mu"], params["sigma"]
        price = self._current(symbol)

        drift = (mu - 0.5 * sigma**2) * self._dt
        diffusion = sigma * math.sqrt(self._dt) * rng.standard_normal()
        price *= math.exp(drift + diffusion)

        # Rare macro shock: CPI print, central bank surprise
        if rng.random() < self._event_prob:
            shock = rng.uniform(0.005, 0.02) * rng.choice([-1, 1])
            price *= 1 + shock
            logger.debug("Mock shock on %s: %+.2f%%", symbol, shock * 100)

        self._prices[symbol] = price
        session = self._session(symbol)
        session.high = max(session.high, price)
        session.low = min(session.low, price)
        session.volume += float(rng.integers(0, 50)) if symbol in TYPICAL_VOLUME else 0.0
        return round(price, 2)

    def quote(self, symbol: str) -> PriceRecord:
        """Step the walk and wrap the result as a record."""
        price = self.step(symbol)
        session = self._session(symbol)
        return PriceRecord.from_previous_close(
            symbol=symbol,
            price=price,
            previous_close=round(session.previous_close, 2),
            source=Source.MOCK,
            open=round(session.open, 2),
            high=round(session.high, 2),
            low=round(session.low, 2),
            volume=session.volume if symbol in TYPICAL_VOLUME else None,
        )

    def history(self, symbol: str, days: int, end: date | None = None) -> list[HistoricalBar]:
        """Generate ``days`` daily bars ending at ``end``, most recent first.

        Deterministic for a given (seed, symbol, end). Bars are anchored at the
        symbol's reference price and walked backwards one day at a time.
        """
        if days <= 0:
            return []
        end = end or datetime.now(timezone.utc).date()
        rng = np.random.default_rng([self._seed, _symbol_key(symbol), end.toordinal()])
        params = SYMBOL_PARAMS[symbol]
        mu, sigma = params["mu"], params["sigma"]
        dt = self.DAILY_DT

        returns = rng.normal((mu - 0.5 * sigma**2) * dt, sigma * math.sqrt(dt), days)
        gaps = rng.normal(0.0, sigma * math.sqrt(dt) * 0.25, days)
        wicks = np.abs(rng.normal(0.0, sigma * math.sqrt(dt) * 0.5, (days, 2)))

        # closes[0] is the most recent close; walk backwards by undoing each return
        closes = SEED_PRICES[symbol] / np.exp(np.concatenate(([0.0], np.cumsum(returns[:-1]))))
        previous_closes = closes / np.exp(returns)
        opens = previous_closes * np.exp(gaps)
        highs = np.maximum(opens, closes) * (1 + wicks[:, 0])
        lows = np.minimum(opens, closes) * (1 - wicks[:, 1])

        volume = TYPICAL_VOLUME.get(symbol)
        bars = []
        for i in range(days):
            bars.append(
                HistoricalBar(
                    date=end - timedelta(days=i),
                    open=round(float(opens[i]), 2),
                    high=round(float(highs[i]), 2),
                    low=round(float(lows[i]), 2),
                    close=round(float(closes[i]), 2),
                    volume=round(volume * float(rng.uniform(0.6, 1.4))) if volume else None,
                )
            )
        return bars

    # --- Internals ---

    def _rng(self, symbol: str) -> np.random.Generator:
        if symbol not in self._rngs:
            self._rngs[symbol] = np.random.default_rng([self._seed, _symbol_key(symbol)])
        return self._rngs[symbol]

    def _current(self, symbol: str) -> float:
        if symbol not in self._prices:
            self._prices[symbol] = SEED_PRICES[symbol]
        return self._prices[symbol]

    def _session(self, symbol: str) -> _Session:
        if symbol not in self._sessions:
            seed_price = SEED_PRICES[symbol]
            self._sessions[symbol] = _Session(
                previous_close=seed_price,
                open=seed_price,
                high=seed_price,
                low=seed_price,
                volume=0.0,
            )
        return self._sessions[symbol]


def _symbol_key(symbol: str) -> int:
    return zlib.crc32(symbol.encode())


class MockProvider(ProviderClient):
    """ProviderClient backed by the GBM simulator. Quotes every symbol, never fails."""

    name = "mock"
    supported_symbols = frozenset(SYMBOLS)

    def __init__(self, seed: int = DEFAULT_SEED, timeout: float = 10.0) -> None:
        super().__init__(timeout=timeout)
        self._sim = GBMSimulator(seed=seed)

    async def _fetch_quote(self, symbol: str) -> PriceRecord:
        return self._sim.quote(symbol)

    async def _fetch_history(self, symbol: str, days: int) -> list[HistoricalBar]:
        return self._sim.history(symbol, days)
