"""Massive (Polygon.io) provider for gold ETFs, miners and spot FX."""

from __future__ import annotations

import asyncio
import logging
import re
from datetime import datetime, timezone
from typing import Any

from .errors import (
    ProviderMalformed,
    ProviderRateLimited,
    ProviderUnauthorized,
    ProviderUnavailable,
)
from .interface import DEFAULT_TIMEOUT, ProviderClient
from .models import PriceRecord, Source

logger = logging.getLogger(__name__)

_STATUS_RE = re.compile(r"\b(?:HTTP|status)[ :=]*(\d{3})\b", re.IGNORECASE)

# Our symbol -> (market type name, Massive ticker)
_TICKERS: dict[str, tuple[str, str]] = {
    "GLD": ("STOCKS", "GLD"),
    "GOLD": ("STOCKS", "GOLD"),
    "XAUUSD": ("FOREX", "C:XAUUSD"),
}


class MassiveProvider(ProviderClient):
    """ProviderClient backed by the Massive (Polygon.io) snapshot API.

    Calls GET /v2/snapshot/locale/{locale}/markets/{market}/tickers/{ticker}
    for one symbol at a time. The Massive RESTClient is synchronous, so each
    call runs in a worker thread; if the call outlives the timeout its result
    is discarded.
    """

    name = "massive"
    supported_symbols = frozenset(_TICKERS)

    def __init__(
        self,
        api_key: str,
        timeout: float = DEFAULT_TIMEOUT,
        client: Any = None,
    ) -> None:
        super().__init__(timeout=timeout)
        self._api_key = api_key
        self._client = client  # Lazily built so the SDK is only touched when used

    async def aclose(self) -> None:
        self._client = None

    async def _fetch_quote(self, symbol: str) -> PriceRecord:
        if not self._api_key and self._client is None:
            raise ProviderUnauthorized(self.name, "API key not configured")

        market, ticker = _TICKERS[symbol]
        try:
            snap = await asyncio.to_thread(self._fetch_snapshot, market, ticker)
        except Exception as e:
            raise _classify(self.name, e) from e
        return self._normalize(symbol, snap)

    def _fetch_snapshot(self, market: str, ticker: str) -> Any:
        """Synchronous call to the Massive REST API. Runs in a thread."""
        from massive.rest.models import SnapshotMarketType

        return self._rest_client().get_snapshot_ticker(
            market_type=getattr(SnapshotMarketType, market),
            ticker=ticker,
        )

    def _rest_client(self) -> Any:
        if self._client is None:
            from massive import RESTClient

            self._client = RESTClient(api_key=self._api_key)
        return self._client

    def _normalize(self, symbol: str, snap: Any) -> PriceRecord:
        try:
            day = snap.day
            last_trade = getattr(snap, "last_trade", None)
            if last_trade is not None and last_trade.price:
                price = float(last_trade.price)
                # Massive timestamps are Unix milliseconds
                last_update = datetime.fromtimestamp(last_trade.timestamp / 1000.0, tz=timezone.utc)
            else:
                price = float(day.close)
                last_update = datetime.now(timezone.utc)
            previous_close = float(snap.prev_day.close) if snap.prev_day and snap.prev_day.close else None

            return PriceRecord.from_previous_close(
                symbol=symbol,
                price=price,
                previous_close=previous_close,
                source=Source.MASSIVE,
                last_update=last_update,
                open=float(day.open) if day.open else None,
                high=float(day.high) if day.high else None,
                low=float(day.low) if day.low else None,
                volume=float(day.volume) if day.volume else None,
            )
        except (AttributeError, TypeError, ValueError) as e:
            logger.warning("Malformed Massive snapshot for %s: %s", symbol, e)
            raise ProviderMalformed(self.name, f"bad snapshot for {symbol}: {e}") from e


def _classify(provider: str, exc: Exception) -> Exception:
    """Map a Massive SDK exception onto the provider error taxonomy.

    ``BadResponse`` carries only the response body; some transport errors
    expose a numeric ``status``. Both are checked.
    """
    text = str(exc)
    status = getattr(exc, "status", None)
    if not isinstance(status, int):
        match = _STATUS_RE.search(text)
        status = int(match.group(1)) if match else None

    if status in (401, 403) or "NOT_AUTHORIZED" in text:
        return ProviderUnauthorized(provider, text[:120])
    if status == 429 or "exceeded the maximum requests" in text.lower():
        return ProviderRateLimited(provider, text[:120])
    return ProviderUnavailable(provider, text[:120] or type(exc).__name__)
