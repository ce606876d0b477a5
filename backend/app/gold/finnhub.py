"""Finnhub REST provider for gold equities."""

from __future__ import annotations

from datetime import datetime, timezone

from .errors import ProviderMalformed
from .http_client import HttpProviderClient, to_float
from .models import PriceRecord, Source

_QUOTE_PATH = "/api/v1/quote"


class FinnhubProvider(HttpProviderClient):
    """Quotes GLD and GOLD through Finnhub's /quote endpoint.

    Finnhub answers unknown tickers with HTTP 200 and an all-zero body, so a
    missing or zero current price is treated as malformed.
    """

    name = "finnhub"
    base_url = "https://finnhub.io"
    supported_symbols = frozenset({"GLD", "GOLD"})

    async def _fetch_quote(self, symbol: str) -> PriceRecord:
        payload = await self._get_json(_QUOTE_PATH, {"symbol": symbol, "token": self._api_key})
        if not isinstance(payload, dict) or not payload.get("c"):
            raise ProviderMalformed(self.name, f"no current price for {symbol}")

        ts = payload.get("t")
        last_update = (
            datetime.fromtimestamp(ts, tz=timezone.utc)
            if isinstance(ts, (int, float)) and ts > 0
            else datetime.now(timezone.utc)
        )
        try:
            return PriceRecord.from_previous_close(
                symbol=symbol,
                price=to_float(self.name, payload["c"], "c"),
                previous_close=to_float(self.name, payload.get("pc", 0), "pc") or None,
                source=Source.FINNHUB,
                last_update=last_update,
                open=to_float(self.name, payload.get("o", 0), "o") or None,
                high=to_float(self.name, payload.get("h", 0), "h") or None,
                low=to_float(self.name, payload.get("l", 0), "l") or None,
            )
        except ValueError as e:
            raise ProviderMalformed(self.name, str(e)) from e
