"""Alpha Vantage REST provider."""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Any

from .errors import ProviderMalformed, ProviderRateLimited
from .http_client import HttpProviderClient, to_float
from .models import HistoricalBar, PriceRecord, Source

logger = logging.getLogger(__name__)

_QUERY_PATH = "/query"

# Spot gold is quoted as the XAU physical currency against USD
_FX_PAIRS: dict[str, tuple[str, str]] = {"XAUUSD": ("XAU", "USD")}
_EQUITIES = frozenset({"GLD", "GOLD"})


class AlphaVantageProvider(HttpProviderClient):
    """Quotes spot gold via CURRENCY_EXCHANGE_RATE and gold equities via GLOBAL_QUOTE.

    Alpha Vantage reports throttling inside a 200 response (a ``Note`` or
    ``Information`` key) rather than with HTTP 429, so every payload goes
    through ``_check_payload`` first.
    """

    name = "alpha_vantage"
    base_url = "https://www.alphavantage.co"
    supported_symbols = frozenset(_FX_PAIRS) | _EQUITIES

    async def _fetch_quote(self, symbol: str) -> PriceRecord:
        if symbol in _FX_PAIRS:
            return await self._fetch_fx_rate(symbol)
        return await self._fetch_global_quote(symbol)

    async def _fetch_history(self, symbol: str, days: int) -> list[HistoricalBar]:
        if symbol in _FX_PAIRS:
            base, quote = _FX_PAIRS[symbol]
            params = {"function": "FX_DAILY", "from_symbol": base, "to_symbol": quote}
            series_key = "Time Series FX (Daily)"
        else:
            params = {"function": "TIME_SERIES_DAILY", "symbol": symbol}
            series_key = "Time Series (Daily)"
        # Compact responses carry the latest 100 data points
        params["outputsize"] = "full" if days > 100 else "compact"
        payload = await self._query(params)
        series = payload.get(series_key)
        if not isinstance(series, dict) or not series:
            raise ProviderMalformed(self.name, f"missing {series_key!r}")

        bars: list[HistoricalBar] = []
        for day in sorted(series, reverse=True)[:days]:
            row = series[day]
            try:
                volume = row.get("5. volume")
                bars.append(
                    HistoricalBar(
                        date=date.fromisoformat(day),
                        open=to_float(self.name, row.get("1. open"), "open"),
                        high=to_float(self.name, row.get("2. high"), "high"),
                        low=to_float(self.name, row.get("3. low"), "low"),
                        close=to_float(self.name, row.get("4. close"), "close"),
                        volume=to_float(self.name, volume, "volume") if volume is not None else None,
                    )
                )
            except (AttributeError, ValueError) as e:
                raise ProviderMalformed(self.name, f"bad bar for {day}: {e}") from e
        return bars

    # --- Internal ---

    async def _query(self, params: dict[str, str]) -> dict[str, Any]:
        payload = await self._get_json(_QUERY_PATH, {**params, "apikey": self._api_key})
        return self._check_payload(payload)

    def _check_payload(self, payload: Any) -> dict[str, Any]:
        if not isinstance(payload, dict):
            raise ProviderMalformed(self.name, "payload is not an object")
        notice = payload.get("Note") or payload.get("Information")
        if notice:
            raise ProviderRateLimited(self.name, str(notice)[:120])
        if "Error Message" in payload:
            raise ProviderMalformed(self.name, str(payload["Error Message"])[:120])
        return payload

    async def _fetch_fx_rate(self, symbol: str) -> PriceRecord:
        base, quote = _FX_PAIRS[symbol]
        payload = await self._query(
            {"function": "CURRENCY_EXCHANGE_RATE", "from_currency": base, "to_currency": quote}
        )
        rate = payload.get("Realtime Currency Exchange Rate")
        if not isinstance(rate, dict) or "5. Exchange Rate" not in rate:
            raise ProviderMalformed(self.name, "missing exchange rate block")

        price = to_float(self.name, rate["5. Exchange Rate"], "exchange rate")
        try:
            return PriceRecord.from_previous_close(
                symbol=symbol,
                price=price,
                previous_close=None,
                source=Source.ALPHA_VANTAGE,
                last_update=_parse_refreshed(rate.get("6. Last Refreshed")),
            )
        except ValueError as e:
            raise ProviderMalformed(self.name, str(e)) from e

    async def _fetch_global_quote(self, symbol: str) -> PriceRecord:
        payload = await self._query({"function": "GLOBAL_QUOTE", "symbol": symbol})
        quote = payload.get("Global Quote")
        if not isinstance(quote, dict) or "05. price" not in quote:
            raise ProviderMalformed(self.name, f"empty Global Quote for {symbol}")

        try:
            return PriceRecord.from_previous_close(
                symbol=symbol,
                price=to_float(self.name, quote["05. price"], "price"),
                previous_close=to_float(self.name, quote.get("08. previous close"), "previous close"),
                source=Source.ALPHA_VANTAGE,
                open=to_float(self.name, quote.get("02. open"), "open"),
                high=to_float(self.name, quote.get("03. high"), "high"),
                low=to_float(self.name, quote.get("04. low"), "low"),
                volume=to_float(self.name, quote.get("06. volume"), "volume"),
            )
        except ValueError as e:
            raise ProviderMalformed(self.name, str(e)) from e


def _parse_refreshed(value: str | None) -> datetime:
    """Alpha Vantage refresh stamps are naive UTC strings."""
    if value:
        try:
            return datetime.strptime(value, "%Y-%m-%d %H:%M:%S").replace(tzinfo=timezone.utc)
        except ValueError:
            logger.debug("Unparseable Alpha Vantage timestamp: %r", value)
    return datetime.now(timezone.utc)
