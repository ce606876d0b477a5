"""Request/response read path: read-through cache and historical bars."""

from __future__ import annotations

import logging

from .cache import PriceCache
from .chain import ProviderChain
from .errors import InvalidQuery, SymbolUnsupported
from .models import HistoricalBar, PriceRecord
from .symbols import SYMBOLS, normalize_symbol

logger = logging.getLogger(__name__)

MIN_HISTORY_DAYS = 1
MAX_HISTORY_DAYS = 365


class QueryService:
    """Serves current prices from the cache, resolving through the chain on a miss.

    A cache hit is returned regardless of age; keeping entries fresh is the
    RefreshScheduler's job. Concurrent misses for the same symbol share one
    chain resolution.
    """

    def __init__(self, cache: PriceCache, chain: ProviderChain) -> None:
        self._cache = cache
        self._chain = chain

    @property
    def cache(self) -> PriceCache:
        return self._cache

    def validate_symbol(self, symbol: str) -> str:
        """Normalize a symbol, raising SymbolUnsupported if it is not a gold instrument."""
        normalized = normalize_symbol(symbol)
        if normalized not in SYMBOLS:
            raise SymbolUnsupported(symbol)
        return normalized

    async def current_price(self, symbol: str) -> tuple[PriceRecord, bool]:
        """Return (record, cached). ``cached`` is False only when this call hit the providers."""
        symbol = self.validate_symbol(symbol)

        entry = self._cache.get(symbol)
        if entry is not None:
            return entry.record, True

        record = await self._chain.resolve(symbol)
        # Callers sharing one resolution all wake with the same record; only
        # the first to write it reports a fresh fetch
        entry = self._cache.get(symbol)
        if entry is not None and entry.record is record:
            return record, True
        self._cache.set(symbol, record)
        logger.debug("Cache miss for %s filled from %s", symbol, record.source.value)
        return record, False

    async def historical(self, symbol: str, days: int) -> list[HistoricalBar]:
        """``days`` daily bars for a symbol, most recent first."""
        symbol = self.validate_symbol(symbol)
        if not MIN_HISTORY_DAYS <= days <= MAX_HISTORY_DAYS:
            raise InvalidQuery(
                f"days must be between {MIN_HISTORY_DAYS} and {MAX_HISTORY_DAYS}",
                {"days": days},
            )
        bars = await self._chain.resolve_history(symbol, days)
        return sorted(bars, key=lambda b: b.date, reverse=True)[:days]
