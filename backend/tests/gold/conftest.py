"""Fixtures for gold feed tests."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from app.gold.interface import ProviderClient
from app.gold.models import PriceRecord, Source
from app.gold.symbols import SYMBOLS

FIXED_TS = datetime(2024, 1, 2, 15, 30, tzinfo=timezone.utc)


def build_record(symbol: str = "XAUUSD", price: float = 2045.50, previous_close: float | None = 2033.20,
                 source: Source = Source.MOCK) -> PriceRecord:
    return PriceRecord.from_previous_close(
        symbol=symbol,
        price=price,
        previous_close=previous_close,
        source=source,
        last_update=FIXED_TS,
    )


class FakeProvider(ProviderClient):
    """Scriptable provider: succeeds, raises a given error, or stalls."""

    def __init__(
        self,
        name: str,
        error: Exception | None = None,
        price: float = 2045.50,
        delay: float = 0.0,
        symbols: set[str] | None = None,
        timeout: float = 1.0,
    ) -> None:
        super().__init__(timeout=timeout)
        self.name = name
        self.supported_symbols = frozenset(symbols if symbols is not None else SYMBOLS)
        self.error = error
        self.price = price
        self.delay = delay
        self.calls: list[str] = []
        self.release = asyncio.Event()
        self.block = False

    async def _fetch_quote(self, symbol: str) -> PriceRecord:
        self.calls.append(symbol)
        if self.block:
            await self.release.wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return build_record(symbol, self.price)


@pytest.fixture
def make_record():
    """Factory for valid PriceRecords with a fixed timestamp."""
    return build_record


@pytest.fixture
def fake_provider():
    """The FakeProvider class, for building scripted chains."""
    return FakeProvider
