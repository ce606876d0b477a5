"""Tests for MassiveProvider (mocked)."""

from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest

from app.gold.errors import (
    ProviderMalformed,
    ProviderRateLimited,
    ProviderUnauthorized,
    ProviderUnavailable,
    SymbolUnsupported,
)
from app.gold.massive_client import MassiveProvider
from app.gold.models import Source


def _make_snapshot(ticker: str, price: float, timestamp_ms: int, prev_close: float = 189.0) -> MagicMock:
    """Create a mock Massive ticker snapshot object."""
    snap = MagicMock()
    snap.ticker = ticker
    snap.last_trade.price = price
    snap.last_trade.timestamp = timestamp_ms
    snap.day.open = 189.5
    snap.day.high = 191.0
    snap.day.low = 188.9
    snap.day.close = price
    snap.day.volume = 8_000_000
    snap.prev_day.close = prev_close
    return snap


@pytest.mark.asyncio
class TestMassiveProvider:
    """Unit tests for MassiveProvider with mocked API."""

    async def test_snapshot_normalized(self):
        provider = MassiveProvider(api_key="test-key")
        snap = _make_snapshot("GLD", 190.30, 1704209400000)

        with patch.object(provider, "_fetch_snapshot", return_value=snap) as fetch:
            result = await provider.fetch("GLD")

        fetch.assert_called_once_with("STOCKS", "GLD")
        record = result.record
        assert record.source is Source.MASSIVE
        assert record.price == 190.30
        assert record.previous_close == 189.0
        assert record.volume == 8_000_000

    async def test_timestamp_conversion(self):
        """Timestamps are converted from milliseconds to seconds."""
        provider = MassiveProvider(api_key="test-key")
        snap = _make_snapshot("GLD", 190.30, 1704209400000)

        with patch.object(provider, "_fetch_snapshot", return_value=snap):
            result = await provider.fetch("GLD")

        assert result.record.last_update == datetime(2024, 1, 2, 15, 30, tzinfo=timezone.utc)

    async def test_spot_uses_forex_ticker(self):
        provider = MassiveProvider(api_key="test-key")
        snap = _make_snapshot("C:XAUUSD", 2045.50, 1704209400000, prev_close=2033.20)

        with patch.object(provider, "_fetch_snapshot", return_value=snap) as fetch:
            result = await provider.fetch("XAUUSD")

        fetch.assert_called_once_with("FOREX", "C:XAUUSD")
        assert result.record.symbol == "XAUUSD"

    async def test_falls_back_to_day_close_without_last_trade(self):
        provider = MassiveProvider(api_key="test-key")
        snap = _make_snapshot("GLD", 190.30, 1704209400000)
        snap.last_trade = None

        with patch.object(provider, "_fetch_snapshot", return_value=snap):
            result = await provider.fetch("GLD")

        assert result.record.price == 190.30

    async def test_malformed_snapshot(self):
        provider = MassiveProvider(api_key="test-key")
        snap = MagicMock()
        snap.last_trade = None
        snap.day = None  # Will cause AttributeError

        with patch.object(provider, "_fetch_snapshot", return_value=snap):
            result = await provider.fetch("GLD")

        assert isinstance(result.error, ProviderMalformed)

    async def test_api_error_does_not_raise(self):
        provider = MassiveProvider(api_key="test-key")
        with patch.object(provider, "_fetch_snapshot", side_effect=Exception("network error")):
            result = await provider.fetch("GLD")
        assert isinstance(result.error, ProviderUnavailable)

    @pytest.mark.parametrize(
        ("message", "expected"),
        [
            ("HTTP 401: NOT_AUTHORIZED", ProviderUnauthorized),
            ("HTTP 429: too many requests", ProviderRateLimited),
            ("HTTP 502: bad gateway", ProviderUnavailable),
            ("status: 403 forbidden", ProviderUnauthorized),
            ('{"status":"ERROR","error":"You\'ve exceeded the maximum requests per minute"}', ProviderRateLimited),
            ("no snapshot for order 4013 at 14:29", ProviderUnavailable),
            ("connection reset after 401 bytes", ProviderUnavailable),
        ],
    )
    async def test_sdk_errors_classified(self, message, expected):
        provider = MassiveProvider(api_key="test-key")
        with patch.object(provider, "_fetch_snapshot", side_effect=Exception(message)):
            result = await provider.fetch("GLD")
        assert isinstance(result.error, expected)

    async def test_status_attribute_preferred(self):
        """A numeric status on the SDK error wins over the message text."""
        error = Exception("request failed")
        error.status = 429
        provider = MassiveProvider(api_key="test-key")
        with patch.object(provider, "_fetch_snapshot", side_effect=error):
            result = await provider.fetch("GLD")
        assert isinstance(result.error, ProviderRateLimited)

    async def test_missing_key_is_unauthorized(self):
        provider = MassiveProvider(api_key="")
        result = await provider.fetch("GLD")
        assert isinstance(result.error, ProviderUnauthorized)

    async def test_futures_unsupported(self):
        provider = MassiveProvider(api_key="test-key")
        with patch.object(provider, "_fetch_snapshot") as fetch:
            result = await provider.fetch("GC")
            fetch.assert_not_called()
        assert isinstance(result.error, SymbolUnsupported)

    async def test_injected_client_is_used(self):
        client = MagicMock()
        client.get_snapshot_ticker.return_value = _make_snapshot("GLD", 190.30, 1704209400000)
        provider = MassiveProvider(api_key="test-key", client=client)

        result = await provider.fetch("GLD")

        assert result.ok
        client.get_snapshot_ticker.assert_called_once()

    async def test_aclose_is_idempotent(self):
        provider = MassiveProvider(api_key="test-key")
        await provider.aclose()
        await provider.aclose()  # Should not raise
