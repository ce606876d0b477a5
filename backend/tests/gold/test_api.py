"""End-to-end tests for the HTTP and WebSocket surface."""

from datetime import date
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from app.config import Settings
from app.gold.simulator import MockProvider
from app.main import create_app


def mock_settings(**overrides) -> Settings:
    values = {
        "providers": ("mock",),
        "refresh_interval": 3600.0,
        "refresh_symbols": ("XAUUSD",),
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def client():
    with TestClient(create_app(mock_settings())) as test_client:
        yield test_client


class TestHealth:
    """Tests for the health and index endpoints."""

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "OK"
        assert body["version"] == "1.0.0"
        assert body["environment"] == "development"
        assert body["uptime"] >= 0
        assert body["timestamp"].endswith("Z")

    def test_health_under_api_prefix(self, client):
        assert client.get("/api/v1/gold/health").json()["status"] == "OK"

    def test_index_lists_endpoints(self, client):
        body = client.get("/").json()
        assert body["success"] is True
        assert "stream" in body["endpoints"]


class TestPrices:
    """Tests for the current price endpoints."""

    def test_cold_then_warm(self, client):
        first = client.get("/gold/GLD")
        second = client.get("/gold/GLD")

        assert first.status_code == 200
        assert first.json()["cached"] is False
        assert second.json()["cached"] is True
        assert first.json()["data"] == second.json()["data"]

    def test_cold_current_resolves_once(self):
        """A cold XAUUSD read hits the providers once; the next read is cached."""
        calls = []
        original = MockProvider._fetch_quote

        async def counting(self, symbol):
            calls.append(symbol)
            return await original(self, symbol)

        with patch.object(MockProvider, "_fetch_quote", counting):
            with TestClient(create_app(mock_settings(refresh_symbols=("GC",)))) as client:
                first = client.get("/gold/current", params={"symbol": "XAUUSD"}).json()
                second = client.get("/gold/current", params={"symbol": "XAUUSD"}).json()

        assert first["cached"] is False
        assert second["cached"] is True
        assert first["data"] == second["data"]
        assert calls.count("XAUUSD") == 1

    def test_current_defaults_to_xauusd(self, client):
        body = client.get("/gold/current").json()
        assert body["success"] is True
        data = body["data"]
        assert data["symbol"] == "XAUUSD"
        assert data["source"] == "Mock Data"
        assert data["lastUpdate"].endswith("Z")
        assert abs(data["change"] - (data["price"] - data["previousClose"])) < 0.01

    def test_current_with_symbol_and_prefix(self, client):
        body = client.get("/api/v1/gold/current", params={"symbol": "gc"}).json()
        assert body["data"]["symbol"] == "GC"

    def test_unsupported_symbol(self, client):
        response = client.get("/gold/NOTAGOLDSYMBOL")
        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert "NOTAGOLDSYMBOL" in body["error"]

    def test_unsupported_symbol_query_form(self, client):
        response = client.get("/gold/current", params={"symbol": "NOTAGOLDSYMBOL"})
        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_symbols(self, client):
        body = client.get("/gold/symbols").json()
        assert body["success"] is True
        assert set(body["symbols"]) == {"GC", "XAUUSD", "GOLD", "GLD"}


class TestHistorical:
    """Tests for /gold/historical/{symbol}."""

    def test_five_days(self, client):
        response = client.get("/gold/historical/XAUUSD", params={"days": 5})
        assert response.status_code == 200
        body = response.json()
        assert body["symbol"] == "XAUUSD"
        assert body["days"] == 5

        bars = body["data"]
        assert len(bars) == 5
        dates = [date.fromisoformat(bar["date"]) for bar in bars]
        assert dates == sorted(dates, reverse=True)
        for bar in bars:
            assert bar["low"] <= min(bar["open"], bar["close"])
            assert max(bar["open"], bar["close"]) <= bar["high"]

    def test_default_is_seven_days(self, client):
        assert len(client.get("/api/v1/gold/historical/gld").json()["data"]) == 7

    @pytest.mark.parametrize("days", ["0", "366", "abc"])
    def test_bad_days(self, client, days):
        response = client.get("/gold/historical/XAUUSD", params={"days": days})
        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_unsupported_symbol(self, client):
        assert client.get("/gold/historical/SILVER").status_code == 400


class TestErrors:
    """Tests for error envelopes."""

    def test_unknown_route(self, client):
        response = client.get("/api/v1/nothing-here")
        assert response.status_code == 404
        assert response.json() == {"success": False, "error": "API endpoint not found"}

    def test_exhausted_chain_is_503(self):
        settings = mock_settings(providers=("finnhub",), finnhub_api_key="fh-key")
        with TestClient(create_app(settings)) as client:
            response = client.get("/gold/XAUUSD")
        assert response.status_code == 503
        body = response.json()
        assert body["success"] is False
        assert "XAUUSD" in body["error"]


class TestCors:
    """CORS headers on success and error responses."""

    ORIGIN = {"Origin": "http://localhost:3000"}

    def test_success_response(self, client):
        response = client.get("/gold/symbols", headers=self.ORIGIN)
        assert response.headers["access-control-allow-origin"] == "*"

    def test_client_error_response(self, client):
        response = client.get("/gold/NOTAGOLDSYMBOL", headers=self.ORIGIN)
        assert response.status_code == 400
        assert response.headers["access-control-allow-origin"] == "*"

    def test_unhandled_error_response(self, client, monkeypatch):
        async def broken(symbol):
            raise RuntimeError("boom")

        monkeypatch.setattr(client.app.state.query, "current_price", broken)
        response = client.get("/gold/current", headers=self.ORIGIN)

        assert response.status_code == 500
        assert response.json() == {"success": False, "error": "Internal server error"}
        assert response.headers["access-control-allow-origin"] == "*"

    def test_preflight(self, client):
        response = client.options(
            "/api/v1/gold/current",
            headers={**self.ORIGIN, "Access-Control-Request-Method": "GET"},
        )
        assert response.status_code == 200
        assert "GET" in response.headers["access-control-allow-methods"]


class TestStream:
    """Tests for the /ws stream."""

    def test_first_frame_is_snapshot(self, client):
        with client.websocket_connect("/ws?symbol=GC") as ws:
            frame = ws.receive_json()
        assert frame["type"] == "gold_data"
        assert frame["data"]["symbol"] == "GC"
        assert frame["timestamp"].endswith("Z")

    def test_default_symbol(self, client):
        with client.websocket_connect("/api/v1/ws") as ws:
            frame = ws.receive_json()
        assert frame["data"]["symbol"] == "XAUUSD"

    def test_unsupported_symbol_rejected(self, client):
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect("/ws?symbol=NOTAGOLDSYMBOL") as ws:
                ws.receive_json()
        assert exc_info.value.code == 1008
