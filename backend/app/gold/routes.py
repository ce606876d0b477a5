"""HTTP routes for the gold quote API."""

from __future__ import annotations

import time
from datetime import datetime, timezone

from fastapi import APIRouter, Query

from .query import QueryService
from .symbols import DEFAULT_SYMBOL, SYMBOLS

DEFAULT_HISTORY_DAYS = 7


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def create_gold_router(
    query: QueryService,
    version: str,
    environment: str = "development",
    started_at: float | None = None,
) -> APIRouter:
    """Create the read-only JSON API router.

    Symbol validation failures raise SymbolUnsupported / InvalidQuery, which
    the application's exception handlers turn into ``{success: false, error}``.
    """
    router = APIRouter(tags=["gold"])
    started = started_at if started_at is not None else time.monotonic()

    @router.get("/")
    async def index() -> dict:
        return {
            "success": True,
            "message": "Gold Futures Real-time API",
            "version": version,
            "endpoints": {
                "health": "/health",
                "current": "/gold/current",
                "symbols": "/gold/symbols",
                "historical": "/gold/historical/{symbol}",
                "bySymbol": "/gold/{symbol}",
                "stream": "/ws",
            },
            "timestamp": _now_iso(),
        }

    @router.get("/health")
    @router.get("/gold/health")
    async def health() -> dict:
        return {
            "status": "OK",
            "timestamp": _now_iso(),
            "uptime": round(time.monotonic() - started, 3),
            "version": version,
            "environment": environment,
        }

    # Fixed paths must be registered before /gold/{symbol}
    @router.get("/gold/symbols")
    async def symbols() -> dict:
        return {"success": True, "symbols": dict(SYMBOLS)}

    @router.get("/gold/current")
    async def current(symbol: str = Query(DEFAULT_SYMBOL)) -> dict:
        record, cached = await query.current_price(symbol)
        return {"success": True, "data": record.to_dict(), "cached": cached}

    @router.get("/gold/historical/{symbol}")
    async def historical(symbol: str, days: int = Query(DEFAULT_HISTORY_DAYS)) -> dict:
        bars = await query.historical(symbol, days)
        return {
            "success": True,
            "data": [bar.to_dict() for bar in bars],
            "symbol": query.validate_symbol(symbol),
            "days": days,
        }

    @router.get("/gold/{symbol}")
    async def by_symbol(symbol: str) -> dict:
        record, cached = await query.current_price(symbol)
        return {"success": True, "data": record.to_dict(), "cached": cached}

    return router
