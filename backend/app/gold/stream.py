"""WebSocket endpoint for live gold price updates."""

from __future__ import annotations

import asyncio
import contextlib
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from .broadcaster import Broadcaster
from .symbols import DEFAULT_SYMBOL, SYMBOLS, normalize_symbol

logger = logging.getLogger(__name__)


def create_stream_router(broadcaster: Broadcaster) -> APIRouter:
    """Create the streaming router with a reference to the broadcaster.

    This factory pattern lets us inject the Broadcaster without globals.
    """
    router = APIRouter(tags=["streaming"])

    @router.websocket("/ws")
    async def stream_prices(websocket: WebSocket, symbol: str = DEFAULT_SYMBOL) -> None:
        """Push ``gold_data`` frames for one symbol until the client goes away.

        Frames look like:

            {"type": "gold_data", "data": {"symbol": "XAUUSD", "price": 2045.5, ...},
             "timestamp": "2024-01-01T00:00:00Z"}

        The first frame is sent right after connecting; later frames follow
        each refresh. Client messages are read and ignored.
        """
        symbol = normalize_symbol(symbol)
        if symbol not in SYMBOLS:
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=f"Unsupported symbol: {symbol}")
            return

        await websocket.accept()
        client = websocket.client.host if websocket.client else "unknown"
        logger.info("WebSocket client connected: %s (%s)", client, symbol)

        sub = None
        tasks: list[asyncio.Task] = []
        try:
            sub = await broadcaster.subscribe(websocket.send_json, {symbol})
            receiver = asyncio.create_task(_drain(websocket))
            dropped = asyncio.create_task(sub.closed.wait())
            tasks = [receiver, dropped]
            await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        finally:
            if sub is not None:
                broadcaster.unsubscribe(sub)
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            if tasks and tasks[0].cancelled():
                # Dropped by the broadcaster (slow or failing sends); close our side
                with contextlib.suppress(RuntimeError, WebSocketDisconnect):
                    await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
            logger.info("WebSocket client disconnected: %s", client)

    return router


async def _drain(websocket: WebSocket) -> None:
    """Read and discard client messages until the socket closes."""
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return
