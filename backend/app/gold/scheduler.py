"""Periodic cache refresh through the provider chain."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum

from .broadcaster import Broadcaster
from .cache import PriceCache
from .chain import ProviderChain
from .errors import AllProvidersExhausted

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 30.0


class RefreshState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"


@dataclass(slots=True)
class SymbolStatus:
    """Refresh bookkeeping for one symbol."""

    state: RefreshState = RefreshState.IDLE
    last_success: float | None = None  # Unix seconds
    consecutive_failures: int = 0
    skipped_ticks: int = 0

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "lastSuccess": self.last_success,
            "consecutiveFailures": self.consecutive_failures,
            "skippedTicks": self.skipped_ticks,
        }


class RefreshScheduler:
    """Keeps the PriceCache warm on a fixed interval.

    Every tick starts one fetch task per symbol and returns without waiting
    for it. A symbol whose previous fetch is still in flight is skipped for
    that tick, so slow providers never pile up duplicate requests. A
    successful fetch is written to the cache and then published; a failed
    one is logged and the previous cache value is kept.
    """

    def __init__(
        self,
        chain: ProviderChain,
        cache: PriceCache,
        broadcaster: Broadcaster | None,
        symbols: list[str],
        interval: float = DEFAULT_INTERVAL,
    ) -> None:
        self._chain = chain
        self._cache = cache
        self._broadcaster = broadcaster
        self._symbols = list(dict.fromkeys(symbols))
        self._interval = interval
        self._status: dict[str, SymbolStatus] = {s: SymbolStatus() for s in self._symbols}
        self._in_flight: dict[str, asyncio.Task] = {}
        self._task: asyncio.Task | None = None

    @property
    def symbols(self) -> list[str]:
        return list(self._symbols)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def status(self) -> dict[str, dict]:
        return {s: st.to_dict() for s, st in self._status.items()}

    async def start(self) -> None:
        """Run the first tick immediately, then keep ticking in the background."""
        self.tick()
        self._task = asyncio.create_task(self._run_loop(), name="gold-refresh")
        logger.info(
            "Refresh scheduler started: %s every %.1fs via %s",
            ", ".join(self._symbols),
            self._interval,
            " -> ".join(self._chain.names),
        )

    async def stop(self) -> None:
        """Cancel the loop and any in-flight fetches. Safe to call multiple times."""
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None

        pending = list(self._in_flight.values())
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._in_flight.clear()
        logger.info("Refresh scheduler stopped")

    def tick(self) -> list[str]:
        """Start a refresh for every idle symbol. Returns the symbols started.

        Besides the configured symbols, any symbol a live subscriber is
        watching is refreshed too, so every stream keeps receiving frames.
        """
        started = []
        for symbol in self._tick_symbols():
            status = self._status.setdefault(symbol, SymbolStatus())
            if status.state is RefreshState.FETCHING:
                status.skipped_ticks += 1
                logger.debug("Refresh of %s still in flight; skipping tick", symbol)
                continue
            status.state = RefreshState.FETCHING
            self._in_flight[symbol] = asyncio.create_task(
                self._refresh(symbol), name=f"gold-refresh-{symbol}"
            )
            started.append(symbol)
        return started

    async def wait_idle(self) -> None:
        """Wait for every in-flight fetch to finish."""
        pending = list(self._in_flight.values())
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    # --- Internal ---

    def _tick_symbols(self) -> list[str]:
        if self._broadcaster is None:
            return self._symbols
        watched = self._broadcaster.active_symbols().difference(self._symbols)
        return self._symbols + sorted(watched)

    async def _run_loop(self) -> None:
        """Tick on interval. First tick already happened in start()."""
        while True:
            await asyncio.sleep(self._interval)
            try:
                self.tick()
            except Exception:
                logger.exception("Refresh tick failed")

    async def _refresh(self, symbol: str) -> None:
        status = self._status[symbol]
        try:
            record = await self._chain.resolve(symbol)
        except AllProvidersExhausted as e:
            status.consecutive_failures += 1
            logger.error(
                "Refresh of %s failed (%d in a row), keeping cached value: %s",
                symbol,
                status.consecutive_failures,
                e,
            )
            return
        except Exception:
            status.consecutive_failures += 1
            logger.exception("Unexpected error refreshing %s", symbol)
            return
        finally:
            status.state = RefreshState.IDLE
            self._in_flight.pop(symbol, None)

        self._cache.set(symbol, record)
        status.last_success = time.time()
        status.consecutive_failures = 0
        if self._broadcaster is not None:
            self._broadcaster.publish(record)
        logger.debug("Refreshed %s: %.2f (%s)", symbol, record.price, record.source.value)
