"""Ordered provider fallback."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass

from .errors import (
    AllProvidersExhausted,
    ConfigError,
    GoldFeedError,
    ProviderFailure,
)
from .interface import ProviderClient
from .models import HistoricalBar, PriceRecord

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class _Flight:
    """One shared resolution and the number of callers awaiting it."""

    task: asyncio.Task
    waiters: int = 0


class ProviderChain:
    """Tries providers in priority order and returns the first success.

    Remaining providers are not called once one succeeds. When every provider
    fails, AllProvidersExhausted carries the per-provider failures in the
    order they were attempted. A mock provider, if present, should sit last:
    it never fails, so the chain always terminates successfully.

    Concurrent ``resolve`` calls for one symbol share a single pass through
    the providers, whether they come from the refresh loop or a request.
    """

    def __init__(self, providers: Sequence[ProviderClient]) -> None:
        if not providers:
            raise ConfigError("provider chain needs at least one provider", {"field": "providers"})
        self._providers = list(providers)
        self._in_flight: dict[str, _Flight] = {}

    @property
    def names(self) -> list[str]:
        return [p.name for p in self._providers]

    async def resolve(self, symbol: str) -> PriceRecord:
        """Return the first successful record, joining an in-flight resolution if one exists.

        Cancelling one caller leaves the shared resolution running for the
        others; it is cancelled once no caller is left.
        """
        flight = self._in_flight.get(symbol)
        if flight is None:
            flight = _Flight(asyncio.create_task(self._resolve(symbol), name=f"resolve-{symbol}"))
            self._in_flight[symbol] = flight
            flight.task.add_done_callback(lambda task: self._land(symbol, task))
        else:
            logger.debug("Joining in-flight resolution of %s", symbol)

        flight.waiters += 1
        try:
            return await asyncio.shield(flight.task)
        finally:
            flight.waiters -= 1
            if flight.waiters == 0 and not flight.task.done():
                flight.task.cancel()
                # A later caller must start a fresh flight, not join the dying one
                if self._in_flight.get(symbol) is flight:
                    del self._in_flight[symbol]

    async def _resolve(self, symbol: str) -> PriceRecord:
        failures: list[ProviderFailure] = []
        for provider in self._providers:
            result = await provider.fetch(symbol)
            if result.ok:
                if failures:
                    logger.info(
                        "Resolved %s via %s after %d failure(s)", symbol, provider.name, len(failures)
                    )
                return result.record
            failures.append(ProviderFailure(provider.name, result.error))
            logger.warning("Provider %s failed for %s: %s", provider.name, symbol, result.error)

        raise AllProvidersExhausted(symbol, failures)

    async def resolve_history(self, symbol: str, days: int) -> list[HistoricalBar]:
        failures: list[ProviderFailure] = []
        for provider in self._providers:
            try:
                return await provider.fetch_history(symbol, days)
            except GoldFeedError as e:
                failures.append(ProviderFailure(provider.name, e))
                logger.debug("History from %s failed for %s: %s", provider.name, symbol, e)

        raise AllProvidersExhausted(symbol, failures)

    def _land(self, symbol: str, task: asyncio.Task) -> None:
        flight = self._in_flight.get(symbol)
        if flight is not None and flight.task is task:
            del self._in_flight[symbol]

    async def aclose(self) -> None:
        for flight in list(self._in_flight.values()):
            flight.task.cancel()
        for provider in self._providers:
            await provider.aclose()
