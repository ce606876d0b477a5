"""Abstract interface for upstream quote providers."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable
from dataclasses import dataclass
from typing import TypeVar

from .errors import ProviderError, ProviderTimeout, ProviderUnavailable, SymbolUnsupported
from .models import HistoricalBar, PriceRecord

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TIMEOUT = 10.0


@dataclass(frozen=True, slots=True)
class ProviderResult:
    """Outcome of one ProviderClient.fetch: exactly one of record / error is set."""

    provider: str
    record: PriceRecord | None = None
    error: ProviderError | SymbolUnsupported | None = None

    @property
    def ok(self) -> bool:
        return self.record is not None


class ProviderClient(ABC):
    """Contract for one upstream quote provider.

    Subclasses implement ``_fetch_quote`` (and optionally ``_fetch_history``)
    and raise a ``ProviderError`` subclass on failure. This base class applies
    the supported-symbol check before any network call, bounds every call
    with a timeout, and classifies anything unexpected as unavailable.

    Lifecycle:
        client = SomeProvider(api_key=..., timeout=10.0)
        result = await client.fetch("XAUUSD")
        if result.ok:
            ...
        await client.aclose()
    """

    #: Provider identifier used in logs and failure lists
    name: str = "provider"

    #: Symbols this provider can quote
    supported_symbols: frozenset[str] = frozenset()

    def __init__(self, timeout: float = DEFAULT_TIMEOUT) -> None:
        self._timeout = timeout

    @property
    def timeout(self) -> float:
        return self._timeout

    def supports(self, symbol: str) -> bool:
        return symbol in self.supported_symbols

    async def fetch(self, symbol: str) -> ProviderResult:
        """Fetch a quote. Never raises for provider-level failures."""
        if not self.supports(symbol):
            return ProviderResult(self.name, error=SymbolUnsupported(symbol, self.name))
        try:
            record = await self._bounded(self._fetch_quote(symbol))
        except ProviderError as e:
            return ProviderResult(self.name, error=e)
        return ProviderResult(self.name, record=record)

    async def fetch_history(self, symbol: str, days: int) -> list[HistoricalBar]:
        """Fetch ``days`` daily bars, most recent first. Raises ProviderError."""
        if not self.supports(symbol):
            raise SymbolUnsupported(symbol, self.name)
        return await self._bounded(self._fetch_history(symbol, days))

    async def aclose(self) -> None:
        """Release network resources. Safe to call multiple times."""

    @abstractmethod
    async def _fetch_quote(self, symbol: str) -> PriceRecord:
        """Fetch and normalize one quote. Raise ProviderError on failure."""

    async def _fetch_history(self, symbol: str, days: int) -> list[HistoricalBar]:
        raise ProviderUnavailable(self.name, "historical data not offered")

    async def _bounded(self, call: Awaitable[T]) -> T:
        """Await an upstream call under the timeout; the late result is discarded."""
        try:
            async with asyncio.timeout(self._timeout):
                return await call
        except TimeoutError:
            raise ProviderTimeout(self.name, f"no response within {self._timeout:.1f}s") from None
        except ProviderError:
            raise
        except Exception as e:
            logger.exception("%s: unexpected error", self.name)
            raise ProviderUnavailable(self.name, str(e) or type(e).__name__) from e
