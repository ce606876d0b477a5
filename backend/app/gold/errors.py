"""Exception hierarchy for the gold quote feed."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


class GoldFeedError(Exception):
    """Base exception for all gold feed errors.

    All exceptions carry an optional ``context`` dict for structured error
    metadata that can be logged without parsing the message.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.context = context or {}


class ConfigError(GoldFeedError):
    """Invalid or missing configuration. Fatal at startup.

    Context keys:
        field: str - the setting that failed validation
        value: Any - the offending raw value
    """


class SymbolUnsupported(GoldFeedError):
    """Symbol is not in the supported set (globally or for one provider).

    Raised before any network call. Surfaced to HTTP callers as 400.
    """

    def __init__(self, symbol: str, provider: str | None = None):
        where = f" by {provider}" if provider else ""
        super().__init__(
            f"Unsupported symbol: {symbol}{where}",
            {"symbol": symbol, "provider": provider},
        )
        self.symbol = symbol
        self.provider = provider


class InvalidQuery(GoldFeedError):
    """A well-formed request asked for something out of range (e.g. days=0)."""


class ProviderError(GoldFeedError):
    """One upstream provider failed to produce a quote.

    Policy: recovered by ProviderChain, which moves on to the next provider.
    Never surfaced directly to callers.
    """

    def __init__(self, provider: str, message: str, context: dict[str, Any] | None = None):
        super().__init__(f"{provider}: {message}", {"provider": provider, **(context or {})})
        self.provider = provider


class ProviderTimeout(ProviderError):
    """Upstream call exceeded the configured timeout and was abandoned."""


class ProviderUnauthorized(ProviderError):
    """Credential missing or rejected (HTTP 401/403)."""


class ProviderRateLimited(ProviderError):
    """Upstream quota exceeded (HTTP 429 or an in-body throttle notice)."""


class ProviderMalformed(ProviderError):
    """Response could not be normalized into a valid record."""


class ProviderUnavailable(ProviderError):
    """Transport failure, 5xx, or an operation the provider does not offer."""


@dataclass(frozen=True, slots=True)
class ProviderFailure:
    """One recorded failure inside a chain resolution."""

    provider: str
    error: GoldFeedError

    def to_dict(self) -> dict:
        return {
            "provider": self.provider,
            "error": type(self.error).__name__,
            "message": str(self.error),
        }


class AllProvidersExhausted(GoldFeedError):
    """Every provider in the chain failed for a symbol.

    Carries the ordered per-provider failures so "all providers down" can be
    told apart from "one flaky provider". Surfaced to HTTP callers as 503.
    """

    def __init__(self, symbol: str, failures: list[ProviderFailure]):
        names = ", ".join(f.provider for f in failures) or "none configured"
        super().__init__(
            f"All providers failed for {symbol} ({names})",
            {"symbol": symbol, "failures": [f.to_dict() for f in failures]},
        )
        self.symbol = symbol
        self.failures = list(failures)


class SubscriberSendFailure(GoldFeedError):
    """Delivery to one subscriber failed. Local to the Broadcaster."""
