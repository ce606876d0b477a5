"""Factory for the configured provider chain."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .chain import ProviderChain
from .errors import ConfigError
from .interface import ProviderClient

if TYPE_CHECKING:
    from app.config import Settings

logger = logging.getLogger(__name__)


KEYED_PROVIDERS = ("alpha_vantage", "finnhub", "massive")


def create_provider(name: str, settings: Settings) -> ProviderClient | None:
    """Build one provider by name, or None if its API key is not set."""
    if name != "mock" and name not in KEYED_PROVIDERS:
        raise ConfigError(f"Unknown provider: {name}", {"field": "GOLD_PROVIDERS", "value": name})

    timeout = settings.provider_timeout

    if name == "mock":
        from .simulator import MockProvider

        return MockProvider(seed=settings.mock_seed, timeout=timeout)

    api_key = settings.api_key_for(name)
    if not api_key:
        logger.info("Provider %s skipped: no API key configured", name)
        return None

    if name == "alpha_vantage":
        from .alpha_vantage import AlphaVantageProvider

        return AlphaVantageProvider(api_key=api_key, timeout=timeout)
    if name == "finnhub":
        from .finnhub import FinnhubProvider

        return FinnhubProvider(api_key=api_key, timeout=timeout)

    from .massive_client import MassiveProvider

    return MassiveProvider(api_key=api_key, timeout=timeout)


def create_provider_chain(settings: Settings) -> ProviderChain:
    """Create the provider chain in the configured priority order.

    - Providers whose API key is missing are left out.
    - The mock provider, when configured, is always moved to the end so it
      only answers once every real provider has failed.
    - An empty chain (e.g. only keyed providers, no keys, no mock) is fatal.
    """
    order = [p for p in settings.providers if p != "mock"]
    if "mock" in settings.providers:
        order.append("mock")

    providers = [p for p in (create_provider(name, settings) for name in order) if p is not None]
    if not providers:
        raise ConfigError(
            "No usable providers: set an API key or include 'mock' in GOLD_PROVIDERS",
            {"field": "GOLD_PROVIDERS", "value": list(settings.providers)},
        )

    logger.info("Provider chain: %s", " -> ".join(p.name for p in providers))
    return ProviderChain(providers)
