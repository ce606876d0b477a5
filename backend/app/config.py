"""Process configuration loaded from environment variables."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass

from app.gold.errors import ConfigError
from app.gold.symbols import DEFAULT_SYMBOL, SYMBOLS, normalize_symbol

KNOWN_PROVIDERS = ("alpha_vantage", "finnhub", "massive", "mock")
DEFAULT_PROVIDERS = ",".join(KNOWN_PROVIDERS)

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


@dataclass(frozen=True)
class Settings:
    """Runtime settings. Build with ``load_settings()``; construct directly in tests."""

    host: str = "0.0.0.0"
    port: int = 4000
    environment: str = "development"
    log_level: str = "INFO"
    providers: tuple[str, ...] = KNOWN_PROVIDERS
    alpha_vantage_api_key: str = ""
    finnhub_api_key: str = ""
    massive_api_key: str = ""
    provider_timeout: float = 10.0
    refresh_interval: float = 30.0
    refresh_symbols: tuple[str, ...] = (DEFAULT_SYMBOL,)
    subscriber_queue_size: int = 32
    subscriber_send_timeout: float = 5.0
    mock_seed: int = 42
    cors_origins: tuple[str, ...] = ("*",)

    def api_key_for(self, provider: str) -> str:
        return {
            "alpha_vantage": self.alpha_vantage_api_key,
            "finnhub": self.finnhub_api_key,
            "massive": self.massive_api_key,
        }.get(provider, "")


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """Read settings from the environment. Raises ConfigError on invalid values."""
    env = os.environ if environ is None else environ

    providers = _csv(env.get("GOLD_PROVIDERS", DEFAULT_PROVIDERS), lower=True)
    if not providers:
        raise ConfigError("GOLD_PROVIDERS must name at least one provider", {"field": "GOLD_PROVIDERS"})
    unknown = [p for p in providers if p not in KNOWN_PROVIDERS]
    if unknown:
        raise ConfigError(
            f"Unknown provider(s) in GOLD_PROVIDERS: {', '.join(unknown)}",
            {"field": "GOLD_PROVIDERS", "value": unknown},
        )

    refresh_symbols = tuple(normalize_symbol(s) for s in _csv(env.get("GOLD_REFRESH_SYMBOLS", DEFAULT_SYMBOL)))
    bad_symbols = [s for s in refresh_symbols if s not in SYMBOLS]
    if bad_symbols:
        raise ConfigError(
            f"Unsupported symbol(s) in GOLD_REFRESH_SYMBOLS: {', '.join(bad_symbols)}",
            {"field": "GOLD_REFRESH_SYMBOLS", "value": bad_symbols},
        )

    log_level = env.get("LOG_LEVEL", "INFO").strip().upper()
    if not isinstance(logging.getLevelName(log_level), int):
        raise ConfigError(f"Unknown LOG_LEVEL: {log_level}", {"field": "LOG_LEVEL", "value": log_level})

    return Settings(
        host=env.get("HOST", "0.0.0.0").strip(),
        port=_positive(env, "PORT", 4000, int),
        environment=env.get("APP_ENV", "development").strip(),
        log_level=log_level,
        providers=tuple(providers),
        alpha_vantage_api_key=env.get("ALPHA_VANTAGE_API_KEY", "").strip(),
        finnhub_api_key=env.get("FINNHUB_API_KEY", "").strip(),
        massive_api_key=env.get("MASSIVE_API_KEY", "").strip(),
        provider_timeout=_positive(env, "PROVIDER_TIMEOUT", 10.0, float),
        refresh_interval=_positive(env, "GOLD_REFRESH_INTERVAL", 30.0, float),
        refresh_symbols=refresh_symbols,
        subscriber_queue_size=_positive(env, "SUBSCRIBER_QUEUE_SIZE", 32, int),
        subscriber_send_timeout=_positive(env, "SUBSCRIBER_SEND_TIMEOUT", 5.0, float),
        mock_seed=_positive(env, "MOCK_SEED", 42, int, allow_zero=True),
        cors_origins=tuple(_csv(env.get("CORS_ORIGINS", "*"))) or ("*",),
    )


def configure_logging(level: str = "INFO") -> None:
    """Install a single stream handler on the root logger."""
    logging.basicConfig(level=level, format=LOG_FORMAT, force=True)


def _csv(raw: str, lower: bool = False) -> list[str]:
    items = [item.strip() for item in raw.split(",")]
    return [item.lower() if lower else item for item in items if item]


def _positive(env: Mapping[str, str], name: str, default, cast, allow_zero: bool = False):
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        value = cast(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}", {"field": name, "value": raw}) from None
    if value < 0 or (value == 0 and not allow_zero):
        raise ConfigError(f"{name} must be positive, got {raw!r}", {"field": name, "value": raw})
    return value
