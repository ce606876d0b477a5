"""Supported gold instruments and reference parameters for the synthetic feed."""

DEFAULT_SYMBOL = "XAUUSD"

# Display names served by GET /gold/symbols
SYMBOLS: dict[str, str] = {
    "GC": "Gold Futures (COMEX)",
    "XAUUSD": "Gold Spot Price (USD)",
    "GOLD": "Gold ETF",
    "GLD": "SPDR Gold Trust",
}

# Reference prices the mock provider walks away from
SEED_PRICES: dict[str, float] = {
    "GC": 2052.40,
    "XAUUSD": 2045.50,
    "GOLD": 17.85,
    "GLD": 190.30,
}

# Per-symbol GBM parameters
# sigma: annualized volatility
# mu: annualized drift
SYMBOL_PARAMS: dict[str, dict[str, float]] = {
    "GC": {"sigma": 0.15, "mu": 0.04},
    "XAUUSD": {"sigma": 0.14, "mu": 0.04},
    "GOLD": {"sigma": 0.32, "mu": 0.05},  # Miner equity, more volatile than bullion
    "GLD": {"sigma": 0.14, "mu": 0.04},
}

# Typical daily volume used for synthetic bars; spot FX has none
TYPICAL_VOLUME: dict[str, float] = {
    "GC": 180_000.0,
    "GOLD": 14_000_000.0,
    "GLD": 8_000_000.0,
}


def normalize_symbol(symbol: str) -> str:
    """Canonical form of a user-supplied symbol."""
    return symbol.upper().strip()
