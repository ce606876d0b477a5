"""Gold quote feed: provider fallback, price cache, refresh loop and fan-out.

Public API:
    PriceRecord           - Immutable quote snapshot dataclass
    PriceCache            - Thread-safe in-memory store of the latest record per symbol
    ProviderClient        - Abstract interface for upstream quote providers
    ProviderChain         - Ordered provider fallback
    QueryService          - Read-through cache for request/response queries
    Broadcaster           - Fan-out of updates to stream subscribers
    RefreshScheduler      - Periodic cache refresh loop
    create_provider_chain - Factory that builds the chain from settings
"""

__version__ = "1.0.0"

from .broadcaster import Broadcaster
from .cache import PriceCache
from .chain import ProviderChain
from .factory import create_provider_chain
from .interface import ProviderClient
from .models import PriceRecord
from .query import QueryService
from .scheduler import RefreshScheduler

__all__ = [
    "Broadcaster",
    "PriceCache",
    "PriceRecord",
    "ProviderChain",
    "ProviderClient",
    "QueryService",
    "RefreshScheduler",
    "create_provider_chain",
]
