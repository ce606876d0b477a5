"""Thread-safe in-memory price cache."""

from __future__ import annotations

import time
from threading import Lock

from .models import CacheEntry, PriceRecord


class PriceCache:
    """Thread-safe in-memory cache of the latest record for each symbol.

    Writers: RefreshScheduler, and QueryService on a cache miss.
    Readers: QueryService, Broadcaster (subscribe-time snapshot).

    Entries are immutable and replaced whole under the lock, so a reader sees
    either the previous entry or the new one, never a mix. There is no
    expiry; callers decide staleness with ``is_stale``.
    """

    def __init__(self) -> None:
        self._entries: dict[str, CacheEntry] = {}
        self._lock = Lock()
        self._version: int = 0  # Monotonically increasing; bumped on every write

    def set(self, symbol: str, record: PriceRecord, fetched_at: float | None = None) -> CacheEntry:
        """Atomically replace the entry for a symbol. Returns the stored entry."""
        entry = CacheEntry(record=record, fetched_at=time.time() if fetched_at is None else fetched_at)
        with self._lock:
            self._entries[symbol] = entry
            self._version += 1
        return entry

    def get(self, symbol: str) -> CacheEntry | None:
        """Latest entry for a symbol, or None if never set or invalidated."""
        with self._lock:
            return self._entries.get(symbol)

    def get_record(self, symbol: str) -> PriceRecord | None:
        """Convenience: just the record, or None."""
        entry = self.get(symbol)
        return entry.record if entry else None

    def get_all(self) -> dict[str, CacheEntry]:
        """Snapshot of all entries. Returns a shallow copy."""
        with self._lock:
            return dict(self._entries)

    def is_stale(self, symbol: str, max_age: float, now: float | None = None) -> bool:
        """True if the symbol is absent or was fetched more than ``max_age`` seconds ago."""
        entry = self.get(symbol)
        if entry is None:
            return True
        return entry.age(now) > max_age

    def invalidate(self, symbol: str) -> None:
        """Drop a symbol's entry. No-op if absent."""
        with self._lock:
            if self._entries.pop(symbol, None) is not None:
                self._version += 1

    @property
    def version(self) -> int:
        """Current version counter."""
        return self._version

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, symbol: str) -> bool:
        with self._lock:
            return symbol in self._entries
