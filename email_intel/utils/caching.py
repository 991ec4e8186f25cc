"""
Thread-safe FIFO cache for analysis results, with optional TTL expiration.

PATTERN RECOGNITION: Two eviction policies share one insertion-ordered dict:
  - Size-based (FIFO): when the cache exceeds max_size the earliest-inserted
    entries go first. A hit does NOT refresh an entry's position.
  - Time-based (TTL, optional): entries older than ttl_seconds are treated as
    absent on access and are removed by ``sweep``.

SECURITY STORY: Keys are SHA-256 fingerprints of the email, so raw email
content never appears in the key space.
"""

import threading
from datetime import datetime, timedelta
from typing import Any, List, Optional


class AnalysisCache:
    """
    Bounded fingerprint -> Analysis store.

    ``put`` enforces the size bound inline, so ``len(cache)`` never exceeds
    *max_size*. ``sweep`` is meant to be called periodically by a background
    thread; it drops expired entries and re-applies the size bound.

    Note: ``None`` values are not supported; ``get`` returns ``None`` to signal
    a cache miss (absent or expired).

    Args:
        max_size:    Maximum number of entries (default 1000).
        ttl_seconds: Seconds before an entry is stale, or None for no expiry.
    """

    def __init__(self, max_size: int = 1000, ttl_seconds: Optional[int] = None) -> None:
        if max_size <= 0:
            raise ValueError(f"max_size must be a positive integer, got {max_size}")
        if ttl_seconds is not None and ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be a positive integer, got {ttl_seconds}")
        self._store: dict = {}          # key -> (value, datetime)
        self._max_size = max_size
        self._ttl = timedelta(seconds=ttl_seconds) if ttl_seconds else None
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    @property
    def max_size(self) -> int:
        return self._max_size

    # ------------------------------------------------------------------
    # Core API
    # ------------------------------------------------------------------

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value for *key*, or ``None`` if absent or expired."""
        with self._lock:
            value = self._get_locked(key, datetime.now())
            if value is None:
                self.misses += 1
            else:
                self.hits += 1
            return value

    def peek(self, key: str) -> Optional[Any]:
        """Like ``get`` but leaves the hit/miss counters alone."""
        with self._lock:
            return self._get_locked(key, datetime.now())

    def put(self, key: str, value: Any) -> None:
        """
        Store *value* under *key*, evicting the oldest entries when over capacity.

        Re-inserting an existing key keeps its original position.
        """
        with self._lock:
            if key in self._store:
                self._store[key] = (value, self._store[key][1])
                return
            self._store[key] = (value, datetime.now())
            self._evict_excess_locked()

    def setdefault(self, key: str, value: Any) -> Any:
        """
        Store *value* unless a live entry already exists; return the stored value.

        Lets concurrent producers of the same key agree on one value.
        """
        with self._lock:
            existing = self._get_locked(key, datetime.now())
            if existing is not None:
                return existing
            self._store.pop(key, None)
            self._store[key] = (value, datetime.now())
            self._evict_excess_locked()
            return value

    def sweep(self) -> int:
        """Drop expired entries and enforce the size bound; return how many went."""
        now = datetime.now()
        with self._lock:
            before = len(self._store)
            if self._ttl is not None:
                expired = [k for k, (_, ts) in self._store.items() if now - ts >= self._ttl]
                for key in expired:
                    del self._store[key]
            self._evict_excess_locked()
            return before - len(self._store)

    def clear(self) -> None:
        """Remove all entries and reset the hit/miss counters."""
        with self._lock:
            self._store.clear()
            self.hits = 0
            self.misses = 0

    # ------------------------------------------------------------------
    # Read-only dict-compatibility helpers
    # ------------------------------------------------------------------

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return self._get_locked(key, datetime.now()) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def keys(self) -> List[str]:
        """Return live keys in insertion order (oldest first)."""
        now = datetime.now()
        with self._lock:
            return [k for k, (_, ts) in self._store.items() if not self._expired(ts, now)]

    def values(self) -> List[Any]:
        """Return live values in insertion order (oldest first)."""
        now = datetime.now()
        with self._lock:
            return [v for v, ts in self._store.values() if not self._expired(ts, now)]

    # ------------------------------------------------------------------
    # Private helpers (must be called with _lock already held)
    # ------------------------------------------------------------------

    def _expired(self, timestamp: datetime, now: datetime) -> bool:
        return self._ttl is not None and now - timestamp >= self._ttl

    def _get_locked(self, key: str, now: datetime) -> Optional[Any]:
        entry = self._store.get(key)
        if entry is None:
            return None
        value, timestamp = entry
        if self._expired(timestamp, now):
            return None
        return value

    def _evict_excess_locked(self) -> None:
        while len(self._store) > self._max_size:
            self._store.pop(next(iter(self._store)))
