"""Small in-memory TTL cache for ProjectFlow.

Used for per-user dashboard numbers, which are expensive-ish aggregates that
change only when the user writes something. Writers call
``invalidate_owner(owner_id)`` so the next dashboard view is fresh.
"""

import time
import threading
from typing import Any, Hashable


class TTLCache:
    """Thread-safe in-memory cache with time-to-live (TTL) expiry.

    Entries expire after ``ttl_seconds`` seconds. At most ``maxsize`` entries
    are kept; when full, the entry closest to expiry is evicted.

    Keys are tuples whose first element names the cached view and whose
    second element is the owning user id, e.g. ``("dashboard", user_id)``.

    Usage::

        cache = TTLCache(maxsize=256, ttl_seconds=30)
        cache.set(("dashboard", uid), summary)
        cache.get(("dashboard", uid))   # summary, or None once expired
        cache.invalidate_owner(uid)     # drop every entry for that user
    """

    def __init__(self, maxsize: int = 128, ttl_seconds: float = 300.0) -> None:
        self._maxsize = maxsize
        self._ttl = ttl_seconds
        # key -> (value, expires_at)
        self._store: dict[Hashable, tuple[Any, float]] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def get(self, key: Hashable) -> Any | None:
        """Return cached value for *key*, or ``None`` if absent or expired."""
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                self._misses += 1
                return None
            value, expires_at = entry
            if time.monotonic() > expires_at:
                del self._store[key]
                self._misses += 1
                return None
            self._hits += 1
            return value

    def set(self, key: Hashable, value: Any) -> None:
        """Store *value* under *key* with the configured TTL."""
        expires_at = time.monotonic() + self._ttl
        with self._lock:
            if key not in self._store and len(self._store) >= self._maxsize:
                soonest = min(self._store, key=lambda k: self._store[k][1])
                del self._store[soonest]
            self._store[key] = (value, expires_at)

    def delete(self, key: Hashable) -> None:
        """Remove a single entry (no-op if not present)."""
        with self._lock:
            self._store.pop(key, None)

    def invalidate_owner(self, owner_id: str) -> int:
        """Drop every tuple key whose second element is *owner_id*.

        Returns:
            Number of entries removed.
        """
        with self._lock:
            doomed = [
                k for k in self._store
                if isinstance(k, tuple) and len(k) > 1 and k[1] == owner_id
            ]
            for k in doomed:
                del self._store[k]
            return len(doomed)

    def clear(self) -> None:
        """Remove all entries and reset counters."""
        with self._lock:
            self._store.clear()
            self._hits = 0
            self._misses = 0

    def stats(self) -> dict[str, int]:
        """Return ``hits``, ``misses`` and live ``size``."""
        with self._lock:
            now = time.monotonic()
            expired = [k for k, (_, exp) in self._store.items() if now > exp]
            for k in expired:
                del self._store[k]
            return {
                "hits": self._hits,
                "misses": self._misses,
                "size": len(self._store),
            }
