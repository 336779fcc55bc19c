"""
Process-local response cache.

Keys are namespaced by table (``projects:…``, ``investments:…``) so a write
can drop everything derived from the table it touched with one
``invalidate("projects:")``.  Realtime lists keep their snapshot here too,
rewriting it after each applied change, and remember when the rows were
fetched so a list served from cache still reports its ``last_fetch``.

The cache is owned by the application (``app.state.cache``) and injected;
it is only touched from the event loop, so there is no locking.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import Request

from agrofund.core.config import settings

logger = logging.getLogger(__name__)


class CacheEntry:
    """A stored value, when it was stored, and an optional TTL of its own."""

    __slots__ = ("value", "ttl", "created_at", "fetched_at")

    def __init__(self, value: Any, ttl: Optional[float] = None):
        self.value = value
        self.ttl = ttl
        self.created_at = time.monotonic()
        self.fetched_at = datetime.now(timezone.utc)

    @property
    def age(self) -> float:
        return time.monotonic() - self.created_at

    def is_expired(self, ttl: float) -> bool:
        """Older than its own TTL, or ``ttl`` when it has none."""
        return self.age > (self.ttl if self.ttl is not None else ttl)


class TTLCache:
    """
    Dict-backed cache with a default TTL and a size cap.

    Insertion order doubles as age order: rewriting a key moves it to the
    back, and a full cache evicts from the front.  A disabled cache stores
    nothing and misses every lookup.
    """

    def __init__(self, ttl: float = 300.0, max_size: int = 1000, enabled: bool = True):
        self._store: Dict[str, CacheEntry] = {}
        self._ttl = ttl
        self._max_size = max_size
        self._enabled = enabled
        self._hits = 0
        self._misses = 0

    def lookup(self, key: str) -> Optional[CacheEntry]:
        """The live entry for ``key``; expired entries are dropped on sight."""
        if not self._enabled:
            return None
        entry = self._store.get(key)
        if entry is not None and entry.is_expired(self._ttl):
            del self._store[key]
            logger.debug("Cache expired %s after %.1fs", key, entry.age)
            entry = None
        if entry is None:
            self._misses += 1
            return None
        self._hits += 1
        return entry

    def get(self, key: str) -> Optional[Any]:
        entry = self.lookup(key)
        return entry.value if entry is not None else None

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        if not self._enabled:
            return
        if key in self._store:
            del self._store[key]
        elif len(self._store) >= self._max_size:
            evicted = next(iter(self._store))
            del self._store[evicted]
            logger.debug("Cache full, evicted %s", evicted)
        self._store[key] = CacheEntry(value, ttl)

    def replace(self, key: str, value: Any) -> bool:
        """
        Swap the value of a live entry in place.

        The entry keeps its age and ``fetched_at``, so patched data still
        expires on the schedule of the read it came from.  Returns False
        (and stores nothing) when there is no live entry.
        """
        entry = self._store.get(key)
        if entry is None or entry.is_expired(self._ttl):
            return False
        entry.value = value
        return True

    def delete(self, key: str) -> bool:
        return self._store.pop(key, None) is not None

    def invalidate(self, *prefixes: str) -> int:
        """Drop every key under the given table prefixes; returns how many went."""
        if not self._enabled:
            return 0
        stale = [key for key in self._store if key.startswith(prefixes)]
        for key in stale:
            del self._store[key]
        if stale:
            logger.debug("Cache invalidated %d key(s) under %s", len(stale), ", ".join(prefixes))
        return len(stale)

    def clear(self) -> None:
        self._store.clear()

    def get_stats(self) -> dict:
        lookups = self._hits + self._misses
        return {
            "enabled": self._enabled,
            "size": len(self._store),
            "max_size": self._max_size,
            "ttl_seconds": self._ttl,
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": f"{self._hits / lookups:.1%}" if lookups else "N/A",
        }


def build_cache() -> TTLCache:
    return TTLCache(
        ttl=settings.CACHE_TTL,
        max_size=settings.CACHE_MAX_SIZE,
        enabled=settings.CACHE_ENABLED,
    )


def get_cache(request: Request) -> TTLCache:
    """FastAPI dependency returning the application's cache."""
    return request.app.state.cache
