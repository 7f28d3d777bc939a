"""
Time-bounded cache for aggregated dashboard statistics.

Entries expire after their TTL and are evicted lazily on the next access;
``sweep`` removes every expired entry at once and is meant to be run
periodically. Beyond ``max_entries`` the least recently used entry is
dropped.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from cachetools import LRUCache  # type: ignore[import-untyped]

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 10 * 60


def make_cache_key(
    username: Optional[str], restricted: bool = False, prefix: str = "dashboard"
) -> str:
    """
    Derive the cache key for a scope, ``all`` when no user is known.

    Restricted scopes see fewer records than privileged ones with the same
    username, so they get a key of their own.
    """
    key = f"{prefix}_{username or 'all'}"
    return f"{key}:own" if restricted else key


@dataclass
class CacheEntry:
    key: str
    value: Any
    inserted_at: float
    ttl: float

    def is_live(self, now: float) -> bool:
        return now - self.inserted_at < self.ttl


class AggregationCache:
    """
    Key -> (value, expiry) store shared by dashboard sessions.

    Attributes:
        max_entries: Upper bound before LRU eviction kicks in
        default_ttl: TTL in seconds used when ``set`` is given none
        hits: Number of live lookups
        misses: Number of lookups that found nothing or an expired entry
        expired: Number of entries dropped because their TTL ran out
        evictions: Number of live entries dropped by the size bound
    """

    def __init__(
        self,
        max_entries: int = 1024,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_entries = max(1, max_entries)
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: LRUCache = LRUCache(maxsize=self.max_entries)
        self.hits = 0
        self.misses = 0
        self.expired = 0
        self.evictions = 0

    def init(self) -> None:
        """Start a fresh cache lifetime: drop all entries and counters."""
        self._entries.clear()
        self.hits = 0
        self.misses = 0
        self.expired = 0
        self.evictions = 0
        logger.info(
            f"Initialized AggregationCache with max_entries={self.max_entries}, "
            f"default_ttl={self.default_ttl}s"
        )

    def get(self, key: str) -> Optional[Any]:
        """
        Look up a cached value.

        Args:
            key: Cache key, see ``make_cache_key``

        Returns:
            The stored value if present and live, None otherwise
        """
        entry: Optional[CacheEntry] = self._entries.get(key)
        if entry is None:
            self.misses += 1
            logger.debug(f"Cache MISS: {key}")
            return None

        if not entry.is_live(self._clock()):
            del self._entries[key]
            self.expired += 1
            self.misses += 1
            logger.debug(f"Cache MISS (expired): {key}")
            return None

        self.hits += 1
        logger.debug(f"Cache HIT: {key}")
        return entry.value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """
        Store a value, replacing whatever the key held before.

        Args:
            key: Cache key
            value: Value to store
            ttl: Time-to-live in seconds (default: ``default_ttl``)
        """
        ttl = self.default_ttl if ttl is None else ttl
        if len(self._entries) >= self.max_entries and key not in self._entries:
            self.evictions += 1
        self._entries[key] = CacheEntry(
            key=key, value=value, inserted_at=self._clock(), ttl=ttl
        )
        logger.debug(f"Cached: {key} (TTL: {ttl}s)")

    def invalidate(self, key: str) -> bool:
        """Remove one entry regardless of its TTL. Returns True if it existed."""
        removed = self._entries.pop(key, None) is not None
        if removed:
            logger.debug(f"Invalidated: {key}")
        return removed

    def invalidate_all(self) -> int:
        count = len(self._entries)
        self._entries.clear()
        logger.info(f"Invalidated {count} cache entries")
        return count

    def sweep(self) -> int:
        """Evict every expired entry. Returns the number removed."""
        now = self._clock()
        stale = [
            key for key, entry in list(self._entries.items()) if not entry.is_live(now)
        ]
        for key in stale:
            self._entries.pop(key, None)
        self.expired += len(stale)
        if stale:
            logger.info(f"Swept {len(stale)} expired cache entries")
        return len(stale)

    def __contains__(self, key: object) -> bool:
        entry = self._entries.get(key)
        return entry is not None and entry.is_live(self._clock())

    def __len__(self) -> int:
        return len(self._entries)

    def get_stats(self) -> Dict[str, int]:
        total_requests = self.hits + self.misses
        hit_rate = (self.hits / total_requests * 100) if total_requests > 0 else 0
        return {
            "size": len(self._entries),
            "max_entries": self.max_entries,
            "hits": self.hits,
            "misses": self.misses,
            "expired": self.expired,
            "evictions": self.evictions,
            "total_requests": total_requests,
            "hit_rate_percent": int(round(hit_rate)),
        }
