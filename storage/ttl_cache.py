"""
In-memory TTL Cache

Backed by cachetools.TTLCache: an entry older than the TTL is never returned,
expired entries are purged on every write, and the number of stored entries is
capped at maxsize (least recently used entries go first).

Caches are owned by the component that creates them (the request executor, the
metadata resolver, the price service). Nothing here is global.
"""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Optional, TypeVar

import cachetools

T = TypeVar("T")

DEFAULT_MAXSIZE = 1024


@dataclass
class CacheEntry(Generic[T]):
    """Cached value plus the time it was stored."""

    payload: T
    timestamp: float


class CacheStore(ABC):
    """
    Abstract key/value store with expiry.

    Implementations must never return an entry whose age is >= its TTL.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        pass

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        pass

    @abstractmethod
    def delete(self, key: str) -> bool:
        pass

    @abstractmethod
    def clear(self) -> None:
        pass

    @abstractmethod
    def __len__(self) -> int:
        pass

    @abstractmethod
    def statistics(self) -> Dict[str, Any]:
        pass


class TTLCache(CacheStore):
    """
    Bounded cache with a single TTL.

    Args:
        ttl: Time-to-live in seconds (0 disables caching)
        maxsize: Maximum number of stored entries
        clock: Callable returning the current time in seconds (injectable for tests)

    Example:
        >>> cache = TTLCache(ttl=5.0)
        >>> cache.set("CAKE-default-default", 2.41)
        >>> cache.get("CAKE-default-default")
        2.41
    """

    def __init__(
        self,
        ttl: float,
        maxsize: int = DEFAULT_MAXSIZE,
        clock: Callable[[], float] = time.monotonic
    ):
        self.ttl = ttl
        self.maxsize = maxsize
        self._clock = clock
        self._entries: cachetools.TTLCache = cachetools.TTLCache(
            maxsize=maxsize, ttl=max(ttl, 0), timer=clock
        )
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None
        self.hits += 1
        return entry.payload

    def set(self, key: str, value: Any) -> None:
        if self.ttl <= 0:
            return
        self._entries[key] = CacheEntry(payload=value, timestamp=self._clock())

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        self._entries.expire()
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def statistics(self) -> Dict[str, Any]:
        """
        Cache statistics.

        Returns:
            Dict with size and fresh (entries still within TTL after purging),
            maxsize, ttl, hits, misses, the list of keys and the age in seconds
            of every entry
        """
        self._entries.expire()
        now = self._clock()
        entries = dict(self._entries.items())
        return {
            "size": len(entries),
            "fresh": len(entries),
            "maxsize": self.maxsize,
            "ttl": self.ttl,
            "hits": self.hits,
            "misses": self.misses,
            "keys": list(entries.keys()),
            "ages": {key: now - entry.timestamp for key, entry in entries.items()},
        }
