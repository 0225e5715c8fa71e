"""
Storage Package

Handles caching of upstream responses and derived price data.

Current implementation:
- In-memory TTL cache (CacheStore interface + TTLCache)

The CacheStore interface lets the request executor, the metadata resolver and
the price service share one storage contract, so a distributed backend can be
swapped in without touching the callers.
"""

from storage.ttl_cache import CacheEntry, CacheStore, TTLCache

__all__ = ["CacheEntry", "CacheStore", "TTLCache"]
