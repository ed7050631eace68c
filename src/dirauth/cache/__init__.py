"""Token cache for dirauth.

This package provides:
- CacheEntry / CacheQuery: cached token model and lookup criteria
- MemoryCache: the default in-process cache, and the TokenCache contract
- CacheDriver: per-request lookup, silent refresh and MRRT propagation
"""

from dirauth.cache.driver import CacheDriver, RefreshFunction
from dirauth.cache.entry import CacheEntry, CacheQuery, normalize_scope
from dirauth.cache.memory_cache import (
    MemoryCache,
    TokenCache,
    get_default_cache,
    get_default_cache_lock,
    reset_default_cache,
)

__all__ = [
    # Entries
    "CacheEntry",
    "CacheQuery",
    "normalize_scope",
    # Caches
    "MemoryCache",
    "TokenCache",
    "get_default_cache",
    "get_default_cache_lock",
    "reset_default_cache",
    # Driver
    "CacheDriver",
    "RefreshFunction",
]
