"""In-memory token cache and the cache plugin contract.

Any object implementing TokenCache can back an AuthenticationContext;
MemoryCache is the default. Operations are coroutines so that external
caches doing real I/O share the same interface.
"""

from __future__ import annotations

__all__ = [
    "MemoryCache",
    "TokenCache",
    "get_default_cache",
    "get_default_cache_lock",
    "reset_default_cache",
]

import asyncio
from collections.abc import Iterable
from typing import Protocol, runtime_checkable

from dirauth.cache.entry import CacheEntry, CacheQuery


@runtime_checkable
class TokenCache(Protocol):
    """Contract for pluggable token caches."""

    async def add(self, entries: Iterable[CacheEntry]) -> None:
        """Insert entries, overwriting any with an identical identity tuple."""
        ...

    async def remove(self, entries: Iterable[CacheEntry]) -> None:
        """Delete entries with an identical identity tuple."""
        ...

    async def find(self, query: CacheQuery) -> list[CacheEntry]:
        """Return every entry matching the query."""
        ...


class MemoryCache:
    """Ordered in-process cache of CacheEntry objects.

    Entries are copied on the way in and on the way out, so callers can
    never mutate cached state through an object they hold.
    """

    def __init__(self) -> None:
        self._entries: list[CacheEntry] = []
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> list[CacheEntry]:
        """Snapshot of all entries, in insertion order."""
        return [entry.model_copy() for entry in self._entries]

    async def add(self, entries: Iterable[CacheEntry]) -> None:
        """Insert entries, replacing in place any with the same identity tuple."""
        async with self._lock:
            for candidate in entries:
                key = candidate.identity_key
                for index, existing in enumerate(self._entries):
                    if existing.identity_key == key:
                        self._entries[index] = candidate.model_copy()
                        break
                else:
                    self._entries.append(candidate.model_copy())

    async def remove(self, entries: Iterable[CacheEntry]) -> None:
        """Delete entries whose identity tuple matches one of the given entries."""
        async with self._lock:
            keys = {entry.identity_key for entry in entries}
            self._entries = [entry for entry in self._entries if entry.identity_key not in keys]

    async def find(self, query: CacheQuery) -> list[CacheEntry]:
        """Return copies of every entry matching the query."""
        async with self._lock:
            return [entry.model_copy() for entry in self._entries if query.matches(entry)]

    async def clear(self) -> None:
        """Remove every entry."""
        async with self._lock:
            self._entries.clear()


_default_cache: MemoryCache | None = None
_default_cache_lock: asyncio.Lock | None = None


def get_default_cache() -> MemoryCache:
    """Get the process-wide default cache, creating it on first use.

    AuthenticationContext uses this cache when the caller supplies none.
    """
    global _default_cache
    if _default_cache is None:
        _default_cache = MemoryCache()
    return _default_cache


def get_default_cache_lock() -> asyncio.Lock:
    """Get the lock that serializes cache drivers over the default cache."""
    global _default_cache_lock
    if _default_cache_lock is None:
        _default_cache_lock = asyncio.Lock()
    return _default_cache_lock


def reset_default_cache() -> None:
    """Discard the default cache and its lock. The next get_default_cache() creates a new one."""
    global _default_cache, _default_cache_lock
    _default_cache = None
    _default_cache_lock = None
