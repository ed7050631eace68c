"""Per-request façade over a token cache.

The CacheDriver turns protocol responses into cache entries, finds the one
entry that can satisfy a request, refreshes it silently when it has
expired, and keeps multi-resource refresh tokens (MRRT) in sync across
sibling entries.

Lookup order for find():
1. Exact match on (authority, client_id, resource, user_id, policy).
2. If nothing matched and a resource was requested, any MRRT entry for
   (authority, client_id, user_id, policy). Its access token belongs to a
   different resource, so it is always refreshed for the requested one.

A lookup that matches more than one entry fails instead of guessing.
"""

from __future__ import annotations

__all__ = [
    "CacheDriver",
    "RefreshFunction",
]

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from dirauth.cache.entry import CacheEntry, CacheQuery, normalize_scope
from dirauth.constants import APP_NAME
from dirauth.exceptions import CacheAmbiguousMatchError
from dirauth.models import TokenResponse

if TYPE_CHECKING:
    from dirauth.cache.memory_cache import TokenCache
    from dirauth.call_context import CallContext

# Called with (expired entry, requested resource); returns the refreshed response
RefreshFunction = Callable[[CacheEntry, str | None], Awaitable[TokenResponse]]

_logger = logging.getLogger(f"{APP_NAME}.cache_driver")


class CacheDriver:
    """Cache operations scoped to one authority, client, resource and policy.

    Usage:
        driver = CacheDriver(call_context, authority.url, resource, client_id,
                             policy=None, cache=cache, refresh_function=refresh)
        entry = await driver.find(user_id="alice@contoso.com")
        if entry is None:
            response = await oauth_client.get_token(params)
            await driver.manage_cache(response)
    """

    def __init__(
        self,
        call_context: "CallContext",
        authority: str,
        resource: str | None,
        client_id: str,
        policy: str | None,
        cache: "TokenCache | None",
        refresh_function: RefreshFunction | None = None,
        lock: asyncio.Lock | None = None,
    ) -> None:
        """Initialize the driver.

        Args:
            call_context: Correlation id and options for logging.
            authority: Normalized authority URL.
            resource: Requested resource or scope, normalized on the way in.
            client_id: Application (client) id.
            policy: B2C-style policy, compared strictly.
            cache: Backing cache. None disables caching.
            refresh_function: Coroutine used to refresh expired entries.
            lock: Lock held by the cache's owner and shared by every driver
                over the same cache. Defaults to a lock private to this driver.
        """
        self._call_context = call_context
        self._authority = authority
        self._resource = normalize_scope(resource)
        self._client_id = client_id
        self._policy = policy
        self._cache = cache
        self._refresh_function = refresh_function
        self._lock = lock or asyncio.Lock()

    async def find(self, user_id: str | None = None) -> CacheEntry | None:
        """Find the entry for this request, refreshing it if expired.

        Args:
            user_id: Restrict the lookup to one user. None matches any user.

        Returns:
            A usable entry, or None when the cache cannot satisfy the request.

        Raises:
            CacheAmbiguousMatchError: If more than one entry matches.
            Exception: Whatever the refresh function raises, unchanged.
        """
        if self._cache is None:
            return None

        async with self._lock:
            entry, is_resource_specific = await self._load_single_entry(user_id)

        if entry is None:
            _logger.debug(
                {
                    "event": "cache_miss",
                    "message": "No matching entry found in cache",
                    "correlation_id": self._call_context.correlation_id,
                }
            )
            return None

        if is_resource_specific and not entry.is_expired():
            _logger.debug(
                {
                    "event": "cache_hit",
                    "message": "Returning cached access token",
                    "correlation_id": self._call_context.correlation_id,
                    "expires_on": entry.expires_on.isoformat(),
                }
            )
            return entry

        if not entry.refresh_token:
            _logger.info(
                {
                    "event": "cache_entry_expired",
                    "message": "Cached entry is expired and has no refresh token",
                    "correlation_id": self._call_context.correlation_id,
                }
            )
            return None

        return await self._refresh_entry(entry, is_resource_specific)

    async def add(self, token_response: TokenResponse) -> CacheEntry:
        """Store a token response, propagating MRRT refresh tokens to siblings.

        Args:
            token_response: Normalized protocol response.

        Returns:
            The entry as stored.
        """
        entry = self._create_entry(token_response)
        await self._add_entry(entry)
        return entry

    async def manage_cache(self, token_response: TokenResponse) -> CacheEntry:
        """Persist the result of a full protocol exchange. Same as add()."""
        return await self.add(token_response)

    # =========================================================================
    # Lookup
    # =========================================================================

    async def _query(self, user_id: str | None, resource: str | None) -> list[CacheEntry]:
        assert self._cache is not None
        query = CacheQuery(
            authority=self._authority,
            client_id=self._client_id,
            resource=resource,
            user_id=user_id,
            policy=self._policy,
        )
        entries = await self._cache.find(query)
        # Policy is strict: a request without policy only matches entries without one
        return [entry for entry in entries if entry.policy == self._policy]

    async def _load_single_entry(self, user_id: str | None) -> tuple[CacheEntry | None, bool]:
        """Resolve the lookup to at most one entry.

        Returns:
            (entry, is_resource_specific). is_resource_specific is False when
            the entry is an MRRT sibling issued for another resource.
        """
        entries = await self._query(user_id, self._resource)
        if len(entries) > 1:
            self._log_ambiguous(len(entries))
            raise CacheAmbiguousMatchError()
        if entries:
            return entries[0], True

        if self._resource is None:
            return None, False

        mrrt_entries = [entry for entry in await self._query(user_id, None) if entry.is_mrrt]
        if not mrrt_entries:
            return None, False

        # Several MRRT entries for one user share the same refresh token
        if len({entry.user_id for entry in mrrt_entries}) > 1:
            self._log_ambiguous(len(mrrt_entries))
            raise CacheAmbiguousMatchError()

        _logger.debug(
            {
                "event": "cache_mrrt_match",
                "message": "Found multi-resource refresh token for requested resource",
                "correlation_id": self._call_context.correlation_id,
            }
        )
        return mrrt_entries[0], False

    def _log_ambiguous(self, count: int) -> None:
        _logger.warning(
            {
                "event": "cache_ambiguous_match",
                "message": "More than one cache entry matches the query",
                "correlation_id": self._call_context.correlation_id,
                "match_count": count,
            }
        )

    # =========================================================================
    # Refresh
    # =========================================================================

    async def _refresh_entry(self, entry: CacheEntry, is_resource_specific: bool) -> CacheEntry | None:
        if self._refresh_function is None:
            return None

        _logger.info(
            {
                "event": "cache_refresh_started",
                "message": "Refreshing cached entry with its refresh token",
                "correlation_id": self._call_context.correlation_id,
                "is_mrrt": entry.is_mrrt,
                "resource_specific": is_resource_specific,
            }
        )

        # Errors propagate with the cache untouched
        response = await self._refresh_function(entry, self._resource)

        refreshed = self._create_entry_from_refresh(entry, response)
        await self._add_entry(refreshed)

        _logger.info(
            {
                "event": "cache_refresh_succeeded",
                "message": "Cached entry refreshed",
                "correlation_id": self._call_context.correlation_id,
                "expires_on": refreshed.expires_on.isoformat(),
            }
        )
        return refreshed

    def _create_entry_from_refresh(self, entry: CacheEntry, response: TokenResponse) -> CacheEntry:
        """Merge a refresh response into a copy of the entry it refreshed."""
        refreshed = entry.model_copy()
        refreshed.authority = self._authority
        refreshed.resource = self._resource if self._resource is not None else entry.resource
        refreshed.token_type = response.token_type
        refreshed.access_token = response.access_token
        refreshed.expires_on = response.expires_on
        refreshed.expires_in = response.expires_in
        refreshed.created_on = response.created_on or datetime.now(timezone.utc)
        if response.refresh_token:
            refreshed.refresh_token = response.refresh_token
        if response.id_token is not None:
            refreshed.apply_claims(response.id_token)
        # A refresh token that was multi-resource stays multi-resource
        refreshed.is_mrrt = entry.is_mrrt or self._is_mrrt(response)
        return refreshed

    # =========================================================================
    # Add
    # =========================================================================

    @staticmethod
    def _is_mrrt(response: TokenResponse) -> bool:
        return response.resource is None and response.refresh_token is not None

    def _create_entry(self, response: TokenResponse) -> CacheEntry:
        entry = CacheEntry(
            authority=self._authority,
            client_id=self._client_id,
            resource=self._resource,
            policy=self._policy,
            token_type=response.token_type,
            access_token=response.access_token,
            refresh_token=response.refresh_token,
            expires_on=response.expires_on,
            created_on=response.created_on or datetime.now(timezone.utc),
            expires_in=response.expires_in,
            is_mrrt=self._is_mrrt(response),
        )
        if response.id_token is not None:
            entry.apply_claims(response.id_token)
        return entry

    async def _add_entry(self, entry: CacheEntry) -> None:
        if self._cache is None:
            return

        async with self._lock:
            to_add = [entry]
            if entry.is_mrrt:
                to_add.extend(await self._siblings_to_update(entry))
            await self._cache.add(to_add)

        _logger.debug(
            {
                "event": "cache_entry_added",
                "message": "Token stored in cache",
                "correlation_id": self._call_context.correlation_id,
                "is_mrrt": entry.is_mrrt,
                "updated_siblings": len(to_add) - 1,
            }
        )

    async def _siblings_to_update(self, entry: CacheEntry) -> list[CacheEntry]:
        """MRRT entries sharing (authority, client_id, user_id, policy) with a stale refresh token."""
        assert self._cache is not None
        candidates = await self._cache.find(
            CacheQuery(authority=entry.authority, client_id=entry.client_id, user_id=entry.user_id)
        )

        siblings = []
        for candidate in candidates:
            if not candidate.is_mrrt or candidate.identity_key == entry.identity_key:
                continue
            # user_id and policy must match exactly, including both being None
            if candidate.user_id != entry.user_id or candidate.policy != entry.policy:
                continue
            if candidate.refresh_token == entry.refresh_token:
                continue
            candidate.refresh_token = entry.refresh_token
            siblings.append(candidate)
        return siblings
