"""Cache entry model and lookup query.

A CacheEntry is one cached token keyed by its identity tuple
(authority, client_id, resource, user_id, policy). Resources are stored in
normalized scope form so that "a b" and "b,a" address the same entry.
"""

from __future__ import annotations

__all__ = [
    "CacheEntry",
    "CacheQuery",
    "IdentityKey",
    "normalize_scope",
]

import re
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from pydantic import BaseModel, field_validator

from dirauth.constants import TOKEN_EXPIRATION_BUFFER_SECONDS
from dirauth.models import IdentityClaims, TokenResponse

# (authority, client_id, resource, user_id, policy)
IdentityKey = tuple[str, str, str | None, str | None, str | None]

_SCOPE_SEPARATORS = re.compile(r"[\s,]+")


def normalize_scope(value: str | Iterable[str] | None) -> str | None:
    """Normalize a resource or scope into a canonical space-delimited form.

    Tokens may be separated by whitespace or commas and given in any order;
    duplicates are dropped and tokens sorted, so equal sets compare equal.

    Args:
        value: Resource string, scope string, list of scopes, or None.

    Returns:
        Canonical string, or None when value is empty.

    Example:
        >>> normalize_scope("user.read, openid  mail.send")
        'mail.send openid user.read'
    """
    if value is None:
        return None

    if isinstance(value, str):
        tokens = _SCOPE_SEPARATORS.split(value)
    else:
        tokens = [token for item in value for token in _SCOPE_SEPARATORS.split(item)]

    unique = sorted({token for token in tokens if token})
    return " ".join(unique) or None


class CacheEntry(BaseModel):
    """One cached token.

    Attributes:
        authority: Normalized authority URL.
        client_id: Application (client) id.
        resource: Normalized resource, or None for a multi-resource entry.
        user_id: User the token belongs to, None for app-only tokens.
        policy: B2C-style policy, if any.
        token_type: Usually "Bearer".
        access_token: The access token.
        refresh_token: Refresh token, if one was issued.
        expires_on: Absolute UTC expiry of the access token.
        created_on: When the token was issued.
        expires_in: Lifetime in seconds as reported by the server.
        is_mrrt: Refresh token is valid for any resource.
        tenant_id: Directory tenant (from the identity token).
        given_name: User's given name.
        family_name: User's family name.
        is_user_id_displayable: user_id is a upn or email.
        identity_provider: Issuing identity provider.
        object_id: Directory object id.
    """

    authority: str
    client_id: str
    resource: str | None = None
    user_id: str | None = None
    policy: str | None = None

    token_type: str
    access_token: str
    refresh_token: str | None = None
    expires_on: datetime
    created_on: datetime
    expires_in: int | None = None
    is_mrrt: bool = False

    tenant_id: str | None = None
    given_name: str | None = None
    family_name: str | None = None
    is_user_id_displayable: bool = False
    identity_provider: str | None = None
    object_id: str | None = None

    @field_validator("resource", mode="before")
    @classmethod
    def _normalize_resource(cls, value: str | Iterable[str] | None) -> str | None:
        return normalize_scope(value)

    @property
    def identity_key(self) -> IdentityKey:
        """The tuple that uniquely identifies this entry within a cache."""
        return (self.authority, self.client_id, self.resource, self.user_id, self.policy)

    def is_expired(self, buffer_seconds: int = TOKEN_EXPIRATION_BUFFER_SECONDS) -> bool:
        """Check if the access token expires within buffer_seconds."""
        return self.expires_on - timedelta(seconds=buffer_seconds) <= datetime.now(timezone.utc)

    def apply_claims(self, claims: IdentityClaims) -> None:
        """Copy identity token claims onto the entry."""
        self.user_id = claims.user_id
        self.is_user_id_displayable = claims.is_user_id_displayable
        self.tenant_id = claims.tenant_id
        self.given_name = claims.given_name
        self.family_name = claims.family_name
        self.identity_provider = claims.identity_provider
        self.object_id = claims.object_id

    def claims(self) -> IdentityClaims | None:
        """Identity claims stored on the entry, if it belongs to a user."""
        if self.user_id is None:
            return None
        return IdentityClaims(
            user_id=self.user_id,
            is_user_id_displayable=self.is_user_id_displayable,
            tenant_id=self.tenant_id,
            given_name=self.given_name,
            family_name=self.family_name,
            identity_provider=self.identity_provider,
            object_id=self.object_id,
        )

    def to_token_response(self) -> TokenResponse:
        """Render the entry as the TokenResponse callers receive."""
        return TokenResponse(
            token_type=self.token_type,
            access_token=self.access_token,
            refresh_token=self.refresh_token,
            expires_in=self.expires_in,
            expires_on=self.expires_on,
            created_on=self.created_on,
            resource=self.resource,
            id_token=self.claims(),
        )


@dataclass(frozen=True)
class CacheQuery:
    """Criteria for MemoryCache.find.

    Every non-None field must equal the entry's field. A None resource
    matches entries for any resource.
    """

    authority: str | None = None
    client_id: str | None = None
    resource: str | None = None
    user_id: str | None = None
    policy: str | None = None

    def matches(self, entry: CacheEntry) -> bool:
        if self.authority is not None and entry.authority != self.authority:
            return False
        if self.client_id is not None and entry.client_id != self.client_id:
            return False
        if self.resource is not None and entry.resource != normalize_scope(self.resource):
            return False
        if self.user_id is not None and entry.user_id != self.user_id:
            return False
        if self.policy is not None and entry.policy != self.policy:
            return False
        return True
