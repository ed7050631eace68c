"""Normalized protocol models shared across dirauth.

TokenResponse is what every grant produces after normalization; identity
token claims live in an explicit IdentityClaims sub-model rather than being
merged into the response.
"""

from __future__ import annotations

__all__ = [
    "ErrorResponse",
    "IdentityClaims",
    "TokenResponse",
    "UserCodeInfo",
]

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict

from dirauth.constants import OAuth2ResponseField


class IdentityClaims(BaseModel):
    """Claims decoded from an identity token.

    Attributes:
        user_id: upn, else email, else sub, else a random identifier.
        is_user_id_displayable: True when user_id came from upn or email.
        tenant_id: Directory tenant (tid claim).
        given_name: User's given name.
        family_name: User's family name.
        identity_provider: Issuing identity provider (idp claim).
        object_id: Directory object id (oid claim).
    """

    model_config = ConfigDict(frozen=True)

    user_id: str
    is_user_id_displayable: bool = False
    tenant_id: str | None = None
    given_name: str | None = None
    family_name: str | None = None
    identity_provider: str | None = None
    object_id: str | None = None


class TokenResponse(BaseModel):
    """Normalized token endpoint response.

    Attributes:
        token_type: Usually "Bearer".
        access_token: The access token.
        refresh_token: Refresh token, if one was issued.
        expires_in: Lifetime in seconds as reported by the server.
        expires_on: Absolute UTC expiry.
        created_on: Server creation timestamp, if reported.
        resource: Resource the token was issued for. None marks a
            multi-resource refresh token response.
        id_token: Decoded identity token claims, if any.
    """

    token_type: str
    access_token: str
    refresh_token: str | None = None
    expires_in: int | None = None
    expires_on: datetime
    created_on: datetime | None = None
    resource: str | None = None
    id_token: IdentityClaims | None = None

    @property
    def user_id(self) -> str | None:
        """User id from the identity token claims, if present."""
        return self.id_token.user_id if self.id_token else None


class ErrorResponse(BaseModel):
    """OAuth error body returned by the server, kept verbatim."""

    model_config = ConfigDict(extra="allow")

    error: str
    error_description: str | None = None
    error_codes: list[int] | None = None
    timestamp: str | None = None
    trace_id: str | None = None
    correlation_id: str | None = None


@dataclass
class UserCodeInfo:
    """Device code endpoint response, held by the caller while polling.

    Fields are optional so that incomplete values supplied by a caller can be
    reported field by field.

    Attributes:
        device_code: Code used to poll for tokens (don't show to user).
        user_code: Code the user enters in the browser.
        verification_url: URL the user opens to authenticate.
        interval: Polling interval in seconds.
        expires_in: Seconds until the codes expire.
        message: Ready-made instructions for the user.
    """

    device_code: str | None = None
    user_code: str | None = None
    verification_url: str | None = None
    interval: int | None = None
    expires_in: int | None = None
    message: str | None = None

    @classmethod
    def from_response(cls, data: dict[str, Any]) -> "UserCodeInfo":
        """Parse from a device code endpoint response."""

        def _as_int(value: Any) -> int | None:
            return int(value) if value is not None else None

        return cls(
            device_code=data.get(OAuth2ResponseField.DEVICE_CODE),
            user_code=data.get(OAuth2ResponseField.USER_CODE),
            verification_url=data.get(OAuth2ResponseField.VERIFICATION_URL),
            interval=_as_int(data.get(OAuth2ResponseField.INTERVAL)),
            expires_in=_as_int(data.get(OAuth2ResponseField.EXPIRES_IN)),
            message=data.get(OAuth2ResponseField.MESSAGE),
        )
