"""User realm discovery.

Asks the authority whether a username belongs to a managed (cloud) account
or to a federated one, and for federated accounts where the WS-Trust
endpoint lives. The WS-Trust endpoint is taken from the realm document as
an opaque URL; no Mex document parsing is performed.
"""

from __future__ import annotations

__all__ = [
    "AccountType",
    "UserRealm",
    "UserRealmInfo",
]

import logging
from enum import Enum
from typing import TYPE_CHECKING

import httpx
from pydantic import BaseModel

from dirauth.constants import APP_NAME
from dirauth.exceptions import ProtocolError
from dirauth.utils.http import client_headers, endpoint_host

if TYPE_CHECKING:
    from dirauth.authority import Authority
    from dirauth.call_context import CallContext

_logger = logging.getLogger(f"{APP_NAME}.user_realm")


class AccountType(str, Enum):
    """Account types reported by the user realm endpoint."""

    MANAGED = "managed"
    FEDERATED = "federated"
    UNKNOWN = "unknown"


class UserRealmInfo(BaseModel):
    """Parsed user realm document.

    Attributes:
        account_type: Managed, federated, or unknown.
        federation_protocol: Federation protocol, e.g. "WSTrust".
        federation_metadata_url: Mex document URL (informational only).
        federation_active_auth_url: WS-Trust username/password endpoint.
    """

    account_type: AccountType
    federation_protocol: str | None = None
    federation_metadata_url: str | None = None
    federation_active_auth_url: str | None = None

    @classmethod
    def from_response(cls, data: dict) -> "UserRealmInfo":
        """Parse from the user realm JSON document."""
        raw_type = str(data.get("account_type", "")).lower()
        try:
            account_type = AccountType(raw_type)
        except ValueError:
            account_type = AccountType.UNKNOWN

        return cls(
            account_type=account_type,
            federation_protocol=data.get("federation_protocol"),
            federation_metadata_url=data.get("federation_metadata_url"),
            federation_active_auth_url=data.get("federation_active_auth_url"),
        )


class UserRealm:
    """Discovers the realm of one user against one authority."""

    def __init__(
        self,
        call_context: "CallContext",
        authority: "Authority",
        http_client: httpx.AsyncClient,
    ) -> None:
        self._call_context = call_context
        self._authority = authority
        self._client = http_client

    async def discover(self, username: str) -> UserRealmInfo:
        """Fetch the realm document for a username.

        Args:
            username: The user's sign-in name.

        Returns:
            UserRealmInfo describing the account.

        Raises:
            ProtocolError: If the request fails or the body is not JSON.
        """
        url = self._authority.user_realm_url(username)
        host = endpoint_host(url)

        _logger.info(
            {
                "event": "user_realm_discovery_started",
                "message": "Performing user realm discovery",
                "correlation_id": self._call_context.correlation_id,
                "host": host,
            }
        )

        try:
            response = await self._client.get(url, headers=client_headers(self._call_context))
        except httpx.HTTPError as e:
            raise ProtocolError(f"User realm discovery request to {host} failed: {e}", host=host) from e

        if response.status_code >= 300:
            raise ProtocolError(
                f"User realm discovery request returned http error: {response.status_code} from {host}",
                status_code=response.status_code,
                host=host,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ProtocolError(f"User realm discovery response from {host} is not valid JSON", host=host) from e
        if not isinstance(data, dict):
            raise ProtocolError(f"User realm discovery response from {host} is not a JSON object", host=host)

        info = UserRealmInfo.from_response(data)

        _logger.info(
            {
                "event": "user_realm_discovered",
                "message": "User realm discovery complete",
                "correlation_id": self._call_context.correlation_id,
                "account_type": info.account_type.value,
                "federation_protocol": info.federation_protocol,
            }
        )
        return info
