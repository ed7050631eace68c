"""Authority URL normalization and endpoint layout.

The authority identifies the issuing directory tenant, e.g.
https://login.example.com/contoso.onmicrosoft.com. Endpoints are derived
from it by fixed path conventions or supplied explicitly; either way they
are used as opaque strings and no metadata discovery is performed.
"""

from __future__ import annotations

__all__ = ["Authority"]

from urllib.parse import quote, urlsplit

from dirauth.constants import (
    ADFS_PATH_SEGMENT,
    DEVICE_CODE_ENDPOINT_PATH,
    TOKEN_ENDPOINT_PATH,
    USER_REALM_API_VERSION,
    USER_REALM_PATH_TEMPLATE,
)
from dirauth.exceptions import ArgumentError
from dirauth.utils.validation import validate_string_param


class Authority:
    """A validated authority and the endpoints hanging off it.

    Usage:
        authority = Authority("https://login.example.com/contoso/")
        authority.url             # "https://login.example.com/contoso"
        authority.token_endpoint  # "https://login.example.com/contoso/oauth2/token"
    """

    def __init__(
        self,
        url: str,
        token_endpoint: str | None = None,
        device_code_endpoint: str | None = None,
    ) -> None:
        """Validate and normalize the authority URL.

        Args:
            url: Authority URL. Must be https with a tenant path and no query.
            token_endpoint: Explicit token endpoint, overrides the default layout.
            device_code_endpoint: Explicit device code endpoint.

        Raises:
            ArgumentError: If the URL is not a usable authority.
        """
        validate_string_param(url, "authority")

        parts = urlsplit(url.strip())
        if parts.scheme.lower() != "https":
            raise ArgumentError("The authority url must be an https endpoint.")
        if parts.query:
            raise ArgumentError("The authority url must not have a query string.")
        if not parts.netloc:
            raise ArgumentError("The authority url must include a host.")

        segments = [segment for segment in parts.path.split("/") if segment]
        if not segments:
            raise ArgumentError("Could not determine tenant from the authority url.")

        self._host = parts.netloc.lower()
        self._tenant = segments[0]
        self._url = f"https://{self._host}/{self._tenant}"
        self._token_endpoint = token_endpoint or f"{self._url}{TOKEN_ENDPOINT_PATH}"
        self._device_code_endpoint = device_code_endpoint or f"{self._url}{DEVICE_CODE_ENDPOINT_PATH}"

    def __repr__(self) -> str:
        return f"Authority({self._url!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Authority):
            return NotImplemented
        return self._url == other._url

    def __hash__(self) -> int:
        return hash(self._url)

    @property
    def url(self) -> str:
        """Normalized authority URL (no query, no trailing slash)."""
        return self._url

    @property
    def host(self) -> str:
        return self._host

    @property
    def tenant(self) -> str:
        return self._tenant

    @property
    def is_adfs(self) -> bool:
        """True when the authority is an ADFS server rather than a directory tenant."""
        return self._tenant.lower() == ADFS_PATH_SEGMENT

    @property
    def token_endpoint(self) -> str:
        return self._token_endpoint

    @property
    def device_code_endpoint(self) -> str:
        return self._device_code_endpoint

    def user_realm_url(self, username: str) -> str:
        """URL of the user realm document for a username."""
        path = USER_REALM_PATH_TEMPLATE.format(username=quote(username, safe="@"))
        return f"https://{self._host}{path}?api-version={USER_REALM_API_VERSION}"
