"""OAuth2 token endpoint client.

Performs one form-encoded exchange against the token endpoint (or the
device code endpoint) and normalizes the JSON response into a
TokenResponse. Identity tokens are decoded without signature verification;
they came straight from the authority over TLS and are only used to label
cache entries.
"""

from __future__ import annotations

__all__ = [
    "OAuth2Client",
    "parse_id_token",
    "parse_token_response",
]

import logging
import re
import uuid
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any

import httpx
import jwt
from pydantic import ValidationError

from dirauth.constants import (
    APP_NAME,
    DEFAULT_TOKEN_LIFETIME_SECONDS,
    ID_TOKEN_CLAIM_MAP,
    OAuth2ResponseField,
)
from dirauth.exceptions import (
    OAuthServerError,
    ProtocolError,
    TokenResponseParseError,
    TokenResponseValidationError,
)
from dirauth.models import ErrorResponse, IdentityClaims, TokenResponse, UserCodeInfo
from dirauth.utils.http import client_headers, endpoint_host

if TYPE_CHECKING:
    from dirauth.authority import Authority
    from dirauth.call_context import CallContext

_logger = logging.getLogger(f"{APP_NAME}.oauth2_client")

# header.payload.signature, signature may be empty for unsigned tokens
_JWT_SHAPE = re.compile(r"^([^\.\s]*)\.([^\.\s]+)\.([^\.\s]*)$")

_REQUIRED_FIELDS = (OAuth2ResponseField.TOKEN_TYPE, OAuth2ResponseField.ACCESS_TOKEN)

_USER_CODE_REQUIRED_FIELDS = (
    OAuth2ResponseField.DEVICE_CODE,
    OAuth2ResponseField.USER_CODE,
    OAuth2ResponseField.VERIFICATION_URL,
    OAuth2ResponseField.INTERVAL,
    OAuth2ResponseField.EXPIRES_IN,
)


def _parse_int(data: dict[str, Any], field: str) -> int | None:
    value = data.get(field)
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise TokenResponseParseError(f"{field} could not be parsed as an int.") from e


def _from_epoch(seconds: float, field: str) -> datetime:
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError, ValueError) as e:
        raise TokenResponseParseError(f"{field} is out of range for a timestamp.") from e


def parse_id_token(id_token: str) -> IdentityClaims | None:
    """Decode an identity token into IdentityClaims.

    Args:
        id_token: Encoded identity token.

    Returns:
        IdentityClaims, or None if the token cannot be decoded.
    """
    if not _JWT_SHAPE.match(id_token):
        _logger.warning(
            {
                "event": "id_token_malformed",
                "message": "The returned id_token is not parseable",
            }
        )
        return None

    try:
        claims: dict[str, Any] = jwt.decode(id_token, options={"verify_signature": False})
    except jwt.PyJWTError as e:
        _logger.warning(
            {
                "event": "id_token_decode_failed",
                "message": "Unable to decode id_token",
                "error_type": type(e).__name__,
            }
        )
        return None

    is_displayable = True
    user_id = claims.get("upn") or claims.get("email")
    if not user_id:
        is_displayable = False
        user_id = claims.get("sub") or str(uuid.uuid4())

    mapped = {field: claims[claim] for claim, field in ID_TOKEN_CLAIM_MAP.items() if claim in claims}
    return IdentityClaims(user_id=user_id, is_user_id_displayable=is_displayable, **mapped)


def parse_token_response(data: dict[str, Any]) -> TokenResponse:
    """Normalize a token endpoint JSON body.

    Args:
        data: Decoded JSON body of a 2xx response.

    Returns:
        TokenResponse with absolute expiry and decoded identity claims.

    Raises:
        TokenResponseParseError: If a numeric field is not an integer or is out of range.
        TokenResponseValidationError: If token_type or access_token is missing.
    """
    for field in _REQUIRED_FIELDS:
        if not data.get(field):
            raise TokenResponseValidationError(f'The token response is missing the required "{field}" field.')

    expires_in = _parse_int(data, OAuth2ResponseField.EXPIRES_IN)
    expires_on_epoch = _parse_int(data, OAuth2ResponseField.EXPIRES_ON)
    created_on_ms = _parse_int(data, OAuth2ResponseField.CREATED_ON)

    now = datetime.now(timezone.utc)
    if expires_in is not None:
        try:
            expires_on = now + timedelta(seconds=expires_in)
        except OverflowError as e:
            raise TokenResponseParseError(f"{OAuth2ResponseField.EXPIRES_IN} is out of range.") from e
    elif expires_on_epoch is not None:
        expires_on = _from_epoch(expires_on_epoch, OAuth2ResponseField.EXPIRES_ON)
    else:
        expires_on = now + timedelta(seconds=DEFAULT_TOKEN_LIFETIME_SECONDS)

    created_on = None
    if created_on_ms is not None:
        created_on = _from_epoch(created_on_ms / 1000, OAuth2ResponseField.CREATED_ON)

    id_token = None
    raw_id_token = data.get(OAuth2ResponseField.ID_TOKEN)
    if raw_id_token:
        id_token = parse_id_token(raw_id_token)

    return TokenResponse(
        token_type=data[OAuth2ResponseField.TOKEN_TYPE],
        access_token=data[OAuth2ResponseField.ACCESS_TOKEN],
        refresh_token=data.get(OAuth2ResponseField.REFRESH_TOKEN),
        expires_in=expires_in,
        expires_on=expires_on,
        created_on=created_on,
        resource=data.get(OAuth2ResponseField.RESOURCE),
        id_token=id_token,
    )


class OAuth2Client:
    """Token and device code endpoint exchanges for one authority.

    The HTTP client is owned by the caller (normally the
    AuthenticationContext) and is not closed here.
    """

    def __init__(
        self,
        call_context: "CallContext",
        authority: "Authority",
        http_client: httpx.AsyncClient,
    ) -> None:
        self._call_context = call_context
        self._authority = authority
        self._client = http_client

    async def get_token(self, oauth_parameters: dict[str, str]) -> TokenResponse:
        """Exchange a grant at the token endpoint.

        Args:
            oauth_parameters: Form parameters, including grant_type.

        Returns:
            Normalized TokenResponse.

        Raises:
            ProtocolError: Transport failure or non-2xx without an OAuth error body.
            OAuthServerError: Non-2xx with an OAuth error body.
            TokenResponseParseError: Body is not JSON or has non-integer numbers.
            TokenResponseValidationError: token_type or access_token missing.
        """
        data = await self._post(self._authority.token_endpoint, oauth_parameters, "Get Token")
        token_response = parse_token_response(data)

        _logger.info(
            {
                "event": "token_response_received",
                "message": "Successfully received token response",
                "correlation_id": self._call_context.correlation_id,
                "grant_type": oauth_parameters.get("grant_type"),
                "has_refresh_token": token_response.refresh_token is not None,
                "has_id_token": token_response.id_token is not None,
                "expires_on": token_response.expires_on.isoformat(),
            }
        )
        return token_response

    async def get_user_code_info(self, oauth_parameters: dict[str, str]) -> UserCodeInfo:
        """Request a device code and user code.

        Args:
            oauth_parameters: Form parameters (client_id, resource, optional mkt).

        Returns:
            UserCodeInfo to show the user and poll with.

        Raises:
            ProtocolError: Transport failure or non-2xx without an OAuth error body.
            OAuthServerError: Non-2xx with an OAuth error body.
            TokenResponseParseError: Body is not JSON or has non-integer numbers.
            TokenResponseValidationError: A required field is missing.
        """
        data = await self._post(self._authority.device_code_endpoint, oauth_parameters, "Get Device Code")

        for field in _USER_CODE_REQUIRED_FIELDS:
            if data.get(field) is None:
                raise TokenResponseValidationError(f'The device code response is missing the required "{field}" field.')
        for field in (OAuth2ResponseField.INTERVAL, OAuth2ResponseField.EXPIRES_IN):
            _parse_int(data, field)

        return UserCodeInfo.from_response(data)

    async def _post(self, url: str, oauth_parameters: dict[str, str], operation: str) -> dict[str, Any]:
        host = endpoint_host(url)

        _logger.debug(
            {
                "event": "oauth_request_started",
                "message": f"{operation} request to {host}",
                "correlation_id": self._call_context.correlation_id,
            }
        )

        try:
            response = await self._client.post(
                url,
                data=oauth_parameters,
                headers=client_headers(self._call_context),
            )
        except httpx.HTTPError as e:
            _logger.warning(
                {
                    "event": "oauth_request_failed",
                    "message": f"{operation} request to {host} failed",
                    "correlation_id": self._call_context.correlation_id,
                    "error_type": type(e).__name__,
                }
            )
            raise ProtocolError(f"{operation} request to {host} failed: {e}", host=host) from e

        if response.status_code >= 300:
            self._raise_for_error_response(response, host, operation)

        try:
            data = response.json()
        except ValueError as e:
            raise TokenResponseParseError("The token response returned from the server is unparseable as JSON") from e
        if not isinstance(data, dict):
            raise TokenResponseParseError("The token response returned from the server is unparseable as JSON")
        return data

    def _raise_for_error_response(self, response: httpx.Response, host: str, operation: str) -> None:
        """Raise OAuthServerError for OAuth error bodies, ProtocolError otherwise."""
        error_response = None
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and body.get(OAuth2ResponseField.ERROR):
            try:
                error_response = ErrorResponse.model_validate(body)
            except ValidationError:
                error_response = None

        if error_response is not None:
            _logger.info(
                {
                    "event": "oauth_server_error",
                    "message": f"{operation} request returned an OAuth error",
                    "correlation_id": self._call_context.correlation_id,
                    "status_code": response.status_code,
                    "error": error_response.error,
                }
            )
            raise OAuthServerError(error_response, status_code=response.status_code)

        _logger.warning(
            {
                "event": "oauth_http_error",
                "message": f"{operation} request returned http error {response.status_code}",
                "correlation_id": self._call_context.correlation_id,
                "status_code": response.status_code,
                "host": host,
            }
        )
        raise ProtocolError(
            f"{operation} request returned http error: {response.status_code} from {host}",
            status_code=response.status_code,
            host=host,
        )
