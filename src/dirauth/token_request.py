"""Orchestration of a single token acquisition.

A TokenRequest is created for every AuthenticationContext call. It checks
the cache first (refreshing silently where it can), falls back to the
protocol exchange for the requested grant, and persists whatever the
server returns.

The device code flow is a small state machine:

    IDLE -> POLLING -> SUCCEEDED | FAILED | CANCELLED | EXPIRED

Polls are spaced by the server's interval, which grows on slow_down. The
wait between polls is interruptible, so a cancellation issues no further
requests, and a response that arrives after cancellation is discarded
rather than cached.
"""

from __future__ import annotations

__all__ = [
    "DeviceCodeState",
    "PendingDeviceCodeRequest",
    "TokenRequest",
]

import asyncio
import base64
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from dirauth.cache.driver import CacheDriver
from dirauth.cache.entry import CacheEntry
from dirauth.constants import (
    APP_NAME,
    CLIENT_ASSERTION_TYPE_JWT_BEARER,
    DEVICE_CODE_SLOW_DOWN_INCREMENT_SECONDS,
    GrantType,
    OAuth2Error,
    OAuth2Parameter,
)
from dirauth.exceptions import (
    CacheMissError,
    DirAuthError,
    OAuthServerError,
    PollingCancelledError,
    PollingExpiredError,
    WSTrustError,
)
from dirauth.models import TokenResponse, UserCodeInfo
from dirauth.oauth.oauth2_client import OAuth2Client
from dirauth.oauth.self_signed_jwt import SelfSignedJwt
from dirauth.user_realm import AccountType, UserRealm
from dirauth.wstrust.request import WSTrustRequest, WSTrustVersion

if TYPE_CHECKING:
    from dirauth.authentication_context import AuthenticationContext
    from dirauth.call_context import CallContext

_logger = logging.getLogger(f"{APP_NAME}.token_request")

# Scope requested with user grants so that an id_token comes back
_OPENID_SCOPE = "openid"


class DeviceCodeState(str, Enum):
    """Lifecycle of a device code polling request."""

    IDLE = "idle"
    POLLING = "polling"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self not in (DeviceCodeState.IDLE, DeviceCodeState.POLLING)


@dataclass
class PendingDeviceCodeRequest:
    """A device code poll registered with an AuthenticationContext.

    Attributes:
        device_code: Key of the request.
        state: Current state of the polling loop.
        poll_count: Number of requests sent to the token endpoint so far.
    """

    device_code: str
    state: DeviceCodeState = DeviceCodeState.IDLE
    poll_count: int = 0
    _cancel_event: asyncio.Event = field(default_factory=asyncio.Event, init=False, repr=False)

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def cancel(self) -> None:
        """Request cancellation. Observed at the polling loop's next decision point."""
        self._cancel_event.set()

    async def wait(self, seconds: float) -> bool:
        """Sleep for seconds unless cancelled first.

        Returns:
            True if cancellation was requested during the wait.
        """
        try:
            await asyncio.wait_for(self._cancel_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True


class TokenRequest:
    """One logical "get me a token" operation.

    Usage:
        request = TokenRequest(call_context, context, client_id, resource)
        token = await request.get_token_with_client_credentials(secret)
    """

    def __init__(
        self,
        call_context: "CallContext",
        authentication_context: "AuthenticationContext",
        client_id: str,
        resource: str | None,
        redirect_uri: str | None = None,
        policy: str | None = None,
    ) -> None:
        """Initialize the request.

        Args:
            call_context: Correlation id and options.
            authentication_context: Owner of the authority, cache and HTTP client.
            client_id: Application (client) id.
            resource: Resource the token is for.
            redirect_uri: Redirect URI used with authorization codes.
            policy: B2C-style policy stamped on cache entries, taken from the
                AuthenticationContext.
        """
        self._call_context = call_context
        self._authentication_context = authentication_context
        self._client_id = client_id
        self._resource = resource
        self._redirect_uri = redirect_uri
        self._policy = policy
        self._client_secret: str | None = None

    # =========================================================================
    # Cache
    # =========================================================================

    def _create_cache_driver(self) -> CacheDriver:
        return CacheDriver(
            self._call_context,
            self._authentication_context.authority.url,
            self._resource,
            self._client_id,
            self._policy,
            self._authentication_context.cache,
            self._refresh_entry,
            lock=self._authentication_context.cache_lock,
        )

    async def _find_token_in_cache(self, user_id: str | None) -> TokenResponse | None:
        entry = await self._create_cache_driver().find(user_id)
        return entry.to_token_response() if entry is not None else None

    async def _add_to_cache(self, token_response: TokenResponse) -> None:
        await self._create_cache_driver().manage_cache(token_response)

    async def _refresh_entry(self, entry: CacheEntry, resource: str | None) -> TokenResponse:
        """Refresh function handed to the CacheDriver."""
        assert entry.refresh_token is not None
        oauth_parameters = self._create_oauth_parameters(GrantType.REFRESH_TOKEN, resource=resource)
        oauth_parameters[OAuth2Parameter.REFRESH_TOKEN] = entry.refresh_token
        if self._client_secret:
            oauth_parameters[OAuth2Parameter.CLIENT_SECRET] = self._client_secret
        return await self._create_oauth2_client().get_token(oauth_parameters)

    async def _get_token_with_cache_wrapper(
        self,
        user_id: str | None,
        get_token: Callable[[], Awaitable[TokenResponse]],
    ) -> TokenResponse:
        """Serve from cache if possible, otherwise exchange and persist."""
        try:
            cached = await self._find_token_in_cache(user_id)
        except DirAuthError as e:
            _logger.warning(
                {
                    "event": "cache_lookup_failed",
                    "message": "Attempt to look for token in cache resulted in error, acquiring a new token",
                    "correlation_id": self._call_context.correlation_id,
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                }
            )
            cached = None

        if cached is not None:
            return cached

        token_response = await get_token()
        await self._add_to_cache(token_response)
        return token_response

    async def get_token_from_cache_with_refresh(self, user_id: str | None) -> TokenResponse:
        """Cache-only lookup, refreshing an expired entry if possible.

        Args:
            user_id: Restrict the lookup to one user. None matches any user.

        Returns:
            Cached or refreshed TokenResponse.

        Raises:
            CacheMissError: If no usable entry exists.
            CacheAmbiguousMatchError: If more than one entry matches.
        """
        token_response = await self._find_token_in_cache(user_id)
        if token_response is None:
            raise CacheMissError()
        return token_response

    # =========================================================================
    # Protocol helpers
    # =========================================================================

    def _create_oauth2_client(self) -> OAuth2Client:
        return OAuth2Client(
            self._call_context,
            self._authentication_context.authority,
            self._authentication_context.http_client,
        )

    def _create_oauth_parameters(self, grant_type: str, resource: str | None = None) -> dict[str, str]:
        oauth_parameters = {
            OAuth2Parameter.GRANT_TYPE: grant_type,
            OAuth2Parameter.CLIENT_ID: self._client_id,
        }
        resource = resource if resource is not None else self._resource
        if resource:
            oauth_parameters[OAuth2Parameter.RESOURCE] = resource
        return oauth_parameters

    def _log_grant(self, grant_type: str) -> None:
        _logger.info(
            {
                "event": "token_request_started",
                "message": f"Getting token with {grant_type} grant",
                "correlation_id": self._call_context.correlation_id,
                "grant_type": grant_type,
                "resource": self._resource,
            }
        )

    # =========================================================================
    # Username / password
    # =========================================================================

    async def get_token_with_username_password(self, username: str, password: str) -> TokenResponse:
        """Resource owner password flow, federated through WS-Trust when needed."""

        async def get_token() -> TokenResponse:
            if self._authentication_context.authority.is_adfs:
                return await self._get_token_username_password_managed(username, password)

            realm = await UserRealm(
                self._call_context,
                self._authentication_context.authority,
                self._authentication_context.http_client,
            ).discover(username)

            if realm.account_type is AccountType.MANAGED:
                return await self._get_token_username_password_managed(username, password)
            if realm.account_type is AccountType.FEDERATED:
                if not realm.federation_active_auth_url:
                    raise WSTrustError("Unable to find a WS-Trust endpoint for the federated user realm.")
                return await self._get_token_username_password_federated(
                    username, password, realm.federation_active_auth_url
                )
            raise WSTrustError(f"Server returned an unknown AccountType: {realm.account_type.value}")

        return await self._get_token_with_cache_wrapper(username, get_token)

    async def _get_token_username_password_managed(self, username: str, password: str) -> TokenResponse:
        self._log_grant(GrantType.PASSWORD)
        oauth_parameters = self._create_oauth_parameters(GrantType.PASSWORD)
        oauth_parameters[OAuth2Parameter.USERNAME] = username
        oauth_parameters[OAuth2Parameter.PASSWORD] = password
        oauth_parameters[OAuth2Parameter.SCOPE] = _OPENID_SCOPE
        return await self._create_oauth2_client().get_token(oauth_parameters)

    async def _get_token_username_password_federated(
        self, username: str, password: str, wstrust_endpoint: str
    ) -> TokenResponse:
        version = WSTrustVersion.WSTRUST2005 if "/trust/2005/" in wstrust_endpoint.lower() else WSTrustVersion.WSTRUST13
        wstrust_response = await WSTrustRequest(
            self._call_context,
            wstrust_endpoint,
            self._authentication_context.http_client,
            version=version,
        ).acquire_token(username, password)

        grant_type = wstrust_response.grant_type
        self._log_grant(grant_type)
        oauth_parameters = self._create_oauth_parameters(grant_type)
        oauth_parameters[OAuth2Parameter.ASSERTION] = base64.b64encode(wstrust_response.token.encode("utf-8")).decode(
            "ascii"
        )
        oauth_parameters[OAuth2Parameter.SCOPE] = _OPENID_SCOPE
        return await self._create_oauth2_client().get_token(oauth_parameters)

    # =========================================================================
    # Confidential client grants
    # =========================================================================

    async def get_token_with_client_credentials(self, client_secret: str) -> TokenResponse:
        """Client credentials grant authenticated with a secret."""
        self._client_secret = client_secret

        async def get_token() -> TokenResponse:
            self._log_grant(GrantType.CLIENT_CREDENTIALS)
            oauth_parameters = self._create_oauth_parameters(GrantType.CLIENT_CREDENTIALS)
            oauth_parameters[OAuth2Parameter.CLIENT_SECRET] = client_secret
            return await self._create_oauth2_client().get_token(oauth_parameters)

        return await self._get_token_with_cache_wrapper(None, get_token)

    async def get_token_with_certificate(self, certificate: str | bytes, thumbprint: str) -> TokenResponse:
        """Client credentials grant authenticated with a certificate-signed assertion."""
        # Sign before touching the cache so a bad key fails fast
        assertion = SelfSignedJwt(
            self._call_context,
            self._authentication_context.authority,
            self._client_id,
        ).create(certificate, thumbprint)

        async def get_token() -> TokenResponse:
            self._log_grant(GrantType.CLIENT_CREDENTIALS)
            oauth_parameters = self._create_oauth_parameters(GrantType.CLIENT_CREDENTIALS)
            oauth_parameters[OAuth2Parameter.CLIENT_ASSERTION_TYPE] = CLIENT_ASSERTION_TYPE_JWT_BEARER
            oauth_parameters[OAuth2Parameter.CLIENT_ASSERTION] = assertion
            return await self._create_oauth2_client().get_token(oauth_parameters)

        return await self._get_token_with_cache_wrapper(None, get_token)

    async def get_token_with_authorization_code(
        self, authorization_code: str, client_secret: str | None = None
    ) -> TokenResponse:
        """Authorization code grant. The user is unknown up front, so the cache is not consulted."""
        self._client_secret = client_secret
        self._log_grant(GrantType.AUTHORIZATION_CODE)
        oauth_parameters = self._create_oauth_parameters(GrantType.AUTHORIZATION_CODE)
        oauth_parameters[OAuth2Parameter.CODE] = authorization_code
        if self._redirect_uri:
            oauth_parameters[OAuth2Parameter.REDIRECT_URI] = self._redirect_uri
        if client_secret:
            oauth_parameters[OAuth2Parameter.CLIENT_SECRET] = client_secret

        token_response = await self._create_oauth2_client().get_token(oauth_parameters)
        await self._add_to_cache(token_response)
        return token_response

    async def get_token_with_refresh_token(
        self, refresh_token: str, client_secret: str | None = None
    ) -> TokenResponse:
        """Redeem a refresh token the caller already holds."""
        self._client_secret = client_secret
        self._log_grant(GrantType.REFRESH_TOKEN)
        oauth_parameters = self._create_oauth_parameters(GrantType.REFRESH_TOKEN)
        oauth_parameters[OAuth2Parameter.REFRESH_TOKEN] = refresh_token
        if client_secret:
            oauth_parameters[OAuth2Parameter.CLIENT_SECRET] = client_secret

        token_response = await self._create_oauth2_client().get_token(oauth_parameters)
        await self._add_to_cache(token_response)
        return token_response

    # =========================================================================
    # Device code
    # =========================================================================

    async def get_user_code_info(self, language: str | None = None) -> UserCodeInfo:
        """Request a device code and a user code to show the user."""
        oauth_parameters = {OAuth2Parameter.CLIENT_ID: self._client_id}
        if self._resource:
            oauth_parameters[OAuth2Parameter.RESOURCE] = self._resource
        if language:
            oauth_parameters[OAuth2Parameter.LANGUAGE] = language
        return await self._create_oauth2_client().get_user_code_info(oauth_parameters)

    async def get_token_with_device_code(
        self,
        user_code_info: UserCodeInfo,
        pending: PendingDeviceCodeRequest,
    ) -> TokenResponse:
        """Poll the token endpoint until the user signs in.

        Args:
            user_code_info: Validated device code, interval and expiry.
            pending: Registered request carrying the cancellation signal.

        Returns:
            TokenResponse, persisted to the cache.

        Raises:
            PollingCancelledError: Cancellation was requested.
            PollingExpiredError: The device code expired first.
            OAuthServerError: The server returned a terminal error.
        """
        assert user_code_info.device_code is not None
        assert user_code_info.interval is not None
        assert user_code_info.expires_in is not None

        oauth_parameters = self._create_oauth_parameters(GrantType.DEVICE_CODE)
        oauth_parameters[OAuth2Parameter.CODE] = user_code_info.device_code
        client = self._create_oauth2_client()

        interval = user_code_info.interval
        elapsed = 0
        pending.state = DeviceCodeState.POLLING

        try:
            while True:
                if pending.cancelled:
                    raise PollingCancelledError()

                elapsed += interval
                if elapsed > user_code_info.expires_in:
                    raise PollingExpiredError(
                        f"Device code expired after {user_code_info.expires_in} seconds "
                        f"and {pending.poll_count} polling requests."
                    )

                if await pending.wait(interval):
                    raise PollingCancelledError()

                pending.poll_count += 1
                try:
                    token_response = await client.get_token(oauth_parameters)
                except OAuthServerError as e:
                    if pending.cancelled:
                        raise PollingCancelledError() from e
                    if e.error == OAuth2Error.AUTHORIZATION_PENDING:
                        self._log_poll(pending, e.error, interval)
                        continue
                    if e.error == OAuth2Error.SLOW_DOWN:
                        interval += DEVICE_CODE_SLOW_DOWN_INCREMENT_SECONDS
                        self._log_poll(pending, e.error, interval)
                        continue
                    raise
                except DirAuthError as e:
                    if pending.cancelled:
                        raise PollingCancelledError() from e
                    raise

                # A response that lands after cancellation is dropped
                if pending.cancelled:
                    raise PollingCancelledError()

                await self._add_to_cache(token_response)
                pending.state = DeviceCodeState.SUCCEEDED
                _logger.info(
                    {
                        "event": "device_code_succeeded",
                        "message": "User completed device code sign-in",
                        "correlation_id": self._call_context.correlation_id,
                        "poll_count": pending.poll_count,
                    }
                )
                return token_response

        except PollingCancelledError:
            pending.state = DeviceCodeState.CANCELLED
            _logger.info(
                {
                    "event": "device_code_cancelled",
                    "message": "Device code polling cancelled",
                    "correlation_id": self._call_context.correlation_id,
                    "poll_count": pending.poll_count,
                }
            )
            raise
        except PollingExpiredError:
            pending.state = DeviceCodeState.EXPIRED
            _logger.info(
                {
                    "event": "device_code_expired",
                    "message": "Device code expired before sign-in completed",
                    "correlation_id": self._call_context.correlation_id,
                    "poll_count": pending.poll_count,
                }
            )
            raise
        except DirAuthError as e:
            pending.state = DeviceCodeState.FAILED
            _logger.warning(
                {
                    "event": "device_code_failed",
                    "message": "Device code polling ended with an error",
                    "correlation_id": self._call_context.correlation_id,
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                }
            )
            raise

    def _log_poll(self, pending: PendingDeviceCodeRequest, error: str, interval: int) -> None:
        _logger.debug(
            {
                "event": "device_code_poll_pending",
                "message": f"Server answered {error}, polling again in {interval} seconds",
                "correlation_id": self._call_context.correlation_id,
                "poll_count": pending.poll_count,
            }
        )
