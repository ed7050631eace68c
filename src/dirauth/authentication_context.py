"""Public entry point for acquiring tokens.

An AuthenticationContext binds an authority to a token cache and an HTTP
client. Each acquire_* call validates its arguments, creates a fresh
CallContext (correlation id) and runs one TokenRequest.

Usage:
    async with AuthenticationContext("https://login.example.com/contoso") as ctx:
        token = await ctx.acquire_token_with_client_credentials(
            "https://graph.example.com", client_id, client_secret
        )
        print(token.access_token)
"""

from __future__ import annotations

__all__ = ["AuthenticationContext"]

import asyncio
import logging
import uuid
from typing import TYPE_CHECKING

import httpx

from dirauth.authority import Authority
from dirauth.cache.memory_cache import get_default_cache, get_default_cache_lock
from dirauth.call_context import CallContext
from dirauth.config import ClientOptions
from dirauth.constants import APP_NAME, NO_PENDING_DEVICE_CODE_REQUEST_MESSAGE
from dirauth.exceptions import ArgumentError
from dirauth.models import TokenResponse, UserCodeInfo
from dirauth.token_request import PendingDeviceCodeRequest, TokenRequest
from dirauth.utils.http import create_http_client
from dirauth.utils.logging.logging_context import set_correlation_id
from dirauth.utils.validation import validate_string_param

if TYPE_CHECKING:
    from dirauth.cache.memory_cache import TokenCache

_logger = logging.getLogger(f"{APP_NAME}.authentication_context")

# Sentinel distinguishing "no cache argument" from an explicit None (caching disabled)
_DEFAULT_CACHE = object()


class AuthenticationContext:
    """Token acquisition against one authority.

    The cache defaults to the process-wide MemoryCache from
    get_default_cache(); pass cache=None to disable caching or any
    TokenCache implementation to use your own. Cache plugins need not be
    hashable: the context holds the lock that serializes access to them.
    """

    def __init__(
        self,
        authority: str | Authority,
        cache: "TokenCache | None | object" = _DEFAULT_CACHE,
        options: ClientOptions | None = None,
        http_client: httpx.AsyncClient | None = None,
        policy: str | None = None,
    ) -> None:
        """Initialize the context.

        Args:
            authority: Authority URL or a prepared Authority.
            cache: Token cache. Defaults to the shared default cache.
            options: HTTP and tracing options.
            http_client: Optional AsyncClient (for testing or connection reuse).
            policy: B2C-style policy. Stamped on every cache entry this
                context writes and matched strictly on every lookup.

        Raises:
            ArgumentError: If the authority URL is invalid.
        """
        self._authority = authority if isinstance(authority, Authority) else Authority(authority)
        if cache is _DEFAULT_CACHE:
            self._cache: "TokenCache | None" = get_default_cache()
            self._cache_lock = get_default_cache_lock()
        else:
            self._cache = cache  # type: ignore[assignment]
            self._cache_lock = asyncio.Lock()
        self._options = options or ClientOptions()
        self._policy = policy
        self._client = http_client or create_http_client(self._options)
        self._owns_client = http_client is None
        self._pending_device_code_requests: dict[str, PendingDeviceCodeRequest] = {}

    async def __aenter__(self) -> "AuthenticationContext":
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close HTTP client if we own it."""
        if self._owns_client:
            await self._client.aclose()

    @property
    def authority(self) -> Authority:
        return self._authority

    @property
    def cache(self) -> "TokenCache | None":
        return self._cache

    @property
    def cache_lock(self) -> asyncio.Lock:
        return self._cache_lock

    @property
    def policy(self) -> str | None:
        return self._policy

    @property
    def http_client(self) -> httpx.AsyncClient:
        return self._client

    @property
    def options(self) -> ClientOptions:
        return self._options

    def _create_call_context(self) -> CallContext:
        correlation_id = self._options.correlation_id or str(uuid.uuid4())
        set_correlation_id(correlation_id)
        return CallContext(correlation_id=correlation_id, options=self._options)

    def _create_token_request(
        self, resource: str | None, client_id: str, redirect_uri: str | None = None
    ) -> TokenRequest:
        call_context = self._create_call_context()
        return TokenRequest(
            call_context, self, client_id, resource, redirect_uri=redirect_uri, policy=self._policy
        )

    # =========================================================================
    # Cache
    # =========================================================================

    async def acquire_token(self, resource: str, user_id: str | None, client_id: str) -> TokenResponse:
        """Get a token from the cache, refreshing it if it has expired.

        Args:
            resource: Resource the token is for.
            user_id: User whose token to return. None matches any user.
            client_id: Application (client) id.

        Raises:
            CacheMissError: If the cache holds no usable token.
            CacheAmbiguousMatchError: If more than one token matches.
        """
        validate_string_param(resource, "resource")
        validate_string_param(client_id, "client_id")
        return await self._create_token_request(resource, client_id).get_token_from_cache_with_refresh(user_id)

    # =========================================================================
    # Grants
    # =========================================================================

    async def acquire_token_with_username_password(
        self, resource: str, username: str, password: str, client_id: str
    ) -> TokenResponse:
        """Resource owner password flow, including federated accounts."""
        validate_string_param(resource, "resource")
        validate_string_param(username, "username")
        validate_string_param(password, "password")
        validate_string_param(client_id, "client_id")
        return await self._create_token_request(resource, client_id).get_token_with_username_password(
            username, password
        )

    async def acquire_token_with_client_credentials(
        self, resource: str, client_id: str, client_secret: str
    ) -> TokenResponse:
        """App-only token authenticated with a client secret."""
        validate_string_param(resource, "resource")
        validate_string_param(client_id, "client_id")
        validate_string_param(client_secret, "client_secret")
        return await self._create_token_request(resource, client_id).get_token_with_client_credentials(client_secret)

    async def acquire_token_with_client_certificate(
        self, resource: str, client_id: str, certificate: str | bytes, thumbprint: str
    ) -> TokenResponse:
        """App-only token authenticated with a certificate-signed assertion.

        Args:
            resource: Resource the token is for.
            client_id: Application (client) id.
            certificate: PEM-encoded RSA private key.
            thumbprint: SHA-1 thumbprint of the registered certificate.
        """
        validate_string_param(resource, "resource")
        validate_string_param(client_id, "client_id")
        validate_string_param(thumbprint, "thumbprint")
        if not certificate:
            raise ArgumentError("The certificate parameter is required.")
        return await self._create_token_request(resource, client_id).get_token_with_certificate(
            certificate, thumbprint
        )

    async def acquire_token_with_authorization_code(
        self,
        authorization_code: str,
        redirect_uri: str,
        resource: str,
        client_id: str,
        client_secret: str | None = None,
    ) -> TokenResponse:
        """Redeem an authorization code obtained by the caller."""
        validate_string_param(authorization_code, "authorization_code")
        validate_string_param(redirect_uri, "redirect_uri")
        validate_string_param(resource, "resource")
        validate_string_param(client_id, "client_id")
        token_request = self._create_token_request(resource, client_id, redirect_uri=redirect_uri)
        return await token_request.get_token_with_authorization_code(authorization_code, client_secret)

    async def acquire_token_with_refresh_token(
        self,
        refresh_token: str,
        client_id: str,
        client_secret: str | None = None,
        resource: str | None = None,
    ) -> TokenResponse:
        """Redeem a refresh token the caller already holds."""
        validate_string_param(refresh_token, "refresh_token")
        validate_string_param(client_id, "client_id")
        return await self._create_token_request(resource, client_id).get_token_with_refresh_token(
            refresh_token, client_secret
        )

    # =========================================================================
    # Device code
    # =========================================================================

    async def acquire_user_code(self, resource: str, client_id: str, language: str | None = None) -> UserCodeInfo:
        """Start the device code flow.

        Args:
            resource: Resource the token is for.
            client_id: Application (client) id.
            language: Optional UI language for the returned message.

        Returns:
            UserCodeInfo whose message tells the user where to sign in.
        """
        validate_string_param(resource, "resource")
        validate_string_param(client_id, "client_id")
        return await self._create_token_request(resource, client_id).get_user_code_info(language)

    async def acquire_token_with_device_code(
        self, resource: str, client_id: str, user_code_info: UserCodeInfo | None
    ) -> TokenResponse:
        """Poll until the user completes device code sign-in.

        Only one poll per device code may be pending; a second call for the
        same device code while the first is running is rejected.

        Args:
            resource: Resource the token is for.
            client_id: Application (client) id.
            user_code_info: Result of acquire_user_code().

        Returns:
            TokenResponse, persisted to the cache.

        Raises:
            ArgumentError: If user_code_info is incomplete or already polling.
            PollingCancelledError: If cancelled via
                cancel_request_to_get_token_with_device_code().
            PollingExpiredError: If the device code expires first.
        """
        validate_string_param(resource, "resource")
        validate_string_param(client_id, "client_id")
        self._validate_user_code_info(user_code_info)
        assert user_code_info is not None and user_code_info.device_code is not None

        device_code = user_code_info.device_code
        if device_code in self._pending_device_code_requests:
            raise ArgumentError("A device code request is already pending for this device_code")

        pending = PendingDeviceCodeRequest(device_code=device_code)
        self._pending_device_code_requests[device_code] = pending
        try:
            token_request = self._create_token_request(resource, client_id)
            return await token_request.get_token_with_device_code(user_code_info, pending)
        finally:
            self._pending_device_code_requests.pop(device_code, None)

    async def cancel_request_to_get_token_with_device_code(self, user_code_info: UserCodeInfo | None) -> None:
        """Cancel a pending acquire_token_with_device_code() call.

        The pending call raises PollingCancelledError and sends no further
        requests.

        Raises:
            ArgumentError: If user_code_info lacks a device_code or nothing
                is pending for it.
        """
        if user_code_info is None:
            raise ArgumentError("The user_code_info parameter is required")
        if not user_code_info.device_code:
            raise ArgumentError("The user_code_info is missing device_code")

        pending = self._pending_device_code_requests.get(user_code_info.device_code)
        if pending is None:
            raise ArgumentError(NO_PENDING_DEVICE_CODE_REQUEST_MESSAGE)

        _logger.info(
            {
                "event": "device_code_cancel_requested",
                "message": "Cancelling pending device code request",
                "poll_count": pending.poll_count,
            }
        )
        pending.cancel()

    @staticmethod
    def _validate_user_code_info(user_code_info: UserCodeInfo | None) -> None:
        if user_code_info is None:
            raise ArgumentError("The user_code_info parameter is required")
        if not user_code_info.device_code:
            raise ArgumentError("The user_code_info is missing device_code")
        if user_code_info.interval is None:
            raise ArgumentError("The user_code_info is missing interval")
        if user_code_info.expires_in is None:
            raise ArgumentError("The user_code_info is missing expires_in")
        if user_code_info.interval < 1:
            raise ArgumentError("invalid refresh interval")
