"""Custom exceptions for dirauth.

This module contains all custom exceptions used throughout the package.
Every exception derives from DirAuthError so callers can catch the whole
family at once.

Caller Errors (fix the call, do not retry):
    - ArgumentError: Missing or malformed caller input
    - ConfigurationError: Config file missing or invalid

Cache Outcomes:
    - CacheAmbiguousMatchError: More than one cache entry matches a query
    - CacheMissError: Cache-only lookup found nothing usable

Protocol Failures:
    - ProtocolError: HTTP failure without a structured OAuth error body
    - OAuthServerError: Structured {error, error_description} body from the server
    - TokenResponseParseError / TokenResponseValidationError: Bad 2xx body
    - WSTrustError: SOAP fault or unusable RSTR

Device Code Polling:
    - PollingCancelledError: Caller cancelled the pending request
    - PollingExpiredError: Device code expired before the user signed in

Usage:
    from dirauth.exceptions import CacheMissError, OAuthServerError
"""

from __future__ import annotations

__all__ = [
    "ArgumentError",
    "CacheAmbiguousMatchError",
    "CacheError",
    "CacheMissError",
    "ConfigurationError",
    "DirAuthError",
    "OAuthServerError",
    "PollingCancelledError",
    "PollingError",
    "PollingExpiredError",
    "ProtocolError",
    "TokenResponseError",
    "TokenResponseParseError",
    "TokenResponseValidationError",
    "WSTrustError",
]

from typing import TYPE_CHECKING

from dirauth.constants import (
    AMBIGUOUS_CACHE_MATCH_MESSAGE,
    CACHE_ENTRY_NOT_FOUND_MESSAGE,
    POLLING_CANCELLED_MESSAGE,
)

if TYPE_CHECKING:
    from dirauth.models import ErrorResponse


class DirAuthError(Exception):
    """Base class for all dirauth errors."""

    pass


# =============================================================================
# Caller Errors
# =============================================================================


class ArgumentError(DirAuthError, ValueError):
    """Raised when a caller passes a missing or malformed argument.

    The message always names the offending parameter or field.
    """

    pass


class ConfigurationError(DirAuthError):
    """Raised when a configuration file is missing or invalid."""

    pass


# =============================================================================
# Cache Outcomes
# =============================================================================


class CacheError(DirAuthError):
    """Base class for cache lookup failures."""

    pass


class CacheAmbiguousMatchError(CacheError):
    """Raised when more than one cache entry matches a query.

    The cache never guesses; callers narrow the query (e.g. by user_id).
    """

    def __init__(self, message: str = AMBIGUOUS_CACHE_MATCH_MESSAGE) -> None:
        super().__init__(message)


class CacheMissError(CacheError):
    """Raised by cache-only lookups when no usable entry exists."""

    def __init__(self, message: str = CACHE_ENTRY_NOT_FOUND_MESSAGE) -> None:
        super().__init__(message)


# =============================================================================
# Protocol Failures
# =============================================================================


class ProtocolError(DirAuthError):
    """HTTP-level failure talking to an authority endpoint.

    Raised for transport errors and for non-2xx responses that carry no
    structured OAuth error body.

    Attributes:
        status_code: HTTP status code, or None for transport failures.
        host: Host of the endpoint that failed.
    """

    def __init__(self, message: str, *, status_code: int | None = None, host: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.host = host


class OAuthServerError(DirAuthError):
    """The server answered with a structured OAuth error body.

    Attributes:
        error: OAuth error code (e.g. "invalid_grant").
        error_description: Human-readable description from the server.
        status_code: HTTP status code of the response.
        error_response: The full error body, verbatim.
    """

    def __init__(self, error_response: "ErrorResponse", *, status_code: int | None = None) -> None:
        self.error_response = error_response
        self.error = error_response.error
        self.error_description = error_response.error_description
        self.status_code = status_code

        message = f"Get Token request returned http error: {status_code} and server response: {error_response.error}"
        if error_response.error_description:
            message = f"{message}: {error_response.error_description}"
        super().__init__(message)


class TokenResponseError(DirAuthError):
    """Base class for unusable 2xx token responses."""

    pass


class TokenResponseParseError(TokenResponseError):
    """Token response body is not valid JSON or has non-numeric number fields."""

    pass


class TokenResponseValidationError(TokenResponseError):
    """Token response is missing a required field."""

    pass


class WSTrustError(DirAuthError):
    """WS-Trust exchange failed.

    Attributes:
        fault_code: SOAP fault code when the server returned a fault.
        fault_message: SOAP fault reason text when the server returned a fault.
    """

    def __init__(self, message: str, *, fault_code: str | None = None, fault_message: str | None = None) -> None:
        super().__init__(message)
        self.fault_code = fault_code
        self.fault_message = fault_message


# =============================================================================
# Device Code Polling
# =============================================================================


class PollingError(DirAuthError):
    """Base class for terminal device code polling outcomes."""

    pass


class PollingCancelledError(PollingError):
    """Caller cancelled the pending device code request."""

    def __init__(self, message: str = POLLING_CANCELLED_MESSAGE) -> None:
        super().__init__(message)


class PollingExpiredError(PollingError):
    """Device code expired before the user completed sign-in."""

    pass
