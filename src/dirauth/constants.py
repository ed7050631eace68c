"""Application-wide constants for dirauth.

Constants that define protocol behavior and wire names.
For user-configurable settings per deployment, see config.py.
"""

__all__ = [
    # Application identity
    "APP_NAME",
    "CLIENT_SKU",
    # HTTP
    "DEFAULT_HTTP_TIMEOUT_SECONDS",
    "MIN_HTTP_TIMEOUT_SECONDS",
    "MAX_HTTP_TIMEOUT_SECONDS",
    # Token lifetimes
    "TOKEN_EXPIRATION_BUFFER_SECONDS",
    "DEFAULT_TOKEN_LIFETIME_SECONDS",
    "SELF_SIGNED_JWT_LIFETIME_SECONDS",
    "WSTRUST_TIMESTAMP_WINDOW_SECONDS",
    # Device code flow
    "DEVICE_CODE_SLOW_DOWN_INCREMENT_SECONDS",
    # Authority endpoints
    "TOKEN_ENDPOINT_PATH",
    "DEVICE_CODE_ENDPOINT_PATH",
    "USER_REALM_PATH_TEMPLATE",
    "USER_REALM_API_VERSION",
    "ADFS_PATH_SEGMENT",
    # OAuth2 wire names
    "GrantType",
    "OAuth2Parameter",
    "OAuth2ResponseField",
    "OAuth2Error",
    "CLIENT_ASSERTION_TYPE_JWT_BEARER",
    # Identity token claims
    "ID_TOKEN_CLAIM_MAP",
    # Error messages
    "AMBIGUOUS_CACHE_MATCH_MESSAGE",
    "CACHE_ENTRY_NOT_FOUND_MESSAGE",
    "POLLING_CANCELLED_MESSAGE",
    "NO_PENDING_DEVICE_CODE_REQUEST_MESSAGE",
]

# ============================================================================
# Application Identity
# ============================================================================

# Application name used for logger names and client headers
APP_NAME: str = "dirauth"

# Value of the x-client-SKU header sent with every request
CLIENT_SKU: str = "Python"

# ============================================================================
# HTTP
# ============================================================================

DEFAULT_HTTP_TIMEOUT_SECONDS: int = 30
MIN_HTTP_TIMEOUT_SECONDS: int = 1
MAX_HTTP_TIMEOUT_SECONDS: int = 300

# ============================================================================
# Token Lifetimes
# ============================================================================

# Access tokens this close to expiry are treated as expired by cache lookups
TOKEN_EXPIRATION_BUFFER_SECONDS: int = 300

# Used when the server reports neither expires_in nor expires_on
DEFAULT_TOKEN_LIFETIME_SECONDS: int = 3600

# Lifetime of client assertions signed with a certificate (10 minutes)
SELF_SIGNED_JWT_LIFETIME_SECONDS: int = 600

# Width of the wsu:Timestamp window in WS-Trust requests (10 minutes)
WSTRUST_TIMESTAMP_WINDOW_SECONDS: int = 600

# ============================================================================
# Device Code Flow
# ============================================================================

# Added to the polling interval each time the server answers slow_down
DEVICE_CODE_SLOW_DOWN_INCREMENT_SECONDS: int = 5

# ============================================================================
# Authority Endpoints
# ============================================================================

TOKEN_ENDPOINT_PATH: str = "/oauth2/token"
DEVICE_CODE_ENDPOINT_PATH: str = "/oauth2/devicecode"
USER_REALM_PATH_TEMPLATE: str = "/common/UserRealm/{username}"
USER_REALM_API_VERSION: str = "1.0"

# Authorities whose first path segment is this are ADFS servers
ADFS_PATH_SEGMENT: str = "adfs"

# ============================================================================
# OAuth2 Wire Names
# ============================================================================


class GrantType:
    """Values of the grant_type form parameter."""

    CLIENT_CREDENTIALS = "client_credentials"
    PASSWORD = "password"
    AUTHORIZATION_CODE = "authorization_code"
    REFRESH_TOKEN = "refresh_token"
    DEVICE_CODE = "device_code"
    JWT_BEARER = "urn:ietf:params:oauth:grant-type:jwt-bearer"
    SAML1 = "urn:ietf:params:oauth:grant-type:saml1_1-bearer"
    SAML2 = "urn:ietf:params:oauth:grant-type:saml2-bearer"


class OAuth2Parameter:
    """Form parameter names sent to the token and device code endpoints."""

    GRANT_TYPE = "grant_type"
    CLIENT_ID = "client_id"
    CLIENT_SECRET = "client_secret"
    CLIENT_ASSERTION = "client_assertion"
    CLIENT_ASSERTION_TYPE = "client_assertion_type"
    RESOURCE = "resource"
    CODE = "code"
    REDIRECT_URI = "redirect_uri"
    REFRESH_TOKEN = "refresh_token"
    USERNAME = "username"
    PASSWORD = "password"
    ASSERTION = "assertion"
    SCOPE = "scope"
    LANGUAGE = "mkt"


class OAuth2ResponseField:
    """Field names in token and device code endpoint responses."""

    TOKEN_TYPE = "token_type"
    ACCESS_TOKEN = "access_token"
    REFRESH_TOKEN = "refresh_token"
    EXPIRES_IN = "expires_in"
    EXPIRES_ON = "expires_on"
    CREATED_ON = "created_on"
    RESOURCE = "resource"
    ID_TOKEN = "id_token"
    ERROR = "error"
    ERROR_DESCRIPTION = "error_description"
    DEVICE_CODE = "device_code"
    USER_CODE = "user_code"
    VERIFICATION_URL = "verification_url"
    INTERVAL = "interval"
    MESSAGE = "message"


class OAuth2Error:
    """Error codes with special handling during device code polling."""

    AUTHORIZATION_PENDING = "authorization_pending"
    SLOW_DOWN = "slow_down"


CLIENT_ASSERTION_TYPE_JWT_BEARER: str = "urn:ietf:params:oauth:client-assertion-type:jwt-bearer"

# ============================================================================
# Identity Token Claims
# ============================================================================

# Identity token claim name -> IdentityClaims field name
ID_TOKEN_CLAIM_MAP: dict[str, str] = {
    "tid": "tenant_id",
    "given_name": "given_name",
    "family_name": "family_name",
    "idp": "identity_provider",
    "oid": "object_id",
}

# ============================================================================
# Error Messages
# ============================================================================

AMBIGUOUS_CACHE_MATCH_MESSAGE: str = "More than one token matches the criteria. The result is ambiguous."
CACHE_ENTRY_NOT_FOUND_MESSAGE: str = "Entry not found in cache."
POLLING_CANCELLED_MESSAGE: str = "Polling_Request_Cancelled"
NO_PENDING_DEVICE_CODE_REQUEST_MESSAGE: str = "No acquireTokenWithDeviceCodeRequest existed to be cancelled"
