"""OAuth2 protocol clients.

This package provides:
- OAuth2Client: token and device code endpoint exchanges
- SelfSignedJwt: certificate-signed client assertions
"""

from dirauth.oauth.oauth2_client import OAuth2Client, parse_id_token, parse_token_response
from dirauth.oauth.self_signed_jwt import SelfSignedJwt, compute_thumbprint

__all__ = [
    # Token endpoint
    "OAuth2Client",
    "parse_id_token",
    "parse_token_response",
    # Client assertions
    "SelfSignedJwt",
    "compute_thumbprint",
]
