"""Client assertions signed with a certificate's private key.

Certificate-based client authentication sends a short-lived JWT signed
with RS256 instead of a client secret. The x5t header carries the
certificate's SHA-1 thumbprint so the authority can pick the public key.
"""

from __future__ import annotations

__all__ = [
    "SelfSignedJwt",
    "compute_thumbprint",
]

import base64
import logging
import time
import uuid
from typing import TYPE_CHECKING

import jwt
from cryptography import x509
from cryptography.hazmat.primitives import hashes

from dirauth.constants import APP_NAME, SELF_SIGNED_JWT_LIFETIME_SECONDS
from dirauth.exceptions import ArgumentError
from dirauth.utils.validation import normalize_thumbprint, validate_string_param

if TYPE_CHECKING:
    from dirauth.authority import Authority
    from dirauth.call_context import CallContext

_logger = logging.getLogger(f"{APP_NAME}.self_signed_jwt")


def compute_thumbprint(certificate_pem: str | bytes) -> str:
    """SHA-1 thumbprint of a PEM certificate as lowercase hex.

    Args:
        certificate_pem: PEM-encoded X.509 certificate.

    Returns:
        40-character lowercase hex thumbprint.

    Raises:
        ArgumentError: If the certificate cannot be loaded.
    """
    if isinstance(certificate_pem, str):
        certificate_pem = certificate_pem.encode("utf-8")
    try:
        cert = x509.load_pem_x509_certificate(certificate_pem)
    except ValueError as e:
        raise ArgumentError(f"The certificate could not be loaded: {e}") from e
    return cert.fingerprint(hashes.SHA1()).hex()


class SelfSignedJwt:
    """Builds client assertions for one client and authority.

    Usage:
        assertion = SelfSignedJwt(call_context, authority, client_id).create(
            private_key_pem, thumbprint
        )
    """

    def __init__(self, call_context: "CallContext", authority: "Authority", client_id: str) -> None:
        self._call_context = call_context
        self._token_endpoint = authority.token_endpoint
        self._client_id = client_id

    def create(self, certificate: str | bytes, thumbprint: str) -> str:
        """Create and sign a new client assertion.

        Every call uses a fresh jti, so two assertions are never identical.

        Args:
            certificate: PEM-encoded RSA private key.
            thumbprint: SHA-1 thumbprint of the matching certificate (hex,
                optionally colon separated).

        Returns:
            Encoded JWT.

        Raises:
            ArgumentError: If the thumbprint is malformed or the key unusable.
        """
        if not certificate:
            raise ArgumentError("The certificate parameter is required.")
        validate_string_param(thumbprint, "thumbprint")

        x5t = base64.urlsafe_b64encode(bytes.fromhex(normalize_thumbprint(thumbprint))).decode("ascii").rstrip("=")

        now = int(time.time())
        payload = {
            "aud": self._token_endpoint,
            "iss": self._client_id,
            "sub": self._client_id,
            "nbf": now,
            "exp": now + SELF_SIGNED_JWT_LIFETIME_SECONDS,
            "jti": str(uuid.uuid4()),
        }

        try:
            assertion = jwt.encode(payload, certificate, algorithm="RS256", headers={"x5t": x5t})
        except (ValueError, TypeError, jwt.PyJWTError) as e:
            raise ArgumentError(f"Failed to sign JWT. This is most likely due to an invalid certificate: {e}") from e

        _logger.debug(
            {
                "event": "client_assertion_created",
                "message": "Created self signed client assertion",
                "correlation_id": self._call_context.correlation_id,
                "jti": payload["jti"],
            }
        )
        return assertion
