"""Shared fixtures for dirauth tests."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from datetime import datetime, timedelta, timezone
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import httpx
import jwt
import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from dirauth.authority import Authority
from dirauth.cache.memory_cache import reset_default_cache
from dirauth.call_context import CallContext
from dirauth.models import IdentityClaims, TokenResponse
from dirauth.utils.logging.logging_context import clear_correlation_id

AUTHORITY_URL = "https://login.example.com/contoso.onmicrosoft.com"
CLIENT_ID = "11111111-2222-3333-4444-555555555555"
RESOURCE = "https://graph.example.com"
USER_ID = "alice@contoso.onmicrosoft.com"

ID_TOKEN_SECRET = "id-token-signing-secret-for-tests-only"


# ============================================================================
# Isolation
# ============================================================================


@pytest.fixture(autouse=True)
def _isolate_process_state() -> Iterator[None]:
    """Fresh default cache and correlation id for every test."""
    reset_default_cache()
    clear_correlation_id()
    yield
    reset_default_cache()
    clear_correlation_id()


# ============================================================================
# Identity
# ============================================================================


@pytest.fixture
def authority() -> Authority:
    """Authority for the test tenant."""
    return Authority(AUTHORITY_URL)


@pytest.fixture
def call_context() -> CallContext:
    """Call context with a fixed correlation id."""
    return CallContext(correlation_id="test-correlation-id")


@pytest.fixture
def make_id_token() -> Callable[..., str]:
    """Factory for encoded identity tokens."""

    def _make(**claims: Any) -> str:
        payload = {
            "aud": CLIENT_ID,
            "iss": "https://sts.example.com/contoso/",
            "tid": "tenant-id-123",
            "oid": "object-id-456",
            "upn": USER_ID,
            "given_name": "Alice",
            "family_name": "Smith",
        }
        payload.update(claims)
        payload = {key: value for key, value in payload.items() if value is not None}
        return jwt.encode(payload, ID_TOKEN_SECRET, algorithm="HS256")

    return _make


@pytest.fixture
def make_token_json(make_id_token: Callable[..., str]) -> Callable[..., dict[str, Any]]:
    """Factory for token endpoint JSON bodies.

    Pass a field as None to leave it out of the body.
    """

    def _make(**fields: Any) -> dict[str, Any]:
        body: dict[str, Any] = {
            "token_type": "Bearer",
            "access_token": "access-token",
            "refresh_token": "refresh-token",
            "expires_in": "3600",
            "resource": RESOURCE,
            "id_token": make_id_token(),
        }
        body.update(fields)
        return {key: value for key, value in body.items() if value is not None}

    return _make


@pytest.fixture
def make_token_response() -> Callable[..., TokenResponse]:
    """Factory for normalized token responses belonging to USER_ID."""

    def _make(**fields: Any) -> TokenResponse:
        now = datetime.now(timezone.utc)
        data: dict[str, Any] = {
            "token_type": "Bearer",
            "access_token": "access-token",
            "refresh_token": "refresh-token",
            "expires_in": 3600,
            "expires_on": now + timedelta(hours=1),
            "created_on": now,
            "resource": RESOURCE,
            "id_token": IdentityClaims(user_id=USER_ID, is_user_id_displayable=True, tenant_id="tenant-id-123"),
        }
        data.update(fields)
        return TokenResponse(**data)

    return _make


# ============================================================================
# HTTP
# ============================================================================


@pytest.fixture
def mock_http_client() -> MagicMock:
    """AsyncClient mock; tests set post/get side effects."""
    client = MagicMock(spec=httpx.AsyncClient)
    client.post = AsyncMock()
    client.get = AsyncMock()
    client.aclose = AsyncMock()
    return client


# ============================================================================
# Certificates
# ============================================================================


@pytest.fixture(scope="session")
def rsa_private_key() -> rsa.RSAPrivateKey:
    """RSA key used for client assertions."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def private_key_pem(rsa_private_key: rsa.RSAPrivateKey) -> str:
    """PEM encoding of the test private key."""
    return rsa_private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")


@pytest.fixture(scope="session")
def certificate(rsa_private_key: rsa.RSAPrivateKey) -> x509.Certificate:
    """Self-signed certificate for the test private key."""
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "dirauth-test")])
    now = datetime.now(timezone.utc)
    return (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(rsa_private_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=30))
        .sign(rsa_private_key, hashes.SHA256())
    )


@pytest.fixture(scope="session")
def thumbprint(certificate: x509.Certificate) -> str:
    """SHA-1 thumbprint of the test certificate."""
    return certificate.fingerprint(hashes.SHA1()).hex()
