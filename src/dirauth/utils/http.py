"""HTTP helpers shared by the protocol clients."""

from __future__ import annotations

__all__ = [
    "client_headers",
    "create_http_client",
    "endpoint_host",
]

import platform
from urllib.parse import urlsplit

import httpx

from dirauth import __version__
from dirauth.call_context import CallContext
from dirauth.config import ClientOptions
from dirauth.constants import CLIENT_SKU


def create_http_client(options: ClientOptions) -> httpx.AsyncClient:
    """Create the AsyncClient used when the caller does not supply one.

    Args:
        options: HTTP options (timeout, TLS verification, proxy).

    Returns:
        A new AsyncClient. The caller owns it and must close it.
    """
    return httpx.AsyncClient(
        timeout=options.http_timeout_seconds,
        verify=options.verify_ssl,
        proxy=options.proxy,
    )


def client_headers(call_context: CallContext) -> dict[str, str]:
    """Client identification and correlation headers sent with every request."""
    return {
        "x-client-SKU": CLIENT_SKU,
        "x-client-Ver": __version__,
        "x-client-OS": platform.system(),
        "x-client-CPU": platform.machine(),
        "client-request-id": call_context.correlation_id,
        "return-client-request-id": "true",
        "Accept": "application/json",
    }


def endpoint_host(url: str) -> str:
    """Host part of an endpoint URL, for error messages."""
    return urlsplit(url).netloc or url
