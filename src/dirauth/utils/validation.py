"""Validation utilities for dirauth.

Provides reusable checks for caller-supplied arguments.
"""

from __future__ import annotations

__all__ = [
    "SHA1_HEX_LENGTH",
    "normalize_thumbprint",
    "validate_string_param",
]

from dirauth.exceptions import ArgumentError

# SHA-1 hash is 160 bits = 20 bytes = 40 hex characters
SHA1_HEX_LENGTH: int = 40

# Valid hexadecimal characters (lowercase)
_HEX_CHARS: frozenset[str] = frozenset("0123456789abcdef")


def validate_string_param(value: object, name: str) -> str:
    """Require a non-empty string argument.

    Args:
        value: The argument value.
        name: Parameter name used in the error message.

    Returns:
        The value, unchanged.

    Raises:
        ArgumentError: If value is missing, empty, or not a string.
    """
    if not value or not isinstance(value, str):
        raise ArgumentError(f"The {name} parameter is required.")
    return value


def normalize_thumbprint(value: str) -> str:
    """Validate a SHA-1 certificate thumbprint.

    Accepts upper or lower case hex, optionally separated by colons
    (as printed by openssl).

    Args:
        value: The thumbprint to validate.

    Returns:
        Lowercase 40-character hex string.

    Raises:
        ArgumentError: If value is not a SHA-1 hex thumbprint.

    Example:
        >>> normalize_thumbprint("C1:5D:EA:86:56:AD:DF:67:BE:80:31:D8:5E:BD:DC:5A:D6:C4:36:E1")
        'c15dea8656addf67be8031d85ebddc5ad6c436e1'
    """
    normalized = (value or "").strip().replace(":", "").lower()

    if len(normalized) != SHA1_HEX_LENGTH or not all(c in _HEX_CHARS for c in normalized):
        raise ArgumentError("The thumbprint does not match a known format")

    return normalized
