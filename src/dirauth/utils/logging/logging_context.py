"""Context variables for request correlation.

Every AuthenticationContext call runs with a correlation id that is sent to
the server as client-request-id and stamped onto every log record. The id
lives in a ContextVar so concurrent tasks each see their own value.
"""

from __future__ import annotations

__all__ = [
    "clear_correlation_id",
    "correlation_id_var",
    "get_correlation_id",
    "set_correlation_id",
]

import logging
from contextvars import ContextVar, Token

from dirauth.constants import APP_NAME

_logger = logging.getLogger(f"{APP_NAME}.logging_context")

correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)
"""Correlation id for the token operation running in the current task."""


def get_correlation_id() -> str | None:
    """Get the current correlation id from context.

    Returns:
        str | None: Current correlation id if set, None otherwise.
    """
    return correlation_id_var.get()


def set_correlation_id(correlation_id: str | None) -> Token[str | None]:
    """Set the correlation id in context.

    Ids containing newline characters are rejected since they would corrupt
    the JSONL log format.

    Args:
        correlation_id: Correlation id to set, or None to clear it.

    Returns:
        Token that can be passed to ContextVar.reset().
    """
    if correlation_id and ("\n" in correlation_id or "\r" in correlation_id):
        _logger.warning(
            {
                "event": "invalid_correlation_id",
                "correlation_id": repr(correlation_id),
                "message": "Rejecting correlation id containing newline characters",
            }
        )
        return correlation_id_var.set(None)

    return correlation_id_var.set(correlation_id or None)


def clear_correlation_id() -> None:
    """Clear the correlation id. Useful in tests."""
    correlation_id_var.set(None)
