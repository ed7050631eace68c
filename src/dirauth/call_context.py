"""Per-call context threaded through every component of a token operation."""

from __future__ import annotations

__all__ = ["CallContext"]

import uuid
from dataclasses import dataclass, field

from dirauth.config import ClientOptions


@dataclass(frozen=True)
class CallContext:
    """Correlation id and options for one AuthenticationContext call.

    Attributes:
        correlation_id: Sent as client-request-id and stamped on log records.
        options: HTTP and tracing options.
    """

    correlation_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    options: ClientOptions = field(default_factory=ClientOptions)
