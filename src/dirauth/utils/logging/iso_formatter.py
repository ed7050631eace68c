"""Log formatting utilities.

Provides ISO 8601 JSONL formatting for log files and a compact formatter for
interactive console output. Both understand the structured dict messages
used throughout dirauth.
"""

from __future__ import annotations

__all__ = ["ConsoleFormatter", "ISO8601Formatter"]

import json
import logging
from datetime import datetime, timezone
from typing import Any

from dirauth.utils.logging.logging_context import get_correlation_id


def _record_data(record: logging.LogRecord) -> dict[str, Any]:
    """Extract structured data from a log record's message."""
    # Handle dict messages (structured logging)
    if isinstance(record.msg, dict):
        return dict(record.msg)
    # Handle JSON string messages
    if isinstance(record.msg, str) and record.msg.startswith("{"):
        try:
            data = json.loads(record.msg)
        except json.JSONDecodeError:
            return {"message": record.msg}
        if isinstance(data, dict):
            return data
    return {"message": record.getMessage()}


class ISO8601Formatter(logging.Formatter):
    """Custom formatter with ISO 8601 timestamps (UTC) for JSONL output.

    Format: YYYY-MM-DDTHH:MM:SS.sssZ
    Example: 2025-12-04T10:48:37.123Z

    Records without a correlation_id field get the one from the current
    logging context, if any.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSONL with ISO 8601 timestamp.

        Args:
            record: The log record to format

        Returns:
            str: JSON-formatted log entry with timestamp
        """
        timestamp = (
            datetime.fromtimestamp(record.created, tz=timezone.utc)
            .isoformat(timespec="milliseconds")
            .replace("+00:00", "Z")
        )

        log_data = _record_data(record)
        if "correlation_id" not in log_data:
            correlation_id = get_correlation_id()
            if correlation_id:
                log_data["correlation_id"] = correlation_id

        # Add timestamp and level as first fields
        log_entry = {"time": timestamp, "level": record.levelname, **log_data}
        return json.dumps(log_entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """Human-readable single-line formatter for stderr.

    Example: WARNING dirauth.oauth2_client id_token_decode_failed: Unable to decode id_token
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = _record_data(record)
        event = log_data.get("event")
        message = log_data.get("message", "")
        prefix = f"{record.levelname} {record.name}"
        if event:
            return f"{prefix} {event}: {message}"
        return f"{prefix} {message}"
