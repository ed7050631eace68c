"""Logger setup utilities.

Provides two setup functions:
- setup_jsonl_logger: Writes JSONL with ISO 8601 timestamps to a file
- setup_console_logging: Attaches a human-readable handler to stderr

Both attach to the "dirauth" logger hierarchy so every module logger
(dirauth.cache_driver, dirauth.oauth2_client, ...) is covered.
"""

from __future__ import annotations

__all__ = [
    "setup_console_logging",
    "setup_jsonl_logger",
]

import logging
import sys
from pathlib import Path

from dirauth.constants import APP_NAME
from dirauth.utils.logging.iso_formatter import ConsoleFormatter, ISO8601Formatter


def _ensure_secure_log_directory(log_file: Path) -> None:
    """Create log directory with secure permissions.

    Args:
        log_file: Path to the log file (parent directory will be created).

    Raises:
        PermissionError: If unable to create log directory due to permissions.
        OSError: If directory creation fails for other reasons.
    """
    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        # Set owner-only permissions (0o700) - skip on Windows
        if sys.platform != "win32":
            try:
                log_file.parent.chmod(0o700)
            except OSError:
                pass  # Permission changes might fail on some systems
    except PermissionError as e:
        raise PermissionError(f"Cannot create log directory {log_file.parent}: {e}") from e
    except OSError as e:
        raise OSError(f"Failed to create log directory {log_file.parent}: {e}") from e


def _reset_handlers(logger: logging.Logger) -> None:
    # Close and remove any existing handlers to avoid duplicates and resource leaks
    for handler in logger.handlers:
        handler.close()
    logger.handlers.clear()


def setup_jsonl_logger(
    log_file: Path,
    logger_name: str = APP_NAME,
    log_level: int = logging.INFO,
) -> logging.Logger:
    """Set up a logger that writes JSONL with ISO 8601 timestamps.

    Creates log directory if it doesn't exist with secure permissions (owner-only: 700).

    Args:
        log_file: Path to the log file
        logger_name: Name for the logger (default: the package root logger)
        log_level: Logging level (default: INFO)

    Returns:
        logging.Logger: Configured logger instance

    Raises:
        PermissionError: If unable to create log directory due to permissions
        OSError: If directory creation fails for other reasons
    """
    _ensure_secure_log_directory(log_file)

    logger = logging.getLogger(logger_name)
    logger.setLevel(log_level)
    logger.propagate = False  # Don't propagate to root logger
    _reset_handlers(logger)

    file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
    file_handler.setLevel(log_level)
    file_handler.setFormatter(ISO8601Formatter())
    logger.addHandler(file_handler)

    return logger


def setup_console_logging(
    log_level: int = logging.WARNING,
    logger_name: str = APP_NAME,
) -> logging.Logger:
    """Attach a console handler writing to stderr.

    Args:
        log_level: Logging level (default: WARNING)
        logger_name: Name for the logger (default: the package root logger)

    Returns:
        logging.Logger: Configured logger instance
    """
    logger = logging.getLogger(logger_name)
    logger.setLevel(log_level)
    logger.propagate = False
    _reset_handlers(logger)

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setLevel(log_level)
    stream_handler.setFormatter(ConsoleFormatter())
    logger.addHandler(stream_handler)

    return logger
