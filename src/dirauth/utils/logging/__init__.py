"""Logging utilities and helpers.

This package provides logging infrastructure for dirauth:
- iso_formatter: ISO 8601 JSONL formatting and a human-readable console formatter
- logger_setup: Factory functions for creating configured loggers
- logging_context: Correlation id context management

Import directly from submodules to avoid circular imports:
    from dirauth.utils.logging.logger_setup import setup_jsonl_logger
"""

__all__: list[str] = []  # Direct submodule imports required (see docstring)
