"""Tests for log formatting, logger setup and correlation id context."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from pathlib import Path

import pytest

from dirauth.utils.logging.iso_formatter import ConsoleFormatter, ISO8601Formatter
from dirauth.utils.logging.logger_setup import setup_console_logging, setup_jsonl_logger
from dirauth.utils.logging.logging_context import (
    clear_correlation_id,
    get_correlation_id,
    set_correlation_id,
)

TEST_LOGGER = "dirauth.tests.logging"


def _record(msg: object, level: int = logging.INFO) -> logging.LogRecord:
    return logging.LogRecord("dirauth.test", level, __file__, 1, msg, None, None)


@pytest.fixture
def isolated_logger() -> Iterator[str]:
    """Logger name whose handlers are removed after the test."""
    yield TEST_LOGGER
    logger = logging.getLogger(TEST_LOGGER)
    for handler in logger.handlers:
        handler.close()
    logger.handlers.clear()
    logger.propagate = True


class TestISO8601Formatter:
    """Tests for JSONL formatting."""

    def test_dict_message(self) -> None:
        """Given a dict message, emits it with time and level first."""
        line = ISO8601Formatter().format(_record({"event": "cache_hit", "message": "hit"}))

        data = json.loads(line)
        assert list(data)[:2] == ["time", "level"]
        assert data["time"].endswith("Z")
        assert data["level"] == "INFO"
        assert data["event"] == "cache_hit"

    def test_plain_message(self) -> None:
        data = json.loads(ISO8601Formatter().format(_record("plain text")))

        assert data["message"] == "plain text"

    def test_correlation_id_from_context(self) -> None:
        """Given a correlation id in context, records without one get it."""
        set_correlation_id("ctx-id")

        data = json.loads(ISO8601Formatter().format(_record({"event": "x"})))

        assert data["correlation_id"] == "ctx-id"

    def test_explicit_correlation_id_wins(self) -> None:
        set_correlation_id("ctx-id")

        data = json.loads(ISO8601Formatter().format(_record({"event": "x", "correlation_id": "own-id"})))

        assert data["correlation_id"] == "own-id"


class TestConsoleFormatter:
    """Tests for console formatting."""

    def test_event_and_message(self) -> None:
        line = ConsoleFormatter().format(_record({"event": "cache_miss", "message": "No entry"}, logging.WARNING))

        assert line == "WARNING dirauth.test cache_miss: No entry"

    def test_without_event(self) -> None:
        assert ConsoleFormatter().format(_record("hello")) == "INFO dirauth.test hello"


class TestLoggerSetup:
    """Tests for setup_jsonl_logger and setup_console_logging."""

    def test_jsonl_logger_writes_file(self, tmp_path: Path, isolated_logger: str) -> None:
        """Given a nested path, creates the directory and writes JSONL."""
        # Arrange
        log_file = tmp_path / "logs" / "dirauth.jsonl"

        # Act
        logger = setup_jsonl_logger(log_file, logger_name=isolated_logger)
        logger.info({"event": "test_event", "message": "hello"})
        for handler in logger.handlers:
            handler.flush()

        # Assert
        lines = log_file.read_text(encoding="utf-8").splitlines()
        assert json.loads(lines[0])["event"] == "test_event"
        assert logger.propagate is False

    def test_repeated_setup_does_not_duplicate_handlers(self, tmp_path: Path, isolated_logger: str) -> None:
        setup_jsonl_logger(tmp_path / "a.jsonl", logger_name=isolated_logger)
        logger = setup_console_logging(logging.DEBUG, logger_name=isolated_logger)

        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0].formatter, ConsoleFormatter)


class TestCorrelationId:
    """Tests for correlation id context management."""

    def test_set_and_clear(self) -> None:
        set_correlation_id("abc")
        assert get_correlation_id() == "abc"

        clear_correlation_id()
        assert get_correlation_id() is None

    @pytest.mark.parametrize("value", ["bad\nid", "bad\rid"])
    def test_newlines_rejected(self, value: str) -> None:
        """Given an id with newlines, the context is cleared instead."""
        set_correlation_id("previous")

        set_correlation_id(value)

        assert get_correlation_id() is None
