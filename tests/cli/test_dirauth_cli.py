"""Unit tests for the dirauth CLI.

Tests CLI behavior using Click's CliRunner with AuthenticationContext
replaced by a recording fake, so no HTTP is involved.
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import pytest
from click.testing import CliRunner

from dirauth import __version__
from dirauth.cli import cli
from dirauth.exceptions import OAuthServerError
from dirauth.models import ErrorResponse, TokenResponse, UserCodeInfo

CONFIG = {
    "authority": "https://login.example.com/contoso.onmicrosoft.com",
    "client_id": "cli-client-id",
    "resource": "https://graph.example.com",
}


class FakeAuthenticationContext:
    """Stands in for AuthenticationContext and records calls."""

    calls: list[tuple[str, tuple[Any, ...]]] = []
    token: TokenResponse | None = None
    error: Exception | None = None

    def __init__(self, authority: str, options: Any = None) -> None:
        self.authority = authority
        self.options = options

    async def __aenter__(self) -> "FakeAuthenticationContext":
        return self

    async def __aexit__(self, *args: object) -> None:
        pass

    async def _result(self, name: str, *args: Any) -> TokenResponse:
        self.calls.append((name, args))
        if self.error is not None:
            raise self.error
        assert self.token is not None
        return self.token

    async def acquire_token_with_client_credentials(self, *args: Any) -> TokenResponse:
        return await self._result("client_credentials", *args)

    async def acquire_token_with_refresh_token(self, *args: Any) -> TokenResponse:
        return await self._result("refresh_token", *args)

    async def acquire_user_code(self, *args: Any) -> UserCodeInfo:
        self.calls.append(("user_code", args))
        return UserCodeInfo(
            device_code="device-code-1",
            user_code="ABCD-EFGH",
            verification_url="https://login.example.com/device",
            interval=5,
            expires_in=900,
        )

    async def acquire_token_with_device_code(self, *args: Any) -> TokenResponse:
        return await self._result("device_code", *args)


@pytest.fixture
def runner() -> CliRunner:
    """Create a CLI runner for testing."""
    return CliRunner()


@pytest.fixture
def fake_context(
    monkeypatch: pytest.MonkeyPatch, make_token_response: Callable[..., TokenResponse]
) -> type[FakeAuthenticationContext]:
    """Patch the CLI to use FakeAuthenticationContext."""
    monkeypatch.setattr(FakeAuthenticationContext, "calls", [])
    monkeypatch.setattr(FakeAuthenticationContext, "token", make_token_response(access_token="cli-token"))
    monkeypatch.setattr(FakeAuthenticationContext, "error", None)
    # dirauth.cli re-exports main(), which shadows the submodule attribute
    monkeypatch.setattr(sys.modules["dirauth.cli.main"], "AuthenticationContext", FakeAuthenticationContext)
    return FakeAuthenticationContext


@pytest.fixture(autouse=True)
def _restore_package_logger() -> Iterator[None]:
    """The CLI reconfigures the package logger; undo it after each test."""
    logger = logging.getLogger("dirauth")
    level, propagate = logger.level, logger.propagate
    yield
    for handler in logger.handlers:
        handler.close()
    logger.handlers.clear()
    logger.setLevel(level)
    logger.propagate = propagate


@pytest.fixture
def config_path(tmp_path: Path) -> Path:
    path = tmp_path / "dirauth.json"
    path.write_text(json.dumps(CONFIG), encoding="utf-8")
    return path


class TestVersionAndHelp:
    """Tests for --version and help output."""

    @pytest.mark.parametrize("flag", ["--version", "-v"])
    def test_version_flag(self, runner: CliRunner, flag: str) -> None:
        """Given a version flag, prints the version."""
        result = runner.invoke(cli, [flag])

        assert result.exit_code == 0
        assert f"dirauth {__version__}" in result.output

    def test_root_help_lists_commands(self, runner: CliRunner) -> None:
        """Given no subcommand, shows help with every command."""
        result = runner.invoke(cli, [])

        assert result.exit_code == 0
        for command in ("client-credentials", "device-login", "refresh"):
            assert command in result.output


class TestClientCredentialsCommand:
    """Tests for the client-credentials command."""

    def test_prints_token_json(
        self,
        runner: CliRunner,
        config_path: Path,
        fake_context: type[FakeAuthenticationContext],
    ) -> None:
        """Given a config and secret, prints the token as JSON."""
        # Act
        result = runner.invoke(
            cli,
            ["client-credentials", "--config", str(config_path)],
            env={"DIRAUTH_CLIENT_SECRET": "s3cret"},
        )

        # Assert
        assert result.exit_code == 0, result.output
        assert json.loads(result.output)["access_token"] == "cli-token"
        assert fake_context.calls == [
            ("client_credentials", ("https://graph.example.com", "cli-client-id", "s3cret")),
        ]

    def test_missing_secret(
        self,
        runner: CliRunner,
        config_path: Path,
        fake_context: type[FakeAuthenticationContext],
    ) -> None:
        """Given no secret in the environment, fails with a clear message."""
        result = runner.invoke(
            cli,
            ["client-credentials", "--config", str(config_path), "--secret-env", "DIRAUTH_TEST_UNSET"],
            env={"DIRAUTH_TEST_UNSET": ""},
        )

        assert result.exit_code == 1
        assert "DIRAUTH_TEST_UNSET is not set" in result.output
        assert fake_context.calls == []

    def test_missing_config(self, runner: CliRunner, tmp_path: Path) -> None:
        """Given a config path that does not exist, fails without a traceback."""
        result = runner.invoke(
            cli,
            ["client-credentials", "--config", str(tmp_path / "nope.json")],
            env={"DIRAUTH_CLIENT_SECRET": "s3cret"},
        )

        assert result.exit_code == 1
        assert "not found" in result.output

    def test_server_error_reported(
        self,
        runner: CliRunner,
        config_path: Path,
        fake_context: type[FakeAuthenticationContext],
    ) -> None:
        """Given an OAuth error, exits 1 with the server's error."""
        fake_context.error = OAuthServerError(ErrorResponse(error="invalid_client"), status_code=401)

        result = runner.invoke(
            cli,
            ["client-credentials", "--config", str(config_path)],
            env={"DIRAUTH_CLIENT_SECRET": "wrong"},
        )

        assert result.exit_code == 1
        assert "invalid_client" in result.output


class TestDeviceLoginCommand:
    """Tests for the device-login command."""

    def test_shows_code_then_prints_token(
        self,
        runner: CliRunner,
        config_path: Path,
        fake_context: type[FakeAuthenticationContext],
    ) -> None:
        """Given a device login, shows the user code and prints the token."""
        result = runner.invoke(cli, ["device-login", "--config", str(config_path), "--language", "en-us"])

        assert result.exit_code == 0, result.output
        assert "ABCD-EFGH" in result.output
        assert "cli-token" in result.output
        assert fake_context.calls[0] == ("user_code", ("https://graph.example.com", "cli-client-id", "en-us"))
        name, args = fake_context.calls[1]
        assert name == "device_code"
        assert args[:2] == ("https://graph.example.com", "cli-client-id")
        assert args[2].device_code == "device-code-1"


class TestRefreshCommand:
    """Tests for the refresh command."""

    def test_redeems_refresh_token(
        self,
        runner: CliRunner,
        config_path: Path,
        fake_context: type[FakeAuthenticationContext],
    ) -> None:
        """Given a refresh token in the environment, redeems it for the configured resource."""
        result = runner.invoke(
            cli,
            ["refresh", "--config", str(config_path)],
            env={"DIRAUTH_REFRESH_TOKEN": "rt-123"},
        )

        assert result.exit_code == 0, result.output
        assert fake_context.calls == [
            ("refresh_token", ("rt-123", "cli-client-id", None, "https://graph.example.com")),
        ]

    def test_log_file_option_writes_jsonl(
        self,
        runner: CliRunner,
        config_path: Path,
        tmp_path: Path,
        fake_context: type[FakeAuthenticationContext],
    ) -> None:
        """Given --log-file, logging goes to a JSONL file instead of stderr."""
        log_file = tmp_path / "logs" / "dirauth.jsonl"

        result = runner.invoke(
            cli,
            ["--debug", "--log-file", str(log_file), "refresh", "--config", str(config_path)],
            env={"DIRAUTH_REFRESH_TOKEN": "rt-123"},
        )

        assert result.exit_code == 0, result.output
        assert log_file.parent.is_dir()
