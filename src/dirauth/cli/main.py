"""Main CLI entry point for dirauth.

Defines the CLI group and its subcommands. Every command reads the
authority, client id and resource from a JSON config file; secrets come
from environment variables so they never appear in shell history.

Commands:
    client-credentials - App-only token with a client secret
    device-login       - Interactive sign-in on another device
    refresh            - Redeem a refresh token

Subcommand help:
    dirauth COMMAND -h         Show help for a specific command
"""

from __future__ import annotations

__all__ = ["cli", "main"]

import asyncio
import json
import logging
import os
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import TypeVar

import click

from dirauth import __version__
from dirauth.authentication_context import AuthenticationContext
from dirauth.config import ClientConfig
from dirauth.exceptions import DirAuthError
from dirauth.models import TokenResponse
from dirauth.utils.logging.logger_setup import setup_console_logging, setup_jsonl_logger

T = TypeVar("T")

_config_option = click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    required=True,
    help="Path to the JSON client configuration.",
)


def _load_config(config_path: Path) -> ClientConfig:
    try:
        return ClientConfig.load_from_file(config_path)
    except DirAuthError as e:
        raise click.ClickException(str(e)) from e


def _read_secret(env_var: str) -> str:
    value = os.environ.get(env_var)
    if not value:
        raise click.ClickException(f"Environment variable {env_var} is not set.")
    return value


def _run(config: ClientConfig, operation: Callable[[AuthenticationContext], Awaitable[T]]) -> T:
    """Run one async operation against a fresh AuthenticationContext."""

    async def _main() -> T:
        async with AuthenticationContext(config.authority, options=config.options) as context:
            return await operation(context)

    try:
        return asyncio.run(_main())
    except DirAuthError as e:
        raise click.ClickException(str(e)) from e


def _echo_token(token: TokenResponse) -> None:
    click.echo(json.dumps(token.model_dump(mode="json"), indent=2))


@click.group(
    invoke_without_command=True,
    context_settings={"help_option_names": ["-h", "--help"]},
)
@click.option("--version", "-v", is_flag=True, help="Show version")
@click.option("--debug", is_flag=True, help="Log protocol details to stderr")
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Write JSONL logs to this file",
)
@click.pass_context
def cli(ctx: click.Context, version: bool, debug: bool, log_file: Path | None) -> None:
    """dirauth: OAuth2 and WS-Trust token acquisition."""
    if version:
        click.echo(f"dirauth {__version__}")
        sys.exit(0)

    log_level = logging.DEBUG if debug else logging.WARNING
    if log_file is not None:
        setup_jsonl_logger(log_file, log_level=log_level)
    else:
        setup_console_logging(log_level)

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command("client-credentials")
@_config_option
@click.option(
    "--secret-env",
    default="DIRAUTH_CLIENT_SECRET",
    show_default=True,
    help="Environment variable holding the client secret.",
)
def client_credentials(config_path: Path, secret_env: str) -> None:
    """Acquire an app-only token with a client secret."""
    config = _load_config(config_path)
    secret = _read_secret(secret_env)
    token = _run(
        config,
        lambda context: context.acquire_token_with_client_credentials(config.resource, config.client_id, secret),
    )
    _echo_token(token)


@cli.command("device-login")
@_config_option
@click.option("--language", default=None, help="UI language for the sign-in message (e.g. en-us).")
def device_login(config_path: Path, language: str | None) -> None:
    """Sign in on another device and print the resulting token."""
    config = _load_config(config_path)

    async def login(context: AuthenticationContext) -> TokenResponse:
        user_code_info = await context.acquire_user_code(config.resource, config.client_id, language)
        instructions = user_code_info.message or (
            f"Go to {user_code_info.verification_url} and enter code: {user_code_info.user_code}"
        )
        click.echo(instructions, err=True)
        return await context.acquire_token_with_device_code(config.resource, config.client_id, user_code_info)

    _echo_token(_run(config, login))


@cli.command("refresh")
@_config_option
@click.option(
    "--refresh-token-env",
    default="DIRAUTH_REFRESH_TOKEN",
    show_default=True,
    help="Environment variable holding the refresh token.",
)
@click.option(
    "--secret-env",
    default=None,
    help="Environment variable holding the client secret, for confidential clients.",
)
def refresh(config_path: Path, refresh_token_env: str, secret_env: str | None) -> None:
    """Redeem a refresh token for a new access token."""
    config = _load_config(config_path)
    refresh_token = _read_secret(refresh_token_env)
    secret = _read_secret(secret_env) if secret_env else None
    token = _run(
        config,
        lambda context: context.acquire_token_with_refresh_token(
            refresh_token, config.client_id, secret, config.resource
        ),
    )
    _echo_token(token)


def main() -> None:
    """CLI entry point."""
    cli()
