"""Client configuration for dirauth.

Defines the options shared by every request an AuthenticationContext makes,
plus a file-backed configuration used by the CLI.

Example usage:
    config = ClientConfig.load_from_file(Path("dirauth.json"))
    context = AuthenticationContext(config.authority, options=config.options)
"""

from __future__ import annotations

__all__ = [
    "ClientConfig",
    "ClientOptions",
]

import json
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from dirauth.constants import (
    DEFAULT_HTTP_TIMEOUT_SECONDS,
    MAX_HTTP_TIMEOUT_SECONDS,
    MIN_HTTP_TIMEOUT_SECONDS,
)
from dirauth.exceptions import ConfigurationError


class ClientOptions(BaseModel):
    """HTTP and tracing options applied to every outgoing request.

    Attributes:
        http_timeout_seconds: Per-request timeout.
        verify_ssl: Verify server certificates.
        proxy: Optional HTTP proxy URL.
        correlation_id: Fixed correlation id; a fresh one is generated when unset.
    """

    http_timeout_seconds: int = Field(
        default=DEFAULT_HTTP_TIMEOUT_SECONDS,
        ge=MIN_HTTP_TIMEOUT_SECONDS,
        le=MAX_HTTP_TIMEOUT_SECONDS,
    )
    verify_ssl: bool = True
    proxy: str | None = None
    correlation_id: str | None = None


class ClientConfig(BaseModel):
    """Application registration and authority used by the CLI.

    Attributes:
        authority: Authority URL (https, no query string).
        client_id: Application (client) id.
        resource: Resource to request tokens for.
        options: HTTP and tracing options.
    """

    authority: str = Field(min_length=1)
    client_id: str = Field(min_length=1)
    resource: str = Field(min_length=1)
    options: ClientOptions = Field(default_factory=ClientOptions)

    @classmethod
    def load_from_file(cls, config_path: Path) -> "ClientConfig":
        """Load configuration from a JSON file.

        Args:
            config_path: Path to the config JSON file.

        Returns:
            Validated ClientConfig.

        Raises:
            ConfigurationError: If the file is missing, not JSON, or invalid.
        """
        if not config_path.exists():
            raise ConfigurationError(f"Configuration file not found at {config_path}.")

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in config file {config_path}: {e}") from e
        except OSError as e:
            raise ConfigurationError(f"Could not read config file {config_path}: {e}") from e

        try:
            return cls.model_validate(data)
        except ValidationError as e:
            errors = []
            for error in e.errors():
                loc = ".".join(str(x) for x in error["loc"])
                errors.append(f"  - {loc}: {error['msg']}")
            raise ConfigurationError(f"Invalid configuration in {config_path}:\n" + "\n".join(errors)) from e
