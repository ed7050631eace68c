"""Command-line interface for dirauth.

Provides commands for acquiring tokens from the shell.
"""

from .main import cli, main

__all__ = ["cli", "main"]
