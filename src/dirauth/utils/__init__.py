"""Shared utilities for dirauth."""
