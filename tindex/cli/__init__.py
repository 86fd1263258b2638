"""Command-line interface."""

from __future__ import annotations

from tindex.cli.main import cli, main

__all__ = ["cli", "main"]
