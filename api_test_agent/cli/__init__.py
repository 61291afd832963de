"""CLI package exposing the ``apitest`` command entry points."""

from __future__ import annotations

from .main import CLIState, build_controller, cli, main

__all__ = ["CLIState", "build_controller", "cli", "main"]
