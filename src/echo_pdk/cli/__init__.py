"""CLI utilities for echo-pdk.

This module provides CLI-specific utilities including context management
and output formatting.
"""

from __future__ import annotations

from echo_pdk.cli.context import CLIContext, ExitCode, async_command
from echo_pdk.cli.output import format_config_error, format_error, format_warnings

__all__ = [
    "CLIContext",
    "ExitCode",
    "async_command",
    "format_config_error",
    "format_error",
    "format_warnings",
]
