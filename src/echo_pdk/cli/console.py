"""Shared Rich Console instances for echo-pdk CLI output.

Rich styles output in terminals and writes plain text when piped.
"""

from __future__ import annotations

from rich.console import Console

__all__ = ["console", "err_console"]

console = Console()
err_console = Console(stderr=True)
