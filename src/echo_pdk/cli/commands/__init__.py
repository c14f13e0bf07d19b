"""echo-pdk CLI commands."""

from __future__ import annotations

from echo_pdk.cli.commands.eval import eval_command
from echo_pdk.cli.commands.render import render
from echo_pdk.cli.commands.validate import validate

__all__ = ["eval_command", "render", "validate"]
