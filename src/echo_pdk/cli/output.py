"""Output formatting helpers for the echo-pdk CLI."""

from __future__ import annotations

from collections.abc import Sequence

from echo_pdk.engine import ValidationWarning
from echo_pdk.exceptions import ConfigError

__all__ = [
    "format_error",
    "format_config_error",
    "format_warnings",
]


def format_error(
    message: str, details: list[str] | None = None, suggestion: str | None = None
) -> str:
    """Format an error message with optional details and suggestion.

    Example:
        >>> print(format_error(
        ...     "Template not found",
        ...     details=["prompts/missing.echo"],
        ...     suggestion="Check the path",
        ... ))
        Error: Template not found
          prompts/missing.echo
        Suggestion: Check the path
    """
    lines = [f"Error: {message}"]
    if details:
        for detail in details:
            lines.append(f"  {detail}")
    if suggestion:
        lines.append(f"Suggestion: {suggestion}")
    return "\n".join(lines)


def format_config_error(error: ConfigError) -> str:
    details: list[str] = []
    if error.field:
        details.append(f"Field: {error.field}")
    if error.value is not None:
        details.append(f"Value: {error.value}")
    return format_error(error.message, details=details or None)


def format_warnings(warnings: Sequence[ValidationWarning]) -> str:
    """One "Warning: line:col: message" line per warning."""
    return "\n".join(f"Warning: {w}" for w in warnings)
