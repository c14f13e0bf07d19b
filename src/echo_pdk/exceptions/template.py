"""Template-level exceptions: syntax, validation, evaluation and rendering."""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

from echo_pdk.exceptions.base import EchoError

if TYPE_CHECKING:
    from echo_pdk.dsl.parser import ParseError


class EchoSyntaxError(EchoError):
    """Exception raised when a template that must be executed fails to parse.

    ``parse()`` itself never raises; it returns errors as values. This
    exception is used by pipeline helpers (``render_template``, the engine
    facade, imports) that need a usable AST and cannot continue without one.

    Attributes:
        message: Human-readable summary, usually the formatted diagnostics.
        errors: Every parse error collected for the template.
    """

    def __init__(self, message: str, errors: Sequence[ParseError] = ()) -> None:
        """Initialize the EchoSyntaxError.

        Args:
            message: Human-readable error message.
            errors: Parse errors collected for the template.
        """
        self.errors = tuple(errors)
        super().__init__(message)


class EchoValidationError(EchoError):
    """Exception raised for an invalid context reference.

    Attributes:
        message: Human-readable error message.
        path: The context path that failed validation.
    """

    def __init__(self, message: str, path: str) -> None:
        """Initialize the EchoValidationError.

        Args:
            message: Human-readable error message.
            path: The offending context path.
        """
        self.path = path
        super().__init__(message)


class EvaluationError(EchoError):
    """Exception raised when a template cannot be evaluated.

    Covers unknown variables or operators in strict mode, circular
    includes and imports, and values the AI judge cannot hash.

    Attributes:
        message: Human-readable error message.
        context_vars: Names of variables available at the failure point.
    """

    def __init__(self, message: str, context_vars: tuple[str, ...] = ()) -> None:
        """Initialize the EvaluationError.

        Args:
            message: Human-readable error message.
            context_vars: Names of available variables, for debugging.
        """
        self.context_vars = context_vars
        if context_vars:
            available = ", ".join(sorted(context_vars))
            message = f"{message}\nAvailable variables: {available}"
        super().__init__(message)


class RenderError(EchoError):
    """Exception raised when an evaluated tree cannot be rendered.

    Attributes:
        message: Human-readable error message.
        node_type: Name of the node kind that failed to render, if known.
    """

    def __init__(self, message: str, node_type: str | None = None) -> None:
        """Initialize the RenderError.

        Args:
            message: Human-readable error message.
            node_type: Node kind that failed to render.
        """
        self.node_type = node_type
        super().__init__(message)
