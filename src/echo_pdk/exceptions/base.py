from __future__ import annotations


class EchoError(Exception):
    """Base exception class for all echo-pdk errors.

    This is the root of the echo-pdk exception hierarchy. Catching it at the
    CLI boundary (or in an application embedding the engine) handles every
    template, resolution and configuration failure while letting system
    exceptions propagate naturally.

    Attributes:
        message: Human-readable error message describing what went wrong.

    Example:
        ```python
        try:
            text = await echo.render(template, variables)
        except EchoError as e:
            logger.error("render_failed", error=e.message)
        ```
    """

    def __init__(self, message: str) -> None:
        """Initialize the EchoError.

        Args:
            message: Human-readable error message.
        """
        self.message = message
        super().__init__(message)
