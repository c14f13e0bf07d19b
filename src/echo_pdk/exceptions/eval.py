from __future__ import annotations

from echo_pdk.exceptions.base import EchoError


class EvalLoadError(EchoError):
    """Exception for unreadable or malformed ``.eval`` and ``.dset`` files.

    Attributes:
        message: Error message, suffixed with the source when one is known.
        source: Path of the file being loaded, if any.

    Example:
        ```python
        raise EvalLoadError("Missing required field: suite", source="smoke.eval")
        # str(e) == "Missing required field: suite (in smoke.eval)"
        ```
    """

    def __init__(self, message: str, source: str | None = None) -> None:
        self.source = source
        super().__init__(f"{message} (in {source})" if source else message)


class PluginError(EchoError):
    """Exception raised when a plugin cannot be imported or is malformed.

    Attributes:
        message: Human-readable error message.
        plugin: Plugin name or import reference, if known.
    """

    def __init__(self, message: str, plugin: str | None = None) -> None:
        self.plugin = plugin
        super().__init__(message)
