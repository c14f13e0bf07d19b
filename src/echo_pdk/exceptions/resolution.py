"""Exceptions raised while resolving external predicates.

Resolution errors are never cached and always abort the evaluation that
triggered them.
"""

from __future__ import annotations

from echo_pdk.exceptions.base import EchoError


class ResolutionError(EchoError):
    """Base exception for failures talking to an external capability.

    Attributes:
        message: Human-readable error message.
    """


class ContextResolutionError(ResolutionError):
    """A context reference could not be resolved when it was needed.

    Attributes:
        message: Human-readable error message.
        path: The context path that failed.
        failure: Failure kind reported by the resolver (e.g. "unauthorized").
    """

    def __init__(self, message: str, path: str, failure: str | None = None) -> None:
        """Initialize the ContextResolutionError.

        Args:
            message: Human-readable error message.
            path: The context path that failed.
            failure: Failure kind reported by the resolver.
        """
        self.path = path
        self.failure = failure
        super().__init__(message)


class AIJudgeError(ResolutionError):
    """The AI judge's completion provider failed.

    Attributes:
        message: Human-readable error message.
        question: The question that was being asked.
    """

    def __init__(self, message: str, question: str | None = None) -> None:
        """Initialize the AIJudgeError.

        Args:
            message: Human-readable error message.
            question: The question that was being asked.
        """
        self.question = question
        super().__init__(message)


class EvaluationTimeoutError(ResolutionError):
    """Evaluation exceeded its configured time budget.

    Attributes:
        message: Human-readable error message.
        timeout_seconds: The timeout that was exceeded.
    """

    def __init__(self, message: str, timeout_seconds: float) -> None:
        """Initialize the EvaluationTimeoutError.

        Args:
            message: Human-readable error message.
            timeout_seconds: The timeout that was exceeded.
        """
        self.timeout_seconds = timeout_seconds
        super().__init__(message)
