"""Protocol definitions for the collaborators the evaluator consumes.

These are Protocol classes, not abstract base classes, so any object with
matching async methods can be injected (an HTTP client, an in-memory fake,
a caching wrapper) without inheriting from anything in echo-pdk.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from echo_pdk.context.resolver import ContextResolveResult
    from echo_pdk.providers.types import (
        ChatMessage,
        CompletionOptions,
        CompletionResponse,
    )

__all__ = [
    "AIProvider",
    "ContextResolver",
    "CompletionProvider",
    "ImportLoader",
]


@runtime_checkable
class AIProvider(Protocol):
    """Protocol for yes/no judges used by AI-judged conditions.

    Example:
        >>> class AlwaysYes:
        ...     async def evaluate(self, value: Any, question: str) -> bool:
        ...         return True
    """

    async def evaluate(self, value: Any, question: str) -> bool:
        """Answer a yes/no question about a value.

        Args:
            value: The value being judged (string, number, list, mapping...).
            question: Free-text yes/no question.

        Returns:
            True only for a definite "yes".

        Raises:
            ResolutionError: If the underlying provider fails.
        """
        ...


@runtime_checkable
class ContextResolver(Protocol):
    """Protocol for resolving context references to content.

    ``resolve_batch`` must return exactly what calling ``resolve`` on each
    path would, only in fewer round trips. Failures are returned as values
    (``ContextResolveResult.failure``), not raised.
    """

    async def resolve(self, path: str) -> ContextResolveResult:
        """Resolve a single context path."""
        ...

    async def resolve_batch(
        self, paths: Iterable[str]
    ) -> Mapping[str, ContextResolveResult]:
        """Resolve many context paths, keyed by path."""
        ...


@runtime_checkable
class CompletionProvider(Protocol):
    """Protocol for LLM chat completion back ends.

    Used by the AI judge and by ``run_prompt``; never by the evaluator
    directly.
    """

    async def complete(
        self,
        messages: Sequence[ChatMessage],
        options: CompletionOptions | None = None,
    ) -> CompletionResponse:
        """Run a chat completion.

        Raises:
            Exception: Any provider or transport failure.
        """
        ...


@runtime_checkable
class ImportLoader(Protocol):
    """Protocol for loading the source of an imported document."""

    def load(self, path: str, *, relative_to: str | None = None) -> tuple[str, str]:
        """Load a document.

        Args:
            path: Path as written in the [#IMPORT] directive.
            relative_to: Resolved key of the importing document, if any.

        Returns:
            Tuple of (resolved key, source text). The key identifies the
            document for cycle detection.

        Raises:
            EvaluationError: If the path is not allowed or cannot be read.
        """
        ...
