"""Context references: validation, static pre-scan and result merging.

A context reference names externally stored content, either a PLP asset
(``plp://asset-id``) or a named asset attached to a prompt (``hero-image``).
References appear inline (``#context(path)``) and in conditions
(``[#IF #context(path)]``).

Every path is validated locally before any resolver sees it, so malformed
or hostile paths (traversal, foreign URLs, percent-encoding) never cause a
network request.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from echo_pdk.constants import CONTEXT_BINDING_KEY
from echo_pdk.dsl.ast import (
    ConditionalNode,
    ContextNode,
    ContextPresence,
    Node,
    iter_conditions,
    iter_nodes,
)
from echo_pdk.exceptions import EchoValidationError
from echo_pdk.logging import get_logger
from echo_pdk.protocols import ContextResolver

__all__ = [
    "PLP_PREFIX",
    "ContextFailure",
    "ResolvedContent",
    "ContextResolveResult",
    "ContextBatchResult",
    "StaticContextResolver",
    "is_plp_reference",
    "extract_asset_id",
    "validate_context_path",
    "is_valid_context_path",
    "collect_context_paths",
    "resolve_context_paths",
    "apply_resolved_context",
    "get_resolved_context",
]

logger = get_logger(__name__)

PLP_PREFIX = "plp://"

_ASSET_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_-]{1,64}$")
_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9_.-]{1,128}$")


class ContextFailure(str, Enum):
    """Why a context path did not resolve."""

    NOT_FOUND = "not_found"
    INVALID_PATH = "invalid_path"
    UNAUTHORIZED = "unauthorized"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True, slots=True)
class ResolvedContent:
    """Content behind a context reference.

    Attributes:
        mime_type: MIME type of the asset.
        text: Inline text, for text assets.
        data_url: ``data:`` URL, for binary assets such as images.
    """

    mime_type: str = "text/plain"
    text: str | None = None
    data_url: str | None = None

    def as_text(self) -> str:
        """Text to splice into a prompt: the text itself, else the data URL."""
        if self.text is not None:
            return self.text
        return self.data_url or ""


@dataclass(frozen=True, slots=True)
class ContextResolveResult:
    """Outcome of resolving one path: content, or a typed failure."""

    path: str
    content: ResolvedContent | None = None
    failure: ContextFailure | None = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.failure is None and self.content is not None

    @classmethod
    def ok(cls, path: str, content: ResolvedContent) -> ContextResolveResult:
        return cls(path=path, content=content)

    @classmethod
    def failed(
        cls, path: str, failure: ContextFailure, error: str
    ) -> ContextResolveResult:
        return cls(path=path, failure=failure, error=error)


ContextBatchResult = Mapping[str, ContextResolveResult]


# =============================================================================
# Validation
# =============================================================================


def is_plp_reference(path: str) -> bool:
    return path.startswith(PLP_PREFIX)


def extract_asset_id(path: str) -> str:
    """Strip the ``plp://`` prefix. Non-PLP paths are returned unchanged."""
    if not is_plp_reference(path):
        return path
    return path[len(PLP_PREFIX) :]


def validate_context_path(path: str) -> None:
    """Check a context path before it is sent anywhere.

    Args:
        path: ``plp://asset-id`` or a plain asset name.

    Raises:
        EchoValidationError: With a message describing the first rule broken.
    """
    if not path or not path.strip():
        raise EchoValidationError("Context path cannot be empty", path)
    if ".." in path:
        raise EchoValidationError(
            "Context path cannot contain path traversal (..)", path
        )
    if "://" in path and not is_plp_reference(path):
        raise EchoValidationError(
            "Only plp:// references are allowed (no external URLs)", path
        )
    if "%" in path:
        raise EchoValidationError(
            "Context path cannot contain encoded characters", path
        )
    if is_plp_reference(path):
        if not _ASSET_ID_PATTERN.match(extract_asset_id(path)):
            raise EchoValidationError(
                "Invalid asset ID: must be 1-64 alphanumeric characters, "
                "hyphens, or underscores",
                path,
            )
    elif not _NAME_PATTERN.match(path):
        raise EchoValidationError(
            "Invalid context name: must be 1-128 alphanumeric characters, "
            "hyphens, underscores, or dots",
            path,
        )


def is_valid_context_path(path: str) -> bool:
    try:
        validate_context_path(path)
    except EchoValidationError:
        return False
    return True


# =============================================================================
# Pre-scan, batch resolution and merge
# =============================================================================


def collect_context_paths(nodes: Node | Iterable[Node]) -> list[str]:
    """Every distinct context path in the tree, in first-seen order.

    Both branches of every conditional are scanned, as are sections, so the
    result does not depend on which branches evaluation will take.
    """
    roots = [nodes] if not isinstance(nodes, Iterable) else list(nodes)
    seen: dict[str, None] = {}
    for node in iter_nodes(roots):
        if isinstance(node, ContextNode):
            seen.setdefault(node.path, None)
        elif isinstance(node, ConditionalNode):
            for expr in iter_conditions(node.condition):
                if isinstance(expr, ContextPresence):
                    seen.setdefault(expr.path, None)
    return list(seen)


async def resolve_context_paths(
    resolver: ContextResolver | None, paths: Iterable[str]
) -> dict[str, ContextResolveResult]:
    """Validate paths locally, then resolve the valid ones in one batch call.

    Args:
        resolver: Resolver to use. When None, every valid path fails as
            unavailable.
        paths: Paths to resolve. Duplicates are ignored.

    Returns:
        A result for every input path. If the resolver raises, every valid
        path is marked unavailable.
    """
    results: dict[str, ContextResolveResult] = {}
    valid: list[str] = []
    for path in dict.fromkeys(paths):
        try:
            validate_context_path(path)
        except EchoValidationError as e:
            results[path] = ContextResolveResult.failed(
                path, ContextFailure.INVALID_PATH, e.message
            )
        else:
            valid.append(path)

    if valid and resolver is None:
        for path in valid:
            results[path] = ContextResolveResult.failed(
                path, ContextFailure.UNAVAILABLE, "No context resolver configured"
            )
    elif valid:
        logger.debug("context_batch_resolve", count=len(valid))
        try:
            batch = await resolver.resolve_batch(valid)
        except Exception as e:
            logger.warning("context_batch_failed", count=len(valid), error=str(e))
            batch = {
                path: ContextResolveResult.failed(
                    path, ContextFailure.UNAVAILABLE, f"Context resolver failed: {e}"
                )
                for path in valid
            }
        for path in valid:
            result = batch.get(path)
            if result is None:
                result = ContextResolveResult.failed(
                    path, ContextFailure.UNAVAILABLE, "Resolver returned no result"
                )
            results[path] = result

    failed = [p for p, r in results.items() if not r.success]
    if failed:
        logger.info("context_paths_unresolved", paths=failed)
    return results


def apply_resolved_context(
    variables: Mapping[str, Any], batch: ContextBatchResult
) -> dict[str, Any]:
    """Return new bindings with batch results merged under ``@context``.

    The input mapping is not modified. Existing ``@context`` entries are kept
    unless the batch holds a result for the same path.
    """
    merged = dict(variables)
    existing = merged.get(CONTEXT_BINDING_KEY)
    context: dict[str, ContextResolveResult] = (
        dict(existing) if isinstance(existing, Mapping) else {}
    )
    context.update(batch)
    merged[CONTEXT_BINDING_KEY] = context
    return merged


def get_resolved_context(
    variables: Mapping[str, Any], path: str
) -> ContextResolveResult | None:
    """Look up a merged result for ``path``, if phase one produced one."""
    context = variables.get(CONTEXT_BINDING_KEY)
    if not isinstance(context, Mapping):
        return None
    result = context.get(path)
    return result if isinstance(result, ContextResolveResult) else None


# =============================================================================
# In-memory resolver
# =============================================================================


class StaticContextResolver:
    """Resolver backed by an in-memory mapping.

    Useful for tests, playgrounds and applications that pre-load assets.

    Example:
        ```python
        resolver = StaticContextResolver({
            "plp://logo": ResolvedContent(mime_type="image/png", data_url="data:..."),
            "tone-guide": "Be friendly.",
        })
        ```
    """

    def __init__(
        self, contents: Mapping[str, ResolvedContent | str] | None = None
    ) -> None:
        self._contents: dict[str, ResolvedContent] = {}
        for path, content in (contents or {}).items():
            self.add(path, content)

    def add(self, path: str, content: ResolvedContent | str) -> None:
        if isinstance(content, str):
            content = ResolvedContent(mime_type="text/plain", text=content)
        self._contents[path] = content

    async def resolve(self, path: str) -> ContextResolveResult:
        try:
            validate_context_path(path)
        except EchoValidationError as e:
            return ContextResolveResult.failed(
                path, ContextFailure.INVALID_PATH, e.message
            )
        content = self._contents.get(path)
        if content is None:
            return ContextResolveResult.failed(
                path, ContextFailure.NOT_FOUND, f"Context not found: {path}"
            )
        return ContextResolveResult.ok(path, content)

    async def resolve_batch(
        self, paths: Iterable[str]
    ) -> dict[str, ContextResolveResult]:
        return {path: await self.resolve(path) for path in dict.fromkeys(paths)}
