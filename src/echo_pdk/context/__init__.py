"""Context reference resolution.

Exports validation helpers, the batch pre-scan/merge functions used by the
evaluator, and two resolvers: an in-memory one and a PLP HTTP client.
"""

from __future__ import annotations

from echo_pdk.context.plp import PlpContextResolver, create_plp_resolver
from echo_pdk.context.resolver import (
    PLP_PREFIX,
    ContextBatchResult,
    ContextFailure,
    ContextResolveResult,
    ResolvedContent,
    StaticContextResolver,
    apply_resolved_context,
    collect_context_paths,
    extract_asset_id,
    get_resolved_context,
    is_plp_reference,
    is_valid_context_path,
    resolve_context_paths,
    validate_context_path,
)

__all__ = [
    "PLP_PREFIX",
    "ContextBatchResult",
    "ContextFailure",
    "ContextResolveResult",
    "ResolvedContent",
    "StaticContextResolver",
    "PlpContextResolver",
    "create_plp_resolver",
    "apply_resolved_context",
    "collect_context_paths",
    "extract_asset_id",
    "get_resolved_context",
    "is_plp_reference",
    "is_valid_context_path",
    "resolve_context_paths",
    "validate_context_path",
]
