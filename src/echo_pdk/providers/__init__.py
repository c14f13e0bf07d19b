"""Completion provider value types.

Vendor HTTP adapters live outside echo-pdk; anything satisfying
``echo_pdk.protocols.CompletionProvider`` can be used.
"""

from __future__ import annotations

from echo_pdk.providers.types import (
    ChatMessage,
    CompletionOptions,
    CompletionResponse,
    ProviderConfig,
    TokenUsage,
)

__all__ = [
    "ChatMessage",
    "CompletionOptions",
    "CompletionResponse",
    "ProviderConfig",
    "TokenUsage",
]
