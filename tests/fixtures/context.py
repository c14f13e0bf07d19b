"""Context resolver fixtures for echo-pdk tests."""

from __future__ import annotations

from collections.abc import Iterable

import pytest

from echo_pdk.context import (
    ContextResolveResult,
    ResolvedContent,
    StaticContextResolver,
)


class CountingResolver(StaticContextResolver):
    """StaticContextResolver that records batch and single calls."""

    def __init__(self, contents=None) -> None:
        super().__init__(contents)
        self.batch_calls: list[list[str]] = []
        self.single_calls: list[str] = []

    async def resolve(self, path: str) -> ContextResolveResult:
        self.single_calls.append(path)
        return await super().resolve(path)

    async def resolve_batch(
        self, paths: Iterable[str]
    ) -> dict[str, ContextResolveResult]:
        paths = list(paths)
        self.batch_calls.append(paths)
        return await super().resolve_batch(paths)


@pytest.fixture
def static_resolver() -> StaticContextResolver:
    """Resolver holding a text asset, a named asset and an image."""
    return StaticContextResolver(
        {
            "plp://tone-guide": "Be friendly and concise.",
            "brand-voice": "Warm, direct, no jargon.",
            "plp://logo": ResolvedContent(
                mime_type="image/png", data_url="data:image/png;base64,AAAA"
            ),
        }
    )


@pytest.fixture
def counting_resolver() -> CountingResolver:
    """Counting resolver with the same contents as ``static_resolver``."""
    return CountingResolver(
        {
            "plp://tone-guide": "Be friendly and concise.",
            "brand-voice": "Warm, direct, no jargon.",
        }
    )
