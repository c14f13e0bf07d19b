"""Fake completion providers and judges for echo-pdk tests.

These fakes record every call so tests can assert on how often (and with
what) the LLM would have been asked.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

import pytest

from echo_pdk.providers.types import (
    ChatMessage,
    CompletionOptions,
    CompletionResponse,
    ProviderConfig,
)


@dataclass
class FakeCompletionProvider:
    """CompletionProvider returning canned answers in order.

    Attributes:
        answers: Texts returned by successive calls; the last one repeats.
        error: Exception raised instead of answering, when set.
        delay: Seconds to sleep before answering.
        calls: (messages, options) of every call.
    """

    answers: list[str] = field(default_factory=lambda: ["yes"])
    error: Exception | None = None
    delay: float = 0.0
    calls: list[tuple[list[ChatMessage], CompletionOptions | None]] = field(
        default_factory=list
    )

    async def complete(
        self,
        messages: Sequence[ChatMessage],
        options: CompletionOptions | None = None,
    ) -> CompletionResponse:
        self.calls.append((list(messages), options))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        index = min(len(self.calls), len(self.answers)) - 1
        model = options.model if options and options.model else "fake-model"
        return CompletionResponse(text=self.answers[index], model=model)

    @property
    def call_count(self) -> int:
        return len(self.calls)


@dataclass
class CountingJudge:
    """AIProvider answering by question text, recording every call.

    Attributes:
        answers: Answer per question; questions not listed get ``default``.
        default: Answer for unlisted questions.
        error: Exception raised instead of answering, when set.
        calls: (value, question) of every call.
    """

    answers: Mapping[str, bool] = field(default_factory=dict)
    default: bool = True
    error: Exception | None = None
    calls: list[tuple[Any, str]] = field(default_factory=list)

    async def evaluate(self, value: Any, question: str) -> bool:
        self.calls.append((value, question))
        if self.error is not None:
            raise self.error
        return self.answers.get(question, self.default)

    @property
    def call_count(self) -> int:
        return len(self.calls)

    @property
    def questions(self) -> list[str]:
        return [question for _, question in self.calls]


@pytest.fixture
def fake_provider() -> FakeCompletionProvider:
    """Completion provider that always answers "yes"."""
    return FakeCompletionProvider()


@pytest.fixture
def counting_judge() -> CountingJudge:
    """Judge that answers True to everything and counts calls."""
    return CountingJudge()


@pytest.fixture
def openai_provider_config() -> ProviderConfig:
    """OpenAI provider settings with the default judge model."""
    return ProviderConfig(type="openai", api_key="sk-test")
