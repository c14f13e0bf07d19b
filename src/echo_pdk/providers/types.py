"""Value types shared by completion providers and the AI judge.

echo-pdk does not ship HTTP clients for LLM vendors. Applications pass in an
object satisfying ``CompletionProvider`` (see ``echo_pdk.protocols``); these
types describe what flows across that boundary.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Self

from pydantic import BaseModel, Field, model_validator

from echo_pdk.constants import (
    DEFAULT_JUDGE_MODELS,
    DEFAULT_PROVIDER_TIMEOUT,
    ProviderType,
)

__all__ = [
    "ChatMessage",
    "CompletionOptions",
    "CompletionResponse",
    "TokenUsage",
    "ProviderConfig",
]


@dataclass(frozen=True, slots=True)
class ChatMessage:
    """One message in a chat completion request.

    Attributes:
        role: Speaker of the message.
        content: Message text.
    """

    role: Literal["system", "user", "assistant"]
    content: str


@dataclass(frozen=True, slots=True)
class CompletionOptions:
    """Per-request completion options. None means provider default."""

    model: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None


@dataclass(frozen=True, slots=True)
class TokenUsage:
    prompt: int = 0
    completion: int = 0

    @property
    def total(self) -> int:
        return self.prompt + self.completion


@dataclass(frozen=True, slots=True)
class CompletionResponse:
    """Result of a completion call.

    Attributes:
        text: Generated text.
        model: Model that produced the text.
        provider: Provider type that served the request.
        latency_ms: Wall-clock latency of the request.
        usage: Token accounting, when the provider reports it.
    """

    text: str
    model: str
    provider: ProviderType | None = None
    latency_ms: float = 0.0
    usage: TokenUsage = field(default_factory=TokenUsage)


class ProviderConfig(BaseModel):
    """Settings for the LLM provider backing the AI judge.

    Attributes:
        type: Provider family ("openai" or "anthropic").
        api_key: API key passed through to the completion provider.
        model: Model identifier. Defaults to the provider's judge model.
        temperature: Sampling temperature for ordinary completions. The
            judge always pins this to 0.
        max_tokens: Optional output token limit for ordinary completions.
        timeout: Request timeout in seconds.
    """

    type: ProviderType = "openai"
    api_key: str = ""
    model: str | None = None
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int | None = Field(default=None, gt=0)
    timeout: float = Field(default=DEFAULT_PROVIDER_TIMEOUT, gt=0.0)

    @model_validator(mode="after")
    def default_model_for_type(self) -> Self:
        if self.model is None:
            self.model = DEFAULT_JUDGE_MODELS[self.type]
        return self
