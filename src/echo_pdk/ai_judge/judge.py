"""LLM-backed yes/no judge for ``#ai_judge`` conditions.

The judge asks a completion provider whether a question holds for a value
and accepts only an exact "yes" as True. Results are memoized by
``CachedAIJudge`` under a SHA-256 key over the canonical JSON of
``{value, question, provider, model}``.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import math
from collections.abc import Mapping
from typing import Any

from echo_pdk.ai_judge.cache import JudgeCache, default_judge_cache
from echo_pdk.constants import JUDGE_MAX_TOKENS, JUDGE_TEMPERATURE
from echo_pdk.exceptions import AIJudgeError, EvaluationError
from echo_pdk.logging import get_logger
from echo_pdk.protocols import AIProvider, CompletionProvider
from echo_pdk.providers.types import (
    ChatMessage,
    CompletionOptions,
    ProviderConfig,
)

__all__ = [
    "JUDGE_SYSTEM_PROMPT",
    "LLMJudge",
    "CachedAIJudge",
    "build_prompt",
    "create_cache_key",
    "create_ai_judge",
    "parse_judge_answer",
]

logger = get_logger(__name__)

JUDGE_SYSTEM_PROMPT = (
    'You are a precise yes/no evaluator. Answer ONLY with "yes" or "no" '
    "(lowercase, no punctuation). Do not explain or elaborate."
)


def _check_judge_value(value: Any, path: str = "value") -> None:
    """Reject anything outside str/number/bool/None/list/mapping."""
    if value is None or isinstance(value, str | bool | int):
        return
    if isinstance(value, float):
        if not math.isfinite(value):
            raise EvaluationError(f"Cannot judge non-finite number at {path}")
        return
    if isinstance(value, list | tuple):
        for i, item in enumerate(value):
            _check_judge_value(item, f"{path}[{i}]")
        return
    if isinstance(value, Mapping):
        for key, item in value.items():
            if not isinstance(key, str):
                raise EvaluationError(
                    f"Cannot judge mapping with non-string key {key!r} at {path}"
                )
            _check_judge_value(item, f"{path}.{key}")
        return
    raise EvaluationError(
        f"Cannot judge value of type {type(value).__name__} at {path}"
    )


def create_cache_key(value: Any, question: str, provider: str, model: str) -> str:
    """Deterministic cache key for a judgment.

    The key is the SHA-256 hex digest of canonical JSON (sorted keys,
    compact separators, tuples as lists), so equal inputs produce equal keys
    regardless of mapping insertion order or value size.

    Args:
        value: Judged value: string, number, boolean, None, list or mapping.
        question: The yes/no question.
        provider: Provider type, e.g. "openai".
        model: Model identifier.

    Returns:
        64-character lowercase hex string.

    Raises:
        EvaluationError: If the value contains an unsupported type.
    """
    _check_judge_value(value)
    payload = json.dumps(
        {"value": value, "question": question, "provider": provider, "model": model},
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def build_prompt(value: Any, question: str) -> str:
    """Build the user prompt: the value verbatim, then the question."""
    value_str = value if isinstance(value, str) else json.dumps(value, indent=2)
    return (
        "Given the following value:\n"
        "---\n"
        f"{value_str}\n"
        "---\n"
        "\n"
        'Answer with ONLY "yes" or "no":\n'
        f"{question}"
    )


def parse_judge_answer(answer: str | None) -> bool:
    """Only an exact "yes" (after trimming and lower-casing) is True."""
    normalized = (answer or "").strip().lower()
    if normalized == "yes":
        return True
    if normalized != "no":
        logger.warning("judge_answer_unexpected", answer=normalized[:50])
    return False


class LLMJudge:
    """AIProvider that asks a completion provider for a yes/no answer.

    Temperature is pinned to 0 and the output budget to a few tokens,
    whatever the provider configuration says.

    Attributes:
        config: Provider settings (type, model, timeout).
    """

    def __init__(
        self, config: ProviderConfig, completion_provider: CompletionProvider
    ) -> None:
        self.config = config
        self._provider = completion_provider

    @property
    def provider_type(self) -> str:
        return self.config.type

    @property
    def model(self) -> str:
        return self.config.model or ""

    async def evaluate(self, value: Any, question: str) -> bool:
        """Ask the model whether ``question`` holds for ``value``.

        Raises:
            AIJudgeError: If the provider fails or times out.
        """
        messages = [
            ChatMessage(role="system", content=JUDGE_SYSTEM_PROMPT),
            ChatMessage(role="user", content=build_prompt(value, question)),
        ]
        options = CompletionOptions(
            model=self.model,
            temperature=JUDGE_TEMPERATURE,
            max_tokens=JUDGE_MAX_TOKENS,
        )
        try:
            async with asyncio.timeout(self.config.timeout):
                response = await self._provider.complete(messages, options)
        except TimeoutError as e:
            raise AIJudgeError(
                f"AI judge timed out after {self.config.timeout}s", question=question
            ) from e
        except Exception as e:
            raise AIJudgeError(
                f"AI judge provider error: {e}", question=question
            ) from e
        return parse_judge_answer(response.text)


class CachedAIJudge:
    """Caching decorator for any AIProvider.

    Only successful answers are stored; a failing call propagates and leaves
    the cache untouched.

    Args:
        judge: The judge to wrap.
        provider: Provider type used in the cache key.
        model: Model identifier used in the cache key.
        cache: Cache to use. Defaults to the process-wide cache.
    """

    def __init__(
        self,
        judge: AIProvider,
        *,
        provider: str,
        model: str,
        cache: JudgeCache | None = None,
    ) -> None:
        self.judge = judge
        self.provider = provider
        self.model = model
        self.cache = cache if cache is not None else default_judge_cache()

    async def evaluate(self, value: Any, question: str) -> bool:
        key = create_cache_key(value, question, self.provider, self.model)
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("judge_cache_hit", key=key[:12])
            return cached
        logger.debug("judge_cache_miss", key=key[:12])
        result = await self.judge.evaluate(value, question)
        self.cache.set(key, result)
        return result


def create_ai_judge(
    config: ProviderConfig,
    completion_provider: CompletionProvider,
    cache: JudgeCache | None = None,
) -> CachedAIJudge:
    """Create a cached LLM judge.

    Args:
        config: Provider settings.
        completion_provider: Back end that runs completions.
        cache: Cache to use. Defaults to the process-wide cache.

    Returns:
        A CachedAIJudge wrapping an LLMJudge.

    Example:
        ```python
        judge = create_ai_judge(ProviderConfig(type="openai", api_key=key), client)
        safe = await judge.evaluate(text, "Is this safe for work?")
        ```
    """
    judge = LLMJudge(config, completion_provider)
    return CachedAIJudge(
        judge, provider=judge.provider_type, model=judge.model, cache=cache
    )
