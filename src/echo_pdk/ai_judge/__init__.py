"""AI judge: LLM yes/no answers with a content-addressed TTL cache."""

from __future__ import annotations

from echo_pdk.ai_judge.cache import CacheEntry, JudgeCache, default_judge_cache
from echo_pdk.ai_judge.judge import (
    JUDGE_SYSTEM_PROMPT,
    CachedAIJudge,
    LLMJudge,
    build_prompt,
    create_ai_judge,
    create_cache_key,
    parse_judge_answer,
)

__all__ = [
    "CacheEntry",
    "JudgeCache",
    "default_judge_cache",
    "JUDGE_SYSTEM_PROMPT",
    "CachedAIJudge",
    "LLMJudge",
    "build_prompt",
    "create_ai_judge",
    "create_cache_key",
    "parse_judge_answer",
]
