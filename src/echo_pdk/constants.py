"""echo-pdk constants: model identifiers, judge settings and reserved names."""

from __future__ import annotations

from typing import Literal

# =============================================================================
# Providers and Models
# =============================================================================

ProviderType = Literal["openai", "anthropic"]

#: Default model used for yes/no judgments (small and cheap)
DEFAULT_JUDGE_MODELS: dict[ProviderType, str] = {
    "openai": "gpt-4o-mini",
    "anthropic": "claude-haiku-4-5-20251001",
}

#: Default provider request timeout in seconds
DEFAULT_PROVIDER_TIMEOUT: float = 30.0

# =============================================================================
# AI Judge
# =============================================================================

#: Time-to-live for cached judgments in seconds (5 minutes)
JUDGE_CACHE_TTL_SECONDS: float = 300.0

#: Output token budget for a yes/no answer
JUDGE_MAX_TOKENS: int = 10

#: Sampling temperature for judgments (deterministic)
JUDGE_TEMPERATURE: float = 0.0

# =============================================================================
# Template Language
# =============================================================================

#: Variable binding under which resolved context is exposed, keyed by path
CONTEXT_BINDING_KEY: str = "@context"

#: Type hints accepted in {{name:hint}}
TYPE_HINTS: frozenset[str] = frozenset({"text", "number", "boolean", "json"})

#: File extension for template documents
TEMPLATE_EXTENSION: str = ".echo"

# =============================================================================
# Evaluation Suites
# =============================================================================

#: File extension for eval suites
EVAL_EXTENSION: str = ".eval"

#: File extension for eval datasets
DATASET_EXTENSION: str = ".dset"

#: Template evaluated when a suite names no target
DEFAULT_EVAL_TARGET: str = f"prompt{TEMPLATE_EXTENSION}"

#: Assertion operators an eval suite may use
EVAL_ASSERTION_OPERATORS: frozenset[str] = frozenset(
    {
        "contains",
        "not_contains",
        "equals",
        "matches",
        "starts_with",
        "ends_with",
        "length",
        "word_count",
        "json_valid",
        "json_schema",
        "llm_judge",
        "sentiment",
        "latency",
        "token_count",
        "cost",
    }
)

#: Directories skipped when discovering eval suites
EVAL_DISCOVERY_SKIP_DIRS: frozenset[str] = frozenset(
    {".git", ".venv", "venv", "node_modules", "dist", "__pycache__"}
)
