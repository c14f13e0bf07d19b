"""Assertion handlers for eval tests.

Handlers are grouped by what they inspect:

- Text: contains, not_contains, equals, matches, starts_with, ends_with,
  length, word_count
- Structure: json_valid, json_schema
- AI: llm_judge, sentiment (need an AIProvider)
- Performance: latency, token_count, cost (need a CompletionResponse)

A handler never raises: a handler exception becomes an error result.
"""

from __future__ import annotations

import json
import re
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from echo_pdk.eval.models import AssertionResult, EvalAssertion, EvalStatus
from echo_pdk.logging import get_logger
from echo_pdk.protocols import AIProvider
from echo_pdk.providers.types import CompletionResponse

__all__ = [
    "AssertionContext",
    "AssertionHandler",
    "ASSERTION_HANDLERS",
    "run_assertion",
    "run_assertions",
]

logger = get_logger(__name__)

_DISPLAY_LIMIT = 100


@dataclass(frozen=True, slots=True)
class AssertionContext:
    """What an assertion is checked against.

    Attributes:
        text: Rendered prompt or completion text.
        response: Completion metadata for performance assertions.
        judge: Yes/no judge for AI assertions.
    """

    text: str
    response: CompletionResponse | None = None
    judge: AIProvider | None = None


AssertionHandler = Callable[[Any, AssertionContext], Awaitable[AssertionResult]]


def _truncate(text: str, limit: int = _DISPLAY_LIMIT) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


def _status(passed: bool) -> EvalStatus:
    return EvalStatus.PASS if passed else EvalStatus.FAIL


def _bounds(value: Any) -> tuple[float | None, float | None]:
    if not isinstance(value, Mapping):
        raise ValueError(f"expected a mapping with min/max, got {value!r}")
    return value.get("min"), value.get("max")


def _check_range(
    operator: str, measured: float, value: Any, unit: str
) -> AssertionResult:
    low, high = _bounds(value)
    problems = []
    if low is not None and measured < low:
        problems.append(f"{unit} {measured} < min {low}")
    if high is not None and measured > high:
        problems.append(f"{unit} {measured} > max {high}")
    shown_low = 0 if low is None else low
    shown_high = "inf" if high is None else high
    return AssertionResult(
        operator=operator,
        status=_status(not problems),
        expected=f"{shown_low}..{shown_high}",
        actual=str(measured),
        message=", ".join(problems) or None,
    )


# =============================================================================
# Text Assertions
# =============================================================================


async def _contains(value: Any, ctx: AssertionContext) -> AssertionResult:
    expected = str(value)
    passed = expected in ctx.text
    return AssertionResult(
        operator="contains",
        status=_status(passed),
        expected=expected,
        actual=None if passed else _truncate(ctx.text),
        message=None if passed else f'Expected output to contain "{expected}"',
    )


async def _not_contains(value: Any, ctx: AssertionContext) -> AssertionResult:
    expected = str(value)
    passed = expected not in ctx.text
    return AssertionResult(
        operator="not_contains",
        status=_status(passed),
        expected=f'not "{expected}"',
        message=None if passed else f'Expected output NOT to contain "{expected}"',
    )


async def _equals(value: Any, ctx: AssertionContext) -> AssertionResult:
    expected = str(value)
    passed = ctx.text.strip() == expected.strip()
    return AssertionResult(
        operator="equals",
        status=_status(passed),
        expected=expected,
        actual=None if passed else _truncate(ctx.text),
        message=None if passed else "Output does not match expected text",
    )


async def _matches(value: Any, ctx: AssertionContext) -> AssertionResult:
    pattern = str(value)
    passed = re.search(pattern, ctx.text) is not None
    return AssertionResult(
        operator="matches",
        status=_status(passed),
        expected=pattern,
        message=None if passed else f"Output does not match pattern: {pattern}",
    )


async def _starts_with(value: Any, ctx: AssertionContext) -> AssertionResult:
    expected = str(value)
    passed = ctx.text.lstrip().startswith(expected)
    return AssertionResult(
        operator="starts_with",
        status=_status(passed),
        expected=expected,
        message=None if passed else f'Expected output to start with "{expected}"',
    )


async def _ends_with(value: Any, ctx: AssertionContext) -> AssertionResult:
    expected = str(value)
    passed = ctx.text.rstrip().endswith(expected)
    return AssertionResult(
        operator="ends_with",
        status=_status(passed),
        expected=expected,
        message=None if passed else f'Expected output to end with "{expected}"',
    )


async def _length(value: Any, ctx: AssertionContext) -> AssertionResult:
    return _check_range("length", len(ctx.text), value, "length")


async def _word_count(value: Any, ctx: AssertionContext) -> AssertionResult:
    return _check_range("word_count", len(ctx.text.split()), value, "word count")


# =============================================================================
# Structural Assertions
# =============================================================================


def _is_json(text: str) -> bool:
    try:
        json.loads(text)
    except json.JSONDecodeError:
        return False
    return True


async def _json_valid(value: Any, ctx: AssertionContext) -> AssertionResult:
    passed = _is_json(ctx.text)
    return AssertionResult(
        operator="json_valid",
        status=_status(passed),
        message=None if passed else "Output is not valid JSON",
    )


async def _json_schema(value: Any, ctx: AssertionContext) -> AssertionResult:
    # Only well-formedness is checked; the schema itself is not applied.
    passed = _is_json(ctx.text)
    return AssertionResult(
        operator="json_schema",
        status=_status(passed),
        message=(
            "JSON is valid (schema not checked)"
            if passed
            else "Output is not valid JSON"
        ),
    )


# =============================================================================
# AI Assertions
# =============================================================================


def _no_judge(operator: str) -> AssertionResult:
    return AssertionResult(
        operator=operator,
        status=EvalStatus.ERROR,
        message=f"AI provider not configured; cannot run {operator} assertion",
    )


async def _llm_judge(value: Any, ctx: AssertionContext) -> AssertionResult:
    question = str(value)
    if ctx.judge is None:
        return _no_judge("llm_judge")
    passed = await ctx.judge.evaluate(ctx.text, question)
    return AssertionResult(
        operator="llm_judge",
        status=_status(passed),
        expected=question,
        message=f"LLM judge answered {'yes' if passed else 'no'}",
    )


async def _sentiment(value: Any, ctx: AssertionContext) -> AssertionResult:
    expected = str(value)
    if ctx.judge is None:
        return _no_judge("sentiment")
    question = f"Does this text have a {expected} sentiment or tone?"
    passed = await ctx.judge.evaluate(ctx.text, question)
    return AssertionResult(
        operator="sentiment",
        status=_status(passed),
        expected=expected,
        message=(
            f"Sentiment is {expected}"
            if passed
            else f"Sentiment does not match expected: {expected}"
        ),
    )


# =============================================================================
# Performance Assertions
# =============================================================================


def _no_data(operator: str, what: str) -> AssertionResult:
    return AssertionResult(
        operator=operator,
        status=EvalStatus.ERROR,
        message=f"No {what} data available",
    )


async def _latency(value: Any, ctx: AssertionContext) -> AssertionResult:
    if ctx.response is None:
        return _no_data("latency", "latency")
    _, limit = _bounds(value)
    actual = ctx.response.latency_ms
    passed = limit is None or actual <= limit
    return AssertionResult(
        operator="latency",
        status=_status(passed),
        expected=f"<= {limit}ms",
        actual=f"{actual:.0f}ms",
        message=None if passed else f"Latency {actual:.0f}ms exceeds max {limit}ms",
    )


async def _token_count(value: Any, ctx: AssertionContext) -> AssertionResult:
    if ctx.response is None:
        return _no_data("token_count", "token count")
    return _check_range(
        "token_count", ctx.response.usage.completion, value, "tokens"
    )


async def _cost(value: Any, ctx: AssertionContext) -> AssertionResult:
    # CompletionResponse carries no pricing.
    return _no_data("cost", "cost")


ASSERTION_HANDLERS: Mapping[str, AssertionHandler] = {
    "contains": _contains,
    "not_contains": _not_contains,
    "equals": _equals,
    "matches": _matches,
    "starts_with": _starts_with,
    "ends_with": _ends_with,
    "length": _length,
    "word_count": _word_count,
    "json_valid": _json_valid,
    "json_schema": _json_schema,
    "llm_judge": _llm_judge,
    "sentiment": _sentiment,
    "latency": _latency,
    "token_count": _token_count,
    "cost": _cost,
}


# =============================================================================
# Runner
# =============================================================================


async def run_assertion(
    assertion: EvalAssertion, ctx: AssertionContext
) -> AssertionResult:
    """Run one assertion. Unknown operators and handler errors give an
    error result instead of raising."""
    handler = ASSERTION_HANDLERS.get(assertion.operator)
    if handler is None:
        return AssertionResult(
            operator=assertion.operator,
            status=EvalStatus.ERROR,
            message=f"Unknown assertion operator: {assertion.operator}",
        )
    try:
        return await handler(assertion.value, ctx)
    except Exception as e:
        logger.debug("assertion_error", operator=assertion.operator, error=str(e))
        return AssertionResult(
            operator=assertion.operator,
            status=EvalStatus.ERROR,
            message=f"Assertion error: {e}",
        )


async def run_assertions(
    assertions: Sequence[EvalAssertion], ctx: AssertionContext
) -> list[AssertionResult]:
    """Run assertions in order against the same context."""
    return [await run_assertion(assertion, ctx) for assertion in assertions]
