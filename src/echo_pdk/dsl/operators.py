"""Built-in condition operators.

An operator is applied to a variable in a condition:

    [#IF {{genre}} #equals(Horror)]
    [#IF {{age}} #gte(18)]
    [#IF {{status}} #one_of(active, pending)]
    [#IF {{user.preferences}} #exists]

Operators never raise on type mismatches; they simply return False. The AI
operators (``#ai_judge``/``#ai_gate``) are parsed into dedicated AiJudge
predicates and dispatched to the configured AI judge by the evaluator.
"""

from __future__ import annotations

import re
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any, Literal

__all__ = [
    "Operator",
    "OperatorHandler",
    "BUILTIN_OPERATORS",
    "AI_JUDGE_OPERATORS",
    "get_operator",
    "is_ai_operator",
]

OperatorHandler = Callable[[Any, Any], bool | Awaitable[bool]]

#: Operator names parsed into AiJudge predicates
AI_JUDGE_OPERATORS: frozenset[str] = frozenset({"ai_judge", "ai_gate"})

_LEADING_NUMBER = re.compile(r"\s*[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?")


@dataclass(frozen=True, slots=True)
class Operator:
    """A condition operator.

    Attributes:
        name: Name used after ``#`` in templates.
        handler: ``handler(value, argument) -> bool``; may be async for
            custom operators.
        kind: "unary" (no argument) or "comparison".
        description: One-line help text.
        example: Example usage in template syntax.
    """

    name: str
    handler: OperatorHandler
    kind: Literal["unary", "comparison"] = "comparison"
    description: str = ""
    example: str = ""


def _to_number(value: Any) -> float | None:
    """Coerce like a lenient numeric parse: "18 years" -> 18.0, "abc" -> None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        return float(value)
    if isinstance(value, str):
        m = _LEADING_NUMBER.match(value)
        if m:
            return float(m.group())
    return None


def _as_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _equals(value: Any, argument: Any) -> bool:
    if isinstance(value, str):
        return value.casefold() == _as_text(argument).casefold()
    if isinstance(value, bool):
        return _as_text(value) == _as_text(argument).strip().lower()
    if isinstance(value, int | float):
        return _to_number(argument) == float(value)
    return value == argument


def _contains(value: Any, argument: Any) -> bool:
    needle = _as_text(argument).casefold()
    if isinstance(value, str):
        return needle in value.casefold()
    if isinstance(value, list | tuple):
        return any(_as_text(item).casefold() == needle for item in value)
    return False


def _exists(value: Any, argument: Any = None) -> bool:
    if value is None:
        return False
    if isinstance(value, str | list | tuple | dict):
        return len(value) > 0
    return True


def _matches(value: Any, pattern: Any) -> bool:
    if not isinstance(value, str) or not isinstance(pattern, str):
        return False
    try:
        return re.search(pattern, value) is not None
    except re.error:
        return False


def _numeric(compare: Callable[[float, float], bool]) -> OperatorHandler:
    def handler(value: Any, threshold: Any) -> bool:
        num = _to_number(value)
        limit = _to_number(threshold)
        if num is None or limit is None:
            return False
        return compare(num, limit)

    return handler


def _one_of(value: Any, options: Any) -> bool:
    if isinstance(options, str):
        items = [item.strip() for item in options.split(",")]
    elif isinstance(options, list | tuple):
        items = [_as_text(item) for item in options]
    else:
        return False
    needle = _as_text(value).casefold()
    return any(item.casefold() == needle for item in items)


_gt = Operator(
    name="greater_than",
    handler=_numeric(lambda a, b: a > b),
    description="Greater than",
    example="{{age}} #gt(18)",
)
_gte = Operator(
    name="greater_than_or_equal",
    handler=_numeric(lambda a, b: a >= b),
    description="Greater than or equal",
    example="{{age}} #gte(18)",
)
_lt = Operator(
    name="less_than",
    handler=_numeric(lambda a, b: a < b),
    description="Less than",
    example="{{count}} #lt(10)",
)
_lte = Operator(
    name="less_than_or_equal",
    handler=_numeric(lambda a, b: a <= b),
    description="Less than or equal",
    example="{{count}} #lte(10)",
)
_one_of_op = Operator(
    name="one_of",
    handler=_one_of,
    description="Value is one of a comma-separated list",
    example="{{status}} #one_of(active, pending)",
)
#: Operators available to every template, by name (aliases included)
BUILTIN_OPERATORS: Mapping[str, Operator] = {
    "equals": Operator(
        name="equals",
        handler=_equals,
        description="Equality, case-insensitive for text",
        example="{{genre}} #equals(Horror)",
    ),
    "contains": Operator(
        name="contains",
        handler=_contains,
        description="Substring or list membership",
        example="{{companions}} #contains(Shimon)",
    ),
    "exists": Operator(
        name="exists",
        handler=_exists,
        kind="unary",
        description="Defined and not empty",
        example="{{user.preferences}} #exists",
    ),
    "matches": Operator(
        name="matches",
        handler=_matches,
        description="Regular expression search",
        example="{{email}} #matches(.*@.*)",
    ),
    "greater_than": _gt,
    "gt": _gt,
    "greater_than_or_equal": _gte,
    "gte": _gte,
    "less_than": _lt,
    "lt": _lt,
    "less_than_or_equal": _lte,
    "lte": _lte,
    "one_of": _one_of_op,
    "in": _one_of_op,
}


def get_operator(
    name: str, registry: Mapping[str, Operator] | None = None
) -> Operator | None:
    """Look up an operator by name, custom registry first."""
    if registry is not None and name in registry:
        return registry[name]
    return BUILTIN_OPERATORS.get(name)


def is_ai_operator(name: str) -> bool:
    return name in AI_JUDGE_OPERATORS
