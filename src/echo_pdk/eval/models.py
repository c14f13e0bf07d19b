"""Models for eval suites, datasets and their results.

Suites (``.eval``) and datasets (``.dset``) are YAML documents validated
into Pydantic models. Results are frozen dataclasses produced by the
runner and consumed by the reporters.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from echo_pdk.constants import DEFAULT_EVAL_TARGET

__all__ = [
    # Enums
    "EvalStatus",
    # Suite models
    "EvalAssertion",
    "EvalSuiteConfig",
    "EvalTest",
    "EvalSuite",
    # Dataset models
    "EvalGolden",
    "EvalDataset",
    # Results
    "AssertionResult",
    "EvalTestResult",
    "EvalSummary",
    "EvalSuiteResult",
    "combine_statuses",
]


class EvalStatus(str, Enum):
    """Outcome of an assertion, a test or a suite."""

    PASS = "pass"
    FAIL = "fail"
    ERROR = "error"


def combine_statuses(statuses: Iterable[EvalStatus]) -> EvalStatus:
    """Worst status wins: error, then fail, then pass.

    An empty input passes.
    """
    seen = set(statuses)
    if EvalStatus.ERROR in seen:
        return EvalStatus.ERROR
    if EvalStatus.FAIL in seen:
        return EvalStatus.FAIL
    return EvalStatus.PASS


# =============================================================================
# Suite Models
# =============================================================================


class EvalAssertion(BaseModel):
    """One expectation, written in YAML as a single-key mapping.

    ``{"contains": "Alice"}`` becomes ``EvalAssertion(operator="contains",
    value="Alice")``.
    """

    model_config = ConfigDict(frozen=True)

    operator: str
    value: Any = None


class EvalSuiteConfig(BaseModel):
    """Suite-wide settings.

    Attributes:
        target: Template path, relative to the prompt directory.
        model: Model requested for ``expect_llm`` completions.
        timeout: Seconds allowed per completion. None means no limit.
    """

    target: str = DEFAULT_EVAL_TARGET
    model: str | None = None
    timeout: float | None = Field(default=None, gt=0)


class EvalTest(BaseModel):
    """A single eval test case.

    Variables come from ``given``, or from a dataset parameter set
    (``dataset`` plus ``params``; the first set when ``params`` is omitted).
    """

    name: str
    given: dict[str, Any] | None = None
    dataset: str | None = None
    params: str | None = None
    expect_render: list[EvalAssertion] | None = None
    expect_llm: list[EvalAssertion] | None = None


class EvalSuite(BaseModel):
    suite: str
    config: EvalSuiteConfig = Field(default_factory=EvalSuiteConfig)
    tests: list[EvalTest] = Field(min_length=1)


# =============================================================================
# Dataset Models
# =============================================================================


class EvalGolden(BaseModel):
    """A recorded reference response.

    Attributes:
        response: Response text.
        model: Model that produced it.
        recorded_at: ISO 8601 timestamp of the recording.
        metadata: Token and latency figures at recording time.
    """

    response: str = ""
    model: str | None = None
    recorded_at: str | None = None
    metadata: dict[str, Any] | None = None


class EvalDataset(BaseModel):
    """Named parameter sets plus an optional golden response.

    Each parameter set is a mapping with a ``name`` key; the remaining keys
    are template variables.
    """

    name: str
    description: str | None = None
    golden: EvalGolden | None = None
    parameters: list[dict[str, Any]] = Field(default_factory=list)


# =============================================================================
# Results
# =============================================================================


@dataclass(frozen=True, slots=True)
class AssertionResult:
    """Outcome of one assertion.

    Attributes:
        operator: Assertion operator, or "llm_call" for a failed completion.
        status: Pass, fail or error.
        expected: What the assertion wanted, for display.
        actual: What it found, for display.
        message: Explanation; set on failure and for AI assertions.
    """

    operator: str
    status: EvalStatus
    expected: str | None = None
    actual: str | None = None
    message: str | None = None

    @property
    def passed(self) -> bool:
        return self.status is EvalStatus.PASS


@dataclass(frozen=True, slots=True)
class EvalTestResult:
    """Outcome of one test.

    Attributes:
        name: Test name.
        status: Worst status of its assertions, or error if it could not run.
        assertions: Results in declaration order (render, then LLM).
        duration_ms: Wall-clock time of the test.
        rendered_output: The rendered prompt, when rendering succeeded.
        llm_response: Completion text, when ``expect_llm`` ran. Empty when
            the completion call failed.
        error: Why the test could not run.
    """

    name: str
    status: EvalStatus
    assertions: tuple[AssertionResult, ...] = ()
    duration_ms: int = 0
    rendered_output: str | None = None
    llm_response: str | None = None
    error: str | None = None


@dataclass(frozen=True, slots=True)
class EvalSummary:
    total: int
    passed: int
    failed: int
    errored: int
    duration_ms: int

    @classmethod
    def from_tests(
        cls, tests: Iterable[EvalTestResult], duration_ms: int
    ) -> EvalSummary:
        statuses = [t.status for t in tests]
        return cls(
            total=len(statuses),
            passed=sum(1 for s in statuses if s is EvalStatus.PASS),
            failed=sum(1 for s in statuses if s is EvalStatus.FAIL),
            errored=sum(1 for s in statuses if s is EvalStatus.ERROR),
            duration_ms=duration_ms,
        )


@dataclass(frozen=True, slots=True)
class EvalSuiteResult:
    """Outcome of a whole suite.

    Attributes:
        suite_name: Name from the ``suite`` field.
        status: Worst test status; error when the suite could not run.
        tests: Per-test results.
        summary: Counts and total duration.
        error: Why the suite could not run (e.g. missing target template).
    """

    suite_name: str
    status: EvalStatus
    tests: tuple[EvalTestResult, ...]
    summary: EvalSummary
    error: str | None = None
