"""Tests for the echo-pdk exception hierarchy."""

from __future__ import annotations

import pytest

from echo_pdk.dsl.parser import parse
from echo_pdk.exceptions import (
    AIJudgeError,
    ConfigError,
    ContextResolutionError,
    EchoError,
    EchoSyntaxError,
    EchoValidationError,
    EvalLoadError,
    EvaluationError,
    EvaluationTimeoutError,
    PluginError,
    RenderError,
    ResolutionError,
)


@pytest.mark.parametrize(
    "error",
    [
        ConfigError("bad", field="strict", value="x"),
        EchoSyntaxError("bad"),
        EchoValidationError("bad", "plp://x"),
        EvaluationError("bad"),
        RenderError("bad", node_type="VariableNode"),
        ContextResolutionError("bad", "plp://x", "unauthorized"),
        AIJudgeError("bad", question="Q?"),
        EvaluationTimeoutError("bad", timeout_seconds=1.0),
        EvalLoadError("bad"),
        PluginError("bad", plugin="pkg:plugin"),
    ],
)
def test_all_errors_are_echo_errors(error: EchoError) -> None:
    assert isinstance(error, EchoError)
    assert error.message == "bad"
    assert str(error) == "bad"


def test_resolution_errors_share_a_base() -> None:
    for cls in (ContextResolutionError, AIJudgeError, EvaluationTimeoutError):
        assert issubclass(cls, ResolutionError)


def test_evaluation_error_lists_available_variables() -> None:
    error = EvaluationError("Unknown variable 'x'", context_vars=("b", "a"))
    assert error.context_vars == ("b", "a")
    assert error.message.endswith("Available variables: a, b")


def test_syntax_error_keeps_parse_errors() -> None:
    errors = parse("[#IF {{x}}]open").errors
    error = EchoSyntaxError("Template has syntax errors", errors)
    assert error.errors == tuple(errors)
    assert error.errors[0].location is not None


def test_eval_load_error_names_its_source() -> None:
    error = EvalLoadError("Missing required field: suite", source="smoke.eval")
    assert error.source == "smoke.eval"
    assert error.message == "Missing required field: suite (in smoke.eval)"
