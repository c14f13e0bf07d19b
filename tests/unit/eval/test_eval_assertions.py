"""Tests for eval assertion handlers."""

from __future__ import annotations

from typing import Any

import pytest

from echo_pdk.eval.assertions import (
    ASSERTION_HANDLERS,
    AssertionContext,
    run_assertion,
    run_assertions,
)
from echo_pdk.eval.models import EvalAssertion, EvalStatus
from echo_pdk.exceptions import AIJudgeError
from echo_pdk.providers.types import CompletionResponse, TokenUsage
from tests.fixtures.providers import CountingJudge


async def check(
    operator: str, value: Any, text: str, **ctx: Any
) -> tuple[EvalStatus, str | None]:
    result = await run_assertion(
        EvalAssertion(operator=operator, value=value),
        AssertionContext(text=text, **ctx),
    )
    assert result.operator == operator
    return result.status, result.message


def test_every_loadable_operator_has_a_handler() -> None:
    from echo_pdk.constants import EVAL_ASSERTION_OPERATORS

    assert set(ASSERTION_HANDLERS) == EVAL_ASSERTION_OPERATORS


class TestTextAssertions:
    @pytest.mark.parametrize(
        ("operator", "value", "text", "expected"),
        [
            ("contains", "Alice", "Hello Alice!", EvalStatus.PASS),
            ("contains", "Bob", "Hello Alice!", EvalStatus.FAIL),
            ("not_contains", "{{", "Hello Alice!", EvalStatus.PASS),
            ("not_contains", "{{", "Hello {{name}}", EvalStatus.FAIL),
            ("equals", "Hello", "  Hello \n", EvalStatus.PASS),
            ("equals", "Hello", "Hello there", EvalStatus.FAIL),
            ("matches", r"\d{3}", "code 123", EvalStatus.PASS),
            ("matches", r"^\d+$", "code 123", EvalStatus.FAIL),
            ("starts_with", "You are", "\n You are a bot", EvalStatus.PASS),
            ("starts_with", "You are", "Hi. You are", EvalStatus.FAIL),
            ("ends_with", "thanks.", "ok, thanks.  \n", EvalStatus.PASS),
            ("ends_with", "thanks.", "thanks. ok", EvalStatus.FAIL),
            ("contains", 42, "answer: 42", EvalStatus.PASS),
        ],
    )
    async def test_text(
        self, operator: str, value: Any, text: str, expected: EvalStatus
    ) -> None:
        status, _ = await check(operator, value, text)
        assert status is expected

    async def test_contains_failure_reports_output(self) -> None:
        result = await run_assertion(
            EvalAssertion(operator="contains", value="Bob"),
            AssertionContext(text="x" * 150),
        )
        assert result.status is EvalStatus.FAIL
        assert result.message == 'Expected output to contain "Bob"'
        assert result.actual == "x" * 100 + "..."

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ({"min": 5}, EvalStatus.PASS),
            ({"max": 5}, EvalStatus.FAIL),
            ({"min": 1, "max": 20}, EvalStatus.PASS),
            ({"min": 20}, EvalStatus.FAIL),
        ],
    )
    async def test_length(self, value: dict[str, int], expected: EvalStatus) -> None:
        status, _ = await check("length", value, "Hello world")
        assert status is expected

    async def test_word_count_message(self) -> None:
        status, message = await check("word_count", {"max": 2}, "one two  three")
        assert status is EvalStatus.FAIL
        assert message == "word count 3 > max 2"

    async def test_range_needs_a_mapping(self) -> None:
        status, message = await check("length", 10, "text")
        assert status is EvalStatus.ERROR
        assert message is not None
        assert message.startswith("Assertion error:")

    async def test_bad_regex_is_an_error(self) -> None:
        status, message = await check("matches", "(unclosed", "text")
        assert status is EvalStatus.ERROR
        assert message is not None
        assert "Assertion error" in message


class TestStructuralAssertions:
    @pytest.mark.parametrize("operator", ["json_valid", "json_schema"])
    async def test_valid_json(self, operator: str) -> None:
        status, _ = await check(operator, True, '{"a": [1, 2]}')
        assert status is EvalStatus.PASS

    @pytest.mark.parametrize("operator", ["json_valid", "json_schema"])
    async def test_invalid_json(self, operator: str) -> None:
        status, message = await check(operator, True, "{a: 1}")
        assert status is EvalStatus.FAIL
        assert message == "Output is not valid JSON"


class TestAIAssertions:
    async def test_llm_judge_uses_the_judge(self) -> None:
        judge = CountingJudge(answers={"Is it polite?": True})
        status, message = await check(
            "llm_judge", "Is it polite?", "Thank you!", judge=judge
        )
        assert status is EvalStatus.PASS
        assert message == "LLM judge answered yes"
        assert judge.calls == [("Thank you!", "Is it polite?")]

    async def test_llm_judge_no(self) -> None:
        judge = CountingJudge(default=False)
        status, message = await check("llm_judge", "Is it rude?", "Hi", judge=judge)
        assert status is EvalStatus.FAIL
        assert message == "LLM judge answered no"

    async def test_sentiment_asks_about_tone(self) -> None:
        judge = CountingJudge()
        status, _ = await check("sentiment", "positive", "Great!", judge=judge)
        assert status is EvalStatus.PASS
        assert judge.questions == [
            "Does this text have a positive sentiment or tone?"
        ]

    @pytest.mark.parametrize("operator", ["llm_judge", "sentiment"])
    async def test_without_judge(self, operator: str) -> None:
        status, message = await check(operator, "anything", "text")
        assert status is EvalStatus.ERROR
        assert message is not None
        assert "not configured" in message

    async def test_judge_failure_is_an_error(self) -> None:
        judge = CountingJudge(error=AIJudgeError("provider down"))
        status, message = await check("llm_judge", "Q?", "text", judge=judge)
        assert status is EvalStatus.ERROR
        assert message == "Assertion error: provider down"


class TestPerformanceAssertions:
    @pytest.fixture
    def response(self) -> CompletionResponse:
        return CompletionResponse(
            text="hi",
            model="m",
            latency_ms=250.0,
            usage=TokenUsage(prompt=10, completion=30),
        )

    async def test_latency(self, response: CompletionResponse) -> None:
        ok, _ = await check("latency", {"max": 500}, "hi", response=response)
        slow, message = await check("latency", {"max": 100}, "hi", response=response)
        assert ok is EvalStatus.PASS
        assert slow is EvalStatus.FAIL
        assert message == "Latency 250ms exceeds max 100ms"

    async def test_token_count_uses_completion_tokens(
        self, response: CompletionResponse
    ) -> None:
        ok, _ = await check("token_count", {"max": 30}, "hi", response=response)
        over, _ = await check("token_count", {"max": 29}, "hi", response=response)
        assert ok is EvalStatus.PASS
        assert over is EvalStatus.FAIL

    @pytest.mark.parametrize("operator", ["latency", "token_count"])
    async def test_without_response(self, operator: str) -> None:
        status, message = await check(operator, {"max": 1}, "hi")
        assert status is EvalStatus.ERROR
        assert message is not None
        assert message.startswith("No ")

    async def test_cost_has_no_data(self, response: CompletionResponse) -> None:
        status, message = await check("cost", {"max": 0.01}, "hi", response=response)
        assert status is EvalStatus.ERROR
        assert message == "No cost data available"


async def test_unknown_operator_is_an_error() -> None:
    status, message = await check("shouts", "x", "text")
    assert status is EvalStatus.ERROR
    assert message == "Unknown assertion operator: shouts"


async def test_run_assertions_keeps_order() -> None:
    results = await run_assertions(
        [
            EvalAssertion(operator="contains", value="a"),
            EvalAssertion(operator="contains", value="z"),
            EvalAssertion(operator="json_valid", value=True),
        ],
        AssertionContext(text="abc"),
    )
    assert [r.status for r in results] == [
        EvalStatus.PASS,
        EvalStatus.FAIL,
        EvalStatus.FAIL,
    ]
