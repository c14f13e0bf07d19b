"""Tests for eval result reporters."""

from __future__ import annotations

import json
import xml.etree.ElementTree as ET

import pytest
from rich.text import Text

from echo_pdk.eval.models import (
    AssertionResult,
    EvalStatus,
    EvalSuiteResult,
    EvalSummary,
    EvalTestResult,
)
from echo_pdk.eval.reporter import (
    EvalReporter,
    format_console,
    format_json,
    format_junit,
    format_results,
)


@pytest.fixture
def result() -> EvalSuiteResult:
    tests = (
        EvalTestResult(
            name="greets",
            status=EvalStatus.PASS,
            assertions=(AssertionResult("contains", EvalStatus.PASS, "Ann"),),
            duration_ms=5,
            rendered_output="Hello Ann!",
        ),
        EvalTestResult(
            name="polite <reply>",
            status=EvalStatus.FAIL,
            assertions=(
                AssertionResult(
                    "contains",
                    EvalStatus.FAIL,
                    expected="[thanks]",
                    actual="Go away",
                    message='Expected output to contain "[thanks]"',
                ),
                AssertionResult(
                    "llm_judge",
                    EvalStatus.PASS,
                    expected="Is it short?",
                    message="LLM judge answered yes",
                ),
            ),
            duration_ms=12,
            rendered_output="Reply politely",
            llm_response="Go away",
        ),
        EvalTestResult(
            name="broken",
            status=EvalStatus.ERROR,
            duration_ms=1,
            error="Dataset & params missing",
        ),
    )
    return EvalSuiteResult(
        suite_name="greetings",
        status=EvalStatus.ERROR,
        tests=tests,
        summary=EvalSummary.from_tests(tests, duration_ms=1500),
    )


def plain(markup: str) -> str:
    return Text.from_markup(markup).plain


class TestConsole:
    def test_lists_tests_and_summary(self, result: EvalSuiteResult) -> None:
        output = plain(format_console(result))

        assert output.splitlines()[0] == "! greetings"
        assert "✓ greets (5ms)" in output
        assert "✗ polite <reply> (12ms)" in output
        assert "! broken (1ms)" in output
        assert "Error: Dataset & params missing" in output
        assert "1 passed, 1 failed, 1 errored, 3 total (1500ms)" in output

    def test_shows_prompt_response_and_failures(
        self, result: EvalSuiteResult
    ) -> None:
        output = plain(format_console(result))

        assert "Rendered prompt:" in output
        assert "Hello Ann!" in output
        assert "LLM response:" in output
        assert '✗ contains: Expected output to contain "[thanks]"' in output
        assert "expected: [thanks]" in output
        assert "actual:   Go away" in output

    def test_ai_verdicts_shown_on_pass(self, result: EvalSuiteResult) -> None:
        output = plain(format_console(result))
        assert "✓ llm_judge: LLM judge answered yes" in output
        assert "✓ contains:" not in output

    def test_suite_error(self) -> None:
        result = EvalSuiteResult(
            suite_name="s",
            status=EvalStatus.ERROR,
            tests=(),
            summary=EvalSummary.from_tests((), 0),
            error="Failed to load target prompt: /p/prompt.echo",
        )
        output = plain(format_console(result))
        assert "Error: Failed to load target prompt: /p/prompt.echo" in output
        assert "0 total" in output


def test_json(result: EvalSuiteResult) -> None:
    data = json.loads(format_json(result))

    assert data["suite_name"] == "greetings"
    assert data["status"] == "error"
    assert data["summary"] == {
        "total": 3,
        "passed": 1,
        "failed": 1,
        "errored": 1,
        "duration_ms": 1500,
    }
    assert data["tests"][1]["assertions"][0]["status"] == "fail"
    assert data["tests"][1]["llm_response"] == "Go away"


class TestJunit:
    def test_document(self, result: EvalSuiteResult) -> None:
        root = ET.fromstring(format_junit(result))

        assert root.tag == "testsuite"
        assert root.attrib == {
            "name": "greetings",
            "tests": "3",
            "failures": "1",
            "errors": "1",
            "time": "1.500",
        }
        cases = root.findall("testcase")
        assert [c.attrib["name"] for c in cases] == [
            "greets",
            "polite <reply>",
            "broken",
        ]
        assert cases[0].find("failure") is None
        failure = cases[1].find("failure")
        assert failure is not None
        assert failure.attrib["message"] == 'Expected output to contain "[thanks]"'
        assert "expected: [thanks]" in (failure.text or "")
        error = cases[2].find("error")
        assert error is not None
        assert error.attrib["message"] == "Dataset & params missing"

    def test_assertion_errors(self) -> None:
        tests = (
            EvalTestResult(
                name="llm",
                status=EvalStatus.ERROR,
                assertions=(
                    AssertionResult(
                        "llm_call",
                        EvalStatus.ERROR,
                        message="No completion provider configured",
                    ),
                ),
            ),
        )
        result = EvalSuiteResult(
            suite_name="s",
            status=EvalStatus.ERROR,
            tests=tests,
            summary=EvalSummary.from_tests(tests, 0),
        )
        error = ET.fromstring(format_junit(result)).find("testcase/error")
        assert error is not None
        assert error.attrib["message"] == "No completion provider configured"

    def test_suite_error_is_an_errored_case(self) -> None:
        result = EvalSuiteResult(
            suite_name="s",
            status=EvalStatus.ERROR,
            tests=(),
            summary=EvalSummary.from_tests((), 0),
            error="Failed to load target prompt",
        )
        root = ET.fromstring(format_junit(result))
        assert root.attrib["errors"] == "1"
        assert root.find("testcase/error") is not None


class TestFormatResults:
    @pytest.mark.parametrize(
        ("reporter", "formatter"),
        [
            ("console", format_console),
            (EvalReporter.JSON, format_json),
            ("junit", format_junit),
        ],
    )
    def test_dispatch(self, result: EvalSuiteResult, reporter, formatter) -> None:
        assert format_results(result, reporter) == formatter(result)

    def test_unknown_reporter(self, result: EvalSuiteResult) -> None:
        with pytest.raises(ValueError):
            format_results(result, "html")
