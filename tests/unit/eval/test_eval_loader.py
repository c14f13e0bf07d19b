"""Tests for loading .eval suites and .dset datasets."""

from __future__ import annotations

from pathlib import Path

import pytest

from echo_pdk.eval.loader import (
    load_dataset_file,
    load_eval_file,
    parse_dataset_content,
    parse_eval_content,
)
from echo_pdk.eval.models import EvalAssertion
from echo_pdk.exceptions import EvalLoadError

SUITE = """
suite: greetings
config:
  target: greet.echo
  model: gpt-4o-mini
  timeout: 20
tests:
  - name: greets by name
    given:
      name: Alice
    expect_render:
      - contains: Alice
      - not_contains: "{{"
  - name: family tone
    dataset: users
    params: family
    expect_llm:
      - llm_judge: Is this friendly?
      - word_count: {max: 50}
"""

DATASET = """
name: users
description: Sample users
golden:
  response: Hi there
  model: gpt-4o-mini
parameters:
  - name: family
    name_of_user: Ann
    age: 40
  - name: solo
    name_of_user: Bo
"""


class TestParseEvalContent:
    def test_full_suite(self) -> None:
        suite = parse_eval_content(SUITE)

        assert suite.suite == "greetings"
        assert suite.config.target == "greet.echo"
        assert suite.config.model == "gpt-4o-mini"
        assert suite.config.timeout == 20
        assert [t.name for t in suite.tests] == ["greets by name", "family tone"]
        first, second = suite.tests
        assert first.given == {"name": "Alice"}
        assert first.expect_render == [
            EvalAssertion(operator="contains", value="Alice"),
            EvalAssertion(operator="not_contains", value="{{"),
        ]
        assert first.expect_llm is None
        assert second.dataset == "users"
        assert second.params == "family"
        assert second.expect_llm[1] == EvalAssertion(
            operator="word_count", value={"max": 50}
        )

    def test_config_defaults(self) -> None:
        suite = parse_eval_content(
            "suite: s\ntests:\n  - name: t\n"
            "    expect_render:\n      - json_valid: true\n"
        )
        assert suite.config.target == "prompt.echo"
        assert suite.config.model is None
        assert suite.config.timeout is None

    @pytest.mark.parametrize(
        ("content", "message"),
        [
            ("- just\n- a list\n", "expected YAML object"),
            ("tests: []\n", "Missing required field: suite"),
            ("suite: s\n", "Missing or empty required field: tests"),
            ("suite: s\ntests: []\n", "Missing or empty required field: tests"),
            (
                "suite: s\ntests:\n  - given: {a: 1}\n",
                "Test at index 0 missing required field: name",
            ),
            (
                "suite: s\ntests:\n  - name: t\n    given: {a: 1}\n",
                'Test "t" has no assertions',
            ),
            (
                "suite: s\ntests:\n  - name: t\n    expect_render:\n      - {}\n",
                'Empty assertion at index 0 in test "t"',
            ),
            (
                "suite: s\ntests:\n  - name: t\n    expect_render:\n"
                "      - shouts: LOUD\n",
                'Unknown assertion operator "shouts" in test "t"',
            ),
            (
                "suite: s\ntests:\n  - name: t\n    expect_llm:\n"
                "      - similar_to: {dataset: d, threshold: 0.8}\n",
                "is not supported",
            ),
        ],
    )
    def test_invalid_suites(self, content: str, message: str) -> None:
        with pytest.raises(EvalLoadError, match=message):
            parse_eval_content(content)

    def test_yaml_syntax_error(self) -> None:
        with pytest.raises(EvalLoadError, match="YAML syntax error"):
            parse_eval_content("suite: [unclosed\n")

    def test_schema_error_names_the_field(self) -> None:
        content = (
            "suite: s\nconfig:\n  timeout: -1\n"
            "tests:\n  - name: t\n    expect_render:\n      - contains: x\n"
        )
        with pytest.raises(EvalLoadError, match="config.timeout"):
            parse_eval_content(content)

    def test_error_names_source(self) -> None:
        with pytest.raises(EvalLoadError) as exc_info:
            parse_eval_content("suite: s\n", source="smoke.eval")
        assert exc_info.value.source == "smoke.eval"
        assert exc_info.value.message.endswith("(in smoke.eval)")


class TestParseDatasetContent:
    def test_full_dataset(self) -> None:
        dataset = parse_dataset_content(DATASET)

        assert dataset.name == "users"
        assert dataset.description == "Sample users"
        assert dataset.golden is not None
        assert dataset.golden.response == "Hi there"
        assert dataset.golden.recorded_at is None
        assert dataset.parameters[0] == {
            "name": "family",
            "name_of_user": "Ann",
            "age": 40,
        }

    @pytest.mark.parametrize(
        ("content", "message"),
        [
            ("parameters: [{name: a}]\n", "Missing required field: name"),
            ("name: d\n", "Missing or empty required field: parameters"),
            ("name: d\nparameters: []\n", "Missing or empty required field"),
            (
                "name: d\nparameters:\n  - {age: 3}\n",
                "Parameter set at index 0 missing required field: name",
            ),
        ],
    )
    def test_invalid_datasets(self, content: str, message: str) -> None:
        with pytest.raises(EvalLoadError, match=message):
            parse_dataset_content(content)


class TestLoadFiles:
    def test_load_eval_file(self, temp_dir: Path) -> None:
        path = temp_dir / "smoke.eval"
        path.write_text(SUITE, encoding="utf-8")
        assert load_eval_file(path).suite == "greetings"

    def test_load_dataset_file(self, temp_dir: Path) -> None:
        path = temp_dir / "users.dset"
        path.write_text(DATASET, encoding="utf-8")
        assert load_dataset_file(path).name == "users"

    def test_missing_file(self, temp_dir: Path) -> None:
        path = temp_dir / "missing.eval"
        with pytest.raises(EvalLoadError, match="Cannot read file") as exc_info:
            load_eval_file(path)
        assert exc_info.value.source == str(path)

    def test_undecodable_file(self, temp_dir: Path) -> None:
        path = temp_dir / "binary.dset"
        path.write_bytes(b"\xff\xfe\x00bad")
        with pytest.raises(EvalLoadError, match="Cannot read file"):
            load_dataset_file(path)
