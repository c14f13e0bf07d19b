"""Tests for `echo-pdk eval`."""

from __future__ import annotations

import json
import os
import sys
import types
import xml.etree.ElementTree as ET
from pathlib import Path

import click
import pytest
from click.testing import CliRunner

from echo_pdk.cli.commands.eval import find_eval_files, load_completion_provider
from echo_pdk.cli.context import ExitCode
from echo_pdk.exceptions import PluginError
from echo_pdk.main import cli
from tests.fixtures.providers import FakeCompletionProvider

PASSING = """
suite: greetings
tests:
  - name: greets by name
    given: {name: Ada}
    expect_render:
      - contains: Ada
"""

MIXED = """
suite: mixed
tests:
  - name: greets by name
    given: {name: Ada}
    expect_render: [{contains: Ada}]
  - name: expects a farewell
    given: {name: Ada}
    expect_render: [{contains: Goodbye}]
"""

LLM = """
suite: replies
tests:
  - name: polite reply
    given: {name: Ada}
    expect_llm: [{contains: thanks}]
"""


@pytest.fixture
def project(
    clean_env: None, temp_dir: Path, monkeypatch: pytest.MonkeyPatch
) -> Path:
    """Working directory holding one prompt directory, greeting/."""
    os.chdir(temp_dir)
    monkeypatch.setattr(Path, "home", lambda: temp_dir / "home")
    (temp_dir / "greeting" / "eval" / "tests").mkdir(parents=True)
    (temp_dir / "greeting" / "prompt.echo").write_text("Hello {{name}}!")
    return temp_dir


def add_suite(project: Path, name: str, content: str) -> Path:
    path = project / "greeting" / "eval" / "tests" / f"{name}.eval"
    path.write_text(content)
    return path


@pytest.fixture
def provider_module(monkeypatch: pytest.MonkeyPatch) -> FakeCompletionProvider:
    """Module ``echo_test_llm`` exposing a provider, a factory and a dud."""
    provider = FakeCompletionProvider(answers=["thanks!"])
    module = types.ModuleType("echo_test_llm")
    module.provider = provider
    module.Provider = FakeCompletionProvider
    module.dud = "not a provider"
    monkeypatch.setitem(sys.modules, "echo_test_llm", module)
    return provider


class TestEvalCommand:
    def test_no_suites(self, cli_runner: CliRunner, project: Path) -> None:
        result = cli_runner.invoke(cli, ["eval"])
        assert result.exit_code == 0
        assert "No .eval files found." in result.output

    def test_passing_suite(self, cli_runner: CliRunner, project: Path) -> None:
        add_suite(project, "smoke", PASSING)
        result = cli_runner.invoke(cli, ["eval"])

        assert result.exit_code == 0, result.output
        assert "greeting/eval/tests/smoke.eval" in result.output
        assert "greetings" in result.output
        assert "1 passed" in result.output

    def test_failing_suite(self, cli_runner: CliRunner, project: Path) -> None:
        add_suite(project, "mixed", MIXED)
        result = cli_runner.invoke(cli, ["eval"])

        assert result.exit_code == ExitCode.FAILURE
        assert "expects a farewell" in result.output
        assert "1 failed" in result.output

    def test_filter(self, cli_runner: CliRunner, project: Path) -> None:
        add_suite(project, "mixed", MIXED)
        result = cli_runner.invoke(cli, ["eval", "--filter", "BY NAME"])

        assert result.exit_code == 0, result.output
        assert "expects a farewell" not in result.output

    def test_path_without_extension(
        self, cli_runner: CliRunner, project: Path
    ) -> None:
        add_suite(project, "smoke", PASSING)
        add_suite(project, "mixed", MIXED)
        result = cli_runner.invoke(
            cli, ["eval", "greeting/eval/tests/smoke"]
        )
        assert result.exit_code == 0, result.output
        assert "mixed" not in result.output

    def test_overall_summary(self, cli_runner: CliRunner, project: Path) -> None:
        add_suite(project, "smoke", PASSING)
        add_suite(project, "mixed", MIXED)
        result = cli_runner.invoke(cli, ["eval"])

        assert result.exit_code == ExitCode.FAILURE
        assert "Overall Summary:" in result.output
        assert "Suites: 2" in result.output

    def test_json_reporter(self, cli_runner: CliRunner, project: Path) -> None:
        add_suite(project, "smoke", PASSING)
        result = cli_runner.invoke(cli, ["eval", "--reporter", "json"])

        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["suite_name"] == "greetings"
        assert data["status"] == "pass"

    def test_junit_reporter(self, cli_runner: CliRunner, project: Path) -> None:
        add_suite(project, "mixed", MIXED)
        result = cli_runner.invoke(cli, ["eval", "--reporter", "junit"])

        assert result.exit_code == ExitCode.FAILURE
        root = ET.fromstring(result.stdout)
        assert root.attrib["name"] == "mixed"
        assert root.attrib["failures"] == "1"

    def test_llm_suite_without_provider(
        self, cli_runner: CliRunner, project: Path
    ) -> None:
        add_suite(project, "llm", LLM)
        result = cli_runner.invoke(cli, ["eval"])

        assert result.exit_code == ExitCode.FAILURE
        assert "No completion provider configured" in result.output
        assert "1 errored" in result.output

    def test_llm_suite_with_provider(
        self,
        cli_runner: CliRunner,
        project: Path,
        provider_module: FakeCompletionProvider,
    ) -> None:
        add_suite(project, "llm", LLM)
        result = cli_runner.invoke(
            cli, ["eval", "--provider", "echo_test_llm:provider", "--model", "m-1"]
        )

        assert result.exit_code == 0, result.output
        assert provider_module.call_count == 1
        messages, options = provider_module.calls[0]
        assert messages[0].content == "Hello Ada!"
        assert options is not None
        assert options.model == "m-1"

    def test_bad_provider(self, cli_runner: CliRunner, project: Path) -> None:
        add_suite(project, "smoke", PASSING)
        result = cli_runner.invoke(cli, ["eval", "--provider", "no_such_mod_xyz:p"])

        assert result.exit_code == ExitCode.FAILURE
        assert "Cannot import module no_such_mod_xyz" in result.output

    def test_bad_plugin(self, cli_runner: CliRunner, project: Path) -> None:
        add_suite(project, "smoke", PASSING)
        result = cli_runner.invoke(
            cli, ["eval", "--plugin", "echo_pdk.plugins:__all__"]
        )

        assert result.exit_code == ExitCode.FAILURE
        assert "Plugin must be an EchoPlugin, got list" in result.output

    def test_malformed_suite(self, cli_runner: CliRunner, project: Path) -> None:
        add_suite(project, "broken", "suite: broken\n")
        result = cli_runner.invoke(cli, ["eval"])

        assert result.exit_code == ExitCode.FAILURE
        assert "Missing or empty required field: tests" in result.output

    def test_missing_path(self, cli_runner: CliRunner, project: Path) -> None:
        result = cli_runner.invoke(cli, ["eval", "nowhere.eval"])
        assert result.exit_code == 2
        assert "Eval file not found" in result.output


class TestFindEvalFiles:
    def test_walks_and_skips(self, temp_dir: Path) -> None:
        for relative in [
            "b/eval/tests/two.eval",
            "a/eval/tests/one.eval",
            ".git/hooks/ignored.eval",
            "node_modules/pkg/ignored.eval",
            "a/eval/tests/notes.txt",
        ]:
            path = temp_dir / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text("")

        found = find_eval_files(temp_dir)
        assert found == [
            temp_dir / "a/eval/tests/one.eval",
            temp_dir / "b/eval/tests/two.eval",
        ]
        assert find_eval_files(temp_dir, Path("b")) == [
            temp_dir / "b/eval/tests/two.eval"
        ]

    def test_missing(self, temp_dir: Path) -> None:
        with pytest.raises(click.BadParameter, match="Eval file not found"):
            find_eval_files(temp_dir, Path("missing"))


class TestLoadCompletionProvider:
    def test_instance(self, provider_module: FakeCompletionProvider) -> None:
        assert load_completion_provider("echo_test_llm:provider") is provider_module

    def test_class_is_instantiated(
        self, provider_module: FakeCompletionProvider
    ) -> None:
        provider = load_completion_provider("echo_test_llm:Provider")
        assert isinstance(provider, FakeCompletionProvider)

    def test_not_a_provider(self, provider_module: FakeCompletionProvider) -> None:
        with pytest.raises(PluginError, match="is not a completion provider"):
            load_completion_provider("echo_test_llm:dud")
