"""Unit tests for the echo-pdk CLI.

These tests drive the Click group through CliRunner: version and help
output, the render and validate commands, and exit codes.
"""

from __future__ import annotations

import os
from pathlib import Path
from unittest.mock import patch

import click
import pytest
from click.testing import CliRunner

from echo_pdk import __version__
from echo_pdk.cli.commands.render import load_input_file, parse_input_pairs
from echo_pdk.cli.context import ExitCode
from echo_pdk.main import cli


@pytest.fixture
def workdir(
    clean_env: None, temp_dir: Path, monkeypatch: pytest.MonkeyPatch
) -> Path:
    """Empty working directory with no project or user config."""
    os.chdir(temp_dir)
    monkeypatch.setattr(Path, "home", lambda: temp_dir / "home")
    return temp_dir


def write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    return path


def test_version_output(cli_runner: CliRunner) -> None:
    result = cli_runner.invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_help_lists_commands(cli_runner: CliRunner, workdir: Path) -> None:
    result = cli_runner.invoke(cli, [])
    assert result.exit_code == 0
    assert "render" in result.output
    assert "validate" in result.output
    assert "eval" in result.output


def test_usage_error(cli_runner: CliRunner) -> None:
    result = cli_runner.invoke(cli, ["--invalid-option"])
    assert result.exit_code == 2


class TestRenderCommand:
    """Tests for `echo-pdk render`."""

    def test_render_with_inputs(self, cli_runner: CliRunner, workdir: Path) -> None:
        template = write(
            workdir / "greet.echo",
            "Hello {{name}}![#IF {{vip}}] Welcome back.[END IF]",
        )
        result = cli_runner.invoke(
            cli, ["render", str(template), "-i", "name=Ada", "-i", "vip=true"]
        )
        assert result.exit_code == 0, result.output
        assert result.output == "Hello Ada! Welcome back.\n"

    def test_input_file_and_overrides(
        self, cli_runner: CliRunner, workdir: Path
    ) -> None:
        template = write(workdir / "t.echo", "{{name}} is {{age:number}}")
        inputs = write(workdir / "vars.yaml", "name: Ada\nage: 36.0\n")
        result = cli_runner.invoke(
            cli,
            ["render", str(template), "--input-file", str(inputs), "-i", "name=Bo"],
        )
        assert result.exit_code == 0, result.output
        assert result.output == "Bo is 36\n"

    def test_trim_and_no_collapse(self, cli_runner: CliRunner, workdir: Path) -> None:
        template = write(workdir / "t.echo", "\n  a\n\n\n\nb  \n")
        result = cli_runner.invoke(
            cli, ["render", str(template), "--trim", "--no-collapse"]
        )
        assert result.output == "a\n\n\n\nb\n"

    def test_strict_missing_variable_fails(
        self, cli_runner: CliRunner, workdir: Path
    ) -> None:
        template = write(workdir / "t.echo", "[#IF {{ghost}}]x[END IF]")
        lenient = cli_runner.invoke(cli, ["render", str(template)])
        strict = cli_runner.invoke(cli, ["render", str(template), "--strict"])

        assert lenient.exit_code == 0
        assert strict.exit_code == ExitCode.FAILURE
        assert "Unknown variable 'ghost'" in strict.output

    def test_syntax_error_fails(self, cli_runner: CliRunner, workdir: Path) -> None:
        template = write(workdir / "t.echo", "[#IF {{x}}]open")
        result = cli_runner.invoke(cli, ["render", str(template)])
        assert result.exit_code == ExitCode.FAILURE
        assert "Error: Template has syntax errors" in result.output

    def test_imports_relative_to_template(
        self, cli_runner: CliRunner, workdir: Path
    ) -> None:
        write(workdir / "prompts" / "shared" / "sig.echo", "-- {{name}}")
        template = write(
            workdir / "prompts" / "main.echo", 'Hi[#IMPORT "shared/sig.echo"]'
        )
        result = cli_runner.invoke(cli, ["render", str(template), "-i", "name=Ada"])
        assert result.exit_code == 0, result.output
        assert result.output == "Hi-- Ada\n"

    def test_bad_input_pair(self, cli_runner: CliRunner, workdir: Path) -> None:
        template = write(workdir / "t.echo", "x")
        result = cli_runner.invoke(cli, ["render", str(template), "-i", "novalue"])
        assert result.exit_code == 2
        assert "KEY=VALUE" in result.output

    def test_missing_template(self, cli_runner: CliRunner, workdir: Path) -> None:
        result = cli_runner.invoke(cli, ["render", "nope.echo"])
        assert result.exit_code == 2

    def test_project_config_applies(
        self, cli_runner: CliRunner, workdir: Path
    ) -> None:
        write(workdir / "echo.config.yaml", "missing_variable: error\n")
        template = write(workdir / "t.echo", "Hi {{ghost}}")
        result = cli_runner.invoke(cli, ["render", str(template)])
        assert result.exit_code == ExitCode.FAILURE
        assert "Missing variable: ghost" in result.output

    def test_interrupt_exit_code(self, cli_runner: CliRunner, workdir: Path) -> None:
        template = write(workdir / "t.echo", "x")
        with patch(
            "echo_pdk.cli.commands.render._render", side_effect=KeyboardInterrupt
        ):
            result = cli_runner.invoke(cli, ["render", str(template)])
        assert result.exit_code == ExitCode.INTERRUPTED


class TestValidateCommand:
    """Tests for `echo-pdk validate`."""

    def test_valid(self, cli_runner: CliRunner, workdir: Path) -> None:
        template = write(workdir / "ok.echo", "Hello {{name}}")
        result = cli_runner.invoke(cli, ["validate", str(template)])
        assert result.exit_code == 0
        assert "valid" in result.output

    def test_quiet_valid(self, cli_runner: CliRunner, workdir: Path) -> None:
        template = write(workdir / "ok.echo", "Hello")
        result = cli_runner.invoke(cli, ["-q", "validate", str(template)])
        assert result.exit_code == 0
        assert result.output == ""

    def test_invalid(self, cli_runner: CliRunner, workdir: Path) -> None:
        template = write(workdir / "bad.echo", "line\n[#IF {{x}}]open")
        result = cli_runner.invoke(cli, ["validate", str(template)])
        assert result.exit_code == ExitCode.FAILURE
        assert "Line 2, column 1" in result.output
        assert "1 error(s)" in result.output

    def test_warnings_do_not_fail(self, cli_runner: CliRunner, workdir: Path) -> None:
        template = write(workdir / "w.echo", "[#IF {{x}} #shiny]a[END IF]")
        result = cli_runner.invoke(cli, ["validate", str(template)])
        assert result.exit_code == 0
        assert "Warning: 1:6: Unknown operator: #shiny" in result.output


def test_bad_config_file(cli_runner: CliRunner, workdir: Path) -> None:
    config = write(workdir / "bad.yaml", "judge_cache_ttl: -5\n")
    template = write(workdir / "t.echo", "x")
    result = cli_runner.invoke(cli, ["-c", str(config), "render", str(template)])
    assert result.exit_code == ExitCode.FAILURE
    assert "Field: judge_cache_ttl" in result.output


def test_missing_config_file(cli_runner: CliRunner, workdir: Path) -> None:
    result = cli_runner.invoke(cli, ["-c", "missing.yaml", "validate", "x.echo"])
    assert result.exit_code == ExitCode.FAILURE
    assert "Config file not found" in result.output


class TestInputParsing:
    def test_json_literals(self) -> None:
        assert parse_input_pairs(["n=42", "b=true", "l=[1, 2]", "s=hello"]) == {
            "n": 42,
            "b": True,
            "l": [1, 2],
            "s": "hello",
        }

    def test_value_may_contain_equals(self) -> None:
        assert parse_input_pairs(["q=a=b"]) == {"q": "a=b"}

    @pytest.mark.parametrize("pair", ["novalue", "=x"])
    def test_malformed(self, pair: str) -> None:
        with pytest.raises(click.BadParameter):
            parse_input_pairs([pair])

    def test_json_input_file(self, tmp_path: Path) -> None:
        path = write(tmp_path / "vars.json", '{"a": [1, 2], "b": null}')
        assert load_input_file(path) == {"a": [1, 2], "b": None}

    def test_empty_input_file(self, tmp_path: Path) -> None:
        assert load_input_file(write(tmp_path / "e.yaml", "")) == {}

    def test_non_mapping_input_file(self, tmp_path: Path) -> None:
        with pytest.raises(click.BadParameter):
            load_input_file(write(tmp_path / "l.yaml", "- a\n"))
