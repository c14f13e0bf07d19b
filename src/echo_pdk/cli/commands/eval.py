from __future__ import annotations

import os
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

import click
from rich.markup import escape

from echo_pdk.cli.console import console, err_console
from echo_pdk.cli.context import CLIContext, ExitCode, async_command
from echo_pdk.cli.output import format_error
from echo_pdk.config import EchoConfig
from echo_pdk.constants import EVAL_DISCOVERY_SKIP_DIRS, EVAL_EXTENSION
from echo_pdk.eval import (
    EvalReporter,
    EvalRunnerConfig,
    EvalStatus,
    EvalSuiteResult,
    format_results,
    run_eval_file,
)
from echo_pdk.exceptions import EchoError, PluginError
from echo_pdk.logging import get_logger
from echo_pdk.plugins import EchoPlugin, import_plugin, import_reference
from echo_pdk.protocols import CompletionProvider

__all__ = ["eval_command", "find_eval_files", "load_completion_provider"]

logger = get_logger(__name__)


def find_eval_files(root: Path, path: Path | None = None) -> list[Path]:
    """Suite files to run, sorted.

    With ``path``: that file (``.eval`` may be omitted) or every suite under
    that directory. Without: every suite under ``root``. Directories such
    as ``.git`` and virtual environments are skipped.

    Raises:
        click.BadParameter: If ``path`` does not exist.
    """
    if path is not None:
        candidate = path if path.is_absolute() else root / path
        if candidate.is_file():
            return [candidate]
        with_ext = candidate.with_name(candidate.name + EVAL_EXTENSION)
        if candidate.suffix != EVAL_EXTENSION and with_ext.is_file():
            return [with_ext]
        if not candidate.is_dir():
            raise click.BadParameter(
                f"Eval file not found: {path}", param_hint="'PATH'"
            )
        root = candidate

    found: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = [d for d in dirnames if d not in EVAL_DISCOVERY_SKIP_DIRS]
        found.extend(
            Path(dirpath) / name
            for name in filenames
            if name.endswith(EVAL_EXTENSION)
        )
    return sorted(found)


def load_completion_provider(reference: str) -> CompletionProvider:
    """Import a completion provider, or a zero-argument factory for one.

    Raises:
        PluginError: If the import fails or the object has no ``complete``.
    """
    provider = import_reference(reference)
    is_factory = isinstance(provider, type) or not isinstance(
        provider, CompletionProvider
    )
    if is_factory and callable(provider):
        provider = provider()
    if not isinstance(provider, CompletionProvider):
        raise PluginError(
            f"{reference} is not a completion provider (no async complete())",
            plugin=reference,
        )
    return provider


@dataclass(frozen=True, slots=True)
class _SuiteOutcome:
    path: Path
    result: EvalSuiteResult | None = None
    error: str | None = None


@async_command
async def _run_suites(
    files: Sequence[Path],
    runner_config: EvalRunnerConfig,
    echo_config: EchoConfig,
    completion_provider: CompletionProvider | None,
    plugins: Sequence[EchoPlugin],
) -> list[_SuiteOutcome]:
    outcomes = []
    for path in files:
        try:
            result = await run_eval_file(
                path,
                runner_config,
                echo_config=echo_config,
                completion_provider=completion_provider,
                plugins=plugins,
            )
        except EchoError as e:
            logger.debug("eval_suite_failed", path=str(path), error=e.message)
            outcomes.append(_SuiteOutcome(path, error=e.message))
        else:
            outcomes.append(_SuiteOutcome(path, result=result))
    return outcomes


def _display_path(path: Path, root: Path) -> str:
    try:
        return str(path.relative_to(root))
    except ValueError:
        return str(path)


@click.command(name="eval")
@click.argument(
    "path", required=False, type=click.Path(path_type=Path), default=None
)
@click.option(
    "--record",
    is_flag=True,
    default=False,
    help="Save LLM responses as golden responses in the test's dataset.",
)
@click.option(
    "--filter",
    "name_filter",
    default=None,
    help="Only run tests whose name contains this text (case-insensitive).",
)
@click.option(
    "--reporter",
    type=click.Choice([r.value for r in EvalReporter]),
    default=EvalReporter.CONSOLE.value,
    show_default=True,
    help="Output format.",
)
@click.option(
    "--model",
    default=None,
    envvar="ECHO_EVAL_MODEL",
    help="Model for expect_llm tests when the suite names none.",
)
@click.option(
    "--provider",
    "provider_ref",
    default=None,
    metavar="MODULE:ATTR",
    help="Completion provider (or factory) for expect_llm tests.",
)
@click.option(
    "--plugin",
    "plugin_refs",
    multiple=True,
    metavar="MODULE:ATTR",
    help="Plugin to load before running. Repeatable.",
)
@click.pass_context
def eval_command(
    ctx: click.Context,
    path: Path | None,
    record: bool,
    name_filter: str | None,
    reporter: str,
    model: str | None,
    provider_ref: str | None,
    plugin_refs: tuple[str, ...],
) -> None:
    """Run eval suites (.eval files) against their prompt templates.

    PATH is a suite file or a directory to search; by default every suite
    under the working directory runs.

    Examples:
        echo-pdk eval
        echo-pdk eval prompts/greeting/eval/tests/smoke.eval --filter family
        echo-pdk eval --provider myapp.llm:client --record
        echo-pdk eval --reporter junit > eval-results.xml
    """
    cli_ctx: CLIContext = ctx.obj["cli_ctx"]
    root = Path.cwd()
    files = find_eval_files(root, path)
    if not files:
        console.print("No .eval files found.")
        console.print("[dim]Create one in eval/tests/ within a prompt directory.[/dim]")
        return

    try:
        provider = load_completion_provider(provider_ref) if provider_ref else None
        plugins = [import_plugin(ref) for ref in plugin_refs]
    except PluginError as e:
        err_console.print(format_error(e.message), markup=False, soft_wrap=True)
        raise SystemExit(ExitCode.FAILURE) from e

    console_output = reporter == EvalReporter.CONSOLE.value
    if provider is None and console_output:
        console.print(
            "[dim]No completion provider configured; "
            "expect_llm tests will error.[/dim]"
        )

    runner_config = EvalRunnerConfig(filter=name_filter, record=record, model=model)
    try:
        outcomes = _run_suites(
            files, runner_config, cli_ctx.config, provider, plugins
        )
    except KeyboardInterrupt as e:
        err_console.print("Interrupted")
        raise SystemExit(ExitCode.INTERRUPTED) from e

    has_failures = False
    for outcome in outcomes:
        shown = _display_path(outcome.path, root)
        if outcome.result is None:
            has_failures = True
            err_console.print(
                format_error(f"Error running {shown}: {outcome.error}"),
                markup=False,
                soft_wrap=True,
            )
            continue
        if outcome.result.status is not EvalStatus.PASS:
            has_failures = True
        if console_output:
            console.print(f"[bold]{escape(shown)}[/bold]")
            console.print(format_results(outcome.result), soft_wrap=True)
        else:
            click.echo(format_results(outcome.result, reporter))

    results = [o.result for o in outcomes if o.result is not None]
    if console_output and len(results) > 1:
        passed = sum(r.summary.passed for r in results)
        failed = sum(r.summary.failed for r in results)
        total = sum(r.summary.total for r in results)
        console.print("\n[bold]Overall Summary:[/bold]")
        console.print(f"  Suites: {len(results)}")
        console.print(f"  Tests:  {passed} passed, {failed} failed, {total} total")

    if record and console_output:
        console.print("[cyan]Golden responses recorded to .dset files[/cyan]")

    if has_failures:
        raise SystemExit(ExitCode.FAILURE)
