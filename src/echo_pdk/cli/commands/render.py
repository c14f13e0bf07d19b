from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

import click
import yaml

from echo_pdk.cli.context import CLIContext, ExitCode, async_command
from echo_pdk.cli.output import format_error
from echo_pdk.config import EchoConfig
from echo_pdk.dsl.imports import FileImportLoader
from echo_pdk.engine import create_echo
from echo_pdk.exceptions import EchoError, EvaluationError
from echo_pdk.logging import get_logger

__all__ = ["render", "parse_input_pairs", "load_input_file"]


def _parse_value(raw: str) -> Any:
    """JSON literal if it parses (42, true, [1, 2]), else the raw string."""
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


def parse_input_pairs(pairs: Sequence[str]) -> dict[str, Any]:
    """Parse ``KEY=VALUE`` options into bindings.

    Raises:
        click.BadParameter: If an item has no ``=`` or an empty key.
    """
    variables: dict[str, Any] = {}
    for pair in pairs:
        key, sep, raw = pair.partition("=")
        key = key.strip()
        if not sep or not key:
            raise click.BadParameter(
                f"expected KEY=VALUE, got {pair!r}", param_hint="'-i' / '--input'"
            )
        variables[key] = _parse_value(raw)
    return variables


def load_input_file(path: Path) -> dict[str, Any]:
    """Load bindings from a JSON or YAML mapping.

    Raises:
        click.BadParameter: If the file is not a mapping.
    """
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise click.BadParameter(
            f"invalid JSON/YAML: {e}", param_hint="'--input-file'"
        ) from e
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise click.BadParameter(
            "input file must contain a mapping", param_hint="'--input-file'"
        )
    return dict(data)


@async_command
async def _render(
    config: EchoConfig, template_path: Path, variables: dict[str, Any]
) -> str:
    try:
        source = template_path.read_text(encoding="utf-8")
    except OSError as e:
        raise EvaluationError(f"Cannot read template {template_path}: {e}") from e
    loader = FileImportLoader(root=config.import_root or template_path.parent)
    echo = create_echo(config, import_loader=loader)
    return await echo.render(source, variables)


@click.command()
@click.argument(
    "template", type=click.Path(exists=True, dir_okay=False, path_type=Path)
)
@click.option(
    "-i",
    "--input",
    "inputs",
    multiple=True,
    metavar="KEY=VALUE",
    help="Variable binding; VALUE is parsed as JSON when possible. Repeatable.",
)
@click.option(
    "--input-file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="JSON or YAML file of variable bindings (-i values win).",
)
@click.option(
    "--trim", is_flag=True, default=False, help="Strip surrounding whitespace."
)
@click.option(
    "--no-collapse",
    is_flag=True,
    default=False,
    help="Keep runs of blank lines instead of collapsing them.",
)
@click.option(
    "--strict",
    is_flag=True,
    default=False,
    help="Fail on unknown variables, operators and unresolved references.",
)
@click.pass_context
def render(
    ctx: click.Context,
    template: Path,
    inputs: tuple[str, ...],
    input_file: Path | None,
    trim: bool,
    no_collapse: bool,
    strict: bool,
) -> None:
    """Render TEMPLATE and print the resulting prompt.

    Examples:
        echo-pdk render prompt.echo -i name=Alice -i age=30
        echo-pdk render prompt.echo --input-file vars.yaml --strict
    """
    logger = get_logger(__name__)
    cli_ctx: CLIContext = ctx.obj["cli_ctx"]

    variables = load_input_file(input_file) if input_file else {}
    variables.update(parse_input_pairs(inputs))

    updates: dict[str, Any] = {}
    if trim:
        updates["trim"] = True
    if no_collapse:
        updates["collapse_newlines"] = False
    if strict:
        updates["strict"] = True
    config = cli_ctx.config.model_copy(update=updates)

    try:
        output = _render(config, template, variables)
    except KeyboardInterrupt as e:
        click.echo("Interrupted", err=True)
        raise SystemExit(ExitCode.INTERRUPTED) from e
    except EchoError as e:
        logger.debug("render_failed", template=str(template), error=e.message)
        click.echo(format_error(e.message), err=True)
        raise SystemExit(ExitCode.FAILURE) from e

    click.echo(output)
