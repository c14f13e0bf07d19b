from __future__ import annotations

from pathlib import Path

import click

from echo_pdk.cli.context import CLIContext, ExitCode
from echo_pdk.cli.output import format_error, format_warnings
from echo_pdk.dsl.renderer import format_errors
from echo_pdk.engine import Echo


@click.command()
@click.argument(
    "template", type=click.Path(exists=True, dir_okay=False, path_type=Path)
)
@click.pass_context
def validate(ctx: click.Context, template: Path) -> None:
    """Check TEMPLATE for syntax errors and likely mistakes.

    Exits with status 1 when the template has errors. Warnings (unknown
    operators, includes of undefined sections...) are printed but do not
    fail validation.

    Examples:
        echo-pdk validate prompt.echo
    """
    cli_ctx: CLIContext = ctx.obj["cli_ctx"]
    try:
        source = template.read_text(encoding="utf-8")
    except OSError as e:
        click.echo(format_error(f"Cannot read template {template}: {e}"), err=True)
        raise SystemExit(ExitCode.FAILURE) from e

    result = Echo(cli_ctx.config).validate(source)

    if result.warnings:
        click.echo(format_warnings(result.warnings))
    if not result.valid:
        click.echo(format_errors(result.errors, source))
        click.echo(f"{template}: {len(result.errors)} error(s)", err=True)
        raise SystemExit(ExitCode.FAILURE)

    if not cli_ctx.quiet:
        click.echo(f"{template}: valid")
