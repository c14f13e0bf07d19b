"""CLI entry point for echo-pdk.

This module defines the Click-based command-line interface.
"""

from __future__ import annotations

import logging
from pathlib import Path

import click
from dotenv import load_dotenv

from echo_pdk import __version__
from echo_pdk.cli.commands import eval_command, render, validate
from echo_pdk.cli.context import CLIContext, ExitCode
from echo_pdk.cli.output import format_config_error
from echo_pdk.config import load_config
from echo_pdk.exceptions import ConfigError
from echo_pdk.logging import configure_logging


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="echo-pdk")
@click.option(
    "-c",
    "--config",
    "config_file",
    type=click.Path(exists=False, path_type=str),
    default=None,
    help="Path to config file (overrides ./echo.config.yaml).",
)
@click.option(
    "-v",
    "--verbose",
    count=True,
    help="Increase verbosity (-v for INFO, -vv for DEBUG).",
)
@click.option(
    "-q",
    "--quiet",
    is_flag=True,
    default=False,
    help="Suppress non-essential output (ERROR level only).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    config_file: str | None,
    verbose: int,
    quiet: bool,
) -> None:
    """echo-pdk - render, validate and evaluate Echo prompt templates."""
    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)

    ctx.ensure_object(dict)
    config_path = Path(config_file) if config_file else None
    try:
        config = load_config(config_path)
    except ConfigError as e:
        click.echo(format_config_error(e), err=True)
        ctx.exit(ExitCode.FAILURE)

    ctx.obj["cli_ctx"] = CLIContext(
        config=config,
        config_path=config_path,
        verbosity=verbose,
        quiet=quiet,
    )

    # Priority: quiet > verbose > ECHO_LOG_LEVEL
    if quiet:
        configure_logging(level=logging.ERROR)
    elif verbose > 0:
        configure_logging(level=logging.INFO if verbose == 1 else logging.DEBUG)
    else:
        configure_logging()

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


cli.add_command(render)
cli.add_command(validate)
cli.add_command(eval_command)

if __name__ == "__main__":
    cli()
