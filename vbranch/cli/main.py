"""Main CLI callback: global options shared by every command."""

from typing import Optional

import typer

from vbranch import __version__
from vbranch.cli.utils import configure_logging


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"vbranch {__version__}")
        raise typer.Exit(0)


def main_command(
    ctx: typer.Context,
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Show debug logging (overrides log_level in .vbranch/config.yaml)",
    ),
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show the version and exit",
    ),
) -> None:
    """Work on several virtual branches in one working directory."""
    configure_logging(verbose)
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
