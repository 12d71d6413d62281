"""CLI commands for undoing and redoing operations."""

import typer

from vbranch.cli.utils import CLI_ERRORS, fail, open_session


def undo_command() -> None:
    """Undo the most recent operation."""
    try:
        entry = open_session().undo()
        typer.echo(f"Undid {entry.op.replace('_', ' ')} (#{entry.seq})")

    except CLI_ERRORS as e:
        fail(e)


def redo_command() -> None:
    """Redo the most recently undone operation."""
    try:
        entry = open_session().redo()
        typer.echo(f"Redid {entry.op.replace('_', ' ')} (#{entry.seq})")

    except CLI_ERRORS as e:
        fail(e)
