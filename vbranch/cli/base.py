"""CLI command for showing and moving the base commit."""

from typing import Optional

import typer

from vbranch.cli.utils import CLI_ERRORS, fail, open_session
from vbranch.models import BaseBranch


def _echo_base(base: BaseBranch) -> None:
    typer.echo(f"Base: {base.ref_name or base.commit_id[:12]} ({base.commit_id[:12]}) {base.subject}")
    if base.head_commit is None:
        typer.echo("  HEAD: (no commits)")
    elif base.up_to_date:
        typer.echo("  HEAD is at the base.")
    elif base.behind is None:
        typer.echo(f"  HEAD ({base.head_commit[:12]}) does not descend from the base.")
    else:
        typer.echo(f"  HEAD ({base.head_commit[:12]}) is {base.behind} commit(s) ahead of the base.")


def base_command(
    ref: Optional[str] = typer.Argument(
        None,
        help="Ref or commit to move the base to (omit to show the current base)",
    ),
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Drop the claims of applied branches and re-read their changes against the new base",
    ),
) -> None:
    """Show the base commit, or move every virtual branch onto a new one."""
    try:
        session = open_session()
        if ref is None:
            _echo_base(session.get_base_branch())
            return

        _echo_base(session.set_base_branch(ref, force=force))

    except CLI_ERRORS as e:
        fail(e)
