"""CLI command for starting virtual branches in a repository."""

from typing import Optional

import typer

from vbranch.cli.utils import CLI_ERRORS, fail, open_session


def init_command(
    base: Optional[str] = typer.Option(
        None,
        "--base",
        "-b",
        help="Ref or commit the virtual branches start from (default: HEAD)",
    ),
    no_default: bool = typer.Option(
        False,
        "--no-default",
        help="Do not create a default branch for existing changes",
    ),
) -> None:
    """Initialize virtual branches on top of a base commit.

    Uncommitted changes already in the working directory are claimed by the
    default branch.
    """
    try:
        session = open_session()
        state = session.initialize(base=base, create_default=not no_default)

        typer.echo(f"Initialized vbranch in {session.repo_root}")
        typer.echo(f"  Base: {state.base_commit[:12]}")
        for branch in state.branches:
            hunks = state.ownership.hunks_for_branch(branch.id)
            typer.echo(f"  Branch: {branch.name} ({len(hunks)} hunks)")
        if state.skipped_files:
            typer.echo(f"  Skipped unreadable files: {', '.join(state.skipped_files)}", err=True)

    except CLI_ERRORS as e:
        fail(e)
