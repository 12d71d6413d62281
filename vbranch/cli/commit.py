"""CLI commands for committing virtual branches and reading their history."""

from typing import Optional

import typer

from vbranch.cli.utils import CLI_ERRORS, fail, open_session
from vbranch.exceptions import EmptyCommitError


def commit_command(
    branch: str = typer.Argument(..., help="Branch name or id"),
    message: str = typer.Option(..., "--message", "-m", help="Commit message"),
    amend: bool = typer.Option(False, "--amend", help="Replace the branch's last commit"),
    force: bool = typer.Option(False, "--force", "-f", help="Commit even if nothing changed"),
) -> None:
    """Commit the changes a virtual branch claims.

    The commit goes to refs/vbranches/<id>; the working directory and the
    checked-out git branch are left alone.
    """
    try:
        session = open_session()
        target = session.resolve_branch(branch)
        commit_id = session.commit_branch(target.id, message, amend=amend, force=force)
        typer.echo(f"[{target.name} {commit_id[:12]}] {message.splitlines()[0] if message else ''}")

    except EmptyCommitError as e:
        typer.echo(f"Warning: {e}", err=True)
        raise typer.Exit(0)
    except CLI_ERRORS as e:
        fail(e)


def log_command(
    branch: str = typer.Argument(..., help="Branch name or id"),
    limit: Optional[int] = typer.Option(None, "--limit", "-n", help="Show at most this many commits"),
) -> None:
    """Show the commits of a virtual branch, newest first."""
    try:
        session = open_session()
        target = session.resolve_branch(branch)
        commits = session.branch_commits(target.id, limit=limit)
        if not commits:
            typer.echo(f"No commits on {target.name} yet.")
            return
        for info in commits:
            subject = info.message.splitlines()[0] if info.message else ""
            typer.echo(f"{info.id[:12]} {subject}")

    except CLI_ERRORS as e:
        fail(e)
