"""CLI commands for inspecting and assigning changes."""

from typing import Optional

import typer

from vbranch.cli.utils import (
    CLI_ERRORS,
    fail,
    format_branch_line,
    format_hunk_line,
    open_session,
    resolve_hunk_id,
)
from vbranch.diff.patch import format_patch


def status_command() -> None:
    """Show branches, their hunks, unassigned hunks and open conflicts."""
    try:
        session = open_session()
        summaries = session.list_virtual_branches()
        state = session.snapshot()

        for summary in summaries:
            typer.echo(format_branch_line(summary))
            for hunk in state.ownership.hunks_for_branch(summary.id):
                typer.echo(format_hunk_line(hunk))

        unassigned = state.ownership.unassigned_hunks()
        if unassigned:
            typer.echo()
            typer.echo("Unassigned:")
            for hunk in unassigned:
                typer.echo(format_hunk_line(hunk))

        if state.conflicts:
            names = state.branch_names()
            typer.echo()
            typer.echo("Conflicts:")
            for marker in state.conflicts:
                sides = ", ".join(names.get(b, b) for b in marker.branch_ids)
                typer.echo(f"  {marker.path} lines {marker.old_start}-{marker.old_end - 1} ({sides})")

        if state.skipped_files:
            typer.echo()
            typer.echo(f"Skipped unreadable files: {', '.join(state.skipped_files)}")

    except CLI_ERRORS as e:
        fail(e)


def diff_command(
    branch: Optional[str] = typer.Argument(None, help="Branch name or id (default: unassigned changes)"),
) -> None:
    """Print the changes a branch claims as a patch."""
    try:
        session = open_session()
        if branch is None:
            hunks = session.unassigned_hunks()
        else:
            hunks = session.get_branch_diff(session.resolve_branch(branch).id)
        patch = format_patch(hunks)
        if patch:
            typer.echo(patch, nl=False)

    except CLI_ERRORS as e:
        fail(e)


def assign_command(
    hunk: str = typer.Argument(..., help="Hunk id (or unique prefix)"),
    branch: Optional[str] = typer.Argument(None, help="Target branch name or id"),
    unassign: bool = typer.Option(False, "--unassign", help="Leave the hunk unassigned"),
) -> None:
    """Move a hunk to another applied branch."""
    if branch is None and not unassign:
        typer.echo("Error: give a target branch or --unassign", err=True)
        raise typer.Exit(1)
    try:
        session = open_session()
        hunk_id = resolve_hunk_id(session, hunk)
        target = None if unassign else session.resolve_branch(branch)
        session.reassign_hunk(hunk_id, target.id if target else None)
        typer.echo(f"Assigned hunk {hunk_id} to {target.name if target else 'unassigned'}")

    except CLI_ERRORS as e:
        fail(e)


def resolve_command(path: str = typer.Argument(..., help="Conflicted file, relative to the repository root")) -> None:
    """Mark the conflict in a file as resolved."""
    try:
        session = open_session()
        session.mark_resolved(path)
        typer.echo(f"Resolved conflict in {path}")

    except CLI_ERRORS as e:
        fail(e)
