"""CLI commands for managing virtual branches."""

from typing import Optional

import typer

from vbranch.apply.models import ApplyResult
from vbranch.cli.utils import CLI_ERRORS, fail, format_branch_line, open_session


def _report(action: str, name: str, result: ApplyResult) -> None:
    typer.echo(f"{action} {name}: {len(result.written)} file(s) written")
    for path, reason in sorted(result.failed.items()):
        typer.echo(f"  failed: {path}: {reason}", err=True)
    for marker in result.conflicts:
        typer.echo(f"  conflict: {marker.path} lines {marker.old_start}-{marker.old_end - 1}", err=True)
    if result.conflicts:
        typer.echo("Edit the conflicted files, then run 'vbranch resolve <path>'.", err=True)


def list_command() -> None:
    """List virtual branches in priority order (* marks applied branches)."""
    try:
        session = open_session()
        summaries = session.list_virtual_branches()
        if not summaries:
            typer.echo("No virtual branches.")
            return
        for summary in summaries:
            typer.echo(format_branch_line(summary))

        skipped = session.skipped_files()
        if skipped:
            typer.echo()
            typer.echo(f"Skipped unreadable files: {', '.join(skipped)}")

    except CLI_ERRORS as e:
        fail(e)


def create_command(
    name: Optional[str] = typer.Argument(None, help="Name of the new branch"),
    order: Optional[int] = typer.Option(None, "--order", help="Priority (lower wins conflicts)"),
    default: bool = typer.Option(False, "--default", help="Make it the default branch"),
    notes: str = typer.Option("", "--notes", help="Free-form notes"),
    from_ref: Optional[str] = typer.Option(
        None,
        "--from",
        help="Create the branch from an existing git ref and apply it",
    ),
) -> None:
    """Create a new virtual branch."""
    try:
        session = open_session()
        if from_ref:
            branch = session.create_virtual_branch_from_branch(from_ref, name=name)
        else:
            branch = session.create_virtual_branch(name=name, order=order, default=default, notes=notes)
        typer.echo(f"Created virtual branch {branch.name} ({branch.id[:8]})")

    except CLI_ERRORS as e:
        fail(e)


def delete_command(
    branch: str = typer.Argument(..., help="Branch name or id"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """Delete a virtual branch, removing its changes from the working directory."""
    try:
        session = open_session()
        target = session.resolve_branch(branch)
        if not yes:
            confirm = typer.confirm(f"Delete branch '{target.name}' and discard its changes?", default=False)
            if not confirm:
                typer.echo("Cancelled.")
                raise typer.Exit(0)
        session.delete_virtual_branch(target.id)
        typer.echo(f"Deleted virtual branch {target.name}")

    except CLI_ERRORS as e:
        fail(e)


def update_command(
    branch: str = typer.Argument(..., help="Branch name or id"),
    name: Optional[str] = typer.Option(None, "--name", help="New name"),
    order: Optional[int] = typer.Option(None, "--order", help="New priority"),
    default: Optional[bool] = typer.Option(
        None,
        "--default/--no-default",
        help="Set or unset as the default branch",
    ),
    notes: Optional[str] = typer.Option(None, "--notes", help="New notes"),
) -> None:
    """Rename, reorder or annotate a virtual branch."""
    try:
        session = open_session()
        target = session.resolve_branch(branch)
        updated = session.update_virtual_branch(target.id, name=name, order=order, default=default, notes=notes)
        typer.echo(f"Updated virtual branch {updated.name}")

    except CLI_ERRORS as e:
        fail(e)


def apply_command(branch: str = typer.Argument(..., help="Branch name or id")) -> None:
    """Materialize a virtual branch in the working directory."""
    try:
        session = open_session()
        target = session.resolve_branch(branch)
        result = session.apply_branch(target.id)
        _report("Applied", target.name, result)
        if result.failed:
            raise typer.Exit(1)

    except CLI_ERRORS as e:
        fail(e)


def unapply_command(branch: str = typer.Argument(..., help="Branch name or id")) -> None:
    """Remove a virtual branch from the working directory, keeping its changes."""
    try:
        session = open_session()
        target = session.resolve_branch(branch)
        result = session.unapply_branch(target.id)
        _report("Unapplied", target.name, result)
        if result.failed:
            raise typer.Exit(1)

    except CLI_ERRORS as e:
        fail(e)
