"""CLI commands for ignore pattern management.

Ignored files are left out of every diff, so a pattern covering files a
branch still claims would silently drop those claims on the next refresh.
'ignore add' refuses such a pattern unless --force is given.
"""

from pathlib import Path

import typer

from vbranch.cli.utils import CLI_ERRORS, fail, open_session
from vbranch.config import (
    add_ignore_pattern,
    get_ignore_patterns,
    remove_ignore_pattern,
)
from vbranch.state.storage import state_exists
from vbranch.store.runner import get_repo_root

# Subcommand group for ignore pattern management
ignore_app = typer.Typer(
    name="ignore",
    help="Manage ignore patterns in .vbranch/config.yaml",
    add_completion=False,
)


def _claimed_files(repo_root: Path, pattern: str) -> dict[str, list[str]]:
    """Claimed files matching ``pattern``, by branch name ({} before init)."""
    if not state_exists(repo_root):
        return {}
    return open_session().branches_claiming(pattern)


def _describe_claims(claimed: dict[str, list[str]]) -> str:
    return "; ".join(f"{name}: {', '.join(paths)}" for name, paths in claimed.items())


@ignore_app.command("list")
def ignore_list() -> None:
    """Show all ignore patterns in .vbranch/config.yaml."""
    try:
        patterns = get_ignore_patterns(get_repo_root())

        typer.echo("Ignore patterns in .vbranch/config.yaml:")
        typer.echo()
        if not patterns:
            typer.echo("  (no patterns configured)")
        else:
            for pattern in patterns:
                typer.echo(f"  - {pattern}")
            typer.echo()
            typer.echo(f"Total: {len(patterns)} pattern(s)")
        typer.echo()
        typer.echo("Matching files are never diffed or claimed by a branch.")

    except CLI_ERRORS as e:
        fail(e)


@ignore_app.command("add")
def ignore_add(
    pattern: str = typer.Argument(
        ...,
        help="File pattern to add (e.g., *.log, build/*, package-lock.json)",
    ),
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Add the pattern even if branches claim matching files (their claims are dropped)",
    ),
) -> None:
    """Add a pattern to the ignore list."""
    try:
        repo_root = get_repo_root()

        if pattern in get_ignore_patterns(repo_root):
            typer.echo(f"Pattern already exists: {pattern}")
            raise typer.Exit(0)

        claimed = _claimed_files(repo_root, pattern)
        if claimed and not force:
            typer.echo(
                f"Error: '{pattern}' matches files claimed by virtual branches ({_describe_claims(claimed)}). "
                "Commit or move those changes first, or use --force to drop the claims.",
                err=True,
            )
            raise typer.Exit(1)
        if claimed:
            typer.echo(f"Warning: dropping claims on {_describe_claims(claimed)}", err=True)

        add_ignore_pattern(repo_root, pattern)
        typer.echo(f"Added ignore pattern: {pattern}")

    except CLI_ERRORS as e:
        fail(e)


@ignore_app.command("remove")
def ignore_remove(
    pattern: str = typer.Argument(
        ...,
        help="File pattern to remove from the ignore list",
    ),
) -> None:
    """Remove a pattern from the ignore list.

    Changes in files it covered are picked up by the next refresh and go
    to the default branch.
    """
    try:
        if not remove_ignore_pattern(get_repo_root(), pattern):
            typer.echo(f"Pattern not found: {pattern}", err=True)
            raise typer.Exit(1)
        typer.echo(f"Removed ignore pattern: {pattern}")

    except CLI_ERRORS as e:
        fail(e)
