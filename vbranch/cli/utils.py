"""Shared utility functions for CLI commands."""

import logging
from typing import NoReturn, Optional

import typer

from vbranch.config import load_vbranch_config
from vbranch.diff.models import Hunk, HunkStatus
from vbranch.exceptions import HunkNotFoundError, VBranchError
from vbranch.models import BranchSummary
from vbranch.session import Session
from vbranch.store.exceptions import StoreError
from vbranch.store.runner import get_repo_root

LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"

# Errors every command reports as "Error: ..." with exit code 1
CLI_ERRORS = (VBranchError, StoreError)


def configure_logging(verbose: bool) -> None:
    """Configure the root logger from --verbose or the repository's log_level.

    Args:
        verbose: Force DEBUG output.
    """
    level_name = "DEBUG" if verbose else "WARNING"
    if not verbose:
        try:
            level_name = load_vbranch_config(get_repo_root()).log_level
        except CLI_ERRORS:
            # Outside a repository; keep the default
            pass
    level = logging.getLevelName(level_name.upper())
    if not isinstance(level, int):
        level = logging.WARNING
    logging.basicConfig(level=level, format=LOG_FORMAT, force=True)


def fail(error: Exception) -> NoReturn:
    """Report an error and exit with status 1."""
    typer.echo(f"Error: {error}", err=True)
    raise typer.Exit(1)


def open_session() -> Session:
    """Open the session of the repository containing the working directory.

    Raises:
        StoreError: If not in a git repository.
    """
    return Session(get_repo_root())


def resolve_hunk_id(session: Session, prefix: str) -> str:
    """Resolve a full hunk id from a unique prefix.

    Raises:
        HunkNotFoundError: If no hunk (or more than one) matches.
    """
    hunk_ids = session.refresh().ownership.hunks.keys()
    if prefix in hunk_ids:
        return prefix
    matches = [hunk_id for hunk_id in hunk_ids if hunk_id.startswith(prefix)]
    if len(matches) != 1:
        raise HunkNotFoundError(f"No unique hunk matches '{prefix}'")
    return matches[0]


def format_branch_line(summary: BranchSummary) -> str:
    """One line of the branch listing."""
    marker = "*" if summary.applied else " "
    flags = []
    if summary.default:
        flags.append("default")
    if summary.conflicted:
        flags.append("conflicted")
    if not summary.applied:
        flags.append("unapplied")
    suffix = f" ({', '.join(flags)})" if flags else ""
    return (
        f"{marker} {summary.id[:8]}  {summary.name}{suffix}  "
        f"[{summary.hunk_count} hunks in {len(summary.files)} files]"
    )


def format_hunk_line(hunk: Hunk, owner: Optional[str] = None) -> str:
    """One line describing a hunk: id, location and status."""
    status = " (conflicted)" if hunk.status == HunkStatus.CONFLICTED else ""
    owner_part = f" -> {owner}" if owner else ""
    return f"    {hunk.id}  {hunk.path} {hunk.header}{status}{owner_part}"
