"""CLI entry point for vbranch.

This module provides the main CLI application that combines all commands
and subcommands into a single unified interface.
"""

import typer

from vbranch.cli.base import base_command
from vbranch.cli.branch import (
    apply_command,
    create_command,
    delete_command,
    list_command,
    unapply_command,
    update_command,
)
from vbranch.cli.commit import commit_command, log_command
from vbranch.cli.history import redo_command, undo_command
from vbranch.cli.ignore import ignore_app
from vbranch.cli.init import init_command
from vbranch.cli.main import main_command
from vbranch.cli.status import assign_command, diff_command, resolve_command, status_command

# Main application
app = typer.Typer(
    name="vbranch",
    help="vbranch: virtual branches in a single working directory",
    add_completion=False,
)

# Add subcommand groups
app.add_typer(ignore_app, name="ignore")

# Add individual commands
app.command("init")(init_command)
app.command("base")(base_command)
app.command("status")(status_command)
app.command("list")(list_command)
app.command("create")(create_command)
app.command("delete")(delete_command)
app.command("update")(update_command)
app.command("apply")(apply_command)
app.command("unapply")(unapply_command)
app.command("diff")(diff_command)
app.command("assign")(assign_command)
app.command("commit")(commit_command)
app.command("log")(log_command)
app.command("undo")(undo_command)
app.command("redo")(redo_command)
app.command("resolve")(resolve_command)

# Global options (--verbose, --version)
app.callback(invoke_without_command=True)(main_command)


__all__ = [
    "app",
    "ignore_app",
    "init_command",
    "base_command",
    "status_command",
    "list_command",
    "create_command",
    "delete_command",
    "update_command",
    "apply_command",
    "unapply_command",
    "diff_command",
    "assign_command",
    "commit_command",
    "log_command",
    "undo_command",
    "redo_command",
    "resolve_command",
    "main_command",
]
