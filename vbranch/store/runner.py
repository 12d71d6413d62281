"""Git command runner and repository utilities.

Contains:
- _run_git_command: Run a git command and return its text output
- _run_git_bytes: Run a git command with binary stdin/stdout
- get_repo_root: Get the root directory of the git repository
"""

import subprocess
from pathlib import Path
from typing import Optional

from vbranch.store.exceptions import StoreError


def _run_git_command(
    args: list[str],
    cwd: Optional[Path] = None,
    input_text: Optional[str] = None,
) -> str:
    """Run a git command and return its output.

    Args:
        args: List of arguments to pass to git.
        cwd: Directory to run git in (defaults to the process cwd).
        input_text: Optional text fed to the command's stdin.

    Returns:
        The stdout of the git command, stripped.

    Raises:
        StoreError: If the command fails.
    """
    try:
        result = subprocess.run(
            ["git"] + args,
            capture_output=True,
            text=True,
            check=True,
            cwd=cwd,
            input=input_text,
        )
        return result.stdout.strip()
    except subprocess.CalledProcessError as e:
        raise StoreError(f"Git command failed: git {' '.join(args)}\n{e.stderr.strip()}")
    except FileNotFoundError:
        raise StoreError("Git is not installed or not in PATH.")


def _run_git_bytes(
    args: list[str],
    cwd: Optional[Path] = None,
    input_bytes: Optional[bytes] = None,
) -> bytes:
    """Run a git command that reads or produces raw bytes.

    Args:
        args: List of arguments to pass to git.
        cwd: Directory to run git in.
        input_bytes: Optional bytes fed to the command's stdin.

    Returns:
        The raw stdout of the git command.

    Raises:
        StoreError: If the command fails.
    """
    try:
        result = subprocess.run(
            ["git"] + args,
            capture_output=True,
            check=True,
            cwd=cwd,
            input=input_bytes,
        )
        return result.stdout
    except subprocess.CalledProcessError as e:
        stderr = e.stderr.decode("utf-8", errors="replace").strip()
        raise StoreError(f"Git command failed: git {' '.join(args)}\n{stderr}")
    except FileNotFoundError:
        raise StoreError("Git is not installed or not in PATH.")


def get_repo_root(cwd: Optional[Path] = None) -> Path:
    """Get the root directory of the current git repository.

    Args:
        cwd: Directory to start from (defaults to the process cwd).

    Returns:
        Path to the repository root.

    Raises:
        StoreError: If not in a git repository.
    """
    try:
        root = _run_git_command(["rev-parse", "--show-toplevel"], cwd=cwd)
        return Path(root)
    except StoreError:
        raise StoreError("Not in a git repository. Please run this command from within a git repo.")
