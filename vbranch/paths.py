"""State file path utilities for vbranch.

Contains functions for getting paths to files under .vbranch/:
- STATE_DIR_NAME: Name of the per-repository state directory
- get_state_dir: Get the .vbranch directory
- get_config_file: Get path to config.yaml
- get_state_file: Get path to the persisted session state
- get_log_file: Get path to the session log
"""

from pathlib import Path


STATE_DIR_NAME = ".vbranch"


def get_state_dir(repo_root: Path) -> Path:
    """Return the .vbranch directory, creating it if needed.

    Args:
        repo_root: The root directory of the git repository.

    Returns:
        Path to the .vbranch state directory.
    """
    state_dir = repo_root / STATE_DIR_NAME
    state_dir.mkdir(exist_ok=True)
    return state_dir


def get_config_file(repo_root: Path) -> Path:
    """Return path to the repository configuration file.

    Args:
        repo_root: The root directory of the git repository.

    Returns:
        Path to .vbranch/config.yaml.
    """
    return get_state_dir(repo_root) / "config.yaml"


def get_state_file(repo_root: Path) -> Path:
    """Return path to the persisted branch and ownership state.

    Args:
        repo_root: The root directory of the git repository.

    Returns:
        Path to .vbranch/state.json.
    """
    return get_state_dir(repo_root) / "state.json"


def get_log_file(repo_root: Path) -> Path:
    """Return path to the append-only session log.

    Args:
        repo_root: The root directory of the git repository.

    Returns:
        Path to .vbranch/log.jsonl.
    """
    return get_state_dir(repo_root) / "log.jsonl"
