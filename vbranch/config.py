"""Repository configuration for vbranch.

Handles reading and writing the .vbranch/config.yaml file in each repository
and turning it into a validated VBranchConfig.
"""

import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError

from vbranch.models import ConflictPolicy
from vbranch.paths import get_config_file

logger = logging.getLogger(__name__)


# Default configuration values
DEFAULT_CONFIG = {
    "ignore": [
        # Build artifacts
        "*.pyc",
        "*.pyo",
        "__pycache__/*",
        # Editor files
        "*.swp",
        "*.swo",
        ".idea/*",
        ".vscode/*",
    ],
    "conflict_policy": ConflictPolicy.PRIORITY_ORDER.value,
    "rename_similarity": 0.5,
    # Tunable heuristic; a hunk below this similarity to any vanished hunk is new
    "move_similarity": 0.85,
    "move_min_lines": 3,
    "max_file_size": 10 * 1024 * 1024,
    "diff_workers": 4,
    "log_level": "WARNING",
}


class VBranchConfig(BaseModel):
    """Validated engine configuration."""

    ignore: list[str] = Field(default_factory=lambda: list(DEFAULT_CONFIG["ignore"]))
    conflict_policy: ConflictPolicy = ConflictPolicy.PRIORITY_ORDER
    rename_similarity: float = Field(default=0.5, ge=0.0, le=1.0)
    move_similarity: float = Field(default=0.85, ge=0.0, le=1.0)
    move_min_lines: int = Field(default=3, ge=1)
    max_file_size: int = Field(default=10 * 1024 * 1024, gt=0)
    diff_workers: int = Field(default=4, ge=1)
    log_level: str = "WARNING"


def load_config(repo_root: Path) -> dict:
    """Load the vbranch configuration from config.yaml.

    If the file doesn't exist, creates it with default values.

    Args:
        repo_root: The root directory of the git repository.

    Returns:
        Configuration dictionary.
    """
    config_file = get_config_file(repo_root)

    if not config_file.exists():
        save_config(repo_root, DEFAULT_CONFIG)
        return dict(DEFAULT_CONFIG, ignore=list(DEFAULT_CONFIG["ignore"]))

    try:
        with open(config_file, "r") as f:
            config = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning("Ignoring unreadable config %s: %s", config_file, e)
        return dict(DEFAULT_CONFIG, ignore=list(DEFAULT_CONFIG["ignore"]))

    # Merge with defaults for any missing keys
    for key, value in DEFAULT_CONFIG.items():
        if key not in config:
            config[key] = value
    return config


def save_config(repo_root: Path, config: dict) -> None:
    """Save the configuration to config.yaml.

    Args:
        repo_root: The root directory of the git repository.
        config: Configuration dictionary to save.
    """
    config_file = get_config_file(repo_root)

    with open(config_file, "w") as f:
        yaml.dump(
            config,
            f,
            default_flow_style=False,
            sort_keys=False,
            allow_unicode=True,
        )


def config_from_dict(config: dict) -> VBranchConfig:
    """Build a VBranchConfig, falling back to defaults for invalid values.

    Args:
        config: Raw configuration dictionary.

    Returns:
        VBranchConfig instance.
    """
    try:
        return VBranchConfig(**{k: v for k, v in config.items() if k in VBranchConfig.model_fields})
    except ValidationError as e:
        logger.warning("Invalid vbranch configuration, using defaults: %s", e)
        return VBranchConfig()


def load_vbranch_config(repo_root: Path) -> VBranchConfig:
    """Load and validate the repository configuration.

    Args:
        repo_root: The root directory of the git repository.

    Returns:
        VBranchConfig instance.
    """
    return config_from_dict(load_config(repo_root))


def get_ignore_patterns(repo_root: Path) -> list[str]:
    """Get the list of ignore patterns from config.

    Args:
        repo_root: The root directory of the git repository.

    Returns:
        List of file patterns excluded from diffs.
    """
    config = load_config(repo_root)
    return config.get("ignore", DEFAULT_CONFIG["ignore"])


def add_ignore_pattern(repo_root: Path, pattern: str) -> None:
    """Add a pattern to the ignore list.

    Args:
        repo_root: The root directory of the git repository.
        pattern: File pattern to add (e.g., "*.log", "build/*").
    """
    config = load_config(repo_root)
    if "ignore" not in config:
        config["ignore"] = []
    if pattern not in config["ignore"]:
        config["ignore"].append(pattern)
        save_config(repo_root, config)


def remove_ignore_pattern(repo_root: Path, pattern: str) -> bool:
    """Remove a pattern from the ignore list.

    Args:
        repo_root: The root directory of the git repository.
        pattern: File pattern to remove.

    Returns:
        True if pattern was found and removed, False otherwise.
    """
    config = load_config(repo_root)
    if "ignore" in config and pattern in config["ignore"]:
        config["ignore"].remove(pattern)
        save_config(repo_root, config)
        return True
    return False
