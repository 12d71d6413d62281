"""Session state storage for vbranch.

Contains functions for persisting the session state:
- load_state: Load state.json, or None if the repository is not initialized
- save_state: Write state.json atomically
- state_exists: Check whether state.json exists
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from vbranch.exceptions import VBranchError
from vbranch.paths import get_state_file
from vbranch.state.models import SCHEMA_VERSION, SessionState

logger = logging.getLogger(__name__)


def state_exists(repo_root: Path) -> bool:
    return get_state_file(repo_root).exists()


def load_state(repo_root: Path) -> Optional[SessionState]:
    """Load the persisted session state.

    Args:
        repo_root: The root directory of the git repository.

    Returns:
        SessionState, or None if the repository was never initialized.

    Raises:
        VBranchError: If the state file is unreadable, corrupt or written
            by an incompatible version.
    """
    state_file = get_state_file(repo_root)
    if not state_file.exists():
        return None

    try:
        data = json.loads(state_file.read_text())
    except (OSError, json.JSONDecodeError) as e:
        raise VBranchError(f"Cannot read {state_file}: {e}") from e

    if not isinstance(data, dict):
        raise VBranchError(f"Corrupt state file {state_file}: expected a JSON object")

    schema_version = data.get("schema_version")
    if schema_version != SCHEMA_VERSION:
        raise VBranchError(
            f"{state_file} has schema version {schema_version}, expected {SCHEMA_VERSION}"
        )

    try:
        return SessionState.model_validate(data)
    except ValidationError as e:
        raise VBranchError(f"Corrupt state file {state_file}: {e}") from e


def save_state(repo_root: Path, state: SessionState) -> None:
    """Write the session state atomically.

    The JSON is written to a temporary file next to state.json and renamed
    over it, so readers never see a partial file.

    Args:
        repo_root: The root directory of the git repository.
        state: State to persist.
    """
    state_file = get_state_file(repo_root)
    fd, tmp_name = tempfile.mkstemp(dir=state_file.parent, prefix=".state-", suffix=".json")
    try:
        with os.fdopen(fd, "w") as f:
            f.write(state.model_dump_json(indent=2))
        os.replace(tmp_name, state_file)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    logger.debug("Saved state version %d to %s", state.version, state_file)
