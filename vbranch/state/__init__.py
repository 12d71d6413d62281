"""Session state persistence for vbranch.

This package keeps branches, ownership and conflicts between runs:
- models: SessionState
- storage: load_state, save_state, state_exists
"""

# Models
from vbranch.state.models import (
    SCHEMA_VERSION,
    SessionState,
)

# Storage
from vbranch.state.storage import (
    load_state,
    save_state,
    state_exists,
)


__all__ = [
    # Models
    "SCHEMA_VERSION",
    "SessionState",
    # Storage
    "load_state",
    "save_state",
    "state_exists",
]
