"""Repository store adapters for vbranch.

This package provides the thin object-store layer the engine builds on:
- base: TreeEntry, CommitInfo, RepositoryStore protocol
- exceptions: StoreError, ObjectNotFoundError
- runner: _run_git_command, _run_git_bytes, get_repo_root
- git: GitStore (git plumbing)
- memory: MemoryStore (in-process)
"""

# Interface
from vbranch.store.base import (
    EMPTY_TREE_ID,
    EXECUTABLE_FILE_MODE,
    REGULAR_FILE_MODE,
    CommitInfo,
    RepositoryStore,
    TreeEntry,
)

# Exceptions
from vbranch.store.exceptions import (
    ObjectNotFoundError,
    StoreError,
)

# Runner utilities
from vbranch.store.runner import (
    _run_git_command,
    get_repo_root,
)

# Implementations
from vbranch.store.git import GitStore
from vbranch.store.memory import MemoryStore


__all__ = [
    # Interface
    "EMPTY_TREE_ID",
    "EXECUTABLE_FILE_MODE",
    "REGULAR_FILE_MODE",
    "CommitInfo",
    "RepositoryStore",
    "TreeEntry",
    # Exceptions
    "ObjectNotFoundError",
    "StoreError",
    # Runner
    "_run_git_command",
    "get_repo_root",
    # Implementations
    "GitStore",
    "MemoryStore",
]
