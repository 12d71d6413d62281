"""Repository store interface.

Contains:
- TreeEntry: One file entry of a flattened tree
- CommitInfo: Parsed commit object
- RepositoryStore: Protocol every store adapter implements
- EMPTY_TREE_ID: Id of the empty git tree
"""

from dataclasses import dataclass, field
from typing import Optional, Protocol, runtime_checkable


# Well-known id of the empty tree in every git repository
EMPTY_TREE_ID = "4b825dc642cb6eb9a060e54bf8d69288fbee4904"

REGULAR_FILE_MODE = "100644"
EXECUTABLE_FILE_MODE = "100755"


@dataclass(frozen=True)
class TreeEntry:
    """A blob entry in a flattened tree, keyed elsewhere by its full path."""

    oid: str
    mode: str = REGULAR_FILE_MODE


@dataclass
class CommitInfo:
    """A commit object read back from the store."""

    id: str
    tree_id: str
    parents: list[str] = field(default_factory=list)
    message: str = ""


@runtime_checkable
class RepositoryStore(Protocol):
    """Thin adapter over an immutable, content-addressed object store.

    Trees are exchanged flattened: a mapping of slash-separated file paths
    to TreeEntry. Nested subtrees are the adapter's concern.
    """

    def read_tree(self, tree_id: str) -> dict[str, TreeEntry]:
        ...

    def read_blob(self, blob_id: str) -> bytes:
        ...

    def write_blob(self, data: bytes) -> str:
        ...

    def write_tree(self, entries: dict[str, TreeEntry]) -> str:
        ...

    def write_commit(self, tree_id: str, parents: list[str], message: str) -> str:
        ...

    def read_commit(self, commit_id: str) -> CommitInfo:
        ...

    def head_commit(self) -> Optional[str]:
        ...

    def resolve_ref(self, ref: str) -> str:
        ...

    def update_ref(self, ref: str, commit_id: Optional[str]) -> None:
        ...
