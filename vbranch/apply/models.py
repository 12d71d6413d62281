"""Data models for the branch application engine.

Contains:
- FileWrite: Final content of one file (or its deletion)
- WritePlan: Every file write needed to apply or unapply a branch
- ApplyResult: What actually happened on disk
"""

from dataclasses import dataclass, field
from typing import Optional

from vbranch.models import ConflictMarker
from vbranch.ownership.models import OwnershipMap
from vbranch.store.base import REGULAR_FILE_MODE


@dataclass
class FileWrite:
    """Content one file must have after the plan runs."""

    path: str
    content: Optional[bytes]  # None deletes the file
    # Digest of the on-disk file when planned, None if it did not exist
    expected_digest: Optional[str]
    mode: str = REGULAR_FILE_MODE

    @property
    def is_delete(self) -> bool:
        return self.content is None


@dataclass
class WritePlan:
    """Planned apply or unapply of one branch.

    ``ownership`` and ``conflicts`` describe the state once every write
    succeeded; the session rolls back the paths that fail.
    """

    branch_id: str
    action: str  # "apply" or "unapply"
    writes: list[FileWrite] = field(default_factory=list)
    ownership: OwnershipMap = field(default_factory=OwnershipMap)
    conflicts: list[ConflictMarker] = field(default_factory=list)
    # Files that could not even be planned, with the reason
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def paths(self) -> list[str]:
        return [w.path for w in self.writes]


@dataclass
class ApplyResult:
    """Outcome of executing a plan."""

    branch_id: str
    written: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    conflicts: list[ConflictMarker] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed
