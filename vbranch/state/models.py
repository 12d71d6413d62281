"""Persisted session state for vbranch.

Contains Pydantic models for the state file:
- SessionState: Branches, ownership and conflicts of one repository
"""

from typing import Optional

from pydantic import BaseModel, Field

from vbranch.exceptions import BranchNotFoundError
from vbranch.models import ConflictMarker, VirtualBranch
from vbranch.ownership.models import OwnershipMap


SCHEMA_VERSION = 1


class SessionState(BaseModel):
    """Everything vbranch knows about a repository between runs."""

    schema_version: int = SCHEMA_VERSION
    # Bumped on every change; plans are only committed against the version they saw
    version: int = 0
    # Tree hash of the working copy the ownership was last reconciled against
    snapshot_id: Optional[str] = None
    base_commit: Optional[str] = None
    base_ref: Optional[str] = None
    branches: list[VirtualBranch] = []
    ownership: OwnershipMap = Field(default_factory=OwnershipMap)
    conflicts: list[ConflictMarker] = []
    skipped_files: list[str] = []

    def find_branch(self, branch_id: str) -> Optional[VirtualBranch]:
        for branch in self.branches:
            if branch.id == branch_id:
                return branch
        return None

    def branch(self, branch_id: str) -> VirtualBranch:
        """Get a branch by id.

        Raises:
            BranchNotFoundError: If there is no such branch.
        """
        branch = self.find_branch(branch_id)
        if branch is None:
            raise BranchNotFoundError(f"No virtual branch with id {branch_id}")
        return branch

    @property
    def applied_branches(self) -> list[VirtualBranch]:
        return sorted((b for b in self.branches if b.applied), key=lambda b: (b.order, b.id))

    def branch_names(self) -> dict[Optional[str], str]:
        names: dict[Optional[str], str] = {b.id: b.name for b in self.branches}
        names[None] = "unassigned"
        return names

    def conflicts_for(self, path: str) -> list[ConflictMarker]:
        return [m for m in self.conflicts if m.path == path]

    def conflicted_paths(self) -> set[str]:
        return {m.path for m in self.conflicts}
