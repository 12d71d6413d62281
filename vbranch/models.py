"""Branch-level data models for vbranch.

Contains:
- ConflictPolicy: Closed set of conflict arbitration policies
- VirtualBranch: A named, independently committable set of changes
- ConflictMarker: An unresolved overlap between applied branches
- BranchSummary: Read-only view of a branch for the CLI/GUI layer
- BaseBranch: The commit the branches start from, relative to HEAD
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class ConflictPolicy(str, Enum):
    """How overlapping claims are arbitrated."""

    PRIORITY_ORDER = "priority_order"
    MOST_RECENT_WINS = "most_recent_wins"
    MANUAL_ONLY = "manual_only"


class VirtualBranch(BaseModel):
    """A virtual branch and its metadata.

    Ownership lives in the session's OwnershipMap; the branch itself only
    records where it starts, where its history is and whether it is applied.
    """

    id: str
    name: str
    base_commit: str
    head_commit: Optional[str] = None
    applied: bool = True
    order: int = 0
    default: bool = False
    notes: str = ""
    # Files whose materialization failed on the last apply
    unapplied_files: list[str] = []
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def ref_name(self) -> str:
        """Store ref that keeps this branch's history reachable."""
        return f"refs/vbranches/{self.id}"


class ConflictMarker(BaseModel):
    """Overlapping claims of applied branches in one file.

    Transient: removed as soon as the overlap is resolved.
    """

    path: str
    old_start: int
    old_end: int
    branch_ids: list[str]
    winner_id: Optional[str] = None
    # False for binary and renamed files, which cannot carry inline markers
    inline: bool = True


class BranchSummary(BaseModel):
    """What list_virtual_branches returns for each branch."""

    id: str
    name: str
    applied: bool
    order: int
    default: bool
    head_commit: Optional[str] = None
    base_commit: str
    files: list[str] = []
    hunk_count: int = 0
    conflicted: bool = False
    updated_at: datetime


class BaseBranch(BaseModel):
    """The commit every virtual branch starts from."""

    # Ref the base was chosen by, as given (None: a bare commit id)
    ref_name: Optional[str] = None
    commit_id: str
    subject: str = ""
    head_commit: Optional[str] = None
    # First-parent commits HEAD has on top of the base; None when HEAD does not descend from it
    behind: Optional[int] = None

    @property
    def up_to_date(self) -> bool:
        return self.behind == 0
