"""Data models for the vbranch diff engine.

Contains:
- HunkStatus: CLEAN or CONFLICTED
- ChangeKind: What happened to the file a hunk belongs to
- Hunk: A contiguous changed line range in one file
- DiffResult: Ordered hunks plus per-file errors of one diff pass
"""

import hashlib
from dataclasses import dataclass, field, replace
from enum import Enum
from functools import cached_property
from typing import Optional

from vbranch.exceptions import FileIOError


class HunkStatus(str, Enum):
    """Materialization status of a hunk."""

    CLEAN = "clean"
    CONFLICTED = "conflicted"


class ChangeKind(str, Enum):
    """File-level change a hunk is part of."""

    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"
    RENAMED = "renamed"


@dataclass
class Hunk:
    """A contiguous change between a base file and a working file.

    Line numbers are 1-based. ``old_start``/``old_len`` address the base
    tree and stay stable while the working copy is edited; a pure insertion
    has ``old_len == 0`` and ``old_start`` is the base line it precedes.
    ``new_start``/``new_len`` address the working copy the hunk was computed
    against. Lines keep their line endings.
    """

    path: str
    old_start: int
    old_len: int
    new_start: int
    new_len: int
    old_lines: list[str] = field(default_factory=list)
    new_lines: list[str] = field(default_factory=list)
    change: ChangeKind = ChangeKind.MODIFIED
    old_path: Optional[str] = None  # For renames
    binary: bool = False
    old_blob: Optional[str] = None  # Opaque hunks only
    new_blob: Optional[str] = None
    status: HunkStatus = HunkStatus.CLEAN

    @property
    def old_end(self) -> int:
        """Exclusive end of the base range."""
        return self.old_start + self.old_len

    @property
    def new_end(self) -> int:
        """Exclusive end of the working range."""
        return self.new_start + self.new_len

    @property
    def source_path(self) -> str:
        """Path of the file in the base tree."""
        return self.old_path or self.path

    @cached_property
    def content_hash(self) -> str:
        """Hash of what the hunk changes, independent of where it sits."""
        digest = hashlib.sha256()
        if self.binary:
            digest.update(f"binary\0{self.old_blob}\0{self.new_blob}".encode())
        else:
            for line in self.old_lines:
                digest.update(b"-" + line.encode("utf-8", errors="surrogateescape"))
            for line in self.new_lines:
                digest.update(b"+" + line.encode("utf-8", errors="surrogateescape"))
        return digest.hexdigest()

    @property
    def id(self) -> str:
        """Identity derived from path, base position and content."""
        key = f"{self.path}\0{self.source_path}\0{self.old_start}\0{self.old_len}\0{self.content_hash}"
        return hashlib.sha1(key.encode("utf-8", errors="surrogateescape"), usedforsecurity=False).hexdigest()[:12]

    @property
    def header(self) -> str:
        """The git-style @@ header line for this hunk."""
        # git addresses an empty range by the line before it
        old = self.old_start - 1 if self.old_len == 0 else self.old_start
        new = self.new_start - 1 if self.new_len == 0 else self.new_start
        return f"@@ -{old},{self.old_len} +{new},{self.new_len} @@"

    @property
    def is_whole_file(self) -> bool:
        """True for hunks that can only be handled as a unit."""
        return self.binary or self.change == ChangeKind.RENAMED

    def touches(self, other: "Hunk") -> bool:
        """Whether two base ranges overlap or abut, for ownership matching."""
        if self.source_path != other.source_path and self.path != other.path:
            return False
        if self.is_whole_file or other.is_whole_file:
            return True
        if self.old_len and other.old_len:
            return self.old_start < other.old_end and other.old_start < self.old_end
        if not self.old_len and not other.old_len:
            return self.old_start == other.old_start
        point, span = (self, other) if not self.old_len else (other, self)
        return span.old_start <= point.old_start <= span.old_end

    def overlaps(self, other: "Hunk") -> bool:
        """Whether two base ranges overlap strictly.

        Two insertions at the same base line do not overlap; neither does
        an insertion at the edge of a replaced range.
        """
        if self.path != other.path:
            return False
        if self.is_whole_file or other.is_whole_file:
            return True
        if self.old_len and other.old_len:
            return self.old_start < other.old_end and other.old_start < self.old_end
        if not self.old_len and not other.old_len:
            return False
        point, span = (self, other) if not self.old_len else (other, self)
        return span.old_start < point.old_start < span.old_end

    def with_status(self, status: HunkStatus) -> "Hunk":
        return replace(self, status=status)


def sort_key(hunk: Hunk) -> tuple:
    """Ordering used everywhere: path, base position, insertions first."""
    return (hunk.path, hunk.old_start, hunk.old_len != 0, hunk.new_start)


@dataclass
class DiffResult:
    """Outcome of one diff pass."""

    hunks: list[Hunk] = field(default_factory=list)
    errors: list[FileIOError] = field(default_factory=list)
    snapshot_id: Optional[str] = None

    @property
    def error_paths(self) -> set[str]:
        return {error.path for error in self.errors}
