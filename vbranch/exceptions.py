"""Exception classes for vbranch operations.

Contains:
- VBranchError: Base exception for all engine errors
- FileIOError: A single file could not be read or written
- ConflictError: Unresolved overlapping claims block the operation
- InvariantViolation: Disjoint ownership was broken outside a conflict path
- PatchError: A hunk no longer matches the content it should patch
- EmptyCommitError: Commit would not change the branch tree
- BranchNotFoundError: Unknown virtual branch id
- HunkNotFoundError: Unknown hunk id
- StaleStateError: State changed between planning and committing a plan
- OperationCancelled: Apply/unapply cancelled before the rename phase
"""

from typing import Optional


class VBranchError(Exception):
    """Base exception for vbranch errors."""

    pass


class FileIOError(VBranchError):
    """Raised (or reported) when a single file is unreadable or unwritable.

    The operation for that file is aborted; sibling files are unaffected.
    """

    def __init__(self, path: str, reason: str):
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


class ConflictError(VBranchError):
    """Raised when unresolved overlapping claims block an operation."""

    def __init__(self, message: str, paths: Optional[list[str]] = None):
        super().__init__(message)
        self.paths = paths or []


class InvariantViolation(VBranchError):
    """Raised when claims of applied branches overlap outside a conflict path.

    This signals an internal bug and is never repaired automatically.
    """

    pass


class PatchError(VBranchError):
    """Raised when a hunk cannot be located in the content it should patch."""

    pass


class EmptyCommitError(VBranchError):
    """Raised when a commit would not change the branch tree and force is off."""

    pass


class BranchNotFoundError(VBranchError):
    """Raised when a virtual branch id is unknown."""

    pass


class HunkNotFoundError(VBranchError):
    """Raised when a hunk id is not present in the ownership map."""

    pass


class StaleStateError(VBranchError):
    """Raised when the session state kept changing while a plan was committed."""

    pass


class OperationCancelled(VBranchError):
    """Raised when apply/unapply is cancelled before any file is renamed."""

    pass
