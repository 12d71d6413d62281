"""Session log for vbranch.

An append-only JSON-lines record of every user-visible operation together
with what is needed to invert it. Undo and redo append entries too; the
undo and redo stacks are derived by replaying the log.

Contains:
- OPERATIONS: Operation names the log knows how to invert
- LogEntry: One line of the log
- SessionLog: Reads and appends .vbranch/log.jsonl
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError

from vbranch.exceptions import VBranchError
from vbranch.models import utc_now

logger = logging.getLogger(__name__)


OPERATIONS = (
    "create_branch",
    "delete_branch",
    "update_branch",
    "reassign_hunk",
    "apply_branch",
    "unapply_branch",
    "commit",
)

OP = "op"
UNDO = "undo"
REDO = "redo"


class LogEntry(BaseModel):
    """One operation, undo or redo."""

    seq: int
    kind: str = OP
    op: str
    params: dict[str, Any] = {}
    inverse: dict[str, Any] = {}
    # For undo/redo entries: seq of the operation entry they act on
    target: Optional[int] = None
    timestamp: datetime = Field(default_factory=utc_now)


class SessionLog:
    """The append-only operation log of one repository."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def entries(self) -> list[LogEntry]:
        """Read every entry in order.

        Raises:
            VBranchError: If a line cannot be parsed.
        """
        if not self.path.exists():
            return []
        entries = []
        with open(self.path, "r") as f:
            for number, line in enumerate(f, start=1):
                if not line.strip():
                    continue
                try:
                    entries.append(LogEntry.model_validate(json.loads(line)))
                except (json.JSONDecodeError, ValidationError) as e:
                    raise VBranchError(f"{self.path}:{number}: corrupt log entry: {e}") from e
        return entries

    def append(
        self,
        op: str,
        params: Optional[dict[str, Any]] = None,
        inverse: Optional[dict[str, Any]] = None,
        kind: str = OP,
        target: Optional[int] = None,
    ) -> LogEntry:
        """Append an entry and return it."""
        if op not in OPERATIONS:
            raise VBranchError(f"Unknown operation: {op}")
        entries = self.entries()
        entry = LogEntry(
            seq=entries[-1].seq + 1 if entries else 1,
            kind=kind,
            op=op,
            params=params or {},
            inverse=inverse or {},
            target=target,
        )
        with open(self.path, "a") as f:
            f.write(entry.model_dump_json() + "\n")
        logger.debug("Logged %s %s (#%d)", kind, op, entry.seq)
        return entry

    def stacks(self) -> tuple[list[LogEntry], list[LogEntry]]:
        """Derive the undo and redo stacks (top of stack last).

        A new operation clears the redo stack, as in any editor.
        """
        undo_stack: list[LogEntry] = []
        redo_stack: list[LogEntry] = []
        for entry in self.entries():
            if entry.kind == OP:
                undo_stack.append(entry)
                redo_stack.clear()
            elif entry.kind == UNDO:
                if undo_stack and undo_stack[-1].seq == entry.target:
                    redo_stack.append(undo_stack.pop())
            elif entry.kind == REDO:
                if redo_stack and redo_stack[-1].seq == entry.target:
                    undo_stack.append(redo_stack.pop())
        return undo_stack, redo_stack

    def next_undo(self) -> Optional[LogEntry]:
        undo_stack, _ = self.stacks()
        return undo_stack[-1] if undo_stack else None

    def next_redo(self) -> Optional[LogEntry]:
        _, redo_stack = self.stacks()
        return redo_stack[-1] if redo_stack else None
