"""Tests for vbranch.session_log."""

import pytest

from vbranch.exceptions import VBranchError
from vbranch.session_log import REDO, UNDO, SessionLog


@pytest.fixture
def log(temp_dir):
    """An empty session log."""
    return SessionLog(temp_dir / "log.jsonl")


class TestSessionLog:
    """Tests for appending and reading entries."""

    def test_empty_log(self, log):
        """Test that a missing file has no entries."""
        assert log.entries() == []
        assert log.next_undo() is None
        assert log.next_redo() is None

    def test_append_numbers_entries(self, log):
        """Test that entries are numbered and persisted in order."""
        first = log.append("create_branch", {"name": "A"}, {"action": "delete_branch", "branch_id": "x"})
        second = log.append("commit", {"branch_id": "x"})

        entries = SessionLog(log.path).entries()

        assert (first.seq, second.seq) == (1, 2)
        assert [e.op for e in entries] == ["create_branch", "commit"]
        assert entries[0].inverse == {"action": "delete_branch", "branch_id": "x"}

    def test_unknown_operation(self, log):
        """Test that operations the log cannot invert are refused."""
        with pytest.raises(VBranchError, match="Unknown operation"):
            log.append("rebase")

    def test_corrupt_line(self, log):
        """Test that a corrupt line raises with its line number."""
        log.append("commit")
        with open(log.path, "a") as f:
            f.write("{oops\n")

        with pytest.raises(VBranchError, match=":2: corrupt log entry"):
            log.entries()

    def test_blank_lines_skipped(self, log):
        """Test that blank lines are ignored."""
        log.append("commit")
        with open(log.path, "a") as f:
            f.write("\n")
        assert len(log.entries()) == 1


class TestStacks:
    """Tests for the derived undo and redo stacks."""

    def test_undo_moves_entry_to_redo(self, log):
        """Test that an undo entry pops the undo stack."""
        entry = log.append("create_branch")
        log.append("create_branch", kind=UNDO, target=entry.seq)

        undo_stack, redo_stack = log.stacks()

        assert undo_stack == []
        assert [e.seq for e in redo_stack] == [entry.seq]

    def test_redo_moves_entry_back(self, log):
        """Test that a redo entry restores the operation."""
        entry = log.append("create_branch")
        log.append("create_branch", kind=UNDO, target=entry.seq)
        log.append("create_branch", kind=REDO, target=entry.seq)

        assert log.next_undo().seq == entry.seq
        assert log.next_redo() is None

    def test_new_operation_clears_redo(self, log):
        """Test that a fresh operation discards the redo stack."""
        entry = log.append("create_branch")
        log.append("create_branch", kind=UNDO, target=entry.seq)
        newer = log.append("commit")

        undo_stack, redo_stack = log.stacks()

        assert [e.seq for e in undo_stack] == [newer.seq]
        assert redo_stack == []

    def test_undo_in_reverse_order(self, log):
        """Test that successive undos walk back through history."""
        first = log.append("create_branch")
        second = log.append("reassign_hunk")
        log.append("reassign_hunk", kind=UNDO, target=second.seq)

        assert log.next_undo().seq == first.seq
        assert log.next_redo().seq == second.seq
