"""Tests for vbranch.state storage."""

import json

import pytest

from vbranch.diff.models import Hunk
from vbranch.exceptions import BranchNotFoundError, VBranchError
from vbranch.models import ConflictMarker, VirtualBranch
from vbranch.paths import get_state_file
from vbranch.state import SessionState, load_state, save_state, state_exists


def _state():
    state = SessionState(
        base_commit="base",
        branches=[
            VirtualBranch(id="a", name="A", base_commit="base", order=0, default=True),
            VirtualBranch(id="b", name="B", base_commit="base", order=1, applied=False),
        ],
        conflicts=[ConflictMarker(path="f.txt", old_start=3, old_end=5, branch_ids=["a", "b"], winner_id="a")],
    )
    hunk = Hunk(
        path="f.txt", old_start=3, old_len=1, new_start=3, new_len=1,
        old_lines=["line3\n"], new_lines=["x3\n"],
    )
    state.ownership.add(hunk, "a")
    return state, hunk


class TestStateStorage:
    """Tests for load_state and save_state."""

    def test_missing_state(self, temp_dir):
        """Test that an uninitialized repository has no state."""
        assert load_state(temp_dir) is None
        assert not state_exists(temp_dir)

    def test_round_trip(self, temp_dir):
        """Test that branches, ownership and conflicts survive a save."""
        state, hunk = _state()

        save_state(temp_dir, state)
        loaded = load_state(temp_dir)

        assert state_exists(temp_dir)
        assert [b.name for b in loaded.branches] == ["A", "B"]
        assert loaded.ownership.owner_of(hunk.id) == "a"
        assert loaded.ownership.get(hunk.id).new_lines == ["x3\n"]
        assert loaded.conflicts == state.conflicts

    def test_no_temporary_files_left(self, temp_dir):
        """Test that the atomic write cleans up after itself."""
        save_state(temp_dir, _state()[0])
        assert [p.name for p in get_state_file(temp_dir).parent.iterdir()] == ["state.json"]

    def test_corrupt_json(self, temp_dir):
        """Test that unparseable JSON raises VBranchError."""
        get_state_file(temp_dir).write_text("{not json")

        with pytest.raises(VBranchError, match="Cannot read"):
            load_state(temp_dir)

    def test_wrong_schema_version(self, temp_dir):
        """Test that a state file from another version is refused."""
        get_state_file(temp_dir).write_text(json.dumps({"schema_version": 99}))

        with pytest.raises(VBranchError, match="schema version 99"):
            load_state(temp_dir)

    def test_invalid_content(self, temp_dir):
        """Test that a well-formed but invalid state raises VBranchError."""
        get_state_file(temp_dir).write_text(json.dumps({"schema_version": 1, "branches": [{"id": 1}]}))

        with pytest.raises(VBranchError, match="Corrupt state file"):
            load_state(temp_dir)

    @pytest.mark.parametrize("content", ["[]", "null", '"state"', "3"])
    def test_json_that_is_not_an_object(self, temp_dir, content):
        """Test that valid JSON of the wrong shape raises VBranchError."""
        get_state_file(temp_dir).write_text(content)

        with pytest.raises(VBranchError, match="expected a JSON object"):
            load_state(temp_dir)


class TestSessionState:
    """Tests for SessionState helpers."""

    def test_applied_branches_in_order(self):
        """Test that only applied branches are listed, by order."""
        state, _ = _state()
        assert [b.id for b in state.applied_branches] == ["a"]

    def test_branch_lookup(self):
        """Test finding branches by id."""
        state, _ = _state()
        assert state.branch("b").name == "B"
        assert state.find_branch("zzz") is None
        with pytest.raises(BranchNotFoundError):
            state.branch("zzz")

    def test_conflict_helpers(self):
        """Test conflict lookups by path."""
        state, _ = _state()
        assert state.conflicted_paths() == {"f.txt"}
        assert len(state.conflicts_for("f.txt")) == 1
        assert state.conflicts_for("g.txt") == []
