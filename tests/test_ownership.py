"""Tests for vbranch.ownership: the ownership map and the tracker."""

import pytest

from vbranch.config import VBranchConfig
from vbranch.conflicts import resolve_bridges
from vbranch.diff.models import Hunk, HunkStatus
from vbranch.exceptions import HunkNotFoundError, InvariantViolation
from vbranch.models import ConflictPolicy, VirtualBranch
from vbranch.ownership.models import OwnershipMap
from vbranch.ownership.tracker import check_disjoint, default_branch, reconcile


def _hunk(start, end, prefix, path="f.txt", overrides=None):
    new_lines = [f"{prefix}{n}\n" for n in range(start, end + 1)]
    for n, text in (overrides or {}).items():
        new_lines[n - start] = text
    return Hunk(
        path=path,
        old_start=start,
        old_len=end - start + 1,
        new_start=start,
        new_len=end - start + 1,
        old_lines=[f"line{n}\n" for n in range(start, end + 1)],
        new_lines=new_lines,
    )


def _insertion(at, lines, path="f.txt"):
    return Hunk(path=path, old_start=at, old_len=0, new_start=at, new_len=len(lines), new_lines=lines)


def _branch(branch_id, order=0, applied=True, default=False):
    return VirtualBranch(id=branch_id, name=branch_id, base_commit="base", order=order, applied=applied, default=default)


class TestOwnershipMap:
    """Tests for OwnershipMap queries and mutations."""

    def test_add_and_owner_of(self):
        """Test that added hunks are indexed by owner and file."""
        ownership = OwnershipMap()
        hunk = _hunk(2, 3, "a")
        ownership.add(hunk, "feature")

        assert ownership.owner_of(hunk.id) == "feature"
        assert ownership.files_for_branch("feature") == ["f.txt"]
        assert ownership.hunks_for_branch("feature") == [hunk]

    def test_assign_moves_between_claims(self):
        """Test that assign moves a hunk and drops empty claims."""
        ownership = OwnershipMap()
        hunk = _hunk(2, 3, "a")
        ownership.add(hunk, "feature")

        ownership.assign(hunk.id, None)

        assert ownership.owner_of(hunk.id) is None
        assert ownership.claims == []
        assert ownership.unassigned_hunks() == [hunk]

    def test_unknown_hunk(self):
        """Test that unknown ids raise HunkNotFoundError."""
        with pytest.raises(HunkNotFoundError):
            OwnershipMap().owner_of("missing")

    def test_replace_keeps_owner(self):
        """Test that replacing a record with pieces keeps the owner."""
        ownership = OwnershipMap()
        hunk = _hunk(2, 5, "a")
        ownership.add(hunk, "feature")
        first, second = _hunk(2, 3, "a"), _hunk(4, 5, "a")

        ownership.replace(hunk.id, [first, second])

        assert hunk.id not in ownership.hunks
        assert [h.id for h in ownership.hunks_for_branch("feature")] == [first.id, second.id]

    def test_remove_branch(self):
        """Test that removing a branch discards its hunks."""
        ownership = OwnershipMap()
        ownership.add(_hunk(2, 3, "a"), "feature")
        ownership.add(_hunk(8, 9, "b"), "other")

        removed = ownership.remove_branch("feature")

        assert len(removed) == 1
        assert ownership.files_for_branch("feature") == []
        assert len(ownership.hunks) == 1

    def test_from_records_keeps_claim_time_when_unchanged(self):
        """Test that an unchanged claim keeps its updated_at."""
        previous = OwnershipMap()
        hunk = _hunk(2, 3, "a")
        previous.add(hunk, "feature")

        rebuilt = OwnershipMap.from_records([(hunk, "feature")], previous=previous)

        assert rebuilt.claims[0].updated_at == previous.claims[0].updated_at

    def test_from_records_rejects_duplicate_ids(self):
        """Test that one hunk recorded under two owners is refused."""
        hunk = _hunk(2, 3, "a")

        with pytest.raises(InvariantViolation):
            OwnershipMap.from_records([(hunk, "feature"), (hunk, "other")])

    def test_round_trips_through_json(self):
        """Test that the map serializes with pydantic."""
        ownership = OwnershipMap()
        hunk = _hunk(2, 3, "a")
        ownership.add(hunk, "feature")

        restored = OwnershipMap.model_validate_json(ownership.model_dump_json())

        assert restored.owner_of(hunk.id) == "feature"
        assert restored.get(hunk.id).new_lines == hunk.new_lines


class TestReconcile:
    """Tests for reconcile."""

    def test_split_preserves_ownership(self):
        """Test that editing inside a claim splits it and keeps the owner."""
        branches = [_branch("feature")]
        ownership = OwnershipMap()
        ownership.add(_hunk(10, 20, "f"), "feature")
        edited = _hunk(10, 20, "f", overrides={12: "g12\n", 13: "g13\n", 14: "g14\n"})

        result = reconcile([edited], ownership, branches)

        hunks = result.ownership.hunks_for_branch("feature")
        assert [(h.old_start, h.old_len) for h in hunks] == [(10, 2), (12, 3), (15, 6)]
        assert result.ownership.unassigned == []
        assert result.bridges == []

    def test_reconcile_is_idempotent(self):
        """Test that a second pass over the same diff changes nothing."""
        branches = [_branch("feature")]
        ownership = OwnershipMap()
        ownership.add(_hunk(10, 20, "f"), "feature")
        edited = _hunk(10, 20, "f", overrides={12: "g12\n", 13: "g13\n", 14: "g14\n"})

        first = reconcile([edited], ownership, branches).ownership
        second = reconcile([edited], first, branches).ownership

        assert sorted(second.hunks) == sorted(first.hunks)
        assert [c.hunk_ids for c in second.claims] == [c.hunk_ids for c in first.claims]

    def test_unchanged_hunk_keeps_record(self):
        """Test that an identical hunk inherits directly."""
        branches = [_branch("feature")]
        ownership = OwnershipMap()
        hunk = _hunk(3, 4, "a")
        ownership.add(hunk, "feature")

        result = reconcile([hunk], ownership, branches)

        assert result.ownership.owner_of(hunk.id) == "feature"

    def test_new_hunk_goes_to_default_branch(self):
        """Test that unmatched hunks land on the default branch."""
        branches = [_branch("main", default=True), _branch("feature", order=1)]
        hunk = _hunk(15, 15, "x")

        result = reconcile([hunk], OwnershipMap(), branches)

        assert result.ownership.owner_of(hunk.id) == "main"

    def test_new_hunk_unassigned_without_default(self):
        """Test that unmatched hunks stay unassigned with no default branch."""
        hunk = _hunk(15, 15, "x")

        result = reconcile([hunk], OwnershipMap(), [_branch("feature")])

        assert result.ownership.owner_of(hunk.id) is None

    def test_unapplied_branch_records_are_held(self):
        """Test that claims of unapplied branches survive a clean working copy."""
        branches = [_branch("main", default=True), _branch("parked", order=1, applied=False)]
        ownership = OwnershipMap()
        parked = _hunk(2, 3, "p")
        ownership.add(parked, "parked")

        result = reconcile([], ownership, branches)

        assert result.ownership.owner_of(parked.id) == "parked"

    def test_held_record_retyped_in_working_copy(self):
        """Test that a parked change typed again is owned once, by the live owner."""
        branches = [_branch("main", default=True), _branch("parked", order=1, applied=False)]
        ownership = OwnershipMap()
        parked = _hunk(2, 3, "p")
        ownership.add(parked, "parked")

        result = reconcile([_hunk(2, 3, "p")], ownership, branches)

        assert result.ownership.owner_of(parked.id) == "main"
        assert result.ownership.hunks_for_branch("parked") == []
        assert sum(parked.id in c.hunk_ids for c in result.ownership.claims) == 1

    def test_vanished_hunk_is_dropped(self):
        """Test that a reverted change disappears from its applied branch."""
        ownership = OwnershipMap()
        ownership.add(_hunk(2, 3, "a"), "feature")

        result = reconcile([], ownership, [_branch("feature")])

        assert result.ownership.hunks == {}

    def test_frozen_paths_are_untouched(self):
        """Test that records and hunks of frozen files are left alone."""
        ownership = OwnershipMap()
        hunk = _hunk(2, 3, "a")
        ownership.add(hunk, "feature")
        branches = [_branch("feature", default=True)]

        result = reconcile([_hunk(2, 3, "changed")], ownership, branches, frozen_paths=["f.txt"])

        assert list(result.ownership.hunks) == [hunk.id]

    def test_move_detection(self):
        """Test that content moved to another file keeps its owner."""
        block = ["def helper():\n", "    return 1\n", "\n", "\n"]
        ownership = OwnershipMap()
        ownership.add(_insertion(5, block, path="a.py"), "feature")
        branches = [_branch("main", default=True), _branch("feature", order=1)]
        moved = _insertion(2, block, path="b.py")

        result = reconcile([moved], ownership, branches)

        assert result.ownership.owner_of(moved.id) == "feature"

    def test_similar_move_respects_threshold(self):
        """Test that a move needs move_similarity to be detected."""
        block = [f"statement {i}\n" for i in range(10)]
        changed = block[:8] + ["other\n", "lines\n"]
        ownership = OwnershipMap()
        ownership.add(_insertion(5, block, path="a.py"), "feature")
        branches = [_branch("main", default=True), _branch("feature", order=1)]
        moved = _insertion(2, changed, path="b.py")

        loose = reconcile([moved], ownership, branches, VBranchConfig(move_similarity=0.7))
        strict = reconcile([moved], ownership, branches, VBranchConfig(move_similarity=0.95))

        assert loose.ownership.owner_of(moved.id) == "feature"
        assert strict.ownership.owner_of(moved.id) == "main"

    def test_bridge_between_two_branches(self):
        """Test that an edit joining two claims is reported as a bridge."""
        branches = [_branch("feature", order=0), _branch("other", order=1)]
        ownership = OwnershipMap()
        ownership.add(_hunk(5, 6, "f"), "feature")
        ownership.add(_hunk(9, 10, "o"), "other")
        joined = _hunk(5, 10, "x", overrides={5: "f5\n", 6: "f6\n", 9: "o9\n", 10: "o10\n"})

        result = reconcile([joined], ownership, branches)

        assert len(result.bridges) == 1
        bridge = result.bridges[0]
        assert bridge.candidates == ["feature", "other"]
        piece = result.ownership.get(bridge.hunk_id)
        assert (piece.old_start, piece.old_len) == (7, 2)
        assert result.ownership.owner_of(bridge.hunk_id) is None

    def test_bridge_resolved_by_priority(self):
        """Test that the bridged segment goes to the lower order branch."""
        branches = [_branch("feature", order=0), _branch("other", order=1)]
        ownership = OwnershipMap()
        ownership.add(_hunk(5, 6, "f"), "feature")
        ownership.add(_hunk(9, 10, "o"), "other")
        joined = _hunk(5, 10, "x", overrides={5: "f5\n", 6: "f6\n", 9: "o9\n", 10: "o10\n"})
        result = reconcile([joined], ownership, branches)

        resolve_bridges(result.ownership, result.bridges, branches, ConflictPolicy.PRIORITY_ORDER)

        assert result.ownership.owner_of(result.bridges[0].hunk_id) == "feature"

    def test_bridge_left_conflicted_under_manual_policy(self):
        """Test that MANUAL_ONLY leaves the bridged segment unassigned and flagged."""
        branches = [_branch("feature", order=0), _branch("other", order=1)]
        ownership = OwnershipMap()
        ownership.add(_hunk(5, 6, "f"), "feature")
        ownership.add(_hunk(9, 10, "o"), "other")
        joined = _hunk(5, 10, "x", overrides={5: "f5\n", 6: "f6\n", 9: "o9\n", 10: "o10\n"})
        result = reconcile([joined], ownership, branches)

        resolve_bridges(result.ownership, result.bridges, branches, ConflictPolicy.MANUAL_ONLY)

        hunk_id = result.bridges[0].hunk_id
        assert result.ownership.owner_of(hunk_id) is None
        assert result.ownership.get(hunk_id).status == HunkStatus.CONFLICTED


class TestCheckDisjoint:
    """Tests for check_disjoint and default_branch."""

    def test_overlapping_claims_raise(self):
        """Test that overlapping materialized claims are an invariant violation."""
        ownership = OwnershipMap()
        ownership.add(_hunk(5, 10, "a"), "a")
        ownership.add(_hunk(8, 12, "b"), "b")

        with pytest.raises(InvariantViolation):
            check_disjoint(ownership, [_branch("a"), _branch("b", order=1)])

    def test_unapplied_and_conflicted_claims_are_ignored(self):
        """Test that only materialized claims are checked."""
        ownership = OwnershipMap()
        ownership.add(_hunk(5, 10, "a"), "a")
        ownership.add(_hunk(8, 12, "b"), "b")
        ownership.add(_hunk(6, 7, "c").with_status(HunkStatus.CONFLICTED), "c")

        check_disjoint(ownership, [_branch("a"), _branch("b", order=1, applied=False), _branch("c", order=2)])

    def test_default_branch_must_be_applied(self):
        """Test that an unapplied default branch receives nothing."""
        assert default_branch([_branch("main", applied=False, default=True)]) is None
        assert default_branch([_branch("main", default=True)]).id == "main"
