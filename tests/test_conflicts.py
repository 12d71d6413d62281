"""Tests for vbranch.conflicts."""

from datetime import datetime, timedelta, timezone

from vbranch.conflicts import (
    MARKER_END,
    MARKER_SEPARATOR,
    MARKER_START,
    has_conflict_markers,
    pick_winner,
    release_conflict,
    render_group,
    reset_conflicts,
    resolve_overlaps,
)
from vbranch.diff.models import Hunk, HunkStatus
from vbranch.models import ConflictPolicy, VirtualBranch
from vbranch.ownership.models import OwnershipMap


BASE_LINES = [f"line{n}\n" for n in range(1, 21)]


def _hunk(start, end, prefix):
    return Hunk(
        path="f.txt",
        old_start=start,
        old_len=end - start + 1,
        new_start=start,
        new_len=end - start + 1,
        old_lines=BASE_LINES[start - 1:end],
        new_lines=[f"{prefix}{n}\n" for n in range(start, end + 1)],
    )


def _branches():
    return [
        VirtualBranch(id="a", name="A", base_commit="base", order=0),
        VirtualBranch(id="b", name="B", base_commit="base", order=1),
    ]


def _spans(records, owner):
    return [
        (h.old_start, h.old_end - 1, h.status)
        for h, o in sorted(records, key=lambda pair: pair[0].old_start)
        if o == owner
    ]


class TestPickWinner:
    """Tests for pick_winner."""

    def test_priority_order(self):
        """Test that the lowest order wins."""
        assert pick_winner(_branches(), ConflictPolicy.PRIORITY_ORDER).id == "a"

    def test_most_recent_wins(self):
        """Test that the most recent claim wins."""
        now = datetime.now(timezone.utc)
        times = {"a": now - timedelta(minutes=5), "b": now}
        assert pick_winner(_branches(), ConflictPolicy.MOST_RECENT_WINS, times).id == "b"

    def test_manual_only(self):
        """Test that MANUAL_ONLY never picks a winner."""
        assert pick_winner(_branches(), ConflictPolicy.MANUAL_ONLY) is None

    def test_no_candidates(self):
        """Test that an empty candidate list has no winner."""
        assert pick_winner([], ConflictPolicy.PRIORITY_ORDER) is None


class TestResolveOverlaps:
    """Tests for resolve_overlaps."""

    def test_overlap_is_split_and_loser_conflicted(self):
        """Test the A 5-10 / B 8-12 scenario under priority order."""
        records = [(_hunk(5, 10, "a"), "a"), (_hunk(8, 12, "b"), "b")]

        resolution = resolve_overlaps("f.txt", records, _branches(), ConflictPolicy.PRIORITY_ORDER)

        assert _spans(resolution.records, "a") == [(5, 7, HunkStatus.CLEAN), (8, 10, HunkStatus.CLEAN)]
        assert _spans(resolution.records, "b") == [(8, 10, HunkStatus.CONFLICTED), (11, 12, HunkStatus.CLEAN)]
        assert len(resolution.groups) == 1
        group = resolution.groups[0]
        assert (group.old_start, group.old_end) == (8, 11)
        assert group.winner_id == "a"
        assert group.sides == ["a", "b"]
        assert set(resolution.replaced) == {records[0][0].id, records[1][0].id}

    def test_manual_policy_conflicts_every_side(self):
        """Test that MANUAL_ONLY marks both sides of the overlap."""
        records = [(_hunk(5, 10, "a"), "a"), (_hunk(8, 12, "b"), "b")]

        resolution = resolve_overlaps("f.txt", records, _branches(), ConflictPolicy.MANUAL_ONLY)

        conflicted = [(h.old_start, o) for h, o in resolution.records if h.status == HunkStatus.CONFLICTED]
        assert sorted(conflicted) == [(8, "a"), (8, "b")]
        assert resolution.groups[0].winner_id is None

    def test_disjoint_records_untouched(self):
        """Test that non-overlapping claims produce no groups."""
        records = [(_hunk(2, 3, "a"), "a"), (_hunk(8, 9, "b"), "b")]

        resolution = resolve_overlaps("f.txt", records, _branches(), ConflictPolicy.PRIORITY_ORDER)

        assert resolution.groups == []
        assert resolution.replaced == {}
        assert [h.id for h, _ in resolution.records] == [h.id for h, _ in records]


class TestRenderGroup:
    """Tests for render_group and has_conflict_markers."""

    def test_renders_both_sides(self):
        """Test the marker block for a two-sided group."""
        records = [(_hunk(5, 10, "a"), "a"), (_hunk(8, 12, "b"), "b")]
        group = resolve_overlaps("f.txt", records, _branches(), ConflictPolicy.PRIORITY_ORDER).groups[0]

        block = render_group(BASE_LINES, group, {"a": "A", "b": "B"})

        assert block == [
            f"{MARKER_START} A\n", "a8\n", "a9\n", "a10\n",
            f"{MARKER_SEPARATOR}\n", "b8\n", "b9\n", "b10\n",
            f"{MARKER_END} B\n",
        ]

    def test_has_conflict_markers(self):
        """Test detection of opening and closing markers."""
        assert has_conflict_markers("x\n<<<<<<< A\ny\n=======\nz\n>>>>>>> B\n")
        assert not has_conflict_markers("x\n<<<<<<< A\ny\n")
        assert not has_conflict_markers("plain text\n")


class TestClearing:
    """Tests for release_conflict and reset_conflicts."""

    def _resolved(self):
        records = [(_hunk(5, 10, "a"), "a"), (_hunk(8, 12, "b"), "b")]
        ownership = OwnershipMap()
        for hunk, owner in records:
            ownership.add(hunk, owner)
        resolution = resolve_overlaps("f.txt", ownership.records(), _branches(), ConflictPolicy.PRIORITY_ORDER)
        for old_id, pieces in resolution.replaced.items():
            ownership.replace(old_id, pieces)
        for piece, _ in resolution.records:
            ownership.put(piece)
        return ownership, resolution.groups[0].marker()

    def test_release_drops_losing_pieces(self):
        """Test that resolving drops the loser's conflicted piece only."""
        ownership, marker = self._resolved()

        dropped = release_conflict(ownership, marker)

        assert [(h.old_start, h.old_len) for h in dropped] == [(8, 3)]
        assert [h.old_start for h in ownership.hunks_for_branch("b")] == [11]
        assert [h.old_start for h in ownership.hunks_for_branch("a")] == [5, 8]

    def test_reset_returns_pieces_to_clean(self):
        """Test that resetting a marker clears CONFLICTED statuses."""
        ownership, marker = self._resolved()

        reset_conflicts(ownership, [marker])

        assert ownership.conflicted_hunks() == []
