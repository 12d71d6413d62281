"""Conflict resolution for vbranch.

Arbitrates between branches whose claims collide, either because an edit
bridges claims of several branches or because applying a branch makes
claims overlap.

Contains:
- ConflictPolicy: Re-exported policy enum
- pick_winner: Choose the winning branch under a policy
- resolve_bridges: Hand bridged segments to a winner (or flag them)
- ConflictGroup / OverlapResolution: Result of splitting overlapping claims
- resolve_overlaps: Split overlapping claims and mark the losing parts
- render_group: Inline marker block for one conflict group
- has_conflict_markers: Detect inline markers in file text
- release_conflict / reset_conflicts: Clear markers and their statuses
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Optional

from vbranch.diff.models import Hunk, HunkStatus, sort_key
from vbranch.diff.patch import apply_hunks, split_hunk_at_base
from vbranch.models import ConflictMarker, ConflictPolicy, VirtualBranch
from vbranch.ownership.models import OwnershipMap
from vbranch.ownership.tracker import Bridge

logger = logging.getLogger(__name__)


MARKER_START = "<<<<<<<"
MARKER_SEPARATOR = "======="
MARKER_END = ">>>>>>>"


# ============================================================
# Arbitration
# ============================================================

def pick_winner(
    candidates: list[VirtualBranch],
    policy: ConflictPolicy,
    claim_times: Optional[dict[str, datetime]] = None,
) -> Optional[VirtualBranch]:
    """Choose the branch whose version wins a conflict.

    Args:
        candidates: Branches involved in the conflict.
        policy: Arbitration policy.
        claim_times: Last claim change per branch id, used by
            MOST_RECENT_WINS (falls back to the branch's updated_at).

    Returns:
        The winning branch, or None under MANUAL_ONLY.
    """
    if not candidates or policy == ConflictPolicy.MANUAL_ONLY:
        return None
    if policy == ConflictPolicy.MOST_RECENT_WINS:
        times = claim_times or {}
        return max(
            candidates,
            key=lambda b: (times.get(b.id, b.updated_at), -b.order, b.id),
        )
    return min(candidates, key=lambda b: (b.order, b.id))


def _claim_times(ownership: OwnershipMap, path: str, branch_ids: list[str]) -> dict[str, datetime]:
    times = {}
    for branch_id in branch_ids:
        claim = ownership.claim_for(branch_id, path)
        if claim is not None:
            times[branch_id] = claim.updated_at
    return times


def resolve_bridges(
    ownership: OwnershipMap,
    bridges: list[Bridge],
    branches: list[VirtualBranch],
    policy: ConflictPolicy,
) -> None:
    """Settle bridged segments in place.

    Automatic policies hand each segment to the winner. MANUAL_ONLY leaves
    it unassigned and CONFLICTED until it is reassigned.
    """
    by_id = {b.id: b for b in branches}
    for bridge in bridges:
        candidates = [by_id[c] for c in bridge.candidates if c in by_id]
        winner = pick_winner(candidates, policy, _claim_times(ownership, bridge.path, bridge.candidates))
        if winner is None:
            hunk = ownership.get(bridge.hunk_id)
            ownership.put(hunk.with_status(HunkStatus.CONFLICTED))
            logger.warning(
                "Change in %s touches branches %s; left unassigned until reassigned",
                bridge.path, ", ".join(b.name for b in candidates),
            )
            continue
        ownership.assign(bridge.hunk_id, winner.id)
        logger.warning(
            "Change in %s touches branches %s; assigned to %s",
            bridge.path, ", ".join(b.name for b in candidates), winner.name,
        )


# ============================================================
# Overlaps
# ============================================================

@dataclass
class ConflictGroup:
    """Pieces of several branches covering the same base region."""

    path: str
    old_start: int
    old_end: int
    pieces: list[tuple[Hunk, Optional[str]]]
    sides: list[str]
    winner_id: Optional[str] = None

    @property
    def whole_file(self) -> bool:
        return any(h.is_whole_file for h, _ in self.pieces)

    def marker(self) -> ConflictMarker:
        return ConflictMarker(
            path=self.path,
            old_start=self.old_start,
            old_end=self.old_end,
            branch_ids=[s for s in self.sides if s is not None],
            winner_id=self.winner_id,
            inline=not self.whole_file,
        )


@dataclass
class OverlapResolution:
    """Records of one file after overlap resolution.

    ``records`` replaces the input records: overlapping ones are split and
    losing pieces are CONFLICTED. ``replaced`` maps each split record id to
    its pieces.
    """

    records: list[tuple[Hunk, Optional[str]]] = field(default_factory=list)
    groups: list[ConflictGroup] = field(default_factory=list)
    replaced: dict[str, list[Hunk]] = field(default_factory=dict)


def _components(items: list[tuple[Hunk, Optional[str]]]) -> list[list[int]]:
    parent = list(range(len(items)))

    def find(i: int) -> int:
        while parent[i] != i:
            parent[i] = parent[parent[i]]
            i = parent[i]
        return i

    for i, (hunk, owner) in enumerate(items):
        for j in range(i + 1, len(items)):
            other, other_owner = items[j]
            if owner != other_owner and hunk.overlaps(other):
                parent[find(i)] = find(j)

    groups: dict[int, list[int]] = {}
    for i in range(len(items)):
        groups.setdefault(find(i), []).append(i)
    return [sorted(members) for members in groups.values() if len(members) > 1]


def _within(hunk: Hunk, start: int, end: int) -> bool:
    if hunk.old_len:
        return start < hunk.old_end and hunk.old_start < end
    return start < hunk.old_start < end


def _absorb(items: list[tuple[Hunk, Optional[str]]], components: list[list[int]]) -> list[list[int]]:
    """Pull pieces lying inside a group's region into that group."""
    grouped = {i for members in components for i in members}
    result = []
    for members in components:
        start = min(items[i][0].old_start for i in members)
        end = max(items[i][0].old_end for i in members)
        extra = [
            i for i, (hunk, _) in enumerate(items)
            if i not in grouped and _within(hunk, start, end)
        ]
        grouped.update(extra)
        result.append(sorted(members + extra))
    return result


def resolve_overlaps(
    path: str,
    records: list[tuple[Hunk, Optional[str]]],
    branches: list[VirtualBranch],
    policy: ConflictPolicy,
    ownership: Optional[OwnershipMap] = None,
) -> OverlapResolution:
    """Split overlapping claims of one file and decide who is materialized.

    Both sides of an overlap are cut at the overlap boundaries. In every
    group of overlapping pieces the winner's pieces stay CLEAN and the
    others become CONFLICTED; under MANUAL_ONLY every piece does.

    Args:
        path: File the records belong to.
        records: Materialized (hunk, owner) pairs of the file.
        branches: All virtual branches.
        policy: Arbitration policy.
        ownership: Current ownership, for claim times.

    Returns:
        OverlapResolution describing the new records and conflict groups.
    """
    records = sorted(records, key=lambda pair: sort_key(pair[0]))
    resolution = OverlapResolution()

    pieces: list[tuple[Hunk, Optional[str]]] = []
    for hunk, owner in records:
        bounds = []
        for other, other_owner in records:
            if other_owner != owner and other.old_len and hunk.overlaps(other):
                bounds.extend((other.old_start, other.old_end))
        split = split_hunk_at_base(hunk, bounds) if bounds else [hunk]
        if len(split) > 1:
            resolution.replaced[hunk.id] = split
        pieces.extend((piece, owner) for piece in split)
    pieces.sort(key=lambda pair: sort_key(pair[0]))

    by_id = {b.id: b for b in branches}
    conflicted: set[int] = set()
    for members in _absorb(pieces, _components(pieces)):
        owners = sorted(
            {pieces[i][1] for i in members},
            key=lambda o: (by_id[o].order, o) if o in by_id else (-1, ""),
        )
        candidates = [by_id[o] for o in owners if o in by_id]
        times = _claim_times(ownership, path, owners) if ownership else None
        winner = pick_winner(candidates, policy, times)
        winner_id = winner.id if winner else None
        sides = ([winner_id] if winner_id else []) + [o for o in owners if o != winner_id]
        group = ConflictGroup(
            path=path,
            old_start=min(pieces[i][0].old_start for i in members),
            old_end=max(pieces[i][0].old_end for i in members),
            pieces=[pieces[i] for i in members],
            sides=sides,
            winner_id=winner_id,
        )
        for i in members:
            if pieces[i][1] != winner_id:
                conflicted.add(i)
        resolution.groups.append(group)
        logger.warning(
            "Conflict in %s lines %d-%d between %s (winner: %s)",
            path, group.old_start, group.old_end - 1,
            ", ".join(by_id[o].name if o in by_id else "unassigned" for o in owners),
            winner.name if winner else "none",
        )

    for i, (piece, owner) in enumerate(pieces):
        status = HunkStatus.CONFLICTED if i in conflicted else piece.status
        resolution.records.append((piece.with_status(status), owner))

    # Group pieces must reflect the final statuses
    final = {piece.id: piece for piece, _ in resolution.records}
    for group in resolution.groups:
        group.pieces = [(final[piece.id], owner) for piece, owner in group.pieces]
    return resolution


def _side_lines(region: list[str], start: int, pieces: list[Hunk]) -> list[str]:
    shifted = [replace(p, old_start=p.old_start - start + 1) for p in pieces]
    lines = apply_hunks(region, shifted)
    if lines and not lines[-1].endswith("\n"):
        lines[-1] += "\n"
    return lines


def render_group(base_lines: list[str], group: ConflictGroup, names: dict[str, str]) -> list[str]:
    """Render the inline marker block replacing a conflict group's region.

    Args:
        base_lines: Lines of the base file.
        group: The conflict group.
        names: Branch names by id.

    Returns:
        Lines from the opening marker through the closing marker.
    """
    region = base_lines[group.old_start - 1:group.old_end - 1]
    block: list[str] = []
    for index, side in enumerate(group.sides):
        side_pieces = [h for h, owner in group.pieces if owner == side]
        if index == 0:
            block.append(f"{MARKER_START} {names.get(side, side)}\n")
        else:
            block.append(f"{MARKER_SEPARATOR}\n")
        block.extend(_side_lines(region, group.old_start, side_pieces))
    block.append(f"{MARKER_END} {names.get(group.sides[-1], group.sides[-1])}\n")
    return block


def has_conflict_markers(text: str) -> bool:
    """Whether text still holds an opening and a closing marker line."""
    lines = text.splitlines()
    return (
        any(line.startswith(MARKER_START) for line in lines)
        and any(line.startswith(MARKER_END) for line in lines)
    )


# ============================================================
# Clearing
# ============================================================

def _in_marker(hunk: Hunk, marker: ConflictMarker) -> bool:
    if hunk.path != marker.path:
        return False
    if not marker.inline or hunk.is_whole_file:
        return True
    if hunk.old_len == 0:
        return marker.old_start <= hunk.old_start <= marker.old_end
    return hunk.old_start < marker.old_end and marker.old_start < hunk.old_end


def release_conflict(ownership: OwnershipMap, marker: ConflictMarker) -> list[Hunk]:
    """Drop the losing CONFLICTED pieces of a resolved conflict.

    Returns:
        The dropped hunks.
    """
    dropped = []
    for hunk, owner in ownership.records():
        if hunk.status != HunkStatus.CONFLICTED:
            continue
        if owner is not None and owner not in marker.branch_ids:
            continue
        if owner == marker.winner_id or not _in_marker(hunk, marker):
            continue
        ownership.remove(hunk.id)
        dropped.append(hunk)
    logger.info("Conflict in %s resolved; dropped %d losing hunks", marker.path, len(dropped))
    return dropped


def reset_conflicts(ownership: OwnershipMap, markers: list[ConflictMarker]) -> None:
    """Return the pieces held back by the given markers to CLEAN."""
    for hunk, owner in ownership.records():
        if hunk.status != HunkStatus.CONFLICTED:
            continue
        if any((owner is None or owner in m.branch_ids) and _in_marker(hunk, m) for m in markers):
            ownership.put(hunk.with_status(HunkStatus.CLEAN))
