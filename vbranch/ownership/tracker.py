"""Ownership tracker for vbranch.

Reconciles the hunks of a fresh diff with the claims recorded before it,
so attribution survives further edits.

Contains:
- Bridge: An edited segment touching claims of several branches
- ReconcileResult: New ownership map plus bridges for the conflict resolver
- reconcile: Attribute new hunks to branches
- check_disjoint: Verify materialized claims never overlap
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from vbranch.config import VBranchConfig
from vbranch.diff.models import Hunk, HunkStatus, sort_key
from vbranch.diff.patch import split_hunk_at
from vbranch.diff.text import line_opcodes, map_offset, similarity
from vbranch.exceptions import InvariantViolation
from vbranch.models import VirtualBranch
from vbranch.ownership.models import OwnershipMap

logger = logging.getLogger(__name__)


@dataclass
class Bridge:
    """An edited segment adjacent to claims of more than one branch."""

    hunk_id: str
    path: str
    candidates: list[str]


@dataclass
class ReconcileResult:
    """Outcome of one reconciliation pass."""

    ownership: OwnershipMap
    bridges: list[Bridge] = field(default_factory=list)


@dataclass
class _Record:
    hunk: Hunk
    owner: Optional[str]


@dataclass
class _Block:
    """One stretch of the previous version of a region.

    ``record`` is an index into the touching records, or None for base
    lines no record changed.
    """

    record: Optional[int]
    b1: int
    b2: int
    q1: int
    q2: int


@dataclass
class _Label:
    record: Optional[int] = None
    candidates: frozenset = frozenset()

    @property
    def edited(self) -> bool:
        return self.record is None


def default_branch(branches: Iterable[VirtualBranch]) -> Optional[VirtualBranch]:
    """The applied branch that receives unmatched hunks, if any."""
    for branch in sorted(branches, key=lambda b: (b.order, b.id)):
        if branch.applied and branch.default:
            return branch
    return None


# ============================================================
# Segmentation
# ============================================================

def _base_line(n: int, hunk: Hunk, records: list[_Record]) -> str:
    if hunk.old_start <= n < hunk.old_end:
        return hunk.old_lines[n - hunk.old_start]
    for record in records:
        p = record.hunk
        if p.old_start <= n < p.old_end:
            return p.old_lines[n - p.old_start]
    raise InvariantViolation(f"{hunk.path}: base line {n} is not covered by any hunk")


def _prev_to_base(q: int, blocks: list[_Block], end: int) -> int:
    for block in blocks:
        if q < block.q2:
            if block.record is None:
                return block.b1 + (q - block.q1)
            return block.b1 + min(q - block.q1, block.b2 - block.b1)
    return end


def _contains(p: Hunk, start: int, end: int) -> bool:
    if p.old_len == 0:
        return start == end == p.old_start
    return p.old_start <= start and end <= p.old_end


def _segment(hunk: Hunk, records: list[_Record]) -> list[tuple[Hunk, _Label]]:
    """Split a new hunk along the records it touches.

    The previous version of the region (base lines plus each record's new
    lines) is aligned with the current one. Current lines matching a
    record's lines keep that record's label; everything else is edited.
    Cuts are taken at label changes and at every record boundary, so a
    second pass over the same content reproduces the same pieces.
    """
    start = min([hunk.old_start] + [r.hunk.old_start for r in records])
    end = max([hunk.old_end] + [r.hunk.old_end for r in records])

    prev_lines: list[str] = []
    prev_labels: list[Optional[int]] = []
    blocks: list[_Block] = []
    pos = start
    for index, record in enumerate(records):
        p = record.hunk
        if p.old_start > pos:
            q1 = len(prev_lines)
            for n in range(pos, p.old_start):
                prev_lines.append(_base_line(n, hunk, records))
                prev_labels.append(None)
            blocks.append(_Block(None, pos, p.old_start, q1, len(prev_lines)))
            pos = p.old_start
        q1 = len(prev_lines)
        prev_lines.extend(p.new_lines)
        prev_labels.extend([index] * len(p.new_lines))
        blocks.append(_Block(index, p.old_start, p.old_end, q1, len(prev_lines)))
        pos = max(pos, p.old_end)
    if pos < end:
        q1 = len(prev_lines)
        for n in range(pos, end):
            prev_lines.append(_base_line(n, hunk, records))
            prev_labels.append(None)
        blocks.append(_Block(None, pos, end, q1, len(prev_lines)))

    cur_lines = (
        [_base_line(n, hunk, records) for n in range(start, hunk.old_start)]
        + list(hunk.new_lines)
        + [_base_line(n, hunk, records) for n in range(hunk.old_end, end)]
    )
    offset = hunk.old_start - start
    opcodes = line_opcodes(prev_lines, cur_lines)
    a_len, b_len = len(prev_lines), len(cur_lines)

    labels: list[_Label] = [_Label() for _ in cur_lines]
    for tag, i1, i2, j1, j2 in opcodes:
        if tag == "equal":
            for k in range(j2 - j1):
                labels[j1 + k] = _Label(record=prev_labels[i1 + k])
        elif tag in ("replace", "insert"):
            candidates = {prev_labels[i] for i in range(i1, i2)} - {None}
            if not candidates:
                if i1 > 0:
                    candidates.add(prev_labels[i1 - 1])
                if i2 < a_len:
                    candidates.add(prev_labels[i2])
                candidates.discard(None)
            for j in range(j1, j2):
                labels[j] = _Label(candidates=frozenset(candidates))

    cuts: list[tuple[int, int]] = []
    for j in range(offset + 1, offset + hunk.new_len):
        if labels[j].record != labels[j - 1].record or labels[j].edited != labels[j - 1].edited:
            q = map_offset(opcodes, j, a_len, b_len, from_b=True)
            cuts.append((_prev_to_base(q, blocks, end) - hunk.old_start, j - offset))
    for block in blocks:
        if block.record is None:
            continue
        for b, q in ((block.b1, block.q1), (block.b2, block.q2)):
            c = map_offset(opcodes, q, a_len, b_len, from_b=False)
            cuts.append((b - hunk.old_start, c - offset))

    pieces = split_hunk_at(hunk, cuts)
    labelled = []
    for piece in pieces:
        first = offset + (piece.new_start - hunk.new_start)
        piece_labels = labels[first:first + piece.new_len]
        label = _label_piece(piece, piece_labels, records)
        labelled.append((piece, label))
    return labelled


def _label_piece(piece: Hunk, piece_labels: list[_Label], records: list[_Record]) -> _Label:
    if piece_labels:
        owners = {lab.record for lab in piece_labels}
        if len(owners) == 1 and None not in owners:
            return _Label(record=owners.pop())
        candidates = set(owners - {None})
        for lab in piece_labels:
            candidates |= lab.candidates
    else:
        for index, record in enumerate(records):
            if _contains(record.hunk, piece.old_start, piece.old_end):
                return _Label(record=index)
        candidates = set()
    if not candidates:
        candidates = {i for i, r in enumerate(records) if r.hunk.touches(piece)}
    return _Label(candidates=frozenset(candidates))


# ============================================================
# Matching
# ============================================================

def _inherit(
    hunk: Hunk,
    touching: list[_Record],
    default_id: Optional[str],
) -> list[tuple[Hunk, Optional[str], Optional[Bridge]]]:
    """Attribute a new hunk that touches earlier records."""
    for record in touching:
        if record.hunk.id == hunk.id:
            return [(record.hunk, record.owner, None)]

    if hunk.is_whole_file or any(r.hunk.is_whole_file for r in touching):
        for record in touching:
            if record.hunk.content_hash == hunk.content_hash:
                return [(hunk.with_status(record.hunk.status), record.owner, None)]
        labelled = [(hunk, _Label(candidates=frozenset(range(len(touching)))))]
    else:
        labelled = _segment(hunk, touching)

    results = []
    for piece, label in labelled:
        if not label.edited:
            record = touching[label.record]
            results.append((piece.with_status(record.hunk.status), record.owner, None))
            continue
        owners = sorted({touching[i].owner for i in label.candidates} - {None})
        if len(owners) == 1:
            results.append((piece, owners[0], None))
        elif not owners:
            results.append((piece, default_id, None))
        else:
            logger.debug("Hunk %s in %s bridges %s", piece.id, piece.path, owners)
            results.append((piece, None, Bridge(hunk_id=piece.id, path=piece.path, candidates=owners)))
    return results


def _find_move(hunk: Hunk, vanished: list[_Record], config: VBranchConfig) -> Optional[_Record]:
    """Find a vanished record whose content reappears in ``hunk``."""
    for record in vanished:
        if record.hunk.content_hash == hunk.content_hash:
            return record
    if hunk.binary or not hunk.new_lines:
        return None
    for record in vanished:
        if record.hunk.new_lines == hunk.new_lines:
            return record
    if len(hunk.new_lines) < config.move_min_lines:
        return None

    best, best_score = None, 0.0
    for record in vanished:
        if record.hunk.binary or len(record.hunk.new_lines) < config.move_min_lines:
            continue
        score = similarity(record.hunk.new_lines, hunk.new_lines)
        if score > best_score:
            best, best_score = record, score
    if best is not None and best_score >= config.move_similarity:
        return best
    return None


def _settle_held(
    held: list[tuple[Hunk, Optional[str]]],
    live: list[tuple[Hunk, Optional[str]]],
) -> list[tuple[Hunk, Optional[str]]]:
    """Drop held records whose exact change is already live in the working copy.

    A held hunk and a live hunk with the same id are the same change at
    the same base position. The live owner keeps it: the lines are on
    disk, and applying the held branch would only write them again.
    """
    live_owners = {hunk.id: owner for hunk, owner in live}
    kept = []
    for hunk, owner in held:
        if hunk.id in live_owners:
            logger.warning(
                "Hunk %s in %s is already in the working copy; %s keeps it instead of %s",
                hunk.id, hunk.path, live_owners[hunk.id] or "unassigned", owner or "unassigned",
            )
            continue
        kept.append((hunk, owner))
    return kept


def reconcile(
    new_hunks: list[Hunk],
    ownership: OwnershipMap,
    branches: list[VirtualBranch],
    config: Optional[VBranchConfig] = None,
    frozen_paths: Optional[Iterable[str]] = None,
) -> ReconcileResult:
    """Attribute the hunks of a fresh diff to branches.

    Matching order for each new hunk:
    (a) it touches earlier records of the same file: it is segmented along
        them and each piece inherits the owner it came from;
    (b) its content matches a record that vanished elsewhere: moved;
    (c) otherwise it goes to the default branch, or stays unassigned.

    Records of unapplied branches, of files a branch failed to
    materialize and of frozen paths pass through untouched, unless the
    same change is live in the working copy, in which case the live owner
    keeps it. Bridged pieces come back unassigned together with their
    candidate branches.

    Args:
        new_hunks: Hunks of the current diff against the base.
        ownership: Ownership before this pass.
        branches: All virtual branches.
        config: Move detection thresholds.
        frozen_paths: Files whose records must not change (unreadable
            files and files holding conflict markers).

    Returns:
        ReconcileResult with the new ownership map and any bridges.

    Raises:
        InvariantViolation: If materialized claims end up overlapping.
    """
    config = config or VBranchConfig()
    frozen = set(frozen_paths or ())
    by_id = {b.id: b for b in branches}
    default = default_branch(branches)
    default_id = default.id if default else None

    held: list[tuple[Hunk, Optional[str]]] = []
    live: list[_Record] = []
    for hunk, owner in ownership.records():
        if owner is not None and owner not in by_id:
            logger.debug("Dropping hunk %s of unknown branch %s", hunk.id, owner)
            continue
        if hunk.path in frozen or hunk.source_path in frozen:
            held.append((hunk, owner))
        elif owner is not None and (not by_id[owner].applied or hunk.path in by_id[owner].unapplied_files):
            held.append((hunk, owner))
        else:
            live.append(_Record(hunk, owner))

    records: list[tuple[Hunk, Optional[str]]] = []
    bridges: list[Bridge] = []
    consumed: set[int] = set()
    unmatched: list[Hunk] = []
    for hunk in sorted(new_hunks, key=sort_key):
        if hunk.path in frozen or hunk.source_path in frozen:
            continue
        touching_idx = [i for i, r in enumerate(live) if r.hunk.touches(hunk)]
        if not touching_idx:
            unmatched.append(hunk)
            continue
        consumed.update(touching_idx)
        touching = sorted((live[i] for i in touching_idx), key=lambda r: sort_key(r.hunk))
        for piece, owner, bridge in _inherit(hunk, touching, default_id):
            records.append((piece, owner))
            if bridge is not None:
                bridges.append(bridge)

    vanished = [r for i, r in enumerate(live) if i not in consumed]
    for hunk in unmatched:
        match = _find_move(hunk, vanished, config)
        if match is not None:
            vanished.remove(match)
            logger.debug("Hunk %s in %s moved from %s", hunk.id, hunk.path, match.hunk.path)
            records.append((hunk.with_status(match.hunk.status), match.owner))
        else:
            records.append((hunk, default_id))

    if vanished:
        logger.debug("%d hunks no longer present in the working copy", len(vanished))

    records.extend(_settle_held(held, records))
    result = ReconcileResult(ownership=OwnershipMap.from_records(records, previous=ownership), bridges=bridges)
    check_disjoint(result.ownership, branches)
    return result


def materialized_records(ownership: OwnershipMap, branches: list[VirtualBranch]) -> list[tuple[Hunk, Optional[str]]]:
    """Clean records that are expected to be present in the working copy."""
    by_id = {b.id: b for b in branches}
    materialized = []
    for hunk, owner in ownership.records():
        if hunk.status != HunkStatus.CLEAN:
            continue
        if owner is not None:
            branch = by_id.get(owner)
            if branch is None or not branch.applied or hunk.path in branch.unapplied_files:
                continue
        materialized.append((hunk, owner))
    return materialized


def check_disjoint(ownership: OwnershipMap, branches: list[VirtualBranch]) -> None:
    """Verify that materialized claims of different owners never overlap.

    Raises:
        InvariantViolation: On the first overlapping pair found.
    """
    by_path: dict[str, list[tuple[Hunk, Optional[str]]]] = {}
    for hunk, owner in materialized_records(ownership, branches):
        by_path.setdefault(hunk.path, []).append((hunk, owner))

    for path, pairs in by_path.items():
        for i, (hunk, owner) in enumerate(pairs):
            for other, other_owner in pairs[i + 1:]:
                if other_owner != owner and hunk.overlaps(other):
                    raise InvariantViolation(
                        f"{path}: hunk {hunk.id} ({owner}) overlaps hunk {other.id} ({other_owner})"
                    )
