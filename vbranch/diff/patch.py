"""Hunk application utilities for vbranch.

Contains:
- split_hunk: Cut a hunk at working-side offsets
- split_hunk_at_base: Cut a hunk at base-side line numbers
- split_hunk_at: Cut a hunk at explicit (old, new) offset pairs
- apply_hunks: Compose base lines with a set of non-overlapping hunks
- reverse_hunk: Undo a single hunk inside the current working lines
- format_patch: Render hunks as a unified diff
"""

from dataclasses import replace
from typing import Iterable

from vbranch.diff.models import ChangeKind, Hunk, sort_key
from vbranch.diff.text import line_opcodes, map_offset
from vbranch.exceptions import InvariantViolation, PatchError


def _cut(hunk: Hunk, old_cuts: list[int], new_cuts: list[int]) -> list[Hunk]:
    pieces: list[Hunk] = []
    bounds = list(zip([0] + old_cuts, old_cuts + [hunk.old_len], [0] + new_cuts, new_cuts + [hunk.new_len]))
    for o0, o1, n0, n1 in bounds:
        if o0 == o1 and n0 == n1:
            continue
        pieces.append(
            replace(
                hunk,
                old_start=hunk.old_start + o0,
                old_len=o1 - o0,
                new_start=hunk.new_start + n0,
                new_len=n1 - n0,
                old_lines=hunk.old_lines[o0:o1],
                new_lines=hunk.new_lines[n0:n1],
            )
        )
    return pieces


def split_hunk(hunk: Hunk, new_offsets: Iterable[int]) -> list[Hunk]:
    """Cut a hunk at offsets into its new lines.

    Base-side cut positions are derived from the alignment of the hunk's
    old and new lines, so the pieces applied together equal the hunk.

    Args:
        hunk: Hunk to split. Whole-file hunks are returned unchanged.
        new_offsets: Offsets (0..new_len) into ``hunk.new_lines``.

    Returns:
        Ordered list of sub-hunks.
    """
    cuts = sorted({o for o in new_offsets if 0 < o < hunk.new_len})
    if hunk.is_whole_file or not cuts:
        return [hunk]
    opcodes = line_opcodes(hunk.old_lines, hunk.new_lines)
    old_cuts = [map_offset(opcodes, c, hunk.old_len, hunk.new_len, from_b=True) for c in cuts]
    return _cut(hunk, old_cuts, cuts)


def split_hunk_at_base(hunk: Hunk, base_lines: Iterable[int]) -> list[Hunk]:
    """Cut a hunk at base line numbers.

    Args:
        hunk: Hunk to split. Whole-file hunks are returned unchanged.
        base_lines: 1-based base line numbers where a new piece starts.

    Returns:
        Ordered list of sub-hunks.
    """
    cuts = sorted({line - hunk.old_start for line in base_lines if hunk.old_start < line < hunk.old_end})
    if hunk.is_whole_file or not cuts:
        return [hunk]
    opcodes = line_opcodes(hunk.old_lines, hunk.new_lines)
    new_cuts = [map_offset(opcodes, c, hunk.old_len, hunk.new_len, from_b=False) for c in cuts]
    return _cut(hunk, cuts, new_cuts)


def split_hunk_at(hunk: Hunk, cuts: Iterable[tuple[int, int]]) -> list[Hunk]:
    """Cut a hunk at (old offset, new offset) pairs.

    Pairs outside the hunk or not monotonic on both sides are dropped.
    """
    old_cuts: list[int] = []
    new_cuts: list[int] = []
    last = (0, 0)
    for old_off, new_off in sorted(set(cuts)):
        if not (0 <= old_off <= hunk.old_len and 0 <= new_off <= hunk.new_len):
            continue
        if (old_off, new_off) in ((0, 0), (hunk.old_len, hunk.new_len)):
            continue
        if old_off < last[0] or new_off < last[1]:
            continue
        old_cuts.append(old_off)
        new_cuts.append(new_off)
        last = (old_off, new_off)
    if hunk.is_whole_file or not old_cuts:
        return [hunk]
    return _cut(hunk, old_cuts, new_cuts)


def apply_hunks(base_lines: list[str], hunks: Iterable[Hunk]) -> list[str]:
    """Compose base lines with non-overlapping hunks of one file.

    Args:
        base_lines: Lines of the base file.
        hunks: Hunks in base coordinates. Order does not matter.

    Returns:
        The resulting lines.

    Raises:
        InvariantViolation: If two hunks overlap in the base.
    """
    out: list[str] = []
    cursor = 1
    for hunk in sorted(hunks, key=sort_key):
        if hunk.old_start < cursor:
            raise InvariantViolation(
                f"Overlapping hunks in {hunk.path} at base line {hunk.old_start}"
            )
        out.extend(base_lines[cursor - 1:hunk.old_start - 1])
        out.extend(hunk.new_lines)
        cursor = hunk.old_end
    out.extend(base_lines[cursor - 1:])
    return out


def _find_block(lines: list[str], block: list[str], expected: int) -> int:
    """Locate ``block`` in ``lines`` nearest to the 0-based index ``expected``."""
    if lines[expected:expected + len(block)] == block:
        return expected
    width = len(block)
    candidates = [
        i for i in range(len(lines) - width + 1)
        if lines[i:i + width] == block
    ]
    if not candidates:
        return -1
    return min(candidates, key=lambda i: abs(i - expected))


def reverse_hunk(lines: list[str], hunk: Hunk) -> list[str]:
    """Remove one hunk's change from the current working lines.

    The hunk's new lines are looked up at their recorded position first and
    nearby otherwise, then replaced with the base lines.

    Args:
        lines: Current working lines of the file.
        hunk: Hunk to reverse.

    Returns:
        The lines with the hunk reverted.

    Raises:
        PatchError: If the hunk's new lines are not present.
    """
    expected = hunk.new_start - 1
    if hunk.new_len == 0:
        index = min(max(expected, 0), len(lines))
    else:
        index = _find_block(lines, hunk.new_lines, expected)
        if index < 0:
            raise PatchError(f"{hunk.path}: hunk {hunk.id} no longer matches the working copy")
    return lines[:index] + hunk.old_lines + lines[index + hunk.new_len:]


def format_patch(hunks: list[Hunk]) -> str:
    """Render hunks as a git-style unified diff without context lines.

    Args:
        hunks: Hunks to render, any order.

    Returns:
        Patch text ending with a newline (empty string for no hunks).
    """
    patch_lines: list[str] = []
    current_path = None
    for hunk in sorted(hunks, key=sort_key):
        if hunk.path != current_path:
            current_path = hunk.path
            old_path = hunk.source_path
            patch_lines.append(f"diff --git a/{old_path} b/{hunk.path}")
            if hunk.change == ChangeKind.ADDED:
                patch_lines.append("new file mode 100644")
            elif hunk.change == ChangeKind.DELETED:
                patch_lines.append("deleted file mode 100644")
            elif hunk.change == ChangeKind.RENAMED:
                patch_lines.append(f"rename from {old_path}")
                patch_lines.append(f"rename to {hunk.path}")
            if hunk.binary:
                patch_lines.append(f"Binary files a/{old_path} and b/{hunk.path} differ")
                continue
            patch_lines.append("--- /dev/null" if hunk.change == ChangeKind.ADDED else f"--- a/{old_path}")
            patch_lines.append("+++ /dev/null" if hunk.change == ChangeKind.DELETED else f"+++ b/{hunk.path}")
        if hunk.binary:
            continue
        patch_lines.append(hunk.header)
        for prefix, side in (("-", hunk.old_lines), ("+", hunk.new_lines)):
            for line in side:
                patch_lines.append(prefix + line[:-1] if line.endswith("\n") else prefix + line)
                if not line.endswith("\n"):
                    patch_lines.append("\\ No newline at end of file")

    if not patch_lines:
        return ""
    return "\n".join(patch_lines) + "\n"
