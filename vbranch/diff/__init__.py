"""Diff engine for vbranch.

This package computes the hunks every other component works on:
- models: Hunk, HunkStatus, ChangeKind, DiffResult
- text: split_lines, change_blocks, similarity, map_offset
- patch: split_hunk, split_hunk_at, split_hunk_at_base, apply_hunks, reverse_hunk, format_patch
- engine: compute_diff, diff_trees, snapshot_id_for
"""

# Models
from vbranch.diff.models import (
    ChangeKind,
    DiffResult,
    Hunk,
    HunkStatus,
    sort_key,
)

# Line helpers
from vbranch.diff.text import (
    change_blocks,
    map_offset,
    similarity,
    split_lines,
)

# Patching
from vbranch.diff.patch import (
    apply_hunks,
    format_patch,
    reverse_hunk,
    split_hunk,
    split_hunk_at,
    split_hunk_at_base,
)

# Engine
from vbranch.diff.engine import (
    compute_diff,
    diff_trees,
    snapshot_id_for,
)


__all__ = [
    # Models
    "ChangeKind",
    "DiffResult",
    "Hunk",
    "HunkStatus",
    "sort_key",
    # Line helpers
    "change_blocks",
    "map_offset",
    "similarity",
    "split_lines",
    # Patching
    "apply_hunks",
    "format_patch",
    "reverse_hunk",
    "split_hunk",
    "split_hunk_at",
    "split_hunk_at_base",
    # Engine
    "compute_diff",
    "diff_trees",
    "snapshot_id_for",
]
