"""Write planning for the branch application engine.

Contains:
- materialized_in: Records of one file expected in the working copy
- compose_path: Final content of a file from base plus materialized claims
- plan_apply: Plan materializing a branch into the working directory
- plan_unapply: Plan removing a branch from the working directory
"""

import logging
from dataclasses import replace
from typing import Optional

from vbranch.apply.models import FileWrite, WritePlan
from vbranch.conflicts import render_group, reset_conflicts, resolve_overlaps
from vbranch.diff.models import ChangeKind, Hunk, HunkStatus, sort_key
from vbranch.diff.patch import apply_hunks, reverse_hunk
from vbranch.diff.text import split_lines
from vbranch.exceptions import FileIOError, PatchError
from vbranch.models import ConflictPolicy
from vbranch.reader import TreeReader, WorkdirReader
from vbranch.state.models import SessionState
from vbranch.store.base import REGULAR_FILE_MODE, RepositoryStore
from vbranch.store.exceptions import StoreError

logger = logging.getLogger(__name__)

FileContents = list[tuple[str, Optional[bytes]]]


def materialized_in(state: SessionState, path: str) -> list[tuple[Hunk, Optional[str]]]:
    """Records of ``path`` that belong in the working copy.

    Unassigned records always do. Owned records do when their branch is
    applied, the file did not fail to materialize and the record did not
    lose a conflict.
    """
    by_id = {b.id: b for b in state.branches}
    records = []
    for hunk, owner in state.ownership.records():
        if hunk.path != path:
            continue
        if owner is not None:
            branch = by_id.get(owner)
            if branch is None or not branch.applied or path in branch.unapplied_files:
                continue
            if hunk.status == HunkStatus.CONFLICTED:
                continue
        records.append((hunk, owner))
    return records


def _base_lines(base: TreeReader, path: str) -> list[str]:
    if not base.exists(path):
        return []
    content = base.read(path)
    if not content.is_text:
        raise PatchError(f"{path}: base content is not text")
    return split_lines(content.text)


def _whole_file_contents(hunk: Hunk, store: RepositoryStore) -> FileContents:
    contents: FileContents = []
    if hunk.change == ChangeKind.RENAMED and hunk.old_path and hunk.old_path != hunk.path:
        contents.append((hunk.old_path, None))
    if hunk.binary:
        contents.append((hunk.path, store.read_blob(hunk.new_blob) if hunk.new_blob else None))
    else:
        contents.append((hunk.path, "".join(hunk.new_lines).encode("utf-8")))
    return contents


def compose_path(
    state: SessionState,
    path: str,
    base: TreeReader,
    store: RepositoryStore,
    policy: ConflictPolicy,
) -> FileContents:
    """Compose a file from its base content and every materialized claim.

    Conflict markers previously recorded for the file are dropped and the
    overlaps are resolved again, so ``state`` (a planning copy) is updated
    with split records, CONFLICTED losers and new markers.

    Args:
        state: Planning copy of the session state; mutated.
        path: File to compose.
        base: Reader over the base tree.
        store: Store holding opaque contents.
        policy: Conflict policy.

    Returns:
        (path, content) pairs; content None deletes the file. Renames also
        delete their old path.
    """
    markers = state.conflicts_for(path)
    if markers:
        reset_conflicts(state.ownership, markers)
        state.conflicts = [m for m in state.conflicts if m.path != path]

    resolution = resolve_overlaps(
        path, materialized_in(state, path), state.branches, policy, state.ownership
    )
    for old_id, pieces in resolution.replaced.items():
        state.ownership.replace(old_id, pieces)
    for piece, _ in resolution.records:
        state.ownership.put(piece)
    state.conflicts.extend(group.marker() for group in resolution.groups)

    in_groups = {h.id for group in resolution.groups for h, _ in group.pieces}
    units = [h for h, _ in resolution.records if h.id not in in_groups]

    whole = [h for h in units if h.is_whole_file]
    for group in resolution.groups:
        if group.whole_file:
            side = group.sides[0]
            whole.extend(h for h, owner in group.pieces if owner == side)
    if whole:
        return _whole_file_contents(whole[0], store)

    base_lines = _base_lines(base, path)
    names = state.branch_names()
    for group in resolution.groups:
        block = render_group(base_lines, group, names)
        units.append(
            Hunk(
                path=path,
                old_start=group.old_start,
                old_len=group.old_end - group.old_start,
                new_start=group.old_start,
                new_len=len(block),
                old_lines=base_lines[group.old_start - 1:group.old_end - 1],
                new_lines=block,
            )
        )

    lines = apply_hunks(base_lines, units)
    if not lines:
        deleted = any(h.change == ChangeKind.DELETED for h in units)
        orphan = not base.exists(path) and not any(h.change == ChangeKind.ADDED for h in units)
        if deleted or orphan:
            return [(path, None)]
    return [(path, "".join(lines).encode("utf-8"))]


def _reverse_path(
    records: list[tuple[Hunk, Optional[str]]],
    branch_id: str,
    path: str,
    working: WorkdirReader,
    base: TreeReader,
    store: RepositoryStore,
) -> FileContents:
    """Remove one branch's hunks from the current content of a file.

    Each hunk is reversed on its own, last first, at the position the
    other materialized hunks put it; other branches' lines stay as they
    are on disk.
    """
    mine = [h for h, owner in records if owner == branch_id]
    whole = [h for h in mine if h.is_whole_file]
    if whole:
        hunk = whole[0]
        if hunk.change == ChangeKind.RENAMED and hunk.old_path and hunk.old_path != path:
            return [(hunk.old_path, base.read(hunk.old_path).data), (path, None)]
        return [(path, store.read_blob(hunk.old_blob) if hunk.old_blob else None)]

    if working.exists(path):
        current = working.read(path)
        if not current.is_text:
            raise PatchError(f"{path}: working content is not text")
        lines = split_lines(current.text)
    else:
        lines = []

    ordered = sorted(records, key=lambda pair: sort_key(pair[0]))
    for index in reversed(range(len(ordered))):
        hunk, owner = ordered[index]
        if owner != branch_id:
            continue
        shift = sum(h.new_len - h.old_len for h, _ in ordered[:index])
        lines = reverse_hunk(lines, replace(hunk, new_start=hunk.old_start + shift))

    if not lines and not base.exists(path):
        return [(path, None)]
    return [(path, "".join(lines).encode("utf-8"))]


def _add_writes(plan: WritePlan, working: WorkdirReader, contents: FileContents) -> None:
    for path, content in contents:
        current = working.read(path) if working.exists(path) else None
        if current is None and content is None:
            continue
        if current is not None and content == current.data:
            continue
        plan.writes.append(
            FileWrite(
                path=path,
                content=content,
                expected_digest=current.digest if current else None,
                mode=current.mode if current else REGULAR_FILE_MODE,
            )
        )


def plan_apply(
    state: SessionState,
    working: WorkdirReader,
    base: TreeReader,
    store: RepositoryStore,
    branch_id: str,
    policy: ConflictPolicy = ConflictPolicy.PRIORITY_ORDER,
) -> WritePlan:
    """Plan materializing a branch.

    Every file the branch claims is composed from the base content plus the
    clean hunks of all applied branches (the new one included) and the
    unassigned hunks. Applying an already applied branch retries the files
    that failed to materialize earlier.

    Args:
        state: Current session state (not modified).
        working: Reader over the working directory.
        base: Reader over the base tree.
        store: Store holding opaque contents.
        branch_id: Branch to apply.
        policy: Conflict policy for overlaps.

    Returns:
        WritePlan with per-file writes and the resulting ownership.

    Raises:
        BranchNotFoundError: If the branch does not exist.
    """
    planned = state.model_copy(deep=True)
    branch = planned.branch(branch_id)
    if branch.applied:
        paths = set(branch.unapplied_files)
    else:
        paths = set(planned.ownership.files_for_branch(branch_id))
    branch.applied = True
    branch.unapplied_files = []

    plan = WritePlan(branch_id=branch_id, action="apply")
    for path in sorted(paths):
        if path in planned.skipped_files:
            plan.failed[path] = "unreadable in the working directory"
            continue
        try:
            contents = compose_path(planned, path, base, store, policy)
            _add_writes(plan, working, contents)
        except (OSError, StoreError, PatchError, FileIOError) as e:
            logger.warning("Cannot plan %s for %s: %s", path, branch.name, e)
            plan.failed[path] = str(e)

    plan.ownership = planned.ownership
    plan.conflicts = planned.conflicts
    logger.debug("Planned apply of %s: %d writes, %d failures", branch.name, len(plan.writes), len(plan.failed))
    return plan


def plan_unapply(
    state: SessionState,
    working: WorkdirReader,
    base: TreeReader,
    store: RepositoryStore,
    branch_id: str,
    policy: ConflictPolicy = ConflictPolicy.PRIORITY_ORDER,
) -> WritePlan:
    """Plan removing a branch from the working directory.

    The branch's hunks are reverse-patched one by one in the current
    content, never by re-diffing, so the other branches' edits in the same
    files stay untouched. Files holding conflict markers are recomposed
    from the remaining applied branches instead.

    Args:
        state: Current session state (not modified).
        working: Reader over the working directory.
        base: Reader over the base tree.
        store: Store holding opaque contents.
        branch_id: Branch to unapply.
        policy: Conflict policy for the remaining overlaps.

    Returns:
        WritePlan with per-file writes and the resulting ownership.
    """
    planned = state.model_copy(deep=True)
    branch = planned.branch(branch_id)
    plan = WritePlan(branch_id=branch_id, action="unapply")
    if not branch.applied:
        plan.ownership = planned.ownership
        plan.conflicts = planned.conflicts
        return plan

    held = set(branch.unapplied_files)
    paths = [p for p in planned.ownership.files_for_branch(branch_id) if p not in held]
    before = {path: materialized_in(planned, path) for path in paths}
    branch.applied = False
    branch.unapplied_files = []

    for path in paths:
        try:
            if planned.conflicts_for(path):
                contents = compose_path(planned, path, base, store, policy)
            else:
                contents = _reverse_path(before[path], branch_id, path, working, base, store)
            _add_writes(plan, working, contents)
        except (OSError, StoreError, PatchError, FileIOError) as e:
            logger.warning("Cannot plan %s for %s: %s", path, branch.name, e)
            plan.failed[path] = str(e)

    for hunk in planned.ownership.conflicted_hunks(branch_id):
        planned.ownership.put(hunk.with_status(HunkStatus.CLEAN))

    plan.ownership = planned.ownership
    plan.conflicts = planned.conflicts
    logger.debug("Planned unapply of %s: %d writes, %d failures", branch.name, len(plan.writes), len(plan.failed))
    return plan
