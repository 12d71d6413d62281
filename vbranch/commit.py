"""Commit builder for vbranch.

Turns the hunks a branch claims into a real commit with its own history.

Contains:
- CommitResult: Ids of a freshly written commit
- build_tree: Base tree plus a set of hunks
- build_commit: Commit a branch's clean claims
- branch_commits: A branch's history back to its base
"""

import logging
from dataclasses import dataclass, field
from itertools import groupby
from typing import Optional

from vbranch.diff.models import ChangeKind, Hunk, HunkStatus, sort_key
from vbranch.diff.patch import apply_hunks
from vbranch.diff.text import split_lines
from vbranch.exceptions import ConflictError, EmptyCommitError, PatchError, VBranchError
from vbranch.models import VirtualBranch
from vbranch.ownership.models import OwnershipMap
from vbranch.reader import TreeReader
from vbranch.store.base import REGULAR_FILE_MODE, CommitInfo, RepositoryStore, TreeEntry

logger = logging.getLogger(__name__)


@dataclass
class CommitResult:
    """A commit written for a branch."""

    commit_id: str
    tree_id: str
    parents: list[str] = field(default_factory=list)


def build_tree(store: RepositoryStore, base_commit: str, hunks: list[Hunk]) -> str:
    """Write the tree of ``base_commit`` with ``hunks`` applied.

    Args:
        store: Repository store.
        base_commit: Commit whose tree the hunks are relative to.
        hunks: Hunks to apply, in base coordinates.

    Returns:
        Id of the written tree.
    """
    base_tree = store.read_commit(base_commit).tree_id
    entries = store.read_tree(base_tree)
    reader = TreeReader(store, base_tree)

    for path, group in groupby(sorted(hunks, key=sort_key), key=lambda h: h.path):
        file_hunks = list(group)
        whole = [h for h in file_hunks if h.is_whole_file]
        if whole:
            hunk = whole[0]
            source = entries.get(hunk.source_path)
            mode = source.mode if source else REGULAR_FILE_MODE
            if hunk.change == ChangeKind.RENAMED:
                entries.pop(hunk.source_path, None)
            if hunk.binary:
                if hunk.new_blob:
                    entries[path] = TreeEntry(hunk.new_blob, mode)
                else:
                    entries.pop(path, None)
            else:
                entries[path] = TreeEntry(store.write_blob("".join(hunk.new_lines).encode("utf-8")), mode)
            continue

        base_lines: list[str] = []
        if reader.exists(path):
            content = reader.read(path)
            if not content.is_text:
                raise PatchError(f"{path}: base content is not text")
            base_lines = split_lines(content.text)
        lines = apply_hunks(base_lines, file_hunks)
        if not lines and any(h.change == ChangeKind.DELETED for h in file_hunks):
            entries.pop(path, None)
            continue
        mode = entries[path].mode if path in entries else REGULAR_FILE_MODE
        entries[path] = TreeEntry(store.write_blob("".join(lines).encode("utf-8")), mode)

    return store.write_tree(entries)


def build_commit(
    store: RepositoryStore,
    branch: VirtualBranch,
    ownership: OwnershipMap,
    message: str,
    amend: bool = False,
    force: bool = False,
) -> CommitResult:
    """Commit the hunks a branch claims.

    The tree is the branch's base tree plus its clean hunks. The parent is
    the branch head (or its base for a first commit); amending reuses the
    head's parents. The branch ref ``refs/vbranches/<id>`` is moved to the
    new commit; committed objects are never modified.

    Args:
        store: Repository store.
        branch: Branch to commit.
        ownership: Current ownership map.
        message: Commit message.
        amend: Replace the branch head instead of adding on top of it.
        force: Commit even if the tree would not change.

    Returns:
        CommitResult with the new commit, its tree and parents.

    Raises:
        ConflictError: If the branch owns CONFLICTED hunks.
        EmptyCommitError: If the tree would not change and force is off.
        VBranchError: If amending a branch without commits.
    """
    hunks = ownership.hunks_for_branch(branch.id)
    conflicted = sorted({h.path for h in hunks if h.status == HunkStatus.CONFLICTED})
    if conflicted:
        raise ConflictError(
            f"Branch '{branch.name}' has conflicted changes in: {', '.join(conflicted)}",
            paths=conflicted,
        )

    base_tree = store.read_commit(branch.base_commit).tree_id
    if amend:
        if branch.head_commit is None:
            raise VBranchError(f"Branch '{branch.name}' has no commit to amend")
        parents = store.read_commit(branch.head_commit).parents
        compare_tree = store.read_commit(parents[0]).tree_id if parents else base_tree
    else:
        parents = [branch.head_commit or branch.base_commit]
        compare_tree = store.read_commit(branch.head_commit).tree_id if branch.head_commit else base_tree

    tree_id = build_tree(store, branch.base_commit, hunks)
    if tree_id == compare_tree and not force:
        raise EmptyCommitError(f"Nothing to commit on branch '{branch.name}'")

    commit_id = store.write_commit(tree_id, parents, message)
    store.update_ref(branch.ref_name, commit_id)
    logger.info("Committed %s on branch %s (%d hunks)", commit_id[:12], branch.name, len(hunks))
    return CommitResult(commit_id=commit_id, tree_id=tree_id, parents=list(parents))


def branch_commits(store: RepositoryStore, branch: VirtualBranch, limit: Optional[int] = None) -> list[CommitInfo]:
    """List a branch's commits, newest first, stopping at its base.

    Args:
        store: Repository store.
        branch: The branch.
        limit: Maximum number of commits to return.

    Returns:
        CommitInfo list following first parents.
    """
    commits: list[CommitInfo] = []
    current = branch.head_commit
    while current and current != branch.base_commit:
        if limit is not None and len(commits) >= limit:
            break
        info = store.read_commit(current)
        commits.append(info)
        current = info.parents[0] if info.parents else None
    return commits
