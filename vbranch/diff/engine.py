"""Diff engine for vbranch.

Contains:
- compute_diff: Ordered hunks between a working reader and a base reader
- diff_trees: Ordered hunks between two stored trees
- snapshot_id_for: Tree hash identifying a set of file contents
"""

import hashlib
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Optional, Protocol

from vbranch.config import VBranchConfig
from vbranch.diff.models import ChangeKind, DiffResult, Hunk, sort_key
from vbranch.diff.text import change_blocks, similarity, split_lines
from vbranch.exceptions import FileIOError
from vbranch.reader import Content, TreeReader, should_exclude_file
from vbranch.store.base import RepositoryStore
from vbranch.store.exceptions import StoreError

logger = logging.getLogger(__name__)


class Reader(Protocol):
    def exists(self, path: str) -> bool:
        ...

    def read(self, path: str) -> Content:
        ...

    def list_files(self, dir_path: str = "") -> list[str]:
        ...


@dataclass
class _FileOutcome:
    """Per-file result of the parallel phase."""

    path: str
    hunks: list[Hunk] = field(default_factory=list)
    error: Optional[FileIOError] = None
    old: Optional[Content] = None
    new: Optional[Content] = None
    digest: str = ""


def snapshot_id_for(digests: dict[str, str]) -> str:
    """Tree hash over path -> content digest pairs."""
    tree_hash = hashlib.sha1(usedforsecurity=False)
    for path in sorted(digests):
        tree_hash.update(f"{path}\0{digests[path]}\n".encode("utf-8", errors="surrogateescape"))
    return tree_hash.hexdigest()


def _text_hunks(path: str, old: Optional[Content], new: Optional[Content], change: ChangeKind) -> list[Hunk]:
    a = split_lines(old.text) if old else []
    b = split_lines(new.text) if new else []
    hunks = [
        Hunk(
            path=path,
            old_start=i1 + 1,
            old_len=i2 - i1,
            new_start=j1 + 1,
            new_len=j2 - j1,
            old_lines=a[i1:i2],
            new_lines=b[j1:j2],
            change=change,
        )
        for i1, i2, j1, j2 in change_blocks(a, b)
    ]
    if not hunks and change in (ChangeKind.ADDED, ChangeKind.DELETED):
        # Creating or deleting an empty file still has to be owned by someone
        hunks.append(Hunk(path=path, old_start=1, old_len=0, new_start=1, new_len=0, change=change))
    return hunks


def _opaque_hunk(
    store: RepositoryStore,
    path: str,
    old: Optional[Content],
    new: Optional[Content],
    change: ChangeKind,
    old_path: Optional[str] = None,
) -> Hunk:
    return Hunk(
        path=path,
        old_start=1,
        old_len=0,
        new_start=1,
        new_len=0,
        change=change,
        old_path=old_path,
        binary=True,
        old_blob=store.write_blob(old.data) if old else None,
        new_blob=store.write_blob(new.data) if new else None,
    )


def _diff_file(path: str, working: Reader, base: Reader, store: RepositoryStore) -> _FileOutcome:
    outcome = _FileOutcome(path=path)
    try:
        outcome.new = working.read(path) if working.exists(path) else None
    except OSError as e:
        # Fail closed: treat as unchanged and report it
        outcome.error = FileIOError(path, f"unreadable: {e}")
        outcome.digest = "unreadable"
        return outcome
    try:
        outcome.old = base.read(path) if base.exists(path) else None
    except (OSError, StoreError) as e:
        outcome.error = FileIOError(path, f"base unreadable: {e}")
        outcome.digest = outcome.new.digest if outcome.new else ""
        return outcome

    old, new = outcome.old, outcome.new
    outcome.digest = new.digest if new else ""
    if old is None and new is None:
        return outcome
    if old is not None and new is not None and old.data == new.data:
        return outcome

    if old is None:
        change = ChangeKind.ADDED
    elif new is None:
        change = ChangeKind.DELETED
    else:
        change = ChangeKind.MODIFIED

    if (old is not None and not old.is_text) or (new is not None and not new.is_text):
        outcome.hunks = [_opaque_hunk(store, path, old, new, change)]
    else:
        outcome.hunks = _text_hunks(path, old, new, change)
    return outcome


def _content_similarity(old: Content, new: Content) -> float:
    if old.data == new.data:
        return 1.0
    if not (old.is_text and new.is_text):
        return 0.0
    return similarity(split_lines(old.text), split_lines(new.text))


def _detect_renames(outcomes: list[_FileOutcome], store: RepositoryStore, threshold: float) -> None:
    """Fold deleted/added file pairs that are similar enough into RENAMED hunks."""
    deleted = [o for o in outcomes if o.old is not None and o.new is None and o.error is None]
    added = [o for o in outcomes if o.old is None and o.new is not None and o.error is None]
    if not deleted or not added:
        return

    scored = []
    for d in deleted:
        for a in added:
            score = _content_similarity(d.old, a.new)
            if score >= threshold:
                scored.append((-score, d.path, a.path, d, a))
    scored.sort(key=lambda item: item[:3])

    paired: set[str] = set()
    for _, _, _, d, a in scored:
        if d.path in paired or a.path in paired:
            continue
        paired.update((d.path, a.path))
        if d.old.is_text and a.new.is_text:
            old_lines = split_lines(d.old.text)
            new_lines = split_lines(a.new.text)
            rename = Hunk(
                path=a.path,
                old_start=1,
                old_len=len(old_lines),
                new_start=1,
                new_len=len(new_lines),
                old_lines=old_lines,
                new_lines=new_lines,
                change=ChangeKind.RENAMED,
                old_path=d.path,
            )
        else:
            rename = _opaque_hunk(store, a.path, d.old, a.new, ChangeKind.RENAMED, old_path=d.path)
        logger.debug("Detected rename %s -> %s", d.path, a.path)
        d.hunks = []
        a.hunks = [rename]


def compute_diff(
    working: Reader,
    base: Reader,
    store: RepositoryStore,
    config: Optional[VBranchConfig] = None,
) -> DiffResult:
    """Compute ordered hunks between a working reader and a base reader.

    Files are diffed independently in a thread pool. A file that cannot be
    read produces no hunks and a FileIOError in ``DiffResult.errors``.

    Args:
        working: Reader over the new side (usually the working directory).
        base: Reader over the old side (usually the base tree).
        store: Store used to persist opaque (binary/large) contents.
        config: Engine configuration (defaults apply when omitted).

    Returns:
        DiffResult with hunks ordered by path then base line.
    """
    config = config or VBranchConfig()
    paths = sorted(
        p for p in set(working.list_files()) | set(base.list_files())
        if not should_exclude_file(p, config.ignore)
    )

    with ThreadPoolExecutor(max_workers=config.diff_workers) as pool:
        outcomes = list(pool.map(lambda p: _diff_file(p, working, base, store), paths))

    _detect_renames(outcomes, store, config.rename_similarity)

    result = DiffResult()
    digests: dict[str, str] = {}
    for outcome in outcomes:
        if outcome.digest:
            digests[outcome.path] = outcome.digest
        if outcome.error is not None:
            logger.warning("Skipping %s: %s", outcome.path, outcome.error.reason)
            result.errors.append(outcome.error)
            continue
        result.hunks.extend(outcome.hunks)

    result.hunks.sort(key=sort_key)
    result.snapshot_id = snapshot_id_for(digests)
    logger.debug("Diff produced %d hunks across %d files", len(result.hunks), len(paths))
    return result


def diff_trees(
    store: RepositoryStore,
    old_tree_id: str,
    new_tree_id: str,
    config: Optional[VBranchConfig] = None,
) -> list[Hunk]:
    """Compute ordered hunks between two trees in the store.

    Args:
        store: Repository store holding both trees.
        old_tree_id: Tree for the old side.
        new_tree_id: Tree for the new side.
        config: Engine configuration.

    Returns:
        Ordered list of hunks.
    """
    result = compute_diff(TreeReader(store, new_tree_id), TreeReader(store, old_tree_id), store, config)
    return result.hunks
