"""Git-backed repository store.

Contains:
- GitStore: RepositoryStore implemented with git plumbing commands
"""

import logging
from pathlib import Path
from typing import Optional

from vbranch.store.base import EMPTY_TREE_ID, CommitInfo, TreeEntry
from vbranch.store.exceptions import ObjectNotFoundError, StoreError
from vbranch.store.runner import _run_git_bytes, _run_git_command

logger = logging.getLogger(__name__)


class GitStore:
    """Object store backed by the git repository at ``repo_root``.

    Every call shells out to a git plumbing command; nothing is cached, so
    the store is safe to share between threads.
    """

    def __init__(self, repo_root: Path):
        self.repo_root = Path(repo_root)

    def __repr__(self) -> str:
        return f"GitStore({str(self.repo_root)!r})"

    # ------------------------------------------------------------------
    # Objects
    # ------------------------------------------------------------------

    def read_tree(self, tree_id: str) -> dict[str, TreeEntry]:
        """Read a tree recursively into a flat path -> TreeEntry mapping.

        Args:
            tree_id: Tree id (or any tree-ish such as a commit id).

        Returns:
            Mapping of file path to TreeEntry. Submodules are skipped.
        """
        raw = _run_git_bytes(["ls-tree", "-r", "-z", "--full-tree", tree_id], cwd=self.repo_root)
        entries: dict[str, TreeEntry] = {}
        for record in raw.decode("utf-8", errors="surrogateescape").split("\0"):
            if not record:
                continue
            meta, path = record.split("\t", 1)
            mode, obj_type, oid = meta.split(" ")
            if obj_type != "blob":
                continue
            entries[path] = TreeEntry(oid=oid, mode=mode)
        return entries

    def read_blob(self, blob_id: str) -> bytes:
        try:
            return _run_git_bytes(["cat-file", "blob", blob_id], cwd=self.repo_root)
        except StoreError as e:
            raise ObjectNotFoundError(f"Blob not found: {blob_id}") from e

    def write_blob(self, data: bytes) -> str:
        oid = _run_git_bytes(["hash-object", "-w", "--stdin"], cwd=self.repo_root, input_bytes=data)
        return oid.decode().strip()

    def write_tree(self, entries: dict[str, TreeEntry]) -> str:
        """Write a flat path mapping as nested git trees.

        Args:
            entries: Mapping of file path to TreeEntry.

        Returns:
            Id of the root tree.
        """
        if not entries:
            return EMPTY_TREE_ID

        root: dict = {}
        for path, entry in entries.items():
            node = root
            parts = path.split("/")
            for part in parts[:-1]:
                node = node.setdefault(part, {})
            node[parts[-1]] = entry

        return self._write_subtree(root)

    def _write_subtree(self, node: dict) -> str:
        records = []
        for name in sorted(node):
            child = node[name]
            if isinstance(child, dict):
                records.append(f"040000 tree {self._write_subtree(child)}\t{name}")
            else:
                records.append(f"{child.mode} blob {child.oid}\t{name}")
        payload = "\0".join(records) + "\0"
        oid = _run_git_bytes(
            ["mktree", "-z"],
            cwd=self.repo_root,
            input_bytes=payload.encode("utf-8", errors="surrogateescape"),
        )
        return oid.decode().strip()

    def write_commit(self, tree_id: str, parents: list[str], message: str) -> str:
        args = ["commit-tree", tree_id]
        for parent in parents:
            args.extend(["-p", parent])
        args.extend(["-F", "-"])
        commit_id = _run_git_command(args, cwd=self.repo_root, input_text=message)
        logger.debug("Wrote commit %s (tree %s, parents %s)", commit_id, tree_id, parents)
        return commit_id

    def read_commit(self, commit_id: str) -> CommitInfo:
        try:
            raw = _run_git_command(["cat-file", "commit", commit_id], cwd=self.repo_root)
        except StoreError as e:
            raise ObjectNotFoundError(f"Commit not found: {commit_id}") from e

        header, _, message = raw.partition("\n\n")
        tree_id = ""
        parents: list[str] = []
        for line in header.split("\n"):
            if line.startswith("tree "):
                tree_id = line[5:].strip()
            elif line.startswith("parent "):
                parents.append(line[7:].strip())
        return CommitInfo(id=commit_id, tree_id=tree_id, parents=parents, message=message)

    # ------------------------------------------------------------------
    # Refs
    # ------------------------------------------------------------------

    def head_commit(self) -> Optional[str]:
        try:
            return _run_git_command(["rev-parse", "--verify", "-q", "HEAD^{commit}"], cwd=self.repo_root)
        except StoreError:
            return None

    def resolve_ref(self, ref: str) -> str:
        try:
            return _run_git_command(["rev-parse", "--verify", f"{ref}^{{commit}}"], cwd=self.repo_root)
        except StoreError as e:
            raise ObjectNotFoundError(f"Unknown ref: {ref}") from e

    def update_ref(self, ref: str, commit_id: Optional[str]) -> None:
        if commit_id is None:
            try:
                _run_git_command(["update-ref", "-d", ref], cwd=self.repo_root)
            except StoreError:
                logger.debug("Ref %s was already absent", ref)
            return
        _run_git_command(["update-ref", ref, commit_id], cwd=self.repo_root)
