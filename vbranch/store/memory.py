"""In-process repository store.

Contains:
- MemoryStore: content-addressed RepositoryStore held in dictionaries
"""

import hashlib
import threading
from typing import Optional

from vbranch.store.base import EMPTY_TREE_ID, CommitInfo, TreeEntry
from vbranch.store.exceptions import ObjectNotFoundError


def _object_id(kind: str, payload: bytes) -> str:
    """Hash an object the way git does, so blob ids match a real repository."""
    header = f"{kind} {len(payload)}\0".encode()
    return hashlib.sha1(header + payload, usedforsecurity=False).hexdigest()


class MemoryStore:
    """A RepositoryStore that keeps every object in memory.

    Blob ids are identical to git's. Tree and commit ids are stable hashes
    of a canonical encoding, not git-compatible.
    """

    def __init__(self):
        self._blobs: dict[str, bytes] = {}
        self._trees: dict[str, dict[str, TreeEntry]] = {EMPTY_TREE_ID: {}}
        self._commits: dict[str, CommitInfo] = {}
        self._refs: dict[str, str] = {}
        self._lock = threading.Lock()

    def read_tree(self, tree_id: str) -> dict[str, TreeEntry]:
        if tree_id in self._commits:
            tree_id = self._commits[tree_id].tree_id
        try:
            return dict(self._trees[tree_id])
        except KeyError:
            raise ObjectNotFoundError(f"Tree not found: {tree_id}")

    def read_blob(self, blob_id: str) -> bytes:
        try:
            return self._blobs[blob_id]
        except KeyError:
            raise ObjectNotFoundError(f"Blob not found: {blob_id}")

    def write_blob(self, data: bytes) -> str:
        oid = _object_id("blob", data)
        with self._lock:
            self._blobs.setdefault(oid, bytes(data))
        return oid

    def write_tree(self, entries: dict[str, TreeEntry]) -> str:
        if not entries:
            return EMPTY_TREE_ID
        for path, entry in entries.items():
            if entry.oid not in self._blobs:
                raise ObjectNotFoundError(f"Tree entry {path} points at missing blob {entry.oid}")
        encoded = "\n".join(f"{entries[p].mode} {entries[p].oid}\t{p}" for p in sorted(entries))
        oid = _object_id("tree", encoded.encode("utf-8", errors="surrogateescape"))
        with self._lock:
            self._trees.setdefault(oid, dict(entries))
        return oid

    def write_commit(self, tree_id: str, parents: list[str], message: str) -> str:
        if tree_id not in self._trees:
            raise ObjectNotFoundError(f"Tree not found: {tree_id}")
        for parent in parents:
            if parent not in self._commits:
                raise ObjectNotFoundError(f"Parent commit not found: {parent}")
        with self._lock:
            # Commits carry a sequence number so identical commits stay distinct,
            # mirroring the timestamp a real commit would record.
            encoded = f"tree {tree_id}\n" + "".join(f"parent {p}\n" for p in parents)
            encoded += f"seq {len(self._commits)}\n\n{message}"
            oid = _object_id("commit", encoded.encode())
            self._commits[oid] = CommitInfo(id=oid, tree_id=tree_id, parents=list(parents), message=message)
        return oid

    def read_commit(self, commit_id: str) -> CommitInfo:
        try:
            return self._commits[commit_id]
        except KeyError:
            raise ObjectNotFoundError(f"Commit not found: {commit_id}")

    def head_commit(self) -> Optional[str]:
        return self._refs.get("HEAD")

    def resolve_ref(self, ref: str) -> str:
        if ref in self._commits:
            return ref
        for candidate in (ref, f"refs/heads/{ref}"):
            if candidate in self._refs:
                return self._refs[candidate]
        raise ObjectNotFoundError(f"Unknown ref: {ref}")

    def update_ref(self, ref: str, commit_id: Optional[str]) -> None:
        with self._lock:
            if commit_id is None:
                self._refs.pop(ref, None)
            else:
                self._refs[ref] = commit_id

    def commit_files(self, files: dict[str, bytes], message: str = "commit", parents: Optional[list[str]] = None) -> str:
        """Write a commit holding exactly ``files`` and move HEAD to it.

        Args:
            files: Mapping of path to file content.
            message: Commit message.
            parents: Parent commits (defaults to the current HEAD, if any).

        Returns:
            The new commit id.
        """
        entries = {path: TreeEntry(oid=self.write_blob(data)) for path, data in files.items()}
        if parents is None:
            head = self.head_commit()
            parents = [head] if head else []
        commit_id = self.write_commit(self.write_tree(entries), parents, message)
        self.update_ref("HEAD", commit_id)
        return commit_id
