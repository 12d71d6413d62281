"""File readers over the working directory and stored trees.

Contains:
- ContentKind: TEXT, BINARY or LARGE
- digest_bytes: Content digest used for snapshots and stale checks
- Content: Classified file content
- should_exclude_file: Check a path against ignore patterns
- WorkdirReader: Reads files below a working directory
- TreeReader: Reads files of a tree in the repository store
"""

import fnmatch
import hashlib
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

from vbranch.store.base import EXECUTABLE_FILE_MODE, REGULAR_FILE_MODE, RepositoryStore, TreeEntry
from vbranch.paths import STATE_DIR_NAME


DEFAULT_MAX_FILE_SIZE = 10 * 1024 * 1024  # 10 MB

# Never part of any diff
ALWAYS_EXCLUDED_DIRS = (".git", STATE_DIR_NAME)


def digest_bytes(data: bytes) -> str:
    return hashlib.sha1(data, usedforsecurity=False).hexdigest()


class ContentKind(str, Enum):
    """How file content can be handled."""

    TEXT = "text"
    BINARY = "binary"
    LARGE = "large"


@dataclass(frozen=True)
class Content:
    """Classified file content."""

    kind: ContentKind
    data: bytes
    mode: str = REGULAR_FILE_MODE

    @classmethod
    def from_bytes(cls, data: bytes, max_size: int = DEFAULT_MAX_FILE_SIZE, mode: str = REGULAR_FILE_MODE) -> "Content":
        if len(data) > max_size:
            return cls(ContentKind.LARGE, data, mode)
        if b"\0" in data[:8000]:
            return cls(ContentKind.BINARY, data, mode)
        try:
            data.decode("utf-8")
        except UnicodeDecodeError:
            return cls(ContentKind.BINARY, data, mode)
        return cls(ContentKind.TEXT, data, mode)

    @property
    def text(self) -> str:
        """Decoded text; only meaningful for TEXT content."""
        return self.data.decode("utf-8")

    @property
    def is_text(self) -> bool:
        return self.kind == ContentKind.TEXT

    @property
    def digest(self) -> str:
        return digest_bytes(self.data)


def should_exclude_file(filename: str, patterns: list[str]) -> bool:
    """Check if a file should be excluded based on patterns.

    Supports glob patterns like *.lock, build/*, etc.

    Args:
        filename: The file path to check.
        patterns: List of patterns to match against.

    Returns:
        True if the file should be excluded.
    """
    if filename.split("/", 1)[0] in ALWAYS_EXCLUDED_DIRS:
        return True
    for pattern in patterns:
        # Handle exact matches
        if filename == pattern:
            return True
        # Handle glob patterns
        if fnmatch.fnmatch(filename, pattern):
            return True
        # Handle patterns that might match the basename
        if fnmatch.fnmatch(Path(filename).name, pattern):
            return True
    return False


class WorkdirReader:
    """Reads files below a working directory root."""

    def __init__(self, root: Path, ignore: Optional[list[str]] = None, max_size: int = DEFAULT_MAX_FILE_SIZE):
        self.root = Path(root)
        self.ignore = list(ignore or [])
        self.max_size = max_size

    def exists(self, path: str) -> bool:
        return (self.root / path).is_file()

    def read(self, path: str) -> Content:
        """Read and classify one file.

        Raises:
            FileNotFoundError: If the file does not exist.
            OSError: If the file cannot be read.
        """
        full_path = self.root / path
        data = full_path.read_bytes()
        mode = EXECUTABLE_FILE_MODE if os.access(full_path, os.X_OK) else REGULAR_FILE_MODE
        return Content.from_bytes(data, self.max_size, mode)

    def list_files(self, dir_path: str = "") -> list[str]:
        """List files below ``dir_path``, relative to it, sorted.

        Ignored files and the .git and .vbranch directories are skipped.
        """
        start = self.root / dir_path
        files: list[str] = []
        for current, dirnames, filenames in os.walk(start):
            rel_dir = Path(current).relative_to(self.root).as_posix()
            rel_dir = "" if rel_dir == "." else rel_dir
            dirnames[:] = [
                d for d in dirnames
                if not should_exclude_file(f"{rel_dir}/{d}".lstrip("/"), [])
            ]
            for name in filenames:
                rel_path = f"{rel_dir}/{name}".lstrip("/")
                if should_exclude_file(rel_path, self.ignore):
                    continue
                if Path(current, name).is_symlink():
                    continue
                files.append(Path(rel_path).relative_to(dir_path).as_posix() if dir_path else rel_path)
        return sorted(files)


class TreeReader:
    """Reads files of one tree in the repository store."""

    def __init__(self, store: RepositoryStore, tree_id: str, max_size: int = DEFAULT_MAX_FILE_SIZE):
        self.store = store
        self.tree_id = tree_id
        self.max_size = max_size
        self._entries: Optional[dict[str, TreeEntry]] = None

    @property
    def entries(self) -> dict[str, TreeEntry]:
        if self._entries is None:
            self._entries = self.store.read_tree(self.tree_id)
        return self._entries

    def exists(self, path: str) -> bool:
        return path in self.entries

    def entry(self, path: str) -> Optional[TreeEntry]:
        return self.entries.get(path)

    def read(self, path: str) -> Content:
        """Read and classify one file of the tree.

        Raises:
            FileNotFoundError: If the tree has no such file.
        """
        entry = self.entries.get(path)
        if entry is None:
            raise FileNotFoundError(path)
        return Content.from_bytes(self.store.read_blob(entry.oid), self.max_size, entry.mode)

    def list_files(self, dir_path: str = "") -> list[str]:
        """List files below ``dir_path``, relative to it, sorted."""
        if not dir_path:
            return sorted(self.entries)
        prefix = dir_path.rstrip("/") + "/"
        return sorted(p[len(prefix):] for p in self.entries if p.startswith(prefix))
