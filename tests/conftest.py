"""Shared test fixtures and configuration."""

import subprocess
import tempfile
from pathlib import Path

import pytest

from vbranch.config import VBranchConfig
from vbranch.session import Session
from vbranch.store.memory import MemoryStore


BASE_TEXT = "".join(f"line{i}\n" for i in range(1, 21))


def replace_lines(text: str, start: int, end: int, prefix: str) -> str:
    """Replace 1-based lines start..end (inclusive) with '<prefix><n>'."""
    lines = text.splitlines(keepends=True)
    for n in range(start, end + 1):
        lines[n - 1] = f"{prefix}{n}\n"
    return "".join(lines)


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def base_text():
    """Twenty numbered lines used as the committed content of f.txt."""
    return BASE_TEXT


@pytest.fixture
def edit():
    """Return a helper producing base_text with a line range replaced."""
    return replace_lines


@pytest.fixture
def memory_store():
    """An in-memory store whose HEAD holds f.txt."""
    store = MemoryStore()
    store.commit_files({"f.txt": BASE_TEXT.encode("utf-8")}, message="base")
    return store


@pytest.fixture
def workdir(temp_dir):
    """A working directory matching the base commit."""
    (temp_dir / "f.txt").write_text(BASE_TEXT)
    return temp_dir


@pytest.fixture
def session(workdir, memory_store):
    """An initialized session over the memory store with a default branch."""
    session = Session(workdir, store=memory_store, config=VBranchConfig())
    session.initialize()
    return session


def _git(repo: Path, *args: str) -> str:
    result = subprocess.run(["git", *args], cwd=repo, capture_output=True, text=True, check=True)
    return result.stdout.strip()


@pytest.fixture
def git_repo(temp_dir):
    """A real git repository with one commit holding f.txt."""
    _git(temp_dir, "init", "-q")
    _git(temp_dir, "config", "user.email", "test@example.com")
    _git(temp_dir, "config", "user.name", "Test User")
    _git(temp_dir, "config", "commit.gpgsign", "false")
    (temp_dir / "f.txt").write_text(BASE_TEXT)
    _git(temp_dir, "add", "f.txt")
    _git(temp_dir, "commit", "-q", "-m", "base")
    return temp_dir


@pytest.fixture
def git():
    """Return a helper running git in a directory."""
    return _git
