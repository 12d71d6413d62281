"""Tests for vbranch.cli module."""

import pytest
from typer.testing import CliRunner

from vbranch.cli import app
from vbranch.config import VBranchConfig
from vbranch.session import Session
from vbranch.store.exceptions import StoreError


runner = CliRunner()

COMMAND_MODULES = (
    "vbranch.cli.init",
    "vbranch.cli.branch",
    "vbranch.cli.status",
    "vbranch.cli.commit",
    "vbranch.cli.history",
    "vbranch.cli.ignore",
    "vbranch.cli.base",
)


@pytest.fixture(autouse=True)
def outside_repository(mocker):
    """Keep logging setup from reading the config of the enclosing repository."""
    mocker.patch("vbranch.cli.utils.get_repo_root", side_effect=StoreError("not a repo"))


@pytest.fixture
def open_repo(mocker, workdir, memory_store):
    """Point every command at a session over the memory store.

    Returns a factory opening a fresh Session on the same repository, the
    way each CLI invocation does.
    """

    def factory():
        return Session(workdir, store=memory_store, config=VBranchConfig())

    mocker.patch("vbranch.cli.utils.get_repo_root", return_value=workdir)
    for module in COMMAND_MODULES:
        mocker.patch(f"{module}.open_session", side_effect=factory)
    return factory


@pytest.fixture
def initialized(open_repo):
    """A repository after 'vbranch init'."""
    result = runner.invoke(app, ["init"])
    assert result.exit_code == 0
    return open_repo


class TestMainCommand:
    """Tests for the main callback."""

    def test_shows_help(self, open_repo):
        """Test that running without a command prints help."""
        result = runner.invoke(app, [])

        assert result.exit_code == 0
        assert "virtual branch" in result.output.lower()

    def test_version(self):
        """Test the --version flag."""
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert result.output.startswith("vbranch ")


class TestInitCommand:
    """Tests for vbranch init."""

    def test_creates_default_branch(self, open_repo):
        """Test that init reports the base and the default branch."""
        result = runner.invoke(app, ["init"])

        assert result.exit_code == 0
        assert "Initialized vbranch" in result.output
        assert "Branch: Virtual branch (0 hunks)" in result.output

    def test_existing_changes_go_to_default(self, open_repo, workdir, base_text, edit):
        """Test that uncommitted edits are claimed at init."""
        (workdir / "f.txt").write_text(edit(base_text, 3, 3, "x"))

        result = runner.invoke(app, ["init"])

        assert "Branch: Virtual branch (1 hunks)" in result.output

    def test_no_default(self, open_repo):
        """Test that --no-default creates no branch."""
        result = runner.invoke(app, ["init", "--no-default"])

        assert result.exit_code == 0
        assert "Branch:" not in result.output

    def test_twice_is_an_error(self, initialized):
        """Test that a second init fails."""
        result = runner.invoke(app, ["init"])

        assert result.exit_code == 1
        assert "Error:" in result.output
        assert "already initialized" in result.output

    def test_commands_require_init(self, open_repo):
        """Test that other commands refuse an uninitialized repository."""
        result = runner.invoke(app, ["list"])

        assert result.exit_code == 1
        assert "vbranch init" in result.output


class TestBranchCommands:
    """Tests for list, create, update and delete."""

    def test_create_and_list(self, initialized):
        """Test that a created branch is listed after the default."""
        result = runner.invoke(app, ["create", "Feature"])
        assert result.exit_code == 0
        assert "Created virtual branch Feature" in result.output

        result = runner.invoke(app, ["list"])

        lines = result.output.splitlines()
        assert "Virtual branch (default)" in lines[0]
        assert "Feature" in lines[1]
        assert lines[1].startswith("*")

    def test_update(self, initialized):
        """Test renaming a branch by name."""
        runner.invoke(app, ["create", "Feature"])

        result = runner.invoke(app, ["update", "Feature", "--name", "Bugfix"])

        assert result.exit_code == 0
        assert "Updated virtual branch Bugfix" in result.output
        assert [b.name for b in initialized().snapshot().branches] == ["Virtual branch", "Bugfix"]

    def test_unknown_branch(self, initialized):
        """Test the error for a branch that does not exist."""
        result = runner.invoke(app, ["update", "nope", "--name", "x"])

        assert result.exit_code == 1
        assert "No virtual branch matches 'nope'" in result.output

    def test_delete_with_yes(self, initialized):
        """Test deleting without a prompt."""
        runner.invoke(app, ["create", "Feature"])

        result = runner.invoke(app, ["delete", "Feature", "--yes"])

        assert result.exit_code == 0
        assert "Deleted virtual branch Feature" in result.output
        assert len(initialized().snapshot().branches) == 1

    def test_delete_cancelled(self, initialized):
        """Test that declining the prompt keeps the branch."""
        runner.invoke(app, ["create", "Feature"])

        result = runner.invoke(app, ["delete", "Feature"], input="n\n")

        assert result.exit_code == 0
        assert "Cancelled." in result.output
        assert len(initialized().snapshot().branches) == 2


class TestChangeCommands:
    """Tests for status, diff, assign, apply and unapply."""

    @pytest.fixture
    def edited(self, initialized, workdir, base_text, edit):
        """An edit on line 3 and an empty 'Feature' branch."""
        (workdir / "f.txt").write_text(edit(base_text, 3, 3, "x"))
        runner.invoke(app, ["create", "Feature"])
        return initialized

    def _hunk_id(self, open_repo):
        session = open_repo()
        default = session.resolve_branch("Virtual branch")
        return session.get_branch_diff(default.id)[0].id

    def test_status(self, edited):
        """Test that status lists branches and their hunks."""
        result = runner.invoke(app, ["status"])

        assert result.exit_code == 0
        assert "Virtual branch" in result.output
        assert "f.txt @@ -3,1 +3,1 @@" in result.output

    def test_diff(self, edited):
        """Test printing a branch as a patch."""
        result = runner.invoke(app, ["diff", "Virtual branch"])

        assert result.exit_code == 0
        assert "-line3" in result.output
        assert "+x3" in result.output

    def test_diff_unassigned_is_empty(self, edited):
        """Test that the default branch leaves nothing unassigned."""
        result = runner.invoke(app, ["diff"])

        assert result.exit_code == 0
        assert result.output == ""

    def test_assign_by_prefix(self, edited):
        """Test moving a hunk using a prefix of its id."""
        hunk_id = self._hunk_id(edited)

        result = runner.invoke(app, ["assign", hunk_id[:6], "Feature"])

        assert result.exit_code == 0
        assert f"Assigned hunk {hunk_id} to Feature" in result.output
        assert "+x3" in runner.invoke(app, ["diff", "Feature"]).output

    def test_assign_requires_target(self, edited):
        """Test that assign needs a branch or --unassign."""
        result = runner.invoke(app, ["assign", self._hunk_id(edited)])

        assert result.exit_code == 1
        assert "--unassign" in result.output

    def test_unassign(self, edited):
        """Test leaving a hunk unassigned."""
        result = runner.invoke(app, ["assign", self._hunk_id(edited), "--unassign"])

        assert result.exit_code == 0
        assert "+x3" in runner.invoke(app, ["diff"]).output

    def test_unapply_and_apply(self, edited, workdir, base_text):
        """Test that unapply removes a branch's changes and apply restores them."""
        result = runner.invoke(app, ["unapply", "Virtual branch"])

        assert result.exit_code == 0
        assert "Unapplied Virtual branch: 1 file(s) written" in result.output
        assert (workdir / "f.txt").read_text() == base_text

        result = runner.invoke(app, ["apply", "Virtual branch"])

        assert result.exit_code == 0
        assert "x3\n" in (workdir / "f.txt").read_text()


class TestCommitCommands:
    """Tests for commit and log."""

    def test_commit_and_log(self, initialized, workdir, base_text, edit):
        """Test committing a branch and reading its history."""
        (workdir / "f.txt").write_text(edit(base_text, 3, 3, "x"))

        result = runner.invoke(app, ["commit", "Virtual branch", "-m", "Change line three"])

        assert result.exit_code == 0
        assert result.output.startswith("[Virtual branch ")
        log = runner.invoke(app, ["log", "Virtual branch"])
        assert "Change line three" in log.output

    def test_empty_commit_warns(self, initialized):
        """Test that an empty commit is a warning, not an error."""
        result = runner.invoke(app, ["commit", "Virtual branch", "-m", "nothing"])

        assert result.exit_code == 0
        assert "Warning:" in result.output

    def test_log_without_commits(self, initialized):
        """Test the message for a branch with no history."""
        result = runner.invoke(app, ["log", "Virtual branch"])

        assert result.exit_code == 0
        assert "No commits on Virtual branch yet." in result.output


class TestHistoryCommands:
    """Tests for undo and redo."""

    def test_undo_and_redo_create(self, initialized):
        """Test undoing and redoing a branch creation."""
        runner.invoke(app, ["create", "Feature"])

        result = runner.invoke(app, ["undo"])
        assert result.exit_code == 0
        assert "Undid create branch" in result.output
        assert len(initialized().snapshot().branches) == 1

        result = runner.invoke(app, ["redo"])
        assert result.exit_code == 0
        assert "Redid create branch" in result.output
        assert len(initialized().snapshot().branches) == 2

    def test_nothing_to_undo(self, initialized):
        """Test the error when the log is empty."""
        result = runner.invoke(app, ["undo"])

        assert result.exit_code == 1
        assert "Nothing to undo" in result.output


class TestIgnoreCommands:
    """Tests for vbranch ignore list/add/remove."""

    def test_lists_patterns(self, mocker, temp_dir):
        """Test listing ignore patterns."""
        mocker.patch("vbranch.cli.ignore.get_repo_root", return_value=temp_dir)
        mocker.patch("vbranch.cli.ignore.get_ignore_patterns", return_value=["*.log", "build/*"])

        result = runner.invoke(app, ["ignore", "list"])

        assert result.exit_code == 0
        assert "*.log" in result.output
        assert "2 pattern" in result.output

    def test_adds_pattern(self, mocker, temp_dir):
        """Test adding a pattern."""
        mocker.patch("vbranch.cli.ignore.get_repo_root", return_value=temp_dir)

        result = runner.invoke(app, ["ignore", "add", "*.log"])

        assert result.exit_code == 0
        assert "Added ignore pattern: *.log" in result.output
        assert "Pattern already exists" in runner.invoke(app, ["ignore", "add", "*.log"]).output

    def test_remove_missing_pattern(self, mocker, temp_dir):
        """Test removing a pattern that is not configured."""
        mocker.patch("vbranch.cli.ignore.get_repo_root", return_value=temp_dir)

        result = runner.invoke(app, ["ignore", "remove", "nope"])

        assert result.exit_code == 1
        assert "Pattern not found" in result.output

    def test_handles_store_error(self, mocker):
        """Test handling of running outside a repository."""
        mocker.patch("vbranch.cli.ignore.get_repo_root", side_effect=StoreError("not a repo"))

        result = runner.invoke(app, ["ignore", "list"])

        assert result.exit_code == 1
        assert "Error: not a repo" in result.output

    def test_add_refuses_claimed_files(self, mocker, initialized, workdir, base_text, edit):
        """Test that a pattern covering claimed files needs --force."""
        mocker.patch("vbranch.cli.ignore.get_repo_root", return_value=workdir)
        (workdir / "f.txt").write_text(edit(base_text, 3, 3, "x"))

        result = runner.invoke(app, ["ignore", "add", "*.txt"])

        assert result.exit_code == 1
        assert "Error:" in result.output
        assert "Virtual branch: f.txt" in result.output
        assert "*.txt" not in runner.invoke(app, ["ignore", "list"]).output

    def test_add_with_force_drops_claims(self, mocker, initialized, workdir, base_text, edit):
        """Test that --force adds the pattern with a warning."""
        mocker.patch("vbranch.cli.ignore.get_repo_root", return_value=workdir)
        (workdir / "f.txt").write_text(edit(base_text, 3, 3, "x"))

        result = runner.invoke(app, ["ignore", "add", "*.txt", "--force"])

        assert result.exit_code == 0
        assert "Warning: dropping claims on Virtual branch: f.txt" in result.output
        assert "Added ignore pattern: *.txt" in result.output

    def test_add_unclaimed_pattern_in_initialized_repo(self, mocker, initialized, workdir):
        """Test that patterns matching no claimed file are added directly."""
        mocker.patch("vbranch.cli.ignore.get_repo_root", return_value=workdir)

        result = runner.invoke(app, ["ignore", "add", "*.log"])

        assert result.exit_code == 0
        assert "Added ignore pattern: *.log" in result.output


class TestBaseCommand:
    """Tests for vbranch base."""

    def test_shows_base(self, initialized):
        """Test printing the current base."""
        result = runner.invoke(app, ["base"])

        assert result.exit_code == 0
        assert result.output.startswith("Base: HEAD (")
        assert "HEAD is at the base." in result.output

    def test_reports_new_commits(self, initialized, memory_store, base_text):
        """Test that commits made on HEAD since init are reported."""
        memory_store.commit_files({"f.txt": base_text.encode()}, message="second")

        result = runner.invoke(app, ["base"])

        assert "is 1 commit(s) ahead of the base." in result.output

    def test_move_refused_then_forced(self, initialized, workdir, memory_store, base_text, edit):
        """Test that claimed changes need --force to move the base."""
        (workdir / "f.txt").write_text(edit(base_text, 3, 3, "x"))
        memory_store.commit_files({"f.txt": base_text.encode()}, message="second")

        result = runner.invoke(app, ["base", "HEAD"])

        assert result.exit_code == 1
        assert "Error: Branches still claim changes: Virtual branch" in result.output

        result = runner.invoke(app, ["base", "HEAD", "--force"])

        assert result.exit_code == 0
        assert "HEAD is at the base." in result.output
        session = initialized()
        default = session.resolve_branch("Virtual branch")
        assert [h.old_start for h in session.get_branch_diff(default.id)] == [3]
