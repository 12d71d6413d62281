"""Virtual branch session for vbranch.

The Session threads the store, configuration, lock and persisted state
through every operation and is the API the CLI (or any GUI bridge) uses.

Contains:
- MAX_RETRIES: Attempts before a plan gives up on a moving state
- Session: List, create, update, delete, apply, unapply and commit
  virtual branches, reassign hunks, move the base, undo and redo
"""

import logging
import threading
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional

from pydantic import TypeAdapter

from vbranch.apply.executor import commit_staged, discard_staged, stage_plan
from vbranch.apply.models import ApplyResult, WritePlan
from vbranch.apply.planner import plan_apply, plan_unapply
from vbranch.commit import branch_commits, build_commit
from vbranch.config import VBranchConfig, load_vbranch_config
from vbranch.conflicts import has_conflict_markers, release_conflict, resolve_bridges
from vbranch.diff.engine import compute_diff, diff_trees
from vbranch.diff.models import DiffResult, Hunk, HunkStatus
from vbranch.exceptions import (
    BranchNotFoundError,
    ConflictError,
    StaleStateError,
    VBranchError,
)
from vbranch.models import BaseBranch, BranchSummary, ConflictMarker, VirtualBranch, utc_now
from vbranch.ownership.models import OwnershipMap
from vbranch.ownership.tracker import check_disjoint, reconcile
from vbranch.paths import get_log_file
from vbranch.reader import TreeReader, WorkdirReader, should_exclude_file
from vbranch.session_log import REDO, UNDO, LogEntry, SessionLog
from vbranch.state.models import SessionState
from vbranch.state.storage import load_state, save_state, state_exists
from vbranch.store.base import CommitInfo, RepositoryStore
from vbranch.store.git import GitStore

logger = logging.getLogger(__name__)


MAX_RETRIES = 3

DEFAULT_BRANCH_NAME = "Virtual branch"

_HUNK_LIST = TypeAdapter(list[Hunk])


class Session:
    """An explicit session over one repository.

    One re-entrant lock guards the in-memory state. Diffing, planning and
    staging run on deep copies outside the lock; only merging results and
    renaming staged files hold it, after checking that the state version
    they were computed against is still current.
    """

    def __init__(
        self,
        repo_root: Path,
        store: Optional[RepositoryStore] = None,
        config: Optional[VBranchConfig] = None,
    ):
        self.repo_root = Path(repo_root)
        self.store = store if store is not None else GitStore(self.repo_root)
        self.config = config if config is not None else load_vbranch_config(self.repo_root)
        self.log = SessionLog(get_log_file(self.repo_root))
        self._lock = threading.RLock()
        self._state: Optional[SessionState] = None

    def __repr__(self) -> str:
        return f"Session({self.repo_root})"

    # ==================== State ====================

    @property
    def initialized(self) -> bool:
        return self._state is not None or state_exists(self.repo_root)

    def initialize(self, base: Optional[str] = None, create_default: bool = True) -> SessionState:
        """Start tracking virtual branches on top of a base commit.

        Args:
            base: Ref or commit to use as base (HEAD when omitted).
            create_default: Create an applied default branch that receives
                every existing and future unmatched change.

        Returns:
            Copy of the new state.

        Raises:
            VBranchError: If already initialized or the repository is empty.
        """
        with self._lock:
            if self.initialized:
                raise VBranchError(f"vbranch is already initialized in {self.repo_root}")
            base_commit = self.store.resolve_ref(base) if base else self.store.head_commit()
            if base_commit is None:
                raise VBranchError("The repository has no commits to use as a base")

            state = SessionState(base_commit=base_commit, base_ref=base or "HEAD")
            if create_default:
                state.branches.append(
                    VirtualBranch(id=_new_id(), name=DEFAULT_BRANCH_NAME, base_commit=base_commit, default=True)
                )
            self._state = state
            save_state(self.repo_root, state)
            logger.info("Initialized vbranch on base %s", base_commit[:12])
        return self.refresh(force=True)

    def _load(self) -> SessionState:
        """Return the live state, loading it on first use. Lock must be held."""
        if self._state is None:
            state = load_state(self.repo_root)
            if state is None:
                raise VBranchError("vbranch is not initialized here; run 'vbranch init'")
            self._state = state
        return self._state

    def snapshot(self) -> SessionState:
        """Deep copy of the current state (no reconciliation)."""
        with self._lock:
            return self._load().model_copy(deep=True)

    def _commit_state(self, state: SessionState) -> None:
        """Install a new state and persist it. Lock must be held."""
        state.version = self._load().version + 1
        self._state = state
        save_state(self.repo_root, state)

    @contextmanager
    def _transaction(self) -> Iterator[SessionState]:
        """Mutate a copy of the state under the lock; install it on success."""
        with self._lock:
            state = self._load().model_copy(deep=True)
            yield state
            self._commit_state(state)

    def _working_reader(self) -> WorkdirReader:
        return WorkdirReader(self.repo_root, ignore=self.config.ignore, max_size=self.config.max_file_size)

    def _base_reader(self, state: SessionState) -> TreeReader:
        base_tree = self.store.read_commit(state.base_commit).tree_id
        return TreeReader(self.store, base_tree, max_size=self.config.max_file_size)

    # ==================== Reconciliation ====================

    def _still_conflicted(self, marker: ConflictMarker, working: WorkdirReader) -> bool:
        if not marker.inline:
            return True
        if not working.exists(marker.path):
            return False
        try:
            content = working.read(marker.path)
        except OSError:
            return True
        return content.is_text and has_conflict_markers(content.text)

    def _reconciled(self, state: SessionState, diff: DiffResult, working: WorkdirReader) -> SessionState:
        frozen = set(diff.error_paths)
        remaining = []
        for marker in state.conflicts:
            if self._still_conflicted(marker, working):
                frozen.add(marker.path)
                remaining.append(marker)
            else:
                release_conflict(state.ownership, marker)
        state.conflicts = remaining

        result = reconcile(diff.hunks, state.ownership, state.branches, self.config, frozen)
        resolve_bridges(result.ownership, result.bridges, state.branches, self.config.conflict_policy)
        check_disjoint(result.ownership, state.branches)
        state.ownership = result.ownership
        state.snapshot_id = diff.snapshot_id
        state.skipped_files = sorted(diff.error_paths)
        return state

    def refresh(self, force: bool = False) -> SessionState:
        """Reconcile ownership with the working directory.

        Skipped when the working directory still matches the snapshot the
        state was last reconciled against, unless ``force`` is set.

        Returns:
            Copy of the reconciled state.

        Raises:
            StaleStateError: If the state kept changing while reconciling.
        """
        for _ in range(MAX_RETRIES):
            snapshot = self.snapshot()
            working = self._working_reader()
            diff = compute_diff(working, self._base_reader(snapshot), self.store, self.config)
            if not force and diff.snapshot_id == snapshot.snapshot_id:
                return snapshot
            updated = self._reconciled(snapshot, diff, working)
            with self._lock:
                if self._load().version != snapshot.version:
                    logger.debug("State changed while reconciling; retrying")
                    continue
                self._commit_state(updated)
                logger.debug("Reconciled %d hunks against snapshot %s", len(diff.hunks), diff.snapshot_id[:12])
                return updated.model_copy(deep=True)
        raise StaleStateError("State kept changing while reconciling the working directory")

    # ==================== Queries ====================

    def resolve_branch(self, ident: str) -> VirtualBranch:
        """Find a branch by id, unique id prefix or name.

        Raises:
            BranchNotFoundError: If nothing (or more than one branch) matches.
        """
        state = self.snapshot()
        for branch in state.branches:
            if branch.id == ident or branch.name == ident:
                return branch
        matches = [b for b in state.branches if b.id.startswith(ident)]
        if len(matches) == 1:
            return matches[0]
        raise BranchNotFoundError(f"No virtual branch matches '{ident}'")

    def list_virtual_branches(self) -> list[BranchSummary]:
        """Summaries of every branch, in priority order."""
        state = self.refresh()
        summaries = []
        for branch in sorted(state.branches, key=lambda b: (b.order, b.id)):
            hunks = state.ownership.hunks_for_branch(branch.id)
            summaries.append(
                BranchSummary(
                    id=branch.id,
                    name=branch.name,
                    applied=branch.applied,
                    order=branch.order,
                    default=branch.default,
                    head_commit=branch.head_commit,
                    base_commit=branch.base_commit,
                    files=state.ownership.files_for_branch(branch.id),
                    hunk_count=len(hunks),
                    conflicted=any(h.status == HunkStatus.CONFLICTED for h in hunks),
                    updated_at=branch.updated_at,
                )
            )
        return summaries

    def get_branch_diff(self, branch_id: str) -> list[Hunk]:
        """Hunks a branch claims, ordered by path and position."""
        state = self.refresh()
        state.branch(branch_id)
        return state.ownership.hunks_for_branch(branch_id)

    def unassigned_hunks(self) -> list[Hunk]:
        return self.refresh().ownership.unassigned_hunks()

    def list_conflicts(self) -> list[ConflictMarker]:
        return self.refresh().conflicts

    def skipped_files(self) -> list[str]:
        """Files the last diff could not read; their claims are kept as they were."""
        return self.refresh().skipped_files

    def branches_claiming(self, pattern: str) -> dict[str, list[str]]:
        """Files matching an ignore pattern that branches claim, by branch name."""
        state = self.refresh()
        claimed = {}
        for branch in sorted(state.branches, key=lambda b: (b.order, b.id)):
            paths = [p for p in state.ownership.files_for_branch(branch.id) if should_exclude_file(p, [pattern])]
            if paths:
                claimed[branch.name] = paths
        return claimed

    def branch_commits(self, branch_id: str, limit: Optional[int] = None) -> list[CommitInfo]:
        return branch_commits(self.store, self.snapshot().branch(branch_id), limit)

    # ==================== Base ====================

    def get_base_branch(self) -> BaseBranch:
        """Describe the base commit and how far HEAD has moved past it."""
        state = self.snapshot()
        commit = self.store.read_commit(state.base_commit)
        head = self.store.head_commit()
        return BaseBranch(
            ref_name=state.base_ref,
            commit_id=commit.id,
            subject=commit.message.splitlines()[0] if commit.message else "",
            head_commit=head,
            behind=_first_parent_distance(self.store, head, commit.id) if head else None,
        )

    def set_base_branch(self, ref: str, force: bool = False) -> BaseBranch:
        """Move every virtual branch onto a new base commit.

        Claims are hunks against the old base and do not carry over. Without
        ``force`` the move is refused while any branch claims changes; with
        it, claims of applied branches are dropped and the working copy is
        reconciled again against the new base (everything goes to the
        default branch). Not recorded in the session log.

        Raises:
            ObjectNotFoundError: If the ref cannot be resolved.
            ConflictError: If conflicts are still unresolved.
            VBranchError: If branches hold claims (applied ones only with
                ``force``) or already have commits on the old base.
        """
        commit_id = self.store.resolve_ref(ref)
        if commit_id == self.refresh().base_commit:
            return self.get_base_branch()
        with self._transaction() as state:
            self._check_not_conflicted(state)
            committed = [b.name for b in state.branches if b.head_commit]
            if committed:
                raise VBranchError(f"Branches already have commits on the current base: {', '.join(committed)}")
            claiming = [
                b for b in sorted(state.branches, key=lambda b: (b.order, b.id))
                if state.ownership.files_for_branch(b.id) and (not force or not b.applied)
            ]
            if claiming:
                hint = "unapplied branches cannot be re-read from disk" if force else "use force to drop them"
                raise VBranchError(
                    f"Branches still claim changes: {', '.join(b.name for b in claiming)} ({hint})"
                )

            state.base_commit = commit_id
            state.base_ref = ref
            for branch in state.branches:
                branch.base_commit = commit_id
                branch.unapplied_files = []
            state.ownership = OwnershipMap()
            state.snapshot_id = None
        self.refresh(force=True)
        logger.info("Moved base to %s (%s)", ref, commit_id[:12])
        return self.get_base_branch()

    # ==================== Branch lifecycle ====================

    def create_virtual_branch(
        self,
        name: Optional[str] = None,
        order: Optional[int] = None,
        default: bool = False,
        notes: str = "",
    ) -> VirtualBranch:
        """Create a new, applied and empty virtual branch.

        Raises:
            ConflictError: If conflicts are still unresolved.
        """
        self.refresh()
        with self._transaction() as state:
            self._check_not_conflicted(state)
            branch = self._new_branch(state, name, order, default, notes)
            state.branches.append(branch)
            self.log.append(
                "create_branch",
                params={"action": "restore_branch", "branch": branch.model_dump(mode="json"), "hunks": []},
                inverse={"action": "delete_branch", "branch_id": branch.id},
            )
        logger.info("Created virtual branch %s (%s)", branch.name, branch.id)
        return branch.model_copy()

    def create_virtual_branch_from_branch(self, ref: str, name: Optional[str] = None) -> VirtualBranch:
        """Create a virtual branch from an existing ref and apply it.

        The ref's commit becomes the branch head; its claims are the hunks
        between the base tree and the ref's tree.

        Raises:
            ConflictError: If conflicts are still unresolved.
            StoreError: If the ref cannot be resolved.
        """
        commit_id = self.store.resolve_ref(ref)
        state = self.refresh()
        base_tree = self.store.read_commit(state.base_commit).tree_id
        hunks = diff_trees(self.store, base_tree, self.store.read_commit(commit_id).tree_id, self.config)

        with self._transaction() as state:
            self._check_not_conflicted(state)
            branch = self._new_branch(state, name or ref.split("/")[-1], None, False, "")
            branch.applied = False
            branch.head_commit = commit_id
            state.branches.append(branch)
            added = [h for h in hunks if h.id not in state.ownership.hunks]
            for hunk in added:
                state.ownership.add(hunk, branch.id)
            self.log.append(
                "create_branch",
                params={
                    "action": "restore_branch",
                    "branch": branch.model_dump(mode="json"),
                    "hunks": _HUNK_LIST.dump_python(added, mode="json"),
                },
                inverse={"action": "delete_branch", "branch_id": branch.id},
            )
        self.store.update_ref(branch.ref_name, commit_id)
        logger.info("Created virtual branch %s from %s with %d hunks", branch.name, ref, len(added))
        self.apply_branch(branch.id)
        return self.snapshot().branch(branch.id)

    def update_virtual_branch(
        self,
        branch_id: str,
        name: Optional[str] = None,
        order: Optional[int] = None,
        default: Optional[bool] = None,
        notes: Optional[str] = None,
    ) -> VirtualBranch:
        """Rename, reorder, (un)set default or annotate a branch."""
        changes = {
            key: value
            for key, value in (("name", name), ("order", order), ("default", default), ("notes", notes))
            if value is not None
        }
        state = self.snapshot()
        branch = state.branch(branch_id)
        previous = {key: getattr(branch, key) for key in changes}
        if changes == previous:
            return branch

        previous_default = None
        if changes.get("default"):
            previous_default = next((b.id for b in state.branches if b.default and b.id != branch_id), None)
        self._update(branch_id, changes)
        self._log_op(
            "update_branch",
            {"action": "update_branch", "branch_id": branch_id, "changes": changes},
            {"action": "update_branch", "branch_id": branch_id, "changes": previous, "restore_default": previous_default},
        )
        logger.info("Updated virtual branch %s: %s", branch_id, ", ".join(changes))
        return self.snapshot().branch(branch_id)

    def delete_virtual_branch(self, branch_id: str) -> None:
        """Delete a branch, unapplying it first; its claims are discarded."""
        state = self.refresh()
        branch = state.branch(branch_id)
        hunks = [h.with_status(HunkStatus.CLEAN) for h in state.ownership.hunks_for_branch(branch_id)]
        self._delete(branch_id)
        self._log_op(
            "delete_branch",
            {"action": "delete_branch", "branch_id": branch_id},
            {
                "action": "restore_branch",
                "branch": branch.model_dump(mode="json"),
                "hunks": _HUNK_LIST.dump_python(hunks, mode="json"),
            },
        )
        logger.info("Deleted virtual branch %s (%s)", branch.name, branch_id)

    # ==================== Ownership ====================

    def reassign_hunk(self, hunk_id: str, target_branch_id: Optional[str]) -> None:
        """Move a hunk to another applied branch (None: unassign it).

        Raises:
            HunkNotFoundError: If the hunk is unknown.
            BranchNotFoundError: If the target branch is unknown.
            ConflictError: If the hunk lost an unresolved conflict.
            VBranchError: If either side is not applied.
        """
        state = self.refresh()
        hunk = state.ownership.get(hunk_id)
        previous = state.ownership.owner_of(hunk_id)
        if previous == target_branch_id:
            return
        self._reassign(hunk_id, target_branch_id)
        # The range lets undo/redo find the hunk again after it was edited
        located = {"hunk_id": hunk_id, "path": hunk.path, "old_start": hunk.old_start, "old_end": hunk.old_end}
        self._log_op(
            "reassign_hunk",
            {"action": "reassign_hunk", **located, "from_branch_id": previous, "branch_id": target_branch_id},
            {"action": "reassign_hunk", **located, "from_branch_id": target_branch_id, "branch_id": previous},
        )
        logger.info("Reassigned hunk %s to %s", hunk_id, target_branch_id or "unassigned")

    def mark_resolved(self, path: str) -> None:
        """Declare the conflict in ``path`` resolved.

        The losing pieces are dropped and whatever the file now holds is
        reconciled as ordinary edits.
        """
        self.refresh()
        with self._transaction() as state:
            markers = state.conflicts_for(path)
            if not markers:
                raise VBranchError(f"No unresolved conflict in {path}")
            for marker in markers:
                release_conflict(state.ownership, marker)
            state.conflicts = [m for m in state.conflicts if m.path != path]
            state.snapshot_id = None
        self.refresh(force=True)

    # ==================== Apply / unapply ====================

    def apply_branch(self, branch_id: str, cancel: Optional[threading.Event] = None) -> ApplyResult:
        """Materialize a branch into the working directory.

        Files that fail are recorded in the branch's ``unapplied_files``;
        applying the branch again retries them.
        """
        branch = self.snapshot().branch(branch_id)
        result = self._apply(branch_id, cancel)
        if not branch.applied:
            self._log_op(
                "apply_branch",
                {"action": "apply_branch", "branch_id": branch_id},
                {"action": "unapply_branch", "branch_id": branch_id},
            )
        return result

    def unapply_branch(self, branch_id: str, cancel: Optional[threading.Event] = None) -> ApplyResult:
        """Remove a branch's changes from the working directory, keeping its claims."""
        branch = self.snapshot().branch(branch_id)
        result = self._unapply(branch_id, cancel)
        if branch.applied:
            self._log_op(
                "unapply_branch",
                {"action": "unapply_branch", "branch_id": branch_id},
                {"action": "apply_branch", "branch_id": branch_id},
            )
        return result

    def _execute(self, branch_id: str, applying: bool, cancel: Optional[threading.Event]) -> ApplyResult:
        for _ in range(MAX_RETRIES):
            state = self.refresh()
            branch = state.branch(branch_id)
            if applying and branch.applied and not branch.unapplied_files:
                return ApplyResult(branch_id=branch_id)
            if not applying and not branch.applied:
                return ApplyResult(branch_id=branch_id)

            planner = plan_apply if applying else plan_unapply
            plan = planner(
                state, self._working_reader(), self._base_reader(state), self.store,
                branch_id, self.config.conflict_policy,
            )
            staged = stage_plan(plan, self.repo_root)
            try:
                with self._lock:
                    current = self._load()
                    if current.version != state.version:
                        logger.debug("State changed while planning %s; retrying", plan.action)
                        continue
                    result = commit_staged(staged, cancel)
                    settled = self._settle(current.model_copy(deep=True), plan, result, applying)
                    self._commit_state(settled)
            finally:
                discard_staged(staged)

            result.conflicts = [m for m in settled.conflicts if m.path in plan.paths]
            logger.info(
                "%s %s: %d files written, %d failed",
                "Applied" if applying else "Unapplied", branch.name, len(result.written), len(result.failed),
            )
            return result
        raise StaleStateError(f"State kept changing while applying branch {branch_id}")

    def _settle(self, state: SessionState, plan: WritePlan, result: ApplyResult, applying: bool) -> SessionState:
        """Fold the outcome of an executed plan into the state."""
        old = state.ownership
        ownership = plan.ownership.model_copy(deep=True)
        conflicts = list(plan.conflicts)
        branch = state.branch(plan.branch_id)
        failed = set(result.failed)

        for path in failed:
            # Nothing changed on disk for this file: keep its previous records
            for hunk, _ in ownership.records():
                if hunk.path == path:
                    ownership.remove(hunk.id)
            for hunk, owner in old.records():
                if hunk.path == path:
                    ownership.add(hunk, owner)
            conflicts = [m for m in conflicts if m.path != path] + state.conflicts_for(path)

        if applying:
            branch.applied = True
            branch.unapplied_files = sorted(failed & set(ownership.files_for_branch(branch.id)))
        else:
            branch.applied = False
            branch.unapplied_files = []
            for hunk in ownership.hunks_for_branch(branch.id):
                if hunk.path in failed:
                    # Still on disk, so it stays materialized as unassigned
                    ownership.assign(hunk.id, None)
        branch.updated_at = utc_now()

        state.ownership = ownership
        state.conflicts = conflicts
        state.snapshot_id = None
        return state

    def _apply(self, branch_id: str, cancel: Optional[threading.Event] = None) -> ApplyResult:
        return self._execute(branch_id, True, cancel)

    def _unapply(self, branch_id: str, cancel: Optional[threading.Event] = None) -> ApplyResult:
        return self._execute(branch_id, False, cancel)

    # ==================== Commit ====================

    def commit_branch(
        self,
        branch_id: str,
        message: str,
        amend: bool = False,
        force: bool = False,
    ) -> str:
        """Commit the hunks a branch claims.

        Returns:
            The new commit id.

        Raises:
            ConflictError: If the branch owns CONFLICTED hunks.
            EmptyCommitError: If nothing changed and force is off.
        """
        state = self.refresh()
        branch = state.branch(branch_id)
        result = build_commit(self.store, branch, state.ownership, message, amend=amend, force=force)
        self._set_head(branch_id, result.commit_id)
        self._log_op(
            "commit",
            {"action": "set_head", "branch_id": branch_id, "head": result.commit_id},
            {"action": "set_head", "branch_id": branch_id, "head": branch.head_commit},
        )
        return result.commit_id

    # ==================== Undo / redo ====================

    def undo(self) -> LogEntry:
        """Invert the most recent operation that is not yet undone.

        The inverse runs like any other operation, holding the lock only
        while state is merged, so readers are not blocked by file writes.

        Raises:
            VBranchError: If there is nothing to undo.
            StaleStateError: If another operation was logged meanwhile; the
                inverse has run but the entry stays undoable.
        """
        with self._lock:
            entry = self.log.next_undo()
        if entry is None:
            raise VBranchError("Nothing to undo")
        self._run(entry.inverse)
        with self._lock:
            self._close_entry(entry, self.log.next_undo(), UNDO)
        logger.info("Undid %s (#%d)", entry.op, entry.seq)
        return entry

    def redo(self) -> LogEntry:
        """Re-apply the most recently undone operation.

        Raises:
            VBranchError: If there is nothing to redo.
            StaleStateError: If another operation was logged meanwhile.
        """
        with self._lock:
            entry = self.log.next_redo()
        if entry is None:
            raise VBranchError("Nothing to redo")
        self._run(entry.params)
        with self._lock:
            self._close_entry(entry, self.log.next_redo(), REDO)
        logger.info("Redid %s (#%d)", entry.op, entry.seq)
        return entry

    def _close_entry(self, entry: LogEntry, current: Optional[LogEntry], kind: str) -> None:
        """Record an undo or redo of ``entry``. Lock must be held."""
        if current is None or current.seq != entry.seq:
            logger.warning("Log moved while replaying %s (#%d); not recording it", entry.op, entry.seq)
            raise StaleStateError(f"Another operation was recorded while replaying {entry.op}")
        self.log.append(entry.op, kind=kind, target=entry.seq)

    def _log_op(self, op: str, params: dict[str, Any], inverse: dict[str, Any]) -> None:
        with self._lock:
            self.log.append(op, params=params, inverse=inverse)

    def _run(self, payload: dict[str, Any]) -> None:
        """Perform one logged action. Actions whose effect holds are no-ops."""
        action = payload["action"]
        if action == "restore_branch":
            self._restore_branch(payload["branch"], payload.get("hunks", []))
        elif action == "delete_branch":
            self._delete(payload["branch_id"])
        elif action == "update_branch":
            self._update(payload["branch_id"], payload["changes"], payload.get("restore_default"))
        elif action == "reassign_hunk":
            self._replay_reassign(payload)
        elif action == "apply_branch":
            self._apply(payload["branch_id"])
        elif action == "unapply_branch":
            self._unapply(payload["branch_id"])
        elif action == "set_head":
            self._set_head(payload["branch_id"], payload["head"])
        else:
            raise VBranchError(f"Unknown logged action: {action}")

    # ==================== Primitive actions ====================

    def _check_not_conflicted(self, state: SessionState) -> None:
        if state.conflicts:
            paths = sorted(state.conflicted_paths())
            raise ConflictError(f"Project is in a conflicted state: {', '.join(paths)}", paths=paths)

    def _new_branch(
        self,
        state: SessionState,
        name: Optional[str],
        order: Optional[int],
        default: bool,
        notes: str,
    ) -> VirtualBranch:
        taken = {b.name for b in state.branches}
        base_name = name or DEFAULT_BRANCH_NAME
        unique_name, suffix = base_name, 2
        while unique_name in taken:
            unique_name = f"{base_name} {suffix}"
            suffix += 1

        if order is None:
            order = max((b.order for b in state.branches), default=-1) + 1
        if not any(b.default and b.applied for b in state.branches):
            default = True
        if default:
            for other in state.branches:
                other.default = False

        return VirtualBranch(
            id=_new_id(),
            name=unique_name,
            base_commit=state.base_commit,
            order=order,
            default=default,
            notes=notes,
        )

    def _restore_branch(self, branch_data: dict[str, Any], hunks_data: list[dict[str, Any]]) -> None:
        branch = VirtualBranch.model_validate(branch_data)
        if self.snapshot().find_branch(branch.id) is not None:
            return
        applied = branch.applied
        hunks = _HUNK_LIST.validate_python(hunks_data)
        with self._transaction() as state:
            branch.applied = False
            branch.unapplied_files = []
            if branch.default:
                for other in state.branches:
                    other.default = False
            state.branches.append(branch)
            for hunk in hunks:
                if hunk.id not in state.ownership.hunks:
                    state.ownership.add(hunk.with_status(HunkStatus.CLEAN), branch.id)
        if branch.head_commit:
            self.store.update_ref(branch.ref_name, branch.head_commit)
        if applied:
            self._apply(branch.id)

    def _delete(self, branch_id: str) -> None:
        branch = self.snapshot().find_branch(branch_id)
        if branch is None:
            return
        if branch.applied:
            self._unapply(branch_id)
        with self._transaction() as state:
            state.ownership.remove_branch(branch_id)
            state.branches = [b for b in state.branches if b.id != branch_id]
        if branch.head_commit:
            self.store.update_ref(branch.ref_name, None)

    def _update(self, branch_id: str, changes: dict[str, Any], restore_default: Optional[str] = None) -> None:
        with self._transaction() as state:
            branch = state.branch(branch_id)
            if changes.get("default"):
                for other in state.branches:
                    other.default = False
            for key, value in changes.items():
                setattr(branch, key, value)
            if restore_default:
                other = state.find_branch(restore_default)
                if other is not None:
                    other.default = True
            branch.updated_at = utc_now()

    def _reassign(self, hunk_id: str, target_branch_id: Optional[str]) -> None:
        with self._transaction() as state:
            hunk = state.ownership.get(hunk_id)
            previous = state.ownership.owner_of(hunk_id)
            if previous is not None and not state.branch(previous).applied:
                raise VBranchError(f"Hunk {hunk_id} belongs to an unapplied branch")
            if target_branch_id is not None and not state.branch(target_branch_id).applied:
                raise VBranchError(f"Branch {state.branch(target_branch_id).name} is not applied")
            if hunk.status == HunkStatus.CONFLICTED and hunk.path in state.conflicted_paths():
                raise ConflictError(f"Resolve the conflict in {hunk.path} first", paths=[hunk.path])

            state.ownership.assign(hunk_id, target_branch_id)
            if hunk.status == HunkStatus.CONFLICTED:
                state.ownership.put(hunk.with_status(HunkStatus.CLEAN))
            check_disjoint(state.ownership, state.branches)

    def _replay_reassign(self, payload: dict[str, Any]) -> None:
        """Reassign a logged hunk, following it through later edits.

        When the logged id is gone (the hunk was edited or split since),
        every current piece of its base range still owned by the logged
        source branch is moved instead.
        """
        ownership = self.refresh().ownership
        target = payload["branch_id"]
        if payload["hunk_id"] in ownership.hunks:
            hunk_ids = [payload["hunk_id"]]
        elif "path" in payload:
            hunk_ids = [
                hunk.id
                for hunk, owner in ownership.records()
                if owner == payload.get("from_branch_id")
                and hunk.path == payload["path"]
                and _base_ranges_meet(hunk, payload["old_start"], payload["old_end"])
            ]
        else:
            hunk_ids = []

        if not hunk_ids:
            logger.warning("Hunk %s is no longer in the working copy; nothing to reassign", payload["hunk_id"])
            return
        for hunk_id in hunk_ids:
            if ownership.owner_of(hunk_id) != target:
                self._reassign(hunk_id, target)

    def _set_head(self, branch_id: str, head: Optional[str]) -> None:
        with self._transaction() as state:
            branch = state.branch(branch_id)
            branch.head_commit = head
            branch.updated_at = utc_now()
        self.store.update_ref(branch.ref_name, head)


def _new_id() -> str:
    return str(uuid.uuid4())


def _first_parent_distance(store: RepositoryStore, head: str, base: str) -> Optional[int]:
    """Number of first-parent steps from ``head`` back to ``base``, if it is reached."""
    distance, current = 0, head
    while current:
        if current == base:
            return distance
        parents = store.read_commit(current).parents
        current = parents[0] if parents else None
        distance += 1
    return None


def _base_ranges_meet(hunk: Hunk, old_start: int, old_end: int) -> bool:
    if hunk.old_len == 0 or old_start == old_end:
        return hunk.old_start <= old_end and old_start <= hunk.old_end
    return hunk.old_start < old_end and old_start < hunk.old_end
