"""Plan execution for the branch application engine.

Contains:
- StagedFile / StagedPlan: Temp files written for a plan
- stage_plan: Write every planned file to a temp file beside its target
- commit_staged: Rename staged files into place
- discard_staged: Remove staged temp files
"""

import logging
import os
import threading
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from vbranch.apply.models import ApplyResult, FileWrite, WritePlan
from vbranch.exceptions import OperationCancelled
from vbranch.reader import digest_bytes
from vbranch.store.base import EXECUTABLE_FILE_MODE

logger = logging.getLogger(__name__)


@dataclass
class StagedFile:
    write: FileWrite
    target: Path
    temp_path: Optional[Path] = None  # None for deletions


@dataclass
class StagedPlan:
    plan: WritePlan
    files: list[StagedFile] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)


def _temp_path(target: Path) -> Path:
    return target.parent / f".{target.name}.vbranch-tmp-{os.getpid()}-{uuid.uuid4().hex[:8]}"


def _disk_digest(target: Path) -> Optional[str]:
    if not target.exists():
        return None
    return digest_bytes(target.read_bytes())


def stage_plan(plan: WritePlan, root: Path) -> StagedPlan:
    """Write every planned file to a temp file in its target directory.

    A file that cannot be staged is recorded as failed; the others are
    still staged.

    Args:
        plan: The write plan.
        root: Working directory root.

    Returns:
        StagedPlan holding the temp files.
    """
    staged = StagedPlan(plan=plan, failed=dict(plan.failed))
    for write in plan.writes:
        target = Path(root) / write.path
        if write.is_delete:
            staged.files.append(StagedFile(write=write, target=target))
            continue
        temp_path = _temp_path(target)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            temp_path.write_bytes(write.content)
            os.chmod(temp_path, 0o755 if write.mode == EXECUTABLE_FILE_MODE else 0o644)
        except OSError as e:
            temp_path.unlink(missing_ok=True)
            logger.warning("Cannot stage %s: %s", write.path, e)
            staged.failed[write.path] = f"cannot stage: {e}"
            continue
        staged.files.append(StagedFile(write=write, target=target, temp_path=temp_path))
    return staged


def discard_staged(staged: StagedPlan) -> None:
    for staged_file in staged.files:
        if staged_file.temp_path is not None:
            staged_file.temp_path.unlink(missing_ok=True)


def commit_staged(staged: StagedPlan, cancel: Optional[threading.Event] = None) -> ApplyResult:
    """Move staged files into place.

    Cancellation is honoured up to the first rename. Each file is checked
    against the digest it had when planned; a file changed since then is
    left alone and reported as failed.

    Args:
        staged: Result of stage_plan.
        cancel: Event that aborts the operation when set.

    Returns:
        ApplyResult listing written and failed paths.

    Raises:
        OperationCancelled: If ``cancel`` is set before renaming starts.
    """
    if cancel is not None and cancel.is_set():
        discard_staged(staged)
        raise OperationCancelled(f"{staged.plan.action} of {staged.plan.branch_id} cancelled")

    result = ApplyResult(branch_id=staged.plan.branch_id, failed=dict(staged.failed))
    for staged_file in staged.files:
        write = staged_file.write
        try:
            if _disk_digest(staged_file.target) != write.expected_digest:
                result.failed[write.path] = "changed on disk since planning"
                logger.warning("Skipping %s: changed on disk since planning", write.path)
                continue
            if write.is_delete:
                staged_file.target.unlink(missing_ok=True)
            else:
                os.replace(staged_file.temp_path, staged_file.target)
                staged_file.temp_path = None
        except OSError as e:
            result.failed[write.path] = str(e)
            logger.warning("Cannot write %s: %s", write.path, e)
            continue
        result.written.append(write.path)

    discard_staged(staged)
    return result
