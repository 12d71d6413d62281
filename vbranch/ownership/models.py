"""Ownership data models for vbranch.

Contains:
- OwnershipClaim: Ordered hunk ids one branch claims in one file
- OwnershipMap: Arena of hunks plus the claims and unassigned list indexing it
"""

from datetime import datetime
from typing import Iterable, Optional

from pydantic import BaseModel, Field

from vbranch.diff.models import Hunk, HunkStatus, sort_key
from vbranch.exceptions import HunkNotFoundError, InvariantViolation
from vbranch.models import utc_now


class OwnershipClaim(BaseModel):
    """Hunks of one file attributed to one branch.

    ``updated_at`` only moves when the set of claimed hunk ids changes.
    """

    branch_id: str
    path: str
    hunk_ids: list[str] = []
    updated_at: datetime = Field(default_factory=utc_now)


class OwnershipMap(BaseModel):
    """Every tracked hunk, indexed by id, and who owns it.

    Claims and the unassigned list hold ids only; ``hunks`` is the single
    place a hunk's content lives.
    """

    hunks: dict[str, Hunk] = {}
    claims: list[OwnershipClaim] = []
    unassigned: list[str] = []

    # ==================== Queries ====================

    def get(self, hunk_id: str) -> Hunk:
        try:
            return self.hunks[hunk_id]
        except KeyError:
            raise HunkNotFoundError(f"Unknown hunk: {hunk_id}") from None

    def owner_of(self, hunk_id: str) -> Optional[str]:
        """Branch id owning a hunk, or None if it is unassigned."""
        for claim in self.claims:
            if hunk_id in claim.hunk_ids:
                return claim.branch_id
        if hunk_id in self.unassigned:
            return None
        raise HunkNotFoundError(f"Unknown hunk: {hunk_id}")

    def claim_for(self, branch_id: str, path: str) -> Optional[OwnershipClaim]:
        for claim in self.claims:
            if claim.branch_id == branch_id and claim.path == path:
                return claim
        return None

    def hunks_for_branch(self, branch_id: str, path: Optional[str] = None) -> list[Hunk]:
        """Hunks claimed by a branch, ordered by path and position."""
        hunks = [
            self.hunks[hunk_id]
            for claim in self.claims
            if claim.branch_id == branch_id and (path is None or claim.path == path)
            for hunk_id in claim.hunk_ids
        ]
        return sorted(hunks, key=sort_key)

    def unassigned_hunks(self, path: Optional[str] = None) -> list[Hunk]:
        hunks = [self.hunks[h] for h in self.unassigned if path is None or self.hunks[h].path == path]
        return sorted(hunks, key=sort_key)

    def files_for_branch(self, branch_id: str) -> list[str]:
        return sorted({c.path for c in self.claims if c.branch_id == branch_id and c.hunk_ids})

    def records(self) -> list[tuple[Hunk, Optional[str]]]:
        """All (hunk, owner) pairs, ordered by path and position."""
        pairs: list[tuple[Hunk, Optional[str]]] = [
            (self.hunks[hunk_id], claim.branch_id)
            for claim in self.claims
            for hunk_id in claim.hunk_ids
        ]
        pairs.extend((self.hunks[hunk_id], None) for hunk_id in self.unassigned)
        return sorted(pairs, key=lambda pair: sort_key(pair[0]))

    def conflicted_hunks(self, branch_id: Optional[str] = None) -> list[Hunk]:
        return [
            hunk for hunk, owner in self.records()
            if hunk.status == HunkStatus.CONFLICTED and (branch_id is None or owner == branch_id)
        ]

    # ==================== Mutations ====================

    def _detach(self, hunk_id: str) -> None:
        if hunk_id in self.unassigned:
            self.unassigned.remove(hunk_id)
            return
        for claim in self.claims:
            if hunk_id in claim.hunk_ids:
                claim.hunk_ids.remove(hunk_id)
                claim.updated_at = utc_now()
        self.claims = [c for c in self.claims if c.hunk_ids]

    def _attach(self, hunk: Hunk, owner: Optional[str]) -> None:
        self.hunks[hunk.id] = hunk
        if owner is None:
            self.unassigned.append(hunk.id)
            self.unassigned.sort(key=lambda h: sort_key(self.hunks[h]))
            return
        claim = self.claim_for(owner, hunk.path)
        if claim is None:
            claim = OwnershipClaim(branch_id=owner, path=hunk.path)
            self.claims.append(claim)
            self.claims.sort(key=lambda c: (c.branch_id, c.path))
        claim.hunk_ids.append(hunk.id)
        claim.hunk_ids.sort(key=lambda h: sort_key(self.hunks[h]))
        claim.updated_at = utc_now()

    def assign(self, hunk_id: str, owner: Optional[str]) -> None:
        """Move a hunk to another branch (or to the unassigned list)."""
        hunk = self.get(hunk_id)
        self._detach(hunk_id)
        self._attach(hunk, owner)

    def put(self, hunk: Hunk) -> None:
        """Replace the stored record of a hunk, e.g. to change its status."""
        if hunk.id not in self.hunks:
            raise HunkNotFoundError(f"Unknown hunk: {hunk.id}")
        self.hunks[hunk.id] = hunk

    def replace(self, hunk_id: str, pieces: Iterable[Hunk]) -> None:
        """Replace one record with pieces owned by the same branch."""
        owner = self.owner_of(hunk_id)
        self._detach(hunk_id)
        del self.hunks[hunk_id]
        for piece in pieces:
            self._attach(piece, owner)

    def add(self, hunk: Hunk, owner: Optional[str]) -> None:
        if hunk.id in self.hunks:
            self._detach(hunk.id)
        self._attach(hunk, owner)

    def remove(self, hunk_id: str) -> None:
        self._detach(hunk_id)
        self.hunks.pop(hunk_id, None)

    def remove_branch(self, branch_id: str) -> list[Hunk]:
        """Discard a branch's claims and the hunks they hold."""
        removed = self.hunks_for_branch(branch_id)
        self.claims = [c for c in self.claims if c.branch_id != branch_id]
        for hunk in removed:
            self.hunks.pop(hunk.id, None)
        return removed

    # ==================== Construction ====================

    @classmethod
    def from_records(
        cls,
        records: Iterable[tuple[Hunk, Optional[str]]],
        previous: Optional["OwnershipMap"] = None,
    ) -> "OwnershipMap":
        """Build a map from (hunk, owner) pairs.

        Claims whose hunk ids did not change keep their previous
        ``updated_at``.

        Raises:
            InvariantViolation: If the same hunk id appears twice.
        """
        hunks: dict[str, Hunk] = {}
        grouped: dict[tuple[str, str], list[str]] = {}
        unassigned: list[str] = []
        for hunk, owner in sorted(records, key=lambda pair: sort_key(pair[0])):
            if hunk.id in hunks:
                raise InvariantViolation(f"{hunk.path}: hunk {hunk.id} is recorded twice")
            hunks[hunk.id] = hunk
            if owner is None:
                unassigned.append(hunk.id)
            else:
                grouped.setdefault((owner, hunk.path), []).append(hunk.id)

        claims = []
        for (branch_id, path), hunk_ids in sorted(grouped.items()):
            prior = previous.claim_for(branch_id, path) if previous else None
            if prior is not None and prior.hunk_ids == hunk_ids:
                updated_at = prior.updated_at
            else:
                updated_at = utc_now()
            claims.append(OwnershipClaim(branch_id=branch_id, path=path, hunk_ids=hunk_ids, updated_at=updated_at))
        return cls(hunks=hunks, claims=claims, unassigned=unassigned)
