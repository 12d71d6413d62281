"""Hunk ownership for vbranch.

This package attributes every uncommitted hunk to exactly one branch:
- models: OwnershipClaim, OwnershipMap
- tracker: reconcile, check_disjoint, Bridge, ReconcileResult
"""

# Models
from vbranch.ownership.models import (
    OwnershipClaim,
    OwnershipMap,
)

# Tracker
from vbranch.ownership.tracker import (
    Bridge,
    ReconcileResult,
    check_disjoint,
    default_branch,
    materialized_records,
    reconcile,
)


__all__ = [
    # Models
    "OwnershipClaim",
    "OwnershipMap",
    # Tracker
    "Bridge",
    "ReconcileResult",
    "check_disjoint",
    "default_branch",
    "materialized_records",
    "reconcile",
]
