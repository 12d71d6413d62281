"""Branch application engine for vbranch.

This package materializes branches into the working directory:
- models: FileWrite, WritePlan, ApplyResult
- planner: plan_apply, plan_unapply, compose_path, materialized_in
- executor: stage_plan, commit_staged, discard_staged
"""

# Models
from vbranch.apply.models import (
    ApplyResult,
    FileWrite,
    WritePlan,
)

# Planner
from vbranch.apply.planner import (
    compose_path,
    materialized_in,
    plan_apply,
    plan_unapply,
)

# Executor
from vbranch.apply.executor import (
    StagedPlan,
    commit_staged,
    discard_staged,
    stage_plan,
)


__all__ = [
    # Models
    "ApplyResult",
    "FileWrite",
    "WritePlan",
    # Planner
    "compose_path",
    "materialized_in",
    "plan_apply",
    "plan_unapply",
    # Executor
    "StagedPlan",
    "commit_staged",
    "discard_staged",
    "stage_plan",
]
