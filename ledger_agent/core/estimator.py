from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict, List

from .risk import RiskPolicy, RiskTier, max_tier
from .schemas import Plan, StepKind

_SECONDS_PER_KIND = {
    StepKind.ANALYSIS: 3,
    StepKind.TOOL_CALL: 2,
    StepKind.CONFIRMATION: 10,
}


@dataclass
class PlanEstimate:
    estimated_steps: int
    estimated_seconds: int
    estimated_duration: str
    risk_level: RiskTier
    confirmation_required: bool
    warnings: List[str] = field(default_factory=list)
    parallel_groups: List[List[str]] = field(default_factory=list)


def format_duration(seconds: int) -> str:
    if seconds < 60:
        return f"about {seconds}s"
    return f"about {math.ceil(seconds / 60)} min"


def estimate_plan(plan: Plan, policy: RiskPolicy) -> PlanEstimate:
    seconds = sum(_SECONDS_PER_KIND[step.kind] for step in plan.steps)
    risk = RiskTier.LOW
    warnings: List[str] = []
    for step in plan.steps:
        if step.kind is not StepKind.TOOL_CALL:
            continue
        tier = policy.classify(step.tool_name)
        if tier is RiskTier.CRITICAL:
            warnings.append(f"Contains a critical operation: {step.description}")
        elif tier is RiskTier.HIGH:
            warnings.append(f"Contains a high-risk operation: {step.description}")
        risk = max_tier(risk, tier)

    return PlanEstimate(
        estimated_steps=len(plan.steps),
        estimated_seconds=seconds,
        estimated_duration=format_duration(seconds),
        risk_level=risk,
        confirmation_required=plan.requires_confirmation,
        warnings=warnings,
        parallel_groups=parallel_groups(plan),
    )


def parallel_groups(plan: Plan) -> List[List[str]]:
    """Group step ids by dependency depth; steps in one group are independent.

    Assumes a validated (acyclic, fully referenced) plan.
    """

    depth: Dict[str, int] = {}
    by_id = {step.id: step for step in plan.steps}

    def depth_of(step_id: str) -> int:
        if step_id not in depth:
            dependencies = [dep for dep in by_id[step_id].dependencies if dep in by_id]
            depth[step_id] = 1 + max((depth_of(dep) for dep in dependencies), default=-1)
        return depth[step_id]

    groups: Dict[int, List[str]] = {}
    for step in plan.steps:
        groups.setdefault(depth_of(step.id), []).append(step.id)
    return [groups[level] for level in sorted(groups)]
