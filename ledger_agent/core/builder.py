from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from pydantic import ValidationError

from ledger_agent.adapters.llm.proposer import DraftProposal, DraftStep

from .logging.logger import get_logger
from .schemas import Plan, PlanBuildError, Step, StepKind, StepMetadata, new_plan_id, step_id_for

_KIND_MAP = {
    "analyze": StepKind.ANALYSIS,
    "summarize": StepKind.ANALYSIS,
    "goal": StepKind.ANALYSIS,
    "tool_call": StepKind.TOOL_CALL,
    "confirm": StepKind.CONFIRMATION,
}

_logger = get_logger("builder")


@dataclass(frozen=True)
class BuildResult:
    plan: Optional[Plan] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.plan is not None


def build_plan(
    draft: DraftProposal | Mapping[str, Any] | Any,
    instruction: str,
    generated_by: str = "proposer",
    *,
    metadata: Optional[Mapping[str, Any]] = None,
) -> BuildResult:
    """Turn a draft proposal into a plan with stable ids and resolved edges.

    Steps keep their input order. Any defect in the draft yields a failed
    ``BuildResult`` instead of raising.
    """

    try:
        proposal = _coerce_draft(draft)
        plan_id = new_plan_id()
        steps = tuple(
            _build_step(plan_id, index, draft_step, len(proposal.steps))
            for index, draft_step in enumerate(proposal.steps)
        )
    except PlanBuildError as exc:
        _logger.warning("plan build failed: %s", exc)
        return BuildResult(error=str(exc))

    plan_metadata: Dict[str, Any] = {
        "generated_by": generated_by,
        "instruction": instruction,
        "extracted": normalize_extracted(proposal.extracted),
        "proposer_requires_confirmation": proposal.requires_confirmation,
    }
    plan_metadata.update(metadata or {})
    plan = Plan(
        id=plan_id,
        description=proposal.description,
        steps=steps,
        requires_confirmation=any(step.requires_confirmation for step in steps),
        created_at=time.time(),
        metadata=plan_metadata,
    )
    return BuildResult(plan=plan)


def _coerce_draft(draft: Any) -> DraftProposal:
    if isinstance(draft, DraftProposal):
        return draft
    if not isinstance(draft, Mapping):
        raise PlanBuildError(f"Draft must be a mapping, got {type(draft).__name__}")
    try:
        return DraftProposal.model_validate(dict(draft))
    except ValidationError as exc:
        raise PlanBuildError(f"Draft failed validation: {exc.error_count()} error(s)") from exc


def _build_step(plan_id: str, index: int, draft_step: DraftStep, step_count: int) -> Step:
    kind = _KIND_MAP[draft_step.kind]
    if kind is StepKind.TOOL_CALL and not draft_step.tool_name:
        raise PlanBuildError(f"Step {index} is a tool call without a tool name")

    dependencies = []
    for position in draft_step.depends_on:
        if position < 0 or position >= step_count:
            raise PlanBuildError(f"Step {index} depends on out-of-range step index {position}")
        # The driver walks steps in input order, so prerequisites must come first.
        if position >= index:
            raise PlanBuildError(f"Step {index} depends on later step {position}")
        dependency_id = step_id_for(plan_id, position)
        if dependency_id not in dependencies:
            dependencies.append(dependency_id)

    requires_confirmation = draft_step.requires_confirmation
    if requires_confirmation is None and kind is StepKind.CONFIRMATION:
        requires_confirmation = True

    return Step(
        id=step_id_for(plan_id, index),
        kind=kind,
        description=draft_step.description,
        tool_name=draft_step.tool_name if kind is StepKind.TOOL_CALL else None,
        tool_args=dict(draft_step.tool_args) if kind is StepKind.TOOL_CALL else {},
        dependencies=tuple(dependencies),
        metadata=StepMetadata(
            condition=draft_step.condition or None,
            requires_confirmation=requires_confirmation,
            expected_outcome=draft_step.expected_outcome,
        ),
    )


def normalize_extracted(extracted: Mapping[str, Any]) -> Dict[str, Any]:
    """Upper-case income/expense discriminators; pass everything else through."""

    normalized = dict(extracted)
    if isinstance(normalized.get("type"), str):
        normalized["type"] = normalized["type"].upper()
    items = normalized.get("items")
    if isinstance(items, list):
        normalized["items"] = [
            {**item, "type": item["type"].upper()} if isinstance(item, dict) and isinstance(item.get("type"), str) else item
            for item in items
        ]
    return normalized
