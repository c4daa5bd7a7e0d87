from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .logging.audit import safe_excerpt, text_hash
from .schemas import ExecutionState, Plan, StepStatus

_SECRET_KEYS = {"api_key", "apikey", "token", "password", "secret"}


@dataclass
class PlanRun:
    instruction: str
    state: ExecutionState
    replans: int = 0

    @property
    def plans(self) -> List[Plan]:
        return [previous.plan for previous in self.state.history] + [self.state.plan]

    @property
    def succeeded(self) -> bool:
        if self.state.needs_replanning:
            return False
        return not self.state.steps_with_status(StepStatus.FAILED)


@dataclass
class AuditRecord:
    instruction_hash: str
    instruction_excerpt: str
    plan_ids: List[str]
    generated_by: List[Optional[str]]
    replans: int
    statuses: Dict[str, str]
    errors: List[str] = field(default_factory=list)
    tool_args: Dict[str, Dict[str, Any]] = field(default_factory=dict)


class AuditLogger:
    """Keeps one redacted record per finished run, newest last."""

    def __init__(self) -> None:
        self.records: List[AuditRecord] = []

    def log_run(self, run: PlanRun) -> AuditRecord:
        states = [*run.state.history, run.state]
        errors = [
            result.error
            for state in states
            for result in state.results.values()
            if not result.success and result.error
        ]
        record = AuditRecord(
            instruction_hash=text_hash(run.instruction),
            instruction_excerpt=safe_excerpt(run.instruction),
            plan_ids=[plan.id for plan in run.plans],
            generated_by=[plan.generated_by for plan in run.plans],
            replans=run.replans,
            statuses={step_id: status.value for step_id, status in run.state.statuses.items()},
            errors=errors,
            tool_args={
                step.id: redact_args(step.tool_args) for step in run.state.plan.steps if step.tool_args
            },
        )
        self.records.append(record)
        return record


def redact_args(args: Dict[str, Any]) -> Dict[str, Any]:
    return {key: "[REDACTED]" if key.lower() in _SECRET_KEYS else value for key, value in args.items()}
