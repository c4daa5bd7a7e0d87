from __future__ import annotations

import secrets
import string
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class StepKind(str, Enum):
    ANALYSIS = "analysis"
    TOOL_CALL = "tool_call"
    CONFIRMATION = "confirmation"


class StepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


TERMINAL_STATUSES = frozenset({StepStatus.COMPLETED, StepStatus.FAILED, StepStatus.SKIPPED})

# PENDING may jump straight to a terminal status when a step is recorded
# without an explicit RUNNING mark.
_ALLOWED_TRANSITIONS: Dict[StepStatus, frozenset] = {
    StepStatus.PENDING: frozenset({StepStatus.RUNNING}) | TERMINAL_STATUSES,
    StepStatus.RUNNING: TERMINAL_STATUSES,
    StepStatus.COMPLETED: frozenset(),
    StepStatus.FAILED: frozenset(),
    StepStatus.SKIPPED: frozenset(),
}


def can_transition(current: StepStatus, target: StepStatus) -> bool:
    return target in _ALLOWED_TRANSITIONS[current]


@dataclass(frozen=True)
class StepMetadata:
    condition: Optional[str] = None
    requires_confirmation: Optional[bool] = None
    expected_outcome: Optional[str] = None


@dataclass(frozen=True)
class Step:
    id: str
    kind: StepKind
    description: str
    tool_name: Optional[str] = None
    tool_args: Dict[str, Any] = field(default_factory=dict)
    dependencies: Tuple[str, ...] = ()
    status: StepStatus = StepStatus.PENDING
    metadata: StepMetadata = field(default_factory=StepMetadata)

    @property
    def requires_confirmation(self) -> bool:
        return bool(self.metadata.requires_confirmation)

    @property
    def condition(self) -> Optional[str]:
        return self.metadata.condition or None


@dataclass(frozen=True)
class Plan:
    id: str
    description: str
    steps: Tuple[Step, ...]
    requires_confirmation: bool = False
    created_at: float = field(default_factory=time.time)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def generated_by(self) -> Optional[str]:
        return self.metadata.get("generated_by")

    @property
    def instruction(self) -> str:
        return self.metadata.get("instruction", "")

    def step_by_id(self, step_id: str) -> Optional[Step]:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None


@dataclass(frozen=True)
class StepResult:
    step_id: str
    success: bool
    result: Any = None
    error: Optional[str] = None
    duration_ms: Optional[float] = None


@dataclass
class ExecutionState:
    """Mutable run-time companion of a validated plan.

    The plan itself is never mutated; per-step statuses live in ``statuses``.
    """

    plan: Plan
    cursor: int = 0
    results: Dict[str, StepResult] = field(default_factory=dict)
    statuses: Dict[str, StepStatus] = field(default_factory=dict)
    needs_replanning: bool = False
    reason: Optional[str] = None
    history: List["ExecutionState"] = field(default_factory=list)

    def __post_init__(self) -> None:
        for step in self.plan.steps:
            self.statuses.setdefault(step.id, step.status)

    def status_of(self, step_id: str) -> Optional[StepStatus]:
        return self.statuses.get(step_id)

    def steps_with_status(self, status: StepStatus) -> List[Step]:
        return [step for step in self.plan.steps if self.statuses.get(step.id) == status]

    @property
    def finished(self) -> bool:
        return self.cursor >= len(self.plan.steps)


_PLAN_ID_ALPHABET = string.ascii_lowercase + string.digits


def new_plan_id() -> str:
    suffix = "".join(secrets.choice(_PLAN_ID_ALPHABET) for _ in range(9))
    return f"plan_{int(time.time() * 1000)}_{suffix}"


def step_id_for(plan_id: str, index: int) -> str:
    return f"{plan_id}_step_{index}"


class OrchestratorError(Exception):
    """Base class for plan orchestration errors."""


class PlanBuildError(OrchestratorError):
    """Raised inside the builder when a draft cannot become a plan."""


class ExecutionError(OrchestratorError):
    """Raised by tools when a step cannot be executed."""


class OperationCancelled(OrchestratorError):
    """Raised to a caller whose cancellation token fired during an await."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"Operation cancelled: {reason}")
        self.reason = reason
