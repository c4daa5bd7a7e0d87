from __future__ import annotations

from typing import Callable, List, Optional

from .logging.audit import audit_event
from .logging.logger import get_logger
from .schemas import ExecutionState, Plan, Step, StepResult, StepStatus, can_transition

ConditionEvaluator = Callable[[str, ExecutionState], bool]


class ExecutionDriver:
    """Linear cursor over a validated plan plus its append-only result ledger.

    Every public method is total: without an installed state it returns
    ``None``/``False``/``[]`` instead of raising.
    """

    def __init__(self) -> None:
        self.state: Optional[ExecutionState] = None
        self._logger = get_logger("driver")

    def init(self, plan: Plan, history: Optional[List[ExecutionState]] = None) -> ExecutionState:
        self.state = ExecutionState(plan=plan, history=list(history or []))
        return self.state

    def current_step(self) -> Optional[Step]:
        state = self.state
        if state is None or state.finished:
            return None
        return state.plan.steps[state.cursor]

    def advance(self) -> Optional[Step]:
        state = self.state
        if state is None:
            return None
        if not state.finished:
            state.cursor += 1
        return self.current_step()

    def mark_running(self, step_id: str) -> bool:
        return self._transition(step_id, StepStatus.RUNNING)

    def skip_step(self, step_id: str, reason: str = "") -> bool:
        skipped = self._transition(step_id, StepStatus.SKIPPED)
        if skipped and reason:
            self._logger.info("step %s skipped: %s", step_id, reason)
        return skipped

    def record_result(self, result: StepResult) -> bool:
        state = self.state
        if state is None:
            return False
        if result.step_id not in state.statuses:
            self._logger.warning("result for unknown step %s ignored", result.step_id)
            return False
        if result.step_id in state.results:
            self._logger.warning("duplicate result for step %s rejected", result.step_id)
            return False
        target = StepStatus.COMPLETED if result.success else StepStatus.FAILED
        if not self._transition(result.step_id, target):
            return False
        state.results[result.step_id] = result
        audit_event(
            "plan.step.result",
            plan_id=state.plan.id,
            step_id=result.step_id,
            success=result.success,
            duration_ms=result.duration_ms,
        )
        return True

    def check_for_stranding(self, result: StepResult) -> bool:
        """Flag the state for replanning when a failure strands pending steps."""

        state = self.state
        if state is None or result.success:
            return False
        stranded = self.stranded_by(result.step_id)
        if not stranded:
            return False
        failed_step = state.plan.step_by_id(result.step_id)
        label = failed_step.description if failed_step else result.step_id
        state.needs_replanning = True
        state.reason = f"Step '{label}' failed; {len(stranded)} dependent step(s) cannot run"
        audit_event(
            "plan.stranded",
            plan_id=state.plan.id,
            failed_step=result.step_id,
            stranded=[step.id for step in stranded],
        )
        return True

    def request_replanning(self, reason: str) -> bool:
        """Raise the replanning flag; an earlier reason is kept."""

        state = self.state
        if state is None:
            return False
        if not state.needs_replanning:
            state.needs_replanning = True
            state.reason = reason
            audit_event("plan.replan.flagged", plan_id=state.plan.id, reason=reason)
        return True

    def stranded_by(self, step_id: str) -> List[Step]:
        state = self.state
        if state is None:
            return []
        return [step for step in state.steps_with_status(StepStatus.PENDING) if step_id in step.dependencies]

    def list_conditional_pending(self) -> List[Step]:
        state = self.state
        if state is None:
            return []
        return [step for step in state.steps_with_status(StepStatus.PENDING) if step.condition]

    def apply_conditions(self, evaluator: ConditionEvaluator) -> List[Step]:
        """Skip conditional pending steps whose predicate returns False."""

        state = self.state
        if state is None:
            return []
        skipped = []
        for step in self.list_conditional_pending():
            if not evaluator(step.condition or "", state):
                self.skip_step(step.id, reason=f"condition not met: {step.condition}")
                skipped.append(step)
        return skipped

    def ready_steps(self) -> List[Step]:
        """Pending steps whose dependencies have all completed."""

        state = self.state
        if state is None:
            return []
        return [
            step
            for step in state.steps_with_status(StepStatus.PENDING)
            if all(state.status_of(dependency) == StepStatus.COMPLETED for dependency in step.dependencies)
        ]

    def _transition(self, step_id: str, target: StepStatus) -> bool:
        state = self.state
        if state is None:
            return False
        current = state.status_of(step_id)
        if current is None:
            return False
        if not can_transition(current, target):
            self._logger.warning("illegal transition for step %s: %s -> %s", step_id, current.value, target.value)
            return False
        state.statuses[step_id] = target
        return True
