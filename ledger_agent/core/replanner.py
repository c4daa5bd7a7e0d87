from __future__ import annotations

from typing import Awaitable, Callable, List, Optional

from .cancellation import CancellationToken
from .logging.audit import audit_event, safe_excerpt
from .schemas import ExecutionState, Plan, StepStatus

# (instruction, past_results_summary, extra_metadata, token) -> Plan
PlanGenerator = Callable[[str, Optional[str], dict, Optional[CancellationToken]], Awaitable[Plan]]


def summarize_progress(state: ExecutionState) -> str:
    lines: List[str] = []
    for step in state.plan.steps:
        status = state.status_of(step.id)
        if status not in (StepStatus.COMPLETED, StepStatus.FAILED):
            continue
        result = state.results.get(step.id)
        if status is StepStatus.COMPLETED:
            lines.append(f"- {step.description}: succeeded")
        else:
            error = result.error if result and result.error else "unknown error"
            lines.append(f"- {step.description}: failed ({error})")
    return "\n".join(lines) if lines else "- no steps finished"


def compose_instruction(original: str, summary: str, reason: str) -> str:
    return f"{original}\n\n[Replan context]\nReason: {reason}\nProgress so far:\n{summary}"


class Replanner:
    """Re-enters plan generation with the outcome of the abandoned plan.

    Replanning only makes sense with a proposer; without one the caller gets
    ``None`` and keeps its degraded local behaviour.
    """

    def __init__(self, generate: PlanGenerator, proposer_available: Callable[[], bool]) -> None:
        self._generate = generate
        self._proposer_available = proposer_available

    async def replan(
        self,
        state: ExecutionState,
        reason: str,
        token: Optional[CancellationToken] = None,
    ) -> Optional[Plan]:
        if not self._proposer_available():
            audit_event("plan.replan.result", plan_id=state.plan.id, replanned=False, detail="no proposer")
            return None

        original = state.plan.instruction
        summary = summarize_progress(state)
        audit_event(
            "plan.replan.request",
            plan_id=state.plan.id,
            reason=safe_excerpt(reason, max_len=120),
        )
        plan = await self._generate(
            compose_instruction(original, summary, reason),
            summary,
            {"instruction": original, "replan_of": state.plan.id, "replan_reason": reason},
            token,
        )
        audit_event(
            "plan.replan.result",
            plan_id=state.plan.id,
            replanned=True,
            new_plan_id=plan.id,
            generated_by=plan.generated_by,
        )
        return plan
