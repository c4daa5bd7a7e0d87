"""Plan orchestration pipeline.

Instruction -> plan sources -> builder -> validator -> (fallback) -> risk
annotation -> execution driver. Replanning re-enters the same generation path
with a summary of the abandoned run.
"""

from __future__ import annotations

import inspect
import time
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Set, Union

from ledger_agent.adapters.llm.proposer import PlanProposer, ProposalContext, StubPlanProposer
from ledger_agent.config.runtime import OrchestratorConfig, get_orchestrator_config

from .audit import AuditLogger, PlanRun
from .builder import build_plan
from .cancellation import CancellationToken
from .driver import ConditionEvaluator, ExecutionDriver
from .fallback import generate_fallback_plan
from .logging.audit import audit_event, instruction_fields
from .logging.logger import get_logger
from .proposer_health import ProposerHealth
from .replanner import Replanner
from .risk import RiskPolicy
from .schemas import (
    ExecutionState,
    OperationCancelled,
    Plan,
    Step,
    StepKind,
    StepResult,
    StepStatus,
)
from .sourcing import PlanSource, ProposerPlanSource, SourcedDraft, TemplatePlanSource
from .validator import ValidationResult, validate_plan

Analyzer = Callable[[Step, ExecutionState], Any]
Confirmer = Callable[[Step, Plan], Union[bool, Awaitable[bool]]]


class PlanOrchestrator:
    def __init__(
        self,
        proposer: Optional[PlanProposer] = None,
        tool_executor: Any = None,
        risk_policy: Optional[RiskPolicy] = None,
        sources: Optional[Sequence[PlanSource]] = None,
        config: Optional[OrchestratorConfig] = None,
        analyzer: Optional[Analyzer] = None,
        confirmer: Optional[Confirmer] = None,
        condition_evaluator: Optional[ConditionEvaluator] = None,
        audit_logger: Optional[AuditLogger] = None,
    ) -> None:
        self.config = config or get_orchestrator_config()
        self.proposer = proposer
        self.tool_executor = tool_executor
        self.risk_policy = risk_policy or RiskPolicy()
        self.analyzer = analyzer
        self.confirmer = confirmer
        self.condition_evaluator = condition_evaluator
        self.audit = audit_logger or AuditLogger()
        self.proposer_health = ProposerHealth()
        self.sources: List[PlanSource] = list(sources) if sources is not None else self._default_sources()
        self.driver = ExecutionDriver()
        self.replanner = Replanner(self._generate, self.proposer_available)
        self._logger = get_logger("orchestrator")

    def _default_sources(self) -> List[PlanSource]:
        sources: List[PlanSource] = []
        if self.proposer_available():
            sources.append(
                ProposerPlanSource(
                    self.proposer,
                    timeout_seconds=self.config.proposer_timeout_seconds,
                    health=self.proposer_health,
                )
            )
        if self.config.enable_templates:
            sources.append(TemplatePlanSource())
        return sources

    def proposer_available(self) -> bool:
        return self.proposer is not None and not isinstance(self.proposer, StubPlanProposer)

    @property
    def state(self) -> Optional[ExecutionState]:
        return self.driver.state

    def available_actions(self) -> List[str]:
        known = self.known_actions()
        if known is not None:
            return sorted(known)
        return sorted(self.risk_policy.tiers)

    def known_actions(self) -> Optional[Set[str]]:
        """Tool names the executor can run, or None when it cannot list them."""

        listing = getattr(self.tool_executor, "available_actions", None)
        if callable(listing):
            return set(listing())
        return None

    # Plan generation

    async def generate_plan(self, instruction: str, *, token: Optional[CancellationToken] = None) -> Plan:
        """Return a validated, risk-annotated plan for ``instruction``.

        Proposer and validation failures fall through to the next source and
        finally to the keyword fallback; only cancellation reaches the caller.
        """

        return await self._generate(instruction, None, {}, token)

    async def _generate(
        self,
        instruction: str,
        past_results_summary: Optional[str],
        extra_metadata: dict,
        token: Optional[CancellationToken],
    ) -> Plan:
        audit_event(
            "plan.generate.request",
            **instruction_fields(instruction),
            sources=[source.name for source in self.sources],
        )
        context = ProposalContext(
            available_actions=self.available_actions(),
            past_results_summary=past_results_summary,
        )
        try:
            for source in self.sources:
                sourced = await source.draft(instruction, context, token)
                if sourced is None:
                    continue
                plan = self._accept(sourced, instruction, extra_metadata)
                if plan is not None:
                    self._audit_generated(plan)
                    return plan

            if token is not None:
                token.raise_if_cancelled()
        except OperationCancelled as exc:
            audit_event("plan.cancelled", reason=exc.reason)
            raise

        keyword_source = extra_metadata.get("instruction", instruction)
        plan = self.risk_policy.annotate(generate_fallback_plan(keyword_source, metadata=extra_metadata))
        audit_event("plan.fallback.used", plan_id=plan.id, intent=plan.metadata.get("intent"))
        self._audit_generated(plan)
        return plan

    def _accept(self, sourced: SourcedDraft, instruction: str, extra_metadata: dict) -> Optional[Plan]:
        built = build_plan(
            sourced.draft,
            instruction,
            sourced.generated_by,
            metadata={"source_reason": sourced.reason, **extra_metadata},
        )
        if built.plan is None:
            audit_event("plan.validation.failed", generated_by=sourced.generated_by, errors=[built.error])
            return None
        validation = validate_plan(built.plan, self.known_actions())
        if not validation.valid:
            audit_event(
                "plan.validation.failed",
                generated_by=sourced.generated_by,
                plan_id=built.plan.id,
                errors=validation.errors,
            )
            return None
        return self.risk_policy.annotate(built.plan)

    def _audit_generated(self, plan: Plan) -> None:
        audit_event(
            "plan.generated",
            plan_id=plan.id,
            generated_by=plan.generated_by,
            steps=len(plan.steps),
            requires_confirmation=plan.requires_confirmation,
        )

    # Driver delegates

    def validate_plan(self, plan: Plan) -> ValidationResult:
        return validate_plan(plan, self.known_actions())

    def init_execution_state(self, plan: Plan) -> ExecutionState:
        return self.driver.init(plan)

    def current_step(self) -> Optional[Step]:
        return self.driver.current_step()

    def advance(self) -> Optional[Step]:
        return self.driver.advance()

    def record_result(self, result: StepResult) -> bool:
        recorded = self.driver.record_result(result)
        if recorded:
            self.driver.check_for_stranding(result)
        return recorded

    async def replan(
        self,
        reason: Optional[str] = None,
        *,
        token: Optional[CancellationToken] = None,
    ) -> Optional[Plan]:
        """Replace the active plan with a successor; ``None`` leaves it in place."""

        state = self.driver.state
        if state is None:
            return None
        plan = await self.replanner.replan(state, reason or state.reason or "replan requested", token)
        if plan is None:
            return None
        self.driver.init(plan, history=[*state.history, state])
        return plan

    # Step execution

    async def execute_current_step(self, confirm: Optional[bool] = None) -> Optional[StepResult]:
        """Run the step under the cursor and record its result.

        Returns ``None`` when there is nothing to run or the step was skipped
        (unmet prerequisites or a false condition). ``confirm`` overrides the
        injected confirmer for this one step.
        """

        step = self.driver.current_step()
        state = self.driver.state
        if step is None or state is None:
            return None
        if state.status_of(step.id) is not StepStatus.PENDING:
            return state.results.get(step.id)

        if step.id not in {ready.id for ready in self.driver.ready_steps()}:
            self.driver.skip_step(step.id, reason="prerequisites did not complete")
            self.driver.request_replanning(f"Step '{step.description}' skipped; its prerequisites did not complete")
            return None
        if step.condition and self.condition_evaluator is not None:
            if not self.condition_evaluator(step.condition, state):
                self.driver.skip_step(step.id, reason=f"condition not met: {step.condition}")
                return None

        self.driver.mark_running(step.id)
        started = time.perf_counter()
        if step.requires_confirmation and not await self._confirmed(step, state.plan, confirm):
            result = StepResult(step_id=step.id, success=False, error="confirmation declined")
        else:
            result = await self._dispatch(step, state, started)
        self.record_result(result)
        return result

    async def _confirmed(self, step: Step, plan: Plan, confirm: Optional[bool]) -> bool:
        if confirm is not None:
            return confirm
        if self.confirmer is None:
            self._logger.info("no confirmer configured; declining step %s", step.id)
            return False
        decision = self.confirmer(step, plan)
        if inspect.isawaitable(decision):
            decision = await decision
        return bool(decision)

    async def _dispatch(self, step: Step, state: ExecutionState, started: float) -> StepResult:
        if step.kind is StepKind.CONFIRMATION:
            return StepResult(step_id=step.id, success=True, result={"confirmed": True}, duration_ms=_elapsed_ms(started))

        if step.kind is StepKind.TOOL_CALL:
            if self.tool_executor is None:
                return StepResult(step_id=step.id, success=False, error="no tool executor configured")
            try:
                outcome = await self.tool_executor.execute(step.tool_name, step.tool_args)
            except Exception as exc:  # executor faults become failed steps
                self._logger.exception("tool executor raised for step %s", step.id)
                return StepResult(step_id=step.id, success=False, error=str(exc), duration_ms=_elapsed_ms(started))
            return StepResult(
                step_id=step.id,
                success=outcome.success,
                result=outcome.result,
                error=outcome.error,
                duration_ms=outcome.duration_ms if outcome.duration_ms is not None else _elapsed_ms(started),
            )

        if self.analyzer is None:
            return StepResult(step_id=step.id, success=True, duration_ms=_elapsed_ms(started))
        try:
            value = self.analyzer(step, state)
            if inspect.isawaitable(value):
                value = await value
        except Exception as exc:  # analyzer faults become failed steps
            self._logger.exception("analyzer raised for step %s", step.id)
            return StepResult(step_id=step.id, success=False, error=str(exc), duration_ms=_elapsed_ms(started))
        return StepResult(step_id=step.id, success=True, result=value, duration_ms=_elapsed_ms(started))

    async def run(self, instruction: str, *, token: Optional[CancellationToken] = None) -> PlanRun:
        """Generate a plan and drive it to the end, replanning on stranding."""

        plan = await self.generate_plan(instruction, token=token)
        return await self.drive(plan, token=token)

    async def drive(self, plan: Plan, *, token: Optional[CancellationToken] = None) -> PlanRun:
        """Execute an already generated plan step by step."""

        self.init_execution_state(plan)
        replans = 0
        settled: Optional[ExecutionState] = None

        while self.driver.current_step() is not None:
            if token is not None:
                token.raise_if_cancelled()
            await self.execute_current_step()
            state = self.driver.state
            if state.needs_replanning and state is not settled:
                if self.config.auto_replan and replans < self.config.max_replans:
                    successor = await self.replan(state.reason, token=token)
                    if successor is not None:
                        replans += 1
                        continue
                # Left in place: unmet prerequisites skip the stranded steps.
                settled = state
            self.driver.advance()

        run = PlanRun(instruction=plan.instruction, state=self.driver.state, replans=replans)
        self.audit.log_run(run)
        return run


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 3)
