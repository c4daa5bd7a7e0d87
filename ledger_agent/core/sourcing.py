from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass
from typing import Callable, List, Optional, Pattern, Protocol, Union

from ledger_agent.adapters.llm.proposer import DraftProposal, DraftStep, PlanProposer, ProposalContext, ProposalResult

from .cancellation import CancellationToken
from .logging.audit import audit_event, safe_excerpt
from .logging.logger import get_logger
from .proposer_health import FailureKind, ProposerHealth
from .schemas import OperationCancelled


@dataclass(frozen=True)
class SourcedDraft:
    draft: DraftProposal
    generated_by: str
    reason: str = ""


class PlanSource(Protocol):
    name: str

    async def draft(
        self,
        instruction: str,
        context: ProposalContext,
        token: Optional[CancellationToken] = None,
    ) -> Optional[SourcedDraft]:
        ...


class ProposerPlanSource:
    """Obtains drafts from an external plan proposer.

    Timeouts, exceptions and unusable replies are absorbed here and reported
    as ``None`` so the orchestrator can move on to the next source. A bare
    ``DraftProposal`` is accepted as a successful reply.
    """

    name = "proposer"

    def __init__(
        self,
        proposer: PlanProposer,
        *,
        timeout_seconds: float = 20.0,
        health: Optional[ProposerHealth] = None,
    ) -> None:
        self.proposer = proposer
        self.timeout_seconds = timeout_seconds
        self.health = health or ProposerHealth()
        self._logger = get_logger("sourcing")

    async def draft(
        self,
        instruction: str,
        context: ProposalContext,
        token: Optional[CancellationToken] = None,
    ) -> Optional[SourcedDraft]:
        if not self.health.allow_request():
            self._logger.info("proposer paused after repeated failures; skipping proposer")
            self._audit(ok=False, reason="proposer paused")
            return None

        if token is not None:
            token.raise_if_cancelled()
        call = asyncio.wait_for(self.proposer.propose(instruction, context), timeout=self.timeout_seconds)
        try:
            if token is not None:
                reply = await token.guard(call)
            else:
                reply = await call
        except OperationCancelled:
            raise
        except asyncio.TimeoutError:
            self._logger.warning("proposer timed out after %.1fs", self.timeout_seconds)
            return self._fail(FailureKind.TIMEOUT, f"timed out after {self.timeout_seconds:.1f}s")
        except Exception as exc:  # proposer failures are recovered by fallback
            self._logger.warning("proposer failed: %s", exc)
            return self._fail(FailureKind.ERROR, str(exc) or exc.__class__.__name__)

        if isinstance(reply, DraftProposal):
            reply = ProposalResult(ok=True, draft=reply, reason="draft")
        if not isinstance(reply, ProposalResult):
            self._logger.warning("proposer returned %s instead of a proposal", type(reply).__name__)
            return self._fail(FailureKind.UNUSABLE, f"unexpected reply type {type(reply).__name__}")
        if not reply.ok or reply.draft is None:
            return self._fail(FailureKind.DECLINED, reply.reason)

        self.health.record_proposal()
        self._audit(ok=True, reason=reply.reason, steps=len(reply.draft.steps))
        return SourcedDraft(draft=reply.draft, generated_by="proposer", reason=reply.reason)

    def _fail(self, kind: FailureKind, reason: str) -> None:
        self.health.record_failure(kind, reason)
        self._audit(ok=False, reason=reason, failure=kind.value)
        return None

    def _audit(self, *, ok: bool, reason: str, **fields) -> None:
        audit_event(
            "plan.proposer.result",
            ok=ok,
            reason=safe_excerpt(reason, max_len=120),
            **fields,
            **self.health.snapshot().as_fields(),
        )


StepFactory = Callable[[str], List[DraftStep]]


@dataclass(frozen=True)
class TaskTemplate:
    name: str
    pattern: Union[Pattern[str], Callable[[str], bool]]
    description: str
    build_steps: StepFactory
    requires_confirmation: bool = False

    def matches(self, instruction: str) -> bool:
        if isinstance(self.pattern, re.Pattern):
            return self.pattern.search(instruction) is not None
        return bool(self.pattern(instruction))


def _linear(*steps: DraftStep) -> List[DraftStep]:
    return [
        step.model_copy(update={"depends_on": [index - 1]}) if index else step
        for index, step in enumerate(steps)
    ]


def _single_transaction(instruction: str) -> List[DraftStep]:
    return _linear(
        DraftStep(kind="analyze", description="Parse the transaction details"),
        DraftStep(
            kind="tool_call",
            description="Create the transaction",
            tool_name="add_transaction",
            tool_args={"instruction": instruction},
        ),
        DraftStep(kind="summarize", description="Generate the confirmation message"),
    )


def _batch_transaction(instruction: str) -> List[DraftStep]:
    return _linear(
        DraftStep(kind="analyze", description="Parse the batch of transactions"),
        DraftStep(kind="confirm", description="Confirm the batch contents"),
        DraftStep(
            kind="tool_call",
            description="Record the batch",
            tool_name="batch_add_transactions",
            tool_args={"instruction": instruction},
        ),
        DraftStep(kind="summarize", description="Summarize the batch result"),
    )


def _query_analysis(instruction: str) -> List[DraftStep]:
    return _linear(
        DraftStep(kind="analyze", description="Parse the query conditions"),
        DraftStep(
            kind="tool_call",
            description="Run the data query",
            tool_name="query_transactions",
            tool_args={"instruction": instruction},
        ),
        DraftStep(kind="summarize", description="Analyze the data and reply"),
    )


def _modify(tool_name: str, verb: str) -> StepFactory:
    def build(instruction: str) -> List[DraftStep]:
        return _linear(
            DraftStep(kind="analyze", description=f"Parse the {verb} request"),
            DraftStep(
                kind="tool_call",
                description="Look up the affected records",
                tool_name="query_transactions",
                tool_args={"instruction": instruction},
            ),
            DraftStep(kind="confirm", description=f"Confirm the {verb}"),
            DraftStep(
                kind="tool_call",
                description=f"Apply the {verb}",
                tool_name=tool_name,
                tool_args={"instruction": instruction},
            ),
            DraftStep(kind="summarize", description=f"Report the {verb} result"),
        )

    return build


DEFAULT_TEMPLATES: List[TaskTemplate] = [
    TaskTemplate(
        name="delete_transaction",
        pattern=re.compile(r"删除|移除|清空|\b(delete|remove)\b", re.IGNORECASE),
        description="Delete transaction records",
        build_steps=_modify("delete_transaction", "deletion"),
        requires_confirmation=True,
    ),
    TaskTemplate(
        name="update_transaction",
        pattern=re.compile(r"修改|更新|编辑|改成|改为|\b(update|edit|change)\b", re.IGNORECASE),
        description="Update transaction records",
        build_steps=_modify("update_transaction", "update"),
        requires_confirmation=True,
    ),
    TaskTemplate(
        name="batch_transaction",
        pattern=re.compile(r"批量|多笔|一起记|导入|\b(batch|import)\b", re.IGNORECASE),
        description="Record several transactions at once",
        build_steps=_batch_transaction,
        requires_confirmation=True,
    ),
    TaskTemplate(
        name="single_transaction",
        pattern=re.compile(r"记(一?笔)?(账|录)|添加.*支出|添加.*收入|\b(spent|paid|bought)\b", re.IGNORECASE),
        description="Record a single transaction",
        build_steps=_single_transaction,
    ),
    TaskTemplate(
        name="query_analysis",
        pattern=re.compile(r"查询|统计|报表|分析|总结|汇总|多少钱|花了|收入|支出|\b(query|report|summary)\b", re.IGNORECASE),
        description="Query and analyze transactions",
        build_steps=_query_analysis,
    ),
]


class TemplatePlanSource:
    """Matches instructions against regex task templates; custom ones win."""

    name = "template"

    def __init__(self, templates: Optional[List[TaskTemplate]] = None) -> None:
        self.templates: List[TaskTemplate] = list(DEFAULT_TEMPLATES if templates is None else templates)

    def add_template(self, template: TaskTemplate) -> None:
        self.templates.insert(0, template)

    def match(self, instruction: str) -> Optional[TaskTemplate]:
        for template in self.templates:
            if template.matches(instruction):
                return template
        return None

    async def draft(
        self,
        instruction: str,
        context: ProposalContext,
        token: Optional[CancellationToken] = None,
    ) -> Optional[SourcedDraft]:
        _ = context
        if token is not None:
            token.raise_if_cancelled()
        template = self.match(instruction)
        if template is None:
            return None
        draft = DraftProposal(
            description=template.description,
            steps=template.build_steps(instruction),
            requires_confirmation=template.requires_confirmation,
        )
        return SourcedDraft(draft=draft, generated_by="template", reason=template.name)
