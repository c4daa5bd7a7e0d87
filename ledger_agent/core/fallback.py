from __future__ import annotations

from typing import Any, List, Mapping, Optional

from ledger_agent.adapters.llm.proposer import DraftProposal, DraftStep

from .builder import build_plan
from .schemas import Plan, PlanBuildError

DELETE_KEYWORDS = ("删除", "移除", "清空", "delete", "remove", "clear")
QUERY_KEYWORDS = (
    "查询",
    "查看",
    "统计",
    "报表",
    "分析",
    "汇总",
    "多少",
    "query",
    "view",
    "show",
    "list",
    "statistics",
    "stats",
    "report",
)


def detect_intent(instruction: str) -> str:
    lowered = instruction.lower()
    if any(keyword in lowered for keyword in DELETE_KEYWORDS):
        return "delete"
    if any(keyword in lowered for keyword in QUERY_KEYWORDS):
        return "query"
    return "create"


def _chain(steps: List[DraftStep]) -> List[DraftStep]:
    return [
        step.model_copy(update={"depends_on": [index - 1]}) if index else step
        for index, step in enumerate(steps)
    ]


def _delete_draft(instruction: str) -> DraftProposal:
    steps = [
        DraftStep(kind="analyze", description="Identify the records to delete"),
        DraftStep(kind="confirm", description="Confirm the deletion", requires_confirmation=True),
        DraftStep(
            kind="tool_call",
            description="Delete the records",
            tool_name="delete_transaction",
            tool_args={"instruction": instruction},
        ),
        DraftStep(kind="summarize", description="Report the deletion result"),
    ]
    return DraftProposal(description="Delete transaction records", steps=_chain(steps), requires_confirmation=True)


def _query_draft(instruction: str) -> DraftProposal:
    steps = [
        DraftStep(kind="analyze", description="Parse the query conditions"),
        DraftStep(
            kind="tool_call",
            description="Query transactions",
            tool_name="query_transactions",
            tool_args={"instruction": instruction},
        ),
        DraftStep(kind="summarize", description="Summarize the query results"),
    ]
    return DraftProposal(description="Query and analyze transactions", steps=_chain(steps))


def _create_draft(instruction: str) -> DraftProposal:
    steps = [
        DraftStep(kind="analyze", description="Parse the transaction details"),
        DraftStep(
            kind="tool_call",
            description="Record the transaction",
            tool_name="add_transaction",
            tool_args={"instruction": instruction},
        ),
        DraftStep(kind="summarize", description="Confirm the recorded transaction"),
    ]
    return DraftProposal(description="Record a transaction", steps=_chain(steps))


_DRAFTS = {"delete": _delete_draft, "query": _query_draft, "create": _create_draft}


def generate_fallback_plan(instruction: str, *, metadata: Optional[Mapping[str, Any]] = None) -> Plan:
    """Build the canned plan for the intent the instruction's keywords suggest.

    The drafts are chained by construction, so the result is always valid and
    is not re-validated by the orchestrator.
    """

    intent = detect_intent(instruction)
    result = build_plan(
        _DRAFTS[intent](instruction),
        instruction,
        generated_by="fallback",
        metadata={"intent": intent, **(metadata or {})},
    )
    if result.plan is None:
        raise PlanBuildError(f"Fallback draft for intent '{intent}' failed to build: {result.error}")
    return result.plan
