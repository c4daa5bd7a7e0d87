from __future__ import annotations

from ledger_agent.core.fallback import detect_intent, generate_fallback_plan
from ledger_agent.core.schemas import StepKind
from ledger_agent.core.validator import validate_plan


def test_delete_instruction_gets_confirmed_delete_plan():
    plan = generate_fallback_plan("删除这笔记录")

    assert len(plan.steps) == 4
    assert plan.requires_confirmation is True
    assert plan.generated_by == "fallback"
    assert [step.kind for step in plan.steps] == [
        StepKind.ANALYSIS,
        StepKind.CONFIRMATION,
        StepKind.TOOL_CALL,
        StepKind.ANALYSIS,
    ]
    assert plan.steps[2].tool_name == "delete_transaction"


def test_query_instruction_gets_query_plan():
    plan = generate_fallback_plan("查询本月支出")

    assert len(plan.steps) == 3
    assert plan.requires_confirmation is False
    assert plan.steps[1].tool_name == "query_transactions"


def test_anything_else_records_a_transaction():
    plan = generate_fallback_plan("lunch 25 yuan")

    assert len(plan.steps) == 3
    assert plan.steps[1].tool_name == "add_transaction"
    assert plan.steps[1].tool_args == {"instruction": "lunch 25 yuan"}
    assert plan.metadata["intent"] == "create"


def test_fallback_plans_are_always_valid_and_chained():
    for instruction in ("Delete it", "show stats", "coffee 3"):
        plan = generate_fallback_plan(instruction)
        assert validate_plan(plan).valid
        for previous, step in zip(plan.steps, plan.steps[1:]):
            assert step.dependencies == (previous.id,)


def test_keyword_matching_is_case_insensitive():
    assert detect_intent("REMOVE the taxi fare") == "delete"
    assert detect_intent("List my expenses") == "query"
