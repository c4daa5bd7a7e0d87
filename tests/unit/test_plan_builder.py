from __future__ import annotations

import re

from ledger_agent.adapters.llm.proposer import DraftProposal
from ledger_agent.core.builder import build_plan
from ledger_agent.core.schemas import StepKind
from ledger_agent.core.validator import validate_plan


def _draft(**overrides):
    payload = {
        "description": "Record lunch",
        "requiresConfirmation": False,
        "extracted": {"amount": 12.5, "type": "expense", "items": [{"type": "income"}, "raw"]},
        "steps": [
            {"kind": "analyze", "description": "Parse"},
            {"kind": "tool_call", "description": "Save", "toolName": "add_transaction", "toolArgs": {"amount": 12.5}, "dependsOn": [0]},
            {"kind": "summarize", "description": "Reply", "dependsOn": [0, 1]},
        ],
    }
    payload.update(overrides)
    return payload


def test_positional_dependencies_become_step_ids():
    result = build_plan(_draft(), "lunch 12.5")

    assert result.ok
    plan = result.plan
    assert re.fullmatch(r"plan_\d+_[a-z0-9]{9}", plan.id)
    assert [step.id for step in plan.steps] == [f"{plan.id}_step_{index}" for index in range(3)]
    assert plan.steps[2].dependencies == (f"{plan.id}_step_0", f"{plan.id}_step_1")
    assert validate_plan(plan).valid


def test_camel_case_fields_and_kinds():
    plan = build_plan(_draft(), "lunch 12.5").plan

    assert [step.kind for step in plan.steps] == [StepKind.ANALYSIS, StepKind.TOOL_CALL, StepKind.ANALYSIS]
    assert plan.steps[1].tool_name == "add_transaction"
    assert plan.steps[1].tool_args == {"amount": 12.5}
    assert plan.generated_by == "proposer"
    assert plan.instruction == "lunch 12.5"


def test_extracted_types_are_upper_cased():
    plan = build_plan(_draft(), "lunch").plan

    assert plan.metadata["extracted"]["type"] == "EXPENSE"
    assert plan.metadata["extracted"]["items"] == [{"type": "INCOME"}, "raw"]


def test_out_of_range_dependency_fails():
    draft = _draft(steps=[{"kind": "analyze", "description": "Parse", "dependsOn": [3]}])

    result = build_plan(draft, "x")

    assert not result.ok
    assert "out-of-range" in result.error


def test_tool_call_without_tool_name_fails():
    result = build_plan(_draft(steps=[{"kind": "tool_call", "description": "Save"}]), "x")

    assert not result.ok


def test_malformed_draft_fails_without_raising():
    assert not build_plan({"steps": "nope"}, "x").ok
    assert not build_plan("not a draft", "x").ok


def test_confirm_step_defaults_to_requiring_confirmation():
    draft = DraftProposal.model_validate(
        {"description": "Delete", "steps": [{"type": "confirmation", "description": "Sure?"}]}
    )

    plan = build_plan(draft, "delete", generated_by="template").plan

    assert plan.steps[0].kind is StepKind.CONFIRMATION
    assert plan.steps[0].requires_confirmation is True
    assert plan.requires_confirmation is True
    assert plan.generated_by == "template"


def test_plan_flag_ignores_draft_flag():
    plan = build_plan(_draft(requiresConfirmation=True), "x").plan

    assert plan.requires_confirmation is False
    assert plan.metadata["proposer_requires_confirmation"] is True


def test_duplicate_dependency_positions_collapse():
    draft = _draft(
        steps=[
            {"kind": "analyze", "description": "Parse"},
            {"kind": "summarize", "description": "Reply", "dependsOn": [0, 0]},
        ]
    )

    plan = build_plan(draft, "x").plan

    assert plan.steps[1].dependencies == (plan.steps[0].id,)


def test_dependency_on_later_step_fails():
    draft = _draft(
        steps=[
            {"kind": "tool_call", "description": "Save", "toolName": "add_transaction", "dependsOn": [1]},
            {"kind": "analyze", "description": "Parse"},
        ]
    )

    result = build_plan(draft, "x")

    assert not result.ok
    assert result.error == "Step 0 depends on later step 1"
    assert not build_plan(_draft(steps=[{"kind": "analyze", "description": "Loop", "dependsOn": [0]}]), "x").ok
