from __future__ import annotations

import logging

from ledger_agent.core.audit import AuditLogger, PlanRun, redact_args
from ledger_agent.core.fallback import generate_fallback_plan
from ledger_agent.core.logging.audit import audit_event, instruction_fields, safe_excerpt, text_hash
from ledger_agent.core.replanner import compose_instruction, summarize_progress
from ledger_agent.core.risk import RiskTier
from ledger_agent.core.schemas import ExecutionState, StepResult, StepStatus


def _state():
    plan = generate_fallback_plan("查询本月支出")
    state = ExecutionState(plan=plan)
    state.results[plan.steps[0].id] = StepResult(step_id=plan.steps[0].id, success=True)
    state.statuses[plan.steps[0].id] = StepStatus.COMPLETED
    state.results[plan.steps[1].id] = StepResult(step_id=plan.steps[1].id, success=False, error="timeout")
    state.statuses[plan.steps[1].id] = StepStatus.FAILED
    return state


def test_progress_summary_lists_finished_steps():
    summary = summarize_progress(_state())

    assert summary.splitlines() == [
        "- Parse the query conditions: succeeded",
        "- Query transactions: failed (timeout)",
    ]
    assert summarize_progress(ExecutionState(plan=generate_fallback_plan("x"))) == "- no steps finished"
    assert compose_instruction("查询", summary, "stranded").startswith("查询\n\n[Replan context]\nReason: stranded")


def test_audit_logger_records_run():
    state = _state()
    logger = AuditLogger()

    record = logger.log_run(PlanRun(instruction="查询本月支出", state=state))

    assert logger.records == [record]
    assert record.instruction_hash == text_hash("查询本月支出")
    assert record.errors == ["timeout"]
    assert record.generated_by == ["fallback"]
    assert record.statuses[state.plan.steps[2].id] == "pending"


def test_secret_arguments_are_redacted():
    assert redact_args({"api_key": "sk-1", "amount": 3}) == {"api_key": "[REDACTED]", "amount": 3}


def test_audit_event_logs_payload(caplog):
    with caplog.at_level(logging.INFO, logger="ledger_agent.audit"):
        payload = audit_event("plan.generated", plan_id="plan_1", tier=RiskTier.HIGH, reason=None)

    assert "plan.generated" in caplog.text
    assert '"tier": "high"' in caplog.text
    assert "reason" not in payload
    assert instruction_fields("删除 这笔")["instruction_excerpt"] == "删除 这笔"
    assert safe_excerpt("a  b " * 40, max_len=10) == "a b a b a ..."
