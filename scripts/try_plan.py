from __future__ import annotations

import argparse
import asyncio
import json
from dataclasses import asdict

from ledger_agent.adapters.llm.proposer import get_plan_proposer
from ledger_agent.core.estimator import estimate_plan
from ledger_agent.core.orchestrator import PlanOrchestrator
from ledger_agent.domains.base import EchoTool, ToolRegistry

DEMO_ACTIONS = ("add_transaction", "query_transactions", "delete_transaction", "update_transaction")


async def _plan_and_run(orchestrator: PlanOrchestrator, text: str, plan_only: bool) -> None:
    plan = await orchestrator.generate_plan(text)
    estimate = estimate_plan(plan, orchestrator.risk_policy)

    print(f"plan={plan.id} generated_by={plan.generated_by} confirm={plan.requires_confirmation}")
    for step in plan.steps:
        flag = " [confirm]" if step.requires_confirmation else ""
        print(f"  {step.id} {step.kind.value}: {step.description}{flag}")
    print(json.dumps(asdict(estimate), indent=2, ensure_ascii=False, default=str))
    if plan_only:
        return

    run = await orchestrator.drive(plan)
    for step_id, status in run.state.statuses.items():
        print(f"{step_id}: {status.value}")
    print(f"succeeded={run.succeeded} replans={run.replans}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Plan and run a ledger instruction against echo tools")
    parser.add_argument("text", help="Instruction to plan, e.g. '删除这笔记录'")
    parser.add_argument("--proposer", choices=["stub", "openai", "ollama"], default=None)
    parser.add_argument("--yes", action="store_true", help="Approve every confirmation prompt")
    parser.add_argument("--plan-only", action="store_true", help="Print the plan without running it")
    args = parser.parse_args()

    orchestrator = PlanOrchestrator(
        proposer=get_plan_proposer(args.proposer),
        tool_executor=ToolRegistry(EchoTool(name) for name in DEMO_ACTIONS),
        confirmer=lambda step, plan: args.yes,
    )
    asyncio.run(_plan_and_run(orchestrator, args.text, args.plan_only))


if __name__ == "__main__":
    main()
