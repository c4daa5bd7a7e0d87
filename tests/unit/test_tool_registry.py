from __future__ import annotations

import asyncio

from ledger_agent.domains.base import BaseTool, EchoTool, ToolRegistry
from ledger_agent.core.schemas import ExecutionError


class _AsyncTool(BaseTool):
    name = "query_transactions"

    def validate_args(self, args):
        if "month" not in args:
            raise ExecutionError("month is required")

    async def execute(self, args):
        return [{"month": args["month"], "total": 42}]


def test_registry_runs_sync_and_async_tools():
    registry = ToolRegistry([EchoTool("add_transaction"), _AsyncTool()])

    echoed = asyncio.run(registry.execute("add_transaction", {"amount": 3}))
    queried = asyncio.run(registry.execute("query_transactions", {"month": "2024-05"}))

    assert echoed.success and echoed.result == {"action": "add_transaction", "args": {"amount": 3}}
    assert queried.result == [{"month": "2024-05", "total": 42}]
    assert queried.duration_ms is not None
    assert registry.available_actions() == ["add_transaction", "query_transactions"]


def test_registry_reports_failures_as_outcomes():
    registry = ToolRegistry([_AsyncTool()])

    invalid = asyncio.run(registry.execute("query_transactions", {}))
    unknown = asyncio.run(registry.execute("clear_all_data", {}))

    assert invalid.success is False and invalid.error == "month is required"
    assert unknown.success is False and "clear_all_data" in unknown.error
