from __future__ import annotations

import asyncio
import inspect
import time
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional, Protocol

from ..core.logging.logger import get_logger
from ..core.schemas import ExecutionError


@dataclass(frozen=True)
class ToolOutcome:
    success: bool
    result: Any = None
    error: Optional[str] = None
    duration_ms: Optional[float] = None


class ToolExecutor(Protocol):
    async def execute(self, tool_name: str, args: Dict[str, Any]) -> ToolOutcome:
        ...


class BaseTool:
    """Base interface all ledger tools must implement."""

    name: str = ""

    def validate_args(self, args: Dict[str, Any]) -> None:
        raise NotImplementedError

    def execute(self, args: Dict[str, Any]) -> Any:
        """Run the action. May be a coroutine function."""

        raise NotImplementedError


class EchoTool(BaseTool):
    """Accepts any arguments and echoes them back."""

    def __init__(self, name: str) -> None:
        self.name = name

    def validate_args(self, args: Dict[str, Any]) -> None:
        if not isinstance(args, dict):
            raise ExecutionError(f"Arguments for '{self.name}' must be a mapping")

    def execute(self, args: Dict[str, Any]) -> Any:
        return {"action": self.name, "args": args}


class ToolRegistry:
    """Tool executor dispatching to registered tools by name.

    Tool exceptions become failed outcomes; arguments are handed over
    unchanged and validated only by the tool itself.
    """

    def __init__(self, tools: Optional[Iterable[BaseTool]] = None) -> None:
        self.tools: Dict[str, BaseTool] = {}
        self._logger = get_logger("tools")
        for tool in tools or ():
            self.register(tool)

    def register(self, tool: BaseTool) -> None:
        if not tool.name:
            raise ValueError("Tools must declare a name")
        self.tools[tool.name] = tool

    def available_actions(self) -> list[str]:
        return sorted(self.tools)

    async def execute(self, tool_name: str, args: Dict[str, Any]) -> ToolOutcome:
        started = time.perf_counter()
        try:
            tool = self._get_tool(tool_name)
            tool.validate_args(args)
            if inspect.iscoroutinefunction(tool.execute):
                result = await tool.execute(args)
            else:
                result = await asyncio.to_thread(tool.execute, args)
        except ExecutionError as exc:
            self._logger.info("tool %s failed: %s", tool_name, exc)
            return ToolOutcome(success=False, error=str(exc), duration_ms=_elapsed_ms(started))
        return ToolOutcome(success=True, result=result, duration_ms=_elapsed_ms(started))

    def _get_tool(self, name: str) -> BaseTool:
        if name not in self.tools:
            raise ExecutionError(f"No tool registered for '{name}'")
        return self.tools[name]


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 3)
