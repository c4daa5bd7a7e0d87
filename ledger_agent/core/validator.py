from __future__ import annotations

from dataclasses import dataclass, field
from typing import AbstractSet, Dict, List, Optional, Set

from .schemas import Plan, StepKind


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    errors: List[str] = field(default_factory=list)


def validate_plan(plan: Plan, available_tools: Optional[AbstractSet[str]] = None) -> ValidationResult:
    """Check a candidate plan's structure, collecting every defect found.

    When ``available_tools`` is given, tool calls naming anything outside it
    are rejected as well.
    """

    errors: List[str] = []

    if not plan.id:
        errors.append("Plan id is required")
    if not plan.description:
        errors.append("Plan description is required")
    if not plan.steps:
        errors.append("Plan has no steps")

    seen: Set[str] = set()
    reported: Set[str] = set()
    for step in plan.steps:
        if step.id in seen and step.id not in reported:
            errors.append(f"Duplicate step id '{step.id}'")
            reported.add(step.id)
        seen.add(step.id)

    for step in plan.steps:
        for dependency in step.dependencies:
            if dependency not in seen:
                errors.append(f"Step '{step.id}' depends on nonexistent step '{dependency}'")

    if available_tools is not None:
        for step in plan.steps:
            if step.kind is StepKind.TOOL_CALL and step.tool_name not in available_tools:
                errors.append(f"Step '{step.id}' calls unknown tool '{step.tool_name}'")

    cycle = find_cycle(plan)
    if cycle:
        errors.append(f"Circular dependency detected: {' -> '.join(cycle)}")

    return ValidationResult(valid=not errors, errors=errors)


def find_cycle(plan: Plan) -> Optional[List[str]]:
    """Return one dependency cycle as a list of step ids, or None.

    Depth-first search with a visited set and an on-stack set; edges pointing
    at unknown ids are ignored so dangling references never look like cycles.
    """

    graph: Dict[str, List[str]] = {}
    for step in plan.steps:
        graph.setdefault(step.id, []).extend(step.dependencies)

    visited: Set[str] = set()
    on_stack: Set[str] = set()
    path: List[str] = []

    def visit(node: str) -> Optional[List[str]]:
        visited.add(node)
        on_stack.add(node)
        path.append(node)
        for dependency in graph[node]:
            if dependency not in graph:
                continue
            if dependency in on_stack:
                return path[path.index(dependency) :] + [dependency]
            if dependency not in visited:
                found = visit(dependency)
                if found:
                    return found
        on_stack.discard(node)
        path.pop()
        return None

    for node in graph:
        if node not in visited:
            found = visit(node)
            if found:
                return found
    return None
