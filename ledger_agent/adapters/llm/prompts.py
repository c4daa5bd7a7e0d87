from __future__ import annotations

from datetime import datetime

from .proposer import ProposalContext

PLANNER_SYSTEM_PROMPT = """You plan actions for a personal ledger assistant.
Read the user's instruction and reply with a single JSON object, nothing else:

{
  "description": "short summary of the plan",
  "requiresConfirmation": false,
  "extracted": {"amount": 12.5, "type": "EXPENSE", "category": "food", "date": "YYYY-MM-DD"},
  "steps": [
    {"kind": "analyze", "description": "..."},
    {"kind": "tool_call", "description": "...", "toolName": "add_transaction",
     "toolArgs": {...}, "dependsOn": [0]},
    {"kind": "confirm", "description": "...", "dependsOn": [1]},
    {"kind": "summarize", "description": "...", "dependsOn": [2]}
  ]
}

Rules:
- kind is one of analyze, tool_call, confirm, summarize, goal.
- dependsOn lists zero-based positions of EARLIER steps only.
- toolName must be one of the available actions.
- Deleting or bulk-changing records needs a confirm step before the tool call.
- Convert relative dates to YYYY-MM-DD; type is EXPENSE or INCOME.

Available actions: {actions}
Current time: {now}"""


def build_system_prompt(context: ProposalContext) -> str:
    actions = ", ".join(context.available_actions) or "none"
    now = datetime.now().strftime("%Y-%m-%d %H:%M")
    return PLANNER_SYSTEM_PROMPT.replace("{actions}", actions).replace("{now}", now)


def build_user_prompt(instruction: str, context: ProposalContext) -> str:
    if not context.past_results_summary:
        return instruction
    return f"{instruction}\n\nResults of the previous attempt:\n{context.past_results_summary}"
