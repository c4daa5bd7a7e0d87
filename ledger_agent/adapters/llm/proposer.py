from __future__ import annotations

import json
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

DraftKind = Literal["analyze", "tool_call", "confirm", "summarize", "goal"]

_KIND_ALIASES = {
    "analysis": "analyze",
    "llm_call": "analyze",
    "tool": "tool_call",
    "confirmation": "confirm",
}


class DraftStep(BaseModel):
    model_config = ConfigDict(extra="ignore")

    kind: DraftKind = Field(validation_alias=AliasChoices("kind", "type"))
    description: str
    tool_name: str | None = Field(default=None, validation_alias=AliasChoices("tool_name", "toolName", "tool"))
    tool_args: dict[str, Any] = Field(
        default_factory=dict, validation_alias=AliasChoices("tool_args", "toolArgs", "args")
    )
    depends_on: list[int] = Field(default_factory=list, validation_alias=AliasChoices("depends_on", "dependsOn"))
    condition: str | None = None
    requires_confirmation: bool | None = Field(
        default=None, validation_alias=AliasChoices("requires_confirmation", "requiresConfirmation")
    )
    expected_outcome: str | None = Field(
        default=None, validation_alias=AliasChoices("expected_outcome", "expectedOutcome")
    )

    @field_validator("kind", mode="before")
    @classmethod
    def _normalize_kind(cls, value: Any) -> Any:
        if isinstance(value, str):
            lowered = value.strip().lower()
            return _KIND_ALIASES.get(lowered, lowered)
        return value

    @field_validator("tool_args", mode="before")
    @classmethod
    def _default_args(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("depends_on", mode="before")
    @classmethod
    def _default_depends_on(cls, value: Any) -> Any:
        return [] if value is None else value


class DraftProposal(BaseModel):
    model_config = ConfigDict(extra="ignore")

    description: str = Field(min_length=1)
    steps: list[DraftStep]
    requires_confirmation: bool = Field(
        default=False, validation_alias=AliasChoices("requires_confirmation", "requiresConfirmation")
    )
    extracted: dict[str, Any] = Field(
        default_factory=dict, validation_alias=AliasChoices("extracted", "extractedInfo", "extracted_info")
    )

    @field_validator("extracted", mode="before")
    @classmethod
    def _default_extracted(cls, value: Any) -> Any:
        return {} if value is None else value


class ProposalContext(BaseModel):
    available_actions: list[str] = Field(default_factory=list)
    past_results_summary: str | None = None


class ProposalResult(BaseModel):
    ok: bool = False
    draft: DraftProposal | None = None
    reason: str = "plan_proposer_stub"
    raw: dict[str, Any] | None = None


def parse_draft_json(content: str) -> DraftProposal:
    """Parse a proposer reply into a draft.

    Replies are often wrapped in Markdown fences or surrounded by prose, so the
    outermost JSON object is extracted first. Raises ``ValueError`` (including
    pydantic's ``ValidationError``) when no usable draft is present.
    """

    text = content.strip()
    if text.startswith("```"):
        lines = text.splitlines()
        text = "\n".join(lines[1:-1])
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end < start:
        raise ValueError("Proposer reply does not contain a JSON object")
    payload = json.loads(text[start : end + 1])
    if not isinstance(payload, dict):
        raise ValueError("Proposer reply is not a JSON object")
    return DraftProposal.model_validate(payload)


class PlanProposer:
    async def propose(self, instruction: str, context: ProposalContext) -> ProposalResult:
        _ = (instruction, context)
        return ProposalResult(ok=False, reason="proposer_disabled_or_stub")


class StubPlanProposer(PlanProposer):
    pass


def get_plan_proposer(name: str | None = None) -> PlanProposer | None:
    """Instantiate the configured proposer; ``None`` means no proposer at all."""

    from ledger_agent.config.runtime import get_proposer_name

    backend = name or get_proposer_name()
    if backend == "openai":
        from .openai_proposer import OpenAIPlanProposer

        return OpenAIPlanProposer()
    if backend == "ollama":
        from .ollama_proposer import OllamaPlanProposer

        return OllamaPlanProposer()
    return None
