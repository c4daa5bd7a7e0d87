from __future__ import annotations

from openai import AsyncOpenAI

from ledger_agent.config.runtime import get_openai_api_key, get_openai_model
from ledger_agent.core.schemas import ExecutionError

from .prompts import build_system_prompt, build_user_prompt
from .proposer import PlanProposer, ProposalContext, ProposalResult, parse_draft_json


class OpenAIPlanProposer(PlanProposer):
    """Plan proposer backed by the OpenAI chat completions API."""

    def __init__(self, api_key: str | None = None, model: str | None = None, client: AsyncOpenAI | None = None) -> None:
        if client is None:
            key = api_key or get_openai_api_key()
            if not key:
                raise ExecutionError("OPENAI_API_KEY is required to use the OpenAI plan proposer.")
            client = AsyncOpenAI(api_key=key)
        self.client = client
        self.model = model or get_openai_model()

    async def propose(self, instruction: str, context: ProposalContext) -> ProposalResult:
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                temperature=0,
                response_format={"type": "json_object"},
                messages=[
                    {"role": "system", "content": build_system_prompt(context)},
                    {"role": "user", "content": build_user_prompt(instruction, context)},
                ],
            )
        except Exception as exc:  # pragma: no cover - network dependency
            return ProposalResult(ok=False, reason=f"openai request failed: {exc}")

        if not response.choices:
            return ProposalResult(ok=False, reason="openai returned no choices")
        content = response.choices[0].message.content or ""
        try:
            draft = parse_draft_json(content)
        except ValueError as exc:
            return ProposalResult(ok=False, reason=f"unparseable proposal: {exc}", raw={"content": content})
        return ProposalResult(ok=True, draft=draft, reason="openai", raw={"content": content})
