from __future__ import annotations

import asyncio

import requests

from ledger_agent.config.runtime import get_ollama_base_url, get_ollama_model, get_orchestrator_config

from .prompts import build_system_prompt, build_user_prompt
from .proposer import PlanProposer, ProposalContext, ProposalResult, parse_draft_json


class OllamaPlanProposer(PlanProposer):
    """Plan proposer powered by a local Ollama server."""

    def __init__(self, base_url: str | None = None, model: str | None = None, timeout: float | None = None) -> None:
        self.base_url = (base_url or get_ollama_base_url()).rstrip("/")
        self.model = model or get_ollama_model()
        self.timeout = timeout or get_orchestrator_config().proposer_timeout_seconds

    def _post_prompt(self, instruction: str, context: ProposalContext) -> str:
        payload = {
            "model": self.model,
            "system": build_system_prompt(context),
            "prompt": build_user_prompt(instruction, context),
            "format": "json",
            "stream": False,
        }
        response = requests.post(f"{self.base_url}/api/generate", json=payload, timeout=(self.timeout, self.timeout))
        response.raise_for_status()
        data = response.json()
        return data.get("response", "") if isinstance(data, dict) else ""

    async def propose(self, instruction: str, context: ProposalContext) -> ProposalResult:
        try:
            content = await asyncio.to_thread(self._post_prompt, instruction, context)
        except requests.RequestException as exc:  # pragma: no cover - network dependency
            return ProposalResult(ok=False, reason=f"ollama request failed: {exc}")
        except ValueError as exc:
            return ProposalResult(ok=False, reason=f"ollama returned invalid JSON: {exc}")

        try:
            draft = parse_draft_json(content)
        except ValueError as exc:
            return ProposalResult(ok=False, reason=f"unparseable proposal: {exc}", raw={"content": content})
        return ProposalResult(ok=True, draft=draft, reason="ollama", raw={"content": content})
