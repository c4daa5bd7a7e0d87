from __future__ import annotations

import asyncio
from types import SimpleNamespace

import pytest

from ledger_agent.adapters.llm import ollama_proposer
from ledger_agent.adapters.llm.ollama_proposer import OllamaPlanProposer
from ledger_agent.adapters.llm.openai_proposer import OpenAIPlanProposer
from ledger_agent.adapters.llm.proposer import (
    ProposalContext,
    StubPlanProposer,
    get_plan_proposer,
    parse_draft_json,
)
from ledger_agent.core.schemas import ExecutionError

REPLY = '{"description": "Record lunch", "steps": [{"kind": "analyze", "description": "Parse"}]}'


def test_parse_draft_json_strips_fences_and_prose():
    fenced = f"```json\n{REPLY}\n```"
    chatty = f"Sure! Here is the plan: {REPLY} Let me know."

    assert parse_draft_json(fenced).description == "Record lunch"
    assert parse_draft_json(chatty).steps[0].kind == "analyze"


def test_parse_draft_json_rejects_garbage():
    with pytest.raises(ValueError):
        parse_draft_json("no json here")
    with pytest.raises(ValueError):
        parse_draft_json('{"steps": []}')


def test_stub_proposer_never_proposes():
    result = asyncio.run(StubPlanProposer().propose("lunch", ProposalContext()))

    assert result.ok is False
    assert result.draft is None


def test_factory_follows_configuration(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("LEDGER_AGENT_PROPOSER", "stub")
    assert get_plan_proposer() is None

    monkeypatch.setenv("LEDGER_AGENT_PROPOSER", "ollama")
    assert isinstance(get_plan_proposer(), OllamaPlanProposer)

    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    with pytest.raises(ExecutionError):
        get_plan_proposer("openai")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    assert isinstance(get_plan_proposer("openai"), OpenAIPlanProposer)


class _FakeCompletions:
    def __init__(self, content: str):
        self.content = content
        self.kwargs = None

    async def create(self, **kwargs):
        self.kwargs = kwargs
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def test_openai_proposer_requests_json_and_parses_reply():
    completions = _FakeCompletions(f"```\n{REPLY}\n```")
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    proposer = OpenAIPlanProposer(model="gpt-test", client=client)
    context = ProposalContext(available_actions=["add_transaction"], past_results_summary="- Parse: failed (x)")

    result = asyncio.run(proposer.propose("lunch 20", context))

    assert result.ok is True
    assert result.draft.description == "Record lunch"
    assert completions.kwargs["model"] == "gpt-test"
    assert completions.kwargs["response_format"] == {"type": "json_object"}
    system, user = completions.kwargs["messages"]
    assert "add_transaction" in system["content"]
    assert "failed (x)" in user["content"]


def test_openai_proposer_reports_unparseable_reply():
    client = SimpleNamespace(chat=SimpleNamespace(completions=_FakeCompletions("I cannot help")))

    result = asyncio.run(OpenAIPlanProposer(model="m", client=client).propose("x", ProposalContext()))

    assert result.ok is False
    assert result.reason.startswith("unparseable proposal")


def test_ollama_proposer_posts_to_generate(monkeypatch: pytest.MonkeyPatch):
    captured = {}

    class _Response:
        def raise_for_status(self):
            return None

        def json(self):
            return {"response": REPLY}

    def fake_post(url, json, timeout):
        captured["url"] = url
        captured["payload"] = json
        return _Response()

    monkeypatch.setattr(ollama_proposer.requests, "post", fake_post)
    proposer = OllamaPlanProposer(base_url="http://ollama:11434/", model="llama-test", timeout=3)

    result = asyncio.run(proposer.propose("lunch 20", ProposalContext()))

    assert result.ok is True
    assert captured["url"] == "http://ollama:11434/api/generate"
    assert captured["payload"]["format"] == "json"
    assert captured["payload"]["stream"] is False
    assert captured["payload"]["model"] == "llama-test"
