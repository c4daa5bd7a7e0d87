from __future__ import annotations

import pytest

from ledger_agent.config.runtime import get_orchestrator_config, get_proposer_name, get_risk_preferences

_VARS = (
    "LEDGER_AGENT_PROPOSER",
    "LEDGER_AGENT_PROPOSER_TIMEOUT",
    "LEDGER_AGENT_AUTO_REPLAN",
    "LEDGER_AGENT_MAX_REPLANS",
    "LEDGER_AGENT_ENABLE_TEMPLATES",
    "LEDGER_AGENT_CONFIRM_HIGH_RISK",
    "LEDGER_AGENT_CONFIRM_MEDIUM_RISK",
    "LEDGER_AGENT_BATCH_THRESHOLD",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch):
    for name in _VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    config = get_orchestrator_config()
    preferences = get_risk_preferences()

    assert config.proposer == "stub"
    assert config.proposer_timeout_seconds == 20.0
    assert config.auto_replan is True
    assert config.max_replans == 2
    assert config.enable_templates is False
    assert preferences.confirm_high_risk is True
    assert preferences.confirm_medium_risk is False
    assert preferences.batch_threshold == 5


def test_overrides(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("LEDGER_AGENT_PROPOSER", " OpenAI ")
    monkeypatch.setenv("LEDGER_AGENT_AUTO_REPLAN", "off")
    monkeypatch.setenv("LEDGER_AGENT_MAX_REPLANS", "4")
    monkeypatch.setenv("LEDGER_AGENT_CONFIRM_MEDIUM_RISK", "yes")
    monkeypatch.setenv("LEDGER_AGENT_BATCH_THRESHOLD", "10")

    config = get_orchestrator_config()
    preferences = get_risk_preferences()

    assert config.proposer == "openai"
    assert config.auto_replan is False
    assert config.max_replans == 4
    assert preferences.confirm_medium_risk is True
    assert preferences.batch_threshold == 10


def test_invalid_values_fall_back_to_defaults(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("LEDGER_AGENT_PROPOSER", "gemini")
    monkeypatch.setenv("LEDGER_AGENT_PROPOSER_TIMEOUT", "-3")
    monkeypatch.setenv("LEDGER_AGENT_MAX_REPLANS", "many")
    monkeypatch.setenv("LEDGER_AGENT_AUTO_REPLAN", "maybe")
    monkeypatch.setenv("LEDGER_AGENT_BATCH_THRESHOLD", "0")

    assert get_proposer_name() == "stub"
    config = get_orchestrator_config()
    assert config.proposer_timeout_seconds == 20.0
    assert config.max_replans == 2
    assert config.auto_replan is True
    assert get_risk_preferences().batch_threshold == 1
