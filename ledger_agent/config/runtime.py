from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv


# Load environment variables from a local .env file if present.
load_dotenv()


@dataclass(frozen=True)
class OrchestratorConfig:
    proposer: str
    proposer_timeout_seconds: float
    auto_replan: bool
    max_replans: int
    enable_templates: bool


@dataclass(frozen=True)
class RiskPreferences:
    confirm_high_risk: bool = True
    confirm_medium_risk: bool = False
    batch_threshold: int = 5


def _parse_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


def _parse_int(value: str | None, default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _parse_float(value: str | None, default: float) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def get_proposer_name() -> str:
    """Return the configured plan proposer backend (default: stub)."""

    name = os.getenv("LEDGER_AGENT_PROPOSER", "stub").strip().lower()
    if name not in {"stub", "openai", "ollama"}:
        return "stub"
    return name


def get_openai_api_key() -> str | None:
    """Return the configured OpenAI API key, if any."""

    key = os.getenv("OPENAI_API_KEY")
    return key.strip() if key else None


def is_openai_configured() -> bool:
    return bool(get_openai_api_key())


def get_openai_model() -> str:
    return os.getenv("LEDGER_AGENT_OPENAI_MODEL", "gpt-4o-mini").strip()


def get_ollama_base_url() -> str:
    """Return the Ollama base URL (default: http://localhost:11434)."""

    return os.getenv("OLLAMA_BASE_URL", "http://localhost:11434").strip()


def get_ollama_model() -> str:
    """Return the Ollama model name (default: llama3.1:8b)."""

    return os.getenv("OLLAMA_MODEL", "llama3.1:8b").strip()


def get_orchestrator_config() -> OrchestratorConfig:
    timeout = _parse_float(os.getenv("LEDGER_AGENT_PROPOSER_TIMEOUT"), 20.0)
    if timeout <= 0:
        timeout = 20.0
    return OrchestratorConfig(
        proposer=get_proposer_name(),
        proposer_timeout_seconds=timeout,
        auto_replan=_parse_bool(os.getenv("LEDGER_AGENT_AUTO_REPLAN"), True),
        max_replans=max(0, _parse_int(os.getenv("LEDGER_AGENT_MAX_REPLANS"), 2)),
        enable_templates=_parse_bool(os.getenv("LEDGER_AGENT_ENABLE_TEMPLATES"), False),
    )


def get_risk_preferences() -> RiskPreferences:
    return RiskPreferences(
        confirm_high_risk=_parse_bool(os.getenv("LEDGER_AGENT_CONFIRM_HIGH_RISK"), True),
        confirm_medium_risk=_parse_bool(os.getenv("LEDGER_AGENT_CONFIRM_MEDIUM_RISK"), False),
        batch_threshold=max(1, _parse_int(os.getenv("LEDGER_AGENT_BATCH_THRESHOLD"), 5)),
    )
