from __future__ import annotations

import hashlib
import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict

from ledger_agent.core.logging.logger import get_logger

_logger = get_logger("audit")


def safe_excerpt(value: str, *, max_len: int = 80) -> str:
    compact = " ".join(value.split())
    if len(compact) <= max_len:
        return compact
    return f"{compact[:max_len]}..."


def text_hash(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def instruction_fields(instruction: str) -> Dict[str, str]:
    """Stand-ins for raw instruction text, which never reaches the log."""

    return {"instruction_hash": text_hash(instruction), "instruction_excerpt": safe_excerpt(instruction)}


def audit_event(event: str, **fields: Any) -> Dict[str, Any]:
    """Log one plan lifecycle event as a JSON line and return its payload.

    Fields set to ``None`` are dropped; enums are logged by value.
    """

    payload: Dict[str, Any] = {"event": event, "ts": datetime.now(tz=timezone.utc).isoformat()}
    payload.update({key: value for key, value in fields.items() if value is not None})
    _logger.info("audit %s", json.dumps(payload, ensure_ascii=False, sort_keys=True, default=_to_json))
    return payload


def _to_json(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    return str(value)
