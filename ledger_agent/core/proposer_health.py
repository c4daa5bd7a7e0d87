from __future__ import annotations

import time
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional


class BreakerState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class FailureKind(str, Enum):
    TIMEOUT = "timeout"
    ERROR = "error"
    DECLINED = "declined"
    UNUSABLE = "unusable"


@dataclass(frozen=True)
class ProposerHealthSnapshot:
    state: BreakerState
    consecutive_failures: int
    failures_by_kind: Dict[str, int] = field(default_factory=dict)
    last_reason: Optional[str] = None
    retry_in_seconds: Optional[float] = None

    def as_fields(self) -> Dict[str, Any]:
        return {
            "proposer_state": self.state.value,
            "consecutive_failures": self.consecutive_failures,
            "retry_in_seconds": self.retry_in_seconds,
        }


class ProposerHealth:
    """Tracks how a plan proposer has been answering and gates further calls.

    After ``failure_threshold`` consecutive failed proposals the proposer is
    skipped (plans come from templates or the fallback) until
    ``cooldown_seconds`` pass; one trial proposal then decides whether it is
    used again. Failures are tallied by kind so a host can tell a slow
    backend from one that keeps returning unusable drafts.
    """

    def __init__(
        self,
        *,
        failure_threshold: int = 3,
        cooldown_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.failure_threshold = failure_threshold
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._state = BreakerState.CLOSED
        self._consecutive = 0
        self._by_kind: Counter = Counter()
        self._last_reason: Optional[str] = None
        self._opened_at: Optional[float] = None

    @property
    def state(self) -> BreakerState:
        return self._state

    def allow_request(self) -> bool:
        if self._state is not BreakerState.OPEN:
            return True
        if self._clock() - (self._opened_at or 0.0) >= self.cooldown_seconds:
            self._state = BreakerState.HALF_OPEN
            return True
        return False

    def record_proposal(self) -> None:
        self._state = BreakerState.CLOSED
        self._consecutive = 0
        self._opened_at = None

    def record_failure(self, kind: FailureKind, reason: str) -> None:
        self._by_kind[kind.value] += 1
        self._last_reason = _clip(reason)
        self._consecutive += 1
        if self._state is BreakerState.HALF_OPEN or self._consecutive >= self.failure_threshold:
            self._state = BreakerState.OPEN
            self._opened_at = self._clock()

    def snapshot(self) -> ProposerHealthSnapshot:
        retry_in = None
        if self._state is BreakerState.OPEN and self._opened_at is not None:
            retry_in = round(max(0.0, self._opened_at + self.cooldown_seconds - self._clock()), 3)
        return ProposerHealthSnapshot(
            state=self._state,
            consecutive_failures=self._consecutive,
            failures_by_kind=dict(self._by_kind),
            last_reason=self._last_reason,
            retry_in_seconds=retry_in,
        )


def _clip(reason: str, limit: int = 240) -> str:
    compact = " ".join(str(reason).split()) or "unknown"
    return compact if len(compact) <= limit else compact[: limit - 3] + "..."
