from __future__ import annotations

from dataclasses import replace
from enum import Enum
from typing import Dict, Mapping, Optional

from ledger_agent.config.runtime import RiskPreferences, get_risk_preferences

from .schemas import Plan, Step, StepKind


class RiskTier(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


_TIER_ORDER = {RiskTier.LOW: 0, RiskTier.MEDIUM: 1, RiskTier.HIGH: 2, RiskTier.CRITICAL: 3}


def max_tier(left: RiskTier, right: RiskTier) -> RiskTier:
    return left if _TIER_ORDER[left] >= _TIER_ORDER[right] else right


DEFAULT_ACTION_TIERS: Dict[str, RiskTier] = {
    "delete_transaction": RiskTier.HIGH,
    "batch_delete_transactions": RiskTier.HIGH,
    "clear_all_data": RiskTier.HIGH,
    "update_transaction": RiskTier.MEDIUM,
    "batch_add_transactions": RiskTier.MEDIUM,
    "batch_create_transactions": RiskTier.MEDIUM,
}


class RiskPolicy:
    """Classifies actions into risk tiers and decides which need confirmation.

    ``tiers`` is the provider-supplied mapping; it is layered over the static
    defaults, so a host can raise ``clear_all_data`` to critical or register
    its own actions without restating the whole table.
    """

    def __init__(
        self,
        tiers: Optional[Mapping[str, RiskTier | str]] = None,
        preferences: Optional[RiskPreferences] = None,
    ) -> None:
        self.tiers: Dict[str, RiskTier] = dict(DEFAULT_ACTION_TIERS)
        for action, tier in (tiers or {}).items():
            self.tiers[action] = RiskTier(tier)
        self.preferences = preferences or get_risk_preferences()

    def classify(self, action_name: str | None) -> RiskTier:
        if not action_name:
            return RiskTier.LOW
        return self.tiers.get(action_name, RiskTier.LOW)

    def requires_confirmation(self, tier: RiskTier) -> bool:
        if tier is RiskTier.CRITICAL:
            return True
        if tier is RiskTier.HIGH:
            return self.preferences.confirm_high_risk
        if tier is RiskTier.MEDIUM:
            return self.preferences.confirm_medium_risk
        return False

    def step_requires_confirmation(self, step: Step) -> bool:
        if step.kind is not StepKind.TOOL_CALL:
            return False
        if self.requires_confirmation(self.classify(step.tool_name)):
            return True
        return self._exceeds_batch_threshold(step)

    def annotate(self, plan: Plan) -> Plan:
        """Return a copy of ``plan`` with confirmation flags set from policy.

        Only ``requires_confirmation`` annotations change; step order and
        dependencies are left exactly as built. A risky step that directly
        follows a confirmation step is covered by that prompt, unless the
        action is critical.
        """

        confirmations = {
            step.id for step in plan.steps if step.kind is StepKind.CONFIRMATION and step.requires_confirmation
        }
        steps = []
        for step in plan.steps:
            if self.step_requires_confirmation(step) and not step.requires_confirmation:
                covered = bool(confirmations.intersection(step.dependencies))
                if not covered or self.classify(step.tool_name) is RiskTier.CRITICAL:
                    step = replace(step, metadata=replace(step.metadata, requires_confirmation=True))
            steps.append(step)
        requires_confirmation = any(step.requires_confirmation for step in steps)
        return replace(plan, steps=tuple(steps), requires_confirmation=requires_confirmation)

    def _exceeds_batch_threshold(self, step: Step) -> bool:
        items = step.tool_args.get("items")
        if not isinstance(items, (list, tuple)):
            return False
        return len(items) >= self.preferences.batch_threshold
