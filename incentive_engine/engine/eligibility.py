"""Campaign-entry gate.

A base only takes part in the month's campaign once its Volume reaches the
tier-1 target: unique routes in the window must meet the daily tier-1 rate
times the number of days.  When the gate is closed no pillar pays out.

Goal tables are monthly, so a window spanning two months has no single
table to check against.  Such windows are *not applicable*, which is a
different outcome from a closed gate.
"""

from dataclasses import dataclass
from typing import Iterable

from incentive_engine.processor.periods import ReportWindow
from incentive_engine.schema.models import GateStatus, GoalDefinition

from .goals import goal_target, matching_goals


REASON_MULTI_MONTH = "window spans multiple months"
REASON_NO_ENTRY_GOAL = "no tier-1 volume goal"
REASON_ZERO_TARGET = "tier-1 volume target is zero"
REASON_BELOW_TARGET = "below tier-1 volume target"


@dataclass(frozen=True)
class GateDecision:
    status: GateStatus
    target: float | None = None
    actual: float = 0.0
    reason: str = ""

    @property
    def is_open(self) -> bool:
        return self.status is GateStatus.OPEN

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "target": self.target,
            "actual": self.actual,
            "reason": self.reason,
        }


def evaluate_gate(base_code: str, window: ReportWindow, route_count: int,
                  volume_goals: Iterable[GoalDefinition]) -> GateDecision:
    """Decide whether a base enters the campaign for *window*.

    Open iff a tier-1 Volume goal matches the base and month, its scaled
    target is positive, and the unique route count reaches it.
    """
    if not window.is_single_month:
        return GateDecision(GateStatus.NOT_APPLICABLE, None, route_count,
                            REASON_MULTI_MONTH)

    entry = matching_goals(volume_goals, base_code, window.month_label).get(1)
    if entry is None:
        return GateDecision(GateStatus.CLOSED, None, route_count, REASON_NO_ENTRY_GOAL)

    target = goal_target(entry, window.day_count)
    if target <= 0:
        return GateDecision(GateStatus.CLOSED, target, route_count, REASON_ZERO_TARGET)
    if route_count < target:
        return GateDecision(GateStatus.CLOSED, target, route_count, REASON_BELOW_TARGET)
    return GateDecision(GateStatus.OPEN, target, route_count)


def is_eligible(base_code: str, window: ReportWindow, route_count: int,
                volume_goals: Iterable[GoalDefinition]) -> bool | None:
    """True (open), False (closed) or None (not applicable)."""
    decision = evaluate_gate(base_code, window, route_count, volume_goals)
    if decision.status is GateStatus.NOT_APPLICABLE:
        return None
    return decision.is_open
