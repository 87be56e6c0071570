"""Goal tier resolution.

A pillar's goal table holds up to three tier rows per base (and month).
The resolver picks the single best tier the actual value reaches and
returns that tier's reward; rewards of lower tiers are never added on top.

Thresholds are compared in the goal's own unit.  Daily-rate goals
(Volume) are scaled by the window length first.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from incentive_engine.processor.keys import cell_text, normalize_base, normalize_period
from incentive_engine.processor.periods import round_half_up
from incentive_engine.schema.models import GoalDefinition, Pillar, ThresholdUnit


TIERS = (1, 2, 3)


class Direction(Enum):
    """Which side of the threshold counts as reaching it."""
    HIGHER_IS_BETTER = "higher"   # actual >= target
    LOWER_IS_BETTER = "lower"     # actual < target


PILLAR_DIRECTIONS = {
    Pillar.VOLUME: Direction.HIGHER_IS_BETTER,
    Pillar.DELIVERY_SUCCESS: Direction.HIGHER_IS_BETTER,
    Pillar.FLEET_COMPLIANCE: Direction.HIGHER_IS_BETTER,
    Pillar.LOSS_CONTROL: Direction.LOWER_IS_BETTER,
    Pillar.PROTAGONISM: Direction.HIGHER_IS_BETTER,
}


@dataclass(frozen=True)
class TierResolution:
    """Outcome of a tier lookup.

    ``target`` is the reached tier's target, or the entry (tier-1) target
    when no tier was reached.  It is ``None`` only when the base has no
    goal rows at all.
    """
    tier: int
    reward: float
    target: float | None = None

    @property
    def has_goals(self) -> bool:
        return self.target is not None

    @property
    def reached(self) -> bool:
        return self.tier > 0


NO_GOALS = TierResolution(tier=0, reward=0.0, target=None)


def matching_goals(goal_defs: Iterable[GoalDefinition], base_code: str,
                   period_label: str) -> dict[int, GoalDefinition]:
    """Goal rows that apply to a base in a month, keyed by tier.

    A row applies when its base matches (normalized) and its period equals
    the month label or is empty.  For a given tier a month-specific row
    outranks an evergreen one; among equals the first row wins.
    """
    base = normalize_base(base_code)
    period = normalize_period(period_label)
    specific: dict[int, GoalDefinition] = {}
    evergreen: dict[int, GoalDefinition] = {}

    for goal in goal_defs:
        if goal.tier not in TIERS or normalize_base(goal.base_code) != base:
            continue
        if goal.is_evergreen:
            evergreen.setdefault(goal.tier, goal)
        elif normalize_period(goal.period) == period:
            specific.setdefault(goal.tier, goal)

    matched = {}
    for tier in TIERS:
        goal = specific.get(tier) or evergreen.get(tier)
        if goal is not None:
            matched[tier] = goal
    return matched


def goal_target(goal: GoalDefinition, day_count: int = 1) -> float:
    """Threshold to compare against, in the goal's unit.

    Daily-rate thresholds become ``round(rate * day_count)``, halves up.
    """
    if goal.unit is ThresholdUnit.RATE_PER_DAY:
        return float(round_half_up(goal.threshold * day_count))
    return goal.threshold


def _entry_target(goals: dict[int, GoalDefinition], day_count: int) -> float:
    return goal_target(goals[min(goals)], day_count)


def resolve_tier(base_code: str, period_label: str, actual: float,
                 goal_defs: Iterable[GoalDefinition], *,
                 direction: Direction = Direction.HIGHER_IS_BETTER,
                 day_count: int = 1) -> TierResolution:
    """Resolve the best tier *actual* reaches.

    Higher-is-better goals are tried from tier 3 down; the first target the
    actual meets wins.  Lower-is-better goals are tried in ascending target
    order; the first target the actual stays below wins.  Thresholds are
    taken literally, even when the table is not monotonic.

    Returns:
        TierResolution with tier 0 and reward 0.0 when nothing is reached,
        or ``NO_GOALS`` when the base has no applicable rows.
    """
    goals = matching_goals(goal_defs, base_code, period_label)
    if not goals:
        return NO_GOALS

    if direction is Direction.LOWER_IS_BETTER:
        candidates = sorted(goals.values(),
                            key=lambda g: (goal_target(g, day_count), -g.tier))
        for goal in candidates:
            target = goal_target(goal, day_count)
            if actual < target:
                return TierResolution(goal.tier, goal.reward_amount, target)
    else:
        for tier in sorted(goals, reverse=True):
            goal = goals[tier]
            target = goal_target(goal, day_count)
            if actual >= target:
                return TierResolution(goal.tier, goal.reward_amount, target)

    return TierResolution(0, 0.0, _entry_target(goals, day_count))


def find_non_monotonic(goal_defs: Iterable[GoalDefinition]) -> list[tuple[Pillar, str, str, dict[int, float]]]:
    """Tier sets whose thresholds break T1 <= T2 <= T3.

    Each month a base's goal table names is checked on the set tier
    resolution actually uses: month-specific rows merged over the evergreen
    ones (see ``matching_goals``).  The evergreen rows are also checked on
    their own, since they apply to every other month.  Each entry
    is ``(pillar, base, period, {tier: threshold})`` with the period as
    first written in the table ("" for the evergreen set).
    """
    groups: dict[tuple, list[GoalDefinition]] = {}
    for goal in goal_defs:
        if goal.tier not in TIERS:
            continue
        groups.setdefault((goal.pillar, normalize_base(goal.base_code)), []).append(goal)

    flagged = []
    for (pillar, base), goals in groups.items():
        periods: dict[str, str] = {}
        for goal in goals:
            periods.setdefault(normalize_period(goal.period), cell_text(goal.period).strip())
        for label in periods.values():
            matched = matching_goals(goals, base, label)
            thresholds = {t: g.threshold for t, g in matched.items()}
            ordered = [thresholds[t] for t in sorted(thresholds)]
            if any(a > b for a, b in zip(ordered, ordered[1:])):
                flagged.append((pillar, base, label, thresholds))
    return flagged
