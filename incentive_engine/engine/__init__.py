"""Incentive computation engine.

- goals.py: Tier resolution against a pillar's goal table
- eligibility.py: Campaign-entry gate on tier-1 Volume
- incentives.py: Per-pillar evaluation, ranking, runs and the virtual wallet

``incentives`` depends on the ``qa`` package, which in turn uses ``goals``;
import it as ``incentive_engine.engine.incentives``.
"""

from .eligibility import GateDecision, evaluate_gate, is_eligible
from .goals import (
    PILLAR_DIRECTIONS,
    Direction,
    TierResolution,
    find_non_monotonic,
    goal_target,
    matching_goals,
    resolve_tier,
)
