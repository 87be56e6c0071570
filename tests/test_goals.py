"""Tests for goal tier resolution."""

import pytest

from incentive_engine.engine.goals import (
    NO_GOALS,
    Direction,
    find_non_monotonic,
    goal_target,
    matching_goals,
    resolve_tier,
)
from incentive_engine.schema.models import GoalDefinition, Pillar, ThresholdUnit


def _make_goals(pillar, thresholds, rewards=(10.0, 20.0, 30.0), base="LRJ01",
                period=""):
    """One goal row per tier from parallel threshold / reward lists."""
    return [
        GoalDefinition(pillar=pillar, base_code=base, tier=tier,
                       threshold=t, reward_amount=r, period=period)
        for tier, (t, r) in enumerate(zip(thresholds, rewards), start=1)
    ]


# ---------------------------------------------------------------------------
# matching_goals
# ---------------------------------------------------------------------------

class TestMatchingGoals:
    def test_base_is_normalized(self):
        goals = _make_goals(Pillar.PROTAGONISM, [1, 2, 3], base="lrj-01")
        assert set(matching_goals(goals, "LRJ 01", "Março")) == {1, 2, 3}

    def test_other_base_ignored(self):
        goals = _make_goals(Pillar.PROTAGONISM, [1, 2, 3], base="LRJ02")
        assert matching_goals(goals, "LRJ01", "Março") == {}

    def test_period_accent_insensitive(self):
        goals = _make_goals(Pillar.VOLUME, [1, 2, 3], period="MARCO")
        assert set(matching_goals(goals, "LRJ01", "Março")) == {1, 2, 3}
        assert matching_goals(goals, "LRJ01", "Abril") == {}

    def test_specific_month_beats_evergreen(self):
        evergreen = _make_goals(Pillar.PROTAGONISM, [1, 2, 3])
        march = _make_goals(Pillar.PROTAGONISM, [5], rewards=[50.0], period="Março")
        matched = matching_goals(evergreen + march, "LRJ01", "Março")
        assert matched[1].threshold == 5
        assert matched[2].threshold == 2

    def test_first_duplicate_wins(self):
        goals = (_make_goals(Pillar.PROTAGONISM, [1], rewards=[10.0])
                 + _make_goals(Pillar.PROTAGONISM, [9], rewards=[90.0]))
        assert matching_goals(goals, "LRJ01", "Março")[1].threshold == 1


# ---------------------------------------------------------------------------
# goal_target
# ---------------------------------------------------------------------------

class TestGoalTarget:
    def test_rate_per_day_scaled(self):
        goal = _make_goals(Pillar.VOLUME, [8.5])[0]
        assert goal.unit is ThresholdUnit.RATE_PER_DAY
        assert goal_target(goal, 3) == 26  # 25.5 rounds up

    def test_other_units_unscaled(self):
        goal = _make_goals(Pillar.DELIVERY_SUCCESS, [97.5])[0]
        assert goal_target(goal, 31) == 97.5


# ---------------------------------------------------------------------------
# resolve_tier
# ---------------------------------------------------------------------------

class TestResolveTier:
    @pytest.fixture
    def goals(self):
        return _make_goals(Pillar.FLEET_COMPLIANCE, [100, 150, 200])

    def test_best_tier_not_cumulative(self, goals):
        res = resolve_tier("LRJ01", "Março", 180, goals)
        assert res.tier == 2
        assert res.reward == 20.0
        assert res.target == 150

    @pytest.mark.parametrize("actual,tier,reward", [
        (99, 0, 0.0), (100, 1, 10.0), (149.9, 1, 10.0), (150, 2, 20.0),
        (200, 3, 30.0), (1000, 3, 30.0),
    ])
    def test_boundaries(self, goals, actual, tier, reward):
        res = resolve_tier("LRJ01", "Março", actual, goals)
        assert (res.tier, res.reward) == (tier, reward)

    def test_tier_never_decreases_as_actual_grows(self, goals):
        tiers = [resolve_tier("LRJ01", "Março", a, goals).tier for a in range(0, 260, 5)]
        assert tiers == sorted(tiers)

    def test_nothing_reached_reports_entry_target(self, goals):
        res = resolve_tier("LRJ01", "Março", 50, goals)
        assert res.tier == 0
        assert res.reward == 0.0
        assert res.target == 100
        assert res.has_goals
        assert not res.reached

    def test_no_goals(self):
        assert resolve_tier("LRJ01", "Março", 50, []) is NO_GOALS
        assert not NO_GOALS.has_goals

    def test_daily_rate_scaled_by_day_count(self):
        goals = _make_goals(Pillar.VOLUME, [10, 15, 20])
        res = resolve_tier("LRJ01", "Março", 160, goals, day_count=10)
        assert res.tier == 2
        assert res.target == 150

    def test_lower_is_better(self):
        goals = _make_goals(Pillar.LOSS_CONTROL, [1.0, 0.5, 0.2])
        lower = Direction.LOWER_IS_BETTER
        assert resolve_tier("LRJ01", "Março", 0.1, goals, direction=lower).tier == 3
        assert resolve_tier("LRJ01", "Março", 0.3, goals, direction=lower).tier == 2
        assert resolve_tier("LRJ01", "Março", 0.7, goals, direction=lower).tier == 1
        res = resolve_tier("LRJ01", "Março", 1.0, goals, direction=lower)
        assert (res.tier, res.reward, res.target) == (0, 0.0, 1.0)

    def test_non_monotonic_resolved_literally(self):
        # T2 below T1: 95 misses T3 (200) and meets T2 (90)
        goals = _make_goals(Pillar.PROTAGONISM, [100, 90, 200])
        res = resolve_tier("LRJ01", "Março", 95, goals)
        assert res.tier == 2
        assert res.reward == 20.0


# ---------------------------------------------------------------------------
# find_non_monotonic
# ---------------------------------------------------------------------------

class TestFindNonMonotonic:
    def test_flags_decreasing_tier(self):
        goals = (_make_goals(Pillar.PROTAGONISM, [100, 90, 200])
                 + _make_goals(Pillar.PROTAGONISM, [1, 2, 3], base="LRJ02"))
        flagged = find_non_monotonic(goals)
        assert len(flagged) == 1
        pillar, base, period, thresholds = flagged[0]
        assert pillar is Pillar.PROTAGONISM
        assert base == "LRJ01"
        assert period == ""
        assert thresholds == {1: 100, 2: 90, 3: 200}

    def test_equal_thresholds_allowed(self):
        assert find_non_monotonic(_make_goals(Pillar.VOLUME, [5, 5, 5])) == []

    def test_groups_by_period(self):
        goals = (_make_goals(Pillar.VOLUME, [10], period="Março")
                 + [GoalDefinition(Pillar.VOLUME, "LRJ01", 2, 5, 20.0, period="Abril")])
        assert find_non_monotonic(goals) == []

    def test_month_row_merged_over_evergreen(self):
        goals = (_make_goals(Pillar.VOLUME, [5, 10, 15])
                 + [GoalDefinition(Pillar.VOLUME, "LRJ01", 2, 3, 20.0, period="Março")])
        flagged = find_non_monotonic(goals)
        assert len(flagged) == 1
        _, base, period, thresholds = flagged[0]
        assert (base, period) == ("LRJ01", "Março")
        assert thresholds == {1: 5, 2: 3, 3: 15}

    def test_month_row_fixing_evergreen_gap(self):
        goals = (_make_goals(Pillar.VOLUME, [5, 2, 15])
                 + [GoalDefinition(Pillar.VOLUME, "LRJ01", 2, 8, 20.0, period="Março")])
        assert [f[2] for f in find_non_monotonic(goals)] == [""]
