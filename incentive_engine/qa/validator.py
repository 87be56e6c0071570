"""Data-quality checks on the inputs of an incentive run.

The engine tolerates imperfect sheets: non-monotonic goal tiers are
resolved literally and activity under unknown base codes is left out of
the per-base reports.  This module makes those conditions visible instead
of letting them pass silently.

Usage::

    from incentive_engine.qa.validator import DataQualityValidator

    validator = DataQualityValidator(data)
    result = validator.validate(window)
    assert result.passed, result.summary()
"""

from collections import Counter
from dataclasses import dataclass, field

from incentive_engine.engine.goals import find_non_monotonic, matching_goals
from incentive_engine.processor.aggregation import summarize_activity, unattributed_volume
from incentive_engine.processor.keys import normalize_base, normalize_period
from incentive_engine.processor.periods import ReportWindow
from incentive_engine.schema.field_maps import goal_source
from incentive_engine.schema.models import PILLAR_ORDER, Pillar


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass
class Issue:
    """A single data-quality issue."""
    severity: str       # "error" or "warning"
    source: str         # e.g. "operations", "goals_volume"; "" for run-level issues
    base_code: str      # "" for source-level issues
    category: str       # e.g. "malformed_threshold", "unattributed_volume"
    message: str

    def __str__(self) -> str:
        loc = self.source or "run"
        if self.base_code:
            loc += f" / {self.base_code}"
        return f"[{self.severity.upper()}] {loc}: {self.message}"

    def to_dict(self) -> dict:
        return {
            "severity": self.severity,
            "source": self.source,
            "base_code": self.base_code,
            "category": self.category,
            "message": self.message,
        }


@dataclass
class QAResult:
    """Aggregated result of the data-quality checks."""
    issues: list[Issue] = field(default_factory=list)

    @property
    def errors(self) -> list[Issue]:
        return [i for i in self.issues if i.severity == "error"]

    @property
    def warnings(self) -> list[Issue]:
        return [i for i in self.issues if i.severity == "warning"]

    @property
    def passed(self) -> bool:
        return len(self.errors) == 0

    @property
    def error_count(self) -> int:
        return len(self.errors)

    @property
    def warning_count(self) -> int:
        return len(self.warnings)

    def by_category(self, category: str) -> list[Issue]:
        return [i for i in self.issues if i.category == category]

    def summary(self) -> str:
        """One-line summary string."""
        status = "PASS" if self.passed else "FAIL"
        return (
            f"QA {status}: {self.error_count} error(s), "
            f"{self.warning_count} warning(s)"
        )

    def report(self) -> str:
        """Multi-line report of all issues."""
        lines = [self.summary()]
        for issue in self.issues:
            lines.append(f"  {issue}")
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# DataQualityValidator
# ---------------------------------------------------------------------------

class DataQualityValidator:
    """Checks a loaded data bundle for conditions the engine only tolerates.

    Parameters
    ----------
    data : SourceData
        The bundle the engine will run on.
    source_warnings : list[str], optional
        Load failures reported by the collaborator layer.
    """

    def __init__(self, data, source_warnings: list[str] | None = None) -> None:
        self.data = data
        self.source_warnings = list(source_warnings or [])

    def validate(self, window: ReportWindow | None = None) -> QAResult:
        """Run every check.

        Parameters
        ----------
        window : ReportWindow, optional
            Restricts activity checks to the window and enables the
            per-month goal coverage check.

        Returns
        -------
        QAResult
            Aggregated validation result.
        """
        result = QAResult()
        self._check_source_warnings(result)
        self._check_required_sources(result)
        self._check_goal_tables(result)
        self._check_thresholds(result)
        self._check_duplicate_goals(result)
        self._check_unattributed(window, result)
        if window is not None and window.is_single_month:
            self._check_entry_goals(window, result)
        return result

    # ------------------------------------------------------------------
    # Source-level checks
    # ------------------------------------------------------------------

    def _check_source_warnings(self, result: QAResult) -> None:
        for message in self.source_warnings:
            result.issues.append(Issue(
                severity="warning",
                source="",
                base_code="",
                category="source_unavailable",
                message=message,
            ))

    def _check_required_sources(self, result: QAResult) -> None:
        """Without operations or a base directory there is nothing to rank."""
        if not self.data.operational_records:
            result.issues.append(Issue(
                severity="error",
                source="operations",
                base_code="",
                category="empty_source",
                message="No operational records loaded",
            ))
        if not self.data.bases:
            result.issues.append(Issue(
                severity="error",
                source="bases",
                base_code="",
                category="empty_source",
                message="Base directory is empty",
            ))

    def _check_goal_tables(self, result: QAResult) -> None:
        for pillar in PILLAR_ORDER:
            if not self.data.goals_for(pillar):
                result.issues.append(Issue(
                    severity="warning",
                    source=goal_source(pillar),
                    base_code="",
                    category="missing_goals",
                    message=f"No {pillar.label} goals loaded; the pillar pays nothing",
                ))

    # ------------------------------------------------------------------
    # Goal-table checks
    # ------------------------------------------------------------------

    def _all_goals(self) -> list:
        goals = []
        for pillar in PILLAR_ORDER:
            goals.extend(self.data.goals_for(pillar))
        return goals

    def _check_thresholds(self, result: QAResult) -> None:
        """Flag tier sets whose thresholds are not T1 <= T2 <= T3."""
        for pillar, base, period, thresholds in find_non_monotonic(self._all_goals()):
            tiers = ", ".join(f"T{t}={thresholds[t]:g}" for t in sorted(thresholds))
            result.issues.append(Issue(
                severity="warning",
                source=goal_source(pillar),
                base_code=base,
                category="malformed_threshold",
                message=(
                    f"Non-monotonic thresholds ({tiers})"
                    + (f" for '{period}'" if period else "")
                    + "; tiers are resolved as written"
                ),
            ))

    def _check_duplicate_goals(self, result: QAResult) -> None:
        """Flag repeated (pillar, base, period, tier) rows; only the first is used."""
        counts = Counter(
            (g.pillar, normalize_base(g.base_code), normalize_period(g.period), g.tier)
            for g in self._all_goals()
        )
        for (pillar, base, period, tier), n in sorted(
                counts.items(), key=lambda kv: (kv[0][0].value,) + kv[0][1:]):
            if n > 1:
                result.issues.append(Issue(
                    severity="warning",
                    source=goal_source(pillar),
                    base_code=base,
                    category="duplicate_goal",
                    message=f"Tier {tier} defined {n} times; the first row is used",
                ))

    def _check_entry_goals(self, window: ReportWindow, result: QAResult) -> None:
        """Directory bases without a tier-1 Volume goal for the month can never enter."""
        volume_goals = self.data.goals_for(Pillar.VOLUME)
        for base in self.data.bases:
            if 1 not in matching_goals(volume_goals, base.code, window.month_label):
                result.issues.append(Issue(
                    severity="warning",
                    source=goal_source(Pillar.VOLUME),
                    base_code=normalize_base(base.code),
                    category="missing_goal",
                    message=f"No tier-1 volume goal for {window.month_label}",
                ))

    # ------------------------------------------------------------------
    # Join checks
    # ------------------------------------------------------------------

    def _check_unattributed(self, window: ReportWindow | None,
                            result: QAResult) -> None:
        """Activity under base codes the directory does not know."""
        activities = summarize_activity(self.data.operational_records, window)
        for miss in unattributed_volume(activities, self.data.bases):
            result.issues.append(Issue(
                severity="warning",
                source="operations",
                base_code=miss.base_code,
                category="unattributed_volume",
                message=(
                    f"{miss.unique_route_count} route(s), {miss.shipment_count} "
                    f"shipment(s) under a base missing from the directory"
                ),
            ))


# ---------------------------------------------------------------------------
# Convenience function
# ---------------------------------------------------------------------------

def validate_sources(data, window: ReportWindow | None = None,
                     source_warnings: list[str] | None = None) -> QAResult:
    """One-shot convenience: validate a data bundle."""
    return DataQualityValidator(data, source_warnings).validate(window)
