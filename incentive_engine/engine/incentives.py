"""Incentive aggregation across the five pillars.

Two phases:

1. ``build_snapshots`` joins every source on the normalized base code and
   freezes one ``BaseSnapshot`` per directory base (routes, shipments,
   compliant drivers, losses, survey score).
2. Each pillar has its own pure evaluator that turns a snapshot, the
   window, the pillar's goal rows and the gate decision into a
   ``PillarResult``.

``IncentiveEngine.run`` ties the phases together and adds the fleet totals,
the activity that could not be attributed to a base, and the data-quality
checks.  Nothing here performs I/O; the data arrives as a ``SourceData``.

Usage::

    engine = IncentiveEngine(provider.load(window))
    run = engine.run(window)
    for report in run.reports:
        print(report.base_code, report.total)
"""

from dataclasses import dataclass, field
from typing import Callable, Iterable

from incentive_engine.processor.aggregation import (
    BaseActivity,
    UnattributedVolume,
    average_scores,
    count_compliant_drivers,
    count_losses,
    fleet_totals,
    summarize_activity,
    unattributed_volume,
)
from incentive_engine.processor.keys import normalize_base, normalize_name
from incentive_engine.processor.periods import ReportWindow
from incentive_engine.qa.validator import DataQualityValidator, QAResult
from incentive_engine.schema.models import (
    PILLAR_ORDER,
    Base,
    BaseIncentiveReport,
    ComplianceRecord,
    GateStatus,
    GoalDefinition,
    GuaranteedBalance,
    LossEvent,
    OperationalRecord,
    Pillar,
    PillarResult,
    ProtagonismScore,
    ResultStatus,
)

from .eligibility import GateDecision, evaluate_gate
from .goals import PILLAR_DIRECTIONS, resolve_tier


REASON_GATE_CLOSED = "eligibility gate closed"
REASON_NO_GOAL = "no goal definition"


# ---------------------------------------------------------------------------
# Input bundle
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SourceData:
    """Everything one engine run reads, already ingested."""
    operational_records: list[OperationalRecord] = field(default_factory=list)
    compliance_records: list[ComplianceRecord] = field(default_factory=list)
    loss_events: list[LossEvent] = field(default_factory=list)
    protagonism_scores: list[ProtagonismScore] = field(default_factory=list)
    goal_definitions: dict[Pillar, list[GoalDefinition]] = field(default_factory=dict)
    bases: list[Base] = field(default_factory=list)
    balances: list[GuaranteedBalance] = field(default_factory=list)

    def goals_for(self, pillar: Pillar) -> list[GoalDefinition]:
        return self.goal_definitions.get(pillar, [])


# ---------------------------------------------------------------------------
# Phase 1: per-base snapshots
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class BaseSnapshot:
    """Immutable per-base inputs of the pillar evaluators."""
    base: Base
    activity: BaseActivity
    compliant_drivers: int = 0
    loss_count: int = 0
    protagonism_score: float = 0.0

    @property
    def code(self) -> str:
        return normalize_base(self.base.code)

    @property
    def loss_rate(self) -> float:
        """Losses per 100 shipments; 0 without shipments."""
        if not self.activity.shipment_count:
            return 0.0
        return self.loss_count / self.activity.shipment_count * 100


def build_snapshots(data: SourceData, window: ReportWindow) -> dict[str, BaseSnapshot]:
    """One snapshot per directory base, keyed by normalized code.

    Bases that repeat under the same normalized code keep the first entry.
    """
    activities = summarize_activity(data.operational_records, window)
    compliant = count_compliant_drivers(data.compliance_records)
    losses = count_losses(data.loss_events, window)
    scores = average_scores(data.protagonism_scores)

    snapshots: dict[str, BaseSnapshot] = {}
    for base in data.bases:
        code = normalize_base(base.code)
        if not code or code in snapshots:
            continue
        snapshots[code] = BaseSnapshot(
            base=base,
            activity=activities.get(code, BaseActivity(code)),
            compliant_drivers=compliant.get(code, 0),
            loss_count=losses.get(code, 0),
            protagonism_score=scores.get(code, 0.0),
        )
    return snapshots


# ---------------------------------------------------------------------------
# Phase 2: pillar evaluators
# ---------------------------------------------------------------------------

def _not_applicable(pillar: Pillar, reason: str, actual: float = 0.0,
                    tier: int = 0, target: float | None = None) -> PillarResult:
    return PillarResult(pillar, ResultStatus.NOT_APPLICABLE, None,
                        tier=tier, actual=actual, target=target, reason=reason)


def _evaluate_gated(pillar: Pillar, snapshot: BaseSnapshot, window: ReportWindow,
                    actual: float, goals: Iterable[GoalDefinition],
                    gate: GateDecision) -> PillarResult:
    """Shared body of the four pillars that only pay once the gate is open."""
    if gate.status is GateStatus.NOT_APPLICABLE:
        return _not_applicable(pillar, gate.reason, actual)
    if not gate.is_open:
        return _not_applicable(pillar, REASON_GATE_CLOSED, actual)

    resolution = resolve_tier(snapshot.code, window.month_label, actual, goals,
                              direction=PILLAR_DIRECTIONS[pillar])
    if not resolution.has_goals:
        return PillarResult(pillar, ResultStatus.EVALUATED, 0.0,
                            actual=actual, reason=REASON_NO_GOAL)
    return PillarResult(pillar, ResultStatus.EVALUATED, resolution.reward,
                        tier=resolution.tier, actual=actual,
                        target=resolution.target)


def evaluate_volume(snapshot: BaseSnapshot, window: ReportWindow,
                    goals: Iterable[GoalDefinition],
                    gate: GateDecision) -> PillarResult:
    """Unique routes against the month's daily-rate goals.

    With a closed gate the pillar is not applicable, but the attempted tier,
    the route count and the tier-1 target are kept for diagnostics.
    """
    actual = snapshot.activity.unique_route_count
    if gate.status is GateStatus.NOT_APPLICABLE:
        return _not_applicable(Pillar.VOLUME, gate.reason, actual)

    resolution = resolve_tier(snapshot.code, window.month_label, actual, goals,
                              direction=PILLAR_DIRECTIONS[Pillar.VOLUME],
                              day_count=window.day_count)
    if not gate.is_open:
        return _not_applicable(Pillar.VOLUME,
                               f"{REASON_GATE_CLOSED}: {gate.reason}",
                               actual, tier=resolution.tier, target=gate.target)
    return PillarResult(Pillar.VOLUME, ResultStatus.EVALUATED, resolution.reward,
                        tier=resolution.tier, actual=actual,
                        target=resolution.target)


def evaluate_delivery_success(snapshot: BaseSnapshot, window: ReportWindow,
                              goals: Iterable[GoalDefinition],
                              gate: GateDecision) -> PillarResult:
    """Delivered / shipped x 100 against percentage goals."""
    return _evaluate_gated(Pillar.DELIVERY_SUCCESS, snapshot, window,
                           snapshot.activity.delivery_success_rate, goals, gate)


def evaluate_fleet_compliance(snapshot: BaseSnapshot, window: ReportWindow,
                              goals: Iterable[GoalDefinition],
                              gate: GateDecision) -> PillarResult:
    """Fully compliant drivers against headcount goals."""
    return _evaluate_gated(Pillar.FLEET_COMPLIANCE, snapshot, window,
                           snapshot.compliant_drivers, goals, gate)


def evaluate_loss_control(snapshot: BaseSnapshot, window: ReportWindow,
                          goals: Iterable[GoalDefinition],
                          gate: GateDecision) -> PillarResult:
    """Loss rate against ceilings; lower is better."""
    return _evaluate_gated(Pillar.LOSS_CONTROL, snapshot, window,
                           snapshot.loss_rate, goals, gate)


def evaluate_protagonism(snapshot: BaseSnapshot, window: ReportWindow,
                         goals: Iterable[GoalDefinition],
                         gate: GateDecision) -> PillarResult:
    """Survey average (0 without responses) against score goals."""
    return _evaluate_gated(Pillar.PROTAGONISM, snapshot, window,
                           snapshot.protagonism_score, goals, gate)


PILLAR_EVALUATORS: dict[Pillar, Callable[..., PillarResult]] = {
    Pillar.VOLUME: evaluate_volume,
    Pillar.DELIVERY_SUCCESS: evaluate_delivery_success,
    Pillar.FLEET_COMPLIANCE: evaluate_fleet_compliance,
    Pillar.LOSS_CONTROL: evaluate_loss_control,
    Pillar.PROTAGONISM: evaluate_protagonism,
}


def evaluate_base(snapshot: BaseSnapshot, window: ReportWindow,
                  data: SourceData) -> BaseIncentiveReport:
    """Gate a base and evaluate its five pillars."""
    gate = evaluate_gate(snapshot.code, window, snapshot.activity.unique_route_count,
                         data.goals_for(Pillar.VOLUME))
    results = tuple(
        PILLAR_EVALUATORS[pillar](snapshot, window, data.goals_for(pillar), gate)
        for pillar in PILLAR_ORDER
    )
    return BaseIncentiveReport(base=snapshot.base, gate=gate.status,
                               pillar_results=results)


# ---------------------------------------------------------------------------
# Ranking and search
# ---------------------------------------------------------------------------

def _rank_key(report: BaseIncentiveReport):
    return (-report.total, normalize_base(report.base_code))


def rank_reports(reports: Iterable[BaseIncentiveReport]) -> list[BaseIncentiveReport]:
    """Total descending, ties broken by normalized base code."""
    return sorted(reports, key=_rank_key)


def podium(reports: Iterable[BaseIncentiveReport], size: int = 3) -> list[BaseIncentiveReport]:
    return rank_reports(reports)[:size]


def search_leaders(reports: Iterable[BaseIncentiveReport],
                   term: str) -> list[BaseIncentiveReport]:
    """Reports whose leader name contains *term* (case-insensitive), ranked.

    A blank term matches nothing.
    """
    needle = normalize_name(term)
    if not needle:
        return []
    return [r for r in rank_reports(reports)
            if needle in normalize_name(r.base.leader_name)]


def compute_incentive_report(data: SourceData, window: ReportWindow,
                             base_code: str | None = None) -> list[BaseIncentiveReport]:
    """Per-base incentive breakdown for *window*, in ranking order.

    Args:
        data: Ingested sources.
        window: Reporting window.
        base_code: Restrict the result to one base (any spelling).

    Returns:
        One report per directory base (or the single requested base; empty
        when it is not in the directory).
    """
    snapshots = build_snapshots(data, window)
    if base_code is not None:
        wanted = normalize_base(base_code)
        snapshots = {k: v for k, v in snapshots.items() if k == wanted}
    return rank_reports(evaluate_base(s, window, data) for s in snapshots.values())


# ---------------------------------------------------------------------------
# IncentiveEngine
# ---------------------------------------------------------------------------

@dataclass
class IncentiveRun:
    """Everything one engine run produced."""
    window: ReportWindow
    reports: list[BaseIncentiveReport]
    fleet: BaseActivity
    unattributed: list[UnattributedVolume] = field(default_factory=list)
    quality: QAResult = field(default_factory=QAResult)

    @property
    def total(self) -> float:
        return sum(r.total for r in self.reports)

    @property
    def eligible_count(self) -> int:
        return sum(1 for r in self.reports if r.eligible)

    def to_dict(self) -> dict:
        return {
            "window": {
                "start": self.window.start.isoformat(),
                "end": self.window.end.isoformat(),
                "month": self.window.month_label,
                "day_count": self.window.day_count,
                "single_month": self.window.is_single_month,
            },
            "total": self.total,
            "eligible_count": self.eligible_count,
            "reports": [r.to_dict() for r in self.reports],
            "fleet": self.fleet.to_dict(),
            "unattributed": [u.to_dict() for u in self.unattributed],
            "quality": {
                "passed": self.quality.passed,
                "summary": self.quality.summary(),
                "issues": [i.to_dict() for i in self.quality.issues],
            },
        }


class IncentiveEngine:
    """Runs the full computation over one data bundle.

    Parameters
    ----------
    data : SourceData
        Ingested sources.
    source_warnings : list[str], optional
        Load failures to surface in the run's quality result.
    """

    def __init__(self, data: SourceData, source_warnings: list[str] | None = None) -> None:
        self.data = data
        self.source_warnings = list(source_warnings or [])

    def run(self, window: ReportWindow, base_code: str | None = None) -> IncentiveRun:
        reports = compute_incentive_report(self.data, window, base_code)
        activities = summarize_activity(self.data.operational_records, window)
        quality = DataQualityValidator(self.data, self.source_warnings).validate(window)
        return IncentiveRun(
            window=window,
            reports=reports,
            fleet=fleet_totals(self.data.operational_records, window),
            unattributed=unattributed_volume(activities, self.data.bases),
            quality=quality,
        )


# ---------------------------------------------------------------------------
# Virtual wallet
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class WalletEntry:
    """Guaranteed ledger balance plus the current window's projection."""
    base: Base
    guaranteed: float = 0.0
    projected: float = 0.0
    months_in_campaign: int = 0
    status_text: str = ""

    @property
    def estimated(self) -> float:
        return self.guaranteed + self.projected

    def to_dict(self) -> dict:
        return {
            "base": self.base.to_dict(),
            "guaranteed": self.guaranteed,
            "projected": self.projected,
            "estimated": self.estimated,
            "months_in_campaign": self.months_in_campaign,
            "status_text": self.status_text,
        }


@dataclass(frozen=True)
class Wallet:
    entries: tuple[WalletEntry, ...] = ()

    @property
    def total_guaranteed(self) -> float:
        return sum(e.guaranteed for e in self.entries)

    @property
    def total_projected(self) -> float:
        return sum(e.projected for e in self.entries)

    @property
    def total_estimated(self) -> float:
        return self.total_guaranteed + self.total_projected

    def to_dict(self) -> dict:
        return {
            "entries": [e.to_dict() for e in self.entries],
            "total_guaranteed": self.total_guaranteed,
            "total_projected": self.total_projected,
            "total_estimated": self.total_estimated,
        }


def _wallet_matches(entry: WalletEntry, query: str) -> bool:
    # Codes compare the way base keys do ("lrj 01" finds LRJ01); names casefolded.
    code = normalize_base(query)
    if code and code in normalize_base(entry.base.code):
        return True
    needle = normalize_name(query)
    return any(
        needle in normalize_name(name)
        for name in (entry.base.leader_name, entry.base.coordinator_name)
    )


def build_wallet(reports: Iterable[BaseIncentiveReport],
                 balances: Iterable[GuaranteedBalance],
                 query: str = "") -> Wallet:
    """Join ledger balances with projected rewards.

    Every ledger row and every reported base appears once; a base missing
    on one side gets 0 there.  *query* keeps entries whose base code
    (separators and legacy prefixes ignored), leader or coordinator
    contains it (case-insensitive).  Entries are
    ordered by estimated balance, highest first.
    """
    by_code = {normalize_base(r.base_code): r for r in reports}
    ledger: dict[str, GuaranteedBalance] = {}
    for b in balances:
        code = normalize_base(b.base_code)
        if code:
            ledger.setdefault(code, b)

    entries = []
    for code in sorted(set(by_code) | set(ledger)):
        report = by_code.get(code)
        balance = ledger.get(code)
        entries.append(WalletEntry(
            base=report.base if report else Base(code=balance.base_code),
            guaranteed=balance.accumulated if balance else 0.0,
            projected=report.total if report else 0.0,
            months_in_campaign=balance.months_in_campaign if balance else 0,
            status_text=balance.status_text if balance else "",
        ))

    if normalize_name(query):
        entries = [e for e in entries if _wallet_matches(e, query)]
    entries.sort(key=lambda e: (-e.estimated, normalize_base(e.base.code)))
    return Wallet(tuple(entries))
