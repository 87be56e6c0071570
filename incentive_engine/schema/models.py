"""Incentive data model - the contract between ingestion, engine, and CLI.

Defines the typed input records the collaborators produce (operational rows,
compliance rows, loss events, survey scores, goal tables, base directory) and
the immutable result objects the engine emits for every base and pillar.
"""

import datetime
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class Pillar(Enum):
    """The five independent performance dimensions of the campaign."""
    VOLUME = "volume"                        # Carregamento
    DELIVERY_SUCCESS = "delivery_success"    # Operacional
    FLEET_COMPLIANCE = "fleet_compliance"    # Captação
    LOSS_CONTROL = "loss_control"            # Perdas
    PROTAGONISM = "protagonism"              # Protagonismo

    @property
    def label(self) -> str:
        return PILLAR_LABELS[self]


PILLAR_ORDER = (
    Pillar.VOLUME,
    Pillar.DELIVERY_SUCCESS,
    Pillar.FLEET_COMPLIANCE,
    Pillar.LOSS_CONTROL,
    Pillar.PROTAGONISM,
)

PILLAR_LABELS = {
    Pillar.VOLUME: "Carregamento",
    Pillar.DELIVERY_SUCCESS: "Operacional",
    Pillar.FLEET_COMPLIANCE: "Captação",
    Pillar.LOSS_CONTROL: "Perdas",
    Pillar.PROTAGONISM: "Protagonismo",
}


class ThresholdUnit(Enum):
    """What a goal threshold measures."""
    RATE_PER_DAY = "rate_per_day"    # Unique routes per day, scaled by window length
    PERCENT = "percent"              # 0-100 percentage
    COUNT = "count"                  # Whole drivers
    SCORE = "score"                  # Survey average


PILLAR_UNITS = {
    Pillar.VOLUME: ThresholdUnit.RATE_PER_DAY,
    Pillar.DELIVERY_SUCCESS: ThresholdUnit.PERCENT,
    Pillar.FLEET_COMPLIANCE: ThresholdUnit.COUNT,
    Pillar.LOSS_CONTROL: ThresholdUnit.PERCENT,
    Pillar.PROTAGONISM: ThresholdUnit.SCORE,
}


class ComplianceStatus(Enum):
    """Tri-state document/driver/risk check."""
    COMPLIANT = "compliant"
    NON_COMPLIANT = "non-compliant"
    PENDING = "pending"


class ResultStatus(Enum):
    """Tag of every resolver result."""
    EVALUATED = "evaluated"
    NOT_APPLICABLE = "not-applicable"


class GateStatus(Enum):
    """Outcome of the campaign-entry check."""
    OPEN = "open"
    CLOSED = "closed"
    NOT_APPLICABLE = "not-applicable"


# ---------------------------------------------------------------------------
# Input records
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class OperationalRecord:
    """One driver/day/base row from the route sheet."""
    date: datetime.date
    base_code: str
    driver_name: str
    shipment_count: int = 0
    delivered_count: int = 0
    pending_count: int = 0
    route_code: str | None = None

    @property
    def failed_count(self) -> int:
        return max(0, self.shipment_count - self.delivered_count)


@dataclass(frozen=True)
class ComplianceRecord:
    """Fleet registry row for a single driver."""
    base_code: str
    driver_name: str
    license_status: ComplianceStatus
    driver_status: ComplianceStatus
    risk_status: ComplianceStatus

    @property
    def is_compliant(self) -> bool:
        return all(
            s is ComplianceStatus.COMPLIANT
            for s in (self.license_status, self.driver_status, self.risk_status)
        )


@dataclass(frozen=True)
class LossEvent:
    """One failed-delivery incident."""
    date: datetime.date
    base_code: str
    driver_name: str
    tracking_id: str
    reversed: bool = False


@dataclass(frozen=True)
class ProtagonismScore:
    """Mean survey score for a base."""
    base_code: str
    average_score: float
    response_count: int = 0


@dataclass(frozen=True)
class GoalDefinition:
    """A single tier row of a pillar's goal table.

    ``period`` is a month label ("Janeiro", "Fevereiro", ...); an empty
    period means the row applies to every month.
    """
    pillar: Pillar
    base_code: str
    tier: int
    threshold: float
    reward_amount: float
    period: str = ""
    unit: ThresholdUnit | None = None

    def __post_init__(self):
        if self.unit is None:
            object.__setattr__(self, "unit", PILLAR_UNITS[self.pillar])

    @property
    def is_evergreen(self) -> bool:
        return not self.period.strip()

    def to_dict(self) -> dict:
        return {
            "pillar": self.pillar.value,
            "base_code": self.base_code,
            "tier": self.tier,
            "threshold": self.threshold,
            "reward_amount": self.reward_amount,
            "period": self.period,
            "unit": self.unit.value,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "GoalDefinition":
        return cls(
            pillar=Pillar(d["pillar"]),
            base_code=d["base_code"],
            tier=int(d["tier"]),
            threshold=float(d["threshold"]),
            reward_amount=float(d["reward_amount"]),
            period=d.get("period", ""),
            unit=ThresholdUnit(d["unit"]) if d.get("unit") else None,
        )


@dataclass(frozen=True)
class Base:
    """Reference metadata for an operating unit."""
    code: str
    locality: str = ""
    leader_name: str = ""
    coordinator_name: str = ""

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "locality": self.locality,
            "leader_name": self.leader_name,
            "coordinator_name": self.coordinator_name,
        }


@dataclass(frozen=True)
class GuaranteedBalance:
    """Amount already credited to a base in the virtual bank ledger."""
    base_code: str
    accumulated: float
    months_in_campaign: int = 0
    goal_reached: bool = False
    status_text: str = ""


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PillarResult:
    """Evaluation of one pillar for one base.

    ``reward`` is ``None`` exactly when the pillar is not applicable;
    ``0.0`` means the pillar was evaluated and no tier was reached.
    ``tier``, ``actual`` and ``target`` are kept for diagnostics even when
    the reward is not applicable.
    """
    pillar: Pillar
    status: ResultStatus
    reward: float | None
    tier: int = 0
    actual: float = 0.0
    target: float | None = None
    reason: str = ""

    @property
    def is_applicable(self) -> bool:
        return self.status is ResultStatus.EVALUATED

    @property
    def value(self) -> float:
        """Reward contribution to totals (not-applicable counts as zero)."""
        return self.reward if self.reward is not None else 0.0

    def to_dict(self) -> dict:
        d: dict[str, Any] = {
            "pillar": self.pillar.value,
            "status": self.status.value,
            "reward": self.reward,
            "tier": self.tier,
            "actual": self.actual,
            "target": self.target,
        }
        if self.reason:
            d["reason"] = self.reason
        return d


@dataclass(frozen=True)
class BaseIncentiveReport:
    """Per-base breakdown across the five pillars."""
    base: Base
    gate: GateStatus
    pillar_results: tuple[PillarResult, ...] = field(default_factory=tuple)

    @property
    def base_code(self) -> str:
        return self.base.code

    @property
    def eligible(self) -> bool:
        return self.gate is GateStatus.OPEN

    @property
    def total(self) -> float:
        return sum(r.value for r in self.pillar_results)

    def result_for(self, pillar: Pillar) -> PillarResult | None:
        for r in self.pillar_results:
            if r.pillar is pillar:
                return r
        return None

    def to_dict(self) -> dict:
        return {
            "base": self.base.to_dict(),
            "gate": self.gate.value,
            "eligible": self.eligible,
            "total": self.total,
            "pillars": [r.to_dict() for r in self.pillar_results],
        }
