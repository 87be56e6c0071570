"""Unique-event aggregation of the raw operational sheets.

Turns operational rows, loss events, compliance rows, and survey scores into
immutable per-base summaries keyed by normalized base code.  Nothing here
knows about goals or rewards; the engine consumes these summaries.

Volume is counted in *unique routes*: each day, a base's rows are reduced to
the set of distinct route codes.  A row without a route code stands for its
own route and gets a synthetic key derived from (base, date, row position),
so two route-less rows are never merged and the count is reproducible.
"""

import hashlib
from dataclasses import dataclass
from enum import Enum
from typing import Iterable

import pandas as pd

from incentive_engine.schema.models import (
    Base,
    ComplianceRecord,
    LossEvent,
    OperationalRecord,
    ProtagonismScore,
)

from .keys import normalize_base, normalize_name
from .periods import ReportWindow, round_half_up


FRAME_COLUMNS = ["base", "date", "route_key", "shipments", "delivered",
                 "pending", "failed"]
_COUNT_COLUMNS = ["shipments", "delivered", "pending", "failed"]

FLEET_CODE = "*"

# Delivery-success bands (percent, exclusive lower bounds)
GOAL_MET_ABOVE = 97.99
NEAR_GOAL_ABOVE = 94.99


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _safe_rate(numerator, denominator) -> float:
    """numerator / denominator * 100, or 0.0 without a denominator."""
    if not denominator:
        return 0.0
    return numerator / denominator * 100


def route_key(record: OperationalRecord, ordinal: int) -> str:
    """Dedup key of a record's route.

    Records with a route code share its key; route-less records get a key
    unique to their position in the input.
    """
    code = (record.route_code or "").strip()
    if code:
        return code
    seed = f"{normalize_base(record.base_code)}|{record.date.isoformat()}|{ordinal}"
    return "~" + hashlib.sha1(seed.encode("utf-8")).hexdigest()[:16]


def records_frame(records: Iterable[OperationalRecord],
                  window: ReportWindow | None = None) -> pd.DataFrame:
    """Flatten records into a frame with normalized base and route keys.

    Row ordinals are taken over the full input before the window filter, so
    the same record gets the same synthetic key whatever the window.
    """
    rows = []
    for ordinal, r in enumerate(records):
        if window is not None and not window.contains(r.date):
            continue
        rows.append({
            "base": normalize_base(r.base_code),
            "date": r.date,
            "route_key": route_key(r, ordinal),
            "shipments": r.shipment_count,
            "delivered": r.delivered_count,
            "pending": r.pending_count,
            "failed": r.failed_count,
        })
    return pd.DataFrame(rows, columns=FRAME_COLUMNS)


# ---------------------------------------------------------------------------
# BaseActivity
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class BaseActivity:
    """Aggregated operational activity of one base over a window.

    ``daily_counts`` holds the unique-route count of every day that has at
    least one record, in date order.  Shipment totals are plain row sums and
    are not affected by route dedup.
    """
    base_code: str
    daily_counts: tuple[int, ...] = ()
    shipment_count: int = 0
    delivered_count: int = 0
    pending_count: int = 0
    failed_count: int = 0

    @property
    def unique_route_count(self) -> int:
        return sum(self.daily_counts)

    @property
    def days_operated(self) -> int:
        return len(self.daily_counts)

    @property
    def average_load(self) -> int:
        if not self.daily_counts:
            return 0
        return round_half_up(sum(self.daily_counts) / len(self.daily_counts))

    @property
    def peak_load(self) -> int:
        return max(self.daily_counts, default=0)

    @property
    def delivery_success_rate(self) -> float:
        return _safe_rate(self.delivered_count, self.shipment_count)

    @property
    def pending_rate(self) -> float:
        return _safe_rate(self.pending_count, self.shipment_count)

    @property
    def failure_rate(self) -> float:
        return _safe_rate(self.failed_count, self.shipment_count)

    def to_dict(self) -> dict:
        return {
            "base_code": self.base_code,
            "unique_route_count": self.unique_route_count,
            "days_operated": self.days_operated,
            "average_load": self.average_load,
            "peak_load": self.peak_load,
            "shipment_count": self.shipment_count,
            "delivered_count": self.delivered_count,
            "pending_count": self.pending_count,
            "failed_count": self.failed_count,
            "delivery_success_rate": self.delivery_success_rate,
        }


def summarize_activity(records: Iterable[OperationalRecord],
                       window: ReportWindow | None = None) -> dict[str, BaseActivity]:
    """Per-base activity for the records inside *window* (all when ``None``)."""
    frame = records_frame(records, window)
    if frame.empty:
        return {}

    daily = frame.groupby(["base", "date"], sort=True)["route_key"].nunique()
    sums = frame.groupby("base", sort=True)[_COUNT_COLUMNS].sum()

    summaries = {}
    for base, totals in sums.iterrows():
        summaries[base] = BaseActivity(
            base_code=base,
            daily_counts=tuple(int(c) for c in daily.xs(base, level="base")),
            shipment_count=int(totals["shipments"]),
            delivered_count=int(totals["delivered"]),
            pending_count=int(totals["pending"]),
            failed_count=int(totals["failed"]),
        )
    return summaries


def fleet_totals(records: Iterable[OperationalRecord],
                 window: ReportWindow | None = None) -> BaseActivity:
    """Activity of the whole fleet, routes deduplicated per base and day."""
    frame = records_frame(records, window)
    if frame.empty:
        return BaseActivity(FLEET_CODE)

    keys = frame["base"] + "|" + frame["route_key"]
    daily = keys.groupby(frame["date"], sort=True).nunique()
    totals = frame[_COUNT_COLUMNS].sum()
    return BaseActivity(
        base_code=FLEET_CODE,
        daily_counts=tuple(int(c) for c in daily),
        shipment_count=int(totals["shipments"]),
        delivered_count=int(totals["delivered"]),
        pending_count=int(totals["pending"]),
        failed_count=int(totals["failed"]),
    )


# ---------------------------------------------------------------------------
# Other sources
# ---------------------------------------------------------------------------

def count_losses(events: Iterable[LossEvent],
                 window: ReportWindow | None = None) -> dict[str, int]:
    """Non-reversed loss events per base inside *window*."""
    counts: dict[str, int] = {}
    for e in events:
        if e.reversed:
            continue
        if window is not None and not window.contains(e.date):
            continue
        base = normalize_base(e.base_code)
        counts[base] = counts.get(base, 0) + 1
    return counts


def count_compliant_drivers(records: Iterable[ComplianceRecord]) -> dict[str, int]:
    """Drivers per base whose license, driver and risk checks all pass."""
    counts: dict[str, int] = {}
    for r in records:
        if r.is_compliant:
            base = normalize_base(r.base_code)
            counts[base] = counts.get(base, 0) + 1
    return counts


def average_scores(scores: Iterable[ProtagonismScore]) -> dict[str, float]:
    """Survey average per base.

    Several entries that normalize to the same base are merged, weighted by
    their response counts when those are known.
    """
    grouped: dict[str, list[ProtagonismScore]] = {}
    for s in scores:
        grouped.setdefault(normalize_base(s.base_code), []).append(s)

    result = {}
    for base, entries in grouped.items():
        responses = sum(e.response_count for e in entries)
        if responses > 0:
            result[base] = sum(e.average_score * e.response_count for e in entries) / responses
        else:
            result[base] = sum(e.average_score for e in entries) / len(entries)
    return result


@dataclass(frozen=True)
class UnattributedVolume:
    """Activity recorded under a base code missing from the directory."""
    base_code: str
    unique_route_count: int
    shipment_count: int

    def to_dict(self) -> dict:
        return {
            "base_code": self.base_code,
            "unique_route_count": self.unique_route_count,
            "shipment_count": self.shipment_count,
        }


def unattributed_volume(activities: dict[str, BaseActivity],
                        bases: Iterable[Base]) -> list[UnattributedVolume]:
    """Activity whose normalized base code matches no directory entry."""
    known = {normalize_base(b.code) for b in bases}
    return [
        UnattributedVolume(code, a.unique_route_count, a.shipment_count)
        for code, a in sorted(activities.items())
        if code not in known
    ]


# ---------------------------------------------------------------------------
# Period-over-period comparison
# ---------------------------------------------------------------------------

class Trend(Enum):
    UP = "up"
    DOWN = "down"


@dataclass(frozen=True)
class ActivityComparison:
    """Current window vs the same window one month earlier for one base."""
    base: Base
    current: BaseActivity
    previous: BaseActivity

    @property
    def base_code(self) -> str:
        return normalize_base(self.base.code)

    @property
    def route_change(self) -> int:
        return self.current.unique_route_count - self.previous.unique_route_count

    @property
    def route_trend(self) -> Trend:
        if self.current.unique_route_count >= self.previous.unique_route_count:
            return Trend.UP
        return Trend.DOWN

    @property
    def rate_trend(self) -> Trend:
        if self.current.delivery_success_rate >= self.previous.delivery_success_rate:
            return Trend.UP
        return Trend.DOWN

    def to_dict(self) -> dict:
        return {
            "base": self.base.to_dict(),
            "current": self.current.to_dict(),
            "previous": self.previous.to_dict(),
            "route_change": self.route_change,
            "route_trend": self.route_trend.value,
            "rate_trend": self.rate_trend.value,
        }


def compare_periods(records: list[OperationalRecord], window: ReportWindow,
                    bases: Iterable[Base] = (),
                    coordinator: str | None = None) -> list[ActivityComparison]:
    """Compare every base active in *window* or in the previous window.

    A base with activity only in the previous window is kept, with zero
    current totals.  *coordinator* filters through the base directory.
    """
    current = summarize_activity(records, window)
    previous = summarize_activity(records, window.previous())
    directory = {normalize_base(b.code): b for b in bases}

    rows = []
    for code in sorted(set(current) | set(previous)):
        base = directory.get(code, Base(code=code))
        if coordinator and normalize_name(base.coordinator_name) != normalize_name(coordinator):
            continue
        rows.append(ActivityComparison(
            base=base,
            current=current.get(code, BaseActivity(code)),
            previous=previous.get(code, BaseActivity(code)),
        ))
    return rows


# ---------------------------------------------------------------------------
# Delivery status and pending views
# ---------------------------------------------------------------------------

class DeliveryStatus(Enum):
    GOAL_MET = "META ALCANÇADA"
    NEAR_GOAL = "PRÓX DA META"
    BELOW_GOAL = "ABAIXO DA META"


def delivery_status(rate: float) -> DeliveryStatus:
    """Band of a delivery-success rate (percent)."""
    if rate > GOAL_MET_ABOVE:
        return DeliveryStatus.GOAL_MET
    if rate > NEAR_GOAL_ABOVE:
        return DeliveryStatus.NEAR_GOAL
    return DeliveryStatus.BELOW_GOAL


def pending_leaders(activities: Iterable[BaseActivity],
                    limit: int = 10) -> list[BaseActivity]:
    """Bases with the most pending (stuck) shipments."""
    ranked = sorted(activities, key=lambda a: (-a.pending_count, a.base_code))
    return ranked[:limit]
