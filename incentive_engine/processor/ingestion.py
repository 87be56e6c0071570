"""Data ingestion module for the incentive engine.

Reads the campaign sheets and turns them into typed records:
- Operations (route sheet, one row per driver/day/route)
- Compliance (fleet registry, one row per driver)
- Losses (failed-delivery incidents)
- Survey responses (protagonism survey, averaged per base)
- Bases (directory with leader and coordinator)
- Virtual bank (guaranteed balances already credited)
- Goal tables, one per pillar (goals_volume, goals_delivery_success, ...)

Sheets arrive as CSV (UTF-16 LE tab-delimited or UTF-8) or Excel
(.xlsx/.xlsm).  Columns are located through the field-mapping table in
``schema.field_maps``; a sheet without a required column is rejected.
"""

import numbers
import re
from functools import partial
from pathlib import Path

import pandas as pd

from incentive_engine.schema.field_maps import (
    SCALE_AUTO,
    SCALE_FRACTION,
    FieldMap,
    build_default_field_maps,
    goal_source,
)
from incentive_engine.schema.models import (
    Base,
    ComplianceRecord,
    ComplianceStatus,
    GoalDefinition,
    GuaranteedBalance,
    LossEvent,
    OperationalRecord,
    Pillar,
    ProtagonismScore,
)

from .keys import cell_text, normalize_base, strip_accents
from .periods import parse_local_date, round_half_up


EXCEL_SUFFIXES = {".xlsx", ".xlsm"}
CSV_SUFFIXES = {".csv", ".tsv", ".txt"}

_TRUE_FLAGS = {"SIM", "S", "TRUE", "VERDADEIRO", "1", "X", "YES", "Y"}
_NON_COMPLIANT_MARKERS = ("INAPTO", "NAO APTO", "BLOQUEADO", "REPROVADO",
                          "NON-COMPLIANT", "NON COMPLIANT")
_TIER_DIGITS = re.compile(r"(\d+)")
_DOT_THOUSANDS = re.compile(r"^-?[1-9]\d{0,2}(\.\d{3})+$")


class FieldMappingError(ValueError):
    """A sheet lacks a column its field map marks as required."""


# ---------------------------------------------------------------------------
# Value parsers
# ---------------------------------------------------------------------------

def parse_number(value):
    """Parse a number written the way the campaign sheets write them.

    Examples:
        "1.234,56"   -> 1234.56
        "R$ 150,00"  -> 150.0
        "97,5%"      -> 97.5
        "1,234.56"   -> 1234.56
        42           -> 42.0
        "" / None    -> NaN
    """
    if isinstance(value, numbers.Real):
        return float(value)
    s = cell_text(value).replace("R$", "").replace("%", "")
    s = re.sub(r"\s", "", s)
    if not s:
        return float("nan")

    if "," in s and "." in s:
        if s.rfind(",") > s.rfind("."):
            s = s.replace(".", "").replace(",", ".")
        else:
            s = s.replace(",", "")
    elif "," in s:
        s = s.replace(",", ".") if s.count(",") == 1 else s.replace(",", "")
    elif s.count(".") > 1:
        s = s.replace(".", "")

    try:
        return float(s)
    except ValueError:
        return float("nan")


def parse_compliance_status(value) -> ComplianceStatus:
    """Map a registry status cell to the tri-state compliance status.

    "APTO" (or any text containing APTO but not INAPTO) is compliant;
    INAPTO, NÃO APTO, BLOQUEADO and REPROVADO are not; anything else,
    including an empty cell, is still pending.
    """
    s = strip_accents(cell_text(value)).upper().strip()
    if not s:
        return ComplianceStatus.PENDING
    if any(marker in s for marker in _NON_COMPLIANT_MARKERS):
        return ComplianceStatus.NON_COMPLIANT
    if "APTO" in s or s == "COMPLIANT":
        return ComplianceStatus.COMPLIANT
    return ComplianceStatus.PENDING


def parse_flag(value) -> bool:
    """SIM / TRUE / 1 / X -> True, anything else False."""
    if isinstance(value, bool):
        return value
    if isinstance(value, numbers.Real):
        return not pd.isna(value) and value != 0
    return strip_accents(cell_text(value)).upper().strip() in _TRUE_FLAGS


def _count(value) -> int:
    # Counts never carry decimals, so "1.200" is twelve hundred.
    if not isinstance(value, numbers.Real):
        s = re.sub(r"\s", "", cell_text(value))
        if _DOT_THOUSANDS.match(s):
            value = s.replace(".", "")
    n = parse_number(value)
    if pd.isna(n):
        return 0
    return round_half_up(n)


def _tier(value) -> int:
    if isinstance(value, numbers.Real):
        return 0 if pd.isna(value) else int(value)
    m = _TIER_DIGITS.search(cell_text(value))
    return int(m.group(1)) if m else 0


def _optional_text(value) -> str | None:
    s = cell_text(value).strip()
    return s or None


def scale_threshold(value: float, scale: str | None) -> float:
    """Bring a percentage threshold onto the 0-100 scale.

    ``auto`` treats values up to 1.0 as fractions; ``fraction`` rescales
    every value; ``percent`` (or no scale) leaves the value alone.
    """
    if scale == SCALE_FRACTION:
        return value * 100
    if scale == SCALE_AUTO and value <= 1.0:
        return value * 100
    return value


# ---------------------------------------------------------------------------
# Column cleaning
# ---------------------------------------------------------------------------

def clean_columns(df):
    """Strip whitespace and byte-order marks from column names."""
    df.columns = [c.replace("\ufeff", "").strip() if isinstance(c, str) else c
                  for c in df.columns]
    return df


# ---------------------------------------------------------------------------
# Encoding detection and table reading
# ---------------------------------------------------------------------------

def detect_encoding(path):
    """Detect whether a file is UTF-16 LE (with BOM) or UTF-8.

    UTF-16 exports are tab-delimited.  UTF-8 files use ';' when the header
    line has more semicolons than commas (regional Excel exports), ',' otherwise.

    Returns (encoding, delimiter) tuple.
    """
    with open(path, "rb") as f:
        raw = f.read(4096)
    if raw[:2] == b"\xff\xfe":
        return "utf-16-le", "\t"
    header = raw.split(b"\n", 1)[0]
    if header.count(b";") > header.count(b","):
        return "utf-8-sig", ";"
    return "utf-8-sig", ","


def read_csv_auto(path):
    """Read a CSV file with automatic encoding and delimiter detection."""
    encoding, sep = detect_encoding(path)
    df = pd.read_csv(path, encoding=encoding, sep=sep, dtype=str,
                     keep_default_na=False)
    return clean_columns(df)


def read_table(path, sheet_name=0):
    """Read a sheet from CSV or Excel into a DataFrame.

    Raises:
        ValueError: If the file extension is not supported.
    """
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix in EXCEL_SUFFIXES:
        df = pd.read_excel(path, sheet_name=sheet_name, engine="openpyxl")
        return clean_columns(df)
    if suffix in CSV_SUFFIXES:
        return read_csv_auto(path)
    raise ValueError(
        f"Unsupported file type '{path.suffix}'. "
        f"Valid types: {', '.join(sorted(EXCEL_SUFFIXES | CSV_SUFFIXES))}"
    )


# ---------------------------------------------------------------------------
# Field mapping
# ---------------------------------------------------------------------------

def _field_map(source: str, field_map: FieldMap | None) -> FieldMap:
    return field_map if field_map is not None else build_default_field_maps()[source]


def resolve_columns(df, field_map: FieldMap) -> dict[str, str]:
    """Find the sheet header for every mapped field.

    Headers are compared trimmed and casefolded; the first alias present
    wins.

    Raises:
        FieldMappingError: If a required field has no matching header.
    """
    lookup = {}
    for col in df.columns:
        lookup.setdefault(str(col).strip().casefold(), col)

    found = {}
    for name, aliases in field_map.columns.items():
        for alias in aliases:
            header = lookup.get(alias.strip().casefold())
            if header is not None:
                found[name] = header
                break

    missing = [f for f in field_map.required if f not in found]
    if missing:
        expected = "; ".join(
            f"{f}: {' / '.join(field_map.columns[f])}" for f in missing
        )
        raise FieldMappingError(
            f"Sheet for '{field_map.source}' is missing required column(s) "
            f"({expected})"
        )
    return found


def apply_field_map(df, field_map: FieldMap):
    """Rename mapped columns to canonical fields, fill defaults, filter rows.

    Row filters and exclusions only apply to fields the sheet actually
    carries; a value filled in from a default is never filtered.

    Returns a new DataFrame holding only canonical columns.
    """
    found = resolve_columns(df, field_map)
    out = pd.DataFrame({name: df[header] for name, header in found.items()},
                       index=df.index)
    for name, default in field_map.defaults.items():
        if name not in out.columns:
            out[name] = default

    for name, allowed in field_map.row_filters.items():
        if name not in found:
            continue
        accepted = {a.strip().casefold() for a in allowed}
        keep = out[name].map(lambda v: cell_text(v).strip().casefold() in accepted)
        out = out[keep]

    for name, blocked in field_map.row_excludes.items():
        if name not in found:
            continue
        needles = [b.strip().casefold() for b in blocked if b.strip()]
        drop = out[name].map(
            lambda v: any(n in cell_text(v).casefold() for n in needles))
        out = out[~drop]

    return out.reset_index(drop=True)


def _rows(df, source, field_map):
    return apply_field_map(df, _field_map(source, field_map)).to_dict("records")


# ---------------------------------------------------------------------------
# Source-specific readers
# ---------------------------------------------------------------------------

def operational_records(df, field_map: FieldMap | None = None) -> list[OperationalRecord]:
    """Route-sheet rows as OperationalRecords.

    Rows without a base code, a driver, a shipment count or a valid date
    are dropped; the route export pads unassigned routes with such rows.
    """
    records = []
    for row in _rows(df, "operations", field_map):
        base = cell_text(row["base_code"]).strip()
        driver = cell_text(row["driver_name"]).strip()
        if not base or not driver:
            continue
        if not cell_text(row["shipment_count"]).strip():
            continue
        try:
            day = parse_local_date(row["date"])
        except ValueError:
            continue
        records.append(OperationalRecord(
            date=day,
            base_code=base,
            driver_name=driver,
            shipment_count=_count(row["shipment_count"]),
            delivered_count=_count(row["delivered_count"]),
            pending_count=_count(row["pending_count"]),
            route_code=_optional_text(row["route_code"]),
        ))
    return records


def compliance_records(df, field_map: FieldMap | None = None) -> list[ComplianceRecord]:
    """Fleet-registry rows as ComplianceRecords."""
    records = []
    for row in _rows(df, "compliance", field_map):
        base = cell_text(row["base_code"]).strip()
        if not base:
            continue
        records.append(ComplianceRecord(
            base_code=base,
            driver_name=cell_text(row["driver_name"]).strip(),
            license_status=parse_compliance_status(row["license_status"]),
            driver_status=parse_compliance_status(row["driver_status"]),
            risk_status=parse_compliance_status(row["risk_status"]),
        ))
    return records


def loss_events(df, field_map: FieldMap | None = None) -> list[LossEvent]:
    records = []
    for row in _rows(df, "losses", field_map):
        base = cell_text(row["base_code"]).strip()
        if not base:
            continue
        try:
            day = parse_local_date(row["date"])
        except ValueError:
            continue
        records.append(LossEvent(
            date=day,
            base_code=base,
            driver_name=cell_text(row["driver_name"]).strip(),
            tracking_id=cell_text(row["tracking_id"]).strip(),
            reversed=parse_flag(row["reversed"]),
        ))
    return records


def protagonism_scores(df, field_map: FieldMap | None = None) -> list[ProtagonismScore]:
    """Average individual survey responses per normalized base.

    Responses without a base or a numeric score are ignored.
    """
    frame = apply_field_map(df, _field_map("survey_responses", field_map))
    frame = pd.DataFrame({
        "base": frame["base_code"].map(normalize_base),
        "score": frame["score"].map(parse_number),
    })
    frame = frame[(frame["base"] != "") & frame["score"].notna()]
    if frame.empty:
        return []

    grouped = frame.groupby("base", sort=True)["score"].agg(["mean", "count"])
    return [
        ProtagonismScore(base_code=base, average_score=float(r["mean"]),
                         response_count=int(r["count"]))
        for base, r in grouped.iterrows()
    ]


def base_directory(df, field_map: FieldMap | None = None) -> list[Base]:
    """Base directory rows; later duplicates of a normalized code are dropped."""
    bases = []
    seen = set()
    for row in _rows(df, "bases", field_map):
        code = cell_text(row["code"]).strip()
        key = normalize_base(code)
        if not key or key in seen:
            continue
        seen.add(key)
        bases.append(Base(
            code=code,
            locality=cell_text(row["locality"]).strip(),
            leader_name=cell_text(row["leader_name"]).strip(),
            coordinator_name=cell_text(row["coordinator_name"]).strip(),
        ))
    return bases


def guaranteed_balances(df, field_map: FieldMap | None = None) -> list[GuaranteedBalance]:
    balances = []
    for row in _rows(df, "virtual_bank", field_map):
        base = cell_text(row["base_code"]).strip()
        if not base:
            continue
        accumulated = parse_number(row["accumulated"])
        balances.append(GuaranteedBalance(
            base_code=base,
            accumulated=0.0 if pd.isna(accumulated) else accumulated,
            months_in_campaign=_count(row["months_in_campaign"]),
            goal_reached=parse_flag(row["goal_reached"]),
            status_text=cell_text(row["status_text"]).strip(),
        ))
    return balances


def goal_definitions(df, field_map: FieldMap | None = None, *,
                     pillar: Pillar) -> list[GoalDefinition]:
    """Goal-table rows for one pillar.

    Rows without a base, a numeric threshold or reward, or a tier in 1..3
    are dropped.  Percentage thresholds are rescaled according to the
    map's ``threshold_scale``.
    """
    fm = _field_map(goal_source(pillar), field_map)
    goals = []
    for row in apply_field_map(df, fm).to_dict("records"):
        base = cell_text(row["base_code"]).strip()
        threshold = parse_number(row["threshold"])
        reward = parse_number(row["reward_amount"])
        tier = _tier(row["tier"])
        if not base or pd.isna(threshold) or pd.isna(reward) or tier not in (1, 2, 3):
            continue
        goals.append(GoalDefinition(
            pillar=pillar,
            base_code=base,
            tier=tier,
            threshold=scale_threshold(threshold, fm.threshold_scale),
            reward_amount=reward,
            period=cell_text(row["period"]).strip(),
        ))
    return goals


# ---------------------------------------------------------------------------
# Source type registry
# ---------------------------------------------------------------------------

SOURCE_TYPES = {
    "operations": operational_records,
    "compliance": compliance_records,
    "losses": loss_events,
    "survey_responses": protagonism_scores,
    "bases": base_directory,
    "virtual_bank": guaranteed_balances,
}
SOURCE_TYPES.update({goal_source(p): partial(goal_definitions, pillar=p) for p in Pillar})


def ingest(path, source_type, field_map: FieldMap | None = None):
    """Ingest a data file by source type.

    Args:
        path: Path to the CSV or Excel file.
        source_type: One of the keys of ``SOURCE_TYPES`` ('operations',
            'compliance', 'losses', 'survey_responses', 'bases',
            'virtual_bank', 'goals_<pillar>').
        field_map: Column mapping to use instead of the built-in one.

    Returns:
        List of typed records.

    Raises:
        ValueError: If source_type is not recognized.
        FieldMappingError: If the sheet lacks a required column.
    """
    if source_type not in SOURCE_TYPES:
        raise ValueError(
            f"Unknown source type '{source_type}'. "
            f"Valid types: {', '.join(sorted(SOURCE_TYPES))}"
        )
    return SOURCE_TYPES[source_type](read_table(path), field_map)
