"""Field-mapping table: canonical fields for every data source.

Each source sheet names its columns differently (and some sheets have
changed headers over time).  A ``FieldMap`` lists, per canonical field, the
exact header aliases accepted for that source.  Headers are matched once at
ingestion; anything not listed is ignored.

The built-in table is version 1.  Bump ``FIELD_MAP_VERSION`` whenever an
alias list changes so exported YAML copies can be told apart.
"""

from dataclasses import dataclass, field
from typing import Any

from .models import Pillar


FIELD_MAP_VERSION = 1

# Threshold rescaling for percentage goals (see FieldMap.threshold_scale)
SCALE_AUTO = "auto"          # values <= 1.0 are fractions, multiply by 100
SCALE_PERCENT = "percent"    # values already in 0-100
SCALE_FRACTION = "fraction"  # every value is a fraction
THRESHOLD_SCALES = (SCALE_AUTO, SCALE_PERCENT, SCALE_FRACTION)


@dataclass
class FieldMap:
    """Column mapping for one data source.

    Attributes:
        source: Source key, e.g. ``"operations"`` or ``"goals_volume"``.
        version: Mapping table version.
        columns: Canonical field -> accepted header aliases (in priority order).
        required: Canonical fields that must be present in the sheet.
        defaults: Values for optional fields absent from the sheet.
        row_filters: Canonical field -> allowed values (case-insensitive);
            rows with any other value are dropped.
        row_excludes: Canonical field -> substrings (case-insensitive); rows
            whose value contains any of them are dropped.
        threshold_scale: Percentage handling for goal thresholds
            (``auto``, ``percent``, ``fraction``); ``None`` for non-goal sources.
    """
    source: str
    columns: dict[str, list[str]]
    required: list[str] = field(default_factory=list)
    version: int = FIELD_MAP_VERSION
    defaults: dict[str, Any] = field(default_factory=dict)
    row_filters: dict[str, list[str]] = field(default_factory=dict)
    row_excludes: dict[str, list[str]] = field(default_factory=dict)
    threshold_scale: str | None = None

    def __post_init__(self):
        unknown = [f for f in self.required if f not in self.columns]
        if unknown:
            raise ValueError(
                f"Field map '{self.source}' requires unmapped field(s): "
                f"{', '.join(unknown)}"
            )
        if self.threshold_scale is not None and self.threshold_scale not in THRESHOLD_SCALES:
            raise ValueError(
                f"Unknown threshold scale '{self.threshold_scale}'. "
                f"Valid scales: {', '.join(THRESHOLD_SCALES)}"
            )

    def to_dict(self) -> dict:
        d: dict[str, Any] = {
            "source": self.source,
            "version": self.version,
            "columns": {k: list(v) for k, v in self.columns.items()},
            "required": list(self.required),
        }
        if self.defaults:
            d["defaults"] = dict(self.defaults)
        if self.row_filters:
            d["row_filters"] = {k: list(v) for k, v in self.row_filters.items()}
        if self.row_excludes:
            d["row_excludes"] = {k: list(v) for k, v in self.row_excludes.items()}
        if self.threshold_scale is not None:
            d["threshold_scale"] = self.threshold_scale
        return d

    @classmethod
    def from_dict(cls, d: dict) -> "FieldMap":
        return cls(
            source=d["source"],
            version=int(d.get("version", FIELD_MAP_VERSION)),
            columns={k: list(v) for k, v in d["columns"].items()},
            required=list(d.get("required", [])),
            defaults=dict(d.get("defaults", {})),
            row_filters={k: list(v) for k, v in d.get("row_filters", {}).items()},
            row_excludes={k: list(v) for k, v in d.get("row_excludes", {}).items()},
            threshold_scale=d.get("threshold_scale"),
        )


# ---------------------------------------------------------------------------
# Shared alias lists
# ---------------------------------------------------------------------------

_BASE = ["Bases", "BASE", "HUB"]
_DATE = ["Date", "DATA"]
_DRIVER = ["Motorista", "DRIVER", "NOME"]
_PERIOD = ["PERÍODO", "PERIODO", "Período", "Periodo"]
_TIER = ["TIPO_META", "Tipo_Meta"]
_REWARD = ["VALOR_PREMIO", "Valor_Premio"]

GOAL_THRESHOLD_COLUMNS = {
    Pillar.VOLUME: ["VALOR_META_DIA", "Valor_Meta_dia"],
    Pillar.DELIVERY_SUCCESS: ["VALOR_META_DS", "Valor_Meta_DS"],
    Pillar.FLEET_COMPLIANCE: ["VALOR_META_QLP", "Valor_Meta_QLP"],
    Pillar.LOSS_CONTROL: ["VALOR_META_PNR", "Valor_Meta_PNR"],
    Pillar.PROTAGONISM: ["VALOR_META_PROTAGONISMO", "Valor_Meta_Protagonismo"],
}

GOAL_THRESHOLD_SCALES = {
    Pillar.DELIVERY_SUCCESS: SCALE_AUTO,
    Pillar.LOSS_CONTROL: SCALE_PERCENT,
}


def goal_source(pillar: Pillar) -> str:
    """Source key of a pillar's goal table."""
    return f"goals_{pillar.value}"


# ---------------------------------------------------------------------------
# Built-in table
# ---------------------------------------------------------------------------

def _goal_map(pillar: Pillar) -> FieldMap:
    return FieldMap(
        source=goal_source(pillar),
        columns={
            "base_code": ["BASES", "BASE"],
            "period": _PERIOD,
            "tier": _TIER,
            "threshold": GOAL_THRESHOLD_COLUMNS[pillar],
            "reward_amount": _REWARD,
        },
        required=["base_code", "threshold", "reward_amount"],
        defaults={"period": "", "tier": 1},
        threshold_scale=GOAL_THRESHOLD_SCALES.get(pillar),
    )


def build_default_field_maps() -> dict[str, FieldMap]:
    """Build the version-1 mapping table for every known source."""
    maps = [
        FieldMap(
            source="operations",
            columns={
                "date": _DATE,
                "base_code": _BASE,
                "driver_name": ["Motorista", "DRIVER"],
                "route_code": ["AT", "COD_AT"],
                "shipment_count": ["Remessas", "QTD_AT", "QUANTIDADE"],
                "delivered_count": ["Entregues", "ENTREGUE", "DELIVERED"],
                "pending_count": ["Pendentes", "PENDENTE", "PENDING"],
            },
            required=["date", "base_code", "driver_name", "shipment_count"],
            defaults={"route_code": None,
                      "delivered_count": 0, "pending_count": 0},
        ),
        FieldMap(
            source="compliance",
            columns={
                "base_code": ["BASE"],
                "driver_name": ["NOME"],
                "license_status": ["SITUAÇÃO CNH", "SITUACAO CNH", "CNH"],
                "driver_status": ["SITUAÇÃO MOTORISTA", "SITUACAO MOTORISTA"],
                "risk_status": ["SITUAÇÃO GR PLACA", "SITUACAO GR PLACA", "GR PLACA"],
                "client": ["Q CLENTE", "CLIENTE"],
            },
            required=["base_code", "license_status", "driver_status", "risk_status"],
            defaults={"driver_name": "", "client": ""},
            row_filters={"client": ["SHOPEE"]},
            row_excludes={"base_code": ["XPT BONSUCESSO"]},
        ),
        FieldMap(
            source="losses",
            columns={
                "date": _DATE,
                "base_code": _BASE,
                "driver_name": _DRIVER,
                "tracking_id": ["TRACKING", "TRACKING_ID", "ID"],
                "reversed": ["REVERTIDO", "REVERSED", "ESTORNADO"],
            },
            required=["date", "base_code"],
            defaults={"driver_name": "", "tracking_id": "", "reversed": False},
        ),
        FieldMap(
            source="survey_responses",
            columns={
                "base_code": ["BASE_OP", "BASE", "BASES", "QUAL A SUA BASE", "QUAL A BASE"],
                "score": ["NOTA_PROTAGONISMO", "NOTA PROTAGONISMO", "NOTA",
                          "PONTUAÇÃO", "PONTOS"],
            },
            required=["base_code", "score"],
        ),
        FieldMap(
            source="bases",
            columns={
                "code": ["BASES", "BASE"],
                "coordinator_name": ["Supervisor | Coordenador", "SUP / COORD",
                                     "SUP/COORD", "COORDENADOR", "COORD",
                                     "SUPERVISOR"],
                "leader_name": ["LÍDER ATUAL", "LIDER ATUAL", "LÍDER", "LIDER", "LEADER"],
                "locality": ["LOCALIDADE", "LOCAL", "CIDADE", "HUB"],
            },
            required=["code"],
            defaults={"coordinator_name": "", "leader_name": "", "locality": ""},
        ),
        FieldMap(
            source="virtual_bank",
            columns={
                "base_code": ["BASE", "BASES"],
                "accumulated": ["ATUALMENTE_ACUMULADO", "ACUMULADO"],
                "months_in_campaign": ["QTDE_MESES", "MESES"],
                "goal_reached": ["META_ALCANCADA", "META_ALCANÇADA"],
                "status_text": ["STATUS_TEXTO", "STATUS"],
            },
            required=["base_code", "accumulated"],
            defaults={"months_in_campaign": 0, "goal_reached": False,
                      "status_text": ""},
        ),
    ]
    maps.extend(_goal_map(p) for p in Pillar)
    return {m.source: m for m in maps}
