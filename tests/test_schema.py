"""Tests for the incentive models, field-mapping table and formatting."""

import pytest
import yaml

from incentive_engine.schema.design_system import (
    format_currency,
    format_integer,
    format_percentage,
    format_reward,
    format_tier,
)
from incentive_engine.schema.field_maps import (
    FIELD_MAP_VERSION,
    FieldMap,
    build_default_field_maps,
    goal_source,
)
from incentive_engine.schema.loader import load_field_maps, save_field_maps
from incentive_engine.schema.models import (
    PILLAR_ORDER,
    Base,
    BaseIncentiveReport,
    ComplianceRecord,
    ComplianceStatus,
    GateStatus,
    GoalDefinition,
    OperationalRecord,
    Pillar,
    PillarResult,
    ResultStatus,
    ThresholdUnit,
)


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------

class TestPillar:
    def test_order_covers_all_pillars(self):
        assert set(PILLAR_ORDER) == set(Pillar)
        assert PILLAR_ORDER[0] is Pillar.VOLUME

    def test_labels(self):
        assert Pillar.VOLUME.label == "Carregamento"
        assert Pillar.LOSS_CONTROL.label == "Perdas"


class TestRecords:
    def test_failed_count_never_negative(self):
        rec = OperationalRecord(date=None, base_code="LRJ01", driver_name="",
                                shipment_count=5, delivered_count=7)
        assert rec.failed_count == 0

    def test_compliance_requires_all_three(self):
        ok = ComplianceStatus.COMPLIANT
        assert ComplianceRecord("LRJ01", "Ana", ok, ok, ok).is_compliant
        assert not ComplianceRecord("LRJ01", "Ana", ok, ok,
                                    ComplianceStatus.PENDING).is_compliant


class TestGoalDefinition:
    def test_unit_from_pillar(self):
        goal = GoalDefinition(Pillar.VOLUME, "LRJ01", 1, 10, 100)
        assert goal.unit is ThresholdUnit.RATE_PER_DAY
        assert GoalDefinition(Pillar.PROTAGONISM, "LRJ01", 1, 7, 50).unit is ThresholdUnit.SCORE

    def test_evergreen(self):
        assert GoalDefinition(Pillar.VOLUME, "LRJ01", 1, 10, 100, period=" ").is_evergreen
        assert not GoalDefinition(Pillar.VOLUME, "LRJ01", 1, 10, 100,
                                  period="Março").is_evergreen

    def test_dict_round_trip(self):
        goal = GoalDefinition(Pillar.DELIVERY_SUCCESS, "LRJ01", 2, 97.5, 200, period="Abril")
        d = goal.to_dict()
        assert d["pillar"] == "delivery_success"
        assert d["unit"] == "percent"
        assert GoalDefinition.from_dict(d) == goal


class TestResults:
    def _report(self):
        results = (
            PillarResult(Pillar.VOLUME, ResultStatus.EVALUATED, 100.0, tier=1),
            PillarResult(Pillar.DELIVERY_SUCCESS, ResultStatus.EVALUATED, 0.0),
            PillarResult(Pillar.PROTAGONISM, ResultStatus.NOT_APPLICABLE, None,
                         reason="no goal definition"),
        )
        return BaseIncentiveReport(Base("LRJ01"), GateStatus.OPEN, results)

    def test_not_applicable_counts_as_zero(self):
        report = self._report()
        assert report.total == 100.0
        assert report.result_for(Pillar.PROTAGONISM).value == 0.0
        assert not report.result_for(Pillar.PROTAGONISM).is_applicable

    def test_missing_pillar(self):
        assert self._report().result_for(Pillar.LOSS_CONTROL) is None

    def test_to_dict(self):
        d = self._report().to_dict()
        assert d["eligible"] is True
        assert d["gate"] == "open"
        assert d["pillars"][2]["reward"] is None
        assert d["pillars"][2]["reason"] == "no goal definition"
        assert "reason" not in d["pillars"][0]


# ---------------------------------------------------------------------------
# Field maps
# ---------------------------------------------------------------------------

class TestFieldMap:
    def test_default_sources(self):
        maps = build_default_field_maps()
        assert {"operations", "compliance", "losses", "survey_responses",
                "bases", "virtual_bank"} <= set(maps)
        for pillar in Pillar:
            assert goal_source(pillar) in maps

    def test_goal_scales(self):
        maps = build_default_field_maps()
        assert maps["goals_delivery_success"].threshold_scale == "auto"
        assert maps["goals_loss_control"].threshold_scale == "percent"
        assert maps["goals_volume"].threshold_scale is None

    def test_required_must_be_mapped(self):
        with pytest.raises(ValueError, match="unmapped"):
            FieldMap("x", {"a": ["A"]}, required=["b"])

    def test_unknown_scale(self):
        with pytest.raises(ValueError, match="threshold scale"):
            FieldMap("x", {"a": ["A"]}, threshold_scale="ratio")

    def test_dict_round_trip(self):
        fm = build_default_field_maps()["compliance"]
        assert FieldMap.from_dict(fm.to_dict()) == fm

    def test_compliance_row_rules(self):
        d = build_default_field_maps()["compliance"].to_dict()
        assert d["row_filters"] == {"client": ["SHOPEE"]}
        assert d["row_excludes"] == {"base_code": ["XPT BONSUCESSO"]}

    def test_optional_keys_omitted(self):
        d = FieldMap("x", {"a": ["A"]}).to_dict()
        assert set(d) == {"source", "version", "columns", "required"}
        assert d["version"] == FIELD_MAP_VERSION


class TestLoader:
    def test_save_and_load(self, tmp_path):
        path = tmp_path / "config" / "fields.yaml"
        maps = build_default_field_maps()
        save_field_maps(maps, path)
        assert load_field_maps(path) == maps

    def test_saved_yaml_is_readable(self, tmp_path):
        path = tmp_path / "fields.yaml"
        save_field_maps(build_default_field_maps(), path)
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
        assert data["version"] == FIELD_MAP_VERSION
        sources = {s["source"]: s for s in data["sources"]}
        assert "PERÍODO" in sources["goals_volume"]["columns"]["period"]

    def test_override_single_source(self, tmp_path):
        path = tmp_path / "fields.yaml"
        path.write_text(
            "sources:\n"
            "  - source: bases\n"
            "    columns:\n"
            "      code: [UNIDADE]\n"
            "      leader_name: [GESTOR]\n"
            "    required: [code]\n",
            encoding="utf-8",
        )
        maps = load_field_maps(path)
        assert maps["bases"].columns == {"code": ["UNIDADE"], "leader_name": ["GESTOR"]}
        assert maps["operations"] == build_default_field_maps()["operations"]

    def test_empty_file_keeps_defaults(self, tmp_path):
        path = tmp_path / "fields.yaml"
        path.write_text("", encoding="utf-8")
        assert load_field_maps(path) == build_default_field_maps()


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------

class TestFormatting:
    def test_currency(self):
        assert format_currency(1234.56) == "R$ 1.234,56"
        assert format_currency(0) == "R$ 0,00"
        assert format_currency(-50) == "-R$ 50,00"
        assert format_currency(None) == "N/A"

    def test_percentage(self):
        assert format_percentage(97.5) == "97,5%"
        assert format_percentage(100, decimals=0) == "100%"
        assert format_percentage(float("nan")) == "N/A"

    def test_integer(self):
        assert format_integer(1234) == "1.234"
        assert format_integer(None) == "N/A"

    def test_reward(self):
        na = PillarResult(Pillar.VOLUME, ResultStatus.NOT_APPLICABLE, None)
        zero = PillarResult(Pillar.VOLUME, ResultStatus.EVALUATED, 0.0)
        assert format_reward(na) == "N/A"
        assert format_reward(zero) == "R$ 0,00"

    def test_tier(self):
        assert format_tier(2) == "META2"
        assert format_tier(0) == "SEM META"
