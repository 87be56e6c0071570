"""Tests for the file-backed source provider."""

import datetime

import pytest

from incentive_engine.engine.incentives import SourceData
from incentive_engine.processor.periods import ReportWindow
from incentive_engine.processor.sources import DEFAULT_TTL, SourceProvider
from incentive_engine.schema.models import Pillar


D = datetime.date

OPERATIONS_HEADER = "DATA;BASES;Motorista;AT;Remessas;Entregues\n"


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def _write_operations(data_dir, *rows):
    (data_dir / "operations.csv").write_text(
        OPERATIONS_HEADER + "".join(f"{r}\n" for r in rows), encoding="utf-8")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def provider(tmp_path, clock):
    return SourceProvider(tmp_path, clock=clock)


# ---------------------------------------------------------------------------
# File lookup
# ---------------------------------------------------------------------------

class TestFindFile:
    def test_excel_preferred(self, tmp_path, provider):
        (tmp_path / "bases.csv").write_text("BASES\nLRJ01\n", encoding="utf-8")
        (tmp_path / "bases.xlsx").write_bytes(b"")
        assert provider.find_file("bases").name == "bases.xlsx"

    def test_missing(self, provider):
        assert provider.find_file("bases") is None


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------

class TestCache:
    def test_default_ttl_is_twelve_hours(self, tmp_path):
        assert SourceProvider(tmp_path).ttl == DEFAULT_TTL == 43200

    def test_served_from_cache_within_ttl(self, tmp_path, provider, clock):
        _write_operations(tmp_path, "2024-03-01;LRJ01;Ana;AT1;10;9")
        assert len(provider.fetch_operational_records()) == 1

        _write_operations(tmp_path, "2024-03-01;LRJ01;Ana;AT1;10;9",
                          "2024-03-02;LRJ01;Ana;AT2;10;9")
        clock.now = DEFAULT_TTL - 1
        assert len(provider.fetch_operational_records()) == 1

        clock.now = DEFAULT_TTL
        assert len(provider.fetch_operational_records()) == 2

    def test_invalidate(self, tmp_path, provider):
        _write_operations(tmp_path, "2024-03-01;LRJ01;Ana;AT1;10;9")
        provider.fetch_operational_records()
        _write_operations(tmp_path)
        provider.invalidate("operations")
        assert provider.fetch_operational_records() == []

    def test_invalidate_all(self, tmp_path, provider):
        _write_operations(tmp_path, "2024-03-01;LRJ01;Ana;AT1;10;9")
        provider.fetch_operational_records()
        provider.invalidate()
        assert provider._cache == {}

    def test_callers_cannot_mutate_cache(self, tmp_path, provider):
        _write_operations(tmp_path, "2024-03-01;LRJ01;Ana;AT1;10;9")
        provider.fetch_operational_records().clear()
        assert len(provider.fetch_operational_records()) == 1


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------

class TestFailures:
    def test_missing_file_warns(self, provider):
        assert provider.fetch_base_directory() == []
        assert len(provider.warnings) == 1
        assert provider.warnings[0].startswith("bases: no file found")

    def test_bad_sheet_warns_and_is_not_cached(self, tmp_path, provider):
        (tmp_path / "losses.csv").write_text("BASE\nLRJ01\n", encoding="utf-8")
        assert provider.fetch_loss_events() == []
        assert provider.warnings[0].startswith("losses: losses.csv:")

        (tmp_path / "losses.csv").write_text(
            "DATA,BASE\n2024-03-01,LRJ01\n", encoding="utf-8")
        assert len(provider.fetch_loss_events()) == 1

    def test_unknown_source(self, provider):
        with pytest.raises(ValueError, match="Unknown source type"):
            provider._load("bogus")


# ---------------------------------------------------------------------------
# Fetch contracts
# ---------------------------------------------------------------------------

class TestFetch:
    def test_window_filter(self, tmp_path, provider):
        _write_operations(tmp_path, "2024-02-28;LRJ01;Ana;AT1;10;9",
                          "2024-03-01;LRJ01;Ana;AT2;10;9")
        window = ReportWindow(D(2024, 3, 1), D(2024, 3, 31))
        records = provider.fetch_operational_records(window)
        assert [r.route_code for r in records] == ["AT2"]

    def test_goal_definitions_per_pillar(self, tmp_path, provider):
        (tmp_path / "goals_delivery_success.csv").write_text(
            "BASE;TIPO_META;VALOR_META_DS;VALOR_PREMIO\nLRJ01;1;0,97;50\n",
            encoding="utf-8")
        goals = provider.fetch_goal_definitions(Pillar.DELIVERY_SUCCESS)
        assert goals[0].threshold == pytest.approx(97.0)
        assert provider.fetch_goal_definitions(Pillar.VOLUME) == []

    def test_load_bundle(self, tmp_path, provider):
        _write_operations(
            tmp_path,
            "2024-01-15;LRJ01;Ana;AT1;10;9",
            "2024-02-05;LRJ01;Ana;AT2;10;9",
            "2024-03-05;LRJ01;Ana;AT3;10;9",
            "2024-03-20;LRJ01;Ana;AT4;10;9",
        )
        (tmp_path / "bases.csv").write_text(
            "BASES,LÍDER ATUAL\nLRJ01,Maria\n", encoding="utf-8")

        data = provider.load(ReportWindow(D(2024, 3, 1), D(2024, 3, 10)))
        assert isinstance(data, SourceData)
        assert [r.route_code for r in data.operational_records] == ["AT2", "AT3"]
        assert data.bases[0].leader_name == "Maria"
        assert set(data.goal_definitions) == set(Pillar)
        assert data.compliance_records == []

    def test_load_without_window(self, tmp_path, provider):
        _write_operations(tmp_path, "2024-01-15;LRJ01;Ana;AT1;10;9",
                          "2024-03-05;LRJ01;Ana;AT3;10;9")
        assert len(provider.load().operational_records) == 2
