"""Tests for the CLI entry point (incentive_engine.cli).

Covers argument parsing, command dispatch against a small data directory,
exports, the validate exit status, and error handling.
"""

import datetime
import json

import pytest
import yaml

from incentive_engine.cli import build_parser, main
from incentive_engine.schema.field_maps import build_default_field_maps
from incentive_engine.schema.loader import load_field_maps


WINDOW = ["--start", "2024-03-01", "--end", "2024-03-01"]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def parser():
    return build_parser()


@pytest.fixture
def data_dir(tmp_path):
    """Two bases on 1 March 2024.

    LRJ01 runs 10 routes (entry target 10) and delivers everything: R$ 150.
    LRJ02 runs 5 routes and stays below the entry target.
    """
    d = tmp_path / "data"
    d.mkdir()
    rows = [f"2024-03-01,LRJ01,Ana {i},AT{i},10,10" for i in range(10)]
    rows += [f"2024-03-01,LRJ 02,Bia {i},BT{i},10,8" for i in range(5)]
    (d / "operations.csv").write_text(
        "DATA,BASES,Motorista,AT,Remessas,Entregues\n" + "\n".join(rows) + "\n",
        encoding="utf-8")
    (d / "bases.csv").write_text(
        "BASES,LÍDER ATUAL,COORDENADOR\n"
        "LRJ01,Maria Silva,Ana\n"
        "LRJ02,João Pereira,Bruno\n",
        encoding="utf-8")
    (d / "goals_volume.csv").write_text(
        "BASES;PERÍODO;TIPO_META;VALOR_META_DIA;VALOR_PREMIO\n"
        "LRJ01;Março;1;10;100\n"
        "LRJ02;Março;1;10;100\n",
        encoding="utf-8")
    (d / "goals_delivery_success.csv").write_text(
        "BASE;TIPO_META;VALOR_META_DS;VALOR_PREMIO\n"
        "LRJ01;1;0,95;50\n",
        encoding="utf-8")
    (d / "virtual_bank.csv").write_text(
        "BASE;ATUALMENTE_ACUMULADO;QTDE_MESES\n"
        "LRJ01;1.000,00;3\n",
        encoding="utf-8")
    return d


def _run(data_dir, *args):
    main([args[0], "--data-dir", str(data_dir), *WINDOW, *args[1:]])


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------

class TestParser:
    def test_report_defaults(self, parser):
        args = parser.parse_args(["report"])
        today = datetime.date.today()
        assert args.data_dir == "data"
        assert args.fields is None
        assert args.start == today.replace(day=1).isoformat()
        assert args.end == today.isoformat()
        assert args.base is None
        assert args.output is None
        assert args.verbose is False

    def test_report_flags(self, parser):
        args = parser.parse_args(["report", "--data-dir", "x", "--base", "LRJ01",
                                  "-o", "out.yaml", "-v", *WINDOW])
        assert args.data_dir == "x"
        assert args.base == "LRJ01"
        assert args.output == "out.yaml"
        assert args.verbose
        assert (args.start, args.end) == ("2024-03-01", "2024-03-01")

    def test_leaderboard_limit(self, parser):
        assert parser.parse_args(["leaderboard", "--limit", "5"]).limit == 5

    def test_search_requires_term(self, parser):
        with pytest.raises(SystemExit):
            parser.parse_args(["search"])

    def test_compare_options(self, parser):
        args = parser.parse_args(["compare", "--coordinator", "Ana", "--pending", "3"])
        assert args.coordinator == "Ana"
        assert args.pending == 3

    def test_fields_command(self, parser):
        args = parser.parse_args(["fields", "--export", "f.yaml"])
        assert args.export == "f.yaml"

    def test_no_command_fails(self, parser):
        with pytest.raises(SystemExit):
            parser.parse_args([])


# ---------------------------------------------------------------------------
# Error handling
# ---------------------------------------------------------------------------

class TestErrors:
    def test_missing_data_dir(self, tmp_path, capsys):
        with pytest.raises(SystemExit) as exc:
            _run(tmp_path / "nope", "report")
        assert exc.value.code == 1
        assert "Data directory not found" in capsys.readouterr().err

    def test_inverted_window(self, data_dir, capsys):
        with pytest.raises(SystemExit) as exc:
            main(["report", "--data-dir", str(data_dir),
                  "--start", "2024-03-10", "--end", "2024-03-01"])
        assert exc.value.code == 1
        assert "Invalid window" in capsys.readouterr().err

    def test_missing_field_map(self, data_dir, capsys):
        with pytest.raises(SystemExit):
            _run(data_dir, "report", "--fields", str(data_dir / "none.yaml"))
        assert "Field map file not found" in capsys.readouterr().err

    def test_unknown_base(self, data_dir, capsys):
        with pytest.raises(SystemExit):
            _run(data_dir, "report", "--base", "LRJ99")
        assert "Base not found" in capsys.readouterr().err


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

class TestReport:
    def test_totals(self, data_dir, capsys):
        _run(data_dir, "report")
        captured = capsys.readouterr()
        assert "LRJ01" in captured.out
        assert "LRJ02" in captured.out
        assert "Eligible bases: 1/2   Total: R$ 150,00" in captured.out
        assert "compliance: no file found" in captured.err

    def test_single_base(self, data_dir, capsys):
        _run(data_dir, "report", "--base", "lrj-01", "-v")
        out = capsys.readouterr().out
        assert "Eligible bases: 1/1" in out
        assert "META1" in out
        assert "LRJ02" not in out

    def test_export_json(self, data_dir, tmp_path):
        output = tmp_path / "out" / "run.json"
        _run(data_dir, "report", "-o", str(output))
        data = json.loads(output.read_text(encoding="utf-8"))
        assert data["total"] == 150.0
        assert data["window"]["month"] == "Março"
        assert [r["base"]["code"] for r in data["reports"]] == ["LRJ01", "LRJ02"]
        assert data["quality"]["passed"] is True

    def test_export_yaml(self, data_dir, tmp_path):
        output = tmp_path / "run.yaml"
        _run(data_dir, "report", "-o", str(output))
        data = yaml.safe_load(output.read_text(encoding="utf-8"))
        assert data["eligible_count"] == 1
        lrj02 = data["reports"][1]
        assert lrj02["gate"] == "closed"
        assert lrj02["pillars"][0]["reward"] is None


class TestLeaderboard:
    def test_podium(self, data_dir, capsys):
        _run(data_dir, "leaderboard", "--limit", "1")
        out = capsys.readouterr().out
        assert "PODIUM" in out
        assert "1. LRJ01" in out
        assert "2. LRJ02" in out


class TestSearch:
    def test_match(self, data_dir, capsys):
        _run(data_dir, "search", "maria")
        out = capsys.readouterr().out
        assert "LRJ01" in out
        assert "LRJ02" not in out

    def test_no_match(self, data_dir, capsys):
        _run(data_dir, "search", "zzz")
        assert "No leader matches 'zzz'" in capsys.readouterr().err


class TestWallet:
    def test_balances(self, data_dir, capsys):
        _run(data_dir, "wallet")
        out = capsys.readouterr().out
        assert "R$ 1.150,00" in out
        assert "Guaranteed: R$ 1.000,00" in out

    def test_query(self, data_dir, capsys):
        _run(data_dir, "wallet", "--query", "bruno")
        out = capsys.readouterr().out
        assert "LRJ02" in out
        assert "LRJ01" not in out


class TestCompare:
    def test_coordinator_filter(self, data_dir, capsys):
        _run(data_dir, "compare", "--coordinator", "ana", "--pending", "2")
        out = capsys.readouterr().out
        assert "LRJ01" in out
        assert "+10" in out
        assert "Fleet routes: 15 (previous 0)" in out
        assert "PENDING" in out


class TestValidate:
    def test_pass(self, data_dir, capsys):
        with pytest.raises(SystemExit) as exc:
            _run(data_dir, "validate")
        assert exc.value.code == 0
        assert "QA PASS" in capsys.readouterr().out

    def test_fail_without_directory(self, data_dir, capsys):
        (data_dir / "bases.csv").unlink()
        with pytest.raises(SystemExit) as exc:
            _run(data_dir, "validate")
        assert exc.value.code == 1
        out = capsys.readouterr().out
        assert "QA FAIL" in out
        assert "Base directory is empty" in out


class TestFields:
    def test_listing(self, capsys):
        main(["fields"])
        out = capsys.readouterr().out
        assert "operations v1" in out
        assert "goals_delivery_success v1 (threshold scale: auto)" in out

    def test_export(self, tmp_path):
        output = tmp_path / "cfg" / "fields.yaml"
        main(["fields", "--export", str(output)])
        assert load_field_maps(output) == build_default_field_maps()
