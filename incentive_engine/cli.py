"""CLI entry point for the incentive engine.

Loads the campaign sheets from a data directory, runs the engine for a
reporting window, and prints the results.

Usage::

    # Per-base breakdown for the current month, exported to YAML
    python -m incentive_engine.cli report --data-dir data/ -o output/run.yaml

    # Leaderboard for a given window
    python -m incentive_engine.cli leaderboard --data-dir data/ \\
        --start 2024-03-01 --end 2024-03-12

    # Find a leader's bases
    python -m incentive_engine.cli search "maria" --data-dir data/

    # Guaranteed vs projected balances
    python -m incentive_engine.cli wallet --data-dir data/ --query lrj

    # Current window vs the same window last month
    python -m incentive_engine.cli compare --data-dir data/ --coordinator "Ana"

    # Data-quality check (exit status 1 on errors)
    python -m incentive_engine.cli validate --data-dir data/

    # Show or export the column-mapping table
    python -m incentive_engine.cli fields --export output/fields.yaml
"""

import argparse
import datetime
import json
import sys
from pathlib import Path

import yaml

from incentive_engine.engine.incentives import (
    IncentiveEngine,
    build_wallet,
    podium,
    rank_reports,
    search_leaders,
)
from incentive_engine.processor.aggregation import (
    compare_periods,
    delivery_status,
    fleet_totals,
    pending_leaders,
    summarize_activity,
)
from incentive_engine.processor.periods import ReportWindow
from incentive_engine.processor.sources import SourceProvider
from incentive_engine.qa.validator import DataQualityValidator
from incentive_engine.schema.design_system import (
    format_currency,
    format_integer,
    format_percentage,
    format_reward,
    format_tier,
)
from incentive_engine.schema.field_maps import build_default_field_maps
from incentive_engine.schema.loader import load_field_maps, save_field_maps
from incentive_engine.schema.models import PILLAR_ORDER


# ---------------------------------------------------------------------------
# Configuration loading
# ---------------------------------------------------------------------------

def _load_field_maps(args):
    """Field-mapping table from --fields, or the built-in one."""
    if getattr(args, "fields", None):
        path = Path(args.fields)
        if not path.exists():
            _error(f"Field map file not found: {path}")
        return load_field_maps(path)
    return build_default_field_maps()


def _window(args):
    try:
        return ReportWindow.parse(args.start, args.end)
    except ValueError as e:
        _error(f"Invalid window: {e}")


def _provider(args):
    data_dir = Path(args.data_dir)
    if not data_dir.is_dir():
        _error(f"Data directory not found: {data_dir}")
    return SourceProvider(data_dir, _load_field_maps(args))


def _load(args, window):
    """Load the data bundle for *window*, reporting load problems."""
    provider = _provider(args)
    _info(f"Loading sources from {provider.data_dir}")
    data = provider.load(window)
    for w in provider.warnings:
        _warn(w)
    return data, provider.warnings


def _run(args):
    window = _window(args)
    data, source_warnings = _load(args, window)
    _info(f"Window: {window} ({window.day_count} day(s))")
    if not window.is_single_month:
        _warn("Window spans more than one month; pillars are not applicable")
    run = IncentiveEngine(data, source_warnings).run(window, getattr(args, "base", None))
    return run, data


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------

def _print_reports(reports, start_rank=1):
    header = f"{'#':>3}  {'BASE':<10} {'LÍDER':<22} {'GATE':<14}"
    header += "".join(f" {p.label:>14}" for p in PILLAR_ORDER)
    header += f" {'TOTAL':>14}"
    print(header)
    for rank, report in enumerate(reports, start=start_rank):
        line = (f"{rank:>3}  {report.base_code:<10} "
                f"{report.base.leader_name[:22]:<22} {report.gate.value:<14}")
        line += "".join(f" {format_reward(r):>14}" for r in report.pillar_results)
        line += f" {format_currency(report.total):>14}"
        print(line)


def _print_pillar_detail(report):
    for r in report.pillar_results:
        target = "-" if r.target is None else f"{r.target:g}"
        reason = f"  ({r.reason})" if r.reason else ""
        print(f"       {r.pillar.label:<14} {format_tier(r.tier):<9} "
              f"actual={r.actual:g} target={target} "
              f"reward={format_reward(r)}{reason}")


def _export(run, path):
    """Write a run to YAML or JSON, chosen by extension."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    data = run.to_dict()
    if path.suffix.lower() == ".json":
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
    else:
        with open(path, "w", encoding="utf-8") as f:
            yaml.safe_dump(data, f, allow_unicode=True, sort_keys=False, width=120)
    _info(f"Written: {path}")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def cmd_report(args):
    """Per-base incentive breakdown."""
    run, _ = _run(args)
    if args.base and not run.reports:
        _error(f"Base not found in directory: {args.base}")

    _print_reports(run.reports)
    if args.verbose:
        print()
        for report in run.reports:
            print(f"  {report.base_code}")
            _print_pillar_detail(report)

    print()
    print(f"Eligible bases: {run.eligible_count}/{len(run.reports)}   "
          f"Total: {format_currency(run.total)}")
    print(f"Fleet: {format_integer(run.fleet.unique_route_count)} route(s), "
          f"{format_integer(run.fleet.shipment_count)} shipment(s), "
          f"DS {format_percentage(run.fleet.delivery_success_rate)}")
    for miss in run.unattributed:
        _warn(f"Unattributed volume under '{miss.base_code}': "
              f"{miss.unique_route_count} route(s)")

    if run.quality.passed:
        _info(run.quality.summary())
    else:
        _warn(run.quality.summary())

    if args.output:
        _export(run, args.output)


def cmd_leaderboard(args):
    """Ranked leaderboard with the podium."""
    run, _ = _run(args)
    ranked = rank_reports(run.reports)
    print("PODIUM")
    for rank, report in enumerate(podium(ranked), start=1):
        print(f"  {rank}. {report.base_code:<10} {report.base.leader_name:<24} "
              f"{format_currency(report.total)}")
    print()
    shown = ranked if args.limit is None else ranked[:args.limit]
    _print_reports(shown)


def cmd_search(args):
    """Find bases by leader name."""
    run, _ = _run(args)
    matches = search_leaders(run.reports, args.term)
    if not matches:
        _warn(f"No leader matches '{args.term}'")
        return
    _print_reports(matches)


def cmd_wallet(args):
    """Guaranteed vs projected balance per base."""
    run, data = _run(args)
    wallet = build_wallet(run.reports, data.balances, args.query)
    print(f"{'BASE':<10} {'LÍDER':<22} {'GARANTIDO':>14} {'PREVISÃO':>14} {'ESTIMADO':>14}")
    for e in wallet.entries:
        print(f"{e.base.code:<10} {e.base.leader_name[:22]:<22} "
              f"{format_currency(e.guaranteed):>14} {format_currency(e.projected):>14} "
              f"{format_currency(e.estimated):>14}")
    print()
    print(f"Guaranteed: {format_currency(wallet.total_guaranteed)}   "
          f"Projected: {format_currency(wallet.total_projected)}   "
          f"Estimated: {format_currency(wallet.total_estimated)}")


def cmd_compare(args):
    """Current window vs the same window one month earlier."""
    window = _window(args)
    data, _ = _load(args, window)
    previous = window.previous()
    _info(f"Current: {window}   Previous: {previous}")

    rows = compare_periods(data.operational_records, window, data.bases,
                           args.coordinator)
    print(f"{'BASE':<10} {'ROTAS':>7} {'ANT.':>7} {'Δ':>6} {'MÉDIA':>6} "
          f"{'PICO':>5} {'DS':>7} {'STATUS':<16} TREND")
    for row in rows:
        cur = row.current
        print(f"{row.base_code:<10} {cur.unique_route_count:>7} "
              f"{row.previous.unique_route_count:>7} {row.route_change:>+6} "
              f"{cur.average_load:>6} {cur.peak_load:>5} "
              f"{format_percentage(cur.delivery_success_rate):>7} "
              f"{delivery_status(cur.delivery_success_rate).value:<16} "
              f"{row.rate_trend.value}")

    current_fleet = fleet_totals(data.operational_records, window)
    previous_fleet = fleet_totals(data.operational_records, previous)
    print()
    print(f"Fleet routes: {format_integer(current_fleet.unique_route_count)} "
          f"(previous {format_integer(previous_fleet.unique_route_count)})")

    if args.pending:
        print()
        print("PENDING")
        activities = summarize_activity(data.operational_records, window).values()
        for a in pending_leaders(activities, args.pending):
            print(f"  {a.base_code:<10} {format_integer(a.pending_count):>7} "
                  f"{format_percentage(a.pending_rate):>7}")


def cmd_validate(args):
    """Run the data-quality checks."""
    window = _window(args)
    data, source_warnings = _load(args, window)
    result = DataQualityValidator(data, source_warnings).validate(window)
    print(result.report())
    sys.exit(0 if result.passed else 1)


def cmd_fields(args):
    """Show or export the column-mapping table."""
    maps = _load_field_maps(args)
    if args.export:
        output = Path(args.export)
        output.parent.mkdir(parents=True, exist_ok=True)
        save_field_maps(maps, output)
        _info(f"Written: {output}")
        return

    for source, fm in maps.items():
        scale = f" (threshold scale: {fm.threshold_scale})" if fm.threshold_scale else ""
        print(f"{source} v{fm.version}{scale}")
        for name, aliases in fm.columns.items():
            marker = "*" if name in fm.required else " "
            print(f"  {marker} {name:<20} {' | '.join(aliases)}")


# ---------------------------------------------------------------------------
# Output helpers
# ---------------------------------------------------------------------------

def _info(msg):
    print(f"  {msg}", file=sys.stderr)


def _warn(msg):
    print(f"  WARNING: {msg}", file=sys.stderr)


def _error(msg):
    print(f"  ERROR: {msg}", file=sys.stderr)
    sys.exit(1)


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------

def build_parser():
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="incentive-engine",
        description="Compute tiered base incentives from campaign sheets.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # ---- report ----
    rep = subparsers.add_parser(
        "report",
        help="Per-base incentive breakdown for a window.",
    )
    _add_data_args(rep)
    _add_window_args(rep)
    rep.add_argument(
        "--base",
        help="Only report this base (any spelling of its code).",
    )
    rep.add_argument(
        "-o", "--output",
        help="Export the run to a .yaml or .json file.",
    )
    rep.add_argument(
        "-v", "--verbose",
        action="store_true",
        default=False,
        help="Show tier, actual and target per pillar.",
    )
    rep.set_defaults(func=cmd_report)

    # ---- leaderboard ----
    lead = subparsers.add_parser(
        "leaderboard",
        help="Ranked leaderboard with podium.",
    )
    _add_data_args(lead)
    _add_window_args(lead)
    lead.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Show only the top N bases.",
    )
    lead.set_defaults(func=cmd_leaderboard)

    # ---- search ----
    srch = subparsers.add_parser(
        "search",
        help="Find bases by leader name.",
    )
    srch.add_argument("term", help="Part of the leader's name.")
    _add_data_args(srch)
    _add_window_args(srch)
    srch.set_defaults(func=cmd_search)

    # ---- wallet ----
    wal = subparsers.add_parser(
        "wallet",
        help="Guaranteed, projected and estimated balances.",
    )
    _add_data_args(wal)
    _add_window_args(wal)
    wal.add_argument(
        "--query",
        default="",
        help="Filter by base code, leader or coordinator.",
    )
    wal.set_defaults(func=cmd_wallet)

    # ---- compare ----
    comp = subparsers.add_parser(
        "compare",
        help="Compare the window with the same window last month.",
    )
    _add_data_args(comp)
    _add_window_args(comp)
    comp.add_argument(
        "--coordinator",
        help="Only bases of this coordinator.",
    )
    comp.add_argument(
        "--pending",
        type=int,
        default=0,
        metavar="N",
        help="Also list the N bases with most pending shipments.",
    )
    comp.set_defaults(func=cmd_compare)

    # ---- validate ----
    val = subparsers.add_parser(
        "validate",
        help="Check the source data for quality issues.",
    )
    _add_data_args(val)
    _add_window_args(val)
    val.set_defaults(func=cmd_validate)

    # ---- fields ----
    fld = subparsers.add_parser(
        "fields",
        help="Show or export the column-mapping table.",
    )
    fld.add_argument(
        "--fields",
        help="Path to a custom YAML field map.",
    )
    fld.add_argument(
        "--export",
        help="Write the table to this YAML file.",
    )
    fld.set_defaults(func=cmd_fields)

    return parser


def _add_data_args(parser):
    """Add --data-dir / --fields args to a subparser."""
    data = parser.add_argument_group("data sources")
    data.add_argument(
        "--data-dir",
        dest="data_dir",
        default="data",
        help="Directory with the source sheets (default: data).",
    )
    data.add_argument(
        "--fields",
        help="Path to a custom YAML field map.",
    )


def _add_window_args(parser):
    """Add --start / --end args to a subparser."""
    today = datetime.date.today()
    first = today.replace(day=1)
    parser.add_argument(
        "--start",
        default=first.isoformat(),
        help=f"Window start, YYYY-MM-DD or DD/MM/YYYY (default: {first.isoformat()}).",
    )
    parser.add_argument(
        "--end",
        default=today.isoformat(),
        help=f"Window end, inclusive (default: {today.isoformat()}).",
    )


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main(argv=None):
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    args.func(args)


if __name__ == "__main__":
    main()
