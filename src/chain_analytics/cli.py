"""Command-line interface for the dashboard engine.

Provides subcommands: `load` and `report`. Each command is implemented as a
`cmd_*` function that accepts an argparse namespace.
"""
from __future__ import annotations

import argparse
import datetime as dt
import logging
import sys
from typing import cast, Any as TypingAny

from dotenv import load_dotenv
import dask.dataframe as dd

from chain_analytics.config import Settings, get_settings
from chain_analytics.logging_config import configure_logging

# LOAD
from chain_analytics.clean.transform import clean_facts_ddf
from chain_analytics.ingest.load_facts import load_facts_to_mongo

# REPORT
from chain_analytics.dashboard.cross_filter import CrossFilterState
from chain_analytics.dashboard.session import DashboardSession, DashboardState
from chain_analytics.dashboard.slider import RangeDateMapper
from chain_analytics.ingest.row_source import (
    DAPP_ACTIONS,
    DAPPS,
    DATASETS,
    RowSourceError,
    build_row_source,
)
from chain_analytics.models import DateWindow, Metric

log = logging.getLogger(__name__)


# --------------------------------------------------
# Helpers
# --------------------------------------------------
def _window_from_args(args: argparse.Namespace, s: Settings) -> DateWindow:
    """Resolve the report window, defaulting to the dashboard bounds.

    The window is clamped through the slider mapper, like a window picked in
    the app.
    """
    mapper = RangeDateMapper.between(s.dashboard_start, s.dashboard_end)
    start = args.start or s.dashboard_start
    end = args.end or s.dashboard_end
    if end < start:
        raise SystemExit("--end must not be earlier than --start")
    return mapper.to_window(mapper.to_slider_range(DateWindow(start=start, end=end)))


def _cross_filter_from_args(args: argparse.Namespace) -> CrossFilterState:
    state = CrossFilterState()
    if args.filter_category:
        state = state.select_category(args.filter_category)
    if args.filter_country:
        state = state.select_country(args.filter_country)
    return state


# --------------------------------------------------
# LOAD
# --------------------------------------------------
def cmd_load(args: argparse.Namespace) -> None:
    """Clean a CSV fact export and upsert it into the configured collection.

    Args:
        args: argparse namespace with `csv`, `dataset` and `blocksize`.
    """
    s = get_settings()
    dataset = DATASETS[args.dataset]
    collection = s.collection_for(dataset.name)
    dd_mod = cast(TypingAny, dd)
    ddf = dd_mod.read_csv(
        str(args.csv),
        blocksize=args.blocksize,
        dtype={d: "object" for d in dataset.dimensions},
    )

    ddf_clean = clean_facts_ddf(ddf, dataset.dimensions)
    good, bad = load_facts_to_mongo(ddf_clean, s.mongo_uri, s.mongo_db, collection, dataset)

    log.info("Loaded %s into %s (good=%d bad=%d)", args.csv, collection, good, bad)


# --------------------------------------------------
# REPORT
# --------------------------------------------------
def cmd_report(args: argparse.Namespace) -> int:
    """Run one refresh for the requested selections and print the views as JSON.

    Returns:
        Exit status: 1 when `--strict` is set and the row source failed.
    """
    s = get_settings()
    state = DashboardState(
        chain=args.chain,
        window=_window_from_args(args, s),
        selected_country=args.country,
        selected_category=args.category,
        selected_dapp=args.dapp,
        cross_filter=_cross_filter_from_args(args),
        ranking_metric=Metric(args.metric),
    )

    session = DashboardSession(state)
    source = build_row_source(s)
    dapps = actions = None
    dapp_failure: str | None = None
    if args.dapps:
        try:
            dapps = build_row_source(s, DAPPS)
            actions = build_row_source(s, DAPP_ACTIONS)
        except RowSourceError as e:
            log.warning("dApp views skipped: %s", e.message)
            dapps = actions = None
            dapp_failure = e.message

    views = session.refresh(source, dapps=dapps, actions=actions)
    if dapp_failure:
        views = views.model_copy(update={"dapp_error": dapp_failure})
    print(views.model_dump_json(indent=2))

    failure = views.error or views.dapp_error
    if failure and args.strict:
        log.error("Row source failed: %s", failure)
        return 1
    return 0


# --------------------------------------------------
# CLI
# --------------------------------------------------
def build_parser() -> argparse.ArgumentParser:
    """Build and return the top-level argument parser for the CLI.

    Returns:
        Configured argparse.ArgumentParser instance.
    """
    p = argparse.ArgumentParser(prog="chain-analytics")
    sub = p.add_subparsers(dest="cmd", required=True)

    p_load = sub.add_parser("load")
    p_load.add_argument("--csv", required=True)
    p_load.add_argument("--dataset", choices=list(DATASETS), default="facts")
    p_load.add_argument("--blocksize", default="64MB")

    p_report = sub.add_parser("report")
    p_report.add_argument("--chain", required=True)
    p_report.add_argument("--start", type=dt.date.fromisoformat, default=None)
    p_report.add_argument("--end", type=dt.date.fromisoformat, default=None)
    p_report.add_argument("--country", default=None)
    p_report.add_argument("--category", default=None)
    p_report.add_argument("--dapps", action="store_true", help="also build the dApp views")
    p_report.add_argument("--dapp", default=None, help="dApp whose actions are broken down")
    p_report.add_argument(
        "--metric",
        choices=[m.value for m in Metric],
        default=Metric.UNIQUE_USERS.value,
    )
    group = p_report.add_mutually_exclusive_group()
    group.add_argument("--filter-category", default=None)
    group.add_argument("--filter-country", default=None)
    p_report.add_argument("--strict", action="store_true")

    return p


def main() -> None:
    """CLI entry point: parse args, configure logging and dispatch commands."""
    load_dotenv()
    args = build_parser().parse_args()
    # report prints JSON on stdout, so its logs go to stderr
    stream = sys.stderr if args.cmd == "report" else None
    configure_logging(get_settings().log_path, stream=stream)

    if args.cmd == "load":
        cmd_load(args)
    elif args.cmd == "report":
        sys.exit(cmd_report(args))
    else:
        raise SystemExit(2)


if __name__ == "__main__":
    main()
