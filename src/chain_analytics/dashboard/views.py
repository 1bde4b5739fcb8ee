"""View-model builders.

Each builder takes fact rows that were already fetched for the selected
window and returns the pydantic view-model a chart, table or card renders.
Ranking views need rows for every chain (the peers), not only the home chain.
"""
from __future__ import annotations

import logging
from typing import Any, Iterable

import pandas as pd

from chain_analytics.aggregate.buckets import (
    aggregate,
    distinct,
    filter_rows,
    peer_values,
    to_frame,
    values_of,
)
from chain_analytics.aggregate.country_codes import country_candidates, resolve_bucket
from chain_analytics.aggregate.ranking import rank_global, rank_groups, subject_value
from chain_analytics.models import (
    ActionUsage,
    CategoryMetrics,
    CategoryRanking,
    ChainSeries,
    CountryDapp,
    CountryMetrics,
    CountryRanking,
    DailyTotal,
    DappActionRow,
    DappFactRow,
    DappUsage,
    DateSeries,
    FactRow,
    Metric,
    OverviewTotals,
)

log = logging.getLogger(__name__)

ALL_CHAINS = "all"
COUNTRY_DAPP_LIMIT = 30


def is_all_chains(chain: str | None) -> bool:
    return chain is not None and chain.strip().casefold() == ALL_CHAINS


def _chain_filter(chain: str | None) -> str | None:
    return None if is_all_chains(chain) else chain


def _records(buckets: pd.DataFrame) -> list[dict[str, Any]]:
    return buckets.reset_index().to_dict(orient="records")


# =========================================================
# TIME SERIES
# =========================================================

def daily_totals(rows: Iterable[FactRow]) -> list[DailyTotal]:
    """Sum all three facts per date, sorted by date."""
    buckets = aggregate(rows, "date").sort_index()
    return [DailyTotal.model_validate(rec) for rec in _records(buckets)]


def date_series_by_chain(
    rows: Iterable[FactRow],
    home_chain: str | None,
    metric: Metric = Metric.TOTAL_REQUESTS,
) -> DateSeries:
    """Per-date values keyed by chain for the line chart.

    Dates and chains are sorted; a chain with no rows on a date gets 0 there.
    The home chain's series is flagged (case-insensitive match).

    Args:
        rows: Rows for the chains to plot.
        home_chain: Selected chain, highlighted in the chart.
        metric: Fact plotted on the y axis.

    Returns:
        DateSeries with one ChainSeries per chain.
    """
    buckets = aggregate(rows, ["chain", "date"])
    if buckets.empty:
        return DateSeries()
    table = (
        buckets[Metric(metric).value]
        .unstack("date", fill_value=0)
        .sort_index()
        .sort_index(axis=1)
    )
    home = (home_chain or "").strip().casefold()

    series = [
        ChainSeries(
            chain=chain,
            values=[float(v) for v in values],
            is_home=bool(home) and chain.casefold() == home,
        )
        for chain, values in table.iterrows()
    ]
    return DateSeries(dates=list(table.columns), series=series)


# =========================================================
# RANKINGS
# =========================================================

def country_rankings(
    all_chain_rows: Iterable[FactRow],
    home_chain: str,
    metric: Metric = Metric.UNIQUE_USERS,
    selected_country: str | None = None,
) -> list[CountryRanking]:
    """Home chain's value per country with its rank among all chains there.

    With home chain `"all"` values are summed across chains and no rank is
    assigned. A selected country keeps only the entry matching its display
    name or code.

    Args:
        all_chain_rows: Rows of every chain for the selected window.
        home_chain: Selected chain, or `"all"`.
        metric: Fact compared between chains.
        selected_country: Optional country identifier (map click).

    Returns:
        Rankings sorted by value, largest first.
    """
    rows = list(all_chain_rows)
    per_country = peer_values(rows, "country", "chain", metric)

    out: list[CountryRanking] = []
    if is_all_chains(home_chain):
        for country, peers in per_country.items():
            out.append(
                CountryRanking(
                    country=country,
                    value=sum(peers.values()),
                    rank=None,
                    peer_count=len(peers),
                    peers=dict(peers),
                )
            )
    else:
        home_totals = values_of(aggregate(filter_rows(rows, chain=home_chain), "country"), metric)
        ranks = rank_groups({c: per_country.get(c, {}) for c in home_totals}, home_chain)
        for country, value in home_totals.items():
            peers = per_country.get(country, {})
            out.append(
                CountryRanking(
                    country=country,
                    value=value,
                    rank=ranks[country],
                    peer_count=len(peers),
                    peers=dict(peers),
                )
            )

    out.sort(key=lambda r: r.value, reverse=True)

    if selected_country:
        wanted = {c.casefold() for c in country_candidates(selected_country)}
        out = [r for r in out if r.country.strip().casefold() in wanted]
    return out


def category_rankings(
    all_chain_rows: Iterable[FactRow],
    home_chain: str,
    metric: Metric = Metric.UNIQUE_USERS,
    country: str | None = None,
) -> list[CategoryRanking]:
    """Home chain's value per category with its rank among all chains there.

    Every category with activity from any chain is listed; the home chain's
    value is 0 where it has none. When `country` is given both the peers and
    the home chain are restricted to that country.

    Returns:
        Rankings sorted by the home chain's value, largest first.
    """
    rows = filter_rows(all_chain_rows, country=country)
    per_category = peer_values(rows, "category", "chain", metric)

    out = [
        CategoryRanking(
            category=category,
            value=subject_value(peers, home_chain) or 0.0,
            rank=rank_global(peers, home_chain),
            peer_count=len(peers),
            peers=dict(peers),
        )
        for category, peers in per_category.items()
    ]
    out.sort(key=lambda r: r.value, reverse=True)
    return out


# =========================================================
# MAP + OVERVIEW
# =========================================================

def country_metrics(rows: Iterable[FactRow]) -> dict[str, CountryMetrics]:
    """All three facts per country, keyed as the source spelled the country."""
    return {
        rec["country"]: CountryMetrics.model_validate(rec)
        for rec in _records(aggregate(rows, "country"))
        if rec["country"]
    }


def metrics_for_country(
    metrics: dict[str, CountryMetrics],
    identifier: str | int | None,
) -> CountryMetrics | None:
    """Resolve a map identifier (numeric, alpha-2 or name) to its metrics."""
    return resolve_bucket(metrics, identifier)


def country_category_breakdown(
    rows: Iterable[FactRow],
    country: str | int | None,
) -> list[CategoryMetrics]:
    """All three facts per category inside one country, across every chain.

    Returns:
        Categories sorted by requests, largest first; empty without a country.
    """
    if country is None or not str(country).strip():
        return []
    buckets = aggregate(filter_rows(rows, country=str(country)), "category")
    buckets = buckets.sort_values(Metric.TOTAL_REQUESTS.value, ascending=False, kind="stable")
    return [CategoryMetrics.model_validate(rec) for rec in _records(buckets)]


def overview_totals(rows: Iterable[FactRow]) -> OverviewTotals:
    frame = to_frame(list(rows))
    return OverviewTotals(
        total_requests=int(frame[Metric.TOTAL_REQUESTS.value].sum()),
        unique_users=int(frame[Metric.UNIQUE_USERS.value].sum()),
        tx_volume_usd=float(frame[Metric.TX_VOLUME_USD.value].sum()),
        categories=distinct(frame, "category"),
        chains=distinct(frame, "chain"),
    )


# =========================================================
# DAPPS
# =========================================================

def _ranked_usage(rows: list[FactRow], key: str, metric: Metric) -> list[tuple[str, float]]:
    """Sum `metric` per `key`, largest first; rows without a key are skipped."""
    buckets = aggregate(rows, key)
    if buckets.empty:
        return []
    values = buckets[Metric(metric).value]
    values = values[values.index.astype(str) != ""]
    values = values.sort_values(ascending=False, kind="stable")
    return [(str(k), float(v)) for k, v in values.items()]


def dapp_leaderboard(
    dapp_rows: Iterable[DappFactRow],
    chain: str | None,
    country: str | None = None,
    category: str | None = None,
    metric: Metric = Metric.TOTAL_REQUESTS,
    limit: int | None = None,
) -> list[DappUsage]:
    """dApps of the selected chain ranked by `metric`.

    Args:
        dapp_rows: dApp rows for the selected window.
        chain: Home chain, or `"all"` for every chain.
        country: Optional country restriction (code or name).
        category: Optional category restriction.
        metric: Fact summed per dApp.
        limit: Keep only the first `limit` dApps.

    Returns:
        One entry per dApp, largest first; ties keep first-seen order.
    """
    rows = filter_rows(dapp_rows, chain=_chain_filter(chain), country=country, category=category)
    ranked = _ranked_usage(rows, "dapp_name", metric)
    if limit is not None:
        ranked = ranked[:limit]
    return [DappUsage(dapp_name=name, value=value) for name, value in ranked]


def dapp_actions(
    action_rows: Iterable[DappActionRow],
    dapp_name: str | None,
    chain: str | None,
    country: str | None = None,
    category: str | None = None,
    metric: Metric = Metric.TOTAL_REQUESTS,
) -> list[ActionUsage]:
    """Action types of one dApp ranked by `metric`; empty when no dApp is selected."""
    if not dapp_name or not dapp_name.strip():
        return []
    rows = filter_rows(
        action_rows,
        chain=_chain_filter(chain),
        country=country,
        category=category,
        dapp_name=dapp_name,
    )
    return [
        ActionUsage(action_type=name, value=value)
        for name, value in _ranked_usage(rows, "action_type", metric)
    ]


def country_dapps(
    dapp_rows: Iterable[DappFactRow],
    country: str | int | None,
    limit: int = COUNTRY_DAPP_LIMIT,
) -> list[CountryDapp]:
    """dApps active in one country across every chain.

    A dApp listed under several categories appears once per category. The
    chains it ran on are kept in first-seen order.

    Returns:
        At most `limit` entries sorted by requests, largest first.
    """
    if country is None or not str(country).strip():
        return []
    frame = to_frame(filter_rows(dapp_rows, country=str(country)))
    if frame.empty:
        return []
    frame = frame[frame["dapp_name"] != ""]
    if frame.empty:
        return []
    grouped = frame.groupby(["dapp_name", "category"], sort=False)
    table = grouped[[Metric.TOTAL_REQUESTS.value, Metric.UNIQUE_USERS.value]].sum()
    table["chains"] = grouped["chain"].agg(lambda s: list(dict.fromkeys(s)))
    table = table.sort_values(Metric.TOTAL_REQUESTS.value, ascending=False, kind="stable").head(limit)
    return [CountryDapp.model_validate(rec) for rec in _records(table)]
