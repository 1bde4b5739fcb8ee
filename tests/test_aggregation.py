from __future__ import annotations

import datetime as dt

from chain_analytics.aggregate.buckets import (
    aggregate,
    distinct,
    filter_rows,
    merge_case_insensitive,
    peer_values,
    to_frame,
    totals,
    values_of,
)
from chain_analytics.models import DappFactRow, FactRow, Metric


def _row(day: str, country: str, chain: str, category: str, requests=0, users=0, volume=0.0) -> FactRow:
    return FactRow(
        date=day,
        country=country,
        chain=chain,
        category=category,
        total_requests=requests,
        unique_users=users,
        tx_volume_usd=volume,
    )


ROWS = [
    _row("2025-06-01", "US", "ethereum", "DeFi", requests=10, users=4, volume=100.0),
    _row("2025-06-01", "US", "polygon", "DeFi", requests=5, users=9, volume=20.0),
    _row("2025-06-02", "DE", "ethereum", "NFT", requests=7, users=2, volume=5.5),
    _row("2025-06-03", "US", "ethereum", "NFT", requests=3, users=1, volume=0.5),
]


def test_aggregate_sums_every_fact_per_key() -> None:
    buckets = aggregate(ROWS, "country")
    assert list(buckets.index) == ["US", "DE"]
    us = buckets.loc["US"]
    assert us["total_requests"] == 18
    assert us["unique_users"] == 14
    assert us["tx_volume_usd"] == 120.5
    assert us["row_count"] == 3


def test_aggregate_by_multiple_fields() -> None:
    buckets = aggregate(ROWS, ["chain", "category"])
    assert buckets.loc[("ethereum", "NFT"), "total_requests"] == 10
    assert buckets.loc[("polygon", "DeFi"), "unique_users"] == 9
    assert list(buckets.index) == [("ethereum", "DeFi"), ("polygon", "DeFi"), ("ethereum", "NFT")]


def test_aggregate_of_no_rows_is_empty() -> None:
    buckets = aggregate([], ["country", "chain"])
    assert buckets.empty
    assert list(buckets.index.names) == ["country", "chain"]
    assert totals([], Metric.TOTAL_REQUESTS) == 0.0
    assert distinct([], "chain") == 0


def test_missing_numeric_values_count_as_zero() -> None:
    rows = [
        FactRow(date="2025-06-01", country="US", chain="base", category="DeFi", total_requests=None),
        FactRow(date="2025-06-01", country="US", chain="base", category="DeFi", total_requests=4, unique_users=float("nan")),
    ]
    bucket = aggregate(rows, "chain").loc["base"]
    assert bucket["total_requests"] == 4
    assert bucket["unique_users"] == 0
    assert bucket["tx_volume_usd"] == 0.0


def test_grouping_keeps_case_until_merged() -> None:
    rows = [
        _row("2025-06-01", "US", "Ethereum", "DeFi", requests=2),
        _row("2025-06-01", "US", "ethereum", "DeFi", requests=3),
    ]
    buckets = aggregate(rows, "chain")
    assert set(buckets.index) == {"Ethereum", "ethereum"}

    merged = merge_case_insensitive(buckets)
    assert list(merged.index) == ["Ethereum"]
    assert merged.loc["Ethereum", "total_requests"] == 5
    assert merged.loc["Ethereum", "row_count"] == 2
    # inputs untouched
    assert buckets.loc["Ethereum", "total_requests"] == 2


def test_merge_folds_only_the_requested_level() -> None:
    rows = [
        _row("2025-06-01", "US", "Base", "DeFi", requests=1),
        _row("2025-06-01", "us", "base", "DeFi", requests=2),
        _row("2025-06-01", "US", "base", "DeFi", requests=4),
    ]
    merged = merge_case_insensitive(aggregate(rows, ["country", "chain"]), levels="chain")
    assert values_of(merged, Metric.TOTAL_REQUESTS) == {("US", "Base"): 5.0, ("us", "base"): 2.0}


def test_filter_rows_date_bounds_are_inclusive() -> None:
    kept = filter_rows(ROWS, start=dt.date(2025, 6, 1), end=dt.date(2025, 6, 2))
    assert [r.date for r in kept] == [dt.date(2025, 6, 1), dt.date(2025, 6, 1), dt.date(2025, 6, 2)]


def test_filter_rows_string_filters_ignore_case() -> None:
    kept = filter_rows(ROWS, chain="ETHEREUM", category="nft")
    assert len(kept) == 2
    assert all(r.chain == "ethereum" for r in kept)


def test_filter_rows_country_accepts_numeric_code_and_name() -> None:
    assert len(filter_rows(ROWS, country="840")) == 3
    assert len(filter_rows(ROWS, country="germany")) == 1
    assert len(filter_rows(ROWS, country="  ")) == len(ROWS)


def test_filter_rows_by_dapp() -> None:
    rows = [
        DappFactRow(date="2025-06-01", chain="ethereum", dapp_name="Uniswap", total_requests=3),
        DappFactRow(date="2025-06-01", chain="ethereum", dapp_name="Aave", total_requests=1),
    ]
    assert [r.dapp_name for r in filter_rows(rows, dapp_name="uniswap")] == ["Uniswap"]
    # plain fact rows carry no dApp
    assert filter_rows(ROWS, dapp_name="Uniswap") == []


def test_peer_values_per_group() -> None:
    rows = ROWS + [_row("2025-06-04", "US", "Ethereum", "DeFi", users=6)]
    per_country = peer_values(rows, "country", "chain", Metric.UNIQUE_USERS)
    assert per_country["US"] == {"ethereum": 11, "polygon": 9}
    assert per_country["DE"] == {"ethereum": 2}


def test_peer_values_with_tuple_groups() -> None:
    groups = peer_values(ROWS, ["country", "category"], "chain", Metric.TOTAL_REQUESTS)
    assert list(groups) == [("US", "DeFi"), ("DE", "NFT"), ("US", "NFT")]
    assert groups[("US", "DeFi")] == {"ethereum": 10.0, "polygon": 5.0}


def test_totals_values_of_and_distinct() -> None:
    assert totals(ROWS, Metric.TOTAL_REQUESTS) == 25
    assert values_of(aggregate(ROWS, "category"), Metric.TOTAL_REQUESTS) == {"DeFi": 15, "NFT": 10}
    rows = ROWS + [_row("2025-06-04", "US", "Polygon", "", requests=1)]
    assert distinct(rows, "chain") == 2
    assert distinct(rows, "category") == 2


def test_to_frame_has_a_column_per_field() -> None:
    frame = to_frame(ROWS)
    assert list(frame.columns[:4]) == ["date", "country", "chain", "category"]
    assert len(frame) == len(ROWS)
    assert to_frame(frame) is frame


def test_bucket_sums_account_for_every_filtered_row() -> None:
    kept = filter_rows(ROWS, chain="ethereum")
    buckets = aggregate(kept, ["country", "category"])
    assert buckets["total_requests"].sum() == sum(r.total_requests for r in kept)
    for key, bucket in buckets.iterrows():
        matching = [r for r in kept if (r.country, r.category) == key]
        assert bucket["total_requests"] == sum(r.total_requests for r in matching)
        assert bucket["row_count"] == len(matching)
