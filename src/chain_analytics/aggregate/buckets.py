"""Dimension aggregation over fact rows.

Rows are loaded into a pandas frame and grouped with `groupby(sort=False)`,
which sums the three numeric facts per key and keeps keys in first-seen
order. Grouping keys keep the exact text of the first row seen for them;
only filter predicates (`filter_rows`) and the explicit
`merge_case_insensitive` step ignore case.

Expectations:
- Input: `FactRow`s (or a frame built by `to_frame`) already limited to the
  rows the caller wants, or filtered here with `filter_rows`
- Output: bucket frames indexed by the grouping key(s) with one column per
  fact plus `row_count`
"""
from __future__ import annotations

import datetime as dt
import logging
from typing import Hashable, Iterable, Sequence

import pandas as pd

from chain_analytics.aggregate.country_codes import same_country
from chain_analytics.models import FactRow, Metric

log = logging.getLogger(__name__)

DIMENSIONS = ["date", "country", "chain", "category"]
FACTS = [m.value for m in Metric]
BUCKET_COLUMNS = [*FACTS, "row_count"]

Keys = str | Sequence[str]


# =========================================================
# FRAMES
# =========================================================

def to_frame(rows: Iterable[FactRow] | pd.DataFrame) -> pd.DataFrame:
    """Return the rows as a frame with one column per model field.

    Missing facts are filled with 0. A frame passed in is returned unchanged.
    """
    if isinstance(rows, pd.DataFrame):
        return rows
    records = [r.model_dump() for r in rows]
    if not records:
        frame = pd.DataFrame({c: pd.Series(dtype=object) for c in DIMENSIONS})
        for col in FACTS:
            frame[col] = pd.Series(dtype="float64")
        return frame
    frame = pd.DataFrame.from_records(records)
    frame[FACTS] = frame[FACTS].fillna(0)
    return frame


def _key_list(keys: Keys) -> list[str]:
    return [keys] if isinstance(keys, str) else list(keys)


def _empty_buckets(keys: list[str]) -> pd.DataFrame:
    if len(keys) == 1:
        index = pd.Index([], name=keys[0], dtype=object)
    else:
        index = pd.MultiIndex.from_arrays([[] for _ in keys], names=keys)
    return pd.DataFrame({c: pd.Series(dtype="float64") for c in BUCKET_COLUMNS}, index=index)


# =========================================================
# FILTERING
# =========================================================

def _matches(value: str, wanted: str | None) -> bool:
    if wanted is None or not str(wanted).strip():
        return True
    return value.strip().casefold() == str(wanted).strip().casefold()


def filter_rows(
    rows: Iterable[FactRow],
    start: dt.date | None = None,
    end: dt.date | None = None,
    chain: str | None = None,
    country: str | None = None,
    category: str | None = None,
    dapp_name: str | None = None,
) -> list[FactRow]:
    """Keep rows inside the inclusive date bounds that match every set filter.

    String filters are compared case-insensitively; an empty or None filter
    is inactive. The country filter also accepts numeric ISO codes and
    display names (see `country_codes.same_country`).

    Args:
        rows: Fact rows to filter.
        start: Inclusive first day, or None for unbounded.
        end: Inclusive last day, or None for unbounded.
        chain: Chain identifier to keep.
        country: Country identifier to keep.
        category: Category label to keep.
        dapp_name: dApp to keep; rows without a dApp never match it.

    Returns:
        List of rows that pass every active filter, in input order.
    """
    out: list[FactRow] = []
    country_active = country is not None and bool(str(country).strip())
    for row in rows:
        if start is not None and row.date < start:
            continue
        if end is not None and row.date > end:
            continue
        if not _matches(row.chain, chain):
            continue
        if not _matches(row.category, category):
            continue
        if not _matches(getattr(row, "dapp_name", ""), dapp_name):
            continue
        if country_active and not same_country(row.country, country):
            continue
        out.append(row)
    return out


# =========================================================
# AGGREGATION
# =========================================================

def aggregate(rows: Iterable[FactRow] | pd.DataFrame, keys: Keys) -> pd.DataFrame:
    """Group rows by one or more columns and sum the numeric facts per group.

    Args:
        rows: Fact rows (or a `to_frame` frame); null facts count as 0.
        keys: Column name, or sequence of column names, to group by.

    Returns:
        Frame indexed by the key(s), in first-seen key order, with the
        columns `total_requests`, `unique_users`, `tx_volume_usd` and
        `row_count`.
    """
    keys = _key_list(keys)
    frame = to_frame(rows)
    if frame.empty:
        return _empty_buckets(keys)
    grouped = frame.groupby(keys, sort=False, dropna=False)
    buckets = grouped[FACTS].sum()
    buckets["row_count"] = grouped.size()
    return buckets


def merge_case_insensitive(buckets: pd.DataFrame, levels: Keys | None = None) -> pd.DataFrame:
    """Merge buckets whose keys differ only by case.

    The surviving key is the first one seen. Only the named index `levels`
    are folded (all of them by default); the others must match exactly.
    The input frame is not modified.
    """
    if buckets.empty:
        return buckets.copy()
    names = list(buckets.index.names)
    fold = set(names if levels is None else _key_list(levels))

    flat = buckets.reset_index()
    group_cols = []
    for name in names:
        col = f"_{name}_key"
        if name in fold:
            flat[col] = flat[name].map(lambda v: v.casefold() if isinstance(v, str) else v)
        else:
            flat[col] = flat[name]
        group_cols.append(col)

    grouped = flat.groupby(group_cols, sort=False, dropna=False)
    merged = grouped[BUCKET_COLUMNS].sum()
    firsts = grouped[names].first()
    if len(names) == 1:
        merged.index = pd.Index(firsts[names[0]].tolist(), name=names[0])
    else:
        merged.index = pd.MultiIndex.from_frame(firsts.reset_index(drop=True))
    return merged


def values_of(buckets: pd.DataFrame, metric: Metric) -> dict[Hashable, float]:
    """Project buckets onto one metric, keyed like the bucket index."""
    return {k: float(v) for k, v in buckets[Metric(metric).value].items()}


def peer_values(
    rows: Iterable[FactRow] | pd.DataFrame,
    group: Keys,
    peer: str = "chain",
    metric: Metric = Metric.UNIQUE_USERS,
) -> dict[Hashable, dict[str, float]]:
    """Build one PeerValueMap per group (e.g. chains per country).

    Peers are merged case-insensitively inside each group so that one chain
    spelled two ways is ranked once; group keys keep their exact text.

    Args:
        rows: Fact rows covering every peer, not just the home chain.
        group: Column(s) forming the group (country, category, ...). With
            several columns the group key is a tuple.
        peer: Column holding the peer identifier (chain by default).
        metric: Metric summed per peer.

    Returns:
        Dict of group → {peer: summed value}, groups in first-seen order.
    """
    groups = _key_list(group)
    buckets = merge_case_insensitive(aggregate(rows, [*groups, peer]), levels=peer)

    out: dict[Hashable, dict[str, float]] = {}
    for key, value in buckets[Metric(metric).value].items():
        *group_key, peer_id = key
        g = group_key[0] if len(group_key) == 1 else tuple(group_key)
        out.setdefault(g, {})[peer_id] = float(value)
    return out


def totals(rows: Iterable[FactRow] | pd.DataFrame, metric: Metric) -> float:
    """Sum one metric over rows."""
    return float(to_frame(rows)[Metric(metric).value].sum())


def distinct(rows: Iterable[FactRow] | pd.DataFrame, field_name: str) -> int:
    """Count distinct non-empty values of a string dimension, ignoring case."""
    values = to_frame(rows)[field_name]
    values = values[values.astype(str) != ""]
    return int(values.astype(str).str.casefold().nunique())
