"""Cleaning and normalization of fact exports.

This module contains transformations that are applied partition-wise using
Dask. The output is a Dask DataFrame with exactly the fact columns, ready for
`FactRow` validation.
"""
from __future__ import annotations

import logging
from typing import Any, Sequence

import pandas as pd

log = logging.getLogger(__name__)

DIMENSIONS = ("country", "chain", "category")
COUNT_FACTS = ("total_requests", "unique_users")
VOLUME_FACTS = ("tx_volume_usd",)
FACT_COLUMNS = ["date", *DIMENSIONS, *COUNT_FACTS, *VOLUME_FACTS]


def clean_facts_partition(
    pdf: pd.DataFrame,
    dimensions: Sequence[str] = DIMENSIONS,
) -> pd.DataFrame:
    """Partition-level cleaning function applied via map_partitions.

    Args:
        pdf: Pandas DataFrame for the partition.
        dimensions: Text dimensions of the export (dApp exports add
            `dapp_name` and `action_type`).

    Returns:
        Cleaned Pandas DataFrame with the fact columns only.
    """
    pdf = pdf.copy()

    # -----------------------------
    # Normalize dimensions
    # -----------------------------
    for col in dimensions:
        if col in pdf.columns:
            pdf[col] = (
                pdf[col]
                .fillna("")
                .astype(str)
                .str.strip()
                .str.replace(r"\s+", " ", regex=True)
            )
        else:
            pdf[col] = ""

    # -----------------------------
    # Numeric facts: null/garbage/negative -> 0
    # -----------------------------
    for col in (*COUNT_FACTS, *VOLUME_FACTS):
        if col in pdf.columns:
            values = pd.to_numeric(pdf[col], errors="coerce").fillna(0)
            pdf[col] = values.where(values >= 0, 0)
        else:
            pdf[col] = 0
    for col in COUNT_FACTS:
        pdf[col] = pdf[col].round().astype("int64")
    for col in VOLUME_FACTS:
        pdf[col] = pdf[col].astype("float64")

    # -----------------------------
    # Standardize date (drop unparseable)
    # -----------------------------
    # Only the calendar day matters; time parts and offsets are cut off
    days = pdf["date"].astype(str).str.strip().str.slice(0, 10)
    dates = pd.to_datetime(days, format="%Y-%m-%d", errors="coerce")
    keep = dates.notna()
    pdf = pdf.loc[keep].copy()
    pdf["date"] = dates.loc[keep].dt.strftime("%Y-%m-%d").astype(object)

    return pdf[["date", *dimensions, *COUNT_FACTS, *VOLUME_FACTS]]


def clean_facts_ddf(ddf: Any, dimensions: Sequence[str] = DIMENSIONS) -> Any:
    """Clean a raw fact export.

    Strips dimension text, coerces the numeric facts (missing, unparseable or
    negative values become 0), normalizes `date` to `YYYY-MM-DD` strings and
    drops rows whose date cannot be parsed.

    Raises:
        ValueError: if the frame has no `date` column.

    Returns:
        Transformed Dask DataFrame with a stable schema for downstream steps.
    """
    if "date" not in ddf.columns:
        raise ValueError("fact export has no 'date' column")

    log.info("Starting clean_facts_ddf transformation")
    dimensions = tuple(dimensions)
    meta = clean_facts_partition(ddf._meta, dimensions)
    return ddf.map_partitions(clean_facts_partition, dimensions=dimensions, meta=meta)
