"""Load cleaned fact rows into MongoDB with partitioned upserts.

Module notes:
- Each Dask partition is validated through the dataset's row model and
  upserted in batches keyed by the dataset's key fields (for the fact table:
  date, country, chain, category).
- Dates are stored as `YYYY-MM-DD` strings so range queries compare strings.
"""
from __future__ import annotations

import logging
from typing import Any
from typing import cast, Any as TypingAny

import pandas as pd
from dask import delayed, compute  # type: ignore[attr-defined]

from chain_analytics.db import bulk_upsert, ensure_fact_indexes, get_client, get_db
from chain_analytics.ingest.row_source import DATASETS, FACTS, Dataset, to_fact_rows

log = logging.getLogger(__name__)

BATCH_SIZE = 1000


def partition_docs(pdf: pd.DataFrame, dataset: Dataset = FACTS) -> tuple[list[dict[str, Any]], int]:
    """Validate a pandas partition and return Mongo-ready documents.

    Returns:
        A tuple of (documents, bad_rows).
    """
    if pdf is None or len(pdf) == 0:
        return [], 0
    rows, bad = to_fact_rows(pdf.to_dict(orient="records"), dataset.model)
    return [r.model_dump(mode="json") for r in rows], bad


def _process_partition(
    pdf: pd.DataFrame,
    mongo_uri: str,
    mongo_db: str,
    collection_name: str,
    dataset_name: str,
) -> tuple[int, int]:
    """Runs inside a worker (delayed task).

    Opens its own client, upserts the partition and returns `(good, bad)`.
    """
    dataset = DATASETS[dataset_name]
    docs, bad = partition_docs(pdf, dataset)
    if not docs:
        return 0, bad

    client = get_client(mongo_uri)
    try:
        collection = get_db(client, mongo_db)[collection_name]
        good = bulk_upsert(collection, docs, key_fields=dataset.key_fields, batch_size=BATCH_SIZE)
    finally:
        client.close()
    return good, bad


def load_facts_to_mongo(
    ddf: Any,
    mongo_uri: str,
    mongo_db: str,
    collection_name: str,
    dataset: Dataset = FACTS,
) -> tuple[int, int]:
    """Driver function.

    Uses `to_delayed()` so every partition is validated and written by its own
    task.

    Returns:
        Tuple `(good_rows, bad_rows)` summed over all partitions.
    """
    log.info("Loading %s rows into %s.%s...", dataset.name, mongo_db, collection_name)

    client = get_client(mongo_uri)
    try:
        ensure_fact_indexes(get_db(client, mongo_db)[collection_name], dataset.key_fields)
    finally:
        client.close()

    delayed_parts = ddf.to_delayed()
    tasks = [
        delayed(_process_partition)(part, mongo_uri, mongo_db, collection_name, dataset.name)
        for part in delayed_parts
    ]

    # `compute` is untyped in our environment; cast to Any before calling
    results = cast(TypingAny, compute)(*tasks)

    good_total = sum(g for g, _ in results)
    bad_total = sum(b for _, b in results)

    log.info("Fact load complete: good=%d bad=%d", good_total, bad_total)
    return int(good_total), int(bad_total)
