"""MongoDB helpers and bulk upsert utility.

Centralizes creation of Mongo clients and the batched upsert used when fact
rows are loaded into the store.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Sequence
from pymongo import ASCENDING, MongoClient, UpdateOne
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import PyMongoError

import certifi

log = logging.getLogger(__name__)

FACT_KEY_FIELDS = ("date", "country", "chain", "category")


def _wants_tls(uri: str) -> bool:
    lowered = uri.lower()
    return lowered.startswith("mongodb+srv://") or "tls=true" in lowered or "ssl=true" in lowered


def get_client(uri: str, tls: bool | None = None) -> MongoClient:
    """Return a configured PyMongo MongoClient for the provided URI.

    Args:
        uri: MongoDB connection URI.
        tls: Force TLS on or off; by default it is enabled for `mongodb+srv://`
            URIs and URIs that ask for it.

    Returns:
        Configured MongoClient instance.
    """
    use_tls = _wants_tls(uri) if tls is None else tls
    options: dict[str, Any] = {
        "serverSelectionTimeoutMS": 30000,
        "socketTimeoutMS": 30000,
        "connectTimeoutMS": 30000,
    }
    if use_tls:
        options["tls"] = True
        options["tlsCAFile"] = certifi.where()
    return MongoClient(uri, **options)


def get_db(
    client: MongoClient[dict[str, Any]],
    db_name: str,
) -> Database[dict[str, Any]]:
    """Return the named Database instance from a MongoClient.

    Args:
        client: PyMongo MongoClient.
        db_name: Database name.

    Returns:
        A Database object.
    """
    return client[db_name]


def ensure_fact_indexes(
    collection: Collection[dict[str, Any]],
    key_fields: Sequence[str] = FACT_KEY_FIELDS,
) -> None:
    """Create the unique row key index and the date index used by range queries."""
    collection.create_index(
        [(f, ASCENDING) for f in key_fields],
        unique=True,
        name="fact_key",
    )
    collection.create_index([("date", ASCENDING), ("chain", ASCENDING)], name="date_chain")


def bulk_upsert(
    collection: Collection[dict[str, Any]],
    docs: Iterable[dict[str, Any]],
    key_fields: Sequence[str] = FACT_KEY_FIELDS,
    batch_size: int = 1000,
) -> int:
    """Bulk upsert documents using `key_fields` as the selector.

    Documents missing any key field are skipped. A failed batch is logged and
    the remaining batches are still written; the return value counts the
    documents that were attempted.

    Args:
        collection: Target PyMongo collection.
        docs: Iterable of document dictionaries to upsert.
        key_fields: Document keys forming the upsert selector.
        batch_size: Number of ops per bulk_write call.

    Returns:
        Integer number of documents attempted.
    """
    ops: list[UpdateOne] = []
    attempted = 0

    for d in docs:
        if any(k not in d for k in key_fields):
            continue

        ops.append(
            UpdateOne(
                {k: d[k] for k in key_fields},
                {"$set": d},
                upsert=True,
            )
        )
        attempted += 1

        if len(ops) >= batch_size:
            try:
                collection.bulk_write(ops, ordered=False)
            except PyMongoError as e:
                log.warning("bulk_upsert batch failed: %s", e)
            ops.clear()

    if ops:
        try:
            collection.bulk_write(ops, ordered=False)
        except PyMongoError as e:
            log.warning("bulk_upsert final batch failed: %s", e)

    return attempted
