"""MongoDB-backed row source.

Fact documents store `date` as a `YYYY-MM-DD` string, so the inclusive range
filter is a plain string comparison. String filters are anchored,
escaped, case-insensitive regular expressions.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from pymongo.collection import Collection
from pymongo.errors import PyMongoError

from chain_analytics.aggregate.country_codes import to_alpha2
from chain_analytics.ingest.row_source import RowQuery, RowSourceError, to_fact_rows
from chain_analytics.models import FactRow

log = logging.getLogger(__name__)


def _ilike(value: str) -> dict[str, str]:
    return {"$regex": f"^{re.escape(value.strip())}$", "$options": "i"}


def build_filter(query: RowQuery) -> dict[str, Any]:
    """Translate a RowQuery into a MongoDB filter document.

    Args:
        query: Row query; the country is mapped from numeric ISO codes first.

    Returns:
        Filter dict suitable for `Collection.find`.
    """
    selector: dict[str, Any] = {
        "date": {"$gte": query.start.isoformat(), "$lte": query.end.isoformat()},
    }
    filters = {
        "chain": query.chain,
        "country": to_alpha2(query.country) if query.country else None,
        "category": query.category,
        "dapp_name": query.dapp_name,
    }
    for field, value in filters.items():
        if value and value.strip():
            selector[field] = _ilike(value)
    return selector


class MongoRowSource:
    """Row source reading fact documents from one collection.

    Args:
        collection: Collection holding the rows.
        model: Row model the documents are validated into.
        batch_size: Cursor batch size.
    """

    def __init__(
        self,
        collection: Collection[dict[str, Any]],
        model: type[FactRow] = FactRow,
        batch_size: int = 10_000,
    ) -> None:
        self.collection = collection
        self.model = model
        self.batch_size = batch_size

    def fetch(self, query: RowQuery) -> list[FactRow]:
        selector = build_filter(query)
        projection = {c: True for c in self.model.model_fields} | {"_id": False}
        try:
            docs = list(self.collection.find(selector, projection).batch_size(self.batch_size))
        except PyMongoError as e:
            log.warning("Fact query failed on %s: %s", self.collection.name, e)
            raise RowSourceError(str(e)) from e

        rows, _ = to_fact_rows(docs, self.model)
        log.debug("Fetched %d fact rows for %s", len(rows), selector)
        return rows
