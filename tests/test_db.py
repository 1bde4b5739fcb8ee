from __future__ import annotations

from typing import Any

from pymongo.errors import PyMongoError

from chain_analytics.db import _wants_tls, bulk_upsert

DOC = {"date": "2025-06-01", "country": "US", "chain": "ethereum", "category": "DeFi", "total_requests": 1}


class RecordingCollection:
    def __init__(self, fail_first: bool = False) -> None:
        self.batches: list[list[Any]] = []
        self.fail_first = fail_first

    def bulk_write(self, ops: list[Any], ordered: bool = False) -> None:
        self.batches.append(list(ops))
        if self.fail_first and len(self.batches) == 1:
            raise PyMongoError("duplicate key")


def test_bulk_upsert_batches_and_skips_docs_without_key() -> None:
    coll = RecordingCollection()
    docs = [{**DOC, "date": f"2025-06-0{i}"} for i in range(1, 6)] + [{"chain": "ethereum"}]
    attempted = bulk_upsert(coll, docs, batch_size=2)
    assert attempted == 5
    assert [len(b) for b in coll.batches] == [2, 2, 1]


def test_bulk_upsert_continues_after_failed_batch() -> None:
    coll = RecordingCollection(fail_first=True)
    docs = [{**DOC, "date": f"2025-06-0{i}"} for i in range(1, 4)]
    assert bulk_upsert(coll, docs, batch_size=2) == 3
    assert len(coll.batches) == 2


def test_tls_is_enabled_for_srv_and_explicit_uris() -> None:
    assert _wants_tls("mongodb+srv://user:pw@cluster.example.net/")
    assert _wants_tls("mongodb://host:27017/?tls=true")
    assert not _wants_tls("mongodb://localhost:27017")
