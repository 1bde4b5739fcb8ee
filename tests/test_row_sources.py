from __future__ import annotations

import datetime as dt
from pathlib import Path
from typing import Any

import pandas as pd
import pytest
import requests
from pymongo.errors import PyMongoError

from chain_analytics.ingest.mongo_source import MongoRowSource, build_filter
from chain_analytics.ingest.postgrest_source import PostgrestRowSource, build_params
from chain_analytics.ingest.row_source import (
    DAPP_ACTIONS,
    DAPPS,
    InMemoryRowSource,
    RowQuery,
    RowSourceError,
    to_fact_rows,
)
from chain_analytics.models import DappActionRow, DappFactRow, DateWindow

QUERY = RowQuery(start=dt.date(2025, 6, 1), end=dt.date(2025, 6, 7))

DOC = {
    "date": "2025-06-02",
    "country": "US",
    "chain": "ethereum",
    "category": "DeFi",
    "total_requests": 12,
    "unique_users": 3,
    "tx_volume_usd": 99.5,
}


# -------------------------
# In-memory source
# -------------------------

def test_to_fact_rows_skips_invalid_records() -> None:
    rows, bad = to_fact_rows([DOC, {"date": "not-a-date"}, {**DOC, "total_requests": -1}])
    assert len(rows) == 2
    assert bad == 1
    assert rows[1].total_requests == 0


def test_to_fact_rows_keeps_records_with_unparseable_numbers() -> None:
    rows, bad = to_fact_rows([{**DOC, "total_requests": "n/a", "unique_users": 7}])
    assert bad == 0
    assert len(rows) == 1
    assert rows[0].total_requests == 0
    assert rows[0].unique_users == 7


def test_to_fact_rows_validates_into_the_dataset_model() -> None:
    rows, bad = to_fact_rows([{**DOC, "dapp_name": "Uniswap", "action_type": "swap"}], DAPP_ACTIONS.model)
    assert bad == 0
    assert isinstance(rows[0], DappActionRow)
    assert rows[0].action_type == "swap"
    assert DAPPS.dimensions == ("country", "chain", "category", "dapp_name")


def test_in_memory_source_from_frame_filters_queries() -> None:
    pdf = pd.DataFrame(
        [
            DOC,
            {**DOC, "date": "2025-06-09"},
            {**DOC, "chain": "Polygon", "country": None, "unique_users": None},
        ]
    )
    source = InMemoryRowSource.from_frame(pdf)
    assert len(source.rows) == 3

    rows = source.fetch(QUERY)
    assert len(rows) == 2
    polygon = source.fetch(RowQuery.for_window(DateWindow(start=QUERY.start, end=QUERY.end), chain="polygon"))
    assert len(polygon) == 1
    assert polygon[0].country == ""
    assert polygon[0].unique_users == 0


def test_in_memory_source_requires_date_and_chain() -> None:
    with pytest.raises(ValueError):
        InMemoryRowSource.from_frame(pd.DataFrame([{"date": "2025-06-01", "country": "US"}]))
    assert InMemoryRowSource.from_frame(pd.DataFrame()).rows == []


def test_in_memory_source_from_csv(tmp_path: Path) -> None:
    path = tmp_path / "facts.csv"
    pd.DataFrame([DOC, {**DOC, "country": "DE", "tx_volume_usd": ""}]).to_csv(path, index=False)
    source = InMemoryRowSource.from_csv(path)
    rows = source.fetch(RowQuery(start=QUERY.start, end=QUERY.end, country="276"))
    assert len(rows) == 1
    assert rows[0].tx_volume_usd == 0.0


def test_in_memory_dapp_source_from_csv(tmp_path: Path) -> None:
    path = tmp_path / "dapps.csv"
    pd.DataFrame(
        [
            {**DOC, "dapp_name": "Uniswap"},
            {**DOC, "dapp_name": "Aave"},
        ]
    ).to_csv(path, index=False)
    source = InMemoryRowSource.from_csv(path, DAPPS)
    rows = source.fetch(RowQuery(start=QUERY.start, end=QUERY.end, dapp_name="UNISWAP"))
    assert len(rows) == 1
    assert isinstance(rows[0], DappFactRow)
    assert rows[0].dapp_name == "Uniswap"


def test_missing_csv_export_is_a_row_source_error(tmp_path: Path) -> None:
    with pytest.raises(RowSourceError) as exc_info:
        InMemoryRowSource.from_csv(tmp_path / "missing.csv", DAPPS)
    assert "dapps" in exc_info.value.message


# -------------------------
# Mongo source
# -------------------------

class FakeCursor(list):
    def batch_size(self, n: int) -> "FakeCursor":
        return self


class FakeCollection:
    name = "facts"

    def __init__(self, docs: list[dict[str, Any]] | None = None, error: Exception | None = None) -> None:
        self.docs = docs or []
        self.error = error
        self.calls: list[tuple[dict[str, Any], dict[str, Any]]] = []

    def find(self, selector: dict[str, Any], projection: dict[str, Any]) -> FakeCursor:
        self.calls.append((selector, projection))
        if self.error is not None:
            raise self.error
        return FakeCursor(self.docs)


def test_build_filter_uses_string_dates_and_case_insensitive_match() -> None:
    query = RowQuery(start=QUERY.start, end=QUERY.end, chain=" Ethereum ", country="840", category="a.b")
    selector = build_filter(query)
    assert selector["date"] == {"$gte": "2025-06-01", "$lte": "2025-06-07"}
    assert selector["chain"] == {"$regex": "^Ethereum$", "$options": "i"}
    assert selector["country"] == {"$regex": "^US$", "$options": "i"}
    assert selector["category"] == {"$regex": r"^a\.b$", "$options": "i"}
    assert set(build_filter(QUERY)) == {"date"}
    assert build_filter(RowQuery(start=QUERY.start, end=QUERY.end, dapp_name="Uniswap"))["dapp_name"] == {
        "$regex": "^Uniswap$",
        "$options": "i",
    }


def test_mongo_source_returns_validated_rows() -> None:
    collection = FakeCollection([DOC, {"date": None}])
    rows = MongoRowSource(collection).fetch(QUERY)
    assert len(rows) == 1
    assert rows[0].date == dt.date(2025, 6, 2)
    _, projection = collection.calls[0]
    assert projection["_id"] is False


def test_mongo_source_validates_into_its_model() -> None:
    collection = FakeCollection([{**DOC, "dapp_name": "Aave"}])
    rows = MongoRowSource(collection, model=DappFactRow).fetch(QUERY)
    assert isinstance(rows[0], DappFactRow)
    _, projection = collection.calls[0]
    assert projection["dapp_name"] is True


def test_mongo_source_wraps_driver_errors() -> None:
    collection = FakeCollection(error=PyMongoError("connection refused"))
    with pytest.raises(RowSourceError) as exc_info:
        MongoRowSource(collection).fetch(QUERY)
    assert exc_info.value.message == "connection refused"


# -------------------------
# PostgREST source
# -------------------------

class FakeResponse:
    def __init__(self, status_code: int, body: Any) -> None:
        self.status_code = status_code
        self._body = body
        self.text = str(body)

    def json(self) -> Any:
        if isinstance(self._body, Exception):
            raise self._body
        return self._body


class FakeSession:
    def __init__(self, responses: list[Any]) -> None:
        self.responses = list(responses)
        self.calls: list[dict[str, Any]] = []

    def get(self, url: str, params: Any = None, headers: Any = None, timeout: Any = None) -> FakeResponse:
        self.calls.append({"url": url, "params": params, "headers": headers})
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


def test_build_params_uses_postgrest_operators() -> None:
    params = build_params(RowQuery(start=QUERY.start, end=QUERY.end, chain="ethereum", country="36"))
    assert ("date", "gte.2025-06-01") in params
    assert ("date", "lte.2025-06-07") in params
    assert ("chain", "ilike.ethereum") in params
    assert ("country", "ilike.AU") in params
    assert params[0][0] == "select"
    assert not any(k == "category" for k, _ in params)
    assert ("dapp_name", "ilike.Aave") in build_params(RowQuery(start=QUERY.start, end=QUERY.end, dapp_name=" Aave "))


def test_postgrest_source_reads_every_page() -> None:
    session = FakeSession([FakeResponse(200, [DOC, DOC]), FakeResponse(200, [DOC])])
    source = PostgrestRowSource("https://demo.supabase.co/", "key", "facts", page_size=2, session=session)

    rows = source.fetch(QUERY)
    assert len(rows) == 3
    assert session.calls[0]["url"] == "https://demo.supabase.co/rest/v1/facts"
    assert session.calls[0]["headers"]["apikey"] == "key"
    assert ("offset", "2") in session.calls[1]["params"]


def test_postgrest_source_passes_error_message_through() -> None:
    session = FakeSession([FakeResponse(401, {"message": "Invalid API key"})])
    source = PostgrestRowSource("https://demo.supabase.co", "bad", "facts", session=session)
    with pytest.raises(RowSourceError) as exc_info:
        source.fetch(QUERY)
    assert exc_info.value.message == "Invalid API key"


def test_postgrest_source_wraps_transport_errors() -> None:
    session = FakeSession([requests.ConnectionError("no route to host")])
    source = PostgrestRowSource("https://demo.supabase.co", "", "facts", session=session)
    with pytest.raises(RowSourceError) as exc_info:
        source.fetch(QUERY)
    assert "no route to host" in exc_info.value.message
    assert "apikey" not in session.calls[0]["headers"]
