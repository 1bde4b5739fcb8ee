"""Row-source contract and the in-memory implementation.

`RowSource.fetch` returns validated rows of one dataset or raises
`RowSourceError` carrying the collaborator's message. Three datasets share
the contract: the fact table and its dApp and dApp-action breakdowns.
`build_row_source` picks the concrete source named by the settings.
"""

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Protocol

import pandas as pd
from pydantic import ValidationError

from chain_analytics.aggregate.buckets import filter_rows
from chain_analytics.config import Settings
from chain_analytics.models import DappActionRow, DappFactRow, DateWindow, FactRow

log = logging.getLogger(__name__)

TEXT_DTYPES = {
    "country": str,
    "chain": str,
    "category": str,
    "dapp_name": str,
    "action_type": str,
}


@dataclass(frozen=True)
class Dataset:
    """One fact table: its row model and the dimensions that key a row."""
    name: str
    model: type[FactRow]
    key_fields: tuple[str, ...]

    @property
    def columns(self) -> list[str]:
        return list(self.model.model_fields)

    @property
    def dimensions(self) -> tuple[str, ...]:
        """Text dimensions of the key (every key field but `date`)."""
        return tuple(f for f in self.key_fields if f != "date")


FACTS = Dataset("facts", FactRow, ("date", "country", "chain", "category"))
DAPPS = Dataset("dapps", DappFactRow, (*FACTS.key_fields, "dapp_name"))
DAPP_ACTIONS = Dataset("dapp_actions", DappActionRow, (*DAPPS.key_fields, "action_type"))
DATASETS = {d.name: d for d in (FACTS, DAPPS, DAPP_ACTIONS)}


class RowSourceError(RuntimeError):
    """Query failure reported by a row source; `message` is passed through untouched."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


@dataclass(frozen=True)
class RowQuery:
    """Fact-row query.

    Attributes:
        start: Inclusive first day.
        end: Inclusive last day.
        chain: Optional chain name (case-insensitive).
        country: Optional country code (case-insensitive; numeric codes are mapped).
        category: Optional category (case-insensitive).
        dapp_name: Optional dApp (case-insensitive); only dApp datasets have it.
    """
    start: dt.date
    end: dt.date
    chain: str | None = None
    country: str | None = None
    category: str | None = None
    dapp_name: str | None = None

    @classmethod
    def for_window(cls, window: DateWindow, **filters: str | None) -> "RowQuery":
        return cls(start=window.start, end=window.end, **filters)


class RowSource(Protocol):
    def fetch(self, query: RowQuery) -> list[FactRow]:
        ...


def to_fact_rows(
    records: Iterable[dict[str, Any]],
    model: type[FactRow] = FactRow,
) -> tuple[list[FactRow], int]:
    """Validate raw records into rows of `model`.

    Numeric facts that are missing, unparseable or negative become 0; a
    record is only rejected when its date or text fields are unusable.

    Returns:
        A tuple of (valid_rows, bad_count); invalid records are skipped.
    """
    good: list[FactRow] = []
    bad = 0
    for rec in records:
        try:
            good.append(model.model_validate(rec))
        except (ValidationError, ValueError, TypeError):
            bad += 1
    if bad:
        log.warning("Skipped %d %s records that failed validation", bad, model.__name__)
    return good, bad


class InMemoryRowSource:
    """Row source over rows already held in memory (CSV exports, tests)."""

    def __init__(self, rows: Iterable[FactRow]) -> None:
        self.rows = list(rows)

    @classmethod
    def from_frame(cls, pdf: pd.DataFrame, dataset: Dataset = FACTS) -> "InMemoryRowSource":
        """Build from a pandas DataFrame with the dataset's columns."""
        if pdf.empty:
            return cls([])
        missing = [c for c in ("date", "chain") if c not in pdf.columns]
        if missing:
            raise ValueError(f"fact frame is missing columns: {missing}")
        cols = [c for c in dataset.columns if c in pdf.columns]
        rows, _ = to_fact_rows(pdf[cols].to_dict(orient="records"), dataset.model)
        return cls(rows)

    @classmethod
    def from_csv(cls, path: Path, dataset: Dataset = FACTS) -> "InMemoryRowSource":
        log.info("Reading %s rows from %s", dataset.name, path)
        try:
            pdf = pd.read_csv(path, dtype=TEXT_DTYPES)
        except FileNotFoundError as e:
            raise RowSourceError(f"{dataset.name} export not found: {path}") from e
        return cls.from_frame(pdf, dataset)

    def fetch(self, query: RowQuery) -> list[FactRow]:
        return filter_rows(
            self.rows,
            start=query.start,
            end=query.end,
            chain=query.chain,
            country=query.country,
            category=query.category,
            dapp_name=query.dapp_name,
        )


def build_row_source(settings: Settings, dataset: Dataset = FACTS) -> RowSource:
    """Return the row source selected by `settings.row_source` for one dataset."""
    table = settings.collection_for(dataset.name)
    if settings.row_source == "postgrest":
        from chain_analytics.ingest.postgrest_source import PostgrestRowSource

        return PostgrestRowSource(
            base_url=settings.postgrest_url,
            api_key=settings.postgrest_key,
            table=table,
            model=dataset.model,
        )
    if settings.row_source == "csv":
        return InMemoryRowSource.from_csv(settings.csv_for(dataset.name), dataset)

    from chain_analytics.db import get_client, get_db
    from chain_analytics.ingest.mongo_source import MongoRowSource

    client = get_client(settings.mongo_uri)
    return MongoRowSource(get_db(client, settings.mongo_db)[table], model=dataset.model)
