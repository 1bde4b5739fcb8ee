"""Configuration helpers and Settings container.

This module provides a small `Settings` dataclass and `get_settings` which
reads the row-source selection, store credentials and the dashboard's date
bounds from the environment (after loading `.env` from the project root).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from pathlib import Path
import os

from dotenv import load_dotenv

# Explicitly load .env from project root
PROJECT_ROOT = Path(__file__).resolve().parents[2]
load_dotenv(PROJECT_ROOT / ".env")

ROW_SOURCES = ("mongo", "postgrest", "csv")


@dataclass(frozen=True)
class Settings:
    """Container for dashboard configuration read from the environment.

    Attributes:
        row_source: Which row source backs the dashboard (`mongo`, `postgrest`, `csv`).
        mongo_uri: MongoDB connection URI.
        mongo_db: Target MongoDB database name.
        facts_collection: Collection (or PostgREST table) holding fact rows.
        dapps_collection: Collection holding per-dApp fact rows.
        dapp_actions_collection: Collection holding per-dApp action rows.
        postgrest_url: Base URL of the PostgREST/Supabase project.
        postgrest_key: API key sent with PostgREST requests.
        facts_csv: CSV export used when `row_source == "csv"`.
        dapps_csv: dApp export used when `row_source == "csv"`.
        dapp_actions_csv: dApp action export used when `row_source == "csv"`.
        dashboard_start: First selectable day; also the slider epoch.
        dashboard_end: Last selectable day.
        slider_min_gap: Minimum number of days between the two slider thumbs.
        log_path: File that receives a copy of the logs.
    """
    row_source: str
    mongo_uri: str
    mongo_db: str
    facts_collection: str
    dapps_collection: str
    dapp_actions_collection: str
    postgrest_url: str
    postgrest_key: str
    facts_csv: Path
    dapps_csv: Path
    dapp_actions_csv: Path
    dashboard_start: date
    dashboard_end: date
    slider_min_gap: int
    log_path: Path

    @property
    def total_days(self) -> int:
        """Number of slider steps between the dashboard bounds."""
        return (self.dashboard_end - self.dashboard_start).days

    def collection_for(self, dataset: str) -> str:
        """Collection (or table) backing one dataset (`facts`, `dapps`, `dapp_actions`)."""
        return {
            "facts": self.facts_collection,
            "dapps": self.dapps_collection,
            "dapp_actions": self.dapp_actions_collection,
        }[dataset]

    def csv_for(self, dataset: str) -> Path:
        """CSV export backing one dataset in `csv` mode."""
        return {
            "facts": self.facts_csv,
            "dapps": self.dapps_csv,
            "dapp_actions": self.dapp_actions_csv,
        }[dataset]


def _parse_day(name: str, default: str) -> date:
    raw = os.getenv(name, default).strip()
    try:
        return date.fromisoformat(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an ISO date (YYYY-MM-DD), got {raw!r}") from exc


def get_settings() -> Settings:
    """Read environment variables and return a frozen `Settings` object.

    Raises:
        RuntimeError: if `ROW_SOURCE` is unknown, `POSTGREST_URL` is missing for
            the PostgREST source, or the dashboard bounds are inverted.
    """
    row_source = os.getenv("ROW_SOURCE", "mongo").strip().lower()
    mongo_uri = os.getenv("MONGO_URI", "mongodb://localhost:27017")
    mongo_db = os.getenv("MONGO_DB", "chain_analytics")
    facts_collection = os.getenv("FACTS_COLLECTION", "aggregated_country_chain_category")
    dapps_collection = os.getenv(
        "DAPPS_COLLECTION", "aggregated_country_chain_category_dapps"
    )
    dapp_actions_collection = os.getenv(
        "DAPP_ACTIONS_COLLECTION", "aggregated_country_chain_category_dapps_actions"
    )
    postgrest_url = os.getenv("POSTGREST_URL", "").strip()
    postgrest_key = os.getenv("POSTGREST_KEY", "").strip()
    facts_csv = Path(os.getenv("FACTS_CSV", "data/facts.csv"))
    dapps_csv = Path(os.getenv("DAPPS_CSV", "data/dapps.csv"))
    dapp_actions_csv = Path(os.getenv("DAPP_ACTIONS_CSV", "data/dapp_actions.csv"))
    dashboard_start = _parse_day("DASHBOARD_START", "2025-06-01")
    dashboard_end = _parse_day("DASHBOARD_END", "2025-07-31")
    slider_min_gap = int(os.getenv("SLIDER_MIN_GAP", "1"))
    log_path = Path(os.getenv("LOG_PATH", "logs/dashboard.log"))

    if row_source not in ROW_SOURCES:
        raise RuntimeError(
            f"ROW_SOURCE must be one of {', '.join(ROW_SOURCES)}, got {row_source!r}."
        )

    if row_source == "postgrest" and not postgrest_url:
        raise RuntimeError(
            "POSTGREST_URL is required when ROW_SOURCE=postgrest. Set it in .env "
            "(example: 'https://<project>.supabase.co')."
        )

    if dashboard_end < dashboard_start:
        raise RuntimeError("DASHBOARD_END must not be earlier than DASHBOARD_START.")

    return Settings(
        row_source=row_source,
        mongo_uri=mongo_uri,
        mongo_db=mongo_db,
        facts_collection=facts_collection,
        dapps_collection=dapps_collection,
        dapp_actions_collection=dapp_actions_collection,
        postgrest_url=postgrest_url,
        postgrest_key=postgrest_key,
        facts_csv=facts_csv,
        dapps_csv=dapps_csv,
        dapp_actions_csv=dapp_actions_csv,
        dashboard_start=dashboard_start,
        dashboard_end=dashboard_end,
        slider_min_gap=slider_min_gap,
        log_path=log_path,
    )
