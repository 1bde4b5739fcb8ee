from __future__ import annotations

import datetime as dt

import pytest

from chain_analytics.config import get_settings


def test_settings_read_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ROW_SOURCE", "CSV")
    monkeypatch.setenv("FACTS_CSV", "exports/facts.csv")
    monkeypatch.setenv("DASHBOARD_START", "2025-06-01")
    monkeypatch.setenv("DASHBOARD_END", "2025-06-15")
    monkeypatch.setenv("SLIDER_MIN_GAP", "2")

    s = get_settings()
    assert s.row_source == "csv"
    assert s.facts_csv.name == "facts.csv"
    assert s.dashboard_start == dt.date(2025, 6, 1)
    assert s.total_days == 14
    assert s.slider_min_gap == 2


def test_unknown_row_source_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ROW_SOURCE", "bigquery")
    with pytest.raises(RuntimeError):
        get_settings()


def test_postgrest_requires_url(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ROW_SOURCE", "postgrest")
    monkeypatch.setenv("POSTGREST_URL", "")
    with pytest.raises(RuntimeError):
        get_settings()


def test_inverted_dashboard_bounds_are_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ROW_SOURCE", "mongo")
    monkeypatch.setenv("DASHBOARD_START", "2025-07-01")
    monkeypatch.setenv("DASHBOARD_END", "2025-06-01")
    with pytest.raises(RuntimeError):
        get_settings()

    monkeypatch.setenv("DASHBOARD_START", "July 1st")
    with pytest.raises(RuntimeError):
        get_settings()


def test_dataset_collections_and_exports(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ROW_SOURCE", "csv")
    monkeypatch.setenv("DAPPS_COLLECTION", "dapp_facts")
    monkeypatch.setenv("DAPP_ACTIONS_CSV", "exports/actions.csv")
    monkeypatch.delenv("FACTS_COLLECTION", raising=False)

    s = get_settings()
    assert s.collection_for("facts") == "aggregated_country_chain_category"
    assert s.collection_for("dapps") == "dapp_facts"
    assert s.collection_for("dapp_actions") == "aggregated_country_chain_category_dapps_actions"
    assert s.csv_for("dapp_actions").name == "actions.csv"
