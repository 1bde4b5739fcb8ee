from __future__ import annotations

import datetime as dt

from chain_analytics.dashboard.cross_filter import CrossFilterState
from chain_analytics.dashboard.session import DashboardSession, DashboardState, build_views, fetch_views
from chain_analytics.ingest.row_source import InMemoryRowSource, RowQuery, RowSourceError
from chain_analytics.models import DappActionRow, DappFactRow, DateWindow, FactRow

WINDOW = DateWindow(start=dt.date(2025, 7, 8), end=dt.date(2025, 7, 14))

ROWS = [
    FactRow(date="2025-07-01", country="US", chain="ethereum", category="DeFi", total_requests=50, unique_users=5),
    FactRow(date="2025-07-09", country="US", chain="ethereum", category="DeFi", total_requests=100, unique_users=10),
    FactRow(date="2025-07-09", country="US", chain="polygon", category="DeFi", total_requests=30, unique_users=20),
    FactRow(date="2025-07-10", country="DE", chain="ethereum", category="NFT", total_requests=40, unique_users=4),
]


class FailingSource:
    def __init__(self) -> None:
        self.calls = 0

    def fetch(self, query: RowQuery) -> list[FactRow]:
        self.calls += 1
        raise RowSourceError("permission denied for table facts")


def test_refresh_builds_every_view() -> None:
    session = DashboardSession(DashboardState(chain="ethereum", window=WINDOW))
    views = session.refresh(InMemoryRowSource(ROWS))

    assert session.views is views
    assert views.generation == 1
    assert views.error is None
    assert views.overview.total_requests == 140
    assert views.countries[0].country == "US"
    assert views.countries[0].rank == 2
    assert views.growth.baseline.current_total == 140
    assert views.growth.baseline.prior_total == 50
    assert views.growth.baseline.prior == DateWindow(start=dt.date(2025, 7, 1), end=dt.date(2025, 7, 7))


def test_selected_country_and_category_focus_the_totals() -> None:
    state = DashboardState(chain="ethereum", window=WINDOW, selected_country="276")
    views = build_views(state, [r for r in ROWS if WINDOW.contains(r.date)], [])
    assert views.overview.total_requests == 40
    assert [r.country for r in views.countries] == ["DE"]
    assert {c.category for c in views.categories} == {"NFT"}


def test_cross_filter_flows_into_growth() -> None:
    state = DashboardState(
        chain="ethereum",
        window=WINDOW,
        cross_filter=CrossFilterState().select_category("NFT"),
    )
    views = DashboardSession(state).refresh(InMemoryRowSource(ROWS))
    assert views.growth.filtered_by_category == "NFT"
    assert views.growth.fastest_country is not None
    assert views.growth.fastest_country.name == "DE"
    # a category filter does not narrow the baseline
    assert views.growth.baseline.current_total == 140


def test_stale_refresh_is_dropped() -> None:
    state = DashboardState(chain="ethereum", window=WINDOW)
    session = DashboardSession(state)
    source = InMemoryRowSource(ROWS)

    first = session.begin()
    second = session.begin(state.model_copy(update={"chain": "polygon"}))
    assert not session.is_current(first)

    newest = fetch_views(source, second)
    stale = fetch_views(source, first)
    assert session.commit(second, newest)
    assert not session.commit(first, stale)
    assert session.views is newest
    assert session.views.series.series
    assert session.state.chain == "polygon"


def test_row_source_failure_yields_empty_views_with_error() -> None:
    source = FailingSource()
    session = DashboardSession(DashboardState(chain="ethereum", window=WINDOW))
    views = session.refresh(source)

    assert views.error == "permission denied for table facts"
    assert views.overview.total_requests == 0
    assert views.countries == []
    assert views.growth.fastest_category is None
    assert views.growth.baseline.percent_change == 0.0
    assert source.calls == 1


DAPP_ROWS = [
    DappFactRow(date="2025-07-09", country="US", chain="ethereum", category="DeFi", dapp_name="Uniswap", total_requests=70),
    DappFactRow(date="2025-07-09", country="US", chain="ethereum", category="DeFi", dapp_name="Aave", total_requests=30),
    DappFactRow(date="2025-07-10", country="DE", chain="polygon", category="NFT", dapp_name="OpenSea", total_requests=90),
]
ACTION_ROWS = [
    DappActionRow(date="2025-07-09", country="US", chain="ethereum", category="DeFi", dapp_name="Uniswap", action_type="swap", total_requests=60),
    DappActionRow(date="2025-07-09", country="US", chain="ethereum", category="DeFi", dapp_name="Uniswap", action_type="add_liquidity", total_requests=10),
    DappActionRow(date="2025-07-09", country="US", chain="ethereum", category="DeFi", dapp_name="Aave", action_type="borrow", total_requests=30),
]


class RecordingSource(InMemoryRowSource):
    def __init__(self, rows) -> None:
        super().__init__(rows)
        self.queries: list[RowQuery] = []

    def fetch(self, query: RowQuery):
        self.queries.append(query)
        return super().fetch(query)


def test_refresh_builds_dapp_views() -> None:
    actions = RecordingSource(ACTION_ROWS)
    state = DashboardState(chain="ethereum", window=WINDOW, selected_dapp="uniswap")
    views = DashboardSession(state).refresh(
        InMemoryRowSource(ROWS),
        dapps=InMemoryRowSource(DAPP_ROWS),
        actions=actions,
    )

    assert [(d.dapp_name, d.value) for d in views.dapps] == [("Uniswap", 70.0), ("Aave", 30.0)]
    assert [(a.action_type, a.value) for a in views.dapp_actions] == [("swap", 60.0), ("add_liquidity", 10.0)]
    assert actions.queries[0].dapp_name == "uniswap"
    assert views.dapp_error is None


def test_actions_are_not_fetched_without_a_selected_dapp() -> None:
    actions = RecordingSource(ACTION_ROWS)
    state = DashboardState(chain="ethereum", window=WINDOW)
    views = DashboardSession(state).refresh(
        InMemoryRowSource(ROWS),
        dapps=InMemoryRowSource(DAPP_ROWS),
        actions=actions,
    )
    assert views.dapp_actions == []
    assert actions.queries == []


def test_selected_country_builds_the_drill_down() -> None:
    state = DashboardState(chain="ethereum", window=WINDOW, selected_country="US")
    current = [r for r in ROWS if WINDOW.contains(r.date)]
    views = build_views(state, current, [], dapp_rows=DAPP_ROWS)

    assert [(c.category, c.total_requests, c.unique_users) for c in views.country_categories] == [
        ("DeFi", 130, 30)
    ]
    assert [d.dapp_name for d in views.country_dapps] == ["Uniswap", "Aave"]
    assert views.country_dapps[0].chains == ["ethereum"]


def test_dapp_source_failure_keeps_the_other_views() -> None:
    state = DashboardState(chain="ethereum", window=WINDOW, selected_dapp="Uniswap")
    views = DashboardSession(state).refresh(
        InMemoryRowSource(ROWS),
        dapps=FailingSource(),
        actions=InMemoryRowSource(ACTION_ROWS),
    )
    assert views.error is None
    assert views.dapp_error == "permission denied for table facts"
    assert views.dapps == []
    assert views.dapp_actions == []
    assert views.overview.total_requests == 140
