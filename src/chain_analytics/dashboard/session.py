"""Dashboard state and the latest-wins refresh contract.

All selections live in one serializable `DashboardState`. A refresh is
started with `begin`, which hands out a ticket stamped with a new generation
number; its result is stored by `commit` only if no newer ticket has been
issued since. Results of stale refreshes are dropped, never merged.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from pydantic import BaseModel, ConfigDict, Field

from chain_analytics.aggregate.buckets import filter_rows
from chain_analytics.aggregate.growth import prior_window
from chain_analytics.dashboard.cross_filter import CrossFilterState, growth_summary
from chain_analytics.dashboard.views import (
    category_rankings,
    country_metrics,
    country_rankings,
    daily_totals,
    country_category_breakdown,
    country_dapps,
    dapp_actions,
    dapp_leaderboard,
    date_series_by_chain,
    is_all_chains,
    overview_totals,
)
from chain_analytics.ingest.row_source import RowQuery, RowSource, RowSourceError
from chain_analytics.models import (
    DappActionRow,
    DappFactRow,
    DashboardViews,
    DateWindow,
    FactRow,
    Metric,
)

log = logging.getLogger(__name__)


class DashboardState(BaseModel):
    """Every user selection that drives a refresh.

    Attributes:
        chain: Home chain (or `"all"`).
        window: Selected inclusive date window.
        selected_country: Country picked on the map, if any.
        selected_category: Category picked in the category table, if any.
        selected_dapp: dApp picked in the leaderboard, if any.
        cross_filter: Growth-card cross-filter.
        ranking_metric: Fact compared between chains in ranking views.
        growth_metric: Fact compared between windows in growth cards.
    """
    model_config = ConfigDict(frozen=True)
    chain: str
    window: DateWindow
    selected_country: str | None = None
    selected_category: str | None = None
    selected_dapp: str | None = None
    cross_filter: CrossFilterState = Field(default_factory=CrossFilterState)
    ranking_metric: Metric = Metric.UNIQUE_USERS
    growth_metric: Metric = Metric.TOTAL_REQUESTS


@dataclass(frozen=True)
class RefreshTicket:
    """Token identifying one refresh request."""
    generation: int
    state: DashboardState


def build_views(
    state: DashboardState,
    current_rows: list[FactRow],
    prior_rows: list[FactRow],
    generation: int = 0,
    error: str | None = None,
    dapp_rows: Sequence[DappFactRow] = (),
    action_rows: Sequence[DappActionRow] = (),
    dapp_error: str | None = None,
) -> DashboardViews:
    """Compute every view-model for `state` from already-fetched rows.

    Args:
        state: Selections to apply.
        current_rows: Rows of every chain for `state.window`.
        prior_rows: Rows of every chain for the preceding window.
        generation: Ticket generation echoed on the result.
        error: Data-source failure message, if the rows could not be fetched.
        dapp_rows: dApp rows of every chain for `state.window`.
        action_rows: Action rows of the selected dApp for `state.window`.
        dapp_error: Failure message of the dApp sources, if any.

    Returns:
        DashboardViews for the renderer.
    """
    home_filter = None if is_all_chains(state.chain) else state.chain
    home_rows = filter_rows(current_rows, chain=home_filter)
    home_prior = filter_rows(prior_rows, chain=home_filter)

    # Time series + totals honour both the map and category selections
    focused = filter_rows(
        home_rows,
        country=state.selected_country,
        category=state.selected_category,
    )
    # Map metrics follow the category selection only
    by_category = filter_rows(home_rows, category=state.selected_category)

    return DashboardViews(
        generation=generation,
        window=state.window,
        overview=overview_totals(focused),
        daily=daily_totals(focused),
        series=date_series_by_chain(focused, state.chain, state.growth_metric),
        countries=country_rankings(
            current_rows, state.chain, state.ranking_metric, state.selected_country
        ),
        categories=category_rankings(
            current_rows, state.chain, state.ranking_metric, state.selected_country
        ),
        country_metrics=list(country_metrics(by_category).values()),
        country_categories=country_category_breakdown(current_rows, state.selected_country),
        country_dapps=country_dapps(dapp_rows, state.selected_country),
        dapps=dapp_leaderboard(
            dapp_rows, state.chain, state.selected_country, state.selected_category
        ),
        dapp_actions=dapp_actions(
            action_rows,
            state.selected_dapp,
            state.chain,
            state.selected_country,
            state.selected_category,
        ),
        growth=growth_summary(
            home_rows,
            home_prior,
            state.cross_filter,
            current=state.window,
            prior=prior_window(state.window),
            metric=state.growth_metric,
        ),
        error=error,
        dapp_error=dapp_error,
    )


class DashboardSession:
    """Per-user holder of the current state and the newest committed views."""

    def __init__(self, state: DashboardState) -> None:
        self.state = state
        self.views: DashboardViews | None = None
        self._generation = 0

    @property
    def generation(self) -> int:
        return self._generation

    def begin(self, state: DashboardState | None = None) -> RefreshTicket:
        """Record `state` as current and issue a ticket newer than all before it."""
        if state is not None:
            self.state = state
        self._generation += 1
        return RefreshTicket(generation=self._generation, state=self.state)

    def is_current(self, ticket: RefreshTicket) -> bool:
        return ticket.generation == self._generation

    def commit(self, ticket: RefreshTicket, views: DashboardViews) -> bool:
        """Store `views` if `ticket` is the newest issued; otherwise drop them.

        Returns:
            True when the views were stored.
        """
        if not self.is_current(ticket):
            log.debug(
                "Dropping stale refresh generation=%d (current=%d)",
                ticket.generation,
                self._generation,
            )
            return False
        self.views = views
        return True

    def refresh(
        self,
        source: RowSource,
        state: DashboardState | None = None,
        dapps: RowSource | None = None,
        actions: RowSource | None = None,
    ) -> DashboardViews:
        """Fetch rows for the current and prior windows and rebuild every view.

        A `RowSourceError` is logged and recorded on the views; aggregation
        then runs over an empty row set. dApp sources are optional and fail
        independently (see `DashboardViews.dapp_error`).

        Returns:
            The views built for this request (committed only if still current).
        """
        ticket = self.begin(state)
        views = fetch_views(source, ticket, dapps=dapps, actions=actions)
        self.commit(ticket, views)
        return views


def _fetch_dapp_rows(
    ticket: RefreshTicket,
    dapps: RowSource | None,
    actions: RowSource | None,
) -> tuple[list[FactRow], list[FactRow], str | None]:
    """Fetch the dApp and action rows of the ticket's window.

    Action rows are only requested once a dApp is selected, filtered on it.
    """
    state = ticket.state
    dapp_rows: list[FactRow] = []
    action_rows: list[FactRow] = []
    try:
        if dapps is not None:
            dapp_rows = dapps.fetch(RowQuery.for_window(state.window))
        if actions is not None and state.selected_dapp:
            action_rows = actions.fetch(
                RowQuery.for_window(state.window, dapp_name=state.selected_dapp)
            )
    except RowSourceError as e:
        log.warning("dApp source failed for generation=%d: %s", ticket.generation, e.message)
        return [], [], e.message
    return dapp_rows, action_rows, None


def fetch_views(
    source: RowSource,
    ticket: RefreshTicket,
    dapps: RowSource | None = None,
    actions: RowSource | None = None,
) -> DashboardViews:
    """Query the sources for a ticket's windows and build its views."""
    state = ticket.state
    prior = prior_window(state.window)
    error: str | None = None
    try:
        current_rows = source.fetch(RowQuery.for_window(state.window))
        prior_rows = source.fetch(RowQuery.for_window(prior))
    except RowSourceError as e:
        log.warning("Row source failed for generation=%d: %s", ticket.generation, e.message)
        current_rows, prior_rows, error = [], [], e.message

    dapp_rows, action_rows, dapp_error = _fetch_dapp_rows(ticket, dapps, actions)

    views = build_views(
        state,
        current_rows,
        prior_rows,
        ticket.generation,
        error,
        dapp_rows=dapp_rows,
        action_rows=action_rows,
        dapp_error=dapp_error,
    )
    log.info(
        "Built views generation=%d chain=%s window=%s..%s rows=%d prior_rows=%d dapp_rows=%d",
        ticket.generation,
        state.chain,
        state.window.start,
        state.window.end,
        len(current_rows),
        len(prior_rows),
        len(dapp_rows),
    )
    return views
