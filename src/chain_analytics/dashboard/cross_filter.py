"""Cross-filter coordination for the growth cards.

Clicking the fastest-growing category card filters the country computation
to that category, and clicking the fastest-growing country card filters the
category computation to that country. The two selections are mutually
exclusive: `CrossFilterState` never holds both.
"""

from __future__ import annotations

import logging
from typing import Iterable

from pydantic import BaseModel, ConfigDict, model_validator

from chain_analytics.aggregate.buckets import (
    aggregate,
    filter_rows,
    merge_case_insensitive,
    values_of,
)
from chain_analytics.aggregate.growth import fastest_growing, growth_result
from chain_analytics.models import DateWindow, FactRow, GrowthSummary, Metric

log = logging.getLogger(__name__)


def _blank_to_none(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


class CrossFilterState(BaseModel):
    """Mutually exclusive category/country selection used by the growth cards."""
    model_config = ConfigDict(frozen=True)
    filtered_by_category: str | None = None
    filtered_by_country: str | None = None

    @model_validator(mode="after")
    def _exclusive(self) -> "CrossFilterState":
        if self.filtered_by_category and self.filtered_by_country:
            raise ValueError("only one of filtered_by_category / filtered_by_country may be set")
        return self

    def select_category(self, category: str | None) -> "CrossFilterState":
        """Filter by `category` and clear any country filter."""
        return CrossFilterState(filtered_by_category=_blank_to_none(category))

    def select_country(self, country: str | None) -> "CrossFilterState":
        """Filter by `country` and clear any category filter."""
        return CrossFilterState(filtered_by_country=_blank_to_none(country))

    def clear_category(self) -> "CrossFilterState":
        return self.model_copy(update={"filtered_by_category": None})

    def clear_country(self) -> "CrossFilterState":
        return self.model_copy(update={"filtered_by_country": None})

    @property
    def active(self) -> str | None:
        """Name of the active filter dimension (`category`, `country`) or None."""
        if self.filtered_by_category:
            return "category"
        if self.filtered_by_country:
            return "country"
        return None


# =========================================================
# ROW SELECTION
# =========================================================

def rows_for_category_growth(rows: Iterable[FactRow], state: CrossFilterState) -> list[FactRow]:
    """Rows feeding the fastest-growing-category card."""
    return filter_rows(rows, country=state.filtered_by_country)


def rows_for_country_growth(rows: Iterable[FactRow], state: CrossFilterState) -> list[FactRow]:
    """Rows feeding the fastest-growing-country card; rows without a country are dropped."""
    return [r for r in filter_rows(rows, category=state.filtered_by_category) if r.country]


def rows_for_baseline(rows: Iterable[FactRow], state: CrossFilterState) -> list[FactRow]:
    """Rows feeding the baseline card.

    The baseline is the sum of the category card's totals, so it follows the
    country filter only; a category filter leaves it unchanged.
    """
    return filter_rows(rows, country=state.filtered_by_country)


def _totals_by(rows: Iterable[FactRow], key: str, metric: Metric) -> dict[str, float]:
    return values_of(merge_case_insensitive(aggregate(rows, key)), metric)


def _align_prior(current: dict[str, float], prior: dict[str, float]) -> dict[str, float]:
    """Re-key prior totals to the spelling used by the current window."""
    folded = {k.casefold(): v for k, v in prior.items()}
    return {k: folded.get(k.casefold(), 0.0) for k in current}


def growth_summary(
    current_rows: Iterable[FactRow],
    prior_rows: Iterable[FactRow],
    state: CrossFilterState,
    current: DateWindow | None = None,
    prior: DateWindow | None = None,
    metric: Metric = Metric.TOTAL_REQUESTS,
) -> GrowthSummary:
    """Compute the fastest-growing category and country plus the baseline.

    Args:
        current_rows: Home-chain rows of the current window.
        prior_rows: Home-chain rows of the preceding window.
        state: Active cross-filter.
        current: Current window, echoed on the baseline result.
        prior: Prior window, echoed on the baseline result.
        metric: Fact being compared (requests by default).

    Returns:
        GrowthSummary for the growth cards.
    """
    current_rows = list(current_rows)
    prior_rows = list(prior_rows)

    curr_categories = _totals_by(rows_for_category_growth(current_rows, state), "category", metric)
    prev_categories = _totals_by(rows_for_category_growth(prior_rows, state), "category", metric)

    curr_countries = _totals_by(rows_for_country_growth(current_rows, state), "country", metric)
    prev_countries = _totals_by(rows_for_country_growth(prior_rows, state), "country", metric)

    baseline = growth_result(
        rows_for_baseline(current_rows, state),
        rows_for_baseline(prior_rows, state),
        metric=metric,
        current=current,
        prior=prior,
    )

    summary = GrowthSummary(
        fastest_category=fastest_growing(curr_categories, _align_prior(curr_categories, prev_categories)),
        fastest_country=fastest_growing(curr_countries, _align_prior(curr_countries, prev_countries)),
        baseline=baseline,
        filtered_by_category=state.filtered_by_category,
        filtered_by_country=state.filtered_by_country,
    )
    log.debug(
        "Growth summary: category=%s country=%s baseline=%.2f%% filter=%s",
        summary.fastest_category.name if summary.fastest_category else None,
        summary.fastest_country.name if summary.fastest_country else None,
        baseline.percent_change,
        state.active,
    )
    return summary
