"""Period-over-period growth.

Growth always compares a window with the window of the same length that ends
the day before it starts. Zero baselines never produce infinities: a metric
that appears from nothing is reported as +100%, and nothing-to-nothing as 0%.
"""

from __future__ import annotations

import datetime as dt
import logging
from typing import Iterable, Mapping

from chain_analytics.aggregate.buckets import totals
from chain_analytics.models import DateWindow, FactRow, GrowthLeader, GrowthResult, Metric

log = logging.getLogger(__name__)

NEW_ACTIVITY_PCT = 100.0

ONE_DAY = dt.timedelta(days=1)


def compare_growth(current_total: float, prior_total: float) -> float:
    """Return the percent change from `prior_total` to `current_total`.

    Args:
        current_total: Total of the current window.
        prior_total: Total of the preceding window.

    Returns:
        `(current - prior) / prior * 100` when prior > 0; 100 when only the
        current window has activity; 0 when neither has.
    """
    if prior_total > 0:
        return (current_total - prior_total) / prior_total * 100.0
    if current_total > 0:
        return NEW_ACTIVITY_PCT
    return 0.0


def prior_window(window: DateWindow) -> DateWindow:
    """Return the equal-length window that ends the day before `window` starts."""
    prior_end = window.start - ONE_DAY
    prior_start = prior_end - dt.timedelta(days=window.days)
    return DateWindow(start=prior_start, end=prior_end)


def growth_result(
    current_rows: Iterable[FactRow],
    prior_rows: Iterable[FactRow],
    metric: Metric = Metric.TOTAL_REQUESTS,
    current: DateWindow | None = None,
    prior: DateWindow | None = None,
) -> GrowthResult:
    """Sum `metric` over both row sets and compare them.

    Args:
        current_rows: Rows of the current window.
        prior_rows: Rows of the preceding window.
        metric: Fact being compared.
        current: Current window, echoed on the result.
        prior: Prior window, echoed on the result.

    Returns:
        GrowthResult with both totals and the percent change.
    """
    current_total = totals(current_rows, metric)
    prior_total = totals(prior_rows, metric)
    return GrowthResult(
        current_total=current_total,
        prior_total=prior_total,
        percent_change=compare_growth(current_total, prior_total),
        current=current,
        prior=prior,
    )


def fastest_growing(
    current_totals: Mapping[str, float],
    prior_totals: Mapping[str, float],
) -> GrowthLeader | None:
    """Pick the candidate with the highest percent change.

    Candidates are the keys of `current_totals` in iteration order. A
    candidate with no activity in either window is skipped. Only a strictly
    greater change replaces the current leader, so ties keep the candidate
    encountered first.

    Returns:
        The leader, or None when there is no candidate.
    """
    leader: GrowthLeader | None = None
    for name, current_total in current_totals.items():
        prior_total = prior_totals.get(name, 0) or 0
        if prior_total <= 0 and current_total <= 0:
            continue
        pct = compare_growth(current_total, prior_total)
        if leader is None or pct > leader.percent_change:
            leader = GrowthLeader(
                name=name,
                percent_change=pct,
                current_total=current_total,
                prior_total=prior_total,
            )
    if leader is None:
        log.debug("No growth candidates among %d keys", len(current_totals))
    return leader
