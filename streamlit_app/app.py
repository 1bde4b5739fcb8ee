from __future__ import annotations

import datetime as dt
import logging

import altair as alt
import pandas as pd
import streamlit as st

from chain_analytics.config import get_settings
from chain_analytics.dashboard.cross_filter import CrossFilterState
from chain_analytics.dashboard.session import DashboardSession, DashboardState
from chain_analytics.dashboard.slider import RangeDateMapper, Thumb
from chain_analytics.aggregate.ranking import has_comparison
from chain_analytics.dashboard.views import ALL_CHAINS, metrics_for_country
from chain_analytics.ingest.row_source import (
    DAPP_ACTIONS,
    DAPPS,
    RowQuery,
    RowSource,
    RowSourceError,
    build_row_source,
)
from chain_analytics.logging_config import configure_logging
from chain_analytics.models import DateWindow, GrowthLeader, Metric, SliderRange

log = logging.getLogger(__name__)

NO_RANK = "—"
NONE_SELECTED = "(none)"

# =====================================================
# Page config
# =====================================================
st.set_page_config(page_title="Chain Usage Analytics", layout="wide")
st.title("⛓️ Chain Usage Analytics Dashboard")

settings = get_settings()
configure_logging(settings.log_path)
mapper = RangeDateMapper.between(settings.dashboard_start, settings.dashboard_end)


@st.cache_resource
def get_source() -> RowSource:
    return build_row_source(settings)


try:
    source = get_source()
except Exception as exc:  # pragma: no cover - runtime failure handling
    st.error(f"Unable to open the `{settings.row_source}` row source: {exc}")
    st.stop()


@st.cache_resource
def get_dapp_sources() -> tuple[RowSource, RowSource] | None:
    try:
        return build_row_source(settings, DAPPS), build_row_source(settings, DAPP_ACTIONS)
    except RowSourceError as e:
        log.warning("dApp views disabled: %s", e.message)
        return None


dapp_sources = get_dapp_sources()


# =====================================================
# Helpers
# =====================================================
@st.cache_data(ttl=600)
def dimension_options(_source: RowSource, row_source: str) -> dict[str, list[str]]:
    """Distinct chains, countries and categories over the whole dashboard range.

    Args:
        _source: Row source (not hashed by Streamlit).
        row_source: Source name, used as the cache key.

    Returns:
        Mapping of dimension name to its sorted distinct values.
    """
    full = DateWindow(start=settings.dashboard_start, end=settings.dashboard_end)
    try:
        rows = _source.fetch(RowQuery.for_window(full))
    except RowSourceError as e:
        log.warning("Could not list dimension values: %s", e.message)
        rows = []
    return {
        "chain": sorted({r.chain for r in rows if r.chain}, key=str.casefold),
        "country": sorted({r.country for r in rows if r.country}, key=str.casefold),
        "category": sorted({r.category for r in rows if r.category}, key=str.casefold),
    }


def current_range() -> SliderRange:
    lo, hi = st.session_state["date_range"]
    return SliderRange(left=mapper.to_value(lo), right=mapper.to_value(hi))


def store_range(rng: SliderRange) -> None:
    st.session_state["date_range"] = (mapper.to_date(rng.left), mapper.to_date(rng.right))


def apply_preset(rng: SliderRange) -> None:
    slider = mapper.slider(min_gap=settings.slider_min_gap)
    store_range(slider.set_range(rng.left, rng.right))


def nudge(thumb: Thumb, key: str) -> None:
    rng = current_range()
    slider = mapper.slider(min_gap=settings.slider_min_gap)
    slider.set_range(rng.left, rng.right)
    slider.key_down(thumb, key)
    store_range(slider.range)


def toggle_category(name: str) -> None:
    state: CrossFilterState = st.session_state["cross_filter"]
    if state.filtered_by_category == name:
        st.session_state["cross_filter"] = state.clear_category()
    else:
        st.session_state["cross_filter"] = state.select_category(name)


def toggle_country(name: str) -> None:
    state: CrossFilterState = st.session_state["cross_filter"]
    if state.filtered_by_country == name:
        st.session_state["cross_filter"] = state.clear_country()
    else:
        st.session_state["cross_filter"] = state.select_country(name)


def fmt_pct(value: float) -> str:
    return f"{value:+.1f}%"


def rank_label(rank: int | None, peers: dict[str, float]) -> str:
    """Ranks only mean something when at least two chains are present."""
    if rank is None or not has_comparison(peers):
        return NO_RANK
    return f"#{rank} of {len(peers)}"


def growth_card(title: str, leader: GrowthLeader | None, active: str | None, on_click) -> None:
    st.subheader(title)
    if leader is None:
        st.caption("No growth candidates in this window.")
        return
    st.metric(leader.name, f"{leader.current_total:,.0f}", fmt_pct(leader.percent_change))
    label = f"Clear filter ({leader.name})" if active == leader.name else f"Filter by {leader.name}"
    st.button(label, key=f"toggle-{title}", on_click=on_click, args=(leader.name,))


# =====================================================
# Session state
# =====================================================
if "date_range" not in st.session_state:
    store_range(mapper.full_range())
if "cross_filter" not in st.session_state:
    st.session_state["cross_filter"] = CrossFilterState()
if "dapp_pick" not in st.session_state:
    st.session_state["dapp_pick"] = NONE_SELECTED

options = dimension_options(source, settings.row_source)

# =====================================================
# SIDEBAR — SELECTIONS
# =====================================================
with st.sidebar:
    st.header("Selections")
    chain = st.selectbox("Chain", [ALL_CHAINS] + options["chain"], index=0)
    country_pick = st.selectbox("Country", [NONE_SELECTED] + options["country"], index=0)
    category_pick = st.selectbox("Category", [NONE_SELECTED] + options["category"], index=0)
    ranking_metric = st.radio(
        "Ranking metric",
        [m.value for m in Metric],
        index=1,
    )

# =====================================================
# DATE RANGE
# =====================================================
st.header("🗓️ Date Range")

p1, p2, p3 = st.columns(3)
with p1:
    st.button("Prev 7 days", on_click=apply_preset, args=(mapper.last_days(7),))
with p2:
    st.button("Prev 14 days", on_click=apply_preset, args=(mapper.last_days(14),))
with p3:
    st.button("All data", on_click=apply_preset, args=(mapper.full_range(),))

st.slider(
    "Window",
    min_value=mapper.epoch,
    max_value=mapper.last_day,
    step=dt.timedelta(days=1),
    key="date_range",
)

n1, n2, n3, n4 = st.columns(4)
with n1:
    st.button("◀ start", on_click=nudge, args=(Thumb.LEFT, "ArrowLeft"))
with n2:
    st.button("start ▶", on_click=nudge, args=(Thumb.LEFT, "ArrowRight"))
with n3:
    st.button("◀ end", on_click=nudge, args=(Thumb.RIGHT, "ArrowLeft"))
with n4:
    st.button("end ▶", on_click=nudge, args=(Thumb.RIGHT, "ArrowRight"))

# The widget itself does not know about the minimum gap
slider = mapper.slider(min_gap=settings.slider_min_gap)
rng = current_range()
window = mapper.to_window(slider.set_range(rng.left, rng.right))
st.caption(f"{window.start:%b %d, %Y} – {window.end:%b %d, %Y} ({window.days + 1} days)")

# =====================================================
# Refresh
# =====================================================
dapp_pick = st.session_state["dapp_pick"]
state = DashboardState(
    chain=chain,
    window=window,
    selected_country=None if country_pick == NONE_SELECTED else country_pick,
    selected_category=None if category_pick == NONE_SELECTED else category_pick,
    selected_dapp=None if dapp_pick == NONE_SELECTED else dapp_pick,
    cross_filter=st.session_state["cross_filter"],
    ranking_metric=Metric(ranking_metric),
)

if "session" not in st.session_state:
    st.session_state["session"] = DashboardSession(state)
session: DashboardSession = st.session_state["session"]
if dapp_sources is None:
    views = session.refresh(source, state)
else:
    views = session.refresh(source, state, dapps=dapp_sources[0], actions=dapp_sources[1])

if views.error:
    st.error(f"Data source error: {views.error}")

# =====================================================
# SECTION 0 — OVERVIEW
# =====================================================
st.header("📌 Overview")

c1, c2, c3, c4, c5 = st.columns(5)
with c1:
    st.metric("Total Requests", f"{views.overview.total_requests:,}")
with c2:
    st.metric("Unique Users", f"{views.overview.unique_users:,}")
with c3:
    st.metric("Tx Volume (USD)", f"${views.overview.tx_volume_usd:,.0f}")
with c4:
    st.metric("Categories", views.overview.categories)
with c5:
    st.metric("Chains", views.overview.chains)

st.divider()

# =====================================================
# SECTION 1 — GROWTH
# =====================================================
st.header("🚀 Growth vs Previous Period")

growth = views.growth
g1, g2, g3 = st.columns(3)
with g1:
    growth_card(
        "Fastest Growing Category",
        growth.fastest_category,
        growth.filtered_by_category,
        toggle_category,
    )
with g2:
    growth_card(
        "Fastest Growing Country",
        growth.fastest_country,
        growth.filtered_by_country,
        toggle_country,
    )
with g3:
    st.subheader("Total Requests")
    st.metric(
        "Current window",
        f"{growth.baseline.current_total:,.0f}",
        fmt_pct(growth.baseline.percent_change),
    )
    st.caption(f"Previous window: {growth.baseline.prior_total:,.0f}")

st.divider()

# =====================================================
# SECTION 2 — TIME SERIES
# =====================================================
st.header("📈 Requests Over Time")

df_series = pd.DataFrame(
    [
        {"date": day, "chain": s.chain, "value": value, "home": s.is_home}
        for s in views.series.series
        for day, value in zip(views.series.dates, s.values)
    ]
)

if df_series.empty:
    st.info("No activity in the selected window.")
else:
    chart = (
        alt.Chart(df_series)
        .mark_line()
        .encode(
            x=alt.X("date:T", title="Date"),
            y=alt.Y("value:Q", title="Total Requests"),
            color=alt.Color("chain:N", title="Chain"),
            strokeWidth=alt.condition("datum.home", alt.value(3), alt.value(1.5)),
            tooltip=["date:T", "chain:N", "value:Q"],
        )
        .properties(height=320)
    )
    st.altair_chart(chart, width="stretch")

st.divider()

# =====================================================
# SECTION 3 — RANKINGS
# =====================================================
r1, r2 = st.columns(2)

with r1:
    st.header("🌍 Countries")
    if not views.countries:
        st.info("No country data for this selection.")
    else:
        df_countries = pd.DataFrame(
            [
                {
                    "country": r.country,
                    "value": r.value,
                    "rank": rank_label(r.rank, r.peers),
                }
                for r in views.countries
            ]
        )
        st.dataframe(df_countries, width="stretch", hide_index=True)

    if state.selected_country:
        picked = metrics_for_country(
            {m.country: m for m in views.country_metrics}, state.selected_country
        )
        if picked is not None:
            st.caption(
                f"{picked.country}: {picked.total_requests:,} requests, "
                f"{picked.unique_users:,} users, ${picked.tx_volume_usd:,.0f}"
            )

with r2:
    st.header("🏷️ Categories")
    if not views.categories:
        st.info("No category data for this selection.")
    else:
        df_categories = pd.DataFrame(
            [
                {
                    "category": r.category,
                    "value": r.value,
                    "rank": rank_label(r.rank, r.peers),
                }
                for r in views.categories
            ]
        )
        st.dataframe(df_categories, width="stretch", hide_index=True)

# =====================================================
# SECTION 4 — COUNTRY METRICS
# =====================================================
st.header("🗺️ Activity by Country")

df_map = pd.DataFrame([m.model_dump() for m in views.country_metrics])
if df_map.empty:
    st.info("No country activity in the selected window.")
else:
    chart_map = (
        alt.Chart(df_map)
        .mark_bar()
        .encode(
            x=alt.X("country:N", sort=alt.SortField("total_requests", order="descending"), title=None),
            y=alt.Y("total_requests:Q", title="Total Requests"),
            tooltip=["country:N", "total_requests:Q", "unique_users:Q", "tx_volume_usd:Q"],
        )
        .properties(height=320)
    )
    st.altair_chart(chart_map, width="stretch")

# =====================================================
# SECTION 5 — COUNTRY DRILL-DOWN
# =====================================================
if state.selected_country:
    st.header(f"🔎 {state.selected_country} in Detail")
    d1, d2 = st.columns(2)
    with d1:
        st.subheader("Categories (all chains)")
        df_cc = pd.DataFrame([c.model_dump() for c in views.country_categories])
        if df_cc.empty:
            st.info("No category activity for this country.")
        else:
            st.dataframe(df_cc, width="stretch", hide_index=True)
    with d2:
        st.subheader("Top dApps")
        df_cd = pd.DataFrame(
            [
                {
                    "dapp": d.dapp_name,
                    "category": d.category,
                    "chains": ", ".join(d.chains),
                    "total_requests": d.total_requests,
                    "unique_users": d.unique_users,
                }
                for d in views.country_dapps
            ]
        )
        if df_cd.empty:
            st.info("No dApp activity for this country.")
        else:
            st.dataframe(df_cd, width="stretch", hide_index=True)

# =====================================================
# SECTION 6 — DAPPS
# =====================================================
st.header("🧩 dApps")

if dapp_sources is None:
    st.info("dApp data is not configured for this row source.")
elif views.dapp_error:
    st.error(f"dApp source error: {views.dapp_error}")
else:
    a1, a2 = st.columns(2)
    with a1:
        st.subheader("Leaderboard")
        df_dapps = pd.DataFrame([d.model_dump() for d in views.dapps])
        if df_dapps.empty:
            st.info("No dApp activity for this selection.")
        else:
            chart_dapps = (
                alt.Chart(df_dapps.head(15))
                .mark_bar()
                .encode(
                    x=alt.X("value:Q", title="Total Requests"),
                    y=alt.Y("dapp_name:N", sort="-x", title=None),
                    tooltip=["dapp_name:N", "value:Q"],
                )
                .properties(height=360)
            )
            st.altair_chart(chart_dapps, width="stretch")

    with a2:
        st.subheader("Actions")
        names = [d.dapp_name for d in views.dapps]
        if dapp_pick != NONE_SELECTED and dapp_pick not in names:
            names.append(dapp_pick)
        st.selectbox("dApp", [NONE_SELECTED] + names, key="dapp_pick")
        df_actions = pd.DataFrame([a.model_dump() for a in views.dapp_actions])
        if state.selected_dapp is None:
            st.caption("Pick a dApp to see its action breakdown.")
        elif df_actions.empty:
            st.info(f"No actions recorded for {state.selected_dapp}.")
        else:
            st.dataframe(df_actions, width="stretch", hide_index=True)

# =====================================================
# Footer
# =====================================================
st.caption(f"Row source: {settings.row_source} • Refresh #{views.generation}")
