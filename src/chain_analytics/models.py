"""Pydantic models for fact rows and dashboard view-models.

`FactRow` is the validated shape of one observation returned by a row source.
The remaining models describe what the engine hands to the rendering layer.
"""

from __future__ import annotations

import datetime as dt
from enum import Enum
from typing import Any

import numpy as np
import pandas as pd
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class Metric(str, Enum):
    """Numeric facts carried by every fact row."""
    TOTAL_REQUESTS = "total_requests"
    UNIQUE_USERS = "unique_users"
    TX_VOLUME_USD = "tx_volume_usd"


def _missing_to_zero(v: Any) -> float:
    """Coerce a numeric input to a non-negative float.

    None, NaN, empty or unparseable text and negative values all become 0,
    the same way the export cleaning treats them.
    """
    if v is None or isinstance(v, bool):
        return 0.0
    if isinstance(v, str):
        v = v.strip()
    value = pd.to_numeric(v, errors="coerce")
    if pd.isna(value) or value < 0:
        return 0.0
    return float(value)


def _count(v: Any) -> int:
    return int(round(_missing_to_zero(v)))


def _as_text(v: Any) -> str:
    if v is None or (isinstance(v, float) and np.isnan(v)):
        return ""
    return str(v).strip()


def _as_day(v: Any) -> Any:
    """Truncate datetimes and ISO datetime strings to the calendar day."""
    if isinstance(v, dt.datetime):
        return v.date()
    if isinstance(v, str):
        return dt.date.fromisoformat(v.strip()[:10])
    return v


class FactRow(BaseModel):
    """Schema for one fact observation (date × country × chain × category).

    Attributes:
        date: Calendar day of the observation.
        country: Country identifier as stored by the source (usually alpha-2).
        chain: Chain identifier; compared case-insensitively when filtering.
        category: Category label.
        total_requests: Number of requests (missing → 0).
        unique_users: Number of unique users (missing → 0).
        tx_volume_usd: Transaction volume in USD (missing → 0).
    """
    model_config = ConfigDict(extra="ignore", frozen=True)
    date: dt.date
    country: str = ""
    chain: str = ""
    category: str = ""
    total_requests: int = Field(0, ge=0)
    unique_users: int = Field(0, ge=0)
    tx_volume_usd: float = Field(0.0, ge=0)

    @field_validator("date", mode="before")
    @classmethod
    def _day_only(cls, v: Any) -> Any:
        return _as_day(v)

    @field_validator("country", "chain", "category", mode="before")
    @classmethod
    def _text(cls, v: Any) -> Any:
        return _as_text(v)

    @field_validator("total_requests", "unique_users", mode="before")
    @classmethod
    def _counts(cls, v: Any) -> int:
        return _count(v)

    @field_validator("tx_volume_usd", mode="before")
    @classmethod
    def _volume(cls, v: Any) -> float:
        return _missing_to_zero(v)

    def value(self, metric: Metric) -> float:
        """Return the value of one numeric fact."""
        return getattr(self, Metric(metric).value)


class DappFactRow(FactRow):
    """Fact row broken down by dApp (date × country × chain × category × dApp)."""
    dapp_name: str = ""

    @field_validator("dapp_name", mode="before")
    @classmethod
    def _dapp_text(cls, v: Any) -> Any:
        return _as_text(v)


class DappActionRow(DappFactRow):
    """Fact row broken down by dApp and the action performed in it."""
    action_type: str = ""

    @field_validator("action_type", mode="before")
    @classmethod
    def _action_text(cls, v: Any) -> Any:
        return _as_text(v)


class DateWindow(BaseModel):
    """Inclusive calendar window `[start, end]`."""
    model_config = ConfigDict(frozen=True)
    start: dt.date
    end: dt.date

    @field_validator("start", "end", mode="before")
    @classmethod
    def _day_only(cls, v: Any) -> Any:
        return _as_day(v)

    @model_validator(mode="after")
    def _ordered(self) -> "DateWindow":
        if self.end < self.start:
            raise ValueError("window end must not precede its start")
        return self

    @property
    def days(self) -> int:
        """`end - start` in days (0 for a single-day window)."""
        return (self.end - self.start).days

    def contains(self, day: dt.date) -> bool:
        return self.start <= day <= self.end


class SliderRange(BaseModel):
    """Integer positions of the two slider thumbs."""
    model_config = ConfigDict(frozen=True)
    left: int = Field(..., ge=0)
    right: int = Field(..., ge=0)

    @model_validator(mode="after")
    def _ordered(self) -> "SliderRange":
        if self.right < self.left:
            raise ValueError("slider right thumb must not precede the left thumb")
        return self


# =========================================================
# GROWTH
# =========================================================

class GrowthResult(BaseModel):
    """Totals of two adjacent equal-length windows and their percent change."""
    current_total: float
    prior_total: float
    percent_change: float
    current: DateWindow | None = None
    prior: DateWindow | None = None


class GrowthLeader(BaseModel):
    """Winner of a fastest-growing selection."""
    name: str
    percent_change: float
    current_total: float
    prior_total: float


class GrowthSummary(BaseModel):
    """Everything the growth cards display.

    Attributes:
        fastest_category: Fastest growing category, or None without candidates.
        fastest_country: Fastest growing country, or None without candidates.
        baseline: Current vs prior totals for the active cross-filter.
        filtered_by_category: Active category cross-filter, if any.
        filtered_by_country: Active country cross-filter, if any.
    """
    fastest_category: GrowthLeader | None = None
    fastest_country: GrowthLeader | None = None
    baseline: GrowthResult
    filtered_by_category: str | None = None
    filtered_by_country: str | None = None


# =========================================================
# VIEW-MODELS
# =========================================================

class DailyTotal(BaseModel):
    """Per-date totals of the three facts."""
    date: dt.date
    total_requests: int = Field(0, ge=0)
    unique_users: int = Field(0, ge=0)
    tx_volume_usd: float = Field(0.0, ge=0)


class ChainSeries(BaseModel):
    """One line of the time-series chart."""
    chain: str
    values: list[float]
    is_home: bool = False


class DateSeries(BaseModel):
    """Per-date values keyed by chain; `values` align with `dates`."""
    dates: list[dt.date] = Field(default_factory=list)
    series: list[ChainSeries] = Field(default_factory=list)


class CountryRanking(BaseModel):
    """Home chain's value in one country with its rank among chains there."""
    country: str
    value: float
    rank: int | None
    peer_count: int = Field(0, ge=0)
    peers: dict[str, float] = Field(default_factory=dict)


class CategoryRanking(BaseModel):
    """Home chain's value in one category with its rank among chains there."""
    category: str
    value: float
    rank: int
    peer_count: int = Field(0, ge=0)
    peers: dict[str, float] = Field(default_factory=dict)


class CountryMetrics(BaseModel):
    """All three facts summed for one country (map tooltips)."""
    country: str
    total_requests: int = Field(0, ge=0)
    unique_users: int = Field(0, ge=0)
    tx_volume_usd: float = Field(0.0, ge=0)


class CategoryMetrics(BaseModel):
    """All three facts summed for one category (country drill-down)."""
    category: str
    total_requests: int = Field(0, ge=0)
    unique_users: int = Field(0, ge=0)
    tx_volume_usd: float = Field(0.0, ge=0)


class DappUsage(BaseModel):
    """One line of the dApp leaderboard."""
    dapp_name: str
    value: float


class ActionUsage(BaseModel):
    """One action type of the selected dApp."""
    action_type: str
    value: float


class CountryDapp(BaseModel):
    """A dApp active in the selected country, with the chains it ran on."""
    dapp_name: str
    category: str
    chains: list[str] = Field(default_factory=list)
    total_requests: int = Field(0, ge=0)
    unique_users: int = Field(0, ge=0)


class OverviewTotals(BaseModel):
    """Headline numbers for the selected window."""
    total_requests: int = 0
    unique_users: int = 0
    tx_volume_usd: float = 0.0
    categories: int = 0
    chains: int = 0


class DashboardViews(BaseModel):
    """Every view-model produced by one refresh."""
    generation: int = 0
    window: DateWindow
    overview: OverviewTotals = Field(default_factory=OverviewTotals)
    daily: list[DailyTotal] = Field(default_factory=list)
    series: DateSeries = Field(default_factory=DateSeries)
    countries: list[CountryRanking] = Field(default_factory=list)
    categories: list[CategoryRanking] = Field(default_factory=list)
    country_metrics: list[CountryMetrics] = Field(default_factory=list)
    country_categories: list[CategoryMetrics] = Field(default_factory=list)
    country_dapps: list[CountryDapp] = Field(default_factory=list)
    dapps: list[DappUsage] = Field(default_factory=list)
    dapp_actions: list[ActionUsage] = Field(default_factory=list)
    growth: GrowthSummary
    error: str | None = None
    dapp_error: str | None = None
