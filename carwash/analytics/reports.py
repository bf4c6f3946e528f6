"""
Analytics Reports

Turns daily visit aggregates, member collections and the weather feed into
the figures the dashboard shows:
- Visit trend with zero-filled days and summary statistics
- Weather joined to visits, and good vs poor weather impact
- Category / service breakdown totals over a range
- Subscription, loyalty and prepaid membership statistics
"""

import math
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import polars as pl
import structlog
from pydantic import BaseModel

from carwash.config import get_settings
from carwash.exceptions import InvalidArgumentError
from carwash.members.schemas import (
    TIERS,
    LoyaltyMember,
    PrepaidMember,
    SubscriptionMember,
)
from carwash.visits.schemas import COUNTER_NAMES, DailyAggregate, parse_date_key
from carwash.weather.client import DailyForecast, describe_weather_code

logger = structlog.get_logger(__name__)
settings = get_settings()

TREND_WINDOWS: Dict[str, int] = {"weekly": 7, "monthly": 30}

_SERIES_SCHEMA = {"date": pl.Date, "count": pl.Int64}


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


# =============================================================================
# VISIT TREND
# =============================================================================

class VisitStats(BaseModel):
    """Summary of a visit series"""
    total: int
    average: int
    max: int
    min: int


def trend_window(view: str, today: date) -> Tuple[date, date]:
    """Start and end day for a weekly or monthly trend ending today."""
    if view not in TREND_WINDOWS:
        raise InvalidArgumentError(f"view must be one of: {', '.join(TREND_WINDOWS)}")
    return today - timedelta(days=TREND_WINDOWS[view]), today


def aggregates_frame(aggregates: Iterable[DailyAggregate]) -> pl.DataFrame:
    """Date and count of each stored aggregate."""
    rows = [
        {"date": parse_date_key(a.date_key), "count": a.count}
        for a in aggregates
    ]
    return pl.DataFrame(rows, schema=_SERIES_SCHEMA)


def build_visit_series(
    aggregates: Sequence[DailyAggregate],
    start: date,
    end: date,
) -> pl.DataFrame:
    """
    One row per day from start to end inclusive.

    Days without an aggregate count zero; aggregates outside the window
    are ignored.
    """
    if start > end:
        return pl.DataFrame(schema=_SERIES_SCHEMA)

    days = pl.DataFrame({"date": pl.date_range(start, end, interval="1d", eager=True)})
    visits = aggregates_frame(aggregates)

    return (
        days.join(visits, on="date", how="left")
        .with_columns(pl.col("count").fill_null(0))
        .sort("date")
    )


def summarize_visits(series: pl.DataFrame) -> VisitStats:
    """Total, rounded average, max and min of a visit series."""
    if series.height == 0:
        return VisitStats(total=0, average=0, max=0, min=0)

    counts = series["count"]
    return VisitStats(
        total=int(counts.sum()),
        average=round_half_up(counts.sum() / series.height),
        max=int(counts.max()),
        min=int(counts.min()),
    )


def breakdown_totals(aggregates: Iterable[DailyAggregate]) -> Dict[str, int]:
    """Sum of count and every breakdown counter across the aggregates."""
    totals = {"count": 0, **{name: 0 for name in COUNTER_NAMES}}
    for aggregate in aggregates:
        totals["count"] += aggregate.count
        for name, value in aggregate.counters.items():
            totals[name] = totals.get(name, 0) + value
    return totals


# =============================================================================
# WEATHER
# =============================================================================

class WeatherImpact(BaseModel):
    """Visits on good vs poor weather days"""
    avg_visits_good_weather: int
    avg_visits_poor_weather: int
    good_weather_days: int
    poor_weather_days: int
    total_days: int
    impact: int


def _padded(values: List, length: int) -> List:
    return list(values[:length]) + [None] * max(0, length - len(values))


def weather_frame(forecast: DailyForecast) -> pl.DataFrame:
    """Daily weather rows with the readable condition for each code."""
    daily = forecast.daily
    n = len(daily.time)
    codes = _padded(daily.weather_code, n)
    conditions = [describe_weather_code(code) for code in codes]

    return pl.DataFrame(
        {
            "date": daily.time,
            "temp_max": _padded(daily.temperature_2m_max, n),
            "temp_min": _padded(daily.temperature_2m_min, n),
            "precipitation": _padded(daily.precipitation_sum, n),
            "weather_code": codes,
            "weather_label": [c.label for c in conditions],
            "weather_severity": [c.severity for c in conditions],
        },
        schema={
            "date": pl.Date,
            "temp_max": pl.Float64,
            "temp_min": pl.Float64,
            "precipitation": pl.Float64,
            "weather_code": pl.Int64,
            "weather_label": pl.Utf8,
            "weather_severity": pl.Utf8,
        },
    )


def join_weather(
    forecast: DailyForecast,
    aggregates: Sequence[DailyAggregate],
    today: date,
) -> Tuple[pl.DataFrame, pl.DataFrame]:
    """
    Split the weather feed at today and attach visits to the past days.

    Returns:
        (historical, upcoming): historical rows up to and including today
        with a visits column (zero when nothing was logged), and forecast
        rows after today
    """
    weather = weather_frame(forecast)
    visits = aggregates_frame(aggregates).rename({"count": "visits"})

    historical = (
        weather.filter(pl.col("date") <= today)
        .join(visits, on="date", how="left")
        .with_columns(pl.col("visits").fill_null(0))
        .sort("date")
    )
    upcoming = weather.filter(pl.col("date") > today).sort("date")

    logger.debug("Weather joined", historical_days=historical.height, forecast_days=upcoming.height)
    return historical, upcoming


def weather_impact(historical: pl.DataFrame) -> WeatherImpact:
    """Average visits on good vs poor weather days, rounded."""
    if historical.height == 0:
        return WeatherImpact(
            avg_visits_good_weather=0,
            avg_visits_poor_weather=0,
            good_weather_days=0,
            poor_weather_days=0,
            total_days=0,
            impact=0,
        )

    good = historical.filter(pl.col("weather_severity") == "good")
    poor = historical.filter(pl.col("weather_severity") == "poor")

    avg_good = round_half_up(good["visits"].sum() / good.height) if good.height else 0
    avg_poor = round_half_up(poor["visits"].sum() / poor.height) if poor.height else 0

    return WeatherImpact(
        avg_visits_good_weather=avg_good,
        avg_visits_poor_weather=avg_poor,
        good_weather_days=good.height,
        poor_weather_days=poor.height,
        total_days=historical.height,
        impact=avg_good - avg_poor,
    )


# =============================================================================
# MEMBERS
# =============================================================================

class MembershipStats(BaseModel):
    total: int
    active: int
    inactive: int
    by_tier: Dict[str, int]
    by_tier_active: Dict[str, int]


class LoyaltyStats(BaseModel):
    total: int
    avg_visits: int
    highest_visits: int
    near_free_wash: int


class PrepaidStats(BaseModel):
    total: int
    avg_washes: int
    no_washes_left: int
    low_washes: int


def membership_stats(members: Sequence[SubscriptionMember]) -> MembershipStats:
    by_tier = {t: 0 for t in TIERS}
    by_tier_active = {t: 0 for t in TIERS}
    active = 0

    for member in members:
        if member.is_active:
            active += 1
        tier = member.tier
        if tier in by_tier:
            by_tier[tier] += 1
            if member.is_active:
                by_tier_active[tier] += 1

    return MembershipStats(
        total=len(members),
        active=active,
        inactive=len(members) - active,
        by_tier=by_tier,
        by_tier_active=by_tier_active,
    )


def loyalty_stats(
    members: Sequence[LoyaltyMember],
    free_wash_interval: Optional[int] = None,
) -> LoyaltyStats:
    """Near a free wash means within two visits of the next free one."""
    if not members:
        return LoyaltyStats(total=0, avg_visits=0, highest_visits=0, near_free_wash=0)

    interval = free_wash_interval or settings.members.free_wash_interval
    visits = [m.visit_count for m in members]
    return LoyaltyStats(
        total=len(members),
        avg_visits=round_half_up(sum(visits) / len(members)),
        highest_visits=max(visits),
        near_free_wash=sum(1 for v in visits if v % interval >= interval - 2),
    )


def prepaid_stats(
    members: Sequence[PrepaidMember],
    low_threshold: Optional[int] = None,
) -> PrepaidStats:
    if not members:
        return PrepaidStats(total=0, avg_washes=0, no_washes_left=0, low_washes=0)

    low = low_threshold or settings.members.low_prepaid_threshold
    washes = [m.prepaid_washes for m in members]
    return PrepaidStats(
        total=len(members),
        avg_washes=round_half_up(sum(washes) / len(members)),
        no_washes_left=sum(1 for w in washes if w == 0),
        low_washes=sum(1 for w in washes if 1 <= w <= low),
    )
