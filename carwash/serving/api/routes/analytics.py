"""
Analytics API Endpoints

Dashboard figures built from the daily visit aggregates, the member
collections and the weather feed. Responses are cached in redis under the
analytics namespace; visit writes clear it.
"""

from datetime import date, timedelta
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
import structlog

from carwash.analytics.reports import (
    LoyaltyStats,
    MembershipStats,
    PrepaidStats,
    VisitStats,
    WeatherImpact,
    breakdown_totals,
    build_visit_series,
    join_weather,
    loyalty_stats,
    membership_stats,
    prepaid_stats,
    summarize_visits,
    trend_window,
    weather_impact,
)
from carwash.members.schemas import MemberKind
from carwash.members.store import MemberStore
from carwash.serving.api.dependencies import (
    get_member_store,
    get_visit_aggregator,
    get_weather_client,
)
from carwash.serving.cache import analytics_cache
from carwash.visits.aggregation import VisitAggregator
from carwash.visits.schemas import to_date_key
from carwash.weather.client import MAX_FORECAST_DAYS, MAX_PAST_DAYS, OpenMeteoClient

router = APIRouter()
logger = structlog.get_logger(__name__)


class DailyVisitCount(BaseModel):
    """Visits on one day"""
    date: date
    count: int


class VisitTrend(BaseModel):
    """Zero-filled visit series with summary statistics"""
    view: str
    start: date
    end: date
    data: List[DailyVisitCount]
    stats: VisitStats


class VisitBreakdown(BaseModel):
    """Counter totals over a date range"""
    start: str
    end: str
    days: int
    totals: Dict[str, int]


class WeatherDay(BaseModel):
    """Weather for one day, with visits for days already past"""
    date: date
    temp_max: Optional[float]
    temp_min: Optional[float]
    precipitation: Optional[float]
    weather_code: Optional[int]
    weather_label: str
    weather_severity: str
    visits: Optional[int] = None


class WeatherReport(BaseModel):
    historical: List[WeatherDay]
    forecast: List[WeatherDay]
    impact: WeatherImpact


class MemberReport(BaseModel):
    subscriptions: MembershipStats
    loyalty: LoyaltyStats
    prepaid: PrepaidStats


@router.get("/visits/trend", response_model=VisitTrend)
async def get_visit_trend(
    view: str = Query(default="weekly", description="weekly or monthly"),
    visits: VisitAggregator = Depends(get_visit_aggregator),
):
    """
    Visit counts for the last 7 or 30 days up to today.

    Days with nothing logged are reported as zero.
    """
    today = visits.today()
    start, end = trend_window(view, today)

    async def build() -> dict:
        aggregates = await visits.get_range(to_date_key(start), to_date_key(end))
        series = build_visit_series(aggregates, start, end)
        trend = VisitTrend(
            view=view,
            start=start,
            end=end,
            data=[DailyVisitCount(**row) for row in series.to_dicts()],
            stats=summarize_visits(series),
        )
        logger.info("Visit trend computed", view=view, days=series.height, total=trend.stats.total)
        return trend.model_dump(mode="json")

    return await analytics_cache.get_or_set(f"trend:{view}:{to_date_key(today)}", build)


@router.get("/visits/breakdown", response_model=VisitBreakdown)
async def get_visit_breakdown(
    start: str = Query(..., description="First day, YYYY-MM-DD"),
    end: str = Query(..., description="Last day, YYYY-MM-DD"),
    visits: VisitAggregator = Depends(get_visit_aggregator),
):
    """Category and service totals across the stored days of a range."""

    async def build() -> dict:
        aggregates = await visits.get_range(start, end)
        breakdown = VisitBreakdown(
            start=start,
            end=end,
            days=len(aggregates),
            totals=breakdown_totals(aggregates),
        )
        return breakdown.model_dump(mode="json")

    return await analytics_cache.get_or_set(f"breakdown:{start}:{end}", build)


@router.get("/weather", response_model=WeatherReport)
async def get_weather_report(
    past_days: int = Query(default=30, ge=0, le=MAX_PAST_DAYS),
    forecast_days: int = Query(default=7, ge=0, le=MAX_FORECAST_DAYS),
    visits: VisitAggregator = Depends(get_visit_aggregator),
    weather: OpenMeteoClient = Depends(get_weather_client),
):
    """
    Weather history joined to visits, the upcoming forecast, and how
    visits on good weather days compare with poor ones.
    """
    today = visits.today()

    async def build() -> dict:
        forecast = await weather.fetch_daily_forecast(past_days=past_days, forecast_days=forecast_days)
        aggregates = await visits.get_range(
            to_date_key(today - timedelta(days=past_days)),
            to_date_key(today),
        )
        historical, upcoming = join_weather(forecast, aggregates, today)
        report = WeatherReport(
            historical=[WeatherDay(**row) for row in historical.to_dicts()],
            forecast=[WeatherDay(**row) for row in upcoming.to_dicts()],
            impact=weather_impact(historical),
        )
        return report.model_dump(mode="json")

    key = f"weather:{to_date_key(today)}:{past_days}:{forecast_days}"
    return await analytics_cache.get_or_set(key, build)


@router.get("/members", response_model=MemberReport)
async def get_member_report(
    store: MemberStore = Depends(get_member_store),
) -> MemberReport:
    """Membership statistics over the cached member collections."""
    subscriptions = await store.ensure_loaded(MemberKind.SUBSCRIPTION)
    loyalty = await store.ensure_loaded(MemberKind.LOYALTY)
    prepaid = await store.ensure_loaded(MemberKind.PREPAID)

    return MemberReport(
        subscriptions=membership_stats(subscriptions),
        loyalty=loyalty_stats(loyalty),
        prepaid=prepaid_stats(prepaid),
    )
