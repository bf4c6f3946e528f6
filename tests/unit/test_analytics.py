"""
Unit Tests - Analytics Reports
"""
from datetime import date, datetime, timezone

import polars as pl
import pytest

from carwash.analytics.reports import (
    breakdown_totals,
    build_visit_series,
    join_weather,
    loyalty_stats,
    membership_stats,
    prepaid_stats,
    round_half_up,
    summarize_visits,
    trend_window,
    weather_impact,
)
from carwash.exceptions import InvalidArgumentError
from carwash.members.schemas import LoyaltyMember, PrepaidMember, SubscriptionMember
from carwash.visits.schemas import DailyAggregate
from carwash.weather.client import DailyForecast


def aggregate(date_key: str, count: int, **counters) -> DailyAggregate:
    ts = datetime(2026, 10, 1, tzinfo=timezone.utc)
    return DailyAggregate(
        date_key=date_key,
        date=datetime.fromisoformat(date_key).replace(tzinfo=timezone.utc),
        count=count,
        counters=counters,
        created_at=ts,
        last_updated=ts,
    )


@pytest.fixture
def forecast() -> DailyForecast:
    """Three past days and two forecast days around 2026-10-19"""
    return DailyForecast.model_validate({
        "latitude": 46.08,
        "longitude": -118.31,
        "timezone": "America/Los_Angeles",
        "daily": {
            "time": ["2026-10-17", "2026-10-18", "2026-10-19", "2026-10-20", "2026-10-21"],
            "weather_code": [0, 63, 1, 3, 95],
            "temperature_2m_max": [68.0, 55.5, 70.1, 62.0, 58.3],
            "temperature_2m_min": [45.0, 44.2, 47.0, 43.1, 40.0],
            "precipitation_sum": [0.0, 0.6, 0.0, 0.0, 0.9],
        },
    })


class TestVisitSeries:
    """Tests for trend series and stats"""

    def test_weekly_window(self):
        start, end = trend_window("weekly", date(2026, 10, 19))

        assert start == date(2026, 10, 12)
        assert end == date(2026, 10, 19)

    def test_monthly_window(self):
        start, _ = trend_window("monthly", date(2026, 10, 19))
        assert start == date(2026, 9, 19)

    def test_unknown_view(self):
        with pytest.raises(InvalidArgumentError):
            trend_window("daily", date(2026, 10, 19))

    def test_series_is_zero_filled(self):
        """Test days with no aggregate appear with zero visits"""
        aggregates = [aggregate("2026-10-13", 5), aggregate("2026-10-16", 12)]

        series = build_visit_series(aggregates, date(2026, 10, 12), date(2026, 10, 19))

        assert series.height == 8
        assert series["count"].to_list() == [0, 5, 0, 0, 12, 0, 0, 0]
        assert series["date"].to_list()[0] == date(2026, 10, 12)

    def test_series_without_data(self):
        series = build_visit_series([], date(2026, 10, 12), date(2026, 10, 19))

        assert series.height == 8
        assert series["count"].sum() == 0

    def test_series_ignores_days_outside_window(self):
        aggregates = [aggregate("2026-09-01", 40), aggregate("2026-10-19", 3)]

        series = build_visit_series(aggregates, date(2026, 10, 18), date(2026, 10, 19))

        assert series["count"].to_list() == [0, 3]

    def test_summary(self):
        series = pl.DataFrame({"date": [date(2026, 10, d) for d in (1, 2, 3, 4)], "count": [3, 0, 4, 4]})

        stats = summarize_visits(series)

        assert stats.total == 11
        assert stats.average == 3  # 2.75 rounds up
        assert stats.max == 4
        assert stats.min == 0

    def test_summary_empty(self):
        series = build_visit_series([], date(2026, 10, 19), date(2026, 10, 1))

        assert summarize_visits(series).total == 0

    def test_round_half_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(3.5) == 4
        assert round_half_up(2.49) == 2


class TestBreakdown:

    def test_totals_across_days(self):
        aggregates = [
            aggregate("2026-10-18", 3, subscription=2, subB=2, cash=1),
            aggregate("2026-10-19", 4, subscription=1, subU=1, loyalty=3, loyD=3),
        ]

        totals = breakdown_totals(aggregates)

        assert totals["count"] == 7
        assert totals["subscription"] == 3
        assert totals["subB"] == 2
        assert totals["loyD"] == 3
        assert totals["preU"] == 0


class TestWeather:
    """Tests for the weather and visits join"""

    def test_split_at_today(self, forecast):
        historical, upcoming = join_weather(forecast, [aggregate("2026-10-18", 6)], date(2026, 10, 19))

        assert historical["date"].to_list() == [date(2026, 10, 17), date(2026, 10, 18), date(2026, 10, 19)]
        assert historical["visits"].to_list() == [0, 6, 0]
        assert upcoming["date"].to_list() == [date(2026, 10, 20), date(2026, 10, 21)]
        assert "visits" not in upcoming.columns

    def test_conditions_labelled(self, forecast):
        historical, upcoming = join_weather(forecast, [], date(2026, 10, 19))

        assert historical["weather_label"].to_list() == ["Clear sky", "Moderate rain", "Mainly clear"]
        assert upcoming["weather_severity"].to_list() == ["neutral", "poor"]

    def test_impact(self, forecast):
        aggregates = [
            aggregate("2026-10-17", 20),
            aggregate("2026-10-18", 5),
            aggregate("2026-10-19", 15),
        ]
        historical, _ = join_weather(forecast, aggregates, date(2026, 10, 19))

        impact = weather_impact(historical)

        assert impact.avg_visits_good_weather == 18  # 17.5 rounds up
        assert impact.avg_visits_poor_weather == 5
        assert impact.good_weather_days == 2
        assert impact.poor_weather_days == 1
        assert impact.total_days == 3
        assert impact.impact == 13

    def test_impact_without_history(self, forecast):
        historical, _ = join_weather(forecast, [], date(2026, 1, 1))

        assert weather_impact(historical).total_days == 0


class TestMemberStats:
    """Tests for membership statistics"""

    def test_membership_stats(self):
        members = [
            SubscriptionMember(id="B100", name="A"),
            SubscriptionMember(id="B101", name="B", is_active=False),
            SubscriptionMember(id="D200", name="C"),
            SubscriptionMember(id="U300", name="D"),
        ]

        stats = membership_stats(members)

        assert stats.total == 4
        assert stats.active == 3
        assert stats.inactive == 1
        assert stats.by_tier == {"B": 2, "D": 1, "U": 1}
        assert stats.by_tier_active == {"B": 1, "D": 1, "U": 1}

    def test_loyalty_stats(self):
        members = [
            LoyaltyMember(id="L100", name="A", visit_count=8),
            LoyaltyMember(id="L101", name="B", visit_count=9),
            LoyaltyMember(id="L102", name="C", visit_count=10),
            LoyaltyMember(id="L103", name="D", visit_count=3),
        ]

        stats = loyalty_stats(members, free_wash_interval=10)

        assert stats.total == 4
        assert stats.avg_visits == 8  # 7.5 rounds up
        assert stats.highest_visits == 10
        assert stats.near_free_wash == 2

    def test_prepaid_stats(self):
        members = [
            PrepaidMember(id="BB100", name="A", tier="B", prepaid_washes=0),
            PrepaidMember(id="DB100", name="B", tier="D", prepaid_washes=1),
            PrepaidMember(id="UB100", name="C", tier="U", prepaid_washes=2),
            PrepaidMember(id="UB101", name="D", tier="U", prepaid_washes=9),
        ]

        stats = prepaid_stats(members, low_threshold=2)

        assert stats.total == 4
        assert stats.avg_washes == 3
        assert stats.no_washes_left == 1
        assert stats.low_washes == 2

    def test_empty_collections(self):
        assert loyalty_stats([]).total == 0
        assert prepaid_stats([]).avg_washes == 0
        assert membership_stats([]).by_tier == {"B": 0, "D": 0, "U": 0}
