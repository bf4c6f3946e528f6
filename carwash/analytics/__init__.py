"""
Analytics Module
"""
from .reports import (
    build_visit_series,
    breakdown_totals,
    join_weather,
    loyalty_stats,
    membership_stats,
    prepaid_stats,
    summarize_visits,
    trend_window,
    weather_impact,
)

__all__ = [
    "build_visit_series",
    "breakdown_totals",
    "join_weather",
    "loyalty_stats",
    "membership_stats",
    "prepaid_stats",
    "summarize_visits",
    "trend_window",
    "weather_impact",
]
