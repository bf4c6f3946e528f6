"""
Weather Module
"""
from .client import (
    DailyForecast,
    OpenMeteoClient,
    WeatherCondition,
    describe_weather_code,
)

__all__ = [
    "DailyForecast",
    "OpenMeteoClient",
    "WeatherCondition",
    "describe_weather_code",
]
