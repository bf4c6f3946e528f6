"""
Open-Meteo Weather Client

Daily weather history and forecast for the wash site. The feed needs no
authentication; one request returns the past N days plus the forecast.
"""

from datetime import date
from typing import Dict, List, Optional

import httpx
import structlog
from pydantic import BaseModel, Field

from carwash.config import get_settings
from carwash.exceptions import InvalidArgumentError, WeatherServiceError

logger = structlog.get_logger(__name__)
settings = get_settings()

DAILY_FIELDS = "weather_code,temperature_2m_max,temperature_2m_min,precipitation_sum"

MAX_PAST_DAYS = 92
MAX_FORECAST_DAYS = 16


class WeatherCondition(BaseModel):
    """Readable WMO weather code"""
    code: Optional[int]
    label: str
    severity: str  # good, neutral or poor


# WMO weather interpretation codes
_CONDITIONS: Dict[int, tuple] = {
    0: ("Clear sky", "good"),
    1: ("Mainly clear", "good"),
    2: ("Partly cloudy", "good"),
    3: ("Overcast", "neutral"),
    45: ("Fog", "poor"),
    48: ("Depositing rime fog", "poor"),
    51: ("Light drizzle", "poor"),
    53: ("Moderate drizzle", "poor"),
    55: ("Dense drizzle", "poor"),
    56: ("Freezing drizzle", "poor"),
    57: ("Dense freezing drizzle", "poor"),
    61: ("Slight rain", "poor"),
    63: ("Moderate rain", "poor"),
    65: ("Heavy rain", "poor"),
    66: ("Freezing rain", "poor"),
    67: ("Heavy freezing rain", "poor"),
    71: ("Slight snow", "poor"),
    73: ("Moderate snow", "poor"),
    75: ("Heavy snow", "poor"),
    77: ("Snow grains", "poor"),
    80: ("Slight rain showers", "poor"),
    81: ("Moderate rain showers", "poor"),
    82: ("Violent rain showers", "poor"),
    85: ("Slight snow showers", "poor"),
    86: ("Heavy snow showers", "poor"),
    95: ("Thunderstorm", "poor"),
    96: ("Thunderstorm with hail", "poor"),
    99: ("Thunderstorm with heavy hail", "poor"),
}


def describe_weather_code(code: Optional[int]) -> WeatherCondition:
    """Label and severity for a WMO code; unknown codes are neutral."""
    if code in _CONDITIONS:
        label, severity = _CONDITIONS[code]
        return WeatherCondition(code=code, label=label, severity=severity)
    return WeatherCondition(code=code, label=f"Unknown ({code})", severity="neutral")


class DailySeries(BaseModel):
    """Column-oriented daily values as Open-Meteo returns them"""
    time: List[date]
    weather_code: List[Optional[int]] = Field(default_factory=list)
    temperature_2m_max: List[Optional[float]] = Field(default_factory=list)
    temperature_2m_min: List[Optional[float]] = Field(default_factory=list)
    precipitation_sum: List[Optional[float]] = Field(default_factory=list)


class DailyForecast(BaseModel):
    """Forecast response"""
    latitude: float
    longitude: float
    timezone: Optional[str] = None
    daily_units: Dict[str, str] = Field(default_factory=dict)
    daily: DailySeries


class OpenMeteoClient:
    """
    Async client for the Open-Meteo forecast endpoint.

    Example:
        async with OpenMeteoClient() as client:
            forecast = await client.fetch_daily_forecast(past_days=30)
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        timezone: Optional[str] = None,
        temperature_unit: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        cfg = settings.weather
        self.latitude = cfg.latitude if latitude is None else latitude
        self.longitude = cfg.longitude if longitude is None else longitude
        self.timezone = timezone or cfg.timezone
        self.temperature_unit = temperature_unit or cfg.temperature_unit
        self._client = httpx.AsyncClient(
            base_url=base_url or cfg.base_url,
            timeout=timeout or cfg.timeout_seconds,
            transport=transport,
        )

    async def __aenter__(self) -> "OpenMeteoClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def fetch_daily_forecast(self, past_days: int = 30, forecast_days: int = 7) -> DailyForecast:
        """
        Fetch daily history and forecast.

        Args:
            past_days: Days of history, 0-92
            forecast_days: Days of forecast, 0-16

        Raises:
            InvalidArgumentError: Day counts out of range
            WeatherServiceError: Non-2xx response
        """
        if not 0 <= past_days <= MAX_PAST_DAYS:
            raise InvalidArgumentError(f"past_days must be between 0 and {MAX_PAST_DAYS}")
        if not 0 <= forecast_days <= MAX_FORECAST_DAYS:
            raise InvalidArgumentError(f"forecast_days must be between 0 and {MAX_FORECAST_DAYS}")

        params = {
            "latitude": str(self.latitude),
            "longitude": str(self.longitude),
            "daily": DAILY_FIELDS,
            "timezone": self.timezone,
            "past_days": str(past_days),
            "forecast_days": str(forecast_days),
            "temperature_unit": self.temperature_unit,
        }

        response = await self._client.get("/v1/forecast", params=params)
        if response.is_error:
            logger.error(
                "Weather request failed",
                status_code=response.status_code,
                body=response.text[:200],
            )
            raise WeatherServiceError(
                f"Open-Meteo API error {response.status_code}: {response.text or response.reason_phrase}",
                status_code=response.status_code,
            )

        forecast = DailyForecast.model_validate(response.json())
        logger.debug("Weather fetched", days=len(forecast.daily.time))
        return forecast
