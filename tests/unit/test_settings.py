"""
Unit Tests - Configuration
"""
import pytest
from pydantic import ValidationError

from carwash.config.settings import (
    DatabaseSettings,
    RedisSettings,
    Settings,
    VisitSettings,
    WeatherSettings,
)


class TestSettings:
    """Tests for environment-driven settings"""

    def test_defaults(self, monkeypatch):
        for name in ("VISITS_RETENTION_DAYS", "MEMBERS_FREE_WASH_INTERVAL", "APP_ENV"):
            monkeypatch.delenv(name, raising=False)

        settings = Settings(_env_file=None)

        assert settings.visits.retention_days == 365
        assert settings.members.free_wash_interval == 10
        assert settings.weather.latitude == 46.08
        assert settings.is_development

    def test_visit_settings_from_env(self, monkeypatch):
        monkeypatch.setenv("VISITS_RETENTION_DAYS", "30")
        monkeypatch.setenv("VISITS_TRANSACTION_MAX_ATTEMPTS", "7")

        visits = VisitSettings()

        assert visits.retention_days == 30
        assert visits.transaction_max_attempts == 7

    def test_invalid_environment(self, monkeypatch):
        monkeypatch.setenv("APP_ENV", "moon")

        with pytest.raises(ValidationError):
            Settings(_env_file=None)

    def test_database_url_override(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///./carwash.db")

        assert DatabaseSettings().async_url == "sqlite+aiosqlite:///./carwash.db"

    def test_database_url_from_parts(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        monkeypatch.setenv("POSTGRES_HOST", "db.internal")
        monkeypatch.setenv("POSTGRES_DB", "wash")

        url = DatabaseSettings().async_url

        assert url.startswith("postgresql+asyncpg://")
        assert url.endswith("@db.internal:5432/wash")

    def test_redis_url(self, monkeypatch):
        monkeypatch.delenv("REDIS_URL", raising=False)
        monkeypatch.delenv("REDIS_PASSWORD", raising=False)
        monkeypatch.setenv("REDIS_HOST", "cache")

        assert RedisSettings().get_url() == "redis://cache:6379/0"

    def test_temperature_unit(self, monkeypatch):
        monkeypatch.setenv("WEATHER_TEMPERATURE_UNIT", "Celsius")
        assert WeatherSettings().temperature_unit == "celsius"

        monkeypatch.setenv("WEATHER_TEMPERATURE_UNIT", "kelvin")
        with pytest.raises(ValidationError):
            WeatherSettings()
