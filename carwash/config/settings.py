"""
Settings for the car wash service.

Each subsystem reads its own environment prefix (POSTGRES_, REDIS_, VISITS_,
MEMBERS_, WEATHER_). DATABASE_URL and REDIS_URL win over the split host/port
variables when set.
"""

from functools import lru_cache
from typing import Optional, List
from pydantic import Field, field_validator, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

ENVIRONMENTS = ("development", "staging", "production", "testing")


class DatabaseSettings(BaseSettings):
    """Visit and member storage"""

    model_config = SettingsConfigDict(env_prefix="POSTGRES_")

    host: str = "localhost"
    port: int = 5432
    name: str = Field(default="carwash", alias="POSTGRES_DB")
    user: str = "carwash"
    password: SecretStr = SecretStr("carwash")
    echo: bool = Field(default=False, description="Log every SQL statement")
    url: Optional[str] = Field(default=None, alias="DATABASE_URL", description="Full async URL, e.g. sqlite+aiosqlite:///carwash.db")

    @property
    def async_url(self) -> str:
        if self.url:
            return self.url
        secret = self.password.get_secret_value()
        return f"postgresql+asyncpg://{self.user}:{secret}@{self.host}:{self.port}/{self.name}"


class RedisSettings(BaseSettings):
    """Analytics response cache"""

    model_config = SettingsConfigDict(env_prefix="REDIS_")

    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[SecretStr] = None
    max_connections: int = 20
    socket_timeout: int = Field(default=5, description="Seconds")
    decode_responses: bool = True
    analytics_ttl: int = Field(default=300, description="Seconds a cached dashboard report lives")
    url: Optional[str] = Field(default=None, alias="REDIS_URL")

    def get_url(self) -> str:
        if self.url:
            return self.url
        auth = f":{self.password.get_secret_value()}@" if self.password else ""
        return f"redis://{auth}{self.host}:{self.port}/{self.db}"


class SecuritySettings(BaseSettings):
    """CORS and per-client request limits"""

    model_config = SettingsConfigDict(env_prefix="")

    rate_limit_requests: int = Field(default=300, alias="RATE_LIMIT_REQUESTS")
    rate_limit_window_seconds: int = Field(default=60, alias="RATE_LIMIT_WINDOW_SECONDS")
    # Dashboard dev servers
    cors_origins: List[str] = Field(default=["http://localhost:3000", "http://localhost:5173"], alias="CORS_ORIGINS")


class MonitoringSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default="json", alias="LOG_FORMAT", description="json or text")


class VisitSettings(BaseSettings):
    """Daily visit aggregation configuration"""

    model_config = SettingsConfigDict(env_prefix="VISITS_")

    retention_days: int = Field(default=365, description="Days of daily aggregates kept by the purge")
    purge_concurrency: int = Field(default=10, description="Max deletes in flight during a purge")
    purge_on_startup: bool = Field(default=True, description="Purge old aggregates when the API starts")
    transaction_max_attempts: int = Field(default=25, description="Attempts per visit transaction before giving up")
    transaction_backoff_ms: int = Field(default=5, description="Base backoff between conflicting attempts")


class MemberSettings(BaseSettings):
    """Membership rules"""

    model_config = SettingsConfigDict(env_prefix="MEMBERS_")

    free_wash_interval: int = Field(default=10, description="Every Nth loyalty visit is free")
    low_prepaid_threshold: int = Field(default=2, description="Prepaid balance considered low")


class WeatherSettings(BaseSettings):
    """Open-Meteo forecast feed"""

    model_config = SettingsConfigDict(env_prefix="WEATHER_")

    base_url: str = Field(default="https://api.open-meteo.com", description="Open-Meteo base URL")
    latitude: float = Field(default=46.08, description="Site latitude")
    longitude: float = Field(default=-118.31, description="Site longitude")
    timezone: str = Field(default="America/Los_Angeles", description="IANA timezone for daily buckets")
    temperature_unit: str = Field(default="fahrenheit", description="fahrenheit or celsius")
    timeout_seconds: float = Field(default=10.0, description="HTTP timeout")

    @field_validator("temperature_unit")
    @classmethod
    def validate_unit(cls, v: str) -> str:
        if v.lower() not in ("fahrenheit", "celsius"):
            raise ValueError("temperature_unit must be fahrenheit or celsius")
        return v.lower()


class Settings(BaseSettings):
    """
    Root settings object; one nested section per subsystem.

    Values come from the process environment first, then from `.env`.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = Field(default="carwash-cms", alias="APP_NAME")
    app_env: str = Field(default="development", alias="APP_ENV", description="development, staging, production or testing")
    debug: bool = Field(default=False, alias="DEBUG")
    api_host: str = Field(default="0.0.0.0", alias="API_HOST")
    api_port: int = Field(default=8000, alias="API_PORT")
    version: str = Field(default="1.0.0")

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)
    visits: VisitSettings = Field(default_factory=VisitSettings)
    members: MemberSettings = Field(default_factory=MemberSettings)
    weather: WeatherSettings = Field(default_factory=WeatherSettings)

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        env = v.lower()
        if env not in ENVIRONMENTS:
            raise ValueError(f"APP_ENV must be one of: {', '.join(ENVIRONMENTS)}")
        return env

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"


@lru_cache()
def get_settings() -> Settings:
    """Settings are read once per process; tests build Settings() directly."""
    return Settings()
