"""
Storefront Analytics Engine
Centralized Configuration Management

Pydantic settings with environment variable support and validation.
Settings are loaded once at process start; a validation failure surfaces
as a ConfigurationError before any request is served.
"""

from functools import lru_cache
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, SecretStr, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.exceptions import ConfigurationError


class DatabaseSettings(BaseSettings):
    """PostgreSQL Event Store Configuration"""

    model_config = SettingsConfigDict(
        env_prefix="POSTGRES_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, description="Database port")
    db: str = Field(default="storefront", description="Database name")
    user: str = Field(default="storefront", description="Database user")
    password: SecretStr = Field(default="secure_password", description="Database password")
    echo: bool = Field(default=False, description="Echo SQL queries")
    url: Optional[str] = Field(default=None, alias="DATABASE_URL", description="Full async URL (overrides host/port)")

    @property
    def async_url(self) -> str:
        """Async database URL for asyncpg"""
        if self.url:
            return self.url
        return f"postgresql+asyncpg://{self.user}:{self.password.get_secret_value()}@{self.host}:{self.port}/{self.db}"


class MonitoringSettings(BaseSettings):
    """Logging and Metrics Configuration"""

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: str = Field(default="INFO", alias="LOG_LEVEL", description="Logging level")
    log_format: str = Field(default="json", alias="LOG_FORMAT", description="Log format: json or text")
    enable_metrics: bool = Field(default=True, alias="ENABLE_METRICS", description="Expose /metrics")

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        if v.lower() not in ("json", "text"):
            raise ValueError("log_format must be 'json' or 'text'")
        return v.lower()


class AbuseDetectionSettings(BaseSettings):
    """
    Abuse Session Heuristic Thresholds

    Each threshold is read from its own environment variable
    (MAX_VIEWS_PER_MINUTE, MAX_VIEWS_PER_SESSION, ...) and is immutable
    once loaded.
    """

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    max_views_per_minute: int = Field(default=30, gt=0, description="Views allowed in any 60s window")
    max_views_per_session: int = Field(default=500, gt=0, description="Views allowed per session")
    min_avg_interval_ms: int = Field(default=2000, gt=0, description="Minimum mean interval between views")
    consecutive_fast_views: int = Field(default=5, gt=0, description="Fast-interval streak that flags a session")
    fast_view_threshold_ms: int = Field(default=1000, gt=0, description="Interval below which a view is fast")
    min_views_for_analysis: int = Field(default=10, gt=0, description="Minimum views before a session is analyzed")
    abuse_detection_enabled: bool = Field(default=True, description="Enable the abuse filtering stage")


class AnalyticsSettings(BaseSettings):
    """Report Computation Configuration"""

    model_config = SettingsConfigDict(
        env_prefix="ANALYTICS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    timezone: str = Field(default="UTC", description="IANA zone used for calendar alignment")
    page_size: int = Field(default=1000, gt=0, description="Event store page size")
    ledger_batch_size: int = Field(default=100, gt=0, description="Max user ids per ledger lookup")
    ledger_concurrency: int = Field(default=4, gt=0, description="Concurrent ledger lookups")
    breakdown_top_n: int = Field(default=10, gt=0, description="Entries kept per breakdown")
    daily_buckets: int = Field(default=7, gt=0)
    weekly_buckets: int = Field(default=8, gt=0)
    monthly_buckets: int = Field(default=6, gt=0)
    boundary_margin_seconds: int = Field(default=1, ge=0, description="Extension of the last weekly/monthly bucket")
    main_category: Optional[str] = Field(default=None, description="Sub-category excluded from breakdowns")

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Validate the zone name resolves"""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {v}") from e
        return v

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


class Settings(BaseSettings):
    """
    Main Application Settings

    Aggregates all configuration sections and provides a single entry point
    for accessing application configuration.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Application
    app_name: str = Field(default="storefront-analytics", alias="APP_NAME", description="Application name")
    app_env: str = Field(default="development", alias="APP_ENV", description="Environment")
    debug: bool = Field(default=False, alias="DEBUG", description="Debug mode")

    # Version
    version: str = Field(default="1.0.0", description="Application version")

    # Subsystem configurations
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)
    abuse: AbuseDetectionSettings = Field(default_factory=AbuseDetectionSettings)
    analytics: AnalyticsSettings = Field(default_factory=AnalyticsSettings)

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Validate environment value"""
        allowed = ["development", "staging", "production", "testing"]
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v.lower()

    @property
    def is_production(self) -> bool:
        """Check if running in production"""
        return self.app_env == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development"""
        return self.app_env == "development"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses LRU cache to ensure settings are only loaded once.

    Returns:
        Settings: Application settings instance

    Raises:
        ConfigurationError: If any section fails validation
    """
    try:
        return Settings()
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e
