"""Application settings and configuration.

This module defines all configuration options for the quota modeler.
Settings are loaded from environment variables with sensible defaults.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="Quota Modeler", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Database configuration
    database_url: str = Field(default="sqlite:///./modeler.db", alias="DATABASE_URL")
    test_database_url: str | None = Field(default=None, alias="TEST_DATABASE_URL")
    use_testing_database: bool = Field(default=False, alias="USE_TEST_DATABASE")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Redis configuration for the shared rate limiter
    redis_url: str = Field(default="redis://localhost:6379", alias="REDIS_URL")

    # Rate limiter store
    rate_limit_type: str = Field(default="NOOP", alias="RATE_LIMIT_TYPE")
    rate_limit_hmac_key: str = Field(default="", alias="RATE_LIMIT_HMAC_KEY")
    rate_limit_interval_seconds: int = Field(
        default=24 * 60 * 60,
        alias="RATE_LIMIT_INTERVAL_SECONDS",
    )
    rate_limit_quota_ttl_seconds: int = Field(
        default=24 * 60 * 60,
        alias="RATE_LIMIT_QUOTA_TTL_SECONDS",
    )

    # Execution gate
    modeler_lock_name: str = Field(default="modeler", alias="MODELER_LOCK_NAME")
    modeler_min_period_seconds: int = Field(
        default=20 * 60,
        alias="MODELER_MIN_PERIOD_SECONDS",
    )

    # Trend forecasting
    modeler_forecast_window_days: int = Field(default=21, alias="MODELER_FORECAST_WINDOW_DAYS")
    modeler_forecast_min_points: int = Field(default=14, alias="MODELER_FORECAST_MIN_POINTS")
    modeler_forecast_degree: int = Field(default=1, alias="MODELER_FORECAST_DEGREE")
    modeler_min_value: int = Field(default=10, ge=0, alias="MODELER_MIN_VALUE")
    modeler_max_value: int = Field(default=20_000, ge=0, alias="MODELER_MAX_VALUE")

    # Anomaly detection
    modeler_anomaly_window: int = Field(default=30, alias="MODELER_ANOMALY_WINDOW")
    modeler_anomaly_min_points: int = Field(default=14, alias="MODELER_ANOMALY_MIN_POINTS")
    modeler_anomaly_lookback_days: int = Field(
        default=90,
        alias="MODELER_ANOMALY_LOOKBACK_DAYS",
    )

    # Run execution
    modeler_workers: int = Field(default=1, ge=1, alias="MODELER_WORKERS")
    modeler_run_timeout_seconds: float | None = Field(
        default=None,
        alias="MODELER_RUN_TIMEOUT_SECONDS",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )

    @property
    def effective_database_url(self) -> str:
        """Return the database URL respecting testing overrides."""
        if self.use_testing_database and self.test_database_url:
            return self.test_database_url
        return self.database_url

    @property
    def rate_limit_hmac_key_bytes(self) -> bytes:
        """Return the HMAC key used to derive rate limiter keys."""
        return self.rate_limit_hmac_key.encode()


settings = Settings()
