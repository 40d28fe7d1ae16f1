"""
Retail Analytics Warehouse
Centralized Configuration Management

Settings are read from the environment (and an optional .env file) with
Pydantic, one section per concern:

- database: warehouse connection (PostgreSQL via asyncpg, or any async URL)
- warehouse: calendar range, fiscal year and aggregate refresh policy
- api: bind address and CORS for the analytics API
- logging: structlog level and renderer
- quality: whether and how strictly integrity checks run after a refresh
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

REFRESH_STRATEGIES = ("full", "incremental")
ENVIRONMENTS = ("development", "staging", "production", "testing")
LOG_FORMATS = ("json", "console")


class DatabaseSettings(BaseSettings):
    """Warehouse database connection"""

    model_config = SettingsConfigDict(env_prefix="POSTGRES_")

    host: str = "localhost"
    port: int = 5432
    db: str = Field(default="retail_dw", alias="POSTGRES_DB")
    user: str = "retail"
    password: SecretStr = SecretStr("retail")
    echo: bool = Field(default=False, description="Log every SQL statement")
    url: Optional[str] = Field(
        default=None,
        alias="DATABASE_URL",
        description="Full async URL, e.g. sqlite+aiosqlite:///warehouse.db; overrides the POSTGRES_* fields",
    )

    @property
    def async_url(self) -> str:
        if self.url:
            return self.url
        return (
            f"postgresql+asyncpg://{self.user}:{self.password.get_secret_value()}"
            f"@{self.host}:{self.port}/{self.db}"
        )


class WarehouseSettings(BaseSettings):
    """Star schema maintenance"""

    model_config = SettingsConfigDict(env_prefix="WAREHOUSE_")

    aggregate_refresh_strategy: str = Field(
        default="incremental",
        description="Aggregate refresh policy: full or incremental",
    )
    refresh_days_back: int = Field(
        default=3, ge=1, description="Trailing days recomputed by an incremental scheduled refresh"
    )
    fiscal_year_start_month: int = Field(default=1, ge=1, le=12)
    calendar_start_year: int = Field(default=2023, description="First year loaded into dim_date")
    calendar_end_year: int = Field(default=2026, description="Last year loaded into dim_date")
    replace_inventory_snapshots: bool = Field(
        default=True,
        description="A second snapshot for the same date/product/store replaces the first",
    )
    insert_chunk_size: int = Field(default=1000, ge=1, description="Rows per bulk insert")

    @field_validator("aggregate_refresh_strategy")
    @classmethod
    def validate_strategy(cls, v: str) -> str:
        if v.lower() not in REFRESH_STRATEGIES:
            raise ValueError(f"Refresh strategy must be one of: {list(REFRESH_STRATEGIES)}")
        return v.lower()

    @model_validator(mode="after")
    def validate_calendar_range(self) -> "WarehouseSettings":
        if self.calendar_end_year < self.calendar_start_year:
            raise ValueError("calendar_end_year precedes calendar_start_year")
        return self


class ApiSettings(BaseSettings):
    """Analytics API server"""

    model_config = SettingsConfigDict(env_prefix="API_")

    host: str = "0.0.0.0"
    port: int = 8000
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:8088"],
        description="BI tools allowed to call the API from a browser",
    )


class LoggingSettings(BaseSettings):
    """structlog output"""

    model_config = SettingsConfigDict(env_prefix="LOG_")

    level: str = "INFO"
    format: str = Field(default="json", description="json or console")

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        if v.lower() not in LOG_FORMATS:
            raise ValueError(f"Log format must be one of: {list(LOG_FORMATS)}")
        return v.lower()


class QualitySettings(BaseSettings):
    """Post-refresh integrity checks"""

    model_config = SettingsConfigDict(env_prefix="QUALITY_")

    enabled: bool = Field(
        default=True,
        alias="ENABLE_DATA_QUALITY_CHECKS",
        description="Run warehouse integrity checks after each scheduled refresh",
    )
    fail_on_error: bool = Field(
        default=True,
        description="ERROR-level failures fail the refresh run",
    )


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
    )

    app_name: str = Field(default="retail-warehouse", alias="APP_NAME")
    app_env: str = Field(default="development", alias="APP_ENV")
    version: str = "1.0.0"

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    warehouse: WarehouseSettings = Field(default_factory=WarehouseSettings)
    api: ApiSettings = Field(default_factory=ApiSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    quality: QualitySettings = Field(default_factory=QualitySettings)

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Validate environment value"""
        if v.lower() not in ENVIRONMENTS:
            raise ValueError(f"Environment must be one of: {list(ENVIRONMENTS)}")
        return v.lower()

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
