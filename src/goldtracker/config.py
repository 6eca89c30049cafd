"""Configuration system using pydantic-settings with environment variable loading."""

from decimal import Decimal
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from goldtracker.models import Metal


def _default_symbols() -> dict[str, str]:
    return {metal.value: f"C:{metal.value}USD" for metal in Metal}


class PriceSourceSettings(BaseSettings):
    """Third-party quote API connection settings."""

    model_config = SettingsConfigDict(env_prefix="SOURCE_")

    base_url: str = "https://api.metals-quotes.example/v1/quotes"
    api_key: SecretStr = SecretStr("")
    api_key_header: str = "Authorization"
    path_template: str = "/{ticker}"
    # Metal symbol -> source ticker
    symbols: dict[str, str] = Field(default_factory=_default_symbols)
    request_timeout: float = 5.0
    max_attempts: int = 3
    retry_base_delay: float = 0.5


class SchedulerSettings(BaseSettings):
    """Refresh scheduler and change-detection parameters.

    The adaptive bounds only apply when mode is "adaptive"; the fixed mode
    sleeps `interval` seconds between ticks.
    """

    model_config = SettingsConfigDict(env_prefix="SCHEDULER_")

    enabled: bool = True
    mode: Literal["fixed", "adaptive"] = "fixed"
    interval: float = 15.0  # seconds between ticks (fixed mode)
    floor: float = 30.0  # adaptive lower bound
    ceiling: float = 300.0  # adaptive upper bound
    max_consecutive_error_ticks: int = 5
    symbol_timeout: float = 20.0  # per-symbol budget inside one tick
    live_fetch_timeout: float = 5.0  # on-demand fetch budget, below the cache deadline
    change_threshold: Decimal = Decimal("0.01")  # min |mid delta| that triggers a write
    max_quote_age: float = 60.0  # older snapshot quotes trigger a live fetch on read


class BreakerSettings(BaseSettings):
    """Circuit breaker thresholds for the price source."""

    model_config = SettingsConfigDict(env_prefix="BREAKER_")

    failure_threshold: int = 3
    recovery_timeout: float = 30.0


class CacheSettings(BaseSettings):
    """Response cache sizing, deadlines and per-endpoint TTLs."""

    model_config = SettingsConfigDict(env_prefix="CACHE_")

    max_entries: int = 50
    max_fallback_entries: int = 500
    deadline: float = 6.0  # seconds a fresh computation may take before fallback
    prices_ttl: float = 10.0
    live_price_ttl: float = 5.0
    signals_ttl: float = 5.0
    invalidate_prefixes: list[str] = Field(
        default_factory=lambda: ["GET /api/prices", "GET /api/metals"]
    )


class DatabaseSettings(BaseSettings):
    """Embedded SQLite database location."""

    model_config = SettingsConfigDict(env_prefix="DATABASE_")

    path: str = "data/gold_tracker.db"


class ServerSettings(BaseSettings):
    """HTTP server configuration."""

    model_config = SettingsConfigDict(env_prefix="SERVER_")

    host: str = "0.0.0.0"
    port: int = 3000
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])


class AppSettings(BaseSettings):
    """Root application settings, composing all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    log_level: str = "INFO"
    log_format: Literal["console", "json"] = "console"  # env LOG_FORMAT
    # Built per instance so each sub-settings class reads its own env prefix
    source: PriceSourceSettings = Field(default_factory=PriceSourceSettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)
    breaker: BreakerSettings = Field(default_factory=BreakerSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)
