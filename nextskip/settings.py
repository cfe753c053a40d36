import json
import os
from datetime import timedelta
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator

load_dotenv()


class SourceSettings(BaseModel):
    """Per-source overrides, keyed by source name in SOURCE_OVERRIDES."""

    retry_max_attempts: int | None = None
    retry_wait_seconds: float | None = None
    failure_rate_threshold: float | None = None
    refresh_interval_minutes: float | None = None


class Settings(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # Database Configuration
    database_url: str = Field(
        default="sqlite+aiosqlite:///./nextskip.db", alias="DATABASE_URL"
    )
    database_echo: bool = Field(default=False, alias="DATABASE_ECHO")

    # HTTP Client Configuration
    http_request_timeout: float = Field(default=10.0, alias="HTTP_REQUEST_TIMEOUT")
    http_max_response_bytes: int = Field(
        default=1024 * 1024, alias="HTTP_MAX_RESPONSE_BYTES"
    )

    # Retry Configuration
    fetch_retry_max_attempts: int = Field(default=3, alias="FETCH_RETRY_MAX_ATTEMPTS")
    fetch_retry_wait_seconds: float = Field(
        default=0.5, alias="FETCH_RETRY_WAIT_SECONDS"
    )
    fetch_retry_max_wait_seconds: float = Field(
        default=5.0, alias="FETCH_RETRY_MAX_WAIT_SECONDS"
    )

    # Circuit Breaker Configuration
    breaker_sliding_window_size: int = Field(
        default=10, alias="BREAKER_SLIDING_WINDOW_SIZE"
    )
    breaker_minimum_calls: int = Field(default=5, alias="BREAKER_MINIMUM_CALLS")
    breaker_failure_rate_threshold: float = Field(
        default=50.0, alias="BREAKER_FAILURE_RATE_THRESHOLD"
    )
    breaker_open_seconds: float = Field(default=60.0, alias="BREAKER_OPEN_SECONDS")
    breaker_half_open_calls: int = Field(default=3, alias="BREAKER_HALF_OPEN_CALLS")

    # Per-source and per-cache overrides (JSON objects)
    source_overrides: dict[str, SourceSettings] = Field(
        default_factory=dict, alias="SOURCE_OVERRIDES"
    )
    cache_ttl_overrides: dict[str, float] = Field(
        default_factory=dict, alias="CACHE_TTL_OVERRIDES"
    )

    # Scheduler Configuration
    eager_load_on_startup: bool = Field(default=True, alias="EAGER_LOAD_ON_STARTUP")
    startup_stagger_seconds: float = Field(
        default=10.0, alias="STARTUP_STAGGER_SECONDS"
    )
    feed_stale_threshold_minutes: int = Field(
        default=120, alias="FEED_STALE_THRESHOLD_MINUTES"
    )

    # Spot Stream Configuration
    spots_enabled: bool = Field(default=True, alias="SPOTS_ENABLED")
    spot_retention_hours: int = Field(default=24, alias="SPOT_RETENTION_HOURS")
    spot_cleanup_interval_minutes: int = Field(
        default=60, alias="SPOT_CLEANUP_INTERVAL_MINUTES"
    )

    # Contest Series Configuration
    contest_series_request_delay: float = Field(
        default=5.0, alias="CONTEST_SERIES_REQUEST_DELAY"
    )

    # API Configuration
    api_title: str = Field(default="NextSkip Dashboard API", alias="API_TITLE")
    api_host: str = Field(default="0.0.0.0", alias="API_HOST")
    api_port: int = Field(default=8000, alias="API_PORT")

    @field_validator("source_overrides", "cache_ttl_overrides", mode="before")
    @classmethod
    def _parse_json_object(cls, value: Any) -> Any:
        if isinstance(value, str):
            return json.loads(value) if value.strip() else {}
        return value

    def for_source(self, source_name: str) -> SourceSettings:
        """Overrides for one source, empty when none are configured."""
        return self.source_overrides.get(source_name, SourceSettings())

    def refresh_interval(self, source_name: str, default: timedelta) -> timedelta:
        minutes = self.for_source(source_name).refresh_interval_minutes
        return timedelta(minutes=minutes) if minutes else default

    def cache_ttl(self, cache_name: str, default: timedelta) -> timedelta:
        minutes = self.cache_ttl_overrides.get(cache_name)
        return timedelta(minutes=minutes) if minutes else default


global_settings = Settings.model_validate(dict(os.environ))
