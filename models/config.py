"""Application configuration using Pydantic v2.

Centralized settings for anistream-hub including:
- HTTP client defaults
- Per-operation cache TTLs
- Health/circuit thresholds
- Source priority, streaming and fan-out budgets
- Streaming retry policy
- OS-specific data paths

Configuration can be overridden via environment variables:
    ANISTREAM__CACHE__SEARCH_TTL=60
    ANISTREAM__HEALTH__OFFLINE_AFTER_FAILURES=3
    ANISTREAM__MANAGER__PRIORITY='["animeflv", "hianime"]'
"""

import os
from pathlib import Path

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def get_data_path() -> Path:
    """Get OS-specific data directory for anistream-hub.

    Returns:
        Path: ~/.local/state/anistream-hub (Linux/macOS) or %LOCALAPPDATA%\\anistream-hub (Windows)
    """
    if os.name == "nt":
        return Path(os.environ.get("LOCALAPPDATA", Path.home())) / "anistream-hub"
    return Path.home() / ".local" / "state" / "anistream-hub"


class HttpSettings(BaseModel):
    """Upstream HTTP client configuration."""

    timeout: float = Field(10.0, gt=0, description="Total request timeout in seconds")
    connect_timeout: float = Field(4.0, gt=0, description="Connect timeout in seconds")
    user_agent: str = Field(
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
        description="User-Agent sent to upstream sites",
    )
    proxy: str | None = Field(None, description="Optional HTTP proxy URL")


class CacheSettings(BaseModel):
    """Per-adapter TTL cache configuration (seconds)."""

    home_ttl: int = Field(300, ge=1, description="Homepage/trending/latest listings")
    search_ttl: int = Field(180, ge=1, description="Search results")
    details_ttl: int = Field(900, ge=1, description="Anime detail records")
    episodes_ttl: int = Field(600, ge=1, description="Episode lists")
    servers_ttl: int = Field(3600, ge=1, description="Server lists")
    stream_ttl: int = Field(7200, ge=1, description="Streaming links (CDN tokens expire)")
    genre_ttl: int = Field(180, ge=1, description="Genre listings")
    sweep_interval: int = Field(300, ge=1, description="Expired-entry sweep period")


class HealthSettings(BaseModel):
    """Soft circuit thresholds for the health monitor."""

    window_size: int = Field(50, ge=2, description="Observations kept in the rolling ratio")
    latency_samples: int = Field(10, ge=1, description="Latency samples averaged")
    degraded_below: float = Field(
        0.5, ge=0, le=1, description="Success ratio under which an adapter is Degraded"
    )
    min_samples: int = Field(5, ge=1, description="Observations before the ratio is trusted")
    offline_after_failures: int = Field(
        5, ge=1, description="Consecutive failures that take an adapter Offline"
    )
    recovery_successes: int = Field(
        3, ge=1, description="Consecutive successes that promote Degraded to Online"
    )
    probe_interval: int = Field(60, ge=1, description="Offline re-probe period in seconds")
    probe_timeout: float = Field(8.0, gt=0, description="Health check timeout in seconds")


class ManagerSettings(BaseModel):
    """Source manager ordering and budgets."""

    priority: list[str] = Field(
        default_factory=lambda: ["hianime", "animeflv"],
        description="Adapter names by decreasing general reliability",
    )
    candidate_timeout: float = Field(
        12.0, gt=0, description="Budget for one adapter call inside a fallback walk"
    )
    stream_timeout: float = Field(
        120.0,
        gt=0,
        description="Budget for one adapter's whole server x retry streaming walk",
    )
    pool_pages: int = Field(
        3, ge=1, le=10, description="Trending pages pooled for browse and random picks"
    )
    fanout_deadline: float = Field(15.0, gt=0, description="Overall deadline for fan-out calls")
    fanout_limit: int = Field(6, ge=1, description="Maximum adapters queried by fan-out")
    demote_degraded: bool = Field(
        True, description="Rank Degraded adapters after healthy ones in fallback walks"
    )
    disabled_sources: list[str] = Field(
        default_factory=list,
        description="Plugin names not loaded (e.g., ['animeflv'])",
    )

    @field_validator("priority", "disabled_sources")
    @classmethod
    def lowercase_names(cls, v: list[str]) -> list[str]:
        """Adapter names are case-insensitive."""
        return [name.strip().lower() for name in v if name.strip()]


class StreamingSettings(BaseModel):
    """Streaming resolver and title matching policy."""

    max_retries: int = Field(2, ge=0, le=5, description="Retries per server after the first try")
    backoff_seconds: float = Field(1.0, ge=0, description="Linear backoff step between retries")
    match_threshold: float = Field(
        0.4, ge=0, le=1, description="Minimum title similarity for a streaming match"
    )
    single_match_threshold: float = Field(
        0.5, ge=0, le=1, description="Minimum similarity when only one candidate exists"
    )


class LoggingSettings(BaseModel):
    """Logging configuration (loguru)."""

    debug: bool = Field(False, description="DEBUG on the console instead of WARNING")
    to_file: bool = Field(True, description="Also write a rotating log file")
    log_dir: Path = Field(
        default_factory=get_data_path,
        description="Directory for anistream-hub.log",
    )


class AppSettings(BaseSettings):
    """Root application settings with environment variable support.

    Environment variables use the prefix ANISTREAM__ with nested delimiters:
    - ANISTREAM__HTTP__TIMEOUT=20
    - ANISTREAM__CACHE__STREAM_TTL=3600
    - ANISTREAM__STREAMING__MAX_RETRIES=1

    Can also be configured via .env file in project root.
    """

    model_config = SettingsConfigDict(
        env_nested_delimiter="__",  # ANISTREAM__HEALTH__WINDOW_SIZE
        env_prefix="ANISTREAM__",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",  # Ignore unknown env vars
    )

    http: HttpSettings = Field(default_factory=HttpSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    health: HealthSettings = Field(default_factory=HealthSettings)
    manager: ManagerSettings = Field(default_factory=ManagerSettings)
    streaming: StreamingSettings = Field(default_factory=StreamingSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


# Singleton instance - import and use throughout the app
settings = AppSettings()
