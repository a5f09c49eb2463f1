"""
Pydantic configuration models for SpecHarvest.

These models provide type-safe configuration with validation for:
- Hybrid harvest settings (batching, rate limits, API keys)
- Direct and proxied transport settings
- Catalog source settings
- Database, logging and schedule settings
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator


# =============================================================================
# Enums
# =============================================================================


class TransportMode(str, Enum):
    """Fetch transports available to the harvester."""

    DIRECT = "direct"
    PROXIED = "proxied"


class RunStatus(str, Enum):
    """Lifecycle status of a harvest run."""

    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    ABORTED = "ABORTED"
    FAILED = "FAILED"


def split_api_keys(value: Any) -> list[str]:
    """Normalize a comma-separated string or sequence into a list of keys.

    Entries are trimmed and empty entries dropped; order is preserved.
    """
    if value is None:
        return []
    if isinstance(value, str):
        parts = value.split(",")
    else:
        parts = [str(part) for part in value]
    return [part.strip() for part in parts if part and part.strip()]


# =============================================================================
# Harvest Configuration
# =============================================================================


class HarvestConfig(BaseModel):
    """Hybrid harvest settings consumed by the orchestrator."""

    batch_size: int = Field(
        default=10,
        ge=1,
        description="Items served by one transport before switching to the other",
    )
    direct_delay_ms: int = Field(
        default=500,
        ge=0,
        description="Minimum delay between direct requests in milliseconds",
    )
    api_keys: list[str] = Field(
        default_factory=list,
        description="Ordered proxy API keys (comma-separated string accepted)",
    )
    skip_existing: bool = Field(
        default=True,
        description="Skip items already marked complete in the completion store",
    )
    require_proxy: bool = Field(
        default=False,
        description="Fail fast when no proxy API key is configured",
    )
    namespace: str = Field(
        default="gsmarena_phones",
        min_length=1,
        max_length=100,
        description="Completion store namespace (one active run per namespace)",
    )
    max_groups: int | None = Field(
        default=None,
        ge=1,
        description="Maximum brands to process (None = all)",
    )
    max_items_per_group: int | None = Field(
        default=None,
        ge=1,
        description="Maximum phones per brand (None = all)",
    )
    group_delay_ms: int = Field(
        default=0,
        ge=0,
        description="Pause between brands in milliseconds",
    )

    @field_validator("api_keys", mode="before")
    @classmethod
    def parse_api_keys(cls, v: Any) -> list[str]:
        """Accept comma-separated strings as well as lists."""
        return split_api_keys(v)


# =============================================================================
# Transport Configuration
# =============================================================================


class DirectConfig(BaseModel):
    """Direct (own network identity) transport settings."""

    timeout_seconds: float = Field(
        default=30.0,
        ge=1.0,
        le=300.0,
        description="Request timeout in seconds",
    )
    max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Immediate attempts before a direct request is reported blocked",
    )
    user_agent: str | None = Field(
        default=None,
        description="Custom user agent (default: desktop Chrome)",
    )


class ProxyConfig(BaseModel):
    """Proxied (rendering API) transport settings."""

    endpoint: str = Field(
        default="https://app.scrapingbee.com/api/v1/",
        description="Rendering API endpoint",
    )
    render_js: bool = Field(
        default=False,
        description="Ask the rendering service to execute JavaScript",
    )
    timeout_seconds: float = Field(
        default=60.0,
        ge=1.0,
        le=300.0,
        description="Request timeout in seconds",
    )


# =============================================================================
# Catalog Configuration
# =============================================================================


class CatalogConfig(BaseModel):
    """Catalog site settings."""

    base_url: str = Field(
        default="https://www.gsmarena.com",
        description="Catalog site root URL",
    )
    brands_path: str = Field(
        default="makers.php3",
        description="Path of the brand index page",
    )
    source: str = Field(
        default="gsmarena",
        description="Source label stored on every specification document",
    )
    max_pages_per_group: int = Field(
        default=50,
        ge=1,
        description="Safety cap on brand listing pagination",
    )


# =============================================================================
# Schedule Configuration
# =============================================================================


class ScheduleConfig(BaseModel):
    """Recurring harvest trigger."""

    enabled: bool = Field(
        default=False,
        description="Whether the scheduler registers the harvest job",
    )
    cron_expression: str = Field(
        default="0 */6 * * *",
        description="Crontab expression for recurring runs",
    )
    timezone: str = Field(
        default="UTC",
        description="Timezone for the cron expression",
    )
    jitter_minutes: int = Field(
        default=0,
        ge=0,
        le=60,
        description="Random jitter window in minutes",
    )
    max_runtime_minutes: int = Field(
        default=350,
        ge=1,
        le=1440,
        description="Run lock lifetime in minutes",
    )


# =============================================================================
# Database Configuration
# =============================================================================


class DatabaseConfig(BaseModel):
    """Database connection settings."""

    url: str = Field(
        default="sqlite:///data/specharvest.db",
        description="SQLAlchemy database URL",
    )
    echo: bool = Field(
        default=False,
        description="Echo SQL statements (debugging)",
    )
    pool_size: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Connection pool size",
    )


# =============================================================================
# Logging Configuration
# =============================================================================


class LoggingConfig(BaseModel):
    """Logging settings."""

    level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR)",
    )
    file: Path | None = Field(
        default=Path("logs/specharvest.log"),
        description="Log file path",
    )
    json_format: bool = Field(
        default=True,
        description="Use JSON format for file logs",
    )
    rich_console: bool = Field(
        default=True,
        description="Use Rich for console output",
    )


# =============================================================================
# Application Configuration
# =============================================================================


class AppConfig(BaseModel):
    """Root application configuration.

    This is the main configuration object loaded from app.yaml.
    """

    data_dir: Path = Field(
        default=Path("data"),
        description="Data storage directory",
    )

    harvest: HarvestConfig = Field(default_factory=HarvestConfig)
    direct: DirectConfig = Field(default_factory=DirectConfig)
    proxy: ProxyConfig = Field(default_factory=ProxyConfig)
    catalog: CatalogConfig = Field(default_factory=CatalogConfig)
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    def ensure_directories(self) -> None:
        """Create required directories if they don't exist."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        if self.logging.file:
            self.logging.file.parent.mkdir(parents=True, exist_ok=True)
