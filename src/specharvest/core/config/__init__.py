"""Configuration loading and validation."""

from .models import (
    # Enums
    TransportMode,
    RunStatus,
    # Config models
    AppConfig,
    HarvestConfig,
    DirectConfig,
    ProxyConfig,
    CatalogConfig,
    ScheduleConfig,
    DatabaseConfig,
    LoggingConfig,
    split_api_keys,
)
from .loader import ConfigurationError, apply_env_overrides, load_app_config, validate_config_file

__all__ = [
    # Enums
    "TransportMode",
    "RunStatus",
    # Config models
    "AppConfig",
    "HarvestConfig",
    "DirectConfig",
    "ProxyConfig",
    "CatalogConfig",
    "ScheduleConfig",
    "DatabaseConfig",
    "LoggingConfig",
    "split_api_keys",
    # Loaders
    "ConfigurationError",
    "apply_env_overrides",
    "load_app_config",
    "validate_config_file",
]
