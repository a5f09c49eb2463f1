"""
Configuration loader for YAML files and environment overrides.

Loads and validates configuration from YAML files into Pydantic models,
then applies the environment variables the harvester has always honored
(SCRAPINGBEE_API_KEYS, HYBRID_BATCH_SIZE, ...).
"""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from .models import AppConfig


class ConfigurationError(Exception):
    """Configuration loading or validation error.

    Fatal: raised before any item is dispatched.
    """

    def __init__(self, message: str, path: Path | None = None, details: str | None = None):
        self.path = path
        self.details = details
        super().__init__(message)


# Environment variable -> (section, field)
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "SCRAPINGBEE_API_KEYS": ("harvest", "api_keys"),
    "HYBRID_BATCH_SIZE": ("harvest", "batch_size"),
    "DELAY_BETWEEN_PHONES_MS": ("harvest", "direct_delay_ms"),
    "DELAY_BETWEEN_BRANDS_MS": ("harvest", "group_delay_ms"),
    "SKIP_EXISTING": ("harvest", "skip_existing"),
    "MAX_BRANDS": ("harvest", "max_groups"),
    "PHONES_PER_BRAND": ("harvest", "max_items_per_group"),
    "COLLECTION_NAME": ("harvest", "namespace"),
    "DATABASE_URL": ("database", "url"),
    "LOG_LEVEL": ("logging", "level"),
}

_ENV_PATTERN = re.compile(r"\$\{([^}:]+)(?::-([^}]*))?\}")


def _load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML file and return its contents as a dictionary.

    Raises:
        ConfigurationError: If file cannot be read or parsed
    """
    if not path.exists():
        raise ConfigurationError(f"Configuration file not found: {path}", path=path)

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}", path=path, details=str(e)) from e
    except OSError as e:
        raise ConfigurationError(f"Cannot read {path}", path=path, details=str(e)) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Top level of {path} must be a mapping", path=path)
    return data


def _expand_env_vars(data: Any, environ: Mapping[str, str]) -> Any:
    """Recursively expand ${VAR} and ${VAR:-default} in string values."""
    if isinstance(data, str):
        def replacer(match: re.Match[str]) -> str:
            return environ.get(match.group(1), match.group(2) or "")

        return _ENV_PATTERN.sub(replacer, data)
    if isinstance(data, dict):
        return {k: _expand_env_vars(v, environ) for k, v in data.items()}
    if isinstance(data, list):
        return [_expand_env_vars(item, environ) for item in data]
    return data


def apply_env_overrides(
    data: dict[str, Any],
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Overlay known environment variables onto raw config data.

    Empty variables are ignored. Values stay strings; pydantic coerces them.
    """
    environ = os.environ if environ is None else environ
    merged = {key: dict(value) if isinstance(value, dict) else value for key, value in data.items()}

    for env_name, (section, field) in ENV_OVERRIDES.items():
        raw = environ.get(env_name)
        if raw is None or raw.strip() == "":
            continue
        target = merged.setdefault(section, {})
        if not isinstance(target, dict):
            raise ConfigurationError(f"Config section '{section}' must be a mapping")
        target[field] = raw.strip()

    return merged


def load_app_config(
    path: Path | str | None = None,
    expand_env: bool = True,
    environ: Mapping[str, str] | None = None,
) -> AppConfig:
    """Load application configuration.

    Args:
        path: Path to app.yaml (default: configs/app.yaml; missing file = defaults)
        expand_env: Whether to expand ${VAR} references and apply env overrides
        environ: Environment mapping (default: os.environ)

    Returns:
        Validated AppConfig instance

    Raises:
        ConfigurationError: If configuration is invalid
    """
    path = Path("configs/app.yaml") if path is None else Path(path)
    environ = os.environ if environ is None else environ

    data: dict[str, Any] = _load_yaml_file(path) if path.exists() else {}

    if expand_env:
        data = _expand_env_vars(data, environ)
        data = apply_env_overrides(data, environ)

    try:
        return AppConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid configuration in {path}",
            path=path,
            details=str(e),
        ) from e


def validate_config_file(path: Path | str) -> list[str]:
    """Validate a configuration file without applying environment overrides.

    Returns:
        List of validation error messages (empty if valid)
    """
    path = Path(path)
    try:
        data = _load_yaml_file(path)
    except ConfigurationError as e:
        return [str(e)]

    errors: list[str] = []
    try:
        AppConfig.model_validate(data)
    except ValidationError as e:
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            errors.append(f"{loc}: {error['msg']}")
    return errors
