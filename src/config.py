"""
Centralized configuration loader for the content pipeline core.

Loads settings from YAML files and environment variables, providing
sensible defaults when configuration files are absent.

Provides:
    - StrategyThresholds: Per-device item-count thresholds for the
      adaptive data strategy, with env var overrides
    - Settings: Global application settings loaded from YAML + env vars
    - get_settings(): Singleton accessor for Settings
    - reset_settings(): Clear the cached singleton (tests, reloads)
    - validate_env(): Startup validation of required environment variables
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv

from src.exceptions import ConfigurationError

# ---------------------------------------------------------------------------
# Load .env file (no-op if file does not exist)
# ---------------------------------------------------------------------------
load_dotenv()

# ---------------------------------------------------------------------------
# Project root directory (parent of src/)
# ---------------------------------------------------------------------------
PROJECT_ROOT = Path(__file__).resolve().parent.parent

logger = logging.getLogger(__name__)


# ===========================================================================
# STRATEGY THRESHOLD CONFIGURATION
# ===========================================================================


@dataclass
class StrategyThresholds:
    """
    Item-count thresholds at or below which a device keeps the whole
    collection client-side.

    Allows tuning via environment variables without code changes.

    Usage::

        thresholds = StrategyThresholds()
        limit = thresholds.for_device("tablet")
    """

    mobile: int = 50
    tablet: int = 100
    desktop: int = 500

    def __post_init__(self) -> None:
        """Override thresholds from environment variables if set."""
        env_overrides = {
            "STRATEGY_THRESHOLD_MOBILE": "mobile",
            "STRATEGY_THRESHOLD_TABLET": "tablet",
            "STRATEGY_THRESHOLD_DESKTOP": "desktop",
        }
        for env_key, attr_name in env_overrides.items():
            env_val = os.environ.get(env_key)
            if env_val is not None:
                try:
                    setattr(self, attr_name, int(env_val))
                except (ValueError, TypeError) as exc:
                    raise ConfigurationError(
                        f"Invalid value for env var {env_key}='{env_val}': {exc}"
                    ) from exc
        for attr_name in ("mobile", "tablet", "desktop"):
            if getattr(self, attr_name) <= 0:
                raise ConfigurationError(
                    f"Strategy threshold '{attr_name}' must be positive, "
                    f"got {getattr(self, attr_name)}"
                )

    def for_device(self, device_class: Any) -> int:
        """
        Get the client-side threshold for a device class.

        Args:
            device_class: ``DeviceClass`` member or its string value.

        Raises:
            ValueError: If the device class is unknown (fail-fast).
        """
        key = getattr(device_class, "value", device_class)
        thresholds: Dict[str, int] = {
            "mobile": self.mobile,
            "tablet": self.tablet,
            "desktop": self.desktop,
        }
        if key not in thresholds:
            raise ValueError(
                f"Unknown device class '{key}'. "
                f"Valid classes: {list(thresholds.keys())}"
            )
        return thresholds[key]


# ===========================================================================
# GLOBAL SETTINGS
# ===========================================================================


@dataclass
class Settings:
    """
    Global application settings.

    Loaded from ``config/settings.yaml`` when available, falling back to
    sensible defaults. Environment variables override YAML values for
    secrets and deployment-specific configuration.
    """

    # Content API
    api_base_url: str = "http://localhost:3000/api"
    api_token: Optional[str] = None
    api_timeout_seconds: float = 30.0

    # Scheduling
    timezone: str = "UTC"
    schedule_lead_time_minutes: int = 30
    schedule_strict_dst: bool = False

    # Data loading
    thresholds: StrategyThresholds = field(default_factory=StrategyThresholds)
    prefetch_debounce_ms: int = 300

    # Optimistic updates
    rollback_on_failure: bool = True

    # Persistence
    preferences_path: str = "data/preferences.json"

    # Logging
    log_level: str = "INFO"
    log_dir: str = "logs"

    @classmethod
    def from_yaml(cls, path: Optional[Path] = None) -> "Settings":
        """
        Load settings from a YAML file.

        If the file does not exist, returns an instance with all defaults.
        Environment variables override YAML values for specific keys.

        Args:
            path: Path to the YAML file. Defaults to
                ``<PROJECT_ROOT>/config/settings.yaml``.

        Returns:
            Populated Settings instance.

        Raises:
            ConfigurationError: If the YAML file exists but cannot be parsed.
        """
        path = path or PROJECT_ROOT / "config" / "settings.yaml"

        data: Dict[str, Any] = {}
        if path.exists():
            try:
                with open(path, "r", encoding="utf-8") as fh:
                    data = yaml.safe_load(fh) or {}
            except yaml.YAMLError as exc:
                raise ConfigurationError(
                    f"Failed to parse settings YAML at {path}: {exc}"
                ) from exc

        # -----------------------------------------------------------------
        # Build StrategyThresholds from nested YAML section
        # -----------------------------------------------------------------
        threshold_data = data.get("thresholds", {}) or {}
        thresholds = StrategyThresholds(**{
            k: v for k, v in threshold_data.items()
            if k in ("mobile", "tablet", "desktop")
        })

        api_data = data.get("api", {}) or {}
        scheduling_data = data.get("scheduling", {}) or {}

        settings = cls(
            api_base_url=api_data.get("base_url", "http://localhost:3000/api"),
            api_token=api_data.get("token"),
            api_timeout_seconds=float(api_data.get("timeout_seconds", 30.0)),
            timezone=scheduling_data.get("timezone", data.get("timezone", "UTC")),
            schedule_lead_time_minutes=scheduling_data.get("lead_time_minutes", 30),
            schedule_strict_dst=bool(scheduling_data.get("strict_dst", False)),
            thresholds=thresholds,
            prefetch_debounce_ms=data.get("prefetch_debounce_ms", 300),
            rollback_on_failure=data.get("rollback_on_failure", True),
            preferences_path=data.get("preferences_path", "data/preferences.json"),
            log_level=data.get("log_level", "INFO"),
            log_dir=data.get("log_dir", "logs"),
        )

        # -----------------------------------------------------------------
        # Environment variable overrides
        # -----------------------------------------------------------------
        settings.api_base_url = os.environ.get("CONTENT_API_BASE_URL", settings.api_base_url)
        settings.api_token = os.environ.get("CONTENT_API_TOKEN", settings.api_token)
        settings.timezone = os.environ.get("PIPELINE_TIMEZONE", settings.timezone)

        lead_env = os.environ.get("SCHEDULE_LEAD_TIME_MINUTES")
        if lead_env is not None:
            try:
                settings.schedule_lead_time_minutes = int(lead_env)
            except (ValueError, TypeError):
                logger.warning(
                    "Invalid value for SCHEDULE_LEAD_TIME_MINUTES='%s', using %d",
                    lead_env,
                    settings.schedule_lead_time_minutes,
                )

        strict_env = os.environ.get("SCHEDULE_STRICT_DST")
        if strict_env is not None:
            settings.schedule_strict_dst = strict_env.strip().lower() in ("1", "true", "yes", "on")

        return settings


# ===========================================================================
# SINGLETON SETTINGS ACCESSOR
# ===========================================================================

_settings_instance: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get the global Settings singleton.

    On first call, loads from ``config/settings.yaml`` (or defaults).
    Subsequent calls return the cached instance.
    """
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings.from_yaml()
    return _settings_instance


def reset_settings() -> None:
    """
    Reset the cached Settings singleton.

    Useful for testing or when configuration files have been updated
    at runtime.
    """
    global _settings_instance
    _settings_instance = None


# ===========================================================================
# ENVIRONMENT VARIABLE VALIDATION
# ===========================================================================

# Required environment variables for talking to a live content API
REQUIRED_ENV_VARS: List[str] = [
    "CONTENT_API_BASE_URL",
]

# Optional environment variables
OPTIONAL_ENV_VARS: List[str] = [
    "CONTENT_API_TOKEN",
    "PIPELINE_TIMEZONE",
    "SCHEDULE_LEAD_TIME_MINUTES",
    "SCHEDULE_STRICT_DST",
    "STRATEGY_THRESHOLD_MOBILE",
    "STRATEGY_THRESHOLD_TABLET",
    "STRATEGY_THRESHOLD_DESKTOP",
]


def validate_env(strict: bool = True) -> Dict[str, bool]:
    """
    Validate that required environment variables are set.

    Args:
        strict: If ``True``, raise ``ConfigurationError`` when any required
            variable is missing. If ``False``, return the status dict
            without raising.

    Returns:
        Dict mapping variable name to presence status (``True`` if set).

    Raises:
        ConfigurationError: If ``strict=True`` and required vars are missing.
    """
    status: Dict[str, bool] = {}
    missing: List[str] = []

    for var in REQUIRED_ENV_VARS:
        present = bool(os.environ.get(var))
        status[var] = present
        if not present:
            missing.append(var)

    for var in OPTIONAL_ENV_VARS:
        status[var] = bool(os.environ.get(var))

    if strict and missing:
        raise ConfigurationError(
            f"Missing required environment variables: {missing}. "
            f"Copy .env.example to .env and fill in the values."
        )

    return status


__all__ = [
    "PROJECT_ROOT",
    "StrategyThresholds",
    "Settings",
    "get_settings",
    "reset_settings",
    "REQUIRED_ENV_VARS",
    "OPTIONAL_ENV_VARS",
    "validate_env",
]
