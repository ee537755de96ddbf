"""
Reminder Configuration

Loads reminder settings from config/reminders.yaml, with environment
variable overrides for deployment.
"""

import os
import logging
from dataclasses import dataclass, fields
from typing import Any, Dict, Optional

import yaml
from zoneinfo import ZoneInfo

from .errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = os.path.join(os.path.dirname(__file__), '..', 'config', 'reminders.yaml')

# Environment variable -> config field
ENV_OVERRIDES = {
    "REMINDER_INTERVAL_MS": "reminder_interval_ms",
    "MAX_REMINDERS": "max_reminders",
    "QUIET_HOURS_ENABLED": "quiet_hours_enabled",
    "QUIET_HOURS_START": "quiet_hours_start",
    "QUIET_HOURS_END": "quiet_hours_end",
    "REMINDER_TIME_ZONE": "time_zone",
    "SUBSCRIPTION_TTL": "subscription_ttl",
    "DELIVERY_MAX_RETRIES": "delivery_max_retries",
}


@dataclass
class ReminderConfig:
    """Configuration for reminder scheduling"""
    reminder_interval_ms: int = 5000
    max_reminders: int = 5

    # Quiet hours, decimal hours in time_zone (7.5 == 07:30)
    quiet_hours_enabled: bool = True
    quiet_hours_start: float = 22.0
    quiet_hours_end: float = 7.5
    time_zone: str = "Europe/Paris"

    # Seconds before acknowledgment subscriptions lapse on their own (None = never)
    subscription_ttl: Optional[float] = None

    # Retries for rate-limited direct message delivery
    delivery_max_retries: int = 2

    @property
    def reminder_interval(self) -> float:
        """Reminder interval in seconds"""
        return self.reminder_interval_ms / 1000.0

    def validate(self) -> "ReminderConfig":
        if self.reminder_interval_ms <= 0:
            raise ConfigError(f"reminder_interval_ms must be positive, got {self.reminder_interval_ms}")
        if self.max_reminders < 1:
            raise ConfigError(f"max_reminders must be at least 1, got {self.max_reminders}")
        for name in ("quiet_hours_start", "quiet_hours_end"):
            value = getattr(self, name)
            if not 0 <= value < 24:
                raise ConfigError(f"{name} must be within [0, 24), got {value}")
        if self.subscription_ttl is not None and self.subscription_ttl <= 0:
            raise ConfigError(f"subscription_ttl must be positive, got {self.subscription_ttl}")
        if self.delivery_max_retries < 0:
            raise ConfigError(f"delivery_max_retries cannot be negative, got {self.delivery_max_retries}")
        try:
            ZoneInfo(self.time_zone)
        except Exception as e:
            raise ConfigError(f"Unknown time zone {self.time_zone!r}: {e}")
        return self


def _coerce(name: str, raw: Any) -> Any:
    """Convert a raw YAML/env value to the type of the named field"""
    if raw is None:
        if name == "subscription_ttl":
            return None
        raise ValueError("value is required")
    if name == "quiet_hours_enabled":
        if isinstance(raw, bool):
            return raw
        return str(raw).strip().lower() in ("1", "true", "yes", "on")
    if name in ("reminder_interval_ms", "max_reminders", "delivery_max_retries"):
        return int(raw)
    if name == "subscription_ttl":
        if isinstance(raw, str) and raw.strip().lower() in ("", "none", "null"):
            return None
        return float(raw)
    if name in ("quiet_hours_start", "quiet_hours_end"):
        return float(raw)
    return str(raw)


def config_from_dict(values: Dict[str, Any]) -> ReminderConfig:
    """Build a config from a plain mapping, ignoring unknown keys"""
    known = {f.name for f in fields(ReminderConfig)}
    kwargs = {}
    for key, raw in (values or {}).items():
        if key not in known:
            logger.warning(f"Ignoring unknown reminder config key: {key}")
            continue
        try:
            kwargs[key] = _coerce(key, raw)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid value for {key}: {raw!r} ({e})")
    return ReminderConfig(**kwargs)


def load_config_from_yaml(config_path: Optional[str] = None, environ: Optional[Dict[str, str]] = None) -> ReminderConfig:
    """Load reminder configuration from YAML, then apply environment overrides"""
    config_path = config_path or DEFAULT_CONFIG_PATH
    environ = os.environ if environ is None else environ

    values: Dict[str, Any] = {}
    try:
        with open(config_path, 'r') as f:
            yaml_config = yaml.safe_load(f) or {}
        values.update(yaml_config.get('reminders', yaml_config))
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Failed to load reminder config from {config_path}: {e}. Using defaults.")

    for env_name, field_name in ENV_OVERRIDES.items():
        if env_name in environ:
            values[field_name] = environ[env_name]

    config = config_from_dict(values).validate()
    logger.info(
        f"Reminder config: interval={config.reminder_interval_ms}ms max={config.max_reminders} "
        f"quiet_hours={'on' if config.quiet_hours_enabled else 'off'} "
        f"({config.quiet_hours_start}-{config.quiet_hours_end} {config.time_zone})"
    )
    return config
