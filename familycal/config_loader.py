"""familycal.config_loader

Config loader for familycal.

- Prefers YAML (PyYAML), falls back to JSON for ``.json`` files.
- Exposes a typed dataclass `Config` and a `load_config()` helper that accepts
  an optional path override.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .core.timezone_utils import DEFAULT_TIMEZONE
from .domain.models import Person

logger = logging.getLogger(__name__)

_TRUTHY = ("1", "true", "yes", "on")


@dataclass
class Config:
    """Typed configuration for familycal.

    Fields:
        tick_interval_seconds: notification tick interval (10..600)
        flag_ttl_hours: age after which dedup flags are purged (>= 1)
        max_occurrences: per-record expansion bound (1..1000)
        notifications_enabled: master switch for the reminder tick
        flag_store_path: JSON file for dedup flags; None keeps them in memory
        records_path: YAML/JSON records file seeding the in-memory storage
        webhook_url: endpoint for WebhookNotificationTransport
        webhook_timeout_seconds: per-request webhook timeout
        default_timezone: IANA zone used for rendering and date-only comparisons
        person_names: display-name overrides keyed by person tag
        log_level: logging level name
    """

    tick_interval_seconds: int = 60
    flag_ttl_hours: int = 24
    max_occurrences: int = 100
    notifications_enabled: bool = True
    flag_store_path: str | None = None
    records_path: str | None = None
    webhook_url: str | None = None
    webhook_timeout_seconds: float = 10.0
    default_timezone: str = DEFAULT_TIMEZONE
    person_names: dict[str, str] = field(default_factory=dict)
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> Config:
        """Create Config from a plain mapping, applying defaults and validation.

        Numeric values are coerced to int and clamped into their allowed
        ranges, logging a warning whenever a coercion happens.
        """
        if data is None:
            data = {}

        def _coerce_int(key: str, default: int, low: int, high: int | None = None) -> int:
            raw = data.get(key, default)
            try:
                value = int(raw)
            except (TypeError, ValueError):
                logger.warning("Config %s=%r is not an int; using default %d", key, raw, default)
                return default
            if value < low:
                logger.warning("%s %d below minimum; coercing to %d", key, value, low)
                return low
            if high is not None and value > high:
                logger.warning("%s %d above maximum; coercing to %d", key, value, high)
                return high
            return value

        def _optional_str(key: str) -> str | None:
            value = data.get(key)
            return str(value) if value not in (None, "") else None

        enabled_raw = data.get("notifications_enabled", True)
        if isinstance(enabled_raw, str):
            enabled = enabled_raw.strip().lower() in _TRUTHY
        else:
            enabled = bool(enabled_raw)

        try:
            webhook_timeout = float(data.get("webhook_timeout_seconds", 10.0))
        except (TypeError, ValueError):
            logger.warning("Config webhook_timeout_seconds is not a number; using 10.0")
            webhook_timeout = 10.0

        names_raw = data.get("person_names") or {}
        person_names: dict[str, str] = {}
        if isinstance(names_raw, dict):
            known = {p.value for p in Person}
            for key, value in names_raw.items():
                if str(key) not in known:
                    logger.warning("Ignoring display name for unknown person %r", key)
                    continue
                person_names[str(key)] = str(value)
        else:
            logger.warning("Config `person_names` is not a mapping; ignoring")

        log_level = data.get("log_level", "INFO")
        log_level = str(log_level).upper() if log_level is not None else "INFO"

        return cls(
            tick_interval_seconds=_coerce_int("tick_interval_seconds", 60, 10, 600),
            flag_ttl_hours=_coerce_int("flag_ttl_hours", 24, 1),
            max_occurrences=_coerce_int("max_occurrences", 100, 1, 1000),
            notifications_enabled=enabled,
            flag_store_path=_optional_str("flag_store_path"),
            records_path=_optional_str("records_path"),
            webhook_url=_optional_str("webhook_url"),
            webhook_timeout_seconds=webhook_timeout,
            default_timezone=str(data.get("default_timezone") or DEFAULT_TIMEZONE),
            person_names=person_names,
            log_level=log_level,
        )


def _load_yaml_or_json(path: Path) -> Any:
    """Load a mapping from a YAML or JSON file."""
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() == ".json":
        return json.loads(text)

    import yaml

    loaded = yaml.safe_load(text)
    # safe_load returns None for empty files
    if loaded is None:
        return {}
    return loaded


def load_config(path: str | None = None, overrides: dict[str, Any] | None = None) -> Config:
    """Load configuration from a YAML/JSON file and return a Config instance.

    Args:
        path: Optional path to the config file. Defaults to ./familycal.yaml.
        overrides: Values applied over the file contents (environment, CLI flags)

    Behavior:
    - If file is missing: defaults plus overrides.
    - If file exists but top-level is not a mapping: raises ValueError.
    """
    p = Path(path) if path else Path.cwd() / "familycal.yaml"
    logger.debug("Attempting to load config from %s", p)

    raw: Any = {}
    if p.exists():
        raw = _load_yaml_or_json(p)
        if not isinstance(raw, dict):
            logger.warning("Config file %s parsed but top-level is not a mapping: %r", p, raw)
            raise ValueError("Config file must contain a mapping at top level")  # noqa: TRY004
        logger.info("Loaded configuration from %s", p)
    else:
        logger.info("Config file %s not found; using defaults", p)

    cfg = Config.from_dict({**raw, **(overrides or {})})
    logger.debug("Configuration values: %s", cfg)
    return cfg
