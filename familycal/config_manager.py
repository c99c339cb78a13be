"""Environment-based configuration for familycal."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

# FAMILYCAL_* variable -> Config key
ENV_KEYS: dict[str, str] = {
    "FAMILYCAL_TICK_INTERVAL": "tick_interval_seconds",
    "FAMILYCAL_WEBHOOK_URL": "webhook_url",
    "FAMILYCAL_FLAG_STORE": "flag_store_path",
    "FAMILYCAL_RECORDS": "records_path",
    "FAMILYCAL_DEFAULT_TIMEZONE": "default_timezone",
    "FAMILYCAL_NOTIFICATIONS_ENABLED": "notifications_enabled",
    "FAMILYCAL_LOG_LEVEL": "log_level",
}


class ConfigManager:
    """Loads .env defaults and maps FAMILYCAL_* variables onto config keys."""

    def __init__(self, env_file_path: Path | None = None):
        """Initialize configuration manager.

        Args:
            env_file_path: Optional path to .env file (defaults to .env in current directory)
        """
        self.env_file_path = env_file_path or Path.cwd() / ".env"

    def load_env_file(self) -> list[str]:
        """Load .env file and set environment variables.

        Only sets variables that are not already in the environment.

        Returns:
            List of environment variable keys that were loaded from .env file
        """
        if not self.env_file_path.exists():
            logger.debug("No .env file found at %s", self.env_file_path)
            return []

        set_keys = []
        try:
            content = self.env_file_path.read_text(encoding="utf-8")
        except OSError:
            logger.debug("Failed to read .env file %s", self.env_file_path, exc_info=True)
            return []

        for raw_line in content.splitlines():
            line = raw_line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue

            key, val = line.split("=", 1)
            key = key.strip()
            val = val.strip().strip('"').strip("'")

            if key and key not in os.environ:
                os.environ[key] = val
                set_keys.append(key)

        if set_keys:
            logger.debug("Loaded .env defaults for keys: %s", ", ".join(set_keys))
        return set_keys

    def build_config_from_env(self) -> dict[str, Any]:
        """Build a config override mapping from FAMILYCAL_* environment variables.

        Values stay strings; Config.from_dict coerces them.
        """
        cfg: dict[str, Any] = {}
        for env_key, cfg_key in ENV_KEYS.items():
            value = os.environ.get(env_key)
            if value:
                cfg[cfg_key] = value
        return cfg

    def load_overrides(self) -> dict[str, Any]:
        """Load .env file, then return overrides from the environment."""
        self.load_env_file()
        return self.build_config_from_env()
