"""Environment-driven configuration for homecal hosts."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

from homecal.core.timezone_utils import DEFAULT_CALENDAR_TIMEZONE
from homecal.exceptions import InvalidTimezoneError

logger = logging.getLogger(__name__)

# Integer settings recognised from the environment: env var -> config key
_INT_ENV_KEYS: dict[str, str] = {
    "HOMECAL_MAX_EVENTS_PER_DAY": "max_events_per_day",
    "HOMECAL_INLINE_DISPLAY_LIMIT": "inline_display_limit",
    "HOMECAL_WINDOW_BUFFER_DAYS": "window_buffer_days",
    "HOMECAL_CACHE_MAX_ENTRIES": "cache_max_entries",
}


class ConfigManager:
    """Manages engine configuration from environment variables and .env files."""

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
            logger.debug(
                "Failed to read .env file for defaults (continuing): %s",
                str(self.env_file_path),
                exc_info=True,
            )
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
        """Build configuration dictionary from environment variables.

        Recognizes:
        - HOMECAL_DEFAULT_TIMEZONE -> 'default_timezone'
        - HOMECAL_MAX_EVENTS_PER_DAY -> 'max_events_per_day' (int)
        - HOMECAL_INLINE_DISPLAY_LIMIT -> 'inline_display_limit' (int)
        - HOMECAL_WINDOW_BUFFER_DAYS -> 'window_buffer_days' (int)
        - HOMECAL_CACHE_TTL_SECONDS -> 'cache_ttl_seconds' (int, 0 disables expiry)
        - HOMECAL_CACHE_MAX_ENTRIES -> 'cache_max_entries' (int)
        - HOMECAL_LOG_LEVEL -> 'log_level'

        Returns:
            Configuration dictionary compatible with EngineConfig.from_dict
        """
        cfg: dict[str, Any] = {}

        default_tz = os.environ.get("HOMECAL_DEFAULT_TIMEZONE")
        if default_tz:
            cfg["default_timezone"] = default_tz

        for env_key, cfg_key in _INT_ENV_KEYS.items():
            raw = os.environ.get(env_key)
            if not raw:
                continue
            try:
                cfg[cfg_key] = int(raw)
            except ValueError:
                logger.warning("Invalid %s=%r; ignoring", env_key, raw)

        ttl = os.environ.get("HOMECAL_CACHE_TTL_SECONDS")
        if ttl:
            try:
                ttl_int = int(ttl)
                cfg["cache_ttl_seconds"] = ttl_int if ttl_int > 0 else None
            except ValueError:
                logger.warning("Invalid HOMECAL_CACHE_TTL_SECONDS=%r; ignoring", ttl)

        log_level = os.environ.get("HOMECAL_LOG_LEVEL")
        if log_level:
            cfg["log_level"] = log_level

        return cfg

    def load_full_config(self) -> dict[str, Any]:
        """Load .env file and build configuration from environment.

        Returns:
            Configuration dictionary
        """
        self.load_env_file()
        return self.build_config_from_env()


def get_default_timezone(fallback: str = DEFAULT_CALENDAR_TIMEZONE) -> str:
    """Get default calendar timezone from environment with validation.

    Args:
        fallback: Fallback timezone if not configured or invalid

    Returns:
        Valid IANA timezone string
    """
    from homecal.core.timezone_utils import resolve_zone_strict

    timezone = os.environ.get("HOMECAL_DEFAULT_TIMEZONE", fallback)

    try:
        resolve_zone_strict(timezone)
        return timezone
    except InvalidTimezoneError:
        logger.warning("Invalid timezone %r, falling back to %r", timezone, fallback)
        return fallback
