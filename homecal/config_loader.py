"""homecal.config_loader

Config loader for the homecal engine.

- Reads YAML (PyYAML) by default and JSON for ``.json`` files.
- Exposes a typed dataclass `EngineConfig` and a `load_config()` helper that
  accepts an optional path override and layers environment overrides on top.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Any, Optional

import yaml

from homecal.core.timezone_utils import DEFAULT_CALENDAR_TIMEZONE, resolve_zone_strict
from homecal.exceptions import InvalidTimezoneError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EngineConfig:
    """Typed configuration for the occurrence engine.

    Fields:
        default_timezone: IANA zone used when an event or query names none
        max_events_per_day: storage cap per day bucket (1..1000)
        inline_display_limit: day summaries report has_more above this count
        window_buffer_days: lookback/lookahead applied when enumerating rules
        cache_ttl_seconds: cache entry lifetime, None for no expiry
        cache_max_entries: cache size bound (FIFO eviction)
        log_level: logging level name
    """

    default_timezone: str = DEFAULT_CALENDAR_TIMEZONE
    max_events_per_day: int = 99
    inline_display_limit: int = 3
    window_buffer_days: int = 1
    cache_ttl_seconds: Optional[int] = 300
    cache_max_entries: int = 1000
    log_level: str = "INFO"

    @property
    def window_buffer(self) -> timedelta:
        """Lookback/lookahead buffer as a timedelta."""
        return timedelta(days=self.window_buffer_days)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> EngineConfig:
        """Create EngineConfig from a plain mapping, applying defaults and validation.

        Numeric-like values are coerced to int, out-of-range values are
        clamped, and an unknown timezone falls back to the default, each with a
        logged warning.
        """
        if data is None:
            data = {}

        def _coerce_int(key: str, default: int, minimum: int, maximum: int) -> int:
            raw = data.get(key, default)
            try:
                value = int(raw)
            except (TypeError, ValueError):
                logger.warning("Config %s=%r is not an int; using default %d", key, raw, default)
                return default
            if value < minimum:
                logger.warning("%s %d below minimum; coercing to %d", key, value, minimum)
                return minimum
            if value > maximum:
                logger.warning("%s %d above maximum; coercing to %d", key, value, maximum)
                return maximum
            return value

        timezone = str(data.get("default_timezone") or DEFAULT_CALENDAR_TIMEZONE)
        try:
            resolve_zone_strict(timezone)
        except InvalidTimezoneError:
            logger.warning(
                "Config default_timezone %r invalid; using %s", timezone, DEFAULT_CALENDAR_TIMEZONE
            )
            timezone = DEFAULT_CALENDAR_TIMEZONE

        ttl_raw = data.get("cache_ttl_seconds", 300)
        cache_ttl: Optional[int]
        if ttl_raw is None:
            cache_ttl = None
        else:
            try:
                cache_ttl = int(ttl_raw)
            except (TypeError, ValueError):
                logger.warning("Config cache_ttl_seconds=%r is not an int; using 300", ttl_raw)
                cache_ttl = 300
            if cache_ttl <= 0:
                cache_ttl = None

        log_level = data.get("log_level", "INFO")
        log_level = str(log_level).upper() if log_level is not None else "INFO"

        return cls(
            default_timezone=timezone,
            max_events_per_day=_coerce_int("max_events_per_day", 99, 1, 1000),
            inline_display_limit=_coerce_int("inline_display_limit", 3, 0, 1000),
            window_buffer_days=_coerce_int("window_buffer_days", 1, 0, 7),
            cache_ttl_seconds=cache_ttl,
            cache_max_entries=_coerce_int("cache_max_entries", 1000, 1, 100_000),
            log_level=log_level,
        )


def _load_mapping(path: Path) -> Any:
    """Load a mapping from a YAML or JSON file.

    JSON is used for ``.json`` files; everything else goes through
    ``yaml.safe_load`` (which also accepts JSON documents).
    """
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() == ".json":
        return json.loads(text)
    loaded = yaml.safe_load(text)
    # safe_load returns None for empty files
    if loaded is None:
        return {}
    return loaded


def load_config(path: str | None = None, *, apply_env: bool = True) -> EngineConfig:
    """Load configuration from a YAML/JSON file and return an EngineConfig.

    Args:
        path: Optional path to the config file. Defaults to ./homecal.yaml
        apply_env: Layer HOMECAL_* environment overrides on top of the file

    Returns:
        EngineConfig instance with values from file, environment, or defaults.

    Behavior:
    - If file is missing: defaults (plus environment overrides).
    - If file exists but top-level is not a mapping: raises ValueError.
    """
    from homecal.core.config_manager import ConfigManager

    p = Path(path) if path else Path.cwd() / "homecal.yaml"
    logger.debug("Attempting to load config from %s", p)

    raw: dict[str, Any] = {}
    if p.exists():
        loaded = _load_mapping(p)
        if not isinstance(loaded, dict):
            logger.warning("Config file %s parsed but top-level is not a mapping: %r", p, loaded)
            raise ValueError("Config file must contain a mapping at top level")  # noqa: TRY004
        raw.update(loaded)
        logger.info("Loaded configuration from %s", p)
    else:
        logger.info("Config file %s not found; using defaults", p)

    if apply_env:
        raw.update(ConfigManager().build_config_from_env())

    cfg = EngineConfig.from_dict(raw)
    logger.debug("Configuration values: %s", cfg)
    return cfg
