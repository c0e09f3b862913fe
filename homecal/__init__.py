"""homecal - calendar occurrence materialization engine.

Expands stored household event definitions (single or recurring, with
exception and addition dates) into concrete occurrences for a month, groups
them by local day and caches the result under invalidation tags.
"""

__version__ = "0.1.0"

import logging
import os
import sys
from typing import Optional

from colorlog import ColoredFormatter

from homecal.calendar.models import (
    DaySummary,
    EventDefinition,
    MonthAggregate,
    Occurrence,
    OccurrenceOrigin,
    QueryWindow,
)
from homecal.config_loader import EngineConfig, load_config
from homecal.domain.calendar_service import CalendarService, EventSource
from homecal.exceptions import (
    CalendarEngineError,
    InvalidInstantError,
    InvalidTimezoneError,
    RuleParseError,
    WindowOrderError,
)

__all__ = [
    "CalendarEngineError",
    "CalendarService",
    "DaySummary",
    "EngineConfig",
    "EventDefinition",
    "EventSource",
    "InvalidInstantError",
    "InvalidTimezoneError",
    "MonthAggregate",
    "Occurrence",
    "OccurrenceOrigin",
    "QueryWindow",
    "RuleParseError",
    "WindowOrderError",
    "__version__",
    "init_logging",
    "load_config",
]

# HH:MM:SS  LEVEL   logger.name: message, with only the level colorized
LOG_FORMAT = "%(asctime)s %(log_color)s%(levelname)-7s%(reset)s %(name)s: %(message)s"
LOG_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "bold_red",
}


def init_logging(level_name: Optional[str] = None) -> None:
    """Initialize root logging to stream to the console.

    Installs a colorized stderr handler when the root logger has none, so
    embedding applications that configure logging themselves are left alone.
    HOMECAL_DEBUG (truthy: "1", "true", "yes", "on") forces DEBUG verbosity.
    """
    debug_env = os.environ.get("HOMECAL_DEBUG", "")
    if debug_env.strip().lower() in ("1", "true", "yes", "on"):
        level_name = "DEBUG"

    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler(stream=sys.stderr)
        handler.setFormatter(ColoredFormatter(LOG_FORMAT, datefmt="%H:%M:%S", log_colors=LOG_COLORS))
        root.addHandler(handler)

    level = logging.INFO
    if isinstance(level_name, str):
        level = getattr(logging, level_name.upper(), logging.INFO)
        if not isinstance(level, int):
            level = logging.INFO
    root.setLevel(level)
    logging.getLogger(__name__).debug("Logging initialized at level %s", logging.getLevelName(level))
