"""
Central logging configuration for homecal.

Keeps engine diagnostics (skipped events, dropped dates, cache activity)
visible while suppressing verbose debug output from third-party libraries.
"""

import contextvars
import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Optional

_request_id: contextvars.ContextVar[str] = contextvars.ContextVar(
    "homecal_request_id", default="no-request-id"
)

ENGINE_LOGGERS = [
    "homecal",
    "homecal.calendar.rrule_parser",
    "homecal.calendar.rrule_expander",
    "homecal.domain.pipeline",
    "homecal.domain.calendar_service",
    "homecal.cache",
]

SUPPRESSED_LOGGERS = [
    "dateutil",
]


def get_request_id() -> str:
    """Return the request id bound to the current context."""
    return _request_id.get()


@contextmanager
def bind_request_id(request_id: str) -> Iterator[None]:
    """Bind a caller-supplied request id to log records emitted in this context."""
    token = _request_id.set(request_id)
    try:
        yield
    finally:
        _request_id.reset(token)


class CorrelationIdFilter(logging.Filter):
    """Add the caller's request id to all log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id()
        return True


def configure_logging(debug_mode: bool = False, force_debug: Optional[bool] = None) -> None:
    """
    Configure logging levels for homecal.

    Args:
        debug_mode: Whether to enable debug logging for homecal modules
        force_debug: Override debug mode setting (None to use env var detection)

    Environment Variables:
        HOMECAL_DEBUG: Set to '1', 'true', 'yes' to force debug logging
        HOMECAL_LOG_LEVEL: Override root log level (DEBUG, INFO, WARNING, ERROR)
    """
    env_debug = os.getenv("HOMECAL_DEBUG", "").lower() in ("1", "true", "yes")
    env_log_level = os.getenv("HOMECAL_LOG_LEVEL", "").upper()

    if force_debug is not None:
        final_debug = force_debug
    elif env_debug:
        final_debug = True
    else:
        final_debug = debug_mode

    root_level = logging.DEBUG if final_debug else logging.INFO
    if env_log_level in ("DEBUG", "INFO", "WARNING", "ERROR"):
        root_level = getattr(logging, env_log_level)

    root_logger = logging.getLogger()
    root_logger.setLevel(root_level)

    correlation_filter = CorrelationIdFilter()

    # Preserve handlers installed by init_logging
    if not root_logger.handlers:
        handler = logging.StreamHandler()
        handler.setLevel(root_level)
        formatter = logging.Formatter(
            "[%(asctime)s] [%(request_id)s] %(levelname)s - %(name)s - %(message)s"
        )
        handler.setFormatter(formatter)
        handler.addFilter(correlation_filter)
        root_logger.addHandler(handler)
    else:
        for existing_handler in root_logger.handlers:
            if not any(isinstance(f, CorrelationIdFilter) for f in existing_handler.filters):
                existing_handler.addFilter(correlation_filter)

    logger_config: dict[str, int] = {name: logging.WARNING for name in SUPPRESSED_LOGGERS}

    engine_level = logging.DEBUG if final_debug else logging.INFO
    for module in ENGINE_LOGGERS:
        logger_config[module] = engine_level

    for logger_name, level in logger_config.items():
        logging.getLogger(logger_name).setLevel(level)

    if final_debug:
        root_logger.info("Debug logging enabled for homecal modules.")
    else:
        root_logger.info("Production logging configuration applied.")


def get_logging_status() -> dict[str, str]:
    """
    Get current logging configuration status.

    Returns:
        Dictionary mapping logger names to their current levels
    """
    status = {"root": logging.getLevelName(logging.getLogger().level)}

    for logger_name in ["homecal", *SUPPRESSED_LOGGERS]:
        status[logger_name] = logging.getLevelName(logging.getLogger(logger_name).level)

    return status
