"""Timezone resolution and clock utilities for homecal."""

from __future__ import annotations

import datetime
import logging
import os
import zoneinfo
from functools import lru_cache

from homecal.exceptions import InvalidTimezoneError

logger = logging.getLogger(__name__)

# Fallback zone for events and queries that do not name one
DEFAULT_CALENDAR_TIMEZONE = "Australia/Melbourne"

TEST_TIME_ENV = "HOMECAL_TEST_TIME"


class TimeProvider:
    """Provides current time with test time override support."""

    def __init__(self, env_var: str = TEST_TIME_ENV):
        """Initialize time provider.

        Args:
            env_var: Environment variable consulted for a frozen test time
        """
        self.env_var = env_var

    def now_utc(self) -> datetime.datetime:
        """Return current UTC time with tzinfo.

        Can be overridden for testing via the HOMECAL_TEST_TIME environment
        variable. Format: ISO 8601 datetime string
        (e.g. "2024-01-15T09:00:00+11:00"). A naive value is taken as UTC.

        Returns:
            Current time in UTC with timezone info
        """
        test_time = os.environ.get(self.env_var)
        if test_time:
            try:
                from dateutil import parser as date_parser

                dt = date_parser.isoparse(test_time)
                if dt.tzinfo is not None:
                    return dt.astimezone(datetime.timezone.utc)
                return dt.replace(tzinfo=datetime.timezone.utc)
            except (ValueError, OverflowError) as e:
                logger.warning("Failed to parse %s=%r: %s", self.env_var, test_time, e)

        return datetime.datetime.now(datetime.timezone.utc)


_time_provider = TimeProvider()


def now_utc() -> datetime.datetime:
    """Get current UTC time (convenience function).

    Returns:
        Current time in UTC
    """
    return _time_provider.now_utc()


@lru_cache(maxsize=64)
def resolve_zone_strict(tz_name: str) -> zoneinfo.ZoneInfo:
    """Resolve an IANA timezone name.

    Args:
        tz_name: IANA timezone identifier (e.g. "Australia/Melbourne")

    Returns:
        ZoneInfo for the identifier

    Raises:
        InvalidTimezoneError: If the identifier is empty or unknown
    """
    if not tz_name or not tz_name.strip():
        raise InvalidTimezoneError("Empty timezone identifier")
    try:
        return zoneinfo.ZoneInfo(tz_name.strip())
    except (zoneinfo.ZoneInfoNotFoundError, ValueError) as e:
        raise InvalidTimezoneError(f"Unknown timezone: {tz_name!r}") from e


def resolve_zone(
    tz_name: str | None, fallback: str = DEFAULT_CALENDAR_TIMEZONE
) -> zoneinfo.ZoneInfo:
    """Resolve a timezone name, falling back to the calendar default.

    Args:
        tz_name: Optional IANA timezone identifier.
                 If None, empty or invalid, falls back to ``fallback``

    Returns:
        ZoneInfo object

    Examples:
        >>> resolve_zone("America/New_York")
        >>> resolve_zone(None)  # Australia/Melbourne
        >>> resolve_zone("Invalid/Zone")  # Australia/Melbourne with warning
    """
    if not tz_name:
        return resolve_zone_strict(fallback)

    try:
        return resolve_zone_strict(tz_name)
    except InvalidTimezoneError:
        logger.warning("Invalid timezone %r, falling back to %s", tz_name, fallback)
        return resolve_zone_strict(fallback)


def zone_name(zone: datetime.tzinfo) -> str:
    """Return the IANA key of a zone, or its string form for other tzinfos."""
    return getattr(zone, "key", None) or str(zone)


def convert_to_timezone(dt: datetime.datetime, tz_str: str) -> datetime.datetime:
    """Convert a datetime to a specific timezone.

    Args:
        dt: Datetime to convert (should be timezone-aware)
        tz_str: IANA timezone identifier

    Returns:
        Datetime in the specified timezone

    Raises:
        InvalidTimezoneError: If timezone identifier is invalid
    """
    return dt.astimezone(resolve_zone_strict(tz_str))


def elapsed_between(start: datetime.datetime, end: datetime.datetime) -> datetime.timedelta:
    """Return the real time elapsed from ``start`` to ``end``.

    Aware datetimes sharing a ZoneInfo subtract on the wall clock, so both
    sides go through UTC first.
    """
    return end.astimezone(datetime.UTC) - start.astimezone(datetime.UTC)


def add_elapsed(start: datetime.datetime, delta: datetime.timedelta) -> datetime.datetime:
    """Add absolute time to ``start`` and return the result in ``start``'s zone."""
    return (start.astimezone(datetime.UTC) + delta).astimezone(start.tzinfo)
