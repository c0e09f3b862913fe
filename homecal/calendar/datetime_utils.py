"""Date and time helpers for calendar queries.

Instant parsing for stored event values, plus the month/day arithmetic used
to derive query windows, cache keys and calendar-grid layouts.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta, tzinfo
from typing import Any, Optional

from dateutil import parser as date_parser
from dateutil.relativedelta import relativedelta

from homecal.core.timezone_utils import DEFAULT_CALENDAR_TIMEZONE, now_utc, resolve_zone
from homecal.exceptions import InvalidInstantError

from .models import QueryWindow

logger = logging.getLogger(__name__)

MONTH_KEY_FORMAT = "%Y-%m"
DAY_KEY_FORMAT = "%Y-%m-%d"

# Monday
CALENDAR_FIRST_DAY_OF_WEEK = 0
CALENDAR_GRID_CELLS = 42

WEEKDAY_LABELS = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]


def ensure_timezone_aware(dt: datetime, zone: Optional[tzinfo] = None) -> datetime:
    """Ensure datetime is timezone-aware.

    Args:
        dt: Datetime to make timezone-aware
        zone: Zone attached to naive values (UTC when omitted)

    Returns:
        Timezone-aware datetime
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=zone or UTC)
    return dt


def parse_instant(value: Any, zone: tzinfo) -> datetime:
    """Parse a stored instant and express it in ``zone``.

    Handles:
    - aware datetimes (converted into ``zone``)
    - naive datetimes (interpreted as local time in ``zone``)
    - ISO 8601 strings with or without offset: 2024-01-08T09:00:00+11:00
    - compact iCalendar strings: 20240108T090000Z, 20240108
    - date objects (local midnight in ``zone``)

    Raises:
        InvalidInstantError: If the value cannot be read as an instant
    """
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime.combine(value, time.min)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            raise InvalidInstantError("Empty instant value", value=value)
        try:
            dt = date_parser.isoparse(text)
        except (ValueError, OverflowError) as e:
            raise InvalidInstantError(f"Unable to parse instant: {value!r}", value=value) from e
    else:
        raise InvalidInstantError(
            f"Unsupported instant type {type(value).__name__}", value=value
        )

    if dt.tzinfo is None:
        return dt.replace(tzinfo=zone)
    return dt.astimezone(zone)


def to_day_key(dt: datetime | date) -> str:
    """Format a local date as ``YYYY-MM-DD``."""
    return dt.strftime(DAY_KEY_FORMAT)


def format_month_key(dt: datetime | date) -> str:
    """Format a local date as ``YYYY-MM``."""
    return dt.strftime(MONTH_KEY_FORMAT)


def start_of_day(dt: datetime) -> datetime:
    return dt.replace(hour=0, minute=0, second=0, microsecond=0)


def end_of_day(dt: datetime) -> datetime:
    return dt.replace(hour=23, minute=59, second=59, microsecond=999999)


def start_of_month(dt: datetime) -> datetime:
    return start_of_day(dt.replace(day=1))


def parse_month_param(value: Optional[str], timezone: str = DEFAULT_CALENDAR_TIMEZONE) -> datetime:
    """Parse a ``YYYY-MM`` month parameter into local month start.

    Missing or malformed values resolve to the current month in ``timezone``.
    """
    zone = resolve_zone(timezone)
    if value:
        try:
            parsed = datetime.strptime(value.strip(), MONTH_KEY_FORMAT)
            return parsed.replace(tzinfo=zone)
        except ValueError:
            logger.debug("Invalid month parameter %r; using current month", value)

    return start_of_month(now_utc().astimezone(zone))


def parse_date_param(value: Optional[str], timezone: str = DEFAULT_CALENDAR_TIMEZONE) -> datetime:
    """Parse a ``YYYY-MM-DD`` parameter into local start of day.

    Missing or malformed values resolve to today in ``timezone``.
    """
    zone = resolve_zone(timezone)
    if value:
        try:
            parsed = date_parser.isoparse(value.strip())
            return start_of_day(ensure_timezone_aware(parsed, zone).astimezone(zone))
        except (ValueError, OverflowError):
            logger.debug("Invalid date parameter %r; using today", value)

    return start_of_day(now_utc().astimezone(zone))


@dataclass(frozen=True)
class MonthRange:
    """Bounds of a local calendar month.

    ``query_start``/``query_end`` extend the month by one day on each side for
    fetching candidate rows.
    """

    month_start: datetime
    month_end: datetime
    query_start: datetime
    query_end: datetime

    @property
    def month_key(self) -> str:
        return format_month_key(self.month_start)

    def window(self) -> QueryWindow:
        return QueryWindow(start=self.month_start, end=self.month_end)

    def query_window(self) -> QueryWindow:
        return QueryWindow(start=self.query_start, end=self.query_end)


def get_month_range(reference: datetime, timezone: str = DEFAULT_CALENDAR_TIMEZONE) -> MonthRange:
    """Compute the local month containing ``reference``."""
    zone = resolve_zone(timezone)
    local = ensure_timezone_aware(reference, zone).astimezone(zone)
    month_start = start_of_month(local)
    month_end = end_of_day(month_start + relativedelta(months=1, days=-1))
    return MonthRange(
        month_start=month_start,
        month_end=month_end,
        query_start=month_start - timedelta(days=1),
        query_end=month_end + timedelta(days=1),
    )


def month_window(month_key: str, timezone: str = DEFAULT_CALENDAR_TIMEZONE) -> QueryWindow:
    """Return the ``[first 00:00, last 23:59:59.999999]`` local window of a month."""
    return get_month_range(parse_month_param(month_key, timezone), timezone).window()


def shift_month(reference: datetime, offset: int) -> datetime:
    return start_of_month(reference + relativedelta(months=offset))


def shift_day(reference: datetime, offset: int) -> datetime:
    return start_of_day(reference + timedelta(days=offset))


def months_spanned(start: datetime, end: datetime, timezone: str = DEFAULT_CALENDAR_TIMEZONE) -> list[str]:
    """List the month keys touched by ``[start, end]`` in ``timezone``."""
    zone = resolve_zone(timezone)
    current = start_of_month(start.astimezone(zone))
    last = start_of_month(end.astimezone(zone))
    keys = []
    while current <= last:
        keys.append(format_month_key(current))
        current = shift_month(current, 1)
    return keys


@dataclass(frozen=True)
class CalendarCell:
    """One cell of the month grid."""

    date: date
    is_current_month: bool


def build_calendar_matrix(reference: datetime, timezone: str = DEFAULT_CALENDAR_TIMEZONE) -> list[CalendarCell]:
    """Build the 6-week grid of cells covering the month of ``reference``.

    The grid starts on the configured first day of week on or before the
    first of the month.
    """
    zone = resolve_zone(timezone)
    month_start = start_of_month(ensure_timezone_aware(reference, zone).astimezone(zone)).date()
    offset = (month_start.weekday() - CALENDAR_FIRST_DAY_OF_WEEK) % 7
    grid_start = month_start - timedelta(days=offset)

    cells = []
    for index in range(CALENDAR_GRID_CELLS):
        day = grid_start + timedelta(days=index)
        cells.append(
            CalendarCell(
                date=day,
                is_current_month=(day.year, day.month) == (month_start.year, month_start.month),
            )
        )
    return cells


def get_weekday_labels() -> list[str]:
    """Weekday column headers starting at the configured first day of week."""
    return WEEKDAY_LABELS[CALENDAR_FIRST_DAY_OF_WEEK:] + WEEKDAY_LABELS[:CALENDAR_FIRST_DAY_OF_WEEK]


def is_today(value: datetime | date, timezone: str = DEFAULT_CALENDAR_TIMEZONE) -> bool:
    zone = resolve_zone(timezone)
    today = now_utc().astimezone(zone).date()
    if isinstance(value, datetime):
        value = ensure_timezone_aware(value, zone).astimezone(zone).date()
    return value == today
