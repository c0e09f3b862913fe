"""Calendar service: cache lookup, fetch, expand, aggregate.

The service owns no event storage. Rows come from an ``EventSource``
supplied by the caller; everything downstream of the fetch is pure.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any, Optional, Protocol, Union

from homecal.cache.calendar_cache import CalendarCache
from homecal.cache.tagged_cache import TaggedCache
from homecal.calendar.datetime_utils import (
    format_month_key,
    get_month_range,
    months_spanned,
    parse_date_param,
    parse_instant,
    parse_month_param,
    to_day_key,
)
from homecal.calendar.models import EventDefinition, MonthAggregate, Occurrence, QueryWindow
from homecal.config_loader import EngineConfig
from homecal.core.timezone_utils import resolve_zone, zone_name

from .month_aggregator import aggregate
from .pipeline import ExpansionReport, expand_definitions

logger = logging.getLogger(__name__)


class EventSource(Protocol):
    """Data-access collaborator returning candidate event definitions.

    Implementations may return any superset of the events overlapping the
    window (e.g. every recurring event plus singles near the window); the
    engine filters precisely.
    """

    def load_events(
        self, window: QueryWindow
    ) -> Iterable[Union[EventDefinition, Mapping[str, Any]]]: ...


class CalendarService:
    """Month and day occurrence queries backed by a tagged cache.

    Example:
        service = CalendarService(source, config=load_config())
        month = service.get_month_data("2024-06", "Australia/Melbourne")
        month.summaries["2024-06-10"].event_count
    """

    def __init__(
        self,
        source: EventSource,
        cache: Optional[CalendarCache] = None,
        config: Optional[EngineConfig] = None,
    ):
        self.source = source
        self.config = config or EngineConfig()
        self.cache = cache or CalendarCache(
            TaggedCache(
                ttl_seconds=self.config.cache_ttl_seconds,
                max_entries=self.config.cache_max_entries,
            )
        )
        self.last_report: Optional[ExpansionReport] = None

    def _timezone(self, timezone: Optional[str]) -> str:
        """Canonical zone name for ``timezone``, defaulting from config."""
        return zone_name(
            resolve_zone(timezone or self.config.default_timezone, self.config.default_timezone)
        )

    def _expand(self, window: QueryWindow, fetch_window: QueryWindow) -> ExpansionReport:
        definitions = self.source.load_events(fetch_window)
        report = expand_definitions(
            definitions,
            window,
            buffer=self.config.window_buffer,
            default_timezone=self.config.default_timezone,
        )
        if report.skipped:
            logger.warning(
                "Skipped %d event definition(s) while expanding %s..%s: %s",
                len(report.skipped),
                window.start.isoformat(),
                window.end.isoformat(),
                sorted(report.skipped),
            )
        self.last_report = report
        return report

    def _compute_month(self, month_key: str, timezone: str) -> MonthAggregate:
        month_range = get_month_range(parse_month_param(month_key, timezone), timezone)
        window = month_range.window()
        report = self._expand(window, month_range.query_window())
        result = aggregate(
            report.occurrences,
            window,
            max_per_day=self.config.max_events_per_day,
            inline_limit=self.config.inline_display_limit,
        )
        logger.info(
            "Computed month %s (%s): %d occurrence(s) over %d day(s)",
            month_key,
            timezone,
            result.total_events,
            len(result.events_by_day),
        )
        return result

    def get_month_data(
        self, month_param: Optional[str] = None, timezone: Optional[str] = None
    ) -> MonthAggregate:
        """Month aggregate for ``month_param`` (``YYYY-MM``; current month when omitted)."""
        tz = self._timezone(timezone)
        month_key = format_month_key(parse_month_param(month_param, tz))
        return self.cache.get_or_compute(
            month_key, tz, lambda: self._compute_month(month_key, tz)
        )

    def get_day_events(
        self,
        day_key: Optional[str] = None,
        month_param: Optional[str] = None,
        timezone: Optional[str] = None,
    ) -> list[Occurrence]:
        """Stored occurrences of one local day (today when ``day_key`` is omitted).

        ``month_param`` defaults to the month containing the day.
        """
        tz = self._timezone(timezone)
        day = parse_date_param(day_key, tz)
        month_key = format_month_key(parse_month_param(month_param, tz) if month_param else day)
        return self.cache.get_or_compute_day(
            month_key, tz, to_day_key(day), lambda: self._compute_month(month_key, tz)
        )

    def expand_window(self, window: QueryWindow) -> list[Occurrence]:
        """Uncached flat occurrence list for ``window``, sorted by start then id."""
        report = self._expand(window, window.buffered(self.config.window_buffer))
        return sorted(
            report.occurrences,
            key=lambda occurrence: (occurrence.starts_at.timestamp(), occurrence.instance_id),
        )

    def invalidate_month(self, month_key: str) -> int:
        return self.cache.invalidate_month(month_key)

    def invalidate_day(self, day_key: str, timezone: Optional[str] = None) -> int:
        return self.cache.invalidate_day(self._timezone(timezone), day_key)

    def invalidate_event(
        self,
        definition: Union[EventDefinition, Mapping[str, Any]],
        timezone: Optional[str] = None,
        until: Optional[Any] = None,
    ) -> int:
        """Invalidate cache entries touched by a changed event.

        Args:
            definition: The changed event (definition or row)
            timezone: Query zone whose day tags to invalidate
            until: Optional end of the affected span; every month from the
                event start through ``until`` is invalidated as well
        """
        if not isinstance(definition, EventDefinition):
            definition = EventDefinition.from_row(definition)
        tz = self._timezone(timezone)

        months: list[str] = []
        if until is not None:
            zone = resolve_zone(definition.timezone, self.config.default_timezone)
            months = months_spanned(
                parse_instant(definition.start_at, zone), parse_instant(until, zone), tz
            )
        return self.cache.invalidate_event(definition, tz, months=months)
