"""Calendar-specific cache keys and invalidation tags.

Month aggregates are cached per (month, timezone); single-day projections per
(month, timezone, day). Every month entry carries its month tag plus the tags
of each day it holds, so invalidating either a month or a day evicts it.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import Optional

from homecal.calendar.datetime_utils import format_month_key, parse_instant, to_day_key
from homecal.calendar.models import EventDefinition, MonthAggregate, Occurrence
from homecal.core.timezone_utils import resolve_zone

from .tagged_cache import TaggedCache

logger = logging.getLogger(__name__)

MONTH_KEY_PREFIX = "calendar-month-data"
DAY_KEY_PREFIX = "calendar-day-data"


def month_tag(month_key: str) -> str:
    """Invalidation tag for every cached entry of ``month_key``."""
    return f"calendar:month:{month_key}"


def day_tag(timezone: str, day_key: str) -> str:
    """Invalidation tag for one local day as seen from ``timezone``."""
    return f"calendar:day:{timezone}:{day_key}"


class CalendarCache:
    """Month/day cache facade over a TaggedCache."""

    def __init__(self, cache: Optional[TaggedCache] = None):
        self.cache = cache if cache is not None else TaggedCache()

    month_tag = staticmethod(month_tag)
    day_tag = staticmethod(day_tag)

    @staticmethod
    def month_cache_key(month_key: str, timezone: str) -> tuple[str, str, str]:
        return (MONTH_KEY_PREFIX, month_key, timezone)

    @staticmethod
    def day_cache_key(month_key: str, timezone: str, day_key: str) -> tuple[str, str, str, str]:
        return (DAY_KEY_PREFIX, month_key, timezone, day_key)

    def get_or_compute(
        self, month_key: str, timezone: str, compute: Callable[[], MonthAggregate]
    ) -> MonthAggregate:
        """Cached month aggregate for (month, timezone), computed on a miss."""

        def _tags(aggregate: MonthAggregate) -> set[str]:
            logger.debug(
                "Caching month %s (%s) with %d day bucket(s)",
                month_key,
                timezone,
                len(aggregate.events_by_day),
            )
            tags = {month_tag(month_key)}
            tags.update(day_tag(timezone, day) for day in aggregate.events_by_day)
            return tags

        return self.cache.get_or_compute(self.month_cache_key(month_key, timezone), compute, tags=_tags)

    def get_or_compute_day(
        self,
        month_key: str,
        timezone: str,
        day_key: str,
        compute: Callable[[], MonthAggregate],
    ) -> list[Occurrence]:
        """Cached occurrences of one day, projected from the month aggregate.

        A day with no occurrences yields an empty list (also cached).
        """
        return self.cache.get_or_compute(
            self.day_cache_key(month_key, timezone, day_key),
            lambda: list(self.get_or_compute(month_key, timezone, compute).day(day_key)),
            tags={day_tag(timezone, day_key), month_tag(month_key)},
        )

    def invalidate_month(self, month_key: str) -> int:
        return self.cache.invalidate_tags([month_tag(month_key)])

    def invalidate_day(self, timezone: str, day_key: str) -> int:
        return self.cache.invalidate_tags([day_tag(timezone, day_key)])

    def invalidate_event(
        self,
        definition: EventDefinition,
        timezone: str,
        months: Iterable[str] = (),
    ) -> int:
        """Invalidate the month and day of an event's start, plus ``months``.

        Only the start month is derived automatically. A recurring series
        reaching other months must list them in ``months``; the cache does
        not enumerate future occurrences.
        """
        zone = resolve_zone(definition.timezone)
        start = parse_instant(definition.start_at, zone)

        tags = {month_tag(format_month_key(start)), day_tag(timezone, to_day_key(start))}
        tags.update(month_tag(month) for month in months)
        removed = self.cache.invalidate_tags(sorted(tags))
        logger.info(
            "Invalidated %d cache entries for event %s (%s)", removed, definition.id, timezone
        )
        return removed

    def clear(self) -> None:
        self.cache.clear()
