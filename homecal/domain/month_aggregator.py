"""Group occurrences into local-day buckets and summarize them.

Day keys come from each occurrence's start in the occurrence's own zone, not
the query zone, so two occurrences at the same UTC instant can land on
different days.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable

from homecal.calendar.datetime_utils import format_month_key, to_day_key
from homecal.calendar.models import DaySummary, MonthAggregate, Occurrence, QueryWindow
from homecal.core.timezone_utils import resolve_zone

logger = logging.getLogger(__name__)

# Storage cap per day bucket
MAX_EVENTS_PER_DAY = 99
# Day summaries report has_more above this count
INLINE_DISPLAY_LIMIT = 3


def day_key_for(occurrence: Occurrence) -> str:
    """Local day key of an occurrence, in its own zone."""
    return to_day_key(occurrence.starts_at.astimezone(resolve_zone(occurrence.timezone)))


def occurrence_sort_key(occurrence: Occurrence) -> tuple:
    return (occurrence.starts_at.timestamp(), occurrence.instance_id)


def aggregate(
    occurrences: Iterable[Occurrence],
    window: QueryWindow,
    *,
    max_per_day: int = MAX_EVENTS_PER_DAY,
    inline_limit: int = INLINE_DISPLAY_LIMIT,
) -> MonthAggregate:
    """Build the month aggregate for ``occurrences``.

    Args:
        occurrences: Materialized occurrences, any order
        window: Month window; its start names the month
        max_per_day: Occurrences retained per day bucket
        inline_limit: Threshold for ``DaySummary.has_more``

    Returns:
        MonthAggregate with day keys in ascending order, each bucket sorted by
        (start, instance id) and holding the earliest ``max_per_day`` entries.
    """
    buckets: dict[str, list[Occurrence]] = defaultdict(list)
    for occurrence in occurrences:
        buckets[day_key_for(occurrence)].append(occurrence)

    events_by_day: dict[str, list[Occurrence]] = {}
    summaries: dict[str, DaySummary] = {}

    for day_key in sorted(buckets):
        day = sorted(buckets[day_key], key=occurrence_sort_key)
        count = len(day)
        if count > max_per_day:
            logger.debug(
                "Day %s has %d occurrences; storing first %d", day_key, count, max_per_day
            )
        events_by_day[day_key] = day[:max_per_day]
        summaries[day_key] = DaySummary(event_count=count, has_more=count > inline_limit)

    return MonthAggregate(
        month_key=format_month_key(window.start),
        events_by_day=events_by_day,
        summaries=summaries,
    )
