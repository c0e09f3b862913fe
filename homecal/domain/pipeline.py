"""Expansion pipeline: event definitions in, occurrences out.

Usage:
    report = expand_definitions(definitions, window)
    month = aggregate(report.occurrences, window)

Per-event failures never abort the batch. A malformed rule or an unreadable
start/end skips that one definition and is recorded on the report and in the
log; only a reversed query window propagates to the caller.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta, tzinfo
from typing import Any, Optional, Union

from pydantic import ValidationError

from homecal.calendar.datetime_utils import parse_instant
from homecal.calendar.materializer import materialize
from homecal.calendar.models import EventDefinition, MonthAggregate, Occurrence, QueryWindow
from homecal.calendar.rrule_expander import DEFAULT_WINDOW_BUFFER, expand_occurrences
from homecal.calendar.rrule_parser import NormalizedRule, normalize_dates, parse_rule
from homecal.core.timezone_utils import DEFAULT_CALENDAR_TIMEZONE, elapsed_between, resolve_zone
from homecal.exceptions import InvalidInstantError, RuleParseError

from .month_aggregator import INLINE_DISPLAY_LIMIT, MAX_EVENTS_PER_DAY, aggregate

logger = logging.getLogger(__name__)

DefinitionInput = Union[EventDefinition, Mapping[str, Any]]


@dataclass
class ExpansionReport:
    """Result of expanding a batch of definitions.

    Contains the occurrences plus skip/warning information for observability.
    """

    occurrences: list[Occurrence] = field(default_factory=list)
    skipped: dict[str, str] = field(default_factory=dict)  # event id -> reason
    warnings: list[str] = field(default_factory=list)

    # Statistics
    definitions_in: int = 0
    definitions_expanded: int = 0

    def skip(self, event_id: str, reason: str) -> None:
        """Record a skipped definition."""
        self.skipped[event_id] = reason
        logger.warning("Skipping event %s: %s", event_id, reason)

    def add_warning(self, message: str) -> None:
        self.warnings.append(message)
        logger.warning(message)


def coerce_definition(item: DefinitionInput) -> EventDefinition:
    """Accept an EventDefinition or a data-store row mapping."""
    if isinstance(item, EventDefinition):
        return item
    return EventDefinition.from_row(item)


def _event_zone(definition: EventDefinition, default_timezone: str) -> tzinfo:
    return resolve_zone(definition.timezone, fallback=default_timezone)


def expand_definition(
    definition: EventDefinition,
    window: QueryWindow,
    *,
    buffer: timedelta = DEFAULT_WINDOW_BUFFER,
    default_timezone: str = DEFAULT_CALENDAR_TIMEZONE,
) -> list[Occurrence]:
    """Expand one definition into the occurrences overlapping ``window``.

    Raises:
        InvalidInstantError: If the definition's start or end is unreadable
        RuleParseError: If its recurrence rule is malformed
    """
    zone = _event_zone(definition, default_timezone)

    try:
        start = parse_instant(definition.start_at, zone)
        end = parse_instant(definition.end_at, zone)
    except InvalidInstantError as e:
        e.event_id = definition.id
        raise

    rule: Optional[NormalizedRule] = None
    if definition.rrule:
        try:
            rule = parse_rule(
                definition.rrule,
                start,
                zone,
                definition.exception_dates,
                definition.addition_dates,
                event_id=definition.id,
            )
        except RuleParseError as e:
            e.event_id = definition.id
            raise
        exceptions = rule.exceptions
        additions = rule.additions
    else:
        exceptions = normalize_dates(definition.exception_dates, zone, "exception", definition.id)
        additions = normalize_dates(definition.addition_dates, zone, "addition", definition.id)

    instants = expand_occurrences(
        rule,
        window,
        additions,
        anchor_start=start,
        duration=elapsed_between(start, end),
        exceptions=exceptions,
        buffer=buffer,
    )

    return [
        materialize(
            definition,
            instant.start,
            origin=instant.origin,
            base_start=start,
            base_end=end,
            zone=zone,
        )
        for instant in instants
    ]


def expand_definitions(
    definitions: Iterable[DefinitionInput],
    window: QueryWindow,
    *,
    buffer: timedelta = DEFAULT_WINDOW_BUFFER,
    default_timezone: str = DEFAULT_CALENDAR_TIMEZONE,
) -> ExpansionReport:
    """Expand a batch of definitions, isolating per-event failures.

    Args:
        definitions: EventDefinitions or data-store row mappings
        window: Query window
        buffer: Lookback/lookahead for rule and addition candidates
        default_timezone: Zone used when a definition's zone is missing/invalid

    Returns:
        ExpansionReport with a flat occurrence list in input order
    """
    report = ExpansionReport()

    for index, item in enumerate(definitions):
        report.definitions_in += 1
        try:
            definition = coerce_definition(item)
        except ValidationError as e:
            event_id = str(item.get("id", f"#{index}")) if isinstance(item, Mapping) else f"#{index}"
            report.skip(event_id, f"invalid definition: {e.error_count()} validation error(s)")
            continue

        try:
            occurrences = expand_definition(
                definition, window, buffer=buffer, default_timezone=default_timezone
            )
        except RuleParseError as e:
            report.skip(definition.id, f"rule parse error: {e}")
            continue
        except InvalidInstantError as e:
            report.skip(definition.id, f"invalid start/end: {e}")
            continue

        report.definitions_expanded += 1
        report.occurrences.extend(occurrences)

    logger.debug(
        "Expanded %d/%d definitions into %d occurrences (%d skipped)",
        report.definitions_expanded,
        report.definitions_in,
        len(report.occurrences),
        len(report.skipped),
    )
    return report


def build_month_aggregate(
    definitions: Iterable[DefinitionInput],
    window: QueryWindow,
    *,
    buffer: timedelta = DEFAULT_WINDOW_BUFFER,
    default_timezone: str = DEFAULT_CALENDAR_TIMEZONE,
    max_per_day: int = MAX_EVENTS_PER_DAY,
    inline_limit: int = INLINE_DISPLAY_LIMIT,
) -> MonthAggregate:
    """Expand ``definitions`` over ``window`` and group the result by local day."""
    report = expand_definitions(
        definitions, window, buffer=buffer, default_timezone=default_timezone
    )
    return aggregate(
        report.occurrences, window, max_per_day=max_per_day, inline_limit=inline_limit
    )


def occurrence_starts(occurrences: Iterable[Occurrence]) -> list[datetime]:
    """Start instants of ``occurrences``, for diffing and diagnostics."""
    return [occurrence.starts_at for occurrence in occurrences]
