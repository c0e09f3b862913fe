"""Turn expanded start instants into immutable Occurrence records."""

from datetime import datetime, timedelta, tzinfo
from typing import Optional

from homecal.core.timezone_utils import add_elapsed, elapsed_between, resolve_zone

from .models import EventDefinition, Occurrence, OccurrenceOrigin


def instance_id_for(
    base_id: str, start: datetime, origin: OccurrenceOrigin, base_start: Optional[datetime] = None
) -> str:
    """Derive the identifier of one occurrence.

    A plain single-occurrence instance keeps the base id; any rule or
    addition instance is ``<base id>:<ISO start in event zone>``, so a
    recurrence instance never collides with the plain event even when they
    start at the same instant.
    """
    if origin is OccurrenceOrigin.PLAIN and (base_start is None or start == base_start):
        return base_id
    return f"{base_id}:{start.isoformat()}"


def materialize(
    definition: EventDefinition,
    start: datetime,
    *,
    origin: OccurrenceOrigin = OccurrenceOrigin.PLAIN,
    base_start: Optional[datetime] = None,
    base_end: Optional[datetime] = None,
    zone: Optional[tzinfo] = None,
) -> Occurrence:
    """Build the occurrence of ``definition`` starting at ``start``.

    Args:
        definition: Template event
        start: Occurrence start instant
        origin: Expansion branch that produced ``start``
        base_start: Parsed ``definition.start_at``; required when the
            definition stores its dates as strings
        base_end: Parsed ``definition.end_at``; same requirement
        zone: Event zone; resolved from ``definition.timezone`` when omitted

    Returns:
        Occurrence whose ``ends_at`` lies the same real time after ``start``
        as ``end_at`` does after ``start_at``
    """
    event_zone = zone or resolve_zone(definition.timezone)
    first_start = base_start if base_start is not None else definition.start_at
    first_end = base_end if base_end is not None else definition.end_at
    if not isinstance(first_start, datetime) or not isinstance(first_end, datetime):
        raise TypeError("materialize() needs parsed base_start/base_end for string dates")

    duration: timedelta = elapsed_between(first_start, first_end)
    local_start = start.astimezone(event_zone)

    return Occurrence(
        base_event_id=definition.id,
        instance_id=instance_id_for(definition.id, local_start, origin, first_start),
        title=definition.title,
        description=definition.description,
        location=definition.location,
        timezone=definition.timezone,
        is_all_day=definition.is_all_day,
        source=definition.source,
        starts_at=local_start,
        ends_at=add_elapsed(local_start, duration),
    )
