"""Occurrence expansion for homecal.

Enumerates the concrete start instants of one event definition inside a
query window. Three independent branches feed the result:

- rule instants (when a recurrence rule is present), minus exceptions
- the plain base instant (when no rule is present)
- addition instants (always, rule or not)

Rule and addition candidates are gathered over the window widened by a
buffer so an event whose own zone shifts its local day relative to the
query zone is not lost at the boundary; every emitted instant still overlaps
the unbuffered window.
"""

# ruff: noqa: I001
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
import logging
from typing import Optional

from homecal.core.timezone_utils import add_elapsed

from .models import OccurrenceOrigin, QueryWindow
from .rrule_parser import NormalizedRule

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_BUFFER = timedelta(days=1)

_ORIGIN_ORDER = {
    OccurrenceOrigin.PLAIN: 0,
    OccurrenceOrigin.RULE: 1,
    OccurrenceOrigin.ADDITION: 2,
}


@dataclass(frozen=True)
class ExpandedInstant:
    """A start instant plus the branch that produced it."""

    start: datetime
    origin: OccurrenceOrigin

    def sort_key(self) -> tuple[datetime, int]:
        return (self.start.astimezone(UTC), _ORIGIN_ORDER[self.origin])


def _utc_set(values: Iterable[datetime]) -> set[datetime]:
    return {value.astimezone(UTC) for value in values}


def expand_occurrences(
    rule: Optional[NormalizedRule],
    window: QueryWindow,
    additions: Sequence[datetime] = (),
    *,
    anchor_start: datetime,
    duration: timedelta,
    exceptions: Sequence[datetime] = (),
    buffer: timedelta = DEFAULT_WINDOW_BUFFER,
) -> list[ExpandedInstant]:
    """Expand one definition into start instants overlapping ``window``.

    Args:
        rule: Normalized rule, or None for a single-occurrence definition
        window: Query window (inclusive bounds)
        additions: Extra instants; evaluated whether or not ``rule`` is set
        anchor_start: The definition's own start instant
        duration: Real time from the definition's start to its end
        exceptions: Excluded instants; defaults to ``rule.exceptions``
        buffer: Lookback/lookahead used when gathering candidates

    Returns:
        Instants sorted by (UTC instant, origin). Deterministic for equal inputs.
    """
    buffered = window.buffered(buffer)
    excluded = _utc_set(exceptions if exceptions else (rule.exceptions if rule else ()))

    def _in_window(start: datetime) -> bool:
        return window.overlaps(start, add_elapsed(start, duration))

    instants: list[ExpandedInstant] = []
    seen: set[datetime] = set()

    if rule is not None:
        # Series longer than the buffer can start earlier and still reach the window
        lookback = max(duration, timedelta(0))
        generated = rule.between(buffered.start - lookback, buffered.end)
        for start in generated:
            key = start.astimezone(UTC)
            if key in excluded or key in seen or not _in_window(start):
                continue
            seen.add(key)
            instants.append(ExpandedInstant(start=start, origin=OccurrenceOrigin.RULE))
        logger.debug(
            "Rule %r produced %d candidate(s), %d kept after exceptions/window",
            rule.source,
            len(generated),
            len(instants),
        )
    elif _in_window(anchor_start):
        instants.append(ExpandedInstant(start=anchor_start, origin=OccurrenceOrigin.PLAIN))

    for addition in additions:
        if not buffered.overlaps(addition, add_elapsed(addition, duration)):
            continue
        key = addition.astimezone(UTC)
        if key in excluded or key in seen or not _in_window(addition):
            continue
        seen.add(key)
        instants.append(ExpandedInstant(start=addition, origin=OccurrenceOrigin.ADDITION))

    instants.sort(key=ExpandedInstant.sort_key)
    return instants
