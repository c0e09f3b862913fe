"""Scheduling conflict detection between occurrences."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

from homecal.calendar.models import Occurrence


class ConflictType(str, Enum):
    OVERLAP = "overlap"
    ADJACENT = "adjacent"


@dataclass(frozen=True)
class Conflict:
    first: Occurrence
    second: Occurrence
    conflict_type: ConflictType


def has_time_conflict(first: Occurrence, second: Occurrence) -> bool:
    """True when the two occurrences share some time (touching ends excluded)."""
    return first.starts_at < second.ends_at and second.starts_at < first.ends_at


def is_adjacent(first: Occurrence, second: Occurrence) -> bool:
    """True when one occurrence ends exactly as the other starts."""
    return first.ends_at == second.starts_at or second.ends_at == first.starts_at


def find_conflicts(occurrences: Sequence[Occurrence], include_adjacent: bool = True) -> list[Conflict]:
    """Pairwise conflicts among ``occurrences``, in input order.

    Overlapping pairs are reported as ``OVERLAP``. Back-to-back pairs are
    reported as ``ADJACENT`` unless ``include_adjacent`` is False. Zero-length
    occurrences never overlap anything.
    """
    conflicts = []
    for i, first in enumerate(occurrences):
        for second in occurrences[i + 1:]:
            if has_time_conflict(first, second):
                conflicts.append(Conflict(first, second, ConflictType.OVERLAP))
            elif include_adjacent and is_adjacent(first, second):
                conflicts.append(Conflict(first, second, ConflictType.ADJACENT))
    return conflicts
