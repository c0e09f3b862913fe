"""Recurrence rule parsing for homecal.

Turns a stored RRULE string plus its exception/addition dates into a
`NormalizedRule` anchored to the event's own start, using
python-dateutil's ``rrulestr``. Rule objects are built per call; nothing is
cached at module level.
"""

# ruff: noqa: I001
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime, time, tzinfo
import logging
from typing import Any, Optional

from dateutil.rrule import rrule, rrulestr, rruleset

from homecal.core.timezone_utils import zone_name
from homecal.exceptions import InvalidInstantError, RuleParseError

from .datetime_utils import parse_instant

logger = logging.getLogger(__name__)

KNOWN_FREQUENCIES = frozenset(
    {"YEARLY", "MONTHLY", "WEEKLY", "DAILY", "HOURLY", "MINUTELY", "SECONDLY"}
)

RRULE_PRESETS: dict[str, str] = {
    "DAILY": "FREQ=DAILY",
    "WEEKDAYS": "FREQ=WEEKLY;BYDAY=MO,TU,WE,TH,FR",
    "WEEKLY": "FREQ=WEEKLY",
    "MONTHLY": "FREQ=MONTHLY",
    "YEARLY": "FREQ=YEARLY",
    "MON_WED_FRI": "FREQ=WEEKLY;BYDAY=MO,WE,FR",
    "TUES_THURS": "FREQ=WEEKLY;BYDAY=TU,TH",
    "FIRST_MONDAY": "FREQ=MONTHLY;BYDAY=1MO",
    "LAST_DAY": "FREQ=MONTHLY;BYMONTHDAY=-1",
}

_DAY_NAMES = {"MO": "Mon", "TU": "Tue", "WE": "Wed", "TH": "Thu", "FR": "Fri", "SA": "Sat", "SU": "Sun"}
_FREQ_LABELS = {
    "YEARLY": "yearly",
    "MONTHLY": "monthly",
    "WEEKLY": "weekly",
    "DAILY": "daily",
    "HOURLY": "hourly",
    "MINUTELY": "minutely",
    "SECONDLY": "secondly",
}


@dataclass(frozen=True)
class NormalizedRule:
    """A recurrence rule anchored to an event's first occurrence.

    Attributes:
        rule: dateutil rule (``rrule``) anchored at ``anchor``
        anchor: event start expressed in the event zone
        zone: event zone
        source: the RRULE body the rule was built from
        exceptions: excluded instants, normalized into ``zone``
        additions: extra instants, normalized into ``zone``
    """

    rule: rrule
    anchor: datetime
    zone: tzinfo
    source: str
    exceptions: tuple[datetime, ...] = field(default_factory=tuple)
    additions: tuple[datetime, ...] = field(default_factory=tuple)

    def between(self, start: datetime, end: datetime) -> list[datetime]:
        """Rule instants within ``[start, end]`` (inclusive), in the event zone."""
        return [occ.astimezone(self.zone) for occ in self.rule.between(start, end, inc=True)]


def _rule_body(rule_text: str) -> str:
    """Extract the RRULE body, dropping an ``RRULE:`` prefix and DTSTART lines.

    Rules are always anchored to the event start, so an embedded DTSTART is
    ignored.
    """
    bodies = []
    for raw_line in rule_text.replace("\r", "\n").split("\n"):
        line = raw_line.strip()
        if not line:
            continue
        upper = line.upper()
        if upper.startswith("DTSTART"):
            continue
        if upper.startswith("RRULE:"):
            line = line[len("RRULE:"):]
        bodies.append(line)

    if len(bodies) != 1:
        raise RuleParseError(f"Expected exactly one RRULE, found {len(bodies)}")
    return bodies[0].strip().strip(";")


def parse_rrule_components(rule_text: str) -> dict[str, Any]:
    """Parse RRULE string into validated components.

    Args:
        rule_text: RRULE string (e.g. "FREQ=WEEKLY;INTERVAL=1;BYDAY=MO")

    Returns:
        Dictionary with lower-cased keys; ``freq`` upper-cased, ``interval``
        and ``count`` as ints, ``byday`` as a list, other values as strings

    Raises:
        RuleParseError: If RRULE string is invalid
    """
    if not rule_text or not rule_text.strip():
        raise RuleParseError("Empty RRULE string")

    body = _rule_body(rule_text)
    components: dict[str, Any] = {}

    for part in body.split(";"):
        if not part.strip():
            continue
        if "=" not in part:
            raise RuleParseError(f"Malformed RRULE part {part!r} in {rule_text!r}")
        key, value = part.split("=", 1)
        key = key.strip().lower()
        value = value.strip()

        if key == "freq":
            components["freq"] = value.upper()
        elif key in ("interval", "count"):
            try:
                number = int(value)
            except ValueError as e:
                raise RuleParseError(f"Invalid {key.upper()} {value!r} in {rule_text!r}") from e
            if number < 1:
                raise RuleParseError(f"{key.upper()} must be positive in {rule_text!r}")
            components[key] = number
        elif key == "byday":
            components["byday"] = [day.strip().upper() for day in value.split(",") if day.strip()]
        else:
            components[key] = value

    freq = components.get("freq")
    if not freq:
        raise RuleParseError(f"RRULE missing required FREQ parameter: {rule_text!r}")
    if freq not in KNOWN_FREQUENCIES:
        raise RuleParseError(f"Unknown RRULE frequency {freq!r}")

    return components


def _utc_until(body: str, zone: tzinfo) -> str:
    """Rewrite a date-only or floating UNTIL as UTC.

    dateutil only accepts a UTC UNTIL next to an aware DTSTART. A floating
    value is local time in ``zone``; a date-only value covers its whole local day.
    """
    parts = body.split(";")
    for index, part in enumerate(parts):
        key, _, value = part.partition("=")
        if key.strip().upper() != "UNTIL":
            continue
        value = value.strip()
        if value.upper().endswith("Z"):
            continue
        try:
            if len(value) == 8:
                local_until = datetime.combine(datetime.strptime(value, "%Y%m%d").date(), time.max)
            else:
                local_until = datetime.strptime(value, "%Y%m%dT%H%M%S")
        except ValueError:
            # Left for rrulestr to reject
            continue
        until_utc = local_until.replace(microsecond=0, tzinfo=zone).astimezone(UTC)
        parts[index] = f"UNTIL={until_utc.strftime('%Y%m%dT%H%M%S')}Z"
    return ";".join(parts)


def normalize_dates(
    values: Iterable[Any], zone: tzinfo, kind: str, event_id: Optional[str] = None
) -> tuple[datetime, ...]:
    """Parse exception/addition values into ``zone``, dropping invalid ones."""
    normalized = []
    for value in values:
        try:
            normalized.append(parse_instant(value, zone))
        except InvalidInstantError as e:
            logger.warning("Dropping invalid %s date %r for event %s: %s", kind, value, event_id, e)
    return tuple(normalized)


def parse_rule(
    rule_text: str,
    anchor: datetime,
    zone: tzinfo,
    exceptions: Iterable[Any] = (),
    additions: Iterable[Any] = (),
    *,
    event_id: Optional[str] = None,
) -> NormalizedRule:
    """Parse a recurrence description anchored to an event start.

    Args:
        rule_text: RRULE string, optionally prefixed with ``RRULE:``
        anchor: the event's own start instant
        zone: the event's zone; the anchor and all dates are expressed in it
        exceptions: instants to exclude (datetimes or ISO strings)
        additions: instants to add (datetimes or ISO strings)
        event_id: used for diagnostics only

    Returns:
        NormalizedRule

    Raises:
        RuleParseError: If the rule is syntactically invalid
    """
    components = parse_rrule_components(rule_text)
    body = _rule_body(rule_text)
    local_anchor = anchor.astimezone(zone)

    try:
        parsed = rrulestr(_utc_until(body, zone), dtstart=local_anchor)
    except (ValueError, TypeError, KeyError) as e:
        raise RuleParseError(f"Invalid RRULE {rule_text!r}: {e}", event_id=event_id) from e

    if isinstance(parsed, rruleset):
        raise RuleParseError(f"Unsupported multi-rule RRULE {rule_text!r}", event_id=event_id)

    logger.debug(
        "Parsed RRULE for event %s: freq=%s interval=%s anchor=%s zone=%s",
        event_id,
        components["freq"],
        components.get("interval", 1),
        local_anchor.isoformat(),
        zone_name(zone),
    )

    return NormalizedRule(
        rule=parsed,
        anchor=local_anchor,
        zone=zone,
        source=body,
        exceptions=normalize_dates(exceptions, zone, "exception", event_id),
        additions=normalize_dates(additions, zone, "addition", event_id),
    )


def build_rrule(
    frequency: str,
    interval: int = 1,
    by_day: Optional[list[str]] = None,
    count: Optional[int] = None,
    until: Optional[datetime] = None,
) -> str:
    """Generate an RRULE string from common pattern parts.

    ``until`` is rendered in UTC (``YYYYMMDDTHHMMSSZ``) as required for
    zone-anchored rules.
    """
    freq = frequency.upper()
    if freq not in KNOWN_FREQUENCIES:
        raise RuleParseError(f"Unknown RRULE frequency {frequency!r}")

    parts = [f"FREQ={freq}"]
    if interval > 1:
        parts.append(f"INTERVAL={interval}")
    if by_day:
        parts.append(f"BYDAY={','.join(day.upper() for day in by_day)}")
    if count:
        parts.append(f"COUNT={count}")
    if until is not None:
        until_utc = until.astimezone(UTC) if until.tzinfo else until
        parts.append(f"UNTIL={until_utc.strftime('%Y%m%dT%H%M%S')}Z")
    return ";".join(parts)


def describe_rrule(rule_text: Optional[str]) -> str:
    """Return a short human-readable summary of an RRULE.

    Examples:
        "FREQ=WEEKLY;BYDAY=MO,WE" -> "Every weekly on Mon, Wed"
        "FREQ=DAILY;INTERVAL=2;COUNT=5" -> "Every 2 daily (5 times)"
    """
    if not rule_text:
        return "No recurrence"

    try:
        components = parse_rrule_components(rule_text)
    except RuleParseError:
        logger.debug("Cannot describe RRULE %r", rule_text)
        return "Custom recurrence"

    interval = components.get("interval", 1)
    description = f"Every {f'{interval} ' if interval > 1 else ''}{_FREQ_LABELS[components['freq']]}"

    by_day = components.get("byday")
    if by_day:
        labels = [_DAY_NAMES.get(day[-2:], day) for day in by_day]
        description += f" on {', '.join(labels)}"

    if "count" in components:
        description += f" ({components['count']} times)"

    until = components.get("until")
    if until:
        try:
            until_dt = parse_instant(until, UTC)
            description += f" until {until_dt.date().isoformat()}"
        except InvalidInstantError:
            logger.debug("Unreadable UNTIL %r in %r", until, rule_text)

    return description
