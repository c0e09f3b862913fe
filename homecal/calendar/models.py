"""Data models for the homecal occurrence engine."""

from collections.abc import Mapping
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator, model_validator

from homecal.core.timezone_utils import DEFAULT_CALENDAR_TIMEZONE, elapsed_between
from homecal.exceptions import WindowOrderError

# Raw instant as stored by the data layer: a datetime, a DATE value or an ISO-8601 string
InstantInput = Union[datetime, date, str]


class OccurrenceOrigin(str, Enum):
    """Which expansion branch produced an instant."""

    PLAIN = "plain"
    RULE = "rule"
    ADDITION = "addition"


class EventDefinition(BaseModel):
    """Stored event definition, read-only input to the engine.

    Date fields are kept as supplied by the data layer and parsed lazily by
    the pipeline so that one bad value degrades a single event instead of
    failing the whole batch.
    """

    id: str = Field(..., description="Stable event identifier")
    title: str = Field(default="", description="Event title")
    description: Optional[str] = Field(default=None, description="Event description")
    location: Optional[str] = Field(default=None, description="Event location")

    start_at: InstantInput = Field(..., description="Start instant")
    end_at: InstantInput = Field(..., description="End instant")
    timezone: str = Field(
        default=DEFAULT_CALENDAR_TIMEZONE, description="IANA zone for local-time semantics"
    )
    is_all_day: bool = Field(default=False, description="All-day event flag")

    rrule: Optional[str] = Field(default=None, description="Recurrence description")
    exception_dates: list[InstantInput] = Field(
        default_factory=list, description="Instants removed from the series"
    )
    addition_dates: list[InstantInput] = Field(
        default_factory=list, description="Extra instants, with or without a rule"
    )

    source: Optional[str] = Field(default=None, description="Provenance tag")

    model_config = ConfigDict(frozen=True, extra="ignore")

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        # Database ids may arrive as UUID or int
        return value if isinstance(value, str) or value is None else str(value)

    @field_validator("timezone", mode="before")
    @classmethod
    def _default_timezone(cls, value: Any) -> Any:
        return value or DEFAULT_CALENDAR_TIMEZONE

    @field_validator("rrule", mode="before")
    @classmethod
    def _blank_rule_is_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("exception_dates", "addition_dates", mode="before")
    @classmethod
    def _none_is_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @property
    def is_recurring(self) -> bool:
        """True when a recurrence rule is present."""
        return self.rrule is not None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "EventDefinition":
        """Build a definition from a data-store row.

        Accepts the snake_case row shape of the events table
        (``exdates``/``rdates`` for exception/addition dates) as well as the
        model's own field names. Unknown columns are ignored.
        """
        data = dict(row)
        if "exception_dates" not in data and "exdates" in data:
            data["exception_dates"] = data.pop("exdates")
        if "addition_dates" not in data and "rdates" in data:
            data["addition_dates"] = data.pop("rdates")
        return cls.model_validate(data)


class Occurrence(BaseModel):
    """One concrete, time-bounded materialization of an event definition."""

    base_event_id: str = Field(..., description="Originating EventDefinition id")
    instance_id: str = Field(..., description="Identifier stable across expansions")

    title: str = Field(default="", description="Event title")
    description: Optional[str] = Field(default=None, description="Event description")
    location: Optional[str] = Field(default=None, description="Event location")
    timezone: str = Field(..., description="Event IANA zone")
    is_all_day: bool = Field(default=False, description="All-day event flag")
    source: Optional[str] = Field(default=None, description="Provenance tag")

    starts_at: datetime = Field(..., description="Occurrence start")
    ends_at: datetime = Field(..., description="Occurrence end")

    model_config = ConfigDict(frozen=True)

    @property
    def duration(self) -> timedelta:
        return elapsed_between(self.starts_at, self.ends_at)

    @field_serializer("starts_at", "ends_at")
    def serialize_datetime(self, dt: datetime) -> str:
        """Serialize datetime to ISO format."""
        return dt.isoformat()


class DaySummary(BaseModel):
    """Compact per-day summary for calendar-grid rendering."""

    event_count: int = Field(default=0, description="True occurrence count before capping")
    has_more: bool = Field(default=False, description="Count exceeds the inline display limit")


class MonthAggregate(BaseModel):
    """Occurrences for a month grouped by local day, plus day summaries."""

    month_key: str = Field(..., description="Month identifier, YYYY-MM")
    events_by_day: dict[str, list[Occurrence]] = Field(default_factory=dict)
    summaries: dict[str, DaySummary] = Field(default_factory=dict)

    def day(self, day_key: str) -> list[Occurrence]:
        """Return the stored occurrences of one day (empty when none)."""
        return list(self.events_by_day.get(day_key, []))

    @property
    def total_events(self) -> int:
        return sum(summary.event_count for summary in self.summaries.values())


class QueryWindow(BaseModel):
    """Closed query interval ``[start, end]`` of aware datetimes."""

    start: datetime
    end: datetime

    model_config = ConfigDict(frozen=True)

    @field_validator("start", "end")
    @classmethod
    def _require_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None or value.utcoffset() is None:
            raise ValueError("query window bounds must be timezone-aware")
        return value

    @model_validator(mode="after")
    def _check_order(self) -> "QueryWindow":
        if self.end < self.start:
            raise WindowOrderError(
                f"Query window ends before it starts: {self.start.isoformat()} > {self.end.isoformat()}"
            )
        return self

    def buffered(self, delta: timedelta) -> "QueryWindow":
        """Return a copy widened by ``delta`` on both sides."""
        return QueryWindow(start=self.start - delta, end=self.end + delta)

    def overlaps(self, start: datetime, end: datetime) -> bool:
        """True when ``[start, end]`` touches the window (inclusive bounds).

        An occurrence ending exactly at ``self.start`` still counts, as does
        one starting exactly at ``self.end``.
        """
        return start <= self.end and end >= self.start
