"""Exception hierarchy for the homecal occurrence engine.

Recoverable conditions (a malformed rule, an unparseable date) are caught by
the pipeline and degrade to fewer occurrences plus a logged diagnostic. Only
caller mistakes such as a reversed query window propagate.
"""

from __future__ import annotations

from typing import Any, Optional


class CalendarEngineError(Exception):
    """Base exception for all engine errors.

    Carries the id of the event definition involved, when there is one, so
    the pipeline can log a useful diagnostic without re-deriving context.
    """

    def __init__(self, message: str, event_id: Optional[str] = None):
        super().__init__(message)
        self.event_id = event_id


class RuleParseError(CalendarEngineError):
    """Recurrence description could not be parsed.

    Raised when:
    - The rule string is empty
    - FREQ is missing or not a known frequency token
    - INTERVAL or COUNT is not a positive integer
    - dateutil rejects the rule (unknown parameter, bad UNTIL, ...)

    The offending event contributes zero occurrences; other events in the
    same call are unaffected.
    """


class InvalidInstantError(CalendarEngineError):
    """A start, end, exception or addition value is not a valid instant.

    Exception/addition values are dropped individually. An invalid start or
    end skips the whole event definition.
    """

    def __init__(self, message: str, value: Any = None, event_id: Optional[str] = None):
        super().__init__(message, event_id=event_id)
        self.value = value


class WindowOrderError(CalendarEngineError):
    """Query window ends before it starts.

    Fatal for the call: the caller receives this error rather than an empty
    or reversed result.
    """


class InvalidTimezoneError(CalendarEngineError):
    """Timezone string is not a known IANA identifier."""
