"""Shared fixtures for homecal tests."""

from collections.abc import Generator, Iterable
from datetime import datetime
from typing import Any
from zoneinfo import ZoneInfo

import pytest

from homecal.calendar.models import EventDefinition, QueryWindow

TEST_TIME_ENV = "HOMECAL_TEST_TIME"


def pytest_configure(config: Any) -> None:
    config.addinivalue_line("markers", "unit: Fast unit tests")


@pytest.fixture
def test_timezone() -> str:
    """Return a deterministic timezone identifier for tests.

    Using a fixed timezone string avoids host-local timezone differences
    which can make datetime-sensitive tests flaky.
    """
    return "Australia/Melbourne"


@pytest.fixture
def melbourne(test_timezone: str) -> ZoneInfo:
    return ZoneInfo(test_timezone)


@pytest.fixture(autouse=True)
def clean_test_environment(monkeypatch: Any) -> Generator[None, Any, None]:
    """Clear frozen test time and engine env overrides around each test."""
    for name in (
        TEST_TIME_ENV,
        "HOMECAL_DEBUG",
        "HOMECAL_LOG_LEVEL",
        "HOMECAL_DEFAULT_TIMEZONE",
        "HOMECAL_MAX_EVENTS_PER_DAY",
        "HOMECAL_INLINE_DISPLAY_LIMIT",
        "HOMECAL_WINDOW_BUFFER_DAYS",
        "HOMECAL_CACHE_MAX_ENTRIES",
        "HOMECAL_CACHE_TTL_SECONDS",
    ):
        monkeypatch.delenv(name, raising=False)
    yield


@pytest.fixture
def january_window(melbourne: ZoneInfo) -> QueryWindow:
    """January 2024 in Melbourne local time."""
    return QueryWindow(
        start=datetime(2024, 1, 1, tzinfo=melbourne),
        end=datetime(2024, 1, 31, 23, 59, 59, 999999, tzinfo=melbourne),
    )


class FakeEventSource:
    """In-memory EventSource recording every window it was asked for."""

    def __init__(self, events: Iterable[Any] = ()):
        self.events = list(events)
        self.windows: list[QueryWindow] = []

    def load_events(self, window: QueryWindow) -> list[Any]:
        self.windows.append(window)
        return list(self.events)


@pytest.fixture
def fake_source() -> FakeEventSource:
    return FakeEventSource()


def make_event(**overrides: Any) -> EventDefinition:
    """Build an EventDefinition with sensible defaults."""
    data: dict[str, Any] = {
        "id": "evt-1",
        "title": "Test event",
        "start_at": datetime(2024, 1, 1, 9, 0, tzinfo=ZoneInfo("Australia/Melbourne")),
        "end_at": datetime(2024, 1, 1, 10, 0, tzinfo=ZoneInfo("Australia/Melbourne")),
        "timezone": "Australia/Melbourne",
    }
    data.update(overrides)
    return EventDefinition(**data)


@pytest.fixture
def event_factory() -> Any:
    """Factory fixture building EventDefinitions from keyword overrides."""
    return make_event
