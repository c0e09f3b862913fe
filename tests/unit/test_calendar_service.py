"""Tests for CalendarService: fetch, expand, aggregate and cache."""

from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from homecal.calendar.models import QueryWindow
from homecal.config_loader import EngineConfig
from homecal.domain.calendar_service import CalendarService

pytestmark = pytest.mark.unit

MELBOURNE = ZoneInfo("Australia/Melbourne")


def _hour_event(event_factory, day: int, event_id: str = "evt-1"):
    start = datetime(2024, 6, day, 9, 0, tzinfo=MELBOURNE)
    return event_factory(id=event_id, start_at=start, end_at=start + timedelta(hours=1))


def _busy_day_events(event_factory, count: int):
    start = datetime(2024, 6, 10, 9, 0, tzinfo=MELBOURNE)
    return [
        event_factory(id=f"e{n:03d}", start_at=start, end_at=start + timedelta(minutes=30))
        for n in range(count)
    ]


class TestGetMonthData:
    def test_busy_day_scenario(self, fake_source, event_factory):
        fake_source.events = _busy_day_events(event_factory, 150)
        service = CalendarService(fake_source)

        month = service.get_month_data("2024-06", "Australia/Melbourne")

        assert month.month_key == "2024-06"
        assert len(month.events_by_day["2024-06-10"]) == 99
        assert month.summaries["2024-06-10"].event_count == 150
        assert month.summaries["2024-06-10"].has_more is True

    def test_fetch_window_extends_month_by_one_day(self, fake_source):
        service = CalendarService(fake_source)

        service.get_month_data("2024-06", "Australia/Melbourne")

        [window] = fake_source.windows
        assert window.start == datetime(2024, 5, 31, tzinfo=MELBOURNE)
        assert window.end == datetime(2024, 7, 1, 23, 59, 59, 999999, tzinfo=MELBOURNE)

    def test_results_are_cached_until_invalidated(self, fake_source, event_factory):
        fake_source.events = [_hour_event(event_factory, 3)]
        service = CalendarService(fake_source)

        first = service.get_month_data("2024-06")
        second = service.get_month_data("2024-06")
        assert first is second
        assert len(fake_source.windows) == 1

        assert service.invalidate_month("2024-06") == 1
        service.get_month_data("2024-06")
        assert len(fake_source.windows) == 2

    def test_timezones_are_cached_separately(self, fake_source):
        service = CalendarService(fake_source)

        service.get_month_data("2024-06", "Australia/Melbourne")
        service.get_month_data("2024-06", "Europe/London")

        assert len(fake_source.windows) == 2

    def test_invalid_timezone_uses_default(self, fake_source):
        service = CalendarService(fake_source)

        service.get_month_data("2024-06", "Nowhere/Special")
        service.get_month_data("2024-06", "Australia/Melbourne")

        assert len(fake_source.windows) == 1

    def test_missing_month_uses_current_month(self, fake_source, monkeypatch):
        monkeypatch.setenv("HOMECAL_TEST_TIME", "2024-06-15T00:00:00+10:00")
        service = CalendarService(fake_source)

        assert service.get_month_data().month_key == "2024-06"
        assert service.get_month_data("not-a-month").month_key == "2024-06"

    def test_config_limits_applied(self, fake_source, event_factory):
        fake_source.events = _busy_day_events(event_factory, 5)
        config = EngineConfig(max_events_per_day=2, inline_display_limit=10)
        service = CalendarService(fake_source, config=config)

        month = service.get_month_data("2024-06")

        assert len(month.events_by_day["2024-06-10"]) == 2
        assert month.summaries["2024-06-10"].event_count == 5
        assert month.summaries["2024-06-10"].has_more is False

    def test_skipped_definitions_reported(self, fake_source, event_factory):
        fake_source.events = [event_factory(id="bad", rrule="FREQ=NEVER")]
        service = CalendarService(fake_source)

        month = service.get_month_data("2024-06")

        assert month.events_by_day == {}
        assert service.last_report is not None
        assert "bad" in service.last_report.skipped


class TestGetDayEvents:
    def test_day_projection(self, fake_source, event_factory):
        fake_source.events = [
            event_factory(
                id="gym",
                rrule="FREQ=WEEKLY;BYDAY=MO",
                start_at=datetime(2024, 6, 3, 7, 0, tzinfo=MELBOURNE),
                end_at=datetime(2024, 6, 3, 8, 0, tzinfo=MELBOURNE),
            )
        ]
        service = CalendarService(fake_source)

        monday = service.get_day_events("2024-06-10")
        tuesday = service.get_day_events("2024-06-11")

        assert [o.instance_id for o in monday] == ["gym:2024-06-10T07:00:00+10:00"]
        assert tuesday == []
        assert len(fake_source.windows) == 1

    def test_invalidate_day_refetches(self, fake_source, event_factory):
        fake_source.events = [_hour_event(event_factory, 10)]
        service = CalendarService(fake_source)
        service.get_day_events("2024-06-10")

        service.invalidate_day("2024-06-10")
        service.get_day_events("2024-06-10")

        assert len(fake_source.windows) == 2

    def test_invalidate_event_spanning_months(self, fake_source, event_factory):
        event = event_factory(
            rrule="FREQ=MONTHLY",
            start_at=datetime(2024, 6, 10, 9, 0, tzinfo=MELBOURNE),
            end_at=datetime(2024, 6, 10, 10, 0, tzinfo=MELBOURNE),
        )
        fake_source.events = [event]
        service = CalendarService(fake_source)
        service.get_month_data("2024-06")
        service.get_month_data("2024-07")
        service.get_month_data("2024-09")

        removed = service.invalidate_event(event, until=datetime(2024, 7, 31, tzinfo=MELBOURNE))

        assert removed == 2
        service.get_month_data("2024-09")
        assert len(fake_source.windows) == 3


def test_expand_window_is_uncached_and_sorted(fake_source, event_factory):
    fake_source.events = [
        _hour_event(event_factory, 10, "b"),
        _hour_event(event_factory, 10, "a"),
        _hour_event(event_factory, 9, "c"),
    ]
    service = CalendarService(fake_source)
    window = QueryWindow(
        start=datetime(2024, 6, 9, tzinfo=MELBOURNE),
        end=datetime(2024, 6, 10, 23, 59, tzinfo=MELBOURNE),
    )

    first = service.expand_window(window)
    service.expand_window(window)

    assert [o.instance_id for o in first] == ["c", "a", "b"]
    assert len(fake_source.windows) == 2
    assert fake_source.windows[0] == window.buffered(timedelta(days=1))
