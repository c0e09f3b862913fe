"""Unit tests for homecal.calendar.rrule_parser."""

from datetime import UTC, datetime
from zoneinfo import ZoneInfo

import pytest

from homecal.calendar.rrule_parser import (
    RRULE_PRESETS,
    build_rrule,
    describe_rrule,
    normalize_dates,
    parse_rrule_components,
    parse_rule,
)
from homecal.exceptions import RuleParseError

pytestmark = pytest.mark.unit

MELBOURNE = ZoneInfo("Australia/Melbourne")
ANCHOR = datetime(2024, 1, 1, 9, 0, tzinfo=MELBOURNE)


class TestParseRruleComponents:
    def test_parses_weekly_rule(self):
        components = parse_rrule_components("FREQ=WEEKLY;INTERVAL=2;BYDAY=MO,WE")

        assert components["freq"] == "WEEKLY"
        assert components["interval"] == 2
        assert components["byday"] == ["MO", "WE"]

    def test_accepts_rrule_prefix_and_lowercase_freq(self):
        components = parse_rrule_components("RRULE:FREQ=daily;COUNT=3")

        assert components["freq"] == "DAILY"
        assert components["count"] == 3

    @pytest.mark.parametrize(
        "rule",
        [
            "",
            "   ",
            "INTERVAL=2",
            "FREQ=FORTNIGHTLY",
            "FREQ=DAILY;INTERVAL=0",
            "FREQ=DAILY;COUNT=abc",
            "FREQ=DAILY;BOGUS",
        ],
    )
    def test_rejects_malformed_rules(self, rule):
        with pytest.raises(RuleParseError):
            parse_rrule_components(rule)

    def test_rejects_multiple_rules(self):
        with pytest.raises(RuleParseError, match="exactly one"):
            parse_rrule_components("RRULE:FREQ=DAILY\nRRULE:FREQ=WEEKLY")


class TestParseRule:
    def test_rule_is_anchored_to_event_start(self):
        rule = parse_rule("FREQ=DAILY;COUNT=3", ANCHOR, MELBOURNE)

        instants = rule.between(ANCHOR, datetime(2024, 2, 1, tzinfo=MELBOURNE))
        assert [dt.day for dt in instants] == [1, 2, 3]
        assert all(dt.hour == 9 for dt in instants)
        assert rule.anchor == ANCHOR

    def test_embedded_dtstart_is_ignored(self):
        rule = parse_rule("DTSTART:20200101T000000Z\nRRULE:FREQ=DAILY;COUNT=2", ANCHOR, MELBOURNE)

        instants = rule.between(datetime(2019, 1, 1, tzinfo=UTC), datetime(2025, 1, 1, tzinfo=UTC))
        assert instants == [ANCHOR, datetime(2024, 1, 2, 9, 0, tzinfo=MELBOURNE)]

    def test_anchor_is_converted_into_event_zone(self):
        utc_anchor = datetime(2023, 12, 31, 22, 0, tzinfo=UTC)  # 09:00 Melbourne

        rule = parse_rule("FREQ=DAILY;COUNT=1", utc_anchor, MELBOURNE)

        assert rule.anchor.tzinfo is MELBOURNE
        assert rule.anchor.hour == 9

    def test_unknown_parameter_rejected_by_dateutil(self):
        with pytest.raises(RuleParseError) as exc_info:
            parse_rule("FREQ=DAILY;FOO=1", ANCHOR, MELBOURNE, event_id="evt-9")

        assert exc_info.value.event_id == "evt-9"

    def test_date_only_until_covers_whole_local_day(self):
        rule = parse_rule("FREQ=WEEKLY;UNTIL=20240129", ANCHOR, MELBOURNE)

        instants = rule.between(ANCHOR, datetime(2024, 3, 1, tzinfo=MELBOURNE))
        assert [dt.day for dt in instants] == [1, 8, 15, 22, 29]

    def test_floating_until_is_local_time_in_event_zone(self):
        rule = parse_rule("FREQ=DAILY;UNTIL=20240105T085959", ANCHOR, MELBOURNE)

        instants = rule.between(ANCHOR, datetime(2024, 2, 1, tzinfo=MELBOURNE))
        assert [dt.day for dt in instants] == [1, 2, 3, 4]

    def test_utc_until_left_unchanged(self):
        # 2024-01-04T22:00Z is 09:00 on the 5th in Melbourne
        rule = parse_rule("FREQ=DAILY;UNTIL=20240104T220000Z", ANCHOR, MELBOURNE)

        instants = rule.between(ANCHOR, datetime(2024, 2, 1, tzinfo=MELBOURNE))
        assert instants[-1] == datetime(2024, 1, 5, 9, 0, tzinfo=MELBOURNE)
        assert rule.source == "FREQ=DAILY;UNTIL=20240104T220000Z"

    def test_unreadable_until_rejected(self):
        with pytest.raises(RuleParseError):
            parse_rule("FREQ=DAILY;UNTIL=someday", ANCHOR, MELBOURNE)

    def test_invalid_exception_and_addition_values_are_dropped(self, caplog):
        rule = parse_rule(
            "FREQ=DAILY",
            ANCHOR,
            MELBOURNE,
            exceptions=["not-a-date", "2024-01-05T09:00:00"],
            additions=[12345, "2024-02-01T09:00:00+11:00"],
            event_id="evt-1",
        )

        assert rule.exceptions == (datetime(2024, 1, 5, 9, 0, tzinfo=MELBOURNE),)
        assert rule.additions == (datetime(2024, 2, 1, 9, 0, tzinfo=MELBOURNE),)
        assert "Dropping invalid exception date" in caplog.text

    def test_presets_all_parse(self):
        for name, preset in RRULE_PRESETS.items():
            rule = parse_rule(preset, ANCHOR, MELBOURNE)
            assert rule.source == preset, name


def test_normalize_dates_interprets_naive_values_in_zone():
    values = normalize_dates(["2024-03-01T10:00:00", datetime(2024, 3, 2, 10, 0)], MELBOURNE, "addition")

    assert values == (
        datetime(2024, 3, 1, 10, 0, tzinfo=MELBOURNE),
        datetime(2024, 3, 2, 10, 0, tzinfo=MELBOURNE),
    )


class TestBuildRrule:
    def test_weekly_with_days_and_count(self):
        assert (
            build_rrule("weekly", interval=2, by_day=["mo", "we"], count=10)
            == "FREQ=WEEKLY;INTERVAL=2;BYDAY=MO,WE;COUNT=10"
        )

    def test_until_rendered_in_utc(self):
        until = datetime(2024, 1, 31, 23, 0, tzinfo=MELBOURNE)

        assert build_rrule("DAILY", until=until) == "FREQ=DAILY;UNTIL=20240131T120000Z"

    def test_unknown_frequency(self):
        with pytest.raises(RuleParseError):
            build_rrule("FORTNIGHTLY")


class TestDescribeRrule:
    def test_no_rule(self):
        assert describe_rrule(None) == "No recurrence"

    def test_weekly_on_days(self):
        assert describe_rrule("FREQ=WEEKLY;BYDAY=MO,WE") == "Every weekly on Mon, Wed"

    def test_interval_and_count(self):
        assert describe_rrule("FREQ=DAILY;INTERVAL=2;COUNT=5") == "Every 2 daily (5 times)"

    def test_until(self):
        assert describe_rrule("FREQ=DAILY;UNTIL=20240131T120000Z") == "Every daily until 2024-01-31"

    def test_unparseable_rule(self):
        assert describe_rrule("garbage") == "Custom recurrence"
