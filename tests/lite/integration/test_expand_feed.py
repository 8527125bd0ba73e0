"""
End-to-end expansion tests for icsfeed_lite.pipeline.

Each test feeds raw ICS text through expand_feed and checks the materialized
OutputEvents, so parser, grouper, recurrence evaluation, EXDATE/override
handling and window bounding are exercised together.
"""

from datetime import datetime, timedelta, timezone

import pytest

from icsfeed_lite import lite_event_merger
from icsfeed_lite.config_loader import Config
from icsfeed_lite.lite_models import ExpansionWindow
from icsfeed_lite.pipeline import (
    default_window,
    expand_feed,
    expand_feed_with_stats,
    preview_feed,
)

pytestmark = pytest.mark.integration

UTC = timezone.utc


def _starts(events) -> list[str]:
    return [e.start_at for e in events]


def _parse(value: str) -> datetime:
    return datetime.strptime(value, "%Y-%m-%dT%H:%M:%SZ").replace(tzinfo=UTC)


class TestSingleEvents:
    def test_event_inside_window_materializes_once(self, build_ics, year_2024_window):
        ics = build_ics("UID:one\nDTSTART:20240301T150000Z\nDTEND:20240301T160000Z\nSUMMARY:Review")

        events = expand_feed(ics, year_2024_window)

        assert len(events) == 1
        assert events[0].title == "Review"
        assert events[0].start_at == "2024-03-01T15:00:00Z"
        assert events[0].end_at == "2024-03-01T16:00:00Z"
        assert events[0].instance_key == "one|2024-03-01T15:00:00Z"

    def test_event_outside_window_produces_nothing(self, build_ics, year_2024_window):
        ics = build_ics("UID:old\nDTSTART:20230301T150000Z\nSUMMARY:Last year")

        assert expand_feed(ics, year_2024_window) == []

    def test_missing_uid_produces_nothing(self, build_ics, year_2024_window):
        ics = build_ics("DTSTART:20240301T150000Z\nSUMMARY:Anonymous")

        result = expand_feed_with_stats(ics, year_2024_window)

        assert result.events == []
        assert result.skipped_no_uid == 1

    def test_missing_dtstart_produces_nothing(self, build_ics, year_2024_window):
        ics = build_ics("UID:nostart\nSUMMARY:Floating idea")

        result = expand_feed_with_stats(ics, year_2024_window)

        assert result.events == []
        assert result.skipped_no_dtstart == 1

    def test_all_day_event_spans_24_hours(self, build_ics, year_2024_window):
        ics = build_ics("UID:holiday\nDTSTART;VALUE=DATE:20240704\nSUMMARY:Holiday")

        (event,) = expand_feed(ics, year_2024_window)

        assert event.all_day is True
        assert _parse(event.end_at) - _parse(event.start_at) == timedelta(hours=24)

    def test_multi_day_all_day_event_still_24_hours(self, build_ics, year_2024_window):
        ics = build_ics(
            "UID:trip\nDTSTART;VALUE=DATE:20240704\nDTEND;VALUE=DATE:20240708\nSUMMARY:Trip"
        )

        (event,) = expand_feed(ics, year_2024_window)

        assert event.end_at == "2024-07-05T00:00:00Z"

    def test_duration_sets_end(self, build_ics, year_2024_window):
        ics = build_ics("UID:dur\nDTSTART:20240301T150000Z\nDURATION:PT45M")

        (event,) = expand_feed(ics, year_2024_window)

        assert event.end_at == "2024-03-01T15:45:00Z"

    def test_missing_end_defaults_to_one_hour(self, build_ics, year_2024_window):
        ics = build_ics("UID:noend\nDTSTART:20240301T150000Z")

        (event,) = expand_feed(ics, year_2024_window)

        assert event.end_at == "2024-03-01T16:00:00Z"

    def test_location_and_description_pass_through(self, build_ics, year_2024_window):
        ics = build_ics(
            "UID:loc\nDTSTART:20240301T150000Z\nLOCATION:Room 4\\, Floor 2\nDESCRIPTION:Line1\\nLine2"
        )

        (event,) = expand_feed(ics, year_2024_window)

        assert event.location == "Room 4, Floor 2"
        assert event.description == "Line1\nLine2"

    def test_title_truncated_to_configured_length(self, build_ics, year_2024_window):
        ics = build_ics("UID:long\nDTSTART:20240301T150000Z\nSUMMARY:" + "x" * 300)

        (default_event,) = expand_feed(ics, year_2024_window)
        (short_event,) = expand_feed(ics, year_2024_window, Config(max_title_length=10))

        assert len(default_event.title) == 200
        assert short_event.title == "x" * 10

    def test_window_bounds_are_inclusive(self, build_ics):
        ics = build_ics("UID:edge\nDTSTART:20240301T150000Z")
        instant = datetime(2024, 3, 1, 15, 0, tzinfo=UTC)

        assert len(expand_feed(ics, ExpansionWindow(start=instant, end=instant))) == 1


class TestRecurrence:
    def test_weekly_count_four(self, build_ics, year_2024_window):
        ics = build_ics("UID:w\nDTSTART:20240101T100000Z\nRRULE:FREQ=WEEKLY;COUNT=4")

        events = expand_feed(ics, year_2024_window)

        assert len(events) == 4
        starts = [_parse(e.start_at) for e in events]
        assert all(b - a == timedelta(days=7) for a, b in zip(starts, starts[1:]))

    def test_monthly_count_six_mid_month(self, build_ics, year_2024_window):
        ics = build_ics("UID:m\nDTSTART:20240115T100000Z\nRRULE:FREQ=MONTHLY;COUNT=6")

        events = expand_feed(ics, year_2024_window)

        assert [_parse(e.start_at).month for e in events] == [1, 2, 3, 4, 5, 6]
        assert all(_parse(e.start_at).day == 15 for e in events)

    def test_end_to_end_weekly_with_exdate(self, build_ics, year_2024_window):
        ics = build_ics(
            """
            UID:e2e
            DTSTART:20240101T100000Z
            RRULE:FREQ=WEEKLY;COUNT=4
            EXDATE:20240108T100000Z
            SUMMARY:Weekly
            """
        )

        events = expand_feed(ics, year_2024_window)

        assert _starts(events) == [
            "2024-01-01T10:00:00Z",
            "2024-01-15T10:00:00Z",
            "2024-01-22T10:00:00Z",
        ]

    def test_exdate_matches_regardless_of_tzid_text(self, build_ics, year_2024_window):
        ics = build_ics(
            """
            UID:tz-ex
            DTSTART;TZID=America/New_York:20240101T100000
            RRULE:FREQ=WEEKLY;COUNT=3
            EXDATE:20240108T150000Z
            """
        )

        events = expand_feed(ics, year_2024_window)

        assert _starts(events) == ["2024-01-01T15:00:00Z", "2024-01-15T15:00:00Z"]

    def test_exdate_in_windows_zone_against_iana_dtstart(self, build_ics, year_2024_window):
        ics = build_ics(
            """
            UID:tz-ex2
            DTSTART;TZID=America/Los_Angeles:20240101T090000
            RRULE:FREQ=DAILY;COUNT=3
            EXDATE;TZID=Pacific Standard Time:20240102T090000
            """
        )

        events = expand_feed(ics, year_2024_window)

        assert len(events) == 2

    def test_unbounded_weekly_against_one_month_window(self, build_ics):
        ics = build_ics("UID:forever\nDTSTART:20200106T100000Z\nRRULE:FREQ=WEEKLY")
        window = ExpansionWindow(
            start=datetime(2024, 1, 1, tzinfo=UTC), end=datetime(2024, 1, 31, 23, 59, 59, tzinfo=UTC)
        )

        events = expand_feed(ics, window)

        assert _starts(events) == [
            "2024-01-01T10:00:00Z",
            "2024-01-08T10:00:00Z",
            "2024-01-15T10:00:00Z",
            "2024-01-22T10:00:00Z",
            "2024-01-29T10:00:00Z",
        ]

    def test_dst_keeps_local_wall_clock(self, build_ics, year_2024_window):
        ics = build_ics("UID:dst\nDTSTART;TZID=Europe/Berlin:20240325T090000\nRRULE:FREQ=WEEKLY;COUNT=2")

        events = expand_feed(ics, year_2024_window)

        # Berlin switches to CEST on 2024-03-31
        assert _starts(events) == ["2024-03-25T08:00:00Z", "2024-04-01T07:00:00Z"]

    def test_invalid_rrule_falls_back_to_single_occurrence(self, build_ics, year_2024_window):
        ics = build_ics("UID:bad\nDTSTART:20240301T150000Z\nRRULE:FREQ=SOMETIMES")

        result = expand_feed_with_stats(ics, year_2024_window)

        assert _starts(result.events) == ["2024-03-01T15:00:00Z"]
        assert result.invalid_rrules == 1

    def test_until_inclusive(self, build_ics, year_2024_window):
        ics = build_ics(
            "UID:until\nDTSTART:20240101T100000Z\nRRULE:FREQ=DAILY;UNTIL=20240103T100000Z"
        )

        assert len(expand_feed(ics, year_2024_window)) == 3

    def test_count_counts_occurrences_before_window(self, build_ics):
        ics = build_ics("UID:c\nDTSTART:20231225T100000Z\nRRULE:FREQ=WEEKLY;COUNT=3")
        window = ExpansionWindow(
            start=datetime(2024, 1, 1, tzinfo=UTC), end=datetime(2024, 12, 31, tzinfo=UTC)
        )

        assert _starts(expand_feed(ics, window)) == [
            "2024-01-01T10:00:00Z",
            "2024-01-08T10:00:00Z",
        ]

    def test_max_occurrences_config_caps_series(self, build_ics, year_2024_window):
        ics = build_ics("UID:cap\nDTSTART:20240101T100000Z\nRRULE:FREQ=DAILY")

        events = expand_feed(ics, year_2024_window, Config(max_occurrences_per_rule=5))

        assert len(events) == 5

    @pytest.mark.parametrize(
        "dtstart,rrule,expected",
        [
            ("20050101T090000Z", "FREQ=DAILY", 31),
            ("19000101T090000Z", "FREQ=WEEKLY", 5),
        ],
    )
    def test_long_running_series_still_reaches_window(self, build_ics, dtstart, rrule, expected):
        ics = build_ics(f"UID:standup\nDTSTART:{dtstart}\nRRULE:{rrule}")
        window = ExpansionWindow(
            start=datetime(2024, 1, 1, tzinfo=UTC),
            end=datetime(2024, 1, 31, 23, 59, 59, tzinfo=UTC),
        )

        events = expand_feed(ics, window)

        assert len(events) == expected
        assert events[0].start_at == "2024-01-01T09:00:00Z"


class TestOverrides:
    def test_override_replaces_only_its_occurrence(self, build_ics, year_2024_window):
        ics = build_ics(
            """
            UID:series
            DTSTART:20240101T100000Z
            DTEND:20240101T110000Z
            RRULE:FREQ=WEEKLY;COUNT=3
            SUMMARY:Sync
            LOCATION:Room 1
            """,
            """
            UID:series
            RECURRENCE-ID:20240108T100000Z
            DTSTART:20240108T140000Z
            DTEND:20240108T143000Z
            SUMMARY:Sync (moved)
            """,
        )

        events = expand_feed(ics, year_2024_window)

        assert [e.title for e in events] == ["Sync", "Sync (moved)", "Sync"]
        moved = events[1]
        assert moved.start_at == "2024-01-08T14:00:00Z"
        assert moved.end_at == "2024-01-08T14:30:00Z"
        assert moved.recurrence_id == "2024-01-08T10:00:00Z"
        assert moved.location == "Room 1"
        assert events[0].recurrence_id is None

    def test_override_can_move_occurrence_into_window(self, build_ics):
        ics = build_ics(
            "UID:s\nDTSTART:20231225T100000Z\nRRULE:FREQ=WEEKLY;COUNT=2",
            "UID:s\nRECURRENCE-ID:20231225T100000Z\nDTSTART:20240102T100000Z",
        )
        window = ExpansionWindow(
            start=datetime(2024, 1, 1, tzinfo=UTC), end=datetime(2024, 1, 31, tzinfo=UTC)
        )

        assert _starts(expand_feed(ics, window)) == [
            "2024-01-02T10:00:00Z",
            "2024-01-01T10:00:00Z",
        ]

    def test_override_can_move_occurrence_out_of_window(self, build_ics):
        ics = build_ics(
            "UID:s\nDTSTART:20240101T100000Z\nRRULE:FREQ=WEEKLY;COUNT=2",
            "UID:s\nRECURRENCE-ID:20240108T100000Z\nDTSTART:20240301T100000Z",
        )
        window = ExpansionWindow(
            start=datetime(2024, 1, 1, tzinfo=UTC), end=datetime(2024, 1, 31, tzinfo=UTC)
        )

        assert _starts(expand_feed(ics, window)) == ["2024-01-01T10:00:00Z"]

    def test_override_for_excluded_date_is_not_emitted(self, build_ics, year_2024_window):
        ics = build_ics(
            "UID:s\nDTSTART:20240101T100000Z\nRRULE:FREQ=WEEKLY;COUNT=3\nEXDATE:20240108T100000Z",
            "UID:s\nRECURRENCE-ID:20240108T100000Z\nDTSTART:20240108T120000Z",
        )

        assert _starts(expand_feed(ics, year_2024_window)) == [
            "2024-01-01T10:00:00Z",
            "2024-01-15T10:00:00Z",
        ]

    def test_cancelled_override_marks_single_instance(self, build_ics, year_2024_window):
        ics = build_ics(
            "UID:s\nDTSTART:20240101T100000Z\nRRULE:FREQ=WEEKLY;COUNT=3",
            "UID:s\nRECURRENCE-ID:20240108T100000Z\nDTSTART:20240108T100000Z\nSTATUS:CANCELLED",
        )

        events = expand_feed(ics, year_2024_window)

        assert [e.status for e in events] == ["confirmed", "cancelled", "confirmed"]

    def test_orphan_override_is_dropped(self, build_ics, year_2024_window):
        ics = build_ics("UID:orphan\nRECURRENCE-ID:20240108T100000Z\nDTSTART:20240108T120000Z")

        result = expand_feed_with_stats(ics, year_2024_window)

        assert result.events == []
        assert result.orphan_overrides == 1


class TestStatusAndDuplicates:
    def test_cancelled_master_cancels_every_instance(self, build_ics, year_2024_window):
        ics = build_ics(
            "UID:gone\nDTSTART:20240101T100000Z\nRRULE:FREQ=WEEKLY;COUNT=3\nSTATUS:CANCELLED"
        )

        events = expand_feed(ics, year_2024_window)

        assert len(events) == 3
        assert {e.status for e in events} == {"cancelled"}

    def test_duplicate_master_first_wins(self, build_ics, year_2024_window):
        ics = build_ics(
            "UID:dup\nDTSTART:20240101T100000Z\nSUMMARY:First",
            "UID:dup\nDTSTART:20240102T100000Z\nSUMMARY:Second",
        )

        result = expand_feed_with_stats(ics, year_2024_window)

        assert [e.title for e in result.events] == ["First"]
        assert result.duplicate_masters == 1

    def test_instance_keys_unique(self, build_ics, year_2024_window):
        ics = build_ics(
            "UID:s\nDTSTART:20240101T100000Z\nRRULE:FREQ=WEEKLY;COUNT=3",
            "UID:s\nRECURRENCE-ID:20240108T100000Z\nDTSTART:20240115T100000Z",
        )

        events = expand_feed(ics, year_2024_window)

        keys = [e.instance_key for e in events]
        assert len(keys) == len(set(keys))
        assert _starts(events) == ["2024-01-01T10:00:00Z", "2024-01-15T10:00:00Z"]

    def test_output_follows_group_order(self, build_ics, year_2024_window):
        ics = build_ics(
            "UID:later\nDTSTART:20240601T100000Z",
            "UID:earlier\nDTSTART:20240101T100000Z",
        )

        assert [e.external_uid for e in expand_feed(ics, year_2024_window)] == ["later", "earlier"]


class TestFixtureFeeds:
    def test_outlook_feed(self, load_fixture, year_2024_window):
        result = expand_feed_with_stats(load_fixture("outlook_recurring.ics"), year_2024_window)

        events = result.events
        assert result.calendar_name == "Team Calendar"
        # 14 Mondays through April 1, minus the EXDATE on January 15
        assert len(events) == 13
        assert "2024-01-15T17:00:00Z" not in _starts(events)
        moved = next(e for e in events if e.recurrence_id)
        assert moved.start_at == "2024-01-22T22:00:00Z"
        assert moved.location == "Conference Room B"
        # Daylight time from March 10
        assert events[-1].start_at == "2024-04-01T16:00:00Z"
        assert events[-1].end_at == "2024-04-01T16:30:00Z"

    def test_google_feed_floating_and_all_day(self, load_fixture, year_2024_window):
        events = expand_feed(load_fixture("google_floating.ics"), year_2024_window)

        by_uid = {e.external_uid: e for e in events}
        assert by_uid["floating-1@google.com"].start_at == "2024-03-15T13:00:00Z"
        holiday = by_uid["holiday-1@google.com"]
        assert holiday.all_day is True
        assert holiday.end_at == "2024-07-05T00:00:00Z"
        assert by_uid["leap-1@google.com"].start_at == "2024-02-29T00:00:00Z"

    def test_leap_day_yearly_skips_non_leap_years(self, load_fixture):
        window = ExpansionWindow(
            start=datetime(2024, 1, 1, tzinfo=UTC), end=datetime(2032, 12, 31, tzinfo=UTC)
        )

        events = expand_feed(load_fixture("google_floating.ics"), window)

        leap = [e.start_at for e in events if e.external_uid == "leap-1@google.com"]
        assert leap == ["2024-02-29T00:00:00Z", "2028-02-29T00:00:00Z", "2032-02-29T00:00:00Z"]

    def test_malformed_feed_keeps_valid_events(self, load_fixture, year_2024_window):
        result = expand_feed_with_stats(load_fixture("malformed.ics"), year_2024_window)

        assert [e.external_uid for e in result.events] == ["good-1", "good-2"]
        assert result.skipped_lines == 1
        assert result.dropped_blocks == 1
        assert result.invalid_rrules == 1
        assert result.skipped_no_uid == 1
        assert result.skipped_no_dtstart == 1
        assert result.orphan_overrides == 1


class TestRobustness:
    @pytest.mark.parametrize("content", [None, "", b"", "not a calendar at all"])
    def test_garbage_input_yields_empty_list(self, content, year_2024_window):
        assert expand_feed(content, year_2024_window) == []

    def test_unexpected_group_failure_skips_only_that_group(
        self, build_ics, year_2024_window, monkeypatch
    ):
        real_duration = lite_event_merger.event_duration

        def _explode(event):
            if event.uid == "boom":
                raise RuntimeError("unexpected")
            return real_duration(event)

        monkeypatch.setattr(lite_event_merger, "event_duration", _explode)
        ics = build_ics(
            "UID:boom\nDTSTART:20240101T100000Z",
            "UID:fine\nDTSTART:20240102T100000Z",
        )

        result = expand_feed_with_stats(ics, year_2024_window)

        assert [e.external_uid for e in result.events] == ["fine"]
        assert result.failed_groups == 1

    def test_out_of_range_dtstart_skips_only_that_event(self, build_ics, year_2024_window):
        ics = build_ics(
            "UID:far\nDTSTART;TZID=America/New_York:99991231T230000",
            "UID:good\nDTSTART:20240102T100000Z",
        )

        result = expand_feed_with_stats(ics, year_2024_window)

        assert [e.external_uid for e in result.events] == ["good"]
        assert result.skipped_no_dtstart == 1
        assert result.failed_groups == 0

    def test_out_of_range_until_falls_back_to_single_occurrence(
        self, build_ics, year_2024_window
    ):
        ics = build_ics(
            "UID:u\nDTSTART;TZID=America/New_York:20240102T100000\n"
            "RRULE:FREQ=DAILY;UNTIL=99991231T230000"
        )

        result = expand_feed_with_stats(ics, year_2024_window)

        assert _starts(result.events) == ["2024-01-02T15:00:00Z"]
        assert result.invalid_rrules == 1
        assert result.failed_groups == 0

    def test_repeated_calls_are_identical(self, load_fixture, year_2024_window):
        content = load_fixture("outlook_recurring.ics")

        assert expand_feed(content, year_2024_window) == expand_feed(content, year_2024_window)


class TestWindows:
    def test_default_window_spans_configured_days(self):
        now = datetime(2024, 6, 15, 13, 45, tzinfo=UTC)

        window = default_window(now)

        assert window.start == datetime(2024, 5, 16, tzinfo=UTC)
        assert window.end.date() == (now + timedelta(days=366)).date()
        assert (window.end.hour, window.end.minute, window.end.second) == (23, 59, 59)

    def test_default_window_honours_config(self):
        now = datetime(2024, 6, 15, 13, 45, tzinfo=UTC)

        window = default_window(now, Config(window_past_days=0, window_future_days=7))

        assert window.start == datetime(2024, 6, 15, tzinfo=UTC)
        assert window.end.date() == datetime(2024, 6, 22).date()

    def test_default_window_uses_test_clock(self, monkeypatch):
        monkeypatch.setenv("ICSFEED_TEST_TIME", "2024-06-15T12:00:00Z")

        assert default_window().start == datetime(2024, 5, 16, tzinfo=UTC)

    def test_preview_sorted_and_limited(self, build_ics):
        ics = build_ics(
            "UID:late\nDTSTART:20240620T100000Z",
            "UID:daily\nDTSTART:20240601T090000Z\nRRULE:FREQ=DAILY;COUNT=30",
        )
        now = datetime(2024, 6, 15, tzinfo=UTC)

        events = preview_feed(ics, limit=5, now=now)

        assert len(events) == 5
        assert _starts(events) == sorted(_starts(events))
        assert events[0].start_at == "2024-06-01T09:00:00Z"

    def test_preview_default_limit_is_twenty(self, build_ics):
        ics = build_ics("UID:daily\nDTSTART:20240601T090000Z\nRRULE:FREQ=DAILY")

        events = preview_feed(ics, now=datetime(2024, 6, 15, tzinfo=UTC))

        assert len(events) == 20

    def test_preview_excludes_events_beyond_180_days(self, build_ics):
        ics = build_ics("UID:far\nDTSTART:20250101T090000Z")

        assert preview_feed(ics, now=datetime(2024, 6, 15, tzinfo=UTC)) == []
