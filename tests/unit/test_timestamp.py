"""Unit tests for the timestamp grammar."""

import datetime as dt

import pytest

from org_outline.exceptions import InvalidTimestampError
from org_outline.model import DateOffset, RepeaterKind
from org_outline.timestamp import (
    match_timestamp,
    parse_timestamp,
    render_offset,
    render_timestamp,
)


class TestParseTimestamp:
    """Test parsing single timestamps."""

    def test_date_only(self):
        """Test active date without time."""
        ts = parse_timestamp("<2025-11-15>")

        assert ts.active is True
        assert ts.date == dt.date(2025, 11, 15)
        assert ts.time is None
        assert ts.day_name is None

    def test_inactive_with_day_and_time(self):
        """Test inactive timestamp keeps day name and time."""
        ts = parse_timestamp("[2025-11-15 Sat 10:30]")

        assert ts.active is False
        assert ts.day_name == "Sat"
        assert ts.time == dt.time(10, 30)

    def test_time_range_repeater_and_delay(self):
        """Test all cookies on one timestamp."""
        ts = parse_timestamp("<2025-11-15 Sat 10:00-11:30 +1w -2d>")

        assert ts.end.date is None
        assert ts.end.time == dt.time(11, 30)
        assert ts.repeater.kind == RepeaterKind.FROM_LAST
        assert ts.repeater.interval == DateOffset(weeks=1)
        assert ts.delay.before is True
        assert ts.delay.offset == DateOffset(days=2)
        assert ts.delay.first_only is False

    def test_first_occurrence_delay(self):
        """Test the double-dash delay is recorded."""
        ts = parse_timestamp("<2025-11-15 Sat --2d>")

        assert ts.delay.first_only is True
        assert ts.delay.offset == DateOffset(days=2)

    @pytest.mark.parametrize(
        "text,kind,offset",
        [
            ("<2025-11-15 .+2d>", RepeaterKind.FROM_NOW, DateOffset(days=2)),
            ("<2025-11-15 ++1m>", RepeaterKind.FROM_BASE, DateOffset(months=1)),
            ("<2025-11-15 +1y>", RepeaterKind.FROM_LAST, DateOffset(years=1)),
        ],
    )
    def test_repeater_kinds(self, text, kind, offset):
        """Test each repeater marker maps to its kind."""
        ts = parse_timestamp(text)

        assert ts.repeater.kind == kind
        assert ts.repeater.interval == offset

    def test_date_range(self):
        """Test <a>--<b> ranges set an end date."""
        ts = parse_timestamp("<2025-11-15 Sat>--<2025-11-17 Mon>")

        assert ts.date == dt.date(2025, 11, 15)
        assert ts.end.date == dt.date(2025, 11, 17)

    def test_range_not_consumed_when_disabled(self):
        """Test clock-style matching stops before --."""
        text = "[2025-11-14 Fri 09:00]--[2025-11-14 Fri 10:30]"
        ts, end = match_timestamp(text, 0, allow_range=False)

        assert ts.end is None
        assert text[end:].startswith("--")

    def test_invalid_date_raises(self):
        """Test impossible dates are not clamped."""
        with pytest.raises(InvalidTimestampError, match="Invalid date"):
            parse_timestamp("<2025-02-30>")

    def test_invalid_time_raises(self):
        """Test impossible times are rejected."""
        with pytest.raises(InvalidTimestampError, match="Invalid time"):
            parse_timestamp("<2025-11-15 25:00>")

    def test_mismatched_brackets_are_not_timestamps(self):
        """Test <...] is not a timestamp."""
        assert match_timestamp("<2025-11-15]") is None
        with pytest.raises(InvalidTimestampError):
            parse_timestamp("<2025-11-15]")

    def test_no_match_in_plain_text(self):
        """Test plain text does not match."""
        assert match_timestamp("no timestamp here") is None


class TestRenderTimestamp:
    """Test canonical timestamp rendering."""

    @pytest.mark.parametrize(
        "text",
        [
            "<2025-11-15>",
            "[2025-11-15 Sat 10:30]",
            "<2025-11-15 Sat 10:00-11:30 +1w -2d>",
            "<2025-11-15 Sat .+2d>",
            "<2025-11-15 Sat +1w --2d>",
            "<2025-11-15 Sat>--<2025-11-17 Mon>",
        ],
    )
    def test_canonical_forms_render_identically(self, text):
        """Test canonical input renders back unchanged."""
        assert render_timestamp(parse_timestamp(text)) == text

    def test_render_offset_units(self):
        """Test offset rendering picks the first non-zero unit."""
        assert render_offset(DateOffset(weeks=2)) == "2w"
        assert render_offset(DateOffset(hours=3)) == "3h"
        assert render_offset(DateOffset()) == "0d"

    def test_render_offset_is_lossy_for_mixed_units(self):
        """Test only the first unit is kept and minutes round down to hours."""
        assert render_offset(DateOffset(days=1, hours=2)) == "1d"
        assert render_offset(DateOffset(minutes=90)) == "1h"
        assert render_offset(DateOffset(minutes=20)) == "1h"


class TestTimeSpan:
    """Test projection to absolute instants."""

    def test_all_day_starts_at_midnight(self):
        """Test all-day timestamps start at 00:00."""
        span = parse_timestamp("<2025-11-15>").to_time_span()

        assert span.start == dt.datetime(2025, 11, 15, 0, 0)
        assert span.end is None

    def test_time_range(self):
        """Test same-day ranges end on the start date."""
        span = parse_timestamp("<2025-11-15 Sat 10:00-11:30>").to_time_span()

        assert span.start == dt.datetime(2025, 11, 15, 10, 0)
        assert span.end == dt.datetime(2025, 11, 15, 11, 30)

    def test_default_tz_applied(self):
        """Test default_tz makes the span timezone-aware."""
        span = parse_timestamp("<2025-11-15 Sat 10:00>").to_time_span(default_tz=3600)

        assert span.start.utcoffset() == dt.timedelta(hours=1)


class TestDateOffsetShift:
    """Test calendar-relative arithmetic."""

    def test_month_end_is_clamped(self):
        """Test Jan 31 + 1m lands on the last day of February."""
        moment = dt.datetime(2025, 1, 31, 9, 0)

        assert DateOffset(months=1).shift(moment) == dt.datetime(2025, 2, 28, 9, 0)

    def test_month_wraps_year(self):
        """Test December + 1m moves into January of the next year."""
        moment = dt.datetime(2025, 12, 15)

        assert DateOffset(months=1).shift(moment) == dt.datetime(2026, 1, 15)

    def test_leap_day_plus_year(self):
        """Test Feb 29 + 1y is clamped to Feb 28."""
        moment = dt.datetime(2024, 2, 29)

        assert DateOffset(years=1).shift(moment) == dt.datetime(2025, 2, 28)

    def test_weeks_and_days(self):
        """Test fixed units add an exact duration."""
        moment = dt.datetime(2025, 11, 15)

        assert DateOffset.from_weeks(1).shift(moment) == dt.datetime(2025, 11, 22)
        assert DateOffset.from_days(3).shift(moment) == dt.datetime(2025, 11, 18)
