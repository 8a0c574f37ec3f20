"""Timestamp grammar shared by the parser and the formatter.

Supported forms::

    <2025-11-15>
    [2025-11-15 Sat 10:30]
    <2025-11-15 Sat 10:00-11:30 +1w -2d>
    <2025-11-15 Sat>--<2025-11-17 Mon>

The bracket decides whether a timestamp is active (``<>``) or inactive
(``[]``). Numerals that do not form a real date or time raise
InvalidTimestampError instead of being clamped.
"""

import datetime as dt
import re
from typing import Optional

from org_outline.exceptions import InvalidTimestampError
from org_outline.model import (
    DateOffset,
    Delay,
    Repeater,
    RepeaterKind,
    Timestamp,
    TimestampEnd,
)

# English abbreviations, used when a range end needs a day name synthesized
DAY_NAMES = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]

_TIMESTAMP_RE = re.compile(
    r"(?P<open>[<\[])"
    r"(?P<year>\d{4})-(?P<month>\d{2})-(?P<day>\d{2})"
    r"(?:[ \t]+(?P<day_name>[^\W\d_]+\.?))?"
    r"(?:[ \t]+(?P<hour>\d{1,2}):(?P<minute>\d{2})"
    r"(?:-(?P<end_hour>\d{1,2}):(?P<end_minute>\d{2}))?)?"
    r"(?:[ \t]+(?P<repeater>\.\+|\+\+|\+)(?P<repeat_value>\d+)(?P<repeat_unit>[hdwmy]))?"
    r"(?:[ \t]+(?P<delay>--?)(?P<delay_value>\d+)(?P<delay_unit>[hdwmy]))?"
    r"[ \t]*(?P<close>[>\]])"
)

_PAIRS = {"<": ">", "[": "]"}

_OFFSET_FIELDS = {
    "h": "hours",
    "d": "days",
    "w": "weeks",
    "m": "months",
    "y": "years",
}


def _offset(value: str, unit: str) -> DateOffset:
    return DateOffset(**{_OFFSET_FIELDS[unit]: int(value)})


def _make_date(year: str, month: str, day: str) -> dt.date:
    try:
        return dt.date(int(year), int(month), int(day))
    except ValueError as e:
        raise InvalidTimestampError(f"Invalid date: {year}-{month}-{day}") from e


def _make_time(hour: str, minute: str) -> dt.time:
    try:
        return dt.time(int(hour), int(minute))
    except ValueError as e:
        raise InvalidTimestampError(f"Invalid time: {hour}:{minute}") from e


def _match_single(text: str, pos: int) -> Optional[tuple[Timestamp, int]]:
    match = _TIMESTAMP_RE.match(text, pos)
    if match is None or _PAIRS[match["open"]] != match["close"]:
        return None

    timestamp = Timestamp(
        active=match["open"] == "<",
        date=_make_date(match["year"], match["month"], match["day"]),
        day_name=match["day_name"],
    )
    if match["hour"] is not None:
        timestamp.time = _make_time(match["hour"], match["minute"])
    if match["end_hour"] is not None:
        timestamp.end = TimestampEnd(time=_make_time(match["end_hour"], match["end_minute"]))
    if match["repeater"] is not None:
        timestamp.repeater = Repeater(
            kind=RepeaterKind(match["repeater"]),
            interval=_offset(match["repeat_value"], match["repeat_unit"]),
        )
    if match["delay"] is not None:
        timestamp.delay = Delay(
            before=True,
            first_only=match["delay"] == "--",
            offset=_offset(match["delay_value"], match["delay_unit"]),
        )
    return timestamp, match.end()


def match_timestamp(
    text: str, pos: int = 0, allow_range: bool = True
) -> Optional[tuple[Timestamp, int]]:
    """Match a timestamp starting exactly at ``pos``.

    Args:
        text: Text to scan
        pos: Offset where the timestamp must start
        allow_range: Also consume a ``--<end>`` part with the same bracket style

    Returns:
        (timestamp, end offset) or None when there is no timestamp at ``pos``

    Raises:
        InvalidTimestampError: If the shape matches but the numerals are invalid
    """
    found = _match_single(text, pos)
    if found is None:
        return None
    timestamp, end = found

    if allow_range and text.startswith("--", end):
        second = _match_single(text, end + 2)
        if second is not None and second[0].active == timestamp.active:
            other, end = second
            timestamp.end = TimestampEnd(date=other.date, time=other.time)
    return timestamp, end


def parse_timestamp(text: str) -> Timestamp:
    """Parse text that must consist of exactly one timestamp (or range).

    Raises:
        InvalidTimestampError: If the text is not a valid timestamp
    """
    stripped = text.strip()
    found = match_timestamp(stripped, 0)
    if found is None or found[1] != len(stripped):
        raise InvalidTimestampError(f"Not a timestamp: {text!r}")
    return found[0]


def render_offset(offset: DateOffset) -> str:
    """Render the first non-zero unit of an offset (``1w``, ``3d``).

    Org cookies hold a single unit and have no minutes, so the rendering is
    lossy for offsets built in code: smaller units after the first non-zero
    one are dropped, and a minutes-only offset is rounded down to whole hours
    (at least ``1h``). Offsets parsed from text always hold one unit.
    """
    for value, unit in (
        (offset.years, "y"),
        (offset.months, "m"),
        (offset.weeks, "w"),
        (offset.days, "d"),
        (offset.hours, "h"),
    ):
        if value:
            return f"{abs(value)}{unit}"
    if offset.minutes:
        # Org has no minute unit
        return f"{max(1, abs(offset.minutes) // 60)}h"
    return "0d"


def _render_date(date: dt.date, day_name: Optional[str]) -> str:
    rendered = date.strftime("%Y-%m-%d")
    if day_name:
        rendered = f"{rendered} {day_name}"
    return rendered


def render_timestamp(timestamp: Timestamp) -> str:
    """Render a timestamp in canonical form.

    Examples:
        >>> render_timestamp(parse_timestamp("<2025-11-15 Sat 10:00 +1w>"))
        '<2025-11-15 Sat 10:00 +1w>'
    """
    open_char, close_char = ("<", ">") if timestamp.active else ("[", "]")
    parts = [_render_date(timestamp.date, timestamp.day_name)]

    end = timestamp.end
    multi_day = end is not None and end.date is not None and end.date != timestamp.date

    if timestamp.time is not None:
        clock = timestamp.time.strftime("%H:%M")
        if end is not None and not multi_day and end.time is not None:
            clock = f"{clock}-{end.time.strftime('%H:%M')}"
        parts.append(clock)
    if timestamp.repeater is not None:
        parts.append(timestamp.repeater.kind.value + render_offset(timestamp.repeater.interval))
    if timestamp.delay is not None:
        marker = "-" if timestamp.delay.before else "+"
        if timestamp.delay.first_only:
            marker *= 2
        parts.append(marker + render_offset(timestamp.delay.offset))

    rendered = f"{open_char}{' '.join(parts)}{close_char}"

    if multi_day:
        end_day = DAY_NAMES[end.date.weekday()] if timestamp.day_name else None
        end_parts = [_render_date(end.date, end_day)]
        if end.time is not None:
            end_parts.append(end.time.strftime("%H:%M"))
        rendered = f"{rendered}--{open_char}{' '.join(end_parts)}{close_char}"
    return rendered
