"""Parsing and comparison of ``H:MM-H:MM`` slot strings.

A slot is a half-open interval of minutes since midnight, so a class ending at
10:00 and another starting at 10:00 do not overlap.
"""

from __future__ import annotations

from dataclasses import dataclass
import re

TIME_RANGE_PATTERN = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*-\s*(\d{1,2}):(\d{2})\s*$")


@dataclass(frozen=True)
class TimeRange:
    start_minutes: int
    end_minutes: int

    @property
    def duration_minutes(self) -> int:
        return self.end_minutes - self.start_minutes

    def minutes(self) -> range:
        return range(self.start_minutes, self.end_minutes)

    def overlaps(self, other: "TimeRange") -> bool:
        return ranges_overlap(self, other)

    def __str__(self) -> str:
        return f"{minutes_to_hhmm(self.start_minutes)}-{minutes_to_hhmm(self.end_minutes)}"


def _clock_minutes(hours: str, minutes: str) -> int | None:
    h, m = int(hours), int(minutes)
    if not (0 <= h <= 23 and 0 <= m <= 59):
        return None
    return h * 60 + m


def parse_time_range(value: str | None) -> TimeRange | None:
    if not value or not isinstance(value, str):
        return None
    match = TIME_RANGE_PATTERN.match(value)
    if not match:
        return None
    start = _clock_minutes(match.group(1), match.group(2))
    end = _clock_minutes(match.group(3), match.group(4))
    if start is None or end is None or start >= end:
        return None
    return TimeRange(start_minutes=start, end_minutes=end)


def is_valid_time_range(value: str | None) -> bool:
    return parse_time_range(value) is not None


def ranges_overlap(a: TimeRange, b: TimeRange) -> bool:
    return a.start_minutes < b.end_minutes and b.start_minutes < a.end_minutes


def time_ranges_overlap(first: str | None, second: str | None) -> bool:
    # Unparseable ranges never conflict; write paths reject them before getting here.
    a = parse_time_range(first)
    b = parse_time_range(second)
    if a is None or b is None:
        return False
    return ranges_overlap(a, b)


def normalize_time_range(value: str) -> str | None:
    parsed = parse_time_range(value)
    return str(parsed) if parsed is not None else None


def minutes_to_hhmm(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def _format_12h(minutes: int) -> str:
    hours, mins = divmod(minutes, 60)
    period = "PM" if hours >= 12 else "AM"
    return f"{hours % 12 or 12}:{mins:02d} {period}"


def format_time_range_12h(value: str) -> str:
    parsed = parse_time_range(value)
    if parsed is None:
        return value
    return f"{_format_12h(parsed.start_minutes)} - {_format_12h(parsed.end_minutes)}"
