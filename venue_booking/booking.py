from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Iterable, Union

ClockValue = Union[str, time]

_CLOCK_RE = re.compile(r"^(?:[01]\d|2[0-3]):[0-5]\d$")


def parse_clock(value: ClockValue) -> time:
    """Parse a zero-padded 24h ``HH:MM`` string into a ``time``."""
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0)
    if not isinstance(value, str) or not _CLOCK_RE.match(value.strip()):
        raise ValueError(f"Invalid time of day: {value!r}. Expected format: HH:MM")
    hour, minute = value.strip().split(":")
    return time(int(hour), int(minute))


def format_clock(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def clock_minutes(value: ClockValue) -> int:
    parsed = parse_clock(value)
    return parsed.hour * 60 + parsed.minute


def minutes_between(start: ClockValue, end: ClockValue) -> int:
    return clock_minutes(end) - clock_minutes(start)


def parse_booking_date(value: str) -> date:
    if not isinstance(value, str) or not value.strip():
        raise ValueError("booking date must not be empty")
    try:
        return datetime.strptime(value.strip(), "%Y-%m-%d").date()
    except ValueError:
        raise ValueError(f"Invalid booking date: {value!r}. Expected format: YYYY-MM-DD") from None


def is_valid_range(start: ClockValue, end: ClockValue) -> bool:
    return parse_clock(start) < parse_clock(end)


@dataclass(frozen=True)
class TimeRange:
    start: time
    end: time

    def __post_init__(self) -> None:
        if self.start >= self.end:
            raise ValueError("Booking start time must be earlier than end time.")

    @classmethod
    def from_strings(cls, start: ClockValue, end: ClockValue) -> "TimeRange":
        return cls(parse_clock(start), parse_clock(end))

    @property
    def duration_minutes(self) -> int:
        return minutes_between(self.start, self.end)

    def overlaps(self, other: "TimeRange") -> bool:
        return has_time_overlap(self.start, self.end, other.start, other.end)


def has_time_overlap(new_start: ClockValue, new_end: ClockValue, exist_start: ClockValue, exist_end: ClockValue) -> bool:
    """Return True when two same-day intervals overlap by even one minute.

    Intervals are treated as half-open ranges: [start, end)
    so touching boundaries (e.g. 10:00-11:00 and 11:00-12:00) do not overlap.
    """
    return parse_clock(new_start) < parse_clock(exist_end) and parse_clock(exist_start) < parse_clock(new_end)


def can_reserve(new_start: ClockValue, new_end: ClockValue, existing_ranges: Iterable[TimeRange]) -> bool:
    """Return True if the requested interval does not overlap any existing range."""
    if not is_valid_range(new_start, new_end):
        raise ValueError("new_start must be earlier than new_end.")

    for existing in existing_ranges:
        if has_time_overlap(new_start, new_end, existing.start, existing.end):
            return False
    return True
