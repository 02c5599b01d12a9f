from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from .booking import clock_minutes, format_clock, has_time_overlap
from .config import (
    DEFAULT_CLOSE_TIME,
    DEFAULT_OPEN_TIME,
    DEFAULT_SLOT_GRANULARITY_MINUTES,
    DEFAULT_SUGGESTION_LIMIT,
    BookingConfig,
)


@dataclass(frozen=True)
class SuggestedSlot:
    start_time: str
    end_time: str

    def to_dict(self) -> dict[str, str]:
        return {"startTime": self.start_time, "endTime": self.end_time}


def booking_interval(booking: Any) -> tuple[str, str]:
    """Return ``(start_time, end_time)`` for a record or a row mapping."""
    if isinstance(booking, Mapping):
        return str(booking["start_time"]), str(booking["end_time"])
    return booking.start_time, booking.end_time


def generate_fallback_suggestions(
    duration_minutes: int,
    existing_bookings: Iterable[Any],
    *,
    open_time: str = DEFAULT_OPEN_TIME,
    close_time: str = DEFAULT_CLOSE_TIME,
    granularity_minutes: int = DEFAULT_SLOT_GRANULARITY_MINUTES,
    limit: int = DEFAULT_SUGGESTION_LIMIT,
) -> list[SuggestedSlot]:
    """Enumerate free same-day slots of ``duration_minutes`` inside business hours.

    Candidate slots start every ``granularity_minutes`` from ``open_time``;
    candidates running past ``close_time`` are dropped rather than clamped, as
    are candidates overlapping any existing booking. The first ``limit``
    survivors are returned in chronological order.
    """
    if duration_minutes <= 0 or limit <= 0:
        return []
    if granularity_minutes <= 0:
        raise ValueError("granularity_minutes must be greater than zero")

    busy = [booking_interval(booking) for booking in existing_bookings]
    opening = clock_minutes(open_time)
    closing = clock_minutes(close_time)

    suggestions: list[SuggestedSlot] = []
    slot_start = opening
    while slot_start < closing and len(suggestions) < limit:
        slot_end = slot_start + duration_minutes
        if slot_end > closing:
            break

        start_text = format_clock(slot_start)
        end_text = format_clock(slot_end)
        if not any(has_time_overlap(start_text, end_text, busy_start, busy_end) for busy_start, busy_end in busy):
            suggestions.append(SuggestedSlot(start_text, end_text))
        slot_start += granularity_minutes

    return suggestions


def fallback_for_config(config: BookingConfig, duration_minutes: int, existing_bookings: Iterable[Any]) -> list[SuggestedSlot]:
    return generate_fallback_suggestions(
        duration_minutes,
        existing_bookings,
        open_time=config.open_time,
        close_time=config.close_time,
        granularity_minutes=config.slot_granularity_minutes,
        limit=config.suggestion_limit,
    )
