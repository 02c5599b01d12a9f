from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol, Sequence

from .booking import has_time_overlap, is_valid_range, minutes_between
from .config import BookingConfig
from .store import BookingRecord, BookingStore
from .suggestions import SuggestedSlot, fallback_for_config

logger = logging.getLogger(__name__)

STATUS_IDLE = "idle"
STATUS_AVAILABLE = "available"
STATUS_CONFLICT = "conflict"
STATUS_ERROR = "error"


class SlotSuggester(Protocol):
    def suggest(
        self,
        venue: str,
        booking_date: str,
        start_time: str,
        end_time: str,
        conflicting_bookings: Sequence[Any],
        existing_bookings: Sequence[Any] | None = None,
    ) -> list[SuggestedSlot]: ...


class FallbackSuggester:
    """Suggester backed only by the deterministic slot generator."""

    def __init__(self, config: BookingConfig) -> None:
        self.config = config

    def suggest(
        self,
        venue: str,
        booking_date: str,
        start_time: str,
        end_time: str,
        conflicting_bookings: Sequence[Any],
        existing_bookings: Sequence[Any] | None = None,
    ) -> list[SuggestedSlot]:
        busy = existing_bookings if existing_bookings is not None else conflicting_bookings
        return fallback_for_config(self.config, minutes_between(start_time, end_time), busy)


@dataclass(frozen=True)
class ConflictReport:
    status: str
    conflicts: list[BookingRecord] = field(default_factory=list)
    suggestions: list[SuggestedSlot] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "status": self.status,
            "conflicts": [record.to_dict() for record in self.conflicts],
        }
        if self.status == STATUS_CONFLICT:
            payload["suggestions"] = [slot.to_dict() for slot in self.suggestions]
        return payload


def normalize_dates(payload: Mapping[str, Any]) -> list[str]:
    """Read ``dates`` from a request payload, accepting the legacy single ``date``."""
    dates = payload.get("dates")
    if dates is None:
        single = payload.get("date")
        return [single] if single else []
    if isinstance(dates, str):
        return [dates]
    if not isinstance(dates, (list, tuple)):
        return []
    return list(dates)


class ConflictChecker:
    def __init__(self, store: BookingStore, suggester: SlotSuggester | None = None, config: BookingConfig | None = None) -> None:
        self.store = store
        self.config = config or BookingConfig()
        self.suggester: SlotSuggester = suggester or FallbackSuggester(self.config)

    def check(self, venue: str, dates: Sequence[str], start_time: str | None, end_time: str | None) -> ConflictReport:
        """Report stored bookings overlapping ``[start_time, end_time)`` on any of ``dates``.

        Incomplete or invalid input yields an ``idle`` report rather than an
        error. When conflicts exist, one suggestion set is computed for the
        first requested date.
        """
        if not dates or not start_time or not end_time or any(not item for item in dates):
            return ConflictReport(STATUS_IDLE)
        try:
            if not is_valid_range(start_time, end_time):
                return ConflictReport(STATUS_IDLE)
        except ValueError:
            return ConflictReport(STATUS_IDLE)

        ordered_dates = list(dict.fromkeys(str(item) for item in dates))
        candidates = self.store.find_by_venue_and_dates(venue, ordered_dates)

        conflicts: list[BookingRecord] = []
        for check_date in ordered_dates:
            conflicts.extend(
                row
                for row in candidates
                if row.booking_date == check_date and has_time_overlap(start_time, end_time, row.start_time, row.end_time)
            )

        if not conflicts:
            return ConflictReport(STATUS_AVAILABLE)

        anchor_date = ordered_dates[0]
        logger.info("Found %d conflicting booking(s) for %s on %s", len(conflicts), venue, ", ".join(ordered_dates))

        # Busy intervals: every row on the anchor date plus the conflicts found on later dates.
        busy = [row for row in candidates if row.booking_date == anchor_date]
        busy_ids = {row.booking_id for row in busy}
        busy.extend(row for row in conflicts if row.booking_id not in busy_ids)

        try:
            suggestions = self.suggester.suggest(
                venue,
                anchor_date,
                start_time,
                end_time,
                conflicts,
                existing_bookings=busy,
            )
        except Exception:
            logger.exception("Suggester failed for %s on %s; using fallback slots", venue, anchor_date)
            suggestions = FallbackSuggester(self.config).suggest(
                venue,
                anchor_date,
                start_time,
                end_time,
                conflicts,
                existing_bookings=busy,
            )
        return ConflictReport(STATUS_CONFLICT, conflicts, list(suggestions))
