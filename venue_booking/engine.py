from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping

from .booking import is_valid_range, parse_booking_date, parse_clock
from .config import BookingConfig
from .store import ANONYMOUS_USER_ID, ANONYMOUS_USERNAME, BookingDraft, BookingStorageError, BookingStore

logger = logging.getLogger(__name__)

OUTCOME_SUCCESS = "success"
OUTCOME_PARTIAL = "partial"
OUTCOME_CONFLICT = "conflict"

REASON_CONFLICT = "conflict"
REASON_STORAGE_ERROR = "storage_error"

_OUTCOME_STATUS_CODES = {
    OUTCOME_SUCCESS: 201,
    OUTCOME_PARTIAL: 207,
    OUTCOME_CONFLICT: 409,
}


class BookingValidationError(ValueError):
    pass


def _optional_field(payload: Mapping[str, Any], key: str) -> str | None:
    value = payload.get(key)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(frozen=True)
class BookingRequest:
    venue: str
    dates: list[str]
    start_time: str
    end_time: str
    person_in_charge: str
    purpose: str | None = None
    event_name: str | None = None
    class_type: str | None = None
    pax: str | None = None
    remarks: str | None = None
    user_id: str = ANONYMOUS_USER_ID
    username: str = ANONYMOUS_USERNAME

    @staticmethod
    def from_payload(payload: Mapping[str, Any]) -> "BookingRequest":
        """Build a request from the camelCase JSON body of a submission."""
        acting_user = payload.get("actingUser") or payload.get("currentUser") or {}
        if not isinstance(acting_user, Mapping):
            acting_user = {}

        dates = payload.get("dates")
        return BookingRequest(
            venue=str(payload.get("venue") or "").strip(),
            dates=[item.strip() if isinstance(item, str) else item for item in dates] if isinstance(dates, list) else [],
            start_time=str(payload.get("startTime") or "").strip(),
            end_time=str(payload.get("endTime") or "").strip(),
            person_in_charge=str(payload.get("personInCharge") or "").strip(),
            purpose=_optional_field(payload, "purpose"),
            event_name=_optional_field(payload, "eventName"),
            class_type=_optional_field(payload, "classType"),
            pax=_optional_field(payload, "pax"),
            remarks=_optional_field(payload, "remarks"),
            user_id=str(acting_user.get("id") or ANONYMOUS_USER_ID),
            username=str(acting_user.get("username") or ANONYMOUS_USERNAME),
        )

    def draft_for(self, booking_date: str) -> BookingDraft:
        return BookingDraft(
            venue=self.venue,
            booking_date=booking_date,
            start_time=self.start_time,
            end_time=self.end_time,
            person_in_charge=self.person_in_charge,
            purpose=self.purpose,
            event_name=self.event_name,
            class_type=self.class_type,
            pax=self.pax,
            remarks=self.remarks,
            user_id=self.user_id,
            username=self.username,
        )


@dataclass(frozen=True)
class DateResult:
    date: str
    success: bool
    booking_id: int | None = None
    reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        if self.success:
            return {"date": self.date, "success": True, "bookingId": self.booking_id}
        return {"date": self.date, "success": False, "reason": self.reason}


@dataclass(frozen=True)
class SubmissionResult:
    results: list[DateResult] = field(default_factory=list)

    @property
    def succeeded(self) -> list[DateResult]:
        return [result for result in self.results if result.success]

    @property
    def failed(self) -> list[DateResult]:
        return [result for result in self.results if not result.success]

    @property
    def all_succeeded(self) -> bool:
        return bool(self.results) and not self.failed

    @property
    def outcome(self) -> str:
        if self.all_succeeded:
            return OUTCOME_SUCCESS
        if self.succeeded:
            return OUTCOME_PARTIAL
        return OUTCOME_CONFLICT

    @property
    def status_code(self) -> int:
        return _OUTCOME_STATUS_CODES[self.outcome]

    @property
    def message(self) -> str:
        if self.outcome == OUTCOME_SUCCESS:
            return "All bookings were created successfully."
        if self.outcome == OUTCOME_PARTIAL:
            failed_dates = ", ".join(result.date for result in self.failed)
            return f"Some bookings were created, but {failed_dates} failed because of conflicts or other errors."
        return "All bookings failed because of time conflicts or other errors."

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.all_succeeded,
            "outcome": self.outcome,
            "partial": self.outcome == OUTCOME_PARTIAL,
            "message": self.message,
            "results": [result.to_dict() for result in self.results],
            "details": {
                "success": [result.to_dict() for result in self.succeeded],
                "failed": [result.to_dict() for result in self.failed],
            },
        }


class BookingEngine:
    def __init__(self, store: BookingStore, config: BookingConfig | None = None) -> None:
        self.store = store
        self.config = config or BookingConfig()

    def validate(self, request: BookingRequest) -> None:
        """Raise ``BookingValidationError`` for a request that must not reach the store."""
        if not isinstance(request.dates, list) or not request.dates:
            raise BookingValidationError("Please provide a non-empty list of booking dates.")
        if any(not isinstance(item, str) or not item.strip() for item in request.dates):
            raise BookingValidationError("Booking dates must be non-empty strings.")

        duplicates = sorted({item for item in request.dates if request.dates.count(item) > 1})
        if duplicates:
            raise BookingValidationError(f"Duplicate booking dates: {', '.join(duplicates)}")

        for item in request.dates:
            try:
                parse_booking_date(item)
            except ValueError as error:
                raise BookingValidationError(str(error)) from None

        if not request.venue:
            raise BookingValidationError("Venue is required.")
        if not self.config.is_known_venue(request.venue):
            raise BookingValidationError(f"Unknown venue: {request.venue}")
        if not request.person_in_charge:
            raise BookingValidationError("Person in charge is required.")

        try:
            parse_clock(request.start_time)
            parse_clock(request.end_time)
        except ValueError as error:
            raise BookingValidationError(str(error)) from None
        if not is_valid_range(request.start_time, request.end_time):
            raise BookingValidationError("Start time must be earlier than end time.")

    def submit(self, request: BookingRequest) -> SubmissionResult:
        """Book every requested date independently.

        Each date is its own check-then-insert unit under the store's
        ``(venue, date)`` lock. A conflict or storage failure on one date
        never undoes or blocks another.
        """
        self.validate(request)

        results = [self._book_date(request, booking_date) for booking_date in request.dates]
        result = SubmissionResult(results)
        logger.info(
            "Submission for %s %s-%s: %s (%d booked, %d failed)",
            request.venue,
            request.start_time,
            request.end_time,
            result.outcome,
            len(result.succeeded),
            len(result.failed),
        )
        return result

    def _book_date(self, request: BookingRequest, booking_date: str) -> DateResult:
        try:
            with self.store.transaction(request.venue, booking_date) as unit:
                overlapping = unit.find_overlapping(request.start_time, request.end_time)
                if overlapping:
                    unit.rollback()
                    logger.info(
                        "Conflict for %s on %s %s-%s with booking(s) %s",
                        request.venue,
                        booking_date,
                        request.start_time,
                        request.end_time,
                        [row.booking_id for row in overlapping],
                    )
                    return DateResult(booking_date, False, reason=REASON_CONFLICT)

                booking_id = unit.insert(request.draft_for(booking_date))
        except (BookingStorageError, OSError):
            logger.exception("Storage failure while booking %s on %s", request.venue, booking_date)
            return DateResult(booking_date, False, reason=REASON_STORAGE_ERROR)

        return DateResult(booking_date, True, booking_id=booking_id)
