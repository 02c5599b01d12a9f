from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Callable, Iterable, Iterator

from .booking import ClockValue, has_time_overlap

logger = logging.getLogger(__name__)

ANONYMOUS_USER_ID = "anonymous"
ANONYMOUS_USERNAME = "Guest"

KEY_LOCK_STRIPES = 64


class BookingStorageError(RuntimeError):
    pass


def _optional_text(value: Any) -> str | None:
    return str(value) if value is not None else None


@dataclass(frozen=True)
class BookingDraft:
    """Field values for a booking row that has not been stored yet."""

    venue: str
    booking_date: str
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

    def to_record(self, booking_id: int, created_at: datetime) -> "BookingRecord":
        return BookingRecord(booking_id=booking_id, created_at=created_at, **asdict(self))


@dataclass(frozen=True)
class BookingRecord:
    booking_id: int
    venue: str
    booking_date: str
    start_time: str
    end_time: str
    person_in_charge: str
    created_at: datetime
    purpose: str | None = None
    event_name: str | None = None
    class_type: str | None = None
    pax: str | None = None
    remarks: str | None = None
    user_id: str = ANONYMOUS_USER_ID
    username: str = ANONYMOUS_USERNAME

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.booking_id,
            "user_id": self.user_id,
            "person_in_charge": self.person_in_charge,
            "venue": self.venue,
            "purpose": self.purpose,
            "event_name": self.event_name,
            "class_type": self.class_type,
            "pax": self.pax,
            "remarks": self.remarks,
            "booking_date": self.booking_date,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "username": self.username,
            "created_at": self.created_at.isoformat(timespec="seconds"),
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "BookingRecord":
        return BookingRecord(
            booking_id=int(data["id"]),
            venue=str(data["venue"]),
            booking_date=str(data["booking_date"]),
            start_time=str(data["start_time"]),
            end_time=str(data["end_time"]),
            person_in_charge=str(data["person_in_charge"]),
            created_at=datetime.fromisoformat(str(data["created_at"])),
            purpose=_optional_text(data.get("purpose")),
            event_name=_optional_text(data.get("event_name")),
            class_type=_optional_text(data.get("class_type")),
            pax=_optional_text(data.get("pax")),
            remarks=_optional_text(data.get("remarks")),
            user_id=str(data.get("user_id") or ANONYMOUS_USER_ID),
            username=str(data.get("username") or ANONYMOUS_USERNAME),
        )


SAMPLE_BOOKINGS = (
    BookingDraft(
        venue="101",
        booking_date="2025-07-01",
        start_time="09:00",
        end_time="10:30",
        person_in_charge="Zhang San",
        purpose="Team meeting",
        user_id="user-1",
        username="Zhang San",
    ),
    BookingDraft(
        venue="102",
        booking_date="2025-07-01",
        start_time="14:00",
        end_time="15:30",
        person_in_charge="Li Si",
        purpose="Client presentation",
        user_id="user-2",
        username="Li Si",
    ),
)


class BookingTransaction:
    """Check-then-insert unit scoped to one ``(venue, booking_date)`` pair.

    Inserts are staged and only become visible to other readers on commit.
    """

    def __init__(self, store: "BookingStore", venue: str, booking_date: str) -> None:
        self.store = store
        self.venue = venue
        self.booking_date = booking_date
        self._staged: list[BookingRecord] = []
        self._closed = False

    def find_overlapping(self, start_time: ClockValue, end_time: ClockValue) -> list[BookingRecord]:
        self._ensure_open()
        committed = self.store.find_overlapping(self.venue, self.booking_date, start_time, end_time)
        staged = [row for row in self._staged if has_time_overlap(start_time, end_time, row.start_time, row.end_time)]
        return committed + staged

    def insert(self, draft: BookingDraft) -> int:
        self._ensure_open()
        if draft.venue != self.venue or draft.booking_date != self.booking_date:
            raise BookingStorageError("Draft does not belong to this transaction's venue and date.")

        record = draft.to_record(self.store._allocate_id(), self.store._now())
        self._staged.append(record)
        return record.booking_id

    def rollback(self) -> None:
        if self._closed:
            return
        if self._staged:
            logger.debug("Rolling back %d staged booking(s) for %s on %s", len(self._staged), self.venue, self.booking_date)
        self._staged.clear()
        self._closed = True

    def commit(self) -> None:
        if self._closed:
            return
        staged = list(self._staged)
        self._staged.clear()
        self._closed = True
        if staged:
            self.store._append_records(staged)

    def _ensure_open(self) -> None:
        if self._closed:
            raise BookingStorageError("Transaction is already closed.")


class BookingStore:
    """Booking persistence contract.

    Subclasses provide row loading/saving and id allocation; queries,
    deletion and the keyed transaction discipline live here.
    """

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self._clock: Callable[[], datetime] = clock or datetime.now
        self._lock = threading.RLock()
        # Fixed pool: unrelated pairs may share a stripe, so the locks are reentrant.
        self._key_locks = tuple(threading.RLock() for _ in range(KEY_LOCK_STRIPES))

    def _load_rows(self) -> list[BookingRecord]:
        raise NotImplementedError

    def _save_rows(self, rows: list[BookingRecord]) -> None:
        raise NotImplementedError

    def _allocate_id(self) -> int:
        raise NotImplementedError

    def _log_event(self, event_type: str, payload: dict[str, Any]) -> None:
        logger.debug("%s %s", event_type, payload)

    def _now(self) -> datetime:
        return self._clock().replace(microsecond=0)

    def _append_records(self, records: list[BookingRecord]) -> None:
        with self._lock:
            rows = self._load_rows()
            rows.extend(records)
            self._save_rows(rows)
        for record in records:
            self._record_event(
                "BOOKING_CREATED",
                {
                    "id": record.booking_id,
                    "venue": record.venue,
                    "booking_date": record.booking_date,
                    "start_time": record.start_time,
                    "end_time": record.end_time,
                    "user_id": record.user_id,
                },
            )

    def _record_event(self, event_type: str, payload: dict[str, Any]) -> None:
        """Log a change that is already saved; a failing event log must not undo it."""
        try:
            self._log_event(event_type, payload)
        except (BookingStorageError, OSError):
            logger.exception("Failed to record %s event %s", event_type, payload)

    def _lock_for(self, venue: str, booking_date: str) -> threading.RLock:
        return self._key_locks[hash((venue, booking_date)) % len(self._key_locks)]

    @contextmanager
    def transaction(self, venue: str, booking_date: str) -> Iterator[BookingTransaction]:
        """Serialize check-then-insert for one ``(venue, booking_date)`` pair.

        Leaving the block normally commits staged inserts; an exception rolls
        them back and propagates.
        """
        with self._lock_for(venue, booking_date):
            unit = BookingTransaction(self, venue, booking_date)
            try:
                yield unit
            except BaseException:
                unit.rollback()
                raise
            unit.commit()

    def insert(self, draft: BookingDraft) -> int:
        record = draft.to_record(self._allocate_id(), self._now())
        self._append_records([record])
        return record.booking_id

    def get(self, booking_id: int) -> BookingRecord | None:
        for row in self.all():
            if row.booking_id == booking_id:
                return row
        return None

    def all(self) -> list[BookingRecord]:
        with self._lock:
            return self._load_rows()

    def find_overlapping(
        self,
        venue: str,
        booking_date: str,
        start_time: ClockValue,
        end_time: ClockValue,
    ) -> list[BookingRecord]:
        return [
            row
            for row in self.all()
            if row.venue == venue
            and row.booking_date == booking_date
            and has_time_overlap(start_time, end_time, row.start_time, row.end_time)
        ]

    def find_by_venue_and_dates(self, venue: str, dates: Iterable[str]) -> list[BookingRecord]:
        wanted = set(dates)
        if not wanted:
            return []
        return [row for row in self.all() if row.venue == venue and row.booking_date in wanted]

    def find_by_date_range(self, start_date: str | None = None, end_date: str | None = None) -> list[BookingRecord]:
        rows = self.all()
        if start_date:
            rows = [row for row in rows if row.booking_date >= start_date]
        if end_date:
            rows = [row for row in rows if row.booking_date <= end_date]
        return sorted(rows, key=lambda row: (row.booking_date, row.start_time, row.booking_id))

    def delete_by_id(self, booking_id: int) -> int:
        with self._lock:
            rows = self._load_rows()
            remaining = [row for row in rows if row.booking_id != booking_id]
            changed = len(rows) - len(remaining)
            if changed:
                self._save_rows(remaining)

        if changed:
            self._record_event("BOOKING_DELETED", {"id": booking_id})
        return changed

    def delete_all(self) -> int:
        with self._lock:
            removed = len(self._load_rows())
            self._save_rows([])

        self._record_event("BOOKINGS_CLEARED", {"count": removed})
        return removed

    def seed_sample_data(self, overwrite: bool = False) -> list[BookingRecord]:
        """Insert the sample bookings whose slots are still free.

        Seeding goes through the keyed transactions, so running it again on a
        populated store adds nothing.
        """
        if overwrite:
            self.delete_all()

        created: list[BookingRecord] = []
        for draft in SAMPLE_BOOKINGS:
            with self.transaction(draft.venue, draft.booking_date) as unit:
                if unit.find_overlapping(draft.start_time, draft.end_time):
                    continue
                booking_id = unit.insert(draft)
            record = self.get(booking_id)
            if record is not None:
                created.append(record)

        if created:
            self._record_event("SAMPLE_DATA_SEEDED", {"count": len(created), "overwrite": overwrite})
        return created


class InMemoryBookingStore(BookingStore):
    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        super().__init__(clock)
        self._rows: list[BookingRecord] = []
        self._last_id = 0

    def _load_rows(self) -> list[BookingRecord]:
        return list(self._rows)

    def _save_rows(self, rows: list[BookingRecord]) -> None:
        self._rows = list(rows)

    def _allocate_id(self) -> int:
        with self._lock:
            self._last_id += 1
            return self._last_id
