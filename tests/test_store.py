import tempfile
import unittest
from datetime import datetime
from pathlib import Path
from unittest import mock

from venue_booking import BookingDraft, BookingRecord, BookingStorageError, BookingYamlStore, InMemoryBookingStore
from venue_booking.store import KEY_LOCK_STRIPES


def _draft(venue: str = "101", booking_date: str = "2025-07-01", start: str = "09:00", end: str = "10:30") -> BookingDraft:
    return BookingDraft(
        venue=venue,
        booking_date=booking_date,
        start_time=start,
        end_time=end,
        person_in_charge="Zhang San",
        purpose="Team meeting",
    )


class BrokenEventLogYamlStore(BookingYamlStore):
    def _log_event(self, event_type, payload, event_time=None) -> None:
        if event_type == "BOOKING_CREATED":
            raise BookingStorageError("event log is read-only")
        super()._log_event(event_type, payload, event_time)


class StoreContractMixin:
    def make_store(self):
        raise NotImplementedError

    def test_insert_assigns_monotonic_ids(self) -> None:
        store = self.make_store()
        first = store.insert(_draft())
        second = store.insert(_draft(start="11:00", end="12:00"))
        store.delete_by_id(second)
        third = store.insert(_draft(start="13:00", end="14:00"))

        self.assertEqual(first, 1)
        self.assertEqual(second, 2)
        self.assertEqual(third, 3)

    def test_find_overlapping_filters_by_venue_date_and_time(self) -> None:
        store = self.make_store()
        hit = store.insert(_draft())
        store.insert(_draft(venue="102"))
        store.insert(_draft(booking_date="2025-07-02"))
        store.insert(_draft(start="10:30", end="11:00"))

        rows = store.find_overlapping("101", "2025-07-01", "09:30", "10:00")
        self.assertEqual([row.booking_id for row in rows], [hit])

    def test_find_by_venue_and_dates_keeps_store_order(self) -> None:
        store = self.make_store()
        a = store.insert(_draft(booking_date="2025-07-02"))
        b = store.insert(_draft(booking_date="2025-07-01"))
        store.insert(_draft(booking_date="2025-07-03"))
        store.insert(_draft(venue="102", booking_date="2025-07-01"))

        rows = store.find_by_venue_and_dates("101", ["2025-07-01", "2025-07-02"])
        self.assertEqual([row.booking_id for row in rows], [a, b])
        self.assertEqual(store.find_by_venue_and_dates("101", []), [])

    def test_find_by_date_range_orders_by_date_then_start(self) -> None:
        store = self.make_store()
        store.insert(_draft(booking_date="2025-07-02", start="08:00", end="09:00"))
        store.insert(_draft(booking_date="2025-07-01", start="14:00", end="15:00"))
        store.insert(_draft(booking_date="2025-07-01", start="09:00", end="10:00"))
        store.insert(_draft(booking_date="2025-07-05", start="09:00", end="10:00"))

        rows = store.find_by_date_range()
        self.assertEqual(
            [(row.booking_date, row.start_time) for row in rows],
            [("2025-07-01", "09:00"), ("2025-07-01", "14:00"), ("2025-07-02", "08:00"), ("2025-07-05", "09:00")],
        )

        bounded = store.find_by_date_range("2025-07-01", "2025-07-02")
        self.assertEqual(len(bounded), 3)
        self.assertEqual(len(store.find_by_date_range(start_date="2025-07-02")), 2)
        self.assertEqual(len(store.find_by_date_range(end_date="2025-07-01")), 2)

    def test_delete_by_id_reports_changed_count(self) -> None:
        store = self.make_store()
        booking_id = store.insert(_draft())

        self.assertEqual(store.delete_by_id(booking_id), 1)
        self.assertEqual(store.delete_by_id(booking_id), 0)
        self.assertIsNone(store.get(booking_id))

    def test_delete_all_removes_every_row(self) -> None:
        store = self.make_store()
        store.insert(_draft())
        store.insert(_draft(venue="102"))

        self.assertEqual(store.delete_all(), 2)
        self.assertEqual(store.all(), [])

    def test_transaction_commits_staged_insert_on_exit(self) -> None:
        store = self.make_store()
        with store.transaction("101", "2025-07-01") as unit:
            booking_id = unit.insert(_draft())
            self.assertIsNone(store.get(booking_id))
            self.assertEqual(len(unit.find_overlapping("09:00", "09:30")), 1)

        self.assertIsNotNone(store.get(booking_id))

    def test_transaction_rollback_discards_staged_insert(self) -> None:
        store = self.make_store()
        with store.transaction("101", "2025-07-01") as unit:
            booking_id = unit.insert(_draft())
            unit.rollback()

        self.assertIsNone(store.get(booking_id))
        self.assertEqual(store.all(), [])

    def test_transaction_rolls_back_when_block_raises(self) -> None:
        store = self.make_store()
        with self.assertRaises(RuntimeError):
            with store.transaction("101", "2025-07-01") as unit:
                unit.insert(_draft())
                raise RuntimeError("boom")

        self.assertEqual(store.all(), [])

    def test_transaction_rejects_draft_for_other_date(self) -> None:
        store = self.make_store()
        with self.assertRaises(BookingStorageError):
            with store.transaction("101", "2025-07-01") as unit:
                unit.insert(_draft(booking_date="2025-07-02"))

    def test_seed_sample_data(self) -> None:
        store = self.make_store()
        seeded = store.seed_sample_data(overwrite=True)

        self.assertEqual(len(seeded), 2)
        self.assertEqual({row.venue for row in seeded}, {"101", "102"})

    def test_seeding_twice_adds_nothing(self) -> None:
        store = self.make_store()
        store.seed_sample_data()

        self.assertEqual(store.seed_sample_data(), [])
        self.assertEqual(len(store.all()), 2)

    def test_seeding_skips_sample_slot_already_taken(self) -> None:
        store = self.make_store()
        taken = store.insert(_draft(start="09:30", end="10:00"))

        seeded = store.seed_sample_data()

        self.assertEqual([row.venue for row in seeded], ["102"])
        self.assertEqual([row.booking_id for row in store.find_overlapping("101", "2025-07-01", "09:00", "10:30")], [taken])

    def test_key_locks_are_stable_and_bounded(self) -> None:
        store = self.make_store()
        lock = store._lock_for("101", "2025-07-01")

        self.assertIs(store._lock_for("101", "2025-07-01"), lock)
        for day in range(1, 400):
            store._lock_for("101", f"2025-{day // 28 + 1:02d}-{day % 28 + 1:02d}")
        self.assertEqual(len(store._key_locks), KEY_LOCK_STRIPES)


class TestInMemoryBookingStore(StoreContractMixin, unittest.TestCase):
    def make_store(self) -> InMemoryBookingStore:
        return InMemoryBookingStore(clock=lambda: datetime(2025, 6, 30, 12, 0))

    def test_created_at_comes_from_store_clock(self) -> None:
        store = self.make_store()
        record = store.get(store.insert(_draft()))
        self.assertEqual(record.created_at, datetime(2025, 6, 30, 12, 0))


class TestBookingYamlStore(StoreContractMixin, unittest.TestCase):
    def setUp(self) -> None:
        self._temp_dir = tempfile.TemporaryDirectory()
        self.data_dir = Path(self._temp_dir.name) / "data"

    def tearDown(self) -> None:
        self._temp_dir.cleanup()

    def make_store(self) -> BookingYamlStore:
        return BookingYamlStore(self.data_dir, clock=lambda: datetime(2025, 6, 30, 12, 0))

    def test_rows_survive_reopening(self) -> None:
        store = self.make_store()
        booking_id = store.insert(_draft())

        reopened = self.make_store()
        record = reopened.get(booking_id)
        self.assertIsNotNone(record)
        self.assertEqual(record.person_in_charge, "Zhang San")
        self.assertEqual(reopened.insert(_draft(start="11:00", end="12:00")), booking_id + 1)

    def test_ids_are_not_reused_after_deleting_latest_row(self) -> None:
        store = self.make_store()
        store.insert(_draft())
        second = store.insert(_draft(start="11:00", end="12:00"))
        store.delete_by_id(second)

        reopened = self.make_store()
        self.assertEqual(reopened.insert(_draft(start="13:00", end="14:00")), second + 1)

    def test_logs_create_delete_and_clear_events(self) -> None:
        store = self.make_store()
        booking_id = store.insert(_draft())
        store.delete_by_id(booking_id)
        store.insert(_draft())
        store.delete_all()

        contents = store.log_file.read_text(encoding="utf-8")
        self.assertIn("BOOKING_CREATED", contents)
        self.assertIn("BOOKING_DELETED", contents)
        self.assertIn("BOOKINGS_CLEARED", contents)

    def test_recovers_from_corrupted_yaml(self) -> None:
        store = self.make_store()
        store.bookings_file.write_text("- [unterminated\n", encoding="utf-8")

        self.assertEqual(store.all(), [])
        backups = list(self.data_dir.glob("bookings.corrupt.*.yaml"))
        self.assertEqual(len(backups), 1)
        self.assertIn("YAML_RECOVERED", store.log_file.read_text(encoding="utf-8"))

    def test_skips_rows_that_are_not_mappings(self) -> None:
        store = self.make_store()
        store.insert(_draft())
        rows = store.bookings_file.read_text(encoding="utf-8")
        store.bookings_file.write_text(rows + "- just a string\n", encoding="utf-8")

        self.assertEqual(len(store.all()), 1)
        self.assertIn("YAML_ROW_SKIPPED", store.log_file.read_text(encoding="utf-8"))

    def test_event_log_failure_keeps_saved_insert(self) -> None:
        store = BrokenEventLogYamlStore(self.data_dir)

        with self.assertLogs("venue_booking.store", level="ERROR"):
            booking_id = store.insert(_draft())

        self.assertIsNotNone(store.get(booking_id))

    def test_unreadable_bookings_file_raises_without_resetting_it(self) -> None:
        store = self.make_store()
        store.insert(_draft())
        original = store.bookings_file.read_text(encoding="utf-8")

        with mock.patch.object(Path, "read_text", side_effect=PermissionError("denied")):
            with self.assertRaises(BookingStorageError):
                store.all()

        self.assertEqual(store.bookings_file.read_text(encoding="utf-8"), original)
        self.assertEqual(list(self.data_dir.glob("bookings.corrupt.*.yaml")), [])

    def test_failed_reset_of_corrupted_file_raises_storage_error(self) -> None:
        store = self.make_store()
        store.bookings_file.write_text("- [unterminated\n", encoding="utf-8")

        with mock.patch.object(Path, "write_text", side_effect=PermissionError("read-only")):
            with self.assertRaises(BookingStorageError):
                store.all()


class TestBookingRecord(unittest.TestCase):
    def test_dict_round_trip_uses_snake_case_columns(self) -> None:
        record = _draft().to_record(7, datetime(2025, 6, 30, 12, 0, 5))
        payload = record.to_dict()

        self.assertEqual(payload["id"], 7)
        self.assertEqual(payload["booking_date"], "2025-07-01")
        self.assertEqual(payload["username"], "Guest")
        self.assertEqual(BookingRecord.from_dict(payload), record)


if __name__ == "__main__":
    unittest.main()
