from __future__ import annotations

import tempfile
import traceback
from pathlib import Path

from venue_booking import BookingConfig, BookingEngine, BookingRequest, BookingYamlStore, ConflictChecker


def main() -> int:
    print("[INFO] Venue Booking Quick Check")

    with tempfile.TemporaryDirectory() as temp_dir:
        data_dir = Path(temp_dir) / "data"
        store = BookingYamlStore(data_dir)
        config = BookingConfig()
        seeded = store.seed_sample_data(overwrite=True)
        print(f"[OK] Sample data seeded: {len(seeded)} records")

        checker = ConflictChecker(store, config=config)
        report = checker.check("101", ["2025-07-01"], "09:30", "10:00")
        print(f"[OK] 101 on 2025-07-01 09:30-10:00: {report.status} ({len(report.conflicts)} conflict(s))")
        for slot in report.suggestions:
            print(f"[OK] Suggested slot: {slot.start_time}-{slot.end_time}")

        adjacent = checker.check("101", ["2025-07-01"], "10:30", "11:00")
        print(f"[OK] 101 on 2025-07-01 10:30-11:00: {adjacent.status}")

        engine = BookingEngine(store, config)
        result = engine.submit(
            BookingRequest(
                venue="101",
                dates=["2025-07-01", "2025-07-02"],
                start_time="09:30",
                end_time="10:00",
                person_in_charge="Quick Check",
                purpose="Smoke test",
            )
        )
        print(f"[OK] Multi-date submission outcome: {result.outcome} (HTTP {result.status_code})")
        for item in result.results:
            print(f"[OK]   {item.date}: {'booked #' + str(item.booking_id) if item.success else item.reason}")

        print(f"[OK] Stored bookings: {len(store.all())}")
        print(f"[OK] Bookings YAML: {store.bookings_file}")
        print(f"[OK] Event Log YAML: {store.log_file}")

    print("[DONE] Quick check completed successfully.")
    return 0


if __name__ == "__main__":
    try:
        raise SystemExit(main())
    except Exception:
        print("[ERROR] Quick check failed.")
        traceback.print_exc()
        raise SystemExit(1)
