from __future__ import annotations

import logging
from typing import Any

from flask import Flask, jsonify, request

from .ai_client import AiSuggestionClient
from .config import BookingConfig, load_config
from .conflicts import STATUS_ERROR, ConflictChecker, SlotSuggester, normalize_dates
from .engine import BookingEngine, BookingRequest, BookingValidationError
from .store import BookingStorageError, BookingStore, InMemoryBookingStore
from .yaml_store import BookingYamlStore

logger = logging.getLogger(__name__)


def _default_store(config: BookingConfig) -> BookingStore:
    if config.data_dir:
        return BookingYamlStore(config.data_dir)
    return InMemoryBookingStore()


def create_app(
    store: BookingStore | None = None,
    config: BookingConfig | None = None,
    suggester: SlotSuggester | None = None,
) -> Flask:
    app = Flask(__name__)
    config = config or load_config()
    store = store if store is not None else _default_store(config)
    if config.seed_sample_data:
        store.seed_sample_data()

    checker = ConflictChecker(store, suggester or AiSuggestionClient(config), config)
    engine = BookingEngine(store, config)

    app.config["BOOKING_STORE"] = store
    app.config["BOOKING_CONFIG"] = config

    @app.after_request
    def add_cors_headers(response: Any) -> Any:
        response.headers["Access-Control-Allow-Origin"] = "*"
        response.headers["Access-Control-Allow-Methods"] = "GET,POST,DELETE,OPTIONS"
        response.headers["Access-Control-Allow-Headers"] = "Content-Type,X-Admin-Password"
        return response

    @app.get("/api/config")
    def get_config() -> Any:
        return jsonify(
            {
                "venues": list(config.venues),
                "businessHours": {"open": config.open_time, "close": config.close_time},
                "slotGranularityMinutes": config.slot_granularity_minutes,
            }
        )

    @app.post("/api/check-conflicts")
    def check_conflicts() -> Any:
        payload = request.get_json(silent=True) or {}
        venue = str(payload.get("venue") or "").strip()
        dates = normalize_dates(payload)

        try:
            report = checker.check(venue, dates, payload.get("startTime"), payload.get("endTime"))
        except BookingStorageError:
            logger.exception("Conflict check failed for %s", venue)
            return jsonify({"status": STATUS_ERROR, "conflicts": [], "error": "Database error"}), 500

        return jsonify(report.to_dict())

    @app.post("/api/bookings")
    def create_bookings() -> Any:
        payload = request.get_json(silent=True) or {}
        booking_request = BookingRequest.from_payload(payload)

        try:
            result = engine.submit(booking_request)
        except BookingValidationError as error:
            return jsonify({"success": False, "message": str(error)}), 400

        return jsonify(result.to_dict()), result.status_code

    @app.get("/api/bookings")
    def list_bookings() -> Any:
        start_date = request.args.get("startDate") or None
        end_date = request.args.get("endDate") or None
        try:
            rows = store.find_by_date_range(start_date, end_date)
        except BookingStorageError:
            logger.exception("Listing bookings failed")
            return jsonify({"error": "Database error"}), 500
        return jsonify([row.to_dict() for row in rows])

    @app.delete("/api/bookings/<int:booking_id>")
    def delete_booking(booking_id: int) -> Any:
        try:
            changed = store.delete_by_id(booking_id)
        except BookingStorageError:
            logger.exception("Deleting booking %s failed", booking_id)
            return jsonify({"error": "Database error"}), 500

        if changed == 0:
            return jsonify({"error": "Booking not found"}), 404
        return jsonify({"success": True})

    @app.delete("/api/bookings")
    def delete_all_bookings() -> Any:
        if config.admin_password and request.headers.get("X-Admin-Password") != config.admin_password:
            return jsonify({"success": False, "message": "Admin password required."}), 403

        try:
            removed = store.delete_all()
        except BookingStorageError:
            logger.exception("Deleting all bookings failed")
            return jsonify({"error": "Database error"}), 500

        logger.info("Deleted all %d booking(s)", removed)
        return jsonify({"success": True, "deleted": removed})

    return app


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    app = create_app()
    app.run(host="127.0.0.1", port=3001, debug=False)
