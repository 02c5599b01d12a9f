from __future__ import annotations

import json
from pathlib import Path
import sys
from urllib.parse import urlencode


def _read_payload() -> dict:
    raw = sys.stdin.read().strip()
    if not raw:
        return {}
    try:
        data = json.loads(raw)
        if isinstance(data, dict):
            return data
        return {}
    except json.JSONDecodeError:
        return {}


def _emit(status_code: int, payload: object) -> None:
    print(json.dumps({"status": status_code, "json": payload}, ensure_ascii=False))


def main() -> int:
    if len(sys.argv) < 2:
        print("missing action", file=sys.stderr)
        return 2

    action = sys.argv[1]
    payload = _read_payload()

    workspace_root = Path(__file__).resolve().parent.parent
    if str(workspace_root) not in sys.path:
        sys.path.insert(0, str(workspace_root))

    from venue_booking import BookingYamlStore
    from venue_booking.config import load_config
    from venue_booking.web_app import create_app

    config = load_config()
    app = create_app(store=BookingYamlStore(config.data_dir or "data"), config=config)
    client = app.test_client()

    if action == "config":
        response = client.get("/api/config")
    elif action == "check":
        response = client.post("/api/check-conflicts", json=payload)
    elif action == "submit":
        response = client.post("/api/bookings", json=payload)
    elif action == "list":
        query = {key: str(payload[key]) for key in ("startDate", "endDate") if payload.get(key)}
        response = client.get(f"/api/bookings?{urlencode(query)}" if query else "/api/bookings")
    elif action == "delete":
        response = client.delete(f"/api/bookings/{int(payload.get('id', 0))}")
    else:
        print(f"unsupported action: {action}", file=sys.stderr)
        return 2

    _emit(response.status_code, response.get_json())
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
