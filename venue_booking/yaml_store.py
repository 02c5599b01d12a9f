from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any, Callable
import logging
import shutil

import yaml

from .store import BookingRecord, BookingStorageError, BookingStore

logger = logging.getLogger(__name__)

EMPTY_YAML_LIST = "[]\n"


class BookingYamlStore(BookingStore):
    """Booking store persisted as YAML lists under ``base_dir``.

    ``bookings.yaml`` holds the rows, ``booking_sequence.yaml`` the last
    allocated id and ``booking_events.yaml`` an append-only change log.
    """

    def __init__(self, base_dir: str | Path = "data", clock: Callable[[], datetime] | None = None) -> None:
        super().__init__(clock)
        self.base_dir = Path(base_dir)
        self.bookings_file = self.base_dir / "bookings.yaml"
        self.sequence_file = self.base_dir / "booking_sequence.yaml"
        self.log_file = self.base_dir / "booking_events.yaml"
        self._ensure_files()
        self._last_id = self._read_last_id()

    def _ensure_files(self) -> None:
        try:
            self.base_dir.mkdir(parents=True, exist_ok=True)
        except OSError as error:
            raise BookingStorageError(f"Failed to create data directory: {self.base_dir}") from error
        for path in (self.bookings_file, self.log_file):
            if not path.exists():
                self._reset_yaml_list(path)

    def _reset_yaml_list(self, path: Path) -> None:
        try:
            path.write_text(EMPTY_YAML_LIST, encoding="utf-8")
        except OSError as error:
            raise BookingStorageError(f"Failed to reset YAML file: {path}") from error

    def _read_yaml_list(self, path: Path) -> list[dict[str, Any]]:
        try:
            payload = yaml.safe_load(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            self._reset_yaml_list(path)
            return []
        except OSError as error:
            # Unreadable is not corrupted; leave the file alone.
            raise BookingStorageError(f"Failed to read YAML file: {path}") from error
        except (UnicodeDecodeError, yaml.YAMLError) as error:
            self._recover_corrupted_yaml(path, error)
            return []

        if payload is None:
            return []
        if not isinstance(payload, list):
            self._recover_corrupted_yaml(path, ValueError("top-level YAML is not a list"))
            return []

        sanitized: list[dict[str, Any]] = []
        for index, row in enumerate(payload):
            if isinstance(row, dict):
                sanitized.append(row)
            elif path != self.log_file:
                self._record_event(
                    "YAML_ROW_SKIPPED",
                    {
                        "file": str(path.name),
                        "index": index,
                        "reason": "row is not a mapping",
                    },
                )
        return sanitized

    def _write_yaml(self, path: Path, payload: Any) -> None:
        temp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            temp_path.write_text(yaml.safe_dump(payload, allow_unicode=True, sort_keys=False), encoding="utf-8")
            temp_path.replace(path)
        except OSError as error:
            raise BookingStorageError(f"Failed to write YAML file: {path}") from error
        finally:
            if temp_path.exists():
                temp_path.unlink(missing_ok=True)

    def _recover_corrupted_yaml(self, path: Path, error: Exception) -> None:
        timestamp = datetime.now().strftime("%Y%m%d%H%M%S")
        backup_path = path.with_name(f"{path.stem}.corrupt.{timestamp}{path.suffix}")
        try:
            if path.exists():
                shutil.copy2(path, backup_path)
        except OSError:
            logger.warning("Could not back up corrupted YAML file %s", path)

        self._reset_yaml_list(path)
        if path != self.log_file:
            self._record_event(
                "YAML_RECOVERED",
                {
                    "file": str(path.name),
                    "backup": str(backup_path.name),
                    "reason": str(error),
                },
            )

    def _log_event(self, event_type: str, payload: dict[str, Any], event_time: datetime | None = None) -> None:
        super()._log_event(event_type, payload)
        timestamp = (event_time or self._now()).isoformat(timespec="seconds")
        with self._lock:
            events = self._read_yaml_list(self.log_file)
            events.append({"event_time": timestamp, "event_type": event_type, "payload": payload})
            self._write_yaml(self.log_file, events)

    def _read_last_id(self) -> int:
        stored = 0
        if self.sequence_file.exists():
            try:
                payload = yaml.safe_load(self.sequence_file.read_text(encoding="utf-8")) or {}
                stored = int(payload.get("last_id", 0)) if isinstance(payload, dict) else 0
            except (OSError, UnicodeDecodeError, yaml.YAMLError, TypeError, ValueError):
                stored = 0

        highest_row = max((row.booking_id for row in self._load_rows()), default=0)
        return max(stored, highest_row)

    def _load_rows(self) -> list[BookingRecord]:
        records: list[BookingRecord] = []
        for index, row in enumerate(self._read_yaml_list(self.bookings_file)):
            try:
                records.append(BookingRecord.from_dict(row))
            except (KeyError, TypeError, ValueError) as error:
                self._record_event(
                    "YAML_ROW_SKIPPED",
                    {
                        "file": str(self.bookings_file.name),
                        "index": index,
                        "reason": str(error),
                    },
                )
        return records

    def _save_rows(self, rows: list[BookingRecord]) -> None:
        self._write_yaml(self.bookings_file, [row.to_dict() for row in rows])

    def _allocate_id(self) -> int:
        with self._lock:
            self._last_id += 1
            self._write_yaml(self.sequence_file, {"last_id": self._last_id})
            return self._last_id
