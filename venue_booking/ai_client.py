from __future__ import annotations

import json
import logging
import re
import time
from typing import Any, Iterable, Mapping, Sequence

import requests

from .booking import clock_minutes, has_time_overlap, is_valid_range, minutes_between
from .config import BookingConfig
from .suggestions import SuggestedSlot, booking_interval, fallback_for_config

logger = logging.getLogger(__name__)

_JSON_ARRAY_RE = re.compile(r"\[[\s\S]*?\]")
_READ_CHUNK_BYTES = 1024

SYSTEM_PROMPT = (
    "You are a helpful assistant for a venue booking system. "
    "Reply only with a JSON array of time suggestions."
)


class SuggestionParseError(ValueError):
    pass


def parse_suggestion_text(text: str) -> list[dict[str, Any]]:
    """Extract the first JSON array embedded in free text."""
    if not text:
        raise SuggestionParseError("empty completion content")

    match = _JSON_ARRAY_RE.search(text)
    if not match:
        raise SuggestionParseError("no JSON array found in completion content")

    try:
        payload = json.loads(match.group(0))
    except json.JSONDecodeError as error:
        raise SuggestionParseError(f"invalid JSON array: {error}") from error

    if not isinstance(payload, list):
        raise SuggestionParseError("completion JSON is not an array")
    return [item for item in payload if isinstance(item, dict)]


def build_prompt(
    venue: str,
    booking_date: str,
    start_time: str,
    end_time: str,
    existing_bookings: Iterable[Any],
    config: BookingConfig,
) -> str:
    duration = minutes_between(start_time, end_time)
    lines = []
    for booking in existing_bookings:
        busy_start, busy_end = booking_interval(booking)
        purpose = booking.get("purpose") if isinstance(booking, Mapping) else getattr(booking, "purpose", None)
        lines.append(f"- {busy_start} to {busy_end} (purpose: {purpose or 'n/a'})")
    existing_text = "\n".join(lines) or "- none"

    return (
        f'A user wants to book "{venue}" on {booking_date} from {start_time} to {end_time}, '
        "but that window is already taken.\n"
        f"Existing bookings:\n{existing_text}\n\n"
        f"Suggest {config.suggestion_limit} other available windows on the same day.\n"
        f"- Business hours: {config.open_time}-{config.close_time}\n"
        "- Suggestions must not overlap existing bookings\n"
        f"- Each suggestion must last {duration} minutes (like {start_time} to {end_time})\n\n"
        "Respond in JSON only, returning just the array and no other text:\n"
        '[{"startTime": "HH:MM", "endTime": "HH:MM"}, ...]'
    )


class AiSuggestionClient:
    def __init__(self, config: BookingConfig, session: requests.Session | None = None) -> None:
        self.config = config
        self.session = session or requests.Session()

    def suggest(
        self,
        venue: str,
        booking_date: str,
        start_time: str,
        end_time: str,
        conflicting_bookings: Sequence[Any],
        existing_bookings: Sequence[Any] | None = None,
    ) -> list[SuggestedSlot]:
        """Return up to ``suggestion_limit`` alternative slots; never raises."""
        busy = list(existing_bookings) if existing_bookings is not None else list(conflicting_bookings)
        duration = minutes_between(start_time, end_time)

        if not self.config.ai.enabled:
            return fallback_for_config(self.config, duration, busy)

        try:
            content = self._request_completion(venue, booking_date, start_time, end_time, busy)
            suggestions = self._validated(parse_suggestion_text(content), duration, busy)
        except requests.RequestException as error:
            logger.warning("AI suggestion request failed: %s", error)
        except (SuggestionParseError, KeyError, IndexError, TypeError, ValueError) as error:
            logger.warning("AI suggestion response unusable: %s", error)
        else:
            if suggestions:
                return suggestions
            logger.warning("AI suggestion response contained no usable slots")

        return fallback_for_config(self.config, duration, busy)

    def _request_completion(
        self,
        venue: str,
        booking_date: str,
        start_time: str,
        end_time: str,
        busy: Sequence[Any],
    ) -> str:
        """POST the prompt and return the reply text.

        The ``requests`` timeout bounds each connect and socket read, so the
        body is streamed and the whole call is cut off at ``timeout_seconds``.
        """
        ai = self.config.ai
        logger.info("Requesting AI suggestions for %s on %s (%s-%s)", venue, booking_date, start_time, end_time)
        deadline = time.monotonic() + ai.timeout_seconds
        response = self.session.post(
            ai.api_url,
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {ai.api_key}",
            },
            json={
                "model": ai.model,
                "messages": [
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": build_prompt(venue, booking_date, start_time, end_time, busy, self.config)},
                ],
                "temperature": ai.temperature,
                "max_tokens": ai.max_tokens,
                "stream": False,
            },
            timeout=ai.timeout_seconds,
            stream=True,
        )
        try:
            response.raise_for_status()
            body = bytearray()
            for chunk in response.iter_content(chunk_size=_READ_CHUNK_BYTES):
                if time.monotonic() > deadline:
                    raise requests.Timeout(f"AI completion took longer than {ai.timeout_seconds}s")
                body.extend(chunk)
        finally:
            response.close()

        data = json.loads(bytes(body))
        return str(data["choices"][0]["message"]["content"])

    def _validated(self, items: list[dict[str, Any]], duration: int, busy: Sequence[Any]) -> list[SuggestedSlot]:
        opening = clock_minutes(self.config.open_time)
        closing = clock_minutes(self.config.close_time)
        busy_intervals = [booking_interval(booking) for booking in busy]

        slots: list[SuggestedSlot] = []
        for item in items:
            start = str(item.get("startTime", "")).strip()
            end = str(item.get("endTime", "")).strip()
            try:
                if not is_valid_range(start, end):
                    continue
                if minutes_between(start, end) != duration:
                    continue
                if clock_minutes(start) < opening or clock_minutes(end) > closing:
                    continue
            except ValueError:
                continue
            if any(has_time_overlap(start, end, busy_start, busy_end) for busy_start, busy_end in busy_intervals):
                continue

            slot = SuggestedSlot(start, end)
            if slot not in slots:
                slots.append(slot)
            if len(slots) >= self.config.suggestion_limit:
                break
        return slots
