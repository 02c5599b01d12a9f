from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

from .booking import is_valid_range, parse_clock

logger = logging.getLogger(__name__)

DEFAULT_VENUES: tuple[str, ...] = (
    "101",
    "102",
    "103",
    "104",
    "201",
    "202",
    "203",
    "204",
    "301",
    "302",
    "303",
    "304",
    "STEM Room",
    "Music Room",
    "Activity Room",
    "English Room",
    "Library",
    "Cooking Corner",
    "G01 eSports Room",
    "Counselling Room",
    "G02",
    "G03",
    "Hall",
    "Playground",
    "Squash Court",
    "Climbing Wall",
)

DEFAULT_OPEN_TIME = "08:00"
DEFAULT_CLOSE_TIME = "22:00"
DEFAULT_SLOT_GRANULARITY_MINUTES = 30
DEFAULT_SUGGESTION_LIMIT = 3


def _safe_int(env_var: str, default: str) -> int:
    raw = os.getenv(env_var, default)
    try:
        return int(raw)
    except (ValueError, TypeError):
        raise ValueError(f"Invalid integer for {env_var}: {raw!r}") from None


def _safe_float(env_var: str, default: str) -> float:
    raw = os.getenv(env_var, default)
    try:
        return float(raw)
    except (ValueError, TypeError):
        raise ValueError(f"Invalid float for {env_var}: {raw!r}") from None


def _safe_bool(env_var: str, default: str) -> bool:
    raw = os.getenv(env_var, default).strip().lower()
    if raw in {"1", "true", "yes", "on"}:
        return True
    if raw in {"0", "false", "no", "off", ""}:
        return False
    raise ValueError(f"Invalid boolean for {env_var}: {raw!r}")


def _venues_from_env(raw: str | None) -> tuple[str, ...]:
    if not raw:
        return DEFAULT_VENUES
    venues = tuple(item.strip() for item in raw.split(",") if item.strip())
    return venues or DEFAULT_VENUES


@dataclass(frozen=True)
class AiConfig:
    """Settings for the chat-completions endpoint used for slot suggestions."""

    api_url: str = "https://api.deepseek.com/chat/completions"
    api_key: str = ""
    model: str = "deepseek-chat"
    temperature: float = 0.3
    max_tokens: int = 500
    timeout_seconds: float = 8.0

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)


@dataclass(frozen=True)
class BookingConfig:
    venues: tuple[str, ...] = DEFAULT_VENUES
    open_time: str = DEFAULT_OPEN_TIME
    close_time: str = DEFAULT_CLOSE_TIME
    slot_granularity_minutes: int = DEFAULT_SLOT_GRANULARITY_MINUTES
    suggestion_limit: int = DEFAULT_SUGGESTION_LIMIT
    admin_password: str = ""
    seed_sample_data: bool = False
    data_dir: str = ""
    ai: AiConfig = field(default_factory=AiConfig)

    def __post_init__(self) -> None:
        parse_clock(self.open_time)
        parse_clock(self.close_time)
        if not is_valid_range(self.open_time, self.close_time):
            raise ValueError("Business open time must be earlier than close time.")
        if self.slot_granularity_minutes <= 0:
            raise ValueError("slot_granularity_minutes must be greater than zero")
        if self.suggestion_limit < 0:
            raise ValueError("suggestion_limit must not be negative")
        if not self.venues:
            raise ValueError("venues must not be empty")

    def is_known_venue(self, venue: str) -> bool:
        return venue in self.venues


def load_config() -> BookingConfig:
    """Build a ``BookingConfig`` from the process environment."""
    load_dotenv()

    ai = AiConfig(
        api_url=os.getenv("AI_API_URL", AiConfig.api_url),
        api_key=os.getenv("AI_API_KEY", ""),
        model=os.getenv("AI_MODEL", AiConfig.model),
        temperature=_safe_float("AI_TEMPERATURE", "0.3"),
        max_tokens=_safe_int("AI_MAX_TOKENS", "500"),
        timeout_seconds=_safe_float("AI_TIMEOUT_SECONDS", "8"),
    )
    config = BookingConfig(
        venues=_venues_from_env(os.getenv("VENUES")),
        open_time=os.getenv("BUSINESS_OPEN_TIME", DEFAULT_OPEN_TIME),
        close_time=os.getenv("BUSINESS_CLOSE_TIME", DEFAULT_CLOSE_TIME),
        slot_granularity_minutes=_safe_int("SLOT_GRANULARITY_MINUTES", str(DEFAULT_SLOT_GRANULARITY_MINUTES)),
        suggestion_limit=_safe_int("SUGGESTION_LIMIT", str(DEFAULT_SUGGESTION_LIMIT)),
        admin_password=os.getenv("ADMIN_PASSWORD", ""),
        seed_sample_data=_safe_bool("SEED_SAMPLE_DATA", "false"),
        data_dir=os.getenv("DATA_DIR", ""),
        ai=ai,
    )
    if not ai.enabled:
        logger.info("AI_API_KEY not set; slot suggestions will use the fallback generator")
    return config
