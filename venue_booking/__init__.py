from .booking import TimeRange, can_reserve, has_time_overlap, is_valid_range, parse_booking_date, parse_clock
from .config import AiConfig, BookingConfig, load_config
from .suggestions import SuggestedSlot, generate_fallback_suggestions
from .store import (
	BookingDraft,
	BookingRecord,
	BookingStorageError,
	BookingStore,
	BookingTransaction,
	InMemoryBookingStore,
)
from .yaml_store import BookingYamlStore
from .conflicts import ConflictChecker, ConflictReport, FallbackSuggester, normalize_dates
from .engine import BookingEngine, BookingRequest, BookingValidationError, DateResult, SubmissionResult
from .ai_client import AiSuggestionClient, parse_suggestion_text

__all__ = [
	"TimeRange",
	"can_reserve",
	"has_time_overlap",
	"is_valid_range",
	"parse_booking_date",
	"parse_clock",
	"AiConfig",
	"BookingConfig",
	"load_config",
	"SuggestedSlot",
	"generate_fallback_suggestions",
	"BookingDraft",
	"BookingRecord",
	"BookingStorageError",
	"BookingStore",
	"BookingTransaction",
	"InMemoryBookingStore",
	"BookingYamlStore",
	"ConflictChecker",
	"ConflictReport",
	"FallbackSuggester",
	"normalize_dates",
	"BookingEngine",
	"BookingRequest",
	"BookingValidationError",
	"DateResult",
	"SubmissionResult",
	"AiSuggestionClient",
	"parse_suggestion_text",
]
