from __future__ import annotations

from pathlib import Path

from mcp.server.fastmcp import FastMCP

from venue_booking import BookingYamlStore, ConflictChecker, load_config
from venue_booking.ai_client import AiSuggestionClient

mcp = FastMCP(
    "Venue Booking MCP Server",
    instructions="Expose venue bookings and conflict checks from the venue_booking project.",
    json_response=True,
)

CONFIG = load_config()
DATA_DIR = Path(CONFIG.data_dir) if CONFIG.data_dir else Path(__file__).parent / "data"
STORE = BookingYamlStore(DATA_DIR)
CHECKER = ConflictChecker(STORE, AiSuggestionClient(CONFIG), CONFIG)


@mcp.resource("venue://venues")
async def list_venues() -> list[str]:
    """List bookable venue codes."""
    return list(CONFIG.venues)


@mcp.tool()
def list_bookings(start_date: str | None = None, end_date: str | None = None) -> list[dict]:
    """Return bookings ordered by date and start time, optionally within an inclusive date range."""
    return [record.to_dict() for record in STORE.find_by_date_range(start_date, end_date)]


@mcp.tool()
def check_conflicts(venue: str, dates: list[str], start_time: str, end_time: str) -> dict:
    """Check a venue for bookings overlapping HH:MM start/end on the given YYYY-MM-DD dates."""
    return CHECKER.check(venue, dates, start_time, end_time).to_dict()


def main() -> None:
    mcp.run()


if __name__ == "__main__":
    main()
