"""
Book records - shared vocabulary, errors and date helpers.

A book is a plain dict, exactly as the Supabase ``books`` table returns it:

    id, user_id, title, author, cover_image, rating, review, release_date,
    start_reading_date, finish_reading_date, pages, genres, publisher,
    format, characters, quotes, would_read_again, would_recommend,
    created_at, updated_at

Dates are ISO ``YYYY-MM-DD`` strings and timestamps are ISO 8601 strings.
"""

from datetime import date, datetime, timezone
from typing import Optional

# ============================================================================
# VOCABULARY
# ============================================================================

GENRES = (
    "action", "adventure", "biography", "science", "classic", "comedy",
    "tales", "chronicle", "drama", "education", "fantasy", "fiction",
    "philosophy", "gastronomy", "war", "history", "horror", "children",
    "manga", "mystery", "narrative", "novel", "poetry", "detective",
    "psychology", "romance", "scifi", "suspense", "thriller", "other",
)

FORMATS = ("physical", "digital")
DEFAULT_FORMAT = "physical"

READ_AGAIN_CHOICES = ("yes", "no", "maybe")

MIN_RATING = 1
MAX_RATING = 5

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# ============================================================================
# ERRORS
# ============================================================================


class BookTrackerError(Exception):
    """Base class for all book tracker errors."""


class ValidationError(BookTrackerError, ValueError):
    """Input rejected locally, before any collaborator is contacted."""

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field
        self.message = message


class AuthenticationError(BookTrackerError):
    """The auth service rejected a request or could not be reached."""


class PersistenceError(BookTrackerError):
    """The database rejected a request or could not be reached."""


# ============================================================================
# DATES
# ============================================================================

def parse_date(value) -> Optional[date]:
    """Parse an ISO date (or the date part of a timestamp). Blank gives None."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    s = str(value).strip()
    if not s:
        return None
    try:
        return date.fromisoformat(s[:10])
    except ValueError:
        return None


def parse_timestamp(value) -> Optional[datetime]:
    """Parse a Supabase timestamp into an aware datetime (UTC when naive)."""
    if value is None:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        s = str(value).strip()
        if not s:
            return None
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(s)
        except ValueError:
            d = parse_date(s)
            if d is None:
                return None
            dt = datetime(d.year, d.month, d.day)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ============================================================================
# READING STATUS
# ============================================================================

def reading_status(book: dict) -> str:
    """'completed', 'reading' or 'not_started'."""
    if book.get("finish_reading_date"):
        return "completed"
    if book.get("start_reading_date"):
        return "reading"
    return "not_started"


def reading_days(book: dict) -> Optional[int]:
    """Whole days between start and finish, or None unless both are set."""
    start = parse_date(book.get("start_reading_date"))
    finish = parse_date(book.get("finish_reading_date"))
    if start is None or finish is None:
        return None
    return abs((finish - start).days)
