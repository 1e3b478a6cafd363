"""
Book form - the create/edit draft behind the three-step book wizard.

    CLEAN --edit--> DIRTY --submit--> SUBMITTING --ok--> PERSISTED
      ^               |                   |
      +--revert/------+                   +--failure--> DIRTY
         cancel

Steps: 1 basic information (title, author, cover, format), 2 book details
(dates, pages, publisher, genres), 3 personal evaluation (rating, review,
characters, quotes, would read again, would recommend).
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from books import (
    DEFAULT_FORMAT,
    FORMATS,
    MAX_RATING,
    MIN_RATING,
    READ_AGAIN_CHOICES,
    BookTrackerError,
    ValidationError,
    parse_date,
    utc_now_iso,
)

logger = logging.getLogger(__name__)

CLEAN = "clean"
DIRTY = "dirty"
SUBMITTING = "submitting"
PERSISTED = "persisted"

STEPS = ("basic", "details", "personal")
TOTAL_STEPS = len(STEPS)

TEXT_FIELDS = ("title", "author", "cover_image", "review", "publisher")
DATE_FIELDS = ("release_date", "start_reading_date", "finish_reading_date")
LIST_FIELDS = ("genres", "characters", "quotes")
FIELDS = TEXT_FIELDS + DATE_FIELDS + LIST_FIELDS + (
    "rating", "pages", "format", "would_read_again", "would_recommend",
)

STEP_FIELDS = {
    1: ("title", "author", "cover_image", "format"),
    2: DATE_FIELDS + ("pages", "publisher", "genres"),
    3: ("rating", "review", "characters", "quotes", "would_read_again", "would_recommend"),
}

FINISH_BEFORE_START = "The finish date cannot be before the start date."

_TRUE = {"true", "yes", "1", "on"}
_FALSE = {"false", "no", "0", "off"}


def empty_draft() -> Dict[str, Any]:
    draft: Dict[str, Any] = {name: "" for name in TEXT_FIELDS + DATE_FIELDS}
    draft.update({name: [] for name in LIST_FIELDS})
    draft.update(
        rating=None,
        pages=None,
        format=DEFAULT_FORMAT,
        would_read_again=None,
        would_recommend=None,
    )
    return draft


def draft_from_book(book: dict) -> Dict[str, Any]:
    """Form values for a stored book: missing text becomes '', missing lists []."""
    draft = empty_draft()
    for name in TEXT_FIELDS + DATE_FIELDS:
        draft[name] = book.get(name) or ""
    for name in LIST_FIELDS:
        draft[name] = list(book.get(name) or [])
    draft["rating"] = book.get("rating") or None
    draft["pages"] = book.get("pages") or None
    draft["format"] = book.get("format") or DEFAULT_FORMAT
    draft["would_read_again"] = book.get("would_read_again") or None
    draft["would_recommend"] = book.get("would_recommend")
    return draft


def _copy(draft: Dict[str, Any]) -> Dict[str, Any]:
    return {k: list(v) if isinstance(v, list) else v for k, v in draft.items()}


def reading_progress(start_reading_date, finish_reading_date) -> int:
    """0 before starting, 100 once finished, 50 in between."""
    if not start_reading_date:
        return 0
    if finish_reading_date:
        return 100
    return 50


# ============================================================================
# FIELD COERCION
# ============================================================================

def _blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def coerce_field(name: str, value):
    """Turn raw input (usually form strings) into the draft value for ``name``."""
    if name in TEXT_FIELDS:
        return "" if value is None else str(value)

    if name in DATE_FIELDS:
        if _blank(value):
            return ""
        parsed = parse_date(value)
        if parsed is None:
            raise ValidationError(name, f"'{value}' is not a valid date.")
        return parsed.isoformat()

    if name in LIST_FIELDS:
        if value is None:
            return []
        if isinstance(value, str):
            value = [value]
        return [str(v) for v in value]

    if name == "rating":
        if _blank(value):
            return None
        try:
            rating = int(value)
        except (TypeError, ValueError):
            raise ValidationError(name, "Rating must be a whole number.")
        if not MIN_RATING <= rating <= MAX_RATING:
            raise ValidationError(
                name, f"Rating must be between {MIN_RATING} and {MAX_RATING}."
            )
        return rating

    if name == "pages":
        if _blank(value):
            return None
        try:
            pages = int(value)
        except (TypeError, ValueError):
            raise ValidationError(name, "Pages must be a whole number.")
        if pages <= 0:
            raise ValidationError(name, "Pages must be a positive number.")
        return pages

    if name == "format":
        if value not in FORMATS:
            raise ValidationError(name, f"Format must be one of {', '.join(FORMATS)}.")
        return value

    if name == "would_read_again":
        if _blank(value):
            return None
        if value not in READ_AGAIN_CHOICES:
            raise ValidationError(
                name, f"Would read again must be one of {', '.join(READ_AGAIN_CHOICES)}."
            )
        return value

    if name == "would_recommend":
        if _blank(value):
            return None
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
        raise ValidationError(name, "Would recommend must be yes or no.")

    raise KeyError(name)


def _or_none(value):
    if isinstance(value, str):
        value = value.strip()
    return value or None


# ============================================================================
# FORM
# ============================================================================

class BookForm:
    """Editable draft of one book, for a new record or an existing one."""

    def __init__(self, book: Optional[dict] = None):
        self.book = book
        self.original = draft_from_book(book) if book else empty_draft()
        self.draft = _copy(self.original)
        self.state = CLEAN
        self.step = 1
        self.errors: Dict[str, str] = {}
        self.error: Optional[str] = None
        self.confirming_exit = False
        self.saved = None

    # ---------------------- State ----------------------

    @property
    def is_new(self) -> bool:
        return self.book is None

    @property
    def is_dirty(self) -> bool:
        return self.draft != self.original

    @property
    def is_submitting(self) -> bool:
        return self.state == SUBMITTING

    @property
    def reading_progress(self) -> int:
        return reading_progress(
            self.draft["start_reading_date"], self.draft["finish_reading_date"]
        )

    def _refresh(self) -> None:
        if self.state in (CLEAN, DIRTY):
            self.state = DIRTY if self.is_dirty else CLEAN

    def _editable(self) -> bool:
        if self.state == SUBMITTING:
            logger.debug("Ignoring edit while submitting")
            return False
        return True

    # ---------------------- Editing ----------------------

    def set_field(self, name: str, value) -> bool:
        """Set one field; raises ValidationError when the value is unusable."""
        if name not in FIELDS:
            raise KeyError(name)
        if not self._editable():
            return False
        self.draft[name] = coerce_field(name, value)
        self.errors.pop(name, None)
        if name in ("start_reading_date", "finish_reading_date"):
            self.validate_dates()
        self._refresh()
        return True

    def update(self, values: Dict[str, Any]) -> Dict[str, str]:
        """Apply several fields, collecting validation messages per field."""
        for name, value in values.items():
            try:
                self.set_field(name, value)
            except ValidationError as e:
                self.errors[e.field] = e.message
        return self.errors

    def validate_dates(self) -> bool:
        """Clear a finish date that precedes the start date."""
        start = parse_date(self.draft["start_reading_date"])
        finish = parse_date(self.draft["finish_reading_date"])
        if start and finish and finish < start:
            self.draft["finish_reading_date"] = ""
            self.errors["finish_reading_date"] = FINISH_BEFORE_START
            return False
        return True

    def toggle_genre(self, genre: str) -> bool:
        if not self._editable():
            return False
        genres = self.draft["genres"]
        if genre in genres:
            self.draft["genres"] = [g for g in genres if g != genre]
        else:
            self.draft["genres"] = genres + [genre]
        self._refresh()
        return True

    def _append_unique(self, name: str, value: Optional[str]) -> bool:
        if not self._editable():
            return False
        value = (value or "").strip()
        if not value or value in self.draft[name]:
            return False
        self.draft[name] = self.draft[name] + [value]
        self._refresh()
        return True

    def _remove(self, name: str, value: str) -> bool:
        if not self._editable() or value not in self.draft[name]:
            return False
        self.draft[name] = [v for v in self.draft[name] if v != value]
        self._refresh()
        return True

    def add_custom_genre(self, genre: Optional[str]) -> bool:
        return self._append_unique("genres", genre)

    def add_character(self, character: Optional[str]) -> bool:
        return self._append_unique("characters", character)

    def remove_character(self, character: str) -> bool:
        return self._remove("characters", character)

    def add_quote(self, quote: Optional[str]) -> bool:
        return self._append_unique("quotes", quote)

    def remove_quote(self, quote: str) -> bool:
        return self._remove("quotes", quote)

    # ---------------------- Steps ----------------------

    def is_step_valid(self, step: Optional[int] = None) -> bool:
        """A step is valid when none of its fields carries an error."""
        step = self.step if step is None else step
        if step not in STEP_FIELDS:
            return False
        if any(name in self.errors for name in STEP_FIELDS[step]):
            return False
        if step == 1:
            return bool(self.draft["title"].strip() and self.draft["author"].strip())
        return True

    def step_of(self, name: str) -> int:
        return next(step for step, names in STEP_FIELDS.items() if name in names)

    def next_step(self) -> bool:
        if self.step >= TOTAL_STEPS:
            return False
        if not all(self.is_step_valid(s) for s in range(1, self.step + 1)):
            self._flag_required()
            return False
        self.step += 1
        return True

    def prev_step(self) -> bool:
        if self.step <= 1:
            return False
        self.step -= 1
        return True

    def go_to_step(self, step) -> int:
        """Jump to a step, stopping early at the first step that is not valid."""
        try:
            target = max(1, min(int(step), TOTAL_STEPS))
        except (TypeError, ValueError):
            target = 1
        self.step = 1
        while self.step < target and self.next_step():
            pass
        return self.step

    # ---------------------- Cancel ----------------------

    def request_cancel(self) -> str:
        """'leave' when nothing changed, otherwise 'confirm' (ask first)."""
        if self.is_dirty:
            self.confirming_exit = True
            return "confirm"
        return "leave"

    def confirm_cancel(self) -> str:
        self.draft = _copy(self.original)
        self.errors.clear()
        self.confirming_exit = False
        self.state = CLEAN
        return "leave"

    def decline_cancel(self) -> None:
        self.confirming_exit = False
        self._refresh()

    # ---------------------- Submit ----------------------

    def _flag_required(self) -> None:
        for name in ("title", "author"):
            if not self.draft[name].strip():
                self.errors[name] = f"{name.capitalize()} is required."

    def validate(self) -> None:
        """Raise ValidationError for the first missing required field or pending error."""
        for name in ("title", "author"):
            if not self.draft[name].strip():
                raise ValidationError(name, f"{name.capitalize()} is required.")
        if not self.validate_dates():
            raise ValidationError("finish_reading_date", FINISH_BEFORE_START)
        for name in FIELDS:
            if name in self.errors:
                raise ValidationError(name, self.errors[name])

    def build_payload(self, user_id: Optional[str] = None) -> Dict[str, Any]:
        """The row written to the database: blanks and empty lists become None."""
        d = self.draft
        payload = {
            "title": d["title"].strip(),
            "author": d["author"].strip(),
            "cover_image": _or_none(d["cover_image"]),
            "rating": d["rating"] or None,
            "review": _or_none(d["review"]),
            "release_date": _or_none(d["release_date"]),
            "start_reading_date": _or_none(d["start_reading_date"]),
            "finish_reading_date": _or_none(d["finish_reading_date"]),
            "pages": d["pages"] or None,
            "genres": list(d["genres"]) or None,
            "publisher": _or_none(d["publisher"]),
            "format": d["format"] or DEFAULT_FORMAT,
            "characters": list(d["characters"]) or None,
            "quotes": list(d["quotes"]) or None,
            "would_read_again": d["would_read_again"] or None,
            "would_recommend": d["would_recommend"],
            "updated_at": utc_now_iso(),
        }
        if user_id is not None:
            payload["user_id"] = user_id
        return payload

    def submit(self, persist: Callable[[dict], Any], user_id: Optional[str] = None) -> bool:
        """Validate, then hand one payload to ``persist``.

        Returns True once persisted. On a validation problem the offending
        field is recorded in ``errors`` and the wizard goes back to the step
        holding that field; on a persistence failure the message is kept in
        ``error``. In both cases the draft is left untouched.
        """
        if self.state == SUBMITTING:
            raise BookTrackerError("A save is already in progress.")
        self.error = None
        try:
            self.validate()
        except ValidationError as e:
            self.errors[e.field] = e.message
            self.step = min(self.step, self.step_of(e.field))
            return False

        payload = self.build_payload(user_id)
        self.state = SUBMITTING
        try:
            self.saved = persist(payload)
        except Exception as e:
            logger.warning("Saving '%s' failed: %s", payload["title"], e)
            self.error = str(e) or "An error occurred."
            self.state = CLEAN
            self._refresh()
            return False

        self.state = PERSISTED
        self.original = _copy(self.draft)
        self.errors.clear()
        return True
