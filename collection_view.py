"""
Collection view - search, filter, sort and paginate an owner's books.

The whole collection is fetched once; every change of search text, genre
selection, judgment filter, sort key or page re-runs ``compute_view`` over
it. Nothing here talks to Supabase.
"""

import math
import unicodedata
from collections import Counter
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from books import EPOCH, parse_date, parse_timestamp

PAGE_SIZE = 12
PAGE_WINDOW = 5
TOP_GENRES = 3

ALL = "all"
RECOMMEND_CHOICES = ("recommended", "not_recommended")

SORT_KEYS = (
    "latest", "oldest", "aToZ", "zToA",
    "highestRated", "lowestRated", "mostRead", "recentlyRead",
)
DEFAULT_SORT = "latest"

_EPOCH_DATE = date(1970, 1, 1)


# ============================================================================
# FILTERS
# ============================================================================

@dataclass(frozen=True)
class FilterState:
    """Active search text, genre selection and the two judgment filters."""

    query: str = ""
    genres: Tuple[str, ...] = ()
    read_again: str = ALL
    recommend: str = ALL

    @property
    def active_count(self) -> int:
        """Badge count shown on the filter button (search text excluded)."""
        return (
            len(self.genres)
            + (1 if self.read_again != ALL else 0)
            + (1 if self.recommend != ALL else 0)
        )

    @property
    def is_active(self) -> bool:
        return bool(self.query) or self.active_count > 0

    def toggle_genre(self, genre: str) -> "FilterState":
        if genre in self.genres:
            genres = tuple(g for g in self.genres if g != genre)
        else:
            genres = self.genres + (genre,)
        return FilterState(self.query, genres, self.read_again, self.recommend)


def matches_text(book: dict, query: str) -> bool:
    q = (query or "").lower()
    if not q:
        return True
    for key in ("title", "author", "description"):
        value = book.get(key)
        if value and q in str(value).lower():
            return True
    return False


def matches_genres(book: dict, selected: Iterable[str]) -> bool:
    selected = list(selected or ())
    if not selected:
        return True
    book_genres = book.get("genres") or []
    return any(g in book_genres for g in selected)


def matches_read_again(book: dict, choice: str) -> bool:
    return choice == ALL or book.get("would_read_again") == choice


def matches_recommend(book: dict, choice: str) -> bool:
    if choice == ALL:
        return True
    value = book.get("would_recommend")
    if choice == "recommended":
        return value is True
    if choice == "not_recommended":
        return value is False
    return False


def matches(book: dict, state: FilterState) -> bool:
    """True when the book passes all four filters."""
    return (
        matches_text(book, state.query)
        and matches_genres(book, state.genres)
        and matches_read_again(book, state.read_again)
        and matches_recommend(book, state.recommend)
    )


def filter_books(books: Iterable[dict], state: FilterState) -> List[dict]:
    return [b for b in books if matches(b, state)]


# ============================================================================
# SORTING
# ============================================================================

def title_sort_key(title: Optional[str]) -> Tuple[str, str, str]:
    """Accent- and case-insensitive collation key, falling back to the raw text."""
    raw = title or ""
    decomposed = unicodedata.normalize("NFKD", raw)
    base = "".join(c for c in decomposed if not unicodedata.combining(c))
    return (base.casefold(), raw.casefold(), raw)


def _created(book: dict):
    return parse_timestamp(book.get("created_at")) or EPOCH


def _finished(book: dict) -> date:
    return parse_date(book.get("finish_reading_date")) or _EPOCH_DATE


def _rating(book: dict) -> float:
    return book.get("rating") or 0


def _read_count(book: dict) -> int:
    return book.get("read_count") or 0


# key -> (sort key function, descending)
_SORTS = {
    "latest": (_created, True),
    "oldest": (_created, False),
    "aToZ": (lambda b: title_sort_key(b.get("title")), False),
    "zToA": (lambda b: title_sort_key(b.get("title")), True),
    "highestRated": (_rating, True),
    "lowestRated": (_rating, False),
    "mostRead": (_read_count, True),
    "recentlyRead": (_finished, True),
}


def sort_books(books: Iterable[dict], sort_key: str) -> List[dict]:
    """Stable sort by a named key; unknown keys keep the incoming order."""
    items = list(books)
    if sort_key not in _SORTS:
        return items
    key, descending = _SORTS[sort_key]
    # list.sort stays stable with reverse=True
    items.sort(key=key, reverse=descending)
    return items


# ============================================================================
# PAGINATION
# ============================================================================

@dataclass(frozen=True)
class Page:
    items: List[dict]
    number: int
    total_pages: int
    total_items: int
    page_size: int = PAGE_SIZE

    @property
    def has_previous(self) -> bool:
        return self.number > 1

    @property
    def has_next(self) -> bool:
        return self.number < self.total_pages

    @property
    def window(self) -> List[int]:
        return page_window(self.number, self.total_pages)


def count_pages(total_items: int, page_size: int = PAGE_SIZE) -> int:
    return math.ceil(total_items / page_size)


def clamp_page(page, total_pages: int) -> int:
    """Clamp a requested page number into [1, total_pages]."""
    try:
        page = int(page)
    except (TypeError, ValueError):
        page = 1
    return max(1, min(page, max(total_pages, 1)))


def paginate(items: Sequence[dict], page=1, page_size: int = PAGE_SIZE) -> Page:
    total = len(items)
    total_pages = count_pages(total, page_size)
    number = clamp_page(page, total_pages)
    start = (number - 1) * page_size
    return Page(
        items=list(items[start:start + page_size]),
        number=number,
        total_pages=total_pages,
        total_items=total,
        page_size=page_size,
    )


def page_window(current: int, total_pages: int, size: int = PAGE_WINDOW) -> List[int]:
    """Page numbers shown in the navigation bar, at most ``size`` of them."""
    if total_pages <= size:
        return list(range(1, total_pages + 1))
    half = size // 2
    if current <= half + 1:
        first = 1
    elif current >= total_pages - half:
        first = total_pages - size + 1
    else:
        first = current - half
    return list(range(first, first + size))


# ============================================================================
# STATISTICS
# ============================================================================

def compute_stats(books: Sequence[dict], top_n: int = TOP_GENRES) -> dict:
    """Summary numbers for the dashboard and the list header."""
    rated = [b["rating"] for b in books if b.get("rating")]
    by_year: Counter = Counter()
    for book in books:
        created = parse_timestamp(book.get("created_at"))
        if created is not None:
            by_year[created.year] += 1

    genre_counts: Dict[str, int] = {}
    for book in books:
        for genre in book.get("genres") or []:
            genre_counts[genre] = genre_counts.get(genre, 0) + 1
    top_genres = sorted(genre_counts.items(), key=lambda item: item[1], reverse=True)

    return {
        "total": len(books),
        "reading": sum(
            1 for b in books
            if b.get("start_reading_date") and not b.get("finish_reading_date")
        ),
        "completed": sum(1 for b in books if b.get("finish_reading_date")),
        "rated": len(rated),
        "average_rating": (sum(rated) / len(rated)) if rated else 0,
        "books_by_year": sorted(by_year.items()),
        "top_genres": top_genres[:top_n],
    }


# ============================================================================
# VIEW
# ============================================================================

@dataclass(frozen=True)
class ViewModel:
    page: Page
    filters: FilterState
    sort: str
    total_matches: int
    stats: dict = field(default_factory=dict)

    @property
    def books(self) -> List[dict]:
        return self.page.items

    def to_dict(self) -> dict:
        return {
            "books": self.page.items,
            "page": self.page.number,
            "page_size": self.page.page_size,
            "total_pages": self.page.total_pages,
            "page_numbers": self.page.window,
            "has_previous": self.page.has_previous,
            "has_next": self.page.has_next,
            "total_matches": self.total_matches,
            "sort": self.sort,
            "filters": {
                "query": self.filters.query,
                "genres": list(self.filters.genres),
                "read_again": self.filters.read_again,
                "recommend": self.filters.recommend,
                "active_count": self.filters.active_count,
            },
            "stats": self.stats,
        }


def compute_view(
    records: Sequence[dict],
    filters: Optional[FilterState] = None,
    sort: str = DEFAULT_SORT,
    page=1,
    page_size: int = PAGE_SIZE,
) -> ViewModel:
    """filter -> sort -> paginate, plus quick stats over the unfiltered set."""
    filters = filters or FilterState()
    matched = sort_books(filter_books(records, filters), sort)
    return ViewModel(
        page=paginate(matched, page, page_size),
        filters=filters,
        sort=sort,
        total_matches=len(matched),
        stats=compute_stats(records),
    )
