import itertools

import pytest

from collection_view import (
    ALL,
    FilterState,
    clamp_page,
    compute_stats,
    compute_view,
    count_pages,
    matches,
    matches_genres,
    matches_read_again,
    matches_recommend,
    matches_text,
    page_window,
    paginate,
    sort_books,
)
from conftest import make_book


@pytest.fixture
def library():
    return [
        make_book(id="1", title="Dune", author="Frank Herbert", genres=["scifi", "classic"],
                  would_read_again="yes", would_recommend=True, rating=5,
                  created_at="2023-03-01T10:00:00+00:00"),
        make_book(id="2", title="Emma", author="Jane Austen", genres=["romance", "classic"],
                  would_read_again="no", would_recommend=False, rating=3,
                  created_at="2023-05-01T10:00:00+00:00"),
        make_book(id="3", title="Neuromancer", author="William Gibson", genres=["scifi"],
                  would_read_again="maybe", created_at="2024-01-01T10:00:00+00:00"),
        make_book(id="4", title="Ilíada", author="Homero", genres=None,
                  would_recommend=True, created_at="2024-02-01T10:00:00+00:00",
                  description="Epic poem about Troy"),
        make_book(id="5", title="It", author="Stephen King", genres=["horror"],
                  would_read_again="yes", would_recommend=False, rating=4,
                  created_at="2024-03-01T10:00:00+00:00"),
        make_book(id="6", title="Anna Karenina", author="Leo Tolstoy", genres=["novel", "romance"],
                  created_at="2024-04-01T10:00:00Z"),
    ]


# ---------------------- Predicates ----------------------

def test_text_matches_title_author_and_description(library):
    dune, emma, _, iliad, *_ = library
    assert matches_text(dune, "DUNE")
    assert matches_text(emma, "austen")
    assert matches_text(iliad, "troy")
    assert not matches_text(dune, "troy")
    assert matches_text(dune, "")


def test_genre_selection_widens_results(library):
    assert matches_genres(library[0], [])
    assert matches_genres(library[0], ["horror", "scifi"])
    assert not matches_genres(library[3], ["scifi"])
    selected = [b["id"] for b in library if matches_genres(b, ["horror", "novel"])]
    assert selected == ["5", "6"]


def test_judgment_filters_reject_absent_values(library):
    iliad = library[3]
    assert matches_read_again(iliad, ALL)
    assert not matches_read_again(iliad, "yes")
    anna = library[5]
    assert matches_recommend(anna, ALL)
    assert not matches_recommend(anna, "recommended")
    assert not matches_recommend(anna, "not_recommended")
    assert matches_recommend(library[1], "not_recommended")


def test_matches_is_conjunction_of_predicates(library):
    queries = ["", "an", "zzz"]
    genre_sets = [(), ("classic",), ("scifi", "horror")]
    read_again = [ALL, "yes", "no", "maybe"]
    recommend = [ALL, "recommended", "not_recommended"]
    for q, genres, again, rec in itertools.product(queries, genre_sets, read_again, recommend):
        state = FilterState(q, genres, again, rec)
        for book in library:
            expected = (
                matches_text(book, q)
                and matches_genres(book, genres)
                and matches_read_again(book, again)
                and matches_recommend(book, rec)
            )
            assert matches(book, state) == expected


def test_filter_state_counts_and_toggles():
    state = FilterState()
    assert state.active_count == 0
    assert not state.is_active
    state = state.toggle_genre("scifi").toggle_genre("horror")
    assert state.genres == ("scifi", "horror")
    assert FilterState(read_again="yes", recommend="recommended", genres=("x",)).active_count == 3
    assert state.toggle_genre("scifi").genres == ("horror",)
    assert FilterState(query="dune").is_active


# ---------------------- Sorting ----------------------

def test_highest_rated_treats_missing_as_zero():
    books = [make_book(id=str(i), rating=r) for i, r in enumerate([None, 3, 5, 1])]
    assert [b["rating"] for b in sort_books(books, "highestRated")] == [5, 3, 1, None]
    assert [b["rating"] for b in sort_books(books, "lowestRated")] == [None, 1, 3, 5]


def test_sort_is_stable_for_equal_keys():
    books = [make_book(id=str(i), rating=4 if i % 2 else None) for i in range(6)]
    ordered = sort_books(books, "highestRated")
    assert [b["id"] for b in ordered] == ["1", "3", "5", "0", "2", "4"]


def test_latest_and_oldest_by_creation(library):
    assert [b["id"] for b in sort_books(library, "latest")] == ["6", "5", "4", "3", "2", "1"]
    assert [b["id"] for b in sort_books(library, "oldest")] == ["1", "2", "3", "4", "5", "6"]


def test_title_sort_ignores_case_and_accents():
    books = [make_book(title=t) for t in ["banana", "Ábaco", "apple", "Cereja"]]
    assert [b["title"] for b in sort_books(books, "aToZ")] == ["Ábaco", "apple", "banana", "Cereja"]
    assert [b["title"] for b in sort_books(books, "zToA")] == ["Cereja", "banana", "apple", "Ábaco"]


def test_most_read_and_recently_read_default_missing_values():
    books = [
        make_book(id="a", read_count=2, finish_reading_date="2024-05-01"),
        make_book(id="b"),
        make_book(id="c", read_count=7, finish_reading_date="2023-01-10"),
    ]
    assert [b["id"] for b in sort_books(books, "mostRead")] == ["c", "a", "b"]
    assert [b["id"] for b in sort_books(books, "recentlyRead")] == ["a", "c", "b"]


def test_unknown_sort_keeps_order(library):
    assert sort_books(library, "bogus") == library


# ---------------------- Pagination ----------------------

def test_twenty_five_records_make_three_pages():
    items = [make_book(id=str(i)) for i in range(25)]
    assert count_pages(25) == 3
    first = paginate(items, 1)
    assert [b["id"] for b in first.items] == [str(i) for i in range(12)]
    assert not first.has_previous and first.has_next
    last = paginate(items, 3)
    assert [b["id"] for b in last.items] == ["24"]
    assert last.has_previous and not last.has_next


@pytest.mark.parametrize("requested, expected", [(0, 1), (-3, 1), (4, 3), ("2", 2), ("x", 1), (None, 1)])
def test_requested_page_is_clamped(requested, expected):
    assert clamp_page(requested, 3) == expected


def test_empty_collection_has_no_pages():
    page = paginate([], 5)
    assert page.total_pages == 0
    assert page.number == 1
    assert page.items == []
    assert not page.has_next


@pytest.mark.parametrize("current, total, expected", [
    (1, 3, [1, 2, 3]),
    (2, 10, [1, 2, 3, 4, 5]),
    (3, 10, [1, 2, 3, 4, 5]),
    (6, 10, [4, 5, 6, 7, 8]),
    (8, 10, [6, 7, 8, 9, 10]),
    (10, 10, [6, 7, 8, 9, 10]),
])
def test_page_window(current, total, expected):
    assert page_window(current, total) == expected


# ---------------------- Statistics ----------------------

def test_average_counts_only_rated_books():
    books = [make_book(rating=r) for r in (4, None, 2)]
    stats = compute_stats(books)
    assert stats["average_rating"] == 3.0
    assert stats["rated"] == 2
    assert compute_stats([make_book()])["average_rating"] == 0


def test_stats_counts_and_histogram(library):
    library[0]["start_reading_date"] = "2024-01-01"
    library[0]["finish_reading_date"] = "2024-02-01"
    library[1]["start_reading_date"] = "2024-03-01"
    stats = compute_stats(library)
    assert stats["total"] == 6
    assert stats["completed"] == 1
    assert stats["reading"] == 1
    assert stats["books_by_year"] == [(2023, 2), (2024, 4)]
    assert stats["top_genres"] == [("scifi", 2), ("classic", 2), ("romance", 2)]


# ---------------------- View ----------------------

def test_compute_view_filters_sorts_and_pages(library):
    view = compute_view(library, FilterState(genres=("scifi",)), "aToZ", page=9)
    assert [b["title"] for b in view.books] == ["Dune", "Neuromancer"]
    assert view.total_matches == 2
    assert view.page.number == 1
    assert view.stats["total"] == 6


def test_view_serializes_for_json(library):
    data = compute_view(library, FilterState(query="emma")).to_dict()
    assert data["total_matches"] == 1
    assert data["books"][0]["title"] == "Emma"
    assert data["filters"]["query"] == "emma"
    assert data["page_numbers"] == [1]
