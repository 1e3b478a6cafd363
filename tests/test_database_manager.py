from datetime import date

import pandas as pd
import pytest

from book_tracker import DatabaseManager, create_supabase_client
from books import PersistenceError, ValidationError
from conftest import OTHER_ID, OWNER_ID, make_book


@pytest.fixture
def seeded(supabase):
    supabase.rows["books"] = [
        make_book(id="b1", title="Dune", created_at="2024-01-01T00:00:00+00:00",
                  genres=["scifi"], characters=["Paul", "Chani"]),
        make_book(id="b2", title="Emma", created_at="2024-02-01T00:00:00+00:00",
                  start_reading_date="2024-02-10", rating=4),
        make_book(id="b3", title="Not mine", user_id=OTHER_ID),
    ]
    return supabase


def test_access_token_is_forwarded(supabase):
    DatabaseManager(client=supabase, access_token="abc")
    assert supabase.postgrest.tokens == ["abc"]


def test_missing_credentials(monkeypatch):
    monkeypatch.setattr("book_tracker.SUPABASE_URL", None)
    with pytest.raises(ValueError):
        create_supabase_client()


def test_get_all_books_is_owner_scoped_newest_first(db, seeded):
    books = db.get_all_books(OWNER_ID)
    assert [b["id"] for b in books] == ["b2", "b1"]
    query = seeded.executed[-1]
    assert ("user_id", OWNER_ID) in query.filters
    assert query.ordering == ("created_at", True)


def test_get_book_by_id_hides_other_owners(db, seeded):
    assert db.get_book_by_id(OWNER_ID, "b1")["title"] == "Dune"
    assert db.get_book_by_id(OWNER_ID, "b3") is None
    assert db.get_book_by_id(OWNER_ID, "missing") is None


def test_add_book_stamps_owner(db, supabase):
    saved = db.add_book(OWNER_ID, {"title": "Dune", "author": "Frank Herbert", "user_id": "spoofed"})
    assert saved["user_id"] == OWNER_ID
    assert saved["id"]


def test_update_book(db, seeded):
    updated = db.update_book(OWNER_ID, "b1", {"id": "ignored", "rating": 5})
    assert updated["rating"] == 5
    assert updated["id"] == "b1"
    assert updated["updated_at"]
    assert db.update_book(OWNER_ID, "b3", {"rating": 1}) is None
    assert seeded.rows["books"][2]["rating"] is None


def test_save_book_inserts_or_updates(db, seeded):
    created = db.save_book(OWNER_ID, {"title": "New", "author": "Someone"})
    assert db.get_book_by_id(OWNER_ID, created["id"])["title"] == "New"
    db.save_book(OWNER_ID, {"title": "Dune (2nd ed.)"}, "b1")
    assert db.get_book_by_id(OWNER_ID, "b1")["title"] == "Dune (2nd ed.)"
    with pytest.raises(PersistenceError):
        db.save_book(OWNER_ID, {"title": "x"}, "b3")


def test_delete_book(db, seeded):
    assert db.delete_book(OWNER_ID, "b1")
    assert not db.delete_book(OWNER_ID, "b1")
    assert not db.delete_book(OWNER_ID, "b3")
    assert [b["id"] for b in seeded.rows["books"]] == ["b2", "b3"]


def test_collaborator_failure_becomes_persistence_error(db, supabase):
    supabase.fail_with = RuntimeError("connection reset")
    with pytest.raises(PersistenceError, match="connection reset"):
        db.get_all_books(OWNER_ID)


def test_start_reading_today(db, seeded):
    seeded.rows["books"][0]["finish_reading_date"] = "2024-01-05"
    book = db.start_reading_today(OWNER_ID, "b1", today=date(2024, 3, 1))
    assert book["start_reading_date"] == "2024-03-01"
    assert book["finish_reading_date"] is None
    assert db.start_reading_today(OWNER_ID, "b3") is None


def test_finish_reading_today(db, seeded):
    book = db.finish_reading_today(OWNER_ID, "b2", today=date(2024, 3, 1))
    assert book["finish_reading_date"] == "2024-03-01"
    with pytest.raises(ValidationError):
        db.finish_reading_today(OWNER_ID, "b2", today=date(2024, 1, 1))


def test_get_stats(db, seeded):
    stats = db.get_stats(OWNER_ID)
    assert stats["total"] == 2
    assert stats["reading"] == 1
    assert stats["average_rating"] == 4


def test_export_to_csv_joins_lists(db, seeded, tmp_path):
    path = tmp_path / "books.csv"
    assert db.export_to_csv(OWNER_ID, str(path)) == str(path)
    df = pd.read_csv(path)
    assert len(df) == 2
    dune = df[df["id"] == "b1"].iloc[0]
    assert dune["characters"] == "Paul; Chani"
    assert dune["genres"] == "scifi"
