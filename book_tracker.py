#!/usr/bin/env python3
"""
Book Tracker - personal reading log backed by Supabase
Owner-scoped book records, Supabase Auth sessions and a small CLI
"""

import os
import sys
import argparse
import getpass
import logging
from datetime import date
from typing import Dict, List, Optional

import requests
import pandas as pd
from tabulate import tabulate
from dotenv import load_dotenv
from supabase import create_client, Client

from books import (
    READ_AGAIN_CHOICES,
    AuthenticationError,
    PersistenceError,
    ValidationError,
    parse_date,
    reading_status,
    utc_now_iso,
)
from book_form import FINISH_BEFORE_START
from collection_view import (
    ALL, RECOMMEND_CHOICES, SORT_KEYS, FilterState, compute_stats, compute_view,
)

load_dotenv()

logger = logging.getLogger(__name__)

# ============================================================================
# CONFIGURATION
# ============================================================================

SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_KEY = os.getenv("SUPABASE_KEY")
SECRET_KEY = os.getenv("SECRET_KEY", "change-me")
PASSWORD_RESET_REDIRECT_URL = os.getenv("PASSWORD_RESET_REDIRECT_URL")
SESSION_LIFETIME_DAYS = int(os.getenv("SESSION_LIFETIME_DAYS", "30"))
PORT = int(os.getenv("PORT", "5001"))

BOOK_TRACKER_EMAIL = os.getenv("BOOK_TRACKER_EMAIL")
BOOK_TRACKER_PASSWORD = os.getenv("BOOK_TRACKER_PASSWORD")

BOOKS_TABLE = "books"
MIN_PASSWORD_LENGTH = 6
COVER_CHECK_TIMEOUT = 5

LIST_SEPARATOR = "; "


def create_supabase_client() -> Client:
    """Create a Supabase client from the configured credentials."""
    if not SUPABASE_URL or not SUPABASE_KEY:
        raise ValueError("Supabase credentials missing. Check .env or your environment.")
    return create_client(SUPABASE_URL, SUPABASE_KEY)


# ============================================================================
# DATABASE MANAGER
# ============================================================================

class DatabaseManager:
    """Handles all Supabase ``books`` operations for one signed-in owner."""

    def __init__(self, client: Optional[Client] = None, access_token: Optional[str] = None):
        self.supabase = client if client is not None else create_supabase_client()
        if access_token:
            # Row-level security sees the signed-in user
            self.supabase.postgrest.auth(access_token)

    def _execute(self, query, action: str):
        try:
            return query.execute()
        except Exception as e:
            logger.error("Supabase %s failed: %s", action, e)
            raise PersistenceError(str(e)) from e

    def _books(self):
        return self.supabase.table(BOOKS_TABLE)

    # ---------------------- Core CRUD ----------------------

    def get_all_books(self, user_id: str) -> List[dict]:
        """All of the owner's books, newest first."""
        query = (
            self._books()
            .select("*")
            .eq("user_id", user_id)
            .order("created_at", desc=True)
        )
        return self._execute(query, "select").data or []

    def get_book_by_id(self, user_id: str, book_id: str) -> Optional[dict]:
        """Fetch one book; None when it does not exist or belongs to someone else."""
        query = (
            self._books()
            .select("*")
            .eq("id", book_id)
            .eq("user_id", user_id)
            .limit(1)
        )
        result = self._execute(query, "select")
        return result.data[0] if result.data else None

    def add_book(self, user_id: str, book_data: dict) -> Optional[dict]:
        """Insert a new book."""
        row = dict(book_data, user_id=user_id)
        result = self._execute(self._books().insert(row), "insert")
        logger.info("Added book '%s'", row.get("title"))
        return result.data[0] if result.data else None

    def update_book(self, user_id: str, book_id: str, updates: dict) -> Optional[dict]:
        """Update a book's fields; None when nothing matched."""
        updates = dict(updates, updated_at=utc_now_iso())
        updates.pop("id", None)
        query = self._books().update(updates).eq("id", book_id).eq("user_id", user_id)
        result = self._execute(query, "update")
        if result.data:
            logger.info("Updated book %s", book_id)
            return result.data[0]
        logger.warning("Update matched no book %s", book_id)
        return None

    def save_book(self, user_id: str, payload: dict, book_id: Optional[str] = None) -> Optional[dict]:
        """Insert when ``book_id`` is None, otherwise update."""
        if book_id is None:
            return self.add_book(user_id, payload)
        saved = self.update_book(user_id, book_id, payload)
        if saved is None:
            raise PersistenceError(f"Book {book_id} not found.")
        return saved

    def delete_book(self, user_id: str, book_id: str) -> bool:
        """Delete a book; True when a row was removed."""
        query = self._books().delete().eq("id", book_id).eq("user_id", user_id)
        result = self._execute(query, "delete")
        if result.data:
            logger.info("Deleted book %s", book_id)
            return True
        return False

    # ---------------------- Quick actions ----------------------

    def start_reading_today(self, user_id: str, book_id: str, today: Optional[date] = None):
        """Stamp today as the start date; a now-earlier finish date is cleared."""
        book = self.get_book_by_id(user_id, book_id)
        if not book:
            return None
        today = today or date.today()
        updates = {"start_reading_date": today.isoformat()}
        finish = parse_date(book.get("finish_reading_date"))
        if finish and finish < today:
            updates["finish_reading_date"] = None
        return self.update_book(user_id, book_id, updates)

    def finish_reading_today(self, user_id: str, book_id: str, today: Optional[date] = None):
        """Stamp today as the finish date."""
        book = self.get_book_by_id(user_id, book_id)
        if not book:
            return None
        today = today or date.today()
        start = parse_date(book.get("start_reading_date"))
        if start and today < start:
            raise ValidationError("finish_reading_date", FINISH_BEFORE_START)
        return self.update_book(user_id, book_id, {"finish_reading_date": today.isoformat()})

    # ---------------------- Stats / export ----------------------

    def get_stats(self, user_id: str) -> dict:
        return compute_stats(self.get_all_books(user_id))

    def export_to_csv(self, user_id: str, filepath: str) -> str:
        """Export the owner's books to a CSV file."""
        books = self.get_all_books(user_id)
        df = pd.DataFrame(books)
        for column in ("genres", "characters", "quotes"):
            if column in df.columns:
                df[column] = df[column].apply(
                    lambda v: LIST_SEPARATOR.join(v) if isinstance(v, list) else v
                )
        df.to_csv(filepath, index=False)
        return filepath


# ============================================================================
# AUTH MANAGER
# ============================================================================

def _session_dict(response) -> Optional[Dict[str, str]]:
    session = getattr(response, "session", None)
    user = getattr(response, "user", None) or getattr(session, "user", None)
    if session is None or user is None:
        return None
    return {
        "user_id": user.id,
        "email": user.email,
        "access_token": session.access_token,
        "refresh_token": session.refresh_token,
    }


class AuthManager:
    """Supabase Auth: sign in/up/out, password recovery and session checks.

    A fresh client is created per call so no auth state is shared between
    users of the same process.
    """

    def __init__(self, client_factory=None):
        self.client_factory = client_factory or create_supabase_client

    def _call(self, action: str, fn):
        try:
            return fn(self.client_factory())
        except Exception as e:
            logger.warning("Auth %s failed: %s", action, e)
            raise AuthenticationError(str(e) or "An error occurred") from e

    def sign_in(self, email: str, password: str) -> Dict[str, str]:
        response = self._call(
            "sign-in",
            lambda c: c.auth.sign_in_with_password({"email": email, "password": password}),
        )
        session = _session_dict(response)
        if session is None:
            raise AuthenticationError("Sign in failed. Please check your credentials.")
        return session

    def sign_up(self, email: str, password: str, redirect_to: Optional[str] = None):
        """Create an account; None while the confirmation email is pending."""
        if len(password or "") < MIN_PASSWORD_LENGTH:
            raise ValidationError(
                "password", f"Password must be at least {MIN_PASSWORD_LENGTH} characters."
            )
        credentials = {"email": email, "password": password}
        if redirect_to:
            credentials["options"] = {"email_redirect_to": redirect_to}
        response = self._call("sign-up", lambda c: c.auth.sign_up(credentials))
        return _session_dict(response)

    def sign_out(self, session: Optional[dict] = None) -> None:
        def _sign_out(client):
            if session:
                client.auth.set_session(session["access_token"], session["refresh_token"])
            client.auth.sign_out()
        self._call("sign-out", _sign_out)

    def request_password_reset(self, email: str, redirect_to: str) -> None:
        """Email a reset link that lands on ``redirect_to``."""
        self._call(
            "password-reset",
            lambda c: c.auth.reset_password_for_email(email, {"redirect_to": redirect_to}),
        )

    def verify_recovery(self, token_hash: str) -> Dict[str, str]:
        """Exchange the emailed recovery token for a session."""
        response = self._call(
            "verify-recovery",
            lambda c: c.auth.verify_otp({"token_hash": token_hash, "type": "recovery"}),
        )
        session = _session_dict(response)
        if session is None:
            raise AuthenticationError("This password reset link has expired or is invalid.")
        return session

    def update_password(self, session: Optional[dict], new_password: str, confirm_password: str) -> None:
        if new_password != confirm_password:
            raise ValidationError("confirm_password", "Passwords do not match.")
        if len(new_password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(
                "new_password", f"Password must be at least {MIN_PASSWORD_LENGTH} characters."
            )
        if not session:
            raise AuthenticationError("This password reset link has expired or is invalid.")

        def _update(client):
            client.auth.set_session(session["access_token"], session["refresh_token"])
            return client.auth.update_user({"password": new_password})
        self._call("password-update", _update)

    def get_user(self, access_token: Optional[str]) -> Optional[dict]:
        """The user behind an access token, or None when it is missing or expired."""
        if not access_token:
            return None
        try:
            response = self.client_factory().auth.get_user(access_token)
        except Exception as e:
            logger.info("Rejected session token: %s", e)
            return None
        user = getattr(response, "user", None)
        if user is None:
            return None
        return {"user_id": user.id, "email": user.email}


# ============================================================================
# COVER IMAGES
# ============================================================================

def check_cover_image(url: Optional[str]) -> bool:
    """True when the URL answers with an image."""
    if not url:
        return False
    try:
        response = requests.head(url, allow_redirects=True, timeout=COVER_CHECK_TIMEOUT)
    except requests.RequestException as e:
        logger.info("Cover image %s unreachable: %s", url, e)
        return False
    content_type = response.headers.get("Content-Type", "")
    return response.ok and content_type.startswith("image/")


# ============================================================================
# CLI FUNCTIONS
# ============================================================================

def _truncate(text: Optional[str], width: int) -> str:
    text = text or "-"
    return text[:width - 3] + "..." if len(text) > width else text


def list_books(db: DatabaseManager, user_id: str, filters: FilterState = None,
               sort: str = "latest", page: int = 1):
    """List the owner's books, one page at a time."""
    view = compute_view(db.get_all_books(user_id), filters, sort, page)

    if not view.total_matches:
        print("No books found matching your filters.")
        return

    headers = ["ID", "Title", "Author", "Genres", "Rating", "Format", "Status"]
    rows = []
    for book in view.books:
        rows.append([
            book["id"],
            _truncate(book.get("title"), 35),
            _truncate(book.get("author"), 25),
            _truncate(", ".join(book.get("genres") or []), 30),
            f"{book['rating']}/5" if book.get("rating") else "-",
            book.get("format") or "-",
            reading_status(book).replace("_", " "),
        ])

    print(f"\n{view.total_matches} book(s) found "
          f"(page {view.page.number} of {view.page.total_pages}):\n")
    print(tabulate(rows, headers=headers, tablefmt="grid"))


def show_stats(db: DatabaseManager, user_id: str):
    """Show library statistics."""
    stats = db.get_stats(user_id)
    print("\nLibrary Statistics:")
    print("=" * 40)
    print(f"  Total Books: {stats['total']}")
    print(f"  Reading: {stats['reading']}")
    print(f"  Completed: {stats['completed']}")
    print(f"  Rated: {stats['rated']}")
    if stats["rated"]:
        print(f"  Average Rating: {stats['average_rating']:.1f}/5")
    if stats["books_by_year"]:
        print("\nBooks added per year:")
        print(tabulate(stats["books_by_year"], headers=["Year", "Books"]))
    if stats["top_genres"]:
        print("\nTop genres: " + ", ".join(f"{g} ({n})" for g, n in stats["top_genres"]))
    print("=" * 40)


def export_books(db: DatabaseManager, user_id: str, filepath: str):
    """Export books to CSV."""
    print(f"Exporting books to {filepath}...")
    result = db.export_to_csv(user_id, filepath)
    print(f"[+] Exported successfully to {result}")


def delete_book_cli(db: DatabaseManager, user_id: str, book_id: str):
    """Delete a book after confirmation."""
    book = db.get_book_by_id(user_id, book_id)
    if not book:
        print(f"[X] Book {book_id} not found")
        return

    confirm = input(f"Are you sure you want to delete '{book['title']}'? (yes/no): ")
    if confirm.lower() in ["yes", "y"]:
        if db.delete_book(user_id, book_id):
            print(f"[+] '{book['title']}' deleted successfully")
        else:
            print("[X] Failed to delete book")
    else:
        print("Deletion cancelled")


def mark_started(db: DatabaseManager, user_id: str, book_id: str):
    book = db.start_reading_today(user_id, book_id)
    if book:
        print(f"[+] Started reading '{book['title']}' on {book['start_reading_date']}")
    else:
        print(f"[X] Book {book_id} not found")


def mark_finished(db: DatabaseManager, user_id: str, book_id: str):
    book = db.finish_reading_today(user_id, book_id)
    if book:
        print(f"[+] Finished '{book['title']}' on {book['finish_reading_date']}")
    else:
        print(f"[X] Book {book_id} not found")


# ============================================================================
# MAIN CLI
# ============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Book Tracker - personal reading log"
    )
    parser.add_argument("--email", help="Account email (default: $BOOK_TRACKER_EMAIL)")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    list_parser = subparsers.add_parser("list", help="List your books")
    list_parser.add_argument("--search", default="", help="Match title, author or description")
    list_parser.add_argument("--genre", action="append", default=[], help="Filter by genre (repeatable)")
    list_parser.add_argument("--read-again", choices=(ALL,) + READ_AGAIN_CHOICES, default=ALL,
                             help="Filter by would-read-again answer")
    list_parser.add_argument("--recommend", choices=(ALL,) + RECOMMEND_CHOICES, default=ALL,
                             help="Filter by recommendation")
    list_parser.add_argument("--sort", choices=SORT_KEYS, default="latest", help="Sort order")
    list_parser.add_argument("--page", type=int, default=1, help="Page number")

    subparsers.add_parser("stats", help="Show library statistics")

    export_parser = subparsers.add_parser("export", help="Export books to CSV")
    export_parser.add_argument("filepath", help="Output CSV file path")

    delete_parser = subparsers.add_parser("delete", help="Delete a book")
    delete_parser.add_argument("book_id", help="Book ID")

    start_parser = subparsers.add_parser("start", help="Mark a book as started today")
    start_parser.add_argument("book_id", help="Book ID")

    finish_parser = subparsers.add_parser("finish", help="Mark a book as finished today")
    finish_parser.add_argument("book_id", help="Book ID")

    return parser


def main(argv=None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    email = args.email or BOOK_TRACKER_EMAIL
    if not email:
        parser.error("an account email is required (--email or BOOK_TRACKER_EMAIL)")
    password = BOOK_TRACKER_PASSWORD or getpass.getpass("Password: ")

    try:
        session = AuthManager().sign_in(email, password)
        db = DatabaseManager(access_token=session["access_token"])
        user_id = session["user_id"]

        if args.command == "list":
            filters = FilterState(
                query=args.search,
                genres=tuple(args.genre),
                read_again=args.read_again,
                recommend=args.recommend,
            )
            list_books(db, user_id, filters, args.sort, args.page)

        elif args.command == "stats":
            show_stats(db, user_id)

        elif args.command == "export":
            export_books(db, user_id, args.filepath)

        elif args.command == "delete":
            delete_book_cli(db, user_id, args.book_id)

        elif args.command == "start":
            mark_started(db, user_id, args.book_id)

        elif args.command == "finish":
            mark_finished(db, user_id, args.book_id)

    except (AuthenticationError, PersistenceError, ValidationError) as e:
        print(f"[X] {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
