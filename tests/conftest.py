"""
In-memory stand-ins for the Supabase client: a query builder over a list of
dicts and a GoTrue-like auth object with the calls the app makes.
"""

import itertools
from types import SimpleNamespace

import pytest

from book_tracker import AuthManager, DatabaseManager
from web_app import create_app

OWNER_ID = "user-1"
OWNER_EMAIL = "reader@example.com"
OWNER_PASSWORD = "secret123"
OTHER_ID = "user-2"


class FakeResponse:
    def __init__(self, data):
        self.data = data


class FakeQuery:
    def __init__(self, client, table):
        self.client = client
        self.table = table
        self.op = None
        self.payload = None
        self.filters = []
        self.ordering = None
        self.row_limit = None

    def select(self, columns="*"):
        self.op = "select"
        return self

    def insert(self, row):
        self.op = "insert"
        self.payload = row
        return self

    def update(self, values):
        self.op = "update"
        self.payload = values
        return self

    def delete(self):
        self.op = "delete"
        return self

    def eq(self, column, value):
        self.filters.append((column, value))
        return self

    def order(self, column, desc=False):
        self.ordering = (column, desc)
        return self

    def limit(self, n):
        self.row_limit = n
        return self

    def _matching(self, rows):
        return [r for r in rows if all(r.get(c) == v for c, v in self.filters)]

    def execute(self):
        self.client.executed.append(self)
        if self.client.fail_with is not None:
            raise self.client.fail_with
        rows = self.client.rows.setdefault(self.table, [])

        if self.op == "insert":
            row = dict(self.payload)
            row.setdefault("id", f"book-{next(self.client.ids)}")
            row.setdefault("created_at", self.client.now())
            rows.append(row)
            return FakeResponse([dict(row)])

        matched = self._matching(rows)
        if self.op == "update":
            for row in matched:
                row.update(self.payload)
            return FakeResponse([dict(r) for r in matched])
        if self.op == "delete":
            for row in matched:
                rows.remove(row)
            return FakeResponse([dict(r) for r in matched])

        result = [dict(r) for r in matched]
        if self.ordering:
            column, desc = self.ordering
            result.sort(key=lambda r: r.get(column) or "", reverse=desc)
        if self.row_limit is not None:
            result = result[:self.row_limit]
        return FakeResponse(result)


class FakePostgrest:
    def __init__(self):
        self.tokens = []

    def auth(self, token):
        self.tokens.append(token)


def _user(user_id, email):
    return SimpleNamespace(id=user_id, email=email)


def _session(user_id):
    return SimpleNamespace(access_token=f"token-{user_id}", refresh_token=f"refresh-{user_id}")


class FakeAuth:
    """Just enough of supabase-py's ``client.auth`` for the app."""

    def __init__(self):
        self.users = {}
        self.confirm_email = False
        self.recovery_hashes = {}
        self.calls = []
        self.current = None

    def add_user(self, user_id, email, password):
        self.users[email] = {"id": user_id, "email": email, "password": password}

    def _by_id(self, user_id):
        return next(u for u in self.users.values() if u["id"] == user_id)

    def sign_in_with_password(self, credentials):
        self.calls.append(("sign_in", credentials["email"]))
        user = self.users.get(credentials["email"])
        if user is None or user["password"] != credentials["password"]:
            raise Exception("Invalid login credentials")
        return SimpleNamespace(user=_user(user["id"], user["email"]), session=_session(user["id"]))

    def sign_up(self, credentials):
        self.calls.append(("sign_up", credentials))
        if credentials["email"] in self.users:
            raise Exception("User already registered")
        user_id = f"user-{len(self.users) + 10}"
        self.add_user(user_id, credentials["email"], credentials["password"])
        session = None if self.confirm_email else _session(user_id)
        return SimpleNamespace(user=_user(user_id, credentials["email"]), session=session)

    def sign_out(self):
        self.calls.append(("sign_out", self.current))

    def set_session(self, access_token, refresh_token):
        self.current = access_token

    def reset_password_for_email(self, email, options):
        self.calls.append(("reset", email, options["redirect_to"]))

    def verify_otp(self, params):
        user_id = self.recovery_hashes.get(params["token_hash"])
        if user_id is None or params["type"] != "recovery":
            raise Exception("Token has expired or is invalid")
        user = self._by_id(user_id)
        return SimpleNamespace(user=_user(user_id, user["email"]), session=_session(user_id))

    def update_user(self, attributes):
        user_id = self.current.replace("token-", "", 1)
        self._by_id(user_id)["password"] = attributes["password"]
        return SimpleNamespace(user=_user(user_id, self._by_id(user_id)["email"]))

    def get_user(self, jwt):
        for user in self.users.values():
            if jwt == f"token-{user['id']}":
                return SimpleNamespace(user=_user(user["id"], user["email"]))
        raise Exception("invalid JWT")


class FakeSupabase:
    def __init__(self):
        self.rows = {}
        self.executed = []
        self.fail_with = None
        self.ids = itertools.count(1)
        self.clock = itertools.count(1)
        self.postgrest = FakePostgrest()
        self.auth = FakeAuth()

    def now(self):
        # Strictly increasing creation timestamps
        return f"2024-01-01T00:00:{next(self.clock):02d}+00:00"

    def table(self, name):
        return FakeQuery(self, name)


def make_book(**fields):
    book = {
        "id": None,
        "user_id": OWNER_ID,
        "title": "Untitled",
        "author": "Anonymous",
        "cover_image": None,
        "rating": None,
        "review": None,
        "release_date": None,
        "start_reading_date": None,
        "finish_reading_date": None,
        "pages": None,
        "genres": None,
        "publisher": None,
        "format": "physical",
        "characters": None,
        "quotes": None,
        "would_read_again": None,
        "would_recommend": None,
        "created_at": "2024-01-01T00:00:00+00:00",
        "updated_at": None,
    }
    book.update(fields)
    return book


@pytest.fixture
def supabase():
    client = FakeSupabase()
    client.auth.add_user(OWNER_ID, OWNER_EMAIL, OWNER_PASSWORD)
    client.auth.add_user(OTHER_ID, "other@example.com", "other-pass")
    return client


@pytest.fixture
def db(supabase):
    return DatabaseManager(client=supabase, access_token=f"token-{OWNER_ID}")


@pytest.fixture
def auth(supabase):
    return AuthManager(client_factory=lambda: supabase)


@pytest.fixture
def app(supabase, auth):
    app = create_app(
        db_factory=lambda token: DatabaseManager(client=supabase, access_token=token),
        auth=auth,
        cover_checker=lambda url: True,
        config={"TESTING": True, "SECRET_KEY": "test-secret"},
    )
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def logged_in(client):
    response = client.post(
        "/auth/login", data={"email": OWNER_EMAIL, "password": OWNER_PASSWORD}
    )
    assert response.status_code == 302
    return client
