#!/usr/bin/env python3
"""
Book Tracker Web Interface - personal library with Supabase auth and persistence
"""
import logging
from datetime import timedelta
from functools import wraps
from urllib.parse import urlsplit

from flask import (
    Blueprint, Flask, current_app, flash, g, jsonify, redirect,
    render_template, request, session, url_for,
)
from jinja2 import DictLoader

from books import (
    DEFAULT_FORMAT, GENRES, READ_AGAIN_CHOICES, AuthenticationError, PersistenceError,
    ValidationError, reading_days, reading_status,
)
from book_form import TOTAL_STEPS, BookForm, reading_progress
from book_tracker import (
    PASSWORD_RESET_REDIRECT_URL, PORT, SECRET_KEY, SESSION_LIFETIME_DAYS,
    AuthManager, DatabaseManager, check_cover_image,
)
from collection_view import (
    ALL, DEFAULT_SORT, RECOMMEND_CHOICES, SORT_KEYS, FilterState,
    compute_stats, compute_view,
)
from preferences import LOCALES, load_preferences, save_preferences

logger = logging.getLogger(__name__)

PREFERENCE_MAX_AGE = 365 * 24 * 3600
RECENT_BOOKS = 5

SORT_LABELS = {
    "latest": "Latest added",
    "oldest": "Oldest added",
    "aToZ": "Title A-Z",
    "zToA": "Title Z-A",
    "highestRated": "Highest rated",
    "lowestRated": "Lowest rated",
    "mostRead": "Most read",
    "recentlyRead": "Recently read",
}
STATUS_LABELS = {"completed": "Finished", "reading": "Reading", "not_started": "Not started"}

web = Blueprint("web", __name__)


# ============================================================================
# HELPERS
# ============================================================================

def _auth() -> AuthManager:
    return current_app.extensions["book_tracker"]["auth"]


def _db() -> DatabaseManager:
    if "db" not in g:
        factory = current_app.extensions["book_tracker"]["db_factory"]
        g.db = factory(session.get("access_token"))
    return g.db


def _user_id() -> str:
    return g.user["user_id"]


def _wants_json() -> bool:
    return request.path.startswith("/api/")


def login_required(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user = _auth().get_user(session.get("access_token"))
        if user is None or user["user_id"] != session.get("user_id"):
            session.clear()
            if _wants_json():
                return jsonify({"error": "Not signed in"}), 401
            return redirect(url_for("web.login"))
        g.user = user
        return f(*args, **kwargs)
    return decorated_function


def _store_session(auth_session: dict) -> None:
    session.clear()
    session.permanent = True
    session.update(auth_session)


def _view_params(args):
    read_again = args.get("read_again", ALL)
    recommend = args.get("recommend", ALL)
    filters = FilterState(
        query=args.get("q", ""),
        genres=tuple(args.getlist("genre")),
        read_again=read_again if read_again in READ_AGAIN_CHOICES else ALL,
        recommend=recommend if recommend in RECOMMEND_CHOICES else ALL,
    )
    sort = args.get("sort", DEFAULT_SORT)
    if sort not in SORT_KEYS:
        sort = DEFAULT_SORT
    return filters, sort, args.get("page", 1)


def _books_url(filters: FilterState, sort: str, view_mode: str, **overrides) -> str:
    """List URL for the current filters; leaving out ``page`` goes back to page 1."""
    params = {
        "q": filters.query,
        "genre": list(filters.genres),
        "read_again": filters.read_again,
        "recommend": filters.recommend,
        "sort": sort,
        "view": view_mode,
    }
    params.update(overrides)
    params = {k: v for k, v in params.items() if v not in (None, "", [], ALL)}
    return url_for("web.list_books", **params)


def _load_book_or_redirect(book_id: str):
    book = _db().get_book_by_id(_user_id(), book_id)
    if book is None:
        flash("Book not found.", "error")
    return book


def _form_values(form) -> dict:
    values = {name: form.get(name, "") for name in (
        "title", "author", "cover_image", "format", "release_date",
        "start_reading_date", "finish_reading_date", "pages", "publisher",
        "rating", "review", "would_read_again", "would_recommend",
    )}
    values["format"] = values["format"] or DEFAULT_FORMAT
    for name in ("genres", "characters", "quotes"):
        values[name] = form.getlist(name)
    return values


@web.app_context_processor
def inject_preferences():
    return {
        "prefs": load_preferences(request.cookies.get),
        "locales": LOCALES,
        "signed_in": "access_token" in session,
    }


# ============================================================================
# AUTH
# ============================================================================

@web.route("/")
def index():
    return redirect(url_for("web.dashboard"))


@web.route("/auth/login", methods=["GET", "POST"])
def login():
    error = None
    email = request.form.get("email", "")
    if request.method == "POST":
        try:
            _store_session(_auth().sign_in(email, request.form.get("password", "")))
            return redirect(url_for("web.dashboard"))
        except AuthenticationError as e:
            error = str(e)
    return render_template("login.html", error=error, email=email)


@web.route("/auth/sign-up", methods=["GET", "POST"])
def sign_up():
    error = None
    email = request.form.get("email", "")
    if request.method == "POST":
        password = request.form.get("password", "")
        try:
            if password != request.form.get("confirm_password", ""):
                raise ValidationError("confirm_password", "Passwords do not match.")
            auth_session = _auth().sign_up(
                email, password, redirect_to=url_for("web.login", _external=True)
            )
            if auth_session is None:
                return redirect(url_for("web.check_email"))
            _store_session(auth_session)
            return redirect(url_for("web.dashboard"))
        except (ValidationError, AuthenticationError) as e:
            error = str(e)
    return render_template("sign_up.html", error=error, email=email)


@web.route("/auth/check-email")
def check_email():
    return render_template("check_email.html")


@web.route("/auth/forgot-password", methods=["GET", "POST"])
def forgot_password():
    error = None
    success = False
    if request.method == "POST":
        redirect_url = PASSWORD_RESET_REDIRECT_URL or url_for(
            "web.reset_password", _external=True
        )
        try:
            _auth().request_password_reset(request.form.get("email", ""), redirect_url)
            success = True
        except AuthenticationError as e:
            error = str(e)
    return render_template("forgot_password.html", error=error, success=success)


@web.route("/auth/reset-password", methods=["GET", "POST"])
def reset_password():
    token_hash = request.args.get("token_hash")
    if token_hash:
        try:
            session["recovery"] = _auth().verify_recovery(token_hash)
        except AuthenticationError as e:
            logger.info("Recovery link rejected: %s", e)
            session.pop("recovery", None)
        return redirect(url_for("web.reset_password"))

    recovery = session.get("recovery")
    if recovery is None and "access_token" in session:
        recovery = {
            "access_token": session["access_token"],
            "refresh_token": session.get("refresh_token"),
        }
    if recovery is None:
        return render_template("reset_password.html", valid_session=False, error=None)

    error = None
    if request.method == "POST":
        try:
            _auth().update_password(
                recovery,
                request.form.get("new_password", ""),
                request.form.get("confirm_password", ""),
            )
            session.pop("recovery", None)
            flash("Password reset successfully.", "success")
            return redirect(url_for("web.login"))
        except (ValidationError, AuthenticationError) as e:
            error = str(e)
    return render_template("reset_password.html", valid_session=True, error=error)


@web.route("/auth/logout", methods=["GET", "POST"])
def logout():
    if "access_token" in session:
        try:
            _auth().sign_out(dict(session))
        except AuthenticationError as e:
            logger.info("Sign-out not acknowledged: %s", e)
    session.clear()
    return redirect(url_for("web.login"))


# ============================================================================
# PAGES
# ============================================================================

@web.route("/dashboard")
@login_required
def dashboard():
    books = _db().get_all_books(_user_id())
    stats = compute_stats(books)
    peak = max((count for _, count in stats["books_by_year"]), default=0)
    return render_template(
        "dashboard.html",
        stats=stats,
        peak=peak,
        recent_books=books[:RECENT_BOOKS],
    )


@web.route("/books")
@login_required
def list_books():
    filters, sort, page = _view_params(request.args)
    view_mode = "list" if request.args.get("view") == "list" else "grid"
    view = compute_view(_db().get_all_books(_user_id()), filters, sort, page)

    def books_url(**overrides):
        return _books_url(filters, sort, view_mode, **overrides)

    genre_options = list(GENRES) + [x for x in filters.genres if x not in GENRES]
    return render_template(
        "books.html",
        view=view,
        filters=filters,
        sort=sort,
        view_mode=view_mode,
        books_url=books_url,
        genre_options=genre_options,
        sort_labels=SORT_LABELS,
        read_again_choices=READ_AGAIN_CHOICES,
        status_labels=STATUS_LABELS,
        reading_status=reading_status,
    )


@web.route("/books/<book_id>")
@login_required
def book_detail(book_id):
    book = _load_book_or_redirect(book_id)
    if book is None:
        return redirect(url_for("web.list_books"))
    return render_template(
        "book_detail.html",
        book=book,
        status=reading_status(book),
        status_labels=STATUS_LABELS,
        days=reading_days(book),
        progress=reading_progress(
            book.get("start_reading_date"), book.get("finish_reading_date")
        ),
    )


@web.route("/books/new", methods=["GET", "POST"])
@login_required
def new_book():
    return _handle_form(None)


@web.route("/books/<book_id>/edit", methods=["GET", "POST"])
@login_required
def edit_book(book_id):
    book = _load_book_or_redirect(book_id)
    if book is None:
        return redirect(url_for("web.list_books"))
    return _handle_form(book)


def _handle_form(book):
    form = BookForm(book)
    if request.method == "POST":
        form.update(_form_values(request.form))
        form.go_to_step(request.form.get("step", 1))
        action, _, argument = request.form.get("action", "").partition(":")

        if action == "next":
            form.next_step()
        elif action == "back":
            form.prev_step()
        elif action == "add_genre":
            form.add_custom_genre(request.form.get("custom_genre"))
        elif action == "toggle_genre":
            form.toggle_genre(argument)
        elif action == "add_character":
            form.add_character(request.form.get("new_character"))
        elif action == "remove_character":
            form.remove_character(argument)
        elif action == "add_quote":
            form.add_quote(request.form.get("new_quote"))
        elif action == "remove_quote":
            form.remove_quote(argument)
        elif action == "cancel":
            if form.request_cancel() == "leave":
                return redirect(url_for("web.list_books"))
        elif action == "confirm_cancel":
            form.confirm_cancel()
            return redirect(url_for("web.list_books"))
        elif action == "decline_cancel":
            form.decline_cancel()
        elif action == "submit":
            book_id = book["id"] if book else None
            saved = form.submit(
                lambda payload: _db().save_book(_user_id(), payload, book_id),
                user_id=_user_id(),
            )
            if saved:
                title = form.draft["title"].strip()
                if book:
                    flash(f'"{title}" was updated.', "success")
                else:
                    flash(f'"{title}" was added to your collection.', "success")
                return redirect(url_for("web.list_books"))
            if form.error:
                flash(form.error, "error")

    cover_ok = None
    if form.step == 1 and form.draft["cover_image"]:
        cover_ok = current_app.extensions["book_tracker"]["cover_checker"](
            form.draft["cover_image"]
        )
    genre_options = list(GENRES) + [x for x in form.draft["genres"] if x not in GENRES]
    return render_template(
        "book_form.html",
        form=form,
        d=form.draft,
        total_steps=TOTAL_STEPS,
        genre_options=genre_options,
        read_again_choices=READ_AGAIN_CHOICES,
        cover_ok=cover_ok,
    )


@web.route("/books/<book_id>/delete", methods=["GET", "POST"])
@login_required
def delete_book(book_id):
    book = _load_book_or_redirect(book_id)
    if book is None:
        return redirect(url_for("web.list_books"))
    if request.method == "GET":
        return render_template("confirm_delete.html", book=book)
    if _db().delete_book(_user_id(), book_id):
        flash(f'"{book["title"]}" was removed from your collection.', "success")
    else:
        flash("Book not found.", "error")
    return redirect(url_for("web.list_books"))


@web.route("/books/<book_id>/start", methods=["POST"])
@login_required
def start_reading(book_id):
    if _db().start_reading_today(_user_id(), book_id) is None:
        flash("Book not found.", "error")
        return redirect(url_for("web.list_books"))
    flash("Reading started today.", "success")
    return redirect(url_for("web.book_detail", book_id=book_id))


@web.route("/books/<book_id>/finish", methods=["POST"])
@login_required
def finish_reading(book_id):
    try:
        book = _db().finish_reading_today(_user_id(), book_id)
    except ValidationError as e:
        flash(e.message, "error")
        return redirect(url_for("web.book_detail", book_id=book_id))
    if book is None:
        flash("Book not found.", "error")
        return redirect(url_for("web.list_books"))
    flash("Marked as finished today.", "success")
    return redirect(url_for("web.book_detail", book_id=book_id))


# ============================================================================
# PREFERENCES
# ============================================================================

def _same_host_referrer():
    referrer = request.referrer
    if referrer and urlsplit(referrer).netloc == request.host:
        return referrer
    return None


def _save_preferences_response(prefs):
    response = redirect(_same_host_referrer() or url_for("web.dashboard"))
    save_preferences(
        prefs,
        lambda key, value: response.set_cookie(
            key, value, max_age=PREFERENCE_MAX_AGE, samesite="Lax"
        ),
    )
    return response


@web.route("/preferences/theme", methods=["POST"])
def toggle_theme():
    prefs = load_preferences(request.cookies.get)
    return _save_preferences_response(prefs.toggled_theme())


@web.route("/preferences/locale", methods=["POST"])
def set_locale():
    prefs = load_preferences(request.cookies.get)
    try:
        prefs = prefs.with_locale(request.form.get("locale", ""))
    except ValueError as e:
        flash(str(e), "error")
    return _save_preferences_response(prefs)


# ============================================================================
# JSON API
# ============================================================================

@web.route("/api/books")
@login_required
def api_books():
    filters, sort, page = _view_params(request.args)
    view = compute_view(_db().get_all_books(_user_id()), filters, sort, page)
    return jsonify(view.to_dict())


@web.route("/api/stats")
@login_required
def api_stats():
    return jsonify(_db().get_stats(_user_id()))


@web.route("/api/books/<book_id>", methods=["DELETE"])
@login_required
def api_delete_book(book_id):
    if not _db().delete_book(_user_id(), book_id):
        return jsonify({"error": "Book not found"}), 404
    return jsonify({"success": True})


# ============================================================================
# APP FACTORY
# ============================================================================

def create_app(db_factory=None, auth=None, cover_checker=None, config=None):
    """Build the Flask app; collaborators are injectable for tests."""
    app = Flask(__name__)
    app.secret_key = SECRET_KEY
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(days=SESSION_LIFETIME_DAYS)
    if config:
        app.config.update(config)
    app.jinja_loader = DictLoader(TEMPLATES)

    app.extensions["book_tracker"] = {
        "auth": auth or AuthManager(),
        "db_factory": db_factory or (lambda token: DatabaseManager(access_token=token)),
        "cover_checker": cover_checker or check_cover_image,
    }
    app.register_blueprint(web)

    @app.errorhandler(PersistenceError)
    def handle_persistence_error(e):
        if _wants_json():
            return jsonify({"error": str(e)}), 502
        return render_template("error.html", message=str(e)), 502

    return app


# ============================================================================
# TEMPLATES
# ============================================================================

BASE_TEMPLATE = """
<!DOCTYPE html>
<html lang="{{ prefs.locale }}" data-theme="{{ prefs.theme }}">
<head>
    <title>{% block title %}Book Tracker{% endblock %}</title>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1">
    <style>
        * { margin: 0; padding: 0; box-sizing: border-box; }
        :root {
            --primary: #6366f1; --secondary: #8b5cf6; --accent: #ec4899;
            --background: #0f172a; --surface: #1e293b; --surface-light: #334155;
            --text: #f8fafc; --text-secondary: #94a3b8; --border: #334155;
            --success: #10b981; --warning: #f59e0b; --error: #ef4444;
        }
        [data-theme="light"] {
            --background: #f8fafc; --surface: #ffffff; --surface-light: #f1f5f9;
            --text: #0f172a; --text-secondary: #475569; --border: #e2e8f0;
        }
        body {
            font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
            background: var(--background); color: var(--text);
            min-height: 100vh; padding: 20px 20px 100px;
        }
        a { color: var(--primary); text-decoration: none; }
        .container { max-width: 1400px; margin: 0 auto; }
        header {
            background: var(--surface); border: 1px solid var(--border);
            border-radius: 16px; padding: 18px 24px; margin-bottom: 24px;
            display: flex; justify-content: space-between; align-items: center;
            flex-wrap: wrap; gap: 12px;
        }
        h1 {
            background: linear-gradient(135deg, var(--primary) 0%, var(--secondary) 50%, var(--accent) 100%);
            -webkit-background-clip: text; -webkit-text-fill-color: transparent;
            font-size: 1.8em; font-weight: 700;
        }
        h2 { margin-bottom: 16px; }
        nav, .header-actions { display: flex; gap: 12px; align-items: center; flex-wrap: wrap; }
        nav a { color: var(--text-secondary); font-weight: 500; }
        nav a:hover { color: var(--text); }
        .panel {
            background: var(--surface); border: 1px solid var(--border);
            border-radius: 16px; padding: 24px; margin-bottom: 24px;
        }
        .narrow { max-width: 440px; margin: 40px auto; }
        .btn {
            display: inline-block; padding: 10px 18px; border-radius: 10px;
            border: 1px solid var(--border); background: var(--surface-light);
            color: var(--text); cursor: pointer; font-size: 0.95em;
        }
        .btn-primary {
            background: linear-gradient(135deg, var(--primary) 0%, var(--secondary) 100%);
            color: white; border: none;
        }
        .btn-danger { background: var(--error); color: white; border: none; }
        .btn[disabled], .btn.disabled { opacity: 0.4; pointer-events: none; }
        .form-group { margin-bottom: 16px; }
        label { display: block; color: var(--text-secondary); margin-bottom: 6px; font-weight: 500; }
        input[type=text], input[type=email], input[type=password], input[type=url],
        input[type=date], input[type=number], select, textarea {
            width: 100%; padding: 12px 14px; background: var(--background);
            border: 1px solid var(--border); border-radius: 10px; color: var(--text);
        }
        .inline { display: inline; }
        .inline label { display: inline; margin-right: 12px; }
        .error, .flash-error {
            background: #fee; color: #c33; padding: 12px;
            border-radius: 8px; margin-bottom: 16px;
        }
        .field-error { color: var(--error); font-size: 0.85em; margin-top: 4px; }
        .flash-success {
            background: #e6fffa; color: #047857; padding: 12px;
            border-radius: 8px; margin-bottom: 16px;
        }
        .info { color: var(--text-secondary); margin: 12px 0; }
        .stats {
            display: grid; grid-template-columns: repeat(auto-fit, minmax(140px, 1fr));
            gap: 16px; margin-bottom: 24px;
        }
        .stat-card {
            background: linear-gradient(135deg, var(--surface) 0%, var(--surface-light) 100%);
            border: 1px solid var(--border); border-radius: 12px;
            padding: 20px; text-align: center;
        }
        .stat-number {
            font-size: 2.2em; font-weight: 700;
            background: linear-gradient(135deg, var(--primary) 0%, var(--secondary) 100%);
            -webkit-background-clip: text; -webkit-text-fill-color: transparent;
        }
        .stat-label { color: var(--text-secondary); margin-top: 8px; font-size: 0.9em; }
        .chip {
            display: inline-block; padding: 6px 14px; background: var(--surface-light);
            border: 1px solid var(--border); border-radius: 20px;
            font-size: 0.85em; margin: 0 6px 6px 0; color: var(--text);
        }
        .chip.active { background: var(--primary); color: white; border-color: var(--primary); }
        .books-grid {
            display: grid; grid-template-columns: repeat(auto-fill, minmax(240px, 1fr));
            gap: 20px;
        }
        .books-grid.list { grid-template-columns: 1fr; }
        .book-card {
            display: flex; flex-direction: column; background: var(--surface);
            border: 1px solid var(--border); border-radius: 16px; overflow: hidden;
        }
        .books-grid.list .book-card { flex-direction: row; }
        .book-thumbnail {
            height: 220px; min-width: 120px;
            background: linear-gradient(135deg, var(--primary) 0%, var(--secondary) 100%);
            display: flex; align-items: center; justify-content: center; font-size: 3em;
        }
        .book-thumbnail img { width: 100%; height: 100%; object-fit: cover; }
        .book-content { padding: 16px; flex: 1; }
        .book-title { font-weight: 700; font-size: 1.1em; color: var(--text); }
        .book-author { color: var(--text-secondary); margin: 4px 0 10px; }
        .badge {
            display: inline-block; padding: 3px 10px; border-radius: 12px;
            font-size: 0.75em; background: var(--surface-light); margin-right: 4px;
        }
        .badge-completed { background: var(--success); color: white; }
        .badge-reading { background: var(--warning); color: white; }
        .pagination { display: flex; gap: 6px; justify-content: center; margin-top: 24px; }
        .pagination .current { background: var(--primary); color: white; }
        .progress { height: 8px; background: var(--surface-light); border-radius: 4px; overflow: hidden; }
        .progress div { height: 100%; background: var(--primary); }
        .bar-row { display: flex; align-items: center; gap: 12px; margin-bottom: 8px; }
        .bar-row span { width: 60px; color: var(--text-secondary); }
        .bar { height: 18px; background: var(--primary); border-radius: 4px; }
        .steps { display: flex; gap: 16px; margin-bottom: 16px; }
        .steps .done, .steps .current { color: var(--primary); font-weight: 600; }
        .dialog { border: 2px solid var(--warning); }
        ul.plain { list-style: none; }
        ul.plain li { margin-bottom: 6px; }
        blockquote { border-left: 3px solid var(--primary); padding-left: 12px; margin-bottom: 10px; }
    </style>
</head>
<body>
<div class="container">
    <header>
        <h1>📚 Book Tracker</h1>
        <div class="header-actions">
            {% if signed_in %}
            <nav>
                <a href="{{ url_for('web.dashboard') }}">Dashboard</a>
                <a href="{{ url_for('web.list_books') }}">Books</a>
                <a href="{{ url_for('web.new_book') }}">Add book</a>
            </nav>
            {% endif %}
            <form class="inline" method="POST" action="{{ url_for('web.toggle_theme') }}">
                <button class="btn" type="submit">{{ '☀️' if prefs.theme == 'dark' else '🌙' }}</button>
            </form>
            <form class="inline" method="POST" action="{{ url_for('web.set_locale') }}">
                <select name="locale" onchange="this.form.submit()">
                    {% for loc in locales %}
                    <option value="{{ loc }}" {% if loc == prefs.locale %}selected{% endif %}>{{ loc|upper }}</option>
                    {% endfor %}
                </select>
            </form>
            {% if signed_in %}
            <form class="inline" method="POST" action="{{ url_for('web.logout') }}">
                <button class="btn" type="submit">Sign out</button>
            </form>
            {% endif %}
        </div>
    </header>
    {% with messages = get_flashed_messages(with_categories=true) %}
    {% for category, message in messages %}
    <div class="flash-{{ category }}">{{ message }}</div>
    {% endfor %}
    {% endwith %}
    {% block content %}{% endblock %}
</div>
</body>
</html>
"""

LOGIN_TEMPLATE = """
{% extends "base.html" %}
{% block title %}Book Tracker - Sign in{% endblock %}
{% block content %}
<div class="panel narrow">
    <h2>Sign in</h2>
    {% if error %}<div class="error">{{ error }}</div>{% endif %}
    <form method="POST">
        <div class="form-group">
            <label for="email">Email</label>
            <input id="email" type="email" name="email" value="{{ email }}" placeholder="name@example.com" required autofocus>
        </div>
        <div class="form-group">
            <label for="password">Password</label>
            <input id="password" type="password" name="password" required>
        </div>
        <button class="btn btn-primary" type="submit">Sign in</button>
    </form>
    <p class="info"><a href="{{ url_for('web.forgot_password') }}">Forgot your password?</a></p>
    <p class="info">Don't have an account? <a href="{{ url_for('web.sign_up') }}">Sign up</a></p>
</div>
{% endblock %}
"""

SIGN_UP_TEMPLATE = """
{% extends "base.html" %}
{% block title %}Book Tracker - Sign up{% endblock %}
{% block content %}
<div class="panel narrow">
    <h2>Create an account</h2>
    {% if error %}<div class="error">{{ error }}</div>{% endif %}
    <form method="POST">
        <div class="form-group">
            <label for="email">Email</label>
            <input id="email" type="email" name="email" value="{{ email }}" required>
        </div>
        <div class="form-group">
            <label for="password">Password</label>
            <input id="password" type="password" name="password" required>
        </div>
        <div class="form-group">
            <label for="confirm_password">Confirm password</label>
            <input id="confirm_password" type="password" name="confirm_password" required>
        </div>
        <button class="btn btn-primary" type="submit">Sign up</button>
    </form>
    <p class="info">Already registered? <a href="{{ url_for('web.login') }}">Sign in</a></p>
</div>
{% endblock %}
"""

CHECK_EMAIL_TEMPLATE = """
{% extends "base.html" %}
{% block content %}
<div class="panel narrow">
    <h2>Check your email</h2>
    <p class="info">We sent a confirmation link to your email. Open it to activate your account.</p>
    <p class="info">Didn't get it? Look in your spam folder or try again.</p>
    <a class="btn" href="{{ url_for('web.login') }}">Back to sign in</a>
</div>
{% endblock %}
"""

FORGOT_PASSWORD_TEMPLATE = """
{% extends "base.html" %}
{% block content %}
<div class="panel narrow">
    <h2>Reset your password</h2>
    {% if success %}
    <p class="info">Check your email for instructions on resetting your password.</p>
    {% else %}
    {% if error %}<div class="error">{{ error }}</div>{% endif %}
    <p class="info">Enter your email to receive a reset link.</p>
    <form method="POST">
        <div class="form-group">
            <label for="email">Email</label>
            <input id="email" type="email" name="email" placeholder="name@example.com" required>
        </div>
        <button class="btn btn-primary" type="submit">Send reset link</button>
    </form>
    {% endif %}
    <p class="info"><a href="{{ url_for('web.login') }}">Back to sign in</a></p>
</div>
{% endblock %}
"""

RESET_PASSWORD_TEMPLATE = """
{% extends "base.html" %}
{% block content %}
<div class="panel narrow">
    <h2>Choose a new password</h2>
    {% if not valid_session %}
    <p class="info">This password reset link has expired or is invalid. Please request a new link.</p>
    <a class="btn" href="{{ url_for('web.forgot_password') }}">Request a new link</a>
    {% else %}
    {% if error %}<div class="error">{{ error }}</div>{% endif %}
    <form method="POST">
        <div class="form-group">
            <label for="new_password">New password</label>
            <input id="new_password" type="password" name="new_password" required>
        </div>
        <div class="form-group">
            <label for="confirm_password">Confirm password</label>
            <input id="confirm_password" type="password" name="confirm_password" required>
        </div>
        <button class="btn btn-primary" type="submit">Reset password</button>
    </form>
    {% endif %}
</div>
{% endblock %}
"""

DASHBOARD_TEMPLATE = """
{% extends "base.html" %}
{% block title %}Book Tracker - Dashboard{% endblock %}
{% block content %}
<div class="stats">
    <div class="stat-card"><div class="stat-number">{{ stats.total }}</div><div class="stat-label">Total books</div></div>
    <div class="stat-card"><div class="stat-number">{{ '%.1f'|format(stats.average_rating) }}</div><div class="stat-label">Average rating</div></div>
    <div class="stat-card"><div class="stat-number">{{ stats.reading }}</div><div class="stat-label">Reading</div></div>
    <div class="stat-card"><div class="stat-number">{{ stats.completed }}</div><div class="stat-label">Finished</div></div>
</div>
<div class="panel">
    <h2>Books per year</h2>
    {% if stats.books_by_year %}
    {% for year, count in stats.books_by_year %}
    <div class="bar-row"><span>{{ year }}</span><div class="bar" style="width: {{ (count / peak * 100)|round }}%"></div>{{ count }}</div>
    {% endfor %}
    {% else %}
    <p class="info">No data available</p>
    {% endif %}
</div>
{% if stats.top_genres %}
<div class="panel">
    <h2>Top genres</h2>
    {% for genre, count in stats.top_genres %}<span class="chip">{{ genre }} ({{ count }})</span>{% endfor %}
</div>
{% endif %}
<div class="panel">
    <h2>Recently added</h2>
    {% if recent_books %}
    <ul class="plain">
    {% for book in recent_books %}
        <li><a href="{{ url_for('web.book_detail', book_id=book.id) }}">{{ book.title }}</a> - {{ book.author }}
            {% if book.rating %}⭐ {{ book.rating }}/5{% endif %}</li>
    {% endfor %}
    </ul>
    {% else %}
    <a class="btn btn-primary" href="{{ url_for('web.new_book') }}">Add your first book</a>
    {% endif %}
</div>
{% endblock %}
"""

BOOKS_TEMPLATE = """
{% extends "base.html" %}
{% block title %}Book Tracker - Books{% endblock %}
{% block content %}
<div class="stats">
    <div class="stat-card"><div class="stat-number">{{ view.stats.total }}</div><div class="stat-label">Total</div></div>
    <div class="stat-card"><div class="stat-number">{{ view.stats.reading }}</div><div class="stat-label">Reading</div></div>
    <div class="stat-card"><div class="stat-number">{{ view.stats.completed }}</div><div class="stat-label">Finished</div></div>
    <div class="stat-card"><div class="stat-number">{{ view.stats.rated }}</div><div class="stat-label">Rated</div></div>
    <div class="stat-card"><div class="stat-number">{{ '%.1f'|format(view.stats.average_rating) }}</div><div class="stat-label">Average rating</div></div>
</div>
<div class="panel">
    <form method="GET" action="{{ url_for('web.list_books') }}">
        <input type="hidden" name="view" value="{{ view_mode }}">
        <div class="form-group">
            <input type="text" name="q" value="{{ filters.query }}" placeholder="Search by title, author or description">
        </div>
        <div class="form-group">
            <label>Sort</label>
            <select name="sort">
                {% for key, label in sort_labels.items() %}
                <option value="{{ key }}" {% if key == sort %}selected{% endif %}>{{ label }}</option>
                {% endfor %}
            </select>
        </div>
        <details {% if filters.active_count %}open{% endif %}>
            <summary class="btn">Filter{% if filters.active_count %} ({{ filters.active_count }}){% endif %}</summary>
            <div class="form-group">
                <label>Genres</label>
                {% for genre in genre_options %}
                <label class="inline"><input type="checkbox" name="genre" value="{{ genre }}" {% if genre in filters.genres %}checked{% endif %}> {{ genre }}</label>
                {% endfor %}
            </div>
            <div class="form-group">
                <label>Would read again</label>
                <label class="inline"><input type="radio" name="read_again" value="all" {% if filters.read_again == 'all' %}checked{% endif %}> All</label>
                {% for choice in read_again_choices %}
                <label class="inline"><input type="radio" name="read_again" value="{{ choice }}" {% if filters.read_again == choice %}checked{% endif %}> {{ choice|capitalize }}</label>
                {% endfor %}
            </div>
            <div class="form-group">
                <label>Would recommend</label>
                <label class="inline"><input type="radio" name="recommend" value="all" {% if filters.recommend == 'all' %}checked{% endif %}> All</label>
                <label class="inline"><input type="radio" name="recommend" value="recommended" {% if filters.recommend == 'recommended' %}checked{% endif %}> Recommended</label>
                <label class="inline"><input type="radio" name="recommend" value="not_recommended" {% if filters.recommend == 'not_recommended' %}checked{% endif %}> Not recommended</label>
            </div>
        </details>
        <button class="btn btn-primary" type="submit">Apply</button>
        <a class="btn" href="{{ books_url(view='grid') }}">Grid</a>
        <a class="btn" href="{{ books_url(view='list') }}">List</a>
    </form>
    {% if filters.is_active %}
    <p class="info">
        {% for genre in filters.genres %}
        <a class="chip active" href="{{ books_url(genre=filters.toggle_genre(genre).genres|list) }}">{{ genre }} ✕</a>
        {% endfor %}
        {% if filters.read_again != 'all' %}<a class="chip active" href="{{ books_url(read_again='all') }}">{{ filters.read_again|capitalize }} ✕</a>{% endif %}
        {% if filters.recommend != 'all' %}<a class="chip active" href="{{ books_url(recommend='all') }}">{{ filters.recommend|replace('_', ' ')|capitalize }} ✕</a>{% endif %}
        <a href="{{ url_for('web.list_books', view=view_mode) }}">Clear all</a>
    </p>
    {% endif %}
</div>
<p class="info">{{ view.total_matches }} {{ 'book' if view.total_matches == 1 else 'books' }} found</p>
{% if view.books %}
<div class="books-grid {{ view_mode }}">
    {% for book in view.books %}
    {% set status = reading_status(book) %}
    <div class="book-card">
        <a class="book-thumbnail" href="{{ url_for('web.book_detail', book_id=book.id) }}">
            {% if book.cover_image %}<img src="{{ book.cover_image }}" alt="{{ book.title }}">{% else %}📖{% endif %}
        </a>
        <div class="book-content">
            <a class="book-title" href="{{ url_for('web.book_detail', book_id=book.id) }}">{{ book.title }}</a>
            <div class="book-author">{{ book.author }}</div>
            <span class="badge badge-{{ status }}">{{ status_labels[status] }}</span>
            <span class="badge">{{ book.format }}</span>
            {% if book.rating %}<span class="badge">⭐ {{ book.rating }}/5</span>{% endif %}
            <p class="info">
                <a href="{{ url_for('web.edit_book', book_id=book.id) }}">Edit</a> ·
                <a href="{{ url_for('web.delete_book', book_id=book.id) }}">Delete</a>
            </p>
        </div>
    </div>
    {% endfor %}
</div>
{% else %}
<div class="panel"><p class="info">No books found.</p>
    <a class="btn btn-primary" href="{{ url_for('web.new_book') }}">Add book</a></div>
{% endif %}
{% if view.page.total_pages > 1 %}
<p class="info">Page {{ view.page.number }} of {{ view.page.total_pages }}</p>
<div class="pagination">
    <a class="btn {% if not view.page.has_previous %}disabled{% endif %}" href="{{ books_url(page=view.page.number - 1) }}">Previous</a>
    {% for number in view.page.window %}
    <a class="btn {% if number == view.page.number %}current{% endif %}" href="{{ books_url(page=number) }}">{{ number }}</a>
    {% endfor %}
    <a class="btn {% if not view.page.has_next %}disabled{% endif %}" href="{{ books_url(page=view.page.number + 1) }}">Next</a>
</div>
{% endif %}
{% endblock %}
"""

BOOK_DETAIL_TEMPLATE = """
{% extends "base.html" %}
{% block title %}{{ book.title }}{% endblock %}
{% block content %}
<p class="info"><a href="{{ url_for('web.list_books') }}">← Back to books</a></p>
<div class="panel">
    <span class="badge badge-{{ status }}">{{ status_labels[status] }}</span>
    <span class="badge">{{ book.format }}</span>
    <h2>{{ book.title }}</h2>
    <p class="book-author">{{ book.author }}</p>
    {% if book.cover_image %}<img src="{{ book.cover_image }}" alt="{{ book.title }}" style="max-width: 200px; border-radius: 12px;">{% endif %}
    {% if book.rating %}<p>⭐ {{ book.rating }}/5</p>{% endif %}
    {% if book.start_reading_date %}
    <p class="info">Reading progress: {{ progress }}%</p>
    <div class="progress"><div style="width: {{ progress }}%"></div></div>
    {% endif %}
    <ul class="plain info">
        {% if book.publisher %}<li>Publisher: {{ book.publisher }}</li>{% endif %}
        {% if book.pages %}<li>Pages: {{ book.pages }}</li>{% endif %}
        {% if book.release_date %}<li>Released: {{ book.release_date }}</li>{% endif %}
        {% if book.start_reading_date %}<li>Started: {{ book.start_reading_date }}</li>{% endif %}
        {% if book.finish_reading_date %}<li>Finished: {{ book.finish_reading_date }}</li>{% endif %}
        {% if days is not none %}<li>Read in {{ days }} day{{ '' if days == 1 else 's' }}</li>{% endif %}
        {% if book.would_read_again %}<li>Would read again: {{ book.would_read_again }}</li>{% endif %}
        {% if book.would_recommend is not none %}<li>Would recommend: {{ 'yes' if book.would_recommend else 'no' }}</li>{% endif %}
    </ul>
    {% for genre in book.genres or [] %}<span class="chip">{{ genre }}</span>{% endfor %}
    <p>
        <form class="inline" method="POST" action="{{ url_for('web.start_reading', book_id=book.id) }}"><button class="btn" type="submit">Start today</button></form>
        <form class="inline" method="POST" action="{{ url_for('web.finish_reading', book_id=book.id) }}"><button class="btn" type="submit">Finish today</button></form>
        <a class="btn btn-primary" href="{{ url_for('web.edit_book', book_id=book.id) }}">Edit</a>
        <a class="btn btn-danger" href="{{ url_for('web.delete_book', book_id=book.id) }}">Delete</a>
    </p>
</div>
{% if book.review %}<div class="panel"><h2>Review</h2><p>{{ book.review }}</p></div>{% endif %}
{% if book.characters %}<div class="panel"><h2>Characters</h2>
    {% for character in book.characters %}<span class="chip">{{ character }}</span>{% endfor %}</div>{% endif %}
{% if book.quotes %}<div class="panel"><h2>Quotes</h2>
    {% for quote in book.quotes %}<blockquote>{{ quote }}</blockquote>{% endfor %}</div>{% endif %}
{% endblock %}
"""

BOOK_FORM_TEMPLATE = """
{% extends "base.html" %}
{% block title %}{{ 'Add book' if form.is_new else 'Edit book' }}{% endblock %}
{% block content %}
{% macro field_error(name) %}{% if form.errors[name] %}<div class="field-error">{{ form.errors[name] }}</div>{% endif %}{% endmacro %}
{% macro hidden(name) %}<input type="hidden" name="{{ name }}" value="{{ d[name] if d[name] is not none else '' }}">{% endmacro %}
<div class="panel">
    <h2>{{ 'Add book' if form.is_new else 'Edit book' }}</h2>
    <p class="info">Step {{ form.step }} of {{ total_steps }}</p>
    <div class="steps">
        {% for label in ['Basic information', 'Book details', 'Personal evaluation'] %}
        <span class="{{ 'done' if form.step > loop.index else ('current' if form.step == loop.index else '') }}">{{ loop.index }}. {{ label }}</span>
        {% endfor %}
    </div>
    {% if form.is_dirty %}<p class="info">You have unsaved changes.</p>{% endif %}

    <form method="POST">
    <input type="hidden" name="step" value="{{ form.step }}">

    {% if form.confirming_exit %}
    <div class="panel dialog">
        <p>Discard your changes and leave?</p>
        <button class="btn" type="submit" name="action" value="decline_cancel">Continue editing</button>
        <button class="btn btn-danger" type="submit" name="action" value="confirm_cancel">Leave without saving</button>
    </div>
    {% endif %}

    {% if form.step == 1 %}
        <div class="form-group">
            <label for="title">Title *</label>
            <input id="title" type="text" name="title" value="{{ d.title }}" placeholder="The Lord of the Rings">
            {{ field_error('title') }}
        </div>
        <div class="form-group">
            <label for="author">Author *</label>
            <input id="author" type="text" name="author" value="{{ d.author }}" placeholder="J.R.R. Tolkien">
            {{ field_error('author') }}
        </div>
        <div class="form-group">
            <label for="cover_image">Cover image (optional)</label>
            <input id="cover_image" type="url" name="cover_image" value="{{ d.cover_image }}" placeholder="https://example.com/cover.jpg">
            {% if cover_ok is false %}<div class="field-error">The cover image could not be loaded.</div>{% endif %}
        </div>
        <div class="form-group">
            <label>Format *</label>
            <label class="inline"><input type="radio" name="format" value="physical" {% if d.format == 'physical' %}checked{% endif %}> Physical</label>
            <label class="inline"><input type="radio" name="format" value="digital" {% if d.format == 'digital' %}checked{% endif %}> Digital</label>
        </div>
    {% else %}
        {{ hidden('title') }}{{ hidden('author') }}{{ hidden('cover_image') }}{{ hidden('format') }}
    {% endif %}

    {% if form.step == 2 %}
        <div class="form-group">
            <label for="release_date">Release date</label>
            <input id="release_date" type="date" name="release_date" value="{{ d.release_date }}">
            {{ field_error('release_date') }}
        </div>
        <div class="form-group">
            <label for="start_reading_date">Started reading</label>
            <input id="start_reading_date" type="date" name="start_reading_date" value="{{ d.start_reading_date }}">
            {{ field_error('start_reading_date') }}
        </div>
        <div class="form-group">
            <label for="finish_reading_date">Finished reading</label>
            <input id="finish_reading_date" type="date" name="finish_reading_date" value="{{ d.finish_reading_date }}">
            {{ field_error('finish_reading_date') }}
        </div>
        <p class="info">Reading progress: {{ form.reading_progress }}%</p>
        <div class="form-group">
            <label for="pages">Pages</label>
            <input id="pages" type="number" min="1" name="pages" value="{{ d.pages if d.pages is not none else '' }}">
            {{ field_error('pages') }}
        </div>
        <div class="form-group">
            <label for="publisher">Publisher</label>
            <input id="publisher" type="text" name="publisher" value="{{ d.publisher }}">
        </div>
        <div class="form-group">
            <label>Genres</label>
            <p>{% for genre in d.genres %}<span class="chip active">{{ genre }} <button class="btn" type="submit" name="action" value="toggle_genre:{{ genre }}">✕</button></span>{% endfor %}</p>
            {% for genre in genre_options %}
            <label class="inline"><input type="checkbox" name="genres" value="{{ genre }}" {% if genre in d.genres %}checked{% endif %}> {{ genre }}</label>
            {% endfor %}
            <input type="text" name="custom_genre" placeholder="Custom genre">
            <button class="btn" type="submit" name="action" value="add_genre">Add genre</button>
        </div>
    {% else %}
        {{ hidden('release_date') }}{{ hidden('start_reading_date') }}{{ hidden('finish_reading_date') }}
        {{ hidden('pages') }}{{ hidden('publisher') }}
        {% for genre in d.genres %}<input type="hidden" name="genres" value="{{ genre }}">{% endfor %}
    {% endif %}

    {% if form.step == 3 %}
        <div class="form-group">
            <label for="rating">Rating</label>
            <select id="rating" name="rating">
                <option value="">Not rated</option>
                {% for value in range(1, 6) %}
                <option value="{{ value }}" {% if d.rating == value %}selected{% endif %}>{{ value }}/5</option>
                {% endfor %}
            </select>
            {{ field_error('rating') }}
        </div>
        <div class="form-group">
            <label for="review">Review</label>
            <textarea id="review" name="review" rows="5">{{ d.review }}</textarea>
        </div>
        <div class="form-group">
            <label>Characters</label>
            {% for character in d.characters %}
            <span class="chip">{{ character }} <button class="btn" type="submit" name="action" value="remove_character:{{ character }}">✕</button></span>
            <input type="hidden" name="characters" value="{{ character }}">
            {% endfor %}
            <input type="text" name="new_character" placeholder="Add a character">
            <button class="btn" type="submit" name="action" value="add_character">Add</button>
        </div>
        <div class="form-group">
            <label>Quotes</label>
            {% for quote in d.quotes %}
            <blockquote>{{ quote }} <button class="btn" type="submit" name="action" value="remove_quote:{{ quote }}">✕</button></blockquote>
            <input type="hidden" name="quotes" value="{{ quote }}">
            {% endfor %}
            <textarea name="new_quote" rows="2" placeholder="Add a quote"></textarea>
            <button class="btn" type="submit" name="action" value="add_quote">Add</button>
        </div>
        <div class="form-group">
            <label>Would read again</label>
            <label class="inline"><input type="radio" name="would_read_again" value="" {% if not d.would_read_again %}checked{% endif %}> -</label>
            {% for choice in read_again_choices %}
            <label class="inline"><input type="radio" name="would_read_again" value="{{ choice }}" {% if d.would_read_again == choice %}checked{% endif %}> {{ choice|capitalize }}</label>
            {% endfor %}
        </div>
        <div class="form-group">
            <label>Would recommend</label>
            <label class="inline"><input type="radio" name="would_recommend" value="" {% if d.would_recommend is none %}checked{% endif %}> -</label>
            <label class="inline"><input type="radio" name="would_recommend" value="true" {% if d.would_recommend is true %}checked{% endif %}> Yes</label>
            <label class="inline"><input type="radio" name="would_recommend" value="false" {% if d.would_recommend is false %}checked{% endif %}> No</label>
        </div>
    {% else %}
        {{ hidden('rating') }}{{ hidden('review') }}{{ hidden('would_read_again') }}
        <input type="hidden" name="would_recommend" value="{{ '' if d.would_recommend is none else ('true' if d.would_recommend else 'false') }}">
        {% for character in d.characters %}<input type="hidden" name="characters" value="{{ character }}">{% endfor %}
        {% for quote in d.quotes %}<input type="hidden" name="quotes" value="{{ quote }}">{% endfor %}
    {% endif %}

    <p>
        {% if form.step > 1 %}<button class="btn" type="submit" name="action" value="back">Back</button>{% endif %}
        <button class="btn" type="submit" name="action" value="cancel">Cancel</button>
        {% if form.step < total_steps %}
        <button class="btn btn-primary" type="submit" name="action" value="next">Continue</button>
        {% else %}
        <button class="btn btn-primary" type="submit" name="action" value="submit" {% if form.is_submitting %}disabled{% endif %}>{{ 'Add book to collection' if form.is_new else 'Update book' }}</button>
        {% endif %}
    </p>
    </form>
</div>
{% endblock %}
"""

CONFIRM_DELETE_TEMPLATE = """
{% extends "base.html" %}
{% block content %}
<div class="panel narrow dialog">
    <h2>Delete book?</h2>
    <p class="info">"{{ book.title }}" will be permanently removed from your collection.</p>
    <form method="POST">
        <a class="btn" href="{{ url_for('web.book_detail', book_id=book.id) }}">Cancel</a>
        <button class="btn btn-danger" type="submit">Delete</button>
    </form>
</div>
{% endblock %}
"""

ERROR_TEMPLATE = """
{% extends "base.html" %}
{% block content %}
<div class="panel narrow">
    <h2>Something went wrong</h2>
    <div class="error">{{ message }}</div>
    <a class="btn" href="{{ url_for('web.dashboard') }}">Back to dashboard</a>
</div>
{% endblock %}
"""

TEMPLATES = {
    "base.html": BASE_TEMPLATE,
    "login.html": LOGIN_TEMPLATE,
    "sign_up.html": SIGN_UP_TEMPLATE,
    "check_email.html": CHECK_EMAIL_TEMPLATE,
    "forgot_password.html": FORGOT_PASSWORD_TEMPLATE,
    "reset_password.html": RESET_PASSWORD_TEMPLATE,
    "dashboard.html": DASHBOARD_TEMPLATE,
    "books.html": BOOKS_TEMPLATE,
    "book_detail.html": BOOK_DETAIL_TEMPLATE,
    "book_form.html": BOOK_FORM_TEMPLATE,
    "confirm_delete.html": CONFIRM_DELETE_TEMPLATE,
    "error.html": ERROR_TEMPLATE,
}

if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO)
    print("🚀 Starting Book Tracker Web Interface...")
    print(f"🌐 Access at: http://localhost:{PORT}")
    print("\nPress Ctrl+C to stop")
    create_app().run(debug=False, host='0.0.0.0', port=PORT)
