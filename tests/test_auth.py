import pytest

from books import AuthenticationError, ValidationError
from conftest import OWNER_EMAIL, OWNER_ID, OWNER_PASSWORD


def test_sign_in_returns_session(auth):
    session = auth.sign_in(OWNER_EMAIL, OWNER_PASSWORD)
    assert session == {
        "user_id": OWNER_ID,
        "email": OWNER_EMAIL,
        "access_token": f"token-{OWNER_ID}",
        "refresh_token": f"refresh-{OWNER_ID}",
    }


def test_sign_in_with_bad_password(auth):
    with pytest.raises(AuthenticationError, match="Invalid login credentials"):
        auth.sign_in(OWNER_EMAIL, "wrong")


def test_sign_up_rejects_short_password_locally(auth, supabase):
    with pytest.raises(ValidationError) as exc:
        auth.sign_up("new@example.com", "12345")
    assert exc.value.field == "password"
    assert supabase.auth.calls == []


def test_sign_up_pending_confirmation(auth, supabase):
    supabase.auth.confirm_email = True
    assert auth.sign_up("new@example.com", "123456", redirect_to="http://localhost/auth/login") is None
    _, credentials = supabase.auth.calls[-1]
    assert credentials["options"] == {"email_redirect_to": "http://localhost/auth/login"}


def test_sign_up_with_immediate_session(auth):
    session = auth.sign_up("new@example.com", "123456")
    assert session["email"] == "new@example.com"
    with pytest.raises(AuthenticationError):
        auth.sign_up("new@example.com", "123456")


def test_sign_out_uses_stored_session(auth, supabase):
    auth.sign_out(auth.sign_in(OWNER_EMAIL, OWNER_PASSWORD))
    assert supabase.auth.calls[-1] == ("sign_out", f"token-{OWNER_ID}")


def test_password_reset_request(auth, supabase):
    auth.request_password_reset(OWNER_EMAIL, "http://localhost/auth/reset-password")
    assert supabase.auth.calls[-1] == ("reset", OWNER_EMAIL, "http://localhost/auth/reset-password")


def test_recovery_and_password_update(auth, supabase):
    supabase.auth.recovery_hashes["hash-1"] = OWNER_ID
    recovery = auth.verify_recovery("hash-1")
    auth.update_password(recovery, "brand-new", "brand-new")
    assert auth.sign_in(OWNER_EMAIL, "brand-new")["user_id"] == OWNER_ID

    with pytest.raises(AuthenticationError):
        auth.verify_recovery("expired")


@pytest.mark.parametrize("new, confirm, field", [
    ("abcdef", "abcdeg", "confirm_password"),
    ("abc", "abc", "new_password"),
])
def test_update_password_validates_locally(auth, new, confirm, field):
    with pytest.raises(ValidationError) as exc:
        auth.update_password({"access_token": "t", "refresh_token": "r"}, new, confirm)
    assert exc.value.field == field


def test_update_password_requires_recovery_session(auth):
    with pytest.raises(AuthenticationError):
        auth.update_password(None, "abcdef", "abcdef")


def test_get_user(auth):
    assert auth.get_user(f"token-{OWNER_ID}") == {"user_id": OWNER_ID, "email": OWNER_EMAIL}
    assert auth.get_user("forged") is None
    assert auth.get_user(None) is None
