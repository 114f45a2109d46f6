"""
Registration, verification, login and account management
"""
from conftest import DEFAULT_PASSWORD, auth_header, login, verification_token_for

from app.database import SessionLocal
from app.models import User


def _register(client, email="lee@quizhub.io", role="student", password=DEFAULT_PASSWORD):
    return client.post(
        "/api/auth/register",
        json={"email": email, "password": password, "role": role, "name": "Lee"},
    )


def test_register_creates_unverified_account_with_trial(client):
    response = _register(client, email="Lee@QuizHub.io")
    assert response.status_code == 201
    body = response.json()
    assert body["email_verification_sent"] is True

    db = SessionLocal()
    try:
        user = db.query(User).filter(User.email == "lee@quizhub.io").first()
        assert user is not None
        assert user.is_email_verified is False
        assert user.trial_expiry is not None
        assert user.password_hash != DEFAULT_PASSWORD
    finally:
        db.close()


def test_register_duplicate_email_is_rejected(client):
    assert _register(client).status_code == 201
    response = _register(client, email="LEE@quizhub.io")
    assert response.status_code == 400
    assert response.json()["message"] == "User already exists"


def test_register_rejects_admin_role_and_short_password(client):
    assert _register(client, role="admin").status_code == 400
    response = _register(client, password="short")
    assert response.status_code == 400
    assert response.json()["error"] == "validation_error"


def test_login_requires_verified_email(client):
    _register(client)
    response = client.post("/api/auth/login", json={"email": "lee@quizhub.io", "password": DEFAULT_PASSWORD})
    assert response.status_code == 401
    assert response.json()["needs_verification"] is True


def test_login_with_bad_password_is_unauthorized(client, student):
    response = client.post("/api/auth/login", json={"email": student["email"], "password": "wrong-password"})
    assert response.status_code == 401
    assert response.json()["message"] == "Invalid email or password"


def test_verify_email_with_unknown_token(client):
    response = client.get("/api/auth/verify-email", params={"token": "nope"})
    assert response.status_code == 400


def test_verification_token_is_single_use(client):
    _register(client)
    token = verification_token_for("lee@quizhub.io")
    assert client.get("/api/auth/verify-email", params={"token": token}).status_code == 200
    assert client.get("/api/auth/verify-email", params={"token": token}).status_code == 400


def test_resend_verification_hides_unknown_accounts(client, student):
    unknown = client.post("/api/auth/resend-verification", json={"email": "ghost@quizhub.io"})
    assert unknown.status_code == 200

    already = client.post("/api/auth/resend-verification", json={"email": student["email"]})
    assert already.status_code == 400


def test_me_requires_token(client):
    response = client.get("/api/auth/me")
    assert response.status_code == 401
    assert response.json()["message"] == "Access denied. No token provided."

    response = client.get("/api/auth/me", headers=auth_header("garbage"))
    assert response.status_code == 401


def test_me_returns_profile(client, creator):
    response = client.get("/api/auth/me", headers=creator["headers"])
    assert response.status_code == 200
    body = response.json()
    assert body["email"] == creator["email"]
    assert body["role"] == "creator"
    assert "password_hash" not in body


def test_refresh_cookie_issues_new_access_token(client, student):
    response = client.post("/api/auth/refresh-token")
    assert response.status_code == 200
    assert response.json()["access_token"]


def test_refresh_without_cookie_is_unauthorized(client):
    assert client.post("/api/auth/refresh-token").status_code == 401


def test_logout_revokes_outstanding_tokens(client, student):
    response = client.post("/api/auth/logout", headers=student["headers"])
    assert response.status_code == 200

    assert client.get("/api/auth/me", headers=student["headers"]).status_code == 401


def test_forgot_and_reset_password(client, student):
    response = client.post("/api/auth/forgot-password", json={"email": student["email"]})
    assert response.status_code == 200
    unknown = client.post("/api/auth/forgot-password", json={"email": "ghost@quizhub.io"})
    assert unknown.json()["message"] == response.json()["message"]

    db = SessionLocal()
    try:
        token = db.query(User).filter(User.email == student["email"]).first().password_reset_token
    finally:
        db.close()

    weak = client.post("/api/auth/reset-password", json={"token": token, "new_password": "abcdefgh"})
    assert weak.status_code == 400

    reset = client.post("/api/auth/reset-password", json={"token": token, "new_password": "N3w-pass!word"})
    assert reset.status_code == 200

    assert client.get("/api/auth/me", headers=student["headers"]).status_code == 401
    assert login(client, student["email"], "N3w-pass!word")["token"]

    reused = client.post("/api/auth/reset-password", json={"token": token, "new_password": "An0ther!pass"})
    assert reused.status_code == 400


def test_update_profile_email_requires_reverification(client, student, creator):
    taken = client.put("/api/auth/profile", json={"email": creator["email"]}, headers=student["headers"])
    assert taken.status_code == 400

    response = client.put(
        "/api/auth/profile",
        json={"name": "Samantha", "email": "samantha@quizhub.io"},
        headers=student["headers"],
    )
    assert response.status_code == 200
    user = response.json()["user"]
    assert user["name"] == "Samantha"
    assert user["email"] == "samantha@quizhub.io"
    assert user["is_email_verified"] is False


def test_change_password_checks_current_password(client, creator):
    wrong = client.put(
        "/api/auth/password",
        json={"current_password": "not-it", "new_password": "Another#pass1"},
        headers=creator["headers"],
    )
    assert wrong.status_code == 401

    ok = client.put(
        "/api/auth/password",
        json={"current_password": DEFAULT_PASSWORD, "new_password": "Another#pass1"},
        headers=creator["headers"],
    )
    assert ok.status_code == 200
    assert login(client, creator["email"], "Another#pass1")["token"]


def test_bootstrap_admin_can_log_in(client, admin):
    response = client.get("/api/auth/me", headers=admin["headers"])
    assert response.json()["role"] == "admin"
