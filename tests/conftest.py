"""
Shared fixtures: a fresh SQLite database per test, cache and email disabled
"""
import os
import tempfile
import uuid
from datetime import timedelta

_TMP_DIR = tempfile.mkdtemp(prefix="exam-platform-tests-")

os.environ.update({
    "DATABASE_URL": f"sqlite:///{os.path.join(_TMP_DIR, 'test.db')}",
    "ENVIRONMENT": "test",
    "LOG_LEVEL": "WARNING",
    "CACHE_ENABLED": "false",
    "RATE_LIMIT_PER_MINUTE": "100000",
    "RATE_LIMIT_PER_HOUR": "1000000",
    "CREDENTIAL_ATTEMPTS_PER_MINUTE": "100000",
    "JWT_SECRET": "test-access-secret-0123456789abcdef0123456789",
    "REFRESH_TOKEN_SECRET": "test-refresh-secret-0123456789abcdef012345678",
    "ADMIN_EMAIL": "admin@quizhub.io",
    "ADMIN_PASSWORD": "Admin#Pass2024",
    "SMTP_HOST": "",
    "MEDIA_ROOT": os.path.join(_TMP_DIR, "media"),
    "STRIPE_SECRET_KEY": "sk_test_dummy",
    "STRIPE_WEBHOOK_SECRET": "whsec_test_secret",
})

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from app.database import Base, SessionLocal, engine, utcnow  # noqa: E402
from app.main import app  # noqa: E402
from app.models import ExamSession, User  # noqa: E402
from app.utils.rate_limiter import rate_limiter  # noqa: E402

DEFAULT_PASSWORD = "Passw0rd!long"
QUIZ_PASSWORD = "open-sesame"


@pytest.fixture
def client():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    rate_limiter.reset()
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def auth_header(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def verification_token_for(email: str) -> str:
    session = SessionLocal()
    try:
        return session.query(User).filter(User.email == email).first().verification_token
    finally:
        session.close()


def login(client, email: str, password: str = DEFAULT_PASSWORD) -> dict:
    response = client.post("/api/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    body = response.json()
    return {
        "id": body["user"]["id"],
        "email": email,
        "token": body["access_token"],
        "headers": auth_header(body["access_token"]),
    }


@pytest.fixture
def make_user(client):
    """Register, verify and log in a user; returns id, email, token and headers"""

    def _make(role: str = "student", email: str = None, password: str = DEFAULT_PASSWORD, name: str = None):
        email = email or f"{role}-{uuid.uuid4().hex[:8]}@quizhub.io"
        response = client.post(
            "/api/auth/register",
            json={"email": email, "password": password, "role": role, "name": name or role.title()},
        )
        assert response.status_code == 201, response.text
        token = verification_token_for(email)
        assert client.get("/api/auth/verify-email", params={"token": token}).status_code == 200
        return login(client, email, password)

    return _make


@pytest.fixture
def creator(make_user):
    return make_user("creator", email="ada@quizhub.io", name="Ada Creator")


@pytest.fixture
def student(make_user):
    return make_user("student", email="sam@quizhub.io", name="Sam Student")


@pytest.fixture
def admin(client):
    return login(client, "admin@quizhub.io", "Admin#Pass2024")


def quiz_payload(**overrides) -> dict:
    now = utcnow()
    payload = {
        "title": "Geography Basics",
        "description": "Capitals and coastlines",
        "start_time": (now - timedelta(hours=1)).isoformat(),
        "end_time": (now + timedelta(hours=2)).isoformat(),
        "duration": 30,
        "password": QUIZ_PASSWORD,
        "questions": [
            {
                "id": "q1",
                "type": "mcq",
                "text": "Capital of Japan?",
                "options": ["Osaka", "Tokyo", "Kyoto"],
                "correct_answer": "Tokyo",
                "points": 2,
                "explanation": "Tokyo has been the capital since 1868",
            },
            {
                "id": "q2",
                "type": "true_false",
                "text": "Australia is a continent.",
                "correct_answer": "true",
            },
            {
                "id": "q3",
                "type": "short_answer",
                "text": "Capital of France?",
                "correct_answer": "Paris",
                "points": 3,
            },
        ],
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def live_quiz(client, creator):
    """A live, public quiz that is inside its availability window"""

    def _create(**overrides):
        overrides.setdefault("is_public", True)
        response = client.post("/api/quizzes/create", json=quiz_payload(**overrides), headers=creator["headers"])
        assert response.status_code == 201, response.text
        quiz_id = response.json()["quiz_id"]
        toggle = client.patch(
            f"/api/quizzes/{quiz_id}/toggle-live", json={"is_live": True}, headers=creator["headers"]
        )
        assert toggle.status_code == 200, toggle.text
        return quiz_id

    return _create


def expire_session(session_id: str) -> None:
    """Move a session's deadline into the past"""
    session = SessionLocal()
    try:
        exam_session = session.get(ExamSession, uuid.UUID(session_id))
        exam_session.end_time = utcnow() - timedelta(seconds=5)
        session.commit()
    finally:
        session.close()
