"""
Exam sessions: password gate, answer buffer, expiry and submission
"""
import uuid
from datetime import datetime, timedelta

from conftest import QUIZ_PASSWORD, expire_session, quiz_payload

from app.database import SessionLocal
from app.models import ExamSession, Submission
from app.services.session_service import remaining_seconds, session_service, session_status


def _authenticate(client, student, quiz_id, password=QUIZ_PASSWORD):
    return client.post(
        f"/api/quizzes/{quiz_id}/authenticate", json={"password": password}, headers=student["headers"]
    )


def _start(client, student, quiz_id):
    response = _authenticate(client, student, quiz_id)
    assert response.status_code == 200, response.text
    return response.json()["session_id"]


def _save(client, student, session_id, question_id, answer, time_spent=None):
    payload = {"question_id": question_id, "answer": answer}
    if time_spent is not None:
        payload["time_spent"] = time_spent
    return client.post(
        f"/api/quizzes/session/{session_id}/save-answer", json=payload, headers=student["headers"]
    )


def _submissions(quiz_id):
    db = SessionLocal()
    try:
        return db.query(Submission).filter(Submission.quiz_id == uuid.UUID(quiz_id)).all()
    finally:
        db.close()


def test_session_helpers():
    now = datetime(2024, 5, 1, 10, 0)
    session = ExamSession(end_time=now + timedelta(seconds=90), is_completed=False)
    assert remaining_seconds(session, now) == 90
    assert session_status(session, now) == "active"
    assert session_status(session, now + timedelta(minutes=2)) == "expired"
    assert remaining_seconds(session, now + timedelta(minutes=2)) == 0

    session.is_completed = True
    assert session_status(session, now) == "completed"
    assert remaining_seconds(session, now) == 0


def test_full_exam_flow(client, creator, student, live_quiz):
    quiz_id = live_quiz()

    response = _authenticate(client, student, quiz_id)
    assert response.status_code == 200
    body = response.json()
    assert body["resumed"] is False
    session_id = body["session_id"]
    for question in body["quiz"]["questions"]:
        assert "correct_answer" not in question
        assert "explanation" not in question

    started = datetime.fromisoformat(body["start_time"])
    ends = datetime.fromisoformat(body["end_time"])
    assert ends - started == timedelta(minutes=30)

    assert _save(client, student, session_id, "q1", "Osaka", time_spent=10).status_code == 200
    saved = _save(client, student, session_id, "q1", "Tokyo", time_spent=5)
    assert saved.status_code == 200
    assert 0 < saved.json()["remaining_seconds"] <= 30 * 60
    assert _save(client, student, session_id, "q2", "True", time_spent=7).status_code == 200

    state = client.get(f"/api/quizzes/session/{session_id}", headers=student["headers"]).json()
    assert state["status"] == "active"
    assert state["answers"]["q1"] == {"answer": "Tokyo", "time_spent": 15, "saves": 2}

    submitted = client.post(f"/api/quizzes/session/{session_id}/submit", json={}, headers=student["headers"])
    assert submitted.status_code == 200
    result = submitted.json()
    assert result["show_results"] is False
    assert result["total_score"] is None

    state = client.get(f"/api/quizzes/session/{session_id}", headers=student["headers"]).json()
    assert state["status"] == "completed"
    assert state["remaining_seconds"] == 0

    listed = client.get(f"/api/quizzes/{quiz_id}/submissions", headers=creator["headers"]).json()
    assert len(listed) == 1
    assert listed[0]["student_email"] == student["email"]
    assert listed[0]["total_score"] == 3.0
    assert listed[0]["max_score"] == 6.0
    assert listed[0]["percentage"] == 50.0

    detail = client.get(f"/api/quizzes/submissions/{listed[0]['id']}", headers=creator["headers"]).json()
    by_question = {a["question_id"]: a for a in detail["answers"]}
    assert by_question["q1"]["is_correct"] is True
    assert by_question["q2"]["score"] == 1.0
    assert by_question["q3"]["student_answer"] is None
    assert by_question["q3"]["is_correct"] is None
    assert detail["behavior_metrics"]["questions_skipped"] == 1
    assert detail["behavior_metrics"]["questions_changed_answer"] == 1
    assert detail["behavior_metrics"]["questions_revisited"] == 1


def test_submit_with_results_shown(client, student, live_quiz):
    quiz_id = live_quiz(show_results=True)
    session_id = _start(client, student, quiz_id)
    _save(client, student, session_id, "q1", "Tokyo")

    response = client.post(
        f"/api/quizzes/session/{session_id}/submit",
        json={"behavior": {"tab_switches": 2}},
        headers=student["headers"],
    )
    assert response.status_code == 200
    body = response.json()
    assert body["show_results"] is True
    assert body["total_score"] == 2.0
    assert body["max_score"] == 6.0
    assert body["percentage"] == 33.33


def test_authenticate_resumes_active_session(client, student, live_quiz):
    quiz_id = live_quiz()
    first = _authenticate(client, student, quiz_id).json()
    _save(client, student, first["session_id"], "q1", "Tokyo")

    second = _authenticate(client, student, quiz_id).json()
    assert second["resumed"] is True
    assert second["session_id"] == first["session_id"]
    assert second["end_time"] == first["end_time"]

    state = client.get(f"/api/quizzes/session/{first['session_id']}", headers=student["headers"]).json()
    assert state["answers"]["q1"]["answer"] == "Tokyo"


def test_concurrent_authenticate_returns_existing_session(client, student, live_quiz, monkeypatch):
    quiz_id = live_quiz()
    first = _start(client, student, quiz_id)

    # The next lookup misses, as if a parallel request inserted its session in between
    real_find_active = session_service._find_active
    misses = []

    def find_active_after_race(db, quiz_id, student_id):
        if not misses:
            misses.append(True)
            return None
        return real_find_active(db, quiz_id, student_id)

    monkeypatch.setattr(session_service, "_find_active", find_active_after_race)

    response = _authenticate(client, student, quiz_id)
    assert response.status_code == 200
    assert response.json()["session_id"] == first
    assert response.json()["resumed"] is True
    assert misses == [True]

    db = SessionLocal()
    try:
        active = (
            db.query(ExamSession)
            .filter(ExamSession.quiz_id == uuid.UUID(quiz_id), ExamSession.is_completed.is_(False))
            .all()
        )
    finally:
        db.close()
    assert [str(s.id) for s in active] == [first]


def test_submission_keeps_device_info_from_authenticate(client, student, live_quiz):
    quiz_id = live_quiz()
    started = client.post(
        f"/api/quizzes/{quiz_id}/authenticate",
        json={"password": QUIZ_PASSWORD},
        headers={**student["headers"], "User-Agent": "ExamBrowser/2.1"},
    )
    session_id = started.json()["session_id"]
    assert client.post(f"/api/quizzes/session/{session_id}/submit", json={}, headers=student["headers"]).status_code == 200

    [submission] = _submissions(quiz_id)
    assert submission.device_info["user_agent"] == "ExamBrowser/2.1"


def test_submitted_device_info_takes_precedence(client, student, live_quiz):
    quiz_id = live_quiz()
    session_id = _start(client, student, quiz_id)
    submitted = client.post(
        f"/api/quizzes/session/{session_id}/submit",
        json={"device_info": {"platform": "ipad", "screen": "1024x768"}},
        headers=student["headers"],
    )
    assert submitted.status_code == 200

    [submission] = _submissions(quiz_id)
    assert submission.device_info == {"platform": "ipad", "screen": "1024x768"}


def test_wrong_password_is_unauthorized(client, student, live_quiz):
    quiz_id = live_quiz()
    response = _authenticate(client, student, quiz_id, password="let-me-in")
    assert response.status_code == 401
    assert response.json()["message"] == "Incorrect password"


def test_private_quiz_requires_group_membership(client, creator, student, live_quiz):
    quiz_id = live_quiz(is_public=False)

    # access is checked before the password
    response = _authenticate(client, student, quiz_id, password="wrong")
    assert response.status_code == 403
    assert response.json()["message"] == "You do not have access to this quiz"

    group = client.post("/api/groups/create", json={"name": "Cohort"}, headers=creator["headers"]).json()["group"]
    client.post(f"/api/groups/{group['id']}/assign-exam/{quiz_id}", headers=creator["headers"])
    client.post("/api/groups/enroll", json={"enrollment_code": group["enrollment_code"]}, headers=student["headers"])

    assert _authenticate(client, student, quiz_id).status_code == 200


def test_offline_quiz_is_not_available(client, creator, student):
    quiz_id = client.post(
        "/api/quizzes/create", json=quiz_payload(is_public=True), headers=creator["headers"]
    ).json()["quiz_id"]
    response = _authenticate(client, student, quiz_id)
    assert response.status_code == 403
    assert response.json()["message"] == "Quiz is not currently available"


def test_only_students_take_exams(client, creator, live_quiz):
    quiz_id = live_quiz()
    assert _authenticate(client, creator, quiz_id).status_code == 403


def test_save_answer_validation(client, student, make_user, live_quiz):
    quiz_id = live_quiz()
    session_id = _start(client, student, quiz_id)

    missing = client.post(
        f"/api/quizzes/session/{session_id}/save-answer", json={"question_id": "q1"}, headers=student["headers"]
    )
    assert missing.status_code == 400
    assert missing.json()["message"] == "Question ID and answer are required"

    assert _save(client, student, session_id, "q99", "x").status_code == 400

    intruder = make_user("student")
    assert _save(client, intruder, session_id, "q1", "Tokyo").status_code == 404
    assert client.get(f"/api/quizzes/session/{session_id}", headers=intruder["headers"]).status_code == 404


def test_save_after_expiry_is_rejected_and_auto_submits(client, student, live_quiz):
    quiz_id = live_quiz()
    session_id = _start(client, student, quiz_id)
    assert _save(client, student, session_id, "q1", "Tokyo").status_code == 200

    expire_session(session_id)

    late = _save(client, student, session_id, "q2", "true")
    assert late.status_code == 403
    assert late.json()["message"] == "Exam session has expired"

    state = client.get(f"/api/quizzes/session/{session_id}", headers=student["headers"]).json()
    assert state["status"] == "completed"
    assert set(state["answers"]) == {"q1"}

    submissions = _submissions(quiz_id)
    assert len(submissions) == 1
    assert submissions[0].total_score == 2.0

    # a completed session accepts nothing further
    assert _save(client, student, session_id, "q2", "true").status_code == 404
    assert client.post(
        f"/api/quizzes/session/{session_id}/submit", json={}, headers=student["headers"]
    ).status_code == 404


def test_expiry_without_auto_submit_discards_buffer(client, student, live_quiz):
    quiz_id = live_quiz(auto_submit=False)
    session_id = _start(client, student, quiz_id)
    _save(client, student, session_id, "q1", "Tokyo")

    expire_session(session_id)
    state = client.get(f"/api/quizzes/session/{session_id}", headers=student["headers"]).json()
    assert state["status"] == "expired"
    assert _submissions(quiz_id) == []


def test_reauthenticate_after_expiry_starts_new_session(client, student, live_quiz):
    quiz_id = live_quiz()
    first = _start(client, student, quiz_id)
    expire_session(first)

    response = _authenticate(client, student, quiz_id).json()
    assert response["resumed"] is False
    assert response["session_id"] != first
    assert len(_submissions(quiz_id)) == 1


def test_resubmission_overwrites_previous_submission(client, student, live_quiz):
    quiz_id = live_quiz()
    first = _start(client, student, quiz_id)
    _save(client, student, first, "q1", "Osaka")
    client.post(f"/api/quizzes/session/{first}/submit", json={}, headers=student["headers"])

    second = _start(client, student, quiz_id)
    assert second != first
    _save(client, student, second, "q1", "Tokyo")
    client.post(f"/api/quizzes/session/{second}/submit", json={}, headers=student["headers"])

    submissions = _submissions(quiz_id)
    assert len(submissions) == 1
    assert submissions[0].total_score == 2.0
    assert str(submissions[0].session_id) == second
