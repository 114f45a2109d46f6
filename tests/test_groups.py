"""
Group management, enrollment and quiz assignment
"""
import uuid

from conftest import QUIZ_PASSWORD, quiz_payload

from app.database import SessionLocal
from app.models import ExamSession, Group, Submission
from app.services.group_service import CODE_ALPHABET, generate_enrollment_code, normalize_code
from app.utils.cache import cache_service


def _create_group(client, creator, **overrides):
    payload = {"name": "Period 3 Geography", "description": "Tuesday cohort"}
    payload.update(overrides)
    response = client.post("/api/groups/create", json=payload, headers=creator["headers"])
    assert response.status_code == 201, response.text
    return response.json()["group"]


def test_enrollment_codes_use_unambiguous_alphabet():
    code = generate_enrollment_code(12)
    assert len(code) == 12
    assert all(ch in CODE_ALPHABET for ch in code)
    assert "O" not in CODE_ALPHABET and "0" not in CODE_ALPHABET
    assert normalize_code("  ab3k9z ") == "AB3K9Z"


def test_create_group_generates_enrollment_code(client, creator):
    group = _create_group(client, creator)
    assert group["enrollment_code"]
    assert group["creator_id"] == creator["id"]
    assert group["students"] == []

    listed = client.get("/api/groups/creator", headers=creator["headers"]).json()
    assert [g["id"] for g in listed] == [group["id"]]


def test_students_cannot_create_groups(client, student):
    response = client.post("/api/groups/create", json={"name": "Mine"}, headers=student["headers"])
    assert response.status_code == 403


def test_enroll_by_code_is_case_insensitive(client, creator, student):
    group = _create_group(client, creator)
    response = client.post(
        "/api/groups/enroll",
        json={"enrollment_code": f"  {group['enrollment_code'].lower()} "},
        headers=student["headers"],
    )
    assert response.status_code == 200
    assert response.json()["group_id"] == group["id"]

    mine = client.get("/api/groups/student", headers=student["headers"]).json()
    assert [g["id"] for g in mine] == [group["id"]]
    assert mine[0]["creator_email"] == creator["email"]


def test_enroll_twice_or_with_bad_code(client, creator, student):
    group = _create_group(client, creator)
    code = {"enrollment_code": group["enrollment_code"]}
    assert client.post("/api/groups/enroll", json=code, headers=student["headers"]).status_code == 200

    again = client.post("/api/groups/enroll", json=code, headers=student["headers"])
    assert again.status_code == 400
    assert again.json()["message"] == "Already enrolled in this group"

    unknown = client.post("/api/groups/enroll", json={"enrollment_code": "ZZZZZZZZ"}, headers=student["headers"])
    assert unknown.status_code == 404


def test_full_group_rejects_enrollment(client, creator, student, make_user):
    group = _create_group(client, creator, max_students=1)
    code = {"enrollment_code": group["enrollment_code"]}
    assert client.post("/api/groups/enroll", json=code, headers=student["headers"]).status_code == 200

    latecomer = make_user("student")
    response = client.post("/api/groups/enroll", json=code, headers=latecomer["headers"])
    assert response.status_code == 400
    assert response.json()["message"] == "Group is full"


def test_join_public_group(client, creator, student):
    private = _create_group(client, creator, name="Private")
    public = _create_group(client, creator, name="Open Study", is_public=True)

    listed = client.get("/api/groups/public", headers=student["headers"]).json()
    assert [g["id"] for g in listed] == [public["id"]]

    assert client.post(f"/api/groups/{private['id']}/join", headers=student["headers"]).status_code == 403
    joined = client.post(f"/api/groups/{public['id']}/join", headers=student["headers"])
    assert joined.status_code == 200


def test_group_detail_visibility(client, creator, student, make_user, admin):
    group = _create_group(client, creator)
    outsider = make_user("creator")

    assert client.get(f"/api/groups/{group['id']}", headers=outsider["headers"]).status_code == 403
    assert client.get(f"/api/groups/{group['id']}", headers=student["headers"]).status_code == 403
    assert client.get(f"/api/groups/{group['id']}", headers=admin["headers"]).status_code == 200

    client.post("/api/groups/enroll", json={"enrollment_code": group["enrollment_code"]}, headers=student["headers"])
    detail = client.get(f"/api/groups/{group['id']}", headers=student["headers"])
    assert detail.status_code == 200
    assert detail.json()["student_count"] == 1


def test_update_and_delete_require_ownership(client, creator, make_user, admin):
    group = _create_group(client, creator)
    outsider = make_user("creator")

    forbidden = client.put(f"/api/groups/{group['id']}", json={"name": "Hijacked"}, headers=outsider["headers"])
    assert forbidden.status_code == 403

    updated = client.put(
        f"/api/groups/{group['id']}",
        json={"name": "Renamed", "is_public": True},
        headers=creator["headers"],
    )
    assert updated.status_code == 200
    assert updated.json()["group"]["name"] == "Renamed"
    assert updated.json()["group"]["is_public"] is True

    assert client.delete(f"/api/groups/{group['id']}", headers=outsider["headers"]).status_code == 403
    assert client.delete(f"/api/groups/{group['id']}", headers=admin["headers"]).status_code == 200
    assert client.get(f"/api/groups/{group['id']}", headers=creator["headers"]).status_code == 404


def test_assign_and_remove_exam(client, creator):
    group = _create_group(client, creator)
    quiz_id = client.post("/api/quizzes/create", json=quiz_payload(), headers=creator["headers"]).json()["quiz_id"]

    assigned = client.post(f"/api/groups/{group['id']}/assign-exam/{quiz_id}", headers=creator["headers"])
    assert assigned.status_code == 200
    assert [q["id"] for q in assigned.json()["group"]["quizzes"]] == [quiz_id]

    duplicate = client.post(f"/api/groups/{group['id']}/assign-exam/{quiz_id}", headers=creator["headers"])
    assert duplicate.status_code == 400

    removed = client.delete(f"/api/groups/{group['id']}/remove-exam/{quiz_id}", headers=creator["headers"])
    assert removed.status_code == 200
    assert removed.json()["group"]["quizzes"] == []

    again = client.delete(f"/api/groups/{group['id']}/remove-exam/{quiz_id}", headers=creator["headers"])
    assert again.status_code == 200


def test_assign_unknown_quiz(client, creator):
    group = _create_group(client, creator)
    response = client.post(
        f"/api/groups/{group['id']}/assign-exam/00000000-0000-0000-0000-000000000000",
        headers=creator["headers"],
    )
    assert response.status_code == 404


def test_group_code_to_submission_walkthrough(client, creator, student):
    group = _create_group(client, creator)
    # Codes generated here never contain "1"; set a hand-picked one directly
    db = SessionLocal()
    try:
        db.query(Group).filter(Group.id == uuid.UUID(group["id"])).update({"enrollment_code": "AB12CD"})
        db.commit()
    finally:
        db.close()

    one_question = quiz_payload(questions=[quiz_payload()["questions"][0]], is_public=False)
    quiz_id = client.post("/api/quizzes/create", json=one_question, headers=creator["headers"]).json()["quiz_id"]
    client.patch(f"/api/quizzes/{quiz_id}/toggle-live", json={"is_live": True}, headers=creator["headers"])
    assigned = client.post(f"/api/groups/{group['id']}/assign-exam/{quiz_id}", headers=creator["headers"])
    assert assigned.status_code == 200

    enrolled = client.post("/api/groups/enroll", json={"enrollment_code": "ab12cd"}, headers=student["headers"])
    assert enrolled.status_code == 200
    assert enrolled.json()["group_id"] == group["id"]

    session = client.post(
        f"/api/quizzes/{quiz_id}/authenticate", json={"password": QUIZ_PASSWORD}, headers=student["headers"]
    )
    assert session.status_code == 200, session.text
    session_id = session.json()["session_id"]
    saved = client.post(
        f"/api/quizzes/session/{session_id}/save-answer",
        json={"question_id": "q1", "answer": "Tokyo"},
        headers=student["headers"],
    )
    assert saved.status_code == 200
    assert client.post(f"/api/quizzes/session/{session_id}/submit", json={}, headers=student["headers"]).status_code == 200

    db = SessionLocal()
    try:
        submission = db.query(Submission).filter(Submission.quiz_id == uuid.UUID(quiz_id)).one()
        assert len(submission.answers) == 1
        assert db.query(ExamSession).filter(ExamSession.id == uuid.UUID(session_id)).one().is_completed is True
    finally:
        db.close()


def test_membership_and_assignment_changes_drop_cached_group_analytics(client, creator, student, monkeypatch):
    dropped = []
    monkeypatch.setattr(cache_service, "delete", lambda *keys: dropped.extend(keys) or True)

    group = _create_group(client, creator)
    group_key = cache_service.analytics_key("group", group["id"])
    quiz_id = client.post("/api/quizzes/create", json=quiz_payload(), headers=creator["headers"]).json()["quiz_id"]

    client.post("/api/groups/enroll", json={"enrollment_code": group["enrollment_code"]}, headers=student["headers"])
    assert dropped == [group_key]

    client.post(f"/api/groups/{group['id']}/assign-exam/{quiz_id}", headers=creator["headers"])
    assert dropped == [group_key, group_key]

    client.delete(f"/api/groups/{group['id']}/remove-exam/{quiz_id}", headers=creator["headers"])
    assert dropped == [group_key, group_key, group_key]
