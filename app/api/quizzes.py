"""
Quiz authoring, exam-taking and grading API endpoints
"""

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, Request, UploadFile
from sqlalchemy.orm import Session
from typing import List
from uuid import UUID
import logging

from app.database import get_db
from app.dependencies import Capability, Principal, get_current_user, require_capability, require_roles
from app.models import Role
from app.schemas.quiz import (
    MediaUploadResponse,
    PublicQuiz,
    PublicQuizListing,
    QuizAvailability,
    QuizCreate,
    QuizCreatedResponse,
    QuizDetail,
    QuizMessageResponse,
    QuizSummary,
    QuizUpdate,
    ToggleLiveRequest,
)
from app.schemas.auth import MessageResponse
from app.schemas.session import (
    QuizAuthenticateRequest,
    QuizAuthenticateResponse,
    SaveAnswerRequest,
    SaveAnswerResponse,
    SessionStateResponse,
    SubmitRequest,
    SubmitResponse,
)
from app.schemas.submission import (
    GradeRequest,
    GradeResponse,
    MyResultItem,
    StudentResult,
    SubmissionDetail,
    SubmissionSummary,
)
from app.services.email_service import email_service
from app.services.quiz_service import quiz_service, serialize_quiz_detail, serialize_quiz_summary
from app.services.session_service import session_service
from app.services.submission_service import serialize_submission, submission_service

router = APIRouter(prefix="/api/quizzes", tags=["quizzes"])
logger = logging.getLogger(__name__)

author = require_capability(Capability.AUTHOR_QUIZZES)
student_only = require_roles(Role.STUDENT)


def _device_info(request: Request) -> dict:
    return {
        "user_agent": request.headers.get("user-agent"),
        "ip": request.client.host if request.client else None,
    }


# Authoring

@router.post("/create", response_model=QuizCreatedResponse, status_code=201)
async def create_quiz(
    payload: QuizCreate,
    user: Principal = Depends(author),
    db: Session = Depends(get_db),
):
    """
    Create a quiz

    - Questions are validated per type (mcq, true_false, short_answer, long_answer)
    - The access password is stored hashed
    - New quizzes are not live
    """
    quiz = quiz_service.create_quiz(db, user, payload.model_dump())
    return QuizCreatedResponse(message="Quiz created successfully", quiz_id=quiz.id)


@router.post("/upload-media", response_model=MediaUploadResponse, status_code=201)
async def upload_media(
    file: UploadFile = File(...),
    question_id: str = Form(...),
    media_type: str = Form(...),
    user: Principal = Depends(author),
):
    """Upload an image, audio, video or gif for a question"""
    url = await quiz_service.upload_media(file, question_id, media_type)
    return MediaUploadResponse(url=url)


@router.get("/creator", response_model=List[QuizSummary])
async def list_creator_quizzes(user: Principal = Depends(author), db: Session = Depends(get_db)):
    return [QuizSummary(**serialize_quiz_summary(q)) for q in quiz_service.list_creator_quizzes(db, user)]


@router.get("/public", response_model=List[PublicQuizListing])
async def list_public_quizzes(
    user: Principal = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Public quizzes that are live and inside their window"""
    return [
        PublicQuizListing(
            id=q.id,
            title=q.title,
            description=q.description,
            start_time=q.start_time,
            end_time=q.end_time,
            duration=q.duration,
            creator_email=q.creator.email,
        )
        for q in quiz_service.list_public_quizzes(db)
    ]


# Student results

@router.get("/my-results", response_model=List[MyResultItem])
async def my_results(user: Principal = Depends(student_only), db: Session = Depends(get_db)):
    return submission_service.list_my_results(db, user)


@router.get("/results/{quiz_id}", response_model=StudentResult)
async def get_result(
    quiz_id: UUID,
    user: Principal = Depends(student_only),
    db: Session = Depends(get_db),
):
    return submission_service.get_result(db, user, quiz_id)


# Grading

@router.get("/submissions/{submission_id}", response_model=SubmissionDetail)
async def get_submission(
    submission_id: UUID,
    user: Principal = Depends(author),
    db: Session = Depends(get_db),
):
    submission = submission_service.get_submission(db, user, submission_id)
    return SubmissionDetail(**serialize_submission(submission, detail=True))


@router.post("/submissions/{submission_id}/grade", response_model=GradeResponse)
async def grade_submission(
    submission_id: UUID,
    payload: GradeRequest,
    background_tasks: BackgroundTasks,
    user: Principal = Depends(author),
    db: Session = Depends(get_db),
):
    """
    Grade a submission

    - Scores and feedback are merged by question id
    - total_score defaults to the sum of answer scores
    - The student is emailed their result
    """
    submission = submission_service.grade(
        db,
        user,
        submission_id,
        graded_answers=[a.model_dump() for a in payload.graded_answers],
        feedback=payload.feedback,
        total_score=payload.total_score,
    )
    background_tasks.add_task(
        email_service.send_exam_results,
        submission.student.email,
        submission.quiz.title,
        str(submission.quiz_id),
        submission.total_score,
        submission.max_score,
        submission.feedback,
    )
    return GradeResponse(
        message="Submission graded successfully",
        submission=SubmissionDetail(**serialize_submission(submission, detail=True)),
    )


# Exam sessions

@router.get("/session/{session_id}", response_model=SessionStateResponse)
async def get_session(
    session_id: UUID,
    user: Principal = Depends(student_only),
    db: Session = Depends(get_db),
):
    return session_service.get_state(db, user, session_id)


@router.post("/session/{session_id}/save-answer", response_model=SaveAnswerResponse)
async def save_answer(
    session_id: UUID,
    payload: SaveAnswerRequest,
    user: Principal = Depends(student_only),
    db: Session = Depends(get_db),
):
    """
    Save one answer into the session buffer

    - 404 when the caller has no active session with this id
    - 403 once the session has expired; nothing is saved
    """
    return session_service.save_answer(
        db, user, session_id, payload.question_id, payload.answer, payload.time_spent
    )


@router.post("/session/{session_id}/submit", response_model=SubmitResponse)
async def submit_exam(
    session_id: UUID,
    background_tasks: BackgroundTasks,
    payload: SubmitRequest = None,
    user: Principal = Depends(student_only),
    db: Session = Depends(get_db),
):
    """
    Submit the exam

    - Objective questions are scored immediately
    - The quiz owner is notified; the student too when results are shown
    """
    payload = payload or SubmitRequest()
    submission = session_service.submit(
        db,
        user,
        session_id,
        behavior=payload.behavior,
        device_info=payload.device_info,
    )
    quiz = submission.quiz

    background_tasks.add_task(
        email_service.send_exam_completion_notification,
        quiz.creator.email,
        user.email,
        quiz.title,
        str(quiz.id),
        submission.submitted_at,
    )

    response = {
        "message": "Exam submitted successfully",
        "submission_id": submission.id,
        "submitted_at": submission.submitted_at,
        "show_results": quiz.show_results,
    }
    if quiz.show_results:
        background_tasks.add_task(
            email_service.send_exam_results,
            user.email,
            quiz.title,
            str(quiz.id),
            submission.total_score,
            submission.max_score,
        )
        response.update(
            total_score=submission.total_score,
            max_score=submission.max_score,
            percentage=submission.percentage,
        )
    return SubmitResponse(**response)


# Single quiz

@router.get("/{quiz_id}", response_model=QuizDetail)
async def get_quiz(
    quiz_id: UUID,
    user: Principal = Depends(author),
    db: Session = Depends(get_db),
):
    return QuizDetail(**serialize_quiz_detail(quiz_service.get_owned_quiz(db, user, quiz_id)))


@router.put("/{quiz_id}", response_model=QuizMessageResponse)
async def update_quiz(
    quiz_id: UUID,
    payload: QuizUpdate,
    user: Principal = Depends(author),
    db: Session = Depends(get_db),
):
    changes = payload.model_dump(exclude_unset=True)
    if payload.questions is not None:
        # Full dump so generated question ids and default points are kept
        changes["questions"] = [q.model_dump() for q in payload.questions]
    quiz = quiz_service.update_quiz(db, user, quiz_id, changes)
    return QuizMessageResponse(message="Quiz updated successfully", quiz=QuizDetail(**serialize_quiz_detail(quiz)))


@router.delete("/{quiz_id}", response_model=MessageResponse)
async def delete_quiz(
    quiz_id: UUID,
    user: Principal = Depends(author),
    db: Session = Depends(get_db),
):
    quiz_service.delete_quiz(db, user, quiz_id)
    return MessageResponse(message="Quiz deleted successfully")


@router.patch("/{quiz_id}/toggle-live", response_model=QuizMessageResponse)
async def toggle_live(
    quiz_id: UUID,
    payload: ToggleLiveRequest,
    user: Principal = Depends(author),
    db: Session = Depends(get_db),
):
    quiz = quiz_service.toggle_live(db, user, quiz_id, payload.is_live)
    state = "live" if quiz.is_live else "offline"
    return QuizMessageResponse(message=f"Quiz is now {state}", quiz=QuizDetail(**serialize_quiz_detail(quiz)))


@router.get("/{quiz_id}/availability", response_model=QuizAvailability)
async def get_availability(quiz_id: UUID, db: Session = Depends(get_db)):
    """Public availability check; never exposes answers or the password digest"""
    return QuizAvailability(**quiz_service.get_availability(db, quiz_id))


@router.post("/{quiz_id}/authenticate", response_model=QuizAuthenticateResponse)
async def authenticate_quiz(
    quiz_id: UUID,
    payload: QuizAuthenticateRequest,
    request: Request,
    user: Principal = Depends(student_only),
    db: Session = Depends(get_db),
):
    """
    Enter a quiz with its password

    Checks, in order:
    - Access (public quiz or membership of an assigned group): 403
    - Availability window and live flag: 403
    - Password: 401

    An existing active session is resumed without resetting its clock.
    """
    result = session_service.authenticate(db, user, quiz_id, payload.password, _device_info(request))
    return QuizAuthenticateResponse(
        message="Exam session resumed" if result.resumed else "Exam session started",
        session_id=result.session.id,
        start_time=result.session.start_time,
        end_time=result.session.end_time,
        resumed=result.resumed,
        quiz=PublicQuiz(**session_service.public_quiz(result.quiz)),
    )


@router.get("/{quiz_id}/submissions", response_model=List[SubmissionSummary])
async def list_submissions(
    quiz_id: UUID,
    user: Principal = Depends(author),
    db: Session = Depends(get_db),
):
    return [SubmissionSummary(**serialize_submission(s)) for s in submission_service.list_for_quiz(db, user, quiz_id)]
