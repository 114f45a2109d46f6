"""
Exam session tracker

States: NotStarted -> Active -> Expired -> Completed. Expiry is detected
lazily whenever a session is touched; there is no background sweeper.
"""
import logging
import random
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.database import utcnow
from app.dependencies import Principal
from app.errors import (
    AuthenticationError,
    BadRequestError,
    NotFoundError,
    PermissionDeniedError,
    SessionExpiredError,
)
from app.models import ExamSession, Quiz, Submission
from app.services.grading_service import grading_service, percentage_of
from app.services.quiz_service import check_availability, public_questions, quiz_service
from app.services.security import verify_password
from app.utils.cache import cache_service

logger = logging.getLogger(__name__)


@dataclass
class AuthenticatedSession:
    session: ExamSession
    quiz: Quiz
    resumed: bool


def remaining_seconds(session: ExamSession, now: datetime) -> int:
    if session.is_completed:
        return 0
    return max(0, int((session.end_time - now).total_seconds()))


def session_status(session: ExamSession, now: datetime) -> str:
    if session.is_completed:
        return "completed"
    if session.is_expired(now):
        return "expired"
    return "active"


class SessionService:
    """Drives a student's attempt from password gate to stored submission"""

    def _has_access(self, quiz: Quiz, user: Principal) -> bool:
        return quiz.is_public or any(group.has_member(user.id) for group in quiz.groups)

    def _find_active(self, db: Session, quiz_id, student_id) -> Optional[ExamSession]:
        return (
            db.query(ExamSession)
            .filter(
                ExamSession.quiz_id == quiz_id,
                ExamSession.student_id == student_id,
                ExamSession.is_completed.is_(False),
            )
            .first()
        )

    def _get_owned_active(self, db: Session, user: Principal, session_id) -> ExamSession:
        session = (
            db.query(ExamSession)
            .filter(
                ExamSession.id == session_id,
                ExamSession.student_id == user.id,
                ExamSession.is_completed.is_(False),
            )
            .first()
        )
        if not session:
            raise NotFoundError("Active exam session not found")
        return session

    def authenticate(
        self,
        db: Session,
        user: Principal,
        quiz_id,
        password: str,
        device_info: Optional[Dict[str, Any]] = None,
    ) -> AuthenticatedSession:
        """
        Gate a student into a quiz and return their session

        Checks run in order: access, availability, password. An existing
        incomplete session is returned unchanged so the clock never resets.
        """
        quiz = quiz_service.get_quiz(db, quiz_id)
        now = utcnow()

        if not self._has_access(quiz, user):
            raise PermissionDeniedError("You do not have access to this quiz")

        if not check_availability(now, quiz.start_time, quiz.end_time, quiz.is_live):
            raise PermissionDeniedError("Quiz is not currently available")

        if not verify_password(password, quiz.password_hash):
            logger.info(f"Wrong quiz password for quiz {quiz.id} by {user.id}")
            raise AuthenticationError("Incorrect password")

        existing = self._find_active(db, quiz.id, user.id)
        if existing is not None:
            if not existing.is_expired(now):
                logger.info(f"Resuming session {existing.id} for {user.id}")
                return AuthenticatedSession(existing, quiz, resumed=True)
            self.expire(db, existing, now)

        session = ExamSession(
            quiz_id=quiz.id,
            student_id=user.id,
            start_time=now,
            end_time=now + timedelta(minutes=quiz.duration),
            last_activity=now,
            answers={},
            answer_changes=0,
            device_info=device_info,
        )
        db.add(session)
        try:
            db.commit()
        except IntegrityError:
            # A concurrent request created the session first
            db.rollback()
            winner = self._find_active(db, quiz.id, user.id)
            if winner is None:
                raise
            return AuthenticatedSession(winner, quiz, resumed=True)

        db.refresh(session)
        logger.info(f"Exam session started: {session.id} quiz={quiz.id} student={user.id}")
        return AuthenticatedSession(session, quiz, resumed=False)

    def public_quiz(self, quiz: Quiz) -> Dict[str, Any]:
        """The quiz as delivered to a student, answers stripped"""
        questions = public_questions(quiz.questions)
        if quiz.shuffle_questions:
            random.shuffle(questions)
        return {
            "id": quiz.id,
            "title": quiz.title,
            "description": quiz.description,
            "start_time": quiz.start_time,
            "end_time": quiz.end_time,
            "duration": quiz.duration,
            "allow_internet": quiz.allow_internet,
            "auto_submit": quiz.auto_submit,
            "show_results": quiz.show_results,
            "questions": questions,
        }

    def expire(self, db: Session, session: ExamSession, now: datetime) -> Optional[Submission]:
        """
        Close a session whose time ran out

        Idempotent: a completed session is left alone. With auto_submit the
        buffer is finalized exactly as an explicit submit would.
        """
        if session.is_completed:
            return None

        session.is_completed = True
        submission = None
        if session.quiz.auto_submit:
            submission = self._finalize(db, session, session.end_time)
        db.commit()

        logger.info(f"Exam session expired: {session.id} (auto_submit={session.quiz.auto_submit})")
        if submission is not None:
            self._invalidate_analytics(session.quiz)
        return submission

    def get_state(self, db: Session, user: Principal, session_id) -> Dict[str, Any]:
        session = (
            db.query(ExamSession)
            .filter(ExamSession.id == session_id, ExamSession.student_id == user.id)
            .first()
        )
        if not session:
            raise NotFoundError("Exam session not found")

        now = utcnow()
        status = session_status(session, now)
        if status == "expired":
            self.expire(db, session, now)

        return {
            "session_id": session.id,
            "quiz_id": session.quiz_id,
            "status": status,
            "start_time": session.start_time,
            "end_time": session.end_time,
            "remaining_seconds": remaining_seconds(session, now),
            "answers": session.answers or {},
        }

    def save_answer(
        self,
        db: Session,
        user: Principal,
        session_id,
        question_id: Optional[str],
        answer: Any,
        time_spent: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Upsert one answer into the buffer; last write wins"""
        if not question_id or answer is None:
            raise BadRequestError("Question ID and answer are required")

        session = self._get_owned_active(db, user, session_id)
        now = utcnow()

        if session.is_expired(now):
            self.expire(db, session, now)
            raise SessionExpiredError("Exam session has expired")

        if session.quiz.question_by_id(question_id) is None:
            raise BadRequestError("Unknown question id")

        buffer = session.answers or {}
        previous = buffer.get(question_id)
        entry = {
            "answer": answer,
            "time_spent": (previous or {}).get("time_spent", 0) + (time_spent or 0),
            "saves": (previous or {}).get("saves", 0) + 1,
        }
        if previous is not None and previous.get("answer") != answer:
            session.answer_changes = (session.answer_changes or 0) + 1

        # Reassign so the JSON column is flagged dirty
        session.answers = {**buffer, question_id: entry}
        session.last_activity = now
        db.commit()

        return {
            "message": "Answer saved successfully",
            "question_id": question_id,
            "saved_at": now,
            "remaining_seconds": remaining_seconds(session, now),
        }

    def submit(
        self,
        db: Session,
        user: Principal,
        session_id,
        behavior: Optional[Dict[str, Any]] = None,
        device_info: Optional[Dict[str, Any]] = None,
    ) -> Submission:
        session = self._get_owned_active(db, user, session_id)
        now = utcnow()

        if session.is_expired(now):
            self.expire(db, session, now)
            raise SessionExpiredError("Exam session has expired")

        session.is_completed = True
        session.end_time = now
        submission = self._finalize(db, session, now, behavior=behavior, device_info=device_info)
        db.commit()
        db.refresh(submission)

        logger.info(
            f"Exam submitted: session={session.id} submission={submission.id} "
            f"score={submission.total_score}/{submission.max_score}"
        )
        self._invalidate_analytics(session.quiz)
        return submission

    def _finalize(
        self,
        db: Session,
        session: ExamSession,
        submitted_at: datetime,
        behavior: Optional[Dict[str, Any]] = None,
        device_info: Optional[Dict[str, Any]] = None,
    ) -> Submission:
        """Grade the buffer into the single Submission row for (quiz, student)"""
        quiz = session.quiz
        buffer = session.answers or {}
        answers, total_score, max_score = grading_service.grade_answers(quiz.questions, buffer)
        metrics = grading_service.behavior_metrics(
            quiz.questions, buffer, session.answer_changes or 0, client_metrics=behavior
        )

        submission = (
            db.query(Submission)
            .filter(Submission.quiz_id == quiz.id, Submission.student_id == session.student_id)
            .first()
        )
        if submission is None:
            submission = Submission(quiz_id=quiz.id, student_id=session.student_id)
            db.add(submission)

        submission.session_id = session.id
        submission.answers = answers
        submission.submitted_at = submitted_at
        submission.time_spent = max(0, int((submitted_at - session.start_time).total_seconds()))
        submission.max_score = max_score
        submission.total_score = total_score
        submission.percentage = percentage_of(total_score, max_score)
        submission.feedback = None
        submission.is_graded = False
        submission.graded_by = None
        submission.graded_at = None
        submission.behavior_metrics = metrics
        submission.device_info = device_info or session.device_info
        return submission

    def _invalidate_analytics(self, quiz: Quiz) -> None:
        cache_service.invalidate_quiz_analytics(
            quiz.id, quiz.creator_id, [group.id for group in quiz.groups]
        )


# Global instance
session_service = SessionService()
