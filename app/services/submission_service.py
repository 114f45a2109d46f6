"""
Submission store: owner review, manual grading and student results
"""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from app.database import utcnow
from app.dependencies import Principal
from app.errors import NotFoundError, PermissionDeniedError
from app.models import Quiz, Submission
from app.services.grading_service import grading_service, percentage_of
from app.services.quiz_service import quiz_service
from app.utils.cache import cache_service

logger = logging.getLogger(__name__)


def results_visible(quiz: Quiz, submission: Submission) -> bool:
    return bool(quiz.show_results or submission.is_graded)


def serialize_submission(submission: Submission, detail: bool = False) -> Dict[str, Any]:
    data = {
        "id": submission.id,
        "quiz_id": submission.quiz_id,
        "student_id": submission.student_id,
        "student_email": submission.student.email,
        "student_name": submission.student.name,
        "submitted_at": submission.submitted_at,
        "time_spent": submission.time_spent,
        "total_score": submission.total_score,
        "max_score": submission.max_score,
        "percentage": submission.percentage,
        "is_graded": submission.is_graded,
    }
    if detail:
        data.update({
            "answers": submission.answers or [],
            "feedback": submission.feedback,
            "graded_by": submission.graded_by,
            "graded_at": submission.graded_at,
            "behavior_metrics": submission.behavior_metrics,
            "device_info": submission.device_info,
        })
    return data


class SubmissionService:
    """Reads and grading of finalized attempts"""

    def _get_owned_submission(self, db: Session, user: Principal, submission_id) -> Submission:
        submission = db.query(Submission).filter(Submission.id == submission_id).first()
        if not submission:
            raise NotFoundError("Submission not found")
        if submission.quiz.creator_id != user.id:
            raise PermissionDeniedError("Not authorized to access this submission")
        return submission

    def list_for_quiz(self, db: Session, user: Principal, quiz_id) -> List[Submission]:
        quiz = quiz_service.get_owned_quiz(db, user, quiz_id)
        return (
            db.query(Submission)
            .filter(Submission.quiz_id == quiz.id)
            .order_by(Submission.submitted_at.desc())
            .all()
        )

    def get_submission(self, db: Session, user: Principal, submission_id) -> Submission:
        return self._get_owned_submission(db, user, submission_id)

    def grade(
        self,
        db: Session,
        user: Principal,
        submission_id,
        graded_answers: List[Dict[str, Any]],
        feedback: Optional[str] = None,
        total_score: Optional[float] = None,
    ) -> Submission:
        """
        Apply the owner's grades to a submission

        Args:
            graded_answers: [{question_id, score, feedback?, is_correct?}]
            feedback: Overall feedback for the student
            total_score: Explicit total; defaults to the sum of answer scores

        Returns:
            The updated submission
        """
        submission = self._get_owned_submission(db, user, submission_id)

        answers = grading_service.apply_manual_grades(submission.answers or [], graded_answers)
        if total_score is None:
            total_score = sum(float(answer.get("score") or 0) for answer in answers)

        submission.answers = answers
        submission.total_score = float(total_score)
        submission.percentage = percentage_of(submission.total_score, submission.max_score)
        if feedback is not None:
            submission.feedback = feedback
        submission.is_graded = True
        submission.graded_by = user.id
        submission.graded_at = utcnow()
        db.commit()
        db.refresh(submission)

        logger.info(
            f"Submission graded: {submission.id} by {user.id} "
            f"score={submission.total_score}/{submission.max_score}"
        )
        quiz = submission.quiz
        cache_service.invalidate_quiz_analytics(
            quiz.id, quiz.creator_id, [group.id for group in quiz.groups]
        )
        return submission

    def get_result(self, db: Session, user: Principal, quiz_id) -> Dict[str, Any]:
        """A student's own result, once the quiz releases it or it is graded"""
        quiz = quiz_service.get_quiz(db, quiz_id)
        submission = (
            db.query(Submission)
            .filter(Submission.quiz_id == quiz.id, Submission.student_id == user.id)
            .first()
        )
        if not submission:
            raise NotFoundError("No submission found for this quiz")
        if not results_visible(quiz, submission):
            raise PermissionDeniedError("Results are not available yet")

        return {
            "quiz_id": quiz.id,
            "quiz_title": quiz.title,
            "submitted_at": submission.submitted_at,
            "is_graded": submission.is_graded,
            "total_score": submission.total_score,
            "max_score": submission.max_score,
            "percentage": submission.percentage,
            "feedback": submission.feedback,
            "answers": submission.answers or [],
        }

    def list_my_results(self, db: Session, user: Principal) -> List[Dict[str, Any]]:
        submissions = (
            db.query(Submission)
            .filter(Submission.student_id == user.id)
            .order_by(Submission.submitted_at.desc())
            .all()
        )

        results = []
        for submission in submissions:
            visible = results_visible(submission.quiz, submission)
            results.append({
                "submission_id": submission.id,
                "quiz_id": submission.quiz_id,
                "quiz_title": submission.quiz.title,
                "submitted_at": submission.submitted_at,
                "is_graded": submission.is_graded,
                "results_available": visible,
                "total_score": submission.total_score if visible else None,
                "max_score": submission.max_score if visible else None,
                "percentage": submission.percentage if visible else None,
            })
        return results


# Global instance
submission_service = SubmissionService()
