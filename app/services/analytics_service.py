"""
Analytics service: dashboards computed from submissions and sessions
"""
import csv
import io
import logging
import re
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from app.config import settings
from app.database import utcnow
from app.dependencies import Principal
from app.errors import BadRequestError
from app.models import ExamSession, Quiz, Submission
from app.services.group_service import group_service
from app.services.quiz_service import quiz_service
from app.utils.cache import cache_service

logger = logging.getLogger(__name__)

TREND_DAYS = 30
RECENT_OVERVIEW = 10
RECENT_GROUP = 20
TOP_QUIZZES = 5

# (label, inclusive upper bound)
SCORE_BUCKETS = [("0-20", 20), ("21-40", 40), ("41-60", 60), ("61-80", 80), ("81-100", None)]
TIME_BUCKETS = [("0-5 min", 300), ("5-10 min", 600), ("10-20 min", 1200), ("20-30 min", 1800), ("30+ min", None)]

EXPORT_COLUMNS = [
    "Student Email",
    "Student Name",
    "Quiz Title",
    "Score",
    "Max Score",
    "Percentage",
    "Time Spent (seconds)",
    "Submitted At",
    "Questions Revisited",
    "Average Time Per Question",
    "Questions Skipped",
]


def _avg(values: List[float]) -> float:
    return round(sum(values) / len(values), 2) if values else 0.0


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def histogram(values: List[float], buckets: List[Tuple[str, Optional[float]]]) -> List[Dict[str, Any]]:
    """Count values into ordered buckets; a bound of None catches the rest"""
    counts = {label: 0 for label, _ in buckets}
    for value in values:
        for label, upper in buckets:
            if upper is None or value <= upper:
                counts[label] += 1
                break
    return [{"label": label, "count": counts[label]} for label, _ in buckets]


def daily_trend(
    submissions: List[Submission],
    now: datetime,
    tz_name: str,
    days: int = TREND_DAYS,
) -> List[Dict[str, Any]]:
    """Attempts and average percentage per calendar day in the given timezone"""
    tz = ZoneInfo(tz_name)
    today = now.replace(tzinfo=timezone.utc).astimezone(tz).date()
    first_day = today - timedelta(days=days - 1)

    per_day = defaultdict(list)
    for submission in submissions:
        day = submission.submitted_at.replace(tzinfo=timezone.utc).astimezone(tz).date()
        if first_day <= day <= today:
            per_day[day].append(submission.percentage)

    trend = []
    for offset in range(days):
        day = first_day + timedelta(days=offset)
        trend.append({
            "date": day.isoformat(),
            "attempts": len(per_day[day]),
            "avg_percentage": _avg(per_day[day]),
        })
    return trend


def _recent(submission: Submission) -> Dict[str, Any]:
    return {
        "submission_id": str(submission.id),
        "quiz_id": str(submission.quiz_id),
        "quiz_title": submission.quiz.title,
        "student_email": submission.student.email,
        "percentage": submission.percentage,
        "submitted_at": _iso(submission.submitted_at),
    }


class AnalyticsService:
    """Service for generating performance analytics"""

    def _cached(self, kind: str, object_id, build):
        return cache_service.remember(cache_service.analytics_key(kind, object_id), build)

    def get_overview(self, db: Session, user: Principal) -> Dict[str, Any]:
        return self._cached("overview", user.id, lambda: self._build_overview(db, user))

    def _build_overview(self, db: Session, user: Principal) -> Dict[str, Any]:
        """
        Creator dashboard across all owned quizzes

        Returns:
            Dictionary with totals, completion rate, recent attempts,
            top quizzes and a daily trend
        """
        quizzes = db.query(Quiz).filter(Quiz.creator_id == user.id).all()
        quiz_ids = [quiz.id for quiz in quizzes]

        submissions = db.query(Submission).filter(
            Submission.quiz_id.in_(quiz_ids)
        ).order_by(Submission.submitted_at.desc()).all() if quiz_ids else []

        sessions_started = db.query(ExamSession).filter(
            ExamSession.quiz_id.in_(quiz_ids)
        ).count() if quiz_ids else 0
        sessions_completed = db.query(ExamSession).filter(
            ExamSession.quiz_id.in_(quiz_ids),
            ExamSession.is_completed.is_(True),
        ).count() if quiz_ids else 0

        # Top quizzes by average percentage
        by_quiz = defaultdict(list)
        for submission in submissions:
            by_quiz[submission.quiz_id].append(submission.percentage)
        titles = {quiz.id: quiz.title for quiz in quizzes}
        top_quizzes = [
            {
                "quiz_id": str(quiz_id),
                "title": titles[quiz_id],
                "attempts": len(scores),
                "avg_percentage": _avg(scores),
            }
            for quiz_id, scores in by_quiz.items()
        ]
        top_quizzes.sort(key=lambda x: x["avg_percentage"], reverse=True)

        return {
            "total_quizzes": len(quizzes),
            "total_attempts": len(submissions),
            "avg_percentage": _avg([s.percentage for s in submissions]),
            "unique_students": len({s.student_id for s in submissions}),
            "completion_rate": round(sessions_completed / sessions_started * 100, 2) if sessions_started else 0.0,
            "recent_attempts": [_recent(s) for s in submissions[:RECENT_OVERVIEW]],
            "top_quizzes": top_quizzes[:TOP_QUIZZES],
            "daily_trend": daily_trend(submissions, utcnow(), settings.ANALYTICS_TIMEZONE),
        }

    def get_quiz_analytics(self, db: Session, user: Principal, quiz_id) -> Dict[str, Any]:
        quiz = quiz_service.get_owned_quiz(db, user, quiz_id)
        return self._cached("quiz", quiz.id, lambda: self._build_quiz_analytics(db, quiz))

    def _build_quiz_analytics(self, db: Session, quiz: Quiz) -> Dict[str, Any]:
        submissions = db.query(Submission).filter(
            Submission.quiz_id == quiz.id
        ).order_by(Submission.percentage.desc()).all()
        sessions = db.query(ExamSession).filter(ExamSession.quiz_id == quiz.id).all()

        percentages = [s.percentage for s in submissions]
        completed = sum(1 for s in sessions if s.is_completed)

        summary = {
            "total_attempts": len(submissions),
            "avg_percentage": _avg(percentages),
            "highest_percentage": max(percentages) if percentages else 0.0,
            "lowest_percentage": min(percentages) if percentages else 0.0,
            "avg_time_spent": _avg([s.time_spent for s in submissions]),
            "completion_rate": round(completed / len(sessions) * 100, 2) if sessions else 0.0,
        }

        students = [
            {
                "student_id": str(s.student_id),
                "email": s.student.email,
                "name": s.student.name,
                "total_score": s.total_score,
                "percentage": s.percentage,
                "time_spent": s.time_spent,
                "submitted_at": _iso(s.submitted_at),
                "is_graded": s.is_graded,
            }
            for s in submissions
        ]

        return {
            "quiz_id": str(quiz.id),
            "title": quiz.title,
            "summary": summary,
            "questions": self._question_stats(quiz, submissions),
            "students": students,
            "time_distribution": histogram([s.time_spent for s in submissions], TIME_BUCKETS),
            "score_distribution": histogram(percentages, SCORE_BUCKETS),
        }

    def _question_stats(self, quiz: Quiz, submissions: List[Submission]) -> List[Dict[str, Any]]:
        """Correctness and time per question, in authored order"""
        per_question = defaultdict(lambda: {"attempts": 0, "correct": 0, "scores": [], "times": []})

        for submission in submissions:
            for answer in submission.answers or []:
                stats = per_question[answer.get("question_id")]
                if answer.get("student_answer") is not None:
                    stats["attempts"] += 1
                if answer.get("is_correct"):
                    stats["correct"] += 1
                stats["scores"].append(float(answer.get("score") or 0))
                stats["times"].append(int(answer.get("time_spent") or 0))

        result = []
        for question in quiz.questions or []:
            stats = per_question[question["id"]]
            result.append({
                "question_id": question["id"],
                "text": question.get("text", ""),
                "type": question.get("type", ""),
                "attempts": stats["attempts"],
                "correct": stats["correct"],
                "correct_rate": round(stats["correct"] / stats["attempts"] * 100, 2) if stats["attempts"] else 0.0,
                "avg_score": _avg(stats["scores"]),
                "avg_time_spent": _avg(stats["times"]),
            })
        return result

    def get_group_analytics(self, db: Session, user: Principal, group_id) -> Dict[str, Any]:
        group = group_service.get_managed_group(db, user, group_id)
        return self._cached("group", group.id, lambda: self._build_group_analytics(db, group))

    def _group_submissions(self, db: Session, group) -> List[Submission]:
        quiz_ids = [quiz.id for quiz in group.quizzes]
        member_ids = [student.id for student in group.students]
        if not quiz_ids or not member_ids:
            return []
        return db.query(Submission).filter(
            Submission.quiz_id.in_(quiz_ids),
            Submission.student_id.in_(member_ids),
        ).order_by(Submission.submitted_at.desc()).all()

    def _build_group_analytics(self, db: Session, group) -> Dict[str, Any]:
        submissions = self._group_submissions(db, group)
        total_members = len(group.students)
        active_members = len({s.student_id for s in submissions})

        by_student = defaultdict(list)
        for submission in submissions:
            by_student[submission.student_id].append(submission)

        students = []
        for student in group.students:
            attempts = by_student.get(student.id, [])
            students.append({
                "student_id": str(student.id),
                "email": student.email,
                "name": student.name,
                "attempts": len(attempts),
                "assigned": len(group.quizzes),
                "avg_percentage": _avg([a.percentage for a in attempts]),
                # newest first
                "last_submitted_at": _iso(attempts[0].submitted_at) if attempts else None,
            })
        students.sort(key=lambda x: x["avg_percentage"], reverse=True)

        quizzes = []
        for quiz in group.quizzes:
            attempts = [s for s in submissions if s.quiz_id == quiz.id]
            participants = {s.student_id for s in attempts}
            quizzes.append({
                "quiz_id": str(quiz.id),
                "title": quiz.title,
                "attempts": len(attempts),
                "avg_percentage": _avg([a.percentage for a in attempts]),
                "participation_rate": round(len(participants) / total_members * 100, 2) if total_members else 0.0,
            })
        quizzes.sort(key=lambda x: x["avg_percentage"], reverse=True)

        return {
            "group_id": str(group.id),
            "name": group.name,
            "summary": {
                "total_members": total_members,
                "active_members": active_members,
                "total_attempts": len(submissions),
                "avg_percentage": _avg([s.percentage for s in submissions]),
                "engagement_rate": round(active_members / total_members * 100, 2) if total_members else 0.0,
            },
            "students": students,
            "quizzes": quizzes,
            "recent_attempts": [_recent(s) for s in submissions[:RECENT_GROUP]],
        }

    def export(self, db: Session, user: Principal, kind: str, object_id) -> Tuple[str, List[Dict[str, Any]]]:
        """
        Collect export rows for a quiz or a group

        Returns:
            Tuple of (filename stem, rows)
        """
        if kind == "quiz":
            quiz = quiz_service.get_owned_quiz(db, user, object_id)
            submissions = db.query(Submission).filter(
                Submission.quiz_id == quiz.id
            ).order_by(Submission.submitted_at.desc()).all()
            name = quiz.title
        elif kind == "group":
            group = group_service.get_managed_group(db, user, object_id)
            submissions = self._group_submissions(db, group)
            name = group.name
        else:
            raise BadRequestError('Invalid export type. Use "quiz" or "group".')

        rows = []
        for s in submissions:
            metrics = s.behavior_metrics or {}
            rows.append({
                "Student Email": s.student.email,
                "Student Name": s.student.name or "",
                "Quiz Title": s.quiz.title,
                "Score": s.total_score,
                "Max Score": s.max_score,
                "Percentage": s.percentage,
                "Time Spent (seconds)": s.time_spent,
                "Submitted At": _iso(s.submitted_at),
                "Questions Revisited": metrics.get("questions_revisited", 0),
                "Average Time Per Question": metrics.get("average_time_per_question", 0),
                "Questions Skipped": metrics.get("questions_skipped", 0),
            })

        stem = f"{kind}-{re.sub(r'[^a-zA-Z0-9]', '-', name)}-analytics"
        logger.info(f"Analytics export: {kind} {object_id} ({len(rows)} rows)")
        return stem, rows


def rows_to_csv(rows: List[Dict[str, Any]]) -> str:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=EXPORT_COLUMNS)
    writer.writeheader()
    writer.writerows(rows)
    return buffer.getvalue()


# Global instance
analytics_service = AnalyticsService()
