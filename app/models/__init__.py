"""
Database models package
"""
from app.models.user import User, Role, SubscriptionPlan
from app.models.group import Group, group_members, group_quizzes
from app.models.quiz import Quiz
from app.models.exam_session import ExamSession
from app.models.submission import Submission
from app.models.audit_log import AuditLog

__all__ = [
    "User", "Role", "SubscriptionPlan", "Group", "group_members", "group_quizzes",
    "Quiz", "ExamSession", "Submission", "AuditLog",
]
