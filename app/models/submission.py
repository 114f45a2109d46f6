"""
Submission model - the finalized, gradable attempt of a student at a quiz
"""
import uuid

from sqlalchemy import (
    Boolean, Column, DateTime, Float, ForeignKey, Integer, Text, UniqueConstraint, Uuid,
)
from sqlalchemy.orm import relationship

from app.database import Base, JSONType, utcnow


class Submission(Base):
    """
    Submissions table - one row per (quiz, student); re-submission overwrites it.
    Analytics dashboards are computed from these rows.
    """
    __tablename__ = "submissions"
    __table_args__ = (
        UniqueConstraint("quiz_id", "student_id", name="uq_submission_quiz_student"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    quiz_id = Column(Uuid, ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False, index=True)
    student_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    session_id = Column(Uuid, ForeignKey("exam_sessions.id", ondelete="SET NULL"))

    # [{question_id, student_answer, score, feedback, is_correct, time_spent}]
    answers = Column(JSONType, nullable=False)
    submitted_at = Column(DateTime, nullable=False, default=utcnow)
    time_spent = Column(Integer, nullable=False, default=0)  # seconds

    max_score = Column(Float, nullable=False, default=0.0)
    total_score = Column(Float, nullable=False, default=0.0)
    percentage = Column(Float, nullable=False, default=0.0)
    feedback = Column(Text)

    is_graded = Column(Boolean, nullable=False, default=False)
    graded_by = Column(Uuid, ForeignKey("users.id"))
    graded_at = Column(DateTime)

    behavior_metrics = Column(JSONType)
    device_info = Column(JSONType)

    quiz = relationship("Quiz", back_populates="submissions")
    student = relationship("User", foreign_keys=[student_id])
    session = relationship("ExamSession")

    def __repr__(self):
        return f"<Submission(quiz_id={self.quiz_id}, student_id={self.student_id}, score={self.total_score})>"
