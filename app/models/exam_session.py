"""
ExamSession model - a student's in-progress attempt at a quiz
"""
import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, Uuid, text
from sqlalchemy.orm import relationship

from app.database import Base, JSONType, utcnow


class ExamSession(Base):
    """
    Exam sessions table - at most one incomplete row per (quiz, student)
    """
    __tablename__ = "exam_sessions"
    __table_args__ = (
        Index(
            "uq_exam_sessions_active",
            "quiz_id",
            "student_id",
            unique=True,
            postgresql_where=text("is_completed = false"),
            sqlite_where=text("is_completed = 0"),
        ),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    quiz_id = Column(Uuid, ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False, index=True)
    student_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    start_time = Column(DateTime, nullable=False, default=utcnow)
    end_time = Column(DateTime, nullable=False)
    last_activity = Column(DateTime, nullable=False, default=utcnow)
    is_completed = Column(Boolean, nullable=False, default=False)

    # {question_id: {"answer": ..., "time_spent": seconds, "saves": n}}
    answers = Column(JSONType, nullable=False, default=dict)
    answer_changes = Column(Integer, nullable=False, default=0)
    device_info = Column(JSONType)

    created_at = Column(DateTime, nullable=False, default=utcnow)

    quiz = relationship("Quiz", back_populates="sessions")
    student = relationship("User")

    def is_expired(self, now) -> bool:
        return not self.is_completed and now > self.end_time

    def __repr__(self):
        return f"<ExamSession(id={self.id}, quiz_id={self.quiz_id}, completed={self.is_completed})>"
