"""
Quiz model - authored exams with their question bank and schedule
"""
import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import relationship

from app.database import Base, JSONType, utcnow
from app.models.group import group_quizzes


class Quiz(Base):
    """
    Quizzes table - questions are stored inline as a JSON list
    """
    __tablename__ = "quizzes"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    creator_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    questions = Column(JSONType, nullable=False)  # [{id, type, text, options, correct_answer, points, ...}]
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    duration = Column(Integer, nullable=False)  # minutes
    password_hash = Column(String(255), nullable=False)

    is_live = Column(Boolean, nullable=False, default=False)
    is_public = Column(Boolean, nullable=False, default=False)
    allow_internet = Column(Boolean, nullable=False, default=False)
    auto_submit = Column(Boolean, nullable=False, default=True)
    shuffle_questions = Column(Boolean, nullable=False, default=False)
    show_results = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    creator = relationship("User")
    groups = relationship("Group", secondary=group_quizzes, back_populates="quizzes")
    sessions = relationship("ExamSession", back_populates="quiz", cascade="all, delete-orphan")
    submissions = relationship("Submission", back_populates="quiz", cascade="all, delete-orphan")

    @property
    def max_score(self) -> float:
        return float(sum(q.get("points", 1) for q in self.questions or []))

    def question_by_id(self, question_id: str):
        for question in self.questions or []:
            if question.get("id") == question_id:
                return question
        return None

    def __repr__(self):
        return f"<Quiz(id={self.id}, title={self.title}, live={self.is_live})>"
