"""
Group model - cohorts of students joined by enrollment code
"""
import uuid

from sqlalchemy import (
    Boolean, Column, DateTime, ForeignKey, Integer, String, Table, Text,
    UniqueConstraint, Uuid,
)
from sqlalchemy.orm import relationship

from app.database import Base, utcnow

# One row per membership; the unique constraint rejects duplicate enrollment
group_members = Table(
    "group_members",
    Base.metadata,
    Column("group_id", Uuid, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False),
    Column("user_id", Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("joined_at", DateTime, default=utcnow),
    UniqueConstraint("group_id", "user_id", name="uq_group_member"),
)

# Single source for both group.quizzes and quiz.groups
group_quizzes = Table(
    "group_quizzes",
    Base.metadata,
    Column("group_id", Uuid, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False),
    Column("quiz_id", Uuid, ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False),
    Column("assigned_at", DateTime, default=utcnow),
    UniqueConstraint("group_id", "quiz_id", name="uq_group_quiz"),
)


class Group(Base):
    """
    Groups table - owned by a creator, joined by students
    """
    __tablename__ = "groups"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    creator_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    enrollment_code = Column(String(16), unique=True, nullable=False, index=True)
    is_public = Column(Boolean, nullable=False, default=False)
    max_students = Column(Integer)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    creator = relationship("User", foreign_keys=[creator_id])
    students = relationship("User", secondary=group_members, order_by="User.email")
    quizzes = relationship("Quiz", secondary=group_quizzes, back_populates="groups")

    def has_member(self, user_id) -> bool:
        return any(student.id == user_id for student in self.students)

    @property
    def is_full(self) -> bool:
        return self.max_students is not None and len(self.students) >= self.max_students

    def __repr__(self):
        return f"<Group(id={self.id}, name={self.name}, code={self.enrollment_code})>"
