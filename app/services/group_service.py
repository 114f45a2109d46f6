"""
Group registry: ownership, enrollment codes, membership and quiz assignment
"""
import logging
import secrets
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.config import settings
from app.dependencies import Capability, Principal
from app.errors import BadRequestError, ConflictError, NotFoundError, PermissionDeniedError
from app.models import Group, Quiz, User
from app.utils.cache import cache_service

logger = logging.getLogger(__name__)

# No 0/O or 1/I/L, so codes survive being read aloud or copied by hand
CODE_ALPHABET = "ABCDEFGHJKMNPQRSTUVWXYZ23456789"
MAX_CODE_ATTEMPTS = 5


def generate_enrollment_code(length: Optional[int] = None) -> str:
    length = length or settings.ENROLLMENT_CODE_LENGTH
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def normalize_code(code: str) -> str:
    return code.strip().upper()


class GroupService:
    """Owner-or-admin management of groups; students join by code"""

    def get_group(self, db: Session, group_id) -> Group:
        group = db.query(Group).filter(Group.id == group_id).first()
        if not group:
            raise NotFoundError("Group not found")
        return group

    def _can_manage(self, user: Principal, group: Group) -> bool:
        return group.creator_id == user.id or user.can(Capability.MANAGE_ANY_GROUP)

    def get_managed_group(self, db: Session, user: Principal, group_id) -> Group:
        group = self.get_group(db, group_id)
        if not self._can_manage(user, group):
            raise PermissionDeniedError("Not authorized to manage this group")
        return group

    def create_group(
        self,
        db: Session,
        user: Principal,
        name: str,
        description: str = "",
        is_public: bool = False,
        max_students: Optional[int] = None,
    ) -> Group:
        """
        Create a group with a fresh enrollment code

        A code collision on insert is retried with a new code.
        """
        if not name or not name.strip():
            raise BadRequestError("Group name is required")

        for attempt in range(1, MAX_CODE_ATTEMPTS + 1):
            group = Group(
                name=name.strip(),
                description=description or "",
                creator_id=user.id,
                enrollment_code=generate_enrollment_code(),
                is_public=is_public,
                max_students=max_students,
            )
            db.add(group)
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                logger.warning(f"Enrollment code collision, retrying ({attempt}/{MAX_CODE_ATTEMPTS})")
                continue

            db.refresh(group)
            logger.info(f"Group created: {group.id} by {user.id}")
            return group

        raise ConflictError("Could not allocate a unique enrollment code, please retry")

    def list_creator_groups(self, db: Session, user: Principal) -> List[Group]:
        return (
            db.query(Group)
            .filter(Group.creator_id == user.id)
            .order_by(Group.created_at.desc())
            .all()
        )

    def get_visible_group(self, db: Session, user: Principal, group_id) -> Group:
        """Owner, admin or member; the roster is not shown to anyone else"""
        group = self.get_group(db, group_id)
        if not self._can_manage(user, group) and not group.has_member(user.id):
            raise PermissionDeniedError("Not authorized to view this group")
        return group

    def update_group(self, db: Session, user: Principal, group_id, changes: dict) -> Group:
        group = self.get_managed_group(db, user, group_id)

        if "name" in changes and changes["name"] is not None:
            if not changes["name"].strip():
                raise BadRequestError("Group name is required")
            group.name = changes["name"].strip()
        for field in ("description", "is_public", "max_students"):
            if field in changes:
                setattr(group, field, changes[field])

        db.commit()
        db.refresh(group)
        logger.info(f"Group updated: {group.id}")
        return group

    def delete_group(self, db: Session, user: Principal, group_id) -> None:
        group = self.get_managed_group(db, user, group_id)
        db.delete(group)
        db.commit()
        logger.info(f"Group deleted: {group_id} by {user.id}")

    def _invalidate_analytics(self, group: Group) -> None:
        cache_service.delete(cache_service.analytics_key("group", group.id))

    def _add_member(self, db: Session, group: Group, student: User) -> Group:
        if group.has_member(student.id):
            raise ConflictError("Already enrolled in this group")
        if group.is_full:
            raise BadRequestError("Group is full")

        group.students.append(student)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise ConflictError("Already enrolled in this group")
        logger.info(f"User {student.id} joined group {group.id}")
        self._invalidate_analytics(group)
        return group

    def enroll(self, db: Session, user: Principal, enrollment_code: str) -> Group:
        """Join a group by its code; case and surrounding whitespace are ignored"""
        code = normalize_code(enrollment_code)
        group = db.query(Group).filter(Group.enrollment_code == code).first()
        if not group:
            raise NotFoundError("Invalid enrollment code")

        student = db.query(User).filter(User.id == user.id).first()
        return self._add_member(db, group, student)

    def join_public(self, db: Session, user: Principal, group_id) -> Group:
        group = self.get_group(db, group_id)
        if not group.is_public:
            raise PermissionDeniedError("This group is not public")

        student = db.query(User).filter(User.id == user.id).first()
        return self._add_member(db, group, student)

    def list_student_groups(self, db: Session, user: Principal) -> List[Group]:
        student = db.query(User).filter(User.id == user.id).first()
        return (
            db.query(Group)
            .filter(Group.students.contains(student))
            .order_by(Group.name)
            .all()
        )

    def list_public_groups(self, db: Session) -> List[Group]:
        return db.query(Group).filter(Group.is_public.is_(True)).order_by(Group.name).all()

    def assign_quiz(self, db: Session, user: Principal, group_id, quiz_id) -> Group:
        group = self.get_managed_group(db, user, group_id)
        quiz = db.query(Quiz).filter(Quiz.id == quiz_id).first()
        if not quiz:
            raise NotFoundError("Quiz not found")
        if quiz in group.quizzes:
            raise ConflictError("Quiz is already assigned to this group")

        group.quizzes.append(quiz)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise ConflictError("Quiz is already assigned to this group")
        logger.info(f"Quiz {quiz.id} assigned to group {group.id}")
        self._invalidate_analytics(group)
        return group

    def remove_quiz(self, db: Session, user: Principal, group_id, quiz_id) -> Group:
        """Unassign a quiz; removing one that is not assigned is a no-op"""
        group = self.get_managed_group(db, user, group_id)
        quiz = db.query(Quiz).filter(Quiz.id == quiz_id).first()
        if quiz is not None and quiz in group.quizzes:
            group.quizzes.remove(quiz)
            db.commit()
            logger.info(f"Quiz {quiz.id} removed from group {group.id}")
            self._invalidate_analytics(group)
        return group


def serialize_assigned_quiz(quiz: Quiz) -> dict:
    return {
        "id": quiz.id,
        "title": quiz.title,
        "start_time": quiz.start_time,
        "end_time": quiz.end_time,
        "duration": quiz.duration,
        "is_live": quiz.is_live,
    }


def serialize_group(group: Group, detail: bool = False) -> dict:
    data = {
        "id": group.id,
        "name": group.name,
        "description": group.description,
        "enrollment_code": group.enrollment_code,
        "is_public": group.is_public,
        "max_students": group.max_students,
        "student_count": len(group.students),
        "quiz_count": len(group.quizzes),
        "created_at": group.created_at,
    }
    if detail:
        data["creator_id"] = group.creator_id
        data["students"] = [
            {"id": s.id, "email": s.email, "name": s.name} for s in group.students
        ]
        data["quizzes"] = [serialize_assigned_quiz(q) for q in group.quizzes]
    return data


# Global instance
group_service = GroupService()
