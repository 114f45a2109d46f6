"""
Quiz registry: authoring, scheduling, publication and media uploads
"""
import logging
import os
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

import aiofiles
from fastapi import UploadFile
from sqlalchemy.orm import Session

from app.config import settings
from app.database import utcnow
from app.dependencies import Principal
from app.errors import BadRequestError, NotFoundError, PermissionDeniedError
from app.models import Group, Quiz
from app.services.security import hash_password

logger = logging.getLogger(__name__)

MEDIA_TYPES = {
    "image": ("image/",),
    "audio": ("audio/",),
    "video": ("video/",),
    "gif": ("image/gif",),
}

UPLOAD_CHUNK_SIZE = 1024 * 1024  # 1MB


def check_availability(now: datetime, start_time: datetime, end_time: datetime, is_live: bool) -> bool:
    """A quiz can be taken when it is live and now lies inside [start, end]"""
    return bool(is_live) and start_time <= now <= end_time


class QuizService:
    """Quiz CRUD; every write is restricted to the quiz's creator"""

    def get_quiz(self, db: Session, quiz_id) -> Quiz:
        quiz = db.query(Quiz).filter(Quiz.id == quiz_id).first()
        if not quiz:
            raise NotFoundError("Quiz not found")
        return quiz

    def get_owned_quiz(self, db: Session, user: Principal, quiz_id) -> Quiz:
        # No admin bypass here, unlike groups
        quiz = self.get_quiz(db, quiz_id)
        if quiz.creator_id != user.id:
            raise PermissionDeniedError("Not authorized to access this quiz")
        return quiz

    def create_quiz(self, db: Session, user: Principal, data: Dict[str, Any]) -> Quiz:
        """
        Create a quiz in the not-live state

        Args:
            db: Database session
            user: Authoring principal
            data: Validated QuizCreate payload as a dict

        Returns:
            The stored quiz
        """
        group_ids = data.pop("group_ids", []) or []
        password = data.pop("password")

        quiz = Quiz(
            creator_id=user.id,
            password_hash=hash_password(password),
            is_live=False,
            **data,
        )

        if group_ids:
            groups = db.query(Group).filter(Group.id.in_(group_ids)).all()
            if len(groups) != len(set(group_ids)):
                raise NotFoundError("Group not found")
            for group in groups:
                if group.creator_id != user.id:
                    raise PermissionDeniedError("Not authorized to assign to this group")
            quiz.groups = groups

        db.add(quiz)
        db.commit()
        db.refresh(quiz)

        logger.info(f"Quiz created: {quiz.id} ({len(quiz.questions)} questions) by {user.id}")
        return quiz

    def list_creator_quizzes(self, db: Session, user: Principal) -> List[Quiz]:
        return (
            db.query(Quiz)
            .filter(Quiz.creator_id == user.id)
            .order_by(Quiz.created_at.desc())
            .all()
        )

    def list_public_quizzes(self, db: Session, now: Optional[datetime] = None) -> List[Quiz]:
        """Public quizzes that can be taken right now"""
        now = now or utcnow()
        return (
            db.query(Quiz)
            .filter(
                Quiz.is_public.is_(True),
                Quiz.is_live.is_(True),
                Quiz.start_time <= now,
                Quiz.end_time >= now,
            )
            .order_by(Quiz.end_time)
            .all()
        )

    def update_quiz(self, db: Session, user: Principal, quiz_id, changes: Dict[str, Any]) -> Quiz:
        quiz = self.get_owned_quiz(db, user, quiz_id)

        password = changes.pop("password", None)
        if password:
            quiz.password_hash = hash_password(password)

        start_time = changes.get("start_time") or quiz.start_time
        end_time = changes.get("end_time") or quiz.end_time
        if end_time <= start_time:
            raise BadRequestError("end_time must be after start_time")

        for field, value in changes.items():
            if value is not None:
                setattr(quiz, field, value)

        db.commit()
        db.refresh(quiz)
        logger.info(f"Quiz updated: {quiz.id}")
        return quiz

    def delete_quiz(self, db: Session, user: Principal, quiz_id) -> None:
        """Delete a quiz together with its sessions and submissions"""
        quiz = self.get_owned_quiz(db, user, quiz_id)
        db.delete(quiz)
        db.commit()
        logger.info(f"Quiz deleted: {quiz_id} by {user.id}")

    def toggle_live(self, db: Session, user: Principal, quiz_id, is_live: bool) -> Quiz:
        quiz = self.get_owned_quiz(db, user, quiz_id)
        if is_live and utcnow() > quiz.end_time:
            raise BadRequestError("Cannot make a quiz live after its end time")

        quiz.is_live = is_live
        db.commit()
        db.refresh(quiz)
        logger.info(f"Quiz {quiz.id} is_live={quiz.is_live}")
        return quiz

    def get_availability(self, db: Session, quiz_id) -> Dict[str, Any]:
        quiz = self.get_quiz(db, quiz_id)
        return {
            "id": quiz.id,
            "title": quiz.title,
            "description": quiz.description,
            "start_time": quiz.start_time,
            "end_time": quiz.end_time,
            "duration": quiz.duration,
            "is_live": quiz.is_live,
            "is_available": check_availability(utcnow(), quiz.start_time, quiz.end_time, quiz.is_live),
            "requires_password": True,
        }

    async def upload_media(self, file: UploadFile, question_id: str, media_type: str) -> str:
        """
        Store an uploaded media file under MEDIA_ROOT

        Returns:
            Public URL of the stored file
        """
        if media_type not in MEDIA_TYPES:
            raise BadRequestError(f"media_type must be one of: {', '.join(MEDIA_TYPES)}")
        if not question_id or not question_id.strip():
            raise BadRequestError("question_id is required")

        content_type = file.content_type or ""
        if not content_type.startswith(MEDIA_TYPES[media_type]):
            raise BadRequestError(f"File type {content_type or 'unknown'} does not match media_type {media_type}")

        extension = os.path.splitext(file.filename or "")[1].lower()
        filename = f"{media_type}-{uuid.uuid4().hex}{extension}"
        directory = os.path.join(settings.MEDIA_ROOT, "questions")
        os.makedirs(directory, exist_ok=True)
        path = os.path.join(directory, filename)

        written = 0
        async with aiofiles.open(path, "wb") as out:
            while True:
                chunk = await file.read(UPLOAD_CHUNK_SIZE)
                if not chunk:
                    break
                written += len(chunk)
                if written > settings.MAX_MEDIA_BYTES:
                    break
                await out.write(chunk)

        if written > settings.MAX_MEDIA_BYTES:
            os.remove(path)
            raise BadRequestError(
                f"File too large. Maximum size is {settings.MAX_MEDIA_BYTES // (1024 * 1024)}MB"
            )
        if written == 0:
            os.remove(path)
            raise BadRequestError("Uploaded file is empty")

        logger.info(f"Media uploaded for question {question_id}: {filename} ({written} bytes)")
        return f"{settings.MEDIA_URL.rstrip('/')}/questions/{filename}"


def serialize_quiz_summary(quiz: Quiz) -> dict:
    return {
        "id": quiz.id,
        "title": quiz.title,
        "description": quiz.description,
        "start_time": quiz.start_time,
        "end_time": quiz.end_time,
        "duration": quiz.duration,
        "is_live": quiz.is_live,
        "is_public": quiz.is_public,
        "question_count": len(quiz.questions or []),
    }


def serialize_quiz_detail(quiz: Quiz) -> dict:
    """Owner view; the password digest is never included"""
    return {
        "id": quiz.id,
        "title": quiz.title,
        "description": quiz.description,
        "questions": quiz.questions,
        "start_time": quiz.start_time,
        "end_time": quiz.end_time,
        "duration": quiz.duration,
        "is_live": quiz.is_live,
        "is_public": quiz.is_public,
        "allow_internet": quiz.allow_internet,
        "auto_submit": quiz.auto_submit,
        "shuffle_questions": quiz.shuffle_questions,
        "show_results": quiz.show_results,
        "group_ids": [group.id for group in quiz.groups],
        "max_score": quiz.max_score,
        "created_at": quiz.created_at,
        "updated_at": quiz.updated_at,
    }


PUBLIC_QUESTION_FIELDS = (
    "id", "type", "text", "image_url", "audio_url", "video_url", "gif_url", "options", "points",
)


def public_questions(questions: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Strip correct answers and explanations before sending to a student"""
    return [
        {field: question.get(field) for field in PUBLIC_QUESTION_FIELDS if field in question}
        for question in questions or []
    ]


# Global instance
quiz_service = QuizService()
