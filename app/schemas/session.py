"""
Pydantic schemas for taking an exam: authenticate, save, submit
"""
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field

from app.schemas.quiz import PublicQuiz


class QuizAuthenticateRequest(BaseModel):
    password: str = Field(..., min_length=1)


class QuizAuthenticateResponse(BaseModel):
    """Session handle plus the quiz with answers stripped"""
    message: str
    session_id: UUID
    start_time: datetime
    end_time: datetime
    resumed: bool
    quiz: PublicQuiz


class SaveAnswerRequest(BaseModel):
    question_id: Optional[str] = None
    answer: Optional[Union[str, List[str]]] = None
    time_spent: Optional[int] = Field(None, ge=0, description="Seconds spent on this question")


class SavedAnswer(BaseModel):
    answer: Union[str, List[str]]
    time_spent: int = 0
    saves: int = 1


class SaveAnswerResponse(BaseModel):
    message: str
    question_id: str
    saved_at: datetime
    remaining_seconds: int


class SessionStateResponse(BaseModel):
    session_id: UUID
    quiz_id: UUID
    status: Literal["active", "expired", "completed"]
    start_time: datetime
    end_time: datetime
    remaining_seconds: int
    answers: Dict[str, SavedAnswer]


class SubmitRequest(BaseModel):
    """Optional client-side telemetry sent alongside the final submit"""
    behavior: Optional[Dict[str, Any]] = None
    device_info: Optional[Dict[str, Any]] = None


class SubmitResponse(BaseModel):
    message: str
    submission_id: UUID
    submitted_at: datetime
    show_results: bool
    total_score: Optional[float] = None
    max_score: Optional[float] = None
    percentage: Optional[float] = None
