"""
Pydantic schemas for quiz authoring and the student-facing quiz view
"""
import uuid
from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

from app.database import to_naive_utc

AnswerValue = Union[str, List[str]]


def _new_question_id() -> str:
    return uuid.uuid4().hex


class QuestionBase(BaseModel):
    """Fields shared by every question type"""
    id: str = Field(default_factory=_new_question_id, min_length=1, max_length=64)
    text: str = Field(..., min_length=1)
    image_url: Optional[str] = None
    audio_url: Optional[str] = None
    video_url: Optional[str] = None
    gif_url: Optional[str] = None
    points: float = Field(1.0, ge=0)
    explanation: Optional[str] = None


class MCQQuestion(QuestionBase):
    type: Literal["mcq"]
    options: List[str] = Field(..., min_length=2)
    correct_answer: AnswerValue

    @model_validator(mode="after")
    def answer_is_an_option(self):
        answers = self.correct_answer if isinstance(self.correct_answer, list) else [self.correct_answer]
        if not answers or any(answer not in self.options for answer in answers):
            raise ValueError("correct_answer must be one of the options")
        return self


class TrueFalseQuestion(QuestionBase):
    type: Literal["true_false"]
    correct_answer: Literal["true", "false"]

    @field_validator("correct_answer", mode="before")
    @classmethod
    def normalize_bool(cls, value):
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, str):
            return value.strip().lower()
        return value


class ShortAnswerQuestion(QuestionBase):
    type: Literal["short_answer"]
    correct_answer: AnswerValue


class LongAnswerQuestion(QuestionBase):
    type: Literal["long_answer"]
    correct_answer: AnswerValue = ""  # model answer / rubric, graded by hand


Question = Annotated[
    Union[MCQQuestion, TrueFalseQuestion, ShortAnswerQuestion, LongAnswerQuestion],
    Field(discriminator="type"),
]


class PublicQuestion(BaseModel):
    """Question as a student sees it: no correct answer, no explanation"""
    id: str
    type: str
    text: str
    image_url: Optional[str] = None
    audio_url: Optional[str] = None
    video_url: Optional[str] = None
    gif_url: Optional[str] = None
    options: Optional[List[str]] = None
    points: float = 1.0


def _unique_question_ids(questions):
    if questions is not None:
        ids = [q.id for q in questions]
        if len(ids) != len(set(ids)):
            raise ValueError("question ids must be unique")
    return questions


class QuizCreate(BaseModel):
    """Request schema for quiz creation"""
    title: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1)
    questions: List[Question] = Field(..., min_length=1)
    start_time: datetime
    end_time: datetime
    duration: int = Field(..., gt=0, description="Duration in minutes")
    password: str = Field(..., min_length=1)
    allow_internet: bool = False
    is_public: bool = False
    auto_submit: bool = True
    shuffle_questions: bool = False
    show_results: bool = False
    group_ids: List[UUID] = Field(default_factory=list)

    @field_validator("questions")
    @classmethod
    def unique_question_ids(cls, value):
        return _unique_question_ids(value)

    @field_validator("start_time", "end_time")
    @classmethod
    def store_as_utc(cls, value):
        return to_naive_utc(value)

    @model_validator(mode="after")
    def window_is_ordered(self):
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class QuizUpdate(BaseModel):
    """Partial update; omitted fields are left unchanged"""
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, min_length=1)
    questions: Optional[List[Question]] = Field(None, min_length=1)
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    duration: Optional[int] = Field(None, gt=0)
    password: Optional[str] = Field(None, min_length=1)
    allow_internet: Optional[bool] = None
    is_public: Optional[bool] = None
    auto_submit: Optional[bool] = None
    shuffle_questions: Optional[bool] = None
    show_results: Optional[bool] = None

    @field_validator("questions")
    @classmethod
    def unique_question_ids(cls, value):
        return _unique_question_ids(value)

    @field_validator("start_time", "end_time")
    @classmethod
    def store_as_utc(cls, value):
        return to_naive_utc(value)

    @model_validator(mode="after")
    def window_is_ordered(self):
        if self.start_time and self.end_time and self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class QuizCreatedResponse(BaseModel):
    message: str
    quiz_id: UUID


class QuizSummary(BaseModel):
    """Row in the creator's quiz list"""
    id: UUID
    title: str
    description: str
    start_time: datetime
    end_time: datetime
    duration: int
    is_live: bool
    is_public: bool
    question_count: int


class QuizDetail(BaseModel):
    """Full quiz for its owner, including answers but never the password digest"""
    id: UUID
    title: str
    description: str
    questions: List[Dict[str, Any]]
    start_time: datetime
    end_time: datetime
    duration: int
    is_live: bool
    is_public: bool
    allow_internet: bool
    auto_submit: bool
    shuffle_questions: bool
    show_results: bool
    group_ids: List[UUID]
    max_score: float
    created_at: datetime
    updated_at: datetime


class QuizMessageResponse(BaseModel):
    message: str
    quiz: QuizDetail


class ToggleLiveRequest(BaseModel):
    is_live: bool


class QuizAvailability(BaseModel):
    id: UUID
    title: str
    description: str
    start_time: datetime
    end_time: datetime
    duration: int
    is_live: bool
    is_available: bool
    requires_password: bool = True


class PublicQuiz(BaseModel):
    """Quiz as delivered to a student taking it"""
    id: UUID
    title: str
    description: str
    start_time: datetime
    end_time: datetime
    duration: int
    allow_internet: bool
    auto_submit: bool
    show_results: bool
    questions: List[PublicQuestion]


class PublicQuizListing(BaseModel):
    id: UUID
    title: str
    description: str
    start_time: datetime
    end_time: datetime
    duration: int
    creator_email: str


class MediaUploadResponse(BaseModel):
    url: str
