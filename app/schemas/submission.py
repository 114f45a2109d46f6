"""
Pydantic schemas for submissions, grading and student results
"""
from datetime import datetime
from typing import Any, Dict, List, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field


class AnswerOut(BaseModel):
    """Grading breakdown for a single question"""
    question_id: str
    student_answer: Optional[Union[str, List[str]]] = None
    score: float = 0.0
    feedback: Optional[str] = None
    is_correct: Optional[bool] = None
    time_spent: int = 0


class SubmissionSummary(BaseModel):
    id: UUID
    quiz_id: UUID
    student_id: UUID
    student_email: str
    student_name: Optional[str] = None
    submitted_at: datetime
    time_spent: int
    total_score: float
    max_score: float
    percentage: float
    is_graded: bool


class SubmissionDetail(SubmissionSummary):
    answers: List[AnswerOut]
    feedback: Optional[str] = None
    graded_by: Optional[UUID] = None
    graded_at: Optional[datetime] = None
    behavior_metrics: Optional[Dict[str, Any]] = None
    device_info: Optional[Dict[str, Any]] = None


class GradedAnswerIn(BaseModel):
    question_id: str = Field(..., min_length=1)
    score: float = Field(..., ge=0)
    feedback: Optional[str] = None
    is_correct: Optional[bool] = None


class GradeRequest(BaseModel):
    graded_answers: List[GradedAnswerIn] = Field(default_factory=list)
    feedback: Optional[str] = None
    total_score: Optional[float] = Field(None, ge=0)


class GradeResponse(BaseModel):
    message: str
    submission: SubmissionDetail


class StudentResult(BaseModel):
    """What a student sees of their own attempt"""
    quiz_id: UUID
    quiz_title: str
    submitted_at: datetime
    is_graded: bool
    total_score: float
    max_score: float
    percentage: float
    feedback: Optional[str] = None
    answers: List[AnswerOut]


class MyResultItem(BaseModel):
    submission_id: UUID
    quiz_id: UUID
    quiz_title: str
    submitted_at: datetime
    is_graded: bool
    results_available: bool
    total_score: Optional[float] = None
    max_score: Optional[float] = None
    percentage: Optional[float] = None
