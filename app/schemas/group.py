"""
Pydantic schemas for groups and enrollment
"""
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class GroupCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    is_public: bool = False
    max_students: Optional[int] = Field(None, gt=0)


class GroupUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    is_public: Optional[bool] = None
    max_students: Optional[int] = Field(None, gt=0)


class EnrollRequest(BaseModel):
    enrollment_code: str = Field(..., min_length=1, max_length=32)


class MemberOut(BaseModel):
    id: UUID
    email: str
    name: Optional[str] = None


class AssignedQuiz(BaseModel):
    id: UUID
    title: str
    start_time: datetime
    end_time: datetime
    duration: int
    is_live: bool


class GroupSummary(BaseModel):
    id: UUID
    name: str
    description: str
    enrollment_code: str
    is_public: bool
    max_students: Optional[int] = None
    student_count: int
    quiz_count: int
    created_at: datetime


class GroupDetail(GroupSummary):
    creator_id: UUID
    students: List[MemberOut]
    quizzes: List[AssignedQuiz]


class StudentGroup(BaseModel):
    """A group as seen by one of its members"""
    id: UUID
    name: str
    description: str
    creator_email: str
    quizzes: List[AssignedQuiz]


class PublicGroup(BaseModel):
    id: UUID
    name: str
    description: str
    creator_email: str
    student_count: int
    max_students: Optional[int] = None


class GroupMessageResponse(BaseModel):
    message: str
    group: GroupDetail


class EnrollResponse(BaseModel):
    message: str
    group_id: UUID
    group_name: str
