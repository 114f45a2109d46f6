"""
Pydantic schemas for analytics endpoints
"""
from pydantic import BaseModel
from typing import List, Optional
from uuid import UUID


class RecentAttempt(BaseModel):
    """A single finalized submission in a recent-activity list"""
    submission_id: UUID
    quiz_id: UUID
    quiz_title: str
    student_email: str
    percentage: float
    submitted_at: str


class QuizRanking(BaseModel):
    quiz_id: UUID
    title: str
    attempts: int
    avg_percentage: float


class TrendPoint(BaseModel):
    date: str
    attempts: int
    avg_percentage: float


class Overview(BaseModel):
    """Creator dashboard across all owned quizzes"""
    total_quizzes: int
    total_attempts: int
    avg_percentage: float
    unique_students: int
    completion_rate: float
    recent_attempts: List[RecentAttempt]
    top_quizzes: List[QuizRanking]
    daily_trend: List[TrendPoint]


class QuizSummaryStats(BaseModel):
    total_attempts: int
    avg_percentage: float
    highest_percentage: float
    lowest_percentage: float
    avg_time_spent: float
    completion_rate: float


class QuestionStats(BaseModel):
    """Correctness and time for one question"""
    question_id: str
    text: str
    type: str
    attempts: int
    correct: int
    correct_rate: float
    avg_score: float
    avg_time_spent: float


class StudentPerformance(BaseModel):
    student_id: UUID
    email: str
    name: Optional[str] = None
    total_score: float
    percentage: float
    time_spent: int
    submitted_at: str
    is_graded: bool


class Bucket(BaseModel):
    label: str
    count: int


class QuizAnalytics(BaseModel):
    quiz_id: UUID
    title: str
    summary: QuizSummaryStats
    questions: List[QuestionStats]
    students: List[StudentPerformance]
    time_distribution: List[Bucket]
    score_distribution: List[Bucket]


class GroupSummaryStats(BaseModel):
    total_members: int
    active_members: int
    total_attempts: int
    avg_percentage: float
    engagement_rate: float


class StudentEngagement(BaseModel):
    student_id: UUID
    email: str
    name: Optional[str] = None
    attempts: int
    assigned: int
    avg_percentage: float
    last_submitted_at: Optional[str] = None


class GroupQuizPerformance(BaseModel):
    quiz_id: UUID
    title: str
    attempts: int
    avg_percentage: float
    participation_rate: float


class GroupAnalytics(BaseModel):
    group_id: UUID
    name: str
    summary: GroupSummaryStats
    students: List[StudentEngagement]
    quizzes: List[GroupQuizPerformance]
    recent_attempts: List[RecentAttempt]
