"""
Performance analytics API endpoints
"""
from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse, Response
from sqlalchemy.orm import Session
from typing import Literal
from uuid import UUID
import logging

from app.database import get_db
from app.dependencies import Capability, Principal, require_capability
from app.schemas.analytics import GroupAnalytics, Overview, QuizAnalytics
from app.services.analytics_service import analytics_service, rows_to_csv

router = APIRouter(prefix="/api/analytics", tags=["analytics"])
logger = logging.getLogger(__name__)

analyst = require_capability(Capability.VIEW_ANALYTICS)


@router.get("/overview", response_model=Overview)
async def get_overview(user: Principal = Depends(analyst), db: Session = Depends(get_db)):
    """
    Dashboard across all of the caller's quizzes

    Returns:
    - Attempts, average percentage and unique students
    - Completion rate (completed sessions / sessions started)
    - 10 most recent attempts and top 5 quizzes
    - 30-day daily trend
    """
    logger.info(f"Fetching analytics overview for {user.id}")
    return Overview(**analytics_service.get_overview(db, user))


@router.get("/quiz/{quiz_id}", response_model=QuizAnalytics)
async def get_quiz_analytics(
    quiz_id: UUID,
    user: Principal = Depends(analyst),
    db: Session = Depends(get_db),
):
    """
    Analytics for one quiz

    Returns:
    - Summary (attempts, average/high/low, average time)
    - Per-question correctness and time
    - Per-student performance
    - Time and score histograms
    """
    logger.info(f"Fetching analytics for quiz {quiz_id}")
    return QuizAnalytics(**analytics_service.get_quiz_analytics(db, user, quiz_id))


@router.get("/group/{group_id}", response_model=GroupAnalytics)
async def get_group_analytics(
    group_id: UUID,
    user: Principal = Depends(analyst),
    db: Session = Depends(get_db),
):
    logger.info(f"Fetching analytics for group {group_id}")
    return GroupAnalytics(**analytics_service.get_group_analytics(db, user, group_id))


@router.get("/export/{kind}/{object_id}")
async def export_analytics(
    kind: Literal["quiz", "group"],
    object_id: UUID,
    format: Literal["csv", "json"] = Query("csv"),
    user: Principal = Depends(analyst),
    db: Session = Depends(get_db),
):
    """Download submissions of a quiz or group as CSV or JSON"""
    stem, rows = analytics_service.export(db, user, kind, object_id)

    if format == "csv":
        return Response(
            content=rows_to_csv(rows),
            media_type="text/csv",
            headers={"Content-Disposition": f'attachment; filename="{stem}.csv"'},
        )
    return JSONResponse(
        content=rows,
        headers={"Content-Disposition": f'attachment; filename="{stem}.json"'},
    )
