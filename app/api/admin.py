"""
Admin console API endpoints
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID
import logging

from app.database import get_db, to_naive_utc
from app.dependencies import Principal, require_roles
from app.errors import NotImplementedYetError
from app.models import Role
from app.schemas.admin import (
    AdminUserOut,
    AdminUserResponse,
    AuditLogOut,
    AuditLogPage,
    PlatformMetrics,
    SubscriptionOverride,
    SubscriptionStats,
    UserPage,
    UserRoleUpdate,
    UserStatusUpdate,
)
from app.services.admin_service import admin_service

router = APIRouter(prefix="/api/admin", tags=["admin"])
logger = logging.getLogger(__name__)

admin_only = require_roles(Role.ADMIN)


@router.get("/users", response_model=UserPage)
async def list_users(
    role: Optional[Role] = None,
    suspended: Optional[bool] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    admin: Principal = Depends(admin_only),
    db: Session = Depends(get_db),
):
    """List accounts filtered by role, suspension and an email/name search"""
    total, users = admin_service.list_users(db, role, suspended, search, page, limit)
    return UserPage(
        total=total,
        page=page,
        limit=limit,
        users=[AdminUserOut.model_validate(u) for u in users],
    )


@router.patch("/users/{user_id}/status", response_model=AdminUserResponse)
async def update_user_status(
    user_id: UUID,
    payload: UserStatusUpdate,
    admin: Principal = Depends(admin_only),
    db: Session = Depends(get_db),
):
    user = admin_service.set_suspended(db, admin, user_id, payload.suspended)
    state = "suspended" if user.is_suspended else "reactivated"
    return AdminUserResponse(message=f"User {state}", user=AdminUserOut.model_validate(user))


@router.patch("/users/{user_id}/role", response_model=AdminUserResponse)
async def update_user_role(
    user_id: UUID,
    payload: UserRoleUpdate,
    admin: Principal = Depends(admin_only),
    db: Session = Depends(get_db),
):
    """Change a user's role; administrators cannot change their own"""
    user = admin_service.set_role(db, admin, user_id, payload.role)
    return AdminUserResponse(message="User role updated", user=AdminUserOut.model_validate(user))


@router.get("/subscriptions", response_model=SubscriptionStats)
async def subscription_overview(admin: Principal = Depends(admin_only), db: Session = Depends(get_db)):
    return SubscriptionStats(**admin_service.subscription_stats(db))


@router.patch("/subscriptions/{user_id}", response_model=AdminUserResponse)
async def override_subscription(
    user_id: UUID,
    payload: SubscriptionOverride,
    admin: Principal = Depends(admin_only),
    db: Session = Depends(get_db),
):
    user = admin_service.override_subscription(
        db, admin, user_id, payload.plan, to_naive_utc(payload.trial_expiry)
    )
    return AdminUserResponse(message="Subscription updated", user=AdminUserOut.model_validate(user))


@router.get("/audit-logs", response_model=AuditLogPage)
async def list_audit_logs(
    action: Optional[str] = None,
    user_id: Optional[UUID] = None,
    target_type: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    admin: Principal = Depends(admin_only),
    db: Session = Depends(get_db),
):
    total, logs = admin_service.list_audit_logs(db, action, user_id, target_type, page, limit)
    return AuditLogPage(
        total=total,
        page=page,
        limit=limit,
        logs=[AuditLogOut.model_validate(log) for log in logs],
    )


@router.get("/audit-logs/export")
async def export_audit_logs(admin: Principal = Depends(admin_only)):
    raise NotImplementedYetError("Audit log export is not available yet")


@router.get("/metrics", response_model=PlatformMetrics)
async def system_metrics(admin: Principal = Depends(admin_only), db: Session = Depends(get_db)):
    return PlatformMetrics(**admin_service.metrics(db))
