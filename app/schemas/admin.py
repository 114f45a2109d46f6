"""
Pydantic schemas for the admin console
"""
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel

from app.models import Role, SubscriptionPlan


class AdminUserOut(BaseModel):
    id: UUID
    email: str
    name: Optional[str] = None
    role: Role
    is_email_verified: bool
    is_suspended: bool
    subscription_plan: Optional[SubscriptionPlan] = None
    trial_expiry: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class UserPage(BaseModel):
    total: int
    page: int
    limit: int
    users: List[AdminUserOut]


class UserStatusUpdate(BaseModel):
    suspended: bool


class UserRoleUpdate(BaseModel):
    role: Role


class SubscriptionOverride(BaseModel):
    plan: Optional[SubscriptionPlan] = None
    trial_expiry: Optional[datetime] = None


class AdminUserResponse(BaseModel):
    message: str
    user: AdminUserOut


class SubscriptionStats(BaseModel):
    by_plan: Dict[str, int]
    active_trials: int
    expired_trials: int
    paying_users: int


class AuditLogOut(BaseModel):
    id: UUID
    user_id: UUID
    action: str
    target_type: str
    target_id: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    created_at: datetime

    class Config:
        from_attributes = True


class AuditLogPage(BaseModel):
    total: int
    page: int
    limit: int
    logs: List[AuditLogOut]


class PlatformMetrics(BaseModel):
    users_by_role: Dict[str, int]
    verified_users: int
    suspended_users: int
    quizzes: int
    live_quizzes: int
    groups: int
    active_sessions: int
    submissions: int
