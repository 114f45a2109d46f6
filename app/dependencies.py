"""
Authorization gate: bearer token -> principal -> role check
"""
import enum
import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.database import get_db
from app.errors import AuthenticationError, PermissionDeniedError
from app.models import Role, User
from app.services.security import decode_access_token

logger = logging.getLogger(__name__)

bearer = HTTPBearer(auto_error=False)


class Capability(str, enum.Enum):
    MANAGE_ANY_GROUP = "manage_any_group"
    AUTHOR_QUIZZES = "author_quizzes"
    TAKE_EXAMS = "take_exams"
    VIEW_ANALYTICS = "view_analytics"
    ADMINISTER = "administer"
    MANAGE_BILLING = "manage_billing"


ROLE_CAPABILITIES = {
    Role.ADMIN: frozenset({
        Capability.MANAGE_ANY_GROUP,
        Capability.AUTHOR_QUIZZES,
        Capability.VIEW_ANALYTICS,
        Capability.ADMINISTER,
        Capability.MANAGE_BILLING,
    }),
    Role.CREATOR: frozenset({
        Capability.AUTHOR_QUIZZES,
        Capability.VIEW_ANALYTICS,
        Capability.MANAGE_BILLING,
    }),
    Role.STUDENT: frozenset({
        Capability.TAKE_EXAMS,
    }),
}


@dataclass(frozen=True)
class Principal:
    """The authenticated identity attached to a request"""
    id: uuid.UUID
    email: str
    role: Role
    plan: Optional[str]
    is_email_verified: bool

    def can(self, capability: Capability) -> bool:
        return capability in ROLE_CAPABILITIES[self.role]


async def get_current_user(
    request: Request,
    creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    db: Session = Depends(get_db),
) -> Principal:
    """Resolve the bearer token to a principal; every failure is a 401"""

    if creds is None or creds.scheme.lower() != "bearer" or not creds.credentials:
        raise AuthenticationError("Access denied. No token provided.")

    payload = decode_access_token(creds.credentials)

    try:
        user_id = uuid.UUID(payload["sub"])
    except (ValueError, TypeError):
        raise AuthenticationError("Invalid token")

    user = db.query(User).filter(User.id == user_id).first()
    if not user or user.token_version != payload.get("ver"):
        raise AuthenticationError("Invalid token")

    if user.is_suspended:
        raise PermissionDeniedError("Account suspended")

    principal = Principal(
        id=user.id,
        email=user.email,
        role=user.role,
        plan=user.subscription_plan.value if user.subscription_plan else None,
        is_email_verified=user.is_email_verified,
    )
    request.state.user_id = principal.id
    return principal


def require_roles(*roles: Role):
    """Dependency factory rejecting principals outside the given roles"""
    allowed = frozenset(roles)

    async def checker(user: Principal = Depends(get_current_user)) -> Principal:
        if user.role not in allowed:
            logger.info(f"Role {user.role.value} rejected for user {user.id}")
            raise PermissionDeniedError("Insufficient role")
        return user

    return checker


def require_capability(capability: Capability):
    async def checker(user: Principal = Depends(get_current_user)) -> Principal:
        if not user.can(capability):
            raise PermissionDeniedError("Insufficient role")
        return user

    return checker
