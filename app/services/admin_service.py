"""
Admin console: user moderation, subscription overrides, audit trail, metrics
"""
import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from app.database import utcnow
from app.dependencies import Principal
from app.errors import NotFoundError, PermissionDeniedError
from app.models import AuditLog, ExamSession, Group, Quiz, Role, Submission, SubscriptionPlan, User

logger = logging.getLogger(__name__)


class AdminService:
    """
    Every mutation writes exactly one audit row in the same transaction
    as the change it records
    """

    def _get_target(self, db: Session, admin: Principal, user_id) -> User:
        if user_id == admin.id:
            raise PermissionDeniedError("Administrators cannot modify their own account")
        user = db.query(User).filter(User.id == user_id).first()
        if not user:
            raise NotFoundError("User not found")
        return user

    def _audit(
        self,
        db: Session,
        admin: Principal,
        action: str,
        target: User,
        details: Dict[str, Any],
    ) -> None:
        db.add(AuditLog(
            user_id=admin.id,
            action=action,
            target_type="user",
            target_id=str(target.id),
            details=details,
        ))

    def list_users(
        self,
        db: Session,
        role: Optional[Role] = None,
        suspended: Optional[bool] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[int, List[User]]:
        query = db.query(User)
        if role is not None:
            query = query.filter(User.role == role)
        if suspended is not None:
            query = query.filter(User.is_suspended.is_(suspended))
        if search:
            pattern = f"%{search.strip().lower()}%"
            query = query.filter(or_(
                func.lower(User.email).like(pattern),
                func.lower(User.name).like(pattern),
            ))

        total = query.count()
        users = (
            query.order_by(User.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return total, users

    def set_suspended(self, db: Session, admin: Principal, user_id, suspended: bool) -> User:
        user = self._get_target(db, admin, user_id)
        previous = user.is_suspended
        user.is_suspended = suspended
        self._audit(db, admin, "user.suspend" if suspended else "user.reactivate", user, {
            "previous": previous,
            "suspended": suspended,
        })
        db.commit()
        db.refresh(user)

        logger.info(f"Admin {admin.id} set suspended={suspended} on user {user.id}")
        return user

    def set_role(self, db: Session, admin: Principal, user_id, role: Role) -> User:
        user = self._get_target(db, admin, user_id)
        previous = user.role
        user.role = role
        self._audit(db, admin, "user.role_change", user, {
            "previous": previous.value,
            "role": role.value,
        })
        db.commit()
        db.refresh(user)

        logger.info(f"Admin {admin.id} changed role of {user.id}: {previous.value} -> {role.value}")
        return user

    def subscription_stats(self, db: Session) -> Dict[str, Any]:
        now = utcnow()
        by_plan = {plan.value: 0 for plan in SubscriptionPlan}
        rows = (
            db.query(User.subscription_plan, func.count(User.id))
            .filter(User.subscription_plan.isnot(None))
            .group_by(User.subscription_plan)
            .all()
        )
        for plan, count in rows:
            by_plan[plan.value] = count

        trial_users = db.query(User).filter(
            User.subscription_plan.is_(None),
            User.trial_expiry.isnot(None),
        )
        return {
            "by_plan": by_plan,
            "active_trials": trial_users.filter(User.trial_expiry >= now).count(),
            "expired_trials": trial_users.filter(User.trial_expiry < now).count(),
            "paying_users": sum(by_plan.values()),
        }

    def override_subscription(
        self,
        db: Session,
        admin: Principal,
        user_id,
        plan: Optional[SubscriptionPlan],
        trial_expiry=None,
    ) -> User:
        user = self._get_target(db, admin, user_id)
        details = {
            "previous_plan": user.subscription_plan.value if user.subscription_plan else None,
            "plan": plan.value if plan else None,
        }
        user.subscription_plan = plan
        if trial_expiry is not None:
            details["previous_trial_expiry"] = user.trial_expiry.isoformat() if user.trial_expiry else None
            details["trial_expiry"] = trial_expiry.isoformat()
            user.trial_expiry = trial_expiry

        self._audit(db, admin, "subscription.override", user, details)
        db.commit()
        db.refresh(user)

        logger.info(f"Admin {admin.id} overrode subscription of {user.id}: {details['plan']}")
        return user

    def list_audit_logs(
        self,
        db: Session,
        action: Optional[str] = None,
        user_id=None,
        target_type: Optional[str] = None,
        page: int = 1,
        limit: int = 50,
    ) -> Tuple[int, List[AuditLog]]:
        query = db.query(AuditLog)
        if action:
            query = query.filter(AuditLog.action == action)
        if user_id:
            query = query.filter(AuditLog.user_id == user_id)
        if target_type:
            query = query.filter(AuditLog.target_type == target_type)

        total = query.count()
        logs = (
            query.order_by(AuditLog.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return total, logs

    def metrics(self, db: Session) -> Dict[str, Any]:
        users_by_role = {role.value: 0 for role in Role}
        for role, count in db.query(User.role, func.count(User.id)).group_by(User.role).all():
            users_by_role[role.value] = count

        return {
            "users_by_role": users_by_role,
            "verified_users": db.query(User).filter(User.is_email_verified.is_(True)).count(),
            "suspended_users": db.query(User).filter(User.is_suspended.is_(True)).count(),
            "quizzes": db.query(Quiz).count(),
            "live_quizzes": db.query(Quiz).filter(Quiz.is_live.is_(True)).count(),
            "groups": db.query(Group).count(),
            "active_sessions": db.query(ExamSession).filter(ExamSession.is_completed.is_(False)).count(),
            "submissions": db.query(Submission).count(),
        }


# Global instance
admin_service = AdminService()
