"""
User model - identity, credentials, verification and subscription state
"""
import enum
import uuid

from sqlalchemy import Boolean, Column, DateTime, Enum, Integer, String, Uuid

from app.database import Base, utcnow


class Role(str, enum.Enum):
    """Closed set of account roles"""
    ADMIN = "admin"
    CREATOR = "creator"
    STUDENT = "student"


class SubscriptionPlan(str, enum.Enum):
    """Paid plans; users without one are on trial or free"""
    BASIC = "basic"
    PRO = "pro"
    ENTERPRISE = "enterprise"


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class User(Base):
    """
    Users table - one row per account, never hard-deleted
    """
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    name = Column(String(255))
    role = Column(
        Enum(Role, name="user_role", values_callable=_enum_values),
        nullable=False,
        default=Role.STUDENT,
    )

    # Email verification
    is_email_verified = Column(Boolean, nullable=False, default=False)
    verification_token = Column(String(128), index=True)
    verification_token_expiry = Column(DateTime)

    # Password reset
    password_reset_token = Column(String(128), index=True)
    password_reset_expiry = Column(DateTime)

    # Subscription
    stripe_customer_id = Column(String(255), unique=True)
    subscription_plan = Column(
        Enum(SubscriptionPlan, name="subscription_plan", values_callable=_enum_values),
        nullable=True,
    )
    trial_expiry = Column(DateTime)

    is_suspended = Column(Boolean, nullable=False, default=False)
    # Bumped on logout / password reset; tokens carrying an older value are dead
    token_version = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"
