"""
Account lifecycle: registration, verification, login, recovery and profile
"""
import logging
import uuid
from datetime import timedelta
from typing import Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.config import settings
from app.database import utcnow
from app.errors import (
    AuthenticationError,
    BadRequestError,
    EmailNotVerifiedError,
    NotFoundError,
    PermissionDeniedError,
)
from app.models import Role, User
from app.services.security import (
    decode_refresh_token,
    generate_token,
    hash_password,
    verify_password,
)

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    return email.strip().lower()


class AuthService:
    """Account operations; every method commits its own unit of work"""

    def _get_user(self, db: Session, user_id) -> User:
        user = db.query(User).filter(User.id == user_id).first()
        if not user:
            raise NotFoundError("User not found")
        return user

    def _find_by_email(self, db: Session, email: str) -> Optional[User]:
        return db.query(User).filter(User.email == normalize_email(email)).first()

    def _issue_verification(self, user: User) -> str:
        token = generate_token()
        user.verification_token = token
        user.verification_token_expiry = utcnow() + timedelta(hours=settings.VERIFICATION_TOKEN_HOURS)
        return token

    def register(
        self,
        db: Session,
        email: str,
        password: str,
        role: str,
        name: Optional[str] = None,
    ) -> Tuple[User, str]:
        """
        Create an unverified account with a trial period

        Returns:
            Tuple of (user, verification_token)
        """
        email = normalize_email(email)
        if self._find_by_email(db, email):
            raise BadRequestError("User already exists")

        now = utcnow()
        user = User(
            email=email,
            password_hash=hash_password(password),
            name=name,
            role=Role(role),
            trial_expiry=now + timedelta(days=settings.TRIAL_DAYS),
        )
        token = self._issue_verification(user)
        db.add(user)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise BadRequestError("User already exists")
        db.refresh(user)

        logger.info(f"User registered: {user.id} ({user.role.value})")
        return user, token

    def verify_email(self, db: Session, token: str) -> User:
        user = db.query(User).filter(User.verification_token == token).first()
        if (
            not token
            or not user
            or not user.verification_token_expiry
            or user.verification_token_expiry < utcnow()
        ):
            raise BadRequestError("Invalid or expired verification token")

        user.is_email_verified = True
        user.verification_token = None
        user.verification_token_expiry = None
        db.commit()

        logger.info(f"Email verified for user {user.id}")
        return user

    def resend_verification(self, db: Session, email: str) -> Optional[Tuple[User, str]]:
        """Rotate the verification token; None for unknown addresses"""
        user = self._find_by_email(db, email)
        if not user:
            return None
        if user.is_email_verified:
            raise BadRequestError("Email is already verified")

        token = self._issue_verification(user)
        db.commit()
        return user, token

    def login(self, db: Session, email: str, password: str) -> User:
        user = self._find_by_email(db, email)
        if not user or not verify_password(password, user.password_hash):
            logger.info("Login failed: bad credentials")
            raise AuthenticationError("Invalid email or password")

        if not user.is_email_verified:
            raise EmailNotVerifiedError("Please verify your email before logging in")

        if user.is_suspended:
            raise PermissionDeniedError("Account suspended")

        logger.info(f"User logged in: {user.id}")
        return user

    def refresh(self, db: Session, refresh_token: Optional[str]) -> User:
        """Resolve a refresh token to a live user or fail with 401"""
        if not refresh_token:
            raise AuthenticationError("Refresh token missing")

        payload = decode_refresh_token(refresh_token)
        user = db.query(User).filter(User.id == _parse_uuid(payload["sub"])).first()
        if not user or user.token_version != payload.get("ver"):
            raise AuthenticationError("Invalid refresh token")
        if user.is_suspended:
            raise PermissionDeniedError("Account suspended")
        return user

    def logout(self, db: Session, user_id) -> None:
        """Revoke every outstanding access and refresh token"""
        user = self._get_user(db, user_id)
        user.token_version = (user.token_version or 0) + 1
        db.commit()
        logger.info(f"User logged out: {user.id}")

    def forgot_password(self, db: Session, email: str) -> Optional[Tuple[User, str]]:
        user = self._find_by_email(db, email)
        if not user:
            return None

        token = generate_token()
        user.password_reset_token = token
        user.password_reset_expiry = utcnow() + timedelta(minutes=settings.PASSWORD_RESET_MINUTES)
        db.commit()

        logger.info(f"Password reset requested for user {user.id}")
        return user, token

    def reset_password(self, db: Session, token: str, new_password: str) -> User:
        user = db.query(User).filter(User.password_reset_token == token).first()
        if (
            not token
            or not user
            or not user.password_reset_expiry
            or user.password_reset_expiry < utcnow()
        ):
            raise BadRequestError("Invalid or expired reset token")

        user.password_hash = hash_password(new_password)
        user.password_reset_token = None
        user.password_reset_expiry = None
        user.token_version = (user.token_version or 0) + 1
        db.commit()

        logger.info(f"Password reset for user {user.id}")
        return user

    def get_profile(self, db: Session, user_id) -> User:
        return self._get_user(db, user_id)

    def update_profile(
        self,
        db: Session,
        user_id,
        name: Optional[str] = None,
        email: Optional[str] = None,
    ) -> Tuple[User, Optional[str]]:
        """
        Update display name and/or email

        Changing the email clears verification and issues a new token.

        Returns:
            Tuple of (user, verification_token or None)
        """
        user = self._get_user(db, user_id)
        token = None

        if name is not None:
            user.name = name

        if email is not None and normalize_email(email) != user.email:
            email = normalize_email(email)
            if self._find_by_email(db, email):
                raise BadRequestError("Email is already in use")
            user.email = email
            user.is_email_verified = False
            token = self._issue_verification(user)

        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise BadRequestError("Email is already in use")
        db.refresh(user)
        return user, token

    def change_password(self, db: Session, user_id, current_password: str, new_password: str) -> None:
        user = self._get_user(db, user_id)
        if not verify_password(current_password, user.password_hash):
            raise AuthenticationError("Current password is incorrect")

        user.password_hash = hash_password(new_password)
        db.commit()
        logger.info(f"Password changed for user {user.id}")

    def ensure_admin(self, db: Session) -> Optional[User]:
        """Create the configured administrator account if it does not exist"""
        if not settings.ADMIN_EMAIL or not settings.ADMIN_PASSWORD:
            return None

        email = normalize_email(settings.ADMIN_EMAIL)
        existing = self._find_by_email(db, email)
        if existing:
            return existing

        admin = User(
            email=email,
            password_hash=hash_password(settings.ADMIN_PASSWORD),
            name="Administrator",
            role=Role.ADMIN,
            is_email_verified=True,
        )
        db.add(admin)
        db.commit()
        logger.info(f"Bootstrap admin created: {admin.id}")
        return admin


def _parse_uuid(value):
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise AuthenticationError("Invalid refresh token")


# Global instance
auth_service = AuthService()
