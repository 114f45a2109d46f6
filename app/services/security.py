"""
Password hashing, random tokens and JWT issue/verify
"""
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import jwt
from passlib.context import CryptContext

from app.config import settings
from app.errors import AuthenticationError

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    if not password or not password_hash:
        return False
    return pwd_context.verify(password, password_hash)


def generate_token(nbytes: int = 32) -> str:
    """Random hex token for email verification and password reset links"""
    return secrets.token_hex(nbytes)


def _encode(claims: Dict[str, Any], secret: str, lifetime: timedelta) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        **claims,
        "iat": int(now.timestamp()),
        "exp": int((now + lifetime).timestamp()),
    }
    return jwt.encode(payload, secret, algorithm=settings.JWT_ALGORITHM)


def issue_access_token(user) -> str:
    """Short-lived bearer token carrying the user's id, email and role"""
    return _encode(
        {
            "sub": str(user.id),
            "email": user.email,
            "role": user.role.value,
            "ver": user.token_version,
            "type": ACCESS_TOKEN_TYPE,
        },
        settings.JWT_SECRET,
        timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    )


def issue_refresh_token(user) -> str:
    """Long-lived token, signed with its own secret, delivered as a cookie"""
    return _encode(
        {
            "sub": str(user.id),
            "ver": user.token_version,
            "type": REFRESH_TOKEN_TYPE,
        },
        settings.REFRESH_TOKEN_SECRET,
        timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
    )


def _decode(token: str, secret: str, expected_type: str) -> Dict[str, Any]:
    try:
        payload = jwt.decode(token, secret, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token has expired")
    except jwt.InvalidTokenError:
        raise AuthenticationError("Invalid token")

    if payload.get("type") != expected_type or "sub" not in payload:
        raise AuthenticationError("Invalid token")
    return payload


def decode_access_token(token: str) -> Dict[str, Any]:
    return _decode(token, settings.JWT_SECRET, ACCESS_TOKEN_TYPE)


def decode_refresh_token(token: str) -> Dict[str, Any]:
    return _decode(token, settings.REFRESH_TOKEN_SECRET, REFRESH_TOKEN_TYPE)
