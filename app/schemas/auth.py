"""
Pydantic schemas for registration, login and account management
"""
import re
from datetime import datetime
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, field_validator

from app.models import Role, SubscriptionPlan

RESET_PASSWORD_PATTERN = re.compile(r"^(?=.*[0-9])(?=.*[!@#$%^&*]).{8,}$")


class MessageResponse(BaseModel):
    message: str


class RegisterRequest(BaseModel):
    """Self-service sign up; admins are provisioned, never self-registered"""
    email: EmailStr
    password: str = Field(..., min_length=8, description="At least 8 characters")
    role: Literal["creator", "student"]
    name: Optional[str] = Field(None, max_length=255)


class RegisterResponse(BaseModel):
    message: str
    user_id: UUID
    email_verification_sent: bool


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class UserOut(BaseModel):
    """Public view of the caller's own account"""
    id: UUID
    email: str
    name: Optional[str] = None
    role: Role
    subscription_plan: Optional[SubscriptionPlan] = None
    is_email_verified: bool
    trial_expiry: Optional[datetime] = None

    class Config:
        from_attributes = True


class TokenResponse(BaseModel):
    message: str
    access_token: str
    token_type: str = "bearer"
    user: UserOut


class EmailRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str = Field(..., min_length=1)
    new_password: str

    @field_validator("new_password")
    @classmethod
    def strong_password(cls, value: str) -> str:
        if not RESET_PASSWORD_PATTERN.match(value):
            raise ValueError(
                "Password must be at least 8 characters with at least one number "
                "and one special character"
            )
        return value


class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=255)
    email: Optional[EmailStr] = None


class ProfileUpdateResponse(BaseModel):
    message: str
    user: UserOut


class PasswordUpdate(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8)
