"""
Authentication and account API endpoints
"""
from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request, Response
from sqlalchemy.orm import Session
import logging

from app.config import settings
from app.database import get_db
from app.dependencies import Principal, get_current_user
from app.schemas.auth import (
    EmailRequest,
    LoginRequest,
    MessageResponse,
    PasswordUpdate,
    ProfileUpdate,
    ProfileUpdateResponse,
    RegisterRequest,
    RegisterResponse,
    ResetPasswordRequest,
    TokenResponse,
    UserOut,
)
from app.services.auth_service import auth_service
from app.services.email_service import email_service
from app.services.security import issue_access_token, issue_refresh_token

router = APIRouter(prefix="/api/auth", tags=["auth"])
logger = logging.getLogger(__name__)

GENERIC_RESET_MESSAGE = "If an account exists for that email, a reset link has been sent"
GENERIC_RESEND_MESSAGE = "If an account exists for that email, a verification link has been sent"


def _set_refresh_cookie(response: Response, user) -> None:
    response.set_cookie(
        key=settings.REFRESH_COOKIE_NAME,
        value=issue_refresh_token(user),
        httponly=True,
        secure=settings.is_production,
        samesite="strict",
        max_age=settings.REFRESH_TOKEN_EXPIRE_DAYS * 24 * 60 * 60,
        path="/api/auth",
    )


def _token_response(message: str, user) -> TokenResponse:
    return TokenResponse(
        message=message,
        access_token=issue_access_token(user),
        user=UserOut.model_validate(user),
    )


@router.post("/register", response_model=RegisterResponse, status_code=201)
async def register(
    payload: RegisterRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    """
    Register a creator or student account

    - Email must be unique
    - A verification link is emailed; login is refused until it is used
    """
    user, token = auth_service.register(
        db, payload.email, payload.password, payload.role, payload.name
    )
    background_tasks.add_task(email_service.send_verification_email, user.email, token)

    return RegisterResponse(
        message="Registration successful. Please check your email to verify your account.",
        user_id=user.id,
        email_verification_sent=True,
    )


@router.get("/verify-email", response_model=MessageResponse)
async def verify_email(token: str = Query(..., min_length=1), db: Session = Depends(get_db)):
    auth_service.verify_email(db, token)
    return MessageResponse(message="Email verified successfully. You can now log in.")


@router.post("/resend-verification", response_model=MessageResponse)
async def resend_verification(
    payload: EmailRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    result = auth_service.resend_verification(db, payload.email)
    if result:
        user, token = result
        background_tasks.add_task(email_service.send_verification_email, user.email, token)
    return MessageResponse(message=GENERIC_RESEND_MESSAGE)


@router.post("/login", response_model=TokenResponse)
async def login(payload: LoginRequest, response: Response, db: Session = Depends(get_db)):
    """
    Exchange credentials for an access token

    The refresh token is set as an HTTP-only cookie.
    """
    user = auth_service.login(db, payload.email, payload.password)
    _set_refresh_cookie(response, user)
    return _token_response("Login successful", user)


@router.post("/refresh-token", response_model=TokenResponse)
async def refresh_token(request: Request, response: Response, db: Session = Depends(get_db)):
    user = auth_service.refresh(db, request.cookies.get(settings.REFRESH_COOKIE_NAME))
    _set_refresh_cookie(response, user)
    return _token_response("Token refreshed", user)


@router.post("/logout", response_model=MessageResponse)
async def logout(
    response: Response,
    user: Principal = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    auth_service.logout(db, user.id)
    response.delete_cookie(settings.REFRESH_COOKIE_NAME, path="/api/auth")
    return MessageResponse(message="Logged out successfully")


@router.post("/forgot-password", response_model=MessageResponse)
async def forgot_password(
    payload: EmailRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    # Same answer for known and unknown emails
    result = auth_service.forgot_password(db, payload.email)
    if result:
        user, token = result
        background_tasks.add_task(email_service.send_password_reset_email, user.email, token)
    return MessageResponse(message=GENERIC_RESET_MESSAGE)


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(payload: ResetPasswordRequest, db: Session = Depends(get_db)):
    auth_service.reset_password(db, payload.token, payload.new_password)
    return MessageResponse(message="Password has been reset. Please log in again.")


@router.get("/me", response_model=UserOut)
async def me(user: Principal = Depends(get_current_user), db: Session = Depends(get_db)):
    return UserOut.model_validate(auth_service.get_profile(db, user.id))


@router.put("/profile", response_model=ProfileUpdateResponse)
async def update_profile(
    payload: ProfileUpdate,
    background_tasks: BackgroundTasks,
    user: Principal = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Update name and/or email

    Changing the email requires verifying the new address.
    """
    updated, token = auth_service.update_profile(db, user.id, name=payload.name, email=payload.email)
    message = "Profile updated"
    if token:
        background_tasks.add_task(email_service.send_verification_email, updated.email, token)
        message = "Profile updated. Please verify your new email address."
    return ProfileUpdateResponse(message=message, user=UserOut.model_validate(updated))


@router.put("/password", response_model=MessageResponse)
async def change_password(
    payload: PasswordUpdate,
    user: Principal = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    auth_service.change_password(db, user.id, payload.current_password, payload.new_password)
    return MessageResponse(message="Password updated successfully")
