"""
Outbound email: verification, password reset, exam notifications
Sent through fastapi-mail when SMTP is configured, otherwise written to the log
"""
import logging
from datetime import datetime
from typing import Optional

from fastapi_mail import ConnectionConfig, FastMail, MessageSchema, MessageType
from fastapi_mail.errors import ConnectionErrors

from app.config import settings

logger = logging.getLogger(__name__)


def build_mail_config() -> ConnectionConfig:
    """SMTP connection settings for FastMail"""
    return ConnectionConfig(
        MAIL_USERNAME=settings.SMTP_USERNAME or "",
        MAIL_PASSWORD=settings.SMTP_PASSWORD or "",
        MAIL_FROM=settings.EMAIL_FROM,
        MAIL_FROM_NAME=settings.APP_NAME,
        MAIL_SERVER=settings.SMTP_HOST,
        MAIL_PORT=settings.SMTP_PORT,
        MAIL_STARTTLS=settings.SMTP_USE_TLS,
        MAIL_SSL_TLS=False,
        USE_CREDENTIALS=bool(settings.SMTP_USERNAME),
        VALIDATE_CERTS=True,
    )


class EmailService:
    """Mail sender for background tasks; delivery failures never propagate to the caller"""

    def __init__(self):
        self.mailer: Optional[FastMail] = None
        if not settings.SMTP_HOST:
            logger.warning("SMTP_HOST not set. Emails will be logged instead of sent.")
            return
        self.mailer = FastMail(build_mail_config())

    @property
    def enabled(self) -> bool:
        return self.mailer is not None

    async def send(self, to: str, subject: str, body: str) -> bool:
        if not self.enabled:
            logger.info(f"Email (not sent) to={to} subject={subject!r}")
            logger.debug(body)
            return False

        message = MessageSchema(
            subject=subject,
            recipients=[to],
            body=body,
            subtype=MessageType.plain,
        )
        try:
            await self.mailer.send_message(message)
        except ConnectionErrors as e:
            logger.error(f"Email sending failed for {to}: {str(e)}")
            return False

        logger.info(f"Email sent to {to}: {subject!r}")
        return True

    async def send_verification_email(self, to: str, token: str) -> bool:
        link = f"{settings.FRONTEND_URL}/verify-email?token={token}"
        body = (
            "Welcome!\n\n"
            f"Please verify your email address by opening the link below:\n{link}\n\n"
            f"This link is valid for {settings.VERIFICATION_TOKEN_HOURS} hours."
        )
        return await self.send(to, "Verify your email address", body)

    async def send_password_reset_email(self, to: str, token: str) -> bool:
        link = f"{settings.FRONTEND_URL}/reset-password?token={token}"
        body = (
            f"Click the link to reset your password:\n{link}\n\n"
            f"This link is valid for {settings.PASSWORD_RESET_MINUTES} minutes. "
            "If you did not request a reset you can ignore this message."
        )
        return await self.send(to, "Reset your password", body)

    async def send_exam_completion_notification(
        self,
        to: str,
        student_email: str,
        quiz_title: str,
        quiz_id: str,
        submitted_at: datetime,
    ) -> bool:
        link = f"{settings.FRONTEND_URL}/creator/exams/{quiz_id}/submissions"
        body = (
            f"{student_email} submitted \"{quiz_title}\" at "
            f"{submitted_at.strftime('%Y-%m-%d %H:%M')} UTC.\n\n"
            f"Review submissions: {link}"
        )
        return await self.send(to, f"New submission: {quiz_title}", body)

    async def send_exam_results(
        self,
        to: str,
        quiz_title: str,
        quiz_id: str,
        total_score: float,
        max_score: float,
        feedback: Optional[str] = None,
    ) -> bool:
        link = f"{settings.FRONTEND_URL}/student/results/{quiz_id}"
        body = f"Your result for \"{quiz_title}\": {total_score:g}/{max_score:g}\n"
        if feedback:
            body += f"\nFeedback: {feedback}\n"
        body += f"\nView details: {link}"
        return await self.send(to, f"Results: {quiz_title}", body)


# Global instance
email_service = EmailService()
