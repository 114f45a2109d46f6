"""
Domain errors raised by services and rendered by the HTTP exception handler
"""
from fastapi import HTTPException, status


class ServiceError(HTTPException):
    """Base class: a failure with a fixed HTTP status and a readable message"""

    status_code = status.HTTP_400_BAD_REQUEST
    # Extra top-level fields merged into the error body
    extra = None

    def __init__(self, detail: str, headers: dict = None):
        super().__init__(status_code=self.status_code, detail=detail, headers=headers)


class BadRequestError(ServiceError):
    status_code = status.HTTP_400_BAD_REQUEST


class ConflictError(ServiceError):
    # Duplicate enrollment / assignment; reported as 400 like other bad input
    status_code = status.HTTP_400_BAD_REQUEST


class AuthenticationError(ServiceError):
    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, detail: str = "Authentication required"):
        super().__init__(detail, headers={"WWW-Authenticate": "Bearer"})


class EmailNotVerifiedError(AuthenticationError):
    extra = {"needs_verification": True}


class PermissionDeniedError(ServiceError):
    status_code = status.HTTP_403_FORBIDDEN


class SessionExpiredError(PermissionDeniedError):
    pass


class NotFoundError(ServiceError):
    status_code = status.HTTP_404_NOT_FOUND


class NotImplementedYetError(ServiceError):
    status_code = status.HTTP_501_NOT_IMPLEMENTED


class UpstreamError(ServiceError):
    status_code = status.HTTP_502_BAD_GATEWAY


class ServiceUnavailableError(ServiceError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class ConfigurationError(ServiceError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
