"""
Service Exceptions

Every error raised by the service layer derives from ``ServiceError`` and
carries a machine-readable ``error_code`` and an HTTP ``status_code``. The
handlers registered by ``register_exception_handlers`` turn them into the
structured body returned by every endpoint:

    {"code": "OTP_INVALID", "message": "OTP is invalid.", "status": 400, "timestamp": 1700000000000}
"""

import logging
import time
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ServiceError(Exception):
    """Base exception for service errors."""

    def __init__(self, message: str, error_code: str, status_code: int = 400):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        super().__init__(message)


class ValidationError(ServiceError):
    """Raised when input passes schema validation but is semantically invalid."""

    def __init__(self, message: str):
        super().__init__(
            message=message,
            error_code="VALIDATION_ERROR",
            status_code=status.HTTP_400_BAD_REQUEST,
        )


class UnauthorizedError(ServiceError):
    """Raised when an endpoint needs an authenticated principal and has none."""

    def __init__(self, message: str = "Authentication is required."):
        super().__init__(
            message=message,
            error_code="UNAUTHORIZED",
            status_code=status.HTTP_401_UNAUTHORIZED,
        )


class ForbiddenError(ServiceError):
    """Raised when the principal's role does not allow the operation."""

    def __init__(self, message: str = "You do not have permission to perform this action."):
        super().__init__(
            message=message,
            error_code="FORBIDDEN",
            status_code=status.HTTP_403_FORBIDDEN,
        )


class InvalidCredentialsError(ServiceError):
    """Raised when an email/password pair does not match a stored credential."""

    def __init__(self):
        super().__init__(
            message="Invalid email or password.",
            error_code="INVALID_CREDENTIALS",
            status_code=status.HTTP_401_UNAUTHORIZED,
        )


class AccountInactiveError(ServiceError):
    """Raised when an inactive account attempts to authenticate."""

    def __init__(self):
        super().__init__(
            message="Account is inactive. Please contact the administrator.",
            error_code="ACCOUNT_INACTIVE",
            status_code=status.HTTP_403_FORBIDDEN,
        )


class UserNotFoundError(ServiceError):
    """Raised when a user lookup by id or email finds nothing."""

    def __init__(self, message: str = "User not found."):
        super().__init__(
            message=message,
            error_code="USER_NOT_FOUND",
            status_code=status.HTTP_404_NOT_FOUND,
        )


class UserAlreadyExistsError(ServiceError):
    """Raised when an email address is already registered."""

    def __init__(self, email: str):
        super().__init__(
            message=f"Email '{email}' is already in use.",
            error_code="USER_ALREADY_EXISTS",
            status_code=status.HTTP_409_CONFLICT,
        )


class TooManyRequestsError(ServiceError):
    """Raised when a per-user request limit is exhausted."""

    def __init__(self, message: str, retry_after_seconds: int):
        self.retry_after_seconds = retry_after_seconds
        super().__init__(
            message=message,
            error_code="TOO_MANY_REQUESTS",
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        )


class OtpInvalidError(ServiceError):
    """Raised when a submitted OTP is missing, expired or wrong."""

    def __init__(self):
        super().__init__(
            message="OTP is invalid.",
            error_code="OTP_INVALID",
            status_code=status.HTTP_400_BAD_REQUEST,
        )


class EmailDeliveryError(ServiceError):
    """Raised when the email provider rejects or fails to send a message."""

    def __init__(self, to_email: str):
        super().__init__(
            message=f"Failed to send email to {to_email}.",
            error_code="EMAIL_DELIVERY_FAILED",
            status_code=status.HTTP_502_BAD_GATEWAY,
        )


class TokenError(ServiceError):
    """Base class for session token verification failures."""

    def __init__(self, message: str, error_code: str):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=status.HTTP_401_UNAUTHORIZED,
        )


class InvalidSignatureError(TokenError):
    def __init__(self):
        super().__init__("Token signature is invalid.", "INVALID_SIGNATURE")


class TokenExpiredError(TokenError):
    def __init__(self):
        super().__init__("Token has expired.", "TOKEN_EXPIRED")


class MalformedTokenError(TokenError):
    def __init__(self, message: str = "Token is malformed."):
        super().__init__(message, "MALFORMED_TOKEN")


def error_body(code: str, message: str, status_code: int) -> dict[str, Any]:
    """Build the structured error body shared by handlers and middleware."""
    return {
        "code": code,
        "message": message,
        "status": status_code,
        "timestamp": int(time.time() * 1000),
    }


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    """Map a ServiceError to its structured JSON response."""
    if exc.status_code >= 500:
        logger.error(f"{exc.error_code} on {request.method} {request.url.path}: {exc.message}")
    else:
        logger.info(f"{exc.error_code} on {request.method} {request.url.path}")

    headers: dict[str, str] = {}
    if isinstance(exc, TooManyRequestsError):
        headers["Retry-After"] = str(exc.retry_after_seconds)
    if exc.status_code == status.HTTP_401_UNAUTHORIZED:
        headers["WWW-Authenticate"] = "Bearer"

    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.error_code, exc.message, exc.status_code),
        headers=headers or None,
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report the first request validation problem as VALIDATION_ERROR."""
    errors = exc.errors()
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{location}: {first.get('msg', 'invalid value')}" if location else first["msg"]
    else:
        message = "Validation failed"

    logger.info(f"Validation failed on {request.method} {request.url.path}: {message}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body("VALIDATION_ERROR", message, status.HTTP_400_BAD_REQUEST),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last-resort handler: log with traceback, hide internals from the client."""
    logger.error(f"Unexpected error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body(
            "INTERNAL_ERROR",
            "Internal server error",
            status.HTTP_500_INTERNAL_SERVER_ERROR,
        ),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Attach the service error handlers to an application."""
    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)


__all__ = [
    "ServiceError",
    "ValidationError",
    "UnauthorizedError",
    "ForbiddenError",
    "InvalidCredentialsError",
    "AccountInactiveError",
    "UserNotFoundError",
    "UserAlreadyExistsError",
    "TooManyRequestsError",
    "OtpInvalidError",
    "EmailDeliveryError",
    "TokenError",
    "InvalidSignatureError",
    "TokenExpiredError",
    "MalformedTokenError",
    "error_body",
    "register_exception_handlers",
]
