"""
User Service Layer

Account operations that exist to serve authentication:

1. Registration by staff (ADMIN, or TEACHER for non-admin accounts)
2. Status toggle between ACTIVE and INACTIVE
3. Password reset, either by the signed-in user or through an emailed link
4. Email change gated by a one-time code
5. Credential-store lookups used by the authentication filter
"""

import logging
from datetime import timedelta
from sqlalchemy.ext.asyncio import AsyncSession

from daanbantayan.core.auth import Principal
from daanbantayan.core.database import async_session_maker
from daanbantayan.core.email import send_password_reset_email
from daanbantayan.core.exceptions import (
    ForbiddenError,
    UserAlreadyExistsError,
    UserNotFoundError,
)
from daanbantayan.core.security import PasswordHasher, TokenSigner
from daanbantayan.modules.otp.service import OtpService
from daanbantayan.modules.users.models import User, UserRole, UserStatus
from daanbantayan.modules.users.repository import UserRepository
from daanbantayan.modules.users.schemas import UserCreate

logger = logging.getLogger(__name__)


async def _get_user_or_raise(db: AsyncSession, user_id: str) -> User:
    user = await UserRepository.get_by_id(db, user_id)
    if user is None:
        raise UserNotFoundError("It seems that this user does not exist.")
    return user


async def register_user(
    db: AsyncSession,
    data: UserCreate,
    actor: Principal,
    hasher: PasswordHasher,
) -> User:
    """
    Create a new account.

    Args:
        db: Database session
        data: Registration payload
        actor: Principal performing the registration
        hasher: Password hasher

    Returns:
        The created user

    Raises:
        ForbiddenError: A TEACHER tried to create an ADMIN account
        UserAlreadyExistsError: The email is already registered
    """
    if data.role == UserRole.ADMIN and not actor.has_role(UserRole.ADMIN.value):
        logger.warning(f"{actor} attempted to create an ADMIN account")
        raise ForbiddenError("Only administrators can create administrator accounts.")

    if await UserRepository.email_exists(db, data.email):
        logger.warning(f"Registration rejected, email already in use: {data.email}")
        raise UserAlreadyExistsError(data.email)

    user = await UserRepository.create(
        db,
        email=data.email,
        password_hash=hasher.hash(data.password),
        role=data.role,
        first_name=data.first_name,
        last_name=data.last_name,
    )
    logger.info(f"{actor} registered user {user.id} ({user.role.value})")
    return user


async def toggle_status(db: AsyncSession, user_id: str) -> str:
    """
    Flip an account between ACTIVE and INACTIVE.

    Returns:
        Human-readable confirmation naming the new status
    """
    user = await _get_user_or_raise(db, user_id)
    new_status = UserStatus.INACTIVE if user.is_active else UserStatus.ACTIVE
    await UserRepository.set_status(db, user, new_status)
    return f"User set to {new_status.value}"


async def reset_password(
    db: AsyncSession,
    user_id: str,
    new_password: str,
    hasher: PasswordHasher,
) -> str:
    user = await _get_user_or_raise(db, user_id)
    await UserRepository.update_password(db, user, hasher.hash(new_password))
    return "Password has been changed."


async def change_email(
    db: AsyncSession,
    user_id: str,
    new_email: str,
    otp: str,
    otp_service: OtpService,
) -> str:
    """
    Change the account email after validating a one-time code.

    The code is checked first, so a wrong code burns it even when the new
    email would have been rejected anyway.

    Raises:
        OtpInvalidError: The code is missing, expired or wrong
        UserAlreadyExistsError: The new email belongs to another account
        UserNotFoundError: The account no longer exists
    """
    logger.info(f"Changing email for user: {user_id}")

    await otp_service.validate_otp(user_id, otp)

    if await UserRepository.email_exists(db, new_email):
        raise UserAlreadyExistsError(new_email)

    user = await _get_user_or_raise(db, user_id)
    await UserRepository.update_email(db, user, new_email)
    return "Email has been changed successfully."


async def send_password_reset_link(
    db: AsyncSession,
    email: str,
    signer: TokenSigner,
    ttl: timedelta,
) -> str:
    """
    Email a link to the frontend reset page carrying a short-lived access token.

    Raises:
        UserNotFoundError: No account has this email
        EmailDeliveryError: The email could not be sent
    """
    user = await UserRepository.get_by_email(db, email)
    if user is None:
        logger.warning(f"Password reset requested for unknown email: {email}")
        raise UserNotFoundError(f"No user found with email: {email}")

    token = signer.issue(str(user.id), user.role.value, ttl)
    await send_password_reset_email(
        user.email,
        token,
        expires_in_minutes=max(1, int(ttl.total_seconds()) // 60),
    )

    logger.info(f"Password reset link sent to: {user.email}")
    return "Password reset link has been sent to your email."


async def reset_otp(user_id: str, otp_service: OtpService) -> str:
    await otp_service.invalidate(user_id)
    return "OTP has been reset successfully."


async def load_user_for_auth(user_id: str) -> User | None:
    """Load a user for the authentication filter in a session of its own."""
    async with async_session_maker() as session:
        return await UserRepository.get_by_id(session, user_id)
