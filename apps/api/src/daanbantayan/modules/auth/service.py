"""
Authentication Service Layer

Credential checks and session token issuance for the login, refresh and
current-user endpoints. Sessions are stateless: nothing is stored server-side
and logout only clears cookies.
"""

import logging
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from daanbantayan.core.exceptions import (
    AccountInactiveError,
    InvalidCredentialsError,
    UnauthorizedError,
    UserNotFoundError,
)
from daanbantayan.core.security import (
    ACCESS_TOKEN_TYPE,
    REFRESH_TOKEN_TYPE,
    PasswordHasher,
    TokenSigner,
)
from daanbantayan.modules.users.models import User
from daanbantayan.modules.users.repository import UserRepository

logger = logging.getLogger(__name__)


async def authenticate(
    db: AsyncSession,
    email: str,
    password: str,
    hasher: PasswordHasher,
) -> User:
    """
    Check an email/password pair.

    Raises:
        InvalidCredentialsError: Unknown email or wrong password
        AccountInactiveError: Credentials are right but the account is INACTIVE
    """
    user = await UserRepository.get_by_email(db, email)

    if user is None:
        logger.warning(f"Login attempt for non-existent email: {email}")
        raise InvalidCredentialsError()

    if not hasher.verify(password, user.password_hash):
        logger.warning(f"Invalid password for user: {email}")
        raise InvalidCredentialsError()

    if not user.is_active:
        logger.warning(f"Login attempt for inactive account: {email}")
        raise AccountInactiveError()

    return user


def issue_session_tokens(
    user: User,
    signer: TokenSigner,
    access_ttl: timedelta,
    refresh_ttl: timedelta,
) -> tuple[str, str]:
    """Return an (access, refresh) token pair for ``user``."""
    subject = str(user.id)
    role = user.role.value
    access_token = signer.issue(
        subject,
        role,
        access_ttl,
        extra_claims={"email": user.email},
        token_type=ACCESS_TOKEN_TYPE,
    )
    refresh_token = signer.issue(subject, role, refresh_ttl, token_type=REFRESH_TOKEN_TYPE)
    return access_token, refresh_token


async def refresh_session(
    db: AsyncSession,
    refresh_token: str | None,
    signer: TokenSigner,
    access_ttl: timedelta,
) -> tuple[User, str]:
    """
    Exchange a refresh token for a new access token.

    The account is reloaded so role changes and deactivations apply.

    Raises:
        UnauthorizedError: No refresh token, or its user no longer exists
        TokenError: The refresh token is invalid, expired or not a refresh token
        AccountInactiveError: The account is INACTIVE
    """
    if not refresh_token:
        raise UnauthorizedError("Refresh token missing.")

    claims = signer.verify(refresh_token, expected_type=REFRESH_TOKEN_TYPE)

    user = await UserRepository.get_by_id(db, claims.subject)
    if user is None:
        logger.warning(f"Refresh token for non-existent user: {claims.subject}")
        raise UnauthorizedError("Refresh token is no longer valid.")
    if not user.is_active:
        logger.warning(f"Refresh attempt for inactive account: {user.email}")
        raise AccountInactiveError()

    access_token = signer.issue(
        str(user.id),
        user.role.value,
        access_ttl,
        extra_claims={"email": user.email},
    )
    logger.info(f"Access token refreshed for user: {user.email}")
    return user, access_token


async def get_user(db: AsyncSession, user_id: str) -> User:
    user = await UserRepository.get_by_id(db, user_id)
    if user is None:
        raise UserNotFoundError()
    return user
