"""
Authentication Router

Endpoints:
- POST /auth/session - Log in with email and password
- POST /auth/refresh - Exchange the refresh_token cookie for a new access token
- POST /auth/logout - Clear the session cookies
- GET /auth/me - Current user's account
"""

import logging
from datetime import timedelta

from fastapi import APIRouter, Cookie, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from daanbantayan.core.auth import (
    REFRESH_COOKIE_NAME,
    Principal,
    get_current_principal,
    get_password_hasher,
    get_token_signer,
)
from daanbantayan.core.config import settings
from daanbantayan.core.database import get_db
from daanbantayan.core.security import PasswordHasher, TokenSigner
from daanbantayan.modules.auth import service
from daanbantayan.modules.auth.cookies import (
    expire_session_cookies,
    set_access_cookie,
    set_refresh_cookie,
)
from daanbantayan.modules.auth.schemas import LoginRequest, LoginResponse, TokenResponse
from daanbantayan.modules.users.schemas import MessageResponse, UserResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/session", response_model=LoginResponse)
async def login(
    credentials: LoginRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
    hasher: PasswordHasher = Depends(get_password_hasher),
    signer: TokenSigner = Depends(get_token_signer),
) -> LoginResponse:
    """
    Authenticate user and return session tokens.

    Tokens are returned in the body and set as http-only cookies.

    Raises:
        401 INVALID_CREDENTIALS: Unknown email or wrong password
        403 ACCOUNT_INACTIVE: Account is INACTIVE
    """
    expire_session_cookies(response)

    user = await service.authenticate(db, credentials.email, credentials.password, hasher)
    access_token, refresh_token = service.issue_session_tokens(
        user,
        signer,
        access_ttl=timedelta(seconds=settings.access_token_ttl_seconds),
        refresh_ttl=timedelta(seconds=settings.refresh_token_ttl_seconds),
    )

    set_access_cookie(response, access_token)
    set_refresh_cookie(response, refresh_token)

    logger.info(f"User logged in: {user.email} (role: {user.role.value})")

    return LoginResponse(
        access_token=access_token,
        refresh_token=refresh_token,
        token_type="bearer",
        user=UserResponse.model_validate(user),
    )


@router.post("/refresh", response_model=TokenResponse)
async def refresh(
    response: Response,
    refresh_token: str | None = Cookie(default=None, alias=REFRESH_COOKIE_NAME),
    db: AsyncSession = Depends(get_db),
    signer: TokenSigner = Depends(get_token_signer),
) -> TokenResponse:
    _user, access_token = await service.refresh_session(
        db,
        refresh_token,
        signer,
        access_ttl=timedelta(seconds=settings.access_token_ttl_seconds),
    )
    set_access_cookie(response, access_token)
    return TokenResponse(access_token=access_token)


@router.post("/logout", response_model=MessageResponse)
async def logout(response: Response) -> MessageResponse:
    expire_session_cookies(response)
    return MessageResponse(message="Logged out successfully")


@router.get("/me", response_model=UserResponse)
async def me(
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    user = await service.get_user(db, principal.id)
    return UserResponse.model_validate(user)
