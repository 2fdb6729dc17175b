"""
Users Router

Account management endpoints.

Endpoints:
- POST /users - Register an account (ADMIN, TEACHER)
- PUT /users?id= - Toggle an account between ACTIVE and INACTIVE (ADMIN)
- POST /users/reset-password - Set a new password for the current user
- PUT /users/change-email - Change the current user's email (OTP required)
- POST /users/reset-password-link?email= - Email a password reset link (public)
- POST /users/{user_id}/reset-otp - Invalidate a user's pending OTP (ADMIN)

Role checks here repeat the route policy so each endpoint stays safe if the
policy table changes.
"""

import logging
from datetime import timedelta

from fastapi import APIRouter, Depends, Query, status
from pydantic import EmailStr
from sqlalchemy.ext.asyncio import AsyncSession

from daanbantayan.core.auth import (
    Principal,
    get_current_principal,
    get_password_hasher,
    get_token_signer,
    require_roles,
)
from daanbantayan.core.config import settings
from daanbantayan.core.database import get_db
from daanbantayan.core.security import PasswordHasher, TokenSigner
from daanbantayan.modules.otp.service import OtpService, get_otp_service
from daanbantayan.modules.users import service
from daanbantayan.modules.users.schemas import (
    ChangeEmailRequest,
    MessageResponse,
    PasswordResetRequest,
    UserCreate,
    UserResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register_user(
    data: UserCreate,
    actor: Principal = Depends(require_roles("ADMIN", "TEACHER")),
    db: AsyncSession = Depends(get_db),
    hasher: PasswordHasher = Depends(get_password_hasher),
) -> UserResponse:
    """
    Register a new account.

    Raises:
        403 FORBIDDEN: A TEACHER tried to create an ADMIN account
        409 USER_ALREADY_EXISTS: Email already registered
    """
    user = await service.register_user(db, data, actor, hasher)
    return UserResponse.model_validate(user)


@router.put("", response_model=MessageResponse)
async def update_status(
    user_id: str = Query(..., alias="id"),
    _admin: Principal = Depends(require_roles("ADMIN")),
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    """Toggle an account between ACTIVE and INACTIVE."""
    message = await service.toggle_status(db, user_id)
    return MessageResponse(message=message)


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(
    data: PasswordResetRequest,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    hasher: PasswordHasher = Depends(get_password_hasher),
) -> MessageResponse:
    message = await service.reset_password(db, principal.id, data.new_password, hasher)
    return MessageResponse(message=message)


@router.put("/change-email", response_model=MessageResponse)
async def change_email(
    data: ChangeEmailRequest,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    otp_service: OtpService = Depends(get_otp_service),
) -> MessageResponse:
    """
    Change the current user's email.

    Raises:
        400 OTP_INVALID: Code missing, expired or wrong
        409 USER_ALREADY_EXISTS: New email already registered
    """
    message = await service.change_email(db, principal.id, data.new_email, data.otp, otp_service)
    return MessageResponse(message=message)


@router.post("/reset-password-link", response_model=MessageResponse)
async def send_password_reset_link(
    email: EmailStr = Query(...),
    db: AsyncSession = Depends(get_db),
    signer: TokenSigner = Depends(get_token_signer),
) -> MessageResponse:
    message = await service.send_password_reset_link(
        db,
        email,
        signer,
        ttl=timedelta(seconds=settings.password_reset_ttl_seconds),
    )
    return MessageResponse(message=message)


@router.post("/{user_id}/reset-otp", response_model=MessageResponse)
async def reset_otp(
    user_id: str,
    _admin: Principal = Depends(require_roles("ADMIN")),
    otp_service: OtpService = Depends(get_otp_service),
) -> MessageResponse:
    message = await service.reset_otp(user_id, otp_service)
    return MessageResponse(message=message)
