"""
OTP Router

Endpoints:
- POST /otp?email= - Email a one-time code and set the provisional ``otp_token`` cookie
- POST /otp/verification?otp= - Check a code for the user named by that cookie

Both are public in the route policy. The provisional token is an
``otp_pending`` token: verification accepts it, but the authentication filter
does not, so requesting a code never grants a session.
"""

import logging

from fastapi import APIRouter, Depends, Query, Response
from pydantic import EmailStr
from sqlalchemy.ext.asyncio import AsyncSession

from daanbantayan.core.auth import get_otp_pending_subject
from daanbantayan.core.database import get_db
from daanbantayan.modules.auth.cookies import expire_otp_cookie, set_otp_cookie
from daanbantayan.modules.otp.service import OtpService, get_otp_service
from daanbantayan.modules.users.schemas import MessageResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=MessageResponse)
async def request_otp(
    response: Response,
    email: EmailStr = Query(...),
    db: AsyncSession = Depends(get_db),
    otp_service: OtpService = Depends(get_otp_service),
) -> MessageResponse:
    """
    Send a one-time code to ``email``.

    Raises:
        404 USER_NOT_FOUND: No account has this email
        429 TOO_MANY_REQUESTS: Request limit for the window used up
        502 EMAIL_DELIVERY_FAILED: The code could not be emailed
    """
    token = await otp_service.generate_otp(db, email)
    set_otp_cookie(response, token, int(otp_service.pending_token_ttl.total_seconds()))
    return MessageResponse(message="OTP has been sent to your email")


@router.post("/verification", response_model=MessageResponse)
async def verify_otp(
    response: Response,
    otp: str = Query(..., min_length=1, max_length=12),
    user_id: str = Depends(get_otp_pending_subject),
    otp_service: OtpService = Depends(get_otp_service),
) -> MessageResponse:
    """
    Raises:
        400 OTP_INVALID: Code missing, expired or wrong
        401 UNAUTHORIZED: No provisional token from an OTP request
    """
    await otp_service.validate_otp(user_id, otp)
    expire_otp_cookie(response)
    return MessageResponse(message="OTP valid")
