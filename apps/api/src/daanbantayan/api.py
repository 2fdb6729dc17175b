from fastapi import APIRouter

from daanbantayan.modules.auth import router as auth_router
from daanbantayan.modules.otp.router import router as otp_router
from daanbantayan.modules.users.router import router as users_router

api_router = APIRouter()

api_router.include_router(auth_router, prefix="/auth", tags=["Authentication"])

api_router.include_router(otp_router, prefix="/otp", tags=["OTP"])

api_router.include_router(users_router, prefix="/users", tags=["Users"])
