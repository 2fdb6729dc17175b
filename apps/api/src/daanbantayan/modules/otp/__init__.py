"""
OTP module - One-time email codes with per-user request limits.
"""

from daanbantayan.modules.otp.service import OtpService, get_otp_service
from daanbantayan.modules.otp.store import ExpiringCache, MemoryCache, OtpStore, RedisCache

__all__ = [
    "ExpiringCache",
    "MemoryCache",
    "OtpService",
    "OtpStore",
    "RedisCache",
    "get_otp_service",
]
