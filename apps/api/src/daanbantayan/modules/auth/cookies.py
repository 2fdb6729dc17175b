"""
Session cookies.

``jwt`` carries the access token and ``refresh_token`` the refresh token.
``otp_token`` holds the provisional token of an OTP request, kept apart so
it never replaces a signed-in session. All are http-only and scoped to ``/``.
"""

from fastapi import Response

from daanbantayan.core.auth import ACCESS_COOKIE_NAME, OTP_COOKIE_NAME, REFRESH_COOKIE_NAME
from daanbantayan.core.config import settings


def _set(response: Response, name: str, value: str, max_age: int) -> None:
    response.set_cookie(
        key=name,
        value=value,
        max_age=max_age,
        path="/",
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
    )


def set_access_cookie(response: Response, token: str) -> None:
    _set(response, ACCESS_COOKIE_NAME, token, settings.access_token_ttl_seconds)


def set_refresh_cookie(response: Response, token: str) -> None:
    _set(response, REFRESH_COOKIE_NAME, token, settings.refresh_token_ttl_seconds)


def set_otp_cookie(response: Response, token: str, max_age: int) -> None:
    _set(response, OTP_COOKIE_NAME, token, max_age)


def expire_otp_cookie(response: Response) -> None:
    _set(response, OTP_COOKIE_NAME, "", 0)


def expire_session_cookies(response: Response) -> None:
    """Tell the client to drop both session cookies."""
    for name in (ACCESS_COOKIE_NAME, REFRESH_COOKIE_NAME):
        _set(response, name, "", 0)
