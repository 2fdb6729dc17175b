"""Authentication module."""

from daanbantayan.modules.auth.router import router
from daanbantayan.modules.auth.schemas import LoginRequest, LoginResponse, TokenResponse

__all__ = ["router", "LoginRequest", "LoginResponse", "TokenResponse"]
