"""
Authentication and Authorization Module

Per-request authentication filter, route policy enforcement and the FastAPI
dependencies that expose the authenticated principal to endpoints.

Request flow:
1. ``AuthenticationMiddleware`` extracts a token from the ``Authorization:
   Bearer`` header, falling back to the ``jwt`` cookie
2. The token is verified as an access token; any failure leaves the request
   anonymous
3. The user is reloaded from the credential store so deactivations and role
   changes take effect on the next request; missing or inactive accounts
   leave the request anonymous
4. The principal is attached to ``request.state.principal``
5. The route policy decides: 401 for anonymous requests on protected routes,
   403 when the principal's role is not allowed

Authentication itself never rejects a request; only the policy does.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

from fastapi import Depends, Request, status
from fastapi.responses import JSONResponse
from starlette.types import ASGIApp, Receive, Scope, Send

from daanbantayan.core.exceptions import (
    ForbiddenError,
    TokenError,
    UnauthorizedError,
    error_body,
)
from daanbantayan.core.policy import DEFAULT_POLICY, Access, RoutePolicy
from daanbantayan.core.security import (
    ACCESS_TOKEN_TYPE,
    OTP_PENDING_TOKEN_TYPE,
    PasswordHasher,
    TokenSigner,
)

logger = logging.getLogger(__name__)

ACCESS_COOKIE_NAME = "jwt"
REFRESH_COOKIE_NAME = "refresh_token"
OTP_COOKIE_NAME = "otp_token"


class AuthUser(Protocol):
    """What the filter needs from a credential store record."""

    id: Any
    email: str
    role: Any

    @property
    def is_active(self) -> bool: ...


UserLoader = Callable[[str], Awaitable[AuthUser | None]]


@dataclass(frozen=True)
class Principal:
    """
    The authenticated identity of a request.

    Attributes:
        id: User's unique identifier
        email: User's email address
        role: Upper-case role name (ADMIN, TEACHER, ADVISER, STUDENT)
    """

    id: str
    email: str
    role: str

    @property
    def authorities(self) -> list[str]:
        return [f"ROLE_{self.role}"]

    def has_role(self, *roles: str) -> bool:
        return self.role in {r.upper() for r in roles}

    def __str__(self) -> str:
        return f"Principal(id={self.id}, email={self.email}, role={self.role})"


def _role_name(role: Any) -> str:
    value = role.value if isinstance(role, Enum) else role
    return str(value).upper()


def _header_token(request: Request) -> str | None:
    header = request.headers.get("authorization")
    if header and header[:7].lower() == "bearer ":
        return header[7:].strip() or None
    return None


def _cookie_token(request: Request, cookie_name: str) -> str | None:
    for name, value in request.cookies.items():
        if name.lower() == cookie_name and value:
            return value
    return None


def extract_bearer_token(request: Request) -> str | None:
    """
    Return the raw token carried by a request, if any.

    The ``Authorization: Bearer`` header wins; otherwise the ``jwt`` cookie is
    used (its name matched case-insensitively).
    """
    return _header_token(request) or _cookie_token(request, ACCESS_COOKIE_NAME)


async def authenticate_request(
    request: Request,
    signer: TokenSigner | None,
    user_loader: UserLoader,
) -> Principal | None:
    """
    Resolve the principal of a request. Never raises.

    Returns:
        Principal for a valid access token of an existing ACTIVE account,
        otherwise None (anonymous)
    """
    token = extract_bearer_token(request)
    if token is None or signer is None:
        return None

    try:
        claims = signer.verify(token, expected_type=ACCESS_TOKEN_TYPE)
    except TokenError as e:
        logger.info(f"Rejected token on {request.method} {request.url.path}: {e.error_code}")
        return None

    try:
        user = await user_loader(claims.subject)
    except Exception as e:
        logger.error(f"Failed to load user {claims.subject} during authentication: {e}")
        return None

    if user is None:
        logger.warning(f"Token subject {claims.subject} no longer exists")
        return None
    if not user.is_active:
        logger.warning(f"Token presented for inactive account {claims.subject}")
        return None

    return Principal(id=str(user.id), email=user.email, role=_role_name(user.role))


def _denial(access: Access) -> JSONResponse:
    if access is Access.UNAUTHENTICATED:
        return JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED,
            content=error_body(
                "UNAUTHORIZED",
                "Authentication is required.",
                status.HTTP_401_UNAUTHORIZED,
            ),
            headers={"WWW-Authenticate": "Bearer"},
        )
    return JSONResponse(
        status_code=status.HTTP_403_FORBIDDEN,
        content=error_body(
            "FORBIDDEN",
            "You do not have permission to perform this action.",
            status.HTTP_403_FORBIDDEN,
        ),
    )


class AuthenticationMiddleware:
    """
    Raw ASGI middleware running the authentication filter and route policy.

    The token signer is read from ``app.state.token_signer`` so it can be built
    during startup, after configuration has been validated.
    """

    def __init__(
        self,
        app: ASGIApp,
        user_loader: UserLoader,
        policy: RoutePolicy = DEFAULT_POLICY,
    ):
        self.app = app
        self.user_loader = user_loader
        self.policy = policy

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return

        request = Request(scope)
        signer = getattr(request.app.state, "token_signer", None)
        principal = await authenticate_request(request, signer, self.user_loader)
        request.state.principal = principal

        access = self.policy.evaluate(
            request.method,
            request.url.path,
            principal.role if principal else None,
        )
        if access is not Access.ALLOW:
            who = str(principal) if principal else "anonymous"
            logger.warning(f"Access {access.value} for {who} on {request.method} {request.url.path}")
            await _denial(access)(scope, receive, send)
            return

        await self.app(scope, receive, send)


# ============================================================================
# DEPENDENCIES
# ============================================================================


async def get_optional_principal(request: Request) -> Principal | None:
    """Principal attached by the middleware, or None for anonymous requests."""
    return getattr(request.state, "principal", None)


async def get_current_principal(
    principal: Principal | None = Depends(get_optional_principal),
) -> Principal:
    """
    FastAPI dependency returning the authenticated principal.

    Usage:
        @router.get("/me")
        async def me(principal: Principal = Depends(get_current_principal)):
            ...

    Raises:
        UnauthorizedError: If the request is anonymous
    """
    if principal is None:
        raise UnauthorizedError()
    return principal


def require_roles(*roles: str) -> Callable[..., Awaitable[Principal]]:
    """
    Dependency factory restricting an endpoint to the given roles.

    Raises:
        UnauthorizedError: If the request is anonymous
        ForbiddenError: If the principal's role is not in ``roles``
    """

    async def dependency(
        principal: Principal = Depends(get_current_principal),
    ) -> Principal:
        if not principal.has_role(*roles):
            logger.warning(
                f"Access denied: {principal} has role '{principal.role}', "
                f"but one of {sorted(r.upper() for r in roles)} is required"
            )
            raise ForbiddenError()
        return principal

    return dependency


async def get_otp_pending_subject(request: Request) -> str:
    """
    User id carried by the provisional token of an OTP request.

    Only ``otp_pending`` tokens are accepted. The ``otp_token`` cookie is
    read first so a signed-in client sending its session bearer header can
    still verify. These tokens never authenticate any other endpoint.

    Raises:
        UnauthorizedError: No pending token, or it is invalid or expired
    """
    token = _cookie_token(request, OTP_COOKIE_NAME) or _header_token(request)
    if token is None:
        raise UnauthorizedError("No pending OTP verification.")

    try:
        claims = request.app.state.token_signer.verify(
            token, expected_type=OTP_PENDING_TOKEN_TYPE
        )
    except TokenError as e:
        logger.info(f"Rejected OTP pending token: {e.error_code}")
        raise UnauthorizedError("No pending OTP verification.") from e
    return claims.subject


def get_token_signer(request: Request) -> TokenSigner:
    return request.app.state.token_signer


def get_password_hasher(request: Request) -> PasswordHasher:
    return request.app.state.password_hasher


__all__ = [
    "ACCESS_COOKIE_NAME",
    "REFRESH_COOKIE_NAME",
    "OTP_COOKIE_NAME",
    "AuthenticationMiddleware",
    "Principal",
    "UserLoader",
    "authenticate_request",
    "extract_bearer_token",
    "get_current_principal",
    "get_optional_principal",
    "get_otp_pending_subject",
    "get_password_hasher",
    "get_token_signer",
    "require_roles",
]
