"""
Security Primitives

Password hashing (bcrypt) and session token signing (PyJWT, HS256).

Both are plain objects built from configuration at startup and handed to the
code that needs them, so tests can construct their own instances (cheap bcrypt
rounds, per-test signing keys) without touching process-wide state.
"""

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

import bcrypt
import jwt

from daanbantayan.core.config import MIN_JWT_SECRET_BYTES, ConfigurationError, Settings
from daanbantayan.core.exceptions import (
    InvalidSignatureError,
    MalformedTokenError,
    TokenExpiredError,
)

logger = logging.getLogger(__name__)

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"
# Issued by an OTP request; only accepted when verifying that OTP
OTP_PENDING_TOKEN_TYPE = "otp_pending"

# bcrypt ignores everything past the first 72 bytes of input
_BCRYPT_MAX_BYTES = 72

# Claims managed by the signer itself; extra_claims may not override them
_RESERVED_CLAIMS = frozenset({"sub", "role", "type", "iat", "exp"})


class PasswordHasher:
    """One-way salted password hashing with bcrypt."""

    def __init__(self, rounds: int = 12):
        self.rounds = rounds

    @staticmethod
    def _encode(plaintext: str) -> bytes:
        return plaintext.encode("utf-8")[:_BCRYPT_MAX_BYTES]

    def hash(self, plaintext: str) -> str:
        """Return a salted bcrypt hash of ``plaintext``."""
        salt = bcrypt.gensalt(rounds=self.rounds)
        return bcrypt.hashpw(self._encode(plaintext), salt).decode("utf-8")

    def verify(self, plaintext: str, hashed: str) -> bool:
        """
        Check ``plaintext`` against a stored hash.

        Malformed or empty hashes verify as False rather than raising, so a
        corrupt credential row behaves like a wrong password.
        """
        if not hashed:
            return False
        try:
            return bcrypt.checkpw(self._encode(plaintext), hashed.encode("utf-8"))
        except (ValueError, TypeError):
            logger.warning("Password verification against a malformed hash")
            return False


@dataclass(frozen=True)
class SigningKey:
    """HMAC key material for session tokens."""

    secret: bytes = field(repr=False)
    algorithm: str = "HS256"

    def __post_init__(self) -> None:
        if len(self.secret) < MIN_JWT_SECRET_BYTES:
            raise ConfigurationError(
                [f"jwt_secret must be at least {MIN_JWT_SECRET_BYTES} bytes long"]
            )

    @classmethod
    def from_settings(cls, cfg: Settings) -> "SigningKey":
        if not cfg.jwt_secret:
            raise ConfigurationError(["jwt_secret is required but not configured"])
        return cls(secret=cfg.jwt_secret.encode("utf-8"), algorithm=cfg.jwt_algorithm)


@dataclass(frozen=True)
class TokenClaims:
    """Verified contents of a session token."""

    subject: str
    role: str
    token_type: str
    issued_at: datetime
    expires_at: datetime
    claims: dict[str, Any] = field(default_factory=dict)


class TokenSigner:
    """Issues and verifies signed, time-limited bearer tokens."""

    def __init__(self, key: SigningKey):
        self._key = key

    def issue(
        self,
        subject: str,
        role: str,
        ttl: timedelta,
        extra_claims: dict[str, Any] | None = None,
        token_type: str = ACCESS_TOKEN_TYPE,
    ) -> str:
        """
        Build and sign a token.

        Args:
            subject: User id the token is issued for
            role: Role name, stored upper-cased in the ``role`` claim
            ttl: Lifetime from now
            extra_claims: Optional additional claims (reserved names are ignored)
            token_type: ``access``, ``refresh`` or ``otp_pending``

        Returns:
            Compact JWS string
        """
        now = datetime.now(UTC)
        payload: dict[str, Any] = {
            key: value
            for key, value in (extra_claims or {}).items()
            if key not in _RESERVED_CLAIMS
        }
        payload.update(
            {
                "sub": subject,
                "role": role.upper(),
                "type": token_type,
                "iat": now,
                "exp": now + ttl,
            }
        )
        return jwt.encode(payload, self._key.secret, algorithm=self._key.algorithm)

    def verify(self, token: str, expected_type: str | None = None) -> TokenClaims:
        """
        Verify a token's signature and expiry and return its claims.

        Raises:
            InvalidSignatureError: Signature does not match the key
            TokenExpiredError: Token is past its ``exp``
            MalformedTokenError: Token cannot be parsed, lacks required
                claims, or is not of ``expected_type``
        """
        raw = token.removeprefix("Bearer ").strip()
        try:
            payload = jwt.decode(
                raw,
                self._key.secret,
                algorithms=[self._key.algorithm],
                options={"require": ["sub", "exp", "iat"]},
            )
        except jwt.ExpiredSignatureError as e:
            raise TokenExpiredError() from e
        except jwt.InvalidSignatureError as e:
            raise InvalidSignatureError() from e
        except jwt.InvalidTokenError as e:
            raise MalformedTokenError() from e

        role = payload.get("role")
        token_type = payload.get("type")
        if not isinstance(role, str) or not isinstance(token_type, str):
            raise MalformedTokenError("Token is missing role or type claims.")
        if expected_type is not None and token_type != expected_type:
            raise MalformedTokenError(f"Expected a {expected_type} token.")

        return TokenClaims(
            subject=payload["sub"],
            role=role,
            token_type=token_type,
            issued_at=datetime.fromtimestamp(payload["iat"], tz=UTC),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=UTC),
            claims={k: v for k, v in payload.items() if k not in _RESERVED_CLAIMS},
        )


__all__ = [
    "ACCESS_TOKEN_TYPE",
    "REFRESH_TOKEN_TYPE",
    "OTP_PENDING_TOKEN_TYPE",
    "PasswordHasher",
    "SigningKey",
    "TokenClaims",
    "TokenSigner",
]
