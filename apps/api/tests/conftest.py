"""
Shared fixtures for API tests.
"""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from daanbantayan.core.security import PasswordHasher, SigningKey, TokenSigner
from daanbantayan.modules.otp.store import OtpStore
from daanbantayan.modules.users.models import User, UserRole, UserStatus

TEST_SECRET = b"test-signing-secret-that-is-long-enough-0123456789"


class FakeClock:
    """Manually advanced monotonic clock for cache expiry tests."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def mock_db():
    """Create a mock database session."""
    db = AsyncMock()
    db.commit = AsyncMock()
    db.flush = AsyncMock()
    db.refresh = AsyncMock()
    db.execute = AsyncMock()
    db.add = MagicMock()
    return db


@pytest.fixture
def mock_redis():
    """Create a mock Redis client."""
    redis = AsyncMock()
    redis.get = AsyncMock(return_value=None)
    redis.set = AsyncMock()
    redis.delete = AsyncMock()
    redis.getdel = AsyncMock(return_value=None)
    redis.eval = AsyncMock(return_value=1)
    return redis


@pytest.fixture
def signer():
    return TokenSigner(SigningKey(secret=TEST_SECRET))


@pytest.fixture
def other_signer():
    """Signer with a different key, for signature mismatch tests."""
    return TokenSigner(SigningKey(secret=b"another-signing-secret-also-long-enough-987654"))


@pytest.fixture
def hasher():
    """Cheapest bcrypt cost so tests stay fast."""
    return PasswordHasher(rounds=4)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def otp_store(clock):
    return OtpStore.in_memory(clock=clock)


@pytest.fixture
def make_user():
    """Factory for unsaved User instances."""

    def _make_user(
        email: str = "teacher@daanbantayan.dev",
        role: UserRole = UserRole.TEACHER,
        status: UserStatus = UserStatus.ACTIVE,
        password_hash: str = "",
        **kwargs,
    ) -> User:
        now = datetime.now(UTC)
        return User(
            id=str(uuid4()),
            email=email,
            password_hash=password_hash,
            role=role,
            status=status,
            first_name=kwargs.get("first_name", "Maria"),
            last_name=kwargs.get("last_name", "Santos"),
            created_at=now,
            updated_at=now,
        )

    return _make_user
