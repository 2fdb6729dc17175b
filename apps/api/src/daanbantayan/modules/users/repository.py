"""
User Repository

Database operations for the credential store.
"""

import logging
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from daanbantayan.modules.users.models import User, UserRole, UserStatus

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    return email.strip().lower()


class UserRepository:
    """Repository for user database operations."""

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        email: str,
        password_hash: str,
        role: UserRole,
        first_name: str | None = None,
        last_name: str | None = None,
        status: UserStatus = UserStatus.ACTIVE,
    ) -> User:
        """
        Create a new user record.

        Args:
            db: Database session
            email: User's email address (unique, stored lower-cased)
            password_hash: bcrypt hash of the password
            role: User's role
            first_name: User's first name (optional)
            last_name: User's last name (optional)
            status: Initial account status

        Returns:
            Created User instance
        """
        user = User(
            email=normalize_email(email),
            password_hash=password_hash,
            first_name=first_name,
            last_name=last_name,
            role=role,
            status=status,
        )

        db.add(user)
        await db.flush()
        await db.refresh(user)

        logger.info(f"Created user: {user.id} - {user.email} ({user.role.value})")
        return user

    @staticmethod
    async def get_by_id(db: AsyncSession, user_id: str | UUID) -> User | None:
        """
        Get a user by ID.

        Args:
            db: Database session
            user_id: User UUID

        Returns:
            User instance, or None if not found or ``user_id`` is not a UUID
        """
        try:
            user_id_str = str(UUID(str(user_id)))
        except ValueError:
            return None
        result = await db.execute(select(User).where(User.id == user_id_str))
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_email(db: AsyncSession, email: str) -> User | None:
        """
        Get a user by email address, ignoring case.

        Args:
            db: Database session
            email: Email address

        Returns:
            User instance or None if not found
        """
        result = await db.execute(
            select(User).where(func.lower(User.email) == normalize_email(email))
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def email_exists(db: AsyncSession, email: str) -> bool:
        """
        Check if an email address is already registered.

        Args:
            db: Database session
            email: Email address to check

        Returns:
            True if email exists, False otherwise
        """
        user = await UserRepository.get_by_email(db, email)
        return user is not None

    @staticmethod
    async def update_password(db: AsyncSession, user: User, password_hash: str) -> User:
        user.password_hash = password_hash
        await db.flush()
        logger.info(f"Updated password for user: {user.id}")
        return user

    @staticmethod
    async def set_status(db: AsyncSession, user: User, status: UserStatus) -> User:
        user.status = status
        await db.flush()
        logger.info(f"Set status of user {user.id} to {status.value}")
        return user

    @staticmethod
    async def update_email(db: AsyncSession, user: User, email: str) -> User:
        old_email = user.email
        user.email = normalize_email(email)
        await db.flush()
        logger.info(f"Changed email of user {user.id}: {old_email} -> {user.email}")
        return user
