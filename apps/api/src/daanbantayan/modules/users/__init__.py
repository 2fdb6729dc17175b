"""
Users module - Credential store and account management.
"""

from daanbantayan.modules.users.models import User, UserRole, UserStatus
from daanbantayan.modules.users.repository import UserRepository

__all__ = ["User", "UserRole", "UserStatus", "UserRepository"]
