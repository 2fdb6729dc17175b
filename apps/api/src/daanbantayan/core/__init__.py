"""
Core module - Configuration, database, security, and request authentication.
"""

from daanbantayan.core.config import ConfigurationError, get_settings, settings, validate_settings
from daanbantayan.core.database import Base, close_db, get_db, init_db
from daanbantayan.core.redis import close_redis, init_redis
from daanbantayan.core.security import PasswordHasher, SigningKey, TokenClaims, TokenSigner

__all__ = [
    # Config
    "settings",
    "get_settings",
    "validate_settings",
    "ConfigurationError",
    # Database
    "Base",
    "get_db",
    "init_db",
    "close_db",
    # Redis
    "init_redis",
    "close_redis",
    # Security
    "PasswordHasher",
    "SigningKey",
    "TokenClaims",
    "TokenSigner",
]
