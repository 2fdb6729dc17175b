"""
User Schemas

Pydantic schemas for account management requests and responses.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from daanbantayan.modules.users.models import UserRole, UserStatus

MIN_PASSWORD_LENGTH = 8


class UserCreate(BaseModel):
    """Account registration by staff."""

    email: EmailStr
    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH, max_length=128)
    role: UserRole
    first_name: str | None = Field(None, max_length=100)
    last_name: str | None = Field(None, max_length=100)


class PasswordResetRequest(BaseModel):
    new_password: str = Field(..., min_length=MIN_PASSWORD_LENGTH, max_length=128)


class ChangeEmailRequest(BaseModel):
    new_email: EmailStr
    otp: str = Field(..., min_length=4, max_length=12, pattern=r"^\d+$")


class UserResponse(BaseModel):
    """Public view of a user account."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    first_name: str | None = None
    last_name: str | None = None
    role: UserRole
    status: UserStatus
    created_at: datetime
    updated_at: datetime


class MessageResponse(BaseModel):
    message: str
