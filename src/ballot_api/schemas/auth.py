"""Authentication and user Pydantic v2 schemas.

Defines request/response schemas for registration, login, code
verification, token refresh, password reset, and user administration.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field

OTP_CODE_PATTERN = r"^[0-9]{4,10}$"


class RegisterRequest(BaseModel):
    """Self-service voter registration."""

    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    phone_number: str | None = Field(default=None, pattern=r"^\+?[0-9]{7,15}$")
    role: str = Field(default="voter", pattern="^(voter|admin)$")


class LoginRequest(BaseModel):
    """First login step: email and password."""

    email: EmailStr
    password: str = Field(min_length=1, max_length=128)


class CodeVerifyRequest(BaseModel):
    """Second step of registration or login: the emailed code."""

    email: EmailStr
    code: str = Field(pattern=OTP_CODE_PATTERN)


class RefreshRequest(BaseModel):
    """Token refresh request."""

    refresh_token: str


class TokenResponse(BaseModel):
    """JWT token pair response."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int = Field(description="Access token expiration in seconds")


class CodeIssuedResponse(BaseModel):
    """Acknowledgement that a code was sent.

    ``code`` is only populated when code echoing is enabled for testing.
    """

    message: str
    email: str
    purpose: str
    expires_in_minutes: int
    code: str | None = None


class PasswordResetRequest(BaseModel):
    """Ask for a password-reset code."""

    email: EmailStr


class PasswordResetConfirm(BaseModel):
    """Set a new password using a password-reset code."""

    email: EmailStr
    code: str = Field(pattern=OTP_CODE_PATTERN)
    new_password: str = Field(min_length=8, max_length=128)


class PasswordChangeRequest(BaseModel):
    """Change password while logged in."""

    current_password: str = Field(min_length=1, max_length=128)
    new_password: str = Field(min_length=8, max_length=128)


class UserStatusUpdate(BaseModel):
    """Administrative activation toggle."""

    is_active: bool


class UserResponse(BaseModel):
    """User information response."""

    id: UUID
    email: str
    first_name: str
    last_name: str
    role: str
    is_verified: bool
    is_active: bool
    failed_login_attempts: int
    locked_until: datetime | None = None
    created_at: datetime
    last_login_at: datetime | None = None

    model_config = {"from_attributes": True}
