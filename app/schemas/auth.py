"""Authentication schemas."""

from datetime import datetime

from pydantic import Field

from app.models.user import UserRole
from app.schemas.common import BaseSchema


class LoginRequest(BaseSchema):
    """Login request schema."""

    username: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=6)


class TokenResponse(BaseSchema):
    """Token response schema."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int


class RefreshTokenRequest(BaseSchema):
    """Refresh token request schema."""

    refresh_token: str


class UserCreate(BaseSchema):
    """User creation schema (admin only)."""

    name: str = Field(..., min_length=2, max_length=255)
    username: str = Field(..., min_length=3, max_length=255)
    email: str | None = Field(None, max_length=255)
    password: str = Field(..., min_length=8)
    role: UserRole


class UserResponse(BaseSchema):
    """User response schema."""

    id: int
    name: str
    username: str
    email: str | None
    role: UserRole
    is_active: bool
    last_login_at: datetime | None
    created_at: datetime
    updated_at: datetime
