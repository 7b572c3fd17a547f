"""Authentication service."""

from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import AuthenticationError, ConflictError, NotFoundError
from app.core.security import (
    REFRESH_TOKEN,
    create_access_token,
    create_refresh_token,
    decode_token,
    hash_password,
    verify_password,
)
from app.models.user import User
from app.schemas.auth import LoginRequest, TokenResponse, UserCreate


class AuthService:
    """Authentication service."""

    def __init__(self, db: Session):
        self.db = db

    def _issue_tokens(self, user: User) -> TokenResponse:
        return TokenResponse(
            access_token=create_access_token(user.id, user.username, user.role.value),
            refresh_token=create_refresh_token(user.id),
            token_type="bearer",
            expires_in=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        )

    def login(self, request: LoginRequest) -> tuple[User, TokenResponse]:
        """Authenticate user and return tokens."""
        result = self.db.execute(
            select(User).where(User.username == request.username)
        )
        user = result.scalar_one_or_none()

        if not user or not verify_password(request.password, user.password_hash):
            raise AuthenticationError("Invalid username or password")

        if not user.is_active:
            raise AuthenticationError("User account is deactivated")

        user.last_login_at = datetime.now(timezone.utc)
        self.db.flush()

        return user, self._issue_tokens(user)

    def refresh_tokens(self, refresh_token: str) -> TokenResponse:
        """Refresh access token using refresh token."""
        payload = decode_token(refresh_token, REFRESH_TOKEN)
        if not payload:
            raise AuthenticationError("Invalid or expired refresh token")

        try:
            user_id = int(payload.get("sub", ""))
        except ValueError:
            raise AuthenticationError("Invalid user ID in token")

        user = self.db.get(User, user_id)
        if not user or not user.is_active:
            raise AuthenticationError("User not found or deactivated")

        return self._issue_tokens(user)

    def register_user(self, request: UserCreate) -> User:
        """Register a new user with a role."""
        existing = self.db.execute(
            select(User).where(User.username == request.username)
        ).scalar_one_or_none()
        if existing:
            raise ConflictError("Username already registered")

        user = User(
            name=request.name,
            username=request.username,
            email=request.email,
            password_hash=hash_password(request.password),
            role=request.role,
            is_active=True,
        )
        self.db.add(user)
        self.db.flush()
        return user

    def get_user_by_id(self, user_id: int) -> User:
        user = self.db.get(User, user_id)
        if not user:
            raise NotFoundError("User", str(user_id))
        return user
