"""Authentication endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.dependencies import AdminUser, CurrentUser, client_ip
from app.models.audit import AuditAction
from app.schemas.auth import (
    LoginRequest,
    RefreshTokenRequest,
    TokenResponse,
    UserCreate,
    UserResponse,
)
from app.services.audit import AuditService
from app.services.auth import AuthService

router = APIRouter()


@router.post("/login", response_model=TokenResponse)
def login(
    request: LoginRequest,
    db: Annotated[Session, Depends(get_db)],
    http_request: Request,
):
    """
    Authenticate user and return access/refresh tokens.
    """
    service = AuthService(db)
    user, tokens = service.login(request)

    AuditService(db).log(
        action=AuditAction.USER_LOGIN,
        resource_type="user",
        resource_id=str(user.id),
        user_id=user.id,
        ip_address=client_ip(http_request),
    )

    return tokens


@router.post("/refresh", response_model=TokenResponse)
def refresh_token(
    request: RefreshTokenRequest,
    db: Annotated[Session, Depends(get_db)],
):
    """
    Refresh access token using a valid refresh token.
    """
    return AuthService(db).refresh_tokens(request.refresh_token)


@router.post("/register", response_model=UserResponse)
def register(
    request: UserCreate,
    admin: AdminUser,
    db: Annotated[Session, Depends(get_db)],
    http_request: Request,
):
    """
    Create a user account with a role. Admin only.
    """
    user = AuthService(db).register_user(request)

    AuditService(db).log(
        action=AuditAction.USER_CREATED,
        resource_type="user",
        resource_id=str(user.id),
        user_id=admin.id,
        description=f"User '{user.username}' created with role {user.role.value}",
        ip_address=client_ip(http_request),
    )

    return user


@router.get("/me", response_model=UserResponse)
def get_me(user: CurrentUser):
    """
    Get the current user's profile.
    """
    return user
