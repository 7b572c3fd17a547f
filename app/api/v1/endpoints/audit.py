"""Audit log endpoints."""

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.dependencies import AdminUser
from app.models.audit import AuditAction
from app.schemas.audit import AuditLogFilter, AuditLogResponse
from app.schemas.common import PaginatedResponse
from app.services.audit import AuditService

router = APIRouter()


@router.get("", response_model=PaginatedResponse[AuditLogResponse])
def list_audit_logs(
    admin: AdminUser,
    db: Annotated[Session, Depends(get_db)],
    action: AuditAction | None = None,
    user_id: int | None = None,
    resource_type: str | None = None,
    resource_id: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
):
    """
    List audit logs with filtering. Admin only.
    Audit logs are append-only and cannot be modified.
    """
    filters = AuditLogFilter(
        action=action,
        user_id=user_id,
        resource_type=resource_type,
        resource_id=resource_id,
        date_from=date_from,
        date_to=date_to,
    )
    logs, total = AuditService(db).list_logs(filters=filters, page=page, page_size=page_size)
    return PaginatedResponse.build(logs, total, page, page_size)


@router.get("/actions", response_model=list[str])
def list_audit_actions(admin: AdminUser):
    return [action.value for action in AuditAction]
