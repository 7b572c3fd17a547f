"""Audit log model."""

import enum
from datetime import datetime

from sqlalchemy import DateTime, Enum, ForeignKey, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base
from app.models.base import IDMixin, IDType, JSONType, utcnow


class AuditAction(str, enum.Enum):
    """Audit action types."""

    # User actions
    USER_CREATED = "USER_CREATED"
    USER_LOGIN = "USER_LOGIN"

    # Result actions
    RESULT_CREATED = "RESULT_CREATED"
    RESULT_UPDATED = "RESULT_UPDATED"
    RESULT_DELETED = "RESULT_DELETED"
    RESULT_BULK_SAVED = "RESULT_BULK_SAVED"
    POSITIONS_RECOMPUTED = "POSITIONS_RECOMPUTED"
    TERM_RESULTS_COMPILED = "TERM_RESULTS_COMPILED"

    # CBT actions
    CBT_SYNCED = "CBT_SYNCED"
    CBT_REVERTED = "CBT_REVERTED"
    CBT_OVERRIDDEN = "CBT_OVERRIDDEN"

    # Other data mutations
    DATA_CREATED = "DATA_CREATED"
    DATA_UPDATED = "DATA_UPDATED"


class AuditLog(Base, IDMixin):
    """Append-only audit log model."""

    __tablename__ = "audit_logs"

    # Actor
    user_id: Mapped[int | None] = mapped_column(
        IDType,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    action: Mapped[AuditAction] = mapped_column(
        Enum(AuditAction),
        nullable=False,
        index=True,
    )
    resource_type: Mapped[str] = mapped_column(String(100), nullable=False)
    resource_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    extra_data: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # Timestamp (append-only, no updated_at)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
        index=True,
    )

    def __repr__(self) -> str:
        return f"<AuditLog(id={self.id}, action={self.action})>"
