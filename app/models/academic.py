"""Student, subject and term models."""

from datetime import date

from sqlalchemy import Boolean, Date, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base
from app.models.base import IDMixin, IDType, TimestampMixin


class Student(Base, IDMixin, TimestampMixin):
    """Enrolled student, optionally linked to a login account."""

    __tablename__ = "students"

    user_id: Mapped[int | None] = mapped_column(
        IDType,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        unique=True,
    )
    admission_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    student_name: Mapped[str] = mapped_column(String(255), nullable=False)
    class_name: Mapped[str] = mapped_column(String(50), nullable=False, index=True)  # 'class' is reserved keyword
    parent_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    parent_phone_no: Mapped[str | None] = mapped_column(String(50), nullable=True)

    user: Mapped["User | None"] = relationship("User", lazy="selectin")

    def __repr__(self) -> str:
        return f"<Student(id={self.id}, admission={self.admission_number}, class={self.class_name})>"


class Subject(Base, IDMixin, TimestampMixin):
    """Taught subject."""

    __tablename__ = "subjects"

    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    code: Mapped[str | None] = mapped_column(String(20), unique=True, nullable=True)

    def __repr__(self) -> str:
        return f"<Subject(id={self.id}, name={self.name})>"


class Term(Base, IDMixin, TimestampMixin):
    """Academic term. At most one term is current at a time."""

    __tablename__ = "terms"

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    session_name: Mapped[str] = mapped_column(String(20), nullable=False)  # e.g. "2024/2025"
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_current: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<Term(id={self.id}, name={self.name}, session={self.session_name})>"


# Import to avoid circular imports
from app.models.user import User
