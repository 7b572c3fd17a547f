"""Result (score record) model."""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import DECIMAL, Boolean, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base
from app.models.base import IDMixin, IDType, TimestampMixin


class Result(Base, IDMixin, TimestampMixin):
    """One student's score in one subject for one term.

    ``total_score`` and ``position`` are derived: they are only written by the
    ranking engine and never accepted from clients.
    """

    __tablename__ = "results"

    student_id: Mapped[int] = mapped_column(
        IDType,
        ForeignKey("students.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    subject_id: Mapped[int] = mapped_column(
        IDType,
        ForeignKey("subjects.id", ondelete="CASCADE"),
        nullable=False,
    )
    term_id: Mapped[int] = mapped_column(
        IDType,
        ForeignKey("terms.id", ondelete="CASCADE"),
        nullable=False,
    )
    teacher_id: Mapped[int | None] = mapped_column(
        IDType,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    ca_score: Mapped[Decimal] = mapped_column(DECIMAL(5, 2), nullable=False, default=Decimal("0"))
    exam_score: Mapped[Decimal] = mapped_column(DECIMAL(5, 2), nullable=False, default=Decimal("0"))
    total_score: Mapped[Decimal] = mapped_column(DECIMAL(5, 2), nullable=False, default=Decimal("0"))
    position: Mapped[int | None] = mapped_column(Integer, nullable=True)

    remark: Mapped[str | None] = mapped_column(String(255), nullable=True)
    teacher_comment: Mapped[str | None] = mapped_column(Text, nullable=True)

    # CBT linkage
    cbt_exam_attempt_id: Mapped[int | None] = mapped_column(
        IDType,
        ForeignKey("student_exam_attempts.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    is_cbt_exam: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    manual_exam_score: Mapped[Decimal | None] = mapped_column(DECIMAL(5, 2), nullable=True)
    cbt_synced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Relationships
    student: Mapped["Student"] = relationship("Student", lazy="selectin")
    subject: Mapped["Subject"] = relationship("Subject", lazy="selectin")
    term: Mapped["Term"] = relationship("Term", lazy="selectin")

    __table_args__ = (
        UniqueConstraint("student_id", "subject_id", "term_id", name="uq_result_student_subject_term"),
        Index("ix_results_cohort", "subject_id", "term_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<Result(student_id={self.student_id}, subject_id={self.subject_id}, "
            f"term_id={self.term_id}, total={self.total_score}, position={self.position})>"
        )


class TermResult(Base, IDMixin, TimestampMixin):
    """A student's compiled standing for a term across all subjects.

    Built by compiling a class: ``average_score`` is the mean subject total
    and ``position`` ranks the class by that average. Rows go stale when
    subject results change and are refreshed by compiling again.
    """

    __tablename__ = "term_results"

    student_id: Mapped[int] = mapped_column(
        IDType,
        ForeignKey("students.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    term_id: Mapped[int] = mapped_column(
        IDType,
        ForeignKey("terms.id", ondelete="CASCADE"),
        nullable=False,
    )
    class_name: Mapped[str] = mapped_column(String(50), nullable=False)

    subjects_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_score: Mapped[Decimal] = mapped_column(DECIMAL(7, 2), nullable=False, default=Decimal("0"))
    average_score: Mapped[Decimal] = mapped_column(DECIMAL(5, 2), nullable=False, default=Decimal("0"))
    position: Mapped[int | None] = mapped_column(Integer, nullable=True)

    teacher_comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    principal_comment: Mapped[str | None] = mapped_column(Text, nullable=True)

    student: Mapped["Student"] = relationship("Student", lazy="selectin")
    term: Mapped["Term"] = relationship("Term", lazy="selectin")

    __table_args__ = (
        UniqueConstraint("student_id", "term_id", name="uq_term_result_student_term"),
        Index("ix_term_results_class_term", "class_name", "term_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<TermResult(student_id={self.student_id}, term_id={self.term_id}, "
            f"average={self.average_score}, position={self.position})>"
        )


# Import to avoid circular imports
from app.models.academic import Student, Subject, Term
